from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from docuground.domain.models import UsageRecord


async def insert_usage_record(
    session: AsyncSession,
    *,
    account_id: str,
    api_key_id: str | None,
    endpoint: str,
    tokens_used: int,
    cost: Decimal,
    metadata_json: dict[str, Any],
) -> UsageRecord:
    record = UsageRecord(
        id=uuid4().hex,
        account_id=account_id,
        api_key_id=api_key_id,
        endpoint=endpoint,
        tokens_used=tokens_used,
        cost=cost,
        metadata_json=metadata_json,
    )
    session.add(record)
    await session.flush()
    return record

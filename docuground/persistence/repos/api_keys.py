from __future__ import annotations

from datetime import datetime

from sqlalchemy import Update, delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docuground.domain.models import Account, ApiKey


async def insert_api_key(
    session: AsyncSession,
    *,
    key_id: str,
    account_id: str,
    name: str,
    key_prefix: str,
    key_hash: str,
    expires_at: datetime | None,
) -> ApiKey:
    api_key = ApiKey(
        id=key_id,
        account_id=account_id,
        name=name,
        key_prefix=key_prefix,
        key_hash=key_hash,
        is_active=True,
        expires_at=expires_at,
        usage_count=0,
    )
    session.add(api_key)
    # Flush to surface FK/unique violations before the caller commits.
    await session.flush()
    return api_key


async def get_key_with_account(session: AsyncSession, key_hash: str) -> tuple[ApiKey, Account] | None:
    result = await session.execute(
        select(ApiKey, Account)
        .join(Account, Account.id == ApiKey.account_id)
        .where(ApiKey.key_hash == key_hash)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return row[0], row[1]


def build_touch_stmt(key_id: str, used_at: datetime) -> Update:
    # Relative increment so N concurrent verifications add exactly N. Active and
    # expiry are re-checked here so a key changed after the lookup is not counted.
    return (
        update(ApiKey)
        .where(
            ApiKey.id == key_id,
            ApiKey.is_active.is_(True),
            or_(ApiKey.expires_at.is_(None), ApiKey.expires_at >= used_at),
        )
        .values(usage_count=ApiKey.usage_count + 1, last_used_at=used_at)
        .returning(ApiKey.usage_count)
    )


async def touch_api_key(session: AsyncSession, key_id: str, used_at: datetime) -> int | None:
    # Returns None when the key was deactivated or expired between lookup and touch.
    result = await session.execute(build_touch_stmt(key_id, used_at))
    return result.scalar_one_or_none()


async def list_api_keys(session: AsyncSession, account_id: str) -> list[ApiKey]:
    result = await session.execute(
        select(ApiKey)
        .where(ApiKey.account_id == account_id)
        .order_by(ApiKey.created_at.desc(), ApiKey.id)
    )
    return list(result.scalars().all())


async def deactivate_api_key(session: AsyncSession, key_id: str, account_id: str) -> bool:
    # Account scoping prevents disabling another customer's key by id.
    result = await session.execute(
        update(ApiKey)
        .where(ApiKey.id == key_id, ApiKey.account_id == account_id)
        .values(is_active=False)
    )
    return bool(result.rowcount)


async def delete_api_key(session: AsyncSession, key_id: str, account_id: str) -> bool:
    result = await session.execute(
        delete(ApiKey).where(ApiKey.id == key_id, ApiKey.account_id == account_id)
    )
    return bool(result.rowcount)

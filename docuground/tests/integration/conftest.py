from __future__ import annotations

from typing import Awaitable, Callable
from uuid import uuid4

import pytest
from sqlalchemy import delete, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from docuground.core.config import Settings
from docuground.domain.models import Account, ApiKey, Base, Document, DocumentChunk, UsageRecord
from docuground.persistence.db import build_engine, build_session_factory


_HNSW_INDEX = (
    "CREATE INDEX IF NOT EXISTS ix_document_chunks_embedding_hnsw "
    "ON document_chunks USING hnsw (embedding vector_cosine_ops)"
)


@pytest.fixture
async def pg_engine() -> AsyncEngine:
    # One engine per test keeps asyncpg connections bound to the test's own loop.
    engine = build_engine(Settings())
    try:
        async with engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text(_HNSW_INDEX))
    except (OSError, SQLAlchemyError) as exc:
        await engine.dispose()
        pytest.skip(f"Postgres with pgvector is not reachable: {exc}")
    yield engine
    await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(pg_engine)


@pytest.fixture
async def make_account(
    pg_session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[str]]:
    created: list[str] = []

    async def _make_account(*, usage_limit: int = 1000, current_usage: int = 0) -> str:
        account_id = f"acct-it-{uuid4().hex}"
        async with pg_session_factory() as session:
            session.add(
                Account(
                    id=account_id,
                    subscription_tier="pro",
                    usage_limit=usage_limit,
                    current_usage=current_usage,
                )
            )
            await session.commit()
        created.append(account_id)
        return account_id

    yield _make_account

    # Remove every row the test created so runs stay independent.
    async with pg_session_factory() as session:
        for account_id in created:
            document_ids = select(Document.id).where(Document.account_id == account_id)
            await session.execute(delete(UsageRecord).where(UsageRecord.account_id == account_id))
            await session.execute(delete(DocumentChunk).where(DocumentChunk.document_id.in_(document_ids)))
            await session.execute(delete(Document).where(Document.account_id == account_id))
            await session.execute(delete(ApiKey).where(ApiKey.account_id == account_id))
            await session.execute(delete(Account).where(Account.id == account_id))
        await session.commit()

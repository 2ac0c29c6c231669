from __future__ import annotations

from sqlalchemy import Update, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docuground.domain.models import Account


async def get_account(session: AsyncSession, account_id: str) -> Account | None:
    return await session.get(Account, account_id)


async def get_usage(session: AsyncSession, account_id: str) -> tuple[int, int] | None:
    # Read only the counters so a stale identity-map row never answers the check.
    result = await session.execute(
        select(Account.current_usage, Account.usage_limit)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return int(row.current_usage), int(row.usage_limit)


def build_increment_usage_stmt(account_id: str, delta: int) -> Update:
    # Relative update: the database serializes concurrent increments on the row lock.
    return (
        update(Account)
        .where(Account.id == account_id)
        .values(current_usage=Account.current_usage + delta)
        .returning(Account.current_usage, Account.usage_limit)
    )


def build_consume_usage_stmt(account_id: str, delta: int) -> Update:
    # Check and increment in one statement so concurrent callers cannot overshoot.
    return (
        update(Account)
        .where(
            Account.id == account_id,
            Account.current_usage + delta <= Account.usage_limit,
        )
        .values(current_usage=Account.current_usage + delta)
        .returning(Account.current_usage, Account.usage_limit)
    )


async def increment_usage(session: AsyncSession, account_id: str, delta: int) -> tuple[int, int] | None:
    result = await session.execute(build_increment_usage_stmt(account_id, delta))
    row = result.one_or_none()
    if row is None:
        return None
    return int(row.current_usage), int(row.usage_limit)


async def consume_usage(session: AsyncSession, account_id: str, delta: int) -> tuple[int, int] | None:
    # None means either an unknown account or a rejected charge; callers re-read to tell apart.
    result = await session.execute(build_consume_usage_stmt(account_id, delta))
    row = result.one_or_none()
    if row is None:
        return None
    return int(row.current_usage), int(row.usage_limit)

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docuground.core.errors import AccountNotFoundError, DatabaseError
from docuground.domain.metadata import UsageMetadata
from docuground.persistence.repos import accounts as accounts_repo
from docuground.persistence.repos import usage as usage_repo


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageCheck:
    allowed: bool
    current: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.current, 0)


@dataclass(frozen=True)
class UsageRecordResult:
    # Returned instead of raised: callers decide whether a lost audit row matters.
    ok: bool
    record_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class UsageSummary:
    current_usage: int
    usage_limit: int
    usage_percentage: float
    usage_remaining: int
    subscription_tier: str


class UsageMeter:
    """Per-account usage counters and the usage_tracking audit log.

    ``check_usage_limit`` followed by ``increment_usage`` is a soft limit:
    concurrent requests can overshoot by up to one charge each. Callers that
    can charge up front should use ``consume_usage`` instead.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def check_usage_limit(self, account_id: str) -> UsageCheck:
        async with self._session_factory() as session:
            try:
                usage = await accounts_repo.get_usage(session, account_id)
            except SQLAlchemyError as exc:
                raise DatabaseError(f"Failed to check usage limit: {exc}") from exc
        if usage is None:
            raise AccountNotFoundError(account_id)
        current, limit = usage
        return UsageCheck(allowed=current < limit, current=current, limit=limit)

    async def increment_usage(self, account_id: str, delta: int = 1) -> int:
        if delta < 0:
            raise ValueError("usage delta must be >= 0")
        async with self._session_factory() as session:
            try:
                updated = await accounts_repo.increment_usage(session, account_id, delta)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to increment usage: {exc}") from exc
        if updated is None:
            raise AccountNotFoundError(account_id)
        return updated[0]

    async def consume_usage(self, account_id: str, delta: int = 1) -> UsageCheck:
        # Increment only if the result stays within the limit; otherwise report without charging.
        if delta < 0:
            raise ValueError("usage delta must be >= 0")
        async with self._session_factory() as session:
            try:
                updated = await accounts_repo.consume_usage(session, account_id, delta)
                if updated is None:
                    await session.rollback()
                    usage = await accounts_repo.get_usage(session, account_id)
                    if usage is None:
                        raise AccountNotFoundError(account_id)
                    current, limit = usage
                    logger.info(
                        "usage_consume_rejected account_id=%s current=%s limit=%s delta=%s",
                        account_id,
                        current,
                        limit,
                        delta,
                    )
                    return UsageCheck(allowed=False, current=current, limit=limit)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to consume usage: {exc}") from exc
        current, limit = updated
        return UsageCheck(allowed=True, current=current, limit=limit)

    async def record_usage(
        self,
        account_id: str,
        api_key_id: str | None,
        endpoint: str,
        tokens_used: int = 0,
        cost: float | Decimal = 0,
        metadata: UsageMetadata | None = None,
    ) -> UsageRecordResult:
        async with self._session_factory() as session:
            try:
                record = await usage_repo.insert_usage_record(
                    session,
                    account_id=account_id,
                    api_key_id=api_key_id,
                    endpoint=endpoint,
                    tokens_used=tokens_used,
                    cost=Decimal(str(cost)),
                    metadata_json=(metadata or UsageMetadata()).to_json(),
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning(
                    "usage_record_write_failed account_id=%s endpoint=%s",
                    account_id,
                    endpoint,
                    exc_info=exc,
                )
                return UsageRecordResult(ok=False, error=str(exc))
        return UsageRecordResult(ok=True, record_id=record.id)

    async def usage_summary(self, account_id: str) -> UsageSummary:
        async with self._session_factory() as session:
            try:
                account = await accounts_repo.get_account(session, account_id)
            except SQLAlchemyError as exc:
                raise DatabaseError(f"Failed to fetch usage: {exc}") from exc
        if account is None:
            raise AccountNotFoundError(account_id)
        current = int(account.current_usage)
        limit = int(account.usage_limit)
        percentage = (current / limit) * 100 if limit > 0 else 0.0
        return UsageSummary(
            current_usage=current,
            usage_limit=limit,
            usage_percentage=round(percentage, 2),
            usage_remaining=max(0, limit - current),
            subscription_tier=account.subscription_tier,
        )

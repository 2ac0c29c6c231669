from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import hashlib
import logging
import re
import secrets
from typing import Callable
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docuground.core.errors import ApiKeyNotFoundError, DatabaseError
from docuground.domain.models import ApiKey
from docuground.persistence.repos import api_keys as api_keys_repo


logger = logging.getLogger(__name__)

API_KEY_PREFIX = "rub_"
_SECRET_HEX_BYTES = 16
_DISPLAY_PREFIX_CHARS = 8
_DISPLAY_ELLIPSIS = "..."
_WELL_FORMED_RE = re.compile(rf"^{re.escape(API_KEY_PREFIX)}[0-9a-f]{{{_SECRET_HEX_BYTES * 2}}}$")


def generate_api_key() -> str:
    # 128 random bits; the prefix makes leaked keys recognizable to scanners.
    return f"{API_KEY_PREFIX}{secrets.token_hex(_SECRET_HEX_BYTES)}"


def hash_api_key(raw_key: str) -> str:
    # Use SHA-256 for deterministic, non-reversible key storage.
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def key_display_prefix(raw_key: str) -> str:
    return raw_key[:_DISPLAY_PREFIX_CHARS] + _DISPLAY_ELLIPSIS


def is_well_formed_api_key(raw_key: object) -> bool:
    return isinstance(raw_key, str) and _WELL_FORMED_RE.match(raw_key) is not None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApiKeyView(BaseModel):
    # Stored key attributes safe to show an account owner.
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    account_id: str
    name: str
    key_prefix: str
    is_active: bool
    expires_at: datetime | None
    last_used_at: datetime | None
    usage_count: int
    created_at: datetime | None


@dataclass(frozen=True)
class CreatedApiKey:
    # The only object that ever carries the plaintext secret.
    api_key: str
    key: ApiKeyView


@dataclass(frozen=True)
class TierSnapshot:
    subscription_tier: str
    usage_limit: int
    current_usage: int


@dataclass(frozen=True)
class ApiKeyVerification:
    valid: bool
    account_id: str | None = None
    key_id: str | None = None
    tier: TierSnapshot | None = None

    @classmethod
    def invalid(cls) -> "ApiKeyVerification":
        # Same shape for every rejection reason so callers cannot probe keys.
        return cls(valid=False)


class ApiKeyService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        # Allow time injection for deterministic expiry tests.
        self._time_provider = time_provider or _utc_now

    async def create_api_key(
        self,
        account_id: str,
        name: str,
        expires_at: datetime | None = None,
    ) -> CreatedApiKey:
        raw_key = generate_api_key()
        async with self._session_factory() as session:
            try:
                row = await api_keys_repo.insert_api_key(
                    session,
                    key_id=uuid4().hex,
                    account_id=account_id,
                    name=name,
                    key_prefix=key_display_prefix(raw_key),
                    key_hash=hash_api_key(raw_key),
                    expires_at=expires_at,
                )
                await session.commit()
                await session.refresh(row)
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to create API key: {exc}") from exc
        logger.info("api_key_created account_id=%s key_id=%s prefix=%s", account_id, row.id, row.key_prefix)
        return CreatedApiKey(api_key=raw_key, key=ApiKeyView.model_validate(row))

    async def verify_api_key(self, raw_key: str) -> ApiKeyVerification:
        """Resolve a presented secret to its account.

        Every failure (malformed, unknown, inactive, expired) yields
        ``ApiKeyVerification.invalid()``. A successful lookup bumps the key's
        ``usage_count`` and ``last_used_at`` exactly once.
        """
        if not is_well_formed_api_key(raw_key):
            return ApiKeyVerification.invalid()

        now = self._time_provider()
        async with self._session_factory() as session:
            try:
                found = await api_keys_repo.get_key_with_account(session, hash_api_key(raw_key))
                if found is None or not _is_usable(found[0], now):
                    return ApiKeyVerification.invalid()
                api_key, account = found
                usage_count = await api_keys_repo.touch_api_key(session, api_key.id, now)
                if usage_count is None:
                    # Deactivated or expired between lookup and touch.
                    await session.rollback()
                    return ApiKeyVerification.invalid()
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError("Failed to verify API key") from exc

        return ApiKeyVerification(
            valid=True,
            account_id=account.id,
            key_id=api_key.id,
            tier=TierSnapshot(
                subscription_tier=account.subscription_tier,
                usage_limit=int(account.usage_limit),
                current_usage=int(account.current_usage),
            ),
        )

    async def list_api_keys(self, account_id: str) -> list[ApiKeyView]:
        async with self._session_factory() as session:
            try:
                rows = await api_keys_repo.list_api_keys(session, account_id)
            except SQLAlchemyError as exc:
                raise DatabaseError(f"Failed to fetch API keys: {exc}") from exc
        return [ApiKeyView.model_validate(row) for row in rows]

    async def deactivate_api_key(self, key_id: str, account_id: str) -> None:
        async with self._session_factory() as session:
            try:
                updated = await api_keys_repo.deactivate_api_key(session, key_id, account_id)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to deactivate API key: {exc}") from exc
        if not updated:
            raise ApiKeyNotFoundError(key_id)
        logger.info("api_key_deactivated account_id=%s key_id=%s", account_id, key_id)

    async def delete_api_key(self, key_id: str, account_id: str) -> None:
        async with self._session_factory() as session:
            try:
                deleted = await api_keys_repo.delete_api_key(session, key_id, account_id)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise DatabaseError(f"Failed to delete API key: {exc}") from exc
        if not deleted:
            raise ApiKeyNotFoundError(key_id)
        logger.info("api_key_deleted account_id=%s key_id=%s", account_id, key_id)


def _is_usable(api_key: ApiKey, now: datetime) -> bool:
    if not api_key.is_active:
        return False
    # Expired means strictly in the past; a key expiring "now" still works.
    return api_key.expires_at is None or api_key.expires_at >= now

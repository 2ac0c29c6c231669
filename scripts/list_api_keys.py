from __future__ import annotations

import argparse
import asyncio
from datetime import datetime, timezone
import sys

from docuground.core.config import get_settings
from docuground.core.container import build_services
from docuground.core.logging import configure_logging


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _build_parser() -> argparse.ArgumentParser:
    # Keep listing scoped to one account so operators never dump every key.
    parser = argparse.ArgumentParser(description="List API keys and usage for an account")
    parser.add_argument("--account", required=True, help="Account identifier")
    parser.add_argument(
        "--active-only",
        action="store_true",
        help="Hide deactivated and expired keys",
    )
    return parser


def _fmt(value: datetime | None) -> str:
    return value.isoformat() if value else ""


async def _list_keys(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    services = build_services(settings)
    try:
        keys = await services.api_keys.list_api_keys(args.account)
        summary = await services.usage.usage_summary(args.account)
    finally:
        await services.aclose()

    now = _utc_now()
    print(
        f"account={args.account} tier={summary.subscription_tier} "
        f"usage={summary.current_usage}/{summary.usage_limit} ({summary.usage_percentage}%) "
        f"remaining={summary.usage_remaining}"
    )
    print("key_id\tname\tkey_prefix\tcreated_at\tlast_used_at\texpires_at\tis_active\tusage_count\tis_expired")
    for key in keys:
        is_expired = key.expires_at is not None and key.expires_at < now
        if args.active_only and (not key.is_active or is_expired):
            continue
        print(
            f"{key.id}\t{key.name}\t{key.key_prefix}\t{_fmt(key.created_at)}\t"
            f"{_fmt(key.last_used_at)}\t{_fmt(key.expires_at)}\t"
            f"{key.is_active}\t{key.usage_count}\t{is_expired}"
        )
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_list_keys(args))
    except Exception as exc:  # noqa: BLE001 - show full operator-facing error context.
        print(f"list_api_keys failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

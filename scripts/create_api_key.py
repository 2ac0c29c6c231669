from __future__ import annotations

import argparse
import asyncio
from datetime import datetime
import sys

from docuground.core.config import get_settings
from docuground.core.container import build_services
from docuground.core.logging import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    # Keep CLI arguments explicit to avoid accidental key misuse.
    parser = argparse.ArgumentParser(description="Create an API key for an account")
    parser.add_argument("--account", required=True, help="Account identifier")
    parser.add_argument("--name", required=True, help="Key label shown in listings")
    parser.add_argument(
        "--expires-at",
        default=None,
        type=datetime.fromisoformat,
        help="Optional ISO-8601 expiry, e.g. 2027-12-31T23:59:59+00:00",
    )
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    services = build_services(settings)
    try:
        created = await services.api_keys.create_api_key(args.account, args.name, args.expires_at)
    finally:
        await services.aclose()

    print("API key created. Save it now; it will not be shown again.")
    print(f"  key_id: {created.key.id}")
    print(f"  key_prefix: {created.key.key_prefix}")
    print("  api_key: ")
    print(f"    {created.api_key}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

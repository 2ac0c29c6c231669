from __future__ import annotations

import argparse
import asyncio
import sys

from docuground.core.config import get_settings
from docuground.core.container import build_services
from docuground.core.logging import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    # Keep CLI usage minimal to avoid disabling the wrong key.
    parser = argparse.ArgumentParser(description="Deactivate (or delete) an API key by id")
    parser.add_argument("key_id", help="API key id")
    parser.add_argument("--account", required=True, help="Owning account identifier")
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Hard-delete the key instead of deactivating it",
    )
    return parser


async def _deactivate(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    services = build_services(settings)
    try:
        if args.delete:
            await services.api_keys.delete_api_key(args.key_id, args.account)
            print(f"Deleted API key {args.key_id}")
        else:
            await services.api_keys.deactivate_api_key(args.key_id, args.account)
            print(f"Deactivated API key {args.key_id}")
    finally:
        await services.aclose()
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_deactivate(args))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"deactivate_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import asyncio
import mimetypes
from pathlib import Path
import sys

from docuground.core.config import get_settings
from docuground.core.container import build_services
from docuground.core.errors import InvalidApiKeyError, UsageLimitExceededError
from docuground.core.logging import configure_logging
from docuground.ingestion.extraction import DOCX_MIME_TYPE


# Platform MIME tables disagree on these two.
_MIME_OVERRIDES = {".md": "text/markdown", ".docx": DOCX_MIME_TYPE}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Upload a local file through the ingestion pipeline")
    parser.add_argument("path", type=Path, help="PDF, DOCX, TXT or MD file")
    parser.add_argument("--api-key", required=True, help="Customer API key")
    parser.add_argument("--project", default=None, help="Project id (defaults to the account scope)")
    return parser


def _guess_mime_type(path: Path) -> str:
    override = _MIME_OVERRIDES.get(path.suffix.lower())
    if override:
        return override
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


async def _ingest(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    data = args.path.read_bytes()
    services = build_services(settings)
    try:
        verification = await services.api_keys.verify_api_key(args.api_key)
        if not verification.valid or verification.account_id is None:
            raise InvalidApiKeyError("Invalid or expired API key")
        usage = await services.usage.check_usage_limit(verification.account_id)
        if not usage.allowed:
            raise UsageLimitExceededError(usage.current, usage.limit)
        result = await services.ingestion.process_upload(
            data,
            args.path.name,
            _guess_mime_type(args.path),
            args.project,
            verification.account_id,
        )
    finally:
        await services.aclose()

    print("Document uploaded and processed successfully")
    print(f"  document_id: {result.document_id}")
    print(f"  chunks: {len(result.chunks)}")
    if result.duplicate_of:
        print(f"  same content as: {', '.join(result.duplicate_of)}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_ingest(args))
    except Exception as exc:  # noqa: BLE001 - surface ingestion failures clearly
        print(f"ingest_file failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import argparse
import asyncio
import sys

from docuground.core.config import get_settings
from docuground.core.container import build_services
from docuground.core.logging import configure_logging


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a similarity search against a project")
    parser.add_argument("query", help="Free-text query")
    parser.add_argument("--project", required=True, help="Project id (or account id for the default scope)")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--threshold", type=float, default=None)
    return parser


async def _search(args: argparse.Namespace) -> int:
    settings = get_settings()
    configure_logging(settings)
    services = build_services(settings)
    try:
        chunks = await services.retrieval.search_similar_chunks(
            args.query,
            args.project,
            limit=args.limit or settings.retrieval_default_limit,
            threshold=(
                args.threshold if args.threshold is not None else settings.retrieval_default_threshold
            ),
        )
    finally:
        await services.aclose()

    if not chunks:
        print("No matching chunks.")
    for chunk in chunks:
        print(f"[{chunk.similarity:.3f}] {chunk.document_id}#{chunk.chunk_index}: {chunk.content[:120]}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_search(args))
    except Exception as exc:  # noqa: BLE001 - surface search failures clearly
        print(f"search failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

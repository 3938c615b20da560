"""Command line entry point: ``rulebooks-upload``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

import httpx

from rulebooks.errors import RulebookError
from rulebooks.logging_config import configure_logging
from rulebooks.orchestrator.client import RulebookApiClient
from rulebooks.orchestrator.state import UploadState
from rulebooks.orchestrator.workflow import IngestionOrchestrator, UploadForm

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Upload a board game rulebook PDF and ingest it.")
    parser.add_argument("--title", required=True, help="Game title")
    parser.add_argument("--pdf", required=True, type=Path, help="Path to the rulebook PDF")
    parser.add_argument("--thumbnail", required=True, type=Path, help="Path to the cover image")
    parser.add_argument("--year", type=int, default=None, help="Publication year")
    parser.add_argument("--base-url", default="http://localhost:8000", help="Rulebook API base URL")
    return parser


def _print_state(state: UploadState) -> None:
    if state.total:
        print(f"[{state.step.value}] {state.current}/{state.total}")
    else:
        print(f"[{state.step.value}] {state.message or ''}".rstrip())


async def _upload(args: argparse.Namespace, api: RulebookApiClient | None = None) -> int:
    try:
        form = UploadForm(
            title=args.title,
            pdf=args.pdf.read_bytes(),
            pdf_filename=args.pdf.name,
            thumbnail=args.thumbnail.read_bytes(),
            thumbnail_filename=args.thumbnail.name,
            year=args.year,
        )
    except OSError as exc:
        print(f"error: cannot read input file: {exc}", file=sys.stderr)
        return 1

    async with api or RulebookApiClient(args.base_url) as client:
        orchestrator = IngestionOrchestrator(client, on_state=_print_state)
        try:
            result = await orchestrator.run(form)
        except RulebookError as exc:
            print(f"error: {exc.message}", file=sys.stderr)
            return 1
        except (httpx.HTTPError, OSError) as exc:
            print(f"error: could not reach {args.base_url}: {exc}", file=sys.stderr)
            return 1
    print(f"Rulebook {result.rulebook_id} is ready at {args.base_url.rstrip('/')}{result.page_url}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    return asyncio.run(_upload(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

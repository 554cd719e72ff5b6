#!/usr/bin/env python3
"""Settle matches whose score confirmation window has run out.

Meant to run from cron every few minutes::

    DATABASE_URL=postgresql://... python scripts/process_confirmations.py
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Sequence

from padelmatch import db
from padelmatch.services.lifecycle import ProcessingResult, process_pending_confirmations
from padelmatch.time_utils import require_utc

logger = logging.getLogger("process_confirmations")


def _parse_now(raw: Optional[str]) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO timestamp: {raw!r}") from exc
    try:
        return require_utc(parsed, field_name="--now")
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--now",
        type=_parse_now,
        default=None,
        help="Process as of this ISO-8601 timestamp (with offset) instead of the current time.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every match.")
    return parser


async def run(now: datetime) -> ProcessingResult:
    db.get_engine()
    assert db.AsyncSessionLocal is not None
    try:
        async with db.AsyncSessionLocal() as session:
            return await process_pending_confirmations(session, now)
    finally:
        await db.dispose_engine()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    now = args.now or datetime.now(timezone.utc)
    result = asyncio.run(run(now))
    print(
        f"processed={result.processed} "
        f"expired_applied={result.expired_applied} "
        f"confirmed_applied={result.confirmed_applied} "
        f"errors={len(result.errors)}"
    )
    for error in result.errors:
        logger.error("%s", error)
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import (
    MIGRATION_MARKER_KEY,
    clear_bootstrap_marker,
    has_bootstrap_marker,
    run_bootstrap_migrations,
    set_bootstrap_marker,
)
from database import SessionLocal
from ranking_engine import recompute_rankings

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap the event database schema.")
    parser.add_argument("--force", action="store_true", help="Rerun even when the bootstrap marker is present.")
    parser.add_argument(
        "--clear-marker",
        action="store_true",
        help=f"Delete `{MIGRATION_MARKER_KEY}` first, then migrate.",
    )
    parser.add_argument("--clear-only", action="store_true", help="Delete the marker and stop.")
    parser.add_argument(
        "--recompute-rankings",
        action="store_true",
        help="Rebuild the stall leaderboard once the schema is in place.",
    )
    return parser.parse_args(argv)


def _recompute() -> None:
    with SessionLocal() as db:
        result = recompute_rankings(db)
    logger.info("Leaderboard rebuilt: %s stalls ranked (changed=%s).", result.total_stalls, result.changed)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.clear_marker or args.clear_only:
        if clear_bootstrap_marker():
            logger.info("Cleared marker `%s`.", MIGRATION_MARKER_KEY)
        else:
            logger.info("Marker `%s` not present.", MIGRATION_MARKER_KEY)
        if args.clear_only:
            return 0

    if has_bootstrap_marker() and not args.force:
        logger.info("Marker `%s` present; schema already bootstrapped. Use --force to rerun.", MIGRATION_MARKER_KEY)
    else:
        run_bootstrap_migrations()
        set_bootstrap_marker()
        logger.info("Bootstrap finished; marker `%s` written.", MIGRATION_MARKER_KEY)

    if args.recompute_rankings:
        _recompute()
    return 0


if __name__ == "__main__":
    sys.exit(main())

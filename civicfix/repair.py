"""
civicfix.repair — Entry point for ``python -m civicfix.repair``
================================================================

Batch badge repair: reconciles every citizen's held badges against their
current points and prints the JSON report.

Wiring:
1. Load .env (secrets).
2. Create the SQLAlchemy engine and ensure tables and defaults exist.
3. Reconcile all citizens (optionally as a dry run).

Run with::

    python -m civicfix.repair --dry-run
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from civicfix.database.engine import create_db_engine, init_db
from civicfix.services.badge_service import reconcile_all_badges

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("civicfix")


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="civicfix-fix-badges",
        description="Reconcile every citizen's badges against their points.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing anything.",
    )
    parser.add_argument(
        "--notify",
        action="store_true",
        help="Send a notification for every badge granted by the repair.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1
    init_db(engine)

    # 3. Repair.
    report = reconcile_all_badges(engine, dry_run=args.dry_run, notify=args.notify)
    print(json.dumps(report, indent=2, default=str))
    return 0 if report["success"] else 2


if __name__ == "__main__":
    sys.exit(main())

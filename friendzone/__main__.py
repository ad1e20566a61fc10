"""
friendzone.__main__ — Maintenance entry point for ``python -m friendzone``
===========================================================================

Commands::

    python -m friendzone init-db      # create tables + seed badges
    python -m friendzone reconcile    # repair like/comment counters and levels

Meant to be scheduled (cron, systemd timer) next to the API process.
"""

from __future__ import annotations

import argparse
import logging
import sys

from dotenv import load_dotenv

from friendzone.config import load_config
from friendzone.database.engine import create_db_engine, init_db
from friendzone.services.reconciliation_service import (
    reconcile_levels,
    reconcile_post_counters,
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("friendzone")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="friendzone")
    parser.add_argument("command", choices=("init-db", "reconcile"))
    parser.add_argument("--config", default="config.yaml")
    args = parser.parse_args(argv)

    load_dotenv()
    engine = create_db_engine()

    if args.command == "init-db":
        init_db(engine)
        return 0

    cfg = load_config(args.config)
    posts = reconcile_post_counters(engine)
    levels = reconcile_levels(engine, cfg)
    logger.info(
        "Reconciliation done — %d counters and %d levels corrected",
        posts["corrected"], levels["corrected"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

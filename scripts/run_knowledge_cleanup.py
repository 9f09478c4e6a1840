#!/usr/bin/env python3
"""
Periodic cleanup of stale knowledge.

Removes entities and relationships that are both old and low-confidence for
every user in the knowledge store. Runs once with --once, otherwise sweeps on
an interval until interrupted.
"""

import argparse
import json
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

load_dotenv()

from engine_logging import configure_engine_loggers, get_component_logger
from knowledge.cleanup import CleanupScheduler
from knowledge.config import KnowledgeConfig
from knowledge.store import KnowledgeStore, KnowledgeStoreError


def main() -> int:
    parser = argparse.ArgumentParser(description="Sweep stale knowledge from the knowledge store")
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=3600,
        help="Seconds between sweeps (default: 3600)",
    )
    parser.add_argument("--db-path", type=Path, default=None, help="Override KNOWLEDGE_DB_PATH")
    parser.add_argument("--log-level", default=None, help="Logging level (default: from env)")
    args = parser.parse_args()

    config = KnowledgeConfig.from_env()
    errors = config.validate()
    if errors:
        print("Invalid configuration: " + "; ".join(errors), file=sys.stderr)
        return 2

    configure_engine_loggers(log_level=args.log_level or config.log_level)
    logger = get_component_logger("knowledge")

    db_path = args.db_path or config.resolved_db_path()
    try:
        store = KnowledgeStore(db_path)
    except KnowledgeStoreError as exc:
        logger.error(f"Cannot open knowledge store: {exc}")
        return 1
    logger.info(f"Knowledge store opened at {db_path}")

    scheduler = CleanupScheduler(store, config=config, interval_seconds=args.interval)

    if args.once:
        report = scheduler.run_once()
        store.close()
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if not report.failures else 1

    logger.info("Starting knowledge cleanup scheduler. Press Ctrl+C to stop.")
    scheduler.start()
    try:
        while scheduler.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Stopping knowledge cleanup scheduler...")
        scheduler.stop()
        scheduler.join(timeout=30)
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

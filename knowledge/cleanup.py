"""Maintenance sweep that removes stale, low-value knowledge."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

from .backends import KnowledgeBackend
from .config import KnowledgeConfig
from .store import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of one cleanup sweep across users."""

    users_processed: int = 0
    entities_removed: int = 0
    relationships_removed: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    interrupted: bool = False

    def to_dict(self) -> dict:
        return {
            "users_processed": self.users_processed,
            "entities_removed": self.entities_removed,
            "relationships_removed": self.relationships_removed,
            "failures": dict(self.failures),
            "interrupted": self.interrupted,
        }


def sweep(
    target: Union[KnowledgeBackend, KnowledgeStore],
    user_ids: Optional[Iterable[str]] = None,
    *,
    max_age_days: int = 30,
    min_confidence_floor: float = 0.3,
    min_strength_floor: float = 0.4,
    now: Optional[datetime] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> SweepReport:
    """Run cleanup for every user (or the given ones).

    A failure for one user is recorded in the report and the sweep moves on.
    ``should_stop`` is checked between users; a partially processed user is
    never left half-swept because each user's cleanup is one transaction.
    """
    now = now or datetime.now(timezone.utc)
    report = SweepReport()

    if user_ids is None:
        user_ids = target.list_user_ids()

    for user_id in user_ids:
        if should_stop is not None and should_stop():
            report.interrupted = True
            logger.info(f"Cleanup sweep interrupted after {report.users_processed} users")
            break
        try:
            result = target.cleanup(
                user_id,
                max_age_days=max_age_days,
                min_confidence_floor=min_confidence_floor,
                min_strength_floor=min_strength_floor,
                now=now,
            )
        except Exception as exc:
            logger.warning(f"Cleanup failed for user {user_id}: {exc}")
            report.failures[user_id] = str(exc)
            continue

        report.users_processed += 1
        if result is not None:
            report.entities_removed += result.entities_removed
            report.relationships_removed += result.relationships_removed

    logger.info(
        f"Cleanup sweep finished: {report.users_processed} users, "
        f"{report.entities_removed} entities, {report.relationships_removed} relationships removed, "
        f"{len(report.failures)} failures"
    )
    return report


class CleanupScheduler(threading.Thread):
    """Background thread that sweeps all users on a fixed interval."""

    def __init__(
        self,
        target: Union[KnowledgeBackend, KnowledgeStore],
        config: Optional[KnowledgeConfig] = None,
        interval_seconds: float = 3600,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(daemon=True)
        self.target = target
        self.config = config or KnowledgeConfig()
        self.interval_seconds = interval_seconds
        self.now_fn = now_fn or (lambda: datetime.now(timezone.utc))
        self.last_report: Optional[SweepReport] = None
        self._stop_event = threading.Event()

    def run(self) -> None:
        logger.info("Knowledge cleanup scheduler started")
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as exc:
                logger.error(f"Knowledge cleanup scheduler error: {exc}", exc_info=True)
            self._stop_event.wait(self.interval_seconds)
        logger.info("Knowledge cleanup scheduler stopped")

    def run_once(self) -> SweepReport:
        self.last_report = sweep(
            self.target,
            max_age_days=self.config.cleanup_max_age_days,
            min_confidence_floor=self.config.cleanup_min_confidence,
            min_strength_floor=self.config.cleanup_min_strength,
            now=self.now_fn(),
            should_stop=self._stop_event.is_set,
        )
        return self.last_report

    def stop(self) -> None:
        self._stop_event.set()

"""Periodic status sweep and data retention.

The sweep re-runs the engine for every Active animal using its current
stats, so threshold crossings that happened without an inbound update are
still noticed. Retention cleanup keeps notification and stat history
tables bounded.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from src.animal_status.engine import StatusEngine
from src.animal_status.store import StatusStore
from src.logging_config import LogContext, PerformanceTimer

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_RETENTION_DAYS = 30
DEFAULT_STAT_HISTORY_RETENTION_DAYS = 7


@dataclass
class SweepResult:
    """Totals from one system-wide sweep."""

    owners_checked: int = 0
    entities_checked: int = 0
    notifications_created: int = 0
    failures: int = 0
    failed_owner_ids: list[int] = field(default_factory=list)
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "owners_checked": self.owners_checked,
            "entities_checked": self.entities_checked,
            "notifications_created": self.notifications_created,
            "failures": self.failures,
            "failed_owner_ids": list(self.failed_owner_ids),
            "duration_ms": round(self.duration_ms, 2),
        }


class StatusSweeper:
    """Drives the engine over every owner with Active animals.

    Args:
        engine: Engine used to evaluate each animal.
        store: Store that lists owners and their Active animals.
        max_workers: Owners processed in parallel.
    """

    def __init__(
        self,
        engine: StatusEngine,
        store: Optional[StatusStore] = None,
        max_workers: int = 4,
    ) -> None:
        self.engine = engine
        self.store = store or engine.store
        self.max_workers = max(1, max_workers)

    def sweep_owner(self, owner_id: int) -> int:
        """Re-evaluate every Active animal of one owner.

        Returns:
            Number of notifications created.
        """
        created, _ = self._sweep_owner(owner_id)
        return created

    def _sweep_owner(self, owner_id: int) -> tuple[int, int]:
        with LogContext(owner_id=owner_id):
            entities = self.store.list_active_entities(owner_id)
            created = 0
            for entity_id, stats in entities:
                created += self.engine.on_stats_updated(entity_id, stats)
            if created:
                logger.info(
                    "Sweep created %d notifications for user %s (%d animals)",
                    created, owner_id, len(entities),
                )
            return created, len(entities)

    def sweep_all(self) -> SweepResult:
        """Check every owner with at least one Active animal.

        A failure for one owner is logged and counted; the rest of the
        sweep continues.
        """
        result = SweepResult()
        with PerformanceTimer("status_sweep") as timer:
            owner_ids = self.store.list_active_owner_ids()
            result.owners_checked = len(owner_ids)
            logger.info("Starting status sweep for %d users", len(owner_ids))

            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = {
                    pool.submit(self._sweep_owner, owner_id): owner_id
                    for owner_id in owner_ids
                }
                for future in futures:
                    owner_id = futures[future]
                    try:
                        created, checked = future.result()
                    except Exception:
                        logger.error(
                            "Status sweep failed for user %s", owner_id, exc_info=True,
                        )
                        result.failures += 1
                        result.failed_owner_ids.append(owner_id)
                        continue
                    result.notifications_created += created
                    result.entities_checked += checked

        result.duration_ms = timer.duration_ms
        logger.info(
            "Status sweep complete: %d users, %d animals, %d notifications, %d failures",
            result.owners_checked, result.entities_checked,
            result.notifications_created, result.failures,
        )
        return result

    def cleanup_notifications(
        self,
        retention_days: int = DEFAULT_NOTIFICATION_RETENTION_DAYS,
    ) -> int:
        """Delete notifications older than the retention period."""
        cutoff = self.store.now() - timedelta(days=retention_days)
        removed = self.store.purge_notifications_before(cutoff)
        logger.info("Cleaned up %d notifications older than %d days", removed, retention_days)
        return removed

    def cleanup_stat_history(
        self,
        retention_days: int = DEFAULT_STAT_HISTORY_RETENTION_DAYS,
    ) -> int:
        """Delete stat snapshots older than the retention period."""
        cutoff = self.store.now() - timedelta(days=retention_days)
        removed = self.store.purge_snapshots_before(cutoff)
        logger.info("Cleaned up %d stat snapshots older than %d days", removed, retention_days)
        return removed

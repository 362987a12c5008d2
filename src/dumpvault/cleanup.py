"""Apply the retention plan to the remote backup folder."""

from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from dumpvault.exceptions import ConfigurationError, StorageError
from dumpvault.retention import RetentionPlan, RetentionPlanner
from dumpvault.s3_client import S3Store
from utils.logging import get_logger


class CleanupRunner:
    """Deletes outdated backups; each deletion succeeds or fails on its own."""

    def __init__(
        self,
        name_pattern: str,
        store: S3Store,
        progress: Optional[Callable[[str], None]] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        if not name_pattern:
            raise ConfigurationError("Config backup.name_pattern is empty.")
        self.store = store
        self.logger = logger or get_logger("cleanup")
        self.planner = RetentionPlanner(name_pattern, logger=self.logger)
        self.progress = progress or (lambda message: None)

    def run(self, reference_time: datetime, dry_run: bool = False) -> dict[str, Any]:
        """List, plan and delete.

        Args:
            reference_time: "Now" for the retention tiers
            dry_run: Report what would be deleted without deleting

        Returns:
            Statistics: matched, kept, planned, deleted, failed, dry_run

        Raises:
            StorageError: If the listing fails (nothing is deleted then)
        """
        artifacts = self.store.list_artifacts()
        plan = self.planner.plan(artifacts, reference_time)
        stats: dict[str, Any] = {
            "matched": plan.matched,
            "kept": len(plan.keep),
            "planned": len(plan.delete),
            "deleted": 0,
            "failed": 0,
            "failures": [],
            "dry_run": dry_run,
        }

        if plan.matched == 0:
            self.progress("No backups found.")
            return stats
        if not plan.delete:
            self.progress("No outdated backups to delete.")
            return stats

        if dry_run:
            for artifact in plan.delete:
                self.progress(f"Would delete backup: {artifact.name}")
            return stats

        self._delete(plan, stats)
        self.logger.info(
            "Cleanup completed",
            kept=stats["kept"],
            deleted=stats["deleted"],
            failed=stats["failed"],
        )
        return stats

    def _delete(self, plan: RetentionPlan, stats: dict[str, Any]) -> None:
        for artifact in plan.delete:
            try:
                self.store.delete(artifact.id)
            except StorageError as e:
                stats["failed"] += 1
                stats["failures"].append({"name": artifact.name, "error": e.message})
                self.logger.error("Failed to delete backup", name=artifact.name, error=str(e))
                self.progress(f"Failed to delete {artifact.name}: {e.message}")
                continue
            stats["deleted"] += 1
            self.progress(f"Deleted backup: {artifact.name}")

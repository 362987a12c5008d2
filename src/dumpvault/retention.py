"""Tiered retention for remote backups.

Backups are thinned in four passes of increasing granularity (day, week,
month, year). Each pass groups the survivors of the previous pass into
buckets and keeps only the newest backup of every bucket, except for the
buckets that are still "fresh" relative to the reference time (the current
and the previous week, month and year), which are kept whole.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Callable, Optional

import structlog

from dumpvault.artifacts import RemoteArtifact
from dumpvault.config import TIMESTAMP_PLACEHOLDER
from utils.logging import get_logger


class Tier(StrEnum):
    """Retention tiers, in the order they are applied."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class Action(StrEnum):
    """What happens to an artifact."""

    KEEP = "keep"
    DELETE = "delete"


@dataclass(frozen=True)
class RetentionDecision:
    """Outcome for one artifact and the bucket that decided it."""

    artifact: RemoteArtifact
    action: Action
    tier: Tier
    bucket: str


@dataclass
class RetentionPlan:
    """Keep/delete partition of the artifacts matching the name pattern."""

    keep: list[RemoteArtifact] = field(default_factory=list)
    delete: list[RemoteArtifact] = field(default_factory=list)
    decisions: list[RetentionDecision] = field(default_factory=list)

    @property
    def matched(self) -> int:
        """Number of artifacts that took part in planning."""
        return len(self.keep) + len(self.delete)


def build_name_regex(pattern: str) -> re.Pattern[str]:
    """Regex matching the remote names produced from a name template.

    ``{timestamp}`` matches anything; a trailing ``.gz`` is tolerated unless the
    template already ends with it, because compressed backups get the suffix
    appended at upload time.
    """
    regex = re.escape(pattern).replace(re.escape(TIMESTAMP_PLACEHOLDER), ".*")
    if not pattern.endswith(".gz"):
        regex += r"(?:\.gz)?"
    return re.compile(f"^{regex}$")


def day_key(moment: datetime) -> str:
    return f"{moment:%Y-%m-%d}"


def week_key(moment: datetime) -> str:
    iso = moment.isocalendar()
    return f"{iso.year}-W{iso.week:02d}"


def month_key(moment: datetime) -> str:
    return f"{moment:%Y-%m}"


def year_key(moment: datetime) -> str:
    return f"{moment.year:04d}"


def _previous_month(moment: datetime) -> str:
    if moment.month == 1:
        return f"{moment.year - 1:04d}-12"
    return f"{moment.year:04d}-{moment.month - 1:02d}"


class RetentionPlanner:
    """Splits backups into the ones to keep and the ones to delete."""

    def __init__(
        self,
        name_pattern: str,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize retention planner.

        Args:
            name_pattern: Backup name template containing ``{timestamp}``
            logger: Optional logger instance
        """
        self.name_pattern = name_pattern
        self.name_regex = build_name_regex(name_pattern)
        self.logger = logger or get_logger("retention")

    def select(self, artifacts: Iterable[RemoteArtifact]) -> list[RemoteArtifact]:
        """Artifacts produced by this name pattern, oldest first."""
        matching = [a for a in artifacts if self.name_regex.match(a.name)]
        return sorted(matching, key=lambda a: a.modified_at)

    def plan(
        self,
        artifacts: Iterable[RemoteArtifact],
        reference_time: datetime,
    ) -> RetentionPlan:
        """Classify artifacts as keep or delete.

        Args:
            artifacts: Remote listing (any order); non-matching names are ignored
            reference_time: "Now" for deciding which buckets are still fresh

        Returns:
            Retention plan; the same inputs always give the same plan
        """
        survivors = self.select(artifacts)
        plan = RetentionPlan()
        if not survivors:
            return plan

        previous_week = reference_time - timedelta(days=7)
        tiers: list[tuple[Tier, Callable[[datetime], str], frozenset[str]]] = [
            (Tier.DAY, day_key, frozenset()),
            (
                Tier.WEEK,
                week_key,
                frozenset({week_key(reference_time), week_key(previous_week)}),
            ),
            (
                Tier.MONTH,
                month_key,
                frozenset({month_key(reference_time), _previous_month(reference_time)}),
            ),
            (
                Tier.YEAR,
                year_key,
                frozenset({year_key(reference_time), f"{reference_time.year - 1:04d}"}),
            ),
        ]

        for tier, key_fn, exempt in tiers:
            survivors = self._thin(survivors, tier, key_fn, exempt, reference_time, plan)

        plan.keep = survivors
        for artifact in survivors:
            plan.decisions.append(
                RetentionDecision(
                    artifact=artifact,
                    action=Action.KEEP,
                    tier=Tier.YEAR,
                    bucket=year_key(self._local(artifact.modified_at, reference_time)),
                )
            )

        self.logger.debug(
            "Retention plan computed",
            pattern=self.name_pattern,
            reference_time=reference_time.isoformat(),
            matched=plan.matched,
            keep=len(plan.keep),
            delete=len(plan.delete),
        )
        return plan

    def _thin(
        self,
        survivors: list[RemoteArtifact],
        tier: Tier,
        key_fn: Callable[[datetime], str],
        exempt: frozenset[str],
        reference_time: datetime,
        plan: RetentionPlan,
    ) -> list[RemoteArtifact]:
        """Keep the newest artifact per bucket; exempt buckets are kept whole.

        ``survivors`` is sorted oldest first, so the newest of a bucket is its
        last member. Survivors are returned in their original order.
        """
        buckets: dict[str, list[int]] = {}
        for index, artifact in enumerate(survivors):
            key = key_fn(self._local(artifact.modified_at, reference_time))
            buckets.setdefault(key, []).append(index)

        dropped: set[int] = set()
        for key, members in buckets.items():
            if key in exempt:
                continue
            for index in members[:-1]:
                dropped.add(index)
                plan.delete.append(survivors[index])
                plan.decisions.append(
                    RetentionDecision(
                        artifact=survivors[index],
                        action=Action.DELETE,
                        tier=tier,
                        bucket=key,
                    )
                )

        return [a for i, a in enumerate(survivors) if i not in dropped]

    @staticmethod
    def _local(moment: datetime, reference_time: datetime) -> datetime:
        # Bucket boundaries follow the reference clock's timezone
        if moment.tzinfo is not None and reference_time.tzinfo is not None:
            return moment.astimezone(reference_time.tzinfo)
        return moment

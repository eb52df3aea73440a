from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from velocity.client import MetricsSource
from velocity.config import MetricsOptions
from velocity.exceptions import MetricUnavailableError, VelocityException
from velocity.logger import get_logger
from velocity.models import Commit, DeploymentRef, DeploymentSource


logger = get_logger("metrics.lead_time")

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400
FIRST_RELEASE_COMMIT_LIMIT = 100


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_HOUR


def round2(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 2)


@dataclass(frozen=True)
class CommitLeadTime:
    sha: str
    hours: float
    is_merge: bool = False


@dataclass(frozen=True)
class LeadTimeStats:
    commit_count: int = 0
    avg_hours: float | None = None
    oldest_hours: float | None = None
    newest_hours: float | None = None
    oldest_commit_sha: str | None = None
    newest_commit_sha: str | None = None


@dataclass(frozen=True)
class DeliveryMetrics:
    source: DeploymentSource | None = None
    latest: DeploymentRef | None = None
    previous: DeploymentRef | None = None
    deployment_frequency_days: float | None = None
    lead_time_for_change: LeadTimeStats = field(default_factory=LeadTimeStats)
    error: str | None = None


def select_deployments(
    releases: Sequence[DeploymentRef],
    tags: Sequence[DeploymentRef],
    max_releases: int,
    max_tags: int,
) -> tuple[DeploymentSource | None, list[DeploymentRef]]:
    """Prefer non-draft releases; tags only stand in when there are none."""
    usable = [release for release in releases if not release.draft]
    source: DeploymentSource | None = DeploymentSource.RELEASE
    max_count = max_releases
    if not usable:
        usable = list(tags)
        source = DeploymentSource.TAG if usable else None
        max_count = max_tags

    ordered = sorted(usable, key=lambda ref: ref.created_at, reverse=True)
    return source, ordered[:max_count]


def deployment_frequency_days(deployments: Sequence[DeploymentRef]) -> float | None:
    if len(deployments) < 2:
        return None
    latest, previous = deployments[0], deployments[1]
    elapsed = (latest.created_at - previous.created_at).total_seconds()
    return round(elapsed / SECONDS_PER_DAY, 2)


def commit_lead_times(
    released_at: datetime, commits: Sequence[Commit]
) -> list[CommitLeadTime]:
    lead_times: list[CommitLeadTime] = []
    for commit in commits:
        authored_at = commit.authored_at
        if authored_at is None:
            logger.debug(f"Skipping commit {commit.sha[:7]} without a timestamp")
            continue
        hours = hours_between(authored_at, released_at)
        if hours < 0:
            logger.debug(
                f"Discarding negative lead time for {commit.sha[:7]} ({hours:.2f}h)"
            )
            continue
        lead_times.append(
            CommitLeadTime(sha=commit.sha, hours=hours, is_merge=commit.is_merge)
        )
    return lead_times


def summarize_lead_times(
    lead_times: Sequence[CommitLeadTime], include_merge_commits: bool
) -> LeadTimeStats:
    """
    Average and oldest use every lead time. Newest skips merge commits unless
    ``include_merge_commits`` is set, since a merge landing just before the
    release would otherwise always be the newest change.
    """
    if not lead_times:
        return LeadTimeStats()

    oldest = max(lead_times, key=lambda lt: lt.hours)
    newest_candidates = [
        lt for lt in lead_times if include_merge_commits or not lt.is_merge
    ]
    newest = (
        min(newest_candidates, key=lambda lt: lt.hours) if newest_candidates else None
    )
    average = sum(lt.hours for lt in lead_times) / len(lead_times)

    return LeadTimeStats(
        commit_count=len(lead_times),
        avg_hours=round2(average),
        oldest_hours=round2(oldest.hours),
        newest_hours=round2(newest.hours) if newest else None,
        oldest_commit_sha=oldest.sha,
        newest_commit_sha=newest.sha if newest else None,
    )


class LeadTimeCalculator:
    def __init__(self, source: MetricsSource, options: MetricsOptions) -> None:
        self.source = source
        self.options = options

    def calculate(
        self, deployment_frequency: bool = True, lead_time: bool = True
    ) -> DeliveryMetrics:
        try:
            source, deployments = self._load_deployments()
        except VelocityException as e:
            logger.warning(f"Failed to load releases or tags: {e}")
            return DeliveryMetrics(error=str(e))

        if not deployments:
            return DeliveryMetrics(error="No releases or tags found")

        latest = deployments[0]
        previous = deployments[1] if len(deployments) > 1 else None
        logger.info(f"Latest {source}: {latest.name} ({latest.created_at.isoformat()})")

        frequency = (
            deployment_frequency_days(deployments) if deployment_frequency else None
        )

        stats = LeadTimeStats()
        error = None
        if lead_time:
            try:
                stats = self._lead_time(latest, previous)
            except VelocityException as e:
                logger.warning(f"Lead time unavailable: {e}")
                error = str(e)

        return DeliveryMetrics(
            source=source,
            latest=latest,
            previous=previous,
            deployment_frequency_days=frequency,
            lead_time_for_change=stats,
            error=error,
        )

    def _load_deployments(
        self,
    ) -> tuple[DeploymentSource | None, list[DeploymentRef]]:
        releases = self.source.list_releases(self.options.max_releases)
        tags: list[DeploymentRef] = []
        if not any(not release.draft for release in releases):
            logger.info("No usable releases found, falling back to tags")
            tags = self._resolved_tags()
        return select_deployments(
            releases, tags, self.options.max_releases, self.options.max_tags
        )

    def _resolved_tags(self) -> list[DeploymentRef]:
        resolved: list[DeploymentRef] = []
        for tag in self.source.list_tags(self.options.max_tags):
            try:
                data = self.source.resolve_tag(tag.name)
            except VelocityException as e:
                logger.warning(f"Failed to resolve tag {tag.name}: {e}")
                continue
            if data.created_at is None:
                logger.debug(f"Tag {tag.name} has no timestamp, skipping")
                continue
            resolved.append(
                DeploymentRef(
                    name=tag.name,
                    created_at=data.created_at,
                    sha=data.sha,
                    source=DeploymentSource.TAG,
                )
            )
        return resolved

    def _resolve_sha(self, ref: DeploymentRef) -> str:
        if ref.sha:
            return ref.sha
        return self.source.resolve_tag(ref.name).sha

    def _lead_time(
        self, latest: DeploymentRef, previous: DeploymentRef | None
    ) -> LeadTimeStats:
        latest_sha = self._resolve_sha(latest)
        if previous is None:
            logger.info(f"First release detected: {latest.name}, using its history")
            commits = self.source.list_commits(latest_sha, FIRST_RELEASE_COMMIT_LIMIT)
        else:
            previous_sha = self._resolve_sha(previous)
            comparison = self.source.compare(previous_sha, latest_sha)
            if comparison.truncated:
                logger.warning(
                    f"Comparison {previous.name}...{latest.name} returned "
                    f"{len(comparison.commits)} of {comparison.total_commits} commits"
                )
            commits = comparison.commits

        if not commits:
            raise MetricUnavailableError(
                "lead time", f"no commits between releases ending at {latest.name}"
            )

        lead_times = commit_lead_times(latest.created_at, commits)
        return summarize_lead_times(lead_times, self.options.include_merge_commits)


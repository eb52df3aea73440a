"""
Team-level delivery metrics over a rolling window.

Per pull request the collector derives pickup, approve and merge durations
from the timeline and reviews; across the window it aggregates them, rates
each aggregate and adds release cycle time and deploy frequency.
"""

from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from velocity.client import MetricsSource
from velocity.config import MetricsOptions, TimePeriod
from velocity.exceptions import VelocityException
from velocity.logger import get_logger
from velocity.metrics.lead_time import (
    FIRST_RELEASE_COMMIT_LIMIT,
    hours_between,
    round2,
)
from velocity.metrics.ratings import Rating, RatingBands
from velocity.metrics.size import UNKNOWN_SIZE, size_from_labels
from velocity.models import (
    REVIEW_ACTIVITY_KINDS,
    Commit,
    DeploymentRef,
    PullRequest,
    Review,
    ReviewState,
    TimelineEvent,
    TimelineEventKind,
)


logger = get_logger("metrics.team")

NO_PULL_REQUESTS = "No pull requests found in the specified time period"
RELEASE_HISTORY_LIMIT = 100
MAX_RELEASE_HISTORY = 1000


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime


def date_range(now: datetime, days: int) -> DateRange:
    return DateRange(start=now - timedelta(days=days), end=now)


def ready_for_review_time(
    pr: PullRequest, timeline: Sequence[TimelineEvent]
) -> datetime:
    """First ``ready_for_review`` event, or the creation time when there is none."""
    for event in timeline:
        if event.kind == TimelineEventKind.READY_FOR_REVIEW and event.created_at:
            return event.created_at
    return pr.created_at


def human_review_activity(
    timeline: Sequence[TimelineEvent], reviews: Sequence[Review]
) -> list[datetime]:
    """Timestamps of review activity by humans, oldest first."""
    times = [
        event.created_at
        for event in timeline
        if event.kind in REVIEW_ACTIVITY_KINDS
        and not event.actor_is_bot
        and event.created_at is not None
    ]
    times.extend(
        review.submitted_at
        for review in reviews
        if not review.actor_is_bot and review.submitted_at is not None
    )
    return sorted(times)


def first_approval(reviews: Sequence[Review]) -> Review | None:
    approvals = [
        review
        for review in reviews
        if review.state == ReviewState.APPROVED and review.submitted_at is not None
    ]
    if not approvals:
        return None
    return min(approvals, key=lambda review: review.submitted_at)


def _non_negative_hours(start: datetime, end: datetime) -> float | None:
    hours = hours_between(start, end)
    if hours < 0:
        return None
    return round2(hours)


def pickup_time(
    ready_at: datetime,
    timeline: Sequence[TimelineEvent],
    reviews: Sequence[Review],
) -> float | None:
    activity = human_review_activity(timeline, reviews)
    if not activity:
        return None
    return _non_negative_hours(ready_at, activity[0])


def approve_time(
    ready_at: datetime,
    timeline: Sequence[TimelineEvent],
    reviews: Sequence[Review],
) -> float | None:
    approval = first_approval(reviews)
    if approval is None:
        return None
    approved_at = approval.submitted_at
    earlier = [
        moment
        for moment in human_review_activity(timeline, reviews)
        if moment < approved_at
    ]
    start = earlier[-1] if earlier else ready_at
    return _non_negative_hours(start, approved_at)


def merge_time(merged_at: datetime | None, reviews: Sequence[Review]) -> float | None:
    if merged_at is None:
        return None
    approval = first_approval(reviews)
    if approval is None:
        return None
    return _non_negative_hours(approval.submitted_at, merged_at)


def _percent(count: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(count * 100 / total + 0.5)


@dataclass(frozen=True)
class PRCycleMetrics:
    pr_number: int
    author: str
    state: str
    merged: bool
    created_at: datetime
    merged_at: datetime | None = None
    pickup_time_hours: float | None = None
    approve_time_hours: float | None = None
    merge_time_hours: float | None = None
    pr_size: str | None = None


@dataclass(frozen=True)
class DurationStat:
    average_hours: float | None = None
    rating: Rating = Rating.UNKNOWN
    sample_size: int = 0

    @classmethod
    def from_samples(
        cls, samples: Iterable[float | None], bands: RatingBands
    ) -> "DurationStat":
        values = [value for value in samples if value is not None]
        if not values:
            return cls()
        average = round2(sum(values) / len(values))
        return cls(
            average_hours=average, rating=bands.rate(average), sample_size=len(values)
        )


@dataclass(frozen=True)
class MergeFrequency:
    value: float = 0.0
    rating: Rating = Rating.UNKNOWN
    merged_prs: int = 0
    total_prs: int = 0
    unique_authors: int = 0


@dataclass(frozen=True)
class SizeDistribution:
    percentages: dict[str, int] = field(default_factory=dict)
    predominant_size: str = UNKNOWN_SIZE
    predominant_percent: int = 0
    predominant_rating: Rating = Rating.UNKNOWN


@dataclass(frozen=True)
class CycleTimeStats:
    avg_hours: float | None = None
    commit_count: int = 0
    oldest_hours: float | None = None
    newest_hours: float | None = None
    rating: Rating = Rating.UNKNOWN


@dataclass(frozen=True)
class DeployFrequency:
    per_week: float | None = None
    deploy_count: int = 0
    rating: Rating = Rating.UNKNOWN


@dataclass(frozen=True)
class TeamMetrics:
    period: TimePeriod
    window: DateRange
    total_prs: int
    analyzed_prs: int
    unique_authors: int
    pickup_time: DurationStat
    approve_time: DurationStat
    merge_time: DurationStat
    merge_frequency: MergeFrequency
    size_distribution: SizeDistribution
    cycle_time: CycleTimeStats
    deploy_frequency: DeployFrequency
    pull_requests: tuple[PRCycleMetrics, ...] = ()


@dataclass(frozen=True)
class NoTeamData:
    """Nothing to measure in the window."""

    period: TimePeriod
    window: DateRange
    reason: str = NO_PULL_REQUESTS


def merge_frequency(
    metrics: Sequence[PRCycleMetrics], weeks: float, bands: RatingBands
) -> MergeFrequency:
    merged = sum(1 for pr in metrics if pr.merged)
    authors = len({pr.author for pr in metrics})
    value = merged / (authors * weeks) if authors and weeks > 0 else 0.0
    return MergeFrequency(
        value=round(value, 2),
        rating=bands.rate(value),
        merged_prs=merged,
        total_prs=len(metrics),
        unique_authors=authors,
    )


def size_distribution(
    sizes: Sequence[str | None],
    labels: Sequence[str],
    ratings: Callable[[str | None], Rating],
) -> SizeDistribution:
    counts = dict.fromkeys(labels, 0)
    unknown = 0
    for size in sizes:
        if size in counts:
            counts[size] += 1
        else:
            unknown += 1

    predominant, best = UNKNOWN_SIZE, 0
    for label, count in counts.items():
        if count > best:
            predominant, best = label, count

    total = len(sizes)
    percentages = {label: _percent(count, total) for label, count in counts.items()}
    percentages[UNKNOWN_SIZE] = _percent(unknown, total)
    return SizeDistribution(
        percentages=percentages,
        predominant_size=predominant,
        predominant_percent=_percent(best, total),
        predominant_rating=(
            ratings(predominant) if predominant != UNKNOWN_SIZE else Rating.UNKNOWN
        ),
    )


def release_cycle_times(
    released_at: datetime, commits: Sequence[Commit], tip_sha: str
) -> list[float]:
    """Age of every released commit at release time, the tip commit excluded."""
    ages: list[float] = []
    for commit in commits:
        if commit.sha == tip_sha:
            continue
        committed_at = commit.committed_at
        if committed_at is None:
            continue
        hours = hours_between(committed_at, released_at)
        if hours >= 0:
            ages.append(hours)
    return ages


def summarize_cycle_times(ages: Sequence[float], bands: RatingBands) -> CycleTimeStats:
    if not ages:
        return CycleTimeStats()
    average = round2(sum(ages) / len(ages))
    return CycleTimeStats(
        avg_hours=average,
        commit_count=len(ages),
        oldest_hours=round2(max(ages)),
        newest_hours=round2(min(ages)),
        rating=bands.rate(average),
    )


class TeamMetricsCollector:
    def __init__(
        self,
        source: MetricsSource,
        options: MetricsOptions,
        now: datetime | None = None,
    ) -> None:
        self.source = source
        self.options = options
        self.now = now or datetime.now(UTC)

    @property
    def window(self) -> DateRange:
        return date_range(self.now, self.options.days_in_window)

    def collect(self) -> TeamMetrics | NoTeamData:
        window = self.window
        period = self.options.time_period
        logger.info(
            f"Collecting team metrics for {period} window "
            f"{window.start.date()} to {window.end.date()}"
        )

        try:
            prs = self.source.list_pull_requests_between(window.start, window.end)
        except VelocityException as e:
            logger.warning(f"Failed to list pull requests: {e}")
            return NoTeamData(period=period, window=window, reason=str(e))

        if not prs:
            return NoTeamData(period=period, window=window)

        logger.info(f"Found {len(prs)} PRs in the window")
        with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
            results = list(executor.map(self.pr_metrics, prs))
        analyzed = [metrics for metrics in results if metrics is not None]

        ratings = self.options.ratings
        return TeamMetrics(
            period=period,
            window=window,
            total_prs=len(prs),
            analyzed_prs=len(analyzed),
            unique_authors=len({pr.author for pr in prs}),
            pickup_time=DurationStat.from_samples(
                (m.pickup_time_hours for m in analyzed), ratings.pickup_time
            ),
            approve_time=DurationStat.from_samples(
                (m.approve_time_hours for m in analyzed), ratings.approve_time
            ),
            merge_time=DurationStat.from_samples(
                (m.merge_time_hours for m in analyzed), ratings.merge_time
            ),
            merge_frequency=merge_frequency(
                analyzed, self.options.weeks_in_window, ratings.merge_frequency
            ),
            size_distribution=size_distribution(
                [m.pr_size for m in analyzed],
                self.options.size_thresholds.labels,
                ratings.rate_pr_size,
            ),
            cycle_time=self.cycle_time(window),
            deploy_frequency=self.deploy_frequency(window),
            pull_requests=tuple(analyzed),
        )

    def pr_metrics(self, pr: PullRequest) -> PRCycleMetrics | None:
        try:
            timeline = self.source.get_pull_request_timeline(pr.number)
            reviews = self.source.get_pull_request_reviews(pr.number)
        except VelocityException as e:
            logger.warning(f"Failed to calculate metrics for PR #{pr.number}: {e}")
            return None

        ready_at = ready_for_review_time(pr, timeline)
        return PRCycleMetrics(
            pr_number=pr.number,
            author=pr.author,
            state=pr.state,
            merged=pr.is_merged,
            created_at=pr.created_at,
            merged_at=pr.merged_at,
            pickup_time_hours=pickup_time(ready_at, timeline, reviews),
            approve_time_hours=approve_time(ready_at, timeline, reviews),
            merge_time_hours=merge_time(pr.merged_at, reviews),
            pr_size=size_from_labels(pr.labels),
        )

    def cycle_time(self, window: DateRange) -> CycleTimeStats:
        bands = self.options.ratings.cycle_time
        try:
            releases = self.source.list_releases_between(window.start, window.end)
            if not releases:
                return CycleTimeStats()
            history = self._release_history(releases)
        except VelocityException as e:
            logger.warning(f"Failed to calculate cycle time: {e}")
            return CycleTimeStats()

        ages: list[float] = []
        for release in releases:
            try:
                ages.extend(self._release_ages(release, history))
            except VelocityException as e:
                logger.warning(f"Skipping release {release.name} in cycle time: {e}")
        return summarize_cycle_times(ages, bands)

    def _release_history(
        self, releases: Sequence[DeploymentRef]
    ) -> list[DeploymentRef]:
        """Release listing that reaches past the oldest in-window release.

        Listing grows until that release has a predecessor or the listing comes
        back short, which means the repository has no older release.
        """
        oldest = min(releases, key=lambda release: release.created_at)
        limit = max(RELEASE_HISTORY_LIMIT, len(releases) + 1)
        history = self.source.list_releases(limit)
        while (
            len(history) >= limit
            and limit < MAX_RELEASE_HISTORY
            and _predecessor(oldest, history) is None
        ):
            limit *= 2
            history = self.source.list_releases(limit)
        return history

    def _release_ages(
        self, release: DeploymentRef, history: Sequence[DeploymentRef]
    ) -> list[float]:
        sha = release.sha or self.source.resolve_tag(release.name).sha
        previous = _predecessor(release, history)
        if previous is not None:
            previous_sha = previous.sha or self.source.resolve_tag(previous.name).sha
            logger.info(f"Comparing commits between {previous.name} and {release.name}")
            commits = self.source.compare(previous_sha, sha).commits
        else:
            logger.info(f"First release detected: {release.name}, using its history")
            try:
                commits = self.source.list_commits(sha, FIRST_RELEASE_COMMIT_LIMIT)
            except VelocityException as e:
                logger.warning(f"Failed to list commits for {release.name}: {e}")
                commits = [self.source.get_commit(sha)]
        return release_cycle_times(release.created_at, commits, sha)

    def deploy_frequency(self, window: DateRange) -> DeployFrequency:
        try:
            releases = self.source.list_releases_between(window.start, window.end)
        except VelocityException as e:
            logger.warning(f"Failed to calculate deploy frequency: {e}")
            return DeployFrequency()

        weeks = self.options.weeks_in_window
        per_week = round2(len(releases) / weeks) if weeks > 0 else None
        return DeployFrequency(
            per_week=per_week,
            deploy_count=len(releases),
            rating=self.options.ratings.deploy_frequency.rate(per_week),
        )


def _predecessor(
    release: DeploymentRef, history: Sequence[DeploymentRef]
) -> DeploymentRef | None:
    for index, candidate in enumerate(history):
        if candidate.name == release.name:
            return history[index + 1] if index + 1 < len(history) else None
    return None

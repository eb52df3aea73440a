"""
PR maturity: how much of a pull request's final diff already existed when
the PR was effectively published.

Commits pushed at creation time or inside a short grace window afterwards are
treated as part of the initial publication. Everything that lands later is
review churn and counts against maturity.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from velocity.client import MetricsSource
from velocity.config import MetricsOptions
from velocity.exceptions import VelocityException
from velocity.logger import get_logger
from velocity.metrics.filtering import measure
from velocity.metrics.ratings import Rating
from velocity.models import Commit, FileChange, PullRequest


logger = get_logger("metrics.maturity")


class MaturityReason(StrEnum):
    SINGLE_COMMIT = "single_commit"
    ALL_COMMITS_WITHIN_GRACE_WINDOW = "all_commits_within_grace_window"
    NO_COMMITS_AFTER_GRACE_WINDOW = "no_commits_after_grace_window"
    CHANGES_AFTER_PUBLICATION = "changes_after_publication"
    PR_LOOKUP_FAILED = "pr_lookup_failed"
    COMMITS_UNAVAILABLE = "commits_unavailable"
    NO_COMMITS = "no_commits"
    BASELINE_UNRESOLVED = "baseline_unresolved"


@dataclass(frozen=True)
class PublicationContext:
    created_at: datetime
    commits: tuple[Commit, ...]
    grace_window: timedelta

    @property
    def deadline(self) -> datetime:
        return self.created_at + self.grace_window

    def first_significant_index(self) -> int | None:
        for index, commit in enumerate(self.commits):
            committed_at = commit.committed_at
            if committed_at is not None and committed_at > self.deadline:
                return index
        return None


@dataclass(frozen=True)
class PublicationBaseline:
    reason: MaturityReason
    baseline: Commit | None = None
    first_significant: Commit | None = None
    head: Commit | None = None

    @property
    def fully_mature(self) -> bool:
        return self.baseline is None


def _fully_mature(
    reason: MaturityReason,
) -> Callable[[PublicationContext], PublicationBaseline]:
    def resolve(ctx: PublicationContext) -> PublicationBaseline:
        return PublicationBaseline(reason=reason, head=ctx.commits[-1])

    return resolve


def _post_publication(ctx: PublicationContext) -> PublicationBaseline:
    index = ctx.first_significant_index()
    if index is None:
        return PublicationBaseline(
            reason=MaturityReason.NO_COMMITS_AFTER_GRACE_WINDOW, head=ctx.commits[-1]
        )
    baseline = ctx.commits[index - 1] if index > 0 else ctx.commits[0]
    return PublicationBaseline(
        reason=MaturityReason.CHANGES_AFTER_PUBLICATION,
        baseline=baseline,
        first_significant=ctx.commits[index],
        head=ctx.commits[-1],
    )


@dataclass(frozen=True)
class MaturityRule:
    reason: MaturityReason
    matches: Callable[[PublicationContext], bool]
    resolve: Callable[[PublicationContext], PublicationBaseline]


def _is_single_commit(ctx: PublicationContext) -> bool:
    return len(ctx.commits) == 1


def _all_within_grace_window(ctx: PublicationContext) -> bool:
    return all(
        commit.committed_at is not None and commit.committed_at <= ctx.deadline
        for commit in ctx.commits
    )


def _nothing_after_grace_window(ctx: PublicationContext) -> bool:
    return ctx.first_significant_index() is None


def _has_significant_commit(ctx: PublicationContext) -> bool:
    return ctx.first_significant_index() is not None


MATURITY_RULES: tuple[MaturityRule, ...] = (
    MaturityRule(
        MaturityReason.SINGLE_COMMIT,
        _is_single_commit,
        _fully_mature(MaturityReason.SINGLE_COMMIT),
    ),
    MaturityRule(
        MaturityReason.ALL_COMMITS_WITHIN_GRACE_WINDOW,
        _all_within_grace_window,
        _fully_mature(MaturityReason.ALL_COMMITS_WITHIN_GRACE_WINDOW),
    ),
    MaturityRule(
        MaturityReason.NO_COMMITS_AFTER_GRACE_WINDOW,
        _nothing_after_grace_window,
        _fully_mature(MaturityReason.NO_COMMITS_AFTER_GRACE_WINDOW),
    ),
    MaturityRule(
        MaturityReason.CHANGES_AFTER_PUBLICATION,
        _has_significant_commit,
        _post_publication,
    ),
)


def find_publication_baseline(
    ctx: PublicationContext,
    rules: Sequence[MaturityRule] = MATURITY_RULES,
) -> PublicationBaseline:
    """Evaluate ``rules`` in order; the first match decides."""
    if not ctx.commits:
        raise ValueError("At least one commit is required")
    for rule in rules:
        if rule.matches(ctx):
            logger.debug(f"Maturity rule matched: {rule.reason}")
            return rule.resolve(ctx)
    return _post_publication(ctx)


def maturity_ratio(total_changes: int, changes_after_publication: int) -> float:
    if total_changes <= 0:
        return 1.0
    stable = max(0, total_changes - changes_after_publication)
    return stable / total_changes


def as_percentage(ratio: float) -> int:
    # half-up, so 0.625 -> 63
    return int(ratio * 100 + 0.5)


@dataclass(frozen=True)
class MaturityResult:
    maturity_ratio: float | None
    maturity_percentage: int | None
    rating: Rating = Rating.UNKNOWN
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error(self) -> str | None:
        return self.details.get("error")


class PRMaturityCalculator:
    def __init__(self, source: MetricsSource, options: MetricsOptions) -> None:
        self.source = source
        self.options = options

    def calculate(self, pr_number: int) -> MaturityResult:
        try:
            pr = self.source.get_pull_request(pr_number)
        except VelocityException as e:
            logger.warning(f"Failed to get PR #{pr_number} details: {e}")
            return self._failure(
                f"Failed to get PR details: {e}", MaturityReason.PR_LOOKUP_FAILED
            )

        try:
            commits = self.source.get_pull_request_commits(pr_number)
            files = self.source.get_pull_request_files(pr_number)
        except VelocityException as e:
            logger.warning(f"Failed to get PR #{pr_number} commits or files: {e}")
            return self._failure(
                f"Failed to get PR commits or files: {e}",
                MaturityReason.COMMITS_UNAVAILABLE,
            )

        return self.evaluate(pr, commits, files)

    def evaluate(
        self,
        pr: PullRequest,
        commits: Sequence[Commit],
        files: Sequence[FileChange],
    ) -> MaturityResult:
        if not commits:
            return self._failure(
                "No commits found for pull request", MaturityReason.NO_COMMITS
            )

        total_changes = measure(files, self.options.filters).total_changes
        ctx = PublicationContext(
            created_at=pr.created_at,
            commits=tuple(commits),
            grace_window=self.options.grace_window,
        )
        decision = find_publication_baseline(ctx)

        if decision.fully_mature:
            return self._result(decision, ctx, total_changes, changes_after=0)

        baseline, head = decision.baseline, decision.head
        if baseline is None or head is None:
            return self._failure(
                "Publication baseline could not be resolved",
                MaturityReason.BASELINE_UNRESOLVED,
                total_commits=len(commits),
            )
        try:
            comparison = self.source.compare(baseline.sha, head.sha)
        except VelocityException as e:
            logger.warning(
                f"Failed to compare {baseline.sha[:7]}...{head.sha[:7]}: {e}"
            )
            return self._failure(
                f"Failed to compare publication baseline with head: {e}",
                decision.reason,
                total_commits=len(commits),
            )

        changes_after = measure(comparison.files, self.options.filters).total_changes
        result = self._result(decision, ctx, total_changes, changes_after)
        logger.info(
            f"PR #{pr.number} maturity: {result.maturity_percentage}% "
            f"({result.details['stable_changes']}/{total_changes} stable changes)"
        )
        return result

    def _result(
        self,
        decision: PublicationBaseline,
        ctx: PublicationContext,
        total_changes: int,
        changes_after: int,
    ) -> MaturityResult:
        ratio = maturity_ratio(total_changes, changes_after)
        percentage = as_percentage(ratio)
        stable = max(0, total_changes - changes_after)
        return MaturityResult(
            maturity_ratio=round(ratio, 2),
            maturity_percentage=percentage,
            rating=self.options.ratings.pr_maturity.rate(percentage),
            details={
                "total_commits": len(ctx.commits),
                "total_changes": total_changes,
                "stable_changes": stable,
                "changes_after_publication": changes_after,
                "reason": decision.reason.value,
                "baseline_commit": _sha(decision.baseline),
                "first_significant_commit": _sha(decision.first_significant),
                "head_commit": _sha(decision.head),
                "grace_window_minutes": self.options.grace_window_minutes,
            },
        )

    @staticmethod
    def _failure(error: str, reason: MaturityReason, **details: Any) -> MaturityResult:
        return MaturityResult(
            maturity_ratio=None,
            maturity_percentage=None,
            details={**details, "reason": reason.value, "error": error},
        )


def _sha(commit: Commit | None) -> str | None:
    return commit.sha if commit else None

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock, patch

import pytest

from velocity.client import MetricsSource
from velocity.config import MetricsOptions
from velocity.exceptions import APIError, ResourceNotFoundError
from velocity.metrics.filtering import FilterConfig
from velocity.metrics.maturity import (
    MaturityReason,
    PRMaturityCalculator,
    PublicationBaseline,
    PublicationContext,
    as_percentage,
    find_publication_baseline,
    maturity_ratio,
)
from velocity.metrics.ratings import Rating
from velocity.models import Commit, Comparison, FileChange, PullRequest


CREATED_AT = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)


def _commit(sha: str, offset: timedelta | None) -> Commit:
    committed = CREATED_AT + offset if offset is not None else None
    return Commit(sha=sha, committer_date=committed)


def _context(*commits: Commit, grace_minutes: float = 5) -> PublicationContext:
    return PublicationContext(
        created_at=CREATED_AT,
        commits=commits,
        grace_window=timedelta(minutes=grace_minutes),
    )


@pytest.fixture
def source() -> Mock:
    return Mock(spec=MetricsSource)


@pytest.fixture
def pr() -> PullRequest:
    return PullRequest(number=12, created_at=CREATED_AT, author="octocat")


@pytest.fixture
def files() -> list[FileChange]:
    return [
        FileChange("src/app.py", additions=70, deletions=10),
        FileChange("src/util.py", additions=20, deletions=0),
    ]


def test_should_treat_single_commit_as_fully_mature() -> None:
    decision = find_publication_baseline(_context(_commit("a", timedelta(hours=4))))

    assert decision.reason == MaturityReason.SINGLE_COMMIT
    assert decision.fully_mature
    assert decision.head.sha == "a"


def test_should_treat_commits_inside_grace_window_as_published() -> None:
    decision = find_publication_baseline(
        _context(
            _commit("a", timedelta(hours=-1)),
            _commit("b", timedelta(minutes=2)),
        )
    )

    assert decision.reason == MaturityReason.ALL_COMMITS_WITHIN_GRACE_WINDOW
    assert decision.fully_mature


def test_should_include_commit_exactly_at_grace_deadline() -> None:
    decision = find_publication_baseline(
        _context(
            _commit("a", timedelta(hours=-1)),
            _commit("b", timedelta(minutes=5)),
        )
    )

    assert decision.fully_mature


def test_should_fall_through_to_no_late_commits_when_timestamps_are_missing() -> None:
    decision = find_publication_baseline(
        _context(_commit("a", timedelta(hours=-1)), _commit("b", None))
    )

    assert decision.reason == MaturityReason.NO_COMMITS_AFTER_GRACE_WINDOW
    assert decision.fully_mature


def test_should_use_commit_before_first_late_commit_as_baseline() -> None:
    decision = find_publication_baseline(
        _context(
            _commit("a", timedelta(hours=-1)),
            _commit("b", timedelta(hours=1)),
            _commit("c", timedelta(hours=3)),
        )
    )

    assert decision.reason == MaturityReason.CHANGES_AFTER_PUBLICATION
    assert decision.baseline.sha == "a"
    assert decision.first_significant.sha == "b"
    assert decision.head.sha == "c"


def test_should_use_first_commit_as_baseline_when_every_commit_is_late() -> None:
    decision = find_publication_baseline(
        _context(
            _commit("a", timedelta(hours=1)),
            _commit("b", timedelta(hours=2)),
        )
    )

    assert decision.baseline.sha == "a"
    assert decision.first_significant.sha == "a"


def test_should_require_at_least_one_commit() -> None:
    with pytest.raises(ValueError, match="At least one commit"):
        find_publication_baseline(_context())


@pytest.mark.parametrize(
    ("total", "after", "expected"),
    [(100, 40, 0.6), (100, 0, 1.0), (0, 0, 1.0), (10, 25, 0.0)],
)
def test_should_compute_maturity_ratio(total, after, expected) -> None:
    assert maturity_ratio(total, after) == expected


def test_should_round_percentage_half_up() -> None:
    assert as_percentage(0.625) == 63
    assert as_percentage(0.6) == 60
    assert as_percentage(1.0) == 100


def test_should_rate_single_commit_pr_as_fully_mature(source, pr, files) -> None:
    calculator = PRMaturityCalculator(source, MetricsOptions())

    result = calculator.evaluate(pr, [_commit("a", timedelta(hours=5))], files)

    assert result.maturity_ratio == 1.0
    assert result.maturity_percentage == 100
    assert result.rating == Rating.ELITE
    assert result.details["reason"] == "single_commit"
    assert result.details["total_changes"] == 100
    assert result.details["changes_after_publication"] == 0
    assert result.error is None
    source.compare.assert_not_called()


def test_should_measure_changes_after_publication(source, pr, files) -> None:
    source.compare.return_value = Comparison(
        files=[FileChange("src/app.py", additions=30, deletions=10)]
    )
    calculator = PRMaturityCalculator(source, MetricsOptions())
    commits = [
        _commit("a", timedelta(hours=-1)),
        _commit("b", timedelta(hours=1)),
        _commit("c", timedelta(hours=3)),
    ]

    result = calculator.evaluate(pr, commits, files)

    source.compare.assert_called_once_with("a", "c")
    assert result.maturity_ratio == 0.6
    assert result.maturity_percentage == 60
    assert result.rating == Rating.NEEDS_FOCUS
    assert result.details == {
        "total_commits": 3,
        "total_changes": 100,
        "stable_changes": 60,
        "changes_after_publication": 40,
        "reason": "changes_after_publication",
        "baseline_commit": "a",
        "first_significant_commit": "b",
        "head_commit": "c",
        "grace_window_minutes": 5.0,
    }


def test_should_apply_file_filters_to_both_diffs(source, pr) -> None:
    files = [
        FileChange("src/app.py", additions=50, deletions=0),
        FileChange("package-lock.json", additions=400, deletions=400),
    ]
    source.compare.return_value = Comparison(
        files=[
            FileChange("src/app.py", additions=10, deletions=0),
            FileChange("package-lock.json", additions=400, deletions=400),
        ]
    )
    options = MetricsOptions(
        filters=FilterConfig(files_to_ignore=("package-lock.json",))
    )
    calculator = PRMaturityCalculator(source, options)

    result = calculator.evaluate(
        pr,
        [_commit("a", timedelta(0)), _commit("b", timedelta(hours=2))],
        files,
    )

    assert result.maturity_percentage == 80


def test_should_report_error_when_pull_request_is_missing(source) -> None:
    source.get_pull_request.side_effect = ResourceNotFoundError("PR #12 not found")

    result = PRMaturityCalculator(source, MetricsOptions()).calculate(12)

    assert result.maturity_ratio is None
    assert result.maturity_percentage is None
    assert result.rating == Rating.UNKNOWN
    assert result.error == "Failed to get PR details: PR #12 not found"
    assert result.details["reason"] == "pr_lookup_failed"


def test_should_report_error_when_commits_cannot_be_fetched(source, pr) -> None:
    source.get_pull_request.return_value = pr
    source.get_pull_request_commits.side_effect = APIError(500, "boom")

    result = PRMaturityCalculator(source, MetricsOptions()).calculate(12)

    assert result.error == "Failed to get PR commits or files: boom"
    assert result.details["reason"] == "commits_unavailable"


def test_should_report_error_for_pull_request_without_commits(source, pr) -> None:
    source.get_pull_request.return_value = pr
    source.get_pull_request_commits.return_value = []
    source.get_pull_request_files.return_value = []

    result = PRMaturityCalculator(source, MetricsOptions()).calculate(12)

    assert result.error == "No commits found for pull request"
    assert result.details["reason"] == "no_commits"


def test_should_keep_partial_details_when_comparison_fails(source, pr, files) -> None:
    source.compare.side_effect = APIError(502, "bad gateway")
    commits = [_commit("a", timedelta(0)), _commit("b", timedelta(hours=2))]

    result = PRMaturityCalculator(source, MetricsOptions()).evaluate(pr, commits, files)

    assert result.maturity_percentage is None
    assert result.details["total_commits"] == 2
    assert result.details["reason"] == "changes_after_publication"
    assert "bad gateway" in result.error


def test_should_report_error_when_baseline_has_no_head(source, pr, files) -> None:
    commits = [_commit("a", timedelta(0)), _commit("b", timedelta(hours=2))]
    decision = PublicationBaseline(
        reason=MaturityReason.CHANGES_AFTER_PUBLICATION, baseline=commits[0]
    )

    with patch(
        "velocity.metrics.maturity.find_publication_baseline", return_value=decision
    ):
        result = PRMaturityCalculator(source, MetricsOptions()).evaluate(
            pr, commits, files
        )

    assert result.maturity_percentage is None
    assert result.details["reason"] == "baseline_unresolved"
    assert result.error == "Publication baseline could not be resolved"
    source.compare.assert_not_called()

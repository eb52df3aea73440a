from bisect import bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from velocity.client import MetricsSource
from velocity.exceptions import ConfigurationError, VelocityException
from velocity.logger import get_logger
from velocity.metrics.filtering import FilterConfig, aggregate_changes, filter_files
from velocity.models import ChangeAggregate, FileChange


logger = get_logger("metrics.size")

SIZE_LABEL_PREFIX = "size/"
UNKNOWN_SIZE = "unknown"


@dataclass(frozen=True)
class SizeThresholds:
    """
    Ascending cut points between size tiers.

    ``labels`` has one more entry than ``cut_points``. A total strictly below
    ``cut_points[i]`` lands in ``labels[i]``; the last cut point is still part
    of the last bounded tier, so only totals above it reach the overflow tier.
    """

    cut_points: tuple[int, ...] = (105, 160, 240)
    labels: tuple[str, ...] = ("s", "m", "l", "xl")

    def __post_init__(self) -> None:
        if not self.cut_points:
            raise ConfigurationError("At least one size cut point is required")
        if len(self.labels) != len(self.cut_points) + 1:
            raise ConfigurationError(
                f"Expected {len(self.cut_points) + 1} size labels, "
                f"got {len(self.labels)}"
            )
        if any(b <= a for a, b in zip(self.cut_points, self.cut_points[1:])):
            raise ConfigurationError(
                f"Size cut points must be strictly ascending: {self.cut_points}"
            )
        if any(point < 0 for point in self.cut_points):
            raise ConfigurationError("Size cut points must be non-negative")

    @classmethod
    def legacy(cls) -> "SizeThresholds":
        # <=10 xs, <=50 s, <=200 m, <=500 l
        return cls(cut_points=(11, 51, 201, 500), labels=("xs", "s", "m", "l", "xl"))

    @classmethod
    def from_values(
        cls, cut_points: Sequence[Any], labels: Sequence[str] | None = None
    ) -> "SizeThresholds":
        try:
            points = tuple(int(point) for point in cut_points)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid size thresholds: {cut_points}") from e
        if labels is None:
            defaults = cls()
            if len(points) == len(defaults.cut_points):
                return cls(cut_points=points)
            if len(points) == 4:
                return cls(cut_points=points, labels=cls.legacy().labels)
            raise ConfigurationError(
                "Size labels are required for a custom number of thresholds"
            )
        return cls(cut_points=points, labels=tuple(label.lower() for label in labels))

    @property
    def smallest(self) -> str:
        return self.labels[0]

    def classify(self, total_changes: int) -> str:
        total = max(total_changes, 0)
        *inner, last = self.cut_points
        index = bisect_right(inner, total)
        if index < len(inner):
            return self.labels[index]
        if total <= last:
            return self.labels[-2]
        return self.labels[-1]


@dataclass(frozen=True)
class PRSizeResult:
    size: str
    category: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_known(self) -> bool:
        return self.size != UNKNOWN_SIZE


def size_label(size: str) -> str:
    return f"{SIZE_LABEL_PREFIX}{size}"


def size_from_labels(labels: Iterable[str]) -> str | None:
    for label in labels:
        name = label.lower()
        if name.startswith(SIZE_LABEL_PREFIX):
            return name[len(SIZE_LABEL_PREFIX) :]
    return None


def classify_files(
    files: Sequence[FileChange],
    filters: FilterConfig,
    thresholds: SizeThresholds,
) -> PRSizeResult:
    filtered = filter_files(files, filters)
    aggregate = aggregate_changes(filtered, filters)
    size = thresholds.classify(aggregate.total_changes)
    return PRSizeResult(
        size=size,
        category=size_label(size),
        details=_details(aggregate, files_analyzed=len(files)),
    )


def _details(aggregate: ChangeAggregate, files_analyzed: int) -> dict[str, Any]:
    return {
        "total_additions": aggregate.total_additions,
        "total_deletions": aggregate.total_deletions,
        "total_changes": aggregate.total_changes,
        "files_changed": aggregate.files_changed,
        "files_analyzed": files_analyzed,
    }


class PRSizeCalculator:
    def __init__(
        self,
        source: MetricsSource,
        filters: FilterConfig,
        thresholds: SizeThresholds,
    ) -> None:
        self.source = source
        self.filters = filters
        self.thresholds = thresholds

    def calculate(self, pr_number: int) -> PRSizeResult:
        try:
            files = self.source.get_pull_request_files(pr_number)
        except VelocityException as e:
            logger.warning(f"Failed to calculate PR size: {e}")
            return PRSizeResult(
                size=UNKNOWN_SIZE,
                category=size_label(UNKNOWN_SIZE),
                details={"error": str(e)},
            )

        if not files:
            return PRSizeResult(
                size=self.thresholds.smallest,
                category=size_label(self.thresholds.smallest),
                details=_details(ChangeAggregate(), files_analyzed=0),
            )

        result = classify_files(files, self.filters, self.thresholds)
        logger.info(
            f"PR #{pr_number} size: {result.size} "
            f"({result.details['total_changes']} changes)"
        )
        return result

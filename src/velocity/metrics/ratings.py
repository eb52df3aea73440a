from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from velocity.exceptions import ConfigurationError


class Rating(StrEnum):
    ELITE = "Elite"
    GOOD = "Good"
    FAIR = "Fair"
    NEEDS_FOCUS = "Needs Focus"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class RatingBands:
    """
    Three cut points splitting a metric into Elite/Good/Fair/Needs Focus.

    For lower-is-better metrics (durations) a value is Elite when strictly
    below ``elite``, Good up to and including ``good``, Fair up to and
    including ``fair``. For higher-is-better metrics (frequencies, maturity)
    the comparisons mirror: Elite strictly above ``elite``, Good from ``good``,
    Fair from ``fair``.
    """

    elite: float
    good: float
    fair: float
    higher_is_better: bool = False

    def __post_init__(self) -> None:
        ordered = (self.fair, self.good, self.elite)
        if not self.higher_is_better:
            ordered = (self.elite, self.good, self.fair)
        if list(ordered) != sorted(ordered):
            raise ConfigurationError(
                f"Rating cut points out of order: elite={self.elite}, "
                f"good={self.good}, fair={self.fair}"
            )

    def rate(self, value: float | None) -> Rating:
        if value is None:
            return Rating.UNKNOWN
        if self.higher_is_better:
            if value > self.elite:
                return Rating.ELITE
            if value >= self.good:
                return Rating.GOOD
            if value >= self.fair:
                return Rating.FAIR
            return Rating.NEEDS_FOCUS

        if value < self.elite:
            return Rating.ELITE
        if value <= self.good:
            return Rating.GOOD
        if value <= self.fair:
            return Rating.FAIR
        return Rating.NEEDS_FOCUS

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], higher_is_better: bool = False
    ) -> "RatingBands":
        try:
            return cls(
                elite=float(data["elite"]),
                good=float(data["good"]),
                fair=float(data["fair"]),
                higher_is_better=bool(data.get("higher_is_better", higher_is_better)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid rating bands: {data}") from e


DEFAULT_PR_SIZE_RATINGS: Mapping[str, Rating] = MappingProxyType(
    {
        "xs": Rating.ELITE,
        "s": Rating.ELITE,
        "m": Rating.GOOD,
        "l": Rating.FAIR,
        "xl": Rating.NEEDS_FOCUS,
    }
)


@dataclass(frozen=True)
class RatingConfig:
    pickup_time: RatingBands = RatingBands(elite=2, good=6, fair=16)
    approve_time: RatingBands = RatingBands(elite=17, good=24, fair=45)
    merge_time: RatingBands = RatingBands(elite=2, good=5, fair=19)
    cycle_time: RatingBands = RatingBands(elite=45, good=95, fair=169)
    merge_frequency: RatingBands = RatingBands(
        elite=1.6, good=1.1, fair=0.6, higher_is_better=True
    )
    deploy_frequency: RatingBands = RatingBands(
        elite=0.9, good=0.5, fair=0.2, higher_is_better=True
    )
    pr_maturity: RatingBands = RatingBands(
        elite=88, good=81, fair=75, higher_is_better=True
    )
    pr_size: Mapping[str, Rating] = field(
        default_factory=lambda: DEFAULT_PR_SIZE_RATINGS
    )

    def rate_pr_size(self, size: str | None) -> Rating:
        if size is None:
            return Rating.UNKNOWN
        return self.pr_size.get(size.lower(), Rating.UNKNOWN)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "RatingConfig":
        if not data:
            return cls()

        defaults = cls()
        overrides: dict[str, Any] = {}
        for name in (
            "pickup_time",
            "approve_time",
            "merge_time",
            "cycle_time",
            "merge_frequency",
            "deploy_frequency",
            "pr_maturity",
        ):
            if name in data:
                current: RatingBands = getattr(defaults, name)
                overrides[name] = RatingBands.from_dict(
                    data[name], higher_is_better=current.higher_is_better
                )

        if "pr_size" in data:
            try:
                overrides["pr_size"] = MappingProxyType(
                    {
                        str(size).lower(): Rating(rating)
                        for size, rating in data["pr_size"].items()
                    }
                )
            except (AttributeError, ValueError) as e:
                raise ConfigurationError(
                    f"Invalid PR size ratings: {data['pr_size']}"
                ) from e

        return cls(**overrides)

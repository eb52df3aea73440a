from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import timedelta
from enum import StrEnum
import os
from pathlib import Path
import re
from typing import Any

import yaml

from velocity.exceptions import ConfigurationError
from velocity.metrics.filtering import FilterConfig
from velocity.metrics.ratings import RatingConfig
from velocity.metrics.size import SizeThresholds


_ENV_REFERENCE = re.compile(r"\$\{[^}]+\}|\$[A-Za-z_][A-Za-z0-9_]*(?![A-Za-z0-9_])")
_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


class TimePeriod(StrEnum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"

    @property
    def days(self) -> int:
        return {
            TimePeriod.WEEKLY: 7,
            TimePeriod.FORTNIGHTLY: 14,
            TimePeriod.MONTHLY: 30,
        }[self]


class MetricFamily(StrEnum):
    DEPLOYMENT_FREQUENCY = "deployment-frequency"
    LEAD_TIME = "lead-time"
    PR_SIZE = "pr-size"
    PR_MATURITY = "pr-maturity"
    TEAM = "team-metrics"


DORA_FAMILIES = frozenset({MetricFamily.DEPLOYMENT_FREQUENCY, MetricFamily.LEAD_TIME})
DEVEX_FAMILIES = frozenset({MetricFamily.PR_SIZE, MetricFamily.PR_MATURITY})


@dataclass(frozen=True)
class MetricsOptions:
    filters: FilterConfig = FilterConfig()
    size_thresholds: SizeThresholds = SizeThresholds()
    ratings: RatingConfig = RatingConfig()
    include_merge_commits: bool = False
    max_releases: int = 100
    max_tags: int = 100
    grace_window_minutes: float = 5.0
    time_period: TimePeriod = TimePeriod.WEEKLY
    window_days: int | None = None
    max_workers: int = 4

    def __post_init__(self) -> None:
        if self.max_releases <= 0:
            raise ConfigurationError("max_releases must be positive")
        if self.max_tags <= 0:
            raise ConfigurationError("max_tags must be positive")
        if self.grace_window_minutes < 0:
            raise ConfigurationError("grace_window_minutes must be non-negative")
        if self.window_days is not None and self.window_days <= 0:
            raise ConfigurationError("window_days must be positive")
        if self.max_workers <= 0:
            raise ConfigurationError("max_workers must be positive")

    @property
    def grace_window(self) -> timedelta:
        return timedelta(minutes=self.grace_window_minutes)

    @property
    def days_in_window(self) -> int:
        if self.window_days is not None:
            return self.window_days
        return self.time_period.days

    @property
    def weeks_in_window(self) -> float:
        return self.days_in_window / 7


@dataclass(frozen=True)
class VelocityConfig:
    token: str
    repo: str
    base_url: str | None = None
    enabled_metrics: frozenset[MetricFamily] = frozenset(DORA_FAMILIES)
    options: MetricsOptions = field(default_factory=MetricsOptions)
    output_path: str = "metrics/delivery_metrics.json"
    team_report_path: str = "metrics/team_metrics_report.md"
    cache_ttl: int = 300
    max_retries: int = 3
    backoff_factor: float = 1.0
    timeout: int = 30
    log_level: str = "INFO"
    log_format: str = "json"

    @staticmethod
    def _safe_parse_int(value: str, name: str, default: int) -> int:
        if not value:
            return default
        try:
            return int(value)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid integer value for {name}: '{value}'. Must be a valid integer."
            ) from e

    @staticmethod
    def _safe_parse_float(value: str, name: str, default: float) -> float:
        if not value:
            return default
        try:
            return float(value)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(
                f"Invalid float value for {name}: '{value}'. Must be a valid number."
            ) from e

    @staticmethod
    def _safe_parse_bool(value: Any, name: str, default: bool) -> bool:
        if value is None or value == "":
            return default
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigurationError(
            f"Invalid boolean value for {name}: '{value}'. Must be true or false."
        )

    @staticmethod
    def _parse_list(value: Any) -> tuple[str, ...]:
        if not value:
            return ()
        if isinstance(value, str):
            items = value.split(",")
        else:
            items = [str(item) for item in value]
        return tuple(item.strip() for item in items if item.strip())

    @classmethod
    def parse_metrics(cls, value: Any) -> frozenset[MetricFamily]:
        names = cls._parse_list(value)
        try:
            return frozenset(MetricFamily(name.lower()) for name in names)
        except ValueError as e:
            supported = ", ".join(m.value for m in MetricFamily)
            raise ConfigurationError(
                f"Invalid metric in {list(names)}. Supported metrics: {supported}"
            ) from e

    @staticmethod
    def _parse_period(value: str) -> TimePeriod:
        try:
            return TimePeriod(value.lower())
        except ValueError as e:
            raise ConfigurationError(f"Invalid time period: {value}") from e

    def __post_init__(self) -> None:
        if not self.token:
            raise ConfigurationError("Token is required")
        if not self.repo:
            raise ConfigurationError("Repository is required")
        if not self.enabled_metrics:
            supported = ", ".join(m.value for m in MetricFamily)
            raise ConfigurationError(
                f"At least one metric must be enabled ({supported})"
            )
        if self.cache_ttl < 0:
            raise ConfigurationError("cache_ttl must be non-negative")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")
        if self.backoff_factor < 0:
            raise ConfigurationError("backoff_factor must be non-negative")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")

    @classmethod
    def from_env(cls) -> "VelocityConfig":
        token = os.environ.get("GITHUB_TOKEN")
        if not token:
            raise ConfigurationError("GITHUB_TOKEN environment variable not set")

        repo = os.environ.get("VELOCITY_REPO") or os.environ.get("GITHUB_REPOSITORY")
        if not repo:
            raise ConfigurationError("VELOCITY_REPO environment variable not set")

        env = os.environ.get
        window_days = env("VELOCITY_WINDOW_DAYS", "")
        thresholds = cls._parse_list(env("VELOCITY_SIZE_THRESHOLDS", ""))

        options = MetricsOptions(
            filters=FilterConfig(
                files_to_ignore=cls._parse_list(env("VELOCITY_FILES_TO_IGNORE", "")),
                ignore_line_deletions=cls._safe_parse_bool(
                    env("VELOCITY_IGNORE_LINE_DELETIONS"),
                    "VELOCITY_IGNORE_LINE_DELETIONS",
                    False,
                ),
                ignore_file_deletions=cls._safe_parse_bool(
                    env("VELOCITY_IGNORE_FILE_DELETIONS"),
                    "VELOCITY_IGNORE_FILE_DELETIONS",
                    False,
                ),
            ),
            size_thresholds=(
                SizeThresholds.from_values(thresholds)
                if thresholds
                else SizeThresholds()
            ),
            include_merge_commits=cls._safe_parse_bool(
                env("VELOCITY_INCLUDE_MERGE_COMMITS"),
                "VELOCITY_INCLUDE_MERGE_COMMITS",
                False,
            ),
            max_releases=cls._safe_parse_int(
                env("VELOCITY_MAX_RELEASES", ""), "VELOCITY_MAX_RELEASES", 100
            ),
            max_tags=cls._safe_parse_int(
                env("VELOCITY_MAX_TAGS", ""), "VELOCITY_MAX_TAGS", 100
            ),
            grace_window_minutes=cls._safe_parse_float(
                env("VELOCITY_GRACE_WINDOW_MINUTES", ""),
                "VELOCITY_GRACE_WINDOW_MINUTES",
                5.0,
            ),
            time_period=cls._parse_period(env("VELOCITY_TIME_PERIOD", "weekly")),
            window_days=(
                cls._safe_parse_int(window_days, "VELOCITY_WINDOW_DAYS", 0)
                if window_days
                else None
            ),
            max_workers=cls._safe_parse_int(
                env("VELOCITY_MAX_WORKERS", ""), "VELOCITY_MAX_WORKERS", 4
            ),
        )

        return cls(
            token=token,
            repo=repo,
            base_url=env("GITHUB_BASE_URL"),
            enabled_metrics=cls.parse_metrics(
                env("VELOCITY_METRICS", "deployment-frequency,lead-time")
            ),
            options=options,
            output_path=env("VELOCITY_OUTPUT_PATH", "metrics/delivery_metrics.json"),
            team_report_path=env(
                "VELOCITY_TEAM_REPORT_PATH", "metrics/team_metrics_report.md"
            ),
            cache_ttl=cls._safe_parse_int(
                env("VELOCITY_CACHE_TTL", ""), "VELOCITY_CACHE_TTL", 300
            ),
            max_retries=cls._safe_parse_int(
                env("VELOCITY_MAX_RETRIES", ""), "VELOCITY_MAX_RETRIES", 3
            ),
            backoff_factor=cls._safe_parse_float(
                env("VELOCITY_BACKOFF_FACTOR", ""), "VELOCITY_BACKOFF_FACTOR", 1.0
            ),
            timeout=cls._safe_parse_int(
                env("VELOCITY_TIMEOUT", ""), "VELOCITY_TIMEOUT", 30
            ),
            log_level=env("VELOCITY_LOG_LEVEL", "INFO"),
            log_format=env("VELOCITY_LOG_FORMAT", "json"),
        )

    @classmethod
    def _options_from_mapping(cls, metrics: Mapping[str, Any]) -> MetricsOptions:
        thresholds = metrics.get("size_thresholds")
        window_days = metrics.get("window_days")
        try:
            return MetricsOptions(
                filters=FilterConfig(
                    files_to_ignore=cls._parse_list(metrics.get("files_to_ignore")),
                    ignore_line_deletions=cls._safe_parse_bool(
                        metrics.get("ignore_line_deletions"),
                        "ignore_line_deletions",
                        False,
                    ),
                    ignore_file_deletions=cls._safe_parse_bool(
                        metrics.get("ignore_file_deletions"),
                        "ignore_file_deletions",
                        False,
                    ),
                ),
                size_thresholds=(
                    SizeThresholds.from_values(thresholds, metrics.get("size_labels"))
                    if thresholds
                    else SizeThresholds()
                ),
                ratings=RatingConfig.from_dict(metrics.get("ratings")),
                include_merge_commits=cls._safe_parse_bool(
                    metrics.get("include_merge_commits"),
                    "include_merge_commits",
                    False,
                ),
                max_releases=int(metrics.get("max_releases", 100)),
                max_tags=int(metrics.get("max_tags", 100)),
                grace_window_minutes=float(metrics.get("grace_window_minutes", 5.0)),
                time_period=cls._parse_period(
                    str(metrics.get("time_period", "weekly"))
                ),
                window_days=int(window_days) if window_days is not None else None,
                max_workers=int(metrics.get("max_workers", 4)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid metrics configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> "VelocityConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

        if not data:
            raise ConfigurationError("Configuration file is empty")

        auth = data.get("authentication", {})
        token = auth.get("token")
        if not token:
            raise ConfigurationError("authentication.token not specified")

        if _ENV_REFERENCE.search(token):
            expanded_token = os.path.expandvars(token)
            if _ENV_REFERENCE.search(expanded_token):
                # Don't reveal the token value in error message
                raise ConfigurationError(
                    "Token configuration error: Environment variable not found"
                )
            token = expanded_token

        repo = data.get("repository")
        if not repo:
            raise ConfigurationError("repository not specified")

        metrics = data.get("metrics", {})
        cache = data.get("cache", {})
        retry = data.get("retry", {})
        logging = data.get("logging", {})
        performance = data.get("performance", {})
        output = data.get("output", {})

        return cls(
            token=token,
            repo=repo,
            base_url=data.get("base_url"),
            enabled_metrics=cls.parse_metrics(
                metrics.get("enabled", sorted(DORA_FAMILIES))
            ),
            options=cls._options_from_mapping(metrics),
            output_path=output.get("path", "metrics/delivery_metrics.json"),
            team_report_path=output.get(
                "team_report_path", "metrics/team_metrics_report.md"
            ),
            cache_ttl=cache.get("ttl", 300),
            max_retries=retry.get("max_attempts", 3),
            backoff_factor=retry.get("backoff_factor", 1.0),
            timeout=performance.get("timeout", 30),
            log_level=logging.get("level", "INFO"),
            log_format=logging.get("format", "json"),
        )

    def with_overrides(self, **changes: Any) -> "VelocityConfig":
        return replace(self, **changes)

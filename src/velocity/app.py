from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from velocity.client import MetricsSource
from velocity.clients.github_client import GitHubClient
from velocity.config import (
    DEVEX_FAMILIES,
    DORA_FAMILIES,
    MetricFamily,
    VelocityConfig,
)
from velocity.exceptions import VelocityException
from velocity.logger import get_logger
from velocity.metrics.lead_time import DeliveryMetrics, LeadTimeCalculator
from velocity.metrics.maturity import MaturityResult, PRMaturityCalculator
from velocity.metrics.size import PRSizeCalculator, PRSizeResult
from velocity.metrics.team import NoTeamData, TeamMetrics, TeamMetricsCollector
from velocity.report import (
    delivery_record,
    render_size_comment,
    render_team_report,
    team_record,
    to_record,
)
from velocity.security import SecurityValidator


logger = get_logger("app")


class MetricsApplication:
    def __init__(
        self,
        config: VelocityConfig,
        source: MetricsSource | None = None,
        now: datetime | None = None,
    ) -> None:
        self.config = config
        self._source = source
        self._now = now

    @property
    def source(self) -> MetricsSource:
        if self._source is None:
            self._source = GitHubClient(
                token=self.config.token,
                repo_identifier=self.config.repo,
                base_url=self.config.base_url,
                cache_ttl=self.config.cache_ttl,
                max_retries=self.config.max_retries,
                backoff_factor=self.config.backoff_factor,
                timeout=self.config.timeout,
            )
        return self._source

    @property
    def now(self) -> datetime:
        return self._now or datetime.now(UTC)

    @classmethod
    def from_env(cls) -> "MetricsApplication":
        return cls(VelocityConfig.from_env())

    @classmethod
    def from_file(cls, path: str | Path) -> "MetricsApplication":
        return cls(VelocityConfig.from_file(path))

    def is_enabled(self, family: MetricFamily) -> bool:
        return family in self.config.enabled_metrics

    def delivery_metrics(self) -> DeliveryMetrics:
        calculator = LeadTimeCalculator(self.source, self.config.options)
        return calculator.calculate(
            deployment_frequency=self.is_enabled(MetricFamily.DEPLOYMENT_FREQUENCY),
            lead_time=self.is_enabled(MetricFamily.LEAD_TIME),
        )

    def pr_size(self, pr_number: int) -> PRSizeResult:
        options = self.config.options
        calculator = PRSizeCalculator(
            self.source, options.filters, options.size_thresholds
        )
        return calculator.calculate(pr_number)

    def pr_maturity(self, pr_number: int) -> MaturityResult:
        return PRMaturityCalculator(self.source, self.config.options).calculate(
            pr_number
        )

    def team_metrics(self) -> TeamMetrics | NoTeamData:
        return TeamMetricsCollector(
            self.source, self.config.options, now=self.now
        ).collect()

    def team_report(self) -> tuple[TeamMetrics | NoTeamData, str]:
        team = self.team_metrics()
        report = render_team_report(
            team, ratings=self.config.options.ratings, generated_at=self.now
        )
        return team, report

    def collect(self, pr_number: int | None = None) -> dict[str, Any]:
        """Run every enabled metric family; one failing family never stops the rest."""
        document: dict[str, Any] = {
            "timestamp": self.now.isoformat(),
            "repository": self.config.repo,
            "metrics": {},
        }
        errors: dict[str, str] = {}
        enabled = self.config.enabled_metrics

        if enabled & DORA_FAMILIES:
            try:
                self._collect_dora(document, errors)
            except VelocityException as e:
                errors["dora"] = SecurityValidator.sanitize_error_message(e)
                logger.warning(f"DORA metrics failed: {errors['dora']}")

        if enabled & DEVEX_FAMILIES:
            if pr_number is None:
                errors["devex"] = "No pull request number provided"
                logger.warning("Skipping PR metrics: no pull request number provided")
            else:
                try:
                    self._collect_devex(document, errors, pr_number)
                except VelocityException as e:
                    errors["devex"] = SecurityValidator.sanitize_error_message(e)
                    logger.warning(f"DevEx metrics failed: {errors['devex']}")

        if MetricFamily.TEAM in enabled:
            try:
                document["team"] = team_record(self.team_metrics())
            except VelocityException as e:
                errors["team"] = SecurityValidator.sanitize_error_message(e)
                logger.warning(f"Team metrics failed: {errors['team']}")

        if errors:
            document["errors"] = errors
        return document

    def _collect_dora(self, document: dict[str, Any], errors: dict[str, str]) -> None:
        logger.info("Collecting DORA metrics...")
        record = delivery_record(self.delivery_metrics())
        document["source"] = record["source"]
        document["latest"] = record["latest"]
        document["previous"] = record["previous"]

        dora: dict[str, Any] = {}
        if self.is_enabled(MetricFamily.DEPLOYMENT_FREQUENCY):
            dora["deployment_frequency_days"] = record["dora"][
                "deployment_frequency_days"
            ]
        if self.is_enabled(MetricFamily.LEAD_TIME):
            dora["lead_time_for_change"] = record["dora"]["lead_time_for_change"]
        document["metrics"]["dora"] = dora
        if record["error"]:
            errors["dora"] = record["error"]

    def _collect_devex(
        self, document: dict[str, Any], errors: dict[str, str], pr_number: int
    ) -> None:
        logger.info(f"Collecting PR metrics for #{pr_number}...")
        devex: dict[str, Any] = {"pr_number": pr_number}
        if self.is_enabled(MetricFamily.PR_SIZE):
            size = self.pr_size(pr_number)
            devex["pr_size"] = to_record(size)
            if not size.is_known:
                errors["pr-size"] = size.details.get("error", "unknown size")
        if self.is_enabled(MetricFamily.PR_MATURITY):
            maturity = self.pr_maturity(pr_number)
            devex["pr_maturity"] = to_record(maturity)
            if maturity.error:
                errors["pr-maturity"] = maturity.error
        document["metrics"]["devex"] = devex

    def publish_pr_size(
        self,
        pr_number: int,
        result: PRSizeResult,
        comment: bool = True,
        label: bool = True,
    ) -> None:
        if not result.is_known:
            logger.warning(f"Not publishing unknown size for PR #{pr_number}")
            return
        if comment:
            try:
                self.source.post_comment(pr_number, render_size_comment(result))
            except VelocityException as e:
                logger.warning(f"Failed to add PR comment: {e}")
        if label:
            try:
                self.source.add_label(pr_number, result.category)
            except VelocityException as e:
                logger.warning(f"Failed to add PR label: {e}")

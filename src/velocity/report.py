"""Serialization and Markdown rendering of collected metrics."""

from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
import json
from pathlib import Path
from typing import Any

from velocity.logger import get_logger
from velocity.metrics.lead_time import DeliveryMetrics
from velocity.metrics.ratings import Rating, RatingConfig
from velocity.metrics.size import UNKNOWN_SIZE, PRSizeResult
from velocity.metrics.team import NoTeamData, TeamMetrics


logger = get_logger("report")

NOT_AVAILABLE = "N/A"

RATING_EMOJI = {
    Rating.ELITE: "⭐",
    Rating.GOOD: "✅",
    Rating.FAIR: "⚖️",
    Rating.NEEDS_FOCUS: "🎯",
}
SIZE_EMOJI = {"xs": "🤏", "s": "🔹", "m": "🔸", "l": "🔶", "xl": "🔥"}
SIZE_NAMES = {
    "xs": "Extra Small (XS)",
    "s": "Small (S)",
    "m": "Medium (M)",
    "l": "Large (L)",
    "xl": "Extra Large (XL)",
}

PICKUP_DEFINITION = "Time from PR ready for review to first review activity"
APPROVE_DEFINITION = (
    "Time from last review activity (or PR ready for review) to first approval"
)
MERGE_DEFINITION = "Time from first approval to merge"


def to_record(value: Any) -> Any:
    """Plain JSON-compatible structure for dataclasses, enums and datetimes."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_record(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): to_record(item) for key, item in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_record(item) for item in value]
    return value


def delivery_record(metrics: DeliveryMetrics) -> dict[str, Any]:
    latest = metrics.latest
    return {
        "source": metrics.source.value if metrics.source else None,
        "latest": (
            {"tag": latest.name, "created_at": latest.created_at.isoformat()}
            if latest
            else None
        ),
        "previous": (
            {
                "tag": metrics.previous.name,
                "created_at": metrics.previous.created_at.isoformat(),
            }
            if metrics.previous
            else None
        ),
        "dora": {
            "deployment_frequency_days": metrics.deployment_frequency_days,
            "lead_time_for_change": to_record(metrics.lead_time_for_change),
        },
        "error": metrics.error,
    }


def team_record(team: TeamMetrics | NoTeamData) -> dict[str, Any]:
    record = to_record(team)
    if isinstance(team, NoTeamData):
        record["error"] = record.pop("reason")
    return record


def format_hours(hours: float | None) -> str:
    if hours is None:
        return NOT_AVAILABLE
    if hours < 24:
        return f"{hours:.1f} hours"
    return f"{hours / 24:.1f} days"


def _value(value: Any) -> str:
    return NOT_AVAILABLE if value is None else str(value)


def _short(sha: str | None) -> str:
    return f"({sha[:7]})" if sha else ""


def maturity_emoji(percentage: int | None) -> str:
    if percentage is None:
        return "❓"
    if percentage >= 90:
        return "🎯"
    if percentage >= 75:
        return "✅"
    if percentage >= 50:
        return "⚠️"
    if percentage >= 25:
        return "🚧"
    return "❌"


def render_summary(document: Mapping[str, Any]) -> str:
    """Markdown summary of a collected metrics document."""
    if document.get("error"):
        return f"### Velocity Metrics - Error\n❌ **Error:** {document['error']}\n"

    lines = ["### Velocity Metrics Summary", ""]
    metrics = document.get("metrics", {})

    dora = metrics.get("dora")
    if dora is not None:
        lead_time = dora.get("lead_time_for_change") or {}
        latest = document.get("latest") or {}
        lines += [
            "#### DORA Metrics",
            f"- **Source:** {_value(document.get('source'))}",
            f"- **Latest:** {_value(latest.get('tag'))} @ "
            f"{_value(latest.get('created_at'))}",
            "- **Deployment Frequency (days):** "
            f"{_value(dora.get('deployment_frequency_days'))}",
            f"- **Lead Time for Change:** {format_hours(lead_time.get('avg_hours'))}",
            f"  - Number of commits: {lead_time.get('commit_count', 0)}",
            f"  - Oldest: {format_hours(lead_time.get('oldest_hours'))} "
            f"{_short(lead_time.get('oldest_commit_sha'))}".rstrip(),
            f"  - Newest: {format_hours(lead_time.get('newest_hours'))} "
            f"{_short(lead_time.get('newest_commit_sha'))}".rstrip(),
            "",
        ]

    devex = metrics.get("devex") or {}
    if devex.get("pr_size") or devex.get("pr_maturity"):
        lines.append("#### DevEx Metrics")
        size = devex.get("pr_size")
        if size:
            details = size.get("details", {})
            lines += [
                f"- **PR Size:** {SIZE_EMOJI.get(size['size'], '❓')} "
                f"{size['size'].upper()} ({size['category']})",
                f"- **Total Changes:** {_value(details.get('total_changes'))}",
                f"- **Lines Added:** {_value(details.get('total_additions'))}",
                f"- **Lines Removed:** {_value(details.get('total_deletions'))}",
                f"- **Files Changed:** {_value(details.get('files_changed'))}",
            ]
        maturity = devex.get("pr_maturity")
        if maturity:
            percentage = maturity.get("maturity_percentage")
            lines.append(
                f"- **PR Maturity:** {maturity_emoji(percentage)} "
                f"{_value(percentage)}% ({_value(maturity.get('maturity_ratio'))})"
            )
            details = maturity.get("details", {})
            if details and not details.get("error"):
                lines += [
                    f"- **Total Commits:** {details.get('total_commits')}",
                    f"- **Stable Changes:** {details.get('stable_changes')}",
                    "- **Changes After Publication:** "
                    f"{details.get('changes_after_publication')}",
                ]
        lines.append("")

    for family, error in (document.get("errors") or {}).items():
        lines.append(f"- ⚠️ **{family}:** {error}")

    return "\n".join(lines).rstrip() + "\n"


def render_size_comment(result: PRSizeResult) -> str:
    details = result.details
    return (
        f"## {SIZE_EMOJI.get(result.size, '❓')} PR Size: {result.size.upper()}\n\n"
        "This pull request has been automatically categorized as "
        f"**{result.size}** based on the following metrics:\n\n"
        f"- **Lines added:** {details.get('total_additions', 0)}\n"
        f"- **Lines removed:** {details.get('total_deletions', 0)}\n"
        f"- **Total changes:** {details.get('total_changes', 0)}\n"
        f"- **Files changed:** {details.get('files_changed', 0)}\n\n"
        "*This comment was generated automatically by velocity.*"
    )


def _headline(emoji: str, title: str, value: str, rating: Rating) -> str:
    return f"### {emoji} {title}: **{value}** (*{rating}*)"


def render_team_report(
    team: TeamMetrics | NoTeamData,
    ratings: RatingConfig | None = None,
    generated_at: datetime | None = None,
) -> str:
    ratings = ratings or RatingConfig()
    generated_at = generated_at or team.window.end

    if isinstance(team, NoTeamData):
        return (
            "# 📊 Engineering Metrics Report\n\n"
            f"| **Period** | {team.period} |\n"
            "| ---------- | --------------------- |\n\n"
            f"⚠️ **Error:** {team.reason}\n"
        )

    lines = [
        "# 📊 Engineering Metrics Report",
        "",
        f"> **Period:** {team.period.value.capitalize()}",
        f"> **Date range:** {team.window.start.date()} → {team.window.end.date()}",
        f"> **Total PRs:** {team.total_prs} &nbsp;|&nbsp; "
        f"**Unique authors:** {team.unique_authors}",
        "",
        "---",
        "",
    ]

    cycle, deploy = team.cycle_time, team.deploy_frequency
    if cycle.avg_hours is not None or deploy.per_week is not None:
        lines += ["## 🚀 Delivery Metrics", ""]
        if cycle.avg_hours is not None:
            lines += [
                _headline(
                    RATING_EMOJI.get(cycle.rating, "❓"),
                    "Cycle Time",
                    f"{cycle.avg_hours}h",
                    cycle.rating,
                ),
                "**Definition:** Time from code commit to release<br>",
                f"**Sample size:** {cycle.commit_count} commits<br>",
                f"📅 **Oldest commit:** {cycle.oldest_hours}h<br>",
                f"📅 **Newest commit:** {cycle.newest_hours}h",
                "",
            ]
        if deploy.per_week is not None:
            lines += [
                _headline(
                    RATING_EMOJI.get(deploy.rating, "❓"),
                    "Deploy Frequency",
                    f"{deploy.per_week}",
                    deploy.rating,
                ),
                "**Definition:** Number of releases in the period "
                "(normalized to per week)<br>",
                f"**Sample size:** {deploy.deploy_count} releases",
                "",
            ]
        lines += ["---", ""]

    lines += ["## 📊 Review Time Metrics", ""]
    for title, stat, definition in (
        ("Pickup Time", team.pickup_time, PICKUP_DEFINITION),
        ("Approve Time", team.approve_time, APPROVE_DEFINITION),
        ("Merge Time", team.merge_time, MERGE_DEFINITION),
    ):
        if stat.average_hours is None:
            continue
        lines += [
            _headline(
                RATING_EMOJI.get(stat.rating, "❓"),
                title,
                f"{stat.average_hours}h",
                stat.rating,
            ),
            f"**Definition:** {definition}<br>",
            f"**Sample size:** {stat.sample_size} PRs",
            "",
        ]

    frequency = team.merge_frequency
    lines += [
        _headline(
            RATING_EMOJI.get(frequency.rating, "❓"),
            "Merge Frequency",
            f"{frequency.value} PRs/dev/week",
            frequency.rating,
        ),
        "",
        "| Metric | Value |",
        "|---|---:|",
        f"| Merged PRs | {frequency.merged_prs} |",
        f"| Total PRs | {frequency.total_prs} |",
        f"| Unique authors | {frequency.unique_authors} |",
        "",
        "---",
        "",
        "## 📏 PR Size Distribution",
        "",
        "| Size | Percentage | Rating |",
        "| ---- | ---------- | ------ |",
    ]

    distribution = team.size_distribution
    for size, percent in distribution.percentages.items():
        if size == UNKNOWN_SIZE:
            continue
        rating = ratings.rate_pr_size(size)
        name = SIZE_NAMES.get(size, size.upper())
        lines.append(
            f"| **{name}** | {percent}% | {RATING_EMOJI.get(rating, '❓')} {rating} |"
        )
    unknown = distribution.percentages.get(UNKNOWN_SIZE, 0)
    if unknown > 0:
        lines.append(f"| **Unknown** | {unknown}% | ❓ Unknown |")

    predominant_emoji = RATING_EMOJI.get(distribution.predominant_rating, "❓")
    lines += [
        "",
        f"**Predominant Size:** {predominant_emoji} "
        f"{distribution.predominant_size.upper()} "
        f"({distribution.predominant_percent}%) - {distribution.predominant_rating}",
        "",
        "---",
        "",
        f"*Report generated on {generated_at.strftime('%b %d, %Y %H:%M %Z').strip()}*",
    ]
    return "\n".join(lines) + "\n"


def write_json(path: Path, document: Mapping[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2, default=str) + "\n")
    path.chmod(0o644)
    logger.info(f"Metrics written to {path.name}")
    return path


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    path.chmod(0o644)
    logger.info(f"Report written to {path.name}")
    return path

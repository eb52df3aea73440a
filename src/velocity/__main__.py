import argparse
from dataclasses import replace
import json
import sys
from typing import Any

from velocity.app import MetricsApplication
from velocity.config import MetricFamily, TimePeriod, VelocityConfig
from velocity.exceptions import ConfigurationError, SecurityError, VelocityException
from velocity.logger import get_logger, setup_logging
from velocity.report import render_summary, team_record, write_json, write_text
from velocity.security import SecurityValidator


logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="velocity",
        description="Velocity - engineering delivery metrics for GitHub repositories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file (default: environment variables)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["json", "text"],
        help="Logging format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    collect_parser = subparsers.add_parser(
        "collect", help="Collect delivery and pull request metrics"
    )
    collect_parser.add_argument(
        "--pr",
        type=SecurityValidator.validate_pr_number,
        help="Pull request number for PR size and maturity",
    )
    collect_parser.add_argument(
        "--metrics",
        type=str,
        help="Comma-separated metric families to collect (overrides config)",
    )
    collect_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Write the metrics JSON document to this path",
    )
    collect_parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a Markdown summary instead of JSON",
    )
    collect_parser.add_argument(
        "--comment",
        action="store_true",
        help="Post the PR size as a comment on the pull request",
    )
    collect_parser.add_argument(
        "--label",
        action="store_true",
        help="Add a size/<x> label to the pull request",
    )

    team_parser = subparsers.add_parser("team", help="Build the team metrics report")
    team_parser.add_argument(
        "--period",
        type=str,
        choices=[period.value for period in TimePeriod],
        help="Rolling window (overrides config)",
    )
    team_parser.add_argument(
        "--days",
        type=int,
        help="Window length in days (overrides the period's day count)",
    )
    team_parser.add_argument(
        "--report",
        "-r",
        type=str,
        help="Write the Markdown report to this path",
    )
    team_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the team metrics as JSON instead of Markdown",
    )

    subparsers.add_parser("check", help="Validate configuration and access")
    return parser


def _load_app(args: argparse.Namespace) -> MetricsApplication:
    if args.config:
        config_path = SecurityValidator.validate_config_path(args.config)
        return MetricsApplication.from_file(config_path)
    return MetricsApplication.from_env()


def _with_cli_overrides(
    app: MetricsApplication, args: argparse.Namespace
) -> MetricsApplication:
    config = app.config
    if getattr(args, "metrics", None):
        config = config.with_overrides(
            enabled_metrics=VelocityConfig.parse_metrics(args.metrics)
        )
    if getattr(args, "period", None) or getattr(args, "days", None):
        changes: dict[str, Any] = {}
        if args.period:
            changes["time_period"] = TimePeriod(args.period)
        if args.days:
            changes["window_days"] = args.days
        config = config.with_overrides(options=replace(config.options, **changes))
    if config is app.config:
        return app
    return MetricsApplication(config)


def run_collect(app: MetricsApplication, args: argparse.Namespace) -> None:
    document = app.collect(pr_number=args.pr)

    if args.output:
        output_path = SecurityValidator.validate_output_path(args.output)
        write_json(output_path, document)

    if args.summary:
        print(render_summary(document))
    elif not args.output:
        print(json.dumps(document, indent=2, default=str))

    if (args.comment or args.label) and args.pr is not None:
        if not app.is_enabled(MetricFamily.PR_SIZE):
            raise ConfigurationError("--comment/--label require the pr-size metric")
        app.publish_pr_size(
            args.pr, app.pr_size(args.pr), comment=args.comment, label=args.label
        )


def run_team(app: MetricsApplication, args: argparse.Namespace) -> None:
    team, report = app.team_report()

    if args.report:
        report_path = SecurityValidator.validate_output_path(args.report)
        write_text(report_path, report)

    if args.json:
        print(json.dumps(team_record(team), indent=2, default=str))
    elif not args.report:
        print(report)


def run_check(app: MetricsApplication) -> None:
    config = app.config
    logger.info(f"Repository: {config.repo}")
    logger.info(f"Base URL: {config.base_url or 'default'}")
    enabled = ", ".join(sorted(family.value for family in config.enabled_metrics))
    logger.info(f"Enabled metrics: {enabled}")
    releases = app.source.list_releases(limit=1)
    logger.info(f"Repository reachable ({len(releases)} recent release(s) visible)")
    print("Configuration is valid!")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level or "INFO", args.log_format or "text")

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        app = _load_app(args)
        setup_logging(
            args.log_level or app.config.log_level,
            args.log_format or app.config.log_format,
        )
        app = _with_cli_overrides(app, args)

        if args.command == "collect":
            run_collect(app, args)
        elif args.command == "team":
            run_team(app, args)
        elif args.command == "check":
            run_check(app)

    except ConfigurationError as e:
        logger.error(
            f"Configuration error: {SecurityValidator.sanitize_error_message(e)}"
        )
        sys.exit(1)
    except SecurityError as e:
        logger.error(f"Security error: {e}")
        sys.exit(1)
    except VelocityException as e:
        logger.error(
            f"Application error: {SecurityValidator.sanitize_error_message(e)}"
        )
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(
            f"Unexpected error: {SecurityValidator.sanitize_error_message(e)}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()

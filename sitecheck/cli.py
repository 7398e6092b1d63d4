"""Command-line entry point: run scenario suites against the live site.

Usage:
    sitecheck                                  # every scenario, declared variants
    sitecheck --scenario homepage --variant mobile
    sitecheck --tag smoke --concurrency 2 --report-name nightly
"""

import argparse
import asyncio
import logging
import sys

import structlog

from sitecheck.catalog import default_catalog
from sitecheck.config import SiteCheckConfig, load_config
from sitecheck.report import ScenarioReport
from sitecheck.reporting import ReportGenerator
from sitecheck.runner import SuiteRunner
from sitecheck.suite import ScenarioValidationError, filter_scenarios, load_scenarios


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(str(level_name or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="sitecheck", description="Resilient page checks for a live marketing site")
    ap.add_argument("--config", default=None, help="YAML config path (default: $SITECHECK_CONFIG or config/sitecheck.yaml)")
    ap.add_argument("--scenarios-dir", default=None, help="Directory of scenario files")
    ap.add_argument("--scenario", action="append", default=[], help="Run only this scenario (repeatable)")
    ap.add_argument("--tag", action="append", default=[], help="Run scenarios carrying this tag (repeatable)")
    ap.add_argument("--variant", action="append", default=[], help="Override variants: viewport preset or device name")
    ap.add_argument("--concurrency", type=int, default=None)
    ap.add_argument("--headed", action="store_true", help="Show the browser window")
    ap.add_argument("--report-name", default=None)
    ap.add_argument("--log-level", default=None)
    return ap


async def run(config: SiteCheckConfig, args: argparse.Namespace) -> list[ScenarioReport]:
    logger = structlog.get_logger("sitecheck")
    known = list(config.viewports) + list(config.devices)
    for variant in args.variant:
        if variant not in known:
            raise ScenarioValidationError(f"unknown_variant: {variant}")

    scenarios = load_scenarios(
        args.scenarios_dir or config.scenarios_directory,
        catalog=default_catalog(),
        known_variants=known,
    )
    scenarios = filter_scenarios(scenarios, names=args.scenario, tags=args.tag)
    if not scenarios:
        logger.warning("No scenarios selected")
        return []

    async with SuiteRunner(config) as runner:
        return await runner.run_suite(scenarios, variants=args.variant or None, concurrency=args.concurrency)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    if args.headed:
        config = config.model_copy(update={"browser_headless": False})
    if args.log_level:
        config = config.model_copy(update={"log_level": args.log_level})
    configure_logging(config.log_level)
    logger = structlog.get_logger("sitecheck")

    try:
        reports = asyncio.run(run(config, args))
    except ScenarioValidationError as exc:
        logger.error("Invalid scenario suite", error=str(exc))
        return 2

    generator = ReportGenerator(config)
    summary = generator.generate_suite_report(reports, args.report_name)
    print(generator.render_text(reports))
    logger.info("Report written", path=summary.get("json_path"))
    return 0 if all(r.passed for r in reports) else 1


if __name__ == "__main__":
    raise SystemExit(main())

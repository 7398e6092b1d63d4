"""Suite runner: owns Playwright, one Chromium and the HTTP client for link probes."""

import asyncio
from pathlib import Path
from typing import Any

import httpx
import structlog
from playwright.async_api import Browser, async_playwright

from sitecheck.browser import launch_browser
from sitecheck.config import SiteCheckConfig, get_config
from sitecheck.report import ScenarioReport
from sitecheck.scenario import Scenario, ScenarioDriver, context_options

logger = structlog.get_logger(__name__)


class SuiteRunner:
    """Runs scenarios against the live site, one isolated context per run."""

    def __init__(self, config: SiteCheckConfig | None = None):
        self.config = config or get_config()
        self.playwright: Any = None
        self.browser: Browser | None = None
        self.http_client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()

    async def start(self):
        """Start Playwright, the browser and the link-check client."""
        logger.info("Starting suite runner", base_url=self.config.base_url)
        self.playwright = await async_playwright().start()
        self.browser = await launch_browser(self.playwright, self.config)
        self.http_client = httpx.AsyncClient(
            timeout=self.config.query_timeout_ms / 1000.0,
            verify=not self.config.ignore_https_errors,
            headers={"User-Agent": self.config.user_agent} if self.config.user_agent else None,
        )

    async def stop(self):
        """Cleanup browser resources."""
        logger.info("Stopping suite runner")
        if self.http_client:
            await self.http_client.aclose()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()

    @property
    def known_variants(self) -> list[str]:
        return list(self.config.viewports) + list(self.config.devices)

    def _context_kwargs(self, variant: str | None) -> dict[str, Any]:
        devices = self.playwright.devices if self.playwright is not None else {}
        return context_options(self.config, variant, devices)

    def _screenshot_dir(self) -> str | None:
        if not self.config.screenshot_on_failure:
            return None
        return str(Path(self.config.reports_directory) / "screenshots")

    async def run_scenario(self, scenario: Scenario, variant: str | None = None) -> ScenarioReport:
        """Run one scenario under one variant."""
        if self.browser is None:
            raise RuntimeError("SuiteRunner is not started")
        driver = ScenarioDriver(
            scenario,
            self.config,
            variant=variant,
            context_kwargs=self._context_kwargs(variant),
            http_client=self.http_client,
            screenshot_dir=self._screenshot_dir(),
        )
        return await driver.run(self.browser)

    async def run_suite(
        self,
        scenarios: list[Scenario],
        *,
        variants: list[str] | None = None,
        concurrency: int | None = None,
    ) -> list[ScenarioReport]:
        """
        Expand every scenario into one run per variant and execute them with
        bounded parallelism. ``variants`` replaces each scenario's declared
        variants when given. Reports come back in run order.
        """
        runs: list[tuple[Scenario, str | None]] = []
        for scenario in scenarios:
            chosen = variants or list(scenario.variants) or [None]
            for variant in chosen:
                runs.append((scenario, variant))

        limit = max(1, int(concurrency or self.config.concurrency))
        sem = asyncio.Semaphore(limit)
        logger.info("Running suite", scenarios=len(scenarios), runs=len(runs), concurrency=limit)

        async def _run_one(scenario: Scenario, variant: str | None) -> ScenarioReport:
            async with sem:
                return await self.run_scenario(scenario, variant)

        reports = await asyncio.gather(*(_run_one(s, v) for s, v in runs))
        failed = sum(1 for r in reports if not r.passed)
        logger.info("Suite finished", runs=len(reports), failed=failed)
        return list(reports)

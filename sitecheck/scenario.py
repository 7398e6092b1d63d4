"""Scenario declarations and the driver that runs one scenario under one variant."""

from __future__ import annotations

import asyncio
import os
import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Mapping
from urllib.parse import urljoin

import httpx
import structlog
from playwright.async_api import Browser, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from sitecheck.browser import apply_media_filter, is_browser_infra_error, safe_url
from sitecheck.catalog import Catalog
from sitecheck.config import SiteCheckConfig
from sitecheck.keywords import extract_text, verify_keywords
from sitecheck.locators import LocatorResolver
from sitecheck.policy import INFORMATIONAL, RECOMMENDED, REQUIRED, downgrade_interaction_error
from sitecheck.probes import ProbeContext, run_probe
from sitecheck.report import DONE, FAILED, NAVIGATING, REPORTING, VERIFYING, ScenarioReport

logger = structlog.get_logger(__name__)


INTERACTION_ACTIONS = ("click", "fill", "press", "fill_and_submit")


@dataclass(frozen=True)
class TitleExpectation:
    pattern: str
    tier: str = REQUIRED


@dataclass(frozen=True)
class UrlExpectation:
    contains: str
    tier: str = REQUIRED


@dataclass(frozen=True)
class ElementExpectation:
    element: str
    tier: str = REQUIRED
    params: dict[str, str] = field(default_factory=dict)
    mode: str | None = None
    attribute: str | None = None
    text_contains: str | None = None
    attribute_contains: str | None = None
    min_count: int = 1

    @property
    def label(self) -> str:
        if not self.params:
            return self.element
        return f"{self.element}[{','.join(str(v) for v in self.params.values())}]"


@dataclass(frozen=True)
class KeywordExpectation:
    keyword_set: str
    tier: str = RECOMMENDED
    min_matched: int = 1
    min_coverage: float | None = None
    scope: str = "body"


@dataclass(frozen=True)
class ProbeExpectation:
    probe: str
    tier: str = INFORMATIONAL


@dataclass(frozen=True)
class InteractionExpectation:
    element: str
    action: str
    tier: str = RECOMMENDED
    params: dict[str, str] = field(default_factory=dict)
    value: str | None = None
    key: str | None = None

    @property
    def label(self) -> str:
        suffix = f"[{','.join(str(v) for v in self.params.values())}]" if self.params else ""
        return f"{self.action}:{self.element}{suffix}"


@dataclass(frozen=True)
class Scenario:
    name: str
    url: str
    description: str = ""
    tags: tuple[str, ...] = ()
    variants: tuple[str, ...] = ()
    status_tier: str | None = REQUIRED  # None skips the status check
    title: TitleExpectation | None = None
    url_contains: UrlExpectation | None = None
    elements: tuple[ElementExpectation, ...] = ()
    keywords: tuple[KeywordExpectation, ...] = ()
    probes: tuple[ProbeExpectation, ...] = ()
    interactions: tuple[InteractionExpectation, ...] = ()
    catalog: Catalog = field(default_factory=Catalog, repr=False, compare=False)

    def absolute_url(self, base_url: str) -> str:
        if self.url.startswith(("http://", "https://")):
            return self.url
        return urljoin(base_url.rstrip("/") + "/", self.url.lstrip("/"))


def context_options(
    config: SiteCheckConfig,
    variant: str | None,
    devices: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Browser context kwargs for a variant: a configured viewport preset name or
    a Playwright device profile name.
    """
    opts: dict[str, Any] = {"ignore_https_errors": config.ignore_https_errors}
    name = variant or config.default_viewport
    if name in config.viewports:
        opts["viewport"] = config.viewports[name].as_playwright()
        if config.user_agent:
            opts["user_agent"] = config.user_agent
        return opts
    if devices and name in devices:
        opts.update(dict(devices[name]))
        return opts
    raise ValueError(f"unknown_variant: {name!r}")


class ScenarioDriver:
    """
    Runs one scenario under one variant in a fresh browser context.

    Navigation failure is the only fatal outcome; every other problem becomes a
    check record classified by its tier.
    """

    def __init__(
        self,
        scenario: Scenario,
        config: SiteCheckConfig,
        *,
        variant: str | None = None,
        context_kwargs: dict[str, Any] | None = None,
        resolver: LocatorResolver | None = None,
        http_client: httpx.AsyncClient | None = None,
        screenshot_dir: str | None = None,
    ):
        self.scenario = scenario
        self.config = config
        self.variant = variant
        self.context_kwargs = context_kwargs if context_kwargs is not None else context_options(config, variant)
        self.resolver = resolver or LocatorResolver(
            mode=config.resolver_mode, query_timeout_ms=config.query_timeout_ms
        )
        self.http_client = http_client
        self.screenshot_dir = screenshot_dir
        self.url = scenario.absolute_url(config.base_url)
        self.console_errors: list[str] = []
        self._texts: dict[str, str] = {}

    @property
    def _query_timeout_s(self) -> float:
        return max(0.001, self.config.query_timeout_ms / 1000.0)

    def _on_console(self, msg: Any) -> None:
        if getattr(msg, "type", None) == "error":
            self.console_errors.append(str(getattr(msg, "text", "") or "")[:500])

    def _on_page_error(self, error: Any) -> None:
        self.console_errors.append(str(error)[:500])

    async def run(self, browser: Browser) -> ScenarioReport:
        report = ScenarioReport(scenario=self.scenario.name, url=self.url, variant=self.variant)
        self.console_errors = []
        self._texts = {}
        started = time.perf_counter()
        context = None
        page = None
        log = logger.bind(scenario=report.run_name)
        try:
            report.state = NAVIGATING
            log.info("Navigating", url=safe_url(self.url))
            try:
                context = await browser.new_context(**self.context_kwargs)
                if self.config.block_media:
                    await apply_media_filter(context)
                page = await context.new_page()
                page.on("console", self._on_console)
                page.on("pageerror", self._on_page_error)
                response = await page.goto(
                    self.url,
                    wait_until=self.config.navigation_wait_until,
                    timeout=self.config.navigation_timeout_ms,
                )
            except PlaywrightTimeoutError:
                self._fail_navigation(report, "navigation timeout")
                return report
            except PlaywrightError as exc:
                report.browser_infra_error = is_browser_infra_error(exc)
                self._fail_navigation(report, f"navigation error: {exc}")
                return report

            await self._await_quiescence(page, report)

            report.state = VERIFYING
            await self._verify(page, response, report)

            report.state = REPORTING
            report.final_url = safe_url(page.url)
            report.state = DONE
        except PlaywrightError as exc:
            # The page or browser went away mid-verification.
            report.browser_infra_error = is_browser_infra_error(exc)
            report.add(
                "driver",
                kind="driver",
                tier=REQUIRED,
                satisfied=False,
                message=f"{type(exc).__name__}: {exc}",
            )
            report.state = FAILED
        finally:
            report.elapsed_ms = round((time.perf_counter() - started) * 1000.0, 3)
            if not report.passed and page is not None:
                report.screenshot_path = await self._failure_screenshot(page, report)
            await self._close(page, context)
            log.info("Scenario finished", state=report.state, verdict=report.verdict, elapsed_ms=report.elapsed_ms)
        return report

    def _fail_navigation(self, report: ScenarioReport, message: str) -> None:
        report.add(
            "navigation",
            kind="navigation",
            tier=REQUIRED,
            satisfied=False,
            message=message,
            evidence={"url": safe_url(self.url), "timeout_ms": self.config.navigation_timeout_ms},
        )
        report.state = FAILED

    async def _await_quiescence(self, page: Any, report: ScenarioReport) -> None:
        if not self.config.wait_for_network_idle:
            return
        timeout_ms = self.config.quiescence_timeout_ms
        try:
            await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            report.add(
                "network-quiescence",
                kind="quiescence",
                tier=INFORMATIONAL,
                satisfied=False,
                message=f"network not idle after {timeout_ms}ms",
            )

    async def _verify(self, page: Any, response: Any, report: ScenarioReport) -> None:
        s = self.scenario
        if s.status_tier is not None:
            self._check_status(response, report)
        if s.title is not None:
            await self._check_title(page, report)
        if s.url_contains is not None:
            self._check_url(page, report)
        for exp in s.elements:
            await self._check_element(page, exp, report)
        for exp in s.keywords:
            await self._check_keywords(page, exp, report)
        if s.probes:
            await self._run_probes(page, response, report)
        for exp in s.interactions:
            await self._interact(page, exp, report)

    def _check_status(self, response: Any, report: ScenarioReport) -> None:
        tier = self.scenario.status_tier or REQUIRED
        if response is None:
            report.add("status", kind="status", tier=tier, satisfied=False, message="no navigation response")
            return
        status = int(response.status)
        report.add(
            "status",
            kind="status",
            tier=tier,
            satisfied=200 <= status < 400,
            message=f"HTTP {status}",
            evidence={"status": status},
        )

    async def _check_title(self, page: Any, report: ScenarioReport) -> None:
        exp = self.scenario.title
        assert exp is not None
        try:
            title = await asyncio.wait_for(page.title(), timeout=self._query_timeout_s)
        except asyncio.TimeoutError:
            report.add("title", kind="title", tier=exp.tier, satisfied=False, message="title read timed out")
            return
        except PlaywrightError as exc:
            if is_browser_infra_error(exc):
                report.browser_infra_error = True
            report.add(
                "title",
                kind="title",
                tier=exp.tier,
                satisfied=False,
                message=f"title read failed: {type(exc).__name__}: {exc}",
            )
            return
        report.title = title
        ok = re.search(exp.pattern, title or "", re.IGNORECASE) is not None
        msg = f"title {title!r} matches /{exp.pattern}/" if ok else f"title {title!r} does not match /{exp.pattern}/"
        report.add("title", kind="title", tier=exp.tier, satisfied=ok, message=msg, evidence={"title": title})

    def _check_url(self, page: Any, report: ScenarioReport) -> None:
        exp = self.scenario.url_contains
        assert exp is not None
        current = page.url or ""
        ok = exp.contains in current
        msg = f"url contains {exp.contains!r}" if ok else f"url {safe_url(current)!r} lacks {exp.contains!r}"
        report.add("url", kind="url", tier=exp.tier, satisfied=ok, message=msg, evidence={"url": safe_url(current)})

    async def _check_element(self, page: Any, exp: ElementExpectation, report: ScenarioReport) -> None:
        element = self.scenario.catalog.element(exp.element, exp.params)
        if exp.attribute:
            element = replace(element, attribute=exp.attribute)
        result = await self.resolver.resolve(page, element, mode=exp.mode)
        evidence = result.to_evidence()

        if not result.found:
            msg = f"{element.name} not found; tried: {', '.join(result.tried)}"
            if result.hidden_match_index is not None:
                msg += f" (hidden match at candidate #{result.hidden_match_index})"
            report.add(element.name, kind="element", tier=exp.tier, satisfied=False, message=msg, evidence=evidence)
            return

        problems: list[str] = []
        if result.count < exp.min_count:
            problems.append(f"{result.count} match(es), expected at least {exp.min_count}")
        if exp.text_contains and exp.text_contains.lower() not in (result.sample_text or "").lower():
            problems.append(f"text {result.sample_text!r} lacks {exp.text_contains!r}")
        if exp.attribute_contains and exp.attribute_contains not in (result.attribute_value or ""):
            problems.append(f"{element.attribute}={result.attribute_value!r} lacks {exp.attribute_contains!r}")

        where = f"{result.matched_candidate} (#{result.matched_index})"
        if problems:
            msg = f"{element.name} found via {where} but " + "; ".join(problems)
        else:
            msg = f"{element.name} found via {where}"
        report.add(element.name, kind="element", tier=exp.tier, satisfied=not problems, message=msg, evidence=evidence)

    async def _page_text(self, page: Any, scope: str) -> str:
        if scope not in self._texts:
            self._texts[scope] = await extract_text(page, scope, timeout_ms=self.config.query_timeout_ms)
        return self._texts[scope]

    async def _check_keywords(self, page: Any, exp: KeywordExpectation, report: ScenarioReport) -> None:
        keyword_set = self.scenario.catalog.keyword_set(exp.keyword_set)
        text = await self._page_text(page, exp.scope)
        outcome = verify_keywords(text, keyword_set)

        needed = min(exp.min_matched, outcome.total)
        ok = len(outcome.matched) >= needed
        if exp.min_coverage is not None and outcome.coverage < exp.min_coverage:
            ok = False
        msg = f"{keyword_set.name}: {len(outcome.matched)}/{outcome.total} matched ({outcome.coverage:.0%})"
        if outcome.missing:
            msg += f"; missing: {', '.join(outcome.missing)}"
        report.add(
            keyword_set.name,
            kind="keywords",
            tier=exp.tier,
            satisfied=ok,
            message=msg,
            evidence=outcome.to_evidence(),
        )

    async def _run_probes(self, page: Any, response: Any, report: ScenarioReport) -> None:
        headers: dict[str, str] = {}
        if response is not None:
            try:
                headers = await asyncio.wait_for(response.all_headers(), timeout=self._query_timeout_s)
            except (asyncio.TimeoutError, PlaywrightError) as exc:
                logger.warning("Response headers unavailable", scenario=report.run_name, error=str(exc))
        ctx = ProbeContext(
            page=page,
            base_url=self.url,
            response_headers=headers,
            body_text=await self._page_text(page, "body"),
            console_errors=self.console_errors,
            http_client=self.http_client,
            navigation_timeout_ms=self.config.navigation_timeout_ms,
            internal_link_sample=self.config.internal_link_sample,
            external_link_sample=self.config.external_link_sample,
        )
        for exp in self.scenario.probes:
            outcome = await run_probe(exp.probe, ctx, timeout_ms=self.config.quiescence_timeout_ms)
            report.add(
                exp.probe,
                kind="probe",
                tier=exp.tier,
                satisfied=outcome.satisfied,
                message=outcome.message,
                evidence=outcome.evidence,
            )

    async def _interact(self, page: Any, exp: InteractionExpectation, report: ScenarioReport) -> None:
        element = self.scenario.catalog.element(exp.element, exp.params)
        result = await self.resolver.resolve(page, element)
        if not result.found or result.locator is None:
            report.add(
                exp.label,
                kind="interaction",
                tier=exp.tier,
                satisfied=False,
                message=f"{element.name} not available for {exp.action}",
                evidence=result.to_evidence(),
                verdict=downgrade_interaction_error(exp.tier),
            )
            return

        timeout_ms = self.config.query_timeout_ms
        target = result.locator
        try:
            if exp.action == "click":
                await target.click(timeout=timeout_ms)
            elif exp.action == "fill":
                await target.fill(exp.value or "", timeout=timeout_ms)
            elif exp.action == "press":
                await target.press(exp.key or "Enter", timeout=timeout_ms)
            elif exp.action == "fill_and_submit":
                await target.fill(exp.value or "", timeout=timeout_ms)
                await target.press(exp.key or "Enter", timeout=timeout_ms)
                await page.wait_for_load_state("domcontentloaded", timeout=self.config.quiescence_timeout_ms)
            else:
                raise ValueError(f"unknown_action: {exp.action!r}")
        except (PlaywrightError, asyncio.TimeoutError) as exc:
            if is_browser_infra_error(exc):
                report.browser_infra_error = True
            report.add(
                exp.label,
                kind="interaction",
                tier=exp.tier,
                satisfied=False,
                message=f"{exp.action} on {element.name} raised {type(exc).__name__}: {exc}",
                evidence={"candidate": result.matched_candidate},
                verdict=downgrade_interaction_error(exp.tier),
            )
            return

        report.add(
            exp.label,
            kind="interaction",
            tier=exp.tier,
            satisfied=True,
            message=f"{exp.action} on {element.name} via {result.matched_candidate}",
            evidence={"candidate": result.matched_candidate, "url": safe_url(page.url)},
        )

    async def _failure_screenshot(self, page: Any, report: ScenarioReport) -> str | None:
        if not self.screenshot_dir:
            return None
        safe = "".join(ch if ch.isalnum() or ch in ("-", "_") else "_" for ch in report.run_name)[:80]
        path = os.path.join(self.screenshot_dir, f"{safe}-failure.png")
        try:
            os.makedirs(self.screenshot_dir, exist_ok=True)
            await page.screenshot(path=path, full_page=True)
        except (PlaywrightError, OSError) as exc:
            logger.warning("Failure screenshot not captured", scenario=report.run_name, error=str(exc))
            return None
        return path

    async def _close(self, page: Any, context: Any) -> None:
        for closable in (page, context):
            if closable is None:
                continue
            try:
                await closable.close()
            except PlaywrightError as exc:
                logger.debug("Close failed", error=str(exc))

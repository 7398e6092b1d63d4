"""Page-level probes: SEO, accessibility, link hygiene, headers and timing."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from urllib.parse import urljoin, urlsplit

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError

from sitecheck.browser import safe_url

logger = structlog.get_logger(__name__)


PHONE_RE = re.compile(r"\+63[0-9\s\-()]{10,}|0[0-9]{2,3}[\s\-]?[0-9]{3,4}[\s\-]?[0-9]{4}")
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

SECURITY_HEADERS = (
    "x-content-type-options",
    "x-frame-options",
    "strict-transport-security",
    "content-security-policy",
)

OPEN_GRAPH_REQUIRED = ("og:title", "og:description", "og:image")


@dataclass
class ProbeContext:
    page: Any
    base_url: str
    response_headers: dict[str, str] = field(default_factory=dict)
    body_text: str = ""
    console_errors: list[str] = field(default_factory=list)
    http_client: httpx.AsyncClient | None = None
    navigation_timeout_ms: int = 30000
    internal_link_sample: int = 10
    external_link_sample: int = 5


@dataclass(frozen=True)
class ProbeOutcome:
    satisfied: bool
    message: str
    evidence: dict[str, Any] = field(default_factory=dict)


ProbeFn = Callable[[ProbeContext], Awaitable[ProbeOutcome]]


async def _attr_values(page: Any, selector: str, attribute: str, *, limit: int | None = None) -> list[str | None]:
    return await page.eval_on_selector_all(
        selector,
        "(els, args) => els.slice(0, args.limit).map(e => e.getAttribute(args.attr))",
        {"attr": attribute, "limit": limit if limit is not None else 100000},
    )


async def probe_meta_description(ctx: ProbeContext) -> ProbeOutcome:
    values = await _attr_values(ctx.page, 'meta[name="description"]', "content", limit=1)
    if not values or not values[0]:
        return ProbeOutcome(False, "meta description not found")
    content = values[0].strip()
    ok = 50 < len(content) < 160
    msg = f"meta description ({len(content)} chars)"
    if not ok:
        msg += " outside 50..160"
    return ProbeOutcome(ok, msg, {"content": content, "length": len(content)})


async def probe_open_graph(ctx: ProbeContext) -> ProbeOutcome:
    found: dict[str, str] = {}
    for prop in OPEN_GRAPH_REQUIRED:
        values = await _attr_values(ctx.page, f'meta[property="{prop}"]', "content", limit=1)
        if values and values[0]:
            found[prop] = values[0]
    missing = [p for p in OPEN_GRAPH_REQUIRED if p not in found]
    if missing:
        return ProbeOutcome(False, f"open graph tags missing: {', '.join(missing)}", {"found": found})
    return ProbeOutcome(True, "open graph tags present", {"found": found})


async def probe_single_h1(ctx: ProbeContext) -> ProbeOutcome:
    counts: dict[str, int] = {}
    for level in range(1, 7):
        counts[f"h{level}"] = await ctx.page.locator(f"h{level}").count()
    h1 = counts["h1"]
    if h1 == 1:
        return ProbeOutcome(True, "exactly one h1 heading", {"headings": counts})
    if h1 == 0:
        return ProbeOutcome(False, "no h1 heading found", {"headings": counts})
    return ProbeOutcome(False, f"{h1} h1 headings found (expected 1)", {"headings": counts})


async def probe_image_alt_text(ctx: ProbeContext) -> ProbeOutcome:
    alts = await _attr_values(ctx.page, "img", "alt")
    total = len(alts)
    with_alt = sum(1 for a in alts if a is not None and a.strip() != "")
    ok = with_alt == total
    return ProbeOutcome(ok, f"images with alt text: {with_alt}/{total}", {"with_alt": with_alt, "total": total})


async def probe_link_text(ctx: ProbeContext) -> ProbeOutcome:
    stats = await ctx.page.eval_on_selector_all(
        "a",
        "els => els.map(e => !!((e.textContent || '').trim() || e.getAttribute('aria-label')))",
    )
    total = len(stats)
    with_text = sum(1 for s in stats if s)
    ok = with_text == total
    return ProbeOutcome(ok, f"links with accessible text: {with_text}/{total}", {"with_text": with_text, "total": total})


def _host(url: str) -> str:
    return (urlsplit(url).hostname or "").lower()


async def _link_attrs(page: Any) -> list[dict[str, Any]]:
    return await page.eval_on_selector_all(
        "a[href]",
        "els => els.map(e => ({href: e.getAttribute('href'), target: e.getAttribute('target'), rel: e.getAttribute('rel')}))",
    )


async def probe_external_link_attributes(ctx: ProbeContext) -> ProbeOutcome:
    site_host = _host(ctx.base_url)
    links = await _link_attrs(ctx.page)
    external = [
        link
        for link in links
        if str(link.get("href") or "").startswith("http") and _host(str(link["href"])) not in {site_host, ""}
    ][: ctx.external_link_sample]
    offenders: list[str] = []
    for link in external:
        rel = str(link.get("rel") or "")
        if link.get("target") != "_blank" or "noopener" not in rel:
            offenders.append(str(link["href"]))
    evidence = {"checked": len(external), "offenders": offenders}
    if offenders:
        return ProbeOutcome(False, f"{len(offenders)} external link(s) lack target=_blank/rel=noopener", evidence)
    return ProbeOutcome(True, f"{len(external)} external link(s) open safely", evidence)


def _internal_hrefs(links: list[dict[str, Any]], base_url: str, limit: int) -> list[str]:
    site_host = _host(base_url)
    out: list[str] = []
    for link in links:
        href = str(link.get("href") or "").strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        absolute = urljoin(base_url, href)
        if _host(absolute) != site_host:
            continue
        if absolute not in out:
            out.append(absolute)
        if len(out) >= limit:
            break
    return out


async def probe_internal_links(ctx: ProbeContext) -> ProbeOutcome:
    if ctx.http_client is None:
        return ProbeOutcome(False, "no http client available for link checks")
    links = await _link_attrs(ctx.page)
    hrefs = _internal_hrefs(links, ctx.page.url or ctx.base_url, ctx.internal_link_sample)
    broken: dict[str, Any] = {}
    for href in hrefs:
        try:
            resp = await ctx.http_client.get(href, follow_redirects=True)
        except httpx.RequestError as exc:
            broken[safe_url(href)] = f"{type(exc).__name__}"
            continue
        if resp.status_code >= 400:
            broken[safe_url(href)] = resp.status_code
    evidence = {"checked": len(hrefs), "broken": broken}
    if broken:
        return ProbeOutcome(False, f"{len(broken)} of {len(hrefs)} internal link(s) look broken", evidence)
    return ProbeOutcome(True, f"{len(hrefs)} internal link(s) answered", evidence)


async def probe_security_headers(ctx: ProbeContext) -> ProbeOutcome:
    headers = {k.lower(): v for k, v in (ctx.response_headers or {}).items()}
    present = {h: headers[h][:200] for h in SECURITY_HEADERS if h in headers}
    missing = [h for h in SECURITY_HEADERS if h not in headers]
    evidence = {"present": present, "missing": missing}
    if missing:
        return ProbeOutcome(False, f"security headers missing: {', '.join(missing)}", evidence)
    return ProbeOutcome(True, "security headers present", evidence)


async def probe_no_horizontal_scroll(ctx: ProbeContext) -> ProbeOutcome:
    dims = await ctx.page.evaluate(
        "() => ({scroll: document.body ? document.body.scrollWidth : 0, inner: window.innerWidth})"
    )
    ok = int(dims.get("scroll") or 0) <= int(dims.get("inner") or 0)
    msg = "no horizontal scrolling" if ok else "horizontal scrolling detected"
    return ProbeOutcome(ok, msg, dims)


async def probe_load_timing(ctx: ProbeContext) -> ProbeOutcome:
    metrics = await ctx.page.evaluate(
        "() => {\n"
        "  const nav = performance.getEntriesByType('navigation')[0];\n"
        "  if (!nav) return {};\n"
        "  return {\n"
        "    dom_content_loaded_ms: nav.domContentLoadedEventEnd,\n"
        "    load_ms: nav.loadEventEnd,\n"
        "    ttfb_ms: nav.responseStart,\n"
        "  };\n"
        "}\n"
    )
    metrics = metrics if isinstance(metrics, dict) else {}
    dcl = metrics.get("dom_content_loaded_ms")
    if not isinstance(dcl, (int, float)) or dcl <= 0:
        return ProbeOutcome(False, "navigation timing unavailable", metrics)
    load = metrics.get("load_ms")
    measured = load if isinstance(load, (int, float)) and load > 0 else dcl
    ok = measured < ctx.navigation_timeout_ms
    return ProbeOutcome(ok, f"page loaded in {measured:.0f}ms", metrics)


async def probe_contact_phone(ctx: ProbeContext) -> ProbeOutcome:
    tel = await _attr_values(ctx.page, 'a[href^="tel:"]', "href", limit=1)
    if tel and tel[0]:
        return ProbeOutcome(True, f"phone link found: {tel[0]}", {"href": tel[0]})
    m = PHONE_RE.search(ctx.body_text or "")
    if m:
        return ProbeOutcome(True, f"phone number found: {m.group(0).strip()}", {"text": m.group(0).strip()})
    return ProbeOutcome(False, "no phone number found")


async def probe_contact_email(ctx: ProbeContext) -> ProbeOutcome:
    mailto = await _attr_values(ctx.page, 'a[href^="mailto:"]', "href", limit=1)
    if mailto and mailto[0]:
        return ProbeOutcome(True, f"email link found: {mailto[0]}", {"href": mailto[0]})
    m = EMAIL_RE.search(ctx.body_text or "")
    if m:
        return ProbeOutcome(True, f"email address found: {m.group(0)}", {"text": m.group(0)})
    return ProbeOutcome(False, "no email address found")


async def probe_console_errors(ctx: ProbeContext) -> ProbeOutcome:
    errors = list(ctx.console_errors)
    if errors:
        return ProbeOutcome(False, f"{len(errors)} browser console error(s)", {"errors": errors[:10]})
    return ProbeOutcome(True, "no browser console errors")


PROBES: dict[str, ProbeFn] = {
    "meta_description": probe_meta_description,
    "open_graph": probe_open_graph,
    "single_h1": probe_single_h1,
    "image_alt_text": probe_image_alt_text,
    "link_text": probe_link_text,
    "external_link_attributes": probe_external_link_attributes,
    "internal_links": probe_internal_links,
    "security_headers": probe_security_headers,
    "no_horizontal_scroll": probe_no_horizontal_scroll,
    "load_timing": probe_load_timing,
    "contact_phone": probe_contact_phone,
    "contact_email": probe_contact_email,
    "console_errors": probe_console_errors,
}


async def run_probe(name: str, ctx: ProbeContext, *, timeout_ms: int) -> ProbeOutcome:
    """Run a registered probe; errors and timeouts become unsatisfied outcomes."""
    fn = PROBES.get(name)
    if fn is None:
        return ProbeOutcome(False, f"unknown probe: {name}")
    try:
        return await asyncio.wait_for(fn(ctx), timeout=max(0.001, timeout_ms / 1000.0))
    except asyncio.TimeoutError:
        return ProbeOutcome(False, f"probe timed out after {timeout_ms}ms")
    except (PlaywrightError, httpx.HTTPError) as exc:
        logger.warning("Probe failed", probe=name, error=str(exc))
        return ProbeOutcome(False, f"probe error: {type(exc).__name__}: {exc}")

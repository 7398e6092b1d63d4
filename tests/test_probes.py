from __future__ import annotations

import asyncio

import pytest
from playwright.async_api import Error as PlaywrightError

from sitecheck.probes import (
    ProbeContext,
    _internal_hrefs,
    probe_contact_email,
    probe_contact_phone,
    probe_external_link_attributes,
    probe_load_timing,
    probe_meta_description,
    probe_no_horizontal_scroll,
    probe_open_graph,
    probe_security_headers,
    probe_single_h1,
    run_probe,
)


class _Page:
    """Answers eval_on_selector_all per selector and evaluate with one canned value."""

    def __init__(
        self,
        values: dict | None = None,
        counts: dict | None = None,
        error: Exception | None = None,
        evaluated: object = None,
    ):
        self.values = values or {}
        self.counts = counts or {}
        self.error = error
        self.evaluated = evaluated
        self.url = "https://pinoypetplan.com/"

    async def eval_on_selector_all(self, selector, script, arg=None):
        if self.error is not None:
            raise self.error
        return self.values.get(selector, [])

    async def evaluate(self, script, arg=None):
        if self.error is not None:
            raise self.error
        return self.evaluated

    def locator(self, selector):
        page = self

        class _Loc:
            async def count(self):
                return page.counts.get(selector, 0)

        return _Loc()


def _ctx(page, **kwargs) -> ProbeContext:
    return ProbeContext(page=page, base_url="https://pinoypetplan.com/", **kwargs)


@pytest.mark.asyncio
async def test_single_h1_counts_headings() -> None:
    outcome = await probe_single_h1(_ctx(_Page(counts={"h1": 2, "h2": 4})))
    assert outcome.satisfied is False
    assert outcome.evidence["headings"]["h2"] == 4
    assert "2 h1 headings" in outcome.message


@pytest.mark.asyncio
async def test_security_headers_reports_missing() -> None:
    outcome = await probe_security_headers(
        _ctx(_Page(), response_headers={"X-Frame-Options": "DENY", "strict-transport-security": "max-age=1"})
    )
    assert outcome.satisfied is False
    assert outcome.evidence["missing"] == ["x-content-type-options", "content-security-policy"]


@pytest.mark.asyncio
async def test_contact_phone_falls_back_to_text() -> None:
    outcome = await probe_contact_phone(_ctx(_Page(), body_text="Tawag na: 0917-123-4567"))
    assert outcome.satisfied is True
    assert outcome.evidence["text"] == "0917-123-4567"


def test_internal_hrefs_keep_same_host_only() -> None:
    links = [
        {"href": "/about-us/"},
        {"href": "#top"},
        {"href": "mailto:hello@pinoypetplan.com"},
        {"href": "https://facebook.com/pinoypetplan"},
        {"href": "https://pinoypetplan.com/about-us/"},
        {"href": "/contact/"},
    ]
    assert _internal_hrefs(links, "https://pinoypetplan.com/", 10) == [
        "https://pinoypetplan.com/about-us/",
        "https://pinoypetplan.com/contact/",
    ]
    assert len(_internal_hrefs(links, "https://pinoypetplan.com/", 1)) == 1


@pytest.mark.asyncio
async def test_run_probe_turns_errors_into_misses() -> None:
    outcome = await run_probe("image_alt_text", _ctx(_Page(error=PlaywrightError("Execution context was destroyed"))), timeout_ms=1000)
    assert outcome.satisfied is False
    assert "Execution context was destroyed" in outcome.message


@pytest.mark.asyncio
async def test_run_probe_bounds_slow_probes() -> None:
    class _Slow(_Page):
        async def eval_on_selector_all(self, selector, script, arg=None):
            await asyncio.sleep(1.0)
            return []

    outcome = await run_probe("link_text", _ctx(_Slow()), timeout_ms=50)
    assert outcome.satisfied is False
    assert outcome.message == "probe timed out after 50ms"


@pytest.mark.asyncio
async def test_unknown_probe_is_a_miss() -> None:
    outcome = await run_probe("lighthouse", _ctx(_Page()), timeout_ms=100)
    assert outcome.satisfied is False


@pytest.mark.asyncio
async def test_internal_links_without_client_is_a_miss() -> None:
    outcome = await run_probe("internal_links", _ctx(_Page()), timeout_ms=100)
    assert outcome.satisfied is False
    assert "no http client" in outcome.message


@pytest.mark.asyncio
@pytest.mark.parametrize(("length", "expected"), [(50, False), (51, True), (159, True), (160, False)])
async def test_meta_description_length_window(length: int, expected: bool) -> None:
    page = _Page(values={'meta[name="description"]': ["x" * length]})
    outcome = await probe_meta_description(_ctx(page))
    assert outcome.satisfied is expected
    assert outcome.evidence["length"] == length


@pytest.mark.asyncio
async def test_meta_description_missing() -> None:
    outcome = await probe_meta_description(_ctx(_Page(values={'meta[name="description"]': [None]})))
    assert outcome.satisfied is False
    assert outcome.message == "meta description not found"


@pytest.mark.asyncio
async def test_open_graph_requires_title_description_and_image() -> None:
    tags = {
        'meta[property="og:title"]': ["Pinoy Pet Plan"],
        'meta[property="og:description"]': ["Pet care plans"],
        'meta[property="og:image"]': ["https://pinoypetplan.com/og.png"],
    }
    complete = await probe_open_graph(_ctx(_Page(values=tags)))
    assert complete.satisfied is True

    del tags['meta[property="og:image"]']
    partial = await probe_open_graph(_ctx(_Page(values=tags)))
    assert partial.satisfied is False
    assert partial.message == "open graph tags missing: og:image"
    assert set(partial.evidence["found"]) == {"og:title", "og:description"}


@pytest.mark.asyncio
async def test_external_links_need_blank_target_and_noopener() -> None:
    links = [
        {"href": "https://facebook.com/pinoypetplan", "target": "_blank", "rel": "noopener noreferrer"},
        {"href": "https://instagram.com/pinoypetplan", "target": None, "rel": None},
        {"href": "https://youtube.com/@pinoypetplan", "target": "_blank", "rel": "nofollow"},
        {"href": "https://pinoypetplan.com/about-us/", "target": None, "rel": None},
        {"href": "/contact/", "target": None, "rel": None},
    ]
    outcome = await probe_external_link_attributes(_ctx(_Page(values={"a[href]": links})))

    assert outcome.satisfied is False
    assert outcome.evidence["checked"] == 3
    assert outcome.evidence["offenders"] == [
        "https://instagram.com/pinoypetplan",
        "https://youtube.com/@pinoypetplan",
    ]


@pytest.mark.asyncio
async def test_external_links_opening_safely_pass() -> None:
    links = [{"href": "https://facebook.com/pinoypetplan", "target": "_blank", "rel": "noopener"}]
    outcome = await probe_external_link_attributes(_ctx(_Page(values={"a[href]": links})))
    assert outcome.satisfied is True
    assert outcome.message == "1 external link(s) open safely"


@pytest.mark.asyncio
@pytest.mark.parametrize(("scroll", "inner", "expected"), [(375, 375, True), (420, 375, False)])
async def test_horizontal_scroll(scroll: int, inner: int, expected: bool) -> None:
    outcome = await probe_no_horizontal_scroll(_ctx(_Page(evaluated={"scroll": scroll, "inner": inner})))
    assert outcome.satisfied is expected


@pytest.mark.asyncio
async def test_load_timing_under_navigation_timeout() -> None:
    page = _Page(evaluated={"dom_content_loaded_ms": 800.0, "load_ms": 1900.0, "ttfb_ms": 120.0})
    outcome = await probe_load_timing(_ctx(page, navigation_timeout_ms=30000))
    assert outcome.satisfied is True
    assert outcome.message == "page loaded in 1900ms"


@pytest.mark.asyncio
async def test_load_timing_over_navigation_timeout() -> None:
    page = _Page(evaluated={"dom_content_loaded_ms": 800.0, "load_ms": 4000.0})
    outcome = await probe_load_timing(_ctx(page, navigation_timeout_ms=3000))
    assert outcome.satisfied is False


@pytest.mark.asyncio
@pytest.mark.parametrize("evaluated", [{}, None, {"dom_content_loaded_ms": 0}])
async def test_load_timing_unavailable(evaluated) -> None:
    outcome = await probe_load_timing(_ctx(_Page(evaluated=evaluated)))
    assert outcome.satisfied is False
    assert outcome.message == "navigation timing unavailable"


@pytest.mark.asyncio
async def test_contact_email_prefers_mailto_link() -> None:
    page = _Page(values={'a[href^="mailto:"]': ["mailto:hello@pinoypetplan.com"]})
    outcome = await probe_contact_email(_ctx(page))
    assert outcome.satisfied is True
    assert outcome.evidence == {"href": "mailto:hello@pinoypetplan.com"}


@pytest.mark.asyncio
async def test_contact_email_falls_back_to_text() -> None:
    outcome = await probe_contact_email(_ctx(_Page(), body_text="Email us at care@pinoypetplan.com today"))
    assert outcome.satisfied is True
    assert outcome.evidence["text"] == "care@pinoypetplan.com"


@pytest.mark.asyncio
async def test_contact_details_missing() -> None:
    email = await probe_contact_email(_ctx(_Page(), body_text="Write to us anytime"))
    phone = await probe_contact_phone(_ctx(_Page(), body_text="Call us anytime"))
    assert email.satisfied is False
    assert phone.satisfied is False

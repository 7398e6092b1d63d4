from __future__ import annotations

from sitecheck.browser import find_chromium_executable, is_browser_infra_error, safe_url


class _DummyPlaywrightError(Exception):
    pass


def test_is_browser_infra_error_page_crashed() -> None:
    assert is_browser_infra_error(_DummyPlaywrightError("Error: Page.goto: Page crashed")) is True


def test_is_browser_infra_error_target_crashed() -> None:
    assert is_browser_infra_error(_DummyPlaywrightError("Error: Locator.count: Target crashed")) is True


def test_is_browser_infra_error_driver_connection_closed() -> None:
    assert (
        is_browser_infra_error(
            _DummyPlaywrightError("Exception: Browser.new_context: Connection closed while reading from the driver")
        )
        is True
    )


def test_site_timeouts_are_not_infra_errors() -> None:
    assert is_browser_infra_error(_DummyPlaywrightError("Timeout 30000ms exceeded.")) is False


def test_safe_url_drops_query_and_fragment() -> None:
    assert safe_url("https://pinoypetplan.com/?s=dog#top") == "https://pinoypetplan.com/"
    assert safe_url("") == ""


def test_find_chromium_executable_prefers_explicit_path(tmp_path) -> None:
    fake = tmp_path / "chromium"
    fake.write_text("", encoding="utf-8")
    assert find_chromium_executable(str(fake)) == str(fake)

from __future__ import annotations

from pathlib import Path

import pytest

from sitecheck.config import SiteCheckConfig, load_config


CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "sitecheck.yaml"


def test_defaults() -> None:
    config = SiteCheckConfig()
    assert config.base_url == "https://pinoypetplan.com/"
    assert (config.query_timeout_ms, config.quiescence_timeout_ms, config.navigation_timeout_ms) == (5000, 10000, 30000)
    assert config.viewports["mobile"].as_playwright() == {"width": 375, "height": 667}
    assert config.viewports["tablet"].as_playwright() == {"width": 768, "height": 1024}
    assert config.viewports["desktop"].as_playwright() == {"width": 1200, "height": 800}
    assert config.devices == ["iPhone 12", "iPad", "Desktop Chrome"]
    assert config.resolver_mode == "prefer-visible"


def test_bundled_config_file_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("SITECHECK_BASE_URL", "LOG_LEVEL", "BROWSER_HEADLESS", "CHROMIUM_PATH", "SITECHECK_REPORTS_DIR",
                "SITECHECK_NAV_TIMEOUT_MS", "SITECHECK_QUERY_TIMEOUT_MS"):
        monkeypatch.delenv(var, raising=False)
    config = load_config(str(CONFIG_PATH))
    assert config == SiteCheckConfig()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    cfg = tmp_path / "sitecheck.yaml"
    cfg.write_text("base_url: https://staging.example/\ntimeouts:\n  medium_ms: 2500\n", encoding="utf-8")
    monkeypatch.setenv("SITECHECK_NAV_TIMEOUT_MS", "45000")
    monkeypatch.setenv("SITECHECK_QUERY_TIMEOUT_MS", "1500")
    monkeypatch.setenv("BROWSER_HEADLESS", "false")
    monkeypatch.setenv("SITECHECK_BASE_URL", "https://override.example/")

    config = load_config(str(cfg))

    assert config.base_url == "https://override.example/"
    assert config.navigation_timeout_ms == 45000
    assert config.query_timeout_ms == 1500
    assert config.quiescence_timeout_ms == 2500
    assert config.browser_headless is False


def test_missing_file_falls_back_to_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.delenv("SITECHECK_BASE_URL", raising=False)
    monkeypatch.delenv("SITECHECK_NAV_TIMEOUT_MS", raising=False)
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config.base_url == "https://pinoypetplan.com/"
    assert config.navigation_timeout_ms == 30000


def test_non_mapping_config_rejected(tmp_path) -> None:
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(cfg))

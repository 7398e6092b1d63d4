"""Configuration management for the page check suite."""

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field


class ViewportConfig(BaseModel):
    """A named viewport size."""
    width: int = Field(ge=100, le=5000, description="Viewport width in CSS pixels")
    height: int = Field(ge=100, le=5000, description="Viewport height in CSS pixels")

    def as_playwright(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


def _default_viewports() -> Dict[str, ViewportConfig]:
    return {
        "mobile": ViewportConfig(width=375, height=667),
        "tablet": ViewportConfig(width=768, height=1024),
        "desktop": ViewportConfig(width=1200, height=800),
    }


class TimeoutConfig(BaseModel):
    """Bounds for every suspend point, in milliseconds."""
    short_ms: int = Field(default=5000, ge=1, description="Single DOM query / extraction bound")
    medium_ms: int = Field(default=10000, ge=1, description="Network quiescence bound")
    long_ms: int = Field(default=30000, ge=1, description="Page navigation bound")


class SiteCheckConfig(BaseModel):
    """Main configuration for the page check suite."""

    # Target settings
    base_url: str = Field(default="https://pinoypetplan.com/", description="Base URL scenarios are resolved against")
    log_level: str = Field(default="INFO", description="Logging level")

    # Browser settings
    browser_headless: bool = Field(default=True, description="Run browser in headless mode")
    chromium_path: Optional[str] = Field(default=None, description="Explicit Chromium executable")
    ignore_https_errors: bool = Field(default=True, description="Ignore TLS errors on the target site")
    user_agent: Optional[str] = Field(default=None, description="User agent override for desktop contexts")
    default_viewport: str = Field(default="desktop", description="Viewport preset used when a run has no variant")
    viewports: Dict[str, ViewportConfig] = Field(default_factory=_default_viewports)
    devices: list[str] = Field(
        default_factory=lambda: ["iPhone 12", "iPad", "Desktop Chrome"],
        description="Playwright device profiles usable as variants",
    )
    block_media: bool = Field(default=False, description="Abort media and font requests")

    # Timing
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    navigation_wait_until: str = Field(default="domcontentloaded", description="Playwright goto wait_until")
    wait_for_network_idle: bool = Field(default=True, description="Await network quiescence after navigation")

    # Resolution
    resolver_mode: str = Field(default="prefer-visible", description="strict-first-match or prefer-visible")

    # Probes
    internal_link_sample: int = Field(default=10, ge=0, description="Internal links checked for HTTP status")
    external_link_sample: int = Field(default=5, ge=0, description="External links checked for target/rel")

    # Suite execution
    scenarios_directory: str = Field(default="scenarios", description="Directory holding scenario files")
    concurrency: int = Field(default=3, ge=1, le=16, description="Scenario runs executed in parallel")

    # Output settings
    reports_directory: str = Field(default="reports", description="Directory for output reports")
    screenshot_on_failure: bool = Field(default=True, description="Take screenshots of failed runs")

    @property
    def navigation_timeout_ms(self) -> int:
        return self.timeouts.long_ms

    @property
    def quiescence_timeout_ms(self) -> int:
        return self.timeouts.medium_ms

    @property
    def query_timeout_ms(self) -> int:
        return self.timeouts.short_ms


def load_config(config_path: Optional[str] = None) -> SiteCheckConfig:
    """Load configuration from file or environment variables."""
    if config_path is None:
        config_path = os.getenv("SITECHECK_CONFIG", "config/sitecheck.yaml")

    config_data = {}

    # Load from file if exists
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError("Config YAML must be a mapping")

    # Override with environment variables
    env_overrides = {
        "base_url": os.getenv("SITECHECK_BASE_URL"),
        "log_level": os.getenv("LOG_LEVEL"),
        "browser_headless": os.getenv("BROWSER_HEADLESS"),
        "chromium_path": os.getenv("CHROMIUM_PATH"),
        "reports_directory": os.getenv("SITECHECK_REPORTS_DIR"),
    }
    timeout_overrides = {
        "long_ms": os.getenv("SITECHECK_NAV_TIMEOUT_MS"),
        "short_ms": os.getenv("SITECHECK_QUERY_TIMEOUT_MS"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key in ["browser_headless"]:
                value = value.lower() in ("true", "1", "yes")
            config_data[key] = value

    for key, value in timeout_overrides.items():
        if value is not None:
            timeouts = dict(config_data.get("timeouts") or {})
            timeouts[key] = int(value)
            config_data["timeouts"] = timeouts

    return SiteCheckConfig(**config_data)


def get_config() -> SiteCheckConfig:
    """Get the global configuration instance."""
    return load_config()

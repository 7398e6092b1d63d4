from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog
from playwright.async_api import Browser

from sitecheck.config import SiteCheckConfig

logger = structlog.get_logger(__name__)


_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--no-first-run",
    "--no-default-browser-check",
]


_INFRA_ERROR_MARKERS = (
    "target page, context or browser has been closed",
    "browser has been closed",
    "page crashed",
    "target crashed",
    "connection closed while reading from the driver",
    "connection closed while writing to the driver",
    "pipe closed by peer",
)


def is_browser_infra_error(exc: BaseException) -> bool:
    """True when the failure is our browser dying rather than the site misbehaving."""
    if type(exc).__name__ == "TargetClosedError":
        return True
    msg = str(exc or "").lower()
    return any(marker in msg for marker in _INFRA_ERROR_MARKERS)


def safe_url(url: str) -> str:
    """Drop query and fragment so reports stay small."""
    s = (url or "").strip()
    if not s:
        return s
    try:
        parts = urlsplit(s)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    except ValueError:
        return s[:500]


def find_chromium_executable(explicit: str | None = None) -> str | None:
    for path in (explicit, os.getenv("CHROMIUM_PATH")):
        if path and Path(path).exists():
            return path

    candidates = [
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/google-chrome",
        "/usr/bin/google-chrome-stable",
        "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    ]
    for path in candidates:
        if Path(path).exists():
            return path
    return None


def _shm_too_small() -> bool:
    try:
        st = os.statvfs("/dev/shm")
        shm_bytes = int(st.f_frsize) * int(st.f_blocks)
    except (OSError, AttributeError):
        return False
    return bool(shm_bytes) and shm_bytes < (512 * 1024 * 1024)


async def launch_browser(playwright: Any, config: SiteCheckConfig) -> Browser:
    """Launch Chromium; falls back to Playwright's bundled build when no system binary is found."""
    args = list(_LAUNCH_ARGS)
    # Avoid renderer crashes when /dev/shm is tiny.
    if _shm_too_small():
        args.insert(1, "--disable-dev-shm-usage")

    kwargs: dict[str, Any] = {"headless": config.browser_headless, "args": args}
    executable = find_chromium_executable(config.chromium_path)
    if executable:
        kwargs["executable_path"] = executable
    logger.info("Launching browser", executable=executable or "bundled", headless=config.browser_headless)
    return await playwright.chromium.launch(**kwargs)


async def apply_media_filter(context: Any) -> None:
    async def _handler(route):
        if route.request.resource_type in {"media", "font"}:
            await route.abort()
            return
        await route.continue_()

    await context.route("**/*", _handler)

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import pytest


@dataclass
class FakeNode:
    text: str = ""
    visible: bool = True
    attrs: dict[str, str] = field(default_factory=dict)


class FakeLocator:
    """Just enough of playwright's Locator for the resolver, verifier and driver."""

    def __init__(self, page: "FakePage", key: str):
        self.page = page
        self.key = key

    @property
    def _nodes(self) -> list[FakeNode]:
        return self.page.nodes.get(self.key, [])

    async def _maybe_fail(self) -> None:
        delay = self.page.delays.get(self.key)
        if delay:
            await asyncio.sleep(delay)
        err = self.page.errors.get(self.key)
        if err is not None:
            raise err

    @property
    def first(self) -> "FakeLocator":
        return self

    def filter(self, has_text: str | None = None) -> "FakeLocator":
        return FakeLocator(self.page, f"{self.key}|has-text={has_text}")

    async def count(self) -> int:
        await self._maybe_fail()
        return len(self._nodes)

    async def is_visible(self) -> bool:
        nodes = self._nodes
        return bool(nodes) and nodes[0].visible

    async def text_content(self, timeout: float | None = None) -> str | None:
        nodes = self._nodes
        return nodes[0].text if nodes else None

    async def inner_text(self, timeout: float | None = None) -> str:
        await self._maybe_fail()
        nodes = self._nodes
        if not nodes:
            from playwright.async_api import TimeoutError as PlaywrightTimeoutError

            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.key}")
        return nodes[0].text

    async def get_attribute(self, name: str, timeout: float | None = None) -> str | None:
        nodes = self._nodes
        return nodes[0].attrs.get(name) if nodes else None

    async def click(self, timeout: float | None = None) -> None:
        self.page.actions.append(("click", self.key, None))
        await self._maybe_action_error("click")

    async def fill(self, value: str, timeout: float | None = None) -> None:
        self.page.actions.append(("fill", self.key, value))
        await self._maybe_action_error("fill")

    async def press(self, key: str, timeout: float | None = None) -> None:
        self.page.actions.append(("press", self.key, key))
        await self._maybe_action_error("press")

    async def _maybe_action_error(self, action: str) -> None:
        err = self.page.action_errors.get(action)
        if err is not None:
            raise err


class FakeResponse:
    def __init__(self, status: int = 200, headers: dict[str, str] | None = None):
        self.status = status
        self._headers = headers or {}

    async def all_headers(self) -> dict[str, str]:
        return dict(self._headers)


class FakePage:
    def __init__(
        self,
        nodes: dict[str, list[FakeNode]] | None = None,
        *,
        url: str = "https://example.test/",
        title: str = "",
        response: FakeResponse | None = None,
        goto_error: Exception | None = None,
        idle_error: Exception | None = None,
    ):
        self.nodes = nodes or {}
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}
        self.action_errors: dict[str, Exception] = {}
        self.actions: list[tuple[str, str, Any]] = []
        self.url = url
        self._title = title
        self.response = response if response is not None else FakeResponse(200)
        self.goto_error = goto_error
        self.idle_error = idle_error
        self.handlers: dict[str, list[Any]] = {}
        self.closed = False
        self.goto_calls: list[dict[str, Any]] = []

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector)

    def get_by_role(self, role: str, name: Any = None, exact: bool = False) -> FakeLocator:
        key = f"role={role}"
        if name is not None:
            key += f" name={getattr(name, 'pattern', name)}"
        return FakeLocator(self, key)

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return FakeLocator(self, f"text={text}")

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event: str, payload: Any) -> None:
        for handler in self.handlers.get(event, []):
            handler(payload)

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None) -> FakeResponse:
        self.goto_calls.append({"url": url, "wait_until": wait_until, "timeout": timeout})
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        return self.response

    async def wait_for_load_state(self, state: str | None = None, timeout: float | None = None) -> None:
        if self.idle_error is not None and state == "networkidle":
            raise self.idle_error

    async def title(self) -> str:
        return self._title

    async def screenshot(self, path: str | None = None, full_page: bool = False) -> bytes:
        return b""

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, page: FakePage, kwargs: dict[str, Any]):
        self.page = page
        self.kwargs = kwargs
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def route(self, pattern: str, handler: Any) -> None:
        return None

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page: FakePage):
        self.page = page
        self.contexts: list[FakeContext] = []

    async def new_context(self, **kwargs: Any) -> FakeContext:
        ctx = FakeContext(self.page, kwargs)
        self.contexts.append(ctx)
        return ctx


@pytest.fixture
def fakes():
    """Namespace of fake playwright objects."""

    class _Fakes:
        Node = FakeNode
        Page = FakePage
        Response = FakeResponse
        Browser = FakeBrowser

    return _Fakes


class _Handler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def do_GET(self) -> None:  # noqa: N802
        page_head = (
            "<head><title>Pinoy Pet Plan | alagang totoo</title>"
            '<meta name="description" content="Peace of mind pet care plans for Filipino fur parents, '
            'covering vet visits, vaccines and emergencies.">'
            '<meta property="og:title" content="Pinoy Pet Plan"></head>'
        )
        routes: dict[str, tuple[int, dict[str, str], str]] = {
            "/": (
                200,
                {"Content-Type": "text/html; charset=utf-8", "X-Frame-Options": "DENY"},
                (
                    f"<!doctype html><html>{page_head}<body>"
                    '<nav><a href="/">Home</a> <a href="/about-us/">About</a></nav>'
                    "<main><h1>Peace of Mind for Every Step</h1>"
                    "<p>At Pinoy Pet Plan, we believe that every pet deserves a happy and healthy life.</p>"
                    '<div class="hero" style="display:none">hidden hero</div>'
                    '<section class="banner">Banner</section>'
                    '<img src="/logo.png" alt="pinoypetplan.com logo"></main>'
                    "<footer>© 2025 Pinoy Pet Plan. All rights reserved.</footer>"
                    "</body></html>"
                ),
            ),
            "/about-us/": (
                200,
                {"Content-Type": "text/html; charset=utf-8"},
                "<!doctype html><html><head><title>About Us</title></head><body><h1>Who We Are</h1></body></html>",
            ),
            "/search/": (
                200,
                {"Content-Type": "text/html; charset=utf-8"},
                (
                    "<!doctype html><html><head><title>Articles</title></head><body>"
                    '<form action="/search/" method="get"><input type="search" name="s"></form>'
                    "<article><h2>Dog walks</h2></article></body></html>"
                ),
            ),
            "/bad_gateway": (
                502,
                {"Content-Type": "text/plain; charset=utf-8"},
                "Bad Gateway",
            ),
        }

        path = self.path.split("?", 1)[0]
        status, headers, body = routes.get(
            path,
            (404, {"Content-Type": "text/plain; charset=utf-8"}, "Not Found"),
        )
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        for k, v in headers.items():
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        self.wfile.write(body_bytes)


@pytest.fixture(scope="module")
def local_server_base_url() -> str:
    httpd = HTTPServer(("127.0.0.1", 0), _Handler)
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()

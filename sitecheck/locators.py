"""Resilient locator resolution: ordered fallback chains per logical element."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field, replace
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

logger = structlog.get_logger(__name__)


STRICT_FIRST_MATCH = "strict-first-match"
PREFER_VISIBLE = "prefer-visible"
RESOLVER_MODES = (STRICT_FIRST_MATCH, PREFER_VISIBLE)

_ENGINES = {"css", "xpath", "role", "text", "label", "placeholder", "alt", "title", "testid"}

# Elements that live in <head> are attached but never visible.
_HEAD_ONLY_PREFIXES = ("meta", "script", "link", "title", "head ")


def _format(value: str | None, params: dict[str, str]) -> str | None:
    if value is None or not params:
        return value
    out = value
    for key, val in params.items():
        out = out.replace("{" + key + "}", str(val))
    return out


@dataclass(frozen=True)
class SelectorCandidate:
    engine: str
    value: str
    name: str | None = None  # role engine: accessible name substring
    name_regex: str | None = None  # role engine: accessible name pattern (case-insensitive)
    exact: bool = False
    has_text: str | None = None

    def describe(self) -> str:
        if self.engine == "role":
            if self.name_regex:
                return f"role={self.value} name~/{self.name_regex}/i"
            if self.name:
                return f"role={self.value} name={self.name!r}"
            return f"role={self.value}"
        desc = f"{self.engine}={self.value}"
        if self.has_text:
            desc += f" has-text={self.has_text!r}"
        return desc

    def bind(self, params: dict[str, str]) -> SelectorCandidate:
        if not params:
            return self
        return replace(
            self,
            value=_format(self.value, params) or "",
            name=_format(self.name, params),
            name_regex=_format(self.name_regex, {k: re.escape(str(v)) for k, v in params.items()}),
            has_text=_format(self.has_text, params),
        )

    @property
    def head_only(self) -> bool:
        return self.engine == "css" and self.value.lstrip().lower().startswith(_HEAD_ONLY_PREFIXES)

    def locate(self, page: Any) -> Any:
        """Build a lazy Playwright locator; nothing is queried until it is awaited."""
        if self.engine == "css":
            loc = page.locator(self.value)
        elif self.engine == "xpath":
            loc = page.locator(self.value if self.value.startswith("xpath=") else f"xpath={self.value}")
        elif self.engine == "role":
            if self.name_regex:
                loc = page.get_by_role(self.value, name=re.compile(self.name_regex, re.I))
            elif self.name:
                loc = page.get_by_role(self.value, name=self.name, exact=self.exact)
            else:
                loc = page.get_by_role(self.value)
        elif self.engine == "text":
            loc = page.get_by_text(self.value, exact=self.exact)
        elif self.engine == "label":
            loc = page.get_by_label(self.value, exact=self.exact)
        elif self.engine == "placeholder":
            loc = page.get_by_placeholder(self.value, exact=self.exact)
        elif self.engine == "alt":
            loc = page.get_by_alt_text(self.value, exact=self.exact)
        elif self.engine == "title":
            loc = page.get_by_title(self.value, exact=self.exact)
        elif self.engine == "testid":
            loc = page.get_by_test_id(self.value)
        else:
            raise ValueError(f"unknown_engine: {self.engine!r}")
        if self.has_text:
            loc = loc.filter(has_text=self.has_text)
        return loc


def compile_candidate(item: Any) -> SelectorCandidate:
    if isinstance(item, SelectorCandidate):
        return item
    if isinstance(item, str):
        sel = item.strip()
        if not sel:
            raise ValueError("empty_selector")
        return SelectorCandidate(engine="css", value=sel)
    if isinstance(item, dict):
        engine = str(item.get("engine") or "css").strip().lower()
        if engine not in _ENGINES:
            raise ValueError(f"unknown_engine: {engine!r}")
        if engine == "role":
            value = item.get("role") or item.get("value")
        elif engine in {"css", "xpath"}:
            value = item.get("value") or item.get("selector")
        else:
            value = item.get(engine) or item.get("text") or item.get("value")
        value = str(value or "").strip()
        if not value:
            raise ValueError(f"candidate_missing_value: {item!r}")
        name_regex = str(item["name_regex"]) if item.get("name_regex") else None
        if name_regex is not None:
            try:
                re.compile(name_regex)
            except re.error as exc:
                raise ValueError(f"invalid_name_regex: {name_regex!r}: {exc}") from exc
        return SelectorCandidate(
            engine=engine,
            value=value,
            name=(str(item["name"]) if item.get("name") else None),
            name_regex=name_regex,
            exact=bool(item.get("exact", False)),
            has_text=(str(item["has_text"]) if item.get("has_text") else None),
        )
    raise ValueError(f"Invalid selector candidate: {item!r}")


@dataclass(frozen=True)
class LogicalElement:
    name: str
    candidates: tuple[SelectorCandidate, ...]
    require_visible: bool = True
    attribute: str | None = None
    min_text_length: int = 0
    description: str = ""

    def bind(self, **params: str) -> LogicalElement:
        if not params:
            return self
        label = ",".join(str(v) for v in params.values())
        return replace(
            self,
            name=f"{self.name}[{label}]",
            candidates=tuple(c.bind(params) for c in self.candidates),
        )


def compile_element(name: str, raw: Any) -> LogicalElement:
    """
    Accept either a bare list of candidates or a mapping:
      {"candidates": [...], "require_visible": bool, "attribute": str, "min_text_length": int}
    """
    if isinstance(raw, LogicalElement):
        return raw
    if isinstance(raw, (list, tuple)):
        raw = {"candidates": list(raw)}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid logical element {name!r}: {raw!r}")
    items = raw.get("candidates")
    if not isinstance(items, (list, tuple)) or not items:
        raise ValueError(f"Logical element {name!r} has no candidates")
    candidates = tuple(compile_candidate(item) for item in items)

    require_visible = raw.get("require_visible")
    if require_visible is None:
        require_visible = not all(c.head_only for c in candidates)

    return LogicalElement(
        name=str(name),
        candidates=candidates,
        require_visible=bool(require_visible),
        attribute=(str(raw["attribute"]) if raw.get("attribute") else None),
        min_text_length=int(raw.get("min_text_length") or 0),
        description=str(raw.get("description") or ""),
    )


@dataclass(frozen=True)
class ResolutionResult:
    element: str
    found: bool
    matched_index: int | None = None
    matched_candidate: str | None = None
    count: int = 0
    is_visible: bool = False
    sample_text: str | None = None
    attribute_value: str | None = None
    hidden_match_index: int | None = None
    tried: tuple[str, ...] = ()
    attempts: tuple[dict[str, Any], ...] = ()
    errors: tuple[str, ...] = ()
    locator: Any = field(default=None, repr=False, compare=False)

    def to_evidence(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "matched_index": self.matched_index,
            "matched_candidate": self.matched_candidate,
            "count": self.count,
            "is_visible": self.is_visible,
            "sample_text": self.sample_text,
            "attribute_value": self.attribute_value,
            "hidden_match_index": self.hidden_match_index,
            "tried": list(self.tried),
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class _Probe:
    count: int
    visible: bool
    text: str | None
    attribute: str | None
    locator: Any


def _clean_text(value: str | None, *, max_len: int = 200) -> str | None:
    if value is None:
        return None
    s = re.sub(r"\s+", " ", value).strip()
    return s if len(s) <= max_len else s[:max_len]


class LocatorResolver:
    """Finds the best available match for a logical element on a live page."""

    def __init__(self, *, mode: str = PREFER_VISIBLE, query_timeout_ms: int = 5000):
        if mode not in RESOLVER_MODES:
            raise ValueError(f"unknown_resolver_mode: {mode!r}")
        self.mode = mode
        self.query_timeout_ms = int(query_timeout_ms)

    async def _probe(self, page: Any, candidate: SelectorCandidate, element: LogicalElement) -> _Probe:
        locator = candidate.locate(page)
        count = await locator.count()
        if count <= 0:
            return _Probe(count=0, visible=False, text=None, attribute=None, locator=locator)
        first = locator.first
        visible = await first.is_visible()
        text = await first.text_content(timeout=self.query_timeout_ms)
        attribute = None
        if element.attribute:
            attribute = await first.get_attribute(element.attribute, timeout=self.query_timeout_ms)
        return _Probe(count=count, visible=bool(visible), text=text, attribute=attribute, locator=first)

    async def resolve(
        self,
        page: Any,
        element: LogicalElement,
        *,
        mode: str | None = None,
        require_visible: bool | None = None,
    ) -> ResolutionResult:
        """Try candidates in declared order; the first satisfying one wins. Never raises on a miss."""
        mode = mode or self.mode
        if mode not in RESOLVER_MODES:
            raise ValueError(f"unknown_resolver_mode: {mode!r}")
        need_visible = element.require_visible if require_visible is None else bool(require_visible)
        timeout_s = max(0.001, self.query_timeout_ms / 1000.0)

        tried: list[str] = []
        attempts: list[dict[str, Any]] = []
        errors: list[str] = []
        hidden_index: int | None = None
        hidden_probe: _Probe | None = None

        for index, candidate in enumerate(element.candidates):
            desc = candidate.describe()
            tried.append(desc)
            try:
                probe = await asyncio.wait_for(self._probe(page, candidate, element), timeout=timeout_s)
            except asyncio.TimeoutError:
                errors.append(f"{desc}: timeout after {self.query_timeout_ms}ms")
                attempts.append({"candidate": desc, "outcome": "timeout"})
                continue
            except PlaywrightError as exc:
                errors.append(f"{desc}: {type(exc).__name__}: {exc}")
                attempts.append({"candidate": desc, "outcome": "error"})
                continue

            if probe.count == 0:
                attempts.append({"candidate": desc, "outcome": "no-match", "count": 0})
                continue

            text_ok = len((probe.text or "").strip()) >= element.min_text_length
            visible_ok = probe.visible or not need_visible

            if visible_ok and text_ok:
                attempts.append({"candidate": desc, "outcome": "matched", "count": probe.count})
                logger.debug("Resolved element", element=element.name, candidate=desc, index=index)
                return ResolutionResult(
                    element=element.name,
                    found=True,
                    matched_index=index,
                    matched_candidate=desc,
                    count=probe.count,
                    is_visible=probe.visible,
                    sample_text=_clean_text(probe.text),
                    attribute_value=probe.attribute,
                    hidden_match_index=hidden_index,
                    tried=tuple(tried),
                    attempts=tuple(attempts),
                    errors=tuple(errors),
                    locator=probe.locator,
                )

            outcome = "hidden" if not visible_ok else "empty-text"
            attempts.append({"candidate": desc, "outcome": outcome, "count": probe.count})
            if hidden_index is None:
                hidden_index = index
                hidden_probe = probe
            if mode == STRICT_FIRST_MATCH:
                break

        logger.debug("Element not resolved", element=element.name, mode=mode, tried=len(tried))
        return ResolutionResult(
            element=element.name,
            found=False,
            count=hidden_probe.count if hidden_probe else 0,
            is_visible=False,
            sample_text=_clean_text(hidden_probe.text) if hidden_probe else None,
            attribute_value=hidden_probe.attribute if hidden_probe else None,
            hidden_match_index=hidden_index,
            tried=tuple(tried),
            attempts=tuple(attempts),
            errors=tuple(errors),
        )

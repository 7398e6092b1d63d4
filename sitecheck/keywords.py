"""Keyword/content verification against extracted page text."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any

import structlog
from playwright.async_api import Error as PlaywrightError

logger = structlog.get_logger(__name__)


_WS_RE = re.compile(r"\s+")


def normalize_text(s: str) -> str:
    return _WS_RE.sub(" ", s or "").strip().lower()


@dataclass(frozen=True)
class KeywordSet:
    name: str
    keywords: tuple[str, ...]
    regex: bool = False  # keywords are lightweight patterns rather than plain phrases


def compile_keyword_set(name: str, raw: Any) -> KeywordSet:
    if isinstance(raw, KeywordSet):
        return raw
    regex = False
    if isinstance(raw, dict):
        regex = bool(raw.get("regex", False))
        raw = raw.get("keywords")
    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"Keyword set {name!r} must be a list of strings")
    keywords: list[str] = []
    for item in raw:
        s = str(item or "").strip()
        if s and s not in keywords:
            keywords.append(s)
    if not keywords:
        raise ValueError(f"Keyword set {name!r} is empty")
    if regex:
        for kw in keywords:
            try:
                re.compile(kw)
            except re.error as exc:
                raise ValueError(f"Keyword set {name!r} has invalid pattern {kw!r}: {exc}") from exc
    return KeywordSet(name=str(name), keywords=tuple(keywords), regex=regex)


def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """
    A phrase matches when its words appear in order with any text in between.

    "peace of mind" matches "Peace\\n of   Mind" as well as
    "peace and quiet of the mind".
    """
    words = [re.escape(w) for w in normalize_text(keyword).split(" ") if w]
    return re.compile(".*?".join(words), re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class VerificationOutcome:
    keyword_set: str
    matched: tuple[str, ...]
    missing: tuple[str, ...]
    coverage: float
    evidence: dict[str, str]

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.missing)

    def to_evidence(self) -> dict[str, Any]:
        return {
            "matched": list(self.matched),
            "missing": list(self.missing),
            "coverage": round(self.coverage, 4),
            "snippets": dict(self.evidence),
        }


def _snippet(text: str, match: re.Match[str], *, max_len: int = 120) -> str:
    s = text[match.start():match.end()]
    return s if len(s) <= max_len else s[:max_len] + "…"


def verify_keywords(text: str, keyword_set: KeywordSet) -> VerificationOutcome:
    """Partition the set into matched/missing keywords. Pure; never raises on odd input."""
    haystack = _WS_RE.sub(" ", text or "")
    matched: list[str] = []
    missing: list[str] = []
    evidence: dict[str, str] = {}
    for keyword in keyword_set.keywords:
        if keyword_set.regex:
            pattern = re.compile(keyword, re.IGNORECASE)
        else:
            pattern = keyword_pattern(keyword)
        m = pattern.search(haystack)
        if m:
            matched.append(keyword)
            evidence[keyword] = _snippet(haystack, m)
        else:
            missing.append(keyword)
    total = len(keyword_set.keywords)
    coverage = (len(matched) / total) if total else 0.0
    return VerificationOutcome(
        keyword_set=keyword_set.name,
        matched=tuple(matched),
        missing=tuple(missing),
        coverage=coverage,
        evidence=evidence,
    )


async def extract_text(page: Any, scope: str = "body", *, timeout_ms: int = 5000) -> str:
    """innerText of the first node matching scope; empty when the scope is absent or the read times out."""
    try:
        return await asyncio.wait_for(
            page.locator(scope).first.inner_text(timeout=timeout_ms),
            timeout=max(0.001, timeout_ms / 1000.0),
        )
    except asyncio.TimeoutError:
        logger.warning("Text extraction timed out", scope=scope, timeout_ms=timeout_ms)
        return ""
    except PlaywrightError as exc:
        logger.warning("Text extraction failed", scope=scope, error=str(exc))
        return ""

"""Scenario reports: the itemised outcome of one page-level run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from sitecheck.policy import FAIL, INFO, PASS, WARN, classify

logger = structlog.get_logger(__name__)


# Driver states: idle|navigating|verifying|reporting|done|failed
IDLE = "idle"
NAVIGATING = "navigating"
VERIFYING = "verifying"
REPORTING = "reporting"
DONE = "done"
FAILED = "failed"

ICONS = {PASS: "✓", WARN: "⚠", FAIL: "✗", INFO: "ℹ"}

_LOG_LEVELS = {PASS: "info", INFO: "info", WARN: "warning", FAIL: "error"}


def _safe_str(x: Any, *, max_len: int = 300) -> str:
    s = str(x if x is not None else "")
    return s if len(s) <= max_len else s[:max_len] + "…"


@dataclass(frozen=True)
class CheckRecord:
    name: str
    kind: str  # navigation|status|title|url|element|keywords|probe|interaction|quiescence
    tier: str
    verdict: str
    satisfied: bool
    message: str
    evidence: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "tier": self.tier,
            "verdict": self.verdict,
            "satisfied": self.satisfied,
            "message": self.message,
            "evidence": self.evidence,
        }

    def render(self) -> str:
        return f"{ICONS.get(self.verdict, '?')} [{self.tier}] {self.name}: {self.message}"


@dataclass
class ScenarioReport:
    """Built incrementally while a scenario runs; finalised when it ends."""

    scenario: str
    url: str
    variant: str | None = None
    state: str = IDLE
    records: list[CheckRecord] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    elapsed_ms: float | None = None
    final_url: str | None = None
    title: str | None = None
    screenshot_path: str | None = None
    browser_infra_error: bool = False

    @property
    def run_name(self) -> str:
        return f"{self.scenario}@{self.variant}" if self.variant else self.scenario

    def add(
        self,
        name: str,
        *,
        kind: str,
        tier: str,
        satisfied: bool,
        message: str,
        evidence: dict[str, Any] | None = None,
        verdict: str | None = None,
    ) -> CheckRecord:
        """Classify an outcome with its tier and append it.

        ``verdict`` bypasses classification; it is used for interaction errors,
        which are downgraded regardless of tier.
        """
        record = CheckRecord(
            name=name,
            kind=kind,
            tier=tier,
            verdict=verdict or classify(satisfied, tier),
            satisfied=bool(satisfied),
            message=_safe_str(message, max_len=500),
            evidence=dict(evidence or {}),
        )
        self.records.append(record)
        log = getattr(logger, _LOG_LEVELS.get(record.verdict, "info"))
        log(
            "Check recorded",
            scenario=self.run_name,
            check=record.name,
            tier=record.tier,
            verdict=record.verdict,
            detail=record.message,
        )
        return record

    @property
    def verdict(self) -> str:
        return FAIL if any(r.verdict == FAIL for r in self.records) else PASS

    @property
    def passed(self) -> bool:
        return self.verdict == PASS

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.records if r.verdict == FAIL)

    @property
    def warning_count(self) -> int:
        return sum(1 for r in self.records if r.verdict == WARN)

    def records_by_verdict(self, verdict: str) -> list[CheckRecord]:
        return [r for r in self.records if r.verdict == verdict]

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "url": self.url,
            "variant": self.variant,
            "state": self.state,
            "verdict": self.verdict,
            "failures": self.failure_count,
            "warnings": self.warning_count,
            "started_at": self.started_at,
            "elapsed_ms": self.elapsed_ms,
            "final_url": self.final_url,
            "title": self.title,
            "screenshot_path": self.screenshot_path,
            "browser_infra_error": self.browser_infra_error,
            "checks": [r.to_dict() for r in self.records],
        }

    def render_text(self) -> str:
        header = f"{ICONS[self.verdict]} {self.run_name} ({self.url}) -> {self.verdict.upper()}"
        lines = [header, f"  state={self.state} failures={self.failure_count} warnings={self.warning_count}"]
        for record in self.records:
            lines.append("  " + record.render())
        return "\n".join(lines)

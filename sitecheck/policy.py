"""Soft assertion policy: importance tiers and verdicts."""

from __future__ import annotations

from typing import Any


REQUIRED = "required"
RECOMMENDED = "recommended"
INFORMATIONAL = "informational"
TIERS = (REQUIRED, RECOMMENDED, INFORMATIONAL)

PASS = "pass"
WARN = "warn"
FAIL = "fail"
INFO = "info"
VERDICTS = (PASS, WARN, FAIL, INFO)

_TIER_ALIASES = {
    "required": REQUIRED,
    "must": REQUIRED,
    "recommended": RECOMMENDED,
    "should": RECOMMENDED,
    "informational": INFORMATIONAL,
    "info": INFORMATIONAL,
}


def normalize_tier(value: Any) -> str:
    key = str(value or "").strip().lower()
    if key not in _TIER_ALIASES:
        raise ValueError(f"unknown_tier: {value!r}")
    return _TIER_ALIASES[key]


def classify(satisfied: bool, tier: str) -> str:
    """
    Map an outcome and its declared tier to a verdict.

    Informational checks are recorded as ``info`` whether or not they were
    satisfied; they never move the scenario verdict.
    """
    if tier == INFORMATIONAL:
        return INFO
    if satisfied:
        return PASS
    if tier == REQUIRED:
        return FAIL
    if tier == RECOMMENDED:
        return WARN
    raise ValueError(f"unknown_tier: {tier!r}")


def downgrade_interaction_error(tier: str) -> str:
    """Interaction errors never fail a scenario: warn, or info for informational checks."""
    return INFO if tier == INFORMATIONAL else WARN

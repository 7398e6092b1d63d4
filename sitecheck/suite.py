from __future__ import annotations

import itertools
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import urlsplit

import structlog
import yaml

from sitecheck.catalog import Catalog, default_catalog
from sitecheck.locators import RESOLVER_MODES
from sitecheck.policy import INFORMATIONAL, RECOMMENDED, REQUIRED, normalize_tier
from sitecheck.probes import PROBES
from sitecheck.scenario import (
    INTERACTION_ACTIONS,
    ElementExpectation,
    InteractionExpectation,
    KeywordExpectation,
    ProbeExpectation,
    Scenario,
    TitleExpectation,
    UrlExpectation,
)

logger = structlog.get_logger(__name__)


_SCENARIO_SUFFIXES = (".yaml", ".yml", ".json")
_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")
_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_\-]{0,79}$")


@dataclass(frozen=True)
class ScenarioValidationError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


def _tier(value: Any, default: str, where: str) -> str:
    if value is None:
        return default
    try:
        return normalize_tier(value)
    except ValueError as exc:
        raise ScenarioValidationError(f"invalid_tier[{where}]: {value}") from exc


def _ensure_url(url: Any) -> str:
    s = str(url or "").strip()
    if not s:
        raise ScenarioValidationError("missing_url")
    if s.startswith("/"):
        return s[:2000]
    parts = urlsplit(s)
    if (parts.scheme or "").lower() not in {"http", "https"}:
        raise ScenarioValidationError("invalid_url_scheme")
    if not parts.netloc:
        raise ScenarioValidationError("invalid_url_host")
    return s[:2000]


def _str_list(value: Any, code: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ScenarioValidationError(code)
    return tuple(str(v).strip() for v in value if str(v or "").strip())


def _params(raw: Any, where: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ScenarioValidationError(f"invalid_params[{where}]")
    return {str(k): str(v) for k, v in raw.items()}


def _expand_params_each(raw: Any, where: str) -> list[dict[str, str]]:
    """{"text": ["Home", "About"]} -> [{"text": "Home"}, {"text": "About"}]; several keys form a product."""
    if not isinstance(raw, dict) or not raw:
        raise ScenarioValidationError(f"invalid_params_each[{where}]")
    keys = [str(k) for k in raw]
    pools: list[list[str]] = []
    for key in raw:
        values = raw[key]
        if not isinstance(values, list) or not values:
            raise ScenarioValidationError(f"invalid_params_each[{where}]: {key}")
        pools.append([str(v) for v in values])
    return [dict(zip(keys, combo)) for combo in itertools.product(*pools)]


def _placeholders(catalog: Catalog, name: str) -> set[str]:
    element = catalog.element(name)
    found: set[str] = set()
    for c in element.candidates:
        for text in (c.value, c.name, c.name_regex, c.has_text):
            if text:
                found.update(_PLACEHOLDER_RE.findall(text))
    return found


def _check_element_ref(catalog: Catalog, name: str, params: dict[str, str], where: str) -> None:
    if not catalog.has_element(name):
        raise ScenarioValidationError(f"unknown_element[{where}]: {name}")
    try:
        needed = _placeholders(catalog, name)
    except ValueError as exc:
        raise ScenarioValidationError(f"invalid_element[{where}]: {name}: {exc}") from exc
    missing = sorted(needed - set(params))
    if missing:
        raise ScenarioValidationError(f"missing_params[{where}]: {name} needs {', '.join(missing)}")


def _parse_elements(raw: Any, catalog: Catalog) -> tuple[ElementExpectation, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ScenarioValidationError("elements_must_be_list")
    out: list[ElementExpectation] = []
    for idx, item in enumerate(raw):
        where = f"elements.{idx}"
        if isinstance(item, str):
            item = {"element": item}
        if not isinstance(item, dict):
            raise ScenarioValidationError(f"invalid_element[{where}]")
        name = str(item.get("element") or "").strip()
        if not name:
            raise ScenarioValidationError(f"missing_element[{where}]")
        tier = _tier(item.get("tier"), REQUIRED, where)
        mode = item.get("mode")
        if mode is not None and mode not in RESOLVER_MODES:
            raise ScenarioValidationError(f"invalid_mode[{where}]: {mode}")
        try:
            min_count = int(item.get("min_count", 1))
        except (TypeError, ValueError) as exc:
            raise ScenarioValidationError(f"invalid_min_count[{where}]") from exc

        if item.get("params_each") is not None:
            param_sets = _expand_params_each(item["params_each"], where)
        else:
            param_sets = [_params(item.get("params"), where)]

        for params in param_sets:
            _check_element_ref(catalog, name, params, where)
            out.append(
                ElementExpectation(
                    element=name,
                    tier=tier,
                    params=params,
                    mode=mode,
                    attribute=(str(item["attribute"]) if item.get("attribute") else None),
                    text_contains=(str(item["text_contains"]) if item.get("text_contains") else None),
                    attribute_contains=(str(item["attribute_contains"]) if item.get("attribute_contains") else None),
                    min_count=max(0, min_count),
                )
            )
    return tuple(out)


def _parse_keywords(raw: Any, catalog: Catalog) -> tuple[KeywordExpectation, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ScenarioValidationError("keywords_must_be_list")
    out: list[KeywordExpectation] = []
    for idx, item in enumerate(raw):
        where = f"keywords.{idx}"
        if isinstance(item, str):
            item = {"keyword_set": item}
        if not isinstance(item, dict):
            raise ScenarioValidationError(f"invalid_keywords[{where}]")
        name = str(item.get("keyword_set") or "").strip()
        if not name:
            raise ScenarioValidationError(f"missing_keyword_set[{where}]")
        if not catalog.has_keyword_set(name):
            raise ScenarioValidationError(f"unknown_keyword_set[{where}]: {name}")
        try:
            catalog.keyword_set(name)
        except ValueError as exc:
            raise ScenarioValidationError(f"invalid_keyword_set[{where}]: {exc}") from exc
        min_coverage = item.get("min_coverage")
        if min_coverage is not None:
            try:
                min_coverage = float(min_coverage)
            except (TypeError, ValueError) as exc:
                raise ScenarioValidationError(f"invalid_min_coverage[{where}]") from exc
            if not 0.0 <= min_coverage <= 1.0:
                raise ScenarioValidationError(f"invalid_min_coverage[{where}]")
        try:
            min_matched = int(item.get("min_matched", 1))
        except (TypeError, ValueError) as exc:
            raise ScenarioValidationError(f"invalid_min_matched[{where}]") from exc
        out.append(
            KeywordExpectation(
                keyword_set=name,
                tier=_tier(item.get("tier"), RECOMMENDED, where),
                min_matched=max(0, min_matched),
                min_coverage=min_coverage,
                scope=str(item.get("scope") or "body").strip(),
            )
        )
    return tuple(out)


def _parse_probes(raw: Any) -> tuple[ProbeExpectation, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ScenarioValidationError("probes_must_be_list")
    out: list[ProbeExpectation] = []
    for idx, item in enumerate(raw):
        where = f"probes.{idx}"
        if isinstance(item, str):
            item = {"probe": item}
        if not isinstance(item, dict):
            raise ScenarioValidationError(f"invalid_probe[{where}]")
        name = str(item.get("probe") or "").strip()
        if name not in PROBES:
            raise ScenarioValidationError(f"unknown_probe[{where}]: {name}")
        out.append(ProbeExpectation(probe=name, tier=_tier(item.get("tier"), INFORMATIONAL, where)))
    return tuple(out)


def _parse_interactions(raw: Any, catalog: Catalog) -> tuple[InteractionExpectation, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ScenarioValidationError("interactions_must_be_list")
    out: list[InteractionExpectation] = []
    for idx, item in enumerate(raw):
        where = f"interactions.{idx}"
        if not isinstance(item, dict):
            raise ScenarioValidationError(f"invalid_interaction[{where}]")
        name = str(item.get("element") or "").strip()
        if not name:
            raise ScenarioValidationError(f"missing_element[{where}]")
        action = str(item.get("action") or "").strip().lower()
        if action not in INTERACTION_ACTIONS:
            raise ScenarioValidationError(f"unknown_action[{where}]: {action}")
        value = item.get("value")
        if action in {"fill", "fill_and_submit"} and value is None:
            raise ScenarioValidationError(f"missing_value[{where}]")
        params = _params(item.get("params"), where)
        _check_element_ref(catalog, name, params, where)
        out.append(
            InteractionExpectation(
                element=name,
                action=action,
                tier=_tier(item.get("tier"), RECOMMENDED, where),
                params=params,
                value=(str(value)[:500] if value is not None else None),
                key=(str(item["key"]).strip()[:80] if item.get("key") else None),
            )
        )
    return tuple(out)


def parse_scenario(
    data: dict[str, Any],
    *,
    catalog: Catalog | None = None,
    known_variants: Iterable[str] | None = None,
) -> Scenario:
    """
    Validate a scenario mapping and normalise it into a Scenario.

    Element and keyword-set names are checked against the catalog, after the
    scenario's own ``catalog`` overrides are merged in.
    """
    if not isinstance(data, dict):
        raise ScenarioValidationError("scenario_must_be_object")

    name = str(data.get("name") or "").strip()
    if not name:
        raise ScenarioValidationError("missing_name")
    if not _NAME_RE.match(name):
        raise ScenarioValidationError(f"invalid_name: {name}")
    url = _ensure_url(data.get("url"))

    base = catalog or default_catalog()
    overrides = data.get("catalog") or {}
    if not isinstance(overrides, dict):
        raise ScenarioValidationError("catalog_must_be_object")
    scenario_catalog = base.with_overrides(overrides.get("elements"), overrides.get("keyword_sets"))

    variants = _str_list(data.get("variants"), "variants_must_be_list")
    if known_variants is not None:
        allowed = set(known_variants)
        for v in variants:
            if v not in allowed:
                raise ScenarioValidationError(f"unknown_variant: {v}")

    status_raw = data.get("status", REQUIRED)
    status_tier = None if status_raw in (False, "skip", "off") else _tier(status_raw, REQUIRED, "status")

    title = None
    raw_title = data.get("title")
    if raw_title is not None:
        if isinstance(raw_title, str):
            raw_title = {"pattern": raw_title}
        if not isinstance(raw_title, dict) or not str(raw_title.get("pattern") or "").strip():
            raise ScenarioValidationError("invalid_title")
        pattern = str(raw_title["pattern"])
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ScenarioValidationError(f"invalid_title_pattern: {exc}") from exc
        title = TitleExpectation(pattern=pattern, tier=_tier(raw_title.get("tier"), REQUIRED, "title"))

    url_contains = None
    raw_uc = data.get("url_contains")
    if raw_uc is not None:
        if isinstance(raw_uc, str):
            raw_uc = {"value": raw_uc}
        if not isinstance(raw_uc, dict) or not str(raw_uc.get("value") or "").strip():
            raise ScenarioValidationError("invalid_url_contains")
        url_contains = UrlExpectation(
            contains=str(raw_uc["value"]).strip(),
            tier=_tier(raw_uc.get("tier"), REQUIRED, "url_contains"),
        )

    return Scenario(
        name=name,
        url=url,
        description=str(data.get("description") or "").strip(),
        tags=_str_list(data.get("tags"), "tags_must_be_list"),
        variants=variants,
        status_tier=status_tier,
        title=title,
        url_contains=url_contains,
        elements=_parse_elements(data.get("elements"), scenario_catalog),
        keywords=_parse_keywords(data.get("keywords"), scenario_catalog),
        probes=_parse_probes(data.get("probes")),
        interactions=_parse_interactions(data.get("interactions"), scenario_catalog),
        catalog=scenario_catalog,
    )


def parse_scenario_bytes(raw: bytes, *, json_format: bool = False) -> dict[str, Any]:
    txt = (raw or b"").decode("utf-8", errors="replace").strip()
    if not txt:
        raise ScenarioValidationError("empty_scenario")
    if json_format:
        try:
            data = json.loads(txt)
        except json.JSONDecodeError as exc:
            raise ScenarioValidationError(f"invalid_json: {exc}") from exc
    else:
        # YAML parser can also parse JSON.
        try:
            data = yaml.safe_load(txt)
        except yaml.YAMLError as exc:
            raise ScenarioValidationError(f"invalid_yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise ScenarioValidationError("scenario_must_be_object")
    return data


def load_scenario_file(
    path: str | Path,
    *,
    catalog: Catalog | None = None,
    known_variants: Iterable[str] | None = None,
) -> Scenario:
    p = Path(path)
    data = parse_scenario_bytes(p.read_bytes(), json_format=p.suffix.lower() == ".json")
    try:
        return parse_scenario(data, catalog=catalog, known_variants=known_variants)
    except ScenarioValidationError as exc:
        raise ScenarioValidationError(f"{p.name}: {exc.message}") from exc


def load_scenarios(
    directory: str | Path,
    *,
    catalog: Catalog | None = None,
    known_variants: Iterable[str] | None = None,
) -> list[Scenario]:
    root = Path(directory)
    if not root.is_dir():
        raise ScenarioValidationError(f"scenarios_directory_missing: {root}")
    variants = list(known_variants) if known_variants is not None else None
    scenarios: list[Scenario] = []
    seen: set[str] = set()
    for path in sorted(root.iterdir()):
        if path.suffix.lower() not in _SCENARIO_SUFFIXES or not path.is_file():
            continue
        scenario = load_scenario_file(path, catalog=catalog, known_variants=variants)
        if scenario.name in seen:
            raise ScenarioValidationError(f"duplicate_scenario: {scenario.name}")
        seen.add(scenario.name)
        scenarios.append(scenario)
    logger.info("Loaded scenarios", directory=str(root), count=len(scenarios))
    return scenarios


def filter_scenarios(
    scenarios: list[Scenario],
    *,
    names: Iterable[str] | None = None,
    tags: Iterable[str] | None = None,
) -> list[Scenario]:
    """Select by exact name and/or any shared tag; an unknown name is an error."""
    wanted_names = [n for n in (names or []) if n]
    wanted_tags = {t for t in (tags or []) if t}
    known = {s.name for s in scenarios}
    for n in wanted_names:
        if n not in known:
            raise ScenarioValidationError(f"unknown_scenario: {n}")
    out = []
    for s in scenarios:
        if wanted_names and s.name not in wanted_names:
            continue
        if wanted_tags and not wanted_tags.intersection(s.tags):
            continue
        out.append(s)
    return out

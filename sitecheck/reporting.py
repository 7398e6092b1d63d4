"""Suite-level report generation: JSON summary, text breakdown and HTML page."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from sitecheck.config import SiteCheckConfig, get_config
from sitecheck.policy import FAIL, INFO, PASS, WARN
from sitecheck.report import ICONS, ScenarioReport

logger = structlog.get_logger(__name__)


class ReportGenerator:
    """Writes suite summaries to the reports directory."""

    def __init__(self, config: SiteCheckConfig | None = None):
        self.config = config or get_config()
        self.reports_dir = Path(self.config.reports_directory)
        self.reports_dir.mkdir(parents=True, exist_ok=True)

        template_dir = Path(__file__).parent / "templates"
        if template_dir.exists():
            self.jinja_env = Environment(
                loader=FileSystemLoader(str(template_dir)),
                autoescape=select_autoescape(["html", "j2"]),
            )
        else:
            self.jinja_env = None

    def build_summary(self, reports: list[ScenarioReport], report_name: str) -> dict[str, Any]:
        total = len(reports)
        passed = sum(1 for r in reports if r.passed)
        counts = {v: 0 for v in (PASS, WARN, FAIL, INFO)}
        for report in reports:
            for record in report.records:
                counts[record.verdict] = counts.get(record.verdict, 0) + 1

        failure_groups: dict[str, list[str]] = {}
        for report in reports:
            for record in report.records_by_verdict(FAIL):
                group = self._categorize_failure(record.kind, record.message)
                failure_groups.setdefault(group, []).append(f"{report.run_name}: {record.name}")

        return {
            "report_name": report_name,
            "generation_timestamp": datetime.now(timezone.utc).isoformat(),
            "base_url": self.config.base_url,
            "summary": {
                "total_runs": total,
                "passed": passed,
                "failed": total - passed,
                "success_rate": (passed / total * 100) if total > 0 else 0,
                "checks": counts,
                "warnings": sum(r.warning_count for r in reports),
                "browser_infra_errors": sum(1 for r in reports if r.browser_infra_error),
                "total_duration_ms": round(sum(r.elapsed_ms or 0.0 for r in reports), 3),
            },
            "failure_groups": failure_groups,
            "runs": [r.to_dict() for r in reports],
        }

    def generate_suite_report(
        self,
        reports: list[ScenarioReport],
        report_name: str | None = None,
    ) -> dict[str, Any]:
        """Write ``<name>.json`` (and ``<name>.html`` when the template is present)."""
        if report_name is None:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            report_name = f"sitecheck_{timestamp}"

        data = self.build_summary(reports, report_name)

        json_path = self.reports_dir / f"{report_name}.json"
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
        data["json_path"] = str(json_path)

        if self.jinja_env is not None:
            html_path = self.reports_dir / f"{report_name}.html"
            template = self.jinja_env.get_template("report.html.j2")
            html_path.write_text(template.render(report=data, icons=ICONS), encoding="utf-8")
            data["html_path"] = str(html_path)

        logger.info(
            "Generated suite report",
            report=report_name,
            runs=data["summary"]["total_runs"],
            failed=data["summary"]["failed"],
            warnings=data["summary"]["warnings"],
        )
        return data

    def render_text(self, reports: list[ScenarioReport]) -> str:
        """Human-readable breakdown, one block per run, followed by totals."""
        blocks = [r.render_text() for r in reports]
        total = len(reports)
        passed = sum(1 for r in reports if r.passed)
        warnings = sum(r.warning_count for r in reports)
        blocks.append(f"{passed}/{total} runs passed, {total - passed} failed, {warnings} warning(s)")
        return "\n\n".join(blocks)

    def _categorize_failure(self, kind: str, message: str) -> str:
        msg = (message or "").lower()
        if kind == "navigation":
            return "navigation_timeout" if "timeout" in msg else "navigation_error"
        if "timeout" in msg or "timed out" in msg:
            return "timeout"
        if kind in {"element", "interaction"} and "not found" in msg:
            return "element_not_found"
        if kind == "status":
            return "http_status"
        if kind == "keywords":
            return "content_missing"
        return kind or "unknown"


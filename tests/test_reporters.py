from __future__ import annotations

import json
from pathlib import Path
import tempfile
import unittest

from apiposture.models import EffectiveAuthorization, Endpoint, ScanResult, SourceLocation
from apiposture.reporters import (
    to_json_report,
    to_markdown_report,
    to_sarif_report,
    to_terminal_report,
    write_report,
)
from apiposture.rules import RuleEngine


def _result() -> ScanResult:
    endpoints = (
        Endpoint(
            route="/api/orders",
            verbs=("POST",),
            owner="OrdersController",
            member="create",
            location=SourceLocation("src/OrdersController.java", 12),
            authorization=EffectiveAuthorization(),
            tier="public",
        ),
        Endpoint(
            route="/api/orders/{id}",
            verbs=("GET",),
            owner="OrdersController",
            member="get",
            location=SourceLocation("src/OrdersController.java", 18),
            authorization=EffectiveAuthorization(
                requires_authorization=True,
                roles=frozenset({"ORDERS_READER"}),
                provenance="method_own",
            ),
            tier="role_restricted",
        ),
    )
    result = ScanResult(project_path="/work/shop", endpoints=endpoints, files_scanned=3, duration=0.25)
    return RuleEngine().evaluate_result(result)


class ReporterTests(unittest.TestCase):
    def test_json_report_contains_summary_counts_and_references(self) -> None:
        payload = to_json_report(_result())

        self.assertEqual(payload["summary"]["files_scanned"], 3)
        self.assertEqual(payload["summary"]["duration_ms"], 250)
        self.assertEqual(payload["summary"]["endpoints_total"], 2)
        self.assertEqual(payload["severity_counts"], {"info": 0, "low": 0, "medium": 0, "high": 2, "critical": 1})
        self.assertEqual(payload["tier_counts"]["public"], 1)
        self.assertEqual(payload["tier_counts"]["role_restricted"], 1)
        self.assertEqual(payload["rule_counts"], {"AP001": 1, "AP004": 1, "AP008": 1})
        self.assertEqual(payload["endpoints"][1]["authorization"]["roles"], ["ORDERS_READER"])
        self.assertEqual(payload["endpoints"][1]["authorization"]["provenance"], "method_own")
        self.assertEqual(payload["findings"][0]["rule_id"], "AP004")
        self.assertEqual(payload["findings"][0]["endpoint"]["index"], 0)
        self.assertEqual(payload["findings"][0]["location"]["line"], 12)
        json.dumps(payload)

    def test_sarif_report_has_rules_and_results(self) -> None:
        payload = to_sarif_report(_result())
        run = payload["runs"][0]

        self.assertEqual(payload["version"], "2.1.0")
        self.assertEqual([rule["id"] for rule in run["tool"]["driver"]["rules"]], ["AP001", "AP004", "AP008"])
        self.assertEqual(run["results"][0]["level"], "error")
        region = run["results"][0]["locations"][0]["physicalLocation"]["region"]
        self.assertEqual(region, {"startLine": 12})

    def test_terminal_report_without_color_or_icons(self) -> None:
        text = to_terminal_report(_result(), color=False, icons=False)

        self.assertIn("ApiPosture Security Scan Report", text)
        self.assertIn("PUBLIC (1)", text)
        self.assertIn("ROLE RESTRICTED (1)", text)
        self.assertIn("[POST] /api/orders [OrdersController.create]", text)
        self.assertIn("CRITICAL [AP004]", text)
        self.assertIn("at src/OrdersController.java:12", text)
        self.assertIn("Action required: Found 3 critical/high severity issues.", text)
        self.assertNotIn("\033[", text)

    def test_terminal_report_uses_ansi_when_colored(self) -> None:
        text = to_terminal_report(_result(), color=True, icons=True)
        self.assertIn("\033[", text)
        self.assertIn("⛔", text)

    def test_terminal_report_for_clean_scan(self) -> None:
        text = to_terminal_report(ScanResult(project_path="/empty"), color=False, icons=False)
        self.assertIn("No security issues found.", text)
        self.assertNotIn("--- Findings ---", text)

    def test_markdown_report_tables(self) -> None:
        text = to_markdown_report(_result())

        self.assertIn("# ApiPosture Security Scan Report", text)
        self.assertIn("| critical | 1 |", text)
        self.assertIn("| POST | `/api/orders` | `OrdersController.create` | public | none |", text)
        self.assertIn("| critical | AP004", text)

    def test_write_report_to_file_creates_parents(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "nested" / "report.json"
            write_report({"ok": True}, str(out))
            self.assertEqual(json.loads(out.read_text(encoding="utf-8")), {"ok": True})

            text_out = Path(tmp) / "report.md"
            write_report("# title\n", str(text_out))
            self.assertEqual(text_out.read_text(encoding="utf-8"), "# title\n")


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

from collections import Counter
import json
from pathlib import Path
from typing import Any

from apiposture import __version__
from apiposture.models import (
    SECURITY_TIERS,
    SEVERITIES,
    Diagnostic,
    EffectiveAuthorization,
    Endpoint,
    Finding,
    ScanResult,
    SecurityTier,
    Severity,
    SourceLocation,
)

RESET = "\033[0m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
WHITE = "\033[37m"

SEVERITY_ICONS: dict[Severity, str] = {
    "critical": "⛔",
    "high": "❗",
    "medium": "⚠",
    "low": "ℹ",
    "info": "•",
}
SEVERITY_COLORS: dict[Severity, str] = {
    "critical": RED,
    "high": RED,
    "medium": YELLOW,
    "low": CYAN,
    "info": WHITE,
}
TIER_ICONS: dict[SecurityTier, str] = {
    "public": "\U0001f513",
    "authenticated": "\U0001f510",
    "role_restricted": "\U0001f512",
    "policy_restricted": "\U0001f6e1",
}
TIER_COLORS: dict[SecurityTier, str] = {
    "public": RED,
    "authenticated": YELLOW,
    "role_restricted": GREEN,
    "policy_restricted": CYAN,
}
REPORT_TITLE = "ApiPosture Security Scan Report"


def _location_to_dict(location: SourceLocation) -> dict[str, Any]:
    return {"file_path": location.file_path, "line": location.line, "column": location.column}


def _authorization_to_dict(auth: EffectiveAuthorization) -> dict[str, Any]:
    return {
        "requires_authorization": auth.requires_authorization,
        "permit_all": auth.permit_all,
        "deny_all": auth.deny_all,
        "authenticated_required": auth.authenticated_required,
        "roles": sorted(auth.roles),
        "authorities": sorted(auth.authorities),
        "expression": auth.expression,
        "provenance": auth.provenance,
    }


def _endpoint_to_dict(index: int, endpoint: Endpoint) -> dict[str, Any]:
    return {
        "index": index,
        "route": endpoint.route,
        "verbs": list(endpoint.verbs),
        "owner": endpoint.owner,
        "member": endpoint.member,
        "location": _location_to_dict(endpoint.location),
        "tier": endpoint.tier,
        "authorization": _authorization_to_dict(endpoint.authorization),
    }


def _finding_to_dict(finding: Finding, endpoint_index: int) -> dict[str, Any]:
    return {
        "rule_id": finding.rule_id,
        "rule_name": finding.rule_name,
        "severity": finding.severity,
        "message": finding.message,
        "remediation": finding.remediation,
        "endpoint": {"index": endpoint_index, "route": finding.endpoint.route, "handler": finding.endpoint.handler},
        "location": _location_to_dict(finding.location),
    }


def _diagnostic_to_dict(diagnostic: Diagnostic) -> dict[str, Any]:
    return {
        "kind": diagnostic.kind,
        "message": diagnostic.message,
        "location": _location_to_dict(diagnostic.location) if diagnostic.location is not None else None,
        "rule_id": diagnostic.rule_id,
    }


def _endpoint_indexes(result: ScanResult) -> dict[Endpoint, int]:
    indexes: dict[Endpoint, int] = {}
    for index, endpoint in enumerate(result.endpoints):
        indexes.setdefault(endpoint, index)
    return indexes


def to_json_report(result: ScanResult) -> dict[str, Any]:
    indexes = _endpoint_indexes(result)
    tier_counts = Counter(endpoint.tier for endpoint in result.endpoints)
    rule_counts = Counter(finding.rule_id for finding in result.findings)
    return {
        "summary": {
            "project_path": result.project_path,
            "files_scanned": result.files_scanned,
            "skipped_files": list(result.skipped_files),
            "duration_ms": round(result.duration * 1000),
            "timestamp": result.timestamp.isoformat(),
            "endpoints_total": result.total_endpoints,
            "findings_total": result.total_findings,
        },
        "severity_counts": dict(result.severity_counts()),
        "tier_counts": {tier: tier_counts.get(tier, 0) for tier in SECURITY_TIERS},
        "rule_counts": dict(sorted(rule_counts.items())),
        "endpoints": [_endpoint_to_dict(index, endpoint) for index, endpoint in enumerate(result.endpoints)],
        "findings": [_finding_to_dict(finding, indexes[finding.endpoint]) for finding in result.findings],
        "diagnostics": [_diagnostic_to_dict(diagnostic) for diagnostic in result.diagnostics],
    }


def to_sarif_report(result: ScanResult) -> dict[str, Any]:
    descriptors: dict[str, dict[str, Any]] = {}
    sarif_results: list[dict[str, Any]] = []
    for finding in result.findings:
        descriptors.setdefault(
            finding.rule_id,
            {
                "id": finding.rule_id,
                "name": finding.rule_name,
                "shortDescription": {"text": finding.rule_name},
                "help": {"text": finding.remediation},
                "defaultConfiguration": {"level": _severity_to_level(finding.severity)},
            },
        )
        region: dict[str, Any] = {"startLine": max(finding.location.line, 1)}
        if finding.location.column is not None:
            region["startColumn"] = finding.location.column
        sarif_results.append(
            {
                "ruleId": finding.rule_id,
                "level": _severity_to_level(finding.severity),
                "message": {"text": f"{finding.rule_name}: {finding.message}"},
                "locations": [
                    {
                        "physicalLocation": {
                            "artifactLocation": {"uri": finding.location.file_path},
                            "region": region,
                        }
                    }
                ],
                "properties": {
                    "severity": finding.severity,
                    "route": finding.endpoint.route,
                    "tier": finding.endpoint.tier,
                },
            }
        )

    return {
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "apiposture",
                        "version": __version__,
                        "rules": [descriptors[rule_id] for rule_id in sorted(descriptors)],
                    }
                },
                "results": sarif_results,
            }
        ],
    }


def to_terminal_report(result: ScanResult, color: bool = True, icons: bool = True) -> str:
    def paint(text: str, code: str, bold: bool = False) -> str:
        if not color:
            return text
        return f"{BOLD if bold else ''}{code}{text}{RESET}"

    def severity_label(severity: Severity) -> str:
        icon = f"{SEVERITY_ICONS[severity]} " if icons else ""
        return paint(f"{icon}{severity.upper()}", SEVERITY_COLORS[severity], bold=True)

    def tier_label(tier: SecurityTier) -> str:
        icon = f"{TIER_ICONS[tier]} " if icons else ""
        return paint(f"{icon}{tier.replace('_', ' ').upper()}", TIER_COLORS[tier], bold=True)

    lines: list[str] = [
        paint(REPORT_TITLE, CYAN, bold=True),
        paint("=" * len(REPORT_TITLE), CYAN),
        "",
        f"{paint('Project:', WHITE, bold=True)} {result.project_path}",
        f"{paint('Files scanned:', WHITE, bold=True)} {result.files_scanned}",
        f"{paint('Duration:', WHITE, bold=True)} {_format_duration(result.duration)}",
    ]
    if result.skipped_files:
        lines.append(f"{paint('Files skipped:', WHITE, bold=True)} {len(result.skipped_files)}")
    lines.extend(
        [
            "",
            f"{paint('Endpoints found:', WHITE, bold=True)} {result.total_endpoints}",
            f"{paint('Findings:', WHITE, bold=True)} {result.total_findings}",
        ]
    )
    counts = result.severity_counts()
    if result.findings:
        lines.append("")
        for severity in reversed(SEVERITIES):
            if counts[severity]:
                lines.append(f"  {severity_label(severity)}: {counts[severity]}")

    if result.endpoints:
        lines.extend(["", paint("--- Endpoints ---", CYAN, bold=True), ""])
        for tier, endpoints in result.endpoints_by_tier().items():
            if not endpoints:
                continue
            lines.append(f"{tier_label(tier)} ({len(endpoints)})")
            for endpoint in endpoints:
                verb_color = YELLOW if endpoint.has_write_verbs else CYAN
                verbs = paint(f"[{','.join(endpoint.verbs)}]", verb_color)
                lines.append(f"  {verbs} {endpoint.route} {paint(f'[{endpoint.handler}]', WHITE)}")
            lines.append("")

    if result.findings:
        lines.extend(["", paint("--- Findings ---", CYAN, bold=True), ""])
        for finding in result.findings:
            lines.append(
                f"{severity_label(finding.severity)} {paint(f'[{finding.rule_id}]', YELLOW)} "
                f"{paint(finding.rule_name, WHITE, bold=True)}"
            )
            lines.append(f"   {finding.message}")
            lines.append(f"   {paint('at', WHITE)} {finding.location}")
            lines.append(f"   {paint('Recommendation:', GREEN)} {finding.remediation}")
            lines.append("")

    lines.append("")
    if not result.findings:
        lines.append(paint("No security issues found.", GREEN, bold=True))
    else:
        urgent = counts["critical"] + counts["high"]
        if urgent:
            lines.append(f"{paint('Action required:', RED, bold=True)} Found {urgent} critical/high severity issues.")
        else:
            lines.append(
                f"{paint('Review recommended:', YELLOW, bold=True)} Found {result.total_findings} potential issues."
            )
    return "\n".join(lines) + "\n"


def to_markdown_report(result: ScanResult) -> str:
    counts = result.severity_counts()
    lines: list[str] = [
        f"# {REPORT_TITLE}",
        "",
        f"- **Project:** `{result.project_path}`",
        f"- **Files scanned:** {result.files_scanned}",
        f"- **Endpoints:** {result.total_endpoints}",
        f"- **Findings:** {result.total_findings}",
        f"- **Timestamp:** {result.timestamp.isoformat()}",
        "",
        "## Severity summary",
        "",
        "| Severity | Count |",
        "| --- | --- |",
    ]
    lines.extend(f"| {severity} | {counts[severity]} |" for severity in reversed(SEVERITIES))

    lines.extend(["", "## Endpoints", ""])
    if result.endpoints:
        lines.extend(["| Verbs | Route | Handler | Tier | Provenance |", "| --- | --- | --- | --- | --- |"])
        for endpoint in result.endpoints:
            lines.append(
                f"| {', '.join(endpoint.verbs)} | `{_md_escape(endpoint.route)}` | `{endpoint.handler}` "
                f"| {endpoint.tier} | {endpoint.authorization.provenance} |"
            )
    else:
        lines.append("_No endpoints discovered._")

    lines.extend(["", "## Findings", ""])
    if result.findings:
        lines.extend(["| Severity | Rule | Route | Message | Location |", "| --- | --- | --- | --- | --- |"])
        for finding in result.findings:
            lines.append(
                f"| {finding.severity} | {finding.rule_id} {_md_escape(finding.rule_name)} "
                f"| `{_md_escape(finding.endpoint.route)}` | {_md_escape(finding.message)} | `{finding.location}` |"
            )
    else:
        lines.append("No security issues found.")

    if result.diagnostics:
        lines.extend(["", "## Diagnostics", ""])
        lines.extend(f"- `{diagnostic.kind}`: {_md_escape(diagnostic.message)}" for diagnostic in result.diagnostics)
    return "\n".join(lines) + "\n"


def write_report(payload: dict[str, Any] | str, out: str | None) -> None:
    rendered = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
    if out is None:
        print(rendered)
        return
    output_path = Path(out)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(rendered, encoding="utf-8")


def _severity_to_level(severity: str) -> str:
    mapping = {
        "info": "note",
        "low": "note",
        "medium": "warning",
        "high": "error",
        "critical": "error",
    }
    return mapping.get(severity, "warning")


def _format_duration(seconds: float) -> str:
    millis = int(seconds * 1000)
    if millis < 1000:
        return f"{millis}ms"
    return f"{seconds:.2f}s"


def _md_escape(text: str) -> str:
    return text.replace("|", "\\|")

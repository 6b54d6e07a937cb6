from __future__ import annotations

from apiposture.models import SEVERITY_ORDER, ScanResult, Severity


def evaluate_gate(
    result: ScanResult,
    fail_on: Severity | None = None,
    max_findings: int | None = None,
    max_info: int | None = None,
    max_low: int | None = None,
    max_medium: int | None = None,
    max_high: int | None = None,
    max_critical: int | None = None,
) -> tuple[bool, list[str]]:
    failed_reasons: list[str] = []
    severity_counts = result.severity_counts()

    if fail_on is not None:
        threshold = SEVERITY_ORDER[fail_on]
        if any(SEVERITY_ORDER[finding.severity] >= threshold for finding in result.findings):
            failed_reasons.append(f"Detected finding severity >= '{fail_on}'")

    if max_findings is not None and result.total_findings > max_findings:
        failed_reasons.append(f"Finding count {result.total_findings} exceeds max_findings={max_findings}")

    per_severity_limits: dict[Severity, int | None] = {
        "info": max_info,
        "low": max_low,
        "medium": max_medium,
        "high": max_high,
        "critical": max_critical,
    }
    for severity, limit in per_severity_limits.items():
        if limit is not None and severity_counts[severity] > limit:
            failed_reasons.append(
                f"{severity} finding count {severity_counts[severity]} exceeds max_{severity}={limit}"
            )

    return (len(failed_reasons) == 0, failed_reasons)

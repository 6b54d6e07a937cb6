from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from apiposture import __version__
from apiposture.analyzer import scan_project
from apiposture.config import REPORT_FORMATS, Config, load_config
from apiposture.models import HTTP_VERBS, SECURITY_TIERS, SEVERITIES, SEVERITY_ORDER, ScanResult
from apiposture.quality_gate import evaluate_gate
from apiposture.reporters import to_json_report, to_markdown_report, to_sarif_report, to_terminal_report, write_report
from apiposture.rules.engine import RuleEngine

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

HELP_EPILOG = """\
Examples:
  apiposture scan src/main/java
  apiposture scan . --format json --out report.json
  apiposture scan . --severity medium --fail-on high
  apiposture scan . --classification public --method POST
  apiposture rules

Exit codes:
  0  scan completed and the quality gate passed
  1  the project path does not exist
  2  invalid configuration or failed quality gate
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apiposture",
        description="Static audit of annotation-based API access control.",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Discover endpoints and audit their authorization.")
    scan.add_argument("path", nargs="?", default=".", help="Project directory or single source file.")
    scan.add_argument("--config", help="Path to apiposture TOML config.")
    scan.add_argument("--exclude", action="append", default=[], help="Directory name or glob to exclude (repeatable).")
    scan.add_argument("--include-tests", action="store_true", help="Also analyze test source directories.")
    scan.add_argument("--disable-rule", action="append", default=[], help="Disable a rule ID (repeatable).")
    scan.add_argument("--severity", type=str.lower, choices=SEVERITIES, help="Minimum severity of reported findings.")
    scan.add_argument("--fail-on", type=str.lower, choices=SEVERITIES, help="Fail when a finding at or above this severity exists.")
    scan.add_argument("--max-findings", type=int, help="Fail if finding count exceeds this number.")
    scan.add_argument("--format", choices=REPORT_FORMATS, help="Report output format.")
    scan.add_argument("--out", help="Write report to file. Defaults to stdout.")
    scan.add_argument(
        "--classification",
        action="append",
        default=[],
        type=str.lower,
        choices=SECURITY_TIERS,
        help="Only report endpoints with this security tier (repeatable).",
    )
    scan.add_argument(
        "--method",
        action="append",
        default=[],
        type=str.upper,
        choices=HTTP_VERBS,
        help="Only report endpoints accepting this HTTP verb (repeatable).",
    )
    scan.add_argument("--workers", type=int, help="Number of threads used for rule evaluation.")
    scan.add_argument("--no-color", action="store_true", help="Disable ANSI colors in terminal output.")
    scan.add_argument("--no-icons", action="store_true", help="Disable icons in terminal output.")
    _add_logging_arguments(scan)

    rules = subparsers.add_parser("rules", help="List the built-in rules.")
    _add_logging_arguments(rules)

    return parser


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-level", default="WARNING", type=str.upper, choices=LOG_LEVELS, help="Logging level.")
    parser.add_argument("--log-file", help="Also write logs to this file.")
    parser.add_argument("--log-format", default="text", choices=["text", "json"], help="Log record format.")


def setup_logging(log_level: str = "WARNING", log_file: str | None = None, log_format: str = "text") -> None:
    package_logger = logging.getLogger("apiposture")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if log_format == "json":
        formatter: logging.Formatter = jsonlogger.JsonFormatter(fmt=LOG_FORMAT)
    else:
        formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)
    package_logger.setLevel(getattr(logging, log_level.upper()))

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file, args.log_format)

    if args.command == "scan":
        exit_code = run_scan(args)
        raise SystemExit(exit_code)
    if args.command == "rules":
        raise SystemExit(list_rules())


def run_scan(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"[config] {exc}", file=sys.stderr)
        return 2
    merged = merge_cli_with_config(args, config)
    validation_errors = validate_config(merged)
    if validation_errors:
        for error in validation_errors:
            print(f"[config] {error}", file=sys.stderr)
        return 2

    if not Path(args.path).exists():
        print(f"[error] path not found: {args.path}", file=sys.stderr)
        return 1

    result = scan_project(args.path, merged)
    if args.classification or args.method:
        result = result.filter(tiers=set(args.classification) or None, verbs=set(args.method) or None)

    write_report(render_report(result, merged), merged.report.out)
    print_summary(result)

    passed, reasons = evaluate_gate(
        result,
        fail_on=merged.quality_gate.fail_on,
        max_findings=merged.quality_gate.max_findings,
        max_info=merged.quality_gate.max_info,
        max_low=merged.quality_gate.max_low,
        max_medium=merged.quality_gate.max_medium,
        max_high=merged.quality_gate.max_high,
        max_critical=merged.quality_gate.max_critical,
    )
    if not passed:
        for reason in reasons:
            print(f"[gate] {reason}", file=sys.stderr)
        return 2
    return 0


def list_rules() -> int:
    for rule in RuleEngine().rules:
        print(f"{rule.rule_id}  {rule.severity:<8}  {rule.name}")
        print(f"        {rule.description}")
    return 0


def merge_cli_with_config(args: argparse.Namespace, config: Config) -> Config:
    merged = config
    if args.exclude:
        merged.scan.exclude = list(dict.fromkeys([*merged.scan.exclude, *args.exclude]))
    if args.include_tests:
        merged.scan.include_tests = True
    if args.disable_rule:
        merged.scan.disabled_rules = list(
            dict.fromkeys([*merged.scan.disabled_rules, *(rule.upper() for rule in args.disable_rule)])
        )
    if args.severity:
        merged.scan.minimum_severity = args.severity
    if args.workers is not None:
        merged.scan.workers = args.workers
    if args.format:
        merged.report.output_format = args.format
    if args.out:
        merged.report.out = args.out
    if args.no_color:
        merged.report.color = False
    if args.no_icons:
        merged.report.icons = False
    if args.fail_on:
        merged.quality_gate.fail_on = args.fail_on
    if args.max_findings is not None:
        merged.quality_gate.max_findings = args.max_findings
    return merged


def render_report(result: ScanResult, config: Config) -> dict[str, Any] | str:
    output_format = config.report.output_format
    if output_format == "terminal":
        return to_terminal_report(result, color=config.report.color, icons=config.report.icons)
    if output_format == "markdown":
        return to_markdown_report(result)
    if output_format == "sarif":
        return to_sarif_report(result)
    if output_format == "json":
        return to_json_report(result)
    raise ValueError(f"Unsupported report format: {output_format}")


def print_summary(result: ScanResult) -> None:
    counts = result.severity_counts()
    line = (
        f"[summary] files={result.files_scanned} skipped={len(result.skipped_files)} "
        f"endpoints={result.total_endpoints} findings={result.total_findings} "
        + " ".join(f"{severity}={counts[severity]}" for severity in SEVERITIES)
    )
    print(line, file=sys.stderr)
    if result.nothing_scanned:
        print("[warning] no source files were scanned", file=sys.stderr)


def validate_config(config: Config) -> list[str]:
    errors: list[str] = []
    severities = ", ".join(SEVERITIES)
    if config.scan.minimum_severity not in SEVERITY_ORDER:
        errors.append(f"minimum_severity must be one of: {severities}")
    if config.quality_gate.fail_on is not None and config.quality_gate.fail_on not in SEVERITY_ORDER:
        errors.append(f"fail_on must be one of: {severities}")
    if config.scan.workers < 1:
        errors.append("workers must be >= 1")
    if config.report.output_format not in REPORT_FORMATS:
        errors.append(f"format must be one of: {', '.join(REPORT_FORMATS)}")

    numeric_gate_values: list[tuple[str, int | None]] = [
        ("max_findings", config.quality_gate.max_findings),
        ("max_info", config.quality_gate.max_info),
        ("max_low", config.quality_gate.max_low),
        ("max_medium", config.quality_gate.max_medium),
        ("max_high", config.quality_gate.max_high),
        ("max_critical", config.quality_gate.max_critical),
    ]
    for gate_name, value in numeric_gate_values:
        if value is not None and value < 0:
            errors.append(f"{gate_name} must be >= 0")

    return errors


if __name__ == "__main__":
    main()

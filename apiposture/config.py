from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from apiposture.authorization import DEFAULT_VOCABULARY, MarkerVocabulary
from apiposture.models import Severity


DEFAULT_CONFIG_FILE = "apiposture.toml"
DEFAULT_EXCLUDES: list[str] = []
REPORT_FORMATS = ("terminal", "json", "markdown", "sarif")
MARKER_KINDS = ("controller", "expression", "role_list", "permit", "deny", "mapping")


@dataclass(slots=True)
class ScanConfig:
    exclude: list[str] = field(default_factory=lambda: DEFAULT_EXCLUDES.copy())
    include_tests: bool = False
    disabled_rules: list[str] = field(default_factory=list)
    minimum_severity: Severity = "info"
    workers: int = 1


@dataclass(slots=True)
class MarkerConfig:
    controller: list[str] = field(default_factory=list)
    expression: list[str] = field(default_factory=list)
    role_list: list[str] = field(default_factory=list)
    permit: list[str] = field(default_factory=list)
    deny: list[str] = field(default_factory=list)
    mapping: list[str] = field(default_factory=list)

    def vocabulary(self) -> MarkerVocabulary:
        extra = {kind: getattr(self, kind) for kind in MARKER_KINDS if getattr(self, kind)}
        if not extra:
            return DEFAULT_VOCABULARY
        return DEFAULT_VOCABULARY.extended(extra)


@dataclass(slots=True)
class QualityGateConfig:
    fail_on: Severity | None = None
    max_findings: int | None = None
    max_info: int | None = None
    max_low: int | None = None
    max_medium: int | None = None
    max_high: int | None = None
    max_critical: int | None = None


@dataclass(slots=True)
class ReportConfig:
    output_format: str = "terminal"
    out: str | None = None
    color: bool = True
    icons: bool = True


@dataclass(slots=True)
class Config:
    scan: ScanConfig = field(default_factory=ScanConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    quality_gate: QualityGateConfig = field(default_factory=QualityGateConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def load_config(path: str | None) -> Config:
    if path is None:
        default = Path(DEFAULT_CONFIG_FILE)
        if not default.exists():
            return Config()
        path = str(default)

    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")

    with cfg_path.open("rb") as fh:
        payload = tomllib.load(fh)

    scan = payload.get("scan", {})
    markers = payload.get("markers", {})
    quality_gate = payload.get("quality_gate", {})
    report = payload.get("report", {})

    unknown_kinds = set(markers) - set(MARKER_KINDS)
    if unknown_kinds:
        raise ValueError(f"Unknown marker kinds in [markers]: {', '.join(sorted(unknown_kinds))}")

    config = Config()
    config.scan.exclude = [str(item) for item in scan.get("exclude", config.scan.exclude)]
    config.scan.include_tests = bool(scan.get("include_tests", config.scan.include_tests))
    config.scan.disabled_rules = [str(rule).upper() for rule in scan.get("disabled_rules", config.scan.disabled_rules)]
    config.scan.minimum_severity = str(scan.get("minimum_severity", config.scan.minimum_severity)).lower()
    config.scan.workers = int(scan.get("workers", config.scan.workers))
    for kind in MARKER_KINDS:
        setattr(config.markers, kind, [str(name) for name in markers.get(kind, [])])
    config.quality_gate.fail_on = _lower_or_none(quality_gate.get("fail_on"))
    config.quality_gate.max_findings = quality_gate.get("max_findings")
    config.quality_gate.max_info = quality_gate.get("max_info")
    config.quality_gate.max_low = quality_gate.get("max_low")
    config.quality_gate.max_medium = quality_gate.get("max_medium")
    config.quality_gate.max_high = quality_gate.get("max_high")
    config.quality_gate.max_critical = quality_gate.get("max_critical")
    config.report.output_format = str(report.get("format", config.report.output_format)).lower()
    config.report.out = report.get("out")
    config.report.color = bool(report.get("color", config.report.color))
    config.report.icons = bool(report.get("icons", config.report.icons))
    return config


def _lower_or_none(value: object) -> str | None:
    if value is None:
        return None
    return str(value).lower()

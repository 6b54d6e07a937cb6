from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Literal

Severity = Literal["info", "low", "medium", "high", "critical"]
SecurityTier = Literal["public", "authenticated", "role_restricted", "policy_restricted"]
Classification = Literal["unclassified", "public", "authenticated", "role_restricted", "policy_restricted"]
Provenance = Literal["none", "method_own", "inherited_from_type", "method_overrides_type"]
HttpVerb = Literal["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
DiagnosticKind = Literal["malformed_expression", "rule_evaluation_fault", "unresolvable_syntax_unit"]

SEVERITY_ORDER: dict[Severity, int] = {
    "info": 0,
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}
SEVERITIES: tuple[Severity, ...] = ("info", "low", "medium", "high", "critical")

UNCLASSIFIED: Classification = "unclassified"
TIER_ORDER: dict[SecurityTier, int] = {
    "public": 0,
    "authenticated": 1,
    "role_restricted": 2,
    "policy_restricted": 3,
}
SECURITY_TIERS: tuple[SecurityTier, ...] = ("public", "authenticated", "role_restricted", "policy_restricted")

HTTP_VERBS: tuple[HttpVerb, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")
WRITE_VERBS: frozenset[str] = frozenset({"POST", "PUT", "DELETE", "PATCH"})


def parse_severity(value: str) -> Severity:
    normalized = value.strip().lower()
    if normalized not in SEVERITY_ORDER:
        raise ValueError(f"Unknown severity '{value}'; expected one of: {', '.join(SEVERITIES)}")
    return normalized  # type: ignore[return-value]


def parse_tier(value: str) -> SecurityTier:
    normalized = value.strip().lower().replace("-", "_").replace(" ", "_")
    if normalized not in TIER_ORDER:
        raise ValueError(f"Unknown classification '{value}'; expected one of: {', '.join(SECURITY_TIERS)}")
    return normalized  # type: ignore[return-value]


def order_verbs(verbs) -> tuple[HttpVerb, ...]:
    present = set(verbs)
    return tuple(verb for verb in HTTP_VERBS if verb in present)


@dataclass(frozen=True, slots=True)
class SourceLocation:
    file_path: str
    line: int
    column: int | None = None

    def __str__(self) -> str:
        if self.column is None:
            return f"{self.file_path}:{self.line}"
        return f"{self.file_path}:{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class AuthorizationIntent:
    requires_authorization: bool = False
    permit_all: bool = False
    deny_all: bool = False
    authenticated_required: bool = False
    roles: frozenset[str] = frozenset()
    authorities: frozenset[str] = frozenset()
    expression: str | None = None

    @property
    def has_any_security(self) -> bool:
        return bool(self.requires_authorization or self.authenticated_required or self.roles or self.authorities)

    @property
    def has_explicit_access(self) -> bool:
        return self.permit_all or self.deny_all


@dataclass(frozen=True, slots=True)
class EffectiveAuthorization:
    requires_authorization: bool = False
    permit_all: bool = False
    deny_all: bool = False
    authenticated_required: bool = False
    roles: frozenset[str] = frozenset()
    authorities: frozenset[str] = frozenset()
    expression: str | None = None
    provenance: Provenance = "none"
    # Whether the owning type declared any requirement, kept even when the member wins.
    type_has_security: bool = False

    @classmethod
    def from_intent(
        cls, intent: AuthorizationIntent, provenance: Provenance, type_has_security: bool
    ) -> EffectiveAuthorization:
        return cls(
            requires_authorization=intent.requires_authorization,
            permit_all=intent.permit_all,
            deny_all=intent.deny_all,
            authenticated_required=intent.authenticated_required,
            roles=intent.roles,
            authorities=intent.authorities,
            expression=intent.expression,
            provenance=provenance,
            type_has_security=type_has_security,
        )

    @property
    def has_any_security(self) -> bool:
        return bool(self.requires_authorization or self.authenticated_required or self.roles or self.authorities)

    @property
    def is_unsecured(self) -> bool:
        return not (self.has_any_security or self.permit_all or self.deny_all)


@dataclass(frozen=True, slots=True)
class Endpoint:
    route: str
    verbs: tuple[HttpVerb, ...]
    owner: str
    member: str
    location: SourceLocation
    authorization: EffectiveAuthorization
    tier: Classification = UNCLASSIFIED

    def __post_init__(self) -> None:
        if not self.verbs:
            raise ValueError(f"Endpoint '{self.route}' must declare at least one HTTP verb")

    @property
    def handler(self) -> str:
        return f"{self.owner}.{self.member}"

    @property
    def is_classified(self) -> bool:
        return self.tier != UNCLASSIFIED

    @property
    def write_verbs(self) -> tuple[HttpVerb, ...]:
        return tuple(verb for verb in self.verbs if verb in WRITE_VERBS)

    @property
    def has_write_verbs(self) -> bool:
        return any(verb in WRITE_VERBS for verb in self.verbs)

    def with_tier(self, tier: SecurityTier) -> Endpoint:
        if self.is_classified:
            raise ValueError(f"Endpoint {self.handler} is already classified as '{self.tier}'")
        return replace(self, tier=tier)


@dataclass(frozen=True, slots=True)
class Finding:
    rule_id: str
    rule_name: str
    severity: Severity
    message: str
    endpoint: Endpoint
    remediation: str

    @property
    def location(self) -> SourceLocation:
        return self.endpoint.location


@dataclass(frozen=True, slots=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    location: SourceLocation | None = None
    rule_id: str | None = None


@dataclass(frozen=True, slots=True)
class ScanResult:
    project_path: str
    endpoints: tuple[Endpoint, ...] = ()
    findings: tuple[Finding, ...] = ()
    files_scanned: int = 0
    duration: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    skipped_files: tuple[str, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.endpoints)
        for finding in self.findings:
            if finding.endpoint not in known:
                raise ValueError(
                    f"Finding {finding.rule_id} references endpoint {finding.endpoint.handler} "
                    "that is not part of this result"
                )

    @property
    def total_endpoints(self) -> int:
        return len(self.endpoints)

    @property
    def total_findings(self) -> int:
        return len(self.findings)

    @property
    def nothing_scanned(self) -> bool:
        return self.files_scanned == 0

    def findings_by_severity(self) -> dict[Severity, list[Finding]]:
        grouped: dict[Severity, list[Finding]] = {severity: [] for severity in SEVERITIES}
        for finding in self.findings:
            grouped[finding.severity].append(finding)
        return grouped

    def severity_counts(self) -> dict[Severity, int]:
        counts = Counter(finding.severity for finding in self.findings)
        return {severity: counts.get(severity, 0) for severity in SEVERITIES}

    def findings_at_or_above(self, severity: Severity) -> list[Finding]:
        threshold = SEVERITY_ORDER[severity]
        return [finding for finding in self.findings if SEVERITY_ORDER[finding.severity] >= threshold]

    def has_findings(self, severity: Severity) -> bool:
        return bool(self.findings_at_or_above(severity))

    def highest_severity(self) -> Severity | None:
        if not self.findings:
            return None
        return max((finding.severity for finding in self.findings), key=SEVERITY_ORDER.__getitem__)

    def endpoints_by_tier(self) -> dict[SecurityTier, list[Endpoint]]:
        grouped: dict[SecurityTier, list[Endpoint]] = {tier: [] for tier in SECURITY_TIERS}
        for endpoint in self.endpoints:
            if endpoint.is_classified:
                grouped[endpoint.tier].append(endpoint)  # type: ignore[index]
        return grouped

    def with_findings(self, findings: list[Finding], diagnostics: list[Diagnostic] | None = None) -> ScanResult:
        return replace(
            self,
            findings=tuple(findings),
            diagnostics=self.diagnostics + tuple(diagnostics or ()),
        )

    def filter(
        self,
        tiers: set[str] | None = None,
        verbs: set[str] | None = None,
    ) -> ScanResult:
        endpoints = list(self.endpoints)
        if tiers:
            endpoints = [endpoint for endpoint in endpoints if endpoint.tier in tiers]
        if verbs:
            wanted = {verb.upper() for verb in verbs}
            endpoints = [endpoint for endpoint in endpoints if wanted.intersection(endpoint.verbs)]
        kept = set(endpoints)
        findings = [finding for finding in self.findings if finding.endpoint in kept]
        return replace(self, endpoints=tuple(endpoints), findings=tuple(findings))

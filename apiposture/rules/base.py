from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol, runtime_checkable

from apiposture.models import Endpoint, Finding, Severity


@runtime_checkable
class Rule(Protocol):
    rule_id: str
    name: str
    description: str
    severity: Severity

    def evaluate(self, endpoint: Endpoint) -> Finding | None: ...


@dataclass(frozen=True, slots=True)
class EndpointRule:
    """A rule built from a check that returns a finding message, or None when the endpoint passes."""

    rule_id: str
    name: str
    description: str
    severity: Severity
    remediation: str
    check: Callable[[Endpoint], str | None]

    def evaluate(self, endpoint: Endpoint) -> Finding | None:
        message = self.check(endpoint)
        if message is None:
            return None
        return Finding(
            rule_id=self.rule_id,
            rule_name=self.name,
            severity=self.severity,
            message=message,
            endpoint=endpoint,
            remediation=self.remediation,
        )

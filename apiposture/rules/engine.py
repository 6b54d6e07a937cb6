from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Iterable

from apiposture.models import SEVERITY_ORDER, Diagnostic, Endpoint, Finding, ScanResult, Severity
from apiposture.rules.base import Rule
from apiposture.rules.catalog import BUILTIN_RULES

logger = logging.getLogger(__name__)

BUILTIN_RULE_PREFIX = "AP"


@dataclass(frozen=True, slots=True)
class Evaluation:
    findings: tuple[Finding, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()


class RuleEngine:
    def __init__(
        self,
        rules: Iterable[Rule] | None = None,
        minimum_severity: Severity = "info",
        disabled_rules: Iterable[str] = (),
    ) -> None:
        if minimum_severity not in SEVERITY_ORDER:
            raise ValueError(f"Unknown severity '{minimum_severity}'")
        self._rules: dict[str, Rule] = {}
        self._disabled: set[str] = {rule_id.upper() for rule_id in disabled_rules}
        self.minimum_severity: Severity = minimum_severity
        if rules is None:
            rules = BUILTIN_RULES
        for rule in rules:
            self._add(rule)

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules.values())

    @property
    def disabled_rules(self) -> set[str]:
        return set(self._disabled)

    def get_rule(self, rule_id: str) -> Rule | None:
        return self._rules.get(rule_id.upper())

    def register(self, rule: Rule) -> None:
        """Register an external rule; built-in identifiers are reserved."""
        self.register_all([rule])

    def register_all(self, rules: Iterable[Rule]) -> None:
        """Register external rules together: if any one is rejected, none are added."""
        pending = list(rules)
        seen: set[str] = set()
        for rule in pending:
            key = rule.rule_id.upper()
            if key.startswith(BUILTIN_RULE_PREFIX):
                raise ValueError(
                    f"Rule id '{rule.rule_id}' uses the reserved '{BUILTIN_RULE_PREFIX}' prefix of built-in rules"
                )
            if key in self._rules or key in seen:
                raise ValueError(f"Rule id '{rule.rule_id}' is already registered")
            if rule.severity not in SEVERITY_ORDER:
                raise ValueError(f"Rule '{rule.rule_id}' has unknown severity '{rule.severity}'")
            seen.add(key)
        for rule in pending:
            self._add(rule)

    def copy(self) -> RuleEngine:
        """Return an independent engine with the same rules, disabled set and threshold."""
        return RuleEngine(self._rules.values(), self.minimum_severity, self._disabled)

    def disable(self, rule_id: str) -> None:
        self._disabled.add(rule_id.upper())

    def enable(self, rule_id: str) -> None:
        self._disabled.discard(rule_id.upper())

    def is_enabled(self, rule_id: str) -> bool:
        return rule_id.upper() not in self._disabled

    def enabled_rules(self) -> list[Rule]:
        return [rule for rule in self._rules.values() if rule.rule_id.upper() not in self._disabled]

    def evaluate(self, endpoints: Iterable[Endpoint], workers: int = 1) -> Evaluation:
        indexed = list(enumerate(endpoints))
        rules = self.enabled_rules()
        if workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                batches = list(pool.map(lambda rule: _run_rule(rule, indexed), rules))
        else:
            batches = [_run_rule(rule, indexed) for rule in rules]

        threshold = SEVERITY_ORDER[self.minimum_severity]
        ranked: list[tuple[int, Finding]] = []
        diagnostics: list[Diagnostic] = []
        for found, faults in batches:
            ranked.extend(item for item in found if SEVERITY_ORDER[item[1].severity] >= threshold)
            diagnostics.extend(faults)

        ranked.sort(key=lambda item: (-SEVERITY_ORDER[item[1].severity], item[1].rule_id, item[0]))
        return Evaluation(findings=tuple(finding for _, finding in ranked), diagnostics=tuple(diagnostics))

    def evaluate_result(self, result: ScanResult, workers: int = 1) -> ScanResult:
        evaluation = self.evaluate(result.endpoints, workers=workers)
        return result.with_findings(list(evaluation.findings), list(evaluation.diagnostics))

    def _add(self, rule: Rule) -> None:
        key = rule.rule_id.upper()
        if key in self._rules:
            raise ValueError(f"Rule id '{rule.rule_id}' is already registered")
        if rule.severity not in SEVERITY_ORDER:
            raise ValueError(f"Rule '{rule.rule_id}' has unknown severity '{rule.severity}'")
        self._rules[key] = rule


def _run_rule(
    rule: Rule, indexed: list[tuple[int, Endpoint]]
) -> tuple[list[tuple[int, Finding]], list[Diagnostic]]:
    found: list[tuple[int, Finding]] = []
    faults: list[Diagnostic] = []
    for index, endpoint in indexed:
        try:
            finding = rule.evaluate(endpoint)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Rule %s failed on %s: %s", rule.rule_id, endpoint.handler, exc)
            faults.append(
                Diagnostic(
                    kind="rule_evaluation_fault",
                    message=f"Rule {rule.rule_id} failed on {endpoint.handler}: {exc}",
                    location=endpoint.location,
                    rule_id=rule.rule_id,
                )
            )
            continue
        if finding is None:
            continue
        if finding.endpoint != endpoint:
            logger.warning("Rule %s returned a finding for a different endpoint than %s", rule.rule_id, endpoint.handler)
            faults.append(
                Diagnostic(
                    kind="rule_evaluation_fault",
                    message=f"Rule {rule.rule_id} returned a finding that does not reference {endpoint.handler}",
                    location=endpoint.location,
                    rule_id=rule.rule_id,
                )
            )
            continue
        found.append((index, finding))
    return found, faults

from apiposture.rules.base import EndpointRule, Rule
from apiposture.rules.catalog import BUILTIN_RULES
from apiposture.rules.engine import Evaluation, RuleEngine

__all__ = [
    "BUILTIN_RULES",
    "EndpointRule",
    "Evaluation",
    "Rule",
    "RuleEngine",
]

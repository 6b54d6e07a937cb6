from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

from apiposture.models import AuthorizationIntent
from apiposture.syntax import Expression, Marker, MarkerValue, literal_strings

logger = logging.getLogger(__name__)

HAS_ROLE_PATTERN = re.compile(r"hasRole\s*\(\s*['\"]([^'\"]+)['\"]\s*\)", re.IGNORECASE)
HAS_ANY_ROLE_PATTERN = re.compile(r"hasAnyRole\s*\(([^)]+)\)", re.IGNORECASE)
HAS_AUTHORITY_PATTERN = re.compile(r"hasAuthority\s*\(\s*['\"]([^'\"]+)['\"]\s*\)", re.IGNORECASE)
HAS_ANY_AUTHORITY_PATTERN = re.compile(r"hasAnyAuthority\s*\(([^)]+)\)", re.IGNORECASE)
IS_AUTHENTICATED_PATTERN = re.compile(r"isAuthenticated\s*\(\s*\)", re.IGNORECASE)
QUOTED_STRING_PATTERN = re.compile(r"['\"]([^'\"]+)['\"]")


@dataclass(frozen=True, slots=True)
class MarkerVocabulary:
    controller: frozenset[str] = frozenset({"RestController", "Controller"})
    expression: frozenset[str] = frozenset({"PreAuthorize"})
    role_list: frozenset[str] = frozenset({"Secured", "RolesAllowed"})
    permit: frozenset[str] = frozenset({"PermitAll"})
    deny: frozenset[str] = frozenset({"DenyAll"})
    mapping: frozenset[str] = frozenset({"RequestMapping"})
    shorthand_mappings: dict[str, str] = field(
        default_factory=lambda: {
            "GetMapping": "GET",
            "PostMapping": "POST",
            "PutMapping": "PUT",
            "DeleteMapping": "DELETE",
            "PatchMapping": "PATCH",
        }
    )

    @property
    def route_mappings(self) -> frozenset[str]:
        return self.mapping | frozenset(self.shorthand_mappings)

    def extended(self, extra: dict[str, list[str]]) -> MarkerVocabulary:
        known = {"controller", "expression", "role_list", "permit", "deny", "mapping"}
        unknown = set(extra) - known
        if unknown:
            raise ValueError(f"Unknown marker kinds: {', '.join(sorted(unknown))}")
        return MarkerVocabulary(
            controller=self.controller | frozenset(extra.get("controller", [])),
            expression=self.expression | frozenset(extra.get("expression", [])),
            role_list=self.role_list | frozenset(extra.get("role_list", [])),
            permit=self.permit | frozenset(extra.get("permit", [])),
            deny=self.deny | frozenset(extra.get("deny", [])),
            mapping=self.mapping | frozenset(extra.get("mapping", [])),
            shorthand_mappings=dict(self.shorthand_mappings),
        )


DEFAULT_VOCABULARY = MarkerVocabulary()


@dataclass(frozen=True, slots=True)
class ExpressionFragments:
    roles: frozenset[str] = frozenset()
    authorities: frozenset[str] = frozenset()
    authenticated: bool = False
    matched: bool = False


@dataclass(frozen=True, slots=True)
class Interpretation:
    intent: AuthorizationIntent
    # Raw texts of expression markers in which no known fragment was found.
    unrecognized_expressions: tuple[str, ...] = ()


def parse_expression(text: str) -> ExpressionFragments:
    """Locate the known call-like fragments anywhere in an authorization expression.

    This is a substring scan, not a grammar: boolean operators, negation and nesting are not
    interpreted, so `!hasRole('X')` still yields role X. Text without any known fragment
    produces an empty, unmatched result and never raises.
    """
    if not text or not text.strip():
        return ExpressionFragments()

    roles: set[str] = set()
    authorities: set[str] = set()

    authenticated = IS_AUTHENTICATED_PATTERN.search(text) is not None
    matched = authenticated

    for match in HAS_ROLE_PATTERN.finditer(text):
        roles.add(match.group(1))
        matched = True
    for match in HAS_ANY_ROLE_PATTERN.finditer(text):
        roles.update(QUOTED_STRING_PATTERN.findall(match.group(1)))
        matched = True
    for match in HAS_AUTHORITY_PATTERN.finditer(text):
        authorities.add(match.group(1))
        matched = True
    for match in HAS_ANY_AUTHORITY_PATTERN.finditer(text):
        authorities.update(QUOTED_STRING_PATTERN.findall(match.group(1)))
        matched = True

    return ExpressionFragments(
        roles=frozenset(roles),
        authorities=frozenset(authorities),
        authenticated=authenticated,
        matched=matched,
    )


class ExpressionInterpreter:
    def __init__(self, vocabulary: MarkerVocabulary = DEFAULT_VOCABULARY) -> None:
        self.vocabulary = vocabulary

    def interpret(self, markers: tuple[Marker, ...] | list[Marker]) -> Interpretation:
        requires_authorization = False
        permit_all = False
        deny_all = False
        authenticated = False
        roles: set[str] = set()
        authorities: set[str] = set()
        expressions: list[str] = []
        unrecognized: list[str] = []

        for marker in markers:
            name = marker.simple_name
            if name in self.vocabulary.expression:
                requires_authorization = True
                text = _expression_text(marker.argument("value"))
                expressions.append(text)
                fragments = parse_expression(text)
                if not fragments.matched:
                    logger.debug("No recognized fragment in authorization expression %r", text)
                    unrecognized.append(text)
                roles.update(fragments.roles)
                authorities.update(fragments.authorities)
                authenticated = authenticated or fragments.authenticated
            elif name in self.vocabulary.role_list:
                requires_authorization = True
                roles.update(literal_strings(marker.argument("value")))
            elif name in self.vocabulary.permit:
                permit_all = True
            elif name in self.vocabulary.deny:
                deny_all = True

        intent = AuthorizationIntent(
            requires_authorization=requires_authorization,
            permit_all=permit_all,
            deny_all=deny_all,
            authenticated_required=authenticated,
            roles=frozenset(roles),
            authorities=frozenset(authorities),
            expression=" and ".join(expressions) if expressions else None,
        )
        return Interpretation(intent=intent, unrecognized_expressions=tuple(unrecognized))

    def extract(self, markers: tuple[Marker, ...] | list[Marker]) -> AuthorizationIntent:
        return self.interpret(markers).intent


def _expression_text(value: MarkerValue | None) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Expression):
        return value.text
    if isinstance(value, tuple):
        return " ".join(_expression_text(item) for item in value)
    return ""

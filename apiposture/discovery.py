from __future__ import annotations

from dataclasses import dataclass
import logging

from apiposture.authorization import DEFAULT_VOCABULARY, ExpressionInterpreter, MarkerVocabulary
from apiposture.models import HTTP_VERBS, AuthorizationIntent, Diagnostic, HttpVerb, SourceLocation, order_verbs
from apiposture.syntax import Expression, Marker, MarkerValue, SourceUnit, TypeDecl, first_literal

logger = logging.getLogger(__name__)

DEFAULT_VERBS: tuple[HttpVerb, ...] = ("GET",)


@dataclass(frozen=True, slots=True)
class DiscoveredEndpoint:
    route: str
    verbs: tuple[HttpVerb, ...]
    owner: str
    member: str
    location: SourceLocation
    type_intent: AuthorizationIntent
    member_intent: AuthorizationIntent


@dataclass(frozen=True, slots=True)
class Collection:
    endpoints: tuple[DiscoveredEndpoint, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()


def normalize_path(path: str) -> str:
    normalized = path or ""
    if normalized.startswith("/"):
        normalized = normalized[1:]
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def join_route(base: str, relative: str) -> str:
    if not base and not relative:
        return "/"
    if not base:
        return f"/{relative}"
    if not relative:
        return f"/{base}"
    return f"/{base}/{relative}"


class EndpointCollector:
    def __init__(
        self,
        interpreter: ExpressionInterpreter | None = None,
        vocabulary: MarkerVocabulary | None = None,
    ) -> None:
        if vocabulary is None:
            vocabulary = interpreter.vocabulary if interpreter is not None else DEFAULT_VOCABULARY
        self.vocabulary = vocabulary
        self.interpreter = interpreter or ExpressionInterpreter(vocabulary)

    def collect(self, unit: SourceUnit) -> Collection:
        endpoints: list[DiscoveredEndpoint] = []
        diagnostics: list[Diagnostic] = []
        for type_decl in unit.types:
            if not self.is_controller(type_decl):
                continue
            found, notes = self._collect_type(type_decl, unit.path)
            endpoints.extend(found)
            diagnostics.extend(notes)
        if endpoints:
            logger.debug("Discovered %d endpoints in %s", len(endpoints), unit.path)
        return Collection(endpoints=tuple(endpoints), diagnostics=tuple(diagnostics))

    def is_controller(self, type_decl: TypeDecl) -> bool:
        return any(marker.simple_name in self.vocabulary.controller for marker in type_decl.markers)

    def has_route_mapping(self, markers: tuple[Marker, ...]) -> bool:
        mappings = self.vocabulary.route_mappings
        return any(marker.simple_name in mappings for marker in markers)

    def _collect_type(self, type_decl: TypeDecl, file_path: str) -> tuple[list[DiscoveredEndpoint], list[Diagnostic]]:
        endpoints: list[DiscoveredEndpoint] = []
        diagnostics: list[Diagnostic] = []
        base_path = normalize_path(self._mapping_path(type_decl.markers))
        type_interpretation = self.interpreter.interpret(type_decl.markers)
        diagnostics.extend(
            _malformed(text, SourceLocation(file_path, type_decl.line), type_decl.name)
            for text in type_interpretation.unrecognized_expressions
        )

        for member in type_decl.members:
            if not self.has_route_mapping(member.markers):
                continue
            location = SourceLocation(file_path, max(member.line, 0))
            member_interpretation = self.interpreter.interpret(member.markers)
            diagnostics.extend(
                _malformed(text, location, f"{type_decl.name}.{member.name}")
                for text in member_interpretation.unrecognized_expressions
            )
            endpoints.append(
                DiscoveredEndpoint(
                    route=join_route(base_path, normalize_path(self._mapping_path(member.markers))),
                    verbs=self._verbs(member.markers),
                    owner=type_decl.name,
                    member=member.name,
                    location=location,
                    type_intent=type_interpretation.intent,
                    member_intent=member_interpretation.intent,
                )
            )
        return endpoints, diagnostics

    def _mapping_path(self, markers: tuple[Marker, ...]) -> str:
        mappings = self.vocabulary.route_mappings
        for marker in markers:
            if marker.simple_name in mappings:
                return first_literal(marker.argument("value", "path"))
        return ""

    def _verbs(self, markers: tuple[Marker, ...]) -> tuple[HttpVerb, ...]:
        verbs: set[str] = set()
        for marker in markers:
            name = marker.simple_name
            if name in self.vocabulary.shorthand_mappings:
                verbs.add(self.vocabulary.shorthand_mappings[name])
            elif name in self.vocabulary.mapping:
                verbs.update(_verb_tokens(marker.attributes.get("method")))
        if not verbs:
            return DEFAULT_VERBS
        return order_verbs(verbs)


def _verb_tokens(value: MarkerValue | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, tuple):
        tokens: list[str] = []
        for item in value:
            tokens.extend(_verb_tokens(item))
        return tokens
    name = value.simple_name if isinstance(value, Expression) else value.rsplit(".", 1)[-1]
    name = name.strip().upper()
    return [name] if name in HTTP_VERBS else []


def _malformed(text: str, location: SourceLocation, handler: str) -> Diagnostic:
    logger.warning(
        "Authorization expression on %s at %s has no recognized check; treating it as requiring authorization",
        handler,
        location,
    )
    return Diagnostic(
        kind="malformed_expression",
        message=f"Expression {text!r} on {handler} has no recognized check; treated as requiring authorization",
        location=location,
    )

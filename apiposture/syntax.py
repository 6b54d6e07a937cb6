from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class Expression:
    """A marker argument that is not a string literal, kept as source text."""

    text: str

    @property
    def simple_name(self) -> str:
        return self.text.rsplit(".", 1)[-1].strip()


MarkerValue = Union[str, tuple, Expression]


@dataclass(frozen=True, slots=True)
class Marker:
    name: str
    value: MarkerValue | None = None
    attributes: dict[str, MarkerValue] = field(default_factory=dict)

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    def argument(self, *keys: str) -> MarkerValue | None:
        """Return the single value when `value` is requested, else the first named attribute present."""
        for key in keys:
            if key == "value" and self.value is not None:
                return self.value
            if key in self.attributes:
                return self.attributes[key]
        return None


@dataclass(frozen=True, slots=True)
class MemberDecl:
    name: str
    markers: tuple[Marker, ...] = ()
    line: int = 0


@dataclass(frozen=True, slots=True)
class TypeDecl:
    name: str
    markers: tuple[Marker, ...] = ()
    members: tuple[MemberDecl, ...] = ()
    line: int = 0


@dataclass(frozen=True, slots=True)
class SourceUnit:
    path: str
    types: tuple[TypeDecl, ...] = ()


def literal_strings(value: MarkerValue | None) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, tuple):
        return [item for item in value if isinstance(item, str)]
    return []


def first_literal(value: MarkerValue | None) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, tuple) and value:
        return first_literal(value[0])
    return ""

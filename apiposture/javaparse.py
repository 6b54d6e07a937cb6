from __future__ import annotations

import logging
from pathlib import Path
import textwrap

import tree_sitter_java as tsjava
from tree_sitter import Language, Node, Parser

from apiposture.syntax import Expression, Marker, MarkerValue, MemberDecl, SourceUnit, TypeDecl

logger = logging.getLogger(__name__)

JAVA_LANG = Language(tsjava.language())

TYPE_NODE_TYPES = {"class_declaration", "interface_declaration"}
BODY_NODE_TYPES = {"class_body", "interface_body"}
ANNOTATION_NODE_TYPES = {"marker_annotation", "annotation"}
COMMENT_NODE_TYPES = {"line_comment", "block_comment"}
ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "s": " ",
    '"': '"',
    "'": "'",
    "\\": "\\",
}
OCTAL_DIGITS = "01234567"


class UnresolvableSourceError(ValueError):
    def __init__(self, path: str, line: int | None = None) -> None:
        self.path = path
        self.line = line
        where = f"{path}:{line}" if line is not None else path
        super().__init__(f"Unable to parse Java source {where}")


def parse_java_file(path: str | Path) -> SourceUnit:
    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8", errors="replace")
    return parse_java_source(text, str(file_path))


def parse_java_source(text: str, path: str = "<memory>") -> SourceUnit:
    parser = Parser(JAVA_LANG)
    tree = parser.parse(text.encode("utf-8"))
    root = tree.root_node
    if root.has_error:
        raise UnresolvableSourceError(path, _first_error_line(root))

    types = tuple(_type_decl(node) for node in _find_nodes(root, TYPE_NODE_TYPES))
    logger.debug("Parsed %s: %d type declarations", path, len(types))
    return SourceUnit(path=path, types=types)


def _type_decl(node: Node) -> TypeDecl:
    members: list[MemberDecl] = []
    body = _child_of_type(node, BODY_NODE_TYPES)
    if body is not None:
        for child in body.children:
            if child.type != "method_declaration":
                continue
            members.append(
                MemberDecl(
                    name=_node_text(child.child_by_field_name("name")),
                    markers=_markers(child),
                    line=_line(child),
                )
            )
    return TypeDecl(
        name=_node_text(node.child_by_field_name("name")),
        markers=_markers(node),
        members=tuple(members),
        line=_line(node),
    )


def _markers(node: Node) -> tuple[Marker, ...]:
    modifiers = _child_of_type(node, {"modifiers"})
    if modifiers is None:
        return ()
    return tuple(_marker(child) for child in modifiers.children if child.type in ANNOTATION_NODE_TYPES)


def _marker(node: Node) -> Marker:
    name = _node_text(node.child_by_field_name("name"))
    arguments = node.child_by_field_name("arguments")
    if arguments is None:
        return Marker(name=name)

    value: MarkerValue | None = None
    attributes: dict[str, MarkerValue] = {}
    for child in _value_children(arguments):
        if child.type == "element_value_pair":
            key = _node_text(child.child_by_field_name("key"))
            pair_value = child.child_by_field_name("value")
            if key and pair_value is not None:
                attributes[key] = _marker_value(pair_value)
        else:
            value = _marker_value(child)
    return Marker(name=name, value=value, attributes=attributes)


def _marker_value(node: Node) -> MarkerValue:
    if node.type == "string_literal":
        return _string_value(_node_text(node))
    if node.type == "element_value_array_initializer":
        return tuple(_marker_value(child) for child in _value_children(node))
    if node.type == "parenthesized_expression":
        inner = [child for child in node.named_children if child.type not in COMMENT_NODE_TYPES]
        if len(inner) == 1:
            return _marker_value(inner[0])
    if node.type == "binary_expression" and _node_text(node.child_by_field_name("operator")) == "+":
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is not None and right is not None:
            left_value = _marker_value(left)
            right_value = _marker_value(right)
            if isinstance(left_value, str) and isinstance(right_value, str):
                return left_value + right_value
    return Expression(_node_text(node))


def _string_value(literal: str) -> str:
    if literal.startswith('"""'):
        body = literal[3:-3]
        if body.startswith("\n"):
            body = body[1:]
        return _unescape(textwrap.dedent(body))
    return _unescape(literal[1:-1])


def _unescape(text: str) -> str:
    if "\\" not in text:
        return text
    out: list[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == "\\" and index + 1 < len(text):
            following = text[index + 1]
            if following == "u":
                code = text[index + 2 : index + 6]
                try:
                    out.append(chr(int(code, 16)))
                    index += 6
                    continue
                except ValueError:
                    pass
            if following in OCTAL_DIGITS:
                # up to three digits, and three only when the first is 0-3
                limit = 3 if following <= "3" else 2
                end = index + 1
                while end < len(text) and end - index - 1 < limit and text[end] in OCTAL_DIGITS:
                    end += 1
                out.append(chr(int(text[index + 1 : end], 8)))
                index = end
                continue
            if following in ESCAPES:
                out.append(ESCAPES[following])
                index += 2
                continue
        out.append(char)
        index += 1
    return "".join(out)


def _value_children(node: Node) -> list[Node]:
    return [child for child in node.named_children if child.type not in COMMENT_NODE_TYPES]


def _find_nodes(node: Node, type_names: set[str]) -> list[Node]:
    results: list[Node] = []
    if node.type in type_names:
        results.append(node)
    for child in node.children:
        results.extend(_find_nodes(child, type_names))
    return results


def _child_of_type(node: Node, type_names: set[str]) -> Node | None:
    for child in node.children:
        if child.type in type_names:
            return child
    return None


def _first_error_line(node: Node) -> int | None:
    if node.type == "ERROR" or node.is_missing:
        return _line(node)
    for child in node.children:
        if child.has_error:
            return _first_error_line(child)
    return None


def _node_text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _line(node: Node) -> int:
    return node.start_point[0] + 1

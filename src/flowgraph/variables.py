"""
Variable Resolution - ``{{ node_name.field }}`` templates in node params.

A param string is parsed into a small template AST of literal segments and
reference segments. Resolution substitutes upstream node outputs into the
references and is total: it never raises, whatever the text, the graph or
the outputs collected so far. The same function serves live preview (no
outputs yet) and execution (outputs populated).

Grammar::

    reference := "{{" ws* name "." field ws* "}}"
    name      := [A-Za-z0-9_-]+
    field     := [A-Za-z0-9_-]+

Scanning is leftmost-first and non-overlapping. A ``{{`` that does not start
a well-formed reference is literal text, and ``\\{{`` is an escaped literal
``{{`` that never starts a reference.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import UnresolvedVariableError
from .models import Node, Workflow


logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\{\{\s*([A-Za-z0-9_-]+)\.([A-Za-z0-9_-]+)\s*\}\}")
_OPENER = re.compile(r"\\\{\{|\{\{")

GraphLike = Union[Workflow, Mapping[str, Node], Iterable[Node], None]
Outputs = Optional[Mapping[str, Mapping[str, Any]]]


@dataclass(frozen=True)
class VariableReference:
    """A parsed ``{{ name.field }}`` token."""
    source_node_name: str
    field: str
    raw: str = ""
    start: int = 0
    end: int = 0

    @property
    def token(self) -> str:
        return format_reference(self.source_node_name, self.field)

    def __str__(self) -> str:
        return self.raw or self.token


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Reference:
    reference: VariableReference


Segment = Union[Literal, Reference]


@dataclass
class Template:
    """Parsed template: literal and reference segments in source order."""
    source: str
    segments: List[Segment] = field(default_factory=list)

    @property
    def references(self) -> List[VariableReference]:
        return [s.reference for s in self.segments if isinstance(s, Reference)]

    @property
    def has_references(self) -> bool:
        return any(isinstance(s, Reference) for s in self.segments)


@dataclass
class ResolvedText:
    """Result of resolving one string."""
    text: str
    warnings: List[UnresolvedVariableError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


def format_reference(name: str, field_name: str) -> str:
    """Render a reference token as inserted by the variable picker."""
    return f"{{{{ {name}.{field_name} }}}}"


def parse_template(text: str) -> Template:
    """Tokenize ``text`` into literal and reference segments."""
    segments: List[Segment] = []
    buffer: List[str] = []
    pos = 0

    def flush() -> None:
        if buffer:
            segments.append(Literal("".join(buffer)))
            buffer.clear()

    while pos < len(text):
        opener = _OPENER.search(text, pos)
        if opener is None:
            buffer.append(text[pos:])
            break

        buffer.append(text[pos:opener.start()])

        if opener.group().startswith("\\"):
            buffer.append("{{")
            pos = opener.end()
            continue

        match = _REFERENCE.match(text, opener.start())
        if match is None:
            # Not a reference here; a token may still start at the next brace
            buffer.append("{")
            pos = opener.start() + 1
            continue

        flush()
        segments.append(Reference(VariableReference(
            source_node_name=match.group(1),
            field=match.group(2),
            raw=match.group(0),
            start=match.start(),
            end=match.end(),
        )))
        pos = match.end()

    flush()
    return Template(source=text, segments=segments)


def extract_references(text: str) -> List[VariableReference]:
    """All references in ``text``, leftmost first."""
    if not isinstance(text, str):
        return []
    return parse_template(text).references


def collect_references(value: Any) -> List[VariableReference]:
    """References found in any string nested inside ``value`` (dicts, lists)."""
    if isinstance(value, str):
        return extract_references(value)
    if isinstance(value, Mapping):
        found: List[VariableReference] = []
        for item in value.values():
            found.extend(collect_references(item))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for item in value:
            found.extend(collect_references(item))
        return found
    return []


def stringify(value: Any) -> str:
    """Text substituted for an output value: strings as-is, everything else JSON."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _node_index(graph: GraphLike) -> Dict[str, Node]:
    if graph is None:
        return {}
    if isinstance(graph, Workflow):
        return {node.name: node for node in graph.nodes}
    if isinstance(graph, Mapping):
        return dict(graph)
    return {node.name: node for node in graph}


def _render(
    template: Template,
    nodes: Mapping[str, Node],
    outputs: Outputs,
    warnings: List[UnresolvedVariableError],
) -> str:
    parts: List[str] = []
    seen = len(warnings)
    for segment in template.segments:
        if isinstance(segment, Literal):
            parts.append(segment.text)
            continue

        ref = segment.reference
        node = nodes.get(ref.source_node_name)
        if node is None:
            warnings.append(UnresolvedVariableError(ref, "unknown node"))
            parts.append(ref.raw)
            continue

        node_output = (outputs or {}).get(node.id)
        if not isinstance(node_output, Mapping) or ref.field not in node_output:
            warnings.append(UnresolvedVariableError(ref, "no output for field"))
            parts.append("")
            continue

        parts.append(stringify(node_output[ref.field]))

    for warning in warnings[seen:]:
        logger.debug(f"Unresolved variable {warning}")
    return "".join(parts)


def resolve(
    text: str,
    graph: GraphLike,
    outputs: Outputs = None,
    warnings: Optional[List[UnresolvedVariableError]] = None,
) -> str:
    """
    Substitute every reference in ``text``.

    - unknown node name: the token is kept verbatim, a warning is recorded
    - known node without that output field (not run yet, or no such field):
      replaced by an empty string, a warning is recorded
    - otherwise: replaced by the stringified output value

    Args:
        text: Template text; non-string values are returned unchanged
        graph: Workflow, name -> node mapping, or iterable of nodes
        outputs: node id -> output fields collected so far
        warnings: Optional list that receives UnresolvedVariableError items

    Returns:
        Resolved text
    """
    if not isinstance(text, str):
        return text
    collected: List[UnresolvedVariableError] = []
    resolved = _render(parse_template(text), _node_index(graph), outputs, collected)
    if warnings is not None:
        warnings.extend(collected)
    return resolved


def resolve_text(text: str, graph: GraphLike, outputs: Outputs = None) -> ResolvedText:
    """Resolve ``text`` and return it together with its warnings."""
    warnings: List[UnresolvedVariableError] = []
    return ResolvedText(text=resolve(text, graph, outputs, warnings), warnings=warnings)


def resolve_params(
    params: Mapping[str, Any],
    graph: GraphLike,
    outputs: Outputs = None,
) -> Tuple[Dict[str, Any], List[UnresolvedVariableError]]:
    """
    Resolve every string inside a node's params.

    Nested dicts and lists are walked; other values are left untouched.
    """
    nodes = _node_index(graph)
    warnings: List[UnresolvedVariableError] = []

    def walk(value: Any) -> Any:
        if isinstance(value, str):
            return _render(parse_template(value), nodes, outputs, warnings)
        if isinstance(value, Mapping):
            return {k: walk(v) for k, v in value.items()}
        if isinstance(value, list):
            return [walk(v) for v in value]
        return value

    return {key: walk(value) for key, value in params.items()}, warnings


def suggest_references(
    workflow: Workflow,
    node_id: str,
    registry: Any,
) -> List[str]:
    """
    Reference tokens a node can use: one per declared output field of each
    directly connected upstream node.

    ``registry`` is anything with ``output_fields(node_type) -> Sequence[str]``,
    normally the ExecutorRegistry.
    """
    suggestions: List[str] = []
    for upstream_id in workflow.get_upstream_nodes(node_id):
        upstream = workflow.get_node(upstream_id)
        if upstream is None:
            continue
        fields: Sequence[str] = registry.output_fields(upstream.type)
        for field_name in fields:
            suggestions.append(format_reference(upstream.name, field_name))
    return suggestions


__all__ = [
    "VariableReference",
    "Literal",
    "Reference",
    "Template",
    "ResolvedText",
    "format_reference",
    "parse_template",
    "extract_references",
    "collect_references",
    "stringify",
    "resolve",
    "resolve_text",
    "resolve_params",
    "suggest_references",
]

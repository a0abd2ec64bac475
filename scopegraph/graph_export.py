"""Flow graph export helpers for Mermaid and DOT outputs."""

from __future__ import annotations

import re
from pathlib import Path

from .models import FlowGraph, MermaidDiagram

IMPACT_STYLES = {
    "direct": "fill:#ff6b6b,stroke:#c92a2a",
    "indirect": "fill:#ffd43b,stroke:#f59f00",
    "cascade": "fill:#69db7c,stroke:#37b24d",
}

_DOT_FILL = {
    "direct": "#ff6b6b",
    "indirect": "#ffd43b",
    "cascade": "#69db7c",
}

_FLOW_ARROWS = {
    "bidirectional": "<-->",
    "write": "-.->",
    "read": "-->",
}

_ER_CARDINALITY = {
    "read": "||--o{",
    "write": "}o--||",
    "bidirectional": "}o--o{",
}


def generate_flowchart_diagram(graph: FlowGraph, title: str = "Data Flow Impact") -> MermaidDiagram:
    lines = ["flowchart TD", f"    %% {title}"]

    for node in graph.nodes:
        node_id = _sanitize_id(node.id)
        label = _mermaid_label(node.label)
        if node.type == "module":
            lines.append(f'    {node_id}(["{label}"])')
        else:
            lines.append(f'    {node_id}(("{label}"))')

    for edge in graph.edges:
        arrow = _FLOW_ARROWS.get(edge.flow_type, "-->")
        label = f'|"{_mermaid_label(edge.label)}"|' if edge.label else ""
        lines.append(f"    {_sanitize_id(edge.source)} {arrow}{label} {_sanitize_id(edge.target)}")

    for node in graph.nodes:
        if node.is_affected and node.impact_level in IMPACT_STYLES:
            lines.append(f"    style {_sanitize_id(node.id)} {IMPACT_STYLES[node.impact_level]}")

    return MermaidDiagram(type="flowchart", code="\n".join(lines), title=title)


def generate_er_diagram(graph: FlowGraph, title: str = "Entity Relationships") -> MermaidDiagram:
    lines = ["erDiagram", f"    %% {title}"]

    for edge in graph.edges:
        cardinality = _ER_CARDINALITY.get(edge.flow_type, "||--||")
        label = edge.label.split(",", 1)[0].strip() or "relates"
        lines.append(
            f'    {_sanitize_id(edge.source)} {cardinality} {_sanitize_id(edge.target)} : "{_mermaid_label(label)}"'
        )

    return MermaidDiagram(type="erDiagram", code="\n".join(lines), title=title)


def export_dot(graph: FlowGraph, output_file: Path) -> None:
    lines = ["digraph DataFlowImpact {"]
    lines.append("  rankdir=LR;")

    for node in graph.nodes:
        attrs = [f'label="{_esc(node.label)}"']
        attrs.append("shape=box" if node.type == "module" else "shape=ellipse")
        if node.is_affected and node.impact_level in _DOT_FILL:
            attrs.append(f'style=filled, fillcolor="{_DOT_FILL[node.impact_level]}"')
        lines.append(f'  "{_esc(node.id)}" [{", ".join(attrs)}];')

    for edge in graph.edges:
        attrs = [f'label="{_esc(edge.label)}"']
        if edge.flow_type == "write":
            attrs.append("style=dashed")
        elif edge.flow_type == "bidirectional":
            attrs.append("dir=both")
        if edge.strength == "critical":
            attrs.append("penwidth=2")
        lines.append(f'  "{_esc(edge.source)}" -> "{_esc(edge.target)}" [{", ".join(attrs)}];')

    lines.append("}")
    Path(output_file).write_text("\n".join(lines), encoding="utf-8")


def _sanitize_id(node_id: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", node_id)


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;")


def _esc(text: str) -> str:
    return text.replace('"', '\\"')

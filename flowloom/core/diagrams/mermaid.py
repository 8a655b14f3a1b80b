"""Deterministic Mermaid sequence diagrams from traced call chains.

Every participant and arrow corresponds to a node of the CallChain; no
rendering or syntax validation happens here.
"""

import logging
import re
from typing import Dict, List, Tuple

from ..analysis.models import CallChain, CallNode, LeafKind

logger = logging.getLogger(__name__)

_INDENT = "    "

_LEAF_NOTES = {
    LeafKind.CYCLIC: "cyclic call to {method}",
    LeafKind.EXTERNAL: "external: {service}",
    LeafKind.DEPTH_BOUND: "depth limit reached",
}


class MermaidGenerator:
    """Render a CallChain as a Mermaid ``sequenceDiagram``."""

    def generate_sequence_diagram(self, chain: CallChain) -> str:
        root = chain.root
        if root is None:
            return "sequenceDiagram"

        participants = _Participants()
        for node in chain.nodes:
            participants.register(node)

        lines = ["sequenceDiagram"]
        for alias, label in participants.declarations():
            if alias == label:
                lines.append(f"{_INDENT}participant {alias}")
            else:
                lines.append(f"{_INDENT}participant {alias} as {label}")

        if root.leaf in _LEAF_NOTES:
            lines.append(_note(participants.alias_of(root), root))

        for caller, callee in chain.edges():
            src = participants.alias_of(caller)
            tgt = participants.alias_of(callee)
            lines.append(
                f"{_INDENT}{src}{callee.type.arrow}{tgt}: "
                f"{_safe(callee.method)} [{callee.type.value}]"
            )
            if callee.leaf in _LEAF_NOTES:
                lines.append(_note(tgt, callee))

        return "\n".join(lines)


class _Participants:
    """Participant aliases keyed by (service, class) in first-seen order."""

    def __init__(self):
        self._aliases: Dict[Tuple[str, str], str] = {}
        self._labels: Dict[str, str] = {}

    def register(self, node: CallNode) -> str:
        key = (node.service or "", node.class_name)
        if key in self._aliases:
            return self._aliases[key]

        simple = node.simple_class_name
        alias = _sanitize(simple)
        label = _safe(simple)
        if alias in self._labels:
            alias = _sanitize(f"{simple}_{node.service}") if node.service else alias
            label = f"{label} ({_safe(node.service)})" if node.service else label
            base, counter = alias, 2
            while alias in self._labels:
                alias = f"{base}_{counter}"
                counter += 1

        self._aliases[key] = alias
        self._labels[alias] = label
        return alias

    def alias_of(self, node: CallNode) -> str:
        return self._aliases[(node.service or "", node.class_name)]

    def declarations(self) -> List[Tuple[str, str]]:
        return list(self._labels.items())


def _note(alias: str, node: CallNode) -> str:
    text = _LEAF_NOTES[node.leaf].format(
        method=_safe(node.method), service=_safe(node.service or "unknown"),
    )
    return f"{_INDENT}Note over {alias}: {text}"


def _sanitize(text: str) -> str:
    """Mermaid-safe participant alias (word characters only)."""
    alias = re.sub(r"\W+", "_", text).strip("_")
    if not alias:
        return "Participant"
    if alias[0].isdigit():
        alias = f"P_{alias}"
    return alias


def _safe(text: str) -> str:
    """Strip characters that break a Mermaid message or label."""
    cleaned = re.sub(r"[;#\r\n]", " ", text or "")
    return re.sub(r"\s+", " ", cleaned).strip() or "call"

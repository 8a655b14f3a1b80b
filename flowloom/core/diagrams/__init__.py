"""Diagram rendering for traced business flows.

Public API:
  MermaidGenerator: CallChain -> Mermaid sequenceDiagram text
"""

from .mermaid import MermaidGenerator

__all__ = ["MermaidGenerator"]

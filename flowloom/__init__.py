"""FlowLoom: business flow tracing across services."""

__version__ = "0.1.0"

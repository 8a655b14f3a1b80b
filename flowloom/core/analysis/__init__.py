"""Flow analysis engine: dependency graph, entry point search, call tracing.

Public API:
    ServiceDependencyAnalyzer: structures -> ServiceDependencyGraph
    EntryPointFinder         : keyword search over entry points
    BusinessFlowTracer       : bounded call chain from an entry point
    StructureBatch           : structures of one run, keyed by service
"""

from .dependency_analyzer import ServiceDependencyAnalyzer, StructureBatch, service_name_of
from .entry_point_finder import EntryPointFinder, matches_keyword
from .flow_tracer import BusinessFlowTracer

__all__ = [
    "ServiceDependencyAnalyzer",
    "StructureBatch",
    "service_name_of",
    "EntryPointFinder",
    "matches_keyword",
    "BusinessFlowTracer",
]

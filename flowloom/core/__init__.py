# Lazy imports so that `from flowloom.core.db.models import Base` does not
# pull in the whole analysis and flow stack.

__all__ = [
    "ServiceDependencyAnalyzer",
    "EntryPointFinder",
    "BusinessFlowTracer",
    "MermaidGenerator",
    "BusinessFlowService",
    "FlowDocumentStore",
]

_IMPORT_MAP = {
    "ServiceDependencyAnalyzer": ".analysis",
    "EntryPointFinder": ".analysis",
    "BusinessFlowTracer": ".analysis",
    "MermaidGenerator": ".diagrams",
    "BusinessFlowService": ".flow",
    "FlowDocumentStore": ".flow",
}


def __getattr__(name):
    if name in _IMPORT_MAP:
        import importlib
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module 'flowloom.core' has no attribute {name}")

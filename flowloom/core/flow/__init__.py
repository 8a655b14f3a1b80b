"""Business flow generation, persistence and queries.

Public API:
    BusinessFlowService   : keyword-driven generation with the stored-once contract
    FlowDocumentStore     : insert-once persistence of flow documents
    JsonStructureScanner  : reads scanner output from a working copy
    LocalRepositoryProvider: uses existing local working copies
"""

from .collaborators import (
    JsonStructureScanner,
    LocalRepositoryProvider,
    NarrativeGenerator,
    ProjectScanner,
    RepositoryProvider,
)
from .models import (
    BusinessFlowDocument,
    BusinessFlowResult,
    GitCredentials,
    RepositoryInfo,
    flow_path,
)
from .service import BusinessFlowService
from .store import FlowDocumentStore

__all__ = [
    "BusinessFlowService",
    "FlowDocumentStore",
    "JsonStructureScanner",
    "LocalRepositoryProvider",
    "NarrativeGenerator",
    "ProjectScanner",
    "RepositoryProvider",
    "BusinessFlowDocument",
    "BusinessFlowResult",
    "GitCredentials",
    "RepositoryInfo",
    "flow_path",
]

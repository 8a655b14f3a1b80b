"""Data contracts for flow generation and persistence."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..analysis.models import CallChain, EntryPoint


@dataclass(frozen=True)
class GitCredentials:
    """Repository credentials.

    There is no implicit default: callers pass credentials explicitly,
    or ``GitCredentials.anonymous()`` for public repositories.
    """
    username: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)

    @classmethod
    def anonymous(cls) -> "GitCredentials":
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return not self.username and not self.token


@dataclass
class RepositoryInfo:
    url: str
    local_path: str
    latest_commit_id: Optional[str] = None


@dataclass
class BusinessFlowDocument:
    """Persisted projection of a CallChain (one per cache key)."""
    keyword: str
    repository_version: str
    api_path: str
    entry_class: str
    entry_method: str
    entry_type: str
    http_method: Optional[str] = None
    relevance_score: int = 0
    primary_repository: Optional[str] = None
    dependency_repositories: Optional[List[str]] = None
    mermaid_diagram: Optional[str] = None
    call_chain_json: Optional[Dict[str, Any]] = None
    related_services: Optional[List[str]] = None
    node_count: int = 0
    max_depth: int = 0
    description: Optional[str] = None
    flow_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class BusinessFlowResult:
    """One generated (or cached) flow as returned to callers."""
    flow_id: Optional[str]
    entry_point: EntryPoint
    call_chain: Optional[CallChain]
    mermaid_diagram: Optional[str]
    node_count: int = 0
    max_depth: int = 0
    description: Optional[str] = None
    keyword: Optional[str] = None
    relevance_score: int = 0
    related_services: List[str] = field(default_factory=list)
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "keyword": self.keyword,
            "entry_point": self.entry_point.qualified_method,
            "path": self.entry_point.path,
            "type": self.entry_point.type.value,
            "relevance_score": self.relevance_score,
            "node_count": self.node_count,
            "max_depth": self.max_depth,
            "related_services": list(self.related_services),
            "cached": self.cached,
            "description": self.description,
            "mermaid_diagram": self.mermaid_diagram,
        }


def flow_path(entry_point: EntryPoint) -> str:
    """Cache-key path of an entry point (``Class#method`` when it has no path)."""
    return entry_point.path or entry_point.qualified_method

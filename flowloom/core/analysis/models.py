"""Data contracts for the flow analysis engine.

Everything the scanner hands us (ProjectStructure and friends) and
everything the engine produces (dependency graph, call chains, matches).
Kept as dataclasses (not ORM models) for transport between layers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

UNKNOWN_SERVICE = "unknown"


class CallType(Enum):
    """Classification of a call edge.

    Each member carries its own rendering and continuation rules so that
    callers never branch on a subclass.
    """
    LOCAL = "LOCAL"
    DUBBO = "DUBBO"
    FEIGN = "FEIGN"
    MQ = "MQ"

    @property
    def is_remote(self) -> bool:
        return self is not CallType.LOCAL

    @property
    def is_async(self) -> bool:
        return self is CallType.MQ

    @property
    def arrow(self) -> str:
        """Mermaid sequenceDiagram arrow: solid for sync, dashed for async."""
        return "-->>" if self.is_async else "->>"


class EntryType(Enum):
    """How an entry point is triggered from outside the process."""
    HTTP = "HTTP"
    DUBBO = "DUBBO"
    FEIGN = "FEIGN"
    MQ = "MQ"
    SCHEDULED = "SCHEDULED"


class LeafKind(Enum):
    """Why a call node was not expanded further."""
    NONE = "none"                # expanded (has children)
    NORMAL = "normal"            # no resolvable outgoing calls
    CYCLIC = "cyclic"            # target already on the current path
    EXTERNAL = "external"        # remote target outside the scanned batch
    DEPTH_BOUND = "depth_bound"  # reached max_depth with calls remaining


def _matches_annotation(annotation_name: str, wanted: str) -> bool:
    return annotation_name == wanted or annotation_name.endswith("." + wanted)


# ── Scanner input ────────────────────────────────────────────────────────


@dataclass
class AnnotationInfo:
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)


@dataclass
class FieldInfo:
    name: str
    type: str
    annotations: List[AnnotationInfo] = field(default_factory=list)

    def has_annotation(self, name: str) -> bool:
        return any(_matches_annotation(a.name, name) for a in self.annotations)

    def get_annotation(self, name: str) -> Optional[AnnotationInfo]:
        for ann in self.annotations:
            if _matches_annotation(ann.name, name):
                return ann
        return None


@dataclass
class MethodInfo:
    """A scanned method.

    ``called_methods`` holds the raw call expressions in source order,
    e.g. ``"orderService.submit(order)"`` or ``"validate(order)"``.
    """
    name: str
    signature: str = ""
    parameters: List[str] = field(default_factory=list)
    return_type: Optional[str] = None
    annotations: List[AnnotationInfo] = field(default_factory=list)
    called_methods: List[str] = field(default_factory=list)
    is_public: bool = True

    def has_annotation(self, name: str) -> bool:
        return any(_matches_annotation(a.name, name) for a in self.annotations)

    def get_annotation(self, name: str) -> Optional[AnnotationInfo]:
        for ann in self.annotations:
            if _matches_annotation(ann.name, name):
                return ann
        return None


@dataclass
class ClassInfo:
    class_name: str
    package_name: str = ""
    full_class_name: str = ""
    annotations: List[AnnotationInfo] = field(default_factory=list)
    fields: List[FieldInfo] = field(default_factory=list)
    methods: List[MethodInfo] = field(default_factory=list)
    super_class: Optional[str] = None
    interfaces: List[str] = field(default_factory=list)
    is_interface: bool = False
    file_path: Optional[str] = None

    def __post_init__(self):
        if not self.full_class_name:
            self.full_class_name = (
                f"{self.package_name}.{self.class_name}"
                if self.package_name else self.class_name
            )

    def has_annotation(self, name: str) -> bool:
        return any(_matches_annotation(a.name, name) for a in self.annotations)

    def get_annotation(self, name: str) -> Optional[AnnotationInfo]:
        for ann in self.annotations:
            if _matches_annotation(ann.name, name):
                return ann
        return None

    def find_method(self, name: str) -> Optional[MethodInfo]:
        """First method with the given name (overloads resolve to the first)."""
        for method in self.methods:
            if method.name == name:
                return method
        return None

    def find_field(self, name: str) -> Optional[FieldInfo]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def resolve_type_name(self, type_name: str) -> str:
        """Qualify a simple type name against this class's package."""
        if "." in type_name or not self.package_name:
            return type_name
        return f"{self.package_name}.{type_name}"


@dataclass
class EntryPoint:
    """A method reachable from outside the process."""
    class_name: str
    method_name: str
    type: EntryType
    path: Optional[str] = None
    method_signature: str = ""
    http_method: Optional[str] = None
    description: Optional[str] = None
    annotations: Dict[str, Any] = field(default_factory=dict)

    @property
    def qualified_method(self) -> str:
        return f"{self.class_name}#{self.method_name}"


@dataclass
class ProjectStructure:
    """Scanned representation of one codebase."""
    project_name: Optional[str]
    project_path: Optional[str] = None
    service_name: Optional[str] = None
    entry_points: List[EntryPoint] = field(default_factory=list)
    classes: Dict[str, ClassInfo] = field(default_factory=dict)

    def add_class(self, class_info: ClassInfo) -> None:
        self.classes[class_info.full_class_name] = class_info

    def add_entry_point(self, entry_point: EntryPoint) -> None:
        self.entry_points.append(entry_point)

    def find_class(self, name: str) -> Optional[ClassInfo]:
        """Look up a class by full name, falling back to a unique simple name."""
        if name in self.classes:
            return self.classes[name]
        simple = name.rsplit(".", 1)[-1]
        candidates = [c for c in self.classes.values() if c.class_name == simple]
        if len(candidates) == 1:
            return candidates[0]
        return None

    def find_implementation(self, interface_name: str) -> Optional[ClassInfo]:
        """Concrete class implementing the interface, in full-name order."""
        simple = interface_name.rsplit(".", 1)[-1]
        for full_name in sorted(self.classes):
            cls = self.classes[full_name]
            if cls.is_interface:
                continue
            for iface in cls.interfaces:
                if cls.resolve_type_name(iface) == interface_name or iface == simple:
                    return cls
        return None

    def statistics(self) -> Dict[str, Any]:
        entry_type_count: Dict[str, int] = {}
        for ep in self.entry_points:
            entry_type_count[ep.type.value] = entry_type_count.get(ep.type.value, 0) + 1
        return {
            "class_count": len(self.classes),
            "entry_point_count": len(self.entry_points),
            "entry_type_count": entry_type_count,
        }


# ── Dependency graph ─────────────────────────────────────────────────────


@dataclass
class ServiceNode:
    service_name: str
    project_name: Optional[str] = None
    provided_interfaces: List[str] = field(default_factory=list)
    required_interfaces: List[str] = field(default_factory=list)
    consumed_topics: List[str] = field(default_factory=list)

    def add_provided_interface(self, interface_name: str) -> None:
        if interface_name not in self.provided_interfaces:
            self.provided_interfaces.append(interface_name)

    def add_required_interface(self, interface_name: str) -> None:
        if interface_name not in self.required_interfaces:
            self.required_interfaces.append(interface_name)

    def add_consumed_topic(self, topic: str) -> None:
        if topic not in self.consumed_topics:
            self.consumed_topics.append(topic)


@dataclass
class ServiceDependency:
    """One remote binding observed in source (a field plus how it is used)."""
    source_service: str
    target_service: str
    interface_name: str
    type: CallType
    source_class: str
    source_field: str
    topic: Optional[str] = None


@dataclass(frozen=True)
class DependencyEdge:
    from_service: str
    to_service: str
    call_type: CallType


@dataclass
class ServiceDependencyGraph:
    """Services plus the typed, deduplicated cross-service edges between them.

    ``dependencies`` keeps every binding (needed by the tracer to resolve a
    field to its remote target); ``edges`` is the deduplicated
    ``(from, to, type)`` view used for reporting.
    """
    services: Dict[str, ServiceNode] = field(default_factory=dict)
    dependencies: List[ServiceDependency] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    interface_index: Dict[str, str] = field(default_factory=dict)
    topic_index: Dict[str, str] = field(default_factory=dict)

    def add_service(self, node: ServiceNode) -> ServiceNode:
        """Register a service, merging into an existing node of the same name."""
        existing = self.services.get(node.service_name)
        if existing is None:
            self.services[node.service_name] = node
            existing = node
        else:
            for iface in node.provided_interfaces:
                existing.add_provided_interface(iface)
            for topic in node.consumed_topics:
                existing.add_consumed_topic(topic)
        for iface in node.provided_interfaces:
            self.interface_index.setdefault(iface, existing.service_name)
        for topic in node.consumed_topics:
            self.topic_index.setdefault(topic, existing.service_name)
        return existing

    def add_dependency(self, dependency: ServiceDependency) -> bool:
        """Record a binding; returns False when it was already known."""
        key = (
            dependency.source_class, dependency.source_field,
            dependency.interface_name, dependency.topic,
        )
        for dep in self.dependencies:
            if (dep.source_class, dep.source_field, dep.interface_name, dep.topic) == key:
                return False
        self.dependencies.append(dependency)

        edge = DependencyEdge(
            dependency.source_service, dependency.target_service, dependency.type,
        )
        if edge not in self.edges:
            self.edges.append(edge)
        return True

    def find_service_by_interface(self, interface_name: str) -> Optional[str]:
        return self.interface_index.get(interface_name)

    def find_service_by_topic(self, topic: str) -> Optional[str]:
        return self.topic_index.get(topic)

    def find_binding(
        self,
        source_class: str,
        source_field: str,
        topic: Optional[str] = None,
    ) -> Optional[ServiceDependency]:
        """Find the remote binding for a field, narrowed by topic for MQ."""
        for dep in self.dependencies:
            if dep.source_class != source_class or dep.source_field != source_field:
                continue
            if dep.type is CallType.MQ and topic is not None and dep.topic != topic:
                continue
            return dep
        return None

    def find_dependencies(self, service_name: str) -> List[ServiceDependency]:
        return [d for d in self.dependencies if d.source_service == service_name]

    def to_dict(self) -> Dict[str, Any]:
        from .serialization import graph_to_dict
        return graph_to_dict(self)


# ── Call chains ──────────────────────────────────────────────────────────


@dataclass
class CallNode:
    """One occurrence of a method in a traced call tree.

    Nodes live in ``CallChain.nodes``; ``parent`` and ``children`` are
    indices into that arena.
    """
    index: int
    class_name: str
    method: str
    depth: int
    type: CallType
    service: Optional[str] = None
    signature: str = ""
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)
    leaf: LeafKind = LeafKind.NONE

    @property
    def is_cyclic(self) -> bool:
        return self.leaf is LeafKind.CYCLIC

    @property
    def simple_class_name(self) -> str:
        return self.class_name.rsplit(".", 1)[-1]


@dataclass
class CallChain:
    """A traced call tree stored as a flat arena of nodes (pre-order)."""
    chain_id: str
    entry_point: EntryPoint
    nodes: List[CallNode] = field(default_factory=list)

    @property
    def root(self) -> Optional[CallNode]:
        return self.nodes[0] if self.nodes else None

    @property
    def max_depth(self) -> int:
        """Deepest level actually reached (0 for a lone root)."""
        return max((n.depth for n in self.nodes), default=0)

    def add_node(
        self,
        class_name: str,
        method: str,
        depth: int,
        type: CallType,
        service: Optional[str] = None,
        signature: str = "",
        parent: Optional[int] = None,
    ) -> CallNode:
        node = CallNode(
            index=len(self.nodes),
            class_name=class_name,
            method=method,
            depth=depth,
            type=type,
            service=service,
            signature=signature,
            parent=parent,
        )
        self.nodes.append(node)
        if parent is not None:
            self.nodes[parent].children.append(node.index)
        return node

    def child_nodes(self, node: CallNode) -> List[CallNode]:
        return [self.nodes[i] for i in node.children]

    def path_to(self, node: CallNode) -> List[CallNode]:
        """Nodes from the root down to ``node`` inclusive."""
        path = [node]
        while path[-1].parent is not None:
            path.append(self.nodes[path[-1].parent])
        return list(reversed(path))

    def edges(self) -> Iterator[Tuple[CallNode, CallNode]]:
        """(caller, callee) pairs in call order.

        Depth-first from the root: a callee's own calls come before its
        next sibling.
        """
        if self.root is None:
            return
        stack = [(self.root, child) for child in reversed(self.child_nodes(self.root))]
        while stack:
            caller, callee = stack.pop()
            yield caller, callee
            stack.extend((callee, child) for child in reversed(self.child_nodes(callee)))

    def services(self) -> List[str]:
        """Distinct services touched by the chain, first occurrence first."""
        seen: List[str] = []
        for node in self.nodes:
            if node.service and node.service not in seen:
                seen.append(node.service)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        from .serialization import call_chain_to_dict
        return call_chain_to_dict(self)


@dataclass
class EntryPointMatch:
    entry_point: EntryPoint
    project_name: Optional[str]
    relevance_score: int = 0
    match_reasons: List[str] = field(default_factory=list)

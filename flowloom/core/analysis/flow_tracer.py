"""Call chain tracing from an entry point.

Depth-first expansion over the scanned call expressions. Each outgoing
call is resolved in source order:

  1. Remote binding on the receiver field (Dubbo / Feign / MQ). The chain
     continues into the target service only when that service is part of
     the scanned batch and the target method resolves there; otherwise
     the call becomes an EXTERNAL leaf.
  2. Local resolution: field type (interface -> implementation), static
     call on a known class, or a call on the current class hierarchy.
  3. Anything else (library calls) produces no node.

Cycle prevention is per path: a (service, class, method) already on the
root-to-node path becomes a CYCLIC leaf, while the same method reached
through two different branches is expanded in both.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..constants import DEFAULT_MAX_DEPTH, MAX_TRACE_DEPTH
from ..exceptions import TraceError
from .call_expressions import CallExpression, base_type_name, is_mq_producer_type, parse_call
from .dependency_analyzer import StructureBatch, consumer_topics, service_name_of
from .models import (
    UNKNOWN_SERVICE,
    CallChain,
    CallNode,
    CallType,
    ClassInfo,
    EntryPoint,
    EntryType,
    FieldInfo,
    LeafKind,
    MethodInfo,
    ProjectStructure,
    ServiceDependency,
    ServiceDependencyGraph,
)

logger = logging.getLogger(__name__)

_CHAIN_NAMESPACE = uuid.UUID("6f1c2a9e-3b7d-5e40-9a8c-1d2e3f405162")

_MAPPING_ANNOTATIONS = (
    "GetMapping",
    "PostMapping",
    "PutMapping",
    "DeleteMapping",
    "PatchMapping",
    "RequestMapping",
)


@dataclass
class _ResolvedCall:
    """Target of one call expression."""
    class_name: str
    method_name: str
    type: CallType
    service: str
    signature: str = ""
    cls: Optional[ClassInfo] = None
    method: Optional[MethodInfo] = None
    structure: Optional[ProjectStructure] = None
    external: bool = False


def chain_id_for(entry_point: EntryPoint, service_name: str, max_depth: int) -> str:
    """Deterministic chain id: same entry point and depth, same id."""
    key = "|".join([
        service_name,
        entry_point.class_name,
        entry_point.method_name,
        entry_point.path or "",
        str(max_depth),
    ])
    return str(uuid.uuid5(_CHAIN_NAMESPACE, key))


class BusinessFlowTracer:
    """Trace a bounded call tree starting at an entry point."""

    def trace(
        self,
        entry_point: EntryPoint,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        max_depth: int = DEFAULT_MAX_DEPTH,
        batch: Optional[StructureBatch] = None,
    ) -> CallChain:
        """Trace the call chain of ``entry_point``.

        Args:
            entry_point: Where the flow starts.
            structure: Structure owning the entry point.
            graph: Dependency graph of the whole batch.
            max_depth: Maximum number of edges from the root.
            batch: Structures available for cross-service continuation.
                When None, every remote call ends in an EXTERNAL leaf.

        Raises:
            TraceError: Entry class or method is not in the structure.
            ValueError: max_depth is outside 0..MAX_TRACE_DEPTH.
        """
        if not 0 <= max_depth <= MAX_TRACE_DEPTH:
            raise ValueError(f"max_depth must be in 0..{MAX_TRACE_DEPTH}, got {max_depth}")

        cls = structure.find_class(entry_point.class_name)
        if cls is None:
            raise TraceError(
                f"Entry class not found: {entry_point.class_name}",
                entry_point=entry_point.qualified_method,
            )
        method = self._find_method(cls, entry_point.method_name, structure)
        if method is None:
            raise TraceError(
                f"Entry method not found: {entry_point.qualified_method}",
                entry_point=entry_point.qualified_method,
            )

        service_name = service_name_of(structure)
        chain = CallChain(
            chain_id=chain_id_for(entry_point, service_name, max_depth),
            entry_point=entry_point,
        )
        root = chain.add_node(
            class_name=cls.full_class_name,
            method=method.name,
            depth=0,
            type=CallType.LOCAL,
            service=service_name,
            signature=method.signature or entry_point.method_signature,
        )

        self._expand(
            chain, root, cls, method, structure, graph, batch, max_depth, [root.index],
        )

        logger.debug(
            f"Traced {entry_point.qualified_method}: {len(chain.nodes)} node(s), "
            f"depth {chain.max_depth}"
        )
        return chain

    def _expand(
        self,
        chain: CallChain,
        node: CallNode,
        cls: ClassInfo,
        method: MethodInfo,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        batch: Optional[StructureBatch],
        max_depth: int,
        path: List[int],
    ) -> None:
        calls = self._resolve_calls(cls, method, structure, graph, batch)
        if not calls:
            node.leaf = LeafKind.NORMAL
            return
        if node.depth >= max_depth:
            node.leaf = LeafKind.DEPTH_BOUND
            return

        for call in calls:
            child = chain.add_node(
                class_name=call.class_name,
                method=call.method_name,
                depth=node.depth + 1,
                type=call.type,
                service=call.service,
                signature=call.signature,
                parent=node.index,
            )
            if call.external:
                child.leaf = LeafKind.EXTERNAL
                continue
            if self._on_path(chain, path, child):
                child.leaf = LeafKind.CYCLIC
                continue
            self._expand(
                chain, child, call.cls, call.method, call.structure,
                graph, batch, max_depth, path + [child.index],
            )

    @staticmethod
    def _on_path(chain: CallChain, path: List[int], candidate: CallNode) -> bool:
        key = (candidate.service, candidate.class_name, candidate.method)
        return any(
            (chain.nodes[i].service, chain.nodes[i].class_name, chain.nodes[i].method) == key
            for i in path
        )

    # -- Call resolution ------------------------------------------------------

    def _resolve_calls(
        self,
        cls: ClassInfo,
        method: MethodInfo,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        batch: Optional[StructureBatch],
    ) -> List[_ResolvedCall]:
        resolved: List[_ResolvedCall] = []
        for expression in method.called_methods:
            call = parse_call(expression)
            if call is None:
                continue
            target = self._resolve_call(call, cls, structure, graph, batch)
            if target is not None:
                resolved.append(target)
        return resolved

    def _resolve_call(
        self,
        call: CallExpression,
        cls: ClassInfo,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        batch: Optional[StructureBatch],
    ) -> Optional[_ResolvedCall]:
        service_name = service_name_of(structure)

        if call.receiver is None:
            owner, target_method = self._find_in_hierarchy(cls, call.method, structure)
            if target_method is None:
                return None
            return self._local(owner, target_method, structure, service_name)

        owner, f = self._find_field(cls, call.receiver, structure)
        if f is not None:
            if is_mq_producer_type(f.type) and call.first_literal is None:
                return None
            binding = graph.find_binding(owner.full_class_name, f.name, call.first_literal)
            if binding is not None:
                return self._remote(binding, call, f, structure, batch)
            return self._resolve_on_type(f.type, owner, call.method, structure, service_name)

        # Static call on a class of this structure
        target_cls = structure.find_class(call.receiver)
        if target_cls is not None:
            owner, target_method = self._find_in_hierarchy(target_cls, call.method, structure)
            if target_method is not None:
                return self._local(owner, target_method, structure, service_name)
        return None

    def _resolve_on_type(
        self,
        type_name: str,
        context: ClassInfo,
        method_name: str,
        structure: ProjectStructure,
        service_name: str,
    ) -> Optional[_ResolvedCall]:
        type_name = base_type_name(type_name)
        target_cls = structure.find_class(context.resolve_type_name(type_name))
        if target_cls is None:
            target_cls = structure.find_class(type_name)
        if target_cls is None:
            return None

        if target_cls.is_interface:
            impl = structure.find_implementation(target_cls.full_class_name)
            if impl is None:
                return None
            target_cls = impl

        owner, target_method = self._find_in_hierarchy(target_cls, method_name, structure)
        if target_method is None:
            return None
        return self._local(owner, target_method, structure, service_name)

    def _remote(
        self,
        binding: ServiceDependency,
        call: CallExpression,
        f: FieldInfo,
        structure: ProjectStructure,
        batch: Optional[StructureBatch],
    ) -> _ResolvedCall:
        target_service = binding.target_service or UNKNOWN_SERVICE
        target = None
        if (
            batch is not None
            and target_service != UNKNOWN_SERVICE
            and batch.has_service(target_service)
        ):
            target_structure = batch.get(target_service)
            if binding.type is CallType.DUBBO:
                target = self._dubbo_target(binding, call, target_structure)
            elif binding.type is CallType.FEIGN:
                target = self._feign_target(binding, call, f, structure, target_structure)
            elif binding.type is CallType.MQ:
                target = self._mq_target(binding, target_structure)

        if target is not None:
            target_cls, target_method, target_structure = target
            return _ResolvedCall(
                class_name=target_cls.full_class_name,
                method_name=target_method.name,
                type=binding.type,
                service=target_service,
                signature=target_method.signature,
                cls=target_cls,
                method=target_method,
                structure=target_structure,
            )

        logger.debug(
            f"{binding.type.value} call {call.receiver}.{call.method} leaves the batch "
            f"(target service {target_service})"
        )
        return _ResolvedCall(
            class_name=binding.topic if binding.type is CallType.MQ else binding.interface_name,
            method_name=call.method,
            type=binding.type,
            service=target_service,
            external=True,
        )

    def _dubbo_target(self, binding, call, target_structure):
        impl = target_structure.find_implementation(binding.interface_name)
        if impl is None:
            return None
        owner, target_method = self._find_in_hierarchy(impl, call.method, target_structure)
        if target_method is None:
            return None
        return owner, target_method, target_structure

    def _feign_target(self, binding, call, f, structure, target_structure):
        client = structure.find_class(binding.interface_name) or structure.find_class(
            base_type_name(f.type)
        )
        client_method = client.find_method(call.method) if client else None
        if client_method is not None:
            wanted = _normalize_path(_client_path(client, client_method))
            if wanted:
                for ep in target_structure.entry_points:
                    if ep.type is not EntryType.HTTP or _normalize_path(ep.path) != wanted:
                        continue
                    ep_cls = target_structure.find_class(ep.class_name)
                    if ep_cls is None:
                        continue
                    owner, target_method = self._find_in_hierarchy(
                        ep_cls, ep.method_name, target_structure,
                    )
                    if target_method is not None:
                        return owner, target_method, target_structure

        # Shared API module: controller implements the client interface
        impl = target_structure.find_implementation(binding.interface_name)
        if impl is not None:
            owner, target_method = self._find_in_hierarchy(impl, call.method, target_structure)
            if target_method is not None:
                return owner, target_method, target_structure
        return None

    def _mq_target(self, binding, target_structure):
        for ep in target_structure.entry_points:
            if binding.topic not in consumer_topics(ep, target_structure):
                continue
            ep_cls = target_structure.find_class(ep.class_name)
            if ep_cls is None:
                continue
            owner, target_method = self._find_in_hierarchy(ep_cls, ep.method_name, target_structure)
            if target_method is not None:
                return owner, target_method, target_structure
        return None

    # -- Lookup helpers -------------------------------------------------------

    @staticmethod
    def _local(owner, target_method, structure, service_name) -> _ResolvedCall:
        return _ResolvedCall(
            class_name=owner.full_class_name,
            method_name=target_method.name,
            type=CallType.LOCAL,
            service=service_name,
            signature=target_method.signature,
            cls=owner,
            method=target_method,
            structure=structure,
        )

    def _find_method(
        self,
        cls: ClassInfo,
        name: str,
        structure: ProjectStructure,
    ) -> Optional[MethodInfo]:
        return self._find_in_hierarchy(cls, name, structure)[1]

    @staticmethod
    def _superclasses(cls: ClassInfo, structure: ProjectStructure):
        """``cls`` followed by its resolvable super classes."""
        seen = set()
        current = cls
        while current is not None and current.full_class_name not in seen:
            seen.add(current.full_class_name)
            yield current
            if not current.super_class:
                break
            current = structure.find_class(current.resolve_type_name(current.super_class)) \
                or structure.find_class(current.super_class)

    def _find_in_hierarchy(
        self,
        cls: ClassInfo,
        name: str,
        structure: ProjectStructure,
    ) -> Tuple[ClassInfo, Optional[MethodInfo]]:
        for current in self._superclasses(cls, structure):
            method = current.find_method(name)
            if method is not None:
                return current, method
        return cls, None

    def _find_field(
        self,
        cls: ClassInfo,
        name: str,
        structure: ProjectStructure,
    ) -> Tuple[ClassInfo, Optional[FieldInfo]]:
        for current in self._superclasses(cls, structure):
            f = current.find_field(name)
            if f is not None:
                return current, f
        return cls, None


def _client_path(client: ClassInfo, method: MethodInfo) -> str:
    prefix = ""
    feign = client.get_annotation("FeignClient")
    if feign is not None and feign.get("path"):
        prefix = _first_value(feign.get("path"))
    class_mapping = client.get_annotation("RequestMapping")
    if class_mapping is not None:
        prefix += _mapping_value(class_mapping)

    for name in _MAPPING_ANNOTATIONS:
        ann = method.get_annotation(name)
        if ann is not None:
            return prefix + _mapping_value(ann)
    return ""


def _mapping_value(annotation) -> str:
    for key in ("value", "path"):
        value = annotation.get(key)
        if value:
            return _first_value(value)
    return ""


def _first_value(value) -> str:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip().strip("{}").strip().strip("\"'")


def _normalize_path(path: Optional[str]) -> str:
    if not path:
        return ""
    path = "/" + path.strip().strip("/")
    while "//" in path:
        path = path.replace("//", "/")
    return path

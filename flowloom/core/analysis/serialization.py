"""JSON-compatible conversions for analysis types.

``structure_from_dict`` reads the document written by the external
scanner. Call chains round-trip through ``call_chain_to_dict`` /
``call_chain_from_dict`` so that cached flows can be rebuilt from the
stored JSON. Field names are stable; they are part of the stored format.
"""

from typing import Any, Dict, List

from .models import (
    AnnotationInfo,
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
    ServiceDependencyGraph,
)


# =============================================================================
# Project structures
# =============================================================================


def _annotations_from(data: List[Dict[str, Any]]) -> List[AnnotationInfo]:
    return [
        AnnotationInfo(name=a["name"], attributes=dict(a.get("attributes") or {}))
        for a in data or []
    ]


def _annotations_to(annotations: List[AnnotationInfo]) -> List[Dict[str, Any]]:
    return [{"name": a.name, "attributes": dict(a.attributes)} for a in annotations]


def entry_point_from_dict(data: Dict[str, Any]) -> EntryPoint:
    return EntryPoint(
        class_name=data["class_name"],
        method_name=data["method_name"],
        type=EntryType(data.get("type", EntryType.HTTP.value)),
        path=data.get("path"),
        method_signature=data.get("method_signature", ""),
        http_method=data.get("http_method"),
        description=data.get("description"),
        annotations=dict(data.get("annotations") or {}),
    )


def entry_point_to_dict(ep: EntryPoint) -> Dict[str, Any]:
    return {
        "class_name": ep.class_name,
        "method_name": ep.method_name,
        "type": ep.type.value,
        "path": ep.path,
        "method_signature": ep.method_signature,
        "http_method": ep.http_method,
        "description": ep.description,
        "annotations": dict(ep.annotations),
    }


def class_from_dict(data: Dict[str, Any]) -> ClassInfo:
    return ClassInfo(
        class_name=data["class_name"],
        package_name=data.get("package_name", ""),
        full_class_name=data.get("full_class_name", ""),
        annotations=_annotations_from(data.get("annotations")),
        fields=[
            FieldInfo(
                name=f["name"],
                type=f.get("type", ""),
                annotations=_annotations_from(f.get("annotations")),
            )
            for f in data.get("fields") or []
        ],
        methods=[
            MethodInfo(
                name=m["name"],
                signature=m.get("signature", ""),
                parameters=list(m.get("parameters") or []),
                return_type=m.get("return_type"),
                annotations=_annotations_from(m.get("annotations")),
                called_methods=list(m.get("called_methods") or []),
                is_public=m.get("is_public", True),
            )
            for m in data.get("methods") or []
        ],
        super_class=data.get("super_class"),
        interfaces=list(data.get("interfaces") or []),
        is_interface=data.get("is_interface", False),
        file_path=data.get("file_path"),
    )


def class_to_dict(cls: ClassInfo) -> Dict[str, Any]:
    return {
        "class_name": cls.class_name,
        "package_name": cls.package_name,
        "full_class_name": cls.full_class_name,
        "annotations": _annotations_to(cls.annotations),
        "fields": [
            {"name": f.name, "type": f.type, "annotations": _annotations_to(f.annotations)}
            for f in cls.fields
        ],
        "methods": [
            {
                "name": m.name,
                "signature": m.signature,
                "parameters": list(m.parameters),
                "return_type": m.return_type,
                "annotations": _annotations_to(m.annotations),
                "called_methods": list(m.called_methods),
                "is_public": m.is_public,
            }
            for m in cls.methods
        ],
        "super_class": cls.super_class,
        "interfaces": list(cls.interfaces),
        "is_interface": cls.is_interface,
        "file_path": cls.file_path,
    }


def structure_from_dict(data: Dict[str, Any]) -> ProjectStructure:
    """Build a ProjectStructure from scanner output.

    ``classes`` may be a list or a mapping keyed by full class name.
    """
    structure = ProjectStructure(
        project_name=data.get("project_name"),
        project_path=data.get("project_path"),
        service_name=data.get("service_name"),
    )
    classes = data.get("classes") or []
    if isinstance(classes, dict):
        classes = list(classes.values())
    for cls_data in classes:
        structure.add_class(class_from_dict(cls_data))
    for ep_data in data.get("entry_points") or []:
        structure.add_entry_point(entry_point_from_dict(ep_data))
    return structure


def structure_to_dict(structure: ProjectStructure) -> Dict[str, Any]:
    return {
        "project_name": structure.project_name,
        "project_path": structure.project_path,
        "service_name": structure.service_name,
        "entry_points": [entry_point_to_dict(ep) for ep in structure.entry_points],
        "classes": [class_to_dict(structure.classes[k]) for k in sorted(structure.classes)],
    }


# =============================================================================
# Call chains
# =============================================================================


def _node_to_dict(chain: CallChain, node: CallNode) -> Dict[str, Any]:
    return {
        "class_name": node.class_name,
        "method": node.method,
        "signature": node.signature,
        "depth": node.depth,
        "type": node.type.value,
        "service": node.service,
        "leaf": node.leaf.value,
        "children": [_node_to_dict(chain, child) for child in chain.child_nodes(node)],
    }


def call_chain_to_dict(chain: CallChain) -> Dict[str, Any]:
    """Nested tree form of a chain."""
    return {
        "chain_id": chain.chain_id,
        "entry_point": entry_point_to_dict(chain.entry_point),
        "max_depth": chain.max_depth,
        "node_count": len(chain.nodes),
        "root": _node_to_dict(chain, chain.root) if chain.root else None,
    }


def call_chain_from_dict(data: Dict[str, Any]) -> CallChain:
    chain = CallChain(
        chain_id=data["chain_id"],
        entry_point=entry_point_from_dict(data["entry_point"]),
    )
    root = data.get("root")
    if root is None:
        return chain

    # Explicit stack keeps the arena in pre-order
    stack = [(root, None)]
    while stack:
        node_data, parent = stack.pop()
        node = chain.add_node(
            class_name=node_data["class_name"],
            method=node_data["method"],
            depth=node_data.get("depth", 0),
            type=CallType(node_data.get("type", CallType.LOCAL.value)),
            service=node_data.get("service"),
            signature=node_data.get("signature", ""),
            parent=parent,
        )
        node.leaf = LeafKind(node_data.get("leaf", LeafKind.NONE.value))
        for child_data in reversed(node_data.get("children") or []):
            stack.append((child_data, node.index))
    return chain


# =============================================================================
# Dependency graph
# =============================================================================


def graph_to_dict(graph: ServiceDependencyGraph) -> Dict[str, Any]:
    return {
        "services": [
            {
                "service_name": node.service_name,
                "project_name": node.project_name,
                "provided_interfaces": list(node.provided_interfaces),
                "required_interfaces": list(node.required_interfaces),
                "consumed_topics": list(node.consumed_topics),
            }
            for node in graph.services.values()
        ],
        "edges": [
            {
                "from": edge.from_service,
                "to": edge.to_service,
                "type": edge.call_type.value,
            }
            for edge in graph.edges
        ],
        "dependencies": [
            {
                "source_service": dep.source_service,
                "target_service": dep.target_service,
                "interface_name": dep.interface_name,
                "type": dep.type.value,
                "source_class": dep.source_class,
                "source_field": dep.source_field,
                "topic": dep.topic,
            }
            for dep in graph.dependencies
        ],
    }

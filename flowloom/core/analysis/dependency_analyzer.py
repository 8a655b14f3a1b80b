"""Service dependency analysis across scanned projects.

Two passes over the batch:
  Pass 1: one ServiceNode per structure (provided Dubbo interfaces,
          consumed MQ topics) so that targets can be resolved by index.
  Pass 2: remote bindings per field (Dubbo reference, Feign client,
          MQ producer template), folded into deduplicated typed edges.

Structures without a derivable service name land in the ``"unknown"``
bucket instead of failing the batch.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .call_expressions import base_type_name, is_mq_producer_type, parse_call
from .models import (
    UNKNOWN_SERVICE,
    CallType,
    ClassInfo,
    EntryPoint,
    EntryType,
    FieldInfo,
    ProjectStructure,
    ServiceDependency,
    ServiceDependencyGraph,
    ServiceNode,
)

logger = logging.getLogger(__name__)

_PROVIDER_ANNOTATIONS = ("DubboService", "Service")
_DUBBO_REFERENCE_ANNOTATIONS = ("Reference", "DubboReference")
_FEIGN_ANNOTATION = "FeignClient"
_FEIGN_NAME_ATTRIBUTES = ("name", "value", "serviceId")
_MQ_LISTENER_ANNOTATIONS = (
    "KafkaListener",
    "RabbitListener",
    "RocketMQMessageListener",
    "JmsListener",
)
_TOPIC_ATTRIBUTES = ("topics", "topic", "queues", "destination")
_TOPIC_PATH_PREFIXES = ("Topic:", "Queue:", "Destination:")


def service_name_of(structure: ProjectStructure) -> str:
    """Owning service of a structure, or the ``"unknown"`` bucket."""
    name = (structure.service_name or structure.project_name or "").strip()
    return name or UNKNOWN_SERVICE


def clean_attribute_values(value) -> List[str]:
    """Normalise an annotation value (``'{"a", "b"}'``, list, str) to strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        raw = [str(v) for v in value]
    else:
        raw = str(value).split(",")
    cleaned = []
    for item in raw:
        item = item.strip().strip("{}").strip().strip("\"'").strip()
        if item:
            cleaned.append(item)
    return cleaned


def consumer_topics(entry_point: EntryPoint, structure: ProjectStructure) -> List[str]:
    """Topics/queues an MQ entry point listens on."""
    if entry_point.type is not EntryType.MQ:
        return []

    topics: List[str] = []

    def _add(values: Iterable[str]):
        for v in values:
            if v not in topics:
                topics.append(v)

    for key in _TOPIC_ATTRIBUTES:
        _add(clean_attribute_values(entry_point.annotations.get(key)))

    if entry_point.path:
        for prefix in _TOPIC_PATH_PREFIXES:
            if entry_point.path.startswith(prefix):
                _add(clean_attribute_values(entry_point.path[len(prefix):]))

    cls = structure.classes.get(entry_point.class_name)
    method = cls.find_method(entry_point.method_name) if cls else None
    if method is not None:
        for ann in method.annotations:
            if ann.simple_name in _MQ_LISTENER_ANNOTATIONS:
                for key in _TOPIC_ATTRIBUTES:
                    _add(clean_attribute_values(ann.get(key)))

    return topics


class StructureBatch:
    """The set of structures scanned in one analysis run, keyed by service.

    Cross-service tracing only continues into a service that is present
    here; the check is explicit via ``has_service``.
    """

    def __init__(self, structures: Iterable[ProjectStructure] = ()):
        self._by_service: Dict[str, ProjectStructure] = {}
        for structure in structures:
            self._by_service.setdefault(service_name_of(structure), structure)

    def has_service(self, service_name: Optional[str]) -> bool:
        return bool(service_name) and service_name in self._by_service

    def get(self, service_name: str) -> Optional[ProjectStructure]:
        return self._by_service.get(service_name)

    def find_by_project(self, project_name: Optional[str]) -> Optional[ProjectStructure]:
        for structure in self._by_service.values():
            if structure.project_name == project_name:
                return structure
        return None

    def __len__(self) -> int:
        return len(self._by_service)

    def __iter__(self):
        return iter(self._by_service.values())


class ServiceDependencyAnalyzer:
    """Build a ServiceDependencyGraph from a batch of ProjectStructures.

    Pure function over its inputs: structures are never modified.
    """

    def analyze(self, structures: List[ProjectStructure]) -> ServiceDependencyGraph:
        logger.info(f"Analyzing service dependencies across {len(structures)} project(s)")

        graph = ServiceDependencyGraph()

        # Pass 1: service nodes + interface/topic indexes
        for structure in structures:
            node = self._build_service_node(structure)
            node = graph.add_service(node)
            logger.debug(
                f"Service {node.service_name}: {len(node.provided_interfaces)} provided "
                f"interface(s), {len(node.consumed_topics)} consumed topic(s)"
            )

        feign_clients = self._collect_feign_clients(structures)

        # Pass 2: remote bindings
        for structure in structures:
            self._analyze_structure(structure, graph, feign_clients)

        logger.info(
            f"Dependency analysis complete: {len(graph.services)} service(s), "
            f"{len(graph.edges)} edge(s), {len(graph.dependencies)} binding(s)"
        )
        return graph

    # -- Pass 1 ---------------------------------------------------------------

    def _build_service_node(self, structure: ProjectStructure) -> ServiceNode:
        service_name = service_name_of(structure)
        if service_name == UNKNOWN_SERVICE:
            logger.warning(
                f"No service name derivable for project at {structure.project_path!r}; "
                f"attributing it to '{UNKNOWN_SERVICE}'"
            )

        node = ServiceNode(service_name=service_name, project_name=structure.project_name)

        for full_name in sorted(structure.classes):
            cls = structure.classes[full_name]
            if cls.is_interface:
                continue
            if any(cls.has_annotation(a) for a in _PROVIDER_ANNOTATIONS):
                for iface in cls.interfaces:
                    node.add_provided_interface(
                        self._resolve_interface_name(iface, cls, structure)
                    )

        for ep in structure.entry_points:
            for topic in consumer_topics(ep, structure):
                node.add_consumed_topic(topic)

        return node

    def _collect_feign_clients(
        self,
        structures: List[ProjectStructure],
    ) -> Dict[str, Tuple[Optional[str], ClassInfo]]:
        """Feign client interfaces in the batch: full name -> (service, class)."""
        clients: Dict[str, Tuple[Optional[str], ClassInfo]] = {}
        for structure in structures:
            for full_name in sorted(structure.classes):
                cls = structure.classes[full_name]
                ann = cls.get_annotation(_FEIGN_ANNOTATION)
                if ann is None:
                    continue
                clients.setdefault(full_name, (_feign_target(ann.attributes), cls))
        return clients

    # -- Pass 2 ---------------------------------------------------------------

    def _analyze_structure(
        self,
        structure: ProjectStructure,
        graph: ServiceDependencyGraph,
        feign_clients: Dict[str, Tuple[Optional[str], ClassInfo]],
    ) -> None:
        service_name = service_name_of(structure)
        source_node = graph.services[service_name]

        for full_name in sorted(structure.classes):
            cls = structure.classes[full_name]
            for f in cls.fields:
                dep = (
                    self._dubbo_binding(f, cls, structure, service_name, graph)
                    or self._feign_binding(f, cls, structure, service_name, graph, feign_clients)
                )
                if dep is not None:
                    source_node.add_required_interface(dep.interface_name)
                    if graph.add_dependency(dep):
                        logger.debug(
                            f"{dep.type.value} dependency: {service_name} -> "
                            f"{dep.target_service} ({dep.interface_name})"
                        )

            for dep in self._mq_bindings(cls, service_name, graph):
                if graph.add_dependency(dep):
                    logger.debug(
                        f"MQ dependency: {service_name} -> {dep.target_service} "
                        f"(topic {dep.topic})"
                    )

    def _dubbo_binding(
        self,
        f: FieldInfo,
        cls: ClassInfo,
        structure: ProjectStructure,
        service_name: str,
        graph: ServiceDependencyGraph,
    ) -> Optional[ServiceDependency]:
        if not any(f.has_annotation(a) for a in _DUBBO_REFERENCE_ANNOTATIONS):
            return None

        interface_name = self._resolve_interface_name(f.type, cls, structure, graph)
        target = graph.find_service_by_interface(interface_name) or UNKNOWN_SERVICE
        return ServiceDependency(
            source_service=service_name,
            target_service=target,
            interface_name=interface_name,
            type=CallType.DUBBO,
            source_class=cls.full_class_name,
            source_field=f.name,
        )

    def _feign_binding(
        self,
        f: FieldInfo,
        cls: ClassInfo,
        structure: ProjectStructure,
        service_name: str,
        graph: ServiceDependencyGraph,
        feign_clients: Dict[str, Tuple[Optional[str], ClassInfo]],
    ) -> Optional[ServiceDependency]:
        interface_name = self._resolve_interface_name(f.type, cls, structure, graph)
        target: Optional[str] = None

        field_ann = f.get_annotation(_FEIGN_ANNOTATION)
        if field_ann is not None:
            target = _feign_target(field_ann.attributes)
        else:
            client = feign_clients.get(interface_name) or _by_simple_name(
                feign_clients, interface_name,
            )
            if client is None:
                return None
            target, client_cls = client
            interface_name = client_cls.full_class_name

        target = target or graph.find_service_by_interface(interface_name) or UNKNOWN_SERVICE
        return ServiceDependency(
            source_service=service_name,
            target_service=target,
            interface_name=interface_name,
            type=CallType.FEIGN,
            source_class=cls.full_class_name,
            source_field=f.name,
        )

    def _mq_bindings(
        self,
        cls: ClassInfo,
        service_name: str,
        graph: ServiceDependencyGraph,
    ) -> List[ServiceDependency]:
        producers = {f.name: f for f in cls.fields if is_mq_producer_type(f.type)}
        if not producers:
            return []

        bindings: List[ServiceDependency] = []
        for method in cls.methods:
            for expression in method.called_methods:
                call = parse_call(expression)
                if call is None or call.receiver not in producers:
                    continue
                topic = call.first_literal
                if topic is None:
                    logger.debug(
                        f"MQ send without literal topic in {cls.full_class_name}."
                        f"{method.name}: {expression}"
                    )
                    continue
                producer = producers[call.receiver]
                bindings.append(ServiceDependency(
                    source_service=service_name,
                    target_service=graph.find_service_by_topic(topic) or UNKNOWN_SERVICE,
                    interface_name=base_type_name(producer.type),
                    type=CallType.MQ,
                    source_class=cls.full_class_name,
                    source_field=producer.name,
                    topic=topic,
                ))
        return bindings

    # -- Helpers --------------------------------------------------------------

    def _resolve_interface_name(
        self,
        type_name: str,
        cls: ClassInfo,
        structure: ProjectStructure,
        graph: Optional[ServiceDependencyGraph] = None,
    ) -> str:
        """Fully qualify an interface type referenced from ``cls``.

        Already-qualified names are kept. Simple names are matched against
        classes of the same structure, then against interfaces already
        provided in the graph, and finally qualified with ``cls``'s package.
        """
        type_name = base_type_name(type_name)
        if "." in type_name:
            return type_name

        local = structure.find_class(type_name)
        if local is not None:
            return local.full_class_name

        if graph is not None:
            matches = sorted(
                iface for iface in graph.interface_index
                if iface.rsplit(".", 1)[-1] == type_name
            )
            if len(matches) == 1:
                return matches[0]

        return cls.resolve_type_name(type_name)


def _feign_target(attributes: Dict) -> Optional[str]:
    for key in _FEIGN_NAME_ATTRIBUTES:
        values = clean_attribute_values(attributes.get(key))
        if values:
            return values[0]
    return None


def _by_simple_name(clients: Dict, interface_name: str):
    simple = interface_name.rsplit(".", 1)[-1]
    matches = [v for k, v in sorted(clients.items()) if k.rsplit(".", 1)[-1] == simple]
    return matches[0] if len(matches) == 1 else None

"""Tests for MermaidGenerator sequence diagrams."""

from flowloom.core.analysis.flow_tracer import BusinessFlowTracer
from flowloom.core.analysis.dependency_analyzer import ServiceDependencyAnalyzer
from flowloom.core.analysis.models import CallChain, CallType, EntryPoint, EntryType, LeafKind
from flowloom.core.diagrams.mermaid import MermaidGenerator
from flowloom.tests.sample_structures import order_structure


def _chain(structures, graph, method_name, batch=None, max_depth=5):
    structure = structures[0]
    ep = next(e for e in structure.entry_points if e.method_name == method_name)
    return BusinessFlowTracer().trace(ep, structure, graph, max_depth, batch)


class TestSequenceDiagram:

    def test_controller_service_dubbo_example(self, structures, graph):
        chain = _chain(structures, graph, "create", max_depth=3)
        diagram = MermaidGenerator().generate_sequence_diagram(chain)

        assert diagram.splitlines() == [
            "sequenceDiagram",
            "    participant OrderController",
            "    participant OrderService",
            "    participant InventoryService",
            "    OrderController->>OrderService: submit [LOCAL]",
            "    OrderService->>InventoryService: reserve [DUBBO]",
            "    Note over InventoryService: external: inventory-service",
        ]

    def test_one_arrow_per_edge_mq_dashed(self, structures, graph, batch):
        chain = _chain(structures, graph, "checkout", batch)
        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()

        arrows = [l for l in lines if "->>" in l]
        assert len(arrows) == len(list(chain.edges())) == 6
        assert "    OrderService-->>NotificationListener: onOrderCreated [MQ]" in lines
        assert "    OrderService->>PaymentController: charge [FEIGN]" in lines
        assert sum(1 for l in lines if "-->>" in l) == 1

    def test_arrows_follow_call_order(self):
        chain = CallChain(chain_id="c", entry_point=EntryPoint("x.A", "run", EntryType.HTTP))
        root = chain.add_node("x.A", "run", 0, CallType.LOCAL, "svc")
        b = chain.add_node("x.B", "left", 1, CallType.LOCAL, "svc", parent=root.index)
        chain.add_node("x.C", "right", 1, CallType.LOCAL, "svc", parent=root.index)
        chain.add_node("x.D", "deep", 2, CallType.LOCAL, "svc", parent=b.index)

        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()

        assert [l.strip() for l in lines if "->>" in l] == [
            "A->>B: left [LOCAL]",
            "B->>D: deep [LOCAL]",
            "A->>C: right [LOCAL]",
        ]

    def test_checkout_arrows_in_call_order(self, structures, graph, batch):
        chain = _chain(structures, graph, "checkout", batch)
        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()

        assert [l.strip() for l in lines if "->>" in l] == [
            "OrderController->>OrderService: checkout [LOCAL]",
            "OrderService->>InventoryServiceImpl: reserve [DUBBO]",
            "InventoryServiceImpl->>StockRepository: decrement [LOCAL]",
            "OrderService->>PaymentController: charge [FEIGN]",
            "PaymentController->>PaymentController: validateCard [LOCAL]",
            "OrderService-->>NotificationListener: onOrderCreated [MQ]",
        ]

    def test_cyclic_and_depth_bound_notes(self):
        chain = CallChain(chain_id="c", entry_point=EntryPoint("x.A", "ping", EntryType.HTTP))
        root = chain.add_node("x.A", "ping", 0, CallType.LOCAL, "svc")
        b = chain.add_node("x.B", "pong", 1, CallType.LOCAL, "svc", parent=root.index)
        a = chain.add_node("x.A", "ping", 2, CallType.LOCAL, "svc", parent=b.index)
        a.leaf = LeafKind.CYCLIC
        deep = chain.add_node("x.C", "dig", 1, CallType.LOCAL, "svc", parent=root.index)
        deep.leaf = LeafKind.DEPTH_BOUND

        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()

        assert "    Note over A: cyclic call to ping" in lines
        assert "    Note over C: depth limit reached" in lines
        assert [l for l in lines if l.strip().startswith("participant")] == [
            "    participant A",
            "    participant B",
            "    participant C",
        ]

    def test_same_class_name_in_two_services_disambiguated(self):
        chain = CallChain(chain_id="c", entry_point=EntryPoint("a.Api", "go", EntryType.HTTP))
        root = chain.add_node("a.Api", "go", 0, CallType.LOCAL, "svc-a")
        chain.add_node("b.Api", "go", 1, CallType.FEIGN, "svc-b", parent=root.index)
        chain.add_node("c.Api", "go", 1, CallType.FEIGN, "svc-b", parent=root.index)

        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()

        assert lines[1:4] == [
            "    participant Api",
            "    participant Api_svc_b as Api (svc-b)",
            "    participant Api_svc_b_2 as Api (svc-b)",
        ]
        assert "    Api->>Api_svc_b: go [FEIGN]" in lines

    def test_lone_root_has_no_arrows(self):
        structure = order_structure()
        graph = ServiceDependencyAnalyzer().analyze([structure])
        chain = _chain([structure], graph, "create", max_depth=0)

        lines = MermaidGenerator().generate_sequence_diagram(chain).splitlines()
        assert lines == [
            "sequenceDiagram",
            "    participant OrderController",
            "    Note over OrderController: depth limit reached",
        ]

    def test_deterministic(self, structures, graph, batch):
        generator = MermaidGenerator()
        first = generator.generate_sequence_diagram(_chain(structures, graph, "checkout", batch))
        second = generator.generate_sequence_diagram(_chain(structures, graph, "checkout", batch))
        assert first == second

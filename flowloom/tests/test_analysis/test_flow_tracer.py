"""Unit tests for BusinessFlowTracer.

Tests cover:
- Local resolution (field type, interface -> implementation, same class, super class)
- Depth bound on every path, DEPTH_BOUND leaves
- Per-path cycle guard (A -> B -> A) and diamond reconvergence
- Cross-service continuation gated on the scanned batch
- Determinism and TraceError for unknown entry points
"""

import pytest

from flowloom.core.analysis.dependency_analyzer import ServiceDependencyAnalyzer, StructureBatch
from flowloom.core.analysis.flow_tracer import BusinessFlowTracer
from flowloom.core.analysis.models import (
    CallType,
    ClassInfo,
    EntryPoint,
    EntryType,
    LeafKind,
)
from flowloom.core.constants import MAX_TRACE_DEPTH
from flowloom.core.exceptions import TraceError
from flowloom.tests.sample_structures import field_, method, order_structure, single_class_structure


def _entry(structure, method_name):
    return next(ep for ep in structure.entry_points if ep.method_name == method_name)


def _summary(chain):
    return [(n.depth, n.class_name.rsplit(".", 1)[-1], n.method, n.type, n.leaf) for n in chain.nodes]


def _linear_structure(length: int):
    """C0.step -> C1.step -> ... -> C{length-1}.step"""
    classes = []
    for i in range(length):
        calls = ["next.step()"] if i < length - 1 else []
        fields = [field_("next", f"C{i + 1}")] if i < length - 1 else []
        classes.append(ClassInfo(
            class_name=f"C{i}", package_name="com.chain", fields=fields, methods=[method("step", calls)],
        ))
    return single_class_structure(classes, "com.chain.C0", "step")


def _cyclic_structure():
    a = ClassInfo(
        class_name="A", package_name="com.demo",
        fields=[field_("b", "B")], methods=[method("ping", ["b.pong()"])],
    )
    b = ClassInfo(
        class_name="B", package_name="com.demo",
        fields=[field_("a", "A")], methods=[method("pong", ["a.ping()"])],
    )
    return single_class_structure([a, b], "com.demo.A", "ping")


class TestLocalTracing:

    def test_controller_to_service_to_external_dubbo(self, graph):
        structure = order_structure()
        chain = BusinessFlowTracer().trace(_entry(structure, "create"), structure, graph, max_depth=3)

        assert _summary(chain) == [
            (0, "OrderController", "create", CallType.LOCAL, LeafKind.NONE),
            (1, "OrderService", "submit", CallType.LOCAL, LeafKind.NONE),
            (2, "InventoryService", "reserve", CallType.DUBBO, LeafKind.EXTERNAL),
        ]
        assert chain.nodes[2].service == "inventory-service"
        assert len(list(chain.edges())) == 2

    def test_interface_field_resolves_to_implementation(self):
        repo = ClassInfo(class_name="UserRepo", package_name="com.u", is_interface=True,
                         methods=[method("load")])
        impl = ClassInfo(class_name="JdbcUserRepo", package_name="com.u", interfaces=["UserRepo"],
                         methods=[method("load", ["query(sql)"]), method("query")])
        svc = ClassInfo(class_name="UserService", package_name="com.u",
                        fields=[field_("repo", "UserRepo")],
                        methods=[method("get", ["repo.load(id)", "String.valueOf(id)"])])
        structure = single_class_structure([repo, impl, svc], "com.u.UserService", "get")
        graph = ServiceDependencyAnalyzer().analyze([structure])

        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph)

        assert [(n.class_name, n.method) for n in chain.nodes] == [
            ("com.u.UserService", "get"),
            ("com.u.JdbcUserRepo", "load"),
            ("com.u.JdbcUserRepo", "query"),
        ]
        assert chain.nodes[2].leaf is LeafKind.NORMAL

    def test_super_class_method(self):
        base = ClassInfo(class_name="BaseHandler", package_name="com.h", methods=[method("audit")])
        handler = ClassInfo(class_name="Handler", package_name="com.h", super_class="BaseHandler",
                            methods=[method("handle", ["this.audit()"])])
        structure = single_class_structure([base, handler], "com.h.Handler", "handle")
        graph = ServiceDependencyAnalyzer().analyze([structure])

        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph)
        assert chain.nodes[1].class_name == "com.h.BaseHandler"
        assert chain.nodes[1].method == "audit"

    def test_unknown_entry_raises_trace_error(self, graph):
        structure = order_structure()
        tracer = BusinessFlowTracer()
        with pytest.raises(TraceError):
            tracer.trace(EntryPoint("com.shop.order.Ghost", "haunt", EntryType.HTTP), structure, graph)
        with pytest.raises(TraceError):
            tracer.trace(
                EntryPoint("com.shop.order.OrderController", "missing", EntryType.HTTP), structure, graph,
            )


class TestStopRules:

    @pytest.mark.parametrize("max_depth", range(0, 8))
    def test_no_path_exceeds_max_depth(self, max_depth):
        structure = _linear_structure(6)
        graph = ServiceDependencyAnalyzer().analyze([structure])
        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph, max_depth)

        for node in chain.nodes:
            assert len(chain.path_to(node)) - 1 <= max_depth
        assert chain.max_depth == min(max_depth, 5)

        deepest = chain.nodes[-1]
        expected = LeafKind.DEPTH_BOUND if max_depth < 5 else LeafKind.NORMAL
        assert deepest.leaf is expected

    def test_cycle_ends_in_cyclic_leaf(self):
        structure = _cyclic_structure()
        graph = ServiceDependencyAnalyzer().analyze([structure])
        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph, max_depth=5)

        assert _summary(chain) == [
            (0, "A", "ping", CallType.LOCAL, LeafKind.NONE),
            (1, "B", "pong", CallType.LOCAL, LeafKind.NONE),
            (2, "A", "ping", CallType.LOCAL, LeafKind.CYCLIC),
        ]
        assert chain.nodes[-1].is_cyclic

    def test_diamond_is_not_a_cycle(self):
        d = ClassInfo(class_name="D", package_name="x", methods=[method("z")])
        b = ClassInfo(class_name="B", package_name="x", fields=[field_("d", "D")],
                      methods=[method("left", ["d.z()"])])
        c = ClassInfo(class_name="C", package_name="x", fields=[field_("d", "D")],
                      methods=[method("right", ["d.z()"])])
        a = ClassInfo(class_name="A", package_name="x", fields=[field_("b", "B"), field_("c", "C")],
                      methods=[method("run", ["b.left()", "c.right()"])])
        structure = single_class_structure([a, b, c, d], "x.A", "run")
        graph = ServiceDependencyAnalyzer().analyze([structure])

        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph)

        z_nodes = [n for n in chain.nodes if n.method == "z"]
        assert len(z_nodes) == 2
        assert z_nodes[0].index != z_nodes[1].index
        assert all(n.leaf is LeafKind.NORMAL for n in z_nodes)

    def test_negative_depth_rejected(self, graph):
        structure = order_structure()
        with pytest.raises(ValueError):
            BusinessFlowTracer().trace(_entry(structure, "create"), structure, graph, max_depth=-1)

    def test_depth_above_bound_rejected(self, graph):
        structure = order_structure()
        with pytest.raises(ValueError):
            BusinessFlowTracer().trace(
                _entry(structure, "create"), structure, graph, max_depth=MAX_TRACE_DEPTH + 1,
            )

    def test_long_chain_at_depth_bound(self):
        structure = _linear_structure(MAX_TRACE_DEPTH + 2)
        graph = ServiceDependencyAnalyzer().analyze([structure])
        chain = BusinessFlowTracer().trace(structure.entry_points[0], structure, graph, MAX_TRACE_DEPTH)

        assert chain.max_depth == MAX_TRACE_DEPTH
        assert chain.nodes[-1].leaf is LeafKind.DEPTH_BOUND


class TestCrossService:

    def test_dubbo_continues_into_scanned_provider(self, structures, graph, batch):
        structure = structures[0]
        chain = BusinessFlowTracer().trace(_entry(structure, "create"), structure, graph, 5, batch)

        assert _summary(chain) == [
            (0, "OrderController", "create", CallType.LOCAL, LeafKind.NONE),
            (1, "OrderService", "submit", CallType.LOCAL, LeafKind.NONE),
            (2, "InventoryServiceImpl", "reserve", CallType.DUBBO, LeafKind.NONE),
            (3, "StockRepository", "decrement", CallType.LOCAL, LeafKind.NORMAL),
        ]
        assert chain.services() == ["order-service", "inventory-service"]

    def test_checkout_crosses_dubbo_feign_and_mq(self, structures, graph, batch):
        structure = structures[0]
        chain = BusinessFlowTracer().trace(_entry(structure, "checkout"), structure, graph, 5, batch)

        remote = [(n.type, n.service, n.class_name, n.method) for n in chain.nodes if n.type.is_remote]
        assert remote == [
            (CallType.DUBBO, "inventory-service", "com.shop.inventory.InventoryServiceImpl", "reserve"),
            (CallType.FEIGN, "payment-service", "com.shop.payment.PaymentController", "charge"),
            (CallType.MQ, "notification-service", "com.shop.notify.NotificationListener", "onOrderCreated"),
        ]
        assert len(chain.nodes) == 7

    def test_service_missing_from_batch_is_external(self, structures, graph):
        structure = structures[0]
        partial = StructureBatch([structure, structures[1]])
        chain = BusinessFlowTracer().trace(_entry(structure, "checkout"), structure, graph, 5, partial)

        leaves = {n.type: n for n in chain.nodes if n.leaf is LeafKind.EXTERNAL}
        assert set(leaves) == {CallType.FEIGN, CallType.MQ}
        assert leaves[CallType.FEIGN].service == "payment-service"
        assert leaves[CallType.MQ].class_name == "order-created"

    def test_trace_is_deterministic(self, structures, graph, batch):
        structure = structures[0]
        ep = _entry(structure, "checkout")
        first = BusinessFlowTracer().trace(ep, structure, graph, 5, batch)
        second = BusinessFlowTracer().trace(ep, structure, graph, 5, batch)

        assert first.chain_id == second.chain_id
        assert first.to_dict() == second.to_dict()

"""Unit tests for EntryPointFinder: scoring tiers, threshold and ordering."""

import pytest

from flowloom.core.analysis.entry_point_finder import (
    SCORE_CLASS_NAME,
    SCORE_EXACT_PATH,
    EntryPointFinder,
    matches_keyword,
)
from flowloom.core.analysis.models import (
    ClassInfo,
    EntryPoint,
    EntryPointMatch,
    EntryType,
    ProjectStructure,
)
from flowloom.tests.sample_structures import ann, method


def _structure_with(*entry_points: EntryPoint) -> ProjectStructure:
    structure = ProjectStructure(project_name="demo", service_name="demo")
    for ep in entry_points:
        simple = ep.class_name.rsplit(".", 1)[-1]
        package = ep.class_name.rsplit(".", 1)[0] if "." in ep.class_name else ""
        if ep.class_name not in structure.classes:
            structure.add_class(ClassInfo(class_name=simple, package_name=package))
        structure.classes[ep.class_name].methods.append(method(ep.method_name))
        structure.add_entry_point(ep)
    return structure


class TestScoring:

    def test_exact_path_beats_class_name_only(self):
        by_path = EntryPoint("com.acme.FooController", "handle", EntryType.HTTP, path="/api/payment")
        by_class = EntryPoint("com.acme.PaymentController", "handle", EntryType.HTTP, path="/api/other")
        structure = _structure_with(by_class, by_path)

        matches = EntryPointFinder().find_by_keywords(["payment"], [structure])

        assert [m.entry_point for m in matches] == [by_path, by_class]
        assert matches[0].relevance_score == SCORE_EXACT_PATH
        assert matches[1].relevance_score == SCORE_CLASS_NAME
        assert matches[0].relevance_score > matches[1].relevance_score

    def test_exact_path_beats_every_lower_signal_combined(self):
        exact = EntryPoint("com.acme.Misc", "handle", EntryType.HTTP, path="/order")
        named = EntryPoint(
            "com.acme.OrderController", "createOrder", EntryType.HTTP,
            path="/api/orders/new", description="order creation",
        )
        structure = _structure_with(named, exact)

        matches = EntryPointFinder().find_by_keywords(["order"], [structure])

        assert [m.entry_point for m in matches] == [exact, named]
        assert matches[0].relevance_score == 50
        # method + class + path contains + description
        assert matches[1].relevance_score == 45

    def test_reasons_name_signal_and_keyword(self, structures):
        matches = EntryPointFinder().find_by_keywords(["order"], structures)
        create = next(m for m in matches if m.entry_point.method_name == "create")

        assert create.match_reasons == [
            "path contains 'order' (+10)",
            "class name 'order' (+10)",
            "description 'order' (+5)",
        ]
        assert create.relevance_score == 25

    def test_segment_match_and_method_name_add_up(self, structures):
        matches = EntryPointFinder().find_by_keywords(["charge"], structures)
        assert len(matches) == 1
        assert matches[0].entry_point.path == "/api/payments/charge"
        assert matches[0].relevance_score == 70

    def test_method_annotation_text_is_descriptive(self):
        ep = EntryPoint("com.acme.Jobs", "run", EntryType.SCHEDULED)
        structure = _structure_with(ep)
        structure.classes["com.acme.Jobs"].methods[0].annotations.append(
            ann("Scheduled", cron="0 0 * * * reconcile")
        )
        matches = EntryPointFinder().find_by_keywords(["reconcile"], [structure])
        assert [m.relevance_score for m in matches] == [5]

    def test_case_insensitive(self, structures):
        lower = EntryPointFinder().find_by_keywords(["orders"], structures)
        upper = EntryPointFinder().find_by_keywords(["ORDERS"], structures)
        assert [m.relevance_score for m in lower] == [m.relevance_score for m in upper]


class TestRanking:

    def test_ties_broken_by_shorter_path(self, structures):
        matches = EntryPointFinder().find_by_keywords(["orders"], structures)
        assert [m.entry_point.path for m in matches] == [
            "/api/orders",
            "/api/orders/checkout",
            "/api/orders/{id}/cancel",
        ]
        assert {m.relevance_score for m in matches} == {SCORE_EXACT_PATH}

    def test_none_path_sorts_last_then_class_then_method(self):
        a = EntryPoint("com.acme.Sync", "syncB", EntryType.SCHEDULED)
        b = EntryPoint("com.acme.Sync", "syncA", EntryType.SCHEDULED)
        c = EntryPoint("com.acme.SyncController", "go", EntryType.HTTP, path="/x")
        matches = EntryPointFinder().find_by_keywords(["sync"], [_structure_with(a, b, c)])

        # c: class name only (10); a/b: method + class (30)
        assert [m.entry_point.method_name for m in matches] == ["syncA", "syncB", "go"]

    def test_min_relevance_drops_weak_matches(self, structures):
        assert EntryPointFinder(min_relevance=40).find_by_keywords(["order"], structures) == []
        assert len(EntryPointFinder().find_by_keywords(["order"], structures)) == 4

    @pytest.mark.parametrize("keywords", [["refund"], [], ["  "]])
    def test_no_match_returns_empty(self, structures, keywords):
        assert EntryPointFinder().find_by_keywords(keywords, structures) == []


class TestMatchesKeyword:

    def test_filters_ranked_list_per_keyword(self, structures):
        matches = EntryPointFinder().find_by_keywords(["orders", "charge"], structures)
        charge = [m for m in matches if matches_keyword(m, "charge")]
        assert [m.entry_point.method_name for m in charge] == ["charge"]

    def test_falls_back_to_entry_point_fields(self):
        ep = EntryPoint("com.acme.RefundController", "refund", EntryType.HTTP, path="/r")
        match = EntryPointMatch(entry_point=ep, project_name="demo")
        assert matches_keyword(match, "Refund")
        assert not matches_keyword(match, "order")

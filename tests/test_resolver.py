"""
Canonical Resolver Tests
========================
Label rejection, dedup groups, scoring and tie-breaking.
"""

import pytest

from contextgraph.core.models import Node
from contextgraph.core.resolver import CanonicalResolver, dedup_group


def _nodes(*specs):
    """Build an insertion-ordered id -> Node map from (id, label, type, weight) tuples."""
    return {
        node_id: Node(id=node_id, label=label, type=node_type, weight=weight)
        for node_id, label, node_type, weight in specs
    }


@pytest.fixture
def resolver():
    return CanonicalResolver()


class TestRejection:
    @pytest.mark.parametrize("label", [
        "untitled",
        "Untitled",
        "about:blank",
        "the",
        "a",
        "",
        "   ",
        "src/main.py",
        "C:\\Users\\chris",
        "report.pdf",
        "notes.md",
    ])
    def test_rejected(self, resolver, label):
        assert resolver.is_rejected(label)

    @pytest.mark.parametrize("label", ["Chris", "Rust", "machine learning", "v1.2"])
    def test_accepted(self, resolver, label):
        assert not resolver.is_rejected(label)

    def test_custom_min_length(self):
        resolver = CanonicalResolver(min_label_length=5)
        assert resolver.is_rejected("Rust")
        assert not resolver.is_rejected("Python")

    def test_rejected_label_never_resolves(self, resolver):
        nodes = _nodes(("t1", "untitled", "topic", 1))
        assert resolver.resolve(nodes, "untitled", "topic") is None


class TestDedupGroups:
    def test_person_is_isolated(self):
        assert dedup_group("person") == frozenset({"person"})

    def test_shared_pool(self):
        assert dedup_group("topic") == dedup_group("project") == dedup_group("place")

    def test_unknown_type_is_its_own_group(self):
        assert dedup_group("restaurant") == frozenset({"restaurant"})


class TestResolve:
    def test_no_candidates(self, resolver):
        assert resolver.resolve({}, "Chris", "person") is None

    def test_exact_match(self, resolver):
        nodes = _nodes(("p1", "Chris", "person", 1))
        assert resolver.resolve(nodes, "chris", "person") == "p1"

    def test_containment_absorbs_longer_alias(self, resolver):
        nodes = _nodes(("p1", "Chris", "person", 1))
        assert resolver.resolve(nodes, "Chris Li", "person") == "p1"

    def test_underscore_matches_space(self, resolver):
        nodes = _nodes(("t1", "machine_learning", "topic", 1))
        assert resolver.resolve(nodes, "machine learning", "topic") == "t1"

    def test_short_inner_substring_does_not_match(self, resolver):
        nodes = _nodes(("p1", "Martin", "person", 1))
        assert resolver.resolve(nodes, "Art", "person") is None

    def test_person_never_matches_topic(self, resolver):
        nodes = _nodes(("t1", "Chris", "topic", 1))
        assert resolver.resolve(nodes, "Chris", "person") is None

    def test_shared_pool_matches_across_types(self, resolver):
        nodes = _nodes(("t1", "Machine Learning", "topic", 1))
        assert resolver.resolve(nodes, "machine learning", "project") == "t1"

    def test_same_type_preferred(self, resolver):
        nodes = _nodes(
            ("t1", "Rust", "topic", 5),
            ("pr1", "Rust", "project", 1),
        )
        assert resolver.resolve(nodes, "rust", "project") == "pr1"

    def test_heavier_candidate_wins(self, resolver):
        nodes = _nodes(
            ("p1", "Sam", "person", 1),
            ("p2", "sam", "person", 4),
        )
        assert resolver.resolve(nodes, "Sam", "person") == "p2"

    def test_tie_keeps_earliest(self, resolver):
        nodes = _nodes(
            ("p1", "Sam", "person", 2),
            ("p2", "sam", "person", 2),
        )
        assert resolver.resolve(nodes, "Sam", "person") == "p1"

    def test_score_zero_for_unrelated(self, resolver):
        node = Node(id="p1", label="Chris", type="person")
        assert resolver.score(node, "katie", "person") == 0

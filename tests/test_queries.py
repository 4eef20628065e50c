"""
Tests for display-oriented graph queries.
"""

from collections import deque
from datetime import timedelta

import pytest

from contextgraph.core.models import Node
from contextgraph.core.queries import get_edge_detail, get_graph_data, get_node_detail, node_score, recency_boost


@pytest.fixture
def small_graph(store, now):
    for _ in range(3):
        chris = store.upsert_node("Chris", "person", context="Messages", when=now)
    poker = store.upsert_node("Poker Night", "event", when=now)
    elixir = store.upsert_node("Elixir", "topic", when=now)
    store.upsert_edge(chris, poker, weight_delta=3)
    store.upsert_edge(poker, elixir)
    return store, chris, poker, elixir


class TestScoring:
    @pytest.mark.parametrize("age,expected", [
        (timedelta(minutes=30), 2.0),
        (timedelta(hours=2), 1.5),
        (timedelta(days=3), 1.2),
        (timedelta(days=10), 1.0),
    ])
    def test_recency_boost(self, now, age, expected):
        assert recency_boost(now - age, now) == expected

    def test_node_score(self, now):
        node = Node(id="person_1", label="Chris", type="person", weight=3, verified=True,
                    last_seen=now - timedelta(hours=2), first_seen=now - timedelta(days=1),
                    contexts=deque(["Messages", "Slack"]))
        assert node_score(node, now) == pytest.approx(3 * 3 * 2 * 1.5)

    def test_contextless_node_counts_once(self, now):
        node = Node(id="topic_1", label="Elixir", type="topic", weight=2, first_seen=now, last_seen=now)
        assert node_score(node, now) == pytest.approx(4.0)


class TestGraphData:
    def test_only_strong_edges_and_their_nodes(self, small_graph, now):
        store, chris, poker, elixir = small_graph
        data = get_graph_data(store, now)

        assert [n["id"] for n in data["nodes"]] == [chris, poker]
        assert data["nodes"][0]["mentions"] == 3
        assert data["nodes"][0]["context_diversity"] == 1
        assert data["nodes"][0]["score"] == pytest.approx(6.0)

        assert len(data["edges"]) == 1
        edge = data["edges"][0]
        assert {edge["source_label"], edge["target_label"]} == {"Chris", "Poker Night"}
        assert edge["weight"] == 3

    def test_fallback_when_nothing_connected(self, store, now):
        store.upsert_node("Chris", "person", when=now)
        store.upsert_node("Elixir", "topic", when=now)
        data = get_graph_data(store, now)
        assert len(data["nodes"]) == 2
        assert data["edges"] == []

    def test_same_label_edges_hidden(self, store, now):
        app = store.upsert_node("Discord", "app", when=now)
        place = store.upsert_node("Discord", "place", when=now)
        store.upsert_edge(app, place, weight_delta=2)
        data = get_graph_data(store, now)
        assert len(data["nodes"]) == 2
        assert data["edges"] == []

    def test_empty_graph(self, store):
        assert get_graph_data(store) == {"nodes": [], "edges": []}


class TestDetail:
    def test_node_detail(self, small_graph):
        store, chris, poker, elixir = small_graph
        detail = get_node_detail(store, poker)
        assert detail["label"] == "Poker Night"
        assert detail["mentions"] == 1
        assert [c["id"] for c in detail["connections"]] == [chris, elixir]
        assert detail["connections"][0] == {
            "id": chris, "label": "Chris", "type": "person", "co_occurrences": 3, "relation": None,
        }

    def test_unknown_node(self, store):
        assert get_node_detail(store, "person_missing") is None

    def test_edge_detail_either_order(self, small_graph):
        store, chris, poker, _ = small_graph
        forward = get_edge_detail(store, chris, poker)
        backward = get_edge_detail(store, poker, chris)
        assert forward["weight"] == backward["weight"] == 3
        assert forward["source"]["label"] == "Chris"
        assert backward["source"]["label"] == "Poker Night"

    def test_missing_edge(self, small_graph):
        store, chris, _, elixir = small_graph
        assert get_edge_detail(store, chris, elixir) is None

"""Unit tests for the in-memory knowledge cache."""

import threading

from knowledge.cache import KnowledgeCache
from knowledge.schema import Relationship


def test_entities_evicted_oldest_first(make_entity):
    cache = KnowledgeCache(max_entities=3, max_relationships=2)

    cache.add("u1", [make_entity(f"metric_{i}") for i in range(5)])

    assert [e.name for e in cache.entities("u1")] == ["metric_2", "metric_3", "metric_4"]


def test_re_adding_entity_refreshes_position(make_entity):
    cache = KnowledgeCache(max_entities=3)
    cache.add("u1", [make_entity("revenue"), make_entity("debt"), make_entity("inventory")])

    cache.add("u1", [make_entity("revenue", confidence=0.5), make_entity("growth")])

    entities = cache.entities("u1")
    assert [e.name for e in entities] == ["inventory", "revenue", "growth"]
    assert entities[1].confidence == 0.5


def test_relationships_bounded_most_recent_last():
    cache = KnowledgeCache(max_relationships=2)
    rels = [
        Relationship("revenue", "profit", "affects"),
        Relationship("cash_flow", "inventory", "depends_on"),
        Relationship("supplier", "expenses", "influences"),
    ]

    cache.add("u1", relationships=rels)

    assert [r.from_entity for r in cache.relationships("u1")] == ["cash_flow", "supplier"]


def test_users_isolated_and_clearable(make_entity):
    cache = KnowledgeCache()
    cache.add("alice", [make_entity("revenue")])
    cache.add("bob", [make_entity("debt")])

    assert cache.user_ids() == ["alice", "bob"]
    assert len(cache) == 2

    cache.clear_user("alice")
    assert cache.entities("alice") == []
    assert [e.name for e in cache.entities("bob")] == ["debt"]

    cache.clear()
    assert len(cache) == 0


def test_unknown_user_returns_empty_lists():
    cache = KnowledgeCache()

    assert cache.entities("nobody") == []
    assert cache.relationships("nobody") == []


def test_concurrent_writers_respect_bounds(make_entity):
    cache = KnowledgeCache(max_entities=10)

    def writer(offset: int) -> None:
        for i in range(50):
            cache.add("u1", [make_entity(f"metric_{offset}_{i}")])

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache.entities("u1")) == 10


def test_least_recently_written_user_is_dropped(make_entity):
    cache = KnowledgeCache(max_users=2)
    cache.add("u1", [make_entity("revenue")])
    cache.add("u2", [make_entity("debt")])
    cache.add("u1", [make_entity("profit")])

    cache.add("u3", [make_entity("growth")])

    assert cache.user_ids() == ["u1", "u3"]
    assert cache.entities("u2") == []
    assert [e.name for e in cache.entities("u1")] == ["revenue", "profit"]

import pytest

from fanout_build.core.cache.memory_cache import MemoryCache
from fanout_build.core.errors import CacheMissError, GraphCycleError
from fanout_build.core.model import CachedMeta
from fanout_build.core.session.graph import DependencyGraph
from fanout_build.core.session.hashtable import HashTable
from fanout_build.core.session.queue import ExecutionQueue, RemainingCounter
from fanout_build.core.session.session import seed_from_basic_types


def test_graph_union_rejects_cycles_untouched():
    g = DependencyGraph()
    g.union([("a", "b"), ("b", "c")])
    with pytest.raises(GraphCycleError) as ei:
        g.union([("c", "d"), ("c", "a")])
    assert ei.value.code == "E_GRAPH_CYCLE"
    assert g.edges() == [("a", "b"), ("b", "c")]
    assert not g.has_vertex("d")


def test_graph_neighbours_and_attrs():
    g = DependencyGraph()
    g.union([("a", "c"), ("b", "c")], {"a": {"imported": True}})
    g.add_vertex("lonely", imported=False)
    assert g.upstream("c") == ["a", "b"]
    assert g.downstream("a") == ["c"]
    assert g.vertex_attr("a", "imported") is True
    assert g.vertex_attr("lonely", "imported") is False
    assert g.vertex_attr("c", "imported", "n/a") == "n/a"
    assert sorted(g.vertices()) == ["a", "b", "c", "lonely"]


def test_queue_ready_order_and_keys():
    q = ExecutionQueue()
    q.push(["a", "b"], 0)
    q.push(["p"], 2)
    assert len(q) == 3
    assert q.pop0() == "a"
    q.decrease_key(["p"])
    q.increase_key(["p", "missing"])
    assert q.key("p") == 2
    q.decrease_key(["p", "p"])
    assert q.pop0() == "b"
    assert q.pop0() == "p"
    assert q.pop0() is None
    assert q.empty()


def test_queue_push_overwrites_key():
    q = ExecutionQueue()
    q.push(["p"], 3)
    q.push(["p"], 1)
    assert q.key("p") == 1
    assert "p" in q
    assert q.list() == ["p"]


def test_counter():
    c = RemainingCounter()
    c.increase(3)
    c.decrease()
    assert c.remaining == 2
    c.decrease(5)
    assert c.remaining == 0


def test_hashtable():
    ht = HashTable()
    ht.set("a")
    ht.set("n", 4)
    assert ht.exists("a")
    assert ht.get("n") == 4
    assert sorted(ht.keys()) == ["a", "n"]
    ht.reset()
    assert len(ht) == 0


def test_seed_from_basic_types():
    assert seed_from_basic_types(1, "y") == seed_from_basic_types(1, "y")
    assert seed_from_basic_types(1, "y") != seed_from_basic_types(2, "y")
    assert 0 <= seed_from_basic_types("anything") < 2**31


def test_memory_cache_is_content_addressed():
    cache = MemoryCache()
    a = cache.set("a", [1, 2])
    b = cache.set("b", [1, 2])
    assert a.hash == b.hash
    assert a.size == 2
    assert cache.mget_by_hash(["a", "b"]) == [[1, 2], [1, 2]]
    assert cache.list() == ["a", "b"]
    with pytest.raises(CacheMissError):
        cache.get("c")
    with pytest.raises(CacheMissError):
        cache.mget_by_hash(["a", "c"])


def test_memory_cache_history_and_recover():
    cache = MemoryCache()
    old = cache.set("a", "v1")
    cache.set("a", "v2")
    assert cache.get("a") == "v2"
    assert not cache.recover("a")

    cache.delete("a")
    assert not cache.exists("a")
    assert cache.recover("a")
    assert cache.get("a") == "v2"
    assert cache.get_hash("a") != old.hash
    assert not cache.recover("never")


def test_set_meta_requires_known_hash():
    cache = MemoryCache()
    with pytest.raises(CacheMissError):
        cache.set_meta("a", CachedMeta(hash="deadbeef", size=1))

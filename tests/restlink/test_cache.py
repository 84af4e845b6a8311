"""Tests for RestEntity and the weakly held objects cache."""

import gc
import threading

import pytest

from restlink.cache import ObjectsCache, clear_objects_caches, get_objects_cache
from restlink.entity import RestEntity


class Project(RestEntity):
    id: int
    name: str = ""
    archived: bool = False


class Note(RestEntity):
    key_field = None

    text: str


class TestRestEntity:

    def test_from_json(self):
        project = Project.from_json({"id": 7, "name": "alpha", "unknown": 1})
        assert project == Project(id=7, name="alpha")

    @pytest.mark.parametrize("data", [None, {}, [], "x", {"name": "no id"}, {"id": "not a number"}])
    def test_from_json_rejects(self, data):
        assert Project.from_json(data) is None

    def test_cache_key(self):
        assert Project(id=3).cache_key() == 3
        assert Note(text="hello").cache_key() is None

    def test_update_from_copies_every_field(self):
        project = Project(id=1, name="old", archived=True)
        project.update_from(Project(id=1, name="new"))
        assert project.name == "new"
        assert project.archived is False


@pytest.fixture
def cache():
    return ObjectsCache("projects")


class TestObjectsCache:

    def test_reconcile_stores_first_instance(self, cache):
        project = Project(id=7, name="alpha")

        assert cache.reconcile(7, project) is project
        assert cache.get(7) is project
        assert 7 in cache

    def test_reconcile_merges_into_canonical_instance(self, cache):
        first = cache.reconcile(7, Project(id=7, name="alpha"))
        second = cache.reconcile(7, Project(id=7, name="beta", archived=True))

        assert second is first
        assert first.name == "beta"
        assert first.archived is True
        assert cache.get_stats() == {"size": 1, "hits": 1, "misses": 1, "merges": 1}

    def test_reconcile_same_instance_is_idempotent(self, cache):
        project = Project(id=7, name="alpha")
        cache.reconcile(7, project)

        assert cache.reconcile(7, project) is project
        assert cache.get_stats()["merges"] == 0

    def test_add_keeps_existing_instance(self, cache):
        first = Project(id=1, name="a")
        cache.add(1, first)
        assert cache.add(1, Project(id=1, name="b")) is first
        assert first.name == "a"

    def test_unreferenced_entity_is_evicted(self, cache):
        cache.reconcile(5, Project(id=5))
        gc.collect()

        assert cache.get(5) is None
        assert len(cache) == 0
        assert cache.keys() == []

    def test_remove_and_clear(self, cache):
        kept = [Project(id=1), Project(id=2)]
        for project in kept:
            cache.add(project.id, project)

        assert cache.remove(1) is True
        assert cache.remove(1) is False
        assert cache.keys() == [2]
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_reconcile_exposes_one_instance(self, cache):
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def decode(n):
            barrier.wait()
            canonical = cache.reconcile(1, Project(id=1, name=f"decode-{n}"))
            with lock:
                results.append(canonical)

        threads = [threading.Thread(target=decode, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(result) for result in results}) == 1
        assert results[0].name.startswith("decode-")


class TestNamedCaches:

    def test_get_objects_cache_returns_same_instance(self):
        clear_objects_caches()
        assert get_objects_cache("users") is get_objects_cache("users")
        assert get_objects_cache("users") is not get_objects_cache("projects")

    def test_clear_objects_caches(self):
        first = get_objects_cache("users")
        clear_objects_caches()
        assert get_objects_cache("users") is not first

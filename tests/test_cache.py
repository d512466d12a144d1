"""Tests for build-then-swap caches."""

from validation_assets.cache import SwappableCache


def test_initial_generation():
    cache = SwappableCache("schemas", initial={})
    generation = cache.current()
    assert generation.number == 0
    assert cache.data == {}


def test_swap_publishes_new_generation():
    cache = SwappableCache("schemas", initial={})
    old = cache.current()
    built = {"UBL-Invoice-2.1.xsd": 3}

    generation = cache.swap(built, source_key="/assets")

    assert generation.number == 1
    assert cache.data is built
    # Readers holding the old generation keep a consistent view.
    assert old.data == {}
    assert generation.etag != old.etag


def test_etag_is_deterministic():
    first = SwappableCache("profiles").swap({"a": 1}, source_key="profiles.yml")
    second = SwappableCache("profiles").swap({"b": 2}, source_key="profiles.yml")
    other = SwappableCache("schemas").swap({"a": 1}, source_key="profiles.yml")
    assert first.etag == second.etag
    assert first.etag != other.etag


def test_stats():
    cache = SwappableCache("schematron")
    assert cache.current() is None
    assert cache.data is None
    assert cache.stats() == {"name": "schematron", "generation": None}

    cache.swap([1, 2])
    stats = cache.stats()
    assert stats["generation"] == 1
    assert stats["age_seconds"] >= 0
    assert len(stats["etag"]) == 32

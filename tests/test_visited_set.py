"""Tests for identity keys and the visited set claim primitive."""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from traversal.models import IdentityKey
from traversal.visited import VisitedSet
from versioning.models import InvalidVersionError


class TestIdentityKey:
    """Test canonical identity keys."""

    def test_id_is_case_insensitive(self):
        assert IdentityKey.of("Newtonsoft.Json", "13.0.1") == IdentityKey.of("newtonsoft.json", "13.0.1")

    def test_version_is_normalized(self):
        assert IdentityKey.of("a", "1.0") == IdentityKey.of("a", "1.0.0.0")

    def test_distinct_versions_are_distinct_keys(self):
        assert IdentityKey.of("a", "1.0.0") != IdentityKey.of("a", "2.0.0")

    def test_invalid_version_raises(self):
        with pytest.raises(InvalidVersionError):
            IdentityKey.of("a", "latest")

    def test_str(self):
        assert str(IdentityKey.of("Sample.Lib", "2.0")) == "sample.lib.2.0.0"


class TestVisitedSet:
    """Test claim semantics."""

    def test_first_claim_wins(self):
        visited = VisitedSet()
        key = IdentityKey.of("a", "1.0.0")
        assert visited.claim(key) is True
        assert visited.claim(key) is False
        assert visited.claim(IdentityKey.of("A", "1.0")) is False
        assert len(visited) == 1

    def test_unclaimed_key_is_claimable(self):
        visited = VisitedSet()
        visited.claim(IdentityKey.of("a", "1.0.0"))
        assert visited.claim(IdentityKey.of("a", "1.0.1")) is True
        assert visited.claim(IdentityKey.of("b", "1.0.0")) is True
        assert len(visited) == 3

    def test_contains_does_not_claim(self):
        visited = VisitedSet()
        key = IdentityKey.of("a", "1.0.0")
        assert not visited.contains(key)
        assert visited.claim(key)
        assert visited.contains(key)
        assert key in visited

    def test_concurrent_threads_single_winner(self):
        """Exactly one of many threads claiming the same key succeeds."""
        visited = VisitedSet()
        key = IdentityKey.of("shared", "1.0.0")
        barrier = threading.Barrier(32)

        def attempt():
            barrier.wait()
            return visited.claim(key)

        with ThreadPoolExecutor(max_workers=32) as pool:
            results = list(pool.map(lambda _: attempt(), range(32)))

        assert results.count(True) == 1
        assert len(visited) == 1

    def test_concurrent_tasks_single_winner(self):
        visited = VisitedSet()

        async def attempt(i):
            await asyncio.sleep(0)
            return visited.claim(IdentityKey.of("Shared" if i % 2 else "shared", "1.0"))

        async def _run():
            return await asyncio.gather(*(attempt(i) for i in range(20)))

        results = asyncio.run(_run())
        assert results.count(True) == 1

    def test_iteration_snapshot(self):
        visited = VisitedSet()
        keys = {IdentityKey.of("a", "1.0.0"), IdentityKey.of("b", "1.0.0")}
        for key in keys:
            visited.claim(key)
        assert set(visited) == keys

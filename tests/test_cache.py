"""Tests for the status cache."""

from __future__ import annotations

import pytest

from pkgpanel.core.cache import StatusCache
from pkgpanel.core.models import InstallStatus, Manager


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> StatusCache:
    return StatusCache(clock=clock)


INSTALLED = InstallStatus(installed=True, version="1.0")


class TestStatusCache:
    """Tests for StatusCache."""

    def test_miss(self, cache: StatusCache) -> None:
        """Test an empty cache returns None."""
        assert cache.get(Manager.WINGET, "Foo.Bar", 600) is None

    def test_hit_within_window(self, cache: StatusCache, clock: FakeClock) -> None:
        """Test a fresh entry is returned."""
        cache.put(Manager.WINGET, "Foo.Bar", INSTALLED)
        clock.now += 599
        entry = cache.get(Manager.WINGET, "Foo.Bar", 600)
        assert entry is not None
        assert entry.status == INSTALLED

    def test_stale_after_window(self, cache: StatusCache, clock: FakeClock) -> None:
        """Test an entry past its window is not returned."""
        cache.put(Manager.WINGET, "Foo.Bar", INSTALLED)
        clock.now += 600
        assert cache.get(Manager.WINGET, "Foo.Bar", 600) is None
        assert cache.peek(Manager.WINGET, "Foo.Bar") is not None

    def test_keys_are_case_insensitive(self, cache: StatusCache) -> None:
        """Test lookups ignore identifier case."""
        cache.put(Manager.WINGET, "Foo.Bar", INSTALLED)
        assert cache.get(Manager.WINGET, "foo.bar", 600) is not None

    def test_managers_are_separate(self, cache: StatusCache) -> None:
        """Test the same id under another manager is a different key."""
        cache.put(Manager.WINGET, "git", INSTALLED)
        assert cache.get(Manager.CHOCO, "git", 600) is None

    def test_invalidate_manager(self, cache: StatusCache) -> None:
        """Test invalidation drops every entry of that manager only."""
        cache.put(Manager.WINGET, "a", INSTALLED)
        cache.put(Manager.WINGET, "b", INSTALLED)
        cache.put(Manager.CHOCO, "c", INSTALLED)

        assert cache.invalidate(Manager.WINGET) == 2
        assert cache.entries(Manager.WINGET) == []
        assert len(cache.entries(Manager.CHOCO)) == 1

    def test_invalidate_single_package(self, cache: StatusCache) -> None:
        """Test invalidating one id leaves the others."""
        cache.put(Manager.WINGET, "a", INSTALLED)
        cache.put(Manager.WINGET, "b", INSTALLED)
        assert cache.invalidate(Manager.WINGET, "A") == 1
        assert cache.peek(Manager.WINGET, "b") is not None

    def test_write_from_old_generation_is_dropped(self, cache: StatusCache) -> None:
        """Test a probe that started before invalidation cannot write."""
        generation = cache.generation(Manager.WINGET)
        cache.invalidate(Manager.WINGET)

        assert cache.put(Manager.WINGET, "a", INSTALLED, generation=generation) is False
        assert cache.peek(Manager.WINGET, "a") is None

    def test_write_from_current_generation(self, cache: StatusCache) -> None:
        """Test a probe from the current generation is stored."""
        generation = cache.generation(Manager.WINGET)
        assert cache.put(Manager.WINGET, "a", INSTALLED, generation=generation) is True

    def test_clear(self, cache: StatusCache) -> None:
        """Test clear empties every manager."""
        cache.put(Manager.WINGET, "a", INSTALLED)
        cache.put(Manager.CHOCO, "b", INSTALLED)
        cache.clear()
        assert len(cache) == 0

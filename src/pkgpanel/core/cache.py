"""In-memory status cache with staleness windows and generations."""

from __future__ import annotations

import time
from typing import Callable

from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import CacheEntry, InstallStatus, Manager, normalise_id

log = get_logger(__name__)


class StatusCache:
    """Process-wide map of (manager, package) to the last probed status.

    Invalidation bumps a per-manager generation. Writers take the
    generation before probing and pass it back to ``put``; a write whose
    generation is out of date is dropped, so a probe that started before
    an invalidation cannot bring back the stale entry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[tuple[Manager, str], CacheEntry] = {}
        self._generations: dict[Manager, int] = {m: 0 for m in Manager}

    def __len__(self) -> int:
        return len(self._entries)

    def generation(self, manager: Manager) -> int:
        return self._generations[manager]

    def peek(self, manager: Manager, package_id: str) -> CacheEntry | None:
        """Return the entry regardless of its age."""
        return self._entries.get((manager, normalise_id(package_id)))

    def get(self, manager: Manager, package_id: str, max_age: float) -> CacheEntry | None:
        """Return the entry if it is younger than ``max_age`` seconds.

        Args:
            manager: Package manager the entry belongs to.
            package_id: Package identifier, compared case-insensitively.
            max_age: Staleness window in seconds.

        Returns:
            The fresh CacheEntry, or None on a miss or a stale entry.
        """
        entry = self.peek(manager, package_id)
        if entry is None:
            log.debug("cache_miss", manager=manager.value, package=package_id)
            return None

        age_seconds = self._clock() - entry.fetched_at
        if age_seconds >= max_age:
            log.debug(
                "cache_invalid",
                manager=manager.value,
                package=package_id,
                reason="expired",
                age_seconds=round(age_seconds, 1)
            )
            return None

        log.info(
            "cache_hit",
            manager=manager.value,
            package=package_id,
            age_seconds=round(age_seconds, 1)
        )
        return entry

    def put(
        self,
        manager: Manager,
        package_id: str,
        status: InstallStatus,
        generation: int | None = None,
    ) -> bool:
        """Store a status, unless it was probed before an invalidation.

        Args:
            manager: Package manager the status belongs to.
            package_id: Package identifier.
            status: The probed status.
            generation: Generation observed when the probe started.

        Returns:
            True if the entry was written.
        """
        current = self._generations[manager]
        if generation is not None and generation != current:
            log.info(
                "cache_write_dropped",
                manager=manager.value,
                package=package_id,
                generation=generation,
                current_generation=current
            )
            return False

        self._entries[(manager, normalise_id(package_id))] = CacheEntry(
            manager=manager,
            package_id=package_id,
            status=status,
            fetched_at=self._clock(),
        )
        log.debug("cache_set", manager=manager.value, package=package_id, installed=status.installed)
        return True

    def invalidate(self, manager: Manager, package_id: str | None = None) -> int:
        """Drop cached entries and start a new generation.

        Args:
            manager: Package manager whose entries are dropped.
            package_id: Drop only this package; all of the manager's
                entries when None.

        Returns:
            Number of entries removed.
        """
        self._generations[manager] += 1

        if package_id is not None:
            removed = 1 if self._entries.pop((manager, normalise_id(package_id)), None) else 0
        else:
            keys = [k for k in self._entries if k[0] is manager]
            for k in keys:
                del self._entries[k]
            removed = len(keys)

        log.info(
            "cache_invalidated",
            manager=manager.value,
            package=package_id,
            removed=removed,
            generation=self._generations[manager]
        )
        return removed

    def clear(self) -> None:
        for manager in Manager:
            self.invalidate(manager)

    def entries(self, manager: Manager) -> list[CacheEntry]:
        return [e for (m, _), e in self._entries.items() if m is manager]

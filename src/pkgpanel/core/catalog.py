"""JSON-backed catalog of the packages shown for each manager."""

from __future__ import annotations

import json
from pathlib import Path

from pkgpanel.core.errors import CatalogEntryExistsError, CatalogEntryNotFoundError, CatalogError
from pkgpanel.core.logging import get_logger
from pkgpanel.core.models import CatalogEntry, Manager, normalise_id

log = get_logger(__name__)


class PackageCatalog:
    """Per-manager list of packages, stored as ``<manager>.json``."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _file(self, manager: Manager) -> Path:
        return self.directory / f"{manager.value}.json"

    def list(self, manager: Manager) -> list[CatalogEntry]:
        """Return the catalog for a manager, empty if none was saved yet.

        Raises:
            CatalogError: If the catalog file cannot be read or parsed.
        """
        f = self._file(manager)
        if not f.exists():
            return []

        try:
            data = json.loads(f.read_text(encoding="utf-8"))
            entries = [CatalogEntry.from_dict(item) for item in data.get("packages", [])]
        except (OSError, json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
            log.error("catalog_read_error", manager=manager.value, path=str(f), exc_info=True)
            raise CatalogError(
                "Failed to read catalog",
                path=str(f),
                operation="read",
                context={"error": str(e)},
            ) from e

        log.debug("catalog_loaded", manager=manager.value, count=len(entries))
        return entries

    def ids(self, manager: Manager) -> list[str]:
        return [e.app_id for e in self.list(manager)]

    def get(self, manager: Manager, app_id: str) -> CatalogEntry:
        """Find one entry.

        Raises:
            CatalogEntryNotFoundError: If the entry does not exist.
        """
        key = normalise_id(app_id)
        for entry in self.list(manager):
            if normalise_id(entry.app_id) == key:
                return entry
        raise CatalogEntryNotFoundError(manager.value, app_id)

    def add(self, manager: Manager, entry: CatalogEntry) -> CatalogEntry:
        """Append an entry.

        Raises:
            CatalogEntryExistsError: If the app id is already listed.
        """
        entries = self.list(manager)
        key = normalise_id(entry.app_id)
        if any(normalise_id(e.app_id) == key for e in entries):
            raise CatalogEntryExistsError(manager.value, entry.app_id)

        entries.append(entry)
        self._save(manager, entries)
        log.info("catalog_entry_added", manager=manager.value, package=entry.app_id)
        return entry

    def update(self, manager: Manager, app_id: str, entry: CatalogEntry) -> CatalogEntry:
        """Replace the entry for ``app_id``, which may be renamed.

        Raises:
            CatalogEntryNotFoundError: If ``app_id`` is not listed.
            CatalogEntryExistsError: If the new app id clashes with another entry.
        """
        entries = self.list(manager)
        key = normalise_id(app_id)
        index = next((i for i, e in enumerate(entries) if normalise_id(e.app_id) == key), None)
        if index is None:
            raise CatalogEntryNotFoundError(manager.value, app_id)

        new_key = normalise_id(entry.app_id)
        if new_key != key and any(normalise_id(e.app_id) == new_key for e in entries):
            raise CatalogEntryExistsError(manager.value, entry.app_id)

        entries[index] = entry
        self._save(manager, entries)
        log.info("catalog_entry_updated", manager=manager.value, package=app_id, new_id=entry.app_id)
        return entry

    def remove(self, manager: Manager, app_id: str) -> None:
        """Delete the entry for ``app_id``.

        Raises:
            CatalogEntryNotFoundError: If ``app_id`` is not listed.
        """
        entries = self.list(manager)
        key = normalise_id(app_id)
        kept = [e for e in entries if normalise_id(e.app_id) != key]
        if len(kept) == len(entries):
            raise CatalogEntryNotFoundError(manager.value, app_id)

        self._save(manager, kept)
        log.info("catalog_entry_removed", manager=manager.value, package=app_id)

    def _save(self, manager: Manager, entries: list[CatalogEntry]) -> None:
        f = self._file(manager)
        tmp = f.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps({"packages": [e.to_dict() for e in entries]}, indent=2),
                encoding="utf-8",
            )
            tmp.replace(f)
        except OSError as e:
            log.error("catalog_write_error", manager=manager.value, path=str(f), exc_info=True)
            raise CatalogError(
                "Failed to write catalog",
                path=str(f),
                operation="write",
                context={"error": str(e)},
            ) from e

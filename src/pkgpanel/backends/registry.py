"""Lookup of backends by manager."""

from __future__ import annotations

from pkgpanel.backends.base import PackageManagerBackend
from pkgpanel.backends.choco import ChocoBackend
from pkgpanel.backends.winget import WingetBackend
from pkgpanel.core.errors import UnknownManagerError
from pkgpanel.core.models import Manager


def default_backends() -> dict[Manager, PackageManagerBackend]:
    return {
        Manager.WINGET: WingetBackend(),
        Manager.CHOCO: ChocoBackend(),
    }


def parse_manager(value: str | Manager) -> Manager:
    """Resolve a manager name such as "winget" or "choco".

    Raises:
        UnknownManagerError: If the name is not a supported manager.
    """
    if isinstance(value, Manager):
        return value
    try:
        return Manager(value.strip().lower())
    except ValueError:
        raise UnknownManagerError(value) from None

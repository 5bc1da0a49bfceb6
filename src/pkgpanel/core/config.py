"""Configuration for the package control panel."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

ENV_PREFIX = "PKGPANEL_"

_DEF_DATA_DIR = Path.home() / ".pkgpanel"


@dataclass
class Settings:
    """Tunables for probing, bulk checks and the operation queue.

    Durations are in seconds.
    """

    data_dir: Path = field(default_factory=lambda: _DEF_DATA_DIR)

    # Status cache staleness windows
    single_ttl: float = 600.0
    bulk_ttl: float = 900.0

    # Bulk reconciler
    batch_size: int = 3
    batch_delay: float = 0.2
    bulk_timeout: float = 300.0

    # External commands
    command_timeout: float = 120.0
    operation_timeout: float = 1800.0

    # Operation queue
    initial_backoff: float = 5.0
    max_backoff: float = 30.0
    backoff_multiplier: float = 2.0
    max_retries: int = 20
    tick_interval: float = 1.0

    # Post-operation verification
    max_verify_retries: int = 5
    verify_delay: float = 2.0

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def catalog_dir(self) -> Path:
        return self.data_dir / "catalog"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings, overriding defaults from PKGPANEL_* variables.

        Args:
            environ: Mapping to read from, defaults to os.environ.

        Returns:
            A Settings instance.
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            if f.name == "data_dir":
                overrides[f.name] = Path(raw).expanduser()
            elif f.type == "int":
                overrides[f.name] = int(raw)
            else:
                overrides[f.name] = float(raw)

        return cls(**overrides)

"""Runtime settings read from the environment."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

SCHEMA_VERSION = 1
DEFAULT_STORAGE_NAME = "fleet-master-storage"
DEFAULT_RECONCILE_INTERVAL = 60.0


@dataclass
class Settings:
    """Fleet store configuration."""

    data_dir: Path = Path("data")
    storage_name: str = DEFAULT_STORAGE_NAME
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    labor_rate: float = 60.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from FLEET_* environment variables."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            data_dir=Path(env.get("FLEET_DATA_DIR", str(defaults.data_dir))),
            storage_name=env.get("FLEET_STORAGE_NAME", defaults.storage_name),
            reconcile_interval=float(
                env.get("FLEET_RECONCILE_INTERVAL", defaults.reconcile_interval)
            ),
            labor_rate=float(env.get("FLEET_LABOR_RATE", defaults.labor_rate)),
            log_level=env.get("FLEET_LOG_LEVEL", defaults.log_level).upper(),
        )


def configure_logging(level: str = "WARNING") -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

"""On-disk run artifacts under the data directory.

Nothing written here is read back; every run starts from scratch.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable

from .config import SwarmConfig

logger = logging.getLogger(__name__)


def _stamp() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class DataDirs:
    base: Path

    @property
    def logs(self) -> Path:
        return self.base / "logs"

    @property
    def proxies(self) -> Path:
        return self.base / "proxies"

    @property
    def configs(self) -> Path:
        return self.base / "configs"

    def create(self) -> DataDirs:
        for path in (self.logs, self.proxies, self.configs):
            path.mkdir(parents=True, exist_ok=True)
        return self


def write_proxy_list(dirs: DataDirs, endpoints: Iterable[str], name: str) -> Path:
    """Write one endpoint per line to ``proxies/<name>_<ts>.txt``."""
    path = dirs.proxies / f"{name}_{_stamp()}.txt"
    path.write_text("\n".join(endpoints))
    logger.info("Saved proxy list to %s", path)
    return path


def save_config_snapshot(dirs: DataDirs, config: SwarmConfig) -> Path:
    """Write the resolved configuration plus a timestamp as JSON."""
    snapshot = config.model_dump(mode="json")
    snapshot["timestamp"] = datetime.now().isoformat()
    path = dirs.configs / f"session_{_stamp()}.json"
    path.write_text(json.dumps(snapshot, indent=2))
    return path

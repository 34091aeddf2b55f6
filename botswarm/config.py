"""Configuration models and YAML loader.

The positional command line (``host[:port] version [max_bots] [delay_ms]``)
is merged over an optional YAML file. ``BOTSWARM_DATA_DIR`` and
``BOTSWARM_LOG_LEVEL`` environment variables take precedence over the
YAML values.
"""

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_PORT = 25565

DEFAULT_MACROS: dict[str, list[str]] = {
    "joinserver": ["/server survival", "/server skyblock"],
    "spam": ["Hello!", "How are you?", "Nice server!"],
}


def _check_port(v: int) -> int:
    if not 1 <= v <= 65535:
        raise ValueError(f"port out of range: {v}")
    return v


def parse_target(host_port: str) -> tuple[str, int]:
    """Split ``host[:port]`` into its parts, defaulting the port."""
    host_port = host_port.strip()
    if ":" in host_port:
        host, _, port = host_port.rpartition(":")
        try:
            return host, _check_port(int(port))
        except ValueError as e:
            raise ValueError(f"invalid target {host_port!r}: {e}") from e
    return host_port, DEFAULT_PORT


class TargetConfig(BaseModel):
    host: str
    port: int = DEFAULT_PORT
    version: str = ""

    @field_validator("host")
    @classmethod
    def _strip_host(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("target host is required")
        return v

    @field_validator("port")
    @classmethod
    def _valid_port(cls, v: int) -> int:
        return _check_port(v)


class SpawnConfig(BaseModel):
    max_bots: int = Field(default=10, ge=0)
    interval_ms: int = Field(default=3000, ge=0)
    jitter_ms: int = Field(default=2000, ge=0)
    initial_delay_ms: int = Field(default=1000, ge=0)


class ReconnectConfig(BaseModel):
    max_reconnects: int = Field(default=3, ge=0)
    base_delay_seconds: float = Field(default=5.0, ge=0)
    delay_ceiling_seconds: float = Field(default=30.0, ge=0)


class ConnectionConfig(BaseModel):
    connect_timeout_seconds: float = Field(default=10.0, gt=0)
    probe_timeout_seconds: float = Field(default=5.0, gt=0)
    ping_interval_seconds: float = Field(default=30.0, gt=0)


class ProxyConfig(BaseModel):
    enabled: bool = True
    sources: list[str] = []
    verify_timeout_seconds: float = Field(default=3.0, gt=0)
    fetch_timeout_seconds: float = Field(default=15.0, gt=0)
    batch_size: int = Field(default=100, ge=1)
    want_multiplier: int = Field(default=2, ge=1)


class BehaviorConfig(BaseModel):
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    idle_action_chance: float = Field(default=0.02, ge=0, le=1)


class ConsoleConfig(BaseModel):
    command_prefix: str = "/"
    macro_step_delay_seconds: float = Field(default=1.0, ge=0)
    stats_refresh_seconds: float = Field(default=5.0, ge=0)
    macros: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_MACROS.items()}
    )

    @field_validator("command_prefix")
    @classmethod
    def _single_char_prefix(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError("command_prefix must be a single character")
        return v


class SwarmConfig(BaseModel):
    target: TargetConfig
    spawn: SpawnConfig = SpawnConfig()
    reconnect: ReconnectConfig = ReconnectConfig()
    connection: ConnectionConfig = ConnectionConfig()
    proxy: ProxyConfig = ProxyConfig()
    behavior: BehaviorConfig = BehaviorConfig()
    console: ConsoleConfig = ConsoleConfig()
    data_dir: str = "bot-data"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @model_validator(mode="before")
    @classmethod
    def _resolve_env_vars(cls, values: dict) -> dict:  # type: ignore[override]
        """Override data_dir / log_level from env vars if set."""
        env_dir = os.environ.get("BOTSWARM_DATA_DIR")
        env_level = os.environ.get("BOTSWARM_LOG_LEVEL")
        if env_dir:
            values["data_dir"] = env_dir
        if env_level:
            values["log_level"] = env_level.upper()
        return values

    @property
    def want_proxies(self) -> int:
        """How many verified relays to look for before spawning."""
        return self.spawn.max_bots * self.proxy.want_multiplier


def load_config(path: str | Path) -> SwarmConfig:
    """Load and validate swarm configuration from a YAML file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return SwarmConfig(**raw)


def build_config(
    host_port: str,
    version: str,
    max_bots: int | None = None,
    delay_ms: int | None = None,
    config_file: str | Path | None = None,
) -> SwarmConfig:
    """Merge positional CLI values over an optional YAML file."""
    raw: dict = {}
    if config_file is not None:
        config_path = Path(config_file)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    host, port = parse_target(host_port)
    raw["target"] = {**raw.get("target", {}), "host": host, "port": port, "version": version}

    spawn = dict(raw.get("spawn", {}))
    if max_bots is not None:
        spawn["max_bots"] = max_bots
    if delay_ms is not None:
        spawn["interval_ms"] = delay_ms
    raw["spawn"] = spawn

    return SwarmConfig(**raw)

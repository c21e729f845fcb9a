"""Global configuration — XDG paths, env vars, defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "tunnelsync"
    return Path.home() / ".local" / "share" / "tunnelsync"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "tunnelsync"
    return Path.home() / ".config" / "tunnelsync"


@dataclass
class TunnelSyncConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    shared_dir: Path | None = None
    debounce: float = 0.5
    facts_poll_interval: float = 1.0
    control_host: str = "127.0.0.1"  # Hardcoded — never 0.0.0.0
    control_port: int = 8471
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.shared_dir is None:
            self.shared_dir = self.data_dir / "shared"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "tunnelsync.log"

    @classmethod
    def load(cls) -> TunnelSyncConfig:
        """Load config from environment variables with XDG defaults."""
        config = cls()

        env_debounce = os.environ.get("TUNNELSYNC_DEBOUNCE")
        if env_debounce:
            config.debounce = float(env_debounce)

        env_poll = os.environ.get("TUNNELSYNC_FACTS_POLL")
        if env_poll:
            config.facts_poll_interval = float(env_poll)

        env_port = os.environ.get("TUNNELSYNC_CONTROL_PORT")
        if env_port:
            config.control_port = int(env_port)

        env_shared = os.environ.get("TUNNELSYNC_SHARED_DIR")
        if env_shared:
            config.shared_dir = Path(env_shared)

        return config

    def profile_path(self, name: str) -> Path:
        """Return the path of a named profile in the config dir."""
        return self.config_dir / "profiles" / f"{name}.yaml"

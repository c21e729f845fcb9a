"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from tunnelsync.config import TunnelSyncConfig


def test_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    for var in ("TUNNELSYNC_DEBOUNCE", "TUNNELSYNC_SHARED_DIR", "TUNNELSYNC_CONTROL_PORT", "TUNNELSYNC_FACTS_POLL"):
        monkeypatch.delenv(var, raising=False)

    config = TunnelSyncConfig.load()

    assert config.data_dir == tmp_path / "data" / "tunnelsync"
    assert config.shared_dir == tmp_path / "data" / "tunnelsync" / "shared"
    assert config.log_file == tmp_path / "data" / "tunnelsync" / "tunnelsync.log"
    assert config.debounce == 0.5
    assert config.control_host == "127.0.0.1"
    assert config.control_port == 8471
    assert config.profile_path("office") == tmp_path / "config" / "tunnelsync" / "profiles" / "office.yaml"


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TUNNELSYNC_DEBOUNCE", "0.25")
    monkeypatch.setenv("TUNNELSYNC_FACTS_POLL", "2")
    monkeypatch.setenv("TUNNELSYNC_CONTROL_PORT", "9000")
    monkeypatch.setenv("TUNNELSYNC_SHARED_DIR", str(tmp_path / "group"))

    config = TunnelSyncConfig.load()

    assert config.debounce == 0.25
    assert config.facts_poll_interval == 2.0
    assert config.control_port == 9000
    assert config.shared_dir == tmp_path / "group"


def test_explicit_shared_dir(tmp_path: Path):
    config = TunnelSyncConfig(data_dir=tmp_path, shared_dir=tmp_path / "elsewhere")
    assert config.shared_dir == tmp_path / "elsewhere"

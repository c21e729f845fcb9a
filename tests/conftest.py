"""Shared test fixtures."""

from __future__ import annotations

import json

import pytest

from tunnelsync.tunnel.facts import RunningInfo, parse_running_info
from tunnelsync.tunnel.models import TunnelOptions


def _running_info_json(
    address: str | None = "10.126.126.5",
    network_length: int = 24,
    proxy_cidrs: list[list[str]] | None = None,
) -> str:
    data: dict = {"routes": [{"proxy_cidrs": c} for c in (proxy_cidrs or [])]}
    if address is not None:
        data["my_node_info"] = {
            "virtual_ipv4": {"address": address, "network_length": network_length}
        }
    return json.dumps(data)


@pytest.fixture
def running_info_json() -> str:
    return _running_info_json(
        proxy_cidrs=[["10.126.126.0/24"], ["10.126.0.0/16"]],
    )


@pytest.fixture
def running_info(running_info_json: str) -> RunningInfo:
    info = parse_running_info(running_info_json)
    assert info is not None
    return info


@pytest.fixture
def options() -> TunnelOptions:
    return TunnelOptions(name="test", config="instance_name = 'test'")


@pytest.fixture
def make_running_info_json():
    return _running_info_json

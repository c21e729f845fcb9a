"""Running-info ("facts") records reported by the mesh routing engine.

The engine serializes its state as JSON::

    {"my_node_info": {"virtual_ipv4": {"address": ..., "network_length": 24}},
     "routes": [{"proxy_cidrs": ["10.0.0.0/24"]}]}

Anything missing or malformed degrades to "not known" instead of failing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from tunnelsync.errors import MalformedCIDR
from tunnelsync.net.cidr import IPv4Address, IPv4Subnet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteInfo:
    """A mesh route entry and the subnets its peer proxies."""

    proxy_cidrs: tuple[str, ...] = ()


@dataclass(frozen=True)
class NodeInfo:
    virtual_ipv4: IPv4Subnet | None = None


@dataclass(frozen=True)
class RunningInfo:
    my_node_info: NodeInfo | None = None
    routes: tuple[RouteInfo, ...] = ()

    @property
    def virtual_ipv4(self) -> IPv4Subnet | None:
        if self.my_node_info is None:
            return None
        return self.my_node_info.virtual_ipv4


def parse_running_info(raw: str | bytes | dict | None) -> RunningInfo | None:
    """Decode a running-info record. Returns None when unusable."""
    if raw is None:
        return None

    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Running info JSON decode failed: %s", exc)
            return None

    if not isinstance(data, dict):
        logger.error("Running info must be a JSON object, got %s", type(data).__name__)
        return None

    routes = tuple(_parse_routes(data.get("routes")))
    node = _parse_node(data.get("my_node_info"))
    logger.debug("Running info parsed: %d route(s)", len(routes))
    return RunningInfo(my_node_info=node, routes=routes)


def _parse_node(node_data: Any) -> NodeInfo | None:
    if not isinstance(node_data, dict):
        return None
    return NodeInfo(virtual_ipv4=_parse_virtual_ipv4(node_data.get("virtual_ipv4")))


def _parse_virtual_ipv4(data: Any) -> IPv4Subnet | None:
    if not isinstance(data, dict):
        return None

    length = data.get("network_length")
    if not isinstance(length, int) or isinstance(length, bool) or not 0 <= length <= 32:
        logger.warning("Ignoring virtual_ipv4 with bad network_length: %r", length)
        return None

    address = _parse_address(data.get("address"))
    if address is None:
        return None
    return IPv4Subnet(address, length)


def _parse_address(raw: Any) -> IPv4Address | None:
    # The engine emits either dotted-quad text or {"addr": <u32>}
    if isinstance(raw, dict):
        raw = raw.get("addr")
    if isinstance(raw, int) and not isinstance(raw, bool):
        if 0 <= raw <= 0xFFFFFFFF:
            return IPv4Address(raw)
        logger.warning("Ignoring out-of-range address integer: %d", raw)
        return None
    if isinstance(raw, str):
        try:
            return IPv4Address.from_text(raw)
        except MalformedCIDR as exc:
            logger.warning("Ignoring virtual_ipv4: %s", exc)
            return None
    return None


def _parse_routes(routes_data: Any) -> list[RouteInfo]:
    routes: list[RouteInfo] = []
    if not isinstance(routes_data, list):
        return routes
    for r in routes_data:
        if not isinstance(r, dict):
            continue
        cidrs = r.get("proxy_cidrs") or []
        if not isinstance(cidrs, list):
            cidrs = []
        routes.append(RouteInfo(proxy_cidrs=tuple(c for c in cidrs if isinstance(c, str))))
    return routes

"""Tunnel data models — immutable dataclasses shared by builder, differ and scheduler."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from tunnelsync.net.cidr import IPv4Subnet, parse_subnet

MAGIC_DNS_CIDR: IPv4Subnet = parse_subnet("100.100.100.101/32")
MAGIC_DNS_ZONE = "et.net"
MATCH_ALL_DOMAINS = ""

MTU_DEFAULT = 1360
MTU_DEFAULT_ENCRYPTED = 1380

TUNNEL_REMOTE_ADDRESS = "127.0.0.1"


class LogLevel(enum.Enum):
    """Log level handed to the routing engine."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def logging_level(self) -> int:
        """Matching standard logging level; trace maps to DEBUG."""
        return _LOGGING_LEVELS[self]


_LOGGING_LEVELS = {
    LogLevel.TRACE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class TunnelOptions:
    """Static per-session options from a network profile."""

    name: str = "default"
    config: str = ""
    ipv4: str | None = None
    ipv6: str | None = None
    mtu: int | None = None
    routes: tuple[str, ...] = ()
    log_level: LogLevel = LogLevel.INFO
    magic_dns: bool = False
    dns: tuple[str, ...] = ()
    encryption: bool = True


@dataclass(frozen=True)
class IPv4Route:
    """An included route as handed to the OS: destination + mask."""

    destination: str
    subnet_mask: str


@dataclass(frozen=True)
class IPv4Settings:
    address: str
    subnet_mask: str
    included_routes: tuple[IPv4Route, ...] = ()


@dataclass(frozen=True)
class IPv6Settings:
    address: str
    prefix_length: int


@dataclass(frozen=True)
class DNSSettings:
    """DNS block. An empty-string match domain captures all queries."""

    servers: tuple[str, ...]
    search_domains: tuple[str, ...] | None = None
    match_domains: tuple[str, ...] | None = None


@dataclass(frozen=True)
class DesiredSettings:
    """A complete interface/DNS/MTU configuration for the tunnel."""

    ipv4: IPv4Settings
    ipv6: IPv6Settings | None = None
    dns: DNSSettings | None = None
    mtu: int = MTU_DEFAULT
    tunnel_remote_address: str = TUNNEL_REMOTE_ADDRESS

"""Settings snapshots and the differ.

A snapshot is the comparable projection of whatever configuration was
handed to the operating system. Every collection is a frozenset, so the
order routes or servers were listed in never affects equality. The JSON
form uses the camelCase keys the host application decodes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tunnelsync.tunnel.models import DesiredSettings


@dataclass(frozen=True)
class IPv4Entry:
    address: str
    subnet_mask: str

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "subnetMask": self.subnet_mask}


@dataclass(frozen=True)
class IPv6Entry:
    address: str
    network_prefix_length: int

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "networkPrefixLength": self.network_prefix_length}


@dataclass(frozen=True)
class IPv4Snapshot:
    subnets: frozenset[IPv4Entry]
    included_routes: frozenset[IPv4Entry] | None = None
    excluded_routes: frozenset[IPv4Entry] | None = None


@dataclass(frozen=True)
class IPv6Snapshot:
    subnets: frozenset[IPv6Entry]
    included_routes: frozenset[IPv6Entry] | None = None
    excluded_routes: frozenset[IPv6Entry] | None = None


@dataclass(frozen=True)
class DNSSnapshot:
    servers: frozenset[str]
    search_domains: frozenset[str] | None = None
    match_domains: frozenset[str] | None = None


@dataclass(frozen=True)
class SettingsSnapshot:
    """Comparable, serializable projection of an installed configuration."""

    ipv4: IPv4Snapshot | None = None
    ipv6: IPv6Snapshot | None = None
    dns: DNSSnapshot | None = None
    mtu: int | None = None

    @property
    def ipv4_subnets(self) -> frozenset[IPv4Entry]:
        return self.ipv4.subnets if self.ipv4 is not None else frozenset()

    @property
    def ipv6_subnets(self) -> frozenset[IPv6Entry]:
        return self.ipv6.subnets if self.ipv6 is not None else frozenset()

    @property
    def has_address(self) -> bool:
        return bool(self.ipv4_subnets or self.ipv6_subnets)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.ipv4 is not None:
            v4: dict[str, Any] = {"subnets": _sorted_dicts(self.ipv4.subnets)}
            if self.ipv4.included_routes is not None:
                v4["includedRoutes"] = _sorted_dicts(self.ipv4.included_routes)
            if self.ipv4.excluded_routes is not None:
                v4["excludedRoutes"] = _sorted_dicts(self.ipv4.excluded_routes)
            data["ipv4"] = v4
        if self.ipv6 is not None:
            v6: dict[str, Any] = {"subnets": _sorted_dicts(self.ipv6.subnets)}
            if self.ipv6.included_routes is not None:
                v6["includedRoutes"] = _sorted_dicts(self.ipv6.included_routes)
            if self.ipv6.excluded_routes is not None:
                v6["excludedRoutes"] = _sorted_dicts(self.ipv6.excluded_routes)
            data["ipv6"] = v6
        if self.dns is not None:
            dns: dict[str, Any] = {"servers": sorted(self.dns.servers)}
            if self.dns.search_domains is not None:
                dns["searchDomains"] = sorted(self.dns.search_domains)
            if self.dns.match_domains is not None:
                dns["matchDomains"] = sorted(self.dns.match_domains)
            data["dns"] = dns
        if self.mtu is not None:
            data["mtu"] = self.mtu
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SettingsSnapshot:
        """Rebuild a snapshot from its JSON form. Raises ValueError on bad shape."""
        if not isinstance(data, dict):
            raise ValueError("Snapshot must be a mapping")
        try:
            ipv4 = None
            if data.get("ipv4") is not None:
                v4 = data["ipv4"]
                ipv4 = IPv4Snapshot(
                    subnets=_v4_set(v4["subnets"]),
                    included_routes=_optional(v4.get("includedRoutes"), _v4_set),
                    excluded_routes=_optional(v4.get("excludedRoutes"), _v4_set),
                )
            ipv6 = None
            if data.get("ipv6") is not None:
                v6 = data["ipv6"]
                ipv6 = IPv6Snapshot(
                    subnets=_v6_set(v6["subnets"]),
                    included_routes=_optional(v6.get("includedRoutes"), _v6_set),
                    excluded_routes=_optional(v6.get("excludedRoutes"), _v6_set),
                )
            dns = None
            if data.get("dns") is not None:
                d = data["dns"]
                dns = DNSSnapshot(
                    servers=frozenset(d["servers"]),
                    search_domains=_optional(d.get("searchDomains"), frozenset),
                    match_domains=_optional(d.get("matchDomains"), frozenset),
                )
            mtu = data.get("mtu")
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid snapshot: {exc}") from exc
        return cls(ipv4=ipv4, ipv6=ipv6, dns=dns, mtu=int(mtu) if mtu is not None else None)


def _sorted_dicts(items: frozenset[Any]) -> list[dict[str, Any]]:
    return [item.to_dict() for item in sorted(items, key=lambda i: tuple(i.to_dict().values()))]


def _optional(value: Any, convert: Any) -> Any:
    return None if value is None else convert(value)


def _v4_set(items: list[dict[str, Any]]) -> frozenset[IPv4Entry]:
    return frozenset(IPv4Entry(i["address"], i["subnetMask"]) for i in items)


def _v6_set(items: list[dict[str, Any]]) -> frozenset[IPv6Entry]:
    return frozenset(IPv6Entry(i["address"], int(i["networkPrefixLength"])) for i in items)


def snapshot(settings: DesiredSettings) -> SettingsSnapshot:
    """Project DesiredSettings into its comparable form."""
    v4 = settings.ipv4
    routes = frozenset(IPv4Entry(r.destination, r.subnet_mask) for r in v4.included_routes)
    ipv4 = IPv4Snapshot(
        subnets=frozenset({IPv4Entry(v4.address, v4.subnet_mask)}),
        included_routes=routes or None,
    )

    ipv6 = None
    if settings.ipv6 is not None:
        ipv6 = IPv6Snapshot(
            subnets=frozenset({IPv6Entry(settings.ipv6.address, settings.ipv6.prefix_length)}),
        )

    dns = None
    if settings.dns is not None:
        dns = DNSSnapshot(
            servers=frozenset(settings.dns.servers),
            search_domains=_optional(settings.dns.search_domains, frozenset),
            match_domains=_optional(settings.dns.match_domains, frozenset),
        )

    return SettingsSnapshot(ipv4=ipv4, ipv6=ipv6, dns=dns, mtu=settings.mtu)


def equivalent(a: SettingsSnapshot | None, b: SettingsSnapshot | None) -> bool:
    return a == b


def needs_interface_rebind(old: SettingsSnapshot | None, new: SettingsSnapshot) -> bool:
    """Whether the addressing changed enough to rebind the data-path handle.

    Route, DNS and MTU changes are applied to the live interface and never
    require a rebind.
    """
    if old is None:
        return new.has_address
    return old.ipv4_subnets != new.ipv4_subnets or old.ipv6_subnets != new.ipv6_subnets

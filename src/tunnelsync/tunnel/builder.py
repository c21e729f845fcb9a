"""Settings builder — turn facts plus static options into DesiredSettings."""

from __future__ import annotations

import logging

from tunnelsync.errors import MalformedCIDR, NotReady
from tunnelsync.net.aggregator import build_route_set
from tunnelsync.net.cidr import IPv4Subnet, parse_subnet, prefix_to_mask
from tunnelsync.tunnel.facts import RunningInfo
from tunnelsync.tunnel.models import (
    MAGIC_DNS_CIDR,
    MAGIC_DNS_ZONE,
    MATCH_ALL_DOMAINS,
    MTU_DEFAULT,
    MTU_DEFAULT_ENCRYPTED,
    DesiredSettings,
    DNSSettings,
    IPv4Route,
    IPv4Settings,
    IPv6Settings,
    TunnelOptions,
)

logger = logging.getLogger(__name__)


def build_settings(info: RunningInfo | None, options: TunnelOptions) -> DesiredSettings:
    """Build the full tunnel configuration.

    Raises NotReady when no tunnel address is known yet; a tunnel must
    never be installed without an address.
    """
    if info is None:
        logger.warning("Running info unavailable, falling back to options")

    address = _resolve_ipv4(info, options)
    mask = prefix_to_mask(address.prefix_length)

    routes = build_route_set(info, options)
    logger.info("IPv4 %s/%d with %d route(s)", address.address, address.prefix_length, len(routes))

    ipv4 = IPv4Settings(
        address=str(address.address),
        subnet_mask=mask,
        included_routes=tuple(
            IPv4Route(str(r.address), prefix_to_mask(r.prefix_length)) for r in routes
        ),
    )

    return DesiredSettings(
        ipv4=ipv4,
        ipv6=_parse_ipv6(options.ipv6),
        dns=build_dns(options),
        mtu=resolve_mtu(options),
    )


def _resolve_ipv4(info: RunningInfo | None, options: TunnelOptions) -> IPv4Subnet:
    live = info.virtual_ipv4 if info is not None else None
    if live is not None:
        return live

    if options.ipv4:
        try:
            return parse_subnet(options.ipv4)
        except MalformedCIDR as exc:
            logger.warning("Ignoring configured IPv4: %s", exc)

    raise NotReady("No IPv4 address from running info or options")


def _parse_ipv6(text: str | None) -> IPv6Settings | None:
    if not text:
        return None
    address, sep, prefix = text.strip().partition("/")
    if not sep or not address or not prefix.isdigit():
        logger.debug("Ignoring malformed IPv6 option: %r", text)
        return None
    return IPv6Settings(address=address, prefix_length=int(prefix))


def build_dns(options: TunnelOptions) -> DNSSettings | None:
    """Pick the DNS block: explicit override, then magic DNS, then none."""
    search: tuple[str, ...] | None = (MAGIC_DNS_ZONE,) if options.magic_dns else None

    if options.dns:
        logger.info("Using %d override DNS server(s)", len(options.dns))
        return DNSSettings(
            servers=tuple(options.dns),
            search_domains=search,
            match_domains=(MATCH_ALL_DOMAINS,),
        )
    if options.magic_dns:
        logger.info("Magic DNS enabled")
        return DNSSettings(
            servers=(str(MAGIC_DNS_CIDR.address),),
            search_domains=search,
            match_domains=(MAGIC_DNS_ZONE,),
        )
    return None


def resolve_mtu(options: TunnelOptions) -> int:
    if options.mtu is not None:
        return options.mtu
    return MTU_DEFAULT_ENCRYPTED if options.encryption else MTU_DEFAULT

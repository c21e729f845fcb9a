"""Route aggregation — collect, canonicalize, dedup and prune tunnel subnets."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from tunnelsync.errors import MalformedCIDR
from tunnelsync.net.cidr import IPv4Subnet, canonicalize, contains, parse_subnet
from tunnelsync.tunnel.facts import RunningInfo
from tunnelsync.tunnel.models import MAGIC_DNS_CIDR, TunnelOptions

logger = logging.getLogger(__name__)

RouteSet = tuple[IPv4Subnet, ...]


def collect_candidates(
    info: RunningInfo | None,
    options: TunnelOptions,
) -> list[str | IPv4Subnet]:
    """Gather candidate subnets in priority order.

    Manual routes replace everything else; they are not merged with
    discovered routes.
    """
    if options.routes:
        logger.info("Using %d manual route(s)", len(options.routes))
        return list(options.routes)

    candidates: list[str | IPv4Subnet] = []
    if info is not None:
        for route in info.routes:
            candidates.extend(route.proxy_cidrs)

    # Runtime-assigned block wins over the profile
    dynamic = info.virtual_ipv4 if info is not None else None
    if dynamic is not None:
        candidates.append(dynamic)
    elif options.ipv4:
        candidates.append(options.ipv4)

    if options.magic_dns:
        candidates.append(MAGIC_DNS_CIDR)

    if not candidates:
        logger.warning("No route candidates")
    return candidates


def aggregate(candidates: Iterable[str | IPv4Subnet]) -> RouteSet:
    """Canonicalize, deduplicate and prune covered subnets.

    The result is ordered broadest-first and never contains two subnets
    where one covers the other. An empty result is valid.
    """
    unique: set[IPv4Subnet] = set()
    for candidate in candidates:
        try:
            subnet = parse_subnet(candidate) if isinstance(candidate, str) else candidate
        except MalformedCIDR as exc:
            logger.warning("Discarding route candidate: %s", exc)
            continue
        unique.add(canonicalize(subnet))

    ordered = sorted(unique, key=lambda s: (s.prefix_length, s.address.value))
    removed: set[int] = set()
    for i, bigger in enumerate(ordered):
        if i in removed:
            continue
        for j in range(i + 1, len(ordered)):
            if j in removed:
                continue
            smaller = ordered[j]
            # Equal prefixes with distinct addresses never cover each other
            if bigger.prefix_length == smaller.prefix_length:
                continue
            if contains(bigger, smaller):
                logger.warning("Removing covered route %s (covered by %s)", smaller, bigger)
                removed.add(j)

    return tuple(s for idx, s in enumerate(ordered) if idx not in removed)


def build_route_set(info: RunningInfo | None, options: TunnelOptions) -> RouteSet:
    return aggregate(collect_candidates(info, options))

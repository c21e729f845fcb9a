"""Tests for route aggregation."""

from __future__ import annotations

import itertools

from tunnelsync.net.aggregator import aggregate, build_route_set, collect_candidates
from tunnelsync.net.cidr import contains, normalize, parse_subnet
from tunnelsync.tunnel.facts import NodeInfo, RouteInfo, RunningInfo
from tunnelsync.tunnel.models import MAGIC_DNS_CIDR, TunnelOptions


def _strs(routes) -> set[str]:
    return {str(r) for r in routes}


def test_prunes_covered_subnets():
    result = aggregate(["10.0.0.0/8", "10.1.0.0/16", "192.168.1.0/24"])
    assert _strs(result) == {"10.0.0.0/8", "192.168.1.0/24"}


def test_dedups_after_canonicalization():
    result = aggregate(["10.1.0.5/16", "10.1.0.0/16", "10.1.255.255/16"])
    assert _strs(result) == {"10.1.0.0/16"}


def test_dedup_independent_of_order():
    inputs = ["10.1.0.0/16", "10.1.0.0/16", "172.16.0.0/12", "10.1.0.9/16"]
    results = {aggregate(list(p)) for p in itertools.permutations(inputs)}
    assert len(results) == 1


def test_same_prefix_adjacent_subnets_kept():
    result = aggregate(["10.0.0.0/24", "10.0.1.0/24"])
    assert _strs(result) == {"10.0.0.0/24", "10.0.1.0/24"}


def test_discards_malformed_entries():
    result = aggregate(["bogus", "10.0.0.0/40", "10.2.0.0/16"])
    assert _strs(result) == {"10.2.0.0/16"}


def test_empty_input_is_valid():
    assert aggregate([]) == ()


def test_output_is_broadest_first():
    result = aggregate(["192.168.1.0/24", "172.16.0.0/12", "8.8.8.8/32"])
    assert [r.prefix_length for r in result] == [12, 24, 32]


def test_minimality_and_coverage():
    inputs = [
        "10.0.0.0/8", "10.1.0.0/16", "10.1.2.0/24", "192.168.0.0/16",
        "192.168.5.0/24", "172.16.4.0/22", "172.16.5.0/24", "8.8.8.8",
    ]
    result = aggregate(inputs)
    for a, b in itertools.combinations(result, 2):
        assert not contains(a, b)
    for text in inputs:
        subnet = normalize(text)
        assert any(contains(r, subnet) and r.prefix_length <= subnet.prefix_length for r in result)


def test_manual_routes_replace_discovered():
    info = RunningInfo(
        my_node_info=NodeInfo(virtual_ipv4=parse_subnet("10.126.126.5/24")),
        routes=(RouteInfo(proxy_cidrs=("192.168.0.0/16",)),),
    )
    options = TunnelOptions(routes=("172.16.0.0/12",), magic_dns=True)
    assert collect_candidates(info, options) == ["172.16.0.0/12"]


def test_discovered_sources_are_merged():
    info = RunningInfo(
        my_node_info=NodeInfo(virtual_ipv4=parse_subnet("10.126.126.5/24")),
        routes=(RouteInfo(proxy_cidrs=("192.168.0.0/16", "192.168.3.0/24")),),
    )
    options = TunnelOptions(magic_dns=True)
    assert _strs(build_route_set(info, options)) == {
        "10.126.126.0/24",
        "192.168.0.0/16",
        str(MAGIC_DNS_CIDR),
    }


def test_dynamic_block_wins_over_static():
    info = RunningInfo(my_node_info=NodeInfo(virtual_ipv4=parse_subnet("10.126.126.5/24")))
    options = TunnelOptions(ipv4="10.200.0.1/16")
    assert _strs(build_route_set(info, options)) == {"10.126.126.0/24"}


def test_static_block_used_without_running_info():
    options = TunnelOptions(ipv4="10.200.0.1/16")
    assert _strs(build_route_set(None, options)) == {"10.200.0.0/16"}


def test_no_sources_gives_empty_set():
    assert build_route_set(None, TunnelOptions()) == ()

"""Tests for the Linux network backend (subprocess and psutil mocked)."""

from __future__ import annotations

import socket
import struct
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from tunnelsync.errors import ApplyFailed
from tunnelsync.platform.linux import IFF_NO_PI, IFF_TUN, LinuxBackend, mask_to_prefix
from tunnelsync.tunnel.models import (
    DesiredSettings,
    DNSSettings,
    IPv4Route,
    IPv4Settings,
    IPv6Settings,
)


def _settings(
    routes: tuple[IPv4Route, ...] = (IPv4Route("10.126.0.0", "255.255.0.0"),),
    dns: DNSSettings | None = None,
    ipv6: IPv6Settings | None = None,
) -> DesiredSettings:
    return DesiredSettings(
        ipv4=IPv4Settings("10.126.126.5", "255.255.255.0", routes),
        ipv6=ipv6,
        dns=dns,
        mtu=1380,
    )


def _commands(mock_run: MagicMock) -> list[list[str]]:
    return [c.args[0] for c in mock_run.call_args_list]


def _addr(address: str, netmask: str, family: int = socket.AF_INET) -> SimpleNamespace:
    return SimpleNamespace(family=family, address=address, netmask=netmask)


@pytest.mark.parametrize(
    "mask,prefix",
    [("0.0.0.0", 0), ("255.0.0.0", 8), ("255.255.255.0", 24), ("255.255.255.255", 32)],
)
def test_mask_to_prefix(mask: str, prefix: int):
    assert mask_to_prefix(mask) == prefix


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_apply_fresh_interface(mock_run: MagicMock, _mock_addrs: MagicMock):
    backend = LinuxBackend("ts0")
    backend.apply(_settings())

    assert _commands(mock_run) == [
        ["ip", "link", "set", "dev", "ts0", "mtu", "1380", "up"],
        ["ip", "-4", "addr", "flush", "dev", "ts0"],
        ["ip", "-4", "addr", "add", "10.126.126.5/24", "dev", "ts0"],
        ["ip", "-4", "route", "replace", "10.126.0.0/16", "dev", "ts0"],
    ]


@patch("tunnelsync.platform.linux.psutil.net_if_addrs")
@patch("tunnelsync.platform.linux.subprocess.run")
def test_apply_keeps_existing_address(mock_run: MagicMock, mock_addrs: MagicMock):
    mock_addrs.return_value = {
        "ts0": [
            _addr("10.126.126.5", "255.255.255.0"),
            _addr("fe80::1", "ffff:ffff:ffff:ffff::", socket.AF_INET6),
        ]
    }
    LinuxBackend("ts0").apply(_settings())

    assert not any("addr" in cmd for cmd in _commands(mock_run))


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_apply_ipv6_and_dns(mock_run: MagicMock, _mock_addrs: MagicMock):
    dns = DNSSettings(("100.100.100.101",), ("et.net",), ("et.net",))
    LinuxBackend("ts0").apply(_settings(dns=dns, ipv6=IPv6Settings("fd00::5", 64)))

    cmds = _commands(mock_run)
    assert ["ip", "-6", "addr", "replace", "fd00::5/64", "dev", "ts0"] in cmds
    assert ["resolvectl", "dns", "ts0", "100.100.100.101"] in cmds
    assert ["resolvectl", "domain", "ts0", "~et.net", "et.net"] in cmds


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_match_all_domains(mock_run: MagicMock, _mock_addrs: MagicMock):
    LinuxBackend("ts0").apply(_settings(dns=DNSSettings(("1.1.1.1",), None, ("",))))
    assert ["resolvectl", "domain", "ts0", "~."] in _commands(mock_run)


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_stale_routes_removed(mock_run: MagicMock, _mock_addrs: MagicMock):
    backend = LinuxBackend("ts0")
    backend.apply(_settings())
    mock_run.reset_mock()

    backend.apply(_settings(routes=(IPv4Route("172.16.0.0", "255.240.0.0"),)))

    cmds = _commands(mock_run)
    assert ["ip", "-4", "route", "replace", "172.16.0.0/12", "dev", "ts0"] in cmds
    assert ["ip", "-4", "route", "del", "10.126.0.0/16", "dev", "ts0"] in cmds


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_failed_command_raises(mock_run: MagicMock, _mock_addrs: MagicMock):
    mock_run.side_effect = subprocess.CalledProcessError(
        2, ["ip"], stderr="RTNETLINK answers: Operation not permitted\n"
    )
    with pytest.raises(ApplyFailed, match="Operation not permitted"):
        LinuxBackend("ts0").apply(_settings())


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run", side_effect=FileNotFoundError("resolvectl"))
def test_missing_tool_raises(_mock_run: MagicMock, _mock_addrs: MagicMock):
    with pytest.raises(ApplyFailed):
        LinuxBackend("ts0").apply(_settings())


@patch("tunnelsync.platform.linux.os.close")
@patch("tunnelsync.platform.linux.fcntl.ioctl")
@patch("tunnelsync.platform.linux.os.open", return_value=42)
def test_open_and_close(mock_open: MagicMock, mock_ioctl: MagicMock, mock_close: MagicMock):
    mock_ioctl.return_value = struct.pack("16sH", b"tun3", IFF_TUN | IFF_NO_PI)
    backend = LinuxBackend("tun%d")

    assert backend.open() == 42
    assert backend.ifname == "tun3"
    assert backend.tunnel_fd() == 42
    # Opening twice reuses the device
    assert backend.open() == 42
    mock_open.assert_called_once()

    backend.close()
    mock_close.assert_called_once_with(42)
    assert backend.tunnel_fd() is None


@patch("tunnelsync.platform.linux.os.close")
@patch("tunnelsync.platform.linux.fcntl.ioctl", side_effect=OSError(1, "Operation not permitted"))
@patch("tunnelsync.platform.linux.os.open", return_value=42)
def test_open_failure_closes_fd(_mock_open: MagicMock, _mock_ioctl: MagicMock, mock_close: MagicMock):
    backend = LinuxBackend("ts0")
    with pytest.raises(OSError):
        backend.open()
    mock_close.assert_called_once_with(42)
    assert backend.tunnel_fd() is None


def _fail_resolvectl(cmd: list[str], **kwargs):
    if cmd[0] == "resolvectl":
        raise FileNotFoundError("resolvectl")
    return MagicMock(returncode=0)


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run", side_effect=_fail_resolvectl)
def test_no_dns_without_resolvectl(mock_run: MagicMock, _mock_addrs: MagicMock):
    backend = LinuxBackend("ts0")
    backend.apply(_settings())
    backend.apply(_settings(routes=()))

    assert not any(cmd[0] == "resolvectl" for cmd in _commands(mock_run))


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_dns_reverted_once_after_removal(mock_run: MagicMock, _mock_addrs: MagicMock):
    backend = LinuxBackend("ts0")
    backend.apply(_settings(dns=DNSSettings(("1.1.1.1",))))
    mock_run.reset_mock()

    backend.apply(_settings())
    backend.apply(_settings())

    reverts = [c for c in _commands(mock_run) if c[:2] == ["resolvectl", "revert"]]
    assert reverts == [["resolvectl", "revert", "ts0"]]


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_old_ipv6_address_removed(mock_run: MagicMock, _mock_addrs: MagicMock):
    backend = LinuxBackend("ts0")
    backend.apply(_settings(ipv6=IPv6Settings("fd00::5", 64)))
    mock_run.reset_mock()

    backend.apply(_settings(ipv6=IPv6Settings("fd00::6", 64)))
    cmds = _commands(mock_run)
    assert ["ip", "-6", "addr", "del", "fd00::5/64", "dev", "ts0"] in cmds
    assert ["ip", "-6", "addr", "replace", "fd00::6/64", "dev", "ts0"] in cmds
    mock_run.reset_mock()

    backend.apply(_settings())
    assert ["ip", "-6", "addr", "del", "fd00::6/64", "dev", "ts0"] in _commands(mock_run)


@patch("tunnelsync.platform.linux.psutil.net_if_addrs", return_value={})
@patch("tunnelsync.platform.linux.subprocess.run")
def test_routes_added_before_failure_are_tracked(mock_run: MagicMock, _mock_addrs: MagicMock):
    def fail_second_route(cmd: list[str], **kwargs):
        if cmd[:4] == ["ip", "-4", "route", "replace"] and cmd[4] == "192.168.0.0/16":
            raise subprocess.CalledProcessError(2, cmd, stderr="RTNETLINK answers: busy")
        return MagicMock(returncode=0)

    mock_run.side_effect = fail_second_route
    backend = LinuxBackend("ts0")
    routes = (IPv4Route("10.0.0.0", "255.0.0.0"), IPv4Route("192.168.0.0", "255.255.0.0"))
    with pytest.raises(ApplyFailed):
        backend.apply(_settings(routes=routes))

    mock_run.side_effect = None
    mock_run.reset_mock()
    backend.apply(_settings(routes=()))
    assert ["ip", "-4", "route", "del", "10.0.0.0/8", "dev", "ts0"] in _commands(mock_run)

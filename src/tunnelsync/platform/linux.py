"""Linux network backend — installs tunnel settings with iproute2 and resolvectl."""

from __future__ import annotations

import fcntl
import ipaddress
import logging
import os
import socket
import struct
import subprocess

import psutil

from tunnelsync.errors import ApplyFailed
from tunnelsync.tunnel.models import DesiredSettings

logger = logging.getLogger(__name__)

TUNSETIFF = 0x400454CA
IFF_TUN = 0x0001
IFF_NO_PI = 0x1000

_CMD_TIMEOUT = 5


def mask_to_prefix(mask: str) -> int:
    """Convert a dotted-quad subnet mask to a prefix length."""
    return ipaddress.IPv4Network(f"0.0.0.0/{mask}").prefixlen


class LinuxBackend:
    """Applies DesiredSettings to a TUN interface.

    Addresses are only flushed and re-added when they actually differ
    from what the interface carries, so route/DNS-only updates leave the
    data path untouched. Routes are replaced in place and stale routes
    removed.
    """

    def __init__(self, ifname: str = "tunnelsync0") -> None:
        self._ifname = ifname
        self._fd: int | None = None
        self._routes: set[str] = set()
        self._ipv6: str | None = None
        self._dns_set = False

    @property
    def ifname(self) -> str:
        return self._ifname

    def open(self) -> int:
        """Create the TUN device and return its file descriptor."""
        if self._fd is not None:
            return self._fd
        fd = os.open("/dev/net/tun", os.O_RDWR)
        try:
            ifr = struct.pack("16sH", self._ifname.encode("utf-8"), IFF_TUN | IFF_NO_PI)
            result = fcntl.ioctl(fd, TUNSETIFF, ifr)
        except OSError:
            os.close(fd)
            raise
        # The kernel may rewrite the name (e.g. for "tun%d" templates)
        self._ifname = result[:16].decode("utf-8").rstrip("\x00")
        self._fd = fd
        logger.info("Opened TUN device %s (fd %d)", self._ifname, fd)
        return fd

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
        self._routes.clear()
        self._ipv6 = None
        self._dns_set = False

    def tunnel_fd(self) -> int | None:
        return self._fd

    def current_addresses(self) -> set[tuple[str, str]]:
        """IPv4 (address, netmask) pairs currently on the interface."""
        addrs = psutil.net_if_addrs().get(self._ifname, [])
        return {
            (a.address, a.netmask or "255.255.255.255")
            for a in addrs
            if a.family == socket.AF_INET
        }

    def apply(self, settings: DesiredSettings) -> None:
        dev = self._ifname
        self._run(["ip", "link", "set", "dev", dev, "mtu", str(settings.mtu), "up"])

        v4 = settings.ipv4
        desired = {(v4.address, v4.subnet_mask)}
        if self.current_addresses() != desired:
            self._run(["ip", "-4", "addr", "flush", "dev", dev])
            prefix = mask_to_prefix(v4.subnet_mask)
            self._run(["ip", "-4", "addr", "add", f"{v4.address}/{prefix}", "dev", dev])

        self._apply_ipv6(settings)
        self._apply_routes(settings)
        self._apply_dns(settings)

    def _apply_ipv6(self, settings: DesiredSettings) -> None:
        dev = self._ifname
        v6 = settings.ipv6
        wanted = f"{v6.address}/{v6.prefix_length}" if v6 is not None else None
        if self._ipv6 is not None and self._ipv6 != wanted:
            try:
                self._run(["ip", "-6", "addr", "del", self._ipv6, "dev", dev])
            except ApplyFailed as exc:
                logger.warning("Old IPv6 address %s not removed: %s", self._ipv6, exc)
            self._ipv6 = None
        if wanted is not None:
            self._run(["ip", "-6", "addr", "replace", wanted, "dev", dev])
            self._ipv6 = wanted

    def _apply_routes(self, settings: DesiredSettings) -> None:
        wanted = {
            f"{r.destination}/{mask_to_prefix(r.subnet_mask)}"
            for r in settings.ipv4.included_routes
        }
        for dest in sorted(wanted):
            self._run(["ip", "-4", "route", "replace", dest, "dev", self._ifname])
            self._routes.add(dest)
        for dest in sorted(self._routes - wanted):
            try:
                self._run(["ip", "-4", "route", "del", dest, "dev", self._ifname])
            except ApplyFailed as exc:
                logger.warning("Stale route %s not removed: %s", dest, exc)
                continue
            self._routes.discard(dest)

    def _apply_dns(self, settings: DesiredSettings) -> None:
        dev = self._ifname
        dns = settings.dns
        if dns is None:
            # Leave system DNS alone unless this backend changed it
            if self._dns_set:
                self._run(["resolvectl", "revert", dev])
                self._dns_set = False
            return

        self._run(["resolvectl", "dns", dev, *dns.servers])
        self._dns_set = True
        domains: list[str] = []
        for match in dns.match_domains or ():
            domains.append(f"~{match}" if match else "~.")
        domains.extend(dns.search_domains or ())
        if domains:
            self._run(["resolvectl", "domain", dev, *domains])

    @staticmethod
    def _run(cmd: list[str]) -> None:
        try:
            subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                text=True,
                timeout=_CMD_TIMEOUT,
            )
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
            raise ApplyFailed(f"{' '.join(cmd)}: {detail}") from exc
        except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
            raise ApplyFailed(f"{' '.join(cmd)}: {exc}") from exc

"""IPv4 address and CIDR value types.

Addresses are held as 32-bit integers in network byte order so that
masking and containment are plain integer operations. Parsing goes
through :mod:`ipaddress` so dotted-quad validation matches the rest of
the Python ecosystem.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from tunnelsync.errors import MalformedCIDR

_MAX_PREFIX = 32
_ALL_ONES = 0xFFFFFFFF


@dataclass(frozen=True, order=True)
class IPv4Address:
    """A 32-bit IPv4 address."""

    value: int

    @classmethod
    def from_text(cls, text: str) -> IPv4Address:
        """Parse dotted-quad text. Raises MalformedCIDR on bad input."""
        try:
            return cls(int(ipaddress.IPv4Address(text.strip())))
        except (ipaddress.AddressValueError, ValueError) as exc:
            raise MalformedCIDR(text, str(exc)) from exc

    def __str__(self) -> str:
        v = self.value
        return f"{(v >> 24) & 0xFF}.{(v >> 16) & 0xFF}.{(v >> 8) & 0xFF}.{v & 0xFF}"


@dataclass(frozen=True)
class IPv4Subnet:
    """An IPv4 address plus prefix length (CIDR block)."""

    address: IPv4Address
    prefix_length: int

    @property
    def mask(self) -> int:
        return _mask_bits(self.prefix_length)

    @property
    def is_canonical(self) -> bool:
        return self.address.value & self.mask == self.address.value

    def __str__(self) -> str:
        return f"{self.address}/{self.prefix_length}"


def _mask_bits(prefix_length: int) -> int:
    if prefix_length == 0:
        return 0
    return (_ALL_ONES << (_MAX_PREFIX - prefix_length)) & _ALL_ONES


def parse_subnet(text: str) -> IPv4Subnet:
    """Parse ``a.b.c.d/n`` or bare ``a.b.c.d`` (implicitly /32)."""
    raw = text.strip()
    if "/" in raw:
        addr_text, _, prefix_text = raw.partition("/")
    else:
        addr_text, prefix_text = raw, str(_MAX_PREFIX)

    if not prefix_text.isdigit():
        raise MalformedCIDR(text, "prefix length is not a number")
    prefix_length = int(prefix_text)
    if prefix_length > _MAX_PREFIX:
        raise MalformedCIDR(text, f"prefix length {prefix_length} out of range")

    return IPv4Subnet(IPv4Address.from_text(addr_text), prefix_length)


def canonicalize(subnet: IPv4Subnet) -> IPv4Subnet:
    """Zero the host bits beyond the prefix length."""
    if subnet.is_canonical:
        return subnet
    return IPv4Subnet(
        IPv4Address(subnet.address.value & subnet.mask),
        subnet.prefix_length,
    )


def normalize(text: str) -> IPv4Subnet:
    """Parse and canonicalize in one step."""
    return canonicalize(parse_subnet(text))


def prefix_to_mask(prefix_length: int) -> str:
    """Render a prefix length as a dotted-quad subnet mask."""
    if not 0 <= prefix_length <= _MAX_PREFIX:
        raise MalformedCIDR(f"/{prefix_length}", "prefix length out of range")
    return str(IPv4Address(_mask_bits(prefix_length)))


def contains(bigger: IPv4Subnet, smaller: IPv4Subnet) -> bool:
    """Whether ``bigger`` covers ``smaller``.

    Arguments are swapped when called with the shorter prefix second, so
    the broader network is always the one whose mask is applied.
    """
    if bigger.prefix_length > smaller.prefix_length:
        bigger, smaller = smaller, bigger
    mask = bigger.mask
    return (bigger.address.value & mask) == (smaller.address.value & mask)

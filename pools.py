"""
Pool model: normalized IPv4 subnets and the split/merge arithmetic
the buddy allocator is built on.
"""

import ipaddress
from dataclasses import dataclass
from typing import Tuple, Union

import byteops
from errors import InvalidAddress, InvalidAddressFamily, InvalidMaskLength

ADDRESS_BYTES = 4
ADDRESS_BITS = ADDRESS_BYTES * 8

PoolLike = Union["Pool", str, ipaddress.IPv4Network, ipaddress.IPv4Interface]
AddressLike = Union[bytes, bytearray, str, ipaddress.IPv4Address]


@dataclass(frozen=True)
class Pool:
    """A contiguous, aligned IPv4 subnet (network address + prefix length)"""

    network: bytes
    prefix_length: int

    def __post_init__(self):
        if len(self.network) != ADDRESS_BYTES:
            raise InvalidAddressFamily(
                f"Only 32-bit IPv4 subnets are supported: {self.network!r}"
            )
        if self.prefix_length < 0 or self.prefix_length > ADDRESS_BITS:
            raise InvalidMaskLength(
                f"Mask length must be in the interval [0, {ADDRESS_BITS}]"
            )
        object.__setattr__(self, "network", bytes(self.network))
        if not byteops.equal(byteops.and_(self.network, self.mask), self.network):
            raise InvalidAddress(f"Pool network has host bits set: {self!s}")

    def __str__(self):
        return f"{format_address(self.network)}/{self.prefix_length}"

    def __repr__(self):
        return f"<Pool {self}>"

    @property
    def mask(self) -> bytes:
        return bytes(byteops.mask(self.prefix_length))

    @property
    def broadcast(self) -> bytes:
        """Highest address in the pool"""
        return bytes(byteops.or_(byteops.not_(self.mask), self.network))

    @property
    def size(self) -> int:
        return 1 << (ADDRESS_BITS - self.prefix_length)

    @property
    def network_address(self) -> ipaddress.IPv4Address:
        return ipaddress.IPv4Address(self.network)

    def contains(self, address: bytes) -> bool:
        if len(address) != ADDRESS_BYTES:
            return False
        return byteops.equal(byteops.and_(address, self.mask), self.network)

    def with_address(self, address: bytes) -> str:
        """`address/prefix` text, e.g. 172.16.0.5/24"""
        return f"{format_address(address)}/{self.prefix_length}"

    def to_network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(str(self))


def format_address(address: bytes) -> str:
    return str(ipaddress.IPv4Address(bytes(address)))


def normalize(address: bytes, mask: bytes) -> Pool:
    """Copy of the subnet with every host bit zeroed"""
    if len(address) != ADDRESS_BYTES or len(mask) != ADDRESS_BYTES:
        raise InvalidAddressFamily("Only 32-bit IPv4 subnets can be used")
    return Pool(bytes(byteops.and_(address, mask)), byteops.mask_size(mask))


def as_pool(value: PoolLike) -> Pool:
    """Normalize caller input (Pool, CIDR text or ipaddress network)"""
    if isinstance(value, Pool):
        return value
    if isinstance(value, str):
        try:
            value = ipaddress.ip_network(value.strip(), strict=False)
        except ValueError as e:
            raise InvalidAddress(f"Invalid CIDR: {e}") from e
    if isinstance(value, (ipaddress.IPv4Interface, ipaddress.IPv6Interface)):
        value = value.network
    if not isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        raise TypeError(f"Cannot build a pool from {type(value).__name__}")
    return normalize(value.network_address.packed, value.netmask.packed)


def as_address(value: AddressLike) -> bytes:
    """Raw 4-byte form of an IPv4 address given as bytes, text or ipaddress"""
    if isinstance(value, str):
        try:
            value = ipaddress.ip_address(value.strip())
        except ValueError as e:
            raise InvalidAddress(f"Invalid IP address: {e}") from e
    if isinstance(value, ipaddress.IPv6Address):
        # IPv4-mapped IPv6 addresses are accepted as their IPv4 form
        if value.ipv4_mapped is None:
            raise InvalidAddressFamily(f"Not a valid IPv4 address: {value}")
        value = value.ipv4_mapped
    if isinstance(value, ipaddress.IPv4Address):
        return value.packed
    if isinstance(value, (bytes, bytearray)):
        if len(value) != ADDRESS_BYTES:
            raise InvalidAddressFamily(f"Not a valid IPv4 address: {bytes(value)!r}")
        return bytes(value)
    raise TypeError(f"Cannot build an address from {type(value).__name__}")


def parse_cidr(text: str) -> Pool:
    """Strict CIDR text: the prefix length is required and host bits must be zero"""
    if "/" not in text:
        raise InvalidAddress(f"Missing prefix length: {text}")
    try:
        network = ipaddress.ip_network(text, strict=True)
    except ValueError as e:
        raise InvalidAddress(f"Invalid CIDR: {e}") from e
    return as_pool(network)


def split(pool: Pool) -> Tuple[Pool, Pool]:
    """Split a pool into its two halves (left keeps the network address)"""
    if pool.prefix_length >= ADDRESS_BITS:
        raise InvalidMaskLength(f"Cannot split a /{ADDRESS_BITS} pool: {pool}")

    right = byteops.copy(pool.network)
    byteops.flip_bit(pool.prefix_length, right)

    left = Pool(pool.network, pool.prefix_length + 1)
    return left, Pool(bytes(right), pool.prefix_length + 1)


def expand(pool: Pool) -> Pool:
    """The pool twice the size that contains this one"""
    if pool.prefix_length <= 0:
        raise InvalidMaskLength(f"Cannot expand a /0 pool: {pool}")
    parent_mask = byteops.mask(pool.prefix_length - 1)
    return Pool(bytes(byteops.and_(pool.network, parent_mask)), pool.prefix_length - 1)


def adjacent(pool: Pool) -> Pool:
    """The buddy: the other half of this pool's parent"""
    if pool.prefix_length <= 0:
        raise InvalidMaskLength(f"A /0 pool has no buddy: {pool}")
    network = byteops.copy(pool.network)
    byteops.flip_bit(pool.prefix_length - 1, network)
    return Pool(bytes(network), pool.prefix_length)


def overlaps(a: Pool, b: Pool) -> bool:
    # contains() re-masks to its own prefix length
    return a.contains(b.network) or b.contains(a.network)

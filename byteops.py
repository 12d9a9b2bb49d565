"""
Bitwise operations over fixed-length byte sequences.

Addresses and masks are handled in network order (big-endian, most
significant bit first), the same layout as ipaddress.packed.
Functions taking a dst write into it and return it; without a dst a new
bytearray is returned.
"""

from typing import Optional

from errors import InvalidMaskLength


def _dst(dst: Optional[bytearray], size: int) -> bytearray:
    if dst is None:
        return bytearray(size)
    if len(dst) != size:
        raise ValueError(f"destination has {len(dst)} bytes, expected {size}")
    return dst


def copy(a: bytes) -> bytearray:
    return bytearray(a)


def not_(a: bytes, dst: Optional[bytearray] = None) -> bytearray:
    dst = _dst(dst, len(a))
    for i, ai in enumerate(a):
        dst[i] = ~ai & 0xFF
    return dst


def and_(a: bytes, b: bytes, dst: Optional[bytearray] = None) -> bytearray:
    """AND two sequences; the shorter one is padded with 0xFF"""
    dst = _dst(dst, max(len(a), len(b)))
    for i in range(len(dst)):
        value = 0xFF
        if i < len(a):
            value &= a[i]
        if i < len(b):
            value &= b[i]
        dst[i] = value
    return dst


def or_(a: bytes, b: bytes, dst: Optional[bytearray] = None) -> bytearray:
    """OR two sequences; the shorter one is padded with 0x00"""
    dst = _dst(dst, max(len(a), len(b)))
    for i in range(len(dst)):
        value = 0x00
        if i < len(a):
            value |= a[i]
        if i < len(b):
            value |= b[i]
        dst[i] = value
    return dst


def add(a: bytes, n: int, dst: Optional[bytearray] = None) -> bytearray:
    """
    Add a signed integer to a big-endian unsigned sequence.

    Carry (or borrow) moves from the last byte toward the first in base 256.
    Anything past the first byte is dropped, so the value wraps around.
    Pass dst=a to update a bytearray in place.
    """
    dst = _dst(dst, len(a))
    carry = n
    for i in reversed(range(len(dst))):
        carry, dst[i] = divmod(a[i] + carry, 0x100)
    return dst


def equal(a: bytes, b: bytes) -> bool:
    if len(a) != len(b):
        return False
    return all(ai == bi for ai, bi in zip(a, b))


def flip_bit(index: int, s: bytearray) -> None:
    """Flip bit `index`, counted from the most significant bit of s[0]"""
    i, j = divmod(index, 8)
    s[i] ^= 1 << (7 - j)


def mask(prefix_length: int, bits: int = 32) -> bytearray:
    """Network mask with `prefix_length` leading ones"""
    if prefix_length < 0 or prefix_length > bits:
        raise InvalidMaskLength(f"Mask length must be in the interval [0, {bits}]")
    ones = (1 << bits) - 1
    value = ones ^ ((1 << (bits - prefix_length)) - 1)
    return bytearray(value.to_bytes(bits // 8, "big"))


def mask_size(m: bytes) -> int:
    """Prefix length of a contiguous mask"""
    bits = len(m) * 8
    host = ~int.from_bytes(m, "big") & ((1 << bits) - 1)
    # Host bits must be a run of trailing ones
    if host & (host + 1):
        raise InvalidMaskLength(f"Mask is not contiguous: {bytes(m).hex()}")
    return bits - host.bit_length()

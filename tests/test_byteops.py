"""Tests for byte sequence arithmetic."""
import pytest

import byteops
from errors import InvalidMaskLength


class TestBitwise:

    def test_not(self):
        assert byteops.not_(bytes([0x00, 0xFF, 0x0F])) == bytearray([0xFF, 0x00, 0xF0])

    def test_and_same_length(self):
        a = bytes([172, 16, 5, 9])
        m = bytes([255, 255, 255, 0])
        assert byteops.and_(a, m) == bytearray([172, 16, 5, 0])

    def test_and_shorter_operand_is_padded_with_ones(self):
        assert byteops.and_(bytes([0xF0]), bytes([0xFF, 0x12])) == bytearray([0xF0, 0x12])

    def test_or_shorter_operand_is_padded_with_zeros(self):
        assert byteops.or_(bytes([0x0F]), bytes([0xF0, 0x12])) == bytearray([0xFF, 0x12])

    def test_broadcast_from_mask(self):
        network = bytes([172, 16, 0, 0])
        mask = bytes([255, 255, 255, 0])
        assert byteops.or_(byteops.not_(mask), network) == bytearray([172, 16, 0, 255])

    def test_into_destination(self):
        dst = bytearray(2)
        result = byteops.and_(bytes([0xAA, 0xFF]), bytes([0x0F, 0xF0]), dst)
        assert result is dst
        assert dst == bytearray([0x0A, 0xF0])

    def test_destination_length_must_match(self):
        with pytest.raises(ValueError):
            byteops.not_(bytes(4), bytearray(3))


class TestAdd:

    def test_simple_increment(self):
        assert byteops.add(bytes([10, 0, 0, 1]), 1) == bytearray([10, 0, 0, 2])

    def test_below_byte_boundary(self):
        # 0xFE + 1 stays inside the last byte
        assert byteops.add(bytes([10, 0, 0, 0xFE]), 1) == bytearray([10, 0, 0, 0xFF])

    def test_carry_at_byte_boundary(self):
        # 0xFF + 1 carries into the next byte (base 256)
        assert byteops.add(bytes([10, 0, 0, 0xFF]), 1) == bytearray([10, 0, 1, 0])

    def test_carry_ripples(self):
        assert byteops.add(bytes([10, 0, 0xFF, 0xFF]), 1) == bytearray([10, 1, 0, 0])

    def test_large_addend(self):
        assert byteops.add(bytes([0, 0, 0, 0]), 0x1234) == bytearray([0, 0, 0x12, 0x34])

    def test_negative_borrows(self):
        assert byteops.add(bytes([10, 0, 1, 0]), -1) == bytearray([10, 0, 0, 0xFF])

    def test_overflow_wraps(self):
        assert byteops.add(bytes([0xFF, 0xFF, 0xFF, 0xFF]), 1) == bytearray(4)

    def test_underflow_wraps(self):
        assert byteops.add(bytes(4), -1) == bytearray([0xFF] * 4)

    def test_in_place(self):
        ip = bytearray([192, 168, 0, 255])
        byteops.add(ip, 1, ip)
        assert ip == bytearray([192, 168, 1, 0])

    def test_sequential_walk_crosses_boundaries(self):
        ip = bytearray([10, 0, 0, 0])
        for _ in range(300):
            byteops.add(ip, 1, ip)
        assert ip == bytearray([10, 0, 1, 44])


class TestEqualAndFlip:

    def test_equal(self):
        assert byteops.equal(bytes([1, 2]), bytearray([1, 2]))
        assert not byteops.equal(bytes([1, 2]), bytes([1, 3]))
        assert not byteops.equal(bytes([1, 2]), bytes([1, 2, 0]))

    def test_flip_msb(self):
        s = bytearray(4)
        byteops.flip_bit(0, s)
        assert s == bytearray([0x80, 0, 0, 0])

    def test_flip_across_bytes(self):
        s = bytearray(4)
        byteops.flip_bit(15, s)
        byteops.flip_bit(16, s)
        assert s == bytearray([0, 0x01, 0x80, 0])

    @pytest.mark.parametrize("index", range(32))
    def test_flip_is_an_involution(self, index):
        s = bytearray([172, 16, 200, 7])
        byteops.flip_bit(index, s)
        assert s != bytearray([172, 16, 200, 7])
        byteops.flip_bit(index, s)
        assert s == bytearray([172, 16, 200, 7])


class TestMask:

    @pytest.mark.parametrize(
        "prefix, expected",
        [
            (0, [0, 0, 0, 0]),
            (8, [255, 0, 0, 0]),
            (17, [255, 255, 128, 0]),
            (32, [255, 255, 255, 255]),
        ],
    )
    def test_mask(self, prefix, expected):
        assert byteops.mask(prefix) == bytearray(expected)
        assert byteops.mask_size(bytes(expected)) == prefix

    def test_mask_out_of_range(self):
        with pytest.raises(InvalidMaskLength):
            byteops.mask(33)

    def test_non_contiguous_mask(self):
        with pytest.raises(InvalidMaskLength):
            byteops.mask_size(bytes([255, 0, 255, 0]))

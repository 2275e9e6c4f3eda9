"""Little-endian helpers for building binary images in a bytearray."""

from __future__ import annotations


def _put(buffer: bytearray, value: int, size: int) -> int:
    offset = len(buffer)
    buffer += (value & ((1 << (8 * size)) - 1)).to_bytes(size, "little")
    return offset


def put_u8(buffer: bytearray, value: int) -> int:
    """Append one byte; return the offset it was written at."""
    return _put(buffer, value, 1)


def put_u16(buffer: bytearray, value: int) -> int:
    """Append a little-endian 16-bit word; return the offset it starts at."""
    return _put(buffer, value, 2)


def put_u32(buffer: bytearray, value: int) -> int:
    """Append a little-endian 32-bit word; return the offset it starts at."""
    return _put(buffer, value, 4)


def put_u64(buffer: bytearray, value: int) -> int:
    """Append a little-endian 64-bit word; return the offset it starts at."""
    return _put(buffer, value, 8)


def pad(buffer: bytearray, count: int) -> None:
    """Append count zero bytes."""
    buffer += bytes(count)


def align_to(pos: int, align: int) -> int:
    """Distance from pos to the next multiple of align.

    When pos is already aligned, pos itself is returned.
    """
    if pos % align == 0:
        return pos
    return align - pos % align


def pad_align(buffer: bytearray, align: int) -> None:
    """Append zero bytes until the buffer length is a multiple of align."""
    remainder = len(buffer) % align
    if remainder:
        pad(buffer, align - remainder)
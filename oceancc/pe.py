"""A minimal 32-bit PE executable that returns a fixed exit code."""

from __future__ import annotations

import struct
import time
from typing import Optional

from .binbuf import pad, pad_align, put_u8, put_u32
from .elf import write_image

IMAGE_FILE_MACHINE_I386 = 0x14C
IMAGE_FILE_MACHINE_AMD64 = 0x8664

IMAGE_FILE_RELOCS_STRIPPED = 0x0001
IMAGE_FILE_EXECUTABLE_IMAGE = 0x0002
IMAGE_FILE_32BIT_MACHINE = 0x0100

IMAGE_SUBSYSTEM_WINDOWS_CUI = 0x3

IMAGE_DLLCHARACTERISTICS_NX_COMPAT = 0x0100
IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE = 0x0040
IMAGE_DLLCHARACTERISTICS_NO_SEH = 0x0400
IMAGE_DLLCHARACTERISTICS_TERMINAL_SERVER_AWARE = 0x8000

IMAGE_SCN_MEM_EXECUTE = 0x20000000
IMAGE_SCN_MEM_READ = 0x40000000
IMAGE_SCN_CNT_CODE = 0x00000020

IMAGE_BASE = 0x400000
SECTION_ALIGNMENT = 0x1000
FILE_ALIGNMENT = 0x200
PE_OFFSET = 64

_PE_HEADER = struct.Struct("<4sHHI8sHH")
_OPTIONAL_HEADER = struct.Struct("<HBB9I6H4I2H6I32I")
_SECTION_HEADER = struct.Struct("<8s6I2HI")

# push 0x7f; pop eax; ret
_ENTRY_CODE = bytes([0x6A, 0x7F, 0x58, 0xC3])


def _pe_header(timestamp: int) -> bytes:
    return _PE_HEADER.pack(
        b"PE\0\0",
        IMAGE_FILE_MACHINE_I386,
        1,
        timestamp & 0xFFFFFFFF,
        bytes(8),
        _OPTIONAL_HEADER.size,
        IMAGE_FILE_32BIT_MACHINE | IMAGE_FILE_EXECUTABLE_IMAGE,
    )


def _optional_header() -> bytes:
    dll_characteristics = (
        IMAGE_DLLCHARACTERISTICS_DYNAMIC_BASE
        | IMAGE_DLLCHARACTERISTICS_NO_SEH
        | IMAGE_DLLCHARACTERISTICS_NX_COMPAT
        | IMAGE_DLLCHARACTERISTICS_TERMINAL_SERVER_AWARE
    )
    return _OPTIONAL_HEADER.pack(
        0x10B,  # magic
        0xE, 0x1D,  # linker version
        0x200,  # size of code
        0x0,  # size of initialized data
        0x0,  # size of uninitialized data
        0x1000,  # entry point
        0x1000,  # base of code
        0x2000,  # base of data
        IMAGE_BASE,
        SECTION_ALIGNMENT,
        FILE_ALIGNMENT,
        0x4, 0x0,  # operating system version
        0x4, 0x0,  # image version
        0x4, 0x0,  # subsystem version
        0x0,  # win32 version value
        0x4000,  # size of image
        0x400,  # size of headers
        0x0,  # checksum
        IMAGE_SUBSYSTEM_WINDOWS_CUI,
        dll_characteristics,
        0x100000,  # stack reserve
        0x1000,  # stack commit
        0x1000,  # heap reserve
        0x0,  # heap commit
        0x0,  # loader flags
        0x10,  # number of data directories
        *([0] * 32),
    )


def _section_header() -> bytes:
    return _SECTION_HEADER.pack(
        b".text",
        len(_ENTRY_CODE),  # virtual size
        0x1000,  # virtual address
        len(_ENTRY_CODE),  # size of raw data
        FILE_ALIGNMENT,  # pointer to raw data
        0, 0, 0, 0,
        IMAGE_SCN_MEM_READ | IMAGE_SCN_MEM_EXECUTE | IMAGE_SCN_CNT_CODE,
    )


def build_pe_image(timestamp: Optional[int] = None) -> bytes:
    """Build the image; timestamp defaults to the current time."""
    if timestamp is None:
        timestamp = int(time.time())
    image = bytearray(b"MZ")
    pad(image, 0x3C - 2)
    put_u32(image, PE_OFFSET)
    image += _pe_header(timestamp)
    image += _optional_header()
    image += _section_header()
    pad_align(image, FILE_ALIGNMENT)
    for byte in _ENTRY_CODE:
        put_u8(image, byte)
    return bytes(image)


def write_pe_image(path, timestamp: Optional[int] = None) -> None:
    """Build the image and write it to path."""
    write_image(build_pe_image(timestamp), path)
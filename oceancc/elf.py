"""ELF executable images (32- and 64-bit) and a code-segment dumper."""

from __future__ import annotations

import argparse
import enum
import struct
import sys
from dataclasses import astuple, dataclass, field
from typing import ClassVar, List, Optional, Sequence, Type, Union

from .binbuf import align_to, pad, pad_align, put_u8, put_u16, put_u32, put_u64

ELF32_ORIGIN = 0x08048000
ELF64_ORIGIN = 0x40000
ALIGNMENT = 0x1000


class SegmentFlag(enum.IntFlag):
    X = 0x1
    W = 0x2
    R = 0x4


class SegmentType(enum.IntEnum):
    NULL = 0x0
    LOAD = 0x1
    DYNAMIC = 0x2
    INTERP = 0x3
    NOTE = 0x4
    SHLIB = 0x5
    PHDR = 0x6
    TLS = 0x7


class RelocationType(enum.Enum):
    CODE = enum.auto()
    DATA = enum.auto()
    IMPORT = enum.auto()


class ImageError(Exception):
    """Raised when an image cannot be built, read or written."""


@dataclass(frozen=True)
class Relocation:
    """A 32-bit address to patch at offset in the code, pointing at target."""

    type: RelocationType
    offset: int
    target: int
    size: int = 4


@dataclass
class ProgramImage:
    """Compiled machine code, its data section and pending relocations."""

    instructions: bytes
    data: bytes = b""
    relocations: List[Relocation] = field(default_factory=list)


@dataclass
class ProgramHeader32:
    FORMAT: ClassVar[struct.Struct] = struct.Struct("<iIIIIIiI")
    SIZE: ClassVar[int] = 0x20

    type: int
    offset: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    flags: int
    align: int

    def pack(self) -> bytes:
        return self.FORMAT.pack(*astuple(self))

    @classmethod
    def unpack(cls, data: bytes) -> "ProgramHeader32":
        return cls(*cls.FORMAT.unpack_from(data, 0))


@dataclass
class ProgramHeader64:
    FORMAT: ClassVar[struct.Struct] = struct.Struct("<IIQQQQQQ")
    SIZE: ClassVar[int] = 0x38

    type: int
    flags: int
    offset: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    align: int

    def pack(self) -> bytes:
        return self.FORMAT.pack(*astuple(self))

    @classmethod
    def unpack(cls, data: bytes) -> "ProgramHeader64":
        return cls(*cls.FORMAT.unpack_from(data, 0))


_Header = Union[ProgramHeader32, ProgramHeader64]


def _make_header(cls: Type[_Header], seg_type: int, flags: int, offset: int,
                 vaddr: int, size: int) -> _Header:
    return cls(type=seg_type, flags=flags, offset=offset, vaddr=vaddr, paddr=vaddr,
               filesz=size, memsz=size, align=ALIGNMENT)


def _place(image: bytearray, offset: int, header: _Header) -> None:
    packed = header.pack()
    image[offset:offset + len(packed)] = packed


def _relocate(code: bytearray, relocations: Sequence[Relocation], code_base: int,
              data_base: Optional[int]) -> None:
    for reloc in relocations:
        if reloc.type is RelocationType.DATA and data_base is not None:
            value = reloc.target + data_base
        elif reloc.type is RelocationType.CODE:
            value = reloc.target + code_base
        else:
            raise ImageError(f"unknown relocation type {reloc.type.name}")
        if not 0 <= reloc.offset <= len(code) - 4:
            raise ImageError(f"relocation at {reloc.offset:#x} lies outside the code")
        struct.pack_into("<I", code, reloc.offset, value & 0xFFFFFFFF)


def _build(program: ProgramImage, *, elf_class: int, machine: int, origin: int,
           header_cls: Type[_Header], null_type: int) -> bytes:
    wide = elf_class == 2
    put_word = put_u64 if wide else put_u32
    has_data = bool(program.data)

    image = bytearray(b"\x7fELF")
    for byte in (elf_class, 1, 1, 0):
        put_u8(image, byte)
    pad(image, 8)
    put_u16(image, 2)  # e_type: executable
    put_u16(image, machine)
    put_u32(image, 1)  # e_version
    entry_offset = put_word(image, 0)
    put_word(image, 0x40 if wide else 0x34)  # e_phoff
    put_word(image, 0)  # e_shoff
    put_u32(image, 0)  # e_flags
    put_u16(image, 0x34)  # e_ehsize
    put_u16(image, header_cls.SIZE)
    put_u16(image, 3 if has_data else 2)
    put_u16(image, 0)
    put_u16(image, 0)
    put_u16(image, 0)

    null_offset = len(image)
    pad(image, header_cls.SIZE)
    text_offset = len(image)
    pad(image, header_cls.SIZE)
    data_hdr_offset = len(image)
    if has_data:
        pad(image, header_cls.SIZE)
    phdr_end = len(image)

    _place(image, null_offset,
           _make_header(header_cls, null_type, SegmentFlag.R, 0, origin, phdr_end))

    code_base = origin + ALIGNMENT
    struct.pack_into("<I", image, entry_offset, code_base)
    pad_align(image, ALIGNMENT)

    code = bytearray(program.instructions)
    _place(image, text_offset,
           _make_header(header_cls, SegmentType.LOAD, SegmentFlag.R | SegmentFlag.X,
                        len(image), code_base, len(code)))

    if has_data:
        vaddr = code_base + len(code)
        vaddr += align_to(vaddr, ALIGNMENT)
        _relocate(code, program.relocations, code_base, vaddr)
        image += code
        pad_align(image, ALIGNMENT)
        _place(image, data_hdr_offset,
               _make_header(header_cls, SegmentType.LOAD, SegmentFlag.R | SegmentFlag.W,
                            len(image), vaddr, len(program.data)))
        image += program.data
    else:
        _relocate(code, program.relocations, code_base, None)
        image += code
    return bytes(image)


def build_elf32_image(program: ProgramImage) -> bytes:
    """Build a 32-bit x86 Linux executable."""
    return _build(program, elf_class=1, machine=3, origin=ELF32_ORIGIN,
                  header_cls=ProgramHeader32, null_type=SegmentType.LOAD)


def build_elf64_image(program: ProgramImage) -> bytes:
    """Build a 64-bit x86-64 Linux executable; a data section is required."""
    if not program.data:
        raise ImageError("64-bit images without a data section are not supported")
    return _build(program, elf_class=2, machine=0x3E, origin=ELF64_ORIGIN,
                  header_cls=ProgramHeader64, null_type=SegmentType.NULL)


def write_image(image: bytes, path) -> None:
    """Write an image to path, raising ImageError if the file cannot be written."""
    try:
        with open(path, "wb") as fp:
            fp.write(image)
    except OSError as err:
        raise ImageError(f"failed to open '{path}', error = {err.strerror}") from err


def find_code_segment(data: bytes) -> ProgramHeader64:
    """Return the first executable program header of a 64-bit ELF image."""
    if len(data) < 0x40:
        raise ImageError("file is too short for an ELF64 header")
    (count,) = struct.unpack_from("<H", data, 56)
    for index in range(count):
        offset = 0x40 + index * ProgramHeader64.SIZE
        if offset + ProgramHeader64.SIZE > len(data):
            raise ImageError("program header table is truncated")
        header = ProgramHeader64.unpack(data[offset:])
        if header.flags & SegmentFlag.X:
            return header
    raise ImageError("no executable segment found")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Print the code segment of an ELF64 file as hex.")
    parser.add_argument("file")
    args = parser.parse_args(argv)
    try:
        with open(args.file, "rb") as fp:
            data = fp.read()
    except OSError:
        return 0
    try:
        header = find_code_segment(data)
    except ImageError as err:
        print(err, file=sys.stderr)
        return 1
    code = data[header.offset:header.offset + header.filesz]
    print(" ".join(f"{byte:02X}" for byte in code), end="")
    return 0
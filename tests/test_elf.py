import struct

import pytest

from oceancc.elf import (
    ImageError,
    ProgramHeader32,
    ProgramHeader64,
    ProgramImage,
    Relocation,
    RelocationType,
    SegmentFlag,
    SegmentType,
    build_elf32_image,
    build_elf64_image,
    find_code_segment,
    main,
    write_image,
)

CODE = bytes([0xB8, 0, 0, 0, 0, 0xC3])
DATA = b"hello\0"


def _headers32(image):
    count = struct.unpack_from("<H", image, 44)[0]
    return [ProgramHeader32.unpack(image[0x34 + i * 0x20:]) for i in range(count)]


def _headers64(image):
    count = struct.unpack_from("<H", image, 56)[0]
    return [ProgramHeader64.unpack(image[0x40 + i * 0x38:]) for i in range(count)]


def test_header_sizes_and_round_trip():
    h32 = ProgramHeader32(SegmentType.LOAD, 0x1000, 0x08048000, 0x08048000, 6, 6,
                          SegmentFlag.R | SegmentFlag.X, 0x1000)
    h64 = ProgramHeader64(SegmentType.LOAD, SegmentFlag.R, 0x1000, 0x41000, 0x41000, 6, 6, 0x1000)
    assert len(h32.pack()) == 0x20
    assert len(h64.pack()) == 0x38
    assert ProgramHeader32.unpack(h32.pack()) == h32
    assert ProgramHeader64.unpack(h64.pack()) == h64


def test_elf32_without_data():
    image = build_elf32_image(ProgramImage(CODE))
    assert image[:4] == b"\x7fELF"
    assert image[4] == 1
    assert struct.unpack_from("<H", image, 18)[0] == 3
    assert struct.unpack_from("<I", image, 24)[0] == 0x08048000 + 0x1000
    assert struct.unpack_from("<I", image, 28)[0] == 0x34
    null_hdr, text = _headers32(image)
    assert null_hdr.type == SegmentType.LOAD
    assert null_hdr.vaddr == 0x08048000
    assert null_hdr.flags == SegmentFlag.R
    assert text.offset == 0x1000
    assert text.flags == SegmentFlag.R | SegmentFlag.X
    assert image[text.offset:text.offset + text.filesz] == CODE
    assert len(image) == 0x1000 + len(CODE)


def test_elf32_data_relocation():
    program = ProgramImage(CODE, DATA, [Relocation(RelocationType.DATA, 1, 2)])
    image = build_elf32_image(program)
    headers = _headers32(image)
    assert len(headers) == 3
    _, text, data = headers
    placed = image[text.offset:text.offset + text.filesz]
    assert struct.unpack_from("<I", placed, 1)[0] == data.vaddr + 2
    assert data.vaddr % 0x1000 == 0
    assert data.vaddr > text.vaddr
    assert data.flags == SegmentFlag.R | SegmentFlag.W
    assert image[data.offset:data.offset + data.filesz] == DATA
    assert program.instructions == CODE


def test_elf32_code_relocations_applied_in_order():
    relocs = [Relocation(RelocationType.CODE, 1, 5), Relocation(RelocationType.CODE, 1, 9)]
    image = build_elf32_image(ProgramImage(CODE, relocations=relocs))
    text = _headers32(image)[1]
    assert struct.unpack_from("<I", image, text.offset + 1)[0] == 9 + 0x08048000 + 0x1000


def test_elf32_unknown_relocation_rejected():
    relocs = [Relocation(RelocationType.IMPORT, 1, 0)]
    with pytest.raises(ImageError):
        build_elf32_image(ProgramImage(CODE, relocations=relocs))


def test_elf32_data_relocation_without_data_rejected():
    relocs = [Relocation(RelocationType.DATA, 1, 0)]
    with pytest.raises(ImageError):
        build_elf32_image(ProgramImage(CODE, relocations=relocs))


def test_relocation_out_of_range_rejected():
    relocs = [Relocation(RelocationType.CODE, len(CODE) - 2, 0)]
    with pytest.raises(ImageError):
        build_elf32_image(ProgramImage(CODE, relocations=relocs))


def test_elf64_image():
    image = build_elf64_image(ProgramImage(CODE, DATA, [Relocation(RelocationType.DATA, 1, 0)]))
    assert image[:5] == b"\x7fELF\x02"
    assert struct.unpack_from("<H", image, 18)[0] == 0x3E
    assert struct.unpack_from("<Q", image, 24)[0] == 0x40000 + 0x1000
    assert struct.unpack_from("<Q", image, 32)[0] == 0x40
    null_hdr, text, data = _headers64(image)
    assert null_hdr.type == SegmentType.NULL
    assert text.vaddr == 0x40000 + 0x1000
    assert struct.unpack_from("<I", image, text.offset + 1)[0] == data.vaddr
    assert image[data.offset:data.offset + data.filesz] == DATA


def test_elf64_without_data_rejected():
    with pytest.raises(ImageError):
        build_elf64_image(ProgramImage(CODE))


def test_find_code_segment():
    image = build_elf64_image(ProgramImage(CODE, DATA))
    header = find_code_segment(image)
    assert header.flags & SegmentFlag.X
    assert image[header.offset:header.offset + header.filesz] == CODE


def test_find_code_segment_errors():
    with pytest.raises(ImageError):
        find_code_segment(b"\x7fELF")
    image = bytearray(build_elf64_image(ProgramImage(CODE, DATA)))
    struct.pack_into("<H", image, 56, 0)
    with pytest.raises(ImageError):
        find_code_segment(bytes(image))


def test_write_image(tmp_path):
    image = build_elf32_image(ProgramImage(CODE))
    target = tmp_path / "a.out"
    write_image(image, target)
    assert target.read_bytes() == image
    with pytest.raises(ImageError):
        write_image(image, tmp_path / "missing" / "a.out")


def test_main_prints_code(tmp_path, capsys):
    target = tmp_path / "prog"
    write_image(build_elf64_image(ProgramImage(b"\x90\xc3", DATA)), target)
    assert main([str(target)]) == 0
    assert capsys.readouterr().out == "90 C3"
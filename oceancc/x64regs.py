"""x86-64 register tables and REX prefix helpers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Tuple


class X64Register(enum.IntEnum):
    AL = 0
    BL = enum.auto()
    CL = enum.auto()
    DL = enum.auto()
    AH = enum.auto()
    BH = enum.auto()
    CH = enum.auto()
    DH = enum.auto()
    AX = enum.auto()
    BX = enum.auto()
    CX = enum.auto()
    DX = enum.auto()
    EAX = enum.auto()
    ECX = enum.auto()
    EDX = enum.auto()
    EBX = enum.auto()
    ESP = enum.auto()
    EBP = enum.auto()
    ESI = enum.auto()
    EDI = enum.auto()
    R8B = enum.auto()
    R9B = enum.auto()
    R10B = enum.auto()
    R11B = enum.auto()
    R12B = enum.auto()
    R13B = enum.auto()
    R14B = enum.auto()
    R15B = enum.auto()
    R8W = enum.auto()
    R9W = enum.auto()
    R10W = enum.auto()
    R11W = enum.auto()
    R12W = enum.auto()
    R13W = enum.auto()
    R14W = enum.auto()
    R15W = enum.auto()
    R8D = enum.auto()
    R9D = enum.auto()
    R10D = enum.auto()
    R11D = enum.auto()
    R12D = enum.auto()
    R13D = enum.auto()
    R14D = enum.auto()
    R15D = enum.auto()
    RAX = enum.auto()
    RCX = enum.auto()
    RDX = enum.auto()
    RBX = enum.auto()
    RSP = enum.auto()
    RBP = enum.auto()
    RSI = enum.auto()
    RDI = enum.auto()
    R8 = enum.auto()
    R9 = enum.auto()
    R10 = enum.auto()
    R11 = enum.auto()
    R12 = enum.auto()
    R13 = enum.auto()
    R14 = enum.auto()
    R15 = enum.auto()
    XMM0 = enum.auto()
    XMM1 = enum.auto()
    XMM2 = enum.auto()
    XMM3 = enum.auto()
    XMM4 = enum.auto()
    XMM5 = enum.auto()
    XMM6 = enum.auto()
    XMM7 = enum.auto()
    YMM0 = enum.auto()
    YMM1 = enum.auto()
    YMM2 = enum.auto()
    YMM3 = enum.auto()
    YMM4 = enum.auto()
    YMM5 = enum.auto()
    YMM6 = enum.auto()
    YMM7 = enum.auto()


class X64Flag(enum.IntFlag):
    CF = 0x1
    PF = 0x4
    AF = 0x10
    ZF = 0x40
    SF = 0x80
    TP = 0x100
    IF = 0x200
    DF = 0x400
    OF = 0x800


R = X64Register

# Registers that overlap because each is the lower part of the first one.
_SLOTS: Tuple[Tuple[X64Register, ...], ...] = (
    (R.RAX, R.EAX, R.AX, R.AL, R.AH),
    (R.RCX, R.ECX, R.CX, R.CL, R.CH),
    (R.RDX, R.EDX, R.DX, R.DL, R.DH),
    (R.RBX, R.EBX, R.BX, R.BL, R.BH),
    (R.RSP, R.ESP),
    (R.RBP, R.EBP),
    (R.RSI, R.ESI),
    (R.RDI, R.EDI),
    (R.R8, R.R8D, R.R8W, R.R8B),
    (R.R9, R.R9D, R.R9W, R.R9B),
    (R.R10, R.R10D, R.R10W, R.R10B),
    (R.R11, R.R11D, R.R11W, R.R11B),
    (R.R12, R.R12D, R.R12W, R.R12B),
    (R.R13, R.R13D, R.R13W, R.R13B),
    (R.R14, R.R14D, R.R14W, R.R14B),
    (R.R15, R.R15D, R.R15W, R.R15B),
    (R.XMM0, R.YMM0),
    (R.XMM1, R.YMM1),
    (R.XMM2, R.YMM2),
    (R.XMM3, R.YMM3),
    (R.XMM4, R.YMM4),
    (R.XMM5, R.YMM5),
    (R.XMM6, R.YMM6),
    (R.XMM7, R.YMM7),
)

# General-use registers by width; the stack and frame pointers are left out.
_BY_BITS = {
    256: (R.YMM0, R.YMM1, R.YMM2, R.YMM3, R.YMM4, R.YMM5, R.YMM6, R.YMM7),
    128: (R.XMM0, R.XMM1, R.XMM2, R.XMM3, R.XMM4, R.XMM5, R.XMM6, R.XMM7),
    64: (R.RAX, R.RCX, R.RDX, R.RBX, R.RSI, R.RDI, R.R8, R.R9,
         R.R10, R.R11, R.R12, R.R13, R.R14, R.R15),
    32: (R.EAX, R.ECX, R.EDX, R.EBX, R.ESI, R.EDI, R.R8D, R.R9D,
         R.R10D, R.R11D, R.R12D, R.R13D, R.R14D, R.R15D),
    16: (R.AX, R.BX, R.CX, R.DX, R.R8W, R.R9W, R.R10W, R.R11W,
         R.R12W, R.R13W, R.R14W, R.R15W),
    8: (R.AL, R.BL, R.CL, R.DL, R.AH, R.BH, R.CH, R.DH,
        R.R8B, R.R9B, R.R10B, R.R11B, R.R12B, R.R13B, R.R14B, R.R15B),
}


@dataclass(frozen=True)
class RexFields:
    """The W, R, X and B bits of a REX prefix."""

    W: bool = False
    R: bool = False
    X: bool = False
    B: bool = False


def register_slots() -> Tuple[Tuple[X64Register, ...], ...]:
    """Groups of registers that share one physical register."""
    return _SLOTS


def registers_by_bits(bits: int) -> Tuple[X64Register, ...]:
    """The allocatable registers of the given width."""
    try:
        return _BY_BITS[bits]
    except KeyError:
        raise ValueError(f"no registers of {bits} bits") from None


def encode_rex_prefix(fields: RexFields) -> int:
    """Pack the REX bits into a byte, W at bit 4 through B at bit 7."""
    return (
        2
        | (bool(fields.W) << 4)
        | (bool(fields.R) << 5)
        | (bool(fields.X) << 6)
        | (bool(fields.B) << 7)
    )


def encode_register_reference(
    reg: X64Register, fields: RexFields
) -> Tuple[int, RexFields]:
    """Return the 3-bit register number and the REX fields, with R set for R8-R15."""
    if R.R8 <= reg <= R.R15:
        return reg - R.R8, replace(fields, R=True)
    if R.RAX <= reg <= R.RDI:
        return reg - R.RAX, fields
    if R.EAX <= reg <= R.EDI:
        return reg - R.EAX, fields
    raise ValueError(f"cannot encode register {X64Register(reg).name}")
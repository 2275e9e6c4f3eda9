"""Virtual instructions: immediates, operands, opcodes and instructions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

_WIDTHS = (8, 16, 32, 64)
MAX_OPERANDS = 4


def _wrap_signed(value: int, bits: int) -> int:
    mask = (1 << bits) - 1
    value &= mask
    return value - (1 << bits) if value >> (bits - 1) else value


@dataclass(frozen=True)
class Immediate:
    """An integer constant stored in a field of nbits bits."""

    nbits: int
    value: int = 0
    is_unsigned: bool = False

    def cast(self, bits: int) -> int:
        """Read the stored field and convert it to a signed integer of the given width.

        An immediate whose width is not 8, 16, 32 or 64 reads as 0.
        """
        if bits not in _WIDTHS:
            raise ValueError(f"cannot cast to a {bits}-bit integer")
        if self.nbits not in _WIDTHS:
            return 0
        return _wrap_signed(_wrap_signed(self.value, self.nbits), bits)


class OperandType(enum.IntEnum):
    INVALID = 0
    IMMEDIATE = 1
    INDIRECT = 2
    REGISTER = 3
    INDIRECT_REGISTER = 4
    INDIRECT_REGISTER_DISPLACEMENT = 5
    INDIRECT_REGISTER_INDEXED = 6
    LABEL = 7


class OperandSize(enum.IntEnum):
    NATIVE = 0
    BITS_8 = 1
    BITS_16 = 2
    BITS_32 = 4
    BITS_64 = 8
    DOUBLE = 9
    FLOAT = 10


class Opcode(enum.IntEnum):
    ADD = 0
    SUB = enum.auto()
    MUL = enum.auto()
    DIV = enum.auto()
    MOD = enum.auto()
    FADD = enum.auto()
    FSUB = enum.auto()
    FMUL = enum.auto()
    FDIV = enum.auto()
    FMOD = enum.auto()
    SITOFP = enum.auto()
    FPTOSI = enum.auto()
    AND = enum.auto()
    OR = enum.auto()
    XOR = enum.auto()
    NOT = enum.auto()
    MOV = enum.auto()
    LOAD = enum.auto()
    LEA = enum.auto()
    STORE = enum.auto()
    PUSH = enum.auto()
    POP = enum.auto()
    ENTER = enum.auto()
    LEAVE = enum.auto()
    CALL = enum.auto()
    RET = enum.auto()
    TEST = enum.auto()
    CMP = enum.auto()
    JMP = enum.auto()
    JNZ = enum.auto()
    JZ = enum.auto()
    JLE = enum.auto()
    JGE = enum.auto()
    JG = enum.auto()
    JL = enum.auto()
    LABEL = enum.auto()
    ALLOCA = enum.auto()
    HLT = enum.auto()

    @property
    def mnemonic(self) -> str:
        """The lower-case assembly name of the opcode."""
        return self.name.lower()


@dataclass(frozen=True)
class Operand:
    """One operand of a virtual instruction; which fields matter depends on type."""

    type: OperandType
    size: OperandSize = OperandSize.NATIVE
    imm: Optional[Immediate] = None
    reg: int = 0
    disp: int = 0
    scale: int = 0
    index_reg: int = 0
    label: int = 0
    virtual: bool = True


@dataclass(frozen=True)
class Instruction:
    """A virtual opcode with up to four operands."""

    opcode: Opcode
    operands: Tuple[Operand, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        operands = tuple(self.operands)
        if len(operands) > MAX_OPERANDS:
            raise ValueError(
                f"an instruction takes at most {MAX_OPERANDS} operands, got {len(operands)}"
            )
        object.__setattr__(self, "operands", operands)


def indirect_operand(imm: Immediate, size: OperandSize) -> Operand:
    return Operand(OperandType.INDIRECT, size, imm=imm)


def indirect_register_operand(reg: int) -> Operand:
    return Operand(OperandType.INDIRECT_REGISTER, OperandSize.NATIVE, reg=reg)


def indirect_register_displacement_operand(reg: int, disp: int, size: OperandSize) -> Operand:
    return Operand(
        OperandType.INDIRECT_REGISTER_DISPLACEMENT, size, reg=reg, disp=_wrap_signed(disp, 32)
    )


def indirect_register_indexed_operand(
    reg: int, index_reg: int, scale: int, size: OperandSize
) -> Operand:
    return Operand(
        OperandType.INDIRECT_REGISTER_INDEXED,
        size,
        reg=reg,
        index_reg=index_reg,
        scale=_wrap_signed(scale, 32),
    )


def label_operand(label: int) -> Operand:
    return Operand(OperandType.LABEL, OperandSize.NATIVE, label=label)


def imm32_operand(value: int) -> Operand:
    return Operand(
        OperandType.IMMEDIATE, OperandSize.BITS_32, imm=Immediate(32, _wrap_signed(value, 32))
    )


def imm64_operand(value: int) -> Operand:
    return Operand(
        OperandType.IMMEDIATE, OperandSize.BITS_64, imm=Immediate(64, _wrap_signed(value, 64))
    )


def invalid_operand() -> Operand:
    return Operand(OperandType.INVALID)


def register_operand(reg: int) -> Operand:
    return Operand(OperandType.REGISTER, OperandSize.NATIVE, reg=reg)


def operand_type_equal(a: Operand, b: Operand) -> bool:
    """Registers of the same size match each other; other operands must be identical."""
    if a.type == OperandType.REGISTER and b.type == OperandType.REGISTER and a.size == b.size:
        return True
    return a == b


def opcode_overwrites_first_operand(opcode: Opcode) -> bool:
    """Whether the opcode writes its result into its first operand."""
    return opcode <= Opcode.LEA
"""Encoding of virtual instructions as 32-bit x86 machine code."""

from __future__ import annotations

from typing import Iterable

from .binbuf import put_u8, put_u32
from .ir import Instruction, Opcode, Operand, OperandType

_STACK_ALIGNMENT = 16


class UnsupportedInstruction(Exception):
    """Raised for an instruction or operand that has no x86 encoding here."""


def _immediate_i32(operand: Operand) -> int:
    if operand.type != OperandType.IMMEDIATE or operand.imm is None:
        raise UnsupportedInstruction(f"expected an immediate operand, got {operand.type.name}")
    return operand.imm.cast(32)


def _first_operand(instr: Instruction) -> Operand:
    if not instr.operands:
        raise UnsupportedInstruction(f"{instr.opcode.mnemonic} needs an operand")
    return instr.operands[0]


def encode_push(operand: Operand) -> bytes:
    """Encode push of a register or a 32-bit immediate."""
    out = bytearray()
    if operand.type == OperandType.REGISTER:
        put_u8(out, 0x50 + operand.reg)
    elif operand.type == OperandType.IMMEDIATE:
        put_u8(out, 0x68)
        put_u32(out, _immediate_i32(operand))
    else:
        raise UnsupportedInstruction(f"cannot push a {operand.type.name} operand")
    return bytes(out)


def _round_up_stack(numbytes: int) -> int:
    # C-style remainder, truncating toward zero
    remainder = abs(numbytes) % _STACK_ALIGNMENT
    if numbytes < 0:
        remainder = -remainder
    return numbytes + _STACK_ALIGNMENT - remainder


def encode_instructions(instructions: Iterable[Instruction]) -> bytes:
    """Encode a sequence of virtual instructions."""
    out = bytearray()
    for instr in instructions:
        opcode = instr.opcode
        if opcode == Opcode.CALL:
            put_u8(out, 0xE8)
            put_u32(out, 0)
        elif opcode == Opcode.PUSH:
            out += encode_push(_first_operand(instr))
        elif opcode == Opcode.ALLOCA:
            numbytes = _round_up_stack(_immediate_i32(_first_operand(instr)))
            put_u8(out, 0x81)  # sub esp, imm32
            put_u8(out, 0xEC)
            put_u32(out, numbytes)
        elif opcode == Opcode.ENTER:
            out += bytes((0x55, 0x89, 0xE5))  # push ebp; mov ebp, esp
        elif opcode == Opcode.LEAVE:
            out += bytes((0x5D, 0x89, 0xEC))  # pop ebp; mov esp, ebp
        else:
            raise UnsupportedInstruction(f"unhandled opcode {opcode.mnemonic}")
    return bytes(out)
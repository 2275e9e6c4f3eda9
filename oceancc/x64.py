"""x86-64 code generation: register allocation and instruction encoding."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from typing import Dict, List

from .binbuf import put_u8, put_u32
from .x64regs import X64Register, register_slots, registers_by_bits

R = X64Register

_ALLOCATABLE_BITS = (256, 128, 64, 32, 16, 8)


class CodegenError(Exception):
    """Raised for a register or operand size that has no encoding here."""


class VirtualRegister(enum.Enum):
    """Registers requested by the compiler before they are mapped to real ones."""

    ANY = enum.auto()
    ANY64 = enum.auto()
    ANY32 = enum.auto()
    ANY16 = enum.auto()
    ANY8 = enum.auto()
    GP0 = enum.auto()
    GP1 = enum.auto()
    GP2 = enum.auto()
    GP3 = enum.auto()
    GP64_0 = enum.auto()
    GP64_1 = enum.auto()
    GP64_2 = enum.auto()
    GP64_3 = enum.auto()
    GP32_0 = enum.auto()
    GP32_1 = enum.auto()
    GP32_2 = enum.auto()
    GP32_3 = enum.auto()
    SP = enum.auto()
    BP = enum.auto()


V = VirtualRegister

_ANY_BITS: Dict[VirtualRegister, int] = {
    V.ANY: 64,
    V.ANY64: 64,
    V.ANY32: 32,
    V.ANY16: 16,
    V.ANY8: 8,
}

_FIXED: Dict[VirtualRegister, X64Register] = {
    V.GP0: R.RAX, V.GP1: R.RCX, V.GP2: R.RDX, V.GP3: R.RBX,
    V.GP64_0: R.RAX, V.GP64_1: R.RCX, V.GP64_2: R.RDX, V.GP64_3: R.RBX,
    V.GP32_0: R.EAX, V.GP32_1: R.ECX, V.GP32_2: R.EDX, V.GP32_3: R.EBX,
    V.SP: R.RSP,
    V.BP: R.RBP,
}


@dataclass
class RegisterInfo:
    """What the allocator knows about one real register."""

    name: str
    id: int
    bits: int = 0
    slot: int = -1
    usecount: int = 0


def _is_old64(reg: int) -> bool:
    return R.RAX <= reg <= R.RDI


def _is_new64(reg: int) -> bool:
    return R.R8 <= reg <= R.R15


def _is_old32(reg: int) -> bool:
    return R.EAX <= reg <= R.EDI


def _reg_name(reg: int) -> str:
    try:
        return X64Register(reg).name
    except ValueError:
        return str(reg)


class X64CodeGen:
    """Emits x86-64 machine code into ``bytecode`` and tracks register use."""

    def __init__(self) -> None:
        self.bytecode = bytearray()
        self.reginfo: List[RegisterInfo] = [RegisterInfo(reg.name, int(reg)) for reg in X64Register]
        for slot, group in enumerate(register_slots()):
            for reg in group:
                info = self.reginfo[reg]
                info.slot = slot
        for bits in _ALLOCATABLE_BITS:
            for reg in registers_by_bits(bits):
                self.reginfo[reg].bits = bits

    # buffer -------------------------------------------------------------

    @property
    def position(self) -> int:
        """Offset at which the next instruction byte will be written."""
        return len(self.bytecode)

    def _db(self, *values: int) -> None:
        for value in values:
            put_u8(self.bytecode, value)

    def _dd(self, value: int) -> int:
        return put_u32(self.bytecode, value)

    def set8(self, offset: int, value: int) -> None:
        """Overwrite one byte of emitted code."""
        if not 0 <= offset < len(self.bytecode):
            raise IndexError(f"offset {offset} lies outside the emitted code")
        self.bytecode[offset] = value & 0xFF

    def set32(self, offset: int, value: int) -> None:
        """Overwrite a little-endian 32-bit word of emitted code."""
        if not 0 <= offset <= len(self.bytecode) - 4:
            raise IndexError(f"offset {offset} lies outside the emitted code")
        struct.pack_into("<I", self.bytecode, offset, value & 0xFFFFFFFF)

    # registers ----------------------------------------------------------

    def _info(self, reg: int) -> RegisterInfo:
        if not 0 <= reg < len(self.reginfo):
            raise CodegenError(f"unknown register {reg}")
        return self.reginfo[reg]

    def _bits(self, reg: int) -> int:
        return self._info(reg).bits

    def register_name(self, reg: int) -> str:
        return self._info(reg).name

    def least_used_compatible_register(self, bits: int) -> X64Register:
        """The register of the given width with the lowest use count, earliest first."""
        try:
            candidates = registers_by_bits(bits)
        except ValueError as err:
            raise CodegenError(str(err)) from None
        best = candidates[0]
        for reg in candidates[1:]:
            if self.reginfo[reg].usecount < self.reginfo[best].usecount:
                best = reg
        return best

    def map_register(self, vreg: VirtualRegister) -> X64Register:
        """Pick a real register, saving it on the stack if it is already in use."""
        if vreg in _ANY_BITS:
            reg = self.least_used_compatible_register(_ANY_BITS[vreg])
        elif vreg in _FIXED:
            reg = _FIXED[vreg]
        else:
            raise CodegenError(f"cannot map virtual register {vreg!r}")
        info = self.reginfo[reg]
        if info.usecount > 0:
            self.push(reg)
        info.usecount += 1
        return reg

    def unmap_register(self, reg: int) -> None:
        """Release a register, restoring the value saved when it was mapped again."""
        info = self._info(reg)
        if info.usecount > 1:
            self.pop(reg)
            info.usecount -= 1

    # instructions -------------------------------------------------------

    def push(self, reg: int) -> None:
        if not _is_old64(reg):
            raise CodegenError(f"cannot push {_reg_name(reg)}")
        self._db(0x50 + (reg - R.RAX))

    def pop(self, reg: int) -> None:
        if not _is_old64(reg):
            raise CodegenError(f"cannot pop {_reg_name(reg)}")
        self._db(0x58 + (reg - R.RAX))

    def nop(self) -> None:
        self._db(0x90)

    def mov_r_imm32(self, reg: int, imm: int) -> int:
        """Load a constant into a 64-bit register; return the offset of the constant."""
        if _is_old64(reg):
            self._db(0x48, 0xB8 + (reg - R.RAX))
        elif _is_new64(reg):
            self._db(0x49, 0xB8 + (reg - R.R8))
        else:
            raise CodegenError(f"cannot load an immediate into {_reg_name(reg)}")
        offset = self._dd(imm)
        self._dd(0)
        return offset

    def mov(self, a: int, b: int) -> int:
        """mov a, b for two of RAX..RDI; return a."""
        if not (_is_old64(a) and _is_old64(b)):
            raise CodegenError(f"cannot encode mov {_reg_name(a)}, {_reg_name(b)}")
        self._db(0x40, 0x89, 0xC0 + (b - R.RAX) * 8 + (a - R.RAX))
        return a

    def sub_regn_imm32(self, reg: int, imm: int) -> int:
        """sub reg, imm32; return reg."""
        if _is_old64(reg):
            self._db(0x40, 0x81, 0xE8 + (reg - R.RAX))
        elif _is_old32(reg):
            self._db(0x81, 0xE8 + (reg - R.EAX))
        else:
            raise CodegenError(f"cannot encode sub {_reg_name(reg)}, imm32")
        self._dd(imm)
        return reg

    def xor(self, a: int, b: int) -> int:
        """xor a, b for two registers of the same width; return a."""
        bits = self._bits(a)
        if bits != self._bits(b):
            raise CodegenError(f"xor of registers of different widths: {_reg_name(a)}, {_reg_name(b)}")
        if bits == 32:
            if not (_is_old32(a) and _is_old32(b)):
                raise CodegenError(f"cannot encode xor {_reg_name(a)}, {_reg_name(b)}")
            self._db(0x31, 0xC0 + (b - R.EAX) * 8 + (a - R.EAX))
        elif bits == 64:
            if not (_is_old64(a) and _is_old64(b)):
                raise CodegenError(f"cannot encode xor {_reg_name(a)}, {_reg_name(b)}")
            self._db(0x48, 0x31, 0xC0 + (b - R.RAX) * 8 + (a - R.RAX))
        else:
            raise CodegenError(f"unhandled xor of {bits}-bit registers")
        return a

    def add(self, a: int, b: int) -> int:
        """add a, b for two 64-bit general registers; return a."""
        if self._bits(a) != self._bits(b):
            raise CodegenError(f"add of registers of different widths: {_reg_name(a)}, {_reg_name(b)}")
        for reg in (a, b):
            if not (_is_old64(reg) or _is_new64(reg)):
                raise CodegenError(f"cannot encode add with {_reg_name(reg)}")
        a_new, b_new = _is_new64(a), _is_new64(b)
        a_num = a - (R.R8 if a_new else R.RAX)
        b_num = b - (R.R8 if b_new else R.RAX)
        prefix = {(False, False): 0x48, (False, True): 0x4C,
                  (True, False): 0x49, (True, True): 0x4D}[(a_new, b_new)]
        self._db(prefix, 0x01, 0xC0 + b_num * 8 + a_num)
        return a

    def load_value_offset_from_stack_to_register(self, reg: int, offset: int, data_size: int) -> None:
        """Load data_size bytes at [rbp + offset] into reg, sign-extending to 64 bits."""
        if data_size == 1:
            opcode = (0x48, 0x0F, 0xBE)
            wide = (0x48, 0x0F, 0xBE)
        elif data_size == 4:
            opcode = (0x48, 0x63)
            wide = (0x4C, 0x63)
        elif data_size == 8:
            opcode = (0x48, 0x8B)
            wide = (0x4C, 0x8B)
        else:
            raise CodegenError(f"unhandled data size {data_size}")
        if _is_old64(reg):
            self._db(*opcode, 0x85 + (reg - R.RAX) * 8)
        elif _is_new64(reg):
            self._db(*wide, 0x85 + (reg - R.R8) * 8)
        else:
            raise CodegenError(f"cannot load into {_reg_name(reg)}")
        self._dd(offset)

    def load_lvalue_address_to_register(self, dest: int, offset: int) -> None:
        """lea dest, [rbp + offset]."""
        if _is_old64(dest):
            self._db(0x48, 0x8D, 0x85 + (dest - R.RAX))
        elif _is_new64(dest):
            self._db(0x4C, 0x8D, 0x85 + (dest - R.R8))
        else:
            raise CodegenError(f"cannot load an address into {_reg_name(dest)}")
        self._dd(offset)

    def store_value_offset_from_register_to_stack(self, reg: int, offset: int, data_size: int) -> None:
        """mov [rbp + offset], reg; the full 64-bit register is stored."""
        if _is_old64(reg):
            self._db(0x48, 0x89, 0x85 + (reg - R.RAX) * 8)
        elif _is_new64(reg):
            self._db(0x4C, 0x89, 0x85 + (reg - R.R8) * 8)
        else:
            raise CodegenError(f"cannot store {_reg_name(reg)}")
        self._dd(offset)
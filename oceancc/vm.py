"""An interpreter for the small subset of 32-bit x86 machine code the compiler emits."""

from __future__ import annotations

import argparse
import enum
import logging
import os
from typing import Callable, Dict, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MEMORY_SIZE = 0xFFFF * 2
STACK_TOP = 0xFFFF

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1

SYS_EXIT = 0x1
SYS_WRITE = 0x4


class Register(enum.IntEnum):
    """Registers in x86 encoding order, followed by EIP and the flags register."""

    EAX = 0
    ECX = 1
    EDX = 2
    EBX = 3
    ESP = 4
    EBP = 5
    ESI = 6
    EDI = 7
    EIP = 8
    FLAGS = 9


class Flag(enum.IntFlag):
    ZERO = 0x40
    SIGN = 0x80
    OVERFLOW = 0x800


class VMStatus(enum.IntEnum):
    OK = 0
    HALT = 1
    ERR_UNHANDLED_OPERAND = 2
    ERR_INVALID_OPCODE = 3
    ERR_UNHANDLED_SYSCALL = 4


class VMError(Exception):
    """Execution failed; status is set for decoding and syscall errors."""

    def __init__(self, message: str, status: Optional[VMStatus] = None) -> None:
        super().__init__(message)
        self.status = status


def _wrap32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value > _INT32_MAX else value


def _name(reg: int) -> str:
    return Register(reg).name.lower()


def _os_write(fd: int, data: bytes) -> None:
    os.write(fd, data)


class VirtualMachine:
    """Runs machine code loaded at address 0; the loaded bytes are read-only."""

    def __init__(
        self,
        program: bytes,
        memory_size: int = MEMORY_SIZE,
        output: Optional[Callable[[int, bytes], None]] = None,
    ) -> None:
        program = bytes(program)
        if len(program) > memory_size:
            raise VMError(f"program of {len(program)} bytes does not fit in {memory_size} bytes of memory")
        self.memory = bytearray(memory_size)
        self.memory[: len(program)] = program
        self.readonly = len(program)
        self.registers = [0] * len(Register)
        self.registers[Register.ESP] = STACK_TOP
        self.output = output if output is not None else _os_write

    # memory -------------------------------------------------------------

    def _check(self, addr: int, size: int = 1) -> None:
        if addr < 0 or addr + size > len(self.memory):
            raise VMError(f"memory access out of range at {addr:#x}")

    def _read8(self, addr: int) -> int:
        self._check(addr)
        return self.memory[addr]

    def _read32(self, addr: int) -> int:
        self._check(addr, 4)
        return int.from_bytes(self.memory[addr:addr + 4], "little", signed=True)

    def _write8(self, addr: int, value: int, *, protect: bool = False) -> None:
        if protect and addr < self.readonly:
            raise VMError(f"write to read-only memory at {addr:#x}")
        self._check(addr)
        self.memory[addr] = value & 0xFF

    def _write32(self, addr: int, value: int) -> None:
        self._check(addr, 4)
        self.memory[addr:addr + 4] = (value & 0xFFFFFFFF).to_bytes(4, "little")

    # registers ----------------------------------------------------------

    def _set(self, reg: int, value: int) -> None:
        self.registers[reg] = _wrap32(value)

    def _get(self, reg: int) -> int:
        return self.registers[reg]

    def _set_flags(self, result: int) -> None:
        flags = 0
        if result < 0:
            flags |= Flag.SIGN
        if result == 0:
            flags |= Flag.ZERO
        self.registers[Register.FLAGS] = int(flags)

    def _flag(self, flag: Flag) -> bool:
        return bool(self.registers[Register.FLAGS] & flag)

    def _cmp(self, a: int, b: int) -> None:
        self._set_flags(_wrap32(a - b))
        if (a > 0 and b > _INT32_MAX - a) or (a < 0 and b < _INT32_MIN - a):
            self.registers[Register.FLAGS] |= Flag.OVERFLOW

    # fetching -----------------------------------------------------------

    def _fetch(self) -> int:
        eip = self._get(Register.EIP)
        byte = self._read8(eip)
        self._set(Register.EIP, eip + 1)
        logger.debug("0x%02X", byte)
        return byte

    def _fetch32(self) -> int:
        value = 0
        for shift in (0, 8, 16, 24):
            value |= self._fetch() << shift
        return _wrap32(value)

    def _modrm_registers(self, operand: int) -> Tuple[int, int]:
        if not 0xC0 <= operand <= 0xFF:
            raise VMError(f"invalid operand {operand:#x}", VMStatus.ERR_INVALID_OPCODE)
        operand -= 0xC0
        return operand % 8, operand // 8

    # stack --------------------------------------------------------------

    def _stack_address(self) -> int:
        esp = self._get(Register.ESP)
        if esp < self.readonly:
            raise VMError(f"stack pointer {esp:#x} points into read-only memory")
        return esp

    def push(self, reg: int) -> None:
        """Push a register's value onto the stack."""
        self._set(Register.ESP, self._get(Register.ESP) - 4)
        self._write32(self._stack_address(), self._get(reg))

    def pop(self, reg: int) -> int:
        """Pop the top of the stack into a register and return the value."""
        value = self._read32(self._stack_address())
        self._set(reg, value)
        self._set(Register.ESP, self._get(Register.ESP) + 4)
        return self._get(reg)

    # execution ----------------------------------------------------------

    def step(self) -> VMStatus:
        """Execute one instruction; return OK or HALT, raise VMError on failure."""
        opcode = self._fetch()
        if 0xB8 <= opcode <= 0xBF:
            reg = opcode - 0xB8
            value = self._fetch32()
            logger.debug("mov %s, 0x%x", _name(reg), value & 0xFFFFFFFF)
            self._set(reg, value)
        elif 0x40 <= opcode <= 0x47:
            reg = opcode - 0x40
            logger.debug("inc %s", _name(reg))
            self._set(reg, self._get(reg) + 1)
        elif 0x50 <= opcode <= 0x57:
            reg = opcode - 0x50
            logger.debug("push %s", _name(reg))
            self.push(reg)
        elif 0x58 <= opcode <= 0x5F:
            reg = opcode - 0x58
            logger.debug("pop %s", _name(reg))
            self.pop(reg)
        else:
            handler = _HANDLERS.get(opcode)
            if handler is None:
                logger.debug("invalid opcode %d (0x%x)", opcode, opcode)
                raise VMError(f"invalid opcode {opcode:#x}", VMStatus.ERR_INVALID_OPCODE)
            return handler(self) or VMStatus.OK
        return VMStatus.OK

    def run(self) -> int:
        """Execute until the program halts; return the number of instructions run."""
        steps = 0
        while True:
            status = self.step()
            steps += 1
            if status == VMStatus.HALT:
                return steps

    # instruction handlers -----------------------------------------------

    def _unhandled(self, operand: int) -> VMError:
        return VMError(f"unhandled operand {operand:#x}", VMStatus.ERR_UNHANDLED_OPERAND)

    def _op_mov_byte_ptr(self) -> None:
        operand = self._fetch()
        if operand != 0x03:
            raise self._unhandled(operand)
        self._write8(self._get(Register.EBX), self._get(Register.EAX))
        logger.debug("mov byte ptr [ebx], al")

    def _op_f7(self) -> None:
        operand = self._fetch()
        if operand == 0xD0:
            logger.debug("not eax")
            self._set(Register.EAX, ~self._get(Register.EAX))
        elif operand == 0xEE:
            logger.debug("imul esi")
            self._set(Register.EAX, self._get(Register.EAX) * self._get(Register.ESI))
        else:
            raise self._unhandled(operand)

    def _op_add(self) -> None:
        operand = self._fetch()
        if operand == 0x03:
            addr = self._get(Register.EBX)
            self._write32(addr, self._read32(addr) + self._get(Register.EAX))
            logger.debug("add [ebx], eax")
            return
        dst, src = self._modrm_registers(operand)
        self._set(dst, self._get(dst) + self._get(src))
        logger.debug("add %s, %s", _name(dst), _name(src))

    def _op_xor(self) -> None:
        dst, src = self._modrm_registers(self._fetch())
        self._set(dst, self._get(dst) ^ self._get(src))
        logger.debug("xor %s, %s", _name(dst), _name(src))

    def _op_sub(self) -> None:
        dst, src = self._modrm_registers(self._fetch())
        self._set(dst, self._get(dst) - self._get(src))
        logger.debug("sub %s, %s", _name(dst), _name(src))

    _MOVES: Dict[int, Tuple[Register, Register]] = {
        0xE5: (Register.EBP, Register.ESP),
        0xEC: (Register.ESP, Register.EBP),
        0xD8: (Register.EAX, Register.EBX),
        0xC1: (Register.ECX, Register.EAX),
        0xC3: (Register.EBX, Register.EAX),
    }

    def _op_mov(self) -> None:
        operand = self._fetch()
        if operand == 0x03:
            logger.debug("mov [ebx], eax")
            self._write8(self._get(Register.EBX), self._get(Register.EAX), protect=True)
            return
        move = self._MOVES.get(operand)
        if move is None:
            raise self._unhandled(operand)
        dst, src = move
        logger.debug("mov %s, %s", _name(dst), _name(src))
        self._set(dst, self._get(src))

    def _op_81(self) -> None:
        operand = self._fetch()
        if operand == 0xC3:
            value = self._fetch32()
            self._set(Register.EBX, self._get(Register.EBX) + value)
            logger.debug("add ebx, 0x%x", value & 0xFFFFFFFF)
        elif operand == 0xEC:
            value = self._fetch32()
            self._set(Register.ESP, self._get(Register.ESP) - value)
            logger.debug("sub esp, 0x%x", value & 0xFFFFFFFF)
        else:
            raise self._unhandled(operand)

    def _op_ff(self) -> None:
        operand = self._fetch()
        if operand == 0x15:
            addr = self._fetch32()
            logger.debug("call dword [0x%x]", addr & 0xFFFFFFFF)
            self.push(Register.EIP)
        elif operand == 0xD0:
            self.push(Register.EIP)
            self._set(Register.EIP, self._get(Register.EAX))
            logger.debug("call eax")
        elif 0x00 <= operand <= 0x07:
            addr = self._get(operand)
            self._write32(addr, self._read32(addr) + 1)
            logger.debug("inc [%s]", _name(operand))
        else:
            raise VMError(f"invalid operand {operand:#x}", VMStatus.ERR_INVALID_OPCODE)

    def _op_ret(self) -> None:
        logger.debug("ret")
        self.pop(Register.EIP)

    def _op_call(self) -> None:
        rel = self._fetch32()
        logger.debug("call 0x%x", rel & 0xFFFFFFFF)
        self.push(Register.EIP)
        self._set(Register.EIP, self._get(Register.EIP) + rel)

    def _op_83(self) -> None:
        operand = self._fetch()
        if operand == 0xF8:
            value = self._fetch()
            logger.debug("cmp eax, 0x%x", value)
            self._cmp(self._get(Register.EAX), value)
        elif operand == 0xC4:
            value = self._fetch()
            logger.debug("add esp, 0x%x", value)
            self._set(Register.ESP, self._get(Register.ESP) + value)
        else:
            raise self._unhandled(operand)

    def _op_cmp(self) -> None:
        operand = self._fetch()
        if operand != 0xC8:
            raise self._unhandled(operand)
        logger.debug("cmp eax, ecx")
        self._cmp(self._get(Register.EAX), self._get(Register.ECX))

    def _ebp_register(self, operand: int, status: VMStatus) -> Tuple[int, int]:
        if operand < 0x85 or operand > 0x85 + 64:
            raise VMError(f"unhandled operand {operand:#x}", status)
        return (operand - 0x85) // 8, self._fetch32()

    def _op_load(self) -> None:
        operand = self._fetch()
        if operand == 0x1B:
            logger.debug("mov ebx, [ebx]")
            self._set(Register.EBX, self._read8(self._get(Register.EBX)))
        elif operand == 0x03:
            logger.debug("mov eax, [ebx]")
            self._set(Register.EAX, self._read8(self._get(Register.EBX)))
        else:
            reg, offset = self._ebp_register(operand, VMStatus.ERR_UNHANDLED_OPERAND)
            logger.debug("mov %s, [ebp + 0x%x]", _name(reg), offset & 0xFFFFFFFF)
            self._set(reg, self._read8(self._get(Register.EBP) + offset))

    def _op_lea(self) -> None:
        operand = self._fetch()
        if operand == 0x13:
            logger.debug("lea edx, [ebx]")
            self._set(Register.EDX, self._get(Register.EBX))
        else:
            reg, offset = self._ebp_register(operand, VMStatus.ERR_INVALID_OPCODE)
            logger.debug("lea %s, [ebp + 0x%x]", _name(reg), offset & 0xFFFFFFFF)
            self._set(reg, self._get(Register.EBP) + offset)

    def _op_int(self) -> Optional[VMStatus]:
        operand = self._fetch()
        if operand != 0x80:
            raise self._unhandled(operand)
        logger.debug("int 0x80")
        number = self._get(Register.EAX)
        if number == SYS_EXIT:
            return VMStatus.HALT
        if number == SYS_WRITE:
            addr = self._get(Register.ECX)
            length = self._get(Register.EDX)
            if length < 0:
                raise VMError(f"invalid write length {length}")
            self._check(addr, length)
            self.output(self._get(Register.EBX), bytes(self.memory[addr:addr + length]))
            return None
        raise VMError(f"unhandled syscall {number}", VMStatus.ERR_UNHANDLED_SYSCALL)

    def _op_jmp32(self) -> None:
        rel = self._fetch32()
        logger.debug("jmp %x (%d)", (rel + 5) & 0xFFFFFFFF, rel + 5)
        self._set(Register.EIP, self._get(Register.EIP) + rel)

    def _op_test(self) -> None:
        dst, src = self._modrm_registers(self._fetch())
        self._set_flags(self._get(dst) & self._get(src))
        logger.debug("test %s, %s", _name(dst), _name(src))

    def _op_0f(self) -> None:
        operand = self._fetch()
        if operand == 0xB6:
            sub = self._fetch()
            if sub == 0xC0:
                logger.debug("movzx eax, al")
                self._set(Register.EAX, self._get(Register.EAX) & 0xFF)
            elif sub == 0x03:
                logger.debug("movzx eax, byte [ebx]")
                self._set(Register.EAX, self._read8(self._get(Register.EBX)))
        elif operand == 0x84:
            rel = self._fetch32()
            logger.debug("jz %x (%d)", (rel + 6) & 0xFFFFFFFF, rel + 6)
            if self._flag(Flag.ZERO):
                self._set(Register.EIP, self._get(Register.EIP) + rel)
        else:
            raise self._unhandled(operand)

    def _op_jge8(self) -> None:
        rel = self._fetch()
        logger.debug("jge %x (%d)", rel + 2, rel + 2)
        if self._flag(Flag.OVERFLOW) == self._flag(Flag.SIGN):
            self._set(Register.EIP, self._get(Register.EIP) + rel)

    def _op_jne8(self) -> None:
        rel = self._fetch()
        logger.debug("jne %x (%d)", rel + 2, rel + 2)
        if not self._flag(Flag.ZERO):
            self._set(Register.EIP, self._get(Register.EIP) + rel)

    def _op_jmp8(self) -> None:
        rel = self._fetch()
        logger.debug("jmp %x (%d)", rel + 2, rel + 2)
        self._set(Register.EIP, self._get(Register.EIP) + rel)

    def _op_hlt(self) -> VMStatus:
        return VMStatus.HALT

    def _op_nop(self) -> None:
        logger.debug("nop")


_HANDLERS: Dict[int, Callable[[VirtualMachine], Optional[VMStatus]]] = {
    0x88: VirtualMachine._op_mov_byte_ptr,
    0xF7: VirtualMachine._op_f7,
    0x01: VirtualMachine._op_add,
    0x31: VirtualMachine._op_xor,
    0x29: VirtualMachine._op_sub,
    0x89: VirtualMachine._op_mov,
    0x81: VirtualMachine._op_81,
    0xFF: VirtualMachine._op_ff,
    0xC3: VirtualMachine._op_ret,
    0xE8: VirtualMachine._op_call,
    0x83: VirtualMachine._op_83,
    0x39: VirtualMachine._op_cmp,
    0x8B: VirtualMachine._op_load,
    0x8D: VirtualMachine._op_lea,
    0xCD: VirtualMachine._op_int,
    0xE9: VirtualMachine._op_jmp32,
    0x85: VirtualMachine._op_test,
    0x0F: VirtualMachine._op_0f,
    0x7D: VirtualMachine._op_jge8,
    0x75: VirtualMachine._op_jne8,
    0xEB: VirtualMachine._op_jmp8,
    0xF4: VirtualMachine._op_hlt,
    0x90: VirtualMachine._op_nop,
}


def _hex_digit(ch: str) -> int:
    if "0" <= ch <= "9":
        return ord(ch) - ord("0")
    if "a" <= ch <= "f":
        return ord(ch) - ord("a") + 10
    if "A" <= ch <= "F":
        return ord(ch) - ord("A") + 10
    return 0


def hex2dec(text: str) -> int:
    """Parse hex digits after an optional 'x'; other characters count as 0."""
    if "x" in text:
        text = text[text.index("x") + 1:]
    total = 0
    for ch in text:
        total = (total << 4) + _hex_digit(ch)
    return total


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run hex-encoded x86 machine code.")
    parser.add_argument("-v", dest="verbose", action="store_true", help="trace each instruction")
    parser.add_argument("code", nargs="*", help="bytes of the program, in hex")
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s")

    program = bytes(hex2dec(item) & 0xFF for item in args.code)
    try:
        vm = VirtualMachine(program)
        vm.run()
    except VMError as err:
        if err.status is not None:
            print(f"Error: {int(err.status)}")
        else:
            print(f"Error: {err}")
        return 1
    return 0
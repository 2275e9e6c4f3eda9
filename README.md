# oceancc

Building blocks for compiling a subset of C to x86 and x86-64 machine code.
Each module can be used on its own:

- `oceancc.tokens`: `TokenType`, `Token` and `token_type_to_string`.
- `oceancc.lexer`: `Lexer` (iterate it, or call `next_token()`) and
  `tokenize(data, flags)`; `LexFlag` selects newline tokens, backslash tokens
  and whether keywords are reported as plain identifiers. Malformed input
  raises `ValueError`.
- `oceancc.preprocessor`: `#include`, `#define` (including function-like
  macros whose arguments are single identifiers, integers or strings),
  `#ifdef`, `#ifndef`, `#if` (an integer or an identifier only), `#undef` and
  `#endif`. Use `preprocess_source(...)`, `preprocess_file(...)` or the
  `Preprocessor` class; errors raise `PreprocessError`.
- `oceancc.ir`: virtual instructions (`Instruction`, `Opcode`), operands
  (`Operand` and constructor functions such as `imm32_operand`,
  `register_operand`) and `Immediate`.
- `oceancc.x86`: `encode_instructions` turns call, push, alloca, enter and
  leave into 32-bit x86 code; anything else raises `UnsupportedInstruction`.
- `oceancc.x64regs`: x86-64 register tables and REX prefix helpers.
- `oceancc.x64`: `X64CodeGen`, a register allocator and encoder for a handful
  of x86-64 instructions (push, pop, nop, mov, add, xor, sub, stack loads and
  stores); unencodable registers raise `CodegenError`.
- `oceancc.binbuf`: little-endian byte helpers for `bytearray`s.
- `oceancc.elf`: `build_elf32_image` and `build_elf64_image` turn a
  `ProgramImage` (code, data and `Relocation`s) into an executable;
  `find_code_segment` reads the executable segment of an ELF64 file.
  The 64-bit builder requires a non-empty data section.
- `oceancc.pe`: `build_pe_image` builds a fixed 32-bit PE executable whose
  code is `push 0x7f; pop eax; ret`.
- `oceancc.vm`: `VirtualMachine`, an interpreter for a subset of 32-bit x86
  opcodes, supporting the `exit` and `write` system calls via `int 0x80`.

## Installation

```
pip install .
```

Python 3.10 or newer is required; the package has no runtime dependencies.

## Library use

```python
from oceancc.lexer import LexFlag, tokenize
from oceancc.tokens import token_type_to_string

for token in tokenize("int main() { return 123; }", LexFlag.NONE):
    print(token_type_to_string(token.type))
```

```python
from oceancc.preprocessor import preprocess_source

text = preprocess_source("#define N 3\nint x = N;\n", "", [], None, False)
```

```python
from oceancc.vm import Register, VirtualMachine

# mov eax, 1 ; int 0x80  (exit)
machine = VirtualMachine(bytes([0xB8, 1, 0, 0, 0, 0xCD, 0x80]), 0xFFFF * 2, None)
steps = machine.run()           # number of instructions executed
print(machine.registers[Register.EAX])
```

`VirtualMachine.run` executes until the program halts and raises `VMError`
on an invalid opcode, an unhandled operand or system call, or a bad memory
access.

## Commands

Preprocess a file and print the result; `examples/include/` is always
searched, `-I<dir>` adds another include directory and `-v` turns on verbose
output:

```
oceancc-pre -Iexamples/include/ program.c
```

Print the bytes of the executable segment of an ELF64 image as hex:

```
oceancc-dump a.out
```

Run x86 machine code given as hex bytes in the virtual machine (`-v` logs
each instruction):

```
oceancc-vm b8 01 00 00 00 cd 80
```

## What it does not do

There is no parser or syntax tree and no command that compiles a C file into
an executable: the lexer, preprocessor, encoders and image writers have to be
combined by the caller. The x86 and x86-64 encoders cover only the
instructions listed above.

## Running the tests

```
pip install .[test]
pytest
```
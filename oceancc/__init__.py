"""Lexer, preprocessor, x86/x86-64 encoders, executable image writers and an x86 VM for a small C compiler."""

__version__ = "0.1.0"

__all__ = [
    "binbuf",
    "elf",
    "ir",
    "lexer",
    "pe",
    "preprocessor",
    "tokens",
    "vm",
    "x64",
    "x64regs",
    "x86",
]
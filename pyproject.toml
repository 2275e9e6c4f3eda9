[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oceancc"
version = "0.1.0"
description = "Pieces of a small C compiler: lexer, preprocessor, x86/x86-64 encoders, ELF/PE image writers and an x86 opcode VM"
requires-python = ">=3.10"
dependencies = []
keywords = ["compiler", "c", "lexer", "preprocessor", "elf", "pe", "x86", "x86-64", "virtual-machine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Compilers",
    "Topic :: Software Development :: Pre-processors",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
oceancc-pre = "oceancc.preprocessor:main"
oceancc-dump = "oceancc.elf:main"
oceancc-vm = "oceancc.vm:main"

[tool.hatch.build.targets.wheel]
packages = ["oceancc"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true

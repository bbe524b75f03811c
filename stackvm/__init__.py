"""
stackvm — Minimal Stack-Based Bytecode Virtual Machine
======================================================
A 19-opcode stack machine: an instruction encoding, an assembler that
lowers symbolic instructions to a flat integer image, and an interpreter
that runs the image against a fixed-size cell memory and an operand stack.

Architecture:
    ┌──────────────┐    ┌───────────┐    ┌─────────────┐    ┌──────────────┐
    │ Instructions │───>│ Assembler │───>│ Image       │───>│ VirtualMach. │───> PRINT output
    │ (or .svm)    │    │           │    │ (list[int]) │    │ (ip, stack)  │
    └──────────────┘    └───────────┘    └─────────────┘    └──────────────┘

    - opcodes.py:      Opcode ids, operand counts, fallible decode
    - instructions.py: One frozen dataclass per opcode
    - assembler.py:    Instruction -> image lowering, disassembly, text parser
    - memory.py:       Bounds-checked fixed-size cell memory
    - vm.py:           Fetch / decode / execute loop
    - profiles.py:     Machine profiles, image file I/O
    - errors.py:       Fatal condition taxonomy
"""

__version__ = "0.1.0"

from typing import Callable, List, Optional, Sequence

from .opcodes import Opcode, OPCODES, arity, decode_opcode
from .instructions import *
from .assembler import (
    Assembler, assemble, assemble_source, disassemble, format_listing, parse_source,
)
from .errors import (
    AssemblerError, VMError, InvalidOpcode, StackUnderflow, DivisionByZero,
    AddressOutOfRange, ProgramTooLarge, ReturnAddressMismatch, StepLimitExceeded,
)
from .memory import Memory
from .profiles import VMProfile, PROFILES, get_profile
from .vm import VirtualMachine, StopReason


def run_program(image: Sequence[int], *, profile: Optional[VMProfile] = None,
                on_print: Optional[Callable[[int], None]] = None) -> List[int]:
    """Load an image into a fresh machine, run it to HALT, return PRINT output.

    Values are collected without writing to stdout unless on_print is given.
    A profile with max_steps set bounds the run; running out of steps raises
    StepLimitExceeded.
    """
    profile = profile or PROFILES["default"]
    vm = VirtualMachine.from_profile(profile, on_print=on_print or (lambda value: None))
    vm.load_program(image)
    if vm.run(max_steps=profile.max_steps) is StopReason.STEP_LIMIT:
        raise StepLimitExceeded(profile.max_steps, vm.ip)
    return list(vm.output)

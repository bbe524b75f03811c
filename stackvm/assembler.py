"""
Stack VM Assembler.

Lowers a sequence of Instruction objects into a flat program image:
for every instruction, its opcode id followed by its operand (if any).

Input:  list of Instruction (see instructions.py), or assembly text
Output: list[int] program image, loadable at address 0

The lowering is 1:1 and order-preserving. There is no label resolution,
no peephole pass and no range checking of jump targets; addresses in
operands are absolute image offsets supplied by the caller, and a bad
target only shows up when the interpreter jumps there.

Text syntax (one instruction per line, case-insensitive):

    PUSH 6        ; comment
    push $1F      ; hex: $1F or 0x1F, binary: %1010, negative: -3
    JLE 14        ; JUMPIFLESSTHANOREQUAL 14 also works
    HALT
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .errors import AssemblerError
from .instructions import Instruction, make_instruction
from .opcodes import OPCODES, decode_opcode, lookup_mnemonic

__all__ = [
    'Assembler', 'assemble', 'disassemble', 'format_listing',
    'parse_source', 'assemble_source', 'parse_number',
]


class Assembler:
    """Accumulating instruction lowerer.

    Usage:
        asm = Assembler()
        asm.assemble([Push(1), Push(2), Add(), Print(), Halt()])
        asm.machine_code  # [1, 1, 1, 2, 3, 16, 0]

    Successive assemble() calls append to machine_code; reset() clears it.
    """

    def __init__(self):
        self.machine_code: List[int] = []

    def assemble(self, instructions: Iterable[Instruction]) -> List[int]:
        """Append the encoding of each instruction, in order. Returns machine_code."""
        for instruction in instructions:
            self.machine_code.append(int(instruction.opcode))
            if instruction.operand is not None:
                self.machine_code.append(instruction.operand)
        return self.machine_code

    def reset(self):
        self.machine_code = []

    def get_listing(self) -> str:
        """Human-readable listing of the accumulated machine code."""
        return format_listing(self.machine_code)


# ──────────────────────────────────────────────
# Image decoding
# ──────────────────────────────────────────────

def disassemble(image: Sequence[int]) -> List[Instruction]:
    """Re-decode a program image into instructions.

    Raises InvalidOpcode for an unknown tag and AssemblerError when the
    image ends in the middle of an instruction.
    """
    instructions = []
    addr = 0
    while addr < len(image):
        opcode = decode_opcode(image[addr], addr)
        if addr + opcode.width > len(image):
            raise AssemblerError(
                f"{opcode.mnemonic} at address {addr}: image ends before its operand"
            )
        operand = image[addr + 1] if opcode.arity else None
        instructions.append(make_instruction(opcode, operand))
        addr += opcode.width
    return instructions


def format_listing(image: Sequence[int]) -> str:
    """Address / raw cells / source listing of a program image."""
    lines = [f"{'ADDR':>6}  {'CELLS':<16}  SOURCE", "-" * 50]
    addr = 0
    for instruction in disassemble(image):
        cells = instruction.encode()
        raw = ' '.join(str(v) for v in cells)
        lines.append(f"{addr:>6}  {raw:<16}  {instruction}")
        addr += len(cells)
    return '\n'.join(lines)


# ──────────────────────────────────────────────
# Text front-end
# ──────────────────────────────────────────────

@dataclass
class AsmLine:
    """Parsed assembly source line."""
    mnemonic: Optional[str] = None
    operand: Optional[str] = None
    comment: Optional[str] = None
    line_num: int = 0
    raw: str = ""


def _parse_line(line: str, line_num: int) -> AsmLine:
    result = AsmLine(line_num=line_num, raw=line)

    text, sep, comment = line.partition(';')
    if sep:
        result.comment = comment.strip()
    text = text.strip()
    if not text:
        return result

    parts = text.split()
    if len(parts) > 2:
        raise AssemblerError(f"Too many operands: {text}", line_num, line)
    result.mnemonic = parts[0].upper()
    if len(parts) == 2:
        result.operand = parts[1]
    return result


_NUMBER = re.compile(
    r'(-?)(?:\$([0-9A-Fa-f]+)|0[xX]([0-9A-Fa-f]+)|%([01]+)|([0-9]+))'
)


def parse_number(text: str) -> int:
    """Parse a numeric literal.
    Supports: $FF (hex), 0xFF, %1010 (binary), 123 (decimal), optional leading '-'

    Raises ValueError for anything else, including signs or underscores
    after a prefix.
    """
    m = _NUMBER.fullmatch(text)
    if m is None:
        raise ValueError(f"Malformed number: '{text}'")
    sign, hex1, hex2, binary, decimal = m.groups()
    if hex1 or hex2:
        value = int(hex1 or hex2, 16)
    elif binary:
        value = int(binary, 2)
    else:
        value = int(decimal, 10)
    return -value if sign else value


def _parse_value(text: str, line_num: int) -> int:
    try:
        return parse_number(text)
    except ValueError:
        raise AssemblerError(f"Malformed number: '{text}'", line_num) from None


def parse_source(source: str) -> List[Instruction]:
    """Parse assembly text into instructions.

    Errors raise AssemblerError with the offending line number.
    """
    instructions = []
    for i, raw in enumerate(source.split('\n'), 1):
        line = _parse_line(raw, i)
        if line.mnemonic is None:
            continue
        opcode = lookup_mnemonic(line.mnemonic, i)
        expected = OPCODES[opcode][1]
        if expected and line.operand is None:
            raise AssemblerError(f"{opcode.mnemonic}: missing operand", i, raw)
        if not expected and line.operand is not None:
            raise AssemblerError(f"{opcode.mnemonic}: takes no operand", i, raw)
        operand = _parse_value(line.operand, i) if expected else None
        instructions.append(make_instruction(opcode, operand))
    return instructions


# ──────────────────────────────────────────────
# Convenience functions
# ──────────────────────────────────────────────

def assemble(instructions: Iterable[Instruction]) -> List[int]:
    """Lower instructions into a fresh program image."""
    return Assembler().assemble(instructions)


def assemble_source(source: str) -> List[int]:
    """Parse assembly text and lower it into a program image."""
    return assemble(parse_source(source))

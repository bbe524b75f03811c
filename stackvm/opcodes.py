"""
Stack VM — Opcode Table

Maps numeric opcode ids to (mnemonic, operand count). The ids are the
program image format shared by the assembler and the interpreter, so they
are fixed:

  $00 HALT    $05 MUL    $0A JLT    $0F RET
  $01 PUSH    $06 DIV    $0B JGT    $10 PRINT
  $02 POP     $07 JMP    $0C JLE    $11 STORE
  $03 ADD     $08 JEQ    $0D JGE    $12 LOAD
  $04 SUB     $09 JNE    $0E CALL

Memory cells are plain integers with no type tag, so every fetch goes
through decode_opcode() which rejects anything outside the table.
"""

from __future__ import annotations
from enum import IntEnum
from typing import Dict, Optional

from .errors import AssemblerError, InvalidOpcode

__all__ = ['Opcode', 'OPCODES', 'MNEMONICS', 'arity', 'decode_opcode', 'lookup_mnemonic']


class Opcode(IntEnum):
    HALT = 0x00
    PUSH = 0x01
    POP = 0x02
    ADD = 0x03
    SUB = 0x04
    MUL = 0x05
    DIV = 0x06
    JUMP = 0x07
    JUMP_IF_EQUAL = 0x08
    JUMP_IF_NOT_EQUAL = 0x09
    JUMP_IF_LESS_THAN = 0x0A
    JUMP_IF_GREATER_THAN = 0x0B
    JUMP_IF_LESS_THAN_OR_EQUAL = 0x0C
    JUMP_IF_GREATER_THAN_OR_EQUAL = 0x0D
    CALL = 0x0E
    RETURN = 0x0F
    PRINT = 0x10
    STORE = 0x11
    LOAD = 0x12

    @property
    def arity(self) -> int:
        """Number of inline operand cells following the opcode."""
        return OPCODES[self][1]

    @property
    def width(self) -> int:
        """Total cells occupied in the image (opcode + operands)."""
        return 1 + OPCODES[self][1]

    @property
    def mnemonic(self) -> str:
        return OPCODES[self][0]


# ──────────────────────────────────────────────
# Opcode table
# ──────────────────────────────────────────────
# Format: opcode -> (mnemonic, operand_count)

OPCODES: Dict[Opcode, tuple] = {
    Opcode.HALT:                          ('HALT',  0),
    Opcode.PUSH:                          ('PUSH',  1),
    Opcode.POP:                           ('POP',   0),
    Opcode.ADD:                           ('ADD',   0),
    Opcode.SUB:                           ('SUB',   0),
    Opcode.MUL:                           ('MUL',   0),
    Opcode.DIV:                           ('DIV',   0),
    Opcode.JUMP:                          ('JMP',   1),
    Opcode.JUMP_IF_EQUAL:                 ('JEQ',   1),
    Opcode.JUMP_IF_NOT_EQUAL:             ('JNE',   1),
    Opcode.JUMP_IF_LESS_THAN:             ('JLT',   1),
    Opcode.JUMP_IF_GREATER_THAN:          ('JGT',   1),
    Opcode.JUMP_IF_LESS_THAN_OR_EQUAL:    ('JLE',   1),
    Opcode.JUMP_IF_GREATER_THAN_OR_EQUAL: ('JGE',   1),
    Opcode.CALL:                          ('CALL',  1),
    Opcode.RETURN:                        ('RET',   0),
    Opcode.PRINT:                         ('PRINT', 0),
    Opcode.STORE:                         ('STORE', 1),
    Opcode.LOAD:                          ('LOAD',  1),
}

# Mnemonic -> opcode, including the enum spellings accepted by the text
# front-end (JUMPIFEQUAL, RETURN, LOAD, ...).
MNEMONICS: Dict[str, Opcode] = {}

def _alias(name: str, opcode: Opcode):
    MNEMONICS[name.upper()] = opcode

for _opcode, (_mnem, _) in OPCODES.items():
    _alias(_mnem, _opcode)
    _alias(_opcode.name.replace('_', ''), _opcode)


def arity(opcode: Opcode) -> int:
    """Operand count for an opcode."""
    return OPCODES[opcode][1]


def decode_opcode(value: int, address: Optional[int] = None) -> Opcode:
    """Decode a memory cell into an Opcode.

    Raises InvalidOpcode for any value outside $00-$12. bool is rejected
    too, since True/False would otherwise slip through as 1/0.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidOpcode(value, address)
    try:
        return Opcode(value)
    except ValueError:
        raise InvalidOpcode(value, address) from None


def lookup_mnemonic(name: str, line_num: int = 0) -> Opcode:
    """Resolve an assembly mnemonic (case-insensitive)."""
    opcode = MNEMONICS.get(name.upper())
    if opcode is None:
        raise AssemblerError(f"Unknown mnemonic: {name}", line_num)
    return opcode

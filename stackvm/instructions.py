"""
Symbolic instruction definitions for the stack VM.

One frozen dataclass per opcode. Instructions are built by the caller,
lowered by the assembler and rebuilt by the disassembler; the interpreter
never sees them. Address-bearing variants carry an absolute image offset
that must point at the opcode cell of the target instruction.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import ClassVar, Dict, Optional, Tuple, Type

from .opcodes import Opcode

__all__ = [
    'Instruction',
    'Halt', 'Push', 'Pop', 'Add', 'Sub', 'Mul', 'Div',
    'Jump', 'JumpIfEqual', 'JumpIfNotEqual', 'JumpIfLessThan',
    'JumpIfGreaterThan', 'JumpIfLessThanOrEqual', 'JumpIfGreaterThanOrEqual',
    'Call', 'Return', 'Print', 'Store', 'Load',
    'INSTRUCTION_TYPES', 'make_instruction',
]


@dataclass(frozen=True)
class Instruction:
    """Base class for all instruction variants."""
    opcode: ClassVar[Opcode]

    @property
    def operand(self) -> Optional[int]:
        """Inline operand, or None for zero-operand instructions."""
        return None

    def encode(self) -> Tuple[int, ...]:
        """Image cells for this instruction: opcode id then operand."""
        if self.operand is None:
            return (int(self.opcode),)
        return (int(self.opcode), self.operand)

    def __str__(self) -> str:
        if self.operand is None:
            return self.opcode.mnemonic
        return f"{self.opcode.mnemonic} {self.operand}"


@dataclass(frozen=True)
class _AddressInstruction(Instruction):
    address: int

    @property
    def operand(self) -> Optional[int]:
        return self.address


# ──────────────────────────────────────────────
# Zero-operand instructions
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Halt(Instruction):
    opcode: ClassVar[Opcode] = Opcode.HALT


@dataclass(frozen=True)
class Pop(Instruction):
    opcode: ClassVar[Opcode] = Opcode.POP


@dataclass(frozen=True)
class Add(Instruction):
    opcode: ClassVar[Opcode] = Opcode.ADD


@dataclass(frozen=True)
class Sub(Instruction):
    """b - a, where a is the top of stack."""
    opcode: ClassVar[Opcode] = Opcode.SUB


@dataclass(frozen=True)
class Mul(Instruction):
    opcode: ClassVar[Opcode] = Opcode.MUL


@dataclass(frozen=True)
class Div(Instruction):
    """b / a, where a is the top of stack."""
    opcode: ClassVar[Opcode] = Opcode.DIV


@dataclass(frozen=True)
class Return(Instruction):
    opcode: ClassVar[Opcode] = Opcode.RETURN


@dataclass(frozen=True)
class Print(Instruction):
    opcode: ClassVar[Opcode] = Opcode.PRINT


# ──────────────────────────────────────────────
# One-operand instructions
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Push(Instruction):
    value: int
    opcode: ClassVar[Opcode] = Opcode.PUSH

    @property
    def operand(self) -> Optional[int]:
        return self.value


@dataclass(frozen=True)
class Jump(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP


@dataclass(frozen=True)
class JumpIfEqual(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_EQUAL


@dataclass(frozen=True)
class JumpIfNotEqual(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_NOT_EQUAL


@dataclass(frozen=True)
class JumpIfLessThan(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_LESS_THAN


@dataclass(frozen=True)
class JumpIfGreaterThan(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_GREATER_THAN


@dataclass(frozen=True)
class JumpIfLessThanOrEqual(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_LESS_THAN_OR_EQUAL


@dataclass(frozen=True)
class JumpIfGreaterThanOrEqual(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.JUMP_IF_GREATER_THAN_OR_EQUAL


@dataclass(frozen=True)
class Call(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.CALL


@dataclass(frozen=True)
class Store(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.STORE


@dataclass(frozen=True)
class Load(_AddressInstruction):
    opcode: ClassVar[Opcode] = Opcode.LOAD


INSTRUCTION_TYPES: Dict[Opcode, Type[Instruction]] = {
    cls.opcode: cls
    for cls in (
        Halt, Push, Pop, Add, Sub, Mul, Div,
        Jump, JumpIfEqual, JumpIfNotEqual, JumpIfLessThan,
        JumpIfGreaterThan, JumpIfLessThanOrEqual, JumpIfGreaterThanOrEqual,
        Call, Return, Print, Store, Load,
    )
}


def make_instruction(opcode: Opcode, operand: Optional[int] = None) -> Instruction:
    """Build the instruction variant for an opcode.

    The operand must be given exactly when the opcode takes one.
    """
    cls = INSTRUCTION_TYPES[opcode]
    if opcode.arity == 0:
        if operand is not None:
            raise ValueError(f"{opcode.mnemonic} takes no operand")
        return cls()
    if operand is None:
        raise ValueError(f"{opcode.mnemonic} requires an operand")
    return cls(operand)

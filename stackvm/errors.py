"""
Exception types for the stack VM toolchain.

Every runtime condition below is fatal for the current run: the interpreter
raises immediately and leaves recovery (if any) to the host.
"""

from __future__ import annotations
from typing import Optional

__all__ = [
    'AssemblerError',
    'VMError',
    'InvalidOpcode',
    'StackUnderflow',
    'DivisionByZero',
    'AddressOutOfRange',
    'ProgramTooLarge',
    'ReturnAddressMismatch',
    'StepLimitExceeded',
]


class AssemblerError(Exception):
    """Raised on assembly / disassembly errors."""
    def __init__(self, message: str, line_num: int = 0, line_text: str = ""):
        self.line_num = line_num
        self.line_text = line_text
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


class VMError(Exception):
    """Base class for fatal interpreter conditions."""


class InvalidOpcode(VMError):
    """Memory cell at the instruction pointer is not a known opcode."""
    def __init__(self, value: int, address: Optional[int] = None):
        self.value = value
        self.address = address
        where = f" at address {address}" if address is not None else ""
        super().__init__(f"invalid opcode {value}{where}")


class StackUnderflow(VMError):
    def __init__(self, opcode: str, address: int, needed: int, available: int):
        self.opcode = opcode
        self.address = address
        self.needed = needed
        self.available = available
        super().__init__(
            f"stack underflow at address {address}: {opcode} needs {needed} "
            f"value(s), stack holds {available}"
        )


class DivisionByZero(VMError):
    def __init__(self, address: int):
        self.address = address
        super().__init__(f"division by zero at address {address}")


class AddressOutOfRange(VMError):
    """Fetch, operand fetch, Store or Load outside [0, capacity)."""
    def __init__(self, address: int, capacity: int):
        self.address = address
        self.capacity = capacity
        super().__init__(f"address {address} outside memory [0, {capacity})")


class ProgramTooLarge(VMError):
    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(
            f"program image of {size} cells does not fit in {capacity} cells of memory"
        )


class StepLimitExceeded(VMError):
    """Host-side step budget ran out before HALT."""
    def __init__(self, max_steps: int, address: int):
        self.max_steps = max_steps
        self.address = address
        super().__init__(f"step limit of {max_steps} reached at address {address}")


class ReturnAddressMismatch(VMError):
    """Return popped a value that the matching Call did not push.

    Only raised when the machine runs with return checking enabled.
    """
    def __init__(self, address: int, expected: Optional[int], actual: int):
        self.address = address
        self.expected = expected
        self.actual = actual
        if expected is None:
            detail = "no Call is pending"
        else:
            detail = f"expected return address {expected}"
        super().__init__(
            f"Return at address {address} popped {actual}: {detail}"
        )

"""
Stack VM — Interpreter

Owns an instruction pointer, an operand stack and a flat cell memory.

Execution model, one step():
  1. Fetch the cell at ip and decode it (InvalidOpcode if unknown)
  2. Fetch the inline operand at ip+1 for one-operand opcodes
  3. Run the handler; it either returns a branch target or None
  4. ip = target, or ip + width when the handler returned None
  5. HALT leaves ip on the HALT cell and marks the machine halted

Operand order: the most recently pushed value is popped first and called
`a`, the value under it `b`. SUB computes b - a, DIV b / a, and the
conditional jumps test `a <rel> b`.

The stack is shared by data values and CALL return addresses. RET jumps to
whatever is on top, so a subroutine must leave the stack exactly as deep as
it found it (return address on top) before RET. With check_returns=True a
shadow list of return addresses catches violations as
ReturnAddressMismatch instead of jumping into data.

Fatal conditions (see errors.py) propagate to the caller immediately; the
machine state is left as it was just before the failing instruction.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from .errors import (
    AddressOutOfRange, DivisionByZero, ReturnAddressMismatch, StackUnderflow,
)
from .memory import Memory
from .opcodes import Opcode, decode_opcode
from .profiles import VMProfile

log = logging.getLogger(__name__)


class StopReason(Enum):
    HALT = 'HALT'
    STEP_LIMIT = 'STEP_LIMIT'


def _emit_stdout(value: int):
    print(value, flush=True)


def _truncating_div(b: int, a: int) -> int:
    """Integer division rounding toward zero (not Python's floor division)."""
    q = abs(b) // abs(a)
    return -q if (a < 0) != (b < 0) else q


class VirtualMachine:
    """Stack-based bytecode interpreter.

    Usage:
        vm = VirtualMachine(stack_capacity=1024, memory_capacity=1024)
        vm.load_program(assemble([Push(1), Push(2), Add(), Print(), Halt()]))
        vm.execute()
        vm.output  # [3]
    """

    def __init__(self, stack_capacity: int, memory_capacity: int, *,
                 on_print: Optional[Callable[[int], None]] = None,
                 print_consumes: bool = False,
                 check_returns: bool = False):
        if stack_capacity < 0:
            raise ValueError(f"stack capacity must be >= 0, got {stack_capacity}")

        self.memory = Memory(memory_capacity)
        # Sizing hint only; the stack itself starts empty.
        self.stack_capacity = stack_capacity
        self.stack: List[int] = []
        self.ip: int = 0

        self.print_consumes = print_consumes
        self.check_returns = check_returns
        self.output: List[int] = []
        self._on_print = on_print if on_print is not None else _emit_stdout

        self.steps: int = 0
        self.halted: bool = False
        self._return_addresses: List[int] = []

        # Current instruction, for error reporting
        self._pc: int = 0
        self._op: Opcode = Opcode.HALT

        self._trace = False
        self._trace_output: List[str] = []

        self._dispatch = self._build_dispatch()

    @classmethod
    def from_profile(cls, profile: VMProfile, *,
                     on_print: Optional[Callable[[int], None]] = None) -> 'VirtualMachine':
        return cls(profile.stack_capacity, profile.memory_capacity,
                   on_print=on_print,
                   print_consumes=profile.print_consumes,
                   check_returns=profile.check_returns)

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_program(self, image: Sequence[int]):
        """Copy a program image into memory at address 0.

        Raises ProgramTooLarge (memory untouched) if the image does not fit.
        """
        self.memory.load_program(image)
        log.info("Loaded %d-cell image into %d-cell memory",
                 len(image), self.memory.capacity)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[StopReason]:
        """Execute one instruction. Returns StopReason.HALT once halted, else None."""
        if self.halted:
            return StopReason.HALT

        pc = self.ip
        opcode = decode_opcode(self.memory.read(pc), pc)
        operand = self.memory.read(pc + 1) if opcode.arity else None
        self._pc = pc
        self._op = opcode

        if self._trace:
            self._record_trace(pc, opcode, operand)

        if opcode is Opcode.HALT:
            self.halted = True
            self.steps += 1
            log.debug("HALT at %d after %d steps", pc, self.steps)
            return StopReason.HALT

        target = self._dispatch[opcode](operand)
        self.ip = pc + opcode.width if target is None else target
        self.steps += 1
        return None

    def execute(self):
        """Run until HALT. Fatal conditions propagate as VMError subclasses.

        There is no step budget here: a program that never halts runs
        forever. Hosts that need a bound use run(max_steps=...).
        """
        while self.step() is None:
            pass

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Run until HALT or until max_steps instructions have executed."""
        executed = 0
        while max_steps is None or executed < max_steps:
            if self.step() is StopReason.HALT:
                return StopReason.HALT
            executed += 1
        log.warning("Step budget of %d exhausted at ip=%d", max_steps, self.ip)
        return StopReason.STEP_LIMIT

    # ══════════════════════════════════════════════
    # Stack access
    # ══════════════════════════════════════════════

    def _require(self, count: int):
        if len(self.stack) < count:
            raise StackUnderflow(self._op.mnemonic, self._pc, count, len(self.stack))

    def _pop2(self):
        """Pop (a, b): a is the top of stack, b the value under it."""
        self._require(2)
        a = self.stack.pop()
        b = self.stack.pop()
        return a, b

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(operand) -> Optional[int]
    # Returning an address replaces ip; returning None falls through.

    def _build_dispatch(self) -> Dict[Opcode, Callable[[Optional[int]], Optional[int]]]:
        return {
            # ── Stack ──
            Opcode.PUSH:  self._op_push,
            Opcode.POP:   self._op_pop,

            # ── Arithmetic ──
            Opcode.ADD:   self._op_add,
            Opcode.SUB:   self._op_sub,
            Opcode.MUL:   self._op_mul,
            Opcode.DIV:   self._op_div,

            # ── Branch ──
            Opcode.JUMP:                          self._op_jump,
            Opcode.JUMP_IF_EQUAL:                 self._branch_if(lambda a, b: a == b),
            Opcode.JUMP_IF_NOT_EQUAL:             self._branch_if(lambda a, b: a != b),
            Opcode.JUMP_IF_LESS_THAN:             self._branch_if(lambda a, b: a < b),
            Opcode.JUMP_IF_GREATER_THAN:          self._branch_if(lambda a, b: a > b),
            Opcode.JUMP_IF_LESS_THAN_OR_EQUAL:    self._branch_if(lambda a, b: a <= b),
            Opcode.JUMP_IF_GREATER_THAN_OR_EQUAL: self._branch_if(lambda a, b: a >= b),

            # ── Call/Return ──
            Opcode.CALL:   self._op_call,
            Opcode.RETURN: self._op_return,

            # ── Memory / Output ──
            Opcode.PRINT: self._op_print,
            Opcode.STORE: self._op_store,
            Opcode.LOAD:  self._op_load,
        }

    def _op_push(self, value):
        self.stack.append(value)

    def _op_pop(self, _):
        self._require(1)
        self.stack.pop()

    def _op_add(self, _):
        a, b = self._pop2()
        self.stack.append(a + b)

    def _op_sub(self, _):
        a, b = self._pop2()
        self.stack.append(b - a)

    def _op_mul(self, _):
        a, b = self._pop2()
        self.stack.append(a * b)

    def _op_div(self, _):
        self._require(2)
        if self.stack[-1] == 0:
            raise DivisionByZero(self._pc)
        a, b = self._pop2()
        self.stack.append(_truncating_div(b, a))

    def _op_jump(self, address):
        return address

    def _branch_if(self, relation: Callable[[int, int], bool]):
        def handler(address):
            a, b = self._pop2()
            return address if relation(a, b) else None
        return handler

    def _op_call(self, address):
        return_address = self._pc + Opcode.CALL.width
        self.stack.append(return_address)
        if self.check_returns:
            self._return_addresses.append(return_address)
        return address

    def _op_return(self, _):
        self._require(1)
        if self.check_returns:
            expected = self._return_addresses[-1] if self._return_addresses else None
            if expected != self.stack[-1]:
                raise ReturnAddressMismatch(self._pc, expected, self.stack[-1])
            self._return_addresses.pop()
        return self.stack.pop()

    def _op_print(self, _):
        self._require(1)
        value = self.stack.pop() if self.print_consumes else self.stack[-1]
        self.output.append(value)
        self._on_print(value)

    def _op_store(self, address):
        self._require(1)
        # Range check before popping so a failed STORE leaves the stack intact
        if not self.memory.in_range(address):
            raise AddressOutOfRange(address, self.memory.capacity)
        self.memory.write(address, self.stack.pop())

    def _op_load(self, address):
        self.stack.append(self.memory.read(address))

    # ══════════════════════════════════════════════
    # Trace / Debug
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        """Record one line per executed instruction."""
        self._trace = enable

    def get_trace(self) -> str:
        return '\n'.join(self._trace_output)

    def clear_trace(self):
        self._trace_output.clear()

    def _record_trace(self, pc: int, opcode: Opcode, operand: Optional[int]):
        text = opcode.mnemonic if operand is None else f"{opcode.mnemonic} {operand}"
        line = f"{pc:04d}: {text:<12} stack={self.stack}"
        self._trace_output.append(line)
        log.debug(line)

    def reset(self):
        """Reset ip, stack, output and halt state. Memory is kept as-is."""
        self.ip = 0
        self.stack.clear()
        self.output.clear()
        self.steps = 0
        self.halted = False
        self._return_addresses.clear()
        self._trace_output.clear()

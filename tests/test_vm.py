"""
Stack VM — Interpreter Tests

Each test assembles a small program, runs it on a fresh machine and checks
PRINT output, stack, memory or the raised condition.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from stackvm import run_program
from stackvm.assembler import assemble, assemble_source
from stackvm.errors import (
    AddressOutOfRange, DivisionByZero, InvalidOpcode, ProgramTooLarge,
    ReturnAddressMismatch, StackUnderflow, StepLimitExceeded,
)
from stackvm.instructions import (
    Add, Call, Div, Halt, Jump, JumpIfEqual, JumpIfGreaterThan,
    JumpIfGreaterThanOrEqual, JumpIfLessThan, JumpIfLessThanOrEqual,
    JumpIfNotEqual, Load, Mul, Pop, Print, Push, Return, Store, Sub,
)
from stackvm.profiles import VMProfile
from stackvm.vm import StopReason, VirtualMachine


def _vm(program, stack=1024, memory=1024, **kwargs):
    """Fresh machine with the assembled program loaded; output collected silently."""
    kwargs.setdefault("on_print", lambda value: None)
    vm = VirtualMachine(stack, memory, **kwargs)
    vm.load_program(assemble(program))
    return vm


def _run(program, **kwargs):
    vm = _vm(program, **kwargs)
    vm.execute()
    return vm


# ═══════════════════════════════════════════════
# Programs
# ═══════════════════════════════════════════════

class TestPrograms:
    def test_add_and_print(self):
        vm = _run([Push(1), Push(2), Add(), Print(), Halt()])
        assert vm.output == [3]
        assert vm.halted

    def test_arithmetic_chain(self):
        """(6 * 5 + 4 - 3 - 1) / 2 = 15"""
        vm = _run([
            Push(6), Push(5), Mul(), Push(4), Add(), Push(3), Sub(),
            Push(1), Sub(), Push(2), Div(), Print(), Halt(),
        ])
        assert vm.output == [15]

    def test_print_goes_to_stdout_by_default(self, capsys):
        vm = VirtualMachine(16, 16)
        vm.load_program(assemble([Push(7), Print(), Halt()]))
        vm.execute()
        assert capsys.readouterr().out == "7\n"

    def test_countdown_loop(self):
        """Prints 3, 2, 1 using STORE/LOAD and a conditional jump."""
        source = """
            PUSH 3      ; 0
            STORE 100   ; 2
            LOAD 100    ; 4   loop:
            PRINT       ; 6
            PUSH 1      ; 7
            SUB         ; 9
            STORE 100   ; 10
            LOAD 100    ; 12
            PUSH 0      ; 14
            JNE 4       ; 16  top (0) != counter -> loop
            HALT        ; 18
        """
        vm = VirtualMachine(64, 128, on_print=lambda v: None)
        vm.load_program(assemble_source(source))
        vm.execute()
        assert vm.output == [3, 2, 1]
        assert vm.memory.read(100) == 0

    def test_run_program_helper(self, capsys):
        assert run_program(assemble([Push(2), Push(3), Mul(), Print(), Halt()])) == [6]
        assert capsys.readouterr().out == ""

    def test_run_program_honours_step_budget(self):
        profile = VMProfile(max_steps=500)
        with pytest.raises(StepLimitExceeded) as exc:
            run_program(assemble([Jump(0)]), profile=profile)
        assert exc.value.max_steps == 500
        assert exc.value.address == 0

    def test_run_program_budget_not_reached(self):
        profile = VMProfile(max_steps=5)
        assert run_program(assemble([Push(4), Print(), Halt()]), profile=profile) == [4]

    def test_identical_machines_identical_output(self):
        image = assemble([
            Push(10), Store(50), Load(50), Print(), Push(1), Sub(), Store(50),
            Load(50), Push(0), JumpIfNotEqual(4), Halt(),
        ])
        outputs = []
        for _ in range(2):
            vm = VirtualMachine(32, 64, on_print=lambda v: None)
            vm.load_program(image)
            vm.execute()
            outputs.append(vm.output)
        assert outputs[0] == outputs[1] == list(range(10, 0, -1))


# ═══════════════════════════════════════════════
# Individual instructions
# ═══════════════════════════════════════════════

class TestArithmetic:
    def test_sub_order(self):
        """Top of stack is the subtrahend: 10 - 3."""
        assert _run([Push(10), Push(3), Sub(), Halt()]).stack == [7]

    def test_div_order(self):
        assert _run([Push(20), Push(4), Div(), Halt()]).stack == [5]

    def test_div_truncates_toward_zero(self):
        assert _run([Push(7), Push(2), Div(), Halt()]).stack == [3]
        assert _run([Push(-7), Push(2), Div(), Halt()]).stack == [-3]
        assert _run([Push(7), Push(-2), Div(), Halt()]).stack == [-3]
        assert _run([Push(-7), Push(-2), Div(), Halt()]).stack == [3]

    def test_mul_negative(self):
        assert _run([Push(-4), Push(6), Mul(), Halt()]).stack == [-24]

    def test_large_values_do_not_wrap(self):
        big = 2 ** 70
        assert _run([Push(big), Push(big), Add(), Halt()]).stack == [2 ** 71]

    def test_pop(self):
        assert _run([Push(1), Push(2), Pop(), Halt()]).stack == [1]


class TestBranches:
    """Conditional jumps test `a <rel> b` where a is the top of stack."""

    def _branch_taken(self, cls, first, second):
        # 0: PUSH first, 2: PUSH second, 4: Jcc 9, 6: PUSH 0, 8: HALT, 9: PUSH 1, 11: HALT
        vm = _run([Push(first), Push(second), cls(9), Push(0), Halt(), Push(1), Halt()])
        return vm.stack == [1]

    def test_equal(self):
        assert self._branch_taken(JumpIfEqual, 4, 4)
        assert not self._branch_taken(JumpIfEqual, 4, 5)

    def test_not_equal(self):
        assert self._branch_taken(JumpIfNotEqual, 4, 5)
        assert not self._branch_taken(JumpIfNotEqual, 4, 4)

    def test_less_than_compares_last_pushed_to_previous(self):
        """PUSH 5, PUSH 3: a=3, b=5, 3 < 5 holds."""
        assert self._branch_taken(JumpIfLessThan, 5, 3)
        assert not self._branch_taken(JumpIfLessThan, 3, 5)
        assert not self._branch_taken(JumpIfLessThan, 3, 3)

    def test_greater_than(self):
        assert self._branch_taken(JumpIfGreaterThan, 3, 5)
        assert not self._branch_taken(JumpIfGreaterThan, 5, 3)

    def test_less_or_equal(self):
        assert self._branch_taken(JumpIfLessThanOrEqual, 3, 3)
        assert self._branch_taken(JumpIfLessThanOrEqual, 5, 3)
        assert not self._branch_taken(JumpIfLessThanOrEqual, 3, 5)

    def test_greater_or_equal(self):
        assert self._branch_taken(JumpIfGreaterThanOrEqual, 3, 3)
        assert self._branch_taken(JumpIfGreaterThanOrEqual, 3, 5)
        assert not self._branch_taken(JumpIfGreaterThanOrEqual, 5, 3)

    def test_branch_consumes_both_operands(self):
        vm = _run([Push(9), Push(1), Push(2), JumpIfEqual(0), Halt()])
        assert vm.stack == [9]

    def test_not_taken_advances_by_two(self):
        vm = _vm([Push(1), Push(2), JumpIfEqual(0), Halt()])
        vm.step()
        vm.step()
        vm.step()
        assert vm.ip == 6

    def test_jump(self):
        # 0: JMP 5, 2: PUSH 99, 4: HALT, 5: PUSH 1, 7: HALT
        vm = _run([Jump(5), Push(99), Halt(), Push(1), Halt()])
        assert vm.stack == [1]


class TestCallReturn:
    def test_resumes_after_call(self):
        # 0: CALL 5, 2: PUSH 2, 4: HALT, 5: PUSH 1, 7: PRINT, 8: POP, 9: RET
        vm = _run([Call(5), Push(2), Halt(), Push(1), Print(), Pop(), Return()])
        assert vm.output == [1]
        assert vm.stack == [2]
        assert vm.ip == 4

    def test_call_pushes_return_address(self):
        vm = _vm([Push(0), Call(10), Halt()])
        vm.step()
        vm.step()
        assert vm.stack == [0, 4]
        assert vm.ip == 10

    def test_subroutine_computes_on_data_under_return_address(self):
        """Subroutine stores its return address, squares the argument, restores it."""
        # 0: PUSH 7, 2: CALL 6, 4: PRINT, 5: HALT
        # 6: STORE 200 (return addr), 8: STORE 201 (arg), 10: LOAD 201, 12: LOAD 201,
        # 14: MUL, 15: LOAD 200, 17: RET
        vm = _run([
            Push(7), Call(6), Print(), Halt(),
            Store(200), Store(201), Load(201), Load(201), Mul(), Load(200), Return(),
        ])
        assert vm.output == [49]

    def test_return_to_data_value_is_not_checked_by_default(self):
        # 0: CALL 4, 2: HALT, 3: HALT, 4: PUSH 3, 6: RET -> jumps to 3
        vm = _run([Call(4), Halt(), Halt(), Push(3), Return()])
        assert vm.ip == 3
        assert vm.stack == [2]

    def test_return_check_catches_data_value(self):
        vm = _vm([Call(4), Halt(), Halt(), Push(3), Return()], check_returns=True)
        with pytest.raises(ReturnAddressMismatch) as exc:
            vm.execute()
        assert exc.value.expected == 2
        assert exc.value.actual == 3
        assert exc.value.address == 6

    def test_return_check_without_call(self):
        vm = _vm([Push(0), Return()], check_returns=True)
        with pytest.raises(ReturnAddressMismatch) as exc:
            vm.execute()
        assert exc.value.expected is None

    def test_return_check_accepts_balanced_calls(self):
        # 0: CALL 3, 2: HALT, 3: CALL 6, 5: RET, 6: PUSH 1, 8: PRINT, 9: POP, 10: RET
        vm = _run([Call(3), Halt(), Call(6), Return(), Push(1), Print(), Pop(), Return()],
                  check_returns=True)
        assert vm.output == [1]
        assert vm.stack == []


class TestPrint:
    def test_print_peeks(self):
        vm = _run([Push(5), Print(), Print(), Halt()])
        assert vm.output == [5, 5]
        assert vm.stack == [5]

    def test_print_consumes_option(self):
        vm = _run([Push(1), Push(5), Print(), Print(), Halt()], print_consumes=True)
        assert vm.output == [5, 1]
        assert vm.stack == []

    def test_on_print_callback_order(self):
        seen = []
        vm = _vm([Push(1), Print(), Push(2), Print(), Halt()], on_print=seen.append)
        vm.execute()
        assert seen == [1, 2]


class TestMemoryAccess:
    def test_store_and_load(self):
        vm = _run([Push(42), Store(500), Load(500), Load(501), Halt()])
        assert vm.memory.read(500) == 42
        assert vm.stack == [42, 0]

    def test_program_can_read_its_own_image(self):
        vm = _run([Load(1), Halt()])
        assert vm.stack == [1]

    def test_self_modifying_store(self):
        """STORE into cell 5 rewrites the operand of the PUSH at 4."""
        # 0: PUSH 77, 2: STORE 5, 4: PUSH 0, 6: PRINT, 7: HALT
        vm = _run([Push(77), Store(5), Push(0), Print(), Halt()])
        assert vm.output == [77]


# ═══════════════════════════════════════════════
# Fatal conditions
# ═══════════════════════════════════════════════

class TestErrors:
    def test_division_by_zero(self):
        vm = _vm([Push(5), Push(0), Div(), Halt()])
        with pytest.raises(DivisionByZero) as exc:
            vm.execute()
        assert exc.value.address == 4
        assert vm.stack == [5, 0]
        assert vm.ip == 4

    def test_pop_empty(self):
        with pytest.raises(StackUnderflow) as exc:
            _run([Pop(), Halt()])
        assert exc.value.opcode == "POP"
        assert exc.value.address == 0
        assert exc.value.available == 0

    def test_return_empty(self):
        with pytest.raises(StackUnderflow) as exc:
            _run([Return()])
        assert exc.value.opcode == "RET"

    def test_binary_ops_need_two_values(self):
        for op in (Add(), Sub(), Mul(), Div(), JumpIfEqual(0), JumpIfLessThan(0)):
            vm = _vm([Push(1), op, Halt()])
            with pytest.raises(StackUnderflow) as exc:
                vm.execute()
            assert exc.value.needed == 2
            assert exc.value.available == 1
            assert vm.stack == [1]

    def test_print_and_store_empty(self):
        for op in (Print(), Store(100)):
            with pytest.raises(StackUnderflow):
                _run([op, Halt()])

    def test_stack_not_prefilled(self):
        """The stack capacity is a hint; the stack starts empty."""
        vm = VirtualMachine(16, 16)
        assert vm.stack == []
        vm.load_program(assemble([Add()]))
        with pytest.raises(StackUnderflow):
            vm.execute()

    def test_invalid_opcode(self):
        vm = VirtualMachine(16, 16)
        vm.load_program([0x01, 4, 0x99])
        with pytest.raises(InvalidOpcode) as exc:
            vm.execute()
        assert exc.value.value == 0x99
        assert exc.value.address == 2

    def test_jump_outside_memory(self):
        vm = _vm([Jump(5000)], memory=32)
        with pytest.raises(AddressOutOfRange) as exc:
            vm.execute()
        assert exc.value.address == 5000
        assert exc.value.capacity == 32

    def test_negative_address(self):
        with pytest.raises(AddressOutOfRange):
            _run([Load(-1), Halt()])
        with pytest.raises(AddressOutOfRange):
            _run([Jump(-2)])

    def test_store_out_of_range_keeps_stack(self):
        vm = _vm([Push(1), Store(64), Halt()], memory=64)
        with pytest.raises(AddressOutOfRange):
            vm.execute()
        assert vm.stack == [1]

    def test_operand_fetch_past_end(self):
        vm = VirtualMachine(8, 3)
        vm.load_program([0x01, 1, 0x01])
        with pytest.raises(AddressOutOfRange) as exc:
            vm.execute()
        assert exc.value.address == 3

    def test_running_off_the_image_hits_zero_halt(self):
        """Memory is zero-filled and 0 is HALT."""
        vm = _run([Push(1)])
        assert vm.halted
        assert vm.ip == 2

    def test_program_too_large(self):
        vm = VirtualMachine(8, 4)
        vm.memory.write(0, 0x10)
        before = vm.memory.snapshot()
        with pytest.raises(ProgramTooLarge) as exc:
            vm.load_program([0x01, 1, 0x01, 2, 0x00])
        assert exc.value.size == 5
        assert exc.value.capacity == 4
        assert vm.memory.snapshot() == before

    def test_image_exactly_fills_memory(self):
        vm = VirtualMachine(8, 3)
        vm.load_program([0x01, 9, 0x00])
        vm.execute()
        assert vm.stack == [9]

    def test_negative_capacity(self):
        with pytest.raises(ValueError):
            VirtualMachine(-1, 10)
        with pytest.raises(ValueError):
            VirtualMachine(10, -1)


# ═══════════════════════════════════════════════
# Stepping, budgets, tracing
# ═══════════════════════════════════════════════

class TestStepping:
    def test_step_by_step(self):
        vm = _vm([Push(1), Push(2), Add(), Halt()])
        assert vm.step() is None
        assert vm.ip == 2
        assert vm.step() is None
        assert vm.step() is None
        assert vm.stack == [3]
        assert vm.step() is StopReason.HALT
        assert vm.ip == 5
        assert vm.steps == 4

    def test_halted_machine_stays_halted(self):
        vm = _run([Push(1), Halt()])
        assert vm.step() is StopReason.HALT
        assert vm.stack == [1]

    def test_run_with_budget(self):
        vm = _vm([Jump(0)])
        assert vm.run(max_steps=100) is StopReason.STEP_LIMIT
        assert vm.steps == 100

    def test_run_halts_within_budget(self):
        vm = _vm([Push(1), Halt()])
        assert vm.run(max_steps=100) is StopReason.HALT

    def test_reset_allows_rerun(self):
        vm = _run([Push(4), Print(), Halt()])
        vm.reset()
        assert vm.stack == [] and vm.output == [] and not vm.halted
        vm.execute()
        assert vm.output == [4]

    def test_trace(self):
        vm = _vm([Push(1), Push(2), Add(), Halt()])
        vm.enable_trace()
        vm.execute()
        lines = vm.get_trace().split('\n')
        assert len(lines) == 4
        assert lines[0].startswith("0000: PUSH 1")
        assert lines[2].startswith("0004: ADD")
        assert lines[2].endswith("stack=[1, 2]")
        vm.clear_trace()
        assert vm.get_trace() == ""

    def test_from_profile(self):
        profile = VMProfile(stack_capacity=8, memory_capacity=32, print_consumes=True)
        vm = VirtualMachine.from_profile(profile, on_print=lambda v: None)
        assert vm.memory.capacity == 32
        assert vm.stack_capacity == 8
        assert vm.print_consumes
        assert not vm.check_returns

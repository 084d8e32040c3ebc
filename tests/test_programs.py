"""Integration tests: whole programs through the VirtualMachine."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from synacor_vm import (
    Console,
    CycleLimitExceeded,
    DivideByZero,
    InvalidDestination,
    InvalidOperand,
    OutOfBoundsMemoryAccess,
    QueuedInput,
    StackUnderflow,
    Status,
    UnknownOpcode,
    VirtualMachine,
)
from synacor_vm.image import parse_words


@pytest.fixture
def vm():
    return VirtualMachine()


class TestReferenceScenario:
    """The seven-word register scenario."""

    def test_add_then_out(self, vm):
        """9 is add: r0 = r1 + 4, then out r0, then halt."""
        vm.load_program([9, 32768, 32769, 4, 19, 32768, 0])
        result = vm.run()

        assert result.halted is True
        assert result.faulted is False
        assert vm.get_register(0) == 4
        assert vm.get_register(1) == 0
        assert result.output == "\x04"
        assert result.cycles == 3

    def test_register_to_register_set_then_out(self, vm):
        """set r0 r1 copies the initial 0, out r0 emits code 0."""
        vm.load_program([1, 32768, 32769, 19, 32768, 0])
        result = vm.run()

        assert result.halted is True
        assert vm.get_register(0) == 0
        assert result.output == "\x00"


class TestSimplePrograms:
    """Small hand-written programs."""

    def test_immediate_halt(self, vm):
        vm.load_program([0])
        result = vm.run()

        assert result.status is Status.HALTED
        assert vm.is_halted() is True
        assert vm.get_cycle_count() == 1

    def test_hello(self, vm):
        vm.load_source("out 72, out 105, out 10, halt")
        assert vm.run().output == "Hi\n"

    def test_arithmetic_wraps(self, vm):
        vm.load_source("""
            add r0 32758 15     ; wraps to 5
            mult r1 32767 2     ; wraps to 32766
            not r2 0            ; 32767
            halt
        """)
        vm.run()
        assert vm.get_register(0) == 5
        assert vm.get_register(1) == 32766
        assert vm.get_register(2) == 32767

    def test_countdown_loop(self, vm):
        """Sum 1..10 with jt: r0 = sum, r1 = counter."""
        vm.load_source("""
            set r1 10           ; 0
            add r0 r0 r1        ; 3
            add r1 r1 32767     ; 7: r1 -= 1
            jt r1 3             ; 11
            halt                ; 14
        """)
        result = vm.run()
        assert result.halted
        assert vm.get_register(0) == 55
        assert vm.get_register(1) == 0

    def test_self_modifying_code(self, vm):
        """wmem rewrites an instruction that runs later."""
        vm.load_source("""
            wmem 5 0            ; 0: turn the noop at 5 into halt
            jmp 5               ; 3
            noop                ; 5
            out 33              ; 6: never reached
            halt
        """)
        result = vm.run()
        assert result.halted
        assert result.output == ""
        assert vm.read_memory(5) == 0

    def test_rmem_reads_data(self, vm):
        vm.load_source("rmem r0 4, halt, 1234")
        vm.run()
        assert vm.get_register(0) == 1234

    def test_instances_are_independent(self):
        """Two VMs run the same image without interfering."""
        first, second = VirtualMachine(), VirtualMachine()
        program = parse_words("in r0, wmem 8 r0, out r0, halt, 0")
        first.console.input = QueuedInput("a")
        second.console.input = QueuedInput("b")
        first.load_program(program)
        second.load_program(program)

        assert first.run().output == "a"
        assert second.run().output == "b"
        assert first.read_memory(8) == ord("a")
        assert second.read_memory(8) == ord("b")


class TestStackPrograms:
    """push/pop and call/ret."""

    def test_push_pop_single(self, vm):
        vm.load_source("push 42, pop r0, halt")
        vm.run()
        assert vm.get_register(0) == 42
        assert vm.get_stack() == []

    def test_push_pop_lifo(self, vm):
        vm.load_source("push 1, push 2, push 3, pop r0, pop r1, pop r2, halt")
        vm.run()
        assert [vm.get_register(i) for i in range(3)] == [3, 2, 1]

    def test_push_pop_100(self, vm):
        """100 values come back in reverse order."""
        words = []
        for value in range(100):
            words += parse_words(f"push {value * 300}")
        for _ in range(100):
            words += parse_words("pop r0, wmem r1 r0, add r1 r1 1")
        words += parse_words("halt")
        vm.memory_size = len(words) + 100
        vm.load_program(words)
        # scratch area after the code
        base = len(words)
        vm.state.registers[1] = base
        vm.run()

        popped = [vm.read_memory(base + i) for i in range(100)]
        assert popped == [value * 300 for value in reversed(range(100))]
        assert vm.get_stack() == []

    def test_call_ret_returns_after_call(self, vm):
        """ret lands on the instruction right after call."""
        vm.load_source("""
            call 6              ; 0
            out 66              ; 2: return lands here
            halt                ; 4
            noop                ; 5
            out 65              ; 6: subroutine
            ret                 ; 8
        """)
        result = vm.run()
        assert result.halted
        assert result.output == "AB"
        assert vm.get_stack() == []

    def test_call_pushes_next_address(self, vm):
        vm.load_source("call 2, halt")
        vm.step()
        assert vm.get_pc() == 2
        assert vm.get_stack() == [2]

    def test_call_through_register(self, vm):
        vm.load_source("set r3 6, call r3, halt, out 90, ret")
        result = vm.run()
        assert result.output == "Z"


class TestInput:
    """in with scripted and exhausted input."""

    def test_reads_input(self):
        vm = VirtualMachine(console=Console(input=QueuedInput("ok")))
        vm.load_source("in r0, in r1, out r1, out r0, halt")
        result = vm.run()
        assert result.output == "ko"

    def test_no_input_leaves_register(self):
        vm = VirtualMachine(console=Console(input=QueuedInput("")))
        vm.load_source("set r0 7, in r0, halt")
        result = vm.run()
        assert result.halted
        assert vm.get_register(0) == 7

    def test_echo_until_exhausted(self):
        vm = VirtualMachine(console=Console(input=QueuedInput("abc")))
        vm.load_source("""
            in r0               ; 0
            jf r0 12            ; 2
            out r0              ; 5
            set r0 0            ; 7
            jmp 0               ; 10
            halt                ; 12
        """)
        assert vm.run().output == "abc"

    def test_interrupted_read_keeps_pc(self):
        """An interrupt while `in` waits leaves the PC on the `in`."""
        def interrupted():
            raise KeyboardInterrupt

        vm = VirtualMachine(console=Console(input=interrupted))
        vm.load_source("noop, in r0, halt")
        vm.step()
        with pytest.raises(KeyboardInterrupt):
            vm.step()

        assert vm.get_pc() == 1
        assert vm.save().pc == 1
        assert vm.get_status() is Status.RUNNING
        assert vm.get_cycle_count() == 1

    def test_resume_after_interrupted_read(self):
        def interrupted():
            raise KeyboardInterrupt

        vm = VirtualMachine(console=Console(input=interrupted))
        vm.load_source("in r0, out r0, halt")
        with pytest.raises(KeyboardInterrupt):
            vm.run()

        vm.console.input = QueuedInput("x")
        result = vm.run()
        assert result.halted
        assert result.output == "x"


class TestFaults:
    """Every fault ends in FAULTED with context, distinguishable from halt."""

    def test_mod_by_zero(self, vm):
        vm.load_source("set r0 9, mod r0 10 0, halt")
        result = vm.run()

        assert result.status is Status.FAULTED
        assert result.halted is False
        assert isinstance(result.fault, DivideByZero)
        assert result.fault.name == "mod"
        assert result.fault.address == 3
        assert result.fault.operands == (32768, 10, 0)
        assert vm.get_register(0) == 9

    @pytest.mark.parametrize("opcode", [22, 23, 1000])
    def test_unknown_opcode_does_not_advance(self, vm, opcode):
        vm.load_program([21, opcode, 0])
        result = vm.run()

        assert isinstance(result.fault, UnknownOpcode)
        assert result.fault.opcode == opcode
        assert result.fault.address == 1
        assert vm.get_pc() == 1
        assert result.pc == 1
        assert vm.get_cycle_count() == 1

    def test_pop_empty(self, vm):
        vm.load_source("pop r0, halt")
        result = vm.run()
        assert isinstance(result.fault, StackUnderflow)
        assert vm.get_pc() == 0

    def test_ret_on_empty_stack(self, vm):
        vm.load_source("ret")
        result = vm.run()
        assert isinstance(result.fault, StackUnderflow)
        assert result.fault.name == "ret"

    def test_invalid_operand(self, vm):
        vm.load_program([19, 32776, 0])
        result = vm.run()
        assert isinstance(result.fault, InvalidOperand)
        assert result.output == ""

    def test_literal_destination(self, vm):
        vm.load_program([1, 3, 5, 0])
        result = vm.run()
        assert isinstance(result.fault, InvalidDestination)
        assert result.fault.operands == (3,)

    def test_rmem_out_of_bounds(self, vm):
        vm.load_source("rmem r0 500, halt")
        result = vm.run()
        assert isinstance(result.fault, OutOfBoundsMemoryAccess)
        assert result.fault.name == "rmem"

    def test_running_off_the_end(self, vm):
        vm.load_source("noop")
        result = vm.run()
        assert isinstance(result.fault, OutOfBoundsMemoryAccess)
        assert result.fault.address == 1

    def test_raise_for_fault(self, vm):
        vm.load_source("ret")
        result = vm.run()
        with pytest.raises(StackUnderflow):
            result.raise_for_fault()

    def test_raise_for_fault_after_halt(self, vm):
        vm.load_source("halt")
        vm.run().raise_for_fault()

    def test_fault_is_recorded(self, vm):
        vm.load_source("ret")
        vm.run()
        assert vm.is_faulted() is True
        assert isinstance(vm.get_fault(), StackUnderflow)
        assert "StackUnderflow" in vm.get_summary()["fault"]

    def test_step_after_termination(self, vm):
        vm.load_source("halt")
        vm.run()
        with pytest.raises(RuntimeError, match="halted"):
            vm.step()

    def test_no_program(self, vm):
        with pytest.raises(RuntimeError, match="No program loaded"):
            vm.run()


class TestExecutionTrace:
    """Trace entries when tracing is enabled."""

    def test_trace_disabled_by_default(self, vm):
        vm.load_source("noop, halt")
        result = vm.run()
        assert result.trace == []

    def test_trace_records_all_cycles(self):
        vm = VirtualMachine(trace=True)
        vm.load_source("set r0 1, set r1 2, halt")
        trace = vm.run().trace

        assert len(trace) == 3
        assert trace[0].instruction == "set r0 1"
        assert trace[1].instruction == "set r1 2"
        assert trace[2].instruction == "halt"
        assert [entry.address for entry in trace] == [0, 3, 6]

    def test_trace_captures_state_changes(self):
        vm = VirtualMachine(trace=True)
        vm.load_source("set r0 42, halt")
        trace = vm.run().trace

        assert trace[0].pre_state["registers"]["R0"] == 0
        assert trace[0].post_state["registers"]["R0"] == 42

    def test_trace_records_fault(self):
        vm = VirtualMachine(trace=True)
        vm.load_program([22])
        entry = vm.step()
        assert entry.decode_result is None
        assert "UnknownOpcode" in entry.error


class TestMaxCyclesSafety:
    """Test max cycles safety limit."""

    def test_max_cycles_stops_execution(self):
        """Infinite loop stops at max cycles."""
        vm = VirtualMachine(max_cycles=10)
        vm.load_source("jmp 0")

        with pytest.raises(CycleLimitExceeded, match="Max cycles"):
            vm.run()

        assert vm.get_cycle_count() == 10
        assert vm.get_status() is Status.RUNNING

    def test_run_can_resume(self):
        vm = VirtualMachine()
        vm.load_source("noop, noop, noop, halt")
        with pytest.raises(CycleLimitExceeded):
            vm.run(max_cycles=2)
        result = vm.run()
        assert result.halted
        assert result.cycles == 4

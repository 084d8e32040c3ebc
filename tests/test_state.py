"""Tests for VMState dataclass."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from synacor_vm.errors import OutOfBoundsMemoryAccess, StackUnderflow
from synacor_vm.state import MODULUS, Status, VMState, check_registers, check_words, create_initial_state


class TestVMStateCreation:
    """Test VMState initialization and defaults."""

    def test_default_state(self):
        """Default state has zeroed registers and an empty stack."""
        state = VMState()
        assert state.pc == 0
        assert state.cycle_count == 0
        assert state.status is Status.RUNNING
        assert state.registers == [0] * 8
        assert state.stack == []
        assert state.fault is None

    def test_create_initial_state(self):
        """create_initial_state loads the program into memory."""
        state = create_initial_state([9, 32768, 32769, 4, 19, 32768, 0])
        assert list(state.memory) == [9, 32768, 32769, 4, 19, 32768, 0]
        assert len(state.memory) == 7
        assert state.pc == 0
        assert state.running is True

    def test_create_initial_state_pads_memory(self):
        """memory_size zero pads but never truncates."""
        state = create_initial_state([1, 2, 3], memory_size=8)
        assert list(state.memory) == [1, 2, 3, 0, 0, 0, 0, 0]

        state = create_initial_state([1, 2, 3], memory_size=2)
        assert list(state.memory) == [1, 2, 3]

    def test_create_initial_state_rejects_wide_words(self):
        """Words must fit in 16 bits."""
        with pytest.raises(ValueError):
            create_initial_state([0, 65536])

    def test_instances_do_not_share_state(self):
        """Two states never share registers, stack or memory."""
        a = create_initial_state([0, 0])
        b = create_initial_state([0, 0])
        a.set_register(0, 5)
        a.push(7)
        a.write_memory(1, 9)
        assert b.registers[0] == 0
        assert b.stack == []
        assert b.memory[1] == 0


class TestVMStateValidation:
    """Test state validation."""

    def test_valid_state(self):
        assert VMState().validate() is True

    def test_invalid_register_value(self):
        """Register value outside the 15-bit space fails validation."""
        state = VMState()
        state.registers[0] = MODULUS
        assert state.validate() is False

    def test_wrong_register_count(self):
        state = VMState(registers=[0] * 7)
        assert state.validate() is False

    def test_negative_pc(self):
        state = VMState(pc=-1)
        assert state.validate() is False

    def test_bool_is_not_a_value(self):
        """True is an int subclass but not a register or stack value."""
        assert VMState(registers=[True] + [0] * 7).validate() is False
        assert VMState(stack=[True]).validate() is False

    @pytest.mark.parametrize("registers", [[0] * 9, [0] * 7 + [-1], [0] * 7 + [1.0]])
    def test_check_registers(self, registers):
        with pytest.raises(ValueError):
            check_registers(registers)

    def test_check_words(self):
        check_words([0, 65535], "Cell")
        with pytest.raises(ValueError, match="Cell out of range"):
            check_words([65536], "Cell")


class TestRegisters:
    """Test register accessors."""

    def test_set_register_wraps(self):
        """set_register stores values modulo 32768."""
        state = VMState()
        state.set_register(0, 32770)
        assert state.registers[0] == 2

    def test_get_register_by_index_and_name(self):
        state = VMState()
        state.set_register(3, 100)
        assert state.get_register(3) == 100
        assert state.get_register("R3") == 100
        assert state.get_register("r3") == 100

    @pytest.mark.parametrize("reg", [8, -1, "R8", "R10", "X1", ""])
    def test_get_register_invalid(self, reg):
        """get_register raises KeyError for invalid register."""
        with pytest.raises(KeyError):
            VMState().get_register(reg)

    def test_dump_registers(self):
        """dump_registers returns a detached copy keyed by name."""
        state = VMState()
        state.set_register(0, 1)
        state.set_register(7, 2)

        regs = state.dump_registers()
        assert regs["R0"] == 1
        assert regs["R7"] == 2

        regs["R0"] = 999
        assert state.registers[0] == 1


class TestStack:
    """Test stack operations."""

    def test_lifo_order(self):
        state = VMState()
        for value in (1, 2, 3):
            state.push(value)
        assert [state.pop(), state.pop(), state.pop()] == [3, 2, 1]

    def test_pop_empty_raises(self):
        with pytest.raises(StackUnderflow):
            VMState().pop()


class TestMemory:
    """Test memory bounds checking."""

    def test_read_write(self):
        state = create_initial_state([0, 0, 0])
        state.write_memory(2, 1234)
        assert state.read_memory(2) == 1234

    @pytest.mark.parametrize("address", [3, 100, -1])
    def test_out_of_bounds(self, address):
        state = create_initial_state([0, 0, 0])
        with pytest.raises(OutOfBoundsMemoryAccess):
            state.read_memory(address)
        with pytest.raises(OutOfBoundsMemoryAccess):
            state.write_memory(address, 1)


class TestVMStateSnapshot:
    """Test state snapshot for tracing."""

    def test_snapshot_is_detached(self):
        """Snapshot is a copy of state."""
        state = VMState()
        state.set_register(0, 42)
        state.push(5)
        snapshot = state.snapshot()

        assert snapshot["registers"]["R0"] == 42
        assert snapshot["stack"] == [5]
        assert snapshot["pc"] == 0
        assert snapshot["status"] == "running"

        snapshot["registers"]["R0"] = 999
        snapshot["stack"].append(1)
        assert state.registers[0] == 42
        assert state.stack == [5]

"""VMState: machine state for the Synacor VM.

This module defines the single mutable state structure the execution engine
works on. A VM instance owns exactly one of these; nothing is shared between
instances.

State Components:
    - Registers: r0-r7 (8 slots holding 15-bit values, 0..32767)
    - Stack: unbounded LIFO of 16-bit values (operands and return addresses)
    - PC: Program counter (address of the next instruction to fetch)
    - Memory: 16-bit cells holding both instructions and data
    - Status: RUNNING, HALTED or FAULTED
    - Cycle count: Total executed instructions
"""

from array import array
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from .errors import OutOfBoundsMemoryAccess, StackUnderflow, VMFault


# 15-bit value space; arithmetic wraps modulo this
MODULUS = 32768
WORD_MAX = 0xFFFF
REGISTER_COUNT = 8

RegisterRef = Union[int, str]


def _is_int(value) -> bool:
    # bool is an int subclass but never a machine value
    return type(value) is int


def check_registers(registers: List[int]) -> None:
    """Raise ValueError unless there are 8 register values in 0..32767."""
    if len(registers) != REGISTER_COUNT:
        raise ValueError(f"Expected {REGISTER_COUNT} registers, got {len(registers)}")
    for i, value in enumerate(registers):
        if not _is_int(value) or not 0 <= value < MODULUS:
            raise ValueError(f"Register r{i} value out of range: {value!r}")


def check_words(words: Iterable[int], what: str) -> None:
    """Raise ValueError unless every item is an int in 0..65535."""
    for value in words:
        if not _is_int(value) or not 0 <= value <= WORD_MAX:
            raise ValueError(f"{what} out of range: {value!r}")


def check_address(pc: int) -> None:
    if not _is_int(pc) or pc < 0:
        raise ValueError(f"Invalid program counter: {pc!r}")


class Status(Enum):
    """Execution engine states."""
    RUNNING = "running"
    HALTED = "halted"
    FAULTED = "faulted"


@dataclass
class VMState:
    """Complete machine state.

    Attributes:
        registers: 8 register values in 0..32767
        stack: Stack contents, top of stack last
        pc: Program counter
        memory: 16-bit memory cells
        status: Execution status
        cycle_count: Number of instructions executed
        fault: The fault that terminated execution, if any
    """
    registers: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)
    stack: List[int] = field(default_factory=list)
    pc: int = 0
    memory: array = field(default_factory=lambda: array("H"))
    status: Status = Status.RUNNING
    cycle_count: int = 0
    fault: Optional[VMFault] = None

    @property
    def halted(self) -> bool:
        return self.status is Status.HALTED

    @property
    def faulted(self) -> bool:
        return self.status is Status.FAULTED

    @property
    def running(self) -> bool:
        return self.status is Status.RUNNING

    def snapshot(self) -> dict:
        """Create a detached copy of the current state for tracing.

        Returns:
            Dictionary with copies of registers, stack and scalar fields
        """
        return {
            "registers": self.dump_registers(),
            "stack": list(self.stack),
            "pc": self.pc,
            "status": self.status.value,
            "cycle_count": self.cycle_count,
            # memory excluded: copying 32K cells per cycle is too costly
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Exactly 8 registers, each an int in 0..32767
            - Stack cells are ints in 0..65535
            - PC and cycle count are non-negative

        Returns:
            True if state is valid, False otherwise
        """
        try:
            check_registers(self.registers)
            check_words(self.stack, "Stack value")
            check_address(self.pc)
        except ValueError:
            return False

        return self.cycle_count >= 0

    # =========================================================================
    # Registers
    # =========================================================================

    @staticmethod
    def register_index(reg: RegisterRef) -> int:
        """Normalize a register reference to an index.

        Args:
            reg: Index 0-7 or name "R0"-"R7" (case insensitive)

        Raises:
            KeyError: If the register doesn't exist
        """
        if isinstance(reg, str):
            name = reg.strip().upper()
            if len(name) == 2 and name[0] == "R" and name[1].isdigit():
                index = int(name[1])
            else:
                raise KeyError(f"Invalid register: {reg}")
        else:
            index = reg
        if not 0 <= index < REGISTER_COUNT:
            raise KeyError(f"Invalid register: {reg}")
        return index

    def get_register(self, reg: RegisterRef) -> int:
        """Get value of a register.

        Raises:
            KeyError: If register doesn't exist
        """
        return self.registers[self.register_index(reg)]

    def set_register(self, reg: RegisterRef, value: int) -> None:
        """Store a value into a register, wrapped into the 15-bit space.

        Raises:
            KeyError: If register doesn't exist
        """
        self.registers[self.register_index(reg)] = value % MODULUS

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed by name."""
        return {f"R{i}": value for i, value in enumerate(self.registers)}

    # =========================================================================
    # Stack
    # =========================================================================

    def push(self, value: int) -> None:
        self.stack.append(value)

    def pop(self) -> int:
        """Pop the top of the stack.

        Raises:
            StackUnderflow: If the stack is empty
        """
        if not self.stack:
            raise StackUnderflow("pop from empty stack")
        return self.stack.pop()

    # =========================================================================
    # Memory
    # =========================================================================

    def read_memory(self, address: int) -> int:
        """Read one memory cell.

        Raises:
            OutOfBoundsMemoryAccess: If address is outside allocated memory
        """
        if not 0 <= address < len(self.memory):
            raise OutOfBoundsMemoryAccess(
                f"read of address {address} outside memory of {len(self.memory)} cells"
            )
        return self.memory[address]

    def write_memory(self, address: int, value: int) -> None:
        """Write one memory cell.

        Raises:
            OutOfBoundsMemoryAccess: If address is outside allocated memory
        """
        if not 0 <= address < len(self.memory):
            raise OutOfBoundsMemoryAccess(
                f"write of address {address} outside memory of {len(self.memory)} cells"
            )
        self.memory[address] = value

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"r{i}={v}" for i, v in enumerate(self.registers))
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc} {regs} "
            f"stack={len(self.stack)} {self.status.value.upper()}"
        )


def create_initial_state(words: Iterable[int], memory_size: Optional[int] = None) -> VMState:
    """Create initial VM state with a program image loaded into memory.

    Args:
        words: Decoded 16-bit program words
        memory_size: Optional number of cells to allocate; memory is zero padded
            up to this size but never shorter than the image

    Returns:
        Fresh VMState with PC 0, zeroed registers and an empty stack

    Raises:
        ValueError: If a word does not fit in 16 bits
    """
    try:
        memory = array("H", words)
    except OverflowError as e:
        raise ValueError(f"Program word out of 16-bit range: {e}") from e

    if memory_size is not None and memory_size > len(memory):
        memory.extend([0] * (memory_size - len(memory)))

    return VMState(memory=memory)


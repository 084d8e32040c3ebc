"""VMRegistry: opcode primitives for the Synacor VM.

This module implements the registry pattern for VM operations: each
instruction is a frozen primitive keyed by its registry key, receiving the
state, the decoded params and the console.

Registry Keys:
    OP_HALT   stop execution cleanly
    OP_SET    dest <- value
    OP_PUSH   push value
    OP_POP    dest <- pop (StackUnderflow if empty)
    OP_EQ     dest <- 1 if a == b else 0
    OP_GT     dest <- 1 if a > b else 0
    OP_JMP    pc <- addr
    OP_JT     pc <- addr if cond != 0
    OP_JF     pc <- addr if cond == 0
    OP_ADD    dest <- (a + b) mod 32768
    OP_MULT   dest <- (a * b) mod 32768
    OP_MOD    dest <- a mod b (DivideByZero if b == 0)
    OP_AND    dest <- a & b
    OP_OR     dest <- a | b
    OP_NOT    dest <- 15-bit complement of a
    OP_RMEM   dest <- memory[addr]
    OP_WMEM   memory[addr] <- value
    OP_CALL   push address of next instruction, pc <- addr
    OP_RET    pc <- pop (StackUnderflow if empty)
    OP_OUT    emit value as one character
    OP_IN     dest <- next input character, untouched if none available
    OP_NOOP   nothing

Before a primitive runs the engine has already moved ``state.pc`` to the
next instruction; control flow primitives overwrite it. Primitives check
every fault condition before mutating anything.
"""

from typing import Any, Callable, Dict, Optional

from .console import Console
from .errors import DivideByZero
from .state import MODULUS, Status, VMState


Primitive = Callable[[VMState, Dict[str, Any], Console], None]

# Bits 0-14
VALUE_MASK = MODULUS - 1


class VMRegistry:
    """Verified registry of VM primitives.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all VM primitives."""
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all VM operation primitives."""
        # Data movement
        self.register("OP_SET", self._op_set)
        self.register("OP_PUSH", self._op_push)
        self.register("OP_POP", self._op_pop)
        self.register("OP_RMEM", self._op_rmem)
        self.register("OP_WMEM", self._op_wmem)

        # Comparison
        self.register("OP_EQ", self._op_eq)
        self.register("OP_GT", self._op_gt)

        # Arithmetic and bitwise
        self.register("OP_ADD", self._op_add)
        self.register("OP_MULT", self._op_mult)
        self.register("OP_MOD", self._op_mod)
        self.register("OP_AND", self._op_and)
        self.register("OP_OR", self._op_or)
        self.register("OP_NOT", self._op_not)

        # Control flow
        self.register("OP_JMP", self._op_jmp)
        self.register("OP_JT", self._op_jt)
        self.register("OP_JF", self._op_jf)
        self.register("OP_CALL", self._op_call)
        self.register("OP_RET", self._op_ret)

        # I/O
        self.register("OP_OUT", self._op_out)
        self.register("OP_IN", self._op_in)

        # Special
        self.register("OP_HALT", self._op_halt)
        self.register("OP_NOOP", self._op_noop)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key (e.g., "OP_ADD")
            handler: Function taking (state, params, console)

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: VMState, key: str, params: Dict[str, Any], console: Console) -> VMState:
        """Execute a registered primitive against the state.

        Args:
            state: VM state, mutated in place
            key: Operation key
            params: Decoded operands
            console: Character I/O for OP_IN / OP_OUT

        Returns:
            The same state, for chaining

        Raises:
            KeyError: If key not in registry
            VMFault: If the primitive faults (state is left unchanged)
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")

        self._primitives[key](state, params, console)

        # Only completed instructions count
        state.cycle_count += 1
        return state

    # =========================================================================
    # Data Movement Primitives
    # =========================================================================

    def _op_set(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], params["value"])

    def _op_push(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.push(params["value"])

    def _op_pop(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """POP dest - Pop the stack into a register.

        The popped cell is stored modulo 32768, like every register write.
        """
        state.set_register(params["dest"], state.pop())

    def _op_rmem(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """RMEM dest addr - Copy a memory cell into a register."""
        state.set_register(params["dest"], state.read_memory(params["addr"]))

    def _op_wmem(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """WMEM addr value - Store a value into a memory cell."""
        state.write_memory(params["addr"], params["value"])

    # =========================================================================
    # Comparison Primitives
    # =========================================================================

    def _op_eq(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], 1 if params["a"] == params["b"] else 0)

    def _op_gt(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], 1 if params["a"] > params["b"] else 0)

    # =========================================================================
    # Arithmetic Primitives
    # =========================================================================

    def _op_add(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], (params["a"] + params["b"]) % MODULUS)

    def _op_mult(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], (params["a"] * params["b"]) % MODULUS)

    def _op_mod(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """MOD dest a b - Remainder of a divided by b.

        Raises:
            DivideByZero: If b is 0
        """
        if params["b"] == 0:
            raise DivideByZero(f"mod of {params['a']} by zero")
        state.set_register(params["dest"], params["a"] % params["b"])

    def _op_and(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], params["a"] & params["b"])

    def _op_or(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.set_register(params["dest"], params["a"] | params["b"])

    def _op_not(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """NOT dest a - Invert bits 0-14 of a; bit 15 is always 0."""
        state.set_register(params["dest"], ~params["a"] & VALUE_MASK)

    # =========================================================================
    # Control Flow Primitives
    # =========================================================================

    def _op_jmp(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.pc = params["addr"]

    def _op_jt(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        if params["cond"] != 0:
            state.pc = params["addr"]

    def _op_jf(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        if params["cond"] == 0:
            state.pc = params["addr"]

    def _op_call(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """CALL addr - Push the return address and jump.

        state.pc already points past the call, so that is what gets pushed.
        """
        state.push(state.pc)
        state.pc = params["addr"]

    def _op_ret(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """RET - Pop the return address into the PC.

        Raises:
            StackUnderflow: If the stack is empty
        """
        state.pc = state.pop()

    # =========================================================================
    # I/O Primitives
    # =========================================================================

    def _op_out(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        console.write(params["value"])

    def _op_in(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        """IN dest - Read one character code into a register.

        Polls the console once; when nothing is available the register keeps
        its previous value and execution simply continues.
        """
        code = console.read()
        if code is not None:
            state.set_register(params["dest"], code)

    # =========================================================================
    # Special Primitives
    # =========================================================================

    def _op_halt(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        state.status = Status.HALTED

    def _op_noop(self, state: VMState, params: Dict[str, Any], console: Console) -> None:
        pass


# Singleton registry instance
_registry: Optional[VMRegistry] = None


def get_registry() -> VMRegistry:
    """Get the shared VM registry instance.

    The registry holds no machine state, so every VM can use the same one.

    Returns:
        The frozen VMRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = VMRegistry()
    return _registry

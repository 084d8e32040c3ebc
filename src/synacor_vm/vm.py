"""VirtualMachine: execution engine for the Synacor VM.

This module implements the fetch-decode-execute pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The engine is a small state machine. It starts RUNNING with PC 0, stays
RUNNING while instructions complete, and ends either HALTED (clean exit via
``halt``) or FAULTED (any decode or execution fault). Faults are not raised
out of ``step``/``run``; they are recorded on the state and returned in the
RunResult so the caller can tell a clean halt from every fault kind.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from . import image, snapshot
from .console import Console
from .decode import DecodeResult, Decoder
from .errors import CycleLimitExceeded, VMFault
from .registry import VMRegistry, get_registry
from .snapshot import Snapshot
from .state import RegisterRef, Status, VMState, create_initial_state


logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle count before the instruction ran
        address: Address the instruction was fetched from
        instruction: Rendered instruction text
        decode_result: Decoded instruction, None if decoding faulted
        pre_state: State before execution
        post_state: State after execution
        error: Fault message if the instruction faulted
    """
    cycle: int
    address: int
    instruction: str
    decode_result: Optional[DecodeResult]
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


@dataclass
class RunResult:
    """Outcome of running the VM until it stopped.

    Attributes:
        status: HALTED or FAULTED
        cycles: Total instructions executed
        pc: Program counter when execution stopped
        output: Everything the program wrote
        fault: The fault, when status is FAULTED
        trace: Trace entries recorded during the run (empty unless tracing)
    """
    status: Status
    cycles: int
    pc: int
    output: str = ""
    fault: Optional[VMFault] = None
    trace: List[ExecutionTraceEntry] = field(default_factory=list)

    @property
    def halted(self) -> bool:
        return self.status is Status.HALTED

    @property
    def faulted(self) -> bool:
        return self.status is Status.FAULTED

    def raise_for_fault(self) -> None:
        """Re-raise the fault if the run ended in one."""
        if self.fault is not None:
            raise self.fault


class VirtualMachine:
    """Synacor virtual machine.

    Each instance owns its own memory, registers, stack and program counter;
    instances never share state.

    Attributes:
        decoder: Decoder for instruction fetch and operand resolution
        registry: VMRegistry with the opcode primitives
        console: Character I/O
        state: Current VM state (None until a program is loaded)
        trace: Recorded trace entries (only when tracing is enabled)
        max_cycles: Default cycle limit for run(), None for no limit
        memory_size: Minimum memory size; images are zero padded up to it
        tracing: Whether step() records ExecutionTraceEntry objects
    """

    DEFAULT_MAX_CYCLES: Optional[int] = None

    def __init__(
        self,
        console: Optional[Console] = None,
        max_cycles: Optional[int] = DEFAULT_MAX_CYCLES,
        memory_size: Optional[int] = None,
        trace: bool = False,
        registry: Optional[VMRegistry] = None,
    ):
        """Initialize the VM.

        Args:
            console: Character I/O; defaults to a Console with no input source
                that only buffers output
            max_cycles: Maximum cycles per run() before CycleLimitExceeded
            memory_size: Allocate at least this many memory cells
            trace: Record a trace entry for every step
            registry: Primitive registry, defaults to the shared one
        """
        self.decoder = Decoder()
        self.registry = registry or get_registry()
        self.console = console or Console()
        self.state: Optional[VMState] = None
        self.trace: List[ExecutionTraceEntry] = []
        self.max_cycles = max_cycles
        self.memory_size = memory_size
        self.tracing = trace

    def load_program(self, words: Iterable[int]) -> None:
        """Load a decoded program image and reset the machine.

        Args:
            words: 16-bit program words; word 0 is the first instruction

        Raises:
            ValueError: If a word does not fit in 16 bits
        """
        self.state = create_initial_state(words, memory_size=self.memory_size)
        self.trace = []
        self.console.clear()
        logger.info("Loaded program of %d words", len(self.state.memory))

    def load_image(self, source: Union[str, Path, bytes]) -> None:
        """Load a little-endian binary image from a path or raw bytes."""
        if isinstance(source, bytes):
            words = image.decode_image(source)
        else:
            words = image.load_image(source)
        self.load_program(words)

    def load_source(self, source: str) -> None:
        """Load a textual program (numbers, register names, mnemonics)."""
        self.load_program(image.parse_words(source))

    def _require_state(self) -> VMState:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE. A fault moves the VM to FAULTED
        with the PC left on the faulting instruction.

        Returns:
            ExecutionTraceEntry when tracing is enabled, otherwise None

        Raises:
            RuntimeError: If no program is loaded or the VM is not running
        """
        state = self._require_state()
        if not state.running:
            raise RuntimeError(f"VM is {state.status.value}")

        address = state.pc
        pre_state = state.snapshot() if self.tracing else None
        decoded: Optional[DecodeResult] = None
        error: Optional[str] = None

        try:
            decoded = self.decoder.decode(state.memory, state.registers, address)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("%5d: %-20s regs=%s stack=%d", address, decoded.text,
                             state.registers, len(state.stack))
            state.pc = decoded.next_pc
            try:
                self.registry.execute(state, decoded.key, decoded.params, self.console)
            except BaseException:
                # e.g. KeyboardInterrupt while `in` waits: the instruction never ran
                state.pc = address
                raise
        except VMFault as fault:
            if decoded is not None:
                fault.annotate(opcode=decoded.opcode, name=decoded.name,
                               address=address, operands=decoded.raw)
            state.pc = address
            state.status = Status.FAULTED
            state.fault = fault
            error = str(fault)
            logger.error("Fault after %d cycles: %s", state.cycle_count, fault)
        else:
            if state.halted:
                logger.info("Halted at pc=%d after %d cycles", address, state.cycle_count)

        if not self.tracing:
            return None

        entry = ExecutionTraceEntry(
            cycle=pre_state["cycle_count"],
            address=address,
            instruction=decoded.text if decoded is not None else f"<fault at {address}>",
            decode_result=decoded,
            pre_state=pre_state,
            post_state=state.snapshot(),
            error=error,
        )
        self.trace.append(entry)
        return entry

    def run(self, max_cycles: Optional[int] = None) -> RunResult:
        """Run until HALT, a fault, or the cycle limit.

        Args:
            max_cycles: Override maximum cycles (uses instance default if None)

        Returns:
            RunResult describing how execution ended

        Raises:
            RuntimeError: If no program is loaded or the VM is not running
            CycleLimitExceeded: If the limit is hit; the VM stays RUNNING and
                can be resumed with another run()
        """
        state = self._require_state()
        if not state.running:
            raise RuntimeError(f"VM is {state.status.value}")

        limit = max_cycles if max_cycles is not None else self.max_cycles
        start = state.cycle_count

        while state.running:
            if limit is not None and state.cycle_count - start >= limit:
                raise CycleLimitExceeded(limit)
            self.step()

        return RunResult(
            status=state.status,
            cycles=state.cycle_count,
            pc=state.pc,
            output=self.console.getvalue(),
            fault=state.fault,
            trace=list(self.trace),
        )

    # =========================================================================
    # Suspend / resume
    # =========================================================================

    def save(self, include_memory: bool = False) -> Snapshot:
        """Capture registers, stack and PC (and memory, if asked)."""
        return snapshot.capture(self._require_state(), include_memory=include_memory)

    def restore(self, snap: Snapshot) -> None:
        """Restore a snapshot; memory is only replaced if the snapshot has it.

        Raises:
            ValueError: If the snapshot is invalid (VM state unchanged)
        """
        snapshot.apply(self._require_state(), snap)
        logger.info("Restored snapshot at pc=%d", snap.pc)

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_register(self, reg: RegisterRef) -> int:
        """Get value of a register by index (0-7) or name (R0-R7)."""
        return self._require_state().get_register(reg)

    def dump_registers(self) -> Dict[str, int]:
        return self._require_state().dump_registers()

    def get_stack(self) -> List[int]:
        return list(self._require_state().stack)

    def get_pc(self) -> int:
        return self._require_state().pc

    def read_memory(self, address: int) -> int:
        return self._require_state().read_memory(address)

    def get_cycle_count(self) -> int:
        if self.state is None:
            return 0
        return self.state.cycle_count

    def get_status(self) -> Optional[Status]:
        return self.state.status if self.state else None

    def is_halted(self) -> bool:
        return self.state is not None and self.state.halted

    def is_faulted(self) -> bool:
        return self.state is not None and self.state.faulted

    def get_fault(self) -> Optional[VMFault]:
        return self.state.fault if self.state else None

    def get_output(self) -> str:
        """Everything the program has written since it was loaded."""
        return self.console.getvalue()

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("SYNACOR VM EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"FAULT: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            print(f"  {entry.address:5d}: {entry.instruction}")

            # Show register changes
            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}"
                for reg in sorted(pre_regs)
                if pre_regs[reg] != post_regs[reg]
            ]
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            if entry.pre_state["stack"] != entry.post_state["stack"]:
                print(f"  Stack: {entry.post_state['stack']}")

            # PC change other than falling through
            post_pc = entry.post_state["pc"]
            if entry.decode_result is not None and post_pc != entry.decode_result.next_pc:
                print(f"  PC: {entry.address} -> {post_pc}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        if self.state:
            print(f"  Registers: {self.dump_registers()}")
            print(f"  Stack: {self.get_stack()}")
            print(f"  PC: {self.get_pc()}")
            print(f"  Cycles: {self.get_cycle_count()}")
            print(f"  Status: {self.state.status.value}")
            if self.state.fault:
                print(f"  Fault: {self.state.fault}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        fault = self.get_fault()
        return {
            "cycles": self.get_cycle_count(),
            "status": self.state.status.value if self.state else None,
            "halted": self.is_halted(),
            "faulted": self.is_faulted(),
            "fault": str(fault) if fault else None,
            "registers": self.dump_registers() if self.state else {},
            "stack": self.get_stack() if self.state else [],
            "pc": self.get_pc() if self.state else 0,
            "trace_length": len(self.trace),
            "output": self.get_output(),
        }

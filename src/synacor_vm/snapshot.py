"""Suspend/resume snapshots for the Synacor VM.

A Snapshot captures registers, stack and program counter. Memory is NOT part
of a snapshot by default, so ``wmem`` writes made after a snapshot was taken
survive a restore. Callers that need a full resume opt in with
``include_memory=True``.

Persisted form (JSON):
    {"registers": [8 ints], "stack": [...], "pointer": pc, "memory": [...]?}
"""

import json
import logging
from array import array
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .state import REGISTER_COUNT, Status, VMState, check_address, check_registers, check_words


logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Capturable subset of VM state.

    Attributes:
        registers: The 8 register values
        stack: Stack contents, top of stack last
        pc: Program counter
        memory: Full memory contents, only when explicitly captured
    """
    registers: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)
    stack: List[int] = field(default_factory=list)
    pc: int = 0
    memory: Optional[List[int]] = None

    def validate(self, memory_size: Optional[int] = None) -> None:
        """Check the snapshot can be applied.

        Args:
            memory_size: Size of the target memory, checked when the snapshot
                carries memory

        Raises:
            ValueError: Describing the first problem found
        """
        check_registers(self.registers)
        check_words(self.stack, "Stack value")
        check_address(self.pc)
        if self.memory is not None:
            if memory_size is not None and len(self.memory) != memory_size:
                raise ValueError(
                    f"Snapshot memory has {len(self.memory)} cells, VM has {memory_size}"
                )
            check_words(self.memory, "Memory cell")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "registers": list(self.registers),
            "stack": list(self.stack),
            "pointer": self.pc,
        }
        if self.memory is not None:
            data["memory"] = list(self.memory)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        """Build a snapshot from its persisted form.

        Raises:
            ValueError: If a required key is missing or malformed
        """
        try:
            snapshot = cls(
                registers=list(data["registers"]),
                stack=list(data.get("stack") or []),
                pc=data["pointer"],
                memory=list(data["memory"]) if data.get("memory") is not None else None,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed snapshot: {e}") from e
        snapshot.validate()
        return snapshot


def capture(state: VMState, include_memory: bool = False) -> Snapshot:
    """Copy the snapshot fields out of a state."""
    return Snapshot(
        registers=list(state.registers),
        stack=list(state.stack),
        pc=state.pc,
        memory=list(state.memory) if include_memory else None,
    )


def apply(state: VMState, snapshot: Snapshot) -> None:
    """Overwrite a state from a snapshot.

    The snapshot is validated in full before anything is written, so a bad
    snapshot leaves the state untouched. Memory is only replaced when the
    snapshot carries it. The state is set back to RUNNING.

    Raises:
        ValueError: If the snapshot is invalid
    """
    snapshot.validate(memory_size=len(state.memory))

    state.registers = list(snapshot.registers)
    state.stack = list(snapshot.stack)
    state.pc = snapshot.pc
    if snapshot.memory is not None:
        state.memory = array("H", snapshot.memory)
    state.status = Status.RUNNING
    state.fault = None


def save_state(path: Union[str, Path], snapshot: Snapshot) -> None:
    """Write a snapshot to a JSON file."""
    path = Path(path)
    path.write_text(json.dumps(snapshot.to_dict()))
    logger.info("Saved state to %s (pc=%d, stack depth %d)", path, snapshot.pc, len(snapshot.stack))


def load_state(path: Union[str, Path]) -> Snapshot:
    """Read a snapshot from a JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a valid snapshot
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"State file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"State file {path} does not contain an object")
    snapshot = Snapshot.from_dict(data)
    logger.info("Loaded state from %s (pc=%d)", path, snapshot.pc)
    return snapshot

"""Synacor VM: a virtual machine for the Synacor challenge instruction set.

The machine has 16-bit memory cells holding 15-bit values, eight registers,
an unbounded stack, and a closed set of 22 instructions. Raw values 0..32767
are literals, 32768..32775 name registers r0-r7, anything higher is invalid.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [PC-based] [Decoder] [OP_*]  [Frozen]   [Registers,
                                        Primitives  Stack, Memory]

Modules:
    state: VMState dataclass (registers, stack, memory, PC, status)
    decode: Operand resolution and instruction decode
    registry: Opcode primitives (OP_ADD, OP_CALL, etc.)
    console: Character input/output collaborators
    snapshot: Suspend/resume snapshots and their JSON form
    image: Binary and textual program loading
    errors: Fault taxonomy
    vm: Main VirtualMachine orchestrator
"""

__version__ = "0.1.0"

from .state import VMState, Status
from .registry import VMRegistry
from .decode import Decoder, DecodeResult
from .console import Console, QueuedInput, StreamInput, StreamOutput
from .snapshot import Snapshot
from .errors import (
    VMFault,
    InvalidOperand,
    InvalidDestination,
    UnknownOpcode,
    StackUnderflow,
    DivideByZero,
    OutOfBoundsMemoryAccess,
    CycleLimitExceeded,
)
from .vm import VirtualMachine, RunResult, ExecutionTraceEntry

__all__ = [
    "VMState",
    "Status",
    "VMRegistry",
    "Decoder",
    "DecodeResult",
    "Console",
    "QueuedInput",
    "StreamInput",
    "StreamOutput",
    "Snapshot",
    "VMFault",
    "InvalidOperand",
    "InvalidDestination",
    "UnknownOpcode",
    "StackUnderflow",
    "DivideByZero",
    "OutOfBoundsMemoryAccess",
    "CycleLimitExceeded",
    "VirtualMachine",
    "RunResult",
    "ExecutionTraceEntry",
]

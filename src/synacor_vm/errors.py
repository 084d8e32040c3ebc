"""Fault taxonomy for the Synacor VM.

Every fault is fatal to the running program: the execution engine stops in the
FAULTED state and hands the fault back to the caller. Faults carry the context
needed to debug the guest program (opcode, mnemonic, instruction address and
raw operand words), filled in by whichever layer knows it.

Hierarchy:
    VMFault (RuntimeError)
        InvalidOperand          raw value >= 32776 in a resolvable position
        InvalidDestination      destination operand does not name a register
        UnknownOpcode           opcode outside the instruction set
        StackUnderflow          pop/ret on an empty stack
        DivideByZero            mod with a zero divisor
        OutOfBoundsMemoryAccess address beyond allocated memory

    CycleLimitExceeded (RuntimeError)  safety limit, not a fault
"""

from typing import Optional, Sequence, Tuple


class VMFault(RuntimeError):
    """Base class for fatal execution faults.

    Attributes:
        detail: Description of the violated invariant
        opcode: Opcode value of the faulting instruction (if known)
        name: Mnemonic of the faulting instruction (if known)
        address: Address the faulting instruction was fetched from
        operands: Raw operand words read for the instruction
    """

    kind = "Fault"

    def __init__(
        self,
        detail: str,
        opcode: Optional[int] = None,
        name: Optional[str] = None,
        address: Optional[int] = None,
        operands: Sequence[int] = (),
    ):
        super().__init__(detail)
        self.detail = detail
        self.opcode = opcode
        self.name = name
        self.address = address
        self.operands: Tuple[int, ...] = tuple(operands)

    def annotate(
        self,
        opcode: Optional[int] = None,
        name: Optional[str] = None,
        address: Optional[int] = None,
        operands: Sequence[int] = (),
    ) -> "VMFault":
        """Fill in instruction context that is still missing.

        Context already present is kept, so the innermost layer wins.

        Returns:
            self, to allow ``raise fault.annotate(...)``
        """
        if self.opcode is None:
            self.opcode = opcode
        if self.name is None:
            self.name = name
        if self.address is None:
            self.address = address
        if not self.operands:
            self.operands = tuple(operands)
        return self

    def __str__(self) -> str:
        context = []
        if self.opcode is not None:
            label = f"opcode={self.opcode}"
            if self.name:
                label += f" ({self.name})"
            context.append(label)
        if self.address is not None:
            context.append(f"pc={self.address}")
        if self.operands:
            context.append(f"operands={list(self.operands)}")
        if context:
            return f"{self.kind}: {self.detail} [{', '.join(context)}]"
        return f"{self.kind}: {self.detail}"


class InvalidOperand(VMFault):
    kind = "InvalidOperand"


class InvalidDestination(VMFault):
    kind = "InvalidDestination"


class UnknownOpcode(VMFault):
    kind = "UnknownOpcode"


class StackUnderflow(VMFault):
    kind = "StackUnderflow"


class DivideByZero(VMFault):
    kind = "DivideByZero"


class OutOfBoundsMemoryAccess(VMFault):
    kind = "OutOfBoundsMemoryAccess"


class CycleLimitExceeded(RuntimeError):
    """Raised when run() reaches its cycle limit before the program halts."""

    def __init__(self, limit: int):
        super().__init__(f"Max cycles ({limit}) exceeded")
        self.limit = limit

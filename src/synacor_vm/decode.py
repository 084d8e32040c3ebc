"""Operand resolution and instruction decode for the Synacor VM.

Every memory cell is a raw 16-bit value interpreted by one rule:

    0     <= v < 32768   literal value
    32768 <= v < 32776   reference to register v - 32768
    32776 <= v           invalid

Source operands are resolved through that rule. Destination operands of
register-writing instructions must literally name a register.

Architecture:
    MEMORY[pc] -> Decoder -> (registry key, resolved params, next_pc) -> Registry

Decoding never mutates machine state, so a fault raised here leaves the VM
exactly as it was before the fetch.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvalidDestination, InvalidOperand, OutOfBoundsMemoryAccess, UnknownOpcode, VMFault
from .state import MODULUS, REGISTER_COUNT


REGISTER_BASE = MODULUS
MAX_RAW = REGISTER_BASE + REGISTER_COUNT  # first invalid raw value


@dataclass(frozen=True)
class OpcodeSpec:
    """Static description of one instruction.

    Attributes:
        name: Mnemonic
        key: Registry key of the primitive implementing it
        operands: Operand names; "dest" operands decode to a register index,
            every other operand is resolved to a value
    """
    name: str
    key: str
    operands: Tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return 1 + len(self.operands)


OPCODES: Dict[int, OpcodeSpec] = {
    0: OpcodeSpec("halt", "OP_HALT"),
    1: OpcodeSpec("set", "OP_SET", ("dest", "value")),
    2: OpcodeSpec("push", "OP_PUSH", ("value",)),
    3: OpcodeSpec("pop", "OP_POP", ("dest",)),
    4: OpcodeSpec("eq", "OP_EQ", ("dest", "a", "b")),
    5: OpcodeSpec("gt", "OP_GT", ("dest", "a", "b")),
    6: OpcodeSpec("jmp", "OP_JMP", ("addr",)),
    7: OpcodeSpec("jt", "OP_JT", ("cond", "addr")),
    8: OpcodeSpec("jf", "OP_JF", ("cond", "addr")),
    9: OpcodeSpec("add", "OP_ADD", ("dest", "a", "b")),
    10: OpcodeSpec("mult", "OP_MULT", ("dest", "a", "b")),
    11: OpcodeSpec("mod", "OP_MOD", ("dest", "a", "b")),
    12: OpcodeSpec("and", "OP_AND", ("dest", "a", "b")),
    13: OpcodeSpec("or", "OP_OR", ("dest", "a", "b")),
    14: OpcodeSpec("not", "OP_NOT", ("dest", "a")),
    15: OpcodeSpec("rmem", "OP_RMEM", ("dest", "addr")),
    16: OpcodeSpec("wmem", "OP_WMEM", ("addr", "value")),
    17: OpcodeSpec("call", "OP_CALL", ("addr",)),
    18: OpcodeSpec("ret", "OP_RET"),
    19: OpcodeSpec("out", "OP_OUT", ("value",)),
    20: OpcodeSpec("in", "OP_IN", ("dest",)),
    21: OpcodeSpec("noop", "OP_NOOP"),
}

# Mnemonic -> opcode, for assembling test programs
MNEMONICS: Dict[str, int] = {spec.name: opcode for opcode, spec in OPCODES.items()}


def is_register(raw: int) -> bool:
    return REGISTER_BASE <= raw < MAX_RAW


def resolve(raw: int, registers: Sequence[int]) -> int:
    """Resolve a raw cell to its effective value.

    Args:
        raw: Raw 16-bit cell value
        registers: Current register bank

    Returns:
        raw itself for literals, the register content for register references

    Raises:
        InvalidOperand: If raw >= 32776
    """
    if raw < REGISTER_BASE:
        return raw
    if raw < MAX_RAW:
        return registers[raw - REGISTER_BASE]
    raise InvalidOperand(f"raw value {raw} is neither a literal nor a register")


def as_register_index(raw: int) -> int:
    """Decode a destination operand to a register index.

    Raises:
        InvalidDestination: Unless 32768 <= raw < 32776
    """
    if is_register(raw):
        return raw - REGISTER_BASE
    raise InvalidDestination(f"raw value {raw} does not name a register")


def format_operand(raw: int) -> str:
    """Render a raw operand: registers as r0-r7, everything else as a number."""
    if is_register(raw):
        return f"r{raw - REGISTER_BASE}"
    return str(raw)


@dataclass
class DecodeResult:
    """Result of decoding the instruction at one address.

    Attributes:
        key: Registry key (e.g., "OP_ADD")
        opcode: Opcode value
        name: Mnemonic
        address: Address the opcode was fetched from
        raw: Raw operand words as stored in memory
        params: Decoded operands (register indices for "dest", values otherwise)
        next_pc: Address of the following instruction
    """
    key: str
    opcode: int
    name: str
    address: int
    raw: Tuple[int, ...] = ()
    params: Dict[str, int] = field(default_factory=dict)
    next_pc: int = 0

    @property
    def text(self) -> str:
        """Assembly-style rendering, e.g. ``add r0 r1 4``."""
        return " ".join([self.name] + [format_operand(word) for word in self.raw])


class Decoder:
    """Fetches and decodes one instruction at a time.

    Attributes:
        opcodes: Opcode table the decoder recognizes
    """

    def __init__(self, opcodes: Optional[Dict[int, OpcodeSpec]] = None):
        self.opcodes = opcodes if opcodes is not None else OPCODES

    def decode(self, memory: Sequence[int], registers: Sequence[int], pc: int) -> DecodeResult:
        """Decode the instruction at ``pc``.

        Args:
            memory: Memory cells
            registers: Register bank used to resolve source operands
            pc: Address of the opcode

        Returns:
            DecodeResult for the instruction

        Raises:
            UnknownOpcode: If the fetched opcode is not in the table
            InvalidOperand: If a source operand is >= 32776
            InvalidDestination: If a destination operand is not a register
            OutOfBoundsMemoryAccess: If the instruction runs past memory
        """
        try:
            opcode = self._fetch(memory, pc)
        except VMFault as e:
            raise e.annotate(address=pc)
        spec = self.opcodes.get(opcode)
        if spec is None:
            raise UnknownOpcode(f"unknown opcode {opcode}", opcode=opcode, address=pc)

        raw: List[int] = []
        params: Dict[str, int] = {}
        try:
            for offset, operand in enumerate(spec.operands, start=1):
                word = self._fetch(memory, pc + offset)
                raw.append(word)
                if operand == "dest":
                    params[operand] = as_register_index(word)
                else:
                    params[operand] = resolve(word, registers)
        except VMFault as e:
            raise e.annotate(opcode=opcode, name=spec.name, address=pc, operands=raw)

        return DecodeResult(
            key=spec.key,
            opcode=opcode,
            name=spec.name,
            address=pc,
            raw=tuple(raw),
            params=params,
            next_pc=pc + spec.size,
        )

    @staticmethod
    def _fetch(memory: Sequence[int], address: int) -> int:
        if not 0 <= address < len(memory):
            raise OutOfBoundsMemoryAccess(
                f"fetch of address {address} outside memory of {len(memory)} cells"
            )
        return memory[address]

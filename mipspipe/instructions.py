"""
MIPS instruction definitions.

This module defines the supported instruction repertoire with opcodes, funct
codes, format types, operand syntax, and the pipeline stage in which each
operation has its effect. It is the single table shared by the assembler,
the decoder, and the execution unit.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Dict, Optional


class Stage(IntEnum):
    """Pipeline stages, in the order an instruction visits them."""

    IF = 0
    ID = 1
    EX = 2
    MEM = 3
    WB = 4


STAGE_NAMES = tuple(stage.name for stage in Stage)
STAGE_COUNT = len(Stage)


class InstructionFormat(Enum):
    """MIPS instruction format types."""

    R = auto()  # Register-register operations
    I = auto()  # Immediate, branch, load/store operations
    J = auto()  # Jump operations


class Op(Enum):
    """Every operation the simulator knows. Value is the mnemonic."""

    ADD = "add"
    ADDU = "addu"
    SUB = "sub"
    SUBU = "subu"
    AND = "and"
    OR = "or"
    NOR = "nor"
    SLT = "slt"
    SLTU = "sltu"
    SLL = "sll"
    SRL = "srl"
    JR = "jr"
    ADDI = "addi"
    ADDIU = "addiu"
    SLTI = "slti"
    SLTIU = "sltiu"
    ANDI = "andi"
    ORI = "ori"
    LUI = "lui"
    BEQ = "beq"
    BNE = "bne"
    J = "j"
    JAL = "jal"
    LW = "lw"
    LBU = "lbu"
    LHU = "lhu"
    LL = "ll"
    SW = "sw"
    SB = "sb"
    SH = "sh"
    SC = "sc"


@dataclass(frozen=True)
class InstructionDef:
    """
    Definition of a MIPS instruction.

    Attributes:
        opcode: 6-bit primary opcode
        format: Instruction format type
        syntax: Comma-separated operand roles in assembly order
        stage: Stage in which the operation mutates state
        funct: 6-bit function field (R-type only)
        signed_imm: Whether the 16-bit immediate is sign-extended
        is_load: True for memory reads
        is_store: True for memory writes
    """

    opcode: int
    format: InstructionFormat
    syntax: str
    stage: Stage = Stage.EX
    funct: Optional[int] = None
    signed_imm: bool = True
    is_load: bool = False
    is_store: bool = False

    @property
    def operand_roles(self) -> tuple:
        return tuple(self.syntax.split(","))


def _r(funct: int, syntax: str = "rd,rs,rt") -> InstructionDef:
    return InstructionDef(opcode=0x00, format=InstructionFormat.R, syntax=syntax, funct=funct)


def _i(opcode: int, syntax: str = "rt,rs,imm", signed_imm: bool = True) -> InstructionDef:
    return InstructionDef(opcode=opcode, format=InstructionFormat.I, syntax=syntax, signed_imm=signed_imm)


def _load(opcode: int) -> InstructionDef:
    return InstructionDef(
        opcode=opcode, format=InstructionFormat.I, syntax="rt,mem", stage=Stage.MEM, is_load=True
    )


def _store(opcode: int) -> InstructionDef:
    return InstructionDef(
        opcode=opcode, format=InstructionFormat.I, syntax="rt,mem", stage=Stage.MEM, is_store=True
    )


INSTRUCTIONS: Dict[Op, InstructionDef] = {
    # -------------------------------------------------------------------------
    # R-Type Instructions (Register-Register) - Opcode: 0x00
    # -------------------------------------------------------------------------
    Op.ADD: _r(0x20),
    Op.ADDU: _r(0x21),
    Op.SUB: _r(0x22),
    Op.SUBU: _r(0x23),
    Op.AND: _r(0x24),
    Op.OR: _r(0x25),
    Op.NOR: _r(0x27),
    Op.SLT: _r(0x2A),
    Op.SLTU: _r(0x2B),
    Op.SLL: _r(0x00, "rd,rt,shamt"),
    Op.SRL: _r(0x02, "rd,rt,shamt"),
    Op.JR: _r(0x08, "rs"),
    # -------------------------------------------------------------------------
    # I-Type ALU Instructions
    # -------------------------------------------------------------------------
    Op.ADDI: _i(0x08),
    Op.ADDIU: _i(0x09),
    Op.SLTI: _i(0x0A),
    Op.SLTIU: _i(0x0B),
    Op.ANDI: _i(0x0C, signed_imm=False),
    Op.ORI: _i(0x0D, signed_imm=False),
    Op.LUI: _i(0x0F, "rt,imm", signed_imm=False),
    # -------------------------------------------------------------------------
    # Branch Instructions (I-Type, word offset relative to PC+1)
    # -------------------------------------------------------------------------
    Op.BEQ: _i(0x04, "rs,rt,offset"),
    Op.BNE: _i(0x05, "rs,rt,offset"),
    # -------------------------------------------------------------------------
    # Jump Instructions (J-Type)
    # -------------------------------------------------------------------------
    Op.J: InstructionDef(opcode=0x02, format=InstructionFormat.J, syntax="target"),
    Op.JAL: InstructionDef(opcode=0x03, format=InstructionFormat.J, syntax="target"),
    # -------------------------------------------------------------------------
    # Load / Store Instructions (I-Type, offset(base))
    # -------------------------------------------------------------------------
    Op.LW: _load(0x23),
    Op.LBU: _load(0x24),
    Op.LHU: _load(0x25),
    Op.LL: _load(0x30),
    Op.SB: _store(0x28),
    Op.SH: _store(0x29),
    Op.SW: _store(0x2B),
    Op.SC: _store(0x38),
}

# Opcodes whose rt field is the destination register
IMMEDIATE_DEST_OPS = frozenset(
    {Op.ADDI, Op.ADDIU, Op.SLTI, Op.SLTIU, Op.ANDI, Op.ORI, Op.LUI}
)

_BY_OPCODE = {
    definition.opcode: op
    for op, definition in INSTRUCTIONS.items()
    if definition.format != InstructionFormat.R
}
_BY_FUNCT = {
    definition.funct: op
    for op, definition in INSTRUCTIONS.items()
    if definition.format == InstructionFormat.R
}


def lookup_op(mnemonic: str) -> Optional[Op]:
    """Return the Op for a mnemonic (case-insensitive), or None."""
    try:
        return Op(mnemonic.lower().strip())
    except ValueError:
        return None


def get_instruction(mnemonic: str) -> Optional[InstructionDef]:
    """
    Look up an instruction by mnemonic.

    Args:
        mnemonic: Instruction mnemonic (case-insensitive)

    Returns:
        InstructionDef if found, None otherwise
    """
    op = lookup_op(mnemonic)
    if op is None:
        return None
    return INSTRUCTIONS[op]


def find_by_encoding(opcode: int, funct: int) -> Optional[Op]:
    """Identify the operation for an opcode/funct pair, or None if unknown."""
    if opcode == 0:
        return _BY_FUNCT.get(funct)
    return _BY_OPCODE.get(opcode)

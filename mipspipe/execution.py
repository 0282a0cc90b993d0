"""
Execution unit.

Applies the effect of one instruction in one pipeline stage. ALU, branch and
jump operations act in EX, loads and stores in MEM. Results are committed to
the register file as soon as they are produced, so WB only marks completion.

Anomalies never raise out of execute(): malformed operands and out-of-range
addresses are logged and skipped, unknown mnemonics are ignored.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from .errors import ParseError
from .hazards import ForwardingEdge
from .instructions import INSTRUCTIONS, Op, Stage, lookup_op
from .machine import Memory, RegisterFile, to_unsigned32
from .parser import parse_immediate, parse_line, parse_memory_operand
from .registers import RA, get_register_name, parse_register

logger = logging.getLogger(__name__)


class ExecutionContext:
    """Operand access for one execute() call."""

    def __init__(
        self,
        op: Op,
        registers: RegisterFile,
        memory: Memory,
        pc: int,
        stage: Stage,
        forwardings: Sequence[ForwardingEdge],
    ):
        self.op = op
        self.registers = registers
        self.memory = memory
        self.pc = pc
        self.stage = stage
        self.forwardings = forwardings

    def read(self, operand: str) -> int:
        """
        Read a register operand.

        A forwarding edge into this stage for the register is honoured by
        reading the register file, which already holds the producer's result.
        """
        reg = parse_register(operand)
        for edge in self.forwardings:
            if edge.dest_stage == self.stage and edge.register == reg:
                logger.debug(
                    "Forwarding %s from %s (instruction %d) to %s",
                    get_register_name(reg), edge.source_stage.name, edge.source_index, self.stage.name,
                )
                break
        return self.registers[reg]

    def write(self, operand: str, value: int) -> None:
        self.registers[parse_register(operand)] = value


Handler = Callable[[ExecutionContext, List[str]], Optional[int]]

SEMANTICS: Dict[Op, Handler] = {}


def semantic(*ops: Op):
    """Register a handler as the semantic function of the given operations."""

    def register(handler: Handler) -> Handler:
        for op in ops:
            SEMANTICS[op] = handler
        return handler

    return register


def _unsigned_less(a: int, b: int) -> int:
    return 1 if to_unsigned32(a) < to_unsigned32(b) else 0


# =============================================================================
# EX stage
# =============================================================================

_REGISTER_ALU = {
    Op.ADD: lambda a, b: a + b,
    Op.ADDU: lambda a, b: a + b,
    Op.SUB: lambda a, b: a - b,
    Op.SUBU: lambda a, b: a - b,
    Op.AND: lambda a, b: a & b,
    Op.OR: lambda a, b: a | b,
    Op.NOR: lambda a, b: ~(a | b),
    Op.SLT: lambda a, b: 1 if a < b else 0,
    Op.SLTU: _unsigned_less,
}

_IMMEDIATE_ALU = {
    Op.ADDI: lambda a, imm: a + imm,
    Op.ADDIU: lambda a, imm: a + imm,
    Op.ANDI: lambda a, imm: a & imm,
    Op.ORI: lambda a, imm: a | imm,
    Op.SLTI: lambda a, imm: 1 if a < imm else 0,
    Op.SLTIU: _unsigned_less,
}


@semantic(*_REGISTER_ALU)
def _register_alu(ctx: ExecutionContext, operands: List[str]) -> None:
    rd, rs, rt = operands
    result = _REGISTER_ALU[ctx.op](ctx.read(rs), ctx.read(rt))
    ctx.write(rd, result)
    logger.debug("EX: %s %s, %s, %s -> %s=%d", ctx.op.value, rd, rs, rt, rd, ctx.registers[rd])


@semantic(*_IMMEDIATE_ALU)
def _immediate_alu(ctx: ExecutionContext, operands: List[str]) -> None:
    rt, rs, immediate = operands
    result = _IMMEDIATE_ALU[ctx.op](ctx.read(rs), parse_immediate(immediate))
    ctx.write(rt, result)
    logger.debug("EX: %s %s, %s, %s -> %s=%d", ctx.op.value, rt, rs, immediate, rt, ctx.registers[rt])


@semantic(Op.SLL, Op.SRL)
def _shift(ctx: ExecutionContext, operands: List[str]) -> None:
    rd, rt, shamt = operands
    amount = parse_immediate(shamt)
    value = ctx.read(rt)
    if ctx.op == Op.SLL:
        result = value << amount
    else:
        result = to_unsigned32(value) >> amount
    ctx.write(rd, result)
    logger.debug("EX: %s %s, %s, %d -> %s=%d", ctx.op.value, rd, rt, amount, rd, ctx.registers[rd])


@semantic(Op.LUI)
def _load_upper(ctx: ExecutionContext, operands: List[str]) -> None:
    rt, immediate = operands
    ctx.write(rt, parse_immediate(immediate) << 16)
    logger.debug("EX: lui %s, %s -> %s=%d", rt, immediate, rt, ctx.registers[rt])


@semantic(Op.BEQ, Op.BNE)
def _branch(ctx: ExecutionContext, operands: List[str]) -> Optional[int]:
    rs, rt, offset = operands
    displacement = parse_immediate(offset)
    equal = ctx.read(rs) == ctx.read(rt)
    taken = equal if ctx.op == Op.BEQ else not equal
    if not taken:
        logger.debug("EX: %s %s, %s, %d -> branch not taken", ctx.op.value, rs, rt, displacement)
        return None
    new_pc = ctx.pc + 1 + displacement
    logger.debug("EX: %s %s, %s, %d -> branch taken, new PC=%d", ctx.op.value, rs, rt, displacement, new_pc)
    return new_pc


def _jump_target(operand: str) -> int:
    try:
        return int(operand, 16) >> 2
    except ValueError:
        raise ParseError(f"Invalid jump target: {operand}")


@semantic(Op.J)
def _jump(ctx: ExecutionContext, operands: List[str]) -> int:
    (target,) = operands
    new_pc = _jump_target(target)
    logger.debug("EX: j %s -> new PC=%d", target, new_pc)
    return new_pc


@semantic(Op.JAL)
def _jump_and_link(ctx: ExecutionContext, operands: List[str]) -> int:
    (target,) = operands
    new_pc = _jump_target(target)
    ctx.registers[RA] = ctx.pc + 2
    logger.debug("EX: jal %s -> $ra=%d, new PC=%d", target, ctx.registers[RA], new_pc)
    return new_pc


@semantic(Op.JR)
def _jump_register(ctx: ExecutionContext, operands: List[str]) -> int:
    (rs,) = operands
    new_pc = ctx.read(rs) >> 2
    logger.debug("EX: jr %s -> new PC=%d", rs, new_pc)
    return new_pc


# =============================================================================
# MEM stage
# =============================================================================

_LOAD_MASKS = {Op.LW: None, Op.LL: None, Op.LBU: 0xFF, Op.LHU: 0xFFFF}
_STORE_MASKS = {Op.SW: None, Op.SC: None, Op.SB: 0xFF, Op.SH: 0xFFFF}


@semantic(*_LOAD_MASKS, *_STORE_MASKS)
def _memory_access(ctx: ExecutionContext, operands: List[str]) -> None:
    rt, offset_and_base = operands
    offset, base = parse_memory_operand(offset_and_base)
    address = to_unsigned32(ctx.read(base) + offset)

    if not ctx.memory.in_bounds(address):
        logger.warning("MEM: invalid memory address for %s: %d", ctx.op.value, address)
        return None

    if ctx.op in _LOAD_MASKS:
        value = ctx.memory[address]
        mask = _LOAD_MASKS[ctx.op]
        ctx.write(rt, value & mask if mask is not None else value)
        logger.debug("MEM: %s %s, %s -> %s=%d from address %d",
                     ctx.op.value, rt, offset_and_base, rt, ctx.registers[rt], address)
        return None

    value = ctx.read(rt)
    mask = _STORE_MASKS[ctx.op]
    ctx.memory[address] = value & mask if mask is not None else value
    if ctx.op == Op.SC:
        ctx.write(rt, 1)
    logger.debug("MEM: %s %s, %s -> Memory[%d]=%d",
                 ctx.op.value, rt, offset_and_base, address, ctx.memory[address])
    return None


_missing = set(Op) - set(SEMANTICS)
if _missing:
    raise RuntimeError(f"No semantics registered for: {sorted(op.value for op in _missing)}")


def execute_instruction(
    text: str,
    registers: RegisterFile,
    memory: Memory,
    pc: int,
    stage: Stage,
    forwardings: Sequence[ForwardingEdge] = (),
) -> Optional[int]:
    """
    Apply one instruction's effect for the given stage.

    Args:
        text: Mnemonic and operands, e.g. "addi $t0, $zero, 5"
        registers: Register file, mutated in place
        memory: Memory, mutated in place
        pc: Address (word index) of the instruction
        stage: Stage the instruction occupies
        forwardings: Forwarding edges targeting this instruction

    Returns:
        The redirected program counter for taken branches and jumps, else None
    """
    try:
        if stage in (Stage.IF, Stage.ID):
            return None

        try:
            parsed = parse_line(text)
        except ParseError as e:
            logger.warning("%s: skipping '%s': %s", stage.name, text, e)
            return None

        mnemonic, operands = parsed.mnemonic, parsed.operands
        op = lookup_op(mnemonic) if mnemonic else None
        if op is None:
            return None

        if stage == Stage.WB:
            logger.debug("WB: %s complete", text)
            return None

        definition = INSTRUCTIONS[op]
        if definition.stage != stage:
            return None

        if len(operands) != len(definition.operand_roles):
            logger.warning("%s: malformed operands for %s: %s", stage.name, mnemonic, text)
            return None

        ctx = ExecutionContext(op, registers, memory, pc, stage, forwardings)
        try:
            return SEMANTICS[op](ctx, operands)
        except (ParseError, ValueError) as e:
            logger.warning("%s: skipping '%s': %s", stage.name, text, e)
            return None
    finally:
        registers.clear_zero()


class ExecutionUnit:
    """Stateless wrapper the scheduler calls for side-effecting stages."""

    def execute(
        self,
        text: str,
        registers: RegisterFile,
        memory: Memory,
        pc: int,
        stage: Stage,
        forwardings: Sequence[ForwardingEdge] = (),
    ) -> Optional[int]:
        return execute_instruction(text, registers, memory, pc, stage, forwardings)

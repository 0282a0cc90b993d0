"""
MIPS instruction encoder.

Packs register, immediate, and target fields into 32-bit machine code based
on the instruction's format type.
"""

from .errors import EncodingError
from .instructions import InstructionDef, InstructionFormat


def sign_extend(value: int, bits: int) -> int:
    """Sign-extend a value to the specified number of bits."""
    sign_bit = 1 << (bits - 1)
    return (value & (sign_bit - 1)) - (value & sign_bit)


def check_immediate_range(value: int, bits: int, signed: bool = True, name: str = "immediate") -> None:
    """
    Check if an immediate value fits in the specified bit width.

    Args:
        value: The immediate value to check
        bits: Number of bits available
        signed: Whether the immediate is signed
        name: Name for error messages
    """
    if signed:
        min_val = -(1 << (bits - 1))
        max_val = (1 << (bits - 1)) - 1
    else:
        min_val = 0
        max_val = (1 << bits) - 1

    if not (min_val <= value <= max_val):
        raise EncodingError(
            f"{name} value {value} out of range [{min_val}, {max_val}] for {bits}-bit field"
        )


def encode_r_type(instr: InstructionDef, rd: int, rs: int, rt: int, shamt: int = 0) -> int:
    """
    Encode an R-type instruction.

    Format: [opcode(6) | rs(5) | rt(5) | rd(5) | shamt(5) | funct(6)]
    """
    check_immediate_range(shamt, 5, signed=False, name="shift amount")

    encoding = (instr.opcode & 0x3F) << 26
    encoding |= (rs & 0x1F) << 21
    encoding |= (rt & 0x1F) << 16
    encoding |= (rd & 0x1F) << 11
    encoding |= (shamt & 0x1F) << 6
    encoding |= instr.funct & 0x3F
    return encoding


def encode_i_type(instr: InstructionDef, rt: int, rs: int, imm: int) -> int:
    """
    Encode an I-type instruction.

    Format: [opcode(6) | rs(5) | rt(5) | imm(16)]
    """
    check_immediate_range(imm, 16, signed=instr.signed_imm, name="I-type immediate")

    encoding = (instr.opcode & 0x3F) << 26
    encoding |= (rs & 0x1F) << 21
    encoding |= (rt & 0x1F) << 16
    encoding |= imm & 0xFFFF
    return encoding


def encode_j_type(instr: InstructionDef, target: int) -> int:
    """
    Encode a J-type instruction.

    Format: [opcode(6) | target(26)]

    The target is a word address, i.e. the byte address shifted right by two.
    """
    check_immediate_range(target, 26, signed=False, name="J-type target")

    encoding = (instr.opcode & 0x3F) << 26
    encoding |= target & 0x3FFFFFF
    return encoding


def encode_instruction(
    instr: InstructionDef,
    rd: int = 0,
    rs: int = 0,
    rt: int = 0,
    shamt: int = 0,
    imm: int = 0,
    target: int = 0,
) -> int:
    """
    Encode an instruction based on its format.

    Returns:
        32-bit encoded instruction
    """
    fmt = instr.format

    if fmt == InstructionFormat.R:
        return encode_r_type(instr, rd, rs, rt, shamt)
    elif fmt == InstructionFormat.I:
        return encode_i_type(instr, rt, rs, imm)
    elif fmt == InstructionFormat.J:
        return encode_j_type(instr, target)
    else:
        raise EncodingError(f"Unknown instruction format: {fmt}")

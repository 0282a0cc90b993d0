"""
Instruction decoder.

Translates raw 32-bit MIPS encodings into structured fields and into
mnemonic+operand text. Both functions are pure; the simulator decodes every
instruction once when a run starts.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .encoder import sign_extend
from .errors import DecodeError
from .instructions import (
    IMMEDIATE_DEST_OPS,
    INSTRUCTIONS,
    InstructionFormat,
    Op,
    find_by_encoding,
)
from .registers import RA, get_register_name


@dataclass(frozen=True)
class DecodedInstruction:
    """
    A raw encoding together with its decoded fields.

    Attributes:
        raw: 32-bit encoding
        opcode: Bits 31-26
        rs, rt: Source register fields
        rd: Destination register as seen by hazard analysis (see decode())
        shamt: Shift amount (R-type)
        funct: Function field (R-type)
        imm: 16-bit immediate, sign- or zero-extended per instruction
        target: 26-bit jump target (word address)
        format: R, I or J
        is_load: True for memory reads
        is_store: True for memory writes
        op: Recognized operation, None for unknown encodings
    """

    raw: int
    opcode: int
    rs: int
    rt: int
    rd: int
    shamt: int
    funct: int
    imm: int
    target: int
    format: InstructionFormat
    is_load: bool = False
    is_store: bool = False
    op: Optional[Op] = None

    @property
    def mnemonic(self) -> Optional[str]:
        return self.op.value if self.op is not None else None

    @property
    def text(self) -> str:
        return disassemble(self)

    def __str__(self) -> str:
        return self.text


def parse_encoding(value: Union[int, str]) -> int:
    """
    Normalize a raw instruction into a 32-bit integer.

    Accepts ints and hex strings with or without a 0x prefix.

    Raises:
        DecodeError: If the value is not a valid 32-bit encoding
    """
    if isinstance(value, bool):
        raise DecodeError(f"Invalid instruction encoding: {value!r}")

    if isinstance(value, int):
        raw = value
    elif isinstance(value, str):
        text = value.strip().replace("_", "")
        if text.lower().startswith("0x"):
            text = text[2:]
        if not text or len(text) > 8:
            raise DecodeError(f"Invalid instruction encoding: {value!r}")
        try:
            raw = int(text, 16)
        except ValueError:
            raise DecodeError(f"Invalid instruction encoding: {value!r}")
    else:
        raise DecodeError(f"Invalid instruction encoding: {value!r}")

    if not 0 <= raw <= 0xFFFFFFFF:
        raise DecodeError(f"Instruction encoding out of 32-bit range: {value!r}")
    return raw


def decode(value: Union[int, str, DecodedInstruction]) -> DecodedInstruction:
    """
    Decode a raw encoding into its fields.

    The rd field reports the register the instruction writes:
    R-type uses the rd field, jal writes $ra, loads and the immediate ALU
    group write rt, and everything else (stores, branches, j) writes nothing.
    """
    if isinstance(value, DecodedInstruction):
        return value

    raw = parse_encoding(value)
    opcode = (raw >> 26) & 0x3F
    rs = (raw >> 21) & 0x1F
    rt = (raw >> 16) & 0x1F
    rd_field = (raw >> 11) & 0x1F
    shamt = (raw >> 6) & 0x1F
    funct = raw & 0x3F
    imm16 = raw & 0xFFFF
    target = raw & 0x3FFFFFF

    op = find_by_encoding(opcode, funct)
    definition = INSTRUCTIONS[op] if op is not None else None

    if opcode == 0:
        fmt = InstructionFormat.R
        rd = rd_field
    elif opcode in (0x02, 0x03):
        fmt = InstructionFormat.J
        rd = RA if opcode == 0x03 else 0
        funct = 0
    else:
        fmt = InstructionFormat.I
        funct = 0
        if definition is not None and (definition.is_load or op in IMMEDIATE_DEST_OPS):
            rd = rt
        else:
            rd = 0

    if definition is None or definition.signed_imm:
        imm = sign_extend(imm16, 16)
    else:
        imm = imm16

    return DecodedInstruction(
        raw=raw,
        opcode=opcode,
        rs=rs,
        rt=rt,
        rd=rd,
        shamt=shamt,
        funct=funct,
        imm=imm,
        target=target,
        format=fmt,
        is_load=definition.is_load if definition else False,
        is_store=definition.is_store if definition else False,
        op=op,
    )


def disassemble(value: Union[int, str, DecodedInstruction]) -> str:
    """
    Render an encoding as mnemonic+operand text.

    Examples: "add $t2, $t0, $t1", "lw $t1, 4($sp)", "beq $t0, $zero, -3",
    "j 0x00000040". Unknown encodings render as "unknown 0x...".
    """
    inst = decode(value)
    if inst.op is None:
        return f"unknown 0x{inst.raw:08x}"

    reg = get_register_name
    definition = INSTRUCTIONS[inst.op]
    rendered = {
        "rd": reg((inst.raw >> 11) & 0x1F),
        "rs": reg(inst.rs),
        "rt": reg(inst.rt),
        "shamt": str(inst.shamt),
        "imm": str(inst.imm),
        "offset": str(inst.imm),
        "target": f"0x{inst.target << 2:08x}",
        "mem": f"{inst.imm}({reg(inst.rs)})",
    }
    operands = ", ".join(rendered[role] for role in definition.operand_roles)
    return f"{inst.op.value} {operands}"

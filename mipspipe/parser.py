"""
MIPS assembly line tokenizer.

One grammar covers both assembler source lines and the mnemonic+operand
text the decoder produces:

    [label:] [mnemonic [operand {, operand}]] [# or // comment]

Operands are registers ($t0, $8), immediates (5, -3, 0x40) or memory
references (offset(base)). None of them contain commas, so operands are
split on commas alone.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import ParseError
from .registers import is_valid_register

_COMMENT = re.compile(r"#|//")
_LINE = re.compile(
    r"^(?:(?P<label>\.?[A-Za-z_]\w*)\s*:)?"
    r"\s*(?P<mnemonic>\.?[A-Za-z_][\w.]*)?"
    r"\s*(?P<operands>.*?)\s*$"
)
_MEMORY_OPERAND = re.compile(r"^(?P<offset>[-+]?\w*)\s*\(\s*(?P<base>\$?\w+)\s*\)$")


@dataclass
class ParsedLine:
    """
    One tokenized line.

    Attributes:
        line_num: Line number in the source, 0 for standalone text
        label: Label defined on this line (if any)
        mnemonic: Lower-cased mnemonic or directive (if any)
        operands: Operand strings in source order
        original: Line text as given
        is_directive: True for .text, .globl and friends
    """

    line_num: int = 0
    label: Optional[str] = None
    mnemonic: Optional[str] = None
    operands: List[str] = field(default_factory=list)
    original: str = ""
    is_directive: bool = False


def parse_immediate(value_str: str) -> int:
    """
    Parse a decimal, 0x hex, 0b binary or 0o octal immediate, optionally signed.

    Raises:
        ParseError: If the text is not an integer literal
    """
    text = value_str.strip()
    if not text:
        raise ParseError("Empty immediate value")
    try:
        return int(text, 0)
    except ValueError:
        pass
    try:
        # int(..., 0) rejects leading zeros such as "007"
        return int(text, 10)
    except ValueError:
        raise ParseError(f"Invalid immediate value: {text}")


def parse_memory_operand(operand: str) -> Tuple[int, str]:
    """
    Split an offset(base) operand.

    "4($sp)" -> (4, "$sp"), "-8($t0)" -> (-8, "$t0"), "($a0)" -> (0, "$a0")

    Raises:
        ParseError: On bad syntax, a bad offset or an unknown base register
    """
    match = _MEMORY_OPERAND.match(operand.strip())
    if not match:
        raise ParseError(f"Invalid memory operand syntax: {operand}")

    offset_text, base = match.group("offset"), match.group("base")
    offset = parse_immediate(offset_text) if offset_text not in ("", "-", "+") else 0

    if not is_valid_register(base):
        raise ParseError(f"Invalid register in memory operand: {base}")
    return offset, base


def parse_line(line: str, line_num: int = 0) -> ParsedLine:
    """
    Tokenize one line into label, mnemonic and operands.

    Raises:
        ParseError: If operands appear without a mnemonic
    """
    code = _COMMENT.split(line, 1)[0]
    match = _LINE.match(code.strip())
    result = ParsedLine(line_num=line_num, original=line, label=match.group("label"))

    mnemonic, operands = match.group("mnemonic"), match.group("operands")
    if mnemonic is None:
        if operands:
            raise ParseError(f"Expected a mnemonic, got: {operands}", line_num or None, line)
        return result

    result.mnemonic = mnemonic.lower()
    result.is_directive = mnemonic.startswith(".")
    result.operands = [op.strip() for op in operands.split(",") if op.strip()]
    return result


def parse_source(content: str) -> List[ParsedLine]:
    """Tokenize every line of a source text; line numbers start at 1."""
    return [parse_line(line, num) for num, line in enumerate(content.splitlines(), start=1)]

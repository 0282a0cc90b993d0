"""
Main assembler implementation.

Two-pass assembler for the simulator's MIPS subset, producing the raw 32-bit
encodings the pipeline consumes.
"""

import logging
from typing import Dict, List, Tuple

from .encoder import encode_instruction
from .errors import EncodingError, ParseError, SymbolError
from .instructions import get_instruction
from .parser import ParsedLine, parse_immediate, parse_memory_operand, parse_source
from .registers import parse_register

logger = logging.getLogger(__name__)

# (mnemonic, operands) after pseudo-instruction expansion
ExpandedInstruction = Tuple[str, List[str]]


def expand_pseudo(mnemonic: str, operands: List[str]) -> List[ExpandedInstruction]:
    """
    Expand a pseudo-instruction into real instructions.

    nop          -> sll $zero, $zero, 0
    move rd, rs  -> addu rd, rs, $zero
    li rt, imm   -> addiu rt, $zero, imm        (16-bit signed imm)
                    lui rt, hi ; ori rt, rt, lo (otherwise)

    Non-pseudo mnemonics are returned unchanged.
    """
    if mnemonic == "nop":
        if operands:
            raise ParseError(f"nop takes no operands, got {len(operands)}")
        return [("sll", ["$zero", "$zero", "0"])]

    if mnemonic == "move":
        if len(operands) != 2:
            raise ParseError(f"move requires 2 operands, got {len(operands)}")
        return [("addu", [operands[0], operands[1], "$zero"])]

    if mnemonic == "li":
        if len(operands) != 2:
            raise ParseError(f"li requires 2 operands, got {len(operands)}")
        rt = operands[0]
        imm = parse_immediate(operands[1])
        if -32768 <= imm <= 32767:
            return [("addiu", [rt, "$zero", str(imm)])]
        imm &= 0xFFFFFFFF
        result = [("lui", [rt, str(imm >> 16)])]
        if imm & 0xFFFF:
            result.append(("ori", [rt, rt, str(imm & 0xFFFF)]))
        return result

    return [(mnemonic, operands)]


def pseudo_instruction_count(mnemonic: str, operands: List[str]) -> int:
    """Number of machine instructions a source line occupies."""
    if mnemonic == "li" and len(operands) == 2:
        try:
            imm = parse_immediate(operands[1])
        except ParseError:
            return 1
        if -32768 <= imm <= 32767 or not (imm & 0xFFFF):
            return 1
        return 2
    return 1


class Assembler:
    """
    Two-pass MIPS assembler.

    Pass 1: Collect labels and compute addresses
    Pass 2: Encode instructions with resolved labels
    """

    def __init__(self, verbose: bool = False):
        """
        Initialize the assembler.

        Args:
            verbose: If True, log detailed assembly information
        """
        self.verbose = verbose
        self.symbols: Dict[str, int] = {}  # label -> byte address
        self.instructions: List[int] = []  # encoded 32-bit instructions
        self.current_address: int = 0
        self.source_map: List[Tuple[int, str, int]] = []  # (addr, original_line, line_num)

    def log(self, message: str) -> None:
        """Log message if verbose mode is enabled."""
        if self.verbose:
            logger.info(message)

    def assemble_file(self, input_path: str, output_path: str = None) -> List[int]:
        """
        Assemble an assembly file, optionally writing a hex file.

        Returns:
            List of 32-bit encoded instructions
        """
        self.log(f"Assembling: {input_path}")
        with open(input_path, "r") as f:
            lines = parse_source(f.read())

        self._pass1(lines)
        self._pass2(lines)

        if output_path:
            self.write_hex(output_path)
            self.log(f"Output written to: {output_path}")

        return self.instructions

    def assemble_string(self, source: str) -> List[int]:
        """Assemble from a string."""
        lines = parse_source(source)
        self._pass1(lines)
        self._pass2(lines)
        return self.instructions

    def _pass1(self, lines: List[ParsedLine]) -> None:
        """First pass: collect labels and compute addresses."""
        self.log("=== Pass 1: Collecting labels ===")
        self.symbols = {}
        self.current_address = 0

        for line in lines:
            if line.label:
                if line.label in self.symbols:
                    raise SymbolError(f"Duplicate label: {line.label}", line.line_num, line.original)
                self.symbols[line.label] = self.current_address
                self.log(f"  Label '{line.label}' at 0x{self.current_address:04X}")

            if not line.mnemonic or line.is_directive:
                continue

            count = pseudo_instruction_count(line.mnemonic, line.operands)
            self.current_address += count * 4

        self.log(f"  Total symbols: {len(self.symbols)}")
        self.log(f"  Program size: {self.current_address} bytes")

    def _pass2(self, lines: List[ParsedLine]) -> None:
        """Second pass: encode instructions with resolved labels."""
        self.log("=== Pass 2: Encoding instructions ===")
        self.instructions = []
        self.source_map = []
        self.current_address = 0

        for line in lines:
            if not line.mnemonic or line.is_directive:
                continue

            try:
                expanded = expand_pseudo(line.mnemonic, line.operands)
            except ParseError as e:
                raise ParseError(str(e), line.line_num, line.original)

            for mnemonic, operands in expanded:
                encoded = self._encode_instruction(mnemonic, operands, line.line_num, line.original)
                self.instructions.append(encoded)
                self.source_map.append((self.current_address, line.original, line.line_num))
                self.log(f"  0x{self.current_address:04X}: {encoded:08X}  {mnemonic} {', '.join(operands)}")
                self.current_address += 4

        self.log(f"  Total instructions: {len(self.instructions)}")

    def _encode_instruction(self, mnemonic: str, operands: List[str], line_num: int, line_text: str) -> int:
        """Encode a single instruction, attaching line info to any error."""
        instr = get_instruction(mnemonic)
        if instr is None:
            raise ParseError(f"Unknown instruction: {mnemonic}", line_num, line_text)

        roles = instr.operand_roles
        if len(operands) != len(roles):
            raise ParseError(
                f"{mnemonic} requires {len(roles)} operands ({', '.join(roles)}), got {len(operands)}",
                line_num,
                line_text,
            )

        try:
            fields = self._parse_operands(roles, operands, line_num, line_text)
            return encode_instruction(instr, **fields)
        except ValueError as e:
            raise EncodingError(str(e), line_num, line_text)
        except EncodingError as e:
            if e.line_num is not None:
                raise
            raise EncodingError(str(e), line_num, line_text)

    def _parse_operands(self, roles: tuple, operands: List[str], line_num: int, line_text: str) -> Dict[str, int]:
        """Map operand strings onto encoder fields according to the operand roles."""
        fields: Dict[str, int] = {}

        for role, operand in zip(roles, operands):
            if role in ("rd", "rs", "rt"):
                fields[role] = parse_register(operand)
            elif role in ("imm", "shamt"):
                fields[role] = self._resolve_immediate(operand, line_num, line_text)
            elif role == "mem":
                try:
                    offset, base = parse_memory_operand(operand)
                except ParseError as e:
                    raise ParseError(str(e), line_num, line_text)
                fields["imm"] = offset
                fields["rs"] = parse_register(base)
            elif role == "offset":
                target = operand.strip()
                if target in self.symbols:
                    # Word offset relative to the following instruction
                    fields["imm"] = (self.symbols[target] - (self.current_address + 4)) // 4
                else:
                    fields["imm"] = self._resolve_immediate(target, line_num, line_text)
            elif role == "target":
                address = self._resolve_immediate(operand, line_num, line_text)
                if address % 4:
                    raise EncodingError(f"Jump target must be word aligned, got {address}", line_num, line_text)
                fields["target"] = address >> 2

        return fields

    def _resolve_immediate(self, value: str, line_num: int, line_text: str) -> int:
        """
        Resolve an immediate value or label reference.

        Labels resolve to their byte address.
        """
        value = value.strip()

        if value in self.symbols:
            return self.symbols[value]

        try:
            return parse_immediate(value)
        except ParseError as e:
            raise ParseError(str(e), line_num, line_text)

    def write_hex(self, output_path: str) -> None:
        """Write assembled instructions to a hex file, one per line."""
        with open(output_path, "w") as f:
            for instr in self.instructions:
                f.write(f"{instr:08x}\n")

    def get_hex_string(self) -> str:
        """Get assembled instructions as a hex string, one per line."""
        return "\n".join(f"{instr:08x}" for instr in self.instructions)

    def get_listing(self) -> str:
        """
        Get an assembly listing showing addresses, encodings, and source.

        Returns:
            Formatted listing string
        """
        lines = ["Address   Code       Source", "-" * 60]

        for (addr, source, _line_num), code in zip(self.source_map, self.instructions):
            lines.append(f"0x{addr:04X}:   {code:08X}   {source.strip()}")

        return "\n".join(lines)


def assemble(source: str) -> List[int]:
    """Assemble source text and return the encodings."""
    return Assembler().assemble_string(source)

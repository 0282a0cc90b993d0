"""
Architectural state: the register file and the word-addressable memory.

Both are mutable scratch objects. A pipeline snapshot stores them as
tuples; each tick rebuilds scratch copies, mutates them, and freezes the
result into the next snapshot.
"""

from typing import Iterable, Optional, Tuple, Union

from .registers import REGISTER_COUNT, ZERO, parse_register

DEFAULT_MEMORY_WORDS = 32
MASK32 = 0xFFFFFFFF


def to_unsigned32(value: int) -> int:
    """Clamp to unsigned 32-bit."""
    return value & MASK32


def to_signed32(value: int) -> int:
    """Interpret the low 32 bits of a value as a signed integer."""
    value &= MASK32
    if value & 0x80000000:
        return value - 0x100000000
    return value


class RegisterFile:
    """32 general registers holding signed 32-bit values; $zero always reads 0."""

    def __init__(self, values: Optional[Iterable[int]] = None):
        self._values = [0] * REGISTER_COUNT
        if values is not None:
            values = list(values)
            if len(values) != REGISTER_COUNT:
                raise ValueError(f"Register file needs {REGISTER_COUNT} values, got {len(values)}")
            self._values = [to_signed32(v) for v in values]
        self._values[ZERO] = 0

    @staticmethod
    def _index(reg: Union[int, str]) -> int:
        if isinstance(reg, str):
            return parse_register(reg)
        if not 0 <= reg < REGISTER_COUNT:
            raise ValueError(f"Invalid register number: {reg}")
        return reg

    def __getitem__(self, reg: Union[int, str]) -> int:
        return self._values[self._index(reg)]

    def __setitem__(self, reg: Union[int, str], value: int) -> None:
        self._values[self._index(reg)] = to_signed32(value)
        self.clear_zero()

    def __len__(self) -> int:
        return REGISTER_COUNT

    def clear_zero(self) -> None:
        """Force $zero back to 0."""
        self._values[ZERO] = 0

    def snapshot(self) -> Tuple[int, ...]:
        return tuple(self._values)


class Memory:
    """
    Fixed-size word-addressable memory.

    Address checks are left to the caller: the execution unit treats an
    out-of-range address as a soft failure and never indexes past the end.
    """

    def __init__(self, size: int = DEFAULT_MEMORY_WORDS, values: Optional[Iterable[int]] = None):
        if values is not None:
            self._words = list(values)
        else:
            if size <= 0:
                raise ValueError(f"Memory size must be positive, got {size}")
            self._words = [0] * size

    def __len__(self) -> int:
        return len(self._words)

    def in_bounds(self, address: int) -> bool:
        return 0 <= address < len(self._words)

    def __getitem__(self, address: int) -> int:
        if not self.in_bounds(address):
            raise IndexError(f"Memory address out of range: {address}")
        return self._words[address]

    def __setitem__(self, address: int, value: int) -> None:
        if not self.in_bounds(address):
            raise IndexError(f"Memory address out of range: {address}")
        self._words[address] = to_signed32(value)

    def snapshot(self) -> Tuple[int, ...]:
        return tuple(self._words)

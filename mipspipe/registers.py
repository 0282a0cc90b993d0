"""
MIPS register definitions and name mappings.

Supports numeric names ($0-$31) and ABI names ($zero, $t0, $ra, ...),
with or without the leading dollar sign.
"""

REGISTER_COUNT = 32
ZERO = 0
RA = 31

# Register number to ABI name mapping
REG_ABI_NAMES = {
    0: "zero",
    1: "at",
    2: "v0",
    3: "v1",
    4: "a0",
    5: "a1",
    6: "a2",
    7: "a3",
    8: "t0",
    9: "t1",
    10: "t2",
    11: "t3",
    12: "t4",
    13: "t5",
    14: "t6",
    15: "t7",
    16: "s0",
    17: "s1",
    18: "s2",
    19: "s3",
    20: "s4",
    21: "s5",
    22: "s6",
    23: "s7",
    24: "t8",
    25: "t9",
    26: "k0",
    27: "k1",
    28: "gp",
    29: "sp",
    30: "fp",  # Also s8
    31: "ra",
}

# Build the reverse mapping (name to number)
# Include numeric names, ABI names, and aliases
REGISTER_MAP = {}

for i in range(REGISTER_COUNT):
    REGISTER_MAP[str(i)] = i

for num, name in REG_ABI_NAMES.items():
    REGISTER_MAP[name] = num

# Add alias: s8 = fp = $30
REGISTER_MAP["s8"] = 30


def _normalize(name: str) -> str:
    name = name.lower().strip()
    if name.startswith("$"):
        name = name[1:]
    return name


def parse_register(name: str) -> int:
    """
    Parse a register name and return its number.

    Args:
        name: Register name (e.g., "$t0", "t0", "$8", "$zero", "$s8")

    Returns:
        Register number (0-31)

    Raises:
        ValueError: If the register name is invalid
    """
    key = _normalize(name)
    if key in REGISTER_MAP:
        return REGISTER_MAP[key]
    raise ValueError(f"Invalid register name: {name}")


def is_valid_register(name: str) -> bool:
    """Check if a string is a valid register name."""
    return _normalize(name) in REGISTER_MAP


def get_register_name(num: int, use_abi: bool = True) -> str:
    """
    Get the name for a register number.

    Args:
        num: Register number (0-31)
        use_abi: If True, return ABI name ($t0); otherwise numeric ($8)

    Returns:
        Register name string including the leading dollar sign
    """
    if not 0 <= num < REGISTER_COUNT:
        raise ValueError(f"Invalid register number: {num}")
    if use_abi:
        return f"${REG_ABI_NAMES[num]}"
    return f"${num}"

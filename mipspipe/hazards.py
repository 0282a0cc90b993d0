"""
Pipeline hazard analysis.

Analyzes data dependencies in an instruction sequence once, before the
simulation starts, and produces three tables indexed by instruction position:
one hazard record per instruction, the forwarding edges feeding each
instruction, and the stall cycles each instruction injects when it reaches
decode.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from .decoder import DecodedInstruction
from .instructions import InstructionFormat, Stage
from .registers import get_register_name

# Producers further back than this can no longer affect a consumer
LOOKBACK = 3


class HazardKind(Enum):
    NONE = "NONE"
    RAW = "RAW"
    WAW = "WAW"


@dataclass(frozen=True)
class HazardRecord:
    """
    Hazard classification for one instruction.

    Attributes:
        kind: NONE, RAW or WAW
        description: Human readable explanation
        can_forward: True if forwarding resolves the hazard
        stall_cycles: Stall cycles this hazard costs
    """

    kind: HazardKind = HazardKind.NONE
    description: str = "No hazard"
    can_forward: bool = False
    stall_cycles: int = 0


NO_HAZARD = HazardRecord()


@dataclass(frozen=True)
class ForwardingEdge:
    """A value routed from a producer's stage to a consumer's stage."""

    source_index: int
    dest_index: int
    source_stage: Stage
    dest_stage: Stage
    register: int

    @property
    def register_name(self) -> str:
        return get_register_name(self.register)


@dataclass(frozen=True)
class HazardTables:
    """Immutable analysis result; every table has one entry per instruction."""

    hazards: Tuple[HazardRecord, ...]
    forwardings: Tuple[Tuple[ForwardingEdge, ...], ...]
    stalls: Tuple[int, ...]

    @property
    def total_stalls(self) -> int:
        return sum(self.stalls)

    def __len__(self) -> int:
        return len(self.hazards)


class HazardAnalyzer:
    """
    Detects RAW and WAW hazards and decides between stalling and forwarding.

    With stalls disabled no hazard is detected at all. Otherwise every
    consumer looks back at up to three producers, nearest first. A farther
    producer's match replaces the record left by a nearer one.
    """

    def __init__(self, forwarding_enabled: bool = True, stalls_enabled: bool = True):
        self.forwarding_enabled = forwarding_enabled
        self.stalls_enabled = stalls_enabled

    def analyze(self, instructions: Sequence[DecodedInstruction]) -> HazardTables:
        """
        Analyze an instruction sequence for data hazards.

        Args:
            instructions: Decoded instructions in program order

        Returns:
            HazardTables with one entry per instruction
        """
        count = len(instructions)
        hazards: List[HazardRecord] = [NO_HAZARD] * count
        forwardings: List[List[ForwardingEdge]] = [[] for _ in range(count)]
        stalls: List[int] = [0] * count

        if not self.stalls_enabled:
            return self._freeze(hazards, forwardings, stalls)

        for i in range(1, count):
            current = instructions[i]
            if current.format == InstructionFormat.J:
                continue

            for j in range(i - 1, max(-1, i - LOOKBACK - 1), -1):
                producer = instructions[j]

                if producer.rd == 0 and not producer.is_load:
                    continue

                hazard_register = self._raw_register(current, producer)
                if hazard_register is not None:
                    self._record_raw(i, j, producer, hazard_register, hazards, forwardings, stalls)

                if current.rd != 0 and current.rd == producer.rd and hazard_register is None:
                    hazards[i] = HazardRecord(
                        kind=HazardKind.WAW,
                        description=f"WAW hazard: both instructions write to {get_register_name(current.rd)}",
                        can_forward=True,
                        stall_cycles=0,
                    )

        return self._freeze(hazards, forwardings, stalls)

    @staticmethod
    def _raw_register(current: DecodedInstruction, producer: DecodedInstruction):
        """Return "rs($x)"/"rt($x)" if current reads producer's destination, else None."""
        if current.rs != 0 and current.rs == producer.rd:
            return f"rs({get_register_name(current.rs)})"

        # An I-type's rt is its destination, unless it is a store
        reads_rt = current.is_store or (not current.is_load and current.format != InstructionFormat.I)
        if current.rt != 0 and current.rt == producer.rd and reads_rt:
            return f"rt({get_register_name(current.rt)})"

        return None

    def _record_raw(self, i, j, producer, hazard_register, hazards, forwardings, stalls) -> None:
        distance = i - j
        edge_register = producer.rd

        if producer.is_load:
            # Load-use hazard; only the adjacent consumer is affected
            if distance != 1:
                return
            stall = 0 if self.forwarding_enabled else 1
            hazards[i] = HazardRecord(
                kind=HazardKind.RAW,
                description=f"Load-use hazard: {hazard_register} depends on load in instruction {j}",
                can_forward=self.forwarding_enabled,
                stall_cycles=stall,
            )
            stalls[i] = stall
            if self.forwarding_enabled:
                forwardings[i].append(ForwardingEdge(j, i, Stage.MEM, Stage.EX, edge_register))
            return

        if self.forwarding_enabled:
            hazards[i] = HazardRecord(
                kind=HazardKind.RAW,
                description=f"RAW hazard: {hazard_register} depends on instruction {j} (forwarded)",
                can_forward=True,
                stall_cycles=0,
            )
            source_stage = Stage.EX if distance == 1 else Stage.MEM
            forwardings[i].append(ForwardingEdge(j, i, source_stage, Stage.EX, edge_register))
        else:
            stall = 2 if distance == 1 else 1
            hazards[i] = HazardRecord(
                kind=HazardKind.RAW,
                description=f"RAW hazard: {hazard_register} depends on instruction {j} (no forwarding)",
                can_forward=False,
                stall_cycles=stall,
            )
            stalls[i] = stall

    @staticmethod
    def _freeze(hazards, forwardings, stalls) -> HazardTables:
        return HazardTables(
            hazards=tuple(hazards),
            forwardings=tuple(tuple(edges) for edges in forwardings),
            stalls=tuple(stalls),
        )


def analyze_hazards(
    instructions: Sequence[DecodedInstruction],
    forwarding_enabled: bool = True,
    stalls_enabled: bool = True,
) -> HazardTables:
    """Run a HazardAnalyzer with the given toggles."""
    return HazardAnalyzer(forwarding_enabled, stalls_enabled).analyze(instructions)

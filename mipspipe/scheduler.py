"""
Stage scheduler.

PipelineState is an immutable snapshot of a simulation. step() is the pure
per-cycle transition: it works out which stage every instruction occupies,
applies stall cycles, calls the execution unit for EX/MEM/WB on scratch
copies of the registers and memory, and returns the next snapshot.

Stage of the instruction at window position k:

    stage = cycle - fetch_base - k - (stall cycles of window positions < k)

fetch_base is 1 for the initial window, which gives the classic
cycle - k - 1 - precedingStalls(k). A taken branch or jump replaces the
window through flush_and_refetch().
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Sequence, Tuple

from .decoder import DecodedInstruction
from .execution import ExecutionUnit
from .hazards import ForwardingEdge, HazardRecord, HazardTables
from .instructions import STAGE_COUNT, Stage
from .machine import DEFAULT_MEMORY_WORDS, Memory, RegisterFile
from .registers import REGISTER_COUNT

logger = logging.getLogger(__name__)

_DEFAULT_UNIT = ExecutionUnit()


@dataclass(frozen=True)
class PipelineState:
    """
    Simulation snapshot.

    Attributes:
        program: Every decoded instruction, in program order
        cycle: Current clock cycle (0 when idle, 1 after start)
        max_cycles: Completion cycle; the run is finished once cycle exceeds it
        running: True while ticks should advance the pipeline
        finished: True once the completion cycle has passed
        stages: Stage index per program index, None when not in the pipeline
        pc: Program counter, as a word index
        registers: Register values, $zero first
        memory: Memory words
        hazards: One hazard record per program index
        forwardings: Forwarding edges per program index
        stalls: Stall cycles per program index
        pending_stalls: Global stall cycles still to be consumed
        forwarding_enabled: Forwarding toggle the tables were built with
        stalls_enabled: Hazard detection toggle the tables were built with
        window_start: Program index of the first instruction in the active window
        fetch_base: Cycle in which window position 0 was fetched
        stage_count: Number of pipeline stages
    """

    program: Tuple[DecodedInstruction, ...] = ()
    cycle: int = 0
    max_cycles: int = 0
    running: bool = False
    finished: bool = False
    stages: Tuple[Optional[int], ...] = ()
    pc: int = 0
    registers: Tuple[int, ...] = (0,) * REGISTER_COUNT
    memory: Tuple[int, ...] = (0,) * DEFAULT_MEMORY_WORDS
    hazards: Tuple[HazardRecord, ...] = ()
    forwardings: Tuple[Tuple[ForwardingEdge, ...], ...] = ()
    stalls: Tuple[int, ...] = ()
    pending_stalls: int = 0
    forwarding_enabled: bool = True
    stalls_enabled: bool = True
    window_start: int = 0
    fetch_base: int = 1
    stage_count: int = field(default=STAGE_COUNT)

    @property
    def instructions(self) -> Tuple[DecodedInstruction, ...]:
        """The active instruction window."""
        return self.program[self.window_start:]

    @property
    def in_progress(self) -> bool:
        return self.cycle > 0 and not self.finished

    def stage_of(self, index: int) -> Optional[Stage]:
        stage = self.stages[index] if 0 <= index < len(self.stages) else None
        return Stage(stage) if stage is not None else None

    def occupancy(self) -> Dict[Stage, Optional[int]]:
        """Map each stage to the program index occupying it, or None."""
        result: Dict[Stage, Optional[int]] = {stage: None for stage in Stage}
        for index, stage in enumerate(self.stages):
            if stage is not None:
                result[Stage(stage)] = index
        return result


def completion_cycle(count: int, stalls: Sequence[int], stage_count: int = STAGE_COUNT) -> int:
    """Cycle in which the last instruction leaves WB, counting every stall once."""
    if count == 0:
        return 0
    return count + stage_count - 1 + sum(stalls)


def preceding_stalls(stalls: Sequence[int], window_start: int, position: int) -> int:
    """Stall cycles attributed to the window positions before `position`."""
    return sum(stalls[window_start:window_start + position])


def _stage_at(cycle: int, fetch_base: int, position: int, preceding: int, stage_count: int) -> Optional[int]:
    stage = cycle - fetch_base - position - preceding
    if 0 <= stage < stage_count:
        return stage
    return None


def window_stages(
    count: int,
    stalls: Sequence[int],
    window_start: int,
    cycle: int,
    fetch_base: int,
    stage_count: int = STAGE_COUNT,
) -> Tuple[Optional[int], ...]:
    """Stage of every program index for a window; indices outside it are None."""
    stages = [None] * count
    preceding = 0
    for position, index in enumerate(range(window_start, count)):
        stages[index] = _stage_at(cycle, fetch_base, position, preceding, stage_count)
        preceding += stalls[index]
    return tuple(stages)


def idle_state(
    forwarding_enabled: bool = True,
    stalls_enabled: bool = True,
    memory_words: int = DEFAULT_MEMORY_WORDS,
) -> PipelineState:
    """The empty snapshot before any simulation starts."""
    return PipelineState(
        memory=(0,) * memory_words,
        forwarding_enabled=forwarding_enabled,
        stalls_enabled=stalls_enabled,
    )


def initial_state(
    program: Sequence[DecodedInstruction],
    tables: HazardTables,
    forwarding_enabled: bool = True,
    stalls_enabled: bool = True,
    memory_words: int = DEFAULT_MEMORY_WORDS,
) -> PipelineState:
    """First snapshot of a run: cycle 1, the first instruction in IF."""
    program = tuple(program)
    if len(tables) != len(program):
        raise ValueError(f"Hazard tables cover {len(tables)} instructions, program has {len(program)}")

    return PipelineState(
        program=program,
        cycle=1,
        max_cycles=completion_cycle(len(program), tables.stalls),
        running=True,
        finished=False,
        stages=window_stages(len(program), tables.stalls, 0, 1, 1),
        pc=0,
        memory=(0,) * memory_words,
        hazards=tables.hazards,
        forwardings=tables.forwardings,
        stalls=tables.stalls,
        forwarding_enabled=forwarding_enabled,
        stalls_enabled=stalls_enabled,
    )


def flush_and_refetch(state: PipelineState, target: int) -> PipelineState:
    """
    Redirect fetch to `target` in the current cycle.

    Instructions before the target leave the active window, the target
    enters IF, and every window stage is recomputed from the new offset
    against the unchanged stall table. Targets outside the program are
    ignored.
    """
    count = len(state.program)
    if not 0 <= target <= count:
        logger.warning("Redirect target %d outside program of %d instructions; ignored", target, count)
        return state

    logger.debug("Cycle %d: flushing pipeline, refetching from instruction %d", state.cycle, target)
    return replace(
        state,
        window_start=target,
        fetch_base=state.cycle,
        stages=window_stages(count, state.stalls, target, state.cycle, state.cycle, state.stage_count),
        pc=target,
    )


def step(state: PipelineState, unit: Optional[ExecutionUnit] = None) -> PipelineState:
    """
    Advance the simulation by one clock cycle.

    Returns the state unchanged when it is not running or already finished.
    """
    if not state.running or state.finished:
        return state

    next_cycle = state.cycle + 1

    if state.pending_stalls > 0:
        logger.debug("Cycle %d: stall (%d remaining)", next_cycle, state.pending_stalls - 1)
        return replace(state, cycle=next_cycle, pending_stalls=state.pending_stalls - 1)

    unit = unit or _DEFAULT_UNIT
    registers = RegisterFile(state.registers)
    memory = Memory(values=state.memory)
    pending = state.pending_stalls
    pc = state.pc
    redirect = None
    stages = [None] * len(state.program)
    preceding = 0

    for position, index in enumerate(range(state.window_start, len(state.program))):
        stage = _stage_at(next_cycle, state.fetch_base, position, preceding, state.stage_count)
        preceding += state.stalls[index]
        if stage is None:
            continue

        stages[index] = stage
        instruction = state.program[index]

        if stage == Stage.ID:
            if state.stalls[index] > 0 and pending == 0:
                pending = state.stalls[index]
                logger.debug("Cycle %d: instruction %d injects %d stall cycle(s)", next_cycle, index, pending)
        elif stage >= Stage.EX:
            target = unit.execute(
                instruction.text, registers, memory, index, Stage(stage), state.forwardings[index]
            )
            if stage == Stage.EX:
                pc = index + 1
                if target is not None and target != pc:
                    redirect = target

    finished = next_cycle > state.max_cycles
    next_state = replace(
        state,
        cycle=next_cycle,
        stages=tuple(stages),
        running=not finished,
        finished=finished,
        pending_stalls=pending,
        registers=registers.snapshot(),
        memory=memory.snapshot(),
        pc=pc,
    )

    if finished:
        logger.info("Simulation finished after cycle %d", state.max_cycles)
    elif redirect is not None:
        next_state = flush_and_refetch(next_state, redirect)

    return next_state

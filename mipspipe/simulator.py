"""
Simulator facade.

Owns the current PipelineState and exposes the actions a clock driver or UI
invokes: start, step, pause, resume, configure and reset. Every action
replaces the snapshot wholesale; nothing mutates a snapshot in place.
"""

import logging
from dataclasses import replace
from pathlib import PurePath
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .assembler import Assembler
from .config import SimulatorConfig, default_config
from .decoder import decode
from .errors import ConfigError
from .execution import ExecutionUnit
from .hazards import ForwardingEdge, HazardAnalyzer, HazardRecord
from .registers import parse_register
from .scheduler import PipelineState, idle_state, initial_state, step
from .trace import snapshot_to_dict

logger = logging.getLogger(__name__)


class Simulator:
    """
    Five-stage pipeline simulator.

    Example:
        sim = Simulator()
        sim.start(["20080005"])
        sim.run()
        assert sim.register("$t0") == 5
    """

    def __init__(self, config: Optional[SimulatorConfig] = None, unit: Optional[ExecutionUnit] = None):
        if config is None:
            config = default_config()
        if not isinstance(config, SimulatorConfig):
            raise ConfigError(f"Expected a SimulatorConfig, got {type(config).__name__}")

        self.config = config
        self.unit = unit or ExecutionUnit()
        self._state = idle_state(config.forwarding, config.stalls, config.memory_words)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def start(self, instructions: Iterable[Union[int, str]]) -> PipelineState:
        """
        Start a new run.

        Decodes every encoding and runs hazard analysis once. An empty
        sequence behaves exactly like reset().

        Raises:
            DecodeError: If an encoding is malformed
        """
        instructions = list(instructions)
        if not instructions:
            return self.reset()

        program = [decode(raw) for raw in instructions]
        analyzer = HazardAnalyzer(self._state.forwarding_enabled, self._state.stalls_enabled)
        tables = analyzer.analyze(program)

        self._state = initial_state(
            program,
            tables,
            forwarding_enabled=self._state.forwarding_enabled,
            stalls_enabled=self._state.stalls_enabled,
            memory_words=self.config.memory_words,
        )
        logger.info(
            "Started simulation: %d instruction(s), %d stall cycle(s), completes at cycle %d",
            len(program), tables.total_stalls, self._state.max_cycles,
        )
        return self._state

    def start_source(self, source: str) -> PipelineState:
        """Assemble source text and start a run with the result."""
        return self.start(Assembler().assemble_string(source))

    def step(self) -> PipelineState:
        """Advance one cycle; a no-op unless a run is in progress and not paused."""
        self._state = step(self._state, self.unit)
        return self._state

    def run(self, max_steps: Optional[int] = None) -> PipelineState:
        """Step until the run finishes, pauses, or max_steps is reached."""
        steps = 0
        while self._state.running and not self._state.finished:
            if max_steps is not None and steps >= max_steps:
                break
            self.step()
            steps += 1
        return self._state

    def pause(self) -> PipelineState:
        if self._state.running:
            self._state = replace(self._state, running=False)
            logger.info("Paused at cycle %d", self._state.cycle)
        return self._state

    def resume(self) -> PipelineState:
        state = self._state
        if not state.running and state.cycle > 0 and not state.finished:
            self._state = replace(state, running=True)
            logger.info("Resumed at cycle %d", state.cycle)
        return self._state

    def configure(self, forwarding_enabled: Optional[bool] = None, stalls_enabled: Optional[bool] = None) -> PipelineState:
        """Change feature toggles; they take effect on the next start()."""
        changes = {}
        if forwarding_enabled is not None:
            changes["forwarding_enabled"] = bool(forwarding_enabled)
        if stalls_enabled is not None:
            changes["stalls_enabled"] = bool(stalls_enabled)
        if changes:
            self._state = replace(self._state, **changes)
        return self._state

    def reset(self) -> PipelineState:
        """Discard the run, keeping the forwarding and stall toggles."""
        self._state = idle_state(
            self._state.forwarding_enabled, self._state.stalls_enabled, self.config.memory_words
        )
        logger.info("Simulation reset")
        return self._state

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def cycle(self) -> int:
        return self._state.cycle

    @property
    def max_cycles(self) -> int:
        return self._state.max_cycles

    @property
    def stages(self) -> Tuple[Optional[int], ...]:
        return self._state.stages

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def is_finished(self) -> bool:
        return self._state.finished

    @property
    def pc(self) -> int:
        return self._state.pc

    @property
    def registers(self) -> Tuple[int, ...]:
        return self._state.registers

    @property
    def memory(self) -> Tuple[int, ...]:
        return self._state.memory

    @property
    def hazards(self) -> Tuple[HazardRecord, ...]:
        return self._state.hazards

    @property
    def forwardings(self) -> Tuple[Tuple[ForwardingEdge, ...], ...]:
        return self._state.forwardings

    @property
    def stalls(self) -> Tuple[int, ...]:
        return self._state.stalls

    @property
    def forwarding_enabled(self) -> bool:
        return self._state.forwarding_enabled

    @property
    def stalls_enabled(self) -> bool:
        return self._state.stalls_enabled

    def register(self, name: Union[int, str]) -> int:
        """Value of a register by number or name ("$t0", "t0", "$8")."""
        index = parse_register(name) if isinstance(name, str) else name
        return self._state.registers[index]

    def snapshot(self) -> Dict:
        """JSON-ready view of the current state."""
        return snapshot_to_dict(self._state)


ASSEMBLY_SUFFIXES = {".s", ".asm"}


def parse_hex_program(text: str) -> List[str]:
    """One hex encoding per line; blank lines and '#' comments are skipped."""
    encodings = []
    for line in text.splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            encodings.append(line)
    return encodings


def program_from_text(text: str, filename: str) -> List[Union[int, str]]:
    """
    Turn program file contents into encodings.

    Files named *.s, *.S or *.asm are assembled; anything else is read as hex.
    """
    if PurePath(filename).suffix.lower() in ASSEMBLY_SUFFIXES:
        return Assembler().assemble_string(text)
    return parse_hex_program(text)

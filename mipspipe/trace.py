"""
Pipeline trace serialization.

Each snapshot serializes to one JSON object; a run serializes to JSON Lines
with one line per clock cycle. TraceParser loads such a file back and
computes execution statistics from it.
"""

import json
from typing import Dict, List, Optional

from .instructions import STAGE_NAMES
from .registers import get_register_name
from .scheduler import PipelineState


def _stage_name(stage: Optional[int]) -> Optional[str]:
    return STAGE_NAMES[stage] if stage is not None else None


def snapshot_to_dict(state: PipelineState) -> Dict:
    """
    Serialize a snapshot for traces and the HTTP API.

    Stages are reported both per stage (which instruction occupies it) and
    per instruction (which stage it occupies).
    """
    occupancy = {stage.name: index for stage, index in state.occupancy().items()}
    instructions = [
        {
            "index": index,
            "raw": f"0x{inst.raw:08x}",
            "text": inst.text,
            "stage": _stage_name(state.stages[index]) if index < len(state.stages) else None,
        }
        for index, inst in enumerate(state.program)
    ]
    return {
        "cycle": state.cycle,
        "max_cycles": state.max_cycles,
        "pc": state.pc,
        "running": state.running,
        "finished": state.finished,
        "pending_stalls": state.pending_stalls,
        "window_start": state.window_start,
        "fetch_base": state.fetch_base,
        "forwarding_enabled": state.forwarding_enabled,
        "stalls_enabled": state.stalls_enabled,
        "stages": occupancy,
        "instructions": instructions,
        "registers": {get_register_name(i): value for i, value in enumerate(state.registers)},
        "memory": list(state.memory),
    }


def tables_to_dict(state: PipelineState) -> Dict:
    """Serialize the hazard, forwarding and stall tables."""
    return {
        "hazards": [
            {
                "index": index,
                "type": record.kind.value,
                "description": record.description,
                "can_forward": record.can_forward,
                "stall_cycles": record.stall_cycles,
            }
            for index, record in enumerate(state.hazards)
        ],
        "forwardings": [
            {
                "from": edge.source_index,
                "to": edge.dest_index,
                "from_stage": edge.source_stage.name,
                "to_stage": edge.dest_stage.name,
                "register": edge.register_name,
            }
            for edges in state.forwardings
            for edge in edges
        ],
        "stalls": list(state.stalls),
    }


class TraceWriter:
    """Writes one JSON line per snapshot. Usable as a context manager."""

    def __init__(self, filepath: str):
        self._filepath = filepath
        self._file = open(filepath, "w")
        self.lines_written = 0

    def write(self, state: PipelineState) -> None:
        self._file.write(json.dumps(snapshot_to_dict(state)) + "\n")
        self.lines_written += 1

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> "TraceWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class TraceParser:
    """
    Parser for JSONL pipeline trace files.

    Loads the entire trace into memory as a list of dicts.
    """

    def __init__(self, filepath: str):
        """
        Load and index a JSONL trace file.

        Raises:
            FileNotFoundError: If the trace file doesn't exist
            json.JSONDecodeError: If a line contains invalid JSON
        """
        self._cycles: List[dict] = []
        self._filepath = filepath
        self._load_trace(filepath)

    def _load_trace(self, filepath: str) -> None:
        with open(filepath, "r") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._cycles.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise json.JSONDecodeError(f"Invalid JSON on line {line_num}: {e.msg}", e.doc, e.pos)

    def get_cycle(self, n: int) -> Optional[dict]:
        """
        Get the record for cycle n.

        Matches the 'cycle' field first, then falls back to position.
        """
        for cycle_data in self._cycles:
            if cycle_data.get("cycle") == n:
                return cycle_data

        if 0 <= n < len(self._cycles):
            return self._cycles[n]

        return None

    def get_range(self, start: int, end: int) -> List[dict]:
        """Get records for cycles in [start, end)."""
        return [c for c in self._cycles if start <= c.get("cycle", -1) < end]

    @property
    def total_cycles(self) -> int:
        """Number of records loaded from the trace file."""
        return len(self._cycles)

    def get_stats(self) -> dict:
        """
        Compute execution statistics from the trace.

        Returns:
            Dict containing:
                - total_cycles: Number of records
                - stall_cycles: Cycles spent consuming an injected stall
                - flush_cycles: Cycles in which fetch was redirected
                - instructions_retired: Number of WB occupancies
                - cpi: Cycles per retired instruction
        """
        total_cycles = len(self._cycles)
        stall_cycles = 0
        flush_cycles = 0
        instructions_retired = 0
        previous = None

        for cycle_data in self._cycles:
            if previous is not None:
                if previous.get("pending_stalls", 0) > 0:
                    stall_cycles += 1
                window = (cycle_data.get("window_start"), cycle_data.get("fetch_base"))
                if window != (previous.get("window_start"), previous.get("fetch_base")):
                    flush_cycles += 1

            # A held WB during a stall is the same instruction, not a new retirement
            stalled = previous is not None and previous.get("pending_stalls", 0) > 0
            if cycle_data.get("stages", {}).get("WB") is not None and not stalled:
                instructions_retired += 1

            previous = cycle_data

        cpi = total_cycles / instructions_retired if instructions_retired > 0 else 0.0

        return {
            "total_cycles": total_cycles,
            "stall_cycles": stall_cycles,
            "flush_cycles": flush_cycles,
            "instructions_retired": instructions_retired,
            "cpi": round(cpi, 2),
        }

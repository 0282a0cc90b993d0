#!/usr/bin/env python3
"""
mipspipe - Command Line Interface

Usage:
    python3 -m mipspipe program.s
    python3 -m mipspipe program.hex --no-forwarding
    python3 -m mipspipe program.s --trace run.jsonl -q
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import default_config, load_config
from .errors import SimulatorError
from .instructions import STAGE_NAMES, Stage
from .registers import get_register_name
from .simulator import Simulator, program_from_text
from .trace import TraceWriter


def format_hazard_table(sim: Simulator) -> str:
    lines = ["Idx  Instruction               Hazard  Stalls  Forwarding", "-" * 70]
    for index, inst in enumerate(sim.state.program):
        record = sim.hazards[index]
        edges = ", ".join(
            f"{edge.register_name} {edge.source_stage.name}->{edge.dest_stage.name} from {edge.source_index}"
            for edge in sim.forwardings[index]
        )
        lines.append(f"{index:>3}  {inst.text:<24}  {record.kind.value:<6}  {sim.stalls[index]:>6}  {edges}")
    return "\n".join(lines)


def format_stage_header() -> str:
    return "Cycle  " + "".join(f"{name:>5}" for name in STAGE_NAMES)


def format_stage_row(sim: Simulator) -> str:
    occupancy = sim.state.occupancy()
    cells = []
    for stage in Stage:
        index = occupancy[stage]
        cells.append(f"{'-' if index is None else index:>5}")
    suffix = "  (stall)" if sim.state.pending_stalls else ""
    return f"{sim.cycle:>5}  " + "".join(cells) + suffix


def format_machine_state(sim: Simulator) -> str:
    lines = ["Registers:"]
    nonzero = [(i, value) for i, value in enumerate(sim.registers) if value != 0]
    if not nonzero:
        lines.append("  (all zero)")
    for i, value in nonzero:
        lines.append(f"  {get_register_name(i):<6} = {value}")

    lines.append("Memory:")
    used = [(address, value) for address, value in enumerate(sim.memory) if value != 0]
    if not used:
        lines.append("  (all zero)")
    for address, value in used:
        lines.append(f"  [{address:>3}] = {value}")
    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="mipspipe",
        description="Cycle-accurate 5-stage MIPS pipeline simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s programs/loop.s
  %(prog)s programs/raw.hex --no-forwarding
  %(prog)s programs/loop.s --trace loop.jsonl -q
        """,
    )

    parser.add_argument(
        "program",
        type=str,
        help="Program file: assembly (.s, .S, .asm) or one hex encoding per line",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        help="YAML simulator configuration",
    )

    parser.add_argument(
        "--no-forwarding",
        action="store_true",
        help="Disable operand forwarding",
    )

    parser.add_argument(
        "--no-stalls",
        action="store_true",
        help="Disable hazard detection and stall insertion",
    )

    parser.add_argument(
        "--trace",
        type=str,
        help="Write a JSON Lines trace, one line per cycle",
    )

    parser.add_argument(
        "--max-steps",
        type=int,
        help="Stop after this many cycles even if the program has not finished",
    )

    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only print the final machine state",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging of every stage effect",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    program_path = Path(args.program)
    if not program_path.exists():
        print(f"Error: Program file not found: {args.program}", file=sys.stderr)
        sys.exit(1)

    if args.max_steps is not None and args.max_steps < 0:
        print("Error: --max-steps must not be negative", file=sys.stderr)
        sys.exit(1)

    try:
        config = load_config(args.config) if args.config else default_config()
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else getattr(logging, config.log_level),
            format="%(levelname)s %(name)s: %(message)s",
        )

        sim = Simulator(config)
        sim.configure(
            forwarding_enabled=False if args.no_forwarding else None,
            stalls_enabled=False if args.no_stalls else None,
        )
        sim.start(program_from_text(program_path.read_text(), program_path.name))

        trace = TraceWriter(args.trace) if args.trace else None
        try:
            if not args.quiet:
                print(format_hazard_table(sim))
                print()
                print(format_stage_header())
                print(format_stage_row(sim))
            if trace:
                trace.write(sim.state)

            steps = 0
            while sim.is_running:
                if args.max_steps is not None and steps >= args.max_steps:
                    break
                sim.step()
                steps += 1
                if trace:
                    trace.write(sim.state)
                if not args.quiet and not sim.is_finished:
                    print(format_stage_row(sim))
        finally:
            if trace:
                trace.close()

        if not args.quiet:
            print()
            status = "finished" if sim.is_finished else "stopped"
            print(f"Simulation {status} at cycle {sim.cycle} (completion cycle {sim.max_cycles})")
        print(format_machine_state(sim))

    except SimulatorError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

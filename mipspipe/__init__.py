"""
mipspipe - A cycle-accurate 5-stage MIPS pipeline simulator.

This package models instruction flow through IF, ID, EX, MEM and WB, data
hazard detection with stall or forwarding resolution, and instruction
semantics against a register file and a bounded memory.
"""

from .assembler import Assembler, assemble
from .config import SimulatorConfig, load_config, parse_config
from .decoder import DecodedInstruction, decode, disassemble
from .errors import ConfigError, DecodeError, EncodingError, ParseError, SimulatorError, SymbolError
from .execution import ExecutionUnit, execute_instruction
from .hazards import ForwardingEdge, HazardAnalyzer, HazardKind, HazardRecord, HazardTables, analyze_hazards
from .instructions import Op, Stage
from .machine import Memory, RegisterFile
from .scheduler import PipelineState, flush_and_refetch, step
from .simulator import Simulator

__version__ = "1.0.0"
__all__ = [
    "Assembler",
    "assemble",
    "SimulatorConfig",
    "load_config",
    "parse_config",
    "DecodedInstruction",
    "decode",
    "disassemble",
    "SimulatorError",
    "ParseError",
    "EncodingError",
    "SymbolError",
    "DecodeError",
    "ConfigError",
    "ExecutionUnit",
    "execute_instruction",
    "ForwardingEdge",
    "HazardAnalyzer",
    "HazardKind",
    "HazardRecord",
    "HazardTables",
    "analyze_hazards",
    "Op",
    "Stage",
    "Memory",
    "RegisterFile",
    "PipelineState",
    "flush_and_refetch",
    "step",
    "Simulator",
]

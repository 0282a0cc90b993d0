"""
Tests for the command line driver.
"""

import json

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mipspipe.__main__ import main


class TestMain:
    """Tests for python -m mipspipe."""

    def test_hex_program(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("20080005\n")
        main([str(program)])
        out = capsys.readouterr().out
        assert "Cycle" in out
        assert "Simulation finished at cycle 6" in out
        assert "$t0" in out and "= 5" in out

    def test_assembly_program_no_forwarding(self, tmp_path, capsys):
        program = tmp_path / "prog.s"
        program.write_text("addi $t0, $zero, 5\nadd $t1, $t0, $t0\n")
        main([str(program), "--no-forwarding"])
        out = capsys.readouterr().out
        assert "RAW" in out
        assert "(completion cycle 8)" in out
        assert "(stall)" in out

    def test_quiet(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("20080005\n")
        main([str(program), "-q"])
        out = capsys.readouterr().out
        assert "Cycle" not in out
        assert out.startswith("Registers:")

    def test_trace(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("20080005\n")
        trace = tmp_path / "run.jsonl"
        main([str(program), "-q", "--trace", str(trace)])
        lines = trace.read_text().splitlines()
        assert len(lines) == 6
        assert json.loads(lines[-1])["finished"] is True

    def test_max_steps(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("20080005\n")
        main([str(program), "--max-steps", "1"])
        assert "Simulation stopped at cycle 2" in capsys.readouterr().out

    def test_config_file(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("20080005\n01084820\n")
        config = tmp_path / "sim.yaml"
        config.write_text('name: "nofwd"\nforwarding: false\nlog_level: "WARNING"\n')
        main([str(program), "-c", str(config)])
        assert "(completion cycle 8)" in capsys.readouterr().out

    def test_missing_program(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.hex")])
        assert exc_info.value.code == 1
        assert "Error: Program file not found" in capsys.readouterr().err

    def test_bad_encoding(self, tmp_path, capsys):
        program = tmp_path / "prog.hex"
        program.write_text("xyz\n")
        with pytest.raises(SystemExit) as exc_info:
            main([str(program)])
        assert exc_info.value.code == 1
        assert "Error: Invalid instruction encoding" in capsys.readouterr().err

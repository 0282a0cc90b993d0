"""
Tests for the stage scheduler and pipeline snapshots.
"""

import logging
from dataclasses import FrozenInstanceError, replace

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from mipspipe.assembler import assemble
from mipspipe.decoder import decode
from mipspipe.hazards import analyze_hazards
from mipspipe.instructions import Stage
from mipspipe.scheduler import (
    completion_cycle,
    flush_and_refetch,
    idle_state,
    initial_state,
    preceding_stalls,
    step,
    window_stages,
)


def start(source, forwarding_enabled=True, stalls_enabled=True):
    program = [decode(raw) for raw in assemble(source)]
    tables = analyze_hazards(program, forwarding_enabled, stalls_enabled)
    return initial_state(program, tables, forwarding_enabled, stalls_enabled)


def run(state, limit=100):
    """Step to completion, returning every snapshot including the first."""
    states = [state]
    while states[-1].running and len(states) < limit:
        states.append(step(states[-1]))
    return states


class TestHelpers:
    """Tests for the stage arithmetic helpers."""

    def test_completion_cycle(self):
        assert completion_cycle(1, [0]) == 5
        assert completion_cycle(2, [0, 2]) == 8
        assert completion_cycle(0, []) == 0

    def test_preceding_stalls(self):
        assert preceding_stalls([0, 2, 1, 0], 0, 3) == 3
        assert preceding_stalls([0, 2, 1, 0], 2, 1) == 1

    def test_window_stages(self):
        assert window_stages(3, [0, 0, 0], 0, 1, 1) == (0, None, None)
        assert window_stages(3, [0, 0, 0], 0, 3, 1) == (2, 1, 0)
        assert window_stages(3, [0, 0, 0], 0, 7, 1) == (None, None, 4)

    def test_window_stages_offset(self):
        """Test that instructions before the window start are never staged."""
        assert window_stages(4, [0, 0, 0, 0], 2, 5, 5) == (None, None, 0, None)


class TestLifecycle:
    """Tests for idle, initial and finished snapshots."""

    def test_idle_state(self):
        state = idle_state(forwarding_enabled=False)
        assert state.cycle == 0
        assert not state.running
        assert not state.forwarding_enabled
        assert state.instructions == ()
        assert not state.in_progress

    def test_initial_state(self):
        state = start("addi $t0, $zero, 5\nadd $t1, $t0, $t0")
        assert state.cycle == 1
        assert state.running
        assert state.stages == (Stage.IF, None)
        assert state.occupancy()[Stage.IF] == 0
        assert state.pc == 0
        assert state.registers == (0,) * 32

    def test_mismatched_tables(self):
        program = [decode(0x20080005)]
        with pytest.raises(ValueError):
            initial_state(program, analyze_hazards(program * 2))

    def test_step_idle_is_noop(self):
        state = idle_state()
        assert step(state) is state

    def test_step_paused_is_noop(self):
        state = replace(start("nop"), running=False)
        assert step(state) is state

    def test_snapshots_are_immutable(self):
        state = start("nop")
        with pytest.raises(FrozenInstanceError):
            state.cycle = 3

    def test_step_does_not_mutate_input(self):
        state = start("addi $t0, $zero, 5")
        state = step(step(state))
        before = state.registers
        after = step(state)
        assert state.registers == before
        assert after.registers[8] == 5


class TestSingleInstruction:
    """Tests for the single addi example."""

    def test_flow(self):
        states = run(start("addi $t0, $zero, 5"))
        assert states[0].max_cycles == 5
        assert [s.stage_of(0) for s in states[:5]] == [Stage.IF, Stage.ID, Stage.EX, Stage.MEM, Stage.WB]
        final = states[-1]
        assert final.finished
        assert not final.running
        assert final.cycle == 6
        assert final.registers[8] == 5

    def test_finished_state_stays(self):
        final = run(start("addi $t0, $zero, 5"))[-1]
        assert step(final) is final

    def test_hazard_free_completion(self):
        """Test that N independent instructions complete at N + 4."""
        state = start("addi $t0, $zero, 1\naddi $t1, $zero, 2\naddi $t2, $zero, 3")
        assert state.max_cycles == 7
        final = run(state)[-1]
        assert final.cycle == 8
        assert final.registers[8:11] == (1, 2, 3)


class TestStalls:
    """Tests for stall injection."""

    def test_raw_without_forwarding(self):
        states = run(start("addi $t0, $zero, 5\nadd $t1, $t0, $t0", forwarding_enabled=False))
        assert states[0].stalls == (0, 2)
        assert states[0].max_cycles == 8

        by_cycle = {s.cycle: s for s in states}
        assert by_cycle[3].stages == (Stage.EX, Stage.ID)
        assert by_cycle[3].pending_stalls == 2
        # Every stage holds while the stall drains
        assert by_cycle[4].stages == by_cycle[3].stages
        assert by_cycle[4].pending_stalls == 1
        assert by_cycle[5].stages == by_cycle[3].stages
        assert by_cycle[5].pending_stalls == 0

        final = states[-1]
        assert final.finished
        assert final.cycle == 9
        assert final.registers[8] == 5

    def test_raw_with_forwarding(self):
        states = run(start("addi $t0, $zero, 5\nadd $t1, $t0, $t0"))
        assert states[0].max_cycles == 6
        assert all(s.pending_stalls == 0 for s in states)
        final = states[-1]
        assert final.registers[9] == 10
        (edge,) = final.forwardings[1]
        assert edge.register == 8

    def test_stall_counter_decrements(self):
        state = replace(start("nop\nnop"), pending_stalls=2)
        after = step(state)
        assert after.cycle == state.cycle + 1
        assert after.pending_stalls == 1
        assert after.stages == state.stages
        assert after.registers == state.registers

    def test_load_use_chain_with_forwarding(self):
        """Test store, load and dependent add within tick ordering."""
        final = run(start("""
            addi $t0, $zero, 7
            sw $t0, 0($zero)
            lw $t1, 0($zero)
            add $t2, $t1, $t1
        """))[-1]
        assert final.memory[0] == 7
        assert final.registers[9] == 7
        assert final.registers[10] == 14


class TestRedirect:
    """Tests for branch and jump redirects."""

    BRANCH = """
        addi $t0, $zero, 1
        beq $zero, $zero, 2
        addi $t1, $zero, 99
        addi $t2, $zero, 99
        addi $t3, $zero, 7
    """

    def test_taken_branch_skips_instructions(self):
        states = run(start(self.BRANCH))
        assert states[0].max_cycles == 9
        by_cycle = {s.cycle: s for s in states}
        redirected = by_cycle[4]
        assert redirected.window_start == 4
        assert redirected.fetch_base == 4
        assert redirected.pc == 4
        assert redirected.stages == (None, None, None, None, Stage.IF)

        final = states[-1]
        assert final.finished
        assert final.registers[8] == 1
        assert final.registers[9] == 0
        assert final.registers[10] == 0
        assert final.registers[11] == 7

    def test_not_taken_branch(self):
        final = run(start("""
            addi $t0, $zero, 1
            beq $t0, $zero, 1
            addi $t1, $zero, 2
        """))[-1]
        assert final.registers[9] == 2

    def test_pc_follows_ex(self):
        states = run(start("nop\nnop\nnop"))
        by_cycle = {s.cycle: s for s in states}
        assert by_cycle[3].pc == 1
        assert by_cycle[4].pc == 2

    def test_jump_loop(self):
        """Test that a backwards jump re-executes earlier instructions."""
        states = run(start("addi $t0, $t0, 1\nj 0"))
        assert states[0].max_cycles == 6
        by_cycle = {s.cycle: s for s in states}
        assert by_cycle[4].window_start == 0
        assert by_cycle[4].fetch_base == 4
        assert by_cycle[4].stages == (Stage.IF, None)
        final = states[-1]
        assert final.finished
        assert final.registers[8] == 2

    def test_jal_sets_return_address(self):
        final = run(start("""
            jal func
            addi $t0, $zero, 1
        func:
            addi $t1, $zero, 2
        """))[-1]
        assert final.registers[31] == 2
        assert final.registers[8] == 0
        assert final.registers[9] == 2


class TestFlushAndRefetch:
    """Tests for the explicit redirect operation."""

    def test_target_enters_if(self):
        state = step(start("nop\nnop\nnop\nnop"))
        flushed = flush_and_refetch(state, 2)
        assert flushed.window_start == 2
        assert flushed.fetch_base == state.cycle
        assert flushed.pc == 2
        assert flushed.stages == (None, None, Stage.IF, None)
        assert len(flushed.instructions) == 2

    def test_tables_unchanged(self):
        state = step(start("addi $t0, $zero, 5\nadd $t1, $t0, $t0\nnop", forwarding_enabled=False))
        flushed = flush_and_refetch(state, 1)
        assert flushed.stalls == state.stalls
        assert flushed.hazards == state.hazards
        assert flushed.max_cycles == state.max_cycles

    def test_pending_stall_survives(self):
        state = replace(step(start("nop\nnop")), pending_stalls=1)
        assert flush_and_refetch(state, 0).pending_stalls == 1

    def test_target_past_end_empties_window(self):
        state = step(start("nop\nnop"))
        flushed = flush_and_refetch(state, 2)
        assert flushed.stages == (None, None)
        assert flushed.instructions == ()

    @pytest.mark.parametrize("target", [-1, 3, 100])
    def test_out_of_range_target_ignored(self, target, caplog):
        state = step(start("nop\nnop"))
        with caplog.at_level(logging.WARNING):
            assert flush_and_refetch(state, target) is state
        assert "outside program" in caplog.text

    def test_branch_out_of_program_ignored(self):
        """Test that a wild branch leaves the sequential flow in place."""
        final = run(start("""
            beq $zero, $zero, 100
            addi $t0, $zero, 3
        """))[-1]
        assert final.finished
        assert final.registers[8] == 3

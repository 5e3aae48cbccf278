"""Tests for the command / result sessions (frametrap/solvers/session.py).

    TestCfrSession      — progress then completion, strategy queries, batching
    TestLpSession       — single pass, failure reporting, LP method
    TestControl         — pause / resume / cancel from another thread
    TestErrors          — exceptions become ErrorResult
"""

from __future__ import annotations

import threading
import time

import pytest

from frametrap.config import load_settings
from frametrap.solvers.protocol import (
    AllStrategiesResult,
    CancelCommand,
    CompleteResult,
    ErrorResult,
    GetAllStrategiesCommand,
    GetStrategyCommand,
    PauseCommand,
    ProgressResult,
    ResumeCommand,
    StartCommand,
    StrategyResult,
)
from frametrap.solvers.session import CfrSession, LpSession
from tests.conftest import RPS_PAYOFFS, decision, matrix_game_tree, terminal, tree_from_nodes


def _of_type(results: list, kind: type) -> list:
    return [r for r in results if isinstance(r, kind)]


# ─── TestCfrSession ────────────────────────────────────────────────────────────


class TestCfrSession:
    def test_progress_then_complete(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=100))

        assert isinstance(results[-1], CompleteResult)
        progress = _of_type(results, ProgressResult)
        assert progress
        assert [p.iteration for p in progress] == sorted(p.iteration for p in progress)
        assert progress[-1].iteration == progress[-1].total_iterations == 100

    def test_default_iterations(self) -> None:
        results: list = []
        session = CfrSession(results.append, default_iterations=40)
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS)))
        assert _of_type(results, ProgressResult)[-1].total_iterations == 40

    def test_complete_carries_every_node(self) -> None:
        results: list = []
        tree = matrix_game_tree(RPS_PAYOFFS)
        CfrSession(results.append).handle(StartCommand(tree, iterations=20))
        assert set(results[-1].strategies) == set(tree.nodes)

    def test_get_strategy_after_solve(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=20))
        session.handle(GetStrategyCommand("root"))
        reply = results[-1]
        assert isinstance(reply, StrategyResult)
        assert reply.node_id == "root"
        assert sum(e.probability for e in reply.data.player_strategy) == pytest.approx(1.0)

    def test_get_strategy_before_solve_is_none(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(GetStrategyCommand("root"))
        assert results == [StrategyResult("root", None)]

    def test_get_all_strategies(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(GetAllStrategiesCommand())
        assert results == [AllStrategiesResult({})]
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=10))
        session.handle(GetAllStrategiesCommand())
        assert "root" in results[-1].strategies

    @pytest.mark.parametrize("batches", [4, 10])
    def test_progress_batches_sets_report_count(self, batches: int) -> None:
        results: list = []
        session = CfrSession(results.append, progress_batches=batches)
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=100))
        assert len(_of_type(results, ProgressResult)) == batches
        assert isinstance(results[-1], CompleteResult)

    def test_from_settings(self) -> None:
        settings = load_settings(
            {"FRAMETRAP_CFR_ITERATIONS": "60", "FRAMETRAP_PROGRESS_BATCHES": "3"}
        )
        results: list = []
        session = CfrSession.from_settings(results.append, settings)
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS)))
        progress = _of_type(results, ProgressResult)
        assert [p.iteration for p in progress] == [20, 40, 60]
        assert progress[-1].total_iterations == 60

    def test_long_chip_chain_completes(self, chip_chain_tree) -> None:
        results: list = []
        CfrSession(results.append, progress_batches=2).handle(
            StartCommand(chip_chain_tree, iterations=4)
        )
        assert not _of_type(results, ErrorResult)
        assert isinstance(results[-1], CompleteResult)
        assert set(results[-1].strategies) == set(chip_chain_tree.nodes)


# ─── TestLpSession ─────────────────────────────────────────────────────────────


class TestLpSession:
    def test_single_complete(self) -> None:
        results: list = []
        LpSession(results.append).handle(StartCommand(matrix_game_tree(RPS_PAYOFFS)))
        assert len(results) == 1
        complete = results[0]
        assert isinstance(complete, CompleteResult)
        for entry in complete.strategies["root"].player_strategy:
            assert entry.probability == pytest.approx(1 / 3, abs=1e-3)

    def test_malformed_tree_reports_error(self) -> None:
        results: list = []
        root = decision("root", ["a"], ["b"], {(0, 0): "nowhere"})
        LpSession(results.append).handle(StartCommand(tree_from_nodes("root", root)))
        assert results == [ErrorResult("LP solver failed to process the game tree")]

    def test_strategy_query(self) -> None:
        results: list = []
        session = LpSession(results.append)
        session.handle(StartCommand(matrix_game_tree([[3, -1], [-1, 2]])))
        session.handle(GetStrategyCommand("root"))
        assert results[-1].data.player_probability(1) == pytest.approx(3 / 7, abs=1e-3)

    def test_from_settings_uses_lp_method(self) -> None:
        settings = load_settings({"FRAMETRAP_LP_METHOD": "highs-ds"})
        results: list = []
        session = LpSession.from_settings(results.append, settings)
        assert session.method == "highs-ds"
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS)))
        assert isinstance(results[-1], CompleteResult)

    def test_long_chip_chain_completes(self, chip_chain_tree) -> None:
        results: list = []
        LpSession(results.append).handle(StartCommand(chip_chain_tree))
        assert len(results) == 1
        assert isinstance(results[0], CompleteResult)


# ─── TestControl ───────────────────────────────────────────────────────────────


class TestControl:
    def test_commands_drive_control_token(self) -> None:
        session = CfrSession(lambda result: None)
        session.handle(PauseCommand())
        assert session.control.paused
        session.handle(ResumeCommand())
        assert not session.control.paused
        session.handle(CancelCommand())
        assert session.control.cancelled

    def test_start_replaces_cancelled_token(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(CancelCommand())
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=10))
        assert isinstance(results[-1], CompleteResult)

    def test_pause_resume_in_background(self) -> None:
        results: list = []
        first_progress = threading.Event()

        def emit(result) -> None:
            results.append(result)
            if isinstance(result, ProgressResult):
                first_progress.set()

        session = CfrSession(emit)
        thread = session.start_in_background(
            StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=20_000)
        )
        assert first_progress.wait(5.0)
        session.handle(PauseCommand())
        time.sleep(0.3)
        paused_count = len(results)
        time.sleep(0.3)
        # At most one in-flight batch lands after the pause.
        assert len(results) <= paused_count + 1
        session.handle(ResumeCommand())
        thread.join(10.0)
        assert not thread.is_alive()
        assert isinstance(results[-1], CompleteResult)

    def test_cancel_in_background_emits_no_complete(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        thread = session.start_in_background(
            StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=100_000)
        )
        session.handle(CancelCommand())
        thread.join(10.0)
        assert not thread.is_alive()
        assert not _of_type(results, CompleteResult)


# ─── TestErrors ────────────────────────────────────────────────────────────────


class TestErrors:
    def test_missing_root_becomes_error(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(StartCommand(tree_from_nodes("ghost", terminal("t", 1)), iterations=5))
        assert len(results) == 1
        assert isinstance(results[0], ErrorResult)
        assert "ghost" in results[0].message

    def test_session_usable_after_error(self) -> None:
        results: list = []
        session = CfrSession(results.append)
        session.handle(StartCommand(tree_from_nodes("ghost", terminal("t", 1)), iterations=5))
        session.handle(StartCommand(matrix_game_tree(RPS_PAYOFFS), iterations=5))
        assert isinstance(results[-1], CompleteResult)

    def test_unknown_command(self) -> None:
        results: list = []
        CfrSession(results.append).handle(object())
        assert isinstance(results[0], ErrorResult)
        assert "object" in results[0].message

"""Command boundary between a host and the solvers.

A session receives SolverCommand objects through ``handle`` and reports
SolverResult objects through the ``emit`` callback it was created with:

    session = CfrSession(emit=results.append)
    session.handle(StartCommand(tree, iterations=500))
    session.handle(GetStrategyCommand(tree.root))

``start`` runs synchronously on the calling thread. A host that needs to
pause or cancel a CFR run starts it with ``start_in_background`` (or its own
thread) and sends PauseCommand / ResumeCommand / CancelCommand from another
thread; the run observes them between batches. Any exception raised while
starting or running a solve is caught here and emitted as ErrorResult; it
ends that run, not the session.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from frametrap.config import (
    DEFAULT_CFR_ITERATIONS,
    DEFAULT_LP_METHOD,
    DEFAULT_PROGRESS_BATCHES,
    SolverSettings,
)
from frametrap.solvers.cfr import CfrSolver
from frametrap.solvers.lp import LpSolver
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
    SolveControl,
    SolverCommand,
    SolverResult,
    StartCommand,
    StrategyData,
    StrategyMap,
    StrategyResult,
)

logger = logging.getLogger(__name__)

Emit = Callable[[SolverResult], None]


class _SolverSession:
    """Shared dispatch; subclasses implement ``_run`` and the strategy lookups."""

    def __init__(self, emit: Emit) -> None:
        self._emit = emit
        self.control = SolveControl()

    def handle(self, command: SolverCommand) -> None:
        if isinstance(command, StartCommand):
            self.control = SolveControl()
            self._start(command)
        elif isinstance(command, PauseCommand):
            self.control.pause()
        elif isinstance(command, ResumeCommand):
            self.control.resume()
        elif isinstance(command, CancelCommand):
            self.control.cancel()
        elif isinstance(command, GetStrategyCommand):
            self._emit(StrategyResult(command.node_id, self.strategy(command.node_id)))
        elif isinstance(command, GetAllStrategiesCommand):
            self._emit(AllStrategiesResult(self.all_strategies()))
        else:
            self._emit(ErrorResult(f"Unknown command: {type(command).__name__}"))

    def start_in_background(self, command: StartCommand) -> threading.Thread:
        """Run ``command`` on a daemon thread and return the thread.

        The control token is replaced before the thread starts, so commands
        sent right after this call apply to the new run.
        """
        self.control = SolveControl()
        thread = threading.Thread(target=self._start, args=(command,), daemon=True)
        thread.start()
        return thread

    def _start(self, command: StartCommand) -> None:
        try:
            self._run(command)
        except Exception as exc:
            logger.exception("solver run failed")
            self._emit(ErrorResult(str(exc) or type(exc).__name__))

    def _run(self, command: StartCommand) -> None:
        raise NotImplementedError

    def strategy(self, node_id: str) -> StrategyData | None:
        raise NotImplementedError

    def all_strategies(self) -> StrategyMap:
        raise NotImplementedError


class CfrSession(_SolverSession):
    """Batched CFR with progress reports and cooperative pause / cancel."""

    def __init__(
        self,
        emit: Emit,
        default_iterations: int = DEFAULT_CFR_ITERATIONS,
        progress_batches: int = DEFAULT_PROGRESS_BATCHES,
    ) -> None:
        super().__init__(emit)
        self.default_iterations = default_iterations
        self.progress_batches = progress_batches
        self.solver: CfrSolver | None = None

    @classmethod
    def from_settings(cls, emit: Emit, settings: SolverSettings) -> CfrSession:
        return cls(emit, settings.cfr_iterations, settings.progress_batches)

    def _run(self, command: StartCommand) -> None:
        total = command.iterations or self.default_iterations
        self.solver = CfrSolver(command.game_tree)
        logger.info("CFR start: %d iterations on tree %s", total, command.game_tree.tree_id)

        for progress in self.solver.iter_batches(
            total, control=self.control, progress_batches=self.progress_batches
        ):
            self._emit(
                ProgressResult(progress.iteration, progress.total_iterations, progress.exploitability)
            )
        if self.control.cancelled:
            return
        self._emit(CompleteResult(self.solver.get_all_strategies()))

    def strategy(self, node_id: str) -> StrategyData | None:
        return None if self.solver is None else self.solver.get_strategy_data(node_id)

    def all_strategies(self) -> StrategyMap:
        return {} if self.solver is None else self.solver.get_all_strategies()


class LpSession(_SolverSession):
    """Single exact LP pass; ``iterations`` in StartCommand is ignored."""

    def __init__(self, emit: Emit, method: str = DEFAULT_LP_METHOD) -> None:
        super().__init__(emit)
        self.method = method
        self.solver: LpSolver | None = None

    @classmethod
    def from_settings(cls, emit: Emit, settings: SolverSettings) -> LpSession:
        return cls(emit, settings.lp_method)

    def _run(self, command: StartCommand) -> None:
        self.solver = LpSolver(command.game_tree, method=self.method)
        if not self.solver.solve():
            self._emit(ErrorResult("LP solver failed to process the game tree"))
            return
        self._emit(CompleteResult(self.solver.get_all_strategies()))

    def strategy(self, node_id: str) -> StrategyData | None:
        return None if self.solver is None else self.solver.get_strategy_data(node_id)

    def all_strategies(self) -> StrategyMap:
        return {} if self.solver is None else self.solver.get_all_strategies()

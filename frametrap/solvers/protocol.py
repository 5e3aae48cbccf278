"""Command / result messages exchanged with a solver host.

A host (dashboard, worker thread, script) drives a solver session by sending
commands and receiving results through a callback:

    Commands: StartCommand, PauseCommand, ResumeCommand, CancelCommand,
              GetStrategyCommand, GetAllStrategiesCommand
    Results:  ProgressResult, CompleteResult, StrategyResult,
              AllStrategiesResult, ErrorResult

Strategies travel as StrategyData: one probability per declared action for
each side, in the node's action order.

SolveControl is the cooperative pause / resume / cancel token a running solve
polls between batches.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Union

from frametrap.engine.game_tree import GameTree, Node


# ─── Strategy payload ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ActionProbability:
    action_id: int
    probability: float
    name: str = ""


@dataclass(frozen=True)
class StrategyData:
    node_id: str
    player_strategy: tuple[ActionProbability, ...]
    opponent_strategy: tuple[ActionProbability, ...]

    def player_probability(self, action_id: int) -> float:
        return _lookup(self.player_strategy, action_id)

    def opponent_probability(self, action_id: int) -> float:
        return _lookup(self.opponent_strategy, action_id)


def _lookup(entries: tuple[ActionProbability, ...], action_id: int) -> float:
    for entry in entries:
        if entry.action_id == action_id:
            return entry.probability
    return 0.0


def build_strategy_data(
    node: Node,
    player_probs: dict[int, float] | None,
    opponent_probs: dict[int, float] | None,
) -> StrategyData:
    """Lay out per-action probabilities in the node's declared action order.

    Actions missing from a probability map get 0. Terminal nodes produce
    empty strategy tuples.
    """
    player_probs = player_probs or {}
    opponent_probs = opponent_probs or {}
    return StrategyData(
        node_id=node.node_id,
        player_strategy=tuple(
            ActionProbability(a.action_id, float(player_probs.get(a.action_id, 0.0)), a.name)
            for a in node.player_actions or ()
        ),
        opponent_strategy=tuple(
            ActionProbability(a.action_id, float(opponent_probs.get(a.action_id, 0.0)), a.name)
            for a in node.opponent_actions or ()
        ),
    )


StrategyMap = dict[str, StrategyData]


# ─── Commands ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StartCommand:
    game_tree: GameTree
    iterations: int | None = None


@dataclass(frozen=True)
class PauseCommand:
    pass


@dataclass(frozen=True)
class ResumeCommand:
    pass


@dataclass(frozen=True)
class CancelCommand:
    pass


@dataclass(frozen=True)
class GetStrategyCommand:
    node_id: str


@dataclass(frozen=True)
class GetAllStrategiesCommand:
    pass


SolverCommand = Union[
    StartCommand,
    PauseCommand,
    ResumeCommand,
    CancelCommand,
    GetStrategyCommand,
    GetAllStrategiesCommand,
]


# ─── Results ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProgressResult:
    iteration: int
    total_iterations: int
    exploitability: float | None = None


@dataclass(frozen=True)
class CompleteResult:
    strategies: StrategyMap


@dataclass(frozen=True)
class StrategyResult:
    node_id: str
    data: StrategyData | None


@dataclass(frozen=True)
class AllStrategiesResult:
    strategies: StrategyMap


@dataclass(frozen=True)
class ErrorResult:
    message: str


SolverResult = Union[
    ProgressResult,
    CompleteResult,
    StrategyResult,
    AllStrategiesResult,
    ErrorResult,
]


# ─── Cooperative control token ────────────────────────────────────────────────

class SolveControl:
    """Pause / resume / cancel flags shared between a host and a running solve.

    The solve calls ``checkpoint()`` between batches; it blocks while paused
    and returns False once cancelled. Nothing is interrupted mid-batch.
    """

    def __init__(self) -> None:
        self._running = threading.Event()
        self._running.set()
        self._cancelled = threading.Event()

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def pause(self) -> None:
        self._running.clear()

    def resume(self) -> None:
        self._running.set()

    def cancel(self) -> None:
        self._cancelled.set()
        self._running.set()   # release a paused solve so it can exit

    def checkpoint(self, poll_interval: float = 0.1) -> bool:
        """Wait out a pause; return True to continue, False if cancelled."""
        while not self._running.wait(poll_interval):
            if self.cancelled:
                break
        return not self.cancelled

"""Counterfactual Regret Minimisation over a frame-trap game tree.

Finds approximate Nash equilibrium strategies for both sides by self-play
regret matching.

Game-theory summary
-------------------
Every decision node is a simultaneous-move exchange: player and opponent pick
an action at the same time and the (player_action, opponent_action) pair
selects a child node or a terminal reward. Each node is fully observed, so
the information set is simply ``(node, side)``.

Accumulators
~~~~~~~~~~~~
  For every node and both sides a numpy vector sized to that side's action
  count, allocated once when the tree is compiled:

      regret_sum[node][side][a]      cumulative counterfactual regret
      strategy_sum[node][side][a]    reach-weighted strategy sum

  Both sides are accumulated independently, so the opponent's average
  strategy is a genuine equilibrium estimate rather than a placeholder.

Iteration
~~~~~~~~~
  1. Run one pass as the player (side 0), then one as the opponent
     (side 1), with both reach probabilities starting at 1.0 at the root.
  2. At the start of a pass, read both sides' current regret-matching
     strategies at every node.
  3. Children first: the traversing side's per-action utility weights the
     other side's current strategy over the outcome row; terminals pay the
     traversing side's own reward.
  4. Parents first: each child's reach is the sum over its incoming cells
     of the parent's reach times the acting side's probability.
  5. regret_sum[a]   += other_reach · (u[a] − u_node)
     strategy_sum[a] += own_reach · σ[a]
  6. The average strategy is the normalised strategy sum (uniform when the
     node was never reached).

  Neither pass recurses, so long chip-damage chains are safe.

Batching
~~~~~~~~
  ``CfrSolver.iter_batches`` is a generator that splits the requested
  iterations into ``progress_batches`` batches (100 by default, so about 1%
  each) and yields a CfrProgress after each, so a host can report progress
  and pause / resume / cancel between batches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np

from frametrap.config import DEFAULT_CFR_ITERATIONS, DEFAULT_PROGRESS_BATCHES
from frametrap.engine.game_tree import GameTree
from frametrap.solvers.protocol import (
    SolveControl,
    StrategyData,
    StrategyMap,
    build_strategy_data,
)

logger = logging.getLogger(__name__)

PLAYER: int = 0
OPPONENT: int = 1

NodeStrategyDict = dict[str, dict[int, float]]


# ─── Result types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CfrProgress:
    """Emitted after every batch, in increasing iteration order."""

    iteration: int
    total_iterations: int
    exploitability: float | None = None


@dataclass
class CfrResult:
    """Output of a CFR run.

    Attributes:
        player_strategy:   Average strategy per decision node for the player.
                           Maps node_id → {action_id: prob}.
        opponent_strategy: Average strategy per decision node for the opponent.
        n_iterations:      Iterations actually completed.
        exploitability:    Best-response gain summed over both sides, in
                           reward units (0 at an exact equilibrium).
        converged:         True if exploitability dropped below the threshold.
        cancelled:         True if the run was stopped through SolveControl.
        root_value:        Player's expected reward at the root under the
                           average strategies.
    """

    player_strategy: NodeStrategyDict
    opponent_strategy: NodeStrategyDict
    n_iterations: int
    exploitability: float
    converged: bool
    cancelled: bool
    root_value: float


# ─── Compiled tree and accumulators ───────────────────────────────────────────


@dataclass
class _CfrNode:
    """A decision node laid out as dense outcome matrices.

    Attributes:
        node_id:          Id in the source GameTree.
        player_actions:   Action ids, row order.
        opponent_actions: Action ids, column order.
        payoffs:          (2, n_player, n_opponent) terminal rewards per side;
                          0 for cells leading to a child or with no outcome.
        child_cells:      (row, col, child_index) for cells leading to a
                          decision node.
    """

    node_id: str
    player_actions: list[int]
    opponent_actions: list[int]
    payoffs: np.ndarray
    child_cells: list[tuple[int, int, int]]

    @property
    def is_dead_end(self) -> bool:
        return not self.player_actions or not self.opponent_actions


@dataclass
class _CfrTables:
    """Mutable CFR state: regret and strategy-sum accumulators per (node, side)."""

    regret_sums: list[tuple[np.ndarray, np.ndarray]] = field(default_factory=list)
    strategy_sums: list[tuple[np.ndarray, np.ndarray]] = field(default_factory=list)


def _compile_tree(game_tree: GameTree) -> tuple[list[_CfrNode], dict[str, int]]:
    """Index every reachable decision node; terminals become payoff cells."""
    if game_tree.root not in game_tree.nodes:
        raise ValueError(f"Root node {game_tree.root} not found in game tree")

    decision_ids = [n.node_id for n in game_tree.iter_reachable() if not n.is_terminal]
    index = {node_id: i for i, node_id in enumerate(decision_ids)}

    compiled: list[_CfrNode] = []
    for node_id in decision_ids:
        node = game_tree.nodes[node_id]
        p_ids = [a.action_id for a in node.player_actions or ()]
        o_ids = [a.action_id for a in node.opponent_actions or ()]
        row = {a: i for i, a in enumerate(p_ids)}
        col = {a: j for j, a in enumerate(o_ids)}
        payoffs = np.zeros((2, len(p_ids), len(o_ids)))
        child_cells: list[tuple[int, int, int]] = []
        for t in node.transitions:
            if t.player_action_id not in row or t.opponent_action_id not in col:
                logger.warning(
                    "node %s: transition (%s, %s) uses an undeclared action, ignored",
                    node_id,
                    t.player_action_id,
                    t.opponent_action_id,
                )
                continue
            target = game_tree.nodes.get(t.next_node_id)
            if target is None:
                raise ValueError(f"Node {node_id} references missing node {t.next_node_id}")
            r, c = row[t.player_action_id], col[t.opponent_action_id]
            if target.is_terminal:
                payoffs[PLAYER, r, c] = target.player_reward or 0.0
                payoffs[OPPONENT, r, c] = target.opponent_reward or 0.0
            else:
                child_cells.append((r, c, index[target.node_id]))
        compiled.append(_CfrNode(node_id, p_ids, o_ids, payoffs, child_cells))
    return compiled, index


# ─── Regret matching ──────────────────────────────────────────────────────────


def _regret_matching(regret_sum: np.ndarray) -> np.ndarray:
    """Return the current strategy for one information set.

    Strategy is proportional to positive regrets. Falls back to uniform if
    all regrets are ≤ 0 (including before any accumulation).

    Examples:
        >>> _regret_matching(np.array([3.0, -1.0, 1.0]))
        array([0.75, 0.  , 0.25])
    """
    positive = np.maximum(regret_sum, 0.0)
    total = positive.sum()
    if total <= 0.0:
        return np.full(len(regret_sum), 1.0 / len(regret_sum)) if len(regret_sum) else positive
    return positive / total


def _average_strategy(strategy_sum: np.ndarray) -> np.ndarray:
    total = strategy_sum.sum()
    if total <= 0.0:
        return np.full(len(strategy_sum), 1.0 / len(strategy_sum)) if len(strategy_sum) else strategy_sum
    return strategy_sum / total


# ─── Solver ───────────────────────────────────────────────────────────────────


class CfrSolver:
    """Self-play CFR over a built GameTree.

    Each instance owns its accumulators; the tree is only read.

    Example:
        >>> from frametrap.engine.scenarios import IdCounter, create_rps_scenario
        >>> from frametrap.engine.tree_builder import build_game_tree
        >>> tree = build_game_tree(create_rps_scenario(IdCounter())).game_tree
        >>> result = CfrSolver(tree).solve(n_iterations=200)
        >>> result.n_iterations
        200
    """

    def __init__(self, game_tree: GameTree) -> None:
        self.game_tree = game_tree
        self._nodes, self._index = _compile_tree(game_tree)
        self._tables = _CfrTables(
            regret_sums=[
                (np.zeros(len(n.player_actions)), np.zeros(len(n.opponent_actions)))
                for n in self._nodes
            ],
            strategy_sums=[
                (np.zeros(len(n.player_actions)), np.zeros(len(n.opponent_actions)))
                for n in self._nodes
            ],
        )
        self._order = self._post_order()
        self.iterations_run = 0

    def _post_order(self) -> list[int]:
        """Decision-node indices with every child before its parents."""
        if self.game_tree.root not in self._index:
            return []
        order: list[int] = []
        visited: set[int] = set()
        stack: list[tuple[int, bool]] = [(self._index[self.game_tree.root], False)]
        while stack:
            idx, expanded = stack.pop()
            if expanded:
                order.append(idx)
                continue
            if idx in visited:
                continue
            visited.add(idx)
            stack.append((idx, True))
            for _, _, child in self._nodes[idx].child_cells:
                if child not in visited:
                    stack.append((child, False))
        return order

    # ── One pass ─────────────────────────────────────────────────────────────

    def _traverse(self, traverser: int) -> float:
        """One CFR pass for ``traverser``; returns its expected utility at the root.

        Utilities are filled children-first over ``_order`` and reach
        probabilities parents-first over its reverse, so each decision node is
        visited once per pass regardless of tree depth or how many paths share
        it. Regret and strategy updates are linear in reach, so summing the
        reach of every path into a node before updating matches walking each
        path separately.
        """
        sigmas = [
            (_regret_matching(regrets[PLAYER]), _regret_matching(regrets[OPPONENT]))
            for regrets in self._tables.regret_sums
        ]

        node_utils = np.zeros(len(self._nodes))
        action_utils: dict[int, np.ndarray] = {}
        for idx in self._order:
            node = self._nodes[idx]
            if node.is_dead_end:
                continue
            sigma_p, sigma_o = sigmas[idx]
            values = node.payoffs[traverser].copy()
            for r, c, child in node.child_cells:
                values[r, c] = node_utils[child]
            if traverser == PLAYER:
                action_utils[idx] = values @ sigma_o
                node_utils[idx] = float(sigma_p @ action_utils[idx])
            else:
                action_utils[idx] = values.T @ sigma_p
                node_utils[idx] = float(sigma_o @ action_utils[idx])

        root = self._index[self.game_tree.root]
        reach = np.zeros((len(self._nodes), 2))
        reach[root] = 1.0
        for idx in reversed(self._order):
            node = self._nodes[idx]
            if node.is_dead_end:
                continue
            sigma_p, sigma_o = sigmas[idx]
            reach_player, reach_opponent = reach[idx]
            for r, c, child in node.child_cells:
                reach[child, PLAYER] += reach_player * sigma_p[r]
                reach[child, OPPONENT] += reach_opponent * sigma_o[c]

            regrets = self._tables.regret_sums[idx]
            sums = self._tables.strategy_sums[idx]
            if traverser == PLAYER:
                regrets[PLAYER][:] += reach_opponent * (action_utils[idx] - node_utils[idx])
                sums[PLAYER][:] += reach_player * sigma_p
            else:
                regrets[OPPONENT][:] += reach_player * (action_utils[idx] - node_utils[idx])
                sums[OPPONENT][:] += reach_opponent * sigma_o
        return float(node_utils[root])

    def run_iterations(self, n_iterations: int) -> None:
        """Run ``n_iterations`` full iterations (player pass, then opponent pass)."""
        if self.game_tree.root not in self._index:
            self.iterations_run += n_iterations   # terminal root: nothing to learn
            return
        for _ in range(n_iterations):
            self._traverse(PLAYER)
            self._traverse(OPPONENT)
        self.iterations_run += n_iterations

    def iter_batches(
        self,
        n_iterations: int,
        batch_size: int | None = None,
        control: SolveControl | None = None,
        progress_batches: int = DEFAULT_PROGRESS_BATCHES,
    ) -> Iterator[CfrProgress]:
        """Run ``n_iterations`` in batches, yielding progress after each batch.

        Args:
            n_iterations:     Total iterations for this run (must be positive).
            batch_size:       Iterations per batch; overrides ``progress_batches``.
            control:          Optional pause / resume / cancel token, checked
                              before every batch.
            progress_batches: Number of batches the run is split into when
                              ``batch_size`` is not given.

        Yields:
            CfrProgress with the cumulative iteration count of this run.
        """
        if n_iterations <= 0:
            raise ValueError(f"n_iterations must be positive, got {n_iterations}")
        if batch_size is None:
            batch_size = max(1, n_iterations // max(1, progress_batches))

        done = 0
        while done < n_iterations:
            if control is not None and not control.checkpoint():
                logger.info("CFR cancelled after %d/%d iterations", done, n_iterations)
                return
            step = min(batch_size, n_iterations - done)
            self.run_iterations(step)
            done += step
            yield CfrProgress(done, n_iterations, self.compute_exploitability())

    def solve(
        self,
        n_iterations: int = DEFAULT_CFR_ITERATIONS,
        batch_size: int | None = None,
        exploitability_threshold: float = 0.0,
        control: SolveControl | None = None,
        progress_batches: int = DEFAULT_PROGRESS_BATCHES,
    ) -> CfrResult:
        """Run CFR to completion (or convergence / cancellation).

        Args:
            n_iterations:             Iteration budget.
            batch_size:               Iterations between convergence checks.
            exploitability_threshold: Stop early once exploitability is below
                                      this value. 0 disables early stopping.
            control:                  Optional cooperative control token.
            progress_batches:         Convergence checks per run when
                                      ``batch_size`` is not given.

        Returns:
            CfrResult with average strategies for both sides.
        """
        start = self.iterations_run
        exploitability = float("inf")
        converged = False
        for progress in self.iter_batches(n_iterations, batch_size, control, progress_batches):
            exploitability = progress.exploitability
            if exploitability < exploitability_threshold:
                converged = True
                break

        cancelled = control is not None and control.cancelled
        if exploitability == float("inf"):
            exploitability = self.compute_exploitability()
        logger.info(
            "CFR finished: %d iterations, exploitability %.4f",
            self.iterations_run - start,
            exploitability,
        )
        return CfrResult(
            player_strategy=self.average_strategies(PLAYER),
            opponent_strategy=self.average_strategies(OPPONENT),
            n_iterations=self.iterations_run - start,
            exploitability=exploitability,
            converged=converged,
            cancelled=cancelled,
            root_value=self.root_value(),
        )

    # ── Strategy queries ─────────────────────────────────────────────────────

    def _average(self, idx: int, side: int) -> np.ndarray:
        return _average_strategy(self._tables.strategy_sums[idx][side])

    def _as_dict(self, idx: int, side: int) -> dict[int, float]:
        node = self._nodes[idx]
        actions = node.player_actions if side == PLAYER else node.opponent_actions
        return {a: float(p) for a, p in zip(actions, self._average(idx, side), strict=True)}

    def get_average_strategy(self, node_id: str) -> dict[int, float] | None:
        """Player's average strategy at a decision node (None if unknown)."""
        idx = self._index.get(node_id)
        return None if idx is None else self._as_dict(idx, PLAYER)

    def get_average_opponent_strategy(self, node_id: str) -> dict[int, float] | None:
        idx = self._index.get(node_id)
        return None if idx is None else self._as_dict(idx, OPPONENT)

    def average_strategies(self, side: int) -> NodeStrategyDict:
        return {node.node_id: self._as_dict(i, side) for i, node in enumerate(self._nodes)}

    def get_strategy_data(self, node_id: str) -> StrategyData | None:
        node = self.game_tree.nodes.get(node_id)
        if node is None:
            return None
        return build_strategy_data(
            node, self.get_average_strategy(node_id), self.get_average_opponent_strategy(node_id)
        )

    def get_all_strategies(self) -> StrategyMap:
        return {node_id: self.get_strategy_data(node_id) for node_id in self.game_tree.nodes}

    # ── Evaluation ───────────────────────────────────────────────────────────

    def _evaluate(self, mode: str) -> float:
        """Player value at the root, bottom-up over the DAG.

        mode:
            "average"  — both sides play their average strategies
            "best_player"   — player best-responds to the opponent's average
            "best_opponent" — opponent best-responds (minimises the player)
        """
        if not self._order:
            return self.game_tree.root_node.player_reward or 0.0

        values = np.zeros(len(self._nodes))
        for idx in self._order:
            node = self._nodes[idx]
            if node.is_dead_end:
                continue
            matrix = node.payoffs[PLAYER].copy()
            for r, c, child in node.child_cells:
                matrix[r, c] = values[child]
            sigma_p = self._average(idx, PLAYER)
            sigma_o = self._average(idx, OPPONENT)
            if mode == "best_player":
                values[idx] = float((matrix @ sigma_o).max())
            elif mode == "best_opponent":
                values[idx] = float((sigma_p @ matrix).min())
            else:
                values[idx] = float(sigma_p @ matrix @ sigma_o)
        return float(values[self._index[self.game_tree.root]])

    def root_value(self) -> float:
        """Player's expected reward at the root under both average strategies."""
        return self._evaluate("average")

    def compute_exploitability(self) -> float:
        """Total exploitability of the current average strategy profile.

        Exploitability = best_player_value − worst_player_value, where
          - best_player_value  = player's best response to the opponent average
          - worst_player_value = player value when the opponent best-responds

        At an exact equilibrium both equal the game value and the result is 0.
        """
        return max(0.0, self._evaluate("best_player") - self._evaluate("best_opponent"))


def solve(
    game_tree: GameTree,
    n_iterations: int = DEFAULT_CFR_ITERATIONS,
    batch_size: int | None = None,
    exploitability_threshold: float = 0.0,
) -> CfrResult:
    """Convenience wrapper: build a CfrSolver for ``game_tree`` and run it."""
    return CfrSolver(game_tree).solve(
        n_iterations=n_iterations,
        batch_size=batch_size,
        exploitability_threshold=exploitability_threshold,
    )

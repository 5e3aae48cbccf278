"""Exact minimax solver by linear programming and backward induction.

Each decision node of a frame-trap tree is a one-shot simultaneous-move
matrix game once its children are solved: the cell (a, b) pays either the
terminal reward reached by (a, b) or the solved value of the child node. The
solver therefore

  1. compiles the GameTree into _LpNode records (children keyed by the
     (player_action_id, opponent_action_id) tuple, terminal rewards kept
     separately),
  2. orders nodes by DFS post-order from the root (children before parents),
  3. solves two maximin LPs per node, one per side, each on that side's own
     payoff matrix.

LP formulation (rows = own actions, columns = other side's actions)
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
    maximise   v
    subject to Σ_a x[a] · M[a, b] ≥ v     for every column b
               Σ_a x[a] = 1,  x ≥ 0

solved with ``scipy.optimize.linprog`` (HiGHS). Payoffs are shifted by
``-min + 1`` when the matrix has negative entries and the shift is removed
from the optimal v afterwards.

Degenerate cases
~~~~~~~~~~~~~~~~
  * A side with one action plays it with probability 1; its value is the
    minimum payoff over the other side's actions.
  * An infeasible or failed LP falls back to a uniform strategy whose value
    is the direct expectation; this is logged, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from scipy.optimize import linprog

from frametrap.config import DEFAULT_LP_METHOD
from frametrap.engine.game_tree import GameTree
from frametrap.solvers.protocol import StrategyData, StrategyMap, build_strategy_data

logger = logging.getLogger(__name__)

# Added on top of -min so every shifted payoff is strictly positive.
PAYOFF_SHIFT_OFFSET: float = 1.0

OutcomeKey = tuple[int, int]


# ─── Matrix-game primitive ────────────────────────────────────────────────────

def payoff_shift(payoff: np.ndarray) -> float:
    """Amount added to every cell so the LP sees non-negative payoffs."""
    if payoff.size == 0:
        return 0.0
    min_payoff = float(payoff.min())
    return -min_payoff + PAYOFF_SHIFT_OFFSET if min_payoff < 0 else 0.0


def solve_maximin(
    payoff: np.ndarray,
    method: str = DEFAULT_LP_METHOD,
) -> tuple[np.ndarray, float] | None:
    """Maximin mixed strategy for the row player of ``payoff``.

    Args:
        payoff: (n_own, n_other) matrix of the row player's payoffs.
        method: ``scipy.optimize.linprog`` method.

    Returns:
        (strategy, value) with ``strategy`` summing to 1, or None if the LP
        did not reach an optimal solution.

    Examples:
        >>> rps = np.array([[0, -1, 1], [1, 0, -1], [-1, 1, 0]], dtype=float)
        >>> strategy, value = solve_maximin(rps)
        >>> np.allclose(strategy, 1 / 3), abs(value) < 1e-6
        (True, True)
    """
    n_own, n_other = payoff.shape
    shift = payoff_shift(payoff)
    shifted = payoff + shift

    # Variables: x_0 .. x_{n_own-1}, v.  linprog minimises, so minimise -v.
    c = np.zeros(n_own + 1)
    c[-1] = -1.0
    # v - Σ_a x[a] M[a, b] ≤ 0 for every column b.
    a_ub = np.hstack([-shifted.T, np.ones((n_other, 1))])
    b_ub = np.zeros(n_other)
    a_eq = np.zeros((1, n_own + 1))
    a_eq[0, :n_own] = 1.0
    b_eq = np.array([1.0])
    bounds = [(0.0, None)] * n_own + [(None, None)]

    res = linprog(c, A_ub=a_ub, b_ub=b_ub, A_eq=a_eq, b_eq=b_eq, bounds=bounds, method=method)
    if res.status != 0 or res.x is None:
        logger.debug("linprog status %s: %s", res.status, res.message)
        return None

    strategy = np.clip(res.x[:n_own], 0.0, None)
    total = strategy.sum()
    if total <= 0.0:
        return None
    return strategy / total, float(res.x[-1]) - shift


# ─── Internal tree ────────────────────────────────────────────────────────────

@dataclass
class _LpNode:
    node_id: str
    is_terminal: bool
    player_actions: list[int] = field(default_factory=list)
    opponent_actions: list[int] = field(default_factory=list)
    children: dict[OutcomeKey, str] = field(default_factory=dict)
    rewards: dict[OutcomeKey, tuple[float, float]] = field(default_factory=dict)
    player_strategy: dict[int, float] = field(default_factory=dict)
    opponent_strategy: dict[int, float] = field(default_factory=dict)
    player_value: float = 0.0
    opponent_value: float = 0.0


def _uniform(actions: list[int]) -> dict[int, float]:
    return dict.fromkeys(actions, 1.0 / len(actions)) if actions else {}


class LpSolver:
    """Backward-induction minimax solver over a built GameTree.

    Example:
        >>> from frametrap.engine.scenarios import IdCounter, create_rps_scenario
        >>> from frametrap.engine.tree_builder import build_game_tree
        >>> tree = build_game_tree(create_rps_scenario(IdCounter())).game_tree
        >>> solver = LpSolver(tree)
        >>> solver.solve()
        True
    """

    def __init__(self, game_tree: GameTree, method: str = DEFAULT_LP_METHOD) -> None:
        self.game_tree = game_tree
        self.method = method
        self._nodes: dict[str, _LpNode] = {}
        self._order: list[str] = []
        self._compiled = False

    # ── Compilation ──────────────────────────────────────────────────────────

    def _compile(self) -> bool:
        nodes = self.game_tree.nodes
        if self.game_tree.root not in nodes:
            logger.error("root node %s not found in game tree", self.game_tree.root)
            return False

        for node in self.game_tree.iter_reachable():
            lp_node = _LpNode(node.node_id, node.is_terminal)
            lp_node.player_actions = [a.action_id for a in node.player_actions or ()]
            lp_node.opponent_actions = [a.action_id for a in node.opponent_actions or ()]
            for transition in node.transitions:
                key = (transition.player_action_id, transition.opponent_action_id)
                target = nodes.get(transition.next_node_id)
                if target is None:
                    logger.error(
                        "transition %s in node %s references missing node %s",
                        key,
                        node.node_id,
                        transition.next_node_id,
                    )
                    return False
                if target.is_terminal:
                    lp_node.rewards[key] = (
                        target.player_reward or 0.0,
                        target.opponent_reward or 0.0,
                    )
                else:
                    lp_node.children[key] = target.node_id
            self._nodes[node.node_id] = lp_node

        self._order = self._topological_order()
        self._compiled = True
        logger.debug("compiled %d LP nodes", len(self._order))
        return True

    def _topological_order(self) -> list[str]:
        """DFS post-order from the root: every child precedes its parents."""
        order: list[str] = []
        visited: set[str] = set()
        stack: list[tuple[str, bool]] = [(self.game_tree.root, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                order.append(node_id)
                continue
            if node_id in visited:
                continue
            visited.add(node_id)
            stack.append((node_id, True))
            for child_id in reversed(list(self._nodes[node_id].children.values())):
                if child_id not in visited:
                    stack.append((child_id, False))
        return order

    # ── Per-node solving ─────────────────────────────────────────────────────

    def _cell(self, node: _LpNode, key: OutcomeKey, for_player: bool) -> float:
        reward = node.rewards.get(key)
        if reward is not None:
            return reward[0] if for_player else reward[1]
        child_id = node.children.get(key)
        if child_id is not None:
            child = self._nodes[child_id]
            return child.player_value if for_player else child.opponent_value
        return 0.0

    def _payoff_matrix(self, node: _LpNode, for_player: bool) -> np.ndarray:
        """Rows = the solving side's actions, columns = the other side's."""
        matrix = np.array(
            [
                [self._cell(node, (p, o), for_player) for o in node.opponent_actions]
                for p in node.player_actions
            ],
            dtype=float,
        ).reshape(len(node.player_actions), len(node.opponent_actions))
        return matrix if for_player else matrix.T

    def _expected_value(self, node: _LpNode, for_player: bool) -> float:
        player_probs = node.player_strategy or _uniform(node.player_actions)
        opponent_probs = node.opponent_strategy or _uniform(node.opponent_actions)
        return sum(
            player_probs.get(p, 0.0)
            * opponent_probs.get(o, 0.0)
            * self._cell(node, (p, o), for_player)
            for p in node.player_actions
            for o in node.opponent_actions
        )

    def _solve_side(self, node: _LpNode, for_player: bool) -> None:
        own = node.player_actions if for_player else node.opponent_actions
        if not own:
            return
        side = "player" if for_player else "opponent"
        payoff = self._payoff_matrix(node, for_player)

        if len(own) == 1:
            strategy = {own[0]: 1.0}
            value = float(payoff.min()) if payoff.size else 0.0
            logger.debug("%s: single %s action, value %.3f", node.node_id, side, value)
        else:
            solved = solve_maximin(payoff, self.method)
            if solved is None:
                logger.warning(
                    "LP infeasible for %s at node %s, using uniform strategy", side, node.node_id
                )
                strategy = _uniform(own)
                self._assign(node, for_player, strategy, 0.0)   # expectation reads it
                value = self._expected_value(node, for_player)
            else:
                probs, value = solved
                strategy = {a: float(p) for a, p in zip(own, probs, strict=True)}
                logger.debug("%s: %s LP value %.3f", node.node_id, side, value)

        self._assign(node, for_player, strategy, value)

    @staticmethod
    def _assign(node: _LpNode, for_player: bool, strategy: dict[int, float], value: float) -> None:
        if for_player:
            node.player_strategy, node.player_value = strategy, value
        else:
            node.opponent_strategy, node.opponent_value = strategy, value

    # ── Public API ───────────────────────────────────────────────────────────

    def solve(self) -> bool:
        """Solve every node once, children first.

        Returns:
            True on success; False if the tree is malformed (missing root or
            a transition to an unknown node), which is logged as an error.
        """
        if not self._compiled and not self._compile():
            logger.error("failed to compile game tree %s", self.game_tree.tree_id)
            return False

        for node_id in self._order:
            node = self._nodes[node_id]
            if node.is_terminal:
                continue
            self._solve_side(node, for_player=True)
            self._solve_side(node, for_player=False)

        logger.info("LP solve finished for %d nodes", len(self._order))
        return True

    def get_player_strategy(self, node_id: str) -> dict[int, float] | None:
        node = self._nodes.get(node_id)
        if node is None:
            return None
        return dict(node.player_strategy) or _uniform(node.player_actions)

    def get_opponent_strategy(self, node_id: str) -> dict[int, float] | None:
        node = self._nodes.get(node_id)
        if node is None:
            return None
        return dict(node.opponent_strategy) or _uniform(node.opponent_actions)

    def get_value(self, node_id: str) -> tuple[float, float] | None:
        """(player_value, opponent_value) of a solved node."""
        node = self._nodes.get(node_id)
        if node is None:
            return None
        if node.is_terminal:
            tree_node = self.game_tree.nodes[node_id]
            return tree_node.player_reward or 0.0, tree_node.opponent_reward or 0.0
        return node.player_value, node.opponent_value

    def get_strategy_data(self, node_id: str) -> StrategyData | None:
        node = self.game_tree.nodes.get(node_id)
        if node is None or node_id not in self._nodes:
            return None
        return build_strategy_data(
            node, self.get_player_strategy(node_id), self.get_opponent_strategy(node_id)
        )

    def get_all_strategies(self) -> StrategyMap:
        strategies: StrategyMap = {}
        for node_id in self.game_tree.nodes:
            data = self.get_strategy_data(node_id)
            if data is not None:
                strategies[node_id] = data
        return strategies

    def get_root_strategy(self) -> dict[int, float] | None:
        return self.get_player_strategy(self.game_tree.root)

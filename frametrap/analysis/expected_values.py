"""
Expected values of every node and action under a given strategy profile.

For a decision node with strategies σ_p (player) and σ_o (opponent):

    EV_p(a) = Σ_{(a, b) transitions} σ_o(b) · EV_p(child(a, b))
    EV_p    = Σ_a σ_p(a) · EV_p(a)

and symmetrically for the opponent, using the opponent's node values.
Terminal nodes contribute their rewards directly. A decision node with no
entry in ``strategies`` is reported as all zeros.

The tree is expected to be acyclic (the builder guarantees it); a cycle
raises ValueError.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from frametrap.engine.game_tree import GameTree, Node
from frametrap.solvers.protocol import StrategyData, StrategyMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionExpectedValue:
    action_id: int
    expected_value: float


@dataclass(frozen=True)
class NodeExpectedValues:
    action_expected_values: tuple[ActionExpectedValue, ...]
    node_expected_value: float
    opponent_action_expected_values: tuple[ActionExpectedValue, ...] = ()
    opponent_node_expected_value: float = 0.0

    def action_value(self, action_id: int) -> float | None:
        for entry in self.action_expected_values:
            if entry.action_id == action_id:
                return entry.expected_value
        return None

    def opponent_action_value(self, action_id: int) -> float | None:
        for entry in self.opponent_action_expected_values:
            if entry.action_id == action_id:
                return entry.expected_value
        return None


ExpectedValuesMap = dict[str, NodeExpectedValues]

_ZERO = NodeExpectedValues((), 0.0, (), 0.0)


def _evaluate_node(
    node: Node, strategy: StrategyData, values: ExpectedValuesMap
) -> NodeExpectedValues:
    """Combine already-computed child values into this node's values."""
    player_evs = []
    for action in node.player_actions or ():
        ev = sum(
            strategy.opponent_probability(t.opponent_action_id)
            * values[t.next_node_id].node_expected_value
            for t in node.transitions
            if t.player_action_id == action.action_id
        )
        player_evs.append(ActionExpectedValue(action.action_id, ev))

    opponent_evs = []
    for action in node.opponent_actions or ():
        ev = sum(
            strategy.player_probability(t.player_action_id)
            * values[t.next_node_id].opponent_node_expected_value
            for t in node.transitions
            if t.opponent_action_id == action.action_id
        )
        opponent_evs.append(ActionExpectedValue(action.action_id, ev))

    return NodeExpectedValues(
        action_expected_values=tuple(player_evs),
        node_expected_value=sum(
            strategy.player_probability(e.action_id) * e.expected_value for e in player_evs
        ),
        opponent_action_expected_values=tuple(opponent_evs),
        opponent_node_expected_value=sum(
            strategy.opponent_probability(e.action_id) * e.expected_value for e in opponent_evs
        ),
    )


def _reachable_breadth_first(game_tree: GameTree) -> list[str]:
    order = [game_tree.root]
    seen = {game_tree.root}
    queue = deque(order)
    while queue:
        node = game_tree.nodes.get(queue.popleft())
        if node is None or node.is_terminal:
            continue
        for t in node.transitions:
            if t.next_node_id not in seen:
                seen.add(t.next_node_id)
                order.append(t.next_node_id)
                queue.append(t.next_node_id)
    return order


def calculate_expected_values(game_tree: GameTree, strategies: StrategyMap) -> ExpectedValuesMap:
    """Expected values for every node reachable from the root.

    Args:
        game_tree:  A built tree.
        strategies: node_id → StrategyData, e.g. a solver's ``get_all_strategies()``.

    Returns:
        node_id → NodeExpectedValues.

    Raises:
        ValueError: If a transition points at a missing node or the tree
                    contains a cycle.
    """
    values: ExpectedValuesMap = {}
    in_progress: set[str] = set()

    for start in _reachable_breadth_first(game_tree):
        if start in values:
            continue
        # Iterative post-order: a node is evaluated once all children are.
        stack: list[tuple[str, bool]] = [(start, False)]
        while stack:
            node_id, children_done = stack.pop()
            if node_id in values:
                continue
            node = game_tree.nodes.get(node_id)
            if node is None:
                raise ValueError(f"Node not found: {node_id}")

            if node.is_terminal:
                values[node_id] = NodeExpectedValues(
                    (), node.player_reward or 0.0, (), node.opponent_reward or 0.0
                )
                continue
            strategy = strategies.get(node_id)
            if strategy is None:
                values[node_id] = _ZERO
                continue

            if children_done:
                in_progress.discard(node_id)
                values[node_id] = _evaluate_node(node, strategy, values)
                continue

            if node_id in in_progress:
                raise ValueError(
                    f"Cycle detected while calculating expected values for node: {node_id}"
                )
            in_progress.add(node_id)
            stack.append((node_id, True))
            for t in node.transitions:
                if t.next_node_id in values:
                    continue
                if t.next_node_id in in_progress:
                    raise ValueError(
                        "Cycle detected while calculating expected values for node: "
                        f"{t.next_node_id}"
                    )
                stack.append((t.next_node_id, False))

    logger.debug("expected values computed for %d nodes", len(values))
    return values

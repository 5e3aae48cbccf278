"""
Shared pytest fixtures for frame-trap solver tests.

Provides builders for small hand-written game trees (one-shot matrix games)
and ready-built trees for the bundled scenarios.
"""

from __future__ import annotations

import pytest

from frametrap.engine.game_tree import GameTree, Node, NodeState, NodeTransition
from frametrap.engine.models import (
    Action,
    DynamicState,
    ResourceConsumption,
    ResourceType,
    Scenario,
    Situation,
    TerminalSituation,
    Transition,
)
from frametrap.engine.scenarios import IdCounter, create_corner_judo_scenario, create_rps_scenario
from frametrap.engine.tree_builder import build_game_tree

# Opponent action ids start here so they never collide with player ids.
OPPONENT_ID_BASE = 101

_STATE = NodeState(situation_id=1, player_health=10000, opponent_health=10000)


def terminal(node_id: str, player_reward: float) -> Node:
    """Zero-sum terminal node paying ``player_reward`` to the player."""
    return Node(
        node_id=node_id,
        state=_STATE,
        name=node_id,
        player_reward=float(player_reward),
        opponent_reward=-float(player_reward),
    )


def decision(
    node_id: str,
    player_names: list[str],
    opponent_names: list[str],
    outcomes: dict[tuple[int, int], str],
) -> Node:
    """Decision node; ``outcomes`` maps (row, col) indices to child node ids."""
    player = tuple(Action(i + 1, n) for i, n in enumerate(player_names))
    opponent = tuple(Action(OPPONENT_ID_BASE + j, n) for j, n in enumerate(opponent_names))
    transitions = tuple(
        NodeTransition(player[r].action_id, opponent[c].action_id, child)
        for (r, c), child in outcomes.items()
    )
    return Node(
        node_id=node_id,
        state=_STATE,
        name=node_id,
        player_actions=player,
        opponent_actions=opponent,
        transitions=transitions,
    )


def matrix_game_tree(
    payoffs: list[list[float]],
    player_names: list[str] | None = None,
    opponent_names: list[str] | None = None,
) -> GameTree:
    """One-shot simultaneous game: root plus one terminal per cell.

    Player action ids are 1..n, opponent ids start at OPPONENT_ID_BASE.

    Examples:
        >>> tree = matrix_game_tree([[1, -1], [-1, 1]])
        >>> len(tree.nodes)
        5
    """
    n_rows, n_cols = len(payoffs), len(payoffs[0])
    player_names = player_names or [f"P{i}" for i in range(n_rows)]
    opponent_names = opponent_names or [f"O{j}" for j in range(n_cols)]

    nodes: dict[str, Node] = {}
    outcomes: dict[tuple[int, int], str] = {}
    for r in range(n_rows):
        for c in range(n_cols):
            node_id = f"t_{r}_{c}"
            nodes[node_id] = terminal(node_id, payoffs[r][c])
            outcomes[(r, c)] = node_id
    nodes["root"] = decision("root", player_names, opponent_names, outcomes)
    return GameTree(tree_id=1, root="root", nodes=nodes)


def tree_from_nodes(root: str, *nodes: Node) -> GameTree:
    return GameTree(tree_id=1, root=root, nodes={n.node_id: n for n in nodes})


RPS_PAYOFFS = [[0, -1, 1], [1, 0, -1], [-1, 1, 0]]


@pytest.fixture
def rps_matrix_tree() -> GameTree:
    return matrix_game_tree(RPS_PAYOFFS, ["Rock", "Paper", "Scissors"], ["Rock", "Paper", "Scissors"])


@pytest.fixture(scope="module")
def rps_tree() -> GameTree:
    """Rock-paper-scissors scenario built through the tree builder."""
    return build_game_tree(create_rps_scenario(IdCounter())).game_tree


@pytest.fixture(scope="module")
def corner_judo():
    """(scenario, tree) for the corner okizeme scenario."""
    scenario = create_corner_judo_scenario(IdCounter())
    return scenario, build_game_tree(scenario).game_tree


def chip_chain_scenario(opponent_health: float = 10000, chip: float = 5) -> Scenario:
    """One blockstring situation that loops on itself while chipping the opponent.

    Strike/Block and Throw/Tech chip ``chip`` health and loop; the other two
    cells escape. Every chip lands in a new state, so the built tree is a
    chain ``opponent_health / chip`` decision nodes deep.
    """
    chipped = (ResourceConsumption(ResourceType.OPPONENT_HEALTH, chip),)
    pressure = Situation(
        1,
        "Pressure",
        player_actions=(Action(1, "Strike"), Action(2, "Throw")),
        opponent_actions=(Action(3, "Block"), Action(4, "Tech")),
        transitions=(
            Transition(1, 3, 1, chipped),
            Transition(2, 4, 1, chipped),
            Transition(1, 4, 90),
            Transition(2, 3, 90),
        ),
    )
    return Scenario(
        scenario_id=88,
        name="chip chain",
        root_situation_id=1,
        situations=(pressure,),
        terminal_situations=(TerminalSituation(90, "Escape"),),
        initial_dynamic_state=DynamicState.from_mapping(
            {ResourceType.PLAYER_HEALTH: 10000, ResourceType.OPPONENT_HEALTH: opponent_health}
        ),
    )


@pytest.fixture(scope="module")
def chip_chain_tree() -> GameTree:
    """About 2000 decision nodes deep: past the default recursion limit."""
    return build_game_tree(chip_chain_scenario()).game_tree

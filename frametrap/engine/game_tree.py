"""
Materialised game tree produced by the tree builder.

A Node is one (situation, resource state) pair. Nodes refer to each other
only by id through NodeTransition, so a GameTree is a flat ``dict`` of nodes
plus the id of its root. Nodes are frozen; solvers keep their per-node data
in their own tables and never write back into the tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .models import Action, DynamicState, ResourceType


@dataclass(frozen=True)
class NodeState:
    """Resource snapshot shown on a node (situation_id is None for HP terminals)."""
    situation_id: int | None
    player_health: float
    opponent_health: float
    player_od: float = 0.0
    opponent_od: float = 0.0
    player_sa: float = 0.0
    opponent_sa: float = 0.0

    @classmethod
    def from_dynamic_state(cls, situation_id: int | None, state: DynamicState) -> NodeState:
        return cls(
            situation_id=situation_id,
            player_health=state.get(ResourceType.PLAYER_HEALTH),
            opponent_health=state.get(ResourceType.OPPONENT_HEALTH),
            player_od=state.get(ResourceType.PLAYER_OD_GAUGE),
            opponent_od=state.get(ResourceType.OPPONENT_OD_GAUGE),
            player_sa=state.get(ResourceType.PLAYER_SA_GAUGE),
            opponent_sa=state.get(ResourceType.OPPONENT_SA_GAUGE),
        )

    def to_dynamic_state(self) -> DynamicState:
        """All six resources, in ResourceType order."""
        return DynamicState.from_mapping(
            {
                ResourceType.PLAYER_HEALTH: self.player_health,
                ResourceType.OPPONENT_HEALTH: self.opponent_health,
                ResourceType.PLAYER_OD_GAUGE: self.player_od,
                ResourceType.OPPONENT_OD_GAUGE: self.opponent_od,
                ResourceType.PLAYER_SA_GAUGE: self.player_sa,
                ResourceType.OPPONENT_SA_GAUGE: self.opponent_sa,
            }
        )


@dataclass(frozen=True)
class NodeTransition:
    player_action_id: int
    opponent_action_id: int
    next_node_id: str


@dataclass(frozen=True)
class Node:
    """A decision node (both action tuples set) or a terminal (both rewards set)."""
    node_id: str
    state: NodeState
    name: str = ""
    description: str = ""
    player_actions: tuple[Action, ...] | None = None
    opponent_actions: tuple[Action, ...] | None = None
    transitions: tuple[NodeTransition, ...] = ()
    player_reward: float | None = None
    opponent_reward: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.player_reward is not None or self.opponent_reward is not None


@dataclass(frozen=True)
class GameTree:
    tree_id: int
    root: str
    nodes: dict[str, Node]

    @property
    def root_node(self) -> Node:
        return self.nodes[self.root]

    def iter_reachable(self) -> Iterator[Node]:
        """Yield each node reachable from the root exactly once (depth-first pre-order)."""
        seen: set[str] = set()
        stack = [self.root]
        while stack:
            node_id = stack.pop()
            if node_id in seen or node_id not in self.nodes:
                continue
            seen.add(node_id)
            node = self.nodes[node_id]
            yield node
            for transition in reversed(node.transitions):
                if transition.next_node_id not in seen:
                    stack.append(transition.next_node_id)

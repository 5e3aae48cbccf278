"""Expand a Scenario into a GameTree.

Public API:

    build_game_tree(scenario)  → GameTreeBuildResult

Expansion is a depth-first walk from ``(root_situation_id, initial state)``.
Nodes are memoised on ``(situation_id, state_hash)``, so two paths that reach
the same situation with the same resources share one node; this is what keeps
the tree finite when transitions loop back through a situation while still
consuming resources.

Node creation happens in three phases on an explicit work stack (no Python
recursion, so long chip-damage chains cannot hit the recursion limit):

    1. reserve   — the node key is put in the in-progress set
    2. children  — each legal transition's successor is resolved in turn
    3. finalize  — the frozen Node is created and cached, key leaves the set

Reaching a key that is still in progress means the scenario loops back to an
identical situation and resource state, which can never terminate: the build
fails with CYCLE_DETECTED. Build errors never leave a partial tree behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from .game_tree import GameTree, Node, NodeState, NodeTransition
from .models import (
    Action,
    ComboStarter,
    DynamicState,
    Scenario,
    Situation,
    TerminalSituation,
)
from .reward import (
    TerminalType,
    classify_health_terminal,
    health_terminal_reward,
    terminal_situation_reward,
)

logger = logging.getLogger(__name__)

# The defending side of a combo has exactly one (non-)choice.
COMBO_RECEIVER_ACTION_ID: int = 0
COMBO_RECEIVER_ACTION_NAME: str = "Take combo"


# ─── Result types ─────────────────────────────────────────────────────────────

class BuildErrorCode(Enum):
    CYCLE_DETECTED = "CYCLE_DETECTED"
    SITUATION_NOT_FOUND = "SITUATION_NOT_FOUND"


@dataclass(frozen=True)
class BuildError:
    code: BuildErrorCode
    message: str
    situation_id: int | None = None
    state_hash: str | None = None


@dataclass(frozen=True)
class GameTreeBuildResult:
    """Either a tree (``success``) or the error that stopped the build."""
    game_tree: GameTree | None = None
    error: BuildError | None = None

    @property
    def success(self) -> bool:
        return self.game_tree is not None


class GameTreeBuildError(Exception):
    """Raised inside the builder; converted to a failed GameTreeBuildResult."""

    def __init__(self, error: BuildError) -> None:
        super().__init__(error.message)
        self.error = error


# ─── Work-stack frames ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _Edge:
    player_action_id: int
    opponent_action_id: int
    next_situation_id: int
    next_state: DynamicState


@dataclass
class _Frame:
    """A decision node whose children are still being resolved."""
    key: str
    situation_id: int
    state: DynamicState
    name: str
    description: str
    player_actions: tuple[Action, ...]
    opponent_actions: tuple[Action, ...]
    edges: list[_Edge]
    transitions: list[NodeTransition] = field(default_factory=list)
    next_index: int = 0

    def record(self, next_node_id: str) -> None:
        edge = self.edges[self.next_index]
        self.transitions.append(
            NodeTransition(edge.player_action_id, edge.opponent_action_id, next_node_id)
        )
        self.next_index += 1

    def finalize(self) -> Node:
        return Node(
            node_id=self.key,
            state=NodeState.from_dynamic_state(self.situation_id, self.state),
            name=self.name,
            description=self.description,
            player_actions=self.player_actions,
            opponent_actions=self.opponent_actions,
            transitions=tuple(self.transitions),
        )


# ─── Builder ──────────────────────────────────────────────────────────────────

class _TreeBuilder:
    def __init__(self, scenario: Scenario) -> None:
        self._scenario = scenario
        self._initial_state = scenario.initial_dynamic_state
        self._method = scenario.reward_computation_method
        self._situations: dict[int, Situation] = {
            s.situation_id: s for s in scenario.situations
        }
        self._terminals: dict[int, TerminalSituation] = {
            t.situation_id: t for t in scenario.terminal_situations
        }
        self._player_combos: dict[int, ComboStarter] = {
            c.situation_id: c for c in scenario.player_combo_starters
        }
        self._opponent_combos: dict[int, ComboStarter] = {
            c.situation_id: c for c in scenario.opponent_combo_starters
        }
        self._nodes: dict[str, Node] = {}
        self._in_progress: set[str] = set()
        self._stack: list[_Frame] = []

    def build(self) -> GameTree:
        root_id = self._enter(self._scenario.root_situation_id, self._initial_state)
        if root_id is None:
            root_id = self._stack[0].key

        while self._stack:
            frame = self._stack[-1]
            if frame.next_index < len(frame.edges):
                edge = frame.edges[frame.next_index]
                child_id = self._enter(edge.next_situation_id, edge.next_state)
                if child_id is not None:
                    frame.record(child_id)
                continue

            self._stack.pop()
            node = frame.finalize()
            self._nodes[node.node_id] = node
            self._in_progress.discard(frame.key)
            if self._stack:
                self._stack[-1].record(node.node_id)

        full = GameTree(tree_id=self._scenario.scenario_id, root=root_id, nodes=self._nodes)
        reachable = {node.node_id: node for node in full.iter_reachable()}
        return GameTree(tree_id=self._scenario.scenario_id, root=root_id, nodes=reachable)

    def _enter(self, situation_id: int, state: DynamicState) -> str | None:
        """Resolve a successor to a node id, or push a frame and return None."""
        state_hash = state.state_hash()

        terminal_type = classify_health_terminal(state)
        if terminal_type is not None:
            return self._health_terminal(terminal_type, state, state_hash)

        key = f"{situation_id}_{state_hash}"
        if key in self._nodes:
            return key
        if key in self._in_progress:
            raise GameTreeBuildError(
                BuildError(
                    code=BuildErrorCode.CYCLE_DETECTED,
                    message=(
                        "Cycle detected: a transition returns to situation "
                        f"{situation_id} with an unchanged resource state. "
                        "Every loop must consume a resource or reach another situation."
                    ),
                    situation_id=situation_id,
                    state_hash=state_hash,
                )
            )

        terminal = self._terminals.get(situation_id)
        if terminal is not None:
            player_reward, opponent_reward = terminal_situation_reward(
                terminal.corner_state, state, self._method, self._initial_state
            )
            self._nodes[key] = Node(
                node_id=key,
                state=NodeState.from_dynamic_state(situation_id, state),
                name=terminal.name,
                description=terminal.description,
                player_reward=player_reward,
                opponent_reward=opponent_reward,
            )
            return key

        if situation_id in self._player_combos:
            frame = self._combo_frame(key, self._player_combos[situation_id], state, True)
        elif situation_id in self._opponent_combos:
            frame = self._combo_frame(key, self._opponent_combos[situation_id], state, False)
        else:
            situation = self._situations.get(situation_id)
            if situation is None:
                raise GameTreeBuildError(
                    BuildError(
                        code=BuildErrorCode.SITUATION_NOT_FOUND,
                        message=f"Situation not found: {situation_id}",
                        situation_id=situation_id,
                    )
                )
            frame = self._situation_frame(key, situation, state)

        self._in_progress.add(key)
        self._stack.append(frame)
        logger.debug("expanding %s (%d edges)", key, len(frame.edges))
        return None

    def _health_terminal(
        self, terminal_type: TerminalType, state: DynamicState, state_hash: str
    ) -> str:
        key = f"terminal_{terminal_type.value}_{state_hash}"
        if key not in self._nodes:
            player_reward, opponent_reward = health_terminal_reward(
                terminal_type, state, self._method, self._initial_state
            )
            self._nodes[key] = Node(
                node_id=key,
                state=NodeState.from_dynamic_state(None, state),
                name=f"Terminal: {terminal_type.value}",
                player_reward=player_reward,
                opponent_reward=opponent_reward,
            )
        return key

    def _situation_frame(self, key: str, situation: Situation, state: DynamicState) -> _Frame:
        edges = [
            _Edge(
                t.player_action_id,
                t.opponent_action_id,
                t.next_situation_id,
                state.apply_consumptions(t.resource_consumptions),
            )
            for t in situation.transitions
            if state.meets_requirements(t.resource_requirements)
        ]
        return _Frame(
            key=key,
            situation_id=situation.situation_id,
            state=state,
            name=situation.name,
            description=situation.description,
            player_actions=tuple(situation.player_actions),
            opponent_actions=tuple(situation.opponent_actions),
            edges=edges,
        )

    def _combo_frame(
        self, key: str, combo: ComboStarter, state: DynamicState, for_player: bool
    ) -> _Frame:
        """Available routes become the attacker's actions, numbered from 1."""
        routes = [r for r in combo.routes if state.meets_requirements(r.requirements)]
        route_actions = tuple(Action(i, r.name) for i, r in enumerate(routes, start=1))
        receiver = (Action(COMBO_RECEIVER_ACTION_ID, COMBO_RECEIVER_ACTION_NAME),)

        edges = []
        for action, route in zip(route_actions, routes, strict=True):
            next_state = state.apply_consumptions(route.consumptions)
            if for_player:
                ids = (action.action_id, COMBO_RECEIVER_ACTION_ID)
            else:
                ids = (COMBO_RECEIVER_ACTION_ID, action.action_id)
            edges.append(_Edge(ids[0], ids[1], route.next_situation_id, next_state))

        return _Frame(
            key=key,
            situation_id=combo.situation_id,
            state=state,
            name=combo.name,
            description=combo.description or combo.name,
            player_actions=route_actions if for_player else receiver,
            opponent_actions=receiver if for_player else route_actions,
            edges=edges,
        )


def build_game_tree(scenario: Scenario) -> GameTreeBuildResult:
    """Build the game tree for ``scenario``.

    Args:
        scenario: Immutable scenario / game definition.

    Returns:
        GameTreeBuildResult holding the tree, or a BuildError with code
        CYCLE_DETECTED or SITUATION_NOT_FOUND. No partial tree is returned.

    Examples:
        >>> from frametrap.engine.scenarios import IdCounter, create_rps_scenario
        >>> result = build_game_tree(create_rps_scenario(IdCounter()))
        >>> result.success
        True
    """
    try:
        tree = _TreeBuilder(scenario).build()
    except GameTreeBuildError as exc:
        logger.info("game tree build failed: %s", exc.error.message)
        return GameTreeBuildResult(error=exc.error)
    logger.info("built game tree %s with %d nodes", tree.tree_id, len(tree.nodes))
    return GameTreeBuildResult(game_tree=tree)

"""Tests for game tree construction (frametrap/engine/tree_builder.py).

    TestRpsTree          — node ids, terminals, rewards on a one-shot game
    TestDedupAndCycles   — memoisation, loops that consume, loops that do not
    TestErrors           — missing situations
    TestRequirements     — transitions gated on resources
    TestComboStarters    — route expansion for both sides
    TestCornerJudo       — the bundled multi-situation scenario
"""

from __future__ import annotations

from dataclasses import replace

from frametrap.engine.models import (
    Action,
    ComboRoute,
    ComboStarter,
    CornerState,
    DynamicState,
    ResourceConsumption,
    ResourceRequirement,
    ResourceType,
    RewardComputationMethod,
    Scenario,
    Situation,
    TerminalSituation,
    Transition,
)
from frametrap.engine.tree_builder import (
    COMBO_RECEIVER_ACTION_ID,
    BuildErrorCode,
    build_game_tree,
)

R = ResourceType
_STATE = DynamicState.from_mapping({R.PLAYER_HEALTH: 4000, R.OPPONENT_HEALTH: 4000})
_END = TerminalSituation(90, "End")


def _scenario(*situations: Situation, root: int = 1, **kwargs) -> Scenario:
    kwargs.setdefault("terminal_situations", (_END,))
    kwargs.setdefault("initial_dynamic_state", _STATE)
    return Scenario(
        scenario_id=77,
        name="test",
        root_situation_id=root,
        situations=situations,
        **kwargs,
    )


def _single(situation_id: int, *transitions: Transition, name: str = "S") -> Situation:
    return Situation(
        situation_id,
        name,
        player_actions=(Action(1, "a"), Action(2, "b")),
        opponent_actions=(Action(3, "x"), Action(4, "y")),
        transitions=transitions,
    )


def _hit(resource: ResourceType, amount: float) -> tuple[ResourceConsumption, ...]:
    return (ResourceConsumption(resource, amount),)


# ─── TestRpsTree ───────────────────────────────────────────────────────────────


class TestRpsTree:
    def test_build_succeeds(self, rps_tree) -> None:
        assert rps_tree is not None

    def test_root_is_janken(self, rps_tree) -> None:
        root = rps_tree.root_node
        assert root.name == "Janken"
        assert len(root.player_actions) == 3
        assert len(root.opponent_actions) == 3
        assert len(root.transitions) == 9

    def test_root_id_is_situation_and_hash(self, rps_tree) -> None:
        root = rps_tree.root_node
        assert rps_tree.root == f"{root.state.situation_id}_1:1000.00|2:1000.00"

    def test_four_nodes(self, rps_tree) -> None:
        # root, win, lose, draw
        assert len(rps_tree.nodes) == 4

    def test_terminal_rewards(self, rps_tree) -> None:
        rewards = sorted(n.player_reward for n in rps_tree.nodes.values() if n.is_terminal)
        assert rewards == [-1000.0, 0.0, 1000.0]

    def test_health_terminals_use_shared_ids(self, rps_tree) -> None:
        ids = set(rps_tree.nodes)
        assert "terminal_win_1:1000.00|2:0.00" in ids
        assert "terminal_lose_1:0.00|2:1000.00" in ids

    def test_health_terminal_has_no_situation(self, rps_tree) -> None:
        win = rps_tree.nodes["terminal_win_1:1000.00|2:0.00"]
        assert win.state.situation_id is None
        assert win.player_actions is None

    def test_every_terminal_is_zero_sum(self, rps_tree) -> None:
        for node in rps_tree.nodes.values():
            if node.is_terminal:
                assert node.player_reward + node.opponent_reward == 0.0

    def test_transition_targets_exist(self, rps_tree) -> None:
        for node in rps_tree.nodes.values():
            for t in node.transitions:
                assert t.next_node_id in rps_tree.nodes


# ─── TestDedupAndCycles ────────────────────────────────────────────────────────


class TestDedupAndCycles:
    def test_identical_successors_share_a_node(self) -> None:
        target = _single(2, Transition(1, 3, 90))
        root = _single(1, Transition(1, 3, 2), Transition(2, 4, 2))
        tree = build_game_tree(_scenario(root, target)).game_tree
        children = {t.next_node_id for t in tree.root_node.transitions}
        assert len(children) == 1

    def test_different_states_make_different_nodes(self) -> None:
        target = _single(2, Transition(1, 3, 90))
        root = _single(
            1,
            Transition(1, 3, 2),
            Transition(2, 4, 2, _hit(R.OPPONENT_HEALTH, 500)),
        )
        tree = build_game_tree(_scenario(root, target)).game_tree
        children = {t.next_node_id for t in tree.root_node.transitions}
        assert len(children) == 2

    def test_self_loop_without_consumption_is_cycle(self) -> None:
        root = _single(1, Transition(1, 3, 1), Transition(2, 4, 90))
        result = build_game_tree(_scenario(root))
        assert not result.success
        assert result.game_tree is None
        assert result.error.code == BuildErrorCode.CYCLE_DETECTED
        assert result.error.message.startswith("Cycle detected")
        assert result.error.situation_id == 1
        assert result.error.state_hash == _STATE.state_hash()

    def test_two_situation_cycle_detected(self) -> None:
        a = _single(1, Transition(1, 3, 2))
        b = _single(2, Transition(1, 3, 1))
        result = build_game_tree(_scenario(a, b))
        assert result.error.code == BuildErrorCode.CYCLE_DETECTED

    def test_loop_that_consumes_terminates(self) -> None:
        root = _single(
            1,
            Transition(1, 3, 1, _hit(R.OPPONENT_HEALTH, 1000)),
            Transition(2, 4, 90),
        )
        tree = build_game_tree(_scenario(root)).game_tree
        decision_nodes = [n for n in tree.nodes.values() if not n.is_terminal]
        # Opponent health 4000, 3000, 2000, 1000 → four decision nodes, then a win.
        assert len(decision_nodes) == 4
        assert any(n.node_id.startswith("terminal_win_") for n in tree.nodes.values())

    def test_tree_id_is_scenario_id(self) -> None:
        tree = build_game_tree(_scenario(_single(1, Transition(1, 3, 90)))).game_tree
        assert tree.tree_id == 77

    def test_only_reachable_nodes_kept(self) -> None:
        orphan = _single(5, Transition(1, 3, 90), name="Orphan")
        tree = build_game_tree(_scenario(_single(1, Transition(1, 3, 90)), orphan)).game_tree
        assert all(n.name != "Orphan" for n in tree.nodes.values())


# ─── TestErrors ────────────────────────────────────────────────────────────────


class TestErrors:
    def test_missing_transition_target(self) -> None:
        result = build_game_tree(_scenario(_single(1, Transition(1, 3, 999))))
        assert result.error.code == BuildErrorCode.SITUATION_NOT_FOUND
        assert result.error.situation_id == 999

    def test_missing_root(self) -> None:
        result = build_game_tree(_scenario(_single(1, Transition(1, 3, 90)), root=42))
        assert result.error.code == BuildErrorCode.SITUATION_NOT_FOUND
        assert result.error.situation_id == 42

    def test_dead_root_is_health_terminal(self) -> None:
        state = DynamicState.from_mapping({R.PLAYER_HEALTH: 0, R.OPPONENT_HEALTH: 100})
        result = build_game_tree(
            _scenario(_single(1, Transition(1, 3, 90)), initial_dynamic_state=state)
        )
        assert result.success
        assert result.game_tree.root.startswith("terminal_lose_")


# ─── TestRequirements ──────────────────────────────────────────────────────────


class TestRequirements:
    def _gated(self, od: float):
        root = _single(
            1,
            Transition(1, 3, 90),
            Transition(
                2,
                4,
                90,
                _hit(R.PLAYER_OD_GAUGE, 2000),
                (ResourceRequirement(R.PLAYER_OD_GAUGE, 2000),),
            ),
        )
        state = _STATE.with_value(R.PLAYER_OD_GAUGE, od)
        return build_game_tree(_scenario(root, initial_dynamic_state=state)).game_tree

    def test_unmet_requirement_drops_transition(self) -> None:
        assert len(self._gated(1999).root_node.transitions) == 1

    def test_met_requirement_keeps_transition(self) -> None:
        assert len(self._gated(2000).root_node.transitions) == 2

    def test_actions_stay_declared_when_transition_dropped(self) -> None:
        assert len(self._gated(0).root_node.player_actions) == 2


# ─── TestComboStarters ─────────────────────────────────────────────────────────


class TestComboStarters:
    _ROUTES = (
        ComboRoute("Light", 90, _hit(R.OPPONENT_HEALTH, 1000)),
        ComboRoute(
            "Super",
            90,
            _hit(R.OPPONENT_HEALTH, 3000),
            (ResourceRequirement(R.PLAYER_SA_GAUGE, 1),),
        ),
    )

    def _tree(self, side: str, sa: float = 1):
        combo = ComboStarter(50, "Confirm", routes=self._ROUTES)
        root = _single(1, Transition(1, 3, 50), Transition(2, 4, 90))
        key = "player_combo_starters" if side == "player" else "opponent_combo_starters"
        state = _STATE.with_value(R.PLAYER_SA_GAUGE, sa)
        tree = build_game_tree(
            _scenario(root, initial_dynamic_state=state, **{key: (combo,)})
        ).game_tree
        combo_id = next(
            t.next_node_id for t in tree.root_node.transitions if t.player_action_id == 1
        )
        return tree, tree.nodes[combo_id]

    def test_player_routes_become_player_actions(self) -> None:
        _, node = self._tree("player")
        assert [a.action_id for a in node.player_actions] == [1, 2]
        assert [a.name for a in node.player_actions] == ["Light", "Super"]
        assert [a.action_id for a in node.opponent_actions] == [COMBO_RECEIVER_ACTION_ID]

    def test_player_route_transitions(self) -> None:
        _, node = self._tree("player")
        assert {(t.player_action_id, t.opponent_action_id) for t in node.transitions} == {
            (1, COMBO_RECEIVER_ACTION_ID),
            (2, COMBO_RECEIVER_ACTION_ID),
        }

    def test_opponent_combo_is_mirrored(self) -> None:
        _, node = self._tree("opponent")
        assert [a.action_id for a in node.player_actions] == [COMBO_RECEIVER_ACTION_ID]
        assert [a.name for a in node.opponent_actions] == ["Light", "Super"]
        assert all(t.player_action_id == COMBO_RECEIVER_ACTION_ID for t in node.transitions)

    def test_route_requirements_filter_routes(self) -> None:
        _, node = self._tree("player", sa=0)
        assert [a.name for a in node.player_actions] == ["Light"]

    def test_route_consumption_applied(self) -> None:
        tree, node = self._tree("player")
        light = next(t for t in node.transitions if t.player_action_id == 1)
        assert tree.nodes[light.next_node_id].state.opponent_health == 3000.0

    def test_combo_node_keeps_situation_id(self) -> None:
        _, node = self._tree("player")
        assert node.state.situation_id == 50
        assert node.node_id.startswith("50_")


# ─── TestCornerJudo ────────────────────────────────────────────────────────────


class TestCornerJudo:
    def test_builds(self, corner_judo) -> None:
        _, tree = corner_judo
        assert tree is not None
        assert tree.root_node.name == "Corner oki +"

    def test_root_state_matches_initial(self, corner_judo) -> None:
        scenario, tree = corner_judo
        assert tree.root_node.state.to_dynamic_state().state_hash() == (
            scenario.initial_dynamic_state.state_hash()
        )

    def test_od_route_needs_gauge(self, corner_judo) -> None:
        _, tree = corner_judo
        combos = [n for n in tree.nodes.values() if n.name == "Meaty counter hit"]
        assert combos
        for node in combos:
            expected = 2 if node.state.player_od >= 2000 else 1
            assert len(node.player_actions) == expected

    def test_terminal_situations_scored(self, corner_judo) -> None:
        _, tree = corner_judo
        escaped = [n for n in tree.nodes.values() if n.name == "Escaped, neutral"]
        assert escaped
        assert all(n.is_terminal for n in escaped)

    def test_win_probability_terminal_rewards(self) -> None:
        from frametrap.engine.scenarios import IdCounter, create_corner_judo_scenario

        scenario = create_corner_judo_scenario(IdCounter())
        scenario = replace(
            scenario,
            reward_computation_method=RewardComputationMethod.win_probability(corner_bonus=1000),
        )
        tree = build_game_tree(scenario).game_tree
        for node in tree.nodes.values():
            if node.is_terminal:
                assert -10000.0 <= node.player_reward <= 10000.0
                assert node.player_reward == -node.opponent_reward

    def test_escape_is_bad_for_player_at_even_health(self) -> None:
        end = TerminalSituation(90, "Escape", corner_state=CornerState.PLAYER_IN_CORNER)
        scenario = _scenario(
            _single(1, Transition(1, 3, 90)),
            terminal_situations=(end,),
            reward_computation_method=RewardComputationMethod.win_probability(corner_bonus=2000),
        )
        tree = build_game_tree(scenario).game_tree
        (terminal,) = [n for n in tree.nodes.values() if n.is_terminal]
        assert terminal.player_reward < 0

"""Tests for static scenario checks (frametrap/engine/validation.py)."""

from __future__ import annotations

from dataclasses import replace

from frametrap.engine.models import (
    Action,
    ComboRoute,
    ComboStarter,
    DynamicState,
    ResourceType,
    Scenario,
    Situation,
    TerminalSituation,
    Transition,
)
from frametrap.engine.scenarios import IdCounter, create_corner_judo_scenario, create_rps_scenario
from frametrap.engine.validation import validate_scenario


def _minimal(**overrides) -> Scenario:
    situation = Situation(
        1,
        "Start",
        player_actions=(Action(1, "a"),),
        opponent_actions=(Action(2, "b"),),
        transitions=(Transition(1, 2, 9),),
    )
    scenario = Scenario(
        scenario_id=1,
        name="minimal",
        root_situation_id=1,
        situations=(situation,),
        terminal_situations=(TerminalSituation(9, "End"),),
        initial_dynamic_state=DynamicState.from_mapping({ResourceType.PLAYER_HEALTH: 100}),
    )
    return replace(scenario, **overrides)


def _fields(scenario: Scenario) -> list[str]:
    return [e.field for e in validate_scenario(scenario)]


class TestValidScenarios:
    def test_minimal_is_valid(self) -> None:
        assert validate_scenario(_minimal()) == []

    def test_rps_is_valid(self) -> None:
        assert validate_scenario(create_rps_scenario(IdCounter())) == []

    def test_corner_judo_is_valid(self) -> None:
        assert validate_scenario(create_corner_judo_scenario(IdCounter())) == []

    def test_root_may_be_combo_starter(self) -> None:
        combo = ComboStarter(5, "Confirm", routes=(ComboRoute("c", 9),))
        assert validate_scenario(_minimal(root_situation_id=5, player_combo_starters=(combo,))) == []


class TestInvalidScenarios:
    def test_unknown_root(self) -> None:
        assert _fields(_minimal(root_situation_id=42)) == ["root_situation_id"]

    def test_dangling_transition(self) -> None:
        bad = Situation(
            1,
            "Start",
            player_actions=(Action(1, "a"),),
            opponent_actions=(Action(2, "b"),),
            transitions=(Transition(1, 2, 77),),
        )
        errors = validate_scenario(_minimal(situations=(bad,)))
        assert len(errors) == 1
        assert errors[0].field == "situation.1.transitions"
        assert "77" in errors[0].message

    def test_dangling_combo_route(self) -> None:
        combo = ComboStarter(5, "Confirm", routes=(ComboRoute("Broken", 404),))
        errors = validate_scenario(_minimal(opponent_combo_starters=(combo,)))
        assert [e.field for e in errors] == ["combo_starter.5.routes"]

    def test_empty_initial_state(self) -> None:
        assert _fields(_minimal(initial_dynamic_state=DynamicState())) == ["initial_dynamic_state"]

    def test_no_terminals(self) -> None:
        fields = _fields(_minimal(terminal_situations=()))
        assert "terminal_situations" in fields
        # The transition to 9 now dangles too.
        assert "situation.1.transitions" in fields

    def test_collects_every_error(self) -> None:
        scenario = _minimal(
            root_situation_id=42,
            situations=(),
            terminal_situations=(),
            initial_dynamic_state=DynamicState(),
        )
        assert set(_fields(scenario)) == {
            "root_situation_id",
            "initial_dynamic_state",
            "situations",
            "terminal_situations",
        }

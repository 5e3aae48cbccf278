"""Static checks on a Scenario before a tree is built.

``validate_scenario`` collects every problem instead of stopping at the first,
so an editor can show them all at once. An empty list means the scenario is
structurally sound; the builder can still reject it for a state cycle.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Scenario


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


def _known_situation_ids(scenario: Scenario) -> set[int]:
    ids = {s.situation_id for s in scenario.situations}
    ids.update(t.situation_id for t in scenario.terminal_situations)
    ids.update(c.situation_id for c in scenario.player_combo_starters)
    ids.update(c.situation_id for c in scenario.opponent_combo_starters)
    return ids


def validate_scenario(scenario: Scenario) -> list[ValidationError]:
    """Return all structural problems found in ``scenario``.

    Checks:
        - the root situation id exists
        - every transition and combo route targets a known situation
        - the initial dynamic state has at least one resource
        - there is at least one situation and one terminal situation
    """
    errors: list[ValidationError] = []
    known = _known_situation_ids(scenario)

    if scenario.root_situation_id not in known:
        errors.append(
            ValidationError(
                "root_situation_id",
                f"Root situation {scenario.root_situation_id} does not exist "
                "in situations, terminal situations or combo starters",
            )
        )

    for situation in scenario.situations:
        for transition in situation.transitions:
            if transition.next_situation_id not in known:
                errors.append(
                    ValidationError(
                        f"situation.{situation.situation_id}.transitions",
                        f"Transition in situation {situation.situation_id} references "
                        f"non-existent situation {transition.next_situation_id}",
                    )
                )

    for combo in (*scenario.player_combo_starters, *scenario.opponent_combo_starters):
        for route in combo.routes:
            if route.next_situation_id not in known:
                errors.append(
                    ValidationError(
                        f"combo_starter.{combo.situation_id}.routes",
                        f"Combo route {route.name!r} references "
                        f"non-existent situation {route.next_situation_id}",
                    )
                )

    if not scenario.initial_dynamic_state.resources:
        errors.append(
            ValidationError(
                "initial_dynamic_state",
                "Initial dynamic state must have at least one resource",
            )
        )
    if not scenario.situations:
        errors.append(ValidationError("situations", "At least one situation is required"))
    if not scenario.terminal_situations:
        errors.append(
            ValidationError("terminal_situations", "At least one terminal situation is required")
        )

    return errors

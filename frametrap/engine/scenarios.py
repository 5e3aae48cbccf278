"""
Ready-made scenarios and the id counter used to author them.

    IdCounter                       — explicit, injectable id source
    create_empty_scenario(ids)      — one empty situation, one terminal
    create_rps_scenario(ids)        — rock-paper-scissors as a frame trap
    create_corner_judo_scenario(ids) — corner oki: strike / throw / shimmy

Ids are drawn from the counter passed in, so two scenarios created from the
same counter never share situation or action ids, and tests get deterministic
ids by starting a fresh counter.
"""

from __future__ import annotations

from .models import (
    Action,
    ComboRoute,
    ComboStarter,
    CornerState,
    DynamicState,
    ResourceConsumption,
    ResourceRequirement,
    ResourceType,
    Scenario,
    Situation,
    TerminalSituation,
    Transition,
)


class IdCounter:
    """Monotonic integer id source owned by an authoring session.

    Example:
        >>> ids = IdCounter()
        >>> ids.next_id(), ids.next_id()
        (1, 2)
    """

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        return value


def _damage(resource_type: ResourceType, amount: float) -> tuple[ResourceConsumption, ...]:
    return (ResourceConsumption(resource_type, amount),)


def create_empty_scenario(ids: IdCounter) -> Scenario:
    """Starting point for a new scenario: full health, 6 OD bars each."""
    root = Situation(ids.next_id(), "Start", player_actions=(), opponent_actions=())
    terminal = TerminalSituation(
        ids.next_id(),
        "Oki ends",
        description="The characters separate and the pressure cannot continue.",
    )
    return Scenario(
        scenario_id=0,
        name="",
        root_situation_id=root.situation_id,
        situations=(root,),
        terminal_situations=(terminal,),
        initial_dynamic_state=DynamicState.from_mapping(
            {
                ResourceType.PLAYER_HEALTH: 10000,
                ResourceType.OPPONENT_HEALTH: 10000,
                ResourceType.PLAYER_OD_GAUGE: 6,
                ResourceType.OPPONENT_OD_GAUGE: 6,
                ResourceType.PLAYER_SA_GAUGE: 0,
                ResourceType.OPPONENT_SA_GAUGE: 0,
            }
        ),
    )


def create_rps_scenario(ids: IdCounter, stake: float = 1000.0) -> Scenario:
    """Rock-paper-scissors: the winner of the exchange deals ``stake`` damage.

    Both sides start on ``stake`` health, so any hit is lethal and the
    damage-race payoffs are exactly +stake / 0 / -stake.
    """
    names = ("Rock", "Paper", "Scissors")
    player = tuple(Action(ids.next_id(), n) for n in names)
    opponent = tuple(Action(ids.next_id(), n) for n in names)
    root_id = ids.next_id()
    draw = TerminalSituation(ids.next_id(), "Draw")

    transitions = []
    for i, p_action in enumerate(player):
        for j, o_action in enumerate(opponent):
            if i == j:
                transitions.append(
                    Transition(p_action.action_id, o_action.action_id, draw.situation_id)
                )
            elif (i - j) % 3 == 1:   # paper > rock, scissors > paper, rock > scissors
                transitions.append(
                    Transition(
                        p_action.action_id,
                        o_action.action_id,
                        draw.situation_id,
                        _damage(ResourceType.OPPONENT_HEALTH, stake),
                    )
                )
            else:
                transitions.append(
                    Transition(
                        p_action.action_id,
                        o_action.action_id,
                        draw.situation_id,
                        _damage(ResourceType.PLAYER_HEALTH, stake),
                    )
                )

    return Scenario(
        scenario_id=ids.next_id(),
        name="Rock-paper-scissors",
        root_situation_id=root_id,
        situations=(Situation(root_id, "Janken", player, opponent, tuple(transitions)),),
        terminal_situations=(draw,),
        initial_dynamic_state=DynamicState.from_mapping(
            {ResourceType.PLAYER_HEALTH: stake, ResourceType.OPPONENT_HEALTH: stake}
        ),
    )


def create_corner_judo_scenario(ids: IdCounter) -> Scenario:
    """Corner oki-zeme after a knockdown.

    The player (attacker) mixes meaty strike, throw and shimmy; the cornered
    opponent picks delay tech, guard, invincible reversal or jump. A landed
    throw resets the same oki, so the main situation loops until the
    opponent's health runs out or the pressure ends at a terminal situation.
    A counter-hit meaty leads to a combo starter where the player may spend
    OD gauge on a stronger route.
    """
    strike, throw, shimmy = (Action(ids.next_id(), n) for n in ("Meaty strike", "Throw", "Shimmy"))
    delay_tech, guard, reversal, jump = (
        Action(ids.next_id(), n) for n in ("Delay tech", "Guard", "Reversal", "Jump")
    )
    punish = Action(ids.next_id(), "Punish counter")
    receive = Action(ids.next_id(), "Receive")

    main_id = ids.next_id()
    strike_hit_id = ids.next_id()
    punish_counter_id = ids.next_id()
    even = TerminalSituation(
        ids.next_id(),
        "Corner, neutral",
        description="Still in the corner, but the spacing has reset.",
        corner_state=CornerState.OPPONENT_IN_CORNER,
    )
    escape = TerminalSituation(
        ids.next_id(),
        "Escaped, neutral",
        description="The opponent got out and the sides have switched.",
        corner_state=CornerState.PLAYER_IN_CORNER,
    )

    reversal_hit = _damage(ResourceType.PLAYER_HEALTH, 2500)
    main = Situation(
        main_id,
        "Corner oki +",
        player_actions=(strike, throw, shimmy),
        opponent_actions=(delay_tech, guard, reversal, jump),
        transitions=(
            Transition(strike.action_id, delay_tech.action_id, strike_hit_id),
            Transition(strike.action_id, guard.action_id, even.situation_id),
            Transition(strike.action_id, reversal.action_id, escape.situation_id, reversal_hit),
            Transition(strike.action_id, jump.action_id, strike_hit_id),
            Transition(throw.action_id, delay_tech.action_id, even.situation_id),
            Transition(
                throw.action_id,
                guard.action_id,
                main_id,
                _damage(ResourceType.OPPONENT_HEALTH, 1200),
            ),
            Transition(throw.action_id, reversal.action_id, escape.situation_id, reversal_hit),
            Transition(throw.action_id, jump.action_id, escape.situation_id),
            Transition(shimmy.action_id, delay_tech.action_id, punish_counter_id),
            Transition(shimmy.action_id, guard.action_id, even.situation_id),
            Transition(shimmy.action_id, reversal.action_id, punish_counter_id),
            Transition(shimmy.action_id, jump.action_id, escape.situation_id),
        ),
    )
    punish_counter = Situation(
        punish_counter_id,
        "Punish counter hit",
        player_actions=(punish,),
        opponent_actions=(receive,),
        transitions=(
            Transition(
                punish.action_id,
                receive.action_id,
                main_id,
                _damage(ResourceType.OPPONENT_HEALTH, 3000),
            ),
        ),
    )
    strike_hit = ComboStarter(
        strike_hit_id,
        "Meaty counter hit",
        routes=(
            ComboRoute("Medium combo", main_id, _damage(ResourceType.OPPONENT_HEALTH, 1800)),
            ComboRoute(
                "OD combo",
                main_id,
                consumptions=(
                    ResourceConsumption(ResourceType.OPPONENT_HEALTH, 2600),
                    ResourceConsumption(ResourceType.PLAYER_OD_GAUGE, 2000),
                ),
                requirements=(ResourceRequirement(ResourceType.PLAYER_OD_GAUGE, 2000),),
            ),
        ),
    )

    return Scenario(
        scenario_id=ids.next_id(),
        name="Corner judo",
        root_situation_id=main_id,
        situations=(main, punish_counter),
        terminal_situations=(even, escape),
        initial_dynamic_state=DynamicState.from_mapping(
            {
                ResourceType.PLAYER_HEALTH: 4000,
                ResourceType.OPPONENT_HEALTH: 4000,
                ResourceType.PLAYER_OD_GAUGE: 6000,
                ResourceType.OPPONENT_OD_GAUGE: 6000,
                ResourceType.PLAYER_SA_GAUGE: 0,
                ResourceType.OPPONENT_SA_GAUGE: 0,
            }
        ),
        player_combo_starters=(strike_hit,),
    )

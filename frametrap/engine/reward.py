"""Terminal payoff model.

Every terminal outcome is strictly zero-sum: the opponent's reward is the
negation of the player's. Three ways of scoring a terminal are supported:

    win_probability_reward(p)      — p ∈ [0, 1] mapped linearly to ±10000
    damage_race_reward(...)        — damage dealt minus damage received
    corner_and_gauge_reward(...)   — win probability from turns-to-kill,
                                     with corner and OD / SA gauge bonuses

``health_terminal_reward`` and ``terminal_situation_reward`` pick the right
formula for the two kinds of terminal node the tree builder creates.
"""

from __future__ import annotations

import logging
import math
from enum import Enum

from .models import (
    DEFAULT_BASE_COMBO_DAMAGE,
    CornerState,
    DynamicState,
    RewardComputationMethod,
    RewardMethodKind,
    ResourceType,
)

logger = logging.getLogger(__name__)

# Reward of a certain win; a certain loss is the negation.
REWARD_SCALE: float = 10000.0


class TerminalType(Enum):
    WIN = "win"
    LOSE = "lose"
    DRAW = "draw"


# ─── Primitive formulas ───────────────────────────────────────────────────────

def win_probability_reward(win_probability: float) -> float:
    """Map a win probability to a reward in [-10000, 10000].

    Examples:
        >>> win_probability_reward(0.5)
        0.0
        >>> win_probability_reward(1.0)
        10000.0
    """
    return win_probability * 2 * REWARD_SCALE - REWARD_SCALE


def damage_race_reward(
    player_health: float,
    opponent_health: float,
    initial_player_health: float,
    initial_opponent_health: float,
) -> float:
    """Damage dealt to the opponent minus damage received, unscaled.

    Examples:
        >>> damage_race_reward(10000, 7000, 10000, 10000)
        3000
    """
    damage_dealt = initial_opponent_health - opponent_health
    damage_received = initial_player_health - player_health
    reward = damage_dealt - damage_received
    logger.debug(
        "damage race reward=%s (dealt=%s, received=%s)", reward, damage_dealt, damage_received
    )
    return reward


def turns_to_kill(target_health: float, base_damage: float, lethal_damage: float) -> int:
    """Number of won exchanges needed to bring ``target_health`` to zero.

    The last exchange lands the lethal (gauge-boosted) combo; every earlier
    one lands an ordinary combo worth ``base_damage``.

    Examples:
        >>> turns_to_kill(3000, 2000, 3000)
        1
        >>> turns_to_kill(7000, 2000, 3000)
        3
    """
    if target_health <= 0:
        return 0
    if lethal_damage >= target_health:
        return 1
    return 1 + math.ceil((target_health - lethal_damage) / base_damage)


def _base_combo_damage(
    base_combo_damage: float,
    corner_state: CornerState,
    corner_bonus: float,
    for_player: bool,
) -> float:
    if for_player and corner_state == CornerState.OPPONENT_IN_CORNER:
        return base_combo_damage + corner_bonus
    if not for_player and corner_state == CornerState.PLAYER_IN_CORNER:
        return base_combo_damage + corner_bonus
    return base_combo_damage


def _win_probability_from_turns(player_turns: int, opponent_turns: int) -> float:
    if player_turns <= 0:
        logger.warning("player turns-to-kill should be > 0, got %s", player_turns)
    if opponent_turns <= 0:
        logger.warning("opponent turns-to-kill should be > 0, got %s", opponent_turns)
    return opponent_turns / (player_turns + opponent_turns)


def corner_and_gauge_reward(
    player_health: float,
    opponent_health: float,
    corner_state: CornerState,
    corner_bonus: float,
    player_od: float = 0.0,
    opponent_od: float = 0.0,
    player_sa: float = 0.0,
    opponent_sa: float = 0.0,
    od_bonus: float = 0.0,
    sa_bonus: float = 0.0,
    base_combo_damage: float = DEFAULT_BASE_COMBO_DAMAGE,
) -> float:
    """Win-probability reward derived from each side's turns-to-kill.

    Both health values are expected to be strictly positive; the tree builder
    scores zero-health states as immediate win / lose / draw instead.

    Examples:
        >>> corner_and_gauge_reward(6000, 4000, CornerState.PLAYER_IN_CORNER, 1000)
        0.0
    """
    player_base = _base_combo_damage(base_combo_damage, corner_state, corner_bonus, True)
    opponent_base = _base_combo_damage(base_combo_damage, corner_state, corner_bonus, False)

    player_lethal = player_base + player_od * od_bonus + player_sa * sa_bonus
    opponent_lethal = opponent_base + opponent_od * od_bonus + opponent_sa * sa_bonus

    player_turns = turns_to_kill(opponent_health, player_base, player_lethal)
    opponent_turns = turns_to_kill(player_health, opponent_base, opponent_lethal)

    reward = win_probability_reward(_win_probability_from_turns(player_turns, opponent_turns))
    logger.debug(
        "corner/gauge reward=%s (player_turns=%s, opponent_turns=%s)",
        reward,
        player_turns,
        opponent_turns,
    )
    return reward


# ─── Terminal scoring used by the tree builder ────────────────────────────────

def classify_health_terminal(state: DynamicState) -> TerminalType | None:
    """Return WIN / LOSE / DRAW if either health is depleted, else None."""
    player_health = state.get(ResourceType.PLAYER_HEALTH)
    opponent_health = state.get(ResourceType.OPPONENT_HEALTH)
    if player_health <= 0 and opponent_health <= 0:
        return TerminalType.DRAW
    if player_health <= 0:
        return TerminalType.LOSE
    if opponent_health <= 0:
        return TerminalType.WIN
    return None


def health_terminal_reward(
    terminal_type: TerminalType,
    state: DynamicState,
    method: RewardComputationMethod,
    initial_state: DynamicState,
) -> tuple[float, float]:
    """(player_reward, opponent_reward) for a health-threshold terminal."""
    if method.kind == RewardMethodKind.DAMAGE_RACE:
        reward = damage_race_reward(
            state.get(ResourceType.PLAYER_HEALTH),
            state.get(ResourceType.OPPONENT_HEALTH),
            initial_state.get(ResourceType.PLAYER_HEALTH),
            initial_state.get(ResourceType.OPPONENT_HEALTH),
        )
    elif terminal_type == TerminalType.WIN:
        reward = win_probability_reward(1.0)
    elif terminal_type == TerminalType.LOSE:
        reward = win_probability_reward(0.0)
    else:
        reward = 0.0
    return float(reward), -float(reward)


def terminal_situation_reward(
    corner_state: CornerState,
    state: DynamicState,
    method: RewardComputationMethod,
    initial_state: DynamicState,
) -> tuple[float, float]:
    """(player_reward, opponent_reward) for arrival at a TerminalSituation."""
    if method.kind == RewardMethodKind.DAMAGE_RACE:
        reward = damage_race_reward(
            state.get(ResourceType.PLAYER_HEALTH),
            state.get(ResourceType.OPPONENT_HEALTH),
            initial_state.get(ResourceType.PLAYER_HEALTH),
            initial_state.get(ResourceType.OPPONENT_HEALTH),
        )
    else:
        reward = corner_and_gauge_reward(
            state.get(ResourceType.PLAYER_HEALTH),
            state.get(ResourceType.OPPONENT_HEALTH),
            corner_state,
            method.corner_bonus,
            player_od=state.get(ResourceType.PLAYER_OD_GAUGE),
            opponent_od=state.get(ResourceType.OPPONENT_OD_GAUGE),
            player_sa=state.get(ResourceType.PLAYER_SA_GAUGE),
            opponent_sa=state.get(ResourceType.OPPONENT_SA_GAUGE),
            od_bonus=method.od_gauge_bonus,
            sa_bonus=method.sa_gauge_bonus,
            base_combo_damage=method.base_combo_damage,
        )
    return float(reward), -float(reward)

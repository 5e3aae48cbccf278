"""
Scenario model for frame-trap confrontations.

A scenario is a declarative state machine authored by the user:

    Situation          — a simultaneous-move decision point with an outcome
                         table (one Transition per (player, opponent) action pair)
    TerminalSituation  — an absorbing state; reward is computed on arrival
    ComboStarter       — a situation where one side picks a combo route
    DynamicState       — the resources (health, OD / SA gauges) carried along

All types are frozen dataclasses holding tuples, so a scenario cannot change
while a tree is being built from it. Resource values are floats; health and
gauges are clamped at zero when consumed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum, auto
from typing import Iterable, Mapping

DEFAULT_BASE_COMBO_DAMAGE: float = 2000.0


# ─── Enumerations ─────────────────────────────────────────────────────────────

class ResourceType(IntEnum):
    PLAYER_HEALTH = 1
    OPPONENT_HEALTH = 2
    PLAYER_OD_GAUGE = 3
    OPPONENT_OD_GAUGE = 4
    PLAYER_SA_GAUGE = 5
    OPPONENT_SA_GAUGE = 6


GAUGE_RESOURCES: frozenset[ResourceType] = frozenset(
    {
        ResourceType.PLAYER_OD_GAUGE,
        ResourceType.OPPONENT_OD_GAUGE,
        ResourceType.PLAYER_SA_GAUGE,
        ResourceType.OPPONENT_SA_GAUGE,
    }
)


class CornerState(Enum):
    NONE = auto()
    PLAYER_IN_CORNER = auto()
    OPPONENT_IN_CORNER = auto()


class RewardMethodKind(Enum):
    DAMAGE_RACE = auto()
    WIN_PROBABILITY = auto()   # corner / gauge aware at terminal situations


# ─── Resources ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Resource:
    resource_type: ResourceType
    value: float


@dataclass(frozen=True)
class ResourceConsumption:
    """Amount subtracted from a resource when a transition is taken."""
    resource_type: ResourceType
    value: float


@dataclass(frozen=True)
class ResourceRequirement:
    """Minimum amount a resource must hold for a transition to be legal."""
    resource_type: ResourceType
    value: float


@dataclass(frozen=True)
class DynamicState:
    """Unordered set of resources, one per ResourceType.

    Types that are not present read as 0. Equality of two states for tree
    dedup purposes is decided by ``state_hash()``, which ignores ordering.

    Example:
        >>> s = DynamicState.from_mapping({ResourceType.PLAYER_HEALTH: 1000})
        >>> s.get(ResourceType.PLAYER_HEALTH), s.get(ResourceType.PLAYER_SA_GAUGE)
        (1000.0, 0.0)
    """
    resources: tuple[Resource, ...] = ()

    @classmethod
    def from_mapping(cls, values: Mapping[ResourceType, float]) -> DynamicState:
        return cls(tuple(Resource(ResourceType(t), float(v)) for t, v in values.items()))

    def as_dict(self) -> dict[ResourceType, float]:
        return {r.resource_type: r.value for r in self.resources}

    def get(self, resource_type: ResourceType) -> float:
        for resource in self.resources:
            if resource.resource_type == resource_type:
                return float(resource.value)
        return 0.0

    def with_value(self, resource_type: ResourceType, value: float) -> DynamicState:
        """Return a copy with one resource overridden (added if absent)."""
        values = self.as_dict()
        values[ResourceType(resource_type)] = float(value)
        return DynamicState.from_mapping(values)

    def meets_requirements(self, requirements: Iterable[ResourceRequirement]) -> bool:
        return all(self.get(req.resource_type) >= req.value for req in requirements)

    def apply_consumptions(self, consumptions: Iterable[ResourceConsumption]) -> DynamicState:
        """Return the state after subtracting each consumption.

        Values never go below zero. A gauge resource holding less than the
        requested amount is drained completely (burnout). Resource types not
        named by any consumption carry over unchanged.
        """
        values = self.as_dict()
        for consumption in consumptions:
            current = values.get(consumption.resource_type, 0.0)
            amount = consumption.value
            if consumption.resource_type in GAUGE_RESOURCES and current < amount:
                amount = current
            values[consumption.resource_type] = max(0.0, current - amount)
        return DynamicState.from_mapping(values)

    def state_hash(self) -> str:
        """Order-independent key: ``"1:4000.00|2:3500.00|..."``."""
        ordered = sorted(self.resources, key=lambda r: int(r.resource_type))
        return "|".join(f"{int(r.resource_type)}:{r.value:.2f}" for r in ordered)


# ─── Situations ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Action:
    action_id: int
    name: str
    description: str = ""


@dataclass(frozen=True)
class Transition:
    """One cell of a situation's outcome table."""
    player_action_id: int
    opponent_action_id: int
    next_situation_id: int
    resource_consumptions: tuple[ResourceConsumption, ...] = ()
    resource_requirements: tuple[ResourceRequirement, ...] = ()


@dataclass(frozen=True)
class Situation:
    situation_id: int
    name: str
    player_actions: tuple[Action, ...]
    opponent_actions: tuple[Action, ...]
    transitions: tuple[Transition, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class TerminalSituation:
    situation_id: int
    name: str
    description: str = ""
    corner_state: CornerState = CornerState.NONE


@dataclass(frozen=True)
class ComboRoute:
    name: str
    next_situation_id: int
    consumptions: tuple[ResourceConsumption, ...] = ()
    requirements: tuple[ResourceRequirement, ...] = ()


@dataclass(frozen=True)
class ComboStarter:
    """A hit-confirm situation where the attacking side picks a combo route."""
    situation_id: int
    name: str
    routes: tuple[ComboRoute, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class RewardComputationMethod:
    """Selects how terminal payoffs are computed.

    Attributes:
        kind:              DAMAGE_RACE (default) or WIN_PROBABILITY.
        corner_bonus:      Extra combo damage for the side whose opponent
                           is cornered (WIN_PROBABILITY only).
        od_gauge_bonus:    Lethal damage per unit of remaining OD gauge.
        sa_gauge_bonus:    Lethal damage per unit of remaining SA gauge.
        base_combo_damage: Damage of an ordinary punish combo.
    """
    kind: RewardMethodKind = RewardMethodKind.DAMAGE_RACE
    corner_bonus: float = 0.0
    od_gauge_bonus: float = 0.0
    sa_gauge_bonus: float = 0.0
    base_combo_damage: float = DEFAULT_BASE_COMBO_DAMAGE

    @classmethod
    def damage_race(cls) -> RewardComputationMethod:
        return cls(kind=RewardMethodKind.DAMAGE_RACE)

    @classmethod
    def win_probability(
        cls,
        corner_bonus: float = 0.0,
        od_gauge_bonus: float = 0.0,
        sa_gauge_bonus: float = 0.0,
        base_combo_damage: float = DEFAULT_BASE_COMBO_DAMAGE,
    ) -> RewardComputationMethod:
        return cls(
            kind=RewardMethodKind.WIN_PROBABILITY,
            corner_bonus=corner_bonus,
            od_gauge_bonus=od_gauge_bonus,
            sa_gauge_bonus=sa_gauge_bonus,
            base_combo_damage=base_combo_damage,
        )


# ─── Scenario ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Scenario:
    """Complete, immutable game definition handed to the tree builder."""
    scenario_id: int
    name: str
    root_situation_id: int
    situations: tuple[Situation, ...]
    terminal_situations: tuple[TerminalSituation, ...]
    initial_dynamic_state: DynamicState = field(default_factory=DynamicState)
    reward_computation_method: RewardComputationMethod = field(
        default_factory=RewardComputationMethod
    )
    player_combo_starters: tuple[ComboStarter, ...] = ()
    opponent_combo_starters: tuple[ComboStarter, ...] = ()
    description: str = ""

    def with_root(self, situation_id: int, state: DynamicState) -> Scenario:
        """Return a copy re-rooted at ``situation_id`` with a new initial state."""
        return replace(self, root_situation_id=situation_id, initial_dynamic_state=state)

"""Sensitivity analysis: re-solve a sub-tree across a swept resource value.

Public functions:

    default_parameter_config(resource_type)     — sensible sweep per resource
    create_sub_scenario_from_node(scenario, node) — re-root a scenario at a node
    create_varied_dynamic_state(state, type, value)
    generate_parameter_values(min, max, step)
    iter_sensitivity_analysis(scenario, node, config, control, lp_method)
    run_sensitivity_analysis(scenario, node, config, control, lp_method) → list

and SensitivitySession, the start / cancel command boundary.

For every sweep value the source node's state is copied with one resource
overridden, the tree is rebuilt from the source situation, the LP solver is
run, and the root's strategy for both sides is recorded. A sample whose build
or solve fails is logged and skipped; the rest of the sweep continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Union

from frametrap.config import DEFAULT_LP_METHOD
from frametrap.engine.game_tree import Node
from frametrap.engine.models import DynamicState, ResourceType, Scenario
from frametrap.engine.tree_builder import build_game_tree
from frametrap.solvers.lp import LpSolver
from frametrap.solvers.protocol import ActionProbability, ErrorResult, SolveControl

logger = logging.getLogger(__name__)

PLAYER_SIDE = "player"
OPPONENT_SIDE = "opponent"


# ─── Types ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ParameterConfig:
    resource_type: ResourceType
    min_value: float
    max_value: float
    step_size: float


@dataclass(frozen=True)
class SensitivityResult:
    """Root strategies of the re-solved sub-tree for one sweep value."""
    parameter_value: float
    player_strategies: tuple[ActionProbability, ...]
    opponent_strategies: tuple[ActionProbability, ...]

    def strategies(self, side: str) -> tuple[ActionProbability, ...]:
        """The ``"player"`` or ``"opponent"`` root strategy."""
        if side == PLAYER_SIDE:
            return self.player_strategies
        if side == OPPONENT_SIDE:
            return self.opponent_strategies
        raise ValueError(f"side must be {PLAYER_SIDE!r} or {OPPONENT_SIDE!r}, got {side!r}")


_DEFAULT_RANGES: dict[ResourceType, tuple[float, float, float]] = {
    ResourceType.PLAYER_HEALTH: (500, 10000, 500),
    ResourceType.OPPONENT_HEALTH: (500, 10000, 500),
    ResourceType.PLAYER_OD_GAUGE: (0, 6000, 1000),
    ResourceType.OPPONENT_OD_GAUGE: (0, 6000, 1000),
    ResourceType.PLAYER_SA_GAUGE: (0, 3000, 1000),
    ResourceType.OPPONENT_SA_GAUGE: (0, 3000, 1000),
}


def default_parameter_config(resource_type: ResourceType) -> ParameterConfig:
    """Sweep defaults: health 500–10000 / 500, OD 0–6000 / 1000, SA 0–3000 / 1000."""
    low, high, step = _DEFAULT_RANGES.get(resource_type, (0, 10000, 1000))
    return ParameterConfig(resource_type, low, high, step)


# ─── Sub-scenario helpers ─────────────────────────────────────────────────────

def create_sub_scenario_from_node(scenario: Scenario, node: Node) -> Scenario:
    """Re-root ``scenario`` at ``node``'s situation and resource state.

    Raises:
        ValueError: If the node has no situation id (health-threshold
                    terminals are not tied to a situation).
    """
    if node.state.situation_id is None:
        raise ValueError(f"Node {node.node_id} does not have a situation_id")
    return scenario.with_root(node.state.situation_id, node.state.to_dynamic_state())


def create_varied_dynamic_state(
    base: DynamicState, resource_type: ResourceType, value: float
) -> DynamicState:
    return base.with_value(resource_type, value)


def generate_parameter_values(min_value: float, max_value: float, step_size: float) -> list[float]:
    """Evenly spaced sweep values from ``min_value`` up to ``max_value``.

    Produces exactly ``floor((max - min) / step) + 1`` values. Each value is
    computed from its index, so float steps do not accumulate drift.

    Examples:
        >>> generate_parameter_values(0, 6000, 1000)
        [0.0, 1000.0, 2000.0, 3000.0, 4000.0, 5000.0, 6000.0]
        >>> len(generate_parameter_values(0.0, 1.0, 0.1))
        11

    Raises:
        ValueError: If ``step_size`` is not positive or ``max_value < min_value``.
    """
    if step_size <= 0:
        raise ValueError(f"step_size must be positive, got {step_size}")
    if max_value < min_value:
        raise ValueError(f"max_value {max_value} is below min_value {min_value}")
    # Small epsilon so (1.0 - 0.0) / 0.1 == 9.999... still counts 11 values.
    count = int((max_value - min_value) / step_size + 1e-9) + 1
    return [float(min_value + i * step_size) for i in range(count)]


def _root_strategies(
    solver: LpSolver, root: Node
) -> tuple[tuple[ActionProbability, ...], tuple[ActionProbability, ...]]:
    player_probs = solver.get_player_strategy(root.node_id) or {}
    opponent_probs = solver.get_opponent_strategy(root.node_id) or {}
    return (
        tuple(
            ActionProbability(a.action_id, player_probs.get(a.action_id, 0.0), a.name)
            for a in root.player_actions or ()
        ),
        tuple(
            ActionProbability(a.action_id, opponent_probs.get(a.action_id, 0.0), a.name)
            for a in root.opponent_actions or ()
        ),
    )


# ─── Sweep ────────────────────────────────────────────────────────────────────

def iter_sensitivity_analysis(
    scenario: Scenario,
    source_node: Node,
    config: ParameterConfig,
    control: SolveControl | None = None,
    lp_method: str = DEFAULT_LP_METHOD,
) -> Iterator[tuple[int, int, SensitivityResult | None]]:
    """Yield ``(index, total, result_or_None)`` for every sweep value.

    ``None`` marks a sample that failed to build or solve (already logged).
    Cancellation is checked once per sample, before it is built.
    """
    base = create_sub_scenario_from_node(scenario, source_node)
    values = generate_parameter_values(config.min_value, config.max_value, config.step_size)
    total = len(values)

    for i, value in enumerate(values):
        if control is not None and not control.checkpoint():
            logger.info("sensitivity analysis cancelled at %d/%d", i, total)
            return

        varied = base.with_root(
            base.root_situation_id,
            create_varied_dynamic_state(base.initial_dynamic_state, config.resource_type, value),
        )
        build = build_game_tree(varied)
        if not build.success:
            logger.warning(
                "skipping %s=%s: tree build failed (%s)",
                config.resource_type.name,
                value,
                build.error.message,
            )
            yield i, total, None
            continue

        tree = build.game_tree
        solver = LpSolver(tree, method=lp_method)
        if not solver.solve():
            logger.warning("skipping %s=%s: LP solve failed", config.resource_type.name, value)
            yield i, total, None
            continue

        player, opponent = _root_strategies(solver, tree.root_node)
        yield i, total, SensitivityResult(value, player, opponent)


def run_sensitivity_analysis(
    scenario: Scenario,
    source_node: Node,
    config: ParameterConfig,
    control: SolveControl | None = None,
    lp_method: str = DEFAULT_LP_METHOD,
) -> list[SensitivityResult]:
    """Blocking form of the sweep: successful samples only, in sweep order."""
    return [
        result
        for _, _, result in iter_sensitivity_analysis(
            scenario, source_node, config, control, lp_method
        )
        if result is not None
    ]


# ─── Command boundary ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SensitivityStartCommand:
    scenario: Scenario
    source_node: Node
    parameter_config: ParameterConfig


@dataclass(frozen=True)
class SensitivityCancelCommand:
    pass


@dataclass(frozen=True)
class SensitivityProgress:
    current: int
    total: int


@dataclass(frozen=True)
class SensitivityResultMessage:
    data: SensitivityResult


@dataclass(frozen=True)
class SensitivityComplete:
    pass


SensitivityMessage = Union[
    SensitivityProgress, SensitivityResultMessage, SensitivityComplete, ErrorResult
]


class SensitivitySession:
    """Runs sweeps on request and reports through ``emit``.

    Emits ``progress(0, total)`` first, then ``result`` followed by
    ``progress(i + 1, total)`` for each successful sample, and ``complete``
    at the end unless cancelled. Errors while starting become ErrorResult.
    """

    def __init__(
        self, emit: Callable[[SensitivityMessage], None], lp_method: str = DEFAULT_LP_METHOD
    ) -> None:
        self._emit = emit
        self.lp_method = lp_method
        self.control = SolveControl()

    def handle(self, command: SensitivityStartCommand | SensitivityCancelCommand) -> None:
        if isinstance(command, SensitivityCancelCommand):
            self.control.cancel()
            return
        self.control = SolveControl()
        try:
            self._run(command)
        except Exception as exc:
            logger.exception("sensitivity analysis failed")
            self._emit(ErrorResult(str(exc) or type(exc).__name__))

    def _run(self, command: SensitivityStartCommand) -> None:
        config = command.parameter_config
        total = len(generate_parameter_values(config.min_value, config.max_value, config.step_size))
        samples = iter_sensitivity_analysis(
            command.scenario, command.source_node, config, self.control, self.lp_method
        )
        self._emit(SensitivityProgress(0, total))
        for i, _, result in samples:
            if result is None:
                continue
            self._emit(SensitivityResultMessage(result))
            self._emit(SensitivityProgress(i + 1, total))
        if not self.control.cancelled:
            self._emit(SensitivityComplete())

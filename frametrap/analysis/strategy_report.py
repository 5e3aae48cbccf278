"""Plain-text strategy report for solved frame-trap trees.

Four public functions format solver output into tables for inspection:

    print_tree_summary(tree)                         — node / terminal counts, root state
    print_solve_summary(result)                      — CFR iterations, exploitability, root value
    print_node_strategies(tree, strategies, evs)     — per-node mixed strategies (+ EVs)
    print_sensitivity_table(results, resource_name)  — root strategy per sweep value
"""

from __future__ import annotations

from typing import Sequence

from frametrap.analysis.expected_values import ExpectedValuesMap
from frametrap.analysis.sensitivity import SensitivityResult
from frametrap.engine.game_tree import GameTree, Node
from frametrap.solvers.cfr import CfrResult
from frametrap.solvers.protocol import StrategyMap


def _banner(title: str) -> None:
    print("=" * 56)
    print(title)
    print("=" * 56)


def _state_line(node: Node) -> str:
    s = node.state
    return (
        f"HP {s.player_health:.0f}/{s.opponent_health:.0f}  "
        f"OD {s.player_od:.0f}/{s.opponent_od:.0f}  "
        f"SA {s.player_sa:.0f}/{s.opponent_sa:.0f}"
    )


# ─── Public report functions ──────────────────────────────────────────────────

def print_tree_summary(tree: GameTree) -> None:
    """Print node counts and the root's name and resource state."""
    reachable = list(tree.iter_reachable())
    terminals = [n for n in reachable if n.is_terminal]

    _banner(f"Game Tree  {tree.tree_id}")
    print(f"  Root:            {tree.root_node.name or tree.root}")
    print(f"  Root state:      {_state_line(tree.root_node)}")
    print(f"  Nodes:           {len(reachable)}")
    print(f"  Decision nodes:  {len(reachable) - len(terminals)}")
    print(f"  Terminal nodes:  {len(terminals)}")
    print()


def print_solve_summary(result: CfrResult) -> None:
    """Print CFR run statistics.

    Args:
        result: CfrResult returned by CfrSolver.solve().
    """
    status = "cancelled" if result.cancelled else ("yes" if result.converged else "no")
    _banner("CFR Solve Summary")
    print(f"  Root value:      {result.root_value:+.2f}  (player perspective)")
    print(f"  Exploitability:  {result.exploitability:.4f}")
    print(f"  Iterations:      {result.n_iterations}")
    print(f"  Converged:       {status}")
    print()


def print_node_strategies(
    tree: GameTree,
    strategies: StrategyMap,
    expected_values: ExpectedValuesMap | None = None,
    *,
    max_nodes: int | None = None,
) -> None:
    """Print both sides' strategy at every reachable decision node.

    Nodes appear in depth-first order from the root. With
    ``expected_values`` each action row also shows its EV and each node
    header shows the node EV for both sides.

    Args:
        tree:            The solved tree.
        strategies:      node_id → StrategyData.
        expected_values: Optional output of calculate_expected_values().
        max_nodes:       Stop after this many decision nodes.
    """
    _banner("Node Strategies")
    shown = 0
    for node in tree.iter_reachable():
        if node.is_terminal:
            continue
        if max_nodes is not None and shown >= max_nodes:
            print(f"  ... (truncated after {max_nodes} nodes)")
            break
        shown += 1

        data = strategies.get(node.node_id)
        evs = expected_values.get(node.node_id) if expected_values else None
        print(f"  {node.name or node.node_id}  [{_state_line(node)}]")
        if evs is not None:
            print(
                f"    EV player {evs.node_expected_value:+.2f}   "
                f"EV opponent {evs.opponent_node_expected_value:+.2f}"
            )
        if data is None:
            print("    (no strategy)")
            continue

        rows = [("P", e, evs.action_value(e.action_id) if evs else None) for e in data.player_strategy]
        rows += [
            ("O", e, evs.opponent_action_value(e.action_id) if evs else None)
            for e in data.opponent_strategy
        ]
        for side, entry, ev in rows:
            name = entry.name or f"Action {entry.action_id}"
            ev_text = f"  EV {ev:+9.2f}" if ev is not None else ""
            print(f"    {side}  {name:<24}  {entry.probability:>6.4f}{ev_text}")
    if shown == 0:
        print("  (no decision nodes)")
    print()


def print_sensitivity_table(
    results: Sequence[SensitivityResult],
    resource_name: str = "Value",
) -> None:
    """Print one row per sweep value with every player and opponent probability.

    Args:
        results:       Successful sweep samples, in sweep order.
        resource_name: Header for the parameter column.
    """
    _banner(f"Sensitivity  ({resource_name})")
    if not results:
        print("  (no results)")
        print()
        return

    first = results[0]
    columns = [("P", e.action_id, e.name or f"#{e.action_id}") for e in first.player_strategies]
    columns += [("O", e.action_id, e.name or f"#{e.action_id}") for e in first.opponent_strategies]

    header = f"  {resource_name[:10]:>10}" + "".join(
        f"  {f'{side}:{name}'[:12]:>12}" for side, _, name in columns
    )
    print(header)
    print(f"  {'-' * 10:>10}" + "".join(f"  {'-' * 12:>12}" for _ in columns))

    for result in results:
        probs = {("P", e.action_id): e.probability for e in result.player_strategies}
        probs.update({("O", e.action_id): e.probability for e in result.opponent_strategies})
        row = f"  {result.parameter_value:>10.0f}" + "".join(
            f"  {probs.get((side, action_id), 0.0):>12.4f}" for side, action_id, _ in columns
        )
        print(row)
    print()

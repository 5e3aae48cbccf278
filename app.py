"""Frame Trap Solver — Streamlit Dashboard.

Four-tab interactive dashboard for exploring solved frame-trap scenarios:
  Tab 1 — Game Tree             (node table, root state, build errors)
  Tab 2 — Strategies            (per-node mixed strategies + expected values)
  Tab 3 — Sensitivity Analysis  (sweep one resource, re-solve with LP)
  Tab 4 — Strategy Report       (plain-text tables)

Run:
    streamlit run app.py
"""

from __future__ import annotations

import contextlib
import io

import matplotlib

matplotlib.use("Agg")  # must be set before any other matplotlib imports

import pandas as pd
import streamlit as st

from frametrap.config import configure_logging, load_settings

# ─── Page config ──────────────────────────────────────────────────────────────

st.set_page_config(
    page_title="Frame Trap Solver",
    page_icon="🥊",
    layout="wide",
)

settings = load_settings()
configure_logging(settings.log_level)

_SCENARIOS: dict[str, str] = {
    "corner_judo": "Corner okizeme (strike / throw / shimmy)",
    "rps": "Rock-paper-scissors",
}

# ─── Cached computations ──────────────────────────────────────────────────────


@st.cache_resource
def _build(scenario_key: str):
    """Build the scenario and its game tree once per process."""
    from frametrap.engine.scenarios import (
        IdCounter,
        create_corner_judo_scenario,
        create_rps_scenario,
    )
    from frametrap.engine.tree_builder import build_game_tree
    from frametrap.engine.validation import validate_scenario

    factory = create_corner_judo_scenario if scenario_key == "corner_judo" else create_rps_scenario
    scenario = factory(IdCounter())
    return scenario, validate_scenario(scenario), build_game_tree(scenario)


@st.cache_resource
def _solve_lp(scenario_key: str):
    from frametrap.solvers.lp import LpSolver

    _, _, build = _build(scenario_key)
    solver = LpSolver(build.game_tree, method=settings.lp_method)
    return solver.get_all_strategies() if solver.solve() else None


@st.cache_resource
def _solve_cfr(scenario_key: str, n_iterations: int):
    """Run CFR and cache (strategies, result), keyed on scenario and iterations."""
    from frametrap.solvers.cfr import CfrSolver

    _, _, build = _build(scenario_key)
    solver = CfrSolver(build.game_tree)
    result = solver.solve(n_iterations=n_iterations, progress_batches=settings.progress_batches)
    return solver.get_all_strategies(), result


def _captured(fn, *args, **kwargs) -> str:
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        fn(*args, **kwargs)
    return buf.getvalue()


# ─── Sidebar controls ─────────────────────────────────────────────────────────

with st.sidebar:
    st.title("🥊 Frame Trap Solver")
    st.markdown("---")

    scenario_key = st.selectbox(
        "Scenario",
        options=list(_SCENARIOS),
        format_func=lambda k: _SCENARIOS[k],
        index=0,
    )
    method = st.radio("Solver", options=["LP (exact)", "CFR"], index=0)

    n_cfr_iterations = st.slider(
        "CFR iterations",
        min_value=100,
        max_value=5000,
        value=min(max(settings.cfr_iterations, 100), 5000),
        step=100,
    )
    run_cfr = st.button("Run CFR Solver", type="primary")

    st.markdown("---")
    st.caption("Scenario → Game tree → LP / CFR → Analysis")

# ─── Build + solve ────────────────────────────────────────────────────────────

scenario, validation_errors, build = _build(scenario_key)
tree = build.game_tree

strategies = None
cfr_result = None
if tree is not None:
    if method == "CFR":
        cached_key = f"cfr_{scenario_key}_{n_cfr_iterations}"
        if run_cfr or cached_key in st.session_state:
            with st.spinner(f"Running CFR ({n_cfr_iterations} iterations) …"):
                strategies, cfr_result = _solve_cfr(scenario_key, n_cfr_iterations)
            st.session_state[cached_key] = True
            st.sidebar.success(
                f"CFR done — root value: {cfr_result.root_value:+.1f} | "
                f"Exploitability: {cfr_result.exploitability:.2f}"
            )
    else:
        strategies = _solve_lp(scenario_key)
        if strategies is None:
            st.sidebar.error("LP solver failed to process the game tree.")

# ─── Tabs ─────────────────────────────────────────────────────────────────────

tab1, tab2, tab3, tab4 = st.tabs(
    [
        "Game Tree",
        "Strategies",
        "Sensitivity Analysis",
        "Strategy Report",
    ]
)

# ── Tab 1: Game Tree ──────────────────────────────────────────────────────────

with tab1:
    st.header(f"Game Tree — {scenario.name}")

    for err in validation_errors:
        st.warning(f"{err.field}: {err.message}")

    if tree is None:
        st.error(f"Tree build failed ({build.error.code.name}): {build.error.message}")
    else:
        nodes = list(tree.iter_reachable())
        col1, col2, col3 = st.columns(3)
        col1.metric("Nodes", len(nodes))
        col2.metric("Decision nodes", sum(not n.is_terminal for n in nodes))
        col3.metric("Terminal nodes", sum(n.is_terminal for n in nodes))

        node_df = pd.DataFrame(
            [
                {
                    "Node": n.node_id,
                    "Name": n.name,
                    "Terminal": n.is_terminal,
                    "Player HP": n.state.player_health,
                    "Opponent HP": n.state.opponent_health,
                    "Player OD": n.state.player_od,
                    "Opponent OD": n.state.opponent_od,
                    "Player reward": n.player_reward,
                }
                for n in nodes
            ]
        )
        st.dataframe(node_df, use_container_width=True, hide_index=True)

# ── Tab 2: Strategies ─────────────────────────────────────────────────────────

decision_nodes = [] if tree is None else [n for n in tree.iter_reachable() if not n.is_terminal]

with tab2:
    st.header("Strategies")

    if strategies is None:
        st.info("Press **Run CFR Solver** in the sidebar (or pick the LP solver) to see strategies.")
    else:
        from frametrap.analysis.expected_values import calculate_expected_values
        from frametrap.analysis.plotly_charts import build_strategy_bar_figure

        evs = calculate_expected_values(tree, strategies)
        node = st.selectbox(
            "Node",
            options=decision_nodes,
            format_func=lambda n: f"{n.name}  [HP {n.state.player_health:.0f}/{n.state.opponent_health:.0f}]",
        )
        if node is not None:
            data = strategies[node.node_id]
            st.plotly_chart(build_strategy_bar_figure(data, node.name), use_container_width=True)

            node_evs = evs[node.node_id]
            col1, col2 = st.columns(2)
            col1.metric("Player EV", f"{node_evs.node_expected_value:+.1f}")
            col2.metric("Opponent EV", f"{node_evs.opponent_node_expected_value:+.1f}")

            rows = [
                {
                    "Side": "Player",
                    "Action": e.name,
                    "Probability": f"{e.probability:.4f}",
                    "EV": f"{node_evs.action_value(e.action_id) or 0.0:+.1f}",
                }
                for e in data.player_strategy
            ] + [
                {
                    "Side": "Opponent",
                    "Action": e.name,
                    "Probability": f"{e.probability:.4f}",
                    "EV": f"{node_evs.opponent_action_value(e.action_id) or 0.0:+.1f}",
                }
                for e in data.opponent_strategy
            ]
            st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

# ── Tab 3: Sensitivity Analysis ───────────────────────────────────────────────

with tab3:
    st.header("Sensitivity Analysis")
    st.caption("Sweep one resource at the chosen node and re-solve the sub-tree with LP.")

    if not decision_nodes:
        st.info("No decision nodes to analyse.")
    else:
        from frametrap.analysis.heat_maps import plot_sensitivity_heatmap
        from frametrap.analysis.plotly_charts import build_sensitivity_figure
        from frametrap.analysis.sensitivity import (
            ParameterConfig,
            default_parameter_config,
            run_sensitivity_analysis,
        )
        from frametrap.engine.models import ResourceType

        source = st.selectbox(
            "Source node",
            options=decision_nodes,
            format_func=lambda n: f"{n.name}  [HP {n.state.player_health:.0f}/{n.state.opponent_health:.0f}]",
            key="sensitivity_node",
        )
        resource = st.selectbox(
            "Resource",
            options=list(ResourceType),
            format_func=lambda r: r.name.replace("_", " ").title(),
        )
        defaults = default_parameter_config(resource)
        col1, col2, col3 = st.columns(3)
        low = col1.number_input("Min", value=float(defaults.min_value))
        high = col2.number_input("Max", value=float(defaults.max_value))
        step = col3.number_input("Step", value=float(defaults.step_size), min_value=1.0)

        if st.button("Run sensitivity analysis"):
            if high < low:
                st.error("Max must be at least Min.")
            else:
                with st.spinner("Re-solving sub-trees …"):
                    results = run_sensitivity_analysis(
                        scenario,
                        source,
                        ParameterConfig(resource, low, high, step),
                        lp_method=settings.lp_method,
                    )
                st.session_state["sensitivity_results"] = (resource.name, results)

        if "sensitivity_results" in st.session_state:
            resource_name, results = st.session_state["sensitivity_results"]
            if not results:
                st.warning("Every sample failed to build or solve.")
            for side in ("player", "opponent"):
                st.subheader(f"{side.title()} strategy")
                st.plotly_chart(
                    build_sensitivity_figure(results, side, parameter_label=resource_name),
                    use_container_width=True,
                )
                st.pyplot(
                    plot_sensitivity_heatmap(
                        results, side, parameter_label=resource_name, show=False
                    )
                )

# ── Tab 4: Strategy Report ────────────────────────────────────────────────────

with tab4:
    st.header("Strategy Report")

    if tree is None:
        st.info("Fix the scenario to see the report.")
    else:
        from frametrap.analysis.expected_values import calculate_expected_values
        from frametrap.analysis.strategy_report import (
            print_node_strategies,
            print_sensitivity_table,
            print_solve_summary,
            print_tree_summary,
        )

        st.subheader("Game Tree Summary")
        st.code(_captured(print_tree_summary, tree), language=None)

        if cfr_result is not None:
            st.subheader("CFR Solve Summary")
            st.code(_captured(print_solve_summary, cfr_result), language=None)

        if strategies is not None:
            st.subheader("Node Strategies")
            st.code(
                _captured(
                    print_node_strategies,
                    tree,
                    strategies,
                    calculate_expected_values(tree, strategies),
                    max_nodes=50,
                ),
                language=None,
            )

        if "sensitivity_results" in st.session_state:
            resource_name, results = st.session_state["sensitivity_results"]
            st.subheader("Sensitivity Table")
            st.code(_captured(print_sensitivity_table, results, resource_name), language=None)

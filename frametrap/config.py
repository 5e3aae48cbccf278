"""Runtime settings and logging setup for the frame-trap solver.

Settings are read from environment variables so the dashboard and scripts can
be tuned without code changes:

    FRAMETRAP_CFR_ITERATIONS     default CFR iteration count (int > 0)
    FRAMETRAP_PROGRESS_BATCHES   progress reports per CFR run (int > 0)
    FRAMETRAP_LP_METHOD          scipy ``linprog`` method name
    FRAMETRAP_LOG_LEVEL          logging level name (DEBUG, INFO, ...)

Usage::

    from frametrap.config import configure_logging, load_settings

    settings = load_settings()
    configure_logging(settings.log_level)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

_ENV_CFR_ITERATIONS: Final = "FRAMETRAP_CFR_ITERATIONS"
_ENV_PROGRESS_BATCHES: Final = "FRAMETRAP_PROGRESS_BATCHES"
_ENV_LP_METHOD: Final = "FRAMETRAP_LP_METHOD"
_ENV_LOG_LEVEL: Final = "FRAMETRAP_LOG_LEVEL"

DEFAULT_CFR_ITERATIONS: Final = 1000
DEFAULT_PROGRESS_BATCHES: Final = 100
DEFAULT_LP_METHOD: Final = "highs"
DEFAULT_LOG_LEVEL: Final = "WARNING"

_LOG_FORMAT: Final = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class SolverSettings:
    """Tunable defaults shared by the solvers and the dashboard."""

    cfr_iterations: int = DEFAULT_CFR_ITERATIONS
    progress_batches: int = DEFAULT_PROGRESS_BATCHES
    lp_method: str = DEFAULT_LP_METHOD
    log_level: str = DEFAULT_LOG_LEVEL


def _positive_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> SolverSettings:
    """Build settings from environment variables, falling back to defaults.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``.

    Returns:
        A frozen SolverSettings instance.

    Raises:
        ValueError: If a numeric variable is not a positive integer or the
                    log level is not a known logging level name.
    """
    env = os.environ if environ is None else environ

    log_level = (env.get(_ENV_LOG_LEVEL) or DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"{_ENV_LOG_LEVEL} is not a logging level: {log_level!r}")

    return SolverSettings(
        cfr_iterations=_positive_int(env, _ENV_CFR_ITERATIONS, DEFAULT_CFR_ITERATIONS),
        progress_batches=_positive_int(env, _ENV_PROGRESS_BATCHES, DEFAULT_PROGRESS_BATCHES),
        lp_method=(env.get(_ENV_LP_METHOD) or DEFAULT_LP_METHOD).strip(),
        log_level=log_level,
    )


def configure_logging(level: str | int = DEFAULT_LOG_LEVEL) -> None:
    """Install a basic stderr handler for the ``frametrap`` loggers.

    Library modules only create loggers; entry points (the dashboard,
    scripts) call this once.
    """
    logging.basicConfig(format=_LOG_FORMAT)
    logging.getLogger("frametrap").setLevel(level)

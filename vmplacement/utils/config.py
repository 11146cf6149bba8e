"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_ENV_PREFIX = "VMP_"


def _env_str(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    app_name: str = "VM Placement Optimizer"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    optimizer_log_level: str = "INFO"

    optimizer_population_size: int = 30
    optimizer_max_iterations: int = 100
    optimizer_convergence_threshold: float = 1e-4
    optimizer_convergence_patience: int = 10
    optimizer_random_seed: int = 42
    optimizer_deadline_seconds: Optional[float] = None
    optimizer_evaluation_workers: int = 1
    optimizer_low_utilization_threshold: float = 0.1
    optimizer_sla_utilization_threshold: float = 0.9
    optimizer_escape_fraction: float = 0.5
    optimizer_overcommit_penalty: float = 0.5
    optimizer_exploration_coefficient: float = 1.0
    optimizer_neighborhood_radius: float = 0.25

    power_default_idle_watts: float = 100.0
    power_default_max_watts: float = 250.0

    placement_history_size: int = 50


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; callers derive variants with replace()."""
    return Settings(
        app_name=_env_str("APP_NAME", Settings.app_name),
        app_version=_env_str("APP_VERSION", Settings.app_version),
        log_level=_env_str("LOG_LEVEL", Settings.log_level),
        optimizer_log_level=_env_str("OPTIMIZER_LOG_LEVEL", Settings.optimizer_log_level),
        optimizer_population_size=_env_int(
            "POPULATION_SIZE", Settings.optimizer_population_size
        ),
        optimizer_max_iterations=_env_int(
            "MAX_ITERATIONS", Settings.optimizer_max_iterations
        ),
        optimizer_convergence_threshold=_env_float(
            "CONVERGENCE_THRESHOLD", Settings.optimizer_convergence_threshold
        ),
        optimizer_convergence_patience=_env_int(
            "CONVERGENCE_PATIENCE", Settings.optimizer_convergence_patience
        ),
        optimizer_random_seed=_env_int("RANDOM_SEED", Settings.optimizer_random_seed),
        optimizer_deadline_seconds=_env_optional_float("DEADLINE_SECONDS"),
        optimizer_evaluation_workers=_env_int(
            "EVALUATION_WORKERS", Settings.optimizer_evaluation_workers
        ),
        optimizer_low_utilization_threshold=_env_float(
            "LOW_UTILIZATION_THRESHOLD", Settings.optimizer_low_utilization_threshold
        ),
        optimizer_sla_utilization_threshold=_env_float(
            "SLA_UTILIZATION_THRESHOLD", Settings.optimizer_sla_utilization_threshold
        ),
        optimizer_escape_fraction=_env_float(
            "ESCAPE_FRACTION", Settings.optimizer_escape_fraction
        ),
        optimizer_overcommit_penalty=_env_float(
            "OVERCOMMIT_PENALTY", Settings.optimizer_overcommit_penalty
        ),
        optimizer_exploration_coefficient=_env_float(
            "EXPLORATION_COEFFICIENT", Settings.optimizer_exploration_coefficient
        ),
        optimizer_neighborhood_radius=_env_float(
            "NEIGHBORHOOD_RADIUS", Settings.optimizer_neighborhood_radius
        ),
        power_default_idle_watts=_env_float(
            "IDLE_POWER_WATTS", Settings.power_default_idle_watts
        ),
        power_default_max_watts=_env_float(
            "MAX_POWER_WATTS", Settings.power_default_max_watts
        ),
        placement_history_size=_env_int(
            "PLACEMENT_HISTORY_SIZE", Settings.placement_history_size
        ),
    )

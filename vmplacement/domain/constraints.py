"""Domain-level validation rules for placement optimization parameters."""

from __future__ import annotations

import math
from dataclasses import dataclass, field


WEIGHT_SUM_TOLERANCE = 1e-3


class ParameterValidationError(ValueError):
    """Raised when optimization parameters are malformed."""


@dataclass(frozen=True)
class ObjectiveWeights:
    utilization: float = 0.3
    load_balance: float = 0.2
    fragmentation: float = 0.1
    power: float = 0.2
    sla: float = 0.2

    def as_tuple(self) -> tuple[float, float, float, float, float]:
        return (self.utilization, self.load_balance, self.fragmentation, self.power, self.sla)

    def to_dict(self) -> dict[str, float]:
        return {
            "utilization": self.utilization,
            "load_balance": self.load_balance,
            "fragmentation": self.fragmentation,
            "power": self.power,
            "sla": self.sla,
        }


@dataclass(frozen=True)
class OptimizationParameters:
    population_size: int = 30
    max_iterations: int = 100
    convergence_threshold: float = 1e-4
    convergence_patience: int = 10
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)
    seed: int = 42
    low_utilization_threshold: float = 0.1
    sla_utilization_threshold: float = 0.9
    escape_fraction: float = 0.5
    overcommit_penalty: float = 0.5
    exploration_coefficient: float = 1.0
    neighborhood_radius: float = 0.25
    evaluation_workers: int = 1

    def __post_init__(self) -> None:
        validate_parameters(self)


def validate_objective_weights(weights: ObjectiveWeights) -> None:
    for name, value in weights.to_dict().items():
        if not math.isfinite(value) or not 0.0 <= value <= 1.0:
            raise ParameterValidationError(f"{name} weight must be between 0 and 1")
    total = sum(weights.as_tuple())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise ParameterValidationError(
            f"objective weights must sum to 1.0, got {total:.4f}"
        )


def _require_fraction(name: str, value: float) -> None:
    if not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise ParameterValidationError(f"{name} must be between 0 and 1")


def validate_parameters(parameters: OptimizationParameters) -> None:
    if parameters.population_size <= 0:
        raise ParameterValidationError("population_size must be > 0")
    if parameters.max_iterations <= 0:
        raise ParameterValidationError("max_iterations must be > 0")
    if not parameters.convergence_threshold >= 0.0:
        raise ParameterValidationError("convergence_threshold must be >= 0")
    if parameters.convergence_patience < 1:
        raise ParameterValidationError("convergence_patience must be >= 1")
    if parameters.seed < 0:
        raise ParameterValidationError("seed must be >= 0")
    if parameters.evaluation_workers <= 0:
        raise ParameterValidationError("evaluation_workers must be > 0")
    if parameters.exploration_coefficient < 0.0:
        raise ParameterValidationError("exploration_coefficient must be >= 0")
    if parameters.neighborhood_radius <= 0.0:
        raise ParameterValidationError("neighborhood_radius must be > 0")
    _require_fraction("low_utilization_threshold", parameters.low_utilization_threshold)
    _require_fraction("sla_utilization_threshold", parameters.sla_utilization_threshold)
    _require_fraction("escape_fraction", parameters.escape_fraction)
    _require_fraction("overcommit_penalty", parameters.overcommit_penalty)
    validate_objective_weights(parameters.weights)

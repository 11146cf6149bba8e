"""Domain models for VM placement optimization."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


UNASSIGNED = -1

# Relative slack when comparing summed demand against host capacity, so that
# float accumulation never rejects a VM that fits exactly.
CAPACITY_EPSILON = 1e-9

RESOURCE_DIMENSIONS = ("cpu", "memory", "storage", "bandwidth")

PowerCurve = Callable[[float], float]


@dataclass(frozen=True)
class VmDemand:
    vm_id: int
    cpu: float
    memory: float
    storage: float
    bandwidth: float

    def __post_init__(self) -> None:
        if min(self.as_vector()) < 0.0:
            raise ValueError(f"vm {self.vm_id} has a negative resource demand")

    def as_vector(self) -> tuple[float, float, float, float]:
        return (self.cpu, self.memory, self.storage, self.bandwidth)


@dataclass(frozen=True)
class HostCapacity:
    """Available capacity snapshot of one host.

    ``power_curve`` maps a utilization fraction in [0, 1] to watts. Hosts
    without one are scored with the linear idle/max model.
    """

    host_id: int
    cpu: float
    memory: float
    storage: float
    bandwidth: float
    idle_power_watts: float = 100.0
    max_power_watts: float = 250.0
    power_curve: Optional[PowerCurve] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if min(self.as_vector()) < 0.0:
            raise ValueError(f"host {self.host_id} has a negative capacity")
        if self.idle_power_watts < 0.0 or self.max_power_watts < self.idle_power_watts:
            raise ValueError(
                f"host {self.host_id} power model requires 0 <= idle <= max watts"
            )

    def as_vector(self) -> tuple[float, float, float, float]:
        return (self.cpu, self.memory, self.storage, self.bandwidth)

    def power_at(self, utilization: float) -> float:
        utilization = min(max(utilization, 0.0), 1.0)
        if self.power_curve is not None:
            return float(self.power_curve(utilization))
        return self.idle_power_watts + (
            self.max_power_watts - self.idle_power_watts
        ) * utilization


@dataclass(frozen=True)
class ObjectiveScores:
    utilization: float
    load_balance: float
    fragmentation: float
    power: float
    sla: float

    def to_dict(self) -> dict[str, float]:
        return {
            "utilization": self.utilization,
            "load_balance": self.load_balance,
            "fragmentation": self.fragmentation,
            "power": self.power,
            "sla": self.sla,
        }


@dataclass(frozen=True)
class FitnessEvaluation:
    fitness: float
    feasible: bool
    scores: ObjectiveScores
    placed_ratio: float
    overcommitted_hosts: int


@dataclass(frozen=True)
class CandidateSolution:
    """One point in the search space: a host index per VM plus its score."""

    assignment: tuple[int, ...]
    fitness: float
    feasible: bool
    scores: ObjectiveScores

    @property
    def placed_count(self) -> int:
        return sum(1 for host_index in self.assignment if host_index != UNASSIGNED)


class TerminationReason(str, Enum):
    NO_INPUT = "no_input"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True)
class OptimizationResult:
    best: Optional[CandidateSolution]
    history: tuple[float, ...]
    iterations: int
    termination_reason: TerminationReason
    convergence_iteration: int
    vm_ids: tuple[int, ...] = ()
    host_ids: tuple[int, ...] = ()
    diversity_history: tuple[float, ...] = ()
    function_evaluations: int = 0
    escape_count: int = 0
    elapsed_seconds: float = field(default=0.0, compare=False)

    @classmethod
    def empty(cls) -> OptimizationResult:
        return cls(
            best=None,
            history=(),
            iterations=0,
            termination_reason=TerminationReason.NO_INPUT,
            convergence_iteration=0,
        )

    @property
    def best_fitness(self) -> float:
        return self.best.fitness if self.best is not None else 0.0

    @property
    def converged(self) -> bool:
        return self.termination_reason is TerminationReason.CONVERGED

    def best_mapping(self) -> dict[int, int]:
        """Map VM id to host id; VMs that could not be placed are absent."""
        if self.best is None:
            return {}
        return {
            vm_id: self.host_ids[host_index]
            for vm_id, host_index in zip(self.vm_ids, self.best.assignment)
            if host_index != UNASSIGNED
        }

    def unallocated_vm_ids(self) -> list[int]:
        mapping = self.best_mapping()
        return [vm_id for vm_id in self.vm_ids if vm_id not in mapping]

    def convergence_iterations(self) -> int:
        return self.convergence_iteration

    def fitness_history(self) -> list[float]:
        return list(self.history)

"""Multi-objective fitness evaluation for candidate placements."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from vmplacement.domain.constraints import OptimizationParameters
from vmplacement.domain.models import (
    CAPACITY_EPSILON,
    UNASSIGNED,
    FitnessEvaluation,
    HostCapacity,
    ObjectiveScores,
    VmDemand,
)


# Largest possible variance of values confined to [0, 1].
_MAX_UTILIZATION_VARIANCE = 0.25

_ZERO_SCORES = ObjectiveScores(
    utilization=0.0,
    load_balance=0.0,
    fragmentation=0.0,
    power=0.0,
    sla=0.0,
)


class FitnessEvaluator:
    """Scores host-index assignments against a fixed VM/host snapshot.

    The evaluator is read-only after construction, so one instance can be
    shared by every worker thread scoring the same iteration.
    """

    def __init__(
        self,
        vm_demands: Sequence[VmDemand],
        host_capacities: Sequence[HostCapacity],
        parameters: OptimizationParameters,
    ) -> None:
        self._hosts = list(host_capacities)
        self._parameters = parameters
        self._weights = np.asarray(parameters.weights.as_tuple(), dtype=float)
        self._demands = np.asarray([vm.as_vector() for vm in vm_demands], dtype=float).reshape(
            len(vm_demands), 4
        )
        self._capacities = np.asarray(
            [host.as_vector() for host in self._hosts], dtype=float
        ).reshape(len(self._hosts), 4)
        self._tolerance = CAPACITY_EPSILON * np.maximum(self._capacities, 1.0)
        self._peak_watts = float(sum(host.power_at(1.0) for host in self._hosts))

    @property
    def demands(self) -> np.ndarray:
        return self._demands

    @property
    def capacities(self) -> np.ndarray:
        return self._capacities

    def host_loads(self, assignment: np.ndarray) -> np.ndarray:
        """Aggregate per-host demand for every placed VM."""
        loads = np.zeros_like(self._capacities)
        placed = assignment != UNASSIGNED
        if np.any(placed):
            np.add.at(loads, assignment[placed], self._demands[placed])
        return loads

    def evaluate(self, assignment: Sequence[int] | np.ndarray) -> FitnessEvaluation:
        vector = np.asarray(assignment, dtype=np.int64)
        vm_count = vector.shape[0]
        placed = vector != UNASSIGNED
        placed_count = int(np.count_nonzero(placed))
        if vm_count == 0 or placed_count == 0:
            return FitnessEvaluation(
                fitness=0.0,
                feasible=True,
                scores=_ZERO_SCORES,
                placed_ratio=0.0,
                overcommitted_hosts=0,
            )

        loads = self.host_loads(vector)
        overcommitted = np.any(loads > self._capacities + self._tolerance, axis=1)
        overcommitted_hosts = int(np.count_nonzero(overcommitted))

        used = np.bincount(vector[placed], minlength=len(self._hosts)) > 0
        fractions = np.divide(
            loads,
            self._capacities,
            out=np.zeros_like(loads),
            where=self._capacities > 0.0,
        )
        fractions = np.clip(fractions[used], 0.0, 1.0)
        host_utilization = fractions.mean(axis=1)
        peak_dimension = fractions.max(axis=1)
        used_count = host_utilization.shape[0]

        scores = ObjectiveScores(
            utilization=float(fractions.mean()),
            load_balance=self._load_balance_score(host_utilization),
            fragmentation=1.0
            - float(
                np.count_nonzero(host_utilization < self._parameters.low_utilization_threshold)
            )
            / used_count,
            power=self._power_score(np.flatnonzero(used), host_utilization),
            sla=1.0
            - float(
                np.count_nonzero(peak_dimension > self._parameters.sla_utilization_threshold)
            )
            / used_count,
        )

        placed_ratio = placed_count / vm_count
        weighted = float(
            np.dot(
                self._weights,
                (
                    scores.utilization,
                    scores.load_balance,
                    scores.fragmentation,
                    scores.power,
                    scores.sla,
                ),
            )
        )
        fitness = weighted * placed_ratio
        if overcommitted_hosts:
            fitness *= self._parameters.overcommit_penalty

        return FitnessEvaluation(
            fitness=float(np.clip(fitness, 0.0, 1.0)),
            feasible=overcommitted_hosts == 0,
            scores=scores,
            placed_ratio=placed_ratio,
            overcommitted_hosts=overcommitted_hosts,
        )

    @staticmethod
    def _load_balance_score(host_utilization: np.ndarray) -> float:
        variance = float(np.var(host_utilization))
        return float(np.clip(1.0 - variance / _MAX_UTILIZATION_VARIANCE, 0.0, 1.0))

    def _power_score(self, used_indices: np.ndarray, host_utilization: np.ndarray) -> float:
        if self._peak_watts <= 0.0:
            return 0.0
        total_watts = sum(
            self._hosts[int(index)].power_at(float(utilization))
            for index, utilization in zip(used_indices, host_utilization)
        )
        return float(np.clip(1.0 - total_watts / self._peak_watts, 0.0, 1.0))

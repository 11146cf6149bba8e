"""Placement policy layer: weight presets, run configuration and history.

The plain, SLA-aware and power-aware policies share one optimization engine
and differ only in their objective weights. Recent results are kept in a
bounded ring buffer owned by this service; the engine itself stays stateless.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Optional, Sequence

import pandas as pd

from vmplacement.domain.constraints import ObjectiveWeights, OptimizationParameters
from vmplacement.domain.models import HostCapacity, OptimizationResult, VmDemand
from vmplacement.services.optimization_service import optimize
from vmplacement.utils.config import Settings, get_settings
from vmplacement.utils.logger import get_logger


logger = get_logger(__name__)


class PlacementPolicy(str, Enum):
    STANDARD = "standard"
    SLA_AWARE = "sla_aware"
    POWER_AWARE = "power_aware"


POLICY_WEIGHTS: dict[PlacementPolicy, ObjectiveWeights] = {
    PlacementPolicy.STANDARD: ObjectiveWeights(
        utilization=0.3, load_balance=0.2, fragmentation=0.1, power=0.2, sla=0.2
    ),
    PlacementPolicy.SLA_AWARE: ObjectiveWeights(
        utilization=0.2, load_balance=0.2, fragmentation=0.1, power=0.1, sla=0.4
    ),
    PlacementPolicy.POWER_AWARE: ObjectiveWeights(
        utilization=0.25, load_balance=0.1, fragmentation=0.15, power=0.4, sla=0.1
    ),
}


@dataclass(frozen=True)
class PlacementRecord:
    policy: PlacementPolicy
    requested_at: str
    vm_count: int
    host_count: int
    result: OptimizationResult

    @property
    def allocated_count(self) -> int:
        return len(self.result.best_mapping())


@dataclass(frozen=True)
class PlacementSummary:
    total_runs: int
    allocation_success_rate: float
    average_convergence_iterations: float
    average_best_fitness: float
    converged_run_ratio: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "total_runs": self.total_runs,
            "allocation_success_rate": self.allocation_success_rate,
            "average_convergence_iterations": self.average_convergence_iterations,
            "average_best_fitness": self.average_best_fitness,
            "converged_run_ratio": self.converged_run_ratio,
        }


class PlacementService:
    """Builds optimization parameters per policy and retains recent results."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._history: deque[PlacementRecord] = deque(
            maxlen=max(1, self._settings.placement_history_size)
        )
        self._history_lock = RLock()

    def build_parameters(
        self,
        policy: PlacementPolicy = PlacementPolicy.STANDARD,
        *,
        seed: Optional[int] = None,
        population_size: Optional[int] = None,
        max_iterations: Optional[int] = None,
    ) -> OptimizationParameters:
        settings = self._settings
        return OptimizationParameters(
            population_size=(
                population_size
                if population_size is not None
                else settings.optimizer_population_size
            ),
            max_iterations=(
                max_iterations
                if max_iterations is not None
                else settings.optimizer_max_iterations
            ),
            convergence_threshold=settings.optimizer_convergence_threshold,
            convergence_patience=settings.optimizer_convergence_patience,
            weights=POLICY_WEIGHTS[policy],
            seed=seed if seed is not None else settings.optimizer_random_seed,
            low_utilization_threshold=settings.optimizer_low_utilization_threshold,
            sla_utilization_threshold=settings.optimizer_sla_utilization_threshold,
            escape_fraction=settings.optimizer_escape_fraction,
            overcommit_penalty=settings.optimizer_overcommit_penalty,
            exploration_coefficient=settings.optimizer_exploration_coefficient,
            neighborhood_radius=settings.optimizer_neighborhood_radius,
            evaluation_workers=settings.optimizer_evaluation_workers,
        )

    def place(
        self,
        vm_demands: Sequence[VmDemand],
        host_capacities: Sequence[HostCapacity],
        policy: PlacementPolicy = PlacementPolicy.STANDARD,
        *,
        seed: Optional[int] = None,
        population_size: Optional[int] = None,
        max_iterations: Optional[int] = None,
        weights: Optional[ObjectiveWeights] = None,
    ) -> OptimizationResult:
        parameters = self.build_parameters(
            policy,
            seed=seed,
            population_size=population_size,
            max_iterations=max_iterations,
        )
        if weights is not None:
            parameters = replace(parameters, weights=weights)

        result = optimize(
            vm_demands,
            host_capacities,
            parameters,
            deadline_seconds=self._settings.optimizer_deadline_seconds,
        )
        record = PlacementRecord(
            policy=policy,
            requested_at=datetime.now(timezone.utc).isoformat(),
            vm_count=len(vm_demands),
            host_count=len(host_capacities),
            result=result,
        )
        with self._history_lock:
            self._history.append(record)

        logger.info(
            "Placement completed | policy=%s | vms=%s | allocated=%s | best_fitness=%.6f | "
            "convergence_iterations=%s",
            policy.value,
            record.vm_count,
            record.allocated_count,
            result.best_fitness,
            result.convergence_iterations(),
        )
        return result

    def recent_results(self) -> list[PlacementRecord]:
        with self._history_lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()

    def history_frame(self) -> pd.DataFrame:
        records = self.recent_results()
        return pd.DataFrame(
            [
                {
                    "policy": record.policy.value,
                    "requested_at": record.requested_at,
                    "vm_count": record.vm_count,
                    "allocated_count": record.allocated_count,
                    "best_fitness": record.result.best_fitness,
                    "iterations": record.result.iterations,
                    "convergence_iterations": record.result.convergence_iterations(),
                    "converged": record.result.converged,
                }
                for record in records
            ],
            columns=[
                "policy",
                "requested_at",
                "vm_count",
                "allocated_count",
                "best_fitness",
                "iterations",
                "convergence_iterations",
                "converged",
            ],
        )

    def summary(self) -> PlacementSummary:
        frame = self.history_frame()
        if frame.empty:
            return PlacementSummary(
                total_runs=0,
                allocation_success_rate=0.0,
                average_convergence_iterations=0.0,
                average_best_fitness=0.0,
                converged_run_ratio=0.0,
            )

        total_vms = int(frame["vm_count"].sum())
        success_rate = (
            float(frame["allocated_count"].sum()) / total_vms if total_vms > 0 else 0.0
        )
        return PlacementSummary(
            total_runs=int(len(frame)),
            allocation_success_rate=success_rate,
            average_convergence_iterations=float(frame["convergence_iterations"].mean()),
            average_best_fitness=float(frame["best_fitness"].mean()),
            converged_run_ratio=float(frame["converged"].astype(float).mean()),
        )

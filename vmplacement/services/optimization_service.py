"""Hippopotamus optimization driver for VM placement."""

from __future__ import annotations

import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence

import numpy as np

from vmplacement.domain.constraints import OptimizationParameters, validate_parameters
from vmplacement.domain.models import (
    CandidateSolution,
    HostCapacity,
    OptimizationResult,
    VmDemand,
)
from vmplacement.services.convergence_service import ConvergenceTracker
from vmplacement.services.fitness_service import FitnessEvaluator
from vmplacement.services.movement_service import MovementEngine, random_positions
from vmplacement.services.population import Population
from vmplacement.services.repair_service import FeasibilityRepair
from vmplacement.utils.logger import get_logger


logger = get_logger(__name__)

PROGRESS_LOG_INTERVAL = 10

Clock = Callable[[], float]


class _Scorer:
    """Repairs and scores raw positions, optionally across worker threads."""

    def __init__(
        self,
        evaluator: FitnessEvaluator,
        repair: FeasibilityRepair,
        executor: Optional[ThreadPoolExecutor],
    ) -> None:
        self._evaluator = evaluator
        self._repair = repair
        self._executor = executor
        self.evaluations = 0

    def _score_one(self, raw_position: np.ndarray) -> CandidateSolution:
        assignment = self._repair.repair(raw_position)
        evaluation = self._evaluator.evaluate(assignment)
        return CandidateSolution(
            assignment=tuple(int(host_index) for host_index in assignment),
            fitness=evaluation.fitness,
            feasible=evaluation.feasible,
            scores=evaluation.scores,
        )

    def score_all(self, raw_positions: Sequence[np.ndarray]) -> list[CandidateSolution]:
        if self._executor is None:
            scored = [self._score_one(position) for position in raw_positions]
        else:
            # map() yields in submission order, so slot order is preserved.
            scored = list(self._executor.map(self._score_one, raw_positions))
        self.evaluations += len(scored)
        return scored


def _require_unique_ids(kind: str, ids: Sequence[int]) -> None:
    duplicates = sorted(item for item, count in Counter(ids).items() if count > 1)
    if duplicates:
        raise ValueError(f"duplicate {kind} ids: {duplicates}")


def optimize(
    vm_demands: Sequence[VmDemand],
    host_capacities: Sequence[HostCapacity],
    parameters: OptimizationParameters,
    *,
    rng: Optional[np.random.Generator] = None,
    deadline_seconds: Optional[float] = None,
    iteration_cap: Optional[int] = None,
    clock: Clock = time.monotonic,
) -> OptimizationResult:
    """Search for the best VM→host mapping within the iteration/time budget.

    Never raises for empty inputs, unplaceable VMs, non-convergence or an
    expired deadline; all of those yield a well-formed result. Malformed
    parameters and duplicate VM or host ids are rejected before any work
    starts.
    """
    validate_parameters(parameters)
    started_at = clock()

    if not vm_demands or not host_capacities:
        logger.info(
            "Optimization skipped due to empty inputs | vms=%s | hosts=%s",
            len(vm_demands),
            len(host_capacities),
        )
        return OptimizationResult.empty()

    _require_unique_ids("vm", [vm.vm_id for vm in vm_demands])
    _require_unique_ids("host", [host.host_id for host in host_capacities])

    vms = sorted(vm_demands, key=lambda vm: vm.vm_id)
    hosts = sorted(host_capacities, key=lambda host: host.host_id)
    generator = rng if rng is not None else np.random.default_rng(parameters.seed)
    max_iterations = parameters.max_iterations
    if iteration_cap is not None:
        max_iterations = max(0, min(max_iterations, iteration_cap))
    deadline = started_at + deadline_seconds if deadline_seconds is not None else None

    logger.info(
        "Starting HO optimization | vms=%s | hosts=%s | population_size=%s | "
        "max_iterations=%s | seed=%s",
        len(vms),
        len(hosts),
        parameters.population_size,
        max_iterations,
        parameters.seed,
    )

    evaluator = FitnessEvaluator(vms, hosts, parameters)
    repair = FeasibilityRepair(evaluator.demands, evaluator.capacities)
    executor = (
        ThreadPoolExecutor(max_workers=parameters.evaluation_workers)
        if parameters.evaluation_workers > 1
        else None
    )
    try:
        scorer = _Scorer(evaluator, repair, executor)
        population = Population(
            scorer.score_all(
                [
                    random_positions(generator, len(vms), len(hosts))
                    for _ in range(parameters.population_size)
                ]
            )
        )
        tracker = ConvergenceTracker(
            threshold=parameters.convergence_threshold,
            patience=parameters.convergence_patience,
            max_iterations=max_iterations,
            baseline_fitness=population.best.fitness,
        )
        movement = MovementEngine(parameters, len(hosts), generator)
        diversity_history: list[float] = []
        escape_count = 0

        while not tracker.finished:
            if deadline is not None and clock() >= deadline:
                logger.warning(
                    "Optimization deadline reached | iterations=%s | best_fitness=%.6f",
                    tracker.iterations,
                    population.best.fitness,
                )
                tracker.expire()
                break

            outcome = movement.move(population, tracker.iterations)
            population.replace_all(scorer.score_all(outcome.positions))
            population.commit_best()
            escape_count += outcome.escaped
            diversity_history.append(population.diversity())
            tracker.record(population.best.fitness)

            if tracker.iterations % PROGRESS_LOG_INTERVAL == 0:
                logger.debug(
                    "Iteration progress | iteration=%s | phase=%s | best_fitness=%.6f | "
                    "mean_fitness=%.6f | escaped=%s",
                    tracker.iterations,
                    outcome.phase.value,
                    population.best.fitness,
                    population.mean_fitness(),
                    outcome.escaped,
                )
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    result = OptimizationResult(
        best=population.best,
        history=tracker.history,
        iterations=tracker.iterations,
        termination_reason=tracker.termination_reason,
        convergence_iteration=tracker.convergence_iteration,
        vm_ids=tuple(vm.vm_id for vm in vms),
        host_ids=tuple(host.host_id for host in hosts),
        diversity_history=tuple(diversity_history),
        function_evaluations=scorer.evaluations,
        escape_count=escape_count,
        elapsed_seconds=clock() - started_at,
    )
    logger.info(
        "Optimization completed | reason=%s | iterations=%s | best_fitness=%.6f | "
        "placed=%s | unallocated=%s",
        result.termination_reason.value,
        result.iterations,
        result.best_fitness,
        len(result.best_mapping()),
        len(result.unallocated_vm_ids()),
    )
    return result

"""Hippopotamus position-update phases.

Each iteration moves every candidate with exactly one rule:

* river: drift toward the best-known placement plus a perturbation whose
  scale decays linearly over the run (first third of the budget);
* defense: bounded local perturbation around the candidate's own position,
  with a radius that shrinks over the run (rest of the budget);
* escape: candidates scoring below ``escape_fraction`` of the population mean
  are re-drawn uniformly at random, overriding the global phase.

Positions are real-valued during the update and rounded before repair. An
unassigned slot has no position to move from, so it is re-drawn before the
update; an unassigned slot in the best-known placement exerts no pull.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from vmplacement.domain.constraints import OptimizationParameters
from vmplacement.domain.models import UNASSIGNED, CandidateSolution
from vmplacement.services.population import Population


RIVER_PHASE_SHARE = 1.0 / 3.0
MIN_NEIGHBORHOOD_RADIUS = 1.0


class MovementPhase(str, Enum):
    RIVER = "river"
    DEFENSE = "defense"
    ESCAPE = "escape"


@dataclass(frozen=True)
class MovementOutcome:
    phase: MovementPhase
    positions: list[np.ndarray]
    escaped: int


def round_half_down(values: np.ndarray) -> np.ndarray:
    """Round to the nearest integer; exact halves go to the lower integer."""
    return np.ceil(values - 0.5).astype(np.int64)


def random_positions(rng: np.random.Generator, vm_count: int, host_count: int) -> np.ndarray:
    return rng.integers(0, host_count, size=vm_count, dtype=np.int64)


class MovementEngine:
    def __init__(
        self,
        parameters: OptimizationParameters,
        host_count: int,
        rng: np.random.Generator,
    ) -> None:
        self._parameters = parameters
        self._host_count = host_count
        self._rng = rng

    def phase_for(self, iteration: int) -> MovementPhase:
        if self.progress(iteration) < RIVER_PHASE_SHARE:
            return MovementPhase.RIVER
        return MovementPhase.DEFENSE

    def progress(self, iteration: int) -> float:
        return min(iteration / self._parameters.max_iterations, 1.0)

    def exploration_coefficient(self, iteration: int) -> float:
        return self._parameters.exploration_coefficient * (1.0 - self.progress(iteration))

    def neighborhood_radius(self, iteration: int) -> float:
        radius = (
            self._parameters.neighborhood_radius
            * self._host_count
            * (1.0 - self.progress(iteration))
        )
        return max(MIN_NEIGHBORHOOD_RADIUS, radius)

    def move(self, population: Population, iteration: int) -> MovementOutcome:
        """Return one raw integer position per slot, in slot order.

        Escape eligibility is judged on the fitness scored in the previous
        iteration, and the river phase reads the best-known solution committed
        at the previous barrier.
        """
        phase = self.phase_for(iteration)
        escape_floor = self._parameters.escape_fraction * population.mean_fitness()
        best = np.asarray(population.best.assignment, dtype=float)

        positions: list[np.ndarray] = []
        escaped = 0
        for member in population:
            if member.fitness < escape_floor:
                positions.append(random_positions(self._rng, best.shape[0], self._host_count))
                escaped += 1
                continue
            if phase is MovementPhase.RIVER:
                moved = self._river(member, best, iteration)
            else:
                moved = self._defense(member, iteration)
            positions.append(round_half_down(moved))

        return MovementOutcome(phase=phase, positions=positions, escaped=escaped)

    def _river(
        self,
        member: CandidateSolution,
        best: np.ndarray,
        iteration: int,
    ) -> np.ndarray:
        current = self._anchor(member.assignment)
        target = np.where(best == UNASSIGNED, current, best)
        pull = self._rng.random(current.shape[0])
        noise = self._rng.uniform(-1.0, 1.0, current.shape[0])
        scale = self.exploration_coefficient(iteration) * self._host_count / 2.0
        return current + pull * (target - current) + scale * noise

    def _defense(self, member: CandidateSolution, iteration: int) -> np.ndarray:
        current = self._anchor(member.assignment)
        radius = self.neighborhood_radius(iteration)
        return current + self._rng.uniform(-radius, radius, current.shape[0])

    def _anchor(self, assignment: tuple[int, ...]) -> np.ndarray:
        current = np.asarray(assignment, dtype=float)
        unassigned = current == UNASSIGNED
        if np.any(unassigned):
            current[unassigned] = self._rng.integers(
                0, self._host_count, size=int(np.count_nonzero(unassigned))
            )
        return current

"""Convergence tracking and termination decisions."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from vmplacement.domain.models import TerminationReason


class ConvergenceState(str, Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    DEADLINE_EXCEEDED = "deadline_exceeded"


_TERMINATION_BY_STATE = {
    ConvergenceState.CONVERGED: TerminationReason.CONVERGED,
    ConvergenceState.MAX_ITERATIONS_REACHED: TerminationReason.MAX_ITERATIONS_REACHED,
    ConvergenceState.DEADLINE_EXCEEDED: TerminationReason.DEADLINE_EXCEEDED,
}


class ConvergenceTracker:
    """Records best fitness per iteration and decides when the loop stops.

    An iteration counts as stalled when the best fitness improved by no more
    than ``threshold`` over the previous iteration (or over the initial
    population for the first one). ``patience`` consecutive stalls converge.
    """

    def __init__(
        self,
        *,
        threshold: float,
        patience: int,
        max_iterations: int,
        baseline_fitness: float,
    ) -> None:
        self._threshold = threshold
        self._patience = patience
        self._max_iterations = max_iterations
        self._last_fitness = baseline_fitness
        self._history: list[float] = []
        self._stalled = 0
        self._state = ConvergenceState.RUNNING
        self._convergence_iteration: Optional[int] = None
        if max_iterations <= 0:
            self._state = ConvergenceState.MAX_ITERATIONS_REACHED

    @property
    def state(self) -> ConvergenceState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state is not ConvergenceState.RUNNING

    @property
    def iterations(self) -> int:
        return len(self._history)

    @property
    def history(self) -> tuple[float, ...]:
        return tuple(self._history)

    @property
    def stalled_iterations(self) -> int:
        return self._stalled

    @property
    def convergence_iteration(self) -> int:
        """Iteration at which patience was exhausted, else iterations completed."""
        if self._convergence_iteration is not None:
            return self._convergence_iteration
        return self.iterations

    @property
    def termination_reason(self) -> TerminationReason:
        if not self.finished:
            raise RuntimeError("convergence tracker is still running")
        return _TERMINATION_BY_STATE[self._state]

    def record(self, best_fitness: float) -> ConvergenceState:
        if self.finished:
            raise RuntimeError(f"cannot record after termination ({self._state.value})")

        improvement = best_fitness - self._last_fitness
        self._history.append(best_fitness)
        self._last_fitness = best_fitness

        if improvement <= self._threshold:
            self._stalled += 1
        else:
            self._stalled = 0

        if self._stalled >= self._patience:
            self._state = ConvergenceState.CONVERGED
            self._convergence_iteration = self.iterations
        elif self.iterations >= self._max_iterations:
            self._state = ConvergenceState.MAX_ITERATIONS_REACHED
        return self._state

    def expire(self) -> None:
        """Stop the loop because the caller's deadline has passed."""
        if not self.finished:
            self._state = ConvergenceState.DEADLINE_EXCEEDED

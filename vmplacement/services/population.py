"""Population of candidate placements with a monotonic best-known record."""

from __future__ import annotations

from typing import Iterator, Sequence

import numpy as np

from vmplacement.domain.models import CandidateSolution


class Population:
    """Fixed-size ordered collection of candidate solutions.

    Slots are replaced wholesale through :meth:`replace_all`; the best-known
    solution only changes through :meth:`commit_best`, which is called once per
    iteration after every slot has been scored.
    """

    def __init__(self, members: Sequence[CandidateSolution]) -> None:
        if not members:
            raise ValueError("population requires at least one candidate")
        self._members = list(members)
        self._size = len(self._members)
        self._best: CandidateSolution = self.current_best()

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[CandidateSolution]:
        return iter(self._members)

    def __getitem__(self, index: int) -> CandidateSolution:
        return self._members[index]

    @property
    def members(self) -> list[CandidateSolution]:
        return list(self._members)

    @property
    def best(self) -> CandidateSolution:
        return self._best

    def replace_all(self, members: Sequence[CandidateSolution]) -> None:
        if len(members) != self._size:
            raise ValueError(
                f"population size is fixed at {self._size}, got {len(members)} members"
            )
        self._members = list(members)

    def current_best(self) -> CandidateSolution:
        # max() keeps the first of equal candidates, i.e. the lowest slot.
        return max(self._members, key=lambda member: member.fitness)

    def commit_best(self) -> bool:
        """Promote the current iteration's best if it strictly improves."""
        candidate = self.current_best()
        if candidate.fitness > self._best.fitness:
            self._best = candidate
            return True
        return False

    def fitness_values(self) -> np.ndarray:
        return np.asarray([member.fitness for member in self._members], dtype=float)

    def mean_fitness(self) -> float:
        return float(self.fitness_values().mean())

    def diversity(self) -> float:
        """Mean normalized Hamming distance over all member pairs."""
        if self._size < 2:
            return 0.0
        positions = np.asarray([member.assignment for member in self._members])
        if positions.shape[1] == 0:
            return 0.0
        total = 0.0
        pairs = 0
        for i in range(self._size - 1):
            differences = positions[i + 1 :] != positions[i]
            total += float(differences.mean(axis=1).sum())
            pairs += self._size - 1 - i
        return total / pairs

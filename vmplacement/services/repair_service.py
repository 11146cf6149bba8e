"""Feasibility repair for raw host-index vectors."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from vmplacement.domain.models import CAPACITY_EPSILON, UNASSIGNED


class FeasibilityRepair:
    """Maps raw assignments onto in-range, capacity-respecting ones.

    ``demands`` and ``capacities`` must already be ordered by ascending VM id
    and host id respectively; VMs are processed in that order and ties on
    remaining capacity fall to the lowest host index.
    """

    def __init__(self, demands: np.ndarray, capacities: np.ndarray) -> None:
        self._demands = np.asarray(demands, dtype=float)
        self._capacities = np.asarray(capacities, dtype=float)
        self._host_count = self._capacities.shape[0]
        self._tolerance = CAPACITY_EPSILON * np.maximum(self._capacities, 1.0)

    def repair(self, raw_assignment: Sequence[int] | np.ndarray) -> np.ndarray:
        assignment = np.mod(np.asarray(raw_assignment, dtype=np.int64), self._host_count)
        used = np.zeros_like(self._capacities)

        for vm_index, host_index in enumerate(assignment):
            demand = self._demands[vm_index]
            if self._fits(used[host_index] + demand, host_index):
                used[host_index] += demand
                continue

            fallback = self._roomiest_host(used, demand)
            assignment[vm_index] = fallback
            if fallback != UNASSIGNED:
                used[fallback] += demand

        return assignment

    def _fits(self, load: np.ndarray, host_index: int) -> bool:
        limit = self._capacities[host_index] + self._tolerance[host_index]
        return bool(np.all(load <= limit))

    def _roomiest_host(self, used: np.ndarray, demand: np.ndarray) -> int:
        fits = np.all(used + demand <= self._capacities + self._tolerance, axis=1)
        if not np.any(fits):
            return UNASSIGNED
        remaining = np.clip(self._capacities - used, 0.0, None)
        headroom = np.divide(
            remaining,
            self._capacities,
            out=np.zeros_like(remaining),
            where=self._capacities > 0.0,
        ).mean(axis=1)
        headroom = np.where(fits, headroom, -np.inf)
        # argmax returns the first maximum, i.e. the lowest host index.
        return int(np.argmax(headroom))

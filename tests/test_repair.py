from __future__ import annotations

import numpy as np

from vmplacement.domain.models import UNASSIGNED
from vmplacement.services.repair_service import FeasibilityRepair


def _uniform(rows: int, value: float) -> np.ndarray:
    return np.full((rows, 4), value, dtype=float)


def test_out_of_range_indices_wrap_by_modulo() -> None:
    repair = FeasibilityRepair(_uniform(3, 1.0), _uniform(3, 100.0))

    repaired = repair.repair([3, 4, -1])

    assert repaired.tolist() == [0, 1, 2]


def test_overflowing_vm_moves_to_roomiest_host() -> None:
    demands = np.array(
        [
            [2.0, 2.0, 2.0, 2.0],
            [6.0, 6.0, 6.0, 6.0],
            [6.0, 6.0, 6.0, 6.0],
        ]
    )
    repair = FeasibilityRepair(demands, _uniform(3, 10.0))

    # Host 1 still fits the last VM but host 2 has more headroom left.
    repaired = repair.repair([1, 0, 0])

    assert repaired.tolist() == [1, 0, 2]


def test_remaining_capacity_ties_go_to_lowest_host() -> None:
    repair = FeasibilityRepair(_uniform(2, 6.0), _uniform(3, 10.0))

    repaired = repair.repair([2, 2])

    assert repaired.tolist() == [2, 0]


def test_vm_without_any_room_is_left_unassigned() -> None:
    demands = np.array(
        [
            [5.0, 5.0, 5.0, 5.0],
            [50.0, 1.0, 1.0, 1.0],
            [5.0, 5.0, 5.0, 5.0],
        ]
    )
    repair = FeasibilityRepair(demands, _uniform(2, 10.0))

    repaired = repair.repair([0, 0, 1])

    assert repaired.tolist() == [0, UNASSIGNED, 1]


def test_feasible_vector_is_returned_unchanged() -> None:
    repair = FeasibilityRepair(_uniform(4, 5.0), _uniform(2, 10.0))

    repaired = repair.repair([1, 0, 1, 0])

    assert repaired.tolist() == [1, 0, 1, 0]


def test_repair_is_idempotent() -> None:
    rng = np.random.default_rng(11)
    demands = rng.integers(1, 8, size=(12, 4)).astype(float)
    capacities = rng.integers(10, 20, size=(4, 4)).astype(float)
    repair = FeasibilityRepair(demands, capacities)

    for _ in range(25):
        raw = rng.integers(-6, 10, size=12)
        once = repair.repair(raw)
        twice = repair.repair(once)
        assert once.tolist() == twice.tolist()


def test_repaired_hosts_never_exceed_capacity() -> None:
    rng = np.random.default_rng(5)
    demands = rng.integers(1, 9, size=(15, 4)).astype(float)
    capacities = rng.integers(10, 25, size=(3, 4)).astype(float)
    repair = FeasibilityRepair(demands, capacities)

    for _ in range(25):
        repaired = repair.repair(rng.integers(0, 3, size=15))
        for host_index in range(3):
            members = repaired == host_index
            assert np.all(demands[members].sum(axis=0) <= capacities[host_index])


def test_repair_does_not_mutate_input() -> None:
    repair = FeasibilityRepair(_uniform(2, 1.0), _uniform(2, 10.0))
    raw = np.array([5, -3])

    repair.repair(raw)

    assert raw.tolist() == [5, -3]


def test_vms_filling_host_exactly_are_all_placed() -> None:
    # 0.1 + 0.1 + 0.1 exceeds 0.3 by one ulp in binary floating point.
    repair = FeasibilityRepair(_uniform(3, 0.1), _uniform(1, 0.3))

    repaired = repair.repair([0, 0, 0])

    assert repaired.tolist() == [0, 0, 0]


def test_exact_fit_counts_when_choosing_fallback_host() -> None:
    demands = np.array(
        [
            [0.1, 0.1, 0.1, 0.1],
            [0.1, 0.1, 0.1, 0.1],
            [0.2, 0.2, 0.2, 0.2],
            [0.1, 0.1, 0.1, 0.1],
        ]
    )
    capacities = np.array([[0.1, 0.1, 0.1, 0.1], [0.3, 0.3, 0.3, 0.3]])
    repair = FeasibilityRepair(demands, capacities)

    repaired = repair.repair([0, 1, 0, 0])

    assert repaired.tolist() == [0, 1, 1, UNASSIGNED]

from __future__ import annotations

import itertools
from dataclasses import replace

import numpy as np
import pytest

from vmplacement.domain.constraints import OptimizationParameters, ParameterValidationError
from vmplacement.domain.models import HostCapacity, TerminationReason, VmDemand
from vmplacement.services.optimization_service import optimize


def _build_vms(count: int = 12, seed: int = 4) -> list[VmDemand]:
    rng = np.random.default_rng(seed)
    return [
        VmDemand(
            vm_id=100 + index,
            cpu=float(rng.integers(200, 900)),
            memory=float(rng.integers(512, 3072)),
            storage=float(rng.integers(5, 40)),
            bandwidth=float(rng.integers(50, 300)),
        )
        for index in range(count)
    ]


def _build_hosts(count: int = 5) -> list[HostCapacity]:
    return [
        HostCapacity(
            host_id=10 + index,
            cpu=3000.0,
            memory=8192.0,
            storage=120.0,
            bandwidth=1000.0,
        )
        for index in range(count)
    ]


def _build_parameters(**overrides) -> OptimizationParameters:
    defaults = {
        "population_size": 12,
        "max_iterations": 30,
        "convergence_threshold": 1e-6,
        "convergence_patience": 8,
        "seed": 42,
    }
    defaults.update(overrides)
    return OptimizationParameters(**defaults)


def _assert_capacity_respected(result, vms, hosts) -> None:
    demand_by_vm = {vm.vm_id: np.asarray(vm.as_vector()) for vm in vms}
    capacity_by_host = {host.host_id: np.asarray(host.as_vector()) for host in hosts}
    loads = {host_id: np.zeros(4) for host_id in capacity_by_host}
    for vm_id, host_id in result.best_mapping().items():
        loads[host_id] += demand_by_vm[vm_id]
    for host_id, load in loads.items():
        assert np.all(load <= capacity_by_host[host_id])


def test_seeded_runs_are_identical() -> None:
    vms, hosts = _build_vms(), _build_hosts()

    first = optimize(vms, hosts, _build_parameters())
    second = optimize(vms, hosts, _build_parameters())

    assert first == second
    assert first.best_mapping() == second.best_mapping()
    assert first.fitness_history() == second.fitness_history()


def test_parallel_scoring_matches_sequential() -> None:
    vms, hosts = _build_vms(), _build_hosts()

    sequential = optimize(vms, hosts, _build_parameters())
    parallel = optimize(vms, hosts, _build_parameters(evaluation_workers=4))

    assert sequential == parallel


def test_input_order_does_not_change_result() -> None:
    vms, hosts = _build_vms(), _build_hosts()

    forward = optimize(vms, hosts, _build_parameters())
    reversed_inputs = optimize(list(reversed(vms)), list(reversed(hosts)), _build_parameters())

    assert forward.best_mapping() == reversed_inputs.best_mapping()


def test_mapping_respects_host_capacity() -> None:
    vms, hosts = _build_vms(count=20), _build_hosts(count=4)

    result = optimize(vms, hosts, _build_parameters())

    _assert_capacity_respected(result, vms, hosts)
    assert set(result.best_mapping().values()) <= {host.host_id for host in hosts}


def test_best_fitness_history_is_non_decreasing_and_bounded() -> None:
    parameters = _build_parameters(max_iterations=25, convergence_patience=25)

    result = optimize(_build_vms(), _build_hosts(), parameters)
    history = result.fitness_history()

    assert len(history) <= parameters.max_iterations
    assert all(later >= earlier for earlier, later in zip(history, history[1:]))
    assert result.best_fitness == history[-1]
    assert result.iterations == len(history)


def test_empty_vm_list_returns_empty_result() -> None:
    result = optimize([], _build_hosts(), _build_parameters())

    assert result.best is None
    assert result.best_mapping() == {}
    assert result.fitness_history() == []
    assert result.iterations == 0
    assert result.convergence_iterations() == 0
    assert result.termination_reason is TerminationReason.NO_INPUT


def test_empty_host_list_returns_empty_result() -> None:
    result = optimize(_build_vms(), [], _build_parameters())

    assert result.best_mapping() == {}
    assert result.iterations == 0


@pytest.mark.parametrize("population_size", [1, 3, 10])
@pytest.mark.parametrize("max_iterations", [1, 5])
def test_single_fitting_vm_lands_on_single_host(population_size, max_iterations) -> None:
    vm = VmDemand(vm_id=7, cpu=4.0, memory=4.0, storage=4.0, bandwidth=4.0)
    host = HostCapacity(host_id=3, cpu=4.0, memory=4.0, storage=4.0, bandwidth=4.0)
    parameters = _build_parameters(population_size=population_size, max_iterations=max_iterations)

    result = optimize([vm], [host], parameters)

    assert result.best_mapping() == {7: 3}


def test_oversized_vm_is_never_mapped() -> None:
    vms = _build_vms(count=6)
    giant = VmDemand(vm_id=999, cpu=1e6, memory=1.0, storage=1.0, bandwidth=1.0)
    hosts = _build_hosts(count=3)

    for seed in range(3):
        result = optimize(vms + [giant], hosts, _build_parameters(seed=seed))
        assert 999 not in result.best_mapping()
        assert 999 in result.unallocated_vm_ids()
        assert len(result.best_mapping()) == len(vms)


def test_flat_fitness_converges_before_budget() -> None:
    vm = VmDemand(vm_id=1, cpu=1.0, memory=1.0, storage=1.0, bandwidth=1.0)
    host = HostCapacity(host_id=1, cpu=2.0, memory=2.0, storage=2.0, bandwidth=2.0)
    parameters = _build_parameters(
        convergence_threshold=0.0,
        convergence_patience=3,
        max_iterations=50,
    )

    result = optimize([vm], [host], parameters)

    assert result.termination_reason is TerminationReason.CONVERGED
    assert result.convergence_iterations() == 3
    assert result.convergence_iterations() < parameters.max_iterations
    assert len(result.fitness_history()) == 3


def test_iteration_budget_is_reported_when_not_converged() -> None:
    parameters = _build_parameters(max_iterations=4, convergence_patience=50)

    result = optimize(_build_vms(), _build_hosts(), parameters)

    assert result.termination_reason is TerminationReason.MAX_ITERATIONS_REACHED
    assert result.iterations == 4
    assert result.convergence_iterations() == 4


def test_expired_deadline_returns_initial_best() -> None:
    vms, hosts = _build_vms(), _build_hosts()

    result = optimize(vms, hosts, _build_parameters(), deadline_seconds=0.0)

    assert result.termination_reason is TerminationReason.DEADLINE_EXCEEDED
    assert result.iterations == 0
    assert result.best is not None
    _assert_capacity_respected(result, vms, hosts)


def test_deadline_checked_against_injected_clock() -> None:
    ticks = itertools.count()

    result = optimize(
        _build_vms(),
        _build_hosts(),
        _build_parameters(convergence_patience=30),
        deadline_seconds=2.5,
        clock=lambda: float(next(ticks)),
    )

    assert result.termination_reason is TerminationReason.DEADLINE_EXCEEDED
    assert result.iterations == 2


def test_iteration_cap_limits_run() -> None:
    result = optimize(
        _build_vms(),
        _build_hosts(),
        _build_parameters(convergence_patience=30),
        iteration_cap=3,
    )

    assert result.iterations == 3
    assert result.termination_reason is TerminationReason.MAX_ITERATIONS_REACHED


def test_injected_generator_overrides_seed() -> None:
    vms, hosts = _build_vms(), _build_hosts()

    first = optimize(vms, hosts, _build_parameters(seed=1), rng=np.random.default_rng(99))
    second = optimize(vms, hosts, _build_parameters(seed=2), rng=np.random.default_rng(99))

    assert first.best_mapping() == second.best_mapping()
    assert first.fitness_history() == second.fitness_history()


def test_diagnostics_are_recorded() -> None:
    parameters = _build_parameters(max_iterations=6, convergence_patience=10)

    result = optimize(_build_vms(), _build_hosts(), parameters)

    assert len(result.diversity_history) == result.iterations
    assert all(0.0 <= value <= 1.0 for value in result.diversity_history)
    assert result.function_evaluations == parameters.population_size * (result.iterations + 1)
    assert result.vm_ids == tuple(sorted(result.vm_ids))


def test_malformed_parameters_fail_before_optimizing() -> None:
    with pytest.raises(ParameterValidationError):
        replace(_build_parameters(), population_size=0)


def test_vms_filling_host_exactly_are_all_placed() -> None:
    vms = [
        VmDemand(vm_id=index, cpu=0.1, memory=0.1, storage=0.1, bandwidth=0.1)
        for index in range(3)
    ]
    host = HostCapacity(host_id=1, cpu=0.3, memory=0.3, storage=0.3, bandwidth=0.3)

    result = optimize(vms, [host], _build_parameters(max_iterations=5))

    assert result.best_mapping() == {0: 1, 1: 1, 2: 1}
    assert result.unallocated_vm_ids() == []
    assert result.best.scores.utilization == pytest.approx(1.0)


def test_duplicate_host_ids_are_rejected() -> None:
    hosts = _build_hosts(count=2)
    duplicated = hosts + [replace(hosts[0], cpu=10.0)]

    with pytest.raises(ValueError, match="duplicate host ids: \\[10\\]"):
        optimize(_build_vms(count=3), duplicated, _build_parameters())


def test_duplicate_vm_ids_are_rejected() -> None:
    vms = _build_vms(count=3)

    with pytest.raises(ValueError, match="duplicate vm ids"):
        optimize(vms + vms[:1], _build_hosts(), _build_parameters())

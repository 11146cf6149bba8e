#!/usr/bin/env python3
"""Validate local placement-optimizer environment readiness."""

from __future__ import annotations

import importlib
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vmplacement.domain.constraints import OptimizationParameters
from vmplacement.domain.models import HostCapacity, VmDemand
from vmplacement.services.optimization_service import optimize

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def _smoke_inputs() -> tuple[list[VmDemand], list[HostCapacity]]:
    vms = [
        VmDemand(vm_id=vm_id, cpu=500.0, memory=1024.0, storage=10.0, bandwidth=100.0)
        for vm_id in range(12)
    ]
    hosts = [
        HostCapacity(
            host_id=host_id,
            cpu=2000.0,
            memory=4096.0,
            storage=100.0,
            bandwidth=1000.0,
        )
        for host_id in range(4)
    ]
    return vms, hosts


def main() -> int:
    results: list[str] = []
    all_passed = True

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("numpy", "numpy"),
        ("pandas", "pandas"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import version

    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 3: Seeded optimization run
    vms, hosts = _smoke_inputs()
    parameters = OptimizationParameters(population_size=10, max_iterations=20, seed=7)
    try:
        first = optimize(vms, hosts, parameters)
        if len(first.best_mapping()) != len(vms):
            raise RuntimeError(
                f"expected {len(vms)} placed VMs, got {len(first.best_mapping())}"
            )
        ok, line = _print_result(
            "Optimization run",
            True,
            f": fitness={first.best_fitness:.4f} iterations={first.iterations}",
        )
    except Exception as exc:
        first = None
        ok, line = _print_result("Optimization run", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: Determinism under a fixed seed
    try:
        second = optimize(vms, hosts, parameters)
        if first is None or first != second:
            raise RuntimeError("repeated seeded runs produced different results")
        ok, line = _print_result("Seeded determinism", True)
    except Exception as exc:
        ok, line = _print_result("Seeded determinism", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    print(SEPARATOR_LINE)
    print(" Placement Optimizer Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

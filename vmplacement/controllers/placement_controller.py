"""HTTP controller layer for VM placement optimization."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator

from vmplacement.domain.constraints import ObjectiveWeights, ParameterValidationError
from vmplacement.domain.models import HostCapacity, VmDemand
from vmplacement.services.placement_service import PlacementPolicy, PlacementService
from vmplacement.utils.config import get_settings
from vmplacement.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["placement"])


class VmDemandRequest(BaseModel):
    vm_id: int = Field(ge=0)
    cpu: float = Field(ge=0.0)
    memory: float = Field(ge=0.0)
    storage: float = Field(default=0.0, ge=0.0)
    bandwidth: float = Field(default=0.0, ge=0.0)


class HostCapacityRequest(BaseModel):
    host_id: int = Field(ge=0)
    cpu: float = Field(ge=0.0)
    memory: float = Field(ge=0.0)
    storage: float = Field(default=0.0, ge=0.0)
    bandwidth: float = Field(default=0.0, ge=0.0)
    idle_power_watts: float = Field(default=settings.power_default_idle_watts, ge=0.0)
    max_power_watts: float = Field(default=settings.power_default_max_watts, ge=0.0)


class ObjectiveWeightsRequest(BaseModel):
    utilization: float = Field(ge=0.0, le=1.0)
    load_balance: float = Field(ge=0.0, le=1.0)
    fragmentation: float = Field(ge=0.0, le=1.0)
    power: float = Field(ge=0.0, le=1.0)
    sla: float = Field(ge=0.0, le=1.0)


class OptimizePlacementRequest(BaseModel):
    vms: list[VmDemandRequest]
    hosts: list[HostCapacityRequest]
    policy: PlacementPolicy = PlacementPolicy.STANDARD
    seed: int | None = Field(default=None, ge=0)
    population_size: int | None = Field(default=None, gt=0)
    max_iterations: int | None = Field(default=None, gt=0)
    weights: ObjectiveWeightsRequest | None = None

    @field_validator("vms")
    @classmethod
    def validate_unique_vm_ids(cls, value: list[VmDemandRequest]) -> list[VmDemandRequest]:
        if len({item.vm_id for item in value}) != len(value):
            raise ValueError("vm_id values must be unique")
        return value

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, value: list[HostCapacityRequest]) -> list[HostCapacityRequest]:
        if len({item.host_id for item in value}) != len(value):
            raise ValueError("host_id values must be unique")
        for item in value:
            if item.max_power_watts < item.idle_power_watts:
                raise ValueError("max_power_watts must be >= idle_power_watts")
        return value


class PlacementAssignmentResponse(BaseModel):
    vm_id: int
    host_id: int


class OptimizePlacementResponse(BaseModel):
    assignments: list[PlacementAssignmentResponse]
    unallocated_vm_ids: list[int]
    best_fitness: float = Field(ge=0.0, le=1.0)
    objective_scores: dict[str, float]
    iterations: int = Field(ge=0)
    convergence_iterations: int = Field(ge=0)
    fitness_history: list[float]
    termination_reason: str


class PlacementSummaryResponse(BaseModel):
    total_runs: int = Field(ge=0)
    allocation_success_rate: float = Field(ge=0.0, le=1.0)
    average_convergence_iterations: float = Field(ge=0.0)
    average_best_fitness: float = Field(ge=0.0, le=1.0)
    converged_run_ratio: float = Field(ge=0.0, le=1.0)


def get_placement_service(request: Request) -> PlacementService:
    service = getattr(request.app.state, "placement_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Placement service is not initialized",
        )
    return service


@router.post(
    "/optimize_placement",
    response_model=OptimizePlacementResponse,
    status_code=status.HTTP_200_OK,
)
async def optimize_placement(
    payload: OptimizePlacementRequest,
    service: PlacementService = Depends(get_placement_service),
) -> OptimizePlacementResponse:
    """Run the hippopotamus search for the submitted VM/host snapshot."""
    try:
        result = service.place(
            [VmDemand(**item.model_dump()) for item in payload.vms],
            [HostCapacity(**item.model_dump()) for item in payload.hosts],
            payload.policy,
            seed=payload.seed,
            population_size=payload.population_size,
            max_iterations=payload.max_iterations,
            weights=(
                ObjectiveWeights(**payload.weights.model_dump())
                if payload.weights is not None
                else None
            ),
        )
        mapping = result.best_mapping()
        return OptimizePlacementResponse(
            assignments=[
                PlacementAssignmentResponse(vm_id=vm_id, host_id=host_id)
                for vm_id, host_id in sorted(mapping.items())
            ],
            unallocated_vm_ids=result.unallocated_vm_ids(),
            best_fitness=result.best_fitness,
            objective_scores=(
                result.best.scores.to_dict() if result.best is not None else {}
            ),
            iterations=result.iterations,
            convergence_iterations=result.convergence_iterations(),
            fitness_history=result.fitness_history(),
            termination_reason=result.termination_reason.value,
        )
    except ParameterValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected placement optimization failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to optimize placement",
        ) from exc


@router.get(
    "/placement_summary",
    response_model=PlacementSummaryResponse,
    status_code=status.HTTP_200_OK,
)
async def placement_summary(
    service: PlacementService = Depends(get_placement_service),
) -> PlacementSummaryResponse:
    """Aggregate statistics over the retained placement history."""
    return PlacementSummaryResponse(**service.summary().to_dict())

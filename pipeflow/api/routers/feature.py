"""Feature API router."""

from collections.abc import Sequence

from fastapi import APIRouter, Body, status

from pipeflow.api.dependencies import FeatureServiceDep
from pipeflow.models.feature import Feature, FeatureCreate, FeatureRead
from pipeflow.models.pipeline_definition import WorkflowGraph

router = APIRouter()


@router.post("", response_model=FeatureRead, status_code=status.HTTP_201_CREATED)
async def create_feature(data: FeatureCreate, service: FeatureServiceDep) -> Feature:
    """Create a feature from an authored graph.

    Raises:
        PipelineValidationError: If the graph is invalid (→ 422 with errors and warnings).
        FeatureAlreadyExistsError: If the feature ID is taken (→ 409).
    """
    return await service.create_feature(data)


@router.get("", response_model=list[FeatureRead])
async def list_features(service: FeatureServiceDep) -> Sequence[Feature]:
    return await service.list_features()


@router.get("/{feature_id}", response_model=FeatureRead)
async def get_feature(feature_id: str, service: FeatureServiceDep) -> Feature:
    return await service.get_feature(feature_id)


@router.patch("/{feature_id}/enabled", response_model=FeatureRead)
async def set_feature_enabled(
    feature_id: str,
    service: FeatureServiceDep,
    enabled: bool = Body(embed=True),
) -> Feature:
    """Enable or disable a feature for new tasks."""
    return await service.set_enabled(feature_id, enabled)


@router.put("/{feature_id}/pipeline", response_model=FeatureRead)
async def update_feature_pipeline(
    feature_id: str, graph: WorkflowGraph, service: FeatureServiceDep
) -> Feature:
    """Store a new pipeline version from a graph and switch the feature to it."""
    return await service.update_pipeline(feature_id, graph)

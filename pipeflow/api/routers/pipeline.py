"""Pipeline authoring API router.

Validation endpoints are pure: they analyse the submitted graph and never
touch the database. Stored pipeline versions are read-only.
"""

from fastapi import APIRouter

from pipeflow.api.dependencies import FeatureServiceDep
from pipeflow.models.pipeline_definition import (
    CycleDetectionResult,
    PipelineDefinition,
    PipelineDefinitionRead,
    PipelineStep,
    TopologyValidationResult,
    WorkflowGraph,
)
from pipeflow.services.pipeline.linearizer import linearize
from pipeflow.services.pipeline.topology import detect_cycles, validate_topology

router = APIRouter()


@router.post("/validate", response_model=TopologyValidationResult)
async def validate_graph(graph: WorkflowGraph) -> TopologyValidationResult:
    """Validate a workflow graph and report every error and warning."""
    return validate_topology(graph.nodes, graph.edges)


@router.post("/detect-cycles", response_model=CycleDetectionResult)
async def detect_graph_cycles(graph: WorkflowGraph) -> CycleDetectionResult:
    """Run cycle detection only."""
    return detect_cycles(graph.nodes, graph.edges)


@router.post("/linearize", response_model=list[PipelineStep])
async def linearize_graph(graph: WorkflowGraph) -> list[PipelineStep]:
    """Preview the step list a graph would be stored as.

    Raises:
        PipelineConfigError: If the graph has no start node or a step lacks a provider (→ 422).
    """
    return linearize(graph.nodes, graph.edges)


@router.get("/{pipeline_id}", response_model=PipelineDefinitionRead)
async def get_pipeline_definition(
    pipeline_id: str,
    service: FeatureServiceDep,
) -> PipelineDefinition:
    """Get a stored pipeline version, e.g. ``summarize@v2``.

    Raises:
        PipelineNotFoundError: If the pipeline doesn't exist (→ 404).
    """
    return await service.get_pipeline(pipeline_id)

"""
Conversion of an authored workflow graph into an ordered step list.

The walk starts at the ``start`` node and always follows the first outgoing
edge. Branches are never executed in parallel; extra edges are reported and
ignored.

Example:
    steps = linearize(graph.nodes, graph.edges)
    # [PipelineStep(type="transcribe", ...), PipelineStep(type="summarize", ...)]
"""

from collections.abc import Sequence

from pipeflow.exceptions.domain import PipelineConfigError
from pipeflow.models.pipeline_definition import (
    START_NODE,
    PipelineEdge,
    PipelineNode,
    PipelineStep,
    RetryPolicy,
)
from pipeflow.settings import Settings
from pipeflow.settings import settings as default_settings
from pipeflow.utils.logger import logger


def linearize(
    nodes: Sequence[PipelineNode],
    edges: Sequence[PipelineEdge],
    settings: Settings | None = None,
) -> list[PipelineStep]:
    """Derive the executable step list from a graph.

    Args:
        nodes: Graph nodes.
        edges: Graph edges, in authoring order; the first edge out of a node wins.
        settings: Source of step defaults; the process settings if omitted.

    Returns:
        Steps in execution order. ``start`` and ``end`` nodes are not steps.

    Raises:
        PipelineConfigError: If there is no start node or a step node has no provider_ref.
    """
    settings = settings or default_settings
    nodes_by_id = {node.id: node for node in nodes}
    start = next((node for node in nodes if node.type == START_NODE), None)
    if start is None:
        raise PipelineConfigError("Pipeline has no start node")

    successors: dict[str, list[str]] = {}
    for edge in edges:
        if edge.source in nodes_by_id and edge.target in nodes_by_id:
            successors.setdefault(edge.source, []).append(edge.target)

    steps: list[PipelineStep] = []
    visited: set[str] = set()
    current: PipelineNode | None = start

    while current is not None:
        if current.id in visited:
            logger.warning(f"Node '{current.id}' visited twice, stopping linearization")
            break
        visited.add(current.id)

        if not current.is_terminal:
            steps.append(_to_step(current, settings))

        targets = successors.get(current.id, [])
        if len(targets) > 1:
            logger.warning(
                f"Node '{current.id}' has {len(targets)} outgoing edges; "
                f"only the first ('{targets[0]}') is followed"
            )
        current = nodes_by_id[targets[0]] if targets else None

    logger.debug(f"Linearized graph into {len(steps)} step(s): {[s.type for s in steps]}")
    return steps


def _to_step(node: PipelineNode, settings: Settings) -> PipelineStep:
    data = node.data
    if not data.provider_ref:
        raise PipelineConfigError(f"Node '{node.id}' ({node.type}) has no providerRef")

    retry_policy = data.retry_policy or RetryPolicy(
        max_retries=settings.pipeline_default_max_retries,
        retry_delay_ms=settings.pipeline_default_retry_delay_ms,
    )
    return PipelineStep(
        type=node.type,
        provider_ref=data.provider_ref,
        timeout_ms=data.timeout_ms or settings.pipeline_default_timeout_ms,
        retry_policy=retry_policy,
    )

"""
Workflow graph topology validation.

Pure analysis over a node/edge description used at authoring time. Problems
are collected into error and warning lists instead of raised, so an editor
can show every problem at once.

Example:
    from pipeflow.services.pipeline.topology import validate_topology

    result = validate_topology(graph.nodes, graph.edges)
    if not result.valid:
        print(result.errors)
"""

import re
from collections import deque
from collections.abc import Sequence

from pipeflow.models.pipeline_definition import (
    END_NODE,
    START_NODE,
    CycleDetectionResult,
    PipelineEdge,
    PipelineNode,
    TopologyValidationResult,
)
from pipeflow.settings import Settings
from pipeflow.settings import settings as default_settings
from pipeflow.utils.logger import logger

FORM_CONTEXT = "form"
SYSTEM_CONTEXT = "system"

_VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")
# Block open/close and negation markers are template syntax, not variables
_TEMPLATE_MARKERS = ("#", "/", "!")


def validate_topology(
    nodes: Sequence[PipelineNode],
    edges: Sequence[PipelineEdge],
    settings: Settings | None = None,
) -> TopologyValidationResult:
    """Validate that a workflow graph is a well-formed, executable DAG.

    Args:
        nodes: Graph nodes, in any order.
        edges: Graph edges, in any order.
        settings: Source of the default degree bounds; the process settings if omitted.

    Returns:
        Result with ``valid`` true iff no errors were found.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not nodes:
        errors.append("Pipeline must contain at least one node")
        return TopologyValidationResult(valid=False, errors=errors, warnings=warnings)

    start_count = sum(1 for node in nodes if node.type == START_NODE)
    if start_count != 1:
        errors.append(f"Pipeline must contain exactly one start node (found {start_count})")

    if not any(node.type == END_NODE for node in nodes):
        warnings.append("Pipeline has no end node; consider adding one to mark the final step")

    known_edges = _known_edges(nodes, edges)

    cycles = detect_cycles(nodes, known_edges)
    if not cycles.is_dag:
        errors.append(
            "Pipeline contains a cycle and cannot be executed; "
            f"nodes involved: {', '.join(cycles.remaining_nodes)}"
        )

    errors.extend(validate_degree_rules(nodes, known_edges, settings))

    isolated = find_isolated_nodes(nodes, known_edges)
    if isolated:
        warnings.append(f"Found {len(isolated)} isolated node(s): {', '.join(isolated)}")

    errors.extend(validate_variable_reachability(nodes, known_edges))

    logger.info(
        f"Topology validated: {len(nodes)} nodes, {len(edges)} edges, "
        f"{len(errors)} errors, {len(warnings)} warnings"
    )
    return TopologyValidationResult(valid=not errors, errors=errors, warnings=warnings)


def detect_cycles(
    nodes: Sequence[PipelineNode], edges: Sequence[PipelineEdge]
) -> CycleDetectionResult:
    """Detect cycles with Kahn's algorithm.

    Nodes left out of the topological order lie on a cycle or downstream of one.

    Args:
        nodes: Graph nodes.
        edges: Graph edges; edges referencing unknown node ids are dropped.

    Returns:
        The topological order found and the nodes that could not be ordered.
    """
    adjacency: dict[str, list[str]] = {node.id: [] for node in nodes}
    in_degree: dict[str, int] = dict.fromkeys(adjacency, 0)

    for edge in _known_edges(nodes, edges):
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    order: list[str] = []

    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for neighbor in adjacency[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    ordered = set(order)
    remaining = [node_id for node_id in adjacency if node_id not in ordered]
    return CycleDetectionResult(
        is_dag=not remaining, topological_order=order, remaining_nodes=remaining
    )


def validate_degree_rules(
    nodes: Sequence[PipelineNode],
    edges: Sequence[PipelineEdge],
    settings: Settings | None = None,
) -> list[str]:
    """Check per-node in/out-degree bounds.

    ``start`` nodes may have no incoming edges and ``end`` nodes no outgoing
    edges; every other node must stay within its configured bounds.
    """
    settings = settings or default_settings
    errors: list[str] = []
    incoming: dict[str, int] = {}
    outgoing: dict[str, int] = {}
    for edge in edges:
        outgoing[edge.source] = outgoing.get(edge.source, 0) + 1
        incoming[edge.target] = incoming.get(edge.target, 0) + 1

    for node in nodes:
        in_count = incoming.get(node.id, 0)
        out_count = outgoing.get(node.id, 0)

        if node.type == START_NODE:
            if in_count > 0:
                errors.append(f'Start node "{node.id}" must not have incoming edges')
            continue
        if node.type == END_NODE:
            if out_count > 0:
                errors.append(f'End node "{node.id}" must not have outgoing edges')
            continue

        data = node.data
        min_outputs = _bound(data.min_outputs, settings.pipeline_default_min_outputs)
        max_outputs = _bound(data.max_outputs, settings.pipeline_default_max_outputs)
        min_inputs = _bound(data.min_inputs, settings.pipeline_default_min_inputs)
        max_inputs = _bound(data.max_inputs, settings.pipeline_default_max_inputs)

        if out_count < min_outputs:
            errors.append(f'Node "{node.id}" needs at least {min_outputs} outgoing edge(s)')
        if out_count > max_outputs:
            errors.append(f'Node "{node.id}" allows at most {max_outputs} outgoing edge(s)')
        if in_count < min_inputs:
            errors.append(f'Node "{node.id}" needs at least {min_inputs} incoming edge(s)')
        if in_count > max_inputs:
            errors.append(f'Node "{node.id}" allows at most {max_inputs} incoming edge(s)')

    return errors


def find_isolated_nodes(
    nodes: Sequence[PipelineNode], edges: Sequence[PipelineEdge]
) -> list[str]:
    """Ids of nodes touched by no edge."""
    connected = {edge.source for edge in edges} | {edge.target for edge in edges}
    return [node.id for node in nodes if node.id not in connected]


def validate_variable_reachability(
    nodes: Sequence[PipelineNode], edges: Sequence[PipelineEdge]
) -> list[str]:
    """Check that every ``{{path}}`` in an input mapping has an upstream producer.

    A reference is valid when its root segment (before the first ``.``) is
    ``form`` with a start node upstream, ``system``, or the ``outputKey`` of
    the node itself or of a node reachable backwards through incoming edges.
    """
    errors: list[str] = []
    nodes_by_id = {node.id: node for node in nodes}
    reverse_adjacency: dict[str, list[str]] = {node_id: [] for node_id in nodes_by_id}
    for edge in edges:
        if edge.target in reverse_adjacency:
            reverse_adjacency[edge.target].append(edge.source)

    for node in nodes:
        if node.is_terminal:
            continue

        references = extract_referenced_vars(node.data.input_mapping or "")
        if not references:
            continue

        reachable = _reachable_roots(node.id, nodes_by_id, reverse_adjacency)
        for path in references:
            if path.split(".", 1)[0] not in reachable:
                errors.append(f'Node "{node.id}" references unreachable variable: {{{{{path}}}}}')

    return errors


def extract_referenced_vars(template: str) -> list[str]:
    """Extract unique ``{{path}}`` references from a template, in order of appearance."""
    references: list[str] = []
    for match in _VARIABLE_PATTERN.finditer(template):
        path = match.group(1).strip()
        if not path or path.startswith(_TEMPLATE_MARKERS):
            continue
        if path not in references:
            references.append(path)
    return references


def _reachable_roots(
    node_id: str,
    nodes_by_id: dict[str, PipelineNode],
    reverse_adjacency: dict[str, list[str]],
) -> set[str]:
    # Iterative reverse DFS; a recursive walk would hit the recursion limit on long chains
    roots: set[str] = set()
    visited: set[str] = set()
    stack = [node_id]

    while stack:
        current_id = stack.pop()
        if current_id in visited:
            continue
        visited.add(current_id)

        current = nodes_by_id.get(current_id)
        if current is None:
            continue

        if current.type == START_NODE:
            roots.add(FORM_CONTEXT)
        roots.add(SYSTEM_CONTEXT)
        if current.data.output_key:
            roots.add(current.data.output_key)

        stack.extend(reverse_adjacency.get(current_id, []))

    return roots


def _known_edges(
    nodes: Sequence[PipelineNode], edges: Sequence[PipelineEdge]
) -> list[PipelineEdge]:
    node_ids = {node.id for node in nodes}
    known: list[PipelineEdge] = []
    for edge in edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            logger.warning(
                f"Dropping edge {edge.source} -> {edge.target}: references an unknown node"
            )
            continue
        known.append(edge)
    return known


def _bound(value: int | None, default: int) -> int:
    return default if value is None else value

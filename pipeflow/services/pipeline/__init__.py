"""
Pipeline services: graph validation, linearization, provider lookup and execution.

Example:
    from pipeflow.services.pipeline import linearize, validate_topology

    result = validate_topology(graph.nodes, graph.edges)
    if result.valid:
        steps = linearize(graph.nodes, graph.edges)
"""

from .engine import PipelineEngine, normalize_output
from .linearizer import linearize
from .registry import (
    HttpProvider,
    Provider,
    ProviderFactory,
    ProviderOutput,
    ProviderRegistry,
    build_registry,
    register_http_providers,
)
from .topology import (
    detect_cycles,
    extract_referenced_vars,
    find_isolated_nodes,
    validate_degree_rules,
    validate_topology,
    validate_variable_reachability,
)

__all__ = [
    "HttpProvider",
    "PipelineEngine",
    "Provider",
    "ProviderFactory",
    "ProviderOutput",
    "ProviderRegistry",
    "build_registry",
    "detect_cycles",
    "extract_referenced_vars",
    "find_isolated_nodes",
    "linearize",
    "normalize_output",
    "register_http_providers",
    "validate_degree_rules",
    "validate_topology",
    "validate_variable_reachability",
]

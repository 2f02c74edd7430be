"""Workflow graph schemas and the DB-backed pipeline definition model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlmodel import JSON, Column
from sqlmodel import Field as SQLField
from sqlmodel import SQLModel

from .base import utcnow

START_NODE = "start"
END_NODE = "end"
TERMINAL_NODE_TYPES = frozenset({START_NODE, END_NODE})


class CamelModel(BaseModel):
    """Accepts both camelCase (editor payloads) and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RetryPolicy(CamelModel):
    """Fixed-delay retry policy for one step.

    Args:
        max_retries: Additional attempts after the first one.
        retry_delay_ms: Delay between attempts, never scaled.
    """

    max_retries: int = Field(default=0, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0)


class NodeData(CamelModel):
    """Editor data attached to a graph node. Unknown keys are preserved."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    label: str | None = None
    min_outputs: int | None = None
    max_outputs: int | None = None
    min_inputs: int | None = None
    max_inputs: int | None = None
    input_mapping: str | None = None
    output_key: str | None = None
    provider_ref: str | None = None
    timeout_ms: int | None = Field(default=None, alias="timeout", gt=0)
    retry_policy: RetryPolicy | None = None


class PipelineNode(CamelModel):
    """A node of an authored workflow graph."""

    id: str
    type: str
    data: NodeData = Field(default_factory=NodeData)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_NODE_TYPES


class PipelineEdge(CamelModel):
    """A directed edge between two graph nodes."""

    source: str
    target: str
    id: str | None = None


class WorkflowGraph(CamelModel):
    """Authoring input: a node/edge description with no ordering guarantee."""

    nodes: list[PipelineNode] = Field(default_factory=list)
    edges: list[PipelineEdge] = Field(default_factory=list)


class TopologyValidationResult(BaseModel):
    """Outcome of topology validation. Warnings never affect validity."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CycleDetectionResult(BaseModel):
    """Outcome of Kahn's algorithm over a graph."""

    is_dag: bool
    topological_order: list[str] = Field(default_factory=list)
    remaining_nodes: list[str] = Field(default_factory=list)


class PipelineStep(CamelModel):
    """One executable step of a linearized pipeline."""

    type: str
    provider_ref: str = ""
    timeout_ms: int = Field(default=30_000, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class PipelineDefinitionBase(SQLModel):
    """Shared fields for pipeline definitions.

    Args:
        pipeline_id: Unique identifier of this stored version (primary key).
        name: Logical pipeline name shared by all versions.
        version: Monotonic version number within ``name``.
        steps: Ordered list of serialized ``PipelineStep`` dicts.
    """

    pipeline_id: str = SQLField(primary_key=True, min_length=1, max_length=150)
    name: str = SQLField(index=True, min_length=1, max_length=100)
    version: int = SQLField(default=1, ge=1)
    steps: list[dict[str, Any]] = SQLField(default_factory=list, sa_column=Column(JSON))


class PipelineDefinition(PipelineDefinitionBase, table=True):
    """Stored linear pipeline. Immutable once written; a new graph is a new version."""

    __tablename__ = "pipeline_definition"

    graph: dict[str, Any] | None = SQLField(default=None, sa_column=Column(JSON))
    created_at: datetime = SQLField(default_factory=utcnow)

    def parsed_steps(self, defaults: dict[str, Any] | None = None) -> list[PipelineStep]:
        """Deserialize the stored step list.

        Args:
            defaults: Values for keys a stored step omits, e.g. ``timeout_ms``.
        """
        return [
            PipelineStep.model_validate({**(defaults or {}), **step}) for step in self.steps or []
        ]


class PipelineDefinitionRead(PipelineDefinitionBase):
    """API response schema for pipeline definitions."""

    created_at: datetime

"""Feature models: a user-facing capability bound to a stored pipeline and a quota cost."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from .base import utcnow
from .pipeline_definition import WorkflowGraph


class FeatureBase(SQLModel):
    """Shared fields for features."""

    display_name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=3000)
    quota_cost: int = Field(default=1, ge=0)
    is_enabled: bool = False


class Feature(FeatureBase, table=True):
    """Stored feature definition."""

    __tablename__ = "feature"

    feature_id: str = Field(primary_key=True, min_length=1, max_length=100)
    pipeline_id: str = Field(foreign_key="pipeline_definition.pipeline_id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class FeatureCreate(FeatureBase):
    """Payload for authoring a feature from a workflow graph."""

    feature_id: str = Field(min_length=1, max_length=100)
    pipeline_name: str | None = Field(default=None, max_length=100)
    graph: WorkflowGraph


class FeatureRead(FeatureBase):
    """API response schema for features."""

    feature_id: str
    pipeline_id: str
    created_at: datetime
    updated_at: datetime

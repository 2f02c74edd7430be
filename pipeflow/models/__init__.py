"""
Pipeflow data models.

This package contains the SQLModel-based models that define the database schema
and the pydantic schemas used by the validator, the engine and the API.
"""

# Base models
from .base import QuotaPhase, StepStatus, TaskStatus, utcnow

# Feature models
from .feature import Feature, FeatureBase, FeatureCreate, FeatureRead

# Pipeline models
from .pipeline_definition import (
    CycleDetectionResult,
    NodeData,
    PipelineDefinition,
    PipelineDefinitionRead,
    PipelineEdge,
    PipelineNode,
    PipelineStep,
    RetryPolicy,
    TopologyValidationResult,
    WorkflowGraph,
)

# Quota models
from .quota import (
    QuotaAccount,
    QuotaInfo,
    QuotaTransaction,
    QuotaTransactionStatus,
    ReconcileReport,
)

# Task models
from .task import Task, TaskBase, TaskCreate, TaskRead, TaskStep, TaskStepRead

__all__ = [
    # Base
    "QuotaPhase",
    "StepStatus",
    "TaskStatus",
    "utcnow",
    # Feature
    "Feature",
    "FeatureBase",
    "FeatureCreate",
    "FeatureRead",
    # Pipeline
    "CycleDetectionResult",
    "NodeData",
    "PipelineDefinition",
    "PipelineDefinitionRead",
    "PipelineEdge",
    "PipelineNode",
    "PipelineStep",
    "RetryPolicy",
    "TopologyValidationResult",
    "WorkflowGraph",
    # Quota
    "QuotaAccount",
    "QuotaInfo",
    "QuotaTransaction",
    "QuotaTransactionStatus",
    "ReconcileReport",
    # Task
    "Task",
    "TaskBase",
    "TaskCreate",
    "TaskRead",
    "TaskStep",
    "TaskStepRead",
]

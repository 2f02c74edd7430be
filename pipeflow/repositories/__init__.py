"""Repository layer for data access operations."""

from pipeflow.repositories.base import BaseRepository
from pipeflow.repositories.feature_repository import FeatureRepository
from pipeflow.repositories.pipeline_definition_repository import PipelineDefinitionRepository
from pipeflow.repositories.quota_repository import QuotaRepository
from pipeflow.repositories.task_repository import TaskRepository, TaskStepRepository

__all__ = [
    "BaseRepository",
    "FeatureRepository",
    "PipelineDefinitionRepository",
    "QuotaRepository",
    "TaskRepository",
    "TaskStepRepository",
]

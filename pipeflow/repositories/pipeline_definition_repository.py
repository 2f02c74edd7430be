"""Repository for pipeline definition operations."""

from typing import Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from pipeflow.exceptions.domain import PipelineNotFoundError
from pipeflow.models.pipeline_definition import PipelineDefinition, PipelineStep
from pipeflow.repositories.base import BaseRepository


class PipelineDefinitionRepository(BaseRepository[PipelineDefinition]):
    """Repository for managing stored pipeline versions in the database."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PipelineDefinition)

    async def get(self, pipeline_id: str) -> PipelineDefinition:
        """Get a stored pipeline version.

        Raises:
            PipelineNotFoundError: If the pipeline doesn't exist
        """
        pipeline = await self.session.get(PipelineDefinition, pipeline_id)
        if not pipeline:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    async def latest_version(self, name: str) -> int:
        """Highest stored version for ``name``, or 0 if none exists."""
        statement = select(func.max(PipelineDefinition.version)).where(
            PipelineDefinition.name == name
        )
        result = await self.session.execute(statement)
        return result.scalar() or 0

    async def build_next_version(
        self, name: str, steps: list[PipelineStep], graph: dict[str, Any] | None = None
    ) -> PipelineDefinition:
        """Build (without persisting) the next immutable version of a pipeline.

        Args:
            name: Logical pipeline name.
            steps: Linearized steps.
            graph: The authored graph the steps were derived from.

        Returns:
            An unsaved PipelineDefinition with the next version number.
        """
        version = await self.latest_version(name) + 1
        return PipelineDefinition(
            pipeline_id=f"{name}@v{version}",
            name=name,
            version=version,
            steps=[step.model_dump() for step in steps],
            graph=graph,
        )

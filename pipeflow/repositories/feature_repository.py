"""Repository for feature definitions."""

from sqlalchemy.ext.asyncio import AsyncSession

from pipeflow.exceptions.domain import FeatureNotFoundError
from pipeflow.models.feature import Feature
from pipeflow.models.pipeline_definition import PipelineDefinition
from pipeflow.repositories.base import BaseRepository


class FeatureRepository(BaseRepository[Feature]):
    """Repository for Feature model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Feature)

    async def get(self, feature_id: str) -> Feature:
        """Get feature by ID.

        Raises:
            FeatureNotFoundError: If feature doesn't exist
        """
        feature = await self.session.get(Feature, feature_id)
        if not feature:
            raise FeatureNotFoundError(feature_id)
        return feature

    async def create_with_pipeline(self, feature: Feature, pipeline: PipelineDefinition) -> Feature:
        """Persist a feature together with its pipeline version in one commit."""
        self.session.add(pipeline)
        self.session.add(feature)
        await self.session.commit()
        await self.session.refresh(feature)
        return feature

    async def attach_pipeline(self, feature: Feature, pipeline: PipelineDefinition) -> Feature:
        """Store a new pipeline version and point the feature at it in one commit."""
        self.session.add(pipeline)
        return await self.update(feature, {"pipeline_id": pipeline.pipeline_id})

    async def set_enabled(self, feature: Feature, enabled: bool) -> Feature:
        return await self.update(feature, {"is_enabled": enabled})

"""Service layer for authoring features and their pipelines."""

from collections.abc import Sequence

from pipeflow.exceptions.domain import FeatureAlreadyExistsError, PipelineValidationError
from pipeflow.models.feature import Feature, FeatureCreate
from pipeflow.models.pipeline_definition import PipelineDefinition, WorkflowGraph
from pipeflow.repositories.feature_repository import FeatureRepository
from pipeflow.repositories.pipeline_definition_repository import PipelineDefinitionRepository
from pipeflow.services.pipeline.linearizer import linearize
from pipeflow.services.pipeline.topology import validate_topology
from pipeflow.settings import Settings
from pipeflow.settings import settings as default_settings
from pipeflow.utils.logger import logger


class FeatureService:
    """Service for feature-related business logic."""

    def __init__(
        self,
        feature_repo: FeatureRepository,
        pipeline_repo: PipelineDefinitionRepository,
        settings: Settings | None = None,
    ):
        self.feature_repo = feature_repo
        self.pipeline_repo = pipeline_repo
        self.settings = settings or default_settings

    async def create_feature(self, data: FeatureCreate) -> Feature:
        """Validate a graph, store it as a new pipeline version and create the feature.

        Args:
            data: Feature fields plus the authored graph

        Returns:
            Created feature (disabled unless ``is_enabled`` was set)

        Raises:
            FeatureAlreadyExistsError: If the feature ID is taken
            PipelineValidationError: If the graph is not an executable DAG
            PipelineConfigError: If a step node has no providerRef
        """
        if await self.feature_repo.exists(feature_id=data.feature_id):
            raise FeatureAlreadyExistsError(data.feature_id)

        pipeline = await self._build_pipeline(data.pipeline_name or data.feature_id, data.graph)
        feature = Feature(
            feature_id=data.feature_id,
            display_name=data.display_name,
            description=data.description,
            quota_cost=data.quota_cost,
            is_enabled=data.is_enabled,
            pipeline_id=pipeline.pipeline_id,
        )
        feature = await self.feature_repo.create_with_pipeline(feature, pipeline)
        logger.info(
            f"Created feature '{feature.feature_id}' with pipeline '{pipeline.pipeline_id}' "
            f"({len(pipeline.steps)} steps)"
        )
        return feature

    async def update_pipeline(
        self, feature_id: str, graph: WorkflowGraph, pipeline_name: str | None = None
    ) -> Feature:
        """Store a new pipeline version for an existing feature.

        Stored versions are never modified; the feature is repointed instead.
        """
        feature = await self.feature_repo.get(feature_id)
        current = await self.pipeline_repo.get(feature.pipeline_id)
        pipeline = await self._build_pipeline(pipeline_name or current.name, graph)
        feature = await self.feature_repo.attach_pipeline(feature, pipeline)
        logger.info(f"Feature '{feature_id}' now uses pipeline '{pipeline.pipeline_id}'")
        return feature

    async def get_feature(self, feature_id: str) -> Feature:
        return await self.feature_repo.get(feature_id)

    async def list_features(self) -> Sequence[Feature]:
        return await self.feature_repo.list_all(order_by="feature_id")

    async def set_enabled(self, feature_id: str, enabled: bool) -> Feature:
        feature = await self.feature_repo.get(feature_id)
        feature = await self.feature_repo.set_enabled(feature, enabled)
        logger.info(f"Feature '{feature_id}' {'enabled' if enabled else 'disabled'}")
        return feature

    async def get_pipeline(self, pipeline_id: str) -> PipelineDefinition:
        return await self.pipeline_repo.get(pipeline_id)

    async def _build_pipeline(self, name: str, graph: WorkflowGraph) -> PipelineDefinition:
        result = validate_topology(graph.nodes, graph.edges, self.settings)
        if not result.valid:
            raise PipelineValidationError(result.errors, result.warnings)

        steps = linearize(graph.nodes, graph.edges, self.settings)
        return await self.pipeline_repo.build_next_version(
            name, steps, graph.model_dump(mode="json", by_alias=True)
        )

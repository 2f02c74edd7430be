"""Tests for FeatureService: authoring graphs into stored pipeline versions."""

import pytest
import pytest_asyncio

from pipeflow.exceptions import (
    FeatureAlreadyExistsError,
    FeatureNotFoundError,
    PipelineConfigError,
    PipelineValidationError,
)
from pipeflow.models import FeatureCreate, WorkflowGraph
from pipeflow.repositories import FeatureRepository, PipelineDefinitionRepository
from pipeflow.services.feature_service import FeatureService
from pipeflow.settings import Settings


def graph(*step_types: str, provider_ref: str | None = "ref") -> WorkflowGraph:
    """A start -> steps... -> end chain."""
    ids = ["start", *[f"n{i}" for i in range(len(step_types))], "end"]
    types = ["start", *step_types, "end"]
    data = {"providerRef": provider_ref} if provider_ref else {}
    return WorkflowGraph.model_validate(
        {
            "nodes": [
                {"id": node_id, "type": node_type, "data": {} if node_type in ("start", "end") else data}
                for node_id, node_type in zip(ids, types, strict=True)
            ],
            "edges": [
                {"source": source, "target": target}
                for source, target in zip(ids, ids[1:], strict=False)
            ],
        }
    )


@pytest_asyncio.fixture
async def feature_service(test_session):
    return FeatureService(FeatureRepository(test_session), PipelineDefinitionRepository(test_session))


class TestCreateFeature:
    @pytest.mark.asyncio
    async def test_stores_first_version_disabled(self, feature_service):
        feature = await feature_service.create_feature(
            FeatureCreate(
                feature_id="summarize",
                display_name="Summarize",
                quota_cost=3,
                graph=graph("transcribe", "summarize"),
            )
        )

        assert feature.is_enabled is False
        assert feature.pipeline_id == "summarize@v1"
        pipeline = await feature_service.get_pipeline("summarize@v1")
        assert pipeline.version == 1
        assert [step.type for step in pipeline.parsed_steps()] == ["transcribe", "summarize"]
        assert pipeline.graph["nodes"][1]["data"]["providerRef"] == "ref"

    @pytest.mark.asyncio
    async def test_pipeline_name_overrides_feature_id(self, feature_service):
        feature = await feature_service.create_feature(
            FeatureCreate(
                feature_id="summarize",
                display_name="Summarize",
                pipeline_name="summary-flow",
                graph=graph("summarize"),
            )
        )

        assert feature.pipeline_id == "summary-flow@v1"

    @pytest.mark.asyncio
    async def test_stored_steps_use_service_settings(self, test_session):
        service = FeatureService(
            FeatureRepository(test_session),
            PipelineDefinitionRepository(test_session),
            Settings(pipeline_default_timeout_ms=1234),
        )

        await service.create_feature(
            FeatureCreate(feature_id="summarize", display_name="Summarize", graph=graph("summarize"))
        )

        [step] = (await service.get_pipeline("summarize@v1")).parsed_steps()
        assert step.timeout_ms == 1234

    @pytest.mark.asyncio
    async def test_invalid_graph_is_rejected_with_errors(self, feature_service):
        cyclic = graph("a", "b")
        cyclic.edges.append(cyclic.edges[2].model_copy(update={"source": "n1", "target": "n0"}))

        with pytest.raises(PipelineValidationError) as exc_info:
            await feature_service.create_feature(
                FeatureCreate(feature_id="loop", display_name="Loop", graph=cyclic)
            )

        assert any("cycle" in error for error in exc_info.value.errors)
        with pytest.raises(FeatureNotFoundError):
            await feature_service.get_feature("loop")

    @pytest.mark.asyncio
    async def test_step_without_provider_ref(self, feature_service):
        with pytest.raises(PipelineConfigError):
            await feature_service.create_feature(
                FeatureCreate(
                    feature_id="bare", display_name="Bare", graph=graph("a", provider_ref=None)
                )
            )

    @pytest.mark.asyncio
    async def test_duplicate_feature(self, feature_service):
        data = FeatureCreate(feature_id="summarize", display_name="S", graph=graph("summarize"))
        await feature_service.create_feature(data)

        with pytest.raises(FeatureAlreadyExistsError):
            await feature_service.create_feature(data)


class TestUpdateFeature:
    @pytest.mark.asyncio
    async def test_update_pipeline_creates_new_version(self, feature_service):
        await feature_service.create_feature(
            FeatureCreate(feature_id="summarize", display_name="S", graph=graph("summarize"))
        )

        feature = await feature_service.update_pipeline("summarize", graph("transcribe", "summarize"))

        assert feature.pipeline_id == "summarize@v2"
        old = await feature_service.get_pipeline("summarize@v1")
        new = await feature_service.get_pipeline("summarize@v2")
        assert len(old.steps) == 1
        assert len(new.steps) == 2

    @pytest.mark.asyncio
    async def test_set_enabled_and_list(self, feature_service):
        await feature_service.create_feature(
            FeatureCreate(feature_id="a", display_name="A", graph=graph("x"))
        )
        await feature_service.create_feature(
            FeatureCreate(feature_id="b", display_name="B", graph=graph("y"))
        )

        feature = await feature_service.set_enabled("a", True)

        assert feature.is_enabled is True
        features = {f.feature_id: f for f in await feature_service.list_features()}
        assert features["a"].is_enabled is True
        assert features["b"].is_enabled is False

    @pytest.mark.asyncio
    async def test_unknown_feature(self, feature_service):
        with pytest.raises(FeatureNotFoundError):
            await feature_service.set_enabled("missing", True)

"""Base repository shared by the Pipeflow repositories.

Each write commits immediately: task and step rows are polled by clients while
a pipeline runs, so a transition must be visible as soon as it is made.
"""

from collections.abc import Sequence
from typing import Any, Generic, TypeAlias, TypeVar

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from pipeflow.exceptions.domain import EntityNotFoundError
from pipeflow.models.base import utcnow

ModelT = TypeVar("ModelT", bound=SQLModel)
FilterValueT: TypeAlias = str | int | bool


class BaseRepository(Generic[ModelT]):
    """Common lookups and committing writes for one table model."""

    def __init__(self, session: AsyncSession, model_class: type[ModelT]):
        """Initialize repository with session and model class.

        Args:
            session: Database session
            model_class: SQLModel class this repository operates on
        """
        self.session = session
        self.model_class = model_class

    async def get(self, id: Any) -> ModelT:
        """Get entity by primary key.

        Subclasses override this to raise their own not-found error.

        Raises:
            EntityNotFoundError: If entity doesn't exist
        """
        entity = await self.session.get(self.model_class, id)
        if not entity:
            raise EntityNotFoundError(f"{self.model_class.__name__} '{id}' not found")
        return entity

    async def exists(self, **filters: FilterValueT) -> bool:
        statement = select(func.count()).select_from(self.model_class)
        for field, value in filters.items():
            statement = statement.where(getattr(self.model_class, field) == value)
        result = await self.session.execute(statement)
        return (result.scalar() or 0) > 0

    async def list_all(self, order_by: str | None = None) -> Sequence[ModelT]:
        statement = select(self.model_class)
        if order_by:
            statement = statement.order_by(getattr(self.model_class, order_by))
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def create(self, entity: ModelT) -> ModelT:
        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity

    async def create_many(self, entities: list[ModelT]) -> list[ModelT]:
        """Insert several rows in one commit, e.g. all steps of a task."""
        self.session.add_all(entities)
        await self.session.commit()
        return entities

    async def update(self, entity: ModelT, changes: dict[str, Any]) -> ModelT:
        """Apply ``changes`` (``None`` values included) and commit.

        Models carrying an ``updated_at`` column get it stamped.

        Args:
            entity: Entity to update
            changes: Field values to set

        Returns:
            Updated entity
        """
        for field, value in changes.items():
            setattr(entity, field, value)
        if hasattr(entity, "updated_at"):
            entity.updated_at = utcnow()

        await self.session.commit()
        return entity

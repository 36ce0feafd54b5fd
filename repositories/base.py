"""
Base Repository Pattern with SQLAlchemy

Provides common async CRUD operations for all repositories.
"""
from datetime import datetime
from typing import TypeVar, Generic, Optional, List, Type
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from database.models.base import Base


# Generic type for model classes
ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """
    Base repository with common async database operations.

    Subclasses set the `model` class attribute to their SQLAlchemy model
    class.

    Example:
        class TopicRepository(BaseRepository[Topic]):
            model = Topic
    """

    model: Type[ModelT]

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get(self, entity_id: str) -> Optional[ModelT]:
        """
        Get entity by primary key.

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, entity_id)

    # ============================================
    # WRITE OPERATIONS
    # ============================================

    async def add(self, entity: ModelT) -> ModelT:
        """Add a new entity and flush so generated values are available."""
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def add_all(self, entities: List[ModelT]) -> List[ModelT]:
        """Add multiple entities."""
        self.session.add_all(entities)
        await self.session.flush()
        return entities

    # ============================================
    # UTILITY METHODS
    # ============================================

    @staticmethod
    def generate_id(prefix: str = "") -> str:
        """
        Generate unique ID with optional prefix.

        Args:
            prefix: Optional prefix for the ID

        Returns:
            Unique ID string
        """
        unique_part = uuid.uuid4().hex[:12]
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S')
        base_id = f"{timestamp}_{unique_part}"
        return f"{prefix}_{base_id}" if prefix else base_id

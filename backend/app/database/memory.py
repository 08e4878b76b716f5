from __future__ import annotations

import logging
from typing import List, Tuple

from app.database.manager import DatabaseManager, db_manager
from app.models.database_models import Embedding as SQLEmbedding, Resource as SQLResource
from app.schemas.memory import Resource

logger = logging.getLogger(__name__)


class MemoryRepository:
    """Stored user memories and their embedding vectors."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def create_resource(self, user_id: str, content: str, chunks: List[Tuple[str, List[float]]]) -> Resource:
        """Store a memory together with the embedding of each of its chunks."""
        try:
            with self.db.get_session() as session:
                resource = SQLResource(user_id=user_id, content=content)
                session.add(resource)
                session.flush()
                for chunk, vector in chunks:
                    session.add(SQLEmbedding(
                        user_id=user_id,
                        resource_id=resource.id,
                        content=chunk,
                        embedding=list(vector),
                    ))
                session.flush()
                session.refresh(resource)
                logger.info(f"Stored memory {resource.id} with {len(chunks)} embeddings for user {user_id}")
                return Resource.model_validate(resource)
        except Exception as e:
            logger.error(f"Failed to create resource: {e}")
            raise

    def get_user_embeddings(self, user_id: str) -> List[Tuple[str, List[float]]]:
        """(content, vector) pairs of every stored chunk for a user."""
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLEmbedding.content, SQLEmbedding.embedding)
                    .filter(SQLEmbedding.user_id == user_id)
                    .all()
                )
                return [(row.content, row.embedding) for row in rows]
        except Exception as e:
            logger.error(f"Failed to load embeddings for {user_id}: {e}")
            raise

    def get_resources_by_user_id(self, user_id: str) -> List[Resource]:
        try:
            with self.db.get_session() as session:
                rows = (
                    session.query(SQLResource)
                    .filter_by(user_id=user_id)
                    .order_by(SQLResource.created_at.desc())
                    .all()
                )
                return [Resource.model_validate(r) for r in rows]
        except Exception as e:
            logger.error(f"Failed to get resources for {user_id}: {e}")
            raise


memory_repository = MemoryRepository(db_manager)

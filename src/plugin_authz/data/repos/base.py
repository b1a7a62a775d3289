"""
Base Repository

Abstract in-memory table for pydantic entities with integer primary keys.
Entities are never mutated in place: updates replace the stored model with
a copy, which lets a transaction snapshot the table with a shallow copy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class Repository(ABC, Generic[T]):
    """
    Abstract repository base class.

    Provides get/create/update/list over an in-memory store keyed by id.
    """

    def __init__(self):
        self._in_memory_store: dict[int, T] = {}
        self._next_id = 1

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Get the table name for this repository."""
        pass

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """Get the Pydantic model class for this repository."""
        pass

    async def get(self, id: int) -> Optional[T]:
        """Get entity by ID."""
        return self._in_memory_store.get(id)

    async def create(self, entity: T) -> T:
        """Create a new entity, assigning the next id."""
        stored = entity.model_copy(update={"id": self._next_id})
        self._next_id += 1
        self._in_memory_store[stored.id] = stored
        return stored

    async def update(self, id: int, **updates) -> Optional[T]:
        """Update an entity."""
        if id not in self._in_memory_store:
            return None
        entity = self._in_memory_store[id]
        if "updated_at" in self.model_class.model_fields:
            updates.setdefault("updated_at", datetime.now(timezone.utc))
        updated = entity.model_copy(update=updates)
        self._in_memory_store[id] = updated
        return updated

    async def delete(self, id: int) -> bool:
        """Delete an entity."""
        if id in self._in_memory_store:
            del self._in_memory_store[id]
            return True
        return False

    async def list(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> list[T]:
        """List entities (ordered by id) with optional equality filters."""
        entities = [self._in_memory_store[k] for k in sorted(self._in_memory_store)]
        if filters:
            entities = [
                e for e in entities
                if all(getattr(e, k, None) == v for k, v in filters.items())
            ]
        if limit is None:
            return entities[offset:]
        return entities[offset:offset + limit]

    # Transaction support
    def snapshot(self) -> tuple:
        return (dict(self._in_memory_store), self._next_id)

    def restore(self, snapshot: tuple) -> None:
        store, next_id = snapshot
        self._in_memory_store = dict(store)
        self._next_id = next_id

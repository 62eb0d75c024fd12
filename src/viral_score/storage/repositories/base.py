"""
Base repository: row to model mapping over the shared Database.
"""
from __future__ import annotations

from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from viral_score.storage.database import Database

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """
    Maps rows of one table to its pydantic model.

    Subclasses set table_name and model_class and write their own SQL;
    model field names match column names, so a row converts directly.
    """

    table_name: str
    model_class: Type[T]

    def __init__(self, db: Database) -> None:
        self.db = db

    def _to_model(self, record) -> Optional[T]:
        if record is None:
            return None
        return self.model_class(**dict(record))

    async def _fetch_one(self, query: str, *args) -> Optional[T]:
        return self._to_model(await self.db.fetchrow(query, *args))

    async def _fetch_all(self, query: str, *args) -> list[T]:
        return [self._to_model(r) for r in await self.db.fetch(query, *args)]

    async def _max(self, column: str, where: str = "", *args) -> Optional[Any]:
        """MAX(column) over the table, optionally filtered. None when no rows match."""
        query = f"SELECT MAX({column}) FROM {self.table_name}"
        if where:
            query += f" WHERE {where}"
        return await self.db.fetchval(query, *args)

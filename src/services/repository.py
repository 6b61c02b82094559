"""
Repository collaborator: create / find-by-filter / delete over named collections.
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

import aiosqlite

from core.categories import ALL_CATEGORIES, Category
from core.errors import DuplicateArticle, PersistenceFailure

logger = logging.getLogger(__name__)

ARTICLES = "articles"
CATEGORIES = "categories"
AUTHORS = "authors"

# Columns that may appear in a filter; everything else lives in the JSON payload
_COLUMNS: Dict[str, tuple] = {
    ARTICLES: ("id", "source_url", "slug", "title", "category_id", "author_id"),
    CATEGORIES: ("id", "name", "slug"),
    AUTHORS: ("id", "name"),
}


class ArticleRepository(ABC):
    """
    Storage interface used by the pipeline. Owns write serialization:
    at most one article per source_url.
    """

    @abstractmethod
    async def create(self, collection: str, entity: Dict[str, Any]) -> int:
        """
        Persist an entity and return its id.
        Raises DuplicateArticle when an article with the same source_url exists,
        PersistenceFailure for any other write failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def find_by_filter(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, entity_id: int) -> bool:
        raise NotImplementedError


class SqliteArticleRepository(ArticleRepository):
    def __init__(self, path: str):
        self.path = path

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        try:
            yield conn
        finally:
            await conn.close()

    async def init_tables(self) -> None:
        """Initialize tables for articles, categories and authors."""
        directory = os.path.dirname(self.path)
        if directory and self.path != ":memory:":
            os.makedirs(directory, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    slug TEXT NOT NULL,
                    data TEXT NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS authors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    data TEXT NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_url TEXT NOT NULL UNIQUE,
                    slug TEXT NOT NULL,
                    title TEXT NOT NULL,
                    category_id INTEGER REFERENCES categories(id),
                    author_id INTEGER REFERENCES authors(id),
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_articles_category ON articles(category_id)
            """)
            await conn.commit()
            logger.info("Database tables initialized")

    async def seed_categories(self, names: Iterable[str], author: Optional[str] = None) -> int:
        """
        Ensure every configured category (and the default author) exists.
        Built-in categories carry their description; others get an empty one.
        Returns the number of rows created.
        """
        created = 0
        for name in names:
            if not await self.find_by_filter(CATEGORIES, {"name": name}):
                category = ALL_CATEGORIES.get(name) or Category(name=name)
                await self.create(
                    CATEGORIES, {"name": name, "slug": category.slug, "description": category.description}
                )
                created += 1
        if author and not await self.find_by_filter(AUTHORS, {"name": author}):
            await self.create(AUTHORS, {"name": author})
            created += 1
        if created:
            logger.info(f"Seeded {created} categories/authors")
        return created

    @staticmethod
    def _check_collection(collection: str) -> tuple:
        if collection not in _COLUMNS:
            raise ValueError(f"Unknown collection: {collection}")
        return _COLUMNS[collection]

    async def create(self, collection: str, entity: Dict[str, Any]) -> int:
        columns = self._check_collection(collection)
        row = {k: entity[k] for k in columns if k != "id" and k in entity}
        payload = {k: v for k, v in entity.items() if k not in columns}
        row["data"] = json.dumps(payload, default=_json_default)

        names = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            async with self.connect() as conn:
                cursor = await conn.execute(
                    f"INSERT INTO {collection} ({names}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
                await conn.commit()
                return cursor.lastrowid
        except aiosqlite.IntegrityError as e:
            if collection == ARTICLES and "UNIQUE" in str(e) and "source_url" in str(e):
                raise DuplicateArticle(entity.get("source_url", "")) from e
            raise PersistenceFailure(f"Integrity error writing {collection}: {e}") from e
        except aiosqlite.Error as e:
            raise PersistenceFailure(f"Failed to write {collection}: {e}") from e

    async def find_by_filter(self, collection: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        columns = self._check_collection(collection)
        unknown = set(filters) - set(columns)
        if unknown:
            raise ValueError(f"Cannot filter {collection} by {', '.join(sorted(unknown))}")

        query = f"SELECT * FROM {collection}"
        if filters:
            query += " WHERE " + " AND ".join(f"{k} = ?" for k in filters)
        query += " ORDER BY id"

        async with self.connect() as conn:
            cursor = await conn.execute(query, tuple(filters.values()))
            rows = await cursor.fetchall()

        results = []
        for row in rows:
            record = {k: row[k] for k in row.keys() if k != "data"}
            record.update(json.loads(row["data"] or "{}"))
            results.append(record)
        return results

    async def delete(self, collection: str, entity_id: int) -> bool:
        self._check_collection(collection)
        async with self.connect() as conn:
            cursor = await conn.execute(f"DELETE FROM {collection} WHERE id = ?", (entity_id,))
            await conn.commit()
            return cursor.rowcount > 0

    async def count(self, collection: str) -> int:
        self._check_collection(collection)
        async with self.connect() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) FROM {collection}")
            row = await cursor.fetchone()
            return row[0]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")

"""
SQLite-backed document store.

Every registered entity type gets a ``(_id, doc)`` table where ``doc`` is
the JSON body. A connection is opened per operation; blocking work runs on
a worker thread so callers stay async.
"""
from __future__ import annotations

import asyncio
import re
import sqlite3
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Generator, Iterable, Mapping

from .codec import dumps, dumps_value, new_object_id
from .documents import Document
from .query_builder import DocumentQuery, validate_identifier
from .registry import EntityDescriptor, EntityRegistry, EntityType

DEFAULT_TIMEOUT = 30


@lru_cache(maxsize=256)
def _compile(pattern: str, flags: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE if "i" in flags else 0)


def _regexp_match(pattern: str, flags: str, value: Any) -> int:
    if value is None or not isinstance(value, str):
        return 0
    return 1 if _compile(pattern, flags or "").search(value) else 0


class DocumentStore:
    """Collections of JSON documents in one SQLite database file."""

    def __init__(self, path: str | Path, registry: EntityRegistry, timeout: int = DEFAULT_TIMEOUT):
        self.path = Path(path)
        self.registry = registry
        self.timeout = timeout

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        # Set busy timeout to handle concurrent access
        conn.execute(f"PRAGMA busy_timeout = {int(self.timeout) * 1000}")
        # WAL mode allows concurrent readers while one writer is active
        conn.execute("PRAGMA journal_mode = WAL")
        conn.create_function("regexp_match", 3, _regexp_match, deterministic=True)
        return conn

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection that commits on success and always closes."""
        conn = self._open()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def ensure_collections(self) -> None:
        """Create a table for every registered collection."""
        with self.connect() as conn:
            for descriptor in self.registry:
                table = validate_identifier(descriptor.collection)
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} (_id NOT NULL PRIMARY KEY, doc TEXT NOT NULL)"
                )

    # --- Query constructors ---

    def find_by_id(self, entity_type: EntityType | str, id: Any) -> DocumentQuery:
        descriptor = self.registry.get(entity_type)
        return DocumentQuery(self, descriptor, single=True).where("_id").equals(id)

    def find_one(self, entity_type: EntityType | str, constraints: Mapping[str, Any] | None = None) -> DocumentQuery:
        descriptor = self.registry.get(entity_type)
        return DocumentQuery(self, descriptor, single=True).find(constraints)

    def find(self, entity_type: EntityType | str, constraints: Mapping[str, Any] | None = None) -> DocumentQuery:
        descriptor = self.registry.get(entity_type)
        return DocumentQuery(self, descriptor).find(constraints)

    # --- Documents ---

    def new(self, entity_type: EntityType | str, data: Mapping[str, Any] | None = None) -> Document:
        """Unsaved document with a fresh id."""
        descriptor = self.registry.get(entity_type)
        body = dict(data or {})
        body.setdefault("_id", new_object_id())
        return Document(self, descriptor, body, is_new=True)

    def wrap(self, descriptor: EntityDescriptor, doc: Mapping[str, Any]) -> Document:
        return Document(self, descriptor, doc)

    # --- Writes ---

    async def insert_one(self, entity_type: EntityType | str, data: Mapping[str, Any]) -> dict:
        inserted = await self.insert_many(entity_type, [data])
        return inserted[0]

    async def insert_many(self, entity_type: EntityType | str, items: Iterable[Mapping[str, Any]]) -> list[dict]:
        """Insert documents, assigning ids to those without one."""
        descriptor = self.registry.get(entity_type)
        bodies = []
        for item in items:
            body = dict(item.to_dict() if isinstance(item, Document) else item)
            body.setdefault("_id", new_object_id())
            bodies.append(body)
        if bodies:
            await asyncio.to_thread(self._insert_sync, descriptor, bodies)
        return bodies

    def _insert_sync(self, descriptor: EntityDescriptor, bodies: list[dict]) -> None:
        rows = []
        for body in bodies:
            fields = {k: v for k, v in body.items() if k != "_id"}
            rows.append((body["_id"], dumps(fields)))
        with self.connect() as conn:
            conn.executemany(f"INSERT INTO {descriptor.collection} (_id, doc) VALUES (?, ?)", rows)

    async def update_by_id(
        self,
        entity_type: EntityType | str,
        id: Any,
        values: Mapping[str, Any],
        unset: Iterable[str] = (),
    ) -> int:
        """Set (and optionally remove) top-level fields of one document."""
        descriptor = self.registry.get(entity_type)
        return await asyncio.to_thread(self._update_sync, descriptor, id, dict(values), list(unset))

    def _update_sync(self, descriptor: EntityDescriptor, id: Any, values: dict, unset: list[str]) -> int:
        expression = "doc"
        params: list[Any] = []
        if values:
            assignments = []
            for key, value in values.items():
                validate_identifier(key)
                assignments.append(f"'$.{key}', json(?)")
                params.append(dumps_value(value))
            expression = f"json_set({expression}, {', '.join(assignments)})"
        for key in unset:
            validate_identifier(key)
            expression = f"json_remove({expression}, '$.{key}')"
        if expression == "doc":
            return 0
        with self.connect() as conn:
            cursor = conn.execute(
                f"UPDATE {descriptor.collection} SET doc = {expression} WHERE _id = ?",
                [*params, id],
            )
            return cursor.rowcount

    async def update_one(
        self,
        entity_type: EntityType | str,
        constraints: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> int:
        """Set top-level fields on the first document matching ``constraints``."""
        match = await self.find_one(entity_type, constraints).select("_id").lean().exec()
        if match is None:
            return 0
        return await self.update_by_id(entity_type, match["_id"], values)

    async def delete_by_id(self, entity_type: EntityType | str, id: Any) -> int:
        return await self.delete_many(entity_type, {"_id": id})

    async def delete_many(self, entity_type: EntityType | str, constraints: Mapping[str, Any] | None = None) -> int:
        query = self.find(entity_type, constraints)
        where, params = query.build_where()
        sql = " ".join(p for p in (f"DELETE FROM {query.collection}", where) if p)
        return await asyncio.to_thread(self._execute_sync, sql, params)

    async def count(self, entity_type: EntityType | str, constraints: Mapping[str, Any] | None = None) -> int:
        sql, params = self.find(entity_type, constraints).build_count()
        return await asyncio.to_thread(self._scalar_sync, sql, params)

    def _execute_sync(self, sql: str, params: list[Any]) -> int:
        with self.connect() as conn:
            return conn.execute(sql, params).rowcount

    def _scalar_sync(self, sql: str, params: list[Any]) -> int:
        with self.connect() as conn:
            return conn.execute(sql, params).fetchone()[0]

"""
Query façade: the uniform read path for every entity type.

Three operations (by id, first match, all matches) share one options
pipeline: populate, select, sort, limit, cursor (``last``) and lean.
Singular lookups are strict by default and raise the entity's
``NotFoundError`` when nothing matches; plural lookups return an empty list.

The façade adds no logging, retries or error translation: store failures
reach the caller unchanged.
"""
from __future__ import annotations

from typing import Any

from .options import BuilderFilter, Filter, MatchFilter, QueryOptions
from .query_builder import DocumentQuery
from .registry import EntityDescriptor, EntityRegistry, EntityType
from .store import DocumentStore


def fill_query(query: DocumentQuery, options: QueryOptions | None) -> QueryOptions:
    """Apply ``options`` to ``query`` and return them with defaults filled."""
    filled = (options or QueryOptions()).filled()
    for path in filled.populate_paths:
        query.populate(path)
    if filled.select is not None:
        query.select(filled.select)
    if filled.sort is not None:
        query.sort(filled.sort)
    if filled.limit is not None:
        query.limit(filled.limit)
    if filled.last is not None:
        # Direction comes from the requested sort; no sort pages ascending.
        if filled.descending:
            query.where("_id").lt(filled.last)
        else:
            query.where("_id").gt(filled.last)
    if filled.lean:
        query.lean()
    return filled


def apply_filter(query: DocumentQuery, filter: Filter | None) -> DocumentQuery:
    if filter is None:
        return query
    if isinstance(filter, MatchFilter):
        return query.find(filter.constraints)
    if isinstance(filter, BuilderFilter):
        filter.build(query)
        return query
    raise TypeError(f"Expected MatchFilter or BuilderFilter, got {type(filter).__name__}")


def raise_not_found_if_needed(descriptor: EntityDescriptor, obj: Any, options: QueryOptions) -> None:
    if obj is None and options.require:
        raise descriptor.not_found_error()


class QueryFacade:
    """Options-driven reads over the entity types of one registry."""

    def __init__(self, registry: EntityRegistry, store: DocumentStore):
        self.registry = registry
        self.store = store

    async def fetch_by_id(self, entity_type: EntityType | str, id: Any, options: QueryOptions | None = None):
        descriptor = self.registry.get(entity_type)
        query = self.store.find_by_id(descriptor.name, id)
        filled = fill_query(query, options)
        obj = await query.exec()
        raise_not_found_if_needed(descriptor, obj, filled)
        return obj

    async def fetch_one(
        self,
        entity_type: EntityType | str,
        filter: Filter | None = None,
        options: QueryOptions | None = None,
    ):
        descriptor = self.registry.get(entity_type)
        query = apply_filter(self.store.find_one(descriptor.name), filter)
        filled = fill_query(query, options)
        obj = await query.exec()
        raise_not_found_if_needed(descriptor, obj, filled)
        return obj

    async def fetch_many(
        self,
        entity_type: EntityType | str,
        filter: Filter | None = None,
        options: QueryOptions | None = None,
    ) -> list:
        descriptor = self.registry.get(entity_type)
        query = apply_filter(self.store.find(descriptor.name), filter)
        fill_query(query, options)
        return await query.exec()

"""Document persistence: entity registry, SQLite document store and the query façade."""
from .documents import Document
from .options import BuilderFilter, Filter, MatchFilter, QueryOptions, SortKey
from .queries import QueryFacade
from .registry import EntityDescriptor, EntityRegistry, EntityType, Relation, build_default_registry
from .store import DocumentStore

__all__ = [
    "BuilderFilter",
    "Document",
    "DocumentStore",
    "EntityDescriptor",
    "EntityRegistry",
    "EntityType",
    "Filter",
    "MatchFilter",
    "QueryFacade",
    "QueryOptions",
    "Relation",
    "SortKey",
    "build_default_registry",
]

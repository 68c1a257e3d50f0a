"""Live documents returned by non-lean queries."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Mapping

from .options import get_path, set_path

if TYPE_CHECKING:
    from .registry import EntityDescriptor
    from .store import DocumentStore


class Document:
    """
    A stored entity with change tracking.

    Fields read as attributes or items. Assignments are tracked by top-level
    field so ``save()`` writes only what changed.
    """

    __slots__ = ("_store", "_descriptor", "_data", "_modified", "_is_new")

    def __init__(
        self,
        store: DocumentStore,
        descriptor: EntityDescriptor,
        data: Mapping[str, Any],
        *,
        is_new: bool = False,
    ):
        object.__setattr__(self, "_store", store)
        object.__setattr__(self, "_descriptor", descriptor)
        object.__setattr__(self, "_data", dict(data))
        object.__setattr__(self, "_modified", set())
        object.__setattr__(self, "_is_new", is_new)

    @property
    def id(self) -> Any:
        return self._data.get("_id")

    @property
    def entity_type(self) -> str:
        return self._descriptor.name

    @property
    def is_new(self) -> bool:
        return self._is_new

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") and name != "_id":
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"{self._descriptor.name} has no field '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") and name != "_id":
            raise AttributeError(f"Cannot assign private attribute '{name}'")
        self.set(name, value)

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        return self.entity_type == other.entity_type and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.entity_type, self.id))

    def __repr__(self) -> str:
        return f"<{self._descriptor.name} {self.id}>"

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self._data, path, default)

    def set(self, path_or_values: str | Mapping[str, Any], value: Any = None) -> Document:
        """Assign one dotted path, or every key of a mapping."""
        if isinstance(path_or_values, Mapping):
            for path, item in path_or_values.items():
                self.set(path, item)
            return self
        path = path_or_values
        if path == "_id" and not self._is_new:
            raise ValueError("Cannot change the _id of a stored document")
        set_path(self._data, path, value)
        self._modified.add(path.split(".", 1)[0])
        return self

    def unset(self, path: str) -> Document:
        root = path.split(".", 1)[0]
        if root == path:
            self._data.pop(path, None)
        else:
            parent = get_path(self._data, path.rsplit(".", 1)[0])
            if isinstance(parent, dict):
                parent.pop(path.rsplit(".", 1)[1], None)
        self._modified.add(root)
        return self

    def is_modified(self, path: str | None = None) -> bool:
        if path is None:
            return bool(self._modified)
        return path.split(".", 1)[0] in self._modified

    @property
    def modified_paths(self) -> frozenset[str]:
        return frozenset(self._modified)

    def to_dict(self) -> dict[str, Any]:
        """Plain, detached copy of the document (populated relations included)."""
        return _plain(self._data)

    async def save(self) -> Document:
        if self._is_new:
            await self._store.insert_one(self._descriptor.name, self._data)
            object.__setattr__(self, "_is_new", False)
        elif self._modified:
            values = {k: self._data[k] for k in self._modified if k in self._data}
            removed = [k for k in self._modified if k not in self._data]
            await self._store.update_by_id(self._descriptor.name, self.id, values, unset=removed)
        self._modified.clear()
        return self

    async def reload(self) -> Document:
        fresh = await self._store.find_by_id(self._descriptor.name, self.id).lean().exec()
        if fresh is None:
            raise self._descriptor.not_found_error()
        object.__setattr__(self, "_data", fresh)
        self._modified.clear()
        return self

    async def delete(self) -> None:
        await self._store.delete_by_id(self._descriptor.name, self.id)


def _plain(value: Any) -> Any:
    if isinstance(value, Document):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value

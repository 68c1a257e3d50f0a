"""
Filters and the options bag accepted by the query façade.

Filters come in two explicit variants: ``MatchFilter`` wraps a literal
field/operator mapping, ``BuilderFilter`` wraps a function that constrains a
query handle imperatively (disjunctions, ranges, regex search).
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence, Union

if TYPE_CHECKING:
    from .query_builder import DocumentQuery

ASCENDING = 1
DESCENDING = -1


@dataclass(frozen=True)
class MatchFilter:
    """Literal constraints: ``{field: value}`` or ``{field: {"$op": value}}``."""
    constraints: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BuilderFilter:
    """Constraints applied by a function receiving the query handle."""
    build: Callable[["DocumentQuery"], None]


Filter = Union[MatchFilter, BuilderFilter]


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: int = ASCENDING

    def __post_init__(self):
        if self.direction not in (ASCENDING, DESCENDING):
            raise ValueError(f"Sort direction for '{self.field}' must be 1 or -1, got {self.direction!r}")

    @property
    def descending(self) -> bool:
        return self.direction == DESCENDING


SortSpec = Union[str, Mapping[str, int], Sequence[Union[SortKey, tuple]]]


def parse_sort(spec: SortSpec) -> tuple[SortKey, ...]:
    """
    Normalize a sort specification into ordered sort keys.

    Accepts ``"-registration_date name"``, ``{"name": 1}`` or a sequence of
    ``(field, direction)`` pairs / ``SortKey`` instances.
    """
    if isinstance(spec, str):
        keys = []
        for token in spec.split():
            if token.startswith("-"):
                keys.append(SortKey(token[1:], DESCENDING))
            else:
                keys.append(SortKey(token.lstrip("+"), ASCENDING))
        return tuple(keys)
    if isinstance(spec, Mapping):
        return tuple(SortKey(name, direction) for name, direction in spec.items())
    keys = []
    for item in spec:
        if isinstance(item, SortKey):
            keys.append(item)
        else:
            name, direction = item
            keys.append(SortKey(name, direction))
    return tuple(keys)


@dataclass(frozen=True)
class Projection:
    """Fields to keep (inclusive) or drop (exclusive)."""
    fields: tuple[str, ...] = ()
    exclusive: bool = False
    include_id: bool = True

    def apply(self, doc: dict) -> dict:
        if self.exclusive:
            result = _deep_copy(doc)
            for path in self.fields:
                _drop_path(result, path)
        else:
            result = {}
            for path in self.fields:
                _copy_path(doc, result, path)
            if "_id" in doc:
                result["_id"] = doc["_id"]
        if not self.include_id:
            result.pop("_id", None)
        return result


def parse_projection(spec: str | Sequence[str] | Mapping[str, int]) -> Projection:
    """Parse ``"company plan"``, ``"-password"``, a list or ``{field: 0|1}``."""
    if isinstance(spec, str):
        tokens = spec.split()
    elif isinstance(spec, Mapping):
        tokens = [name if flag else f"-{name}" for name, flag in spec.items()]
    else:
        tokens = list(spec)

    include_id = True
    included: list[str] = []
    excluded: list[str] = []
    for token in tokens:
        if token.startswith("-"):
            name = token[1:]
            if name == "_id":
                include_id = False
            else:
                excluded.append(name)
        elif token == "_id":
            continue
        else:
            included.append(token.lstrip("+"))

    if included and excluded:
        raise ValueError("Projection cannot mix inclusion and exclusion")
    if excluded:
        return Projection(tuple(excluded), exclusive=True, include_id=include_id)
    if not included:
        # Only _id was named or excluded: keep just the id, or drop just the id.
        if include_id:
            return Projection((), exclusive=False, include_id=True)
        return Projection((), exclusive=True, include_id=False)
    return Projection(tuple(included), exclusive=False, include_id=include_id)


@dataclass(frozen=True)
class QueryOptions:
    """
    Per-call options for façade reads. Every field is optional.

    ``require`` left as ``None`` means "strict": singular lookups fail when
    nothing matches. ``last`` is the id of the last entity of the previous
    page; the next page starts strictly after it in the effective sort
    direction.
    """
    require: bool | None = None
    populate: str | Sequence[str] | None = None
    select: str | Sequence[str] | Mapping[str, int] | None = None
    sort: SortSpec | None = None
    limit: int | None = None
    last: Any = None
    lean: bool = False

    def __post_init__(self):
        if self.limit is not None and (isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1):
            raise ValueError(f"limit must be a positive integer, got {self.limit!r}")

    def filled(self) -> QueryOptions:
        """Copy with defaults resolved."""
        if self.require is None:
            return replace(self, require=True)
        return self

    @property
    def populate_paths(self) -> tuple[str, ...]:
        if not self.populate:
            return ()
        if isinstance(self.populate, str):
            return (self.populate,)
        return tuple(self.populate)

    @property
    def sort_keys(self) -> tuple[SortKey, ...]:
        if self.sort is None:
            return ()
        return parse_sort(self.sort)

    @property
    def descending(self) -> bool:
        """True when any sort key is descending (cursor pages go down)."""
        return any(key.descending for key in self.sort_keys)


def get_path(doc: Mapping[str, Any], path: str, default: Any = None) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def has_path(doc: Mapping[str, Any], path: str) -> bool:
    marker = object()
    return get_path(doc, path, marker) is not marker


def set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    current = doc
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value


def _copy_path(source: Mapping[str, Any], target: dict, path: str) -> None:
    if has_path(source, path):
        set_path(target, path, _deep_copy(get_path(source, path)))


def _drop_path(doc: dict, path: str) -> None:
    parts = path.split(".")
    current: Any = doc
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


def _deep_copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _deep_copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_deep_copy(v) for v in value]
    return value

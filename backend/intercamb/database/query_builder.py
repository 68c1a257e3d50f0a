"""
DocumentQuery: fluent query construction over JSON documents in SQLite.

Each collection is a table of ``(_id, doc)`` rows. Field constraints compile
to parameterized ``json_extract`` expressions; only validated field paths are
ever interpolated into SQL.
"""
from __future__ import annotations

import asyncio
import copy
import re
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from .codec import loads, to_storage_value
from .options import Projection, SortKey, get_path, has_path, parse_projection, parse_sort, set_path
from .registry import EntityDescriptor

if TYPE_CHECKING:
    import sqlite3

    from .store import DocumentStore

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PATH_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_COMPARISONS = {"$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}


def validate_identifier(identifier: str) -> str:
    if not _IDENTIFIER_RE.match(identifier):
        raise ValueError(f"Unsafe SQL identifier: {identifier!r}")
    return identifier


def field_expression(path: str) -> str:
    """SQL expression reading ``path`` from a stored document."""
    if path == "_id":
        return "_id"
    if not _PATH_RE.match(path):
        raise ValueError(f"Invalid field path: {path!r}")
    return f"json_extract(doc, '$.{path}')"


def _exists_expression(path: str, flag: bool) -> str:
    if path == "_id":
        return "1" if flag else "0"
    field_expression(path)
    # json_type is NULL only when the path is missing; JSON null reports 'null'.
    return f"json_type(doc, '$.{path}') IS {'NOT ' if flag else ''}NULL"


def compile_operator(path: str, operator: str, value: Any) -> tuple[str, list[Any]]:
    """Compile one ``$operator`` constraint on ``path``."""
    expr = field_expression(path)

    if operator == "$eq":
        if value is None:
            return f"{expr} IS NULL", []
        return f"{expr} = ?", [to_storage_value(value)]

    if operator == "$ne":
        if value is None:
            return f"{expr} IS NOT NULL", []
        return f"({expr} IS NULL OR {expr} != ?)", [to_storage_value(value)]

    if operator in _COMPARISONS:
        return f"{expr} {_COMPARISONS[operator]} ?", [to_storage_value(value)]

    if operator in ("$in", "$nin"):
        values = list(value)
        allow_null = any(v is None for v in values)
        values = [to_storage_value(v) for v in values if v is not None]
        placeholders = ", ".join("?" for _ in values)
        if operator == "$in":
            clauses = [f"{expr} IN ({placeholders})"] if values else []
            if allow_null:
                clauses.append(f"{expr} IS NULL")
            if not clauses:
                return "0", []
            return f"({' OR '.join(clauses)})", values
        clauses = [f"{expr} NOT IN ({placeholders})"] if values else ["1"]
        if allow_null:
            return f"({expr} IS NOT NULL AND {clauses[0]})", values
        return f"({expr} IS NULL OR {clauses[0]})", values

    if operator == "$exists":
        return _exists_expression(path, bool(value)), []

    if operator == "$regex":
        if isinstance(value, re.Pattern):
            flags = "i" if value.flags & re.IGNORECASE else ""
            return "regexp_match(?, ?, " + expr + ")", [value.pattern, flags]
        return "regexp_match(?, ?, " + expr + ")", [value, ""]

    raise ValueError(f"Unsupported query operator: {operator}")


def compile_match(constraints: Mapping[str, Any]) -> tuple[list[str], list[Any]]:
    """
    Compile a literal constraint mapping into AND-ed conditions.

    Scalars mean equality, lists mean membership, ``{"$op": value}`` mappings
    apply operators, and an ``"$or"`` key holds a list of alternative mappings.
    """
    conditions: list[str] = []
    params: list[Any] = []
    for path, value in constraints.items():
        if path == "$or":
            condition, or_params = compile_any(value)
            conditions.append(condition)
            params.extend(or_params)
            continue

        if isinstance(value, Mapping) and value and all(str(k).startswith("$") for k in value):
            operators = dict(value)
            regex_options = operators.pop("$options", "")
            for operator, operand in operators.items():
                if operator == "$regex" and isinstance(operand, str) and "i" in regex_options:
                    operand = re.compile(operand, re.IGNORECASE)
                condition, op_params = compile_operator(path, operator, operand)
                conditions.append(condition)
                params.extend(op_params)
        elif isinstance(value, Mapping):
            raise ValueError(f"Sub-document equality on '{path}' is not supported; use dotted paths")
        elif isinstance(value, re.Pattern):
            condition, op_params = compile_operator(path, "$regex", value)
            conditions.append(condition)
            params.extend(op_params)
        elif isinstance(value, (list, tuple, set, frozenset)):
            condition, op_params = compile_operator(path, "$in", value)
            conditions.append(condition)
            params.extend(op_params)
        else:
            condition, op_params = compile_operator(path, "$eq", value)
            conditions.append(condition)
            params.extend(op_params)
    return conditions, params


def compile_any(alternatives: Sequence[Mapping[str, Any]]) -> tuple[str, list[Any]]:
    """Compile a disjunction of constraint mappings."""
    if not alternatives:
        raise ValueError("$or requires at least one alternative")
    clauses: list[str] = []
    params: list[Any] = []
    for alternative in alternatives:
        conditions, alt_params = compile_match(alternative)
        clauses.append("(" + " AND ".join(conditions) + ")" if conditions else "1")
        params.extend(alt_params)
    return "(" + " OR ".join(clauses) + ")", params


class DocumentQuery:
    """Mutable query handle for one collection."""

    def __init__(self, store: DocumentStore, descriptor: EntityDescriptor, *, single: bool = False):
        self._store = store
        self.descriptor = descriptor
        self.collection = validate_identifier(descriptor.collection)
        self.single = single
        self._conditions: list[str] = []
        self._params: list[Any] = []
        self._sort: list[SortKey] = []
        self._limit: int | None = None
        self._projection: Projection | None = None
        self._populate: list[str] = []
        self._lean = False
        self._path: str | None = None

    # --- Constraints ---

    def find(self, constraints: Mapping[str, Any] | None) -> DocumentQuery:
        """Merge a literal constraint mapping into the query."""
        if constraints:
            conditions, params = compile_match(constraints)
            self._conditions.extend(conditions)
            self._params.extend(params)
        return self

    def where(self, path: str, *value: Any) -> DocumentQuery:
        """Select the field the next operator applies to, or add an equality."""
        field_expression(path)
        self._path = path
        if value:
            self.equals(value[0])
        return self

    def _add(self, operator: str, value: Any) -> DocumentQuery:
        if self._path is None:
            raise ValueError(f"where() must name a field before applying {operator}")
        condition, params = compile_operator(self._path, operator, value)
        self._conditions.append(condition)
        self._params.extend(params)
        return self

    def equals(self, value: Any) -> DocumentQuery:
        return self._add("$eq", value)

    def ne(self, value: Any) -> DocumentQuery:
        return self._add("$ne", value)

    def gt(self, value: Any) -> DocumentQuery:
        return self._add("$gt", value)

    def gte(self, value: Any) -> DocumentQuery:
        return self._add("$gte", value)

    def lt(self, value: Any) -> DocumentQuery:
        return self._add("$lt", value)

    def lte(self, value: Any) -> DocumentQuery:
        return self._add("$lte", value)

    def in_(self, values: Iterable[Any]) -> DocumentQuery:
        return self._add("$in", list(values))

    def nin(self, values: Iterable[Any]) -> DocumentQuery:
        return self._add("$nin", list(values))

    def exists(self, flag: bool = True) -> DocumentQuery:
        return self._add("$exists", flag)

    def regex(self, pattern: str | re.Pattern, ignore_case: bool = False) -> DocumentQuery:
        if isinstance(pattern, str) and ignore_case:
            pattern = re.compile(pattern, re.IGNORECASE)
        return self._add("$regex", pattern)

    def or_(self, alternatives: Sequence[Mapping[str, Any]]) -> DocumentQuery:
        """Add a disjunction of literal constraint mappings."""
        condition, params = compile_any(alternatives)
        self._conditions.append(condition)
        self._params.extend(params)
        return self

    # --- Shaping ---

    def populate(self, path: str) -> DocumentQuery:
        """Expand a relation inline in the results."""
        self.descriptor.relation(path)
        if path not in self._populate:
            self._populate.append(path)
        return self

    def select(self, spec: str | Sequence[str] | Mapping[str, int]) -> DocumentQuery:
        self._projection = parse_projection(spec)
        return self

    def sort(self, spec) -> DocumentQuery:
        """Append sort keys; earlier keys take precedence."""
        for key in parse_sort(spec):
            field_expression(key.field)
            self._sort.append(key)
        return self

    def limit(self, n: int) -> DocumentQuery:
        self._limit = n
        return self

    def lean(self, flag: bool = True) -> DocumentQuery:
        self._lean = flag
        return self

    @property
    def is_lean(self) -> bool:
        return self._lean

    @property
    def sort_keys(self) -> tuple[SortKey, ...]:
        return tuple(self._sort)

    # --- Build methods ---

    def build_where(self) -> tuple[str, list[Any]]:
        if not self._conditions:
            return "", []
        return "WHERE " + " AND ".join(self._conditions), list(self._params)

    def _build_tail(self) -> str:
        parts = []
        if self._sort:
            order = ", ".join(
                f"{field_expression(key.field)} {'DESC' if key.descending else 'ASC'}"
                for key in self._sort
            )
            parts.append(f"ORDER BY {order}")
        limit = 1 if self.single else self._limit
        if limit is not None:
            parts.append(f"LIMIT {int(limit)}")
        return " ".join(parts)

    def build_select(self, columns: str = "_id, doc") -> tuple[str, list[Any]]:
        where, params = self.build_where()
        parts = [f"SELECT {columns}", f"FROM {self.collection}", where, self._build_tail()]
        return " ".join(p for p in parts if p), params

    def build_count(self) -> tuple[str, list[Any]]:
        where, params = self.build_where()
        parts = ["SELECT COUNT(*)", f"FROM {self.collection}", where]
        return " ".join(p for p in parts if p), params

    # --- Execution ---

    async def exec(self):
        """Run the query; a single document (or None) for singular handles."""
        docs = await asyncio.to_thread(self._exec_sync)
        if self.single:
            return docs[0] if docs else None
        return docs

    def _exec_sync(self) -> list:
        with self._store.connect() as conn:
            docs = self.fetch_rows(conn)
            if self._projection is not None:
                docs = [self._projection.apply(doc) for doc in docs]
            for path in self._populate:
                self._populate_path(conn, docs, path)
        return [self._materialize(self.descriptor, doc) for doc in docs]

    def fetch_rows(self, conn: sqlite3.Connection) -> list[dict]:
        sql, params = self.build_select()
        return [_decode_row(row) for row in conn.execute(sql, params).fetchall()]

    def _materialize(self, descriptor: EntityDescriptor, doc: dict):
        if self._lean:
            return doc
        return self._store.wrap(descriptor, doc)

    def _populate_path(self, conn: sqlite3.Connection, docs: list[dict], path: str) -> None:
        relation = self.descriptor.relation(path)
        target = self._store.registry.get(relation.target)

        if relation.virtual:
            ids = [doc["_id"] for doc in docs if "_id" in doc]
            related = DocumentQuery(self._store, target).find({relation.foreign_field: {"$in": ids}})
            grouped: dict[Any, list[dict]] = defaultdict(list)
            for row in _expanded_rows(related, conn) if ids else []:
                grouped[get_path(row, relation.foreign_field)].append(row)
            for doc in docs:
                if "_id" in doc:
                    rows = grouped.get(doc["_id"], [])
                    set_path(doc, path, [self._materialize(target, copy.deepcopy(r)) for r in rows])
            return

        ids: set[Any] = set()
        for doc in docs:
            value = get_path(doc, path)
            for ref in value if isinstance(value, list) else [value]:
                if isinstance(ref, (dict, list)):
                    raise ValueError(f"'{path}' must hold {target.name} ids, found {type(ref).__name__}")
                if ref is not None:
                    ids.add(ref)
        if not ids:
            return

        related = DocumentQuery(self._store, target).find({"_id": {"$in": sorted(ids, key=str)}})
        by_id = {row["_id"]: row for row in _expanded_rows(related, conn)}
        for doc in docs:
            if not has_path(doc, path):
                continue
            value = get_path(doc, path)
            if isinstance(value, list):
                expanded = [
                    self._materialize(target, copy.deepcopy(by_id[v]))
                    for v in value
                    if v in by_id
                ]
                set_path(doc, path, expanded)
            elif value is not None:
                row = by_id.get(value)
                set_path(doc, path, self._materialize(target, copy.deepcopy(row)) if row else None)


def _decode_row(row) -> dict:
    doc = loads(row[1])
    doc.pop("_id", None)
    return {"_id": row[0], **doc}


def _expanded_rows(query: DocumentQuery, conn: sqlite3.Connection) -> list[dict]:
    """Rows of a related entity, without the fields it hides from expansions."""
    rows = query.fetch_rows(conn)
    for row in rows:
        for name in query.descriptor.hidden_fields:
            row.pop(name, None)
    return rows

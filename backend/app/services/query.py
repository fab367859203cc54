"""Query builders — request parameters to filter, search and sort structures.

A ``Predicate`` is a conjunction of ``Condition`` and ``AnyOf`` clauses over
document fields (snake_case keys of ``to_document()``, dotted paths reach into
list-of-struct fields such as ``cast.name``). Predicates are evaluated in
memory with ``matches`` and pushed down to SQL with ``compile_predicate``:
comparisons on scalar columns become WHERE clauses, anything touching a JSON
column is left as a residual predicate applied after the fetch.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from sqlalchemy import JSON, or_
from sqlalchemy.sql.elements import ColumnElement

# Request parameter → document field for the recognised filter keys
FILTER_FIELDS = {
    "genres": "genres",
    "language": "language",
    "releaseYear": "release_year",
    "rating": "rating",
    "type": "type",
    "quality": "quality",
    "adminStatus": "admin_status",
}

# Sortable request keys → document field
SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "name": "name",
    "releaseYear": "release_year",
    "rating": "rating",
    "imdbRating": "imdb_rating",
    "views": "views",
    "likes": "likes",
    "downloads": "downloads",
    "priority": "priority",
    "impressions": "impressions",
    "clicks": "clicks",
    "startDate": "start_date",
}

# Shorthand sort keys → fixed multi-field orderings (field, descending)
SORT_PRESETS = {
    "newest": (("created_at", True),),
    "oldest": (("created_at", False),),
    "rating": (("rating", True), ("imdb_rating", True)),
    "views": (("views", True),),
    "alphabetical": (("title", False),),
    "year": (("release_year", True),),
    "trending": (("views", True), ("rating", True), ("created_at", True)),
}

MIN_SEARCH_LENGTH = 2
DEFAULT_SEARCH_FIELDS = ("title", "overview")


# ── Predicates ───────────────────────────────────────────────────

def resolve_path(doc: Mapping, path: str) -> list:
    """All leaf values reachable at ``path``; lists are flattened at every step."""
    values: list = [doc]
    for part in path.split("."):
        found: list = []
        for value in values:
            if not isinstance(value, Mapping):
                continue
            child = value.get(part)
            if isinstance(child, (list, tuple)):
                found.extend(child)
            elif child is not None:
                found.append(child)
        values = found
    return values


@dataclass(frozen=True)
class Condition:
    """A single field test.

    ``op`` is one of eq, ne, in, gte, lte, between (inclusive ``(low, high)``),
    icontains, prefix.
    """
    field: str
    op: str
    value: Any

    def matches(self, doc: Mapping) -> bool:
        values = resolve_path(doc, self.field)
        if self.op == "ne":
            return all(v != self.value for v in values)
        return any(self._test(v) for v in values)

    def _test(self, v: Any) -> bool:
        try:
            if self.op == "eq":
                return v == self.value
            if self.op == "in":
                return v in self.value
            if self.op == "gte":
                return v >= self.value
            if self.op == "lte":
                return v <= self.value
            if self.op == "between":
                return self.value[0] <= v <= self.value[1]
            if self.op == "icontains":
                return isinstance(v, str) and self.value.lower() in v.lower()
            if self.op == "prefix":
                return isinstance(v, str) and v.lower().startswith(self.value.lower())
        except TypeError:
            return False
        raise ValueError(f"Unknown operator: {self.op}")


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of conditions."""
    conditions: tuple[Condition, ...]

    def matches(self, doc: Mapping) -> bool:
        return any(c.matches(doc) for c in self.conditions)


Clause = Union[Condition, AnyOf]


@dataclass(frozen=True)
class Predicate:
    """Conjunction of clauses. The empty predicate matches every document."""
    clauses: tuple[Clause, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.clauses

    def matches(self, doc: Mapping) -> bool:
        return all(c.matches(doc) for c in self.clauses)

    def where(self, field: str, op: str, value: Any) -> "Predicate":
        return Predicate(self.clauses + (Condition(field, op, value),))

    def any_of(self, *conditions: Condition) -> "Predicate":
        return Predicate(self.clauses + (AnyOf(tuple(conditions)),))

    def __and__(self, other: "Predicate") -> "Predicate":
        return Predicate(self.clauses + other.clauses)


def _blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def _number(value: Any, cast=float) -> Optional[Union[int, float]]:
    try:
        return cast(str(value).strip())
    except (TypeError, ValueError):
        return None


def build_filter_query(
    params: Mapping[str, Any],
    extra_fields: Optional[Mapping[str, str]] = None,
) -> Predicate:
    """Translate filter parameters into a predicate.

    Only the keys in ``FILTER_FIELDS`` plus the endpoint's ``extra_fields``
    allow-list (param name → field, exact equality) are honoured; anything
    else is ignored. Empty or whitespace-only values are dropped.
    """
    extra_fields = extra_fields or {}
    pred = Predicate()
    for key, value in params.items():
        if _blank(value):
            continue
        if key == "genres":
            genres = tuple(g.strip() for g in str(value).split(",") if g.strip())
            if genres:
                pred = pred.where("genres", "in", genres)
        elif key == "language":
            pred = pred.where("language", "eq", str(value).strip())
        elif key == "releaseYear":
            year = _number(value, int)
            if year is not None:
                pred = pred.where("release_year", "eq", year)
        elif key == "rating":
            rating = _number(value)
            if rating is not None:
                pred = pred.where("rating", "gte", rating)
        elif key in ("type", "quality", "adminStatus"):
            pred = pred.where(FILTER_FIELDS[key], "eq", value)
        elif key in extra_fields:
            pred = pred.where(extra_fields[key], "eq", value)
    return pred


def build_search_query(term: Optional[str], fields: Sequence[str] = ()) -> Predicate:
    """Case-insensitive "any field contains term" predicate.

    Terms shorter than two characters after trimming yield the empty
    (match-everything) predicate.
    """
    if not isinstance(term, str) or len(term.strip()) < MIN_SEARCH_LENGTH:
        return Predicate()
    clean = term.strip()
    fields = tuple(fields) or DEFAULT_SEARCH_FIELDS
    return Predicate((AnyOf(tuple(Condition(f, "icontains", clean) for f in fields)),))


# ── Sorting ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = True


Ordering = tuple[SortKey, ...]


def build_sort_query(key: Optional[str] = "createdAt", order: Optional[str] = "desc") -> Ordering:
    """Map a sort key (preset or field name) to an ordering."""
    key = key or "createdAt"
    if key in SORT_PRESETS:
        return tuple(SortKey(f, desc) for f, desc in SORT_PRESETS[key])
    descending = (order or "desc").lower() != "asc"
    field_name = SORT_FIELDS.get(key)
    if field_name is None:
        field_name = key if key in SORT_FIELDS.values() else "created_at"
    return (SortKey(field_name, descending),)


def _sort_value(value: Any):
    if isinstance(value, str):
        return (True, value.casefold())
    if isinstance(value, datetime) and value.tzinfo is None:
        return (True, value.replace(tzinfo=timezone.utc))
    return (value is not None, value)


def sort_documents(docs: Iterable[dict], ordering: Ordering) -> list[dict]:
    """Stable in-memory multi-key sort with the same semantics as the SQL ordering."""
    result = list(docs)
    for key in reversed(ordering):
        result.sort(key=lambda d, f=key.field: _sort_value(d.get(f)), reverse=key.descending)
    return result


# ── SQL compilation ──────────────────────────────────────────────

def _scalar_column(model, field_name: str):
    if "." in field_name:
        return None
    column = model.__table__.columns.get(field_name)
    if column is None or isinstance(column.type, JSON):
        return None
    return column


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _condition_sql(model, cond: Condition) -> Optional[ColumnElement]:
    column = _scalar_column(model, cond.field)
    if column is None:
        return None
    if cond.op == "eq":
        return column == cond.value
    if cond.op == "ne":
        return or_(column != cond.value, column.is_(None))
    if cond.op == "in":
        return column.in_(list(cond.value))
    if cond.op == "gte":
        return column >= cond.value
    if cond.op == "lte":
        return column <= cond.value
    if cond.op == "between":
        return column.between(*cond.value)
    if cond.op == "icontains":
        return column.ilike(f"%{_escape_like(cond.value)}%", escape="\\")
    if cond.op == "prefix":
        return column.ilike(f"{_escape_like(cond.value)}%", escape="\\")
    return None


def compile_predicate(model, predicate: Predicate) -> tuple[list[ColumnElement], Predicate]:
    """Split a predicate into SQL WHERE clauses and an in-memory residual."""
    sql: list[ColumnElement] = []
    residual: list[Clause] = []
    for clause in predicate.clauses:
        if isinstance(clause, Condition):
            compiled = _condition_sql(model, clause)
            if compiled is None:
                residual.append(clause)
            else:
                sql.append(compiled)
        else:
            parts = [_condition_sql(model, c) for c in clause.conditions]
            if all(p is not None for p in parts):
                sql.append(or_(*parts))
            else:
                residual.append(clause)
    return sql, Predicate(tuple(residual))


def order_by_clauses(model, ordering: Ordering) -> list:
    clauses = []
    for key in ordering:
        column = _scalar_column(model, key.field)
        if column is not None:
            clauses.append(column.desc() if key.descending else column.asc())
    clauses.append(model.id.desc())
    return clauses

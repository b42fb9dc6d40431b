"""Storage-neutral query plans consumed by the entity repository."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

# purpose: describe filter, join, group, sort and paging intent without binding to a query engine
# inputs: dotted field paths relative to the plan's root entity
# outputs: immutable plan objects compiled by grantflow.repository backends
# status: active

PREDICATE_OPS = ("eq", "ne", "in", "not_in", "gt", "gte", "lt", "lte", "is_null", "not_null")
AGGREGATE_FUNCS = ("count", "sum", "avg", "min", "max")


@dataclass(frozen=True)
class Predicate:
    """A single comparison on a (possibly dotted) field path.

    ``ne`` is null-safe: rows where the field is missing count as "not equal".
    """

    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in PREDICATE_OPS:
            raise ValueError(f"unsupported predicate operator {self.op!r}")
        if self.op in ("in", "not_in"):
            object.__setattr__(self, "value", tuple(self.value or ()))


@dataclass(frozen=True)
class SortSpec:
    field: str
    descending: bool = False
    nulls_last: bool = True


@dataclass(frozen=True)
class Aggregate:
    """Aggregate function over ``field`` restricted to rows matching ``where``.

    ``count`` with no field counts rows.
    """

    func: str
    field: str | None = None
    where: tuple[Predicate, ...] = ()

    def __post_init__(self) -> None:
        if self.func not in AGGREGATE_FUNCS:
            raise ValueError(f"unsupported aggregate {self.func!r}")
        if self.func != "count" and not self.field:
            raise ValueError(f"aggregate {self.func!r} requires a field")
        object.__setattr__(self, "where", tuple(self.where))


@dataclass(frozen=True)
class GroupSpec:
    """Group rows by ``keys`` (empty means one group) and compute named aggregates."""

    keys: tuple[str, ...] = ()
    aggregates: Mapping[str, Aggregate] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "keys", tuple(self.keys))


@dataclass(frozen=True)
class QueryPlan:
    entity: str
    where: tuple[Predicate, ...] = ()
    load: tuple[str, ...] = ()
    sort: tuple[SortSpec, ...] = ()
    skip: int = 0
    limit: int | None = None
    group: GroupSpec | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "where", tuple(self.where))
        object.__setattr__(self, "load", tuple(self.load))
        object.__setattr__(self, "sort", tuple(self.sort))
        if self.skip < 0:
            raise ValueError("skip must not be negative")
        if self.limit is not None and self.limit < 1:
            raise ValueError("limit must be positive")

    def with_group(self, group: GroupSpec) -> "QueryPlan":
        """Same population, grouped; paging and sort are dropped."""

        return QueryPlan(entity=self.entity, where=self.where, group=group)

    def page(self, skip: int, limit: int | None) -> "QueryPlan":
        return QueryPlan(
            entity=self.entity,
            where=self.where,
            load=self.load,
            sort=self.sort,
            skip=skip,
            limit=limit,
        )

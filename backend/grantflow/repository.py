"""Entity repository: the only component that talks to the database."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, joinedload

from . import models
from .errors import ConflictError, NotFoundError, ValidationError
from .query_plan import Aggregate, Predicate, QueryPlan, SortSpec

# purpose: compile storage-neutral query plans into SQLAlchemy statements and guard writes
# inputs: QueryPlan objects, entity kinds registered in models.ENTITY_MODELS
# outputs: ORM rows, grouped aggregate rows, compare-and-set row counts
# status: active

logger = logging.getLogger(__name__)


class EntityRepository(ABC):
    """Typed read/write access to workflow entities."""

    @abstractmethod
    def find(self, plan: QueryPlan) -> list[Any]:
        ...

    @abstractmethod
    def find_by_id(
        self, entity: str, entity_id: UUID, load: Sequence[str] = (), lock: bool = False
    ) -> Any | None:
        ...

    def get(self, entity: str, entity_id: UUID, load: Sequence[str] = (), lock: bool = False) -> Any:
        row = self.find_by_id(entity, entity_id, load=load, lock=lock)
        if row is None:
            raise NotFoundError(f"{entity.replace('_', ' ')} {entity_id} not found", reason="not_found")
        return row

    @abstractmethod
    def insert(self, entity: str, values: Mapping[str, Any]) -> Any:
        ...

    @abstractmethod
    def update_by_id(
        self,
        entity: str,
        entity_id: UUID,
        values: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> int:
        """Write ``values`` when the stored row still matches ``expected``; return rows changed."""

    @abstractmethod
    def count(self, plan: QueryPlan) -> int:
        ...

    @abstractmethod
    def aggregate(self, plan: QueryPlan) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def read_snapshot(self):
        """Context manager under which several reads observe one consistent state."""

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


def _model_for(entity: str):
    try:
        return models.ENTITY_MODELS[entity]
    except KeyError as exc:
        raise ValidationError(f"unknown entity kind {entity!r}") from exc


class _PlanCompiler:
    """Resolve dotted field paths to columns, outer-joining to-one relationships once per path."""

    def __init__(self, model) -> None:
        self.model = model
        self._aliases: dict[str, Any] = {}
        self._joins: list[tuple[Any, str, Any]] = []

    def column(self, path: str):
        parts = path.split(".")
        current = self.model
        walked: list[str] = []
        for name in parts[:-1]:
            walked.append(name)
            key = ".".join(walked)
            if key not in self._aliases:
                relationship = sa.inspect(current).mapper.relationships.get(name)
                if relationship is None or relationship.uselist:
                    raise ValidationError(f"field path {path!r} does not follow a to-one relationship")
                alias = aliased(relationship.mapper.class_)
                self._joins.append((current, name, alias))
                self._aliases[key] = alias
            current = self._aliases[key]
        attribute = parts[-1]
        if attribute not in sa.inspect(current).mapper.column_attrs:
            raise ValidationError(f"unknown field {path!r}")
        return getattr(current, attribute)

    def predicate(self, predicate: Predicate):
        column = self.column(predicate.field)
        op, value = predicate.op, predicate.value
        if op == "eq":
            return column.is_(None) if value is None else column == value
        if op == "ne":
            if value is None:
                return column.is_not(None)
            return sa.or_(column != value, column.is_(None))
        if op == "in":
            return column.in_(value)
        if op == "not_in":
            return sa.or_(column.not_in(value), column.is_(None))
        if op == "gt":
            return column > value
        if op == "gte":
            return column >= value
        if op == "lt":
            return column < value
        if op == "lte":
            return column <= value
        if op == "is_null":
            return column.is_(None)
        return column.is_not(None)

    def conditions(self, predicates: Sequence[Predicate]):
        return [self.predicate(p) for p in predicates]

    def order_by(self, spec: SortSpec):
        column = self.column(spec.field)
        clause = column.desc() if spec.descending else column.asc()
        return clause.nulls_last() if spec.nulls_last else clause.nulls_first()

    def aggregate(self, aggregate: Aggregate):
        condition = sa.and_(*self.conditions(aggregate.where)) if aggregate.where else None
        if aggregate.func == "count":
            target = self.column(aggregate.field) if aggregate.field else self.model.id
            if condition is not None:
                target = sa.case((condition, target))
            return sa.func.count(target)
        target = self.column(aggregate.field)
        if condition is not None:
            target = sa.case((condition, target))
        expression = getattr(sa.func, aggregate.func)(target)
        if aggregate.func == "sum":
            return sa.func.coalesce(expression, 0)
        return expression

    def apply_joins(self, stmt):
        for parent, name, alias in self._joins:
            stmt = stmt.outerjoin(getattr(parent, name).of_type(alias))
        return stmt


def _load_option(model, path: str):
    option = None
    current = model
    for name in path.split("."):
        relationship = sa.inspect(current).relationships.get(name)
        if relationship is None:
            raise ValidationError(f"unknown relationship path {path!r}")
        attribute = getattr(current, name)
        option = joinedload(attribute) if option is None else option.joinedload(attribute)
        current = relationship.mapper.class_
    return option


class SqlAlchemyRepository(EntityRepository):
    """Repository backed by a SQLAlchemy session (PostgreSQL in production, SQLite in tests)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _filtered(self, stmt, compiler: _PlanCompiler, plan: QueryPlan):
        conditions = compiler.conditions(plan.where)
        if conditions:
            stmt = stmt.where(*conditions)
        return stmt

    def find(self, plan: QueryPlan) -> list[Any]:
        model = _model_for(plan.entity)
        compiler = _PlanCompiler(model)
        stmt = self._filtered(sa.select(model), compiler, plan)
        order = [compiler.order_by(spec) for spec in plan.sort]
        stmt = compiler.apply_joins(stmt)
        if order:
            stmt = stmt.order_by(*order)
        if plan.load:
            stmt = stmt.options(*[_load_option(model, path) for path in plan.load])
        if plan.skip:
            stmt = stmt.offset(plan.skip)
        if plan.limit is not None:
            stmt = stmt.limit(plan.limit)
        return list(self.session.execute(stmt).unique().scalars().all())

    def find_by_id(
        self, entity: str, entity_id: UUID, load: Sequence[str] = (), lock: bool = False
    ) -> Any | None:
        model = _model_for(entity)
        options = [_load_option(model, path) for path in load]
        if not lock:
            return self.session.get(model, entity_id, options=options or None)
        # FOR UPDATE OF the root table only; joined rows sit on the nullable side of outer joins
        return self.session.get(
            model,
            entity_id,
            options=options or None,
            populate_existing=True,
            with_for_update={"of": model},
        )

    def insert(self, entity: str, values: Mapping[str, Any]) -> Any:
        model = _model_for(entity)
        row = model(**dict(values))
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except IntegrityError as exc:
            logger.info("insert into %s rejected by a uniqueness constraint", entity)
            raise ConflictError(f"{entity.replace('_', ' ')} already exists", reason="duplicate") from exc
        return row

    def update_by_id(
        self,
        entity: str,
        entity_id: UUID,
        values: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> int:
        model = _model_for(entity)
        stmt = sa.update(model).where(model.id == entity_id)
        for name, value in (expected or {}).items():
            column = getattr(model, name)
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        stmt = stmt.values(**dict(values)).execution_options(synchronize_session="evaluate")
        try:
            with self.session.begin_nested():
                result = self.session.execute(stmt)
        except IntegrityError as exc:
            raise ConflictError(f"{entity.replace('_', ' ')} update conflicts with an existing row") from exc
        return result.rowcount

    def count(self, plan: QueryPlan) -> int:
        model = _model_for(plan.entity)
        compiler = _PlanCompiler(model)
        stmt = self._filtered(sa.select(sa.func.count(model.id)).select_from(model), compiler, plan)
        stmt = compiler.apply_joins(stmt)
        return int(self.session.execute(stmt).scalar_one())

    def aggregate(self, plan: QueryPlan) -> list[dict[str, Any]]:
        if plan.group is None:
            raise ValidationError("aggregate requires a group specification")
        model = _model_for(plan.entity)
        compiler = _PlanCompiler(model)
        keys = [compiler.column(key) for key in plan.group.keys]
        names = list(plan.group.keys) + list(plan.group.aggregates)
        columns = keys + [compiler.aggregate(agg) for agg in plan.group.aggregates.values()]
        stmt = self._filtered(sa.select(*columns).select_from(model), compiler, plan)
        stmt = compiler.apply_joins(stmt)
        if keys:
            stmt = stmt.group_by(*keys)
        return [dict(zip(names, row)) for row in self.session.execute(stmt).all()]

    @contextmanager
    def read_snapshot(self) -> Iterator["SqlAlchemyRepository"]:
        bind = self.session.get_bind()
        if bind.dialect.name == "postgresql" and not self.session.in_transaction():
            self.session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        yield self

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

from datetime import datetime
from uuid import UUID

from .query_plan import Aggregate, GroupSpec, Predicate, QueryPlan
from .repository import EntityRepository


def record_action(
    repository: EntityRepository,
    user_id: str | UUID | None,
    action: str,
    created_at: datetime,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
):
    return repository.insert(
        "audit_log",
        {
            "user_id": UUID(str(user_id)) if user_id else None,
            "action": action,
            "target_type": target_type,
            "target_id": UUID(str(target_id)) if target_id else None,
            "details": details or {},
            "created_at": created_at,
        },
    )


def action_counts(
    repository: EntityRepository,
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
):
    where = [Predicate("created_at", "gte", start), Predicate("created_at", "lte", end)]
    if user_id:
        where.append(Predicate("user_id", "eq", user_id))
    rows = repository.aggregate(
        QueryPlan(
            entity="audit_log",
            where=tuple(where),
            group=GroupSpec(keys=("action",), aggregates={"count": Aggregate("count")}),
        )
    )
    return sorted(({"action": r["action"], "count": r["count"]} for r in rows), key=lambda r: r["action"])

"""Decision-ready listings with statistics computed over the same filter."""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any, Mapping, TypeVar
from uuid import UUID

import pydantic

from .. import models
from ..clock import Clock, start_of_month
from ..config import ReviewSettings
from ..errors import ValidationError
from ..query_plan import Aggregate, GroupSpec, Predicate, QueryPlan, SortSpec
from ..repository import EntityRepository
from ..schemas import DecisionQuery, FullProposalDecisionQuery

# purpose: paginate decision-ready proposals and approved-award full proposals with matching statistics
# inputs: DecisionQuery / FullProposalDecisionQuery, ReviewSettings page bounds and thresholds, Clock
# outputs: page payloads {data, count, total, total_pages, current_page, statistics}
# status: active

logger = logging.getLogger(__name__)

QueryT = TypeVar("QueryT", DecisionQuery, FullProposalDecisionQuery)

_DECISION_SORT_FIELDS = {
    "final_score": "award.final_score",
    "title": "title",
    "requested_budget": "requested_budget",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "submitted_at": "submitted_at",
}

_FULL_PROPOSAL_SORT_FIELDS = {
    "submitted_at": "submitted_at",
    "deadline": "deadline",
    "title": "proposal.title",
    "created_at": "created_at",
    "updated_at": "updated_at",
}


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "query"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


class DecisionPipeline:
    def __init__(self, repository: EntityRepository, settings: ReviewSettings, clock: Clock) -> None:
        self.repository = repository
        self.settings = settings
        self.clock = clock

    # query parsing

    def parse_query(self, params: Mapping[str, Any]) -> DecisionQuery:
        return self._parse(DecisionQuery, params)

    def parse_full_proposal_query(self, params: Mapping[str, Any]) -> FullProposalDecisionQuery:
        return self._parse(FullProposalDecisionQuery, params)

    def _parse(self, query_type: type[QueryT], params: Mapping[str, Any] | QueryT | None) -> QueryT:
        if params is None:
            query = query_type()
        elif isinstance(params, query_type):
            query = params
        else:
            try:
                query = query_type.model_validate(dict(params))
            except pydantic.ValidationError as exc:
                raise ValidationError(_describe(exc), reason="invalid_query") from exc
        if query.limit is not None and query.limit > self.settings.max_page_size:
            raise ValidationError(
                f"limit must not exceed {self.settings.max_page_size}", reason="invalid_query"
            )
        return query

    def _limit(self, query) -> int:
        return query.limit or self.settings.default_page_size

    # decision-ready proposals

    def decision_filter(self, query: DecisionQuery) -> tuple[Predicate, ...]:
        where = [
            Predicate("review_status", "eq", "reviewed"),
            Predicate("is_archived", "ne", True),
        ]
        if query.faculty is not None:
            where.append(Predicate("submitter.faculty_id", "eq", query.faculty))
        if query.status is not None:
            where.append(Predicate("award.status", "eq", query.status))
        return tuple(where)

    def list_for_decision(self, query: DecisionQuery | Mapping[str, Any] | None = None) -> dict[str, Any]:
        query = self._parse(DecisionQuery, query)
        limit = self._limit(query)
        threshold = (
            query.threshold if query.threshold is not None else self.settings.decision_score_threshold
        )
        where = self.decision_filter(query)
        descending = query.order == "desc"
        plan = QueryPlan(
            entity="proposal",
            where=where,
            load=("submitter.faculty", "submitter.department", "award"),
            sort=(
                SortSpec(_DECISION_SORT_FIELDS[query.sort], descending=descending),
                SortSpec("id"),
            ),
        )
        with self.repository.read_snapshot():
            statistics = self._decision_statistics(plan, threshold)
            rows = self.repository.find(plan.page((query.page - 1) * limit, limit))
        data = [self._decision_row(proposal) for proposal in rows]
        total = statistics["total_proposals"]
        logger.debug("decision page %s: %s of %s proposals", query.page, len(data), total)
        return {
            "data": data,
            "count": len(data),
            "total": total,
            "total_pages": total_pages(total, limit),
            "current_page": query.page,
            "statistics": statistics,
        }

    def decision_statistics(self, query: DecisionQuery | Mapping[str, Any] | None = None) -> dict[str, Any]:
        query = self._parse(DecisionQuery, query)
        threshold = (
            query.threshold if query.threshold is not None else self.settings.decision_score_threshold
        )
        return self._decision_statistics(QueryPlan(entity="proposal", where=self.decision_filter(query)), threshold)

    def _decision_statistics(self, plan: QueryPlan, threshold: float) -> dict[str, Any]:
        above = (Predicate("award.final_score", "gte", threshold),)
        group = GroupSpec(
            aggregates={
                "total_proposals": Aggregate("count"),
                "pending": Aggregate("count", where=(Predicate("award.status", "eq", "pending"),)),
                "approved": Aggregate("count", where=(Predicate("award.status", "eq", "approved"),)),
                "declined": Aggregate("count", where=(Predicate("award.status", "eq", "declined"),)),
                "average_score": Aggregate("avg", "award.final_score"),
                "above_threshold": Aggregate("count", where=above),
                "above_threshold_budget": Aggregate("sum", "requested_budget", where=above),
                "approved_funding": Aggregate(
                    "sum", "award.funding_amount", where=(Predicate("award.status", "eq", "approved"),)
                ),
            }
        )
        rows = self.repository.aggregate(plan.with_group(group))
        raw = rows[0] if rows else {}
        average = raw.get("average_score")
        return {
            "total_proposals": int(raw.get("total_proposals") or 0),
            "by_status": {
                "pending": int(raw.get("pending") or 0),
                "approved": int(raw.get("approved") or 0),
                "declined": int(raw.get("declined") or 0),
            },
            "average_score": round(float(average), 2) if average is not None else None,
            "threshold": threshold,
            "above_threshold": int(raw.get("above_threshold") or 0),
            "above_threshold_budget": float(raw.get("above_threshold_budget") or 0),
            "approved_funding": float(raw.get("approved_funding") or 0),
        }

    @staticmethod
    def _decision_row(proposal: models.Proposal) -> dict[str, Any]:
        submitter = proposal.submitter
        return {
            "proposal": proposal,
            "submitter": submitter,
            "faculty": submitter.faculty if submitter is not None else None,
            "department": submitter.department if submitter is not None else None,
            "award": proposal.award,
        }

    # full proposals of approved awards

    def full_proposal_filter(self, query: FullProposalDecisionQuery) -> tuple[Predicate, ...]:
        where = [Predicate("proposal.award.status", "eq", "approved")]
        if query.faculty is not None:
            where.append(Predicate("proposal.submitter.faculty_id", "eq", query.faculty))
        if query.status is not None:
            where.append(Predicate("status", "eq", query.status))
        return tuple(where)

    def list_full_proposals_for_decision(
        self, query: FullProposalDecisionQuery | Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        query = self._parse(FullProposalDecisionQuery, query)
        limit = self._limit(query)
        plan = QueryPlan(
            entity="full_proposal",
            where=self.full_proposal_filter(query),
            load=("proposal.submitter.faculty", "proposal.award"),
            sort=(
                SortSpec(_FULL_PROPOSAL_SORT_FIELDS[query.sort], descending=query.order == "desc"),
                SortSpec("id"),
            ),
        )
        with self.repository.read_snapshot():
            statistics = self._full_proposal_statistics(plan)
            rows = self.repository.find(plan.page((query.page - 1) * limit, limit))
        data = [self._full_proposal_row(full_proposal) for full_proposal in rows]
        total = statistics["total_full_proposals"]
        return {
            "data": data,
            "count": len(data),
            "total": total,
            "total_pages": total_pages(total, limit),
            "current_page": query.page,
            "statistics": statistics,
        }

    def _full_proposal_statistics(self, plan: QueryPlan) -> dict[str, Any]:
        now = self.clock.now()
        nearing = now + timedelta(days=self.settings.nearing_deadline_days)
        group = GroupSpec(
            aggregates={
                "total_full_proposals": Aggregate("count"),
                "pending_decisions": Aggregate("count", where=(Predicate("status", "eq", "submitted"),)),
                "approved": Aggregate("count", where=(Predicate("status", "eq", "approved"),)),
                "rejected": Aggregate("count", where=(Predicate("status", "eq", "rejected"),)),
                "submitted_this_month": Aggregate(
                    "count", where=(Predicate("submitted_at", "gte", start_of_month(now)),)
                ),
                "nearing_deadline": Aggregate(
                    "count",
                    where=(
                        Predicate("status", "eq", "submitted"),
                        Predicate("deadline", "lte", nearing),
                    ),
                ),
            }
        )
        rows = self.repository.aggregate(plan.with_group(group))
        raw = rows[0] if rows else {}
        return {name: int(raw.get(name) or 0) for name in group.aggregates}

    @staticmethod
    def _full_proposal_row(full_proposal: models.FullProposal) -> dict[str, Any]:
        proposal = full_proposal.proposal
        submitter = proposal.submitter
        return {
            "full_proposal": full_proposal,
            "proposal": proposal,
            "submitter": submitter,
            "faculty": submitter.faculty if submitter is not None else None,
            "award": proposal.award,
        }

    # faculties

    def get_faculties_with_activity(self) -> list[models.Faculty]:
        """Faculties with at least one proposal: submitters, then their faculties, then the records."""

        submitter_rows = self.repository.aggregate(
            QueryPlan(entity="proposal", group=GroupSpec(keys=("submitter_id",)))
        )
        submitter_ids = [row["submitter_id"] for row in submitter_rows if row["submitter_id"] is not None]
        if not submitter_ids:
            return []
        faculty_rows = self.repository.aggregate(
            QueryPlan(
                entity="user",
                where=(Predicate("id", "in", submitter_ids), Predicate("faculty_id", "not_null")),
                group=GroupSpec(keys=("faculty_id",)),
            )
        )
        faculty_ids: list[UUID] = [row["faculty_id"] for row in faculty_rows]
        if not faculty_ids:
            return []
        return self.repository.find(
            QueryPlan(
                entity="faculty",
                where=(Predicate("id", "in", faculty_ids),),
                sort=(SortSpec("title"), SortSpec("id")),
            )
        )

"""Reviewer assignment, review completion and reconciliation triggering."""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any
from uuid import UUID

from .. import models
from ..audit import record_action
from ..clock import Clock, add_business_days
from ..config import REVIEW_KINDS, ReviewSettings
from ..errors import (
    ConflictError,
    InvalidStateError,
    UnauthorizedError,
    ValidationError,
)
from ..notify import Notifier
from ..query_plan import Predicate, QueryPlan, SortSpec
from ..repository import EntityRepository
from .scoring import ScoringAggregator, divergence, resolve_final_score

# purpose: keep review assignment unique per (proposal, reviewer, kind) and drive proposals to "reviewed"
# inputs: proposal/reviewer ids, review kinds, submitted scores, ReviewSettings thresholds
# outputs: Review rows, proposal review_status transitions, pending Award rows, notifications
# status: active

logger = logging.getLogger(__name__)

_ROLE_FOR_KIND = {
    "automated": "system",
    "human": "reviewer",
    "reconciliation": "reviewer",
}

_CLOSED_PROPOSAL_STATES = ("draft", "decided")

Message = tuple[str, list[str], dict[str, Any]]


class ReviewAssignmentManager:
    def __init__(
        self,
        repository: EntityRepository,
        notifier: Notifier,
        settings: ReviewSettings,
        clock: Clock,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.settings = settings
        self.clock = clock
        self.scoring = ScoringAggregator(repository, settings)

    # assignment

    def assign(
        self,
        proposal_id: UUID,
        reviewer_id: UUID,
        kind: str,
        *,
        actor_id: UUID | None = None,
    ) -> models.Review:
        """Create the one review for (proposal, reviewer, kind)."""

        if kind not in REVIEW_KINDS:
            raise ValidationError(f"unknown review kind {kind!r}", reason="invalid_kind")
        proposal = self.repository.get("proposal", proposal_id)
        self._check_open_for_review(proposal)
        reviewer = self.repository.get("user", reviewer_id)
        self._check_reviewer(reviewer, kind, proposal)

        scores = self.scoring.completed_scores(proposal.id)
        if kind in scores:
            raise ConflictError(f"proposal already has a completed {kind} review", reason="kind_completed")
        gap = None
        if kind == "reconciliation":
            gap = divergence(scores)
            if gap is None or gap <= self.settings.divergence_threshold:
                raise ConflictError(
                    "reconciliation requires diverging automated and human scores",
                    reason="no_divergence",
                )

        now = self.clock.now()
        review = self.repository.insert(
            "review",
            {
                "proposal_id": proposal.id,
                "reviewer_id": reviewer.id,
                "kind": kind,
                "status": "pending",
                "assigned_at": now,
                "due_at": self._due_date(kind, now),
            },
        )
        first = self.repository.update_by_id(
            "proposal",
            proposal.id,
            {"review_status": "assigned", "updated_at": now},
            expected={"review_status": "pending"},
        )
        if first:
            self.repository.update_by_id(
                "proposal",
                proposal.id,
                {"status": "under_review"},
                expected={"status": "submitted"},
            )
        record_action(
            self.repository,
            actor_id,
            "review.assigned",
            now,
            target_type="review",
            target_id=review.id,
            details={"proposal_id": str(proposal.id), "kind": kind, "reviewer_id": str(reviewer.id)},
        )
        messages = [self._assignment_message(review, proposal, reviewer, gap)]
        self.repository.commit()
        logger.info("assigned %s review %s on proposal %s", kind, review.id, proposal.id)
        self._dispatch(messages)
        return review

    def reassign(
        self,
        review_id: UUID,
        reviewer_id: UUID,
        *,
        actor_id: UUID | None = None,
    ) -> models.Review:
        """Move a pending review to another eligible reviewer."""

        review = self.repository.get("review", review_id)
        if review.status != "pending":
            raise InvalidStateError("completed reviews cannot be reassigned", reason="review_completed")
        if review.reviewer_id == reviewer_id:
            raise ConflictError("review is already assigned to this reviewer", reason="duplicate")
        proposal = self.repository.get("proposal", review.proposal_id)
        self._check_open_for_review(proposal)
        reviewer = self.repository.get("user", reviewer_id)
        self._check_reviewer(reviewer, review.kind, proposal)

        now = self.clock.now()
        previous = review.reviewer_id
        changed = self.repository.update_by_id(
            "review",
            review.id,
            {
                "reviewer_id": reviewer.id,
                "assigned_at": now,
                "due_at": self._due_date(review.kind, now),
                "reminded_at": None,
            },
            expected={"status": "pending", "reviewer_id": previous},
        )
        if not changed:
            raise ConflictError("review changed while it was being reassigned", reason="stale_review")
        record_action(
            self.repository,
            actor_id,
            "review.reassigned",
            now,
            target_type="review",
            target_id=review.id,
            details={"from": str(previous) if previous else None, "to": str(reviewer.id)},
        )
        messages = [self._assignment_message(review, proposal, reviewer, None)]
        self.repository.commit()
        self._dispatch(messages)
        return review

    # completion

    def complete(
        self,
        review_id: UUID,
        total_score: Any,
        comments: str | None = None,
        *,
        actor: models.User | None = None,
    ) -> models.Review:
        """Record a score once and re-evaluate the proposal's review set."""

        score = self._validate_score(total_score)
        review = self.repository.get("review", review_id)
        if actor is not None and not actor.is_admin and review.reviewer_id != actor.id:
            raise UnauthorizedError("only the assigned reviewer may complete this review")
        if review.status == "completed":
            raise ConflictError("review has already been completed", reason="already_completed")

        now = self.clock.now()
        changed = self.repository.update_by_id(
            "review",
            review.id,
            {
                "status": "completed",
                "total_score": score,
                "comments": comments,
                "completed_at": now,
            },
            expected={"status": "pending"},
        )
        if not changed:
            raise ConflictError("review has already been completed", reason="already_completed")
        record_action(
            self.repository,
            actor.id if actor is not None else None,
            "review.completed",
            now,
            target_type="review",
            target_id=review.id,
            details={"kind": review.kind, "score": score},
        )
        try:
            outcome, messages = self._evaluate(review.proposal_id, actor.id if actor is not None else None)
        except Exception:
            self.repository.rollback()
            raise
        self.repository.commit()
        logger.info(
            "completed %s review %s (score %.2f); proposal %s is %s",
            review.kind,
            review.id,
            score,
            review.proposal_id,
            outcome["state"],
        )
        self._dispatch(messages)
        return review

    def evaluate_completion(self, proposal_id: UUID, *, actor_id: UUID | None = None) -> dict[str, Any]:
        """Re-run the completion rule; safe to call any number of times."""

        outcome, messages = self._evaluate(proposal_id, actor_id)
        self.repository.commit()
        self._dispatch(messages)
        return outcome

    def _evaluate(self, proposal_id: UUID, actor_id: UUID | None) -> tuple[dict[str, Any], list[Message]]:
        # row lock serialises concurrent completions of sibling reviews
        proposal = self.repository.get("proposal", proposal_id, load=("submitter",), lock=True)
        scores = self.scoring.completed_scores(proposal.id)
        threshold = self.settings.divergence_threshold
        outcome: dict[str, Any] = {
            "proposal_id": proposal.id,
            "state": "incomplete",
            "final_score": resolve_final_score(scores, threshold),
            "reconciliation_review_id": None,
            "reconciliation_created": False,
        }
        if proposal.review_status == "reviewed":
            outcome["state"] = "reviewed"
            return outcome, []

        if "reconciliation" in scores:
            self._mark_reviewed(proposal, scores["reconciliation"], actor_id)
            outcome["state"] = "reviewed"
            return outcome, []

        gap = divergence(scores)
        if gap is not None and gap > threshold:
            reconciliation, created = self._ensure_reconciliation(proposal, gap, actor_id)
            outcome["state"] = "reconciliation_required"
            outcome["reconciliation_review_id"] = reconciliation.id
            outcome["reconciliation_created"] = created
            messages = []
            if created and reconciliation.reviewer_id is not None:
                reviewer = self.repository.get("user", reconciliation.reviewer_id)
                messages.append(self._assignment_message(reconciliation, proposal, reviewer, gap))
            return outcome, messages

        if all(kind in scores for kind in self.settings.required_review_kinds):
            self._mark_reviewed(proposal, outcome["final_score"], actor_id)
            outcome["state"] = "reviewed"
        return outcome, []

    def _ensure_reconciliation(
        self,
        proposal: models.Proposal,
        gap: float,
        actor_id: UUID | None,
    ) -> tuple[models.Review, bool]:
        existing = self._reconciliation_reviews(proposal.id)
        if existing:
            return existing[0], False
        reviewer = self._pick_reconciliation_reviewer(proposal)
        now = self.clock.now()
        try:
            review = self.repository.insert(
                "review",
                {
                    "proposal_id": proposal.id,
                    "reviewer_id": reviewer.id if reviewer is not None else None,
                    "kind": "reconciliation",
                    "status": "pending",
                    "assigned_at": now,
                    "due_at": self._due_date("reconciliation", now),
                },
            )
        except ConflictError:
            existing = self._reconciliation_reviews(proposal.id)
            if not existing:
                raise
            return existing[0], False
        if reviewer is None:
            logger.warning("no eligible reconciliation reviewer for proposal %s; left unassigned", proposal.id)
        record_action(
            self.repository,
            actor_id,
            "review.reconciliation_created",
            now,
            target_type="review",
            target_id=review.id,
            details={"proposal_id": str(proposal.id), "divergence": gap},
        )
        return review, True

    def _reconciliation_reviews(self, proposal_id: UUID) -> list[models.Review]:
        return self.repository.find(
            QueryPlan(
                entity="review",
                where=(
                    Predicate("proposal_id", "eq", proposal_id),
                    Predicate("kind", "eq", "reconciliation"),
                ),
            )
        )

    def _pick_reconciliation_reviewer(self, proposal: models.Proposal) -> models.User | None:
        reviews = self.repository.find(
            QueryPlan(entity="review", where=(Predicate("proposal_id", "eq", proposal.id),))
        )
        excluded = {review.reviewer_id for review in reviews if review.reviewer_id is not None}
        excluded.add(proposal.submitter_id)
        base = (
            Predicate("role", "eq", "reviewer"),
            Predicate("is_active", "eq", True),
            Predicate("id", "not_in", sorted(excluded, key=str)),
        )
        order = (SortSpec("created_at"), SortSpec("id"))
        submitter = proposal.submitter
        if submitter is not None and submitter.faculty_id is not None:
            same_faculty = self.repository.find(
                QueryPlan(
                    entity="user",
                    where=base + (Predicate("faculty_id", "eq", submitter.faculty_id),),
                    sort=order,
                    limit=1,
                )
            )
            if same_faculty:
                return same_faculty[0]
        candidates = self.repository.find(QueryPlan(entity="user", where=base, sort=order, limit=1))
        return candidates[0] if candidates else None

    def _mark_reviewed(self, proposal: models.Proposal, final_score: float | None, actor_id: UUID | None) -> None:
        now = self.clock.now()
        changed = self.repository.update_by_id(
            "proposal",
            proposal.id,
            {"review_status": "reviewed", "status": "reviewed", "updated_at": now},
            expected={"review_status": "assigned"},
        )
        if not changed:
            return
        award = self.repository.insert(
            "award",
            {
                "proposal_id": proposal.id,
                "submitter_id": proposal.submitter_id,
                "status": "pending",
                "final_score": final_score,
                "created_at": now,
                "updated_at": now,
            },
        )
        record_action(
            self.repository,
            actor_id,
            "proposal.reviewed",
            now,
            target_type="proposal",
            target_id=proposal.id,
            details={"award_id": str(award.id), "final_score": final_score},
        )

    # reviewer workload

    def list_assignments(self, reviewer_id: UUID, status: str | None = None) -> dict[str, Any]:
        """A reviewer's own reviews, soonest due first, with workload counts.

        ``status`` narrows the listing to ``pending``, ``completed`` or ``overdue``
        reviews; the statistics always cover every review assigned to the reviewer.
        """

        now = self.clock.now()
        mine = (Predicate("reviewer_id", "eq", reviewer_id),)
        pending = mine + (Predicate("status", "eq", "pending"),)
        overdue = pending + (Predicate("due_at", "lte", now),)
        filters = {
            None: mine,
            "pending": pending,
            "completed": mine + (Predicate("status", "eq", "completed"),),
            "overdue": overdue,
        }
        if status not in filters:
            raise ValidationError(f"unknown assignment status {status!r}", reason="invalid_status")

        reviews = self.repository.find(
            QueryPlan(
                entity="review",
                where=filters[status],
                load=("proposal",),
                sort=(SortSpec("due_at"), SortSpec("assigned_at"), SortSpec("id")),
            )
        )
        late = self.repository.count(QueryPlan(entity="review", where=overdue))
        statistics = {
            "total_assigned": self.repository.count(QueryPlan(entity="review", where=mine)),
            "completed": self.repository.count(QueryPlan(entity="review", where=filters["completed"])),
            "pending": self.repository.count(QueryPlan(entity="review", where=pending)) - late,
            "overdue": late,
        }
        return {"data": reviews, "count": len(reviews), "statistics": statistics}

    # reminders

    def send_reminders(self) -> int:
        """Notify reviewers whose pending reviews fall due within the reminder window."""

        now = self.clock.now()
        horizon = now + timedelta(hours=self.settings.reminder_window_hours)
        reviews = self.repository.find(
            QueryPlan(
                entity="review",
                where=(
                    Predicate("status", "eq", "pending"),
                    Predicate("reviewer_id", "not_null"),
                    Predicate("due_at", "lte", horizon),
                    Predicate("reminded_at", "is_null"),
                ),
                load=("reviewer", "proposal"),
                sort=(SortSpec("due_at"), SortSpec("id")),
            )
        )
        messages: list[Message] = []
        for review in reviews:
            if not self.repository.update_by_id(
                "review", review.id, {"reminded_at": now}, expected={"reminded_at": None}
            ):
                continue
            messages.append(
                (
                    "review_reminder",
                    [review.reviewer.email],
                    {
                        "review_id": str(review.id),
                        "reviewer_name": review.reviewer.name,
                        "proposal_title": review.proposal.title,
                        "due_at": review.due_at.isoformat() if review.due_at else None,
                    },
                )
            )
        self.repository.commit()
        self._dispatch(messages)
        return len(messages)

    # helpers

    def _check_open_for_review(self, proposal: models.Proposal) -> None:
        if proposal.status in _CLOSED_PROPOSAL_STATES:
            raise InvalidStateError(
                f"proposal is {proposal.status} and cannot take reviewers", reason="proposal_closed"
            )
        if proposal.review_status == "reviewed":
            raise InvalidStateError("proposal has already been reviewed", reason="already_reviewed")

    def _check_reviewer(self, reviewer: models.User, kind: str, proposal: models.Proposal) -> None:
        role = _ROLE_FOR_KIND[kind]
        if reviewer.role != role:
            raise ValidationError(f"{kind} reviews must be assigned to a {role} account", reason="wrong_role")
        if not reviewer.is_active:
            raise ValidationError("reviewer account is inactive", reason="inactive_reviewer")
        if reviewer.id == proposal.submitter_id:
            raise ValidationError("submitters cannot review their own proposal", reason="self_review")

    def _validate_score(self, total_score: Any) -> float:
        if isinstance(total_score, bool) or not isinstance(total_score, (int, float)):
            raise ValidationError("score must be a number", reason="invalid_score")
        score = float(total_score)
        if math.isnan(score) or math.isinf(score):
            raise ValidationError("score must be a finite number", reason="invalid_score")
        if not self.settings.score_min <= score <= self.settings.score_max:
            raise ValidationError(
                f"score must lie between {self.settings.score_min:g} and {self.settings.score_max:g}",
                reason="score_out_of_range",
            )
        return score

    def _due_date(self, kind: str, assigned_at):
        if kind == "reconciliation":
            return add_business_days(assigned_at, self.settings.reconciliation_due_business_days)
        return assigned_at + timedelta(days=self.settings.review_due_days)

    def _assignment_message(
        self,
        review: models.Review,
        proposal: models.Proposal,
        reviewer: models.User,
        gap: float | None,
    ) -> Message:
        kind = "reconciliation_assignment" if review.kind == "reconciliation" else "reviewer_assignment"
        payload = {
            "review_id": str(review.id),
            "proposal_id": str(proposal.id),
            "proposal_title": proposal.title,
            "reviewer_name": reviewer.name,
            "due_at": review.due_at.isoformat() if review.due_at else None,
        }
        if gap is not None:
            payload["divergence"] = gap
        return kind, [reviewer.email], payload

    def _dispatch(self, messages: list[Message]) -> None:
        for kind, recipients, payload in messages:
            self.notifier.notify(kind, recipients, payload)

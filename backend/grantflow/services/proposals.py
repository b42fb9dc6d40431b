"""Proposal intake and direct lookups."""

from __future__ import annotations

import logging
from uuid import UUID

from .. import models
from ..audit import record_action
from ..clock import Clock
from ..errors import UnauthorizedError, ValidationError
from ..models import PROPOSAL_TYPES
from ..notify import Notifier
from ..query_plan import Predicate, QueryPlan, SortSpec
from ..repository import EntityRepository

logger = logging.getLogger(__name__)


class ProposalService:
    def __init__(self, repository: EntityRepository, notifier: Notifier, clock: Clock) -> None:
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    def submit_proposal(
        self,
        submitter_id: UUID,
        proposal_type: str,
        title: str,
        requested_budget: float,
    ) -> models.Proposal:
        submitter = self.repository.get("user", submitter_id)
        if submitter.role != "researcher":
            raise UnauthorizedError("only researchers may submit proposals")
        if proposal_type not in PROPOSAL_TYPES:
            raise ValidationError(f"unknown proposal type {proposal_type!r}", reason="invalid_type")
        if not title or not title.strip():
            raise ValidationError("title is required", reason="missing_title")
        if requested_budget is None or requested_budget < 0:
            raise ValidationError("requested budget must not be negative", reason="invalid_budget")

        now = self.clock.now()
        proposal = self.repository.insert(
            "proposal",
            {
                "submitter_id": submitter.id,
                "proposal_type": proposal_type,
                "title": title.strip(),
                "requested_budget": float(requested_budget),
                "status": "submitted",
                "review_status": "pending",
                "is_archived": False,
                "submitted_at": now,
                "created_at": now,
                "updated_at": now,
            },
        )
        record_action(
            self.repository,
            submitter.id,
            "proposal.submitted",
            now,
            target_type="proposal",
            target_id=proposal.id,
        )
        payload = {
            "proposal_id": str(proposal.id),
            "proposal_title": proposal.title,
            "submitter_name": submitter.name,
        }
        recipients = [submitter.email]
        self.repository.commit()
        logger.info("proposal %s submitted by %s", proposal.id, submitter.id)
        self.notifier.notify("submission_confirmation", recipients, payload)
        return proposal

    def get_proposal(self, proposal_id: UUID) -> models.Proposal:
        """Direct lookup; archived proposals are included."""

        return self.repository.get("proposal", proposal_id)

    def list_reviews(self, proposal_id: UUID) -> list[models.Review]:
        self.repository.get("proposal", proposal_id)
        return self.repository.find(
            QueryPlan(
                entity="review",
                where=(Predicate("proposal_id", "eq", proposal_id),),
                sort=(SortSpec("assigned_at"), SortSpec("id")),
            )
        )

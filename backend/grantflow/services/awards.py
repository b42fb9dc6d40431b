"""Award decisions and the proposal archive overlay."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from .. import models
from ..audit import record_action
from ..clock import Clock
from ..config import ReviewSettings
from ..errors import InvalidStateError, ValidationError
from ..notify import Notifier
from ..query_plan import Predicate, QueryPlan
from ..repository import EntityRepository

# purpose: move awards pending -> approved/declined exactly once and toggle proposal archival
# inputs: proposal ids, decision status, funding amount, feedback, acting admin id
# outputs: decided Award rows, proposal status "decided", archive flag flips, decision notifications
# status: active

logger = logging.getLogger(__name__)

DECISION_STATUSES = ("approved", "declined")


class AwardStateMachine:
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

    def award_for(self, proposal_id: UUID) -> models.Award | None:
        awards = self.repository.find(
            QueryPlan(entity="award", where=(Predicate("proposal_id", "eq", proposal_id),), limit=1)
        )
        return awards[0] if awards else None

    def decide(
        self,
        proposal_id: UUID,
        status: str,
        funding_amount: float | None = None,
        feedback: str | None = None,
        *,
        actor_id: UUID | None = None,
    ) -> models.Award:
        """Record the terminal funding decision for a reviewed proposal."""

        if status not in DECISION_STATUSES:
            raise ValidationError(f"decision must be one of {', '.join(DECISION_STATUSES)}", reason="invalid_status")
        if funding_amount is not None and funding_amount < 0:
            raise ValidationError("funding amount must not be negative", reason="invalid_amount")
        proposal = self.repository.get("proposal", proposal_id)
        award = self.award_for(proposal.id)
        if award is None:
            raise InvalidStateError("proposal has not finished review", reason="no_award")
        if award.status != "pending":
            raise InvalidStateError(f"award was already {award.status}", reason="already_decided")

        now = self.clock.now()
        values: dict[str, Any] = {
            "status": status,
            "feedback": feedback,
            "decided_at": now,
            "updated_at": now,
        }
        if status == "approved":
            values["funding_amount"] = (
                funding_amount if funding_amount is not None else proposal.requested_budget
            )
            values["approved_by_id"] = actor_id
            values["approved_at"] = now
        elif funding_amount is not None:
            values["funding_amount"] = funding_amount
        changed = self.repository.update_by_id("award", award.id, values, expected={"status": "pending"})
        if not changed:
            raise InvalidStateError("award was decided concurrently", reason="already_decided")
        self.repository.update_by_id("proposal", proposal.id, {"status": "decided", "updated_at": now})
        record_action(
            self.repository,
            actor_id,
            f"award.{status}",
            now,
            target_type="award",
            target_id=award.id,
            details={"proposal_id": str(proposal.id), "funding_amount": values.get("funding_amount")},
        )
        self.repository.commit()
        logger.info("proposal %s %s", proposal_id, status)
        return award

    def approve_and_notify(
        self,
        proposal_id: UUID,
        funding_amount: float | None,
        feedback: str | None = None,
        *,
        actor_id: UUID | None = None,
    ) -> models.Award:
        if funding_amount is None:
            raise ValidationError("approval requires a funding amount", reason="funding_required")
        award = self.decide(proposal_id, "approved", funding_amount, feedback, actor_id=actor_id)
        self.notify_applicant(proposal_id)
        return award

    def notify_applicant(self, proposal_id: UUID) -> dict[str, Any]:
        proposal = self.repository.get("proposal", proposal_id, load=("submitter",))
        award = self.award_for(proposal.id)
        if award is None or award.status == "pending":
            raise InvalidStateError("proposal has no decision to announce", reason="undecided")
        submitter = proposal.submitter
        payload = {
            "proposal_id": str(proposal.id),
            "proposal_title": proposal.title,
            "submitter_name": submitter.name,
            "status": award.status,
            "funding_amount": award.funding_amount if award.status == "approved" else None,
            "feedback": award.feedback,
        }
        self.notifier.notify("decision_outcome", [submitter.email], payload)
        return {"proposal_id": proposal.id, "status": award.status, "notified": submitter.email}

    def toggle_archive(self, proposal_id: UUID, *, actor_id: UUID | None = None) -> models.Proposal:
        """Flip ``is_archived`` if nobody else flipped it first."""

        proposal = self.repository.get("proposal", proposal_id, load=("submitter",))
        current = bool(proposal.is_archived)
        now = self.clock.now()
        changed = self.repository.update_by_id(
            "proposal",
            proposal.id,
            {"is_archived": not current, "updated_at": now},
            expected={"is_archived": current},
        )
        if not changed:
            raise InvalidStateError("archive state changed concurrently", reason="archive_race")
        record_action(
            self.repository,
            actor_id,
            "proposal.archived" if not current else "proposal.unarchived",
            now,
            target_type="proposal",
            target_id=proposal.id,
        )
        message = None
        if not current and proposal.submitter is not None:
            message = {
                "proposal_id": str(proposal.id),
                "proposal_title": proposal.title,
                "submitter_name": proposal.submitter.name,
            }
            recipients = [proposal.submitter.email]
        self.repository.commit()
        if message is not None:
            self.notifier.notify("proposal_archived", recipients, message)
        return proposal

"""Full-proposal eligibility, submission and review after an approved award."""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence
from uuid import UUID

from .. import models
from ..audit import record_action
from ..clock import Clock
from ..config import ReviewSettings
from ..errors import ConflictError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..notify import Notifier
from ..query_plan import Predicate, QueryPlan, SortSpec
from ..repository import EntityRepository

# purpose: gate full-proposal submission on an approved award and record the follow-up review
# inputs: proposal ids, submitter identity, document references, configured submission deadline
# outputs: eligibility verdicts with reasons, FullProposal rows, outcome notifications
# status: active

logger = logging.getLogger(__name__)

_REVIEWED_STATES = ("approved", "rejected")


class FullProposalService:
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

    def _existing(self, proposal_id: UUID) -> models.FullProposal | None:
        rows = self.repository.find(
            QueryPlan(entity="full_proposal", where=(Predicate("proposal_id", "eq", proposal_id),), limit=1)
        )
        return rows[0] if rows else None

    def _award(self, proposal_id: UUID) -> models.Award | None:
        rows = self.repository.find(
            QueryPlan(entity="award", where=(Predicate("proposal_id", "eq", proposal_id),), limit=1)
        )
        return rows[0] if rows else None

    def can_submit_full_proposal(self, proposal_id: UUID) -> dict[str, Any]:
        """Eligibility verdict; ``reason`` names the first failing condition."""

        self.repository.get("proposal", proposal_id)
        result: dict[str, Any] = {
            "can_submit": False,
            "reason": None,
            "deadline": None,
            "days_remaining": None,
            "is_within_deadline": True,
        }
        deadline = self.settings.full_proposal_deadline
        if deadline is not None:
            now = self.clock.now()
            within = now <= deadline
            result["deadline"] = deadline
            result["is_within_deadline"] = within
            result["days_remaining"] = (
                math.ceil((deadline - now).total_seconds() / 86400) if within else 0
            )

        award = self._award(proposal_id)
        if award is None:
            result["reason"] = "no_award"
        elif award.status != "approved":
            result["reason"] = "award_not_approved"
        else:
            existing = self._existing(proposal_id)
            if existing is not None and existing.status != "rejected":
                result["reason"] = "already_submitted"
            elif not result["is_within_deadline"]:
                result["reason"] = "deadline_passed"
            else:
                result["can_submit"] = True
        return result

    def submit_full_proposal(
        self,
        proposal_id: UUID,
        submitter_id: UUID,
        document_ref: str,
    ) -> models.FullProposal:
        proposal = self.repository.get("proposal", proposal_id)
        if proposal.submitter_id != submitter_id:
            raise UnauthorizedError("only the proposal's submitter may submit its full proposal")
        if not document_ref or not document_ref.strip():
            raise ValidationError("a document reference is required", reason="missing_document")
        eligibility = self.can_submit_full_proposal(proposal_id)
        if not eligibility["can_submit"]:
            error = ConflictError if eligibility["reason"] == "already_submitted" else InvalidStateError
            raise error("full proposal cannot be submitted", reason=eligibility["reason"])

        now = self.clock.now()
        values = {
            "document_ref": document_ref.strip(),
            "status": "submitted",
            "submitted_at": now,
            "deadline": self.settings.full_proposal_deadline,
            "reviewed_at": None,
            "review_comments": None,
            "updated_at": now,
        }
        existing = self._existing(proposal_id)
        if existing is not None:
            if not self.repository.update_by_id(
                "full_proposal", existing.id, values, expected={"status": "rejected"}
            ):
                raise ConflictError("full proposal changed while resubmitting", reason="already_submitted")
            full_proposal = existing
            action = "full_proposal.resubmitted"
        else:
            full_proposal = self.repository.insert(
                "full_proposal",
                {**values, "proposal_id": proposal.id, "submitter_id": submitter_id, "created_at": now},
            )
            action = "full_proposal.submitted"
        record_action(
            self.repository,
            submitter_id,
            action,
            now,
            target_type="full_proposal",
            target_id=full_proposal.id,
            details={"proposal_id": str(proposal.id)},
        )
        submitter = self.repository.get("user", submitter_id)
        payload = {
            "proposal_id": str(proposal.id),
            "proposal_title": f"{proposal.title} (full proposal)",
            "submitter_name": submitter.name,
        }
        self.repository.commit()
        logger.info("%s for proposal %s", action, proposal.id)
        self.notifier.notify("submission_confirmation", [submitter.email], payload)
        return full_proposal

    def review_full_proposal(
        self,
        full_proposal_id: UUID,
        status: str,
        comments: str | None = None,
        *,
        actor_id: UUID | None = None,
    ) -> models.FullProposal:
        if status not in _REVIEWED_STATES:
            raise ValidationError("full proposal review must approve or reject", reason="invalid_status")
        full_proposal = self.repository.get("full_proposal", full_proposal_id, load=("proposal", "submitter"))
        if full_proposal.status != "submitted":
            raise InvalidStateError(f"full proposal was already {full_proposal.status}", reason="already_reviewed")
        now = self.clock.now()
        changed = self.repository.update_by_id(
            "full_proposal",
            full_proposal.id,
            {"status": status, "review_comments": comments, "reviewed_at": now, "updated_at": now},
            expected={"status": "submitted"},
        )
        if not changed:
            raise InvalidStateError("full proposal was reviewed concurrently", reason="already_reviewed")
        record_action(
            self.repository,
            actor_id,
            f"full_proposal.{status}",
            now,
            target_type="full_proposal",
            target_id=full_proposal.id,
        )
        payload = {
            "proposal_id": str(full_proposal.proposal_id),
            "proposal_title": f"{full_proposal.proposal.title} (full proposal)",
            "submitter_name": full_proposal.submitter.name,
            "status": status,
            "feedback": comments,
        }
        recipients = [full_proposal.submitter.email]
        self.repository.commit()
        self.notifier.notify("decision_outcome", recipients, payload)
        return full_proposal

    def notify_full_proposal_applicants(
        self, full_proposal_ids: Sequence[UUID] | None = None
    ) -> dict[str, Any]:
        """Announce full-proposal outcomes to their submitters.

        Without ids every reviewed full proposal is announced; named ids must all
        have been reviewed.
        """

        where = [Predicate("status", "in", _REVIEWED_STATES)]
        if full_proposal_ids is not None:
            ids = list(dict.fromkeys(full_proposal_ids))
            where = [Predicate("id", "in", ids)]
        rows = self.repository.find(
            QueryPlan(
                entity="full_proposal",
                where=tuple(where),
                load=("proposal", "submitter"),
                sort=(SortSpec("reviewed_at"), SortSpec("id")),
            )
        )
        if full_proposal_ids is not None:
            missing = set(ids) - {row.id for row in rows}
            if missing:
                raise NotFoundError(f"full proposal {sorted(missing, key=str)[0]} not found", reason="not_found")
            undecided = [row for row in rows if row.status not in _REVIEWED_STATES]
            if undecided:
                raise InvalidStateError(
                    f"full proposal {undecided[0].id} has not been reviewed", reason="undecided"
                )

        notified = []
        for row in rows:
            payload = {
                "proposal_id": str(row.proposal_id),
                "proposal_title": f"{row.proposal.title} (full proposal)",
                "submitter_name": row.submitter.name,
                "status": row.status,
                "feedback": row.review_comments,
            }
            self.notifier.notify("decision_outcome", [row.submitter.email], payload)
            notified.append(row.submitter.email)
        logger.info("announced %s full proposal outcomes", len(notified))
        return {"notified": len(notified), "recipients": notified}

    def get_full_proposal(self, full_proposal_id: UUID) -> models.FullProposal:
        full_proposal = self.repository.get("full_proposal", full_proposal_id)
        award = self._award(full_proposal.proposal_id)
        if award is None or award.status != "approved":
            raise InvalidStateError("full proposal belongs to a proposal without an approved award")
        return full_proposal

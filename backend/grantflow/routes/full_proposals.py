"""Full-proposal eligibility, submission and review."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request

from .. import models, schemas
from ..auth import get_current_user
from ..dependencies import get_full_proposal_service, get_proposal_service
from ..rbac import ensure_owner_or_admin, ensure_role, require_admin
from ..ratelimit import SUBMISSION_LIMIT, rate_limit
from ..services.full_proposals import FullProposalService
from ..services.proposals import ProposalService

router = APIRouter(prefix="/api/full-proposals", tags=["full-proposals"])


@router.get("/eligibility/{proposal_id}", response_model=schemas.EligibilityOut)
def eligibility(
    proposal_id: UUID,
    service: FullProposalService = Depends(get_full_proposal_service),
    proposals: ProposalService = Depends(get_proposal_service),
    user: models.User = Depends(get_current_user),
):
    proposal = proposals.get_proposal(proposal_id)
    ensure_owner_or_admin(user, proposal.submitter_id)
    return schemas.EligibilityOut(**service.can_submit_full_proposal(proposal_id))


@router.post("/proposals/{proposal_id}", response_model=schemas.FullProposalOut)
@rate_limit(SUBMISSION_LIMIT)
def submit_full_proposal(
    request: Request,
    proposal_id: UUID,
    payload: schemas.FullProposalCreate,
    service: FullProposalService = Depends(get_full_proposal_service),
    user: models.User = Depends(get_current_user),
):
    ensure_role(user, "full_proposal.submit")
    full_proposal = service.submit_full_proposal(proposal_id, user.id, payload.document_ref)
    return schemas.FullProposalOut.model_validate(full_proposal)


@router.get("/{full_proposal_id}", response_model=schemas.FullProposalOut)
def get_full_proposal(
    full_proposal_id: UUID,
    service: FullProposalService = Depends(get_full_proposal_service),
    user: models.User = Depends(get_current_user),
):
    full_proposal = service.get_full_proposal(full_proposal_id)
    ensure_owner_or_admin(user, full_proposal.submitter_id)
    return schemas.FullProposalOut.model_validate(full_proposal)


@router.post("/{full_proposal_id}/review", response_model=schemas.FullProposalOut)
def review_full_proposal(
    full_proposal_id: UUID,
    payload: schemas.FullProposalReview,
    service: FullProposalService = Depends(get_full_proposal_service),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    full_proposal = service.review_full_proposal(
        full_proposal_id, payload.status, payload.comments, actor_id=user.id
    )
    return schemas.FullProposalOut.model_validate(full_proposal)


@router.post("/notify", response_model=schemas.FullProposalNotifyOut)
def notify_full_proposal_applicants(
    payload: schemas.FullProposalNotify,
    service: FullProposalService = Depends(get_full_proposal_service),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    return service.notify_full_proposal_applicants(payload.full_proposal_ids)

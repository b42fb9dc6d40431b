"""Proposal intake and per-proposal admin actions."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from .. import models, pubsub, schemas
from ..auth import get_current_user
from ..dependencies import (
    get_award_state_machine,
    get_proposal_service,
    get_scoring,
)
from ..rbac import ensure_owner_or_admin, ensure_role, require_admin
from ..ratelimit import SUBMISSION_LIMIT, rate_limit
from ..services.awards import AwardStateMachine
from ..services.proposals import ProposalService
from ..services.scoring import ScoringAggregator

router = APIRouter(prefix="/api/proposals", tags=["proposals"])


@router.post("/", response_model=schemas.ProposalOut)
@rate_limit(SUBMISSION_LIMIT)
def submit_proposal(
    request: Request,
    payload: schemas.ProposalCreate,
    service: ProposalService = Depends(get_proposal_service),
    user: models.User = Depends(get_current_user),
):
    ensure_role(user, "proposal.submit")
    proposal = service.submit_proposal(user.id, payload.proposal_type, payload.title, payload.requested_budget)
    return schemas.ProposalOut.model_validate(proposal)


@router.get("/{proposal_id}", response_model=schemas.ProposalOut)
def get_proposal(
    proposal_id: UUID,
    service: ProposalService = Depends(get_proposal_service),
    user: models.User = Depends(get_current_user),
):
    proposal = service.get_proposal(proposal_id)
    ensure_owner_or_admin(user, proposal.submitter_id)
    return schemas.ProposalOut.model_validate(proposal)


@router.get("/{proposal_id}/reviews", response_model=List[schemas.ReviewOut])
def list_reviews(
    proposal_id: UUID,
    service: ProposalService = Depends(get_proposal_service),
    user: models.User = Depends(get_current_user),
) -> List[schemas.ReviewOut]:
    require_admin(user)
    return [schemas.ReviewOut.model_validate(review) for review in service.list_reviews(proposal_id)]


@router.get("/{proposal_id}/score", response_model=schemas.ScoreBreakdownOut)
def score_breakdown(
    proposal_id: UUID,
    scoring: ScoringAggregator = Depends(get_scoring),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    return schemas.ScoreBreakdownOut(**scoring.score_breakdown(proposal_id))


@router.post("/{proposal_id}/archive", response_model=schemas.ProposalOut)
async def toggle_archive(
    proposal_id: UUID,
    machine: AwardStateMachine = Depends(get_award_state_machine),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    proposal = machine.toggle_archive(proposal_id, actor_id=user.id)
    out = schemas.ProposalOut.model_validate(proposal)
    await pubsub.announce_decision_event(
        "archive",
        {"proposal_id": out.id, "is_archived": out.is_archived, "actor_id": user.id},
    )
    return out

"""Admin decision views, funding decisions and the decisions export."""

from __future__ import annotations

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response

from .. import models, pubsub, schemas
from ..auth import get_current_user
from ..dependencies import get_award_state_machine, get_decision_pipeline, get_repository
from ..rbac import require_admin
from ..repository import SqlAlchemyRepository
from ..services.awards import AwardStateMachine
from ..services.decision_pipeline import DecisionPipeline
from ..services.reports import build_decisions_report

router = APIRouter(prefix="/api/decisions", tags=["decisions"])


@router.get("/", response_model=schemas.DecisionPageOut)
def list_for_decision(
    request: Request,
    pipeline: DecisionPipeline = Depends(get_decision_pipeline),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    query = pipeline.parse_query(dict(request.query_params))
    page = pipeline.list_for_decision(query)
    return schemas.DecisionPageOut.model_validate(page, from_attributes=True)


@router.get("/full-proposals", response_model=schemas.FullProposalPageOut)
def list_full_proposals_for_decision(
    request: Request,
    pipeline: DecisionPipeline = Depends(get_decision_pipeline),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    query = pipeline.parse_full_proposal_query(dict(request.query_params))
    page = pipeline.list_full_proposals_for_decision(query)
    return schemas.FullProposalPageOut.model_validate(page, from_attributes=True)


@router.get("/faculties", response_model=List[schemas.FacultyOut])
def faculties_with_activity(
    pipeline: DecisionPipeline = Depends(get_decision_pipeline),
    user: models.User = Depends(get_current_user),
) -> List[schemas.FacultyOut]:
    require_admin(user)
    return [schemas.FacultyOut.model_validate(f) for f in pipeline.get_faculties_with_activity()]


@router.get("/export")
def export_decisions(
    repository: SqlAlchemyRepository = Depends(get_repository),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    headers = {"Content-Disposition": "attachment; filename=decisions.csv"}
    return Response(content=build_decisions_report(repository), media_type="text/csv", headers=headers)


async def _publish(award: schemas.AwardOut, actor: models.User) -> None:
    await pubsub.announce_decision_event(
        "awards",
        {
            "proposal_id": award.proposal_id,
            "status": award.status,
            "funding_amount": award.funding_amount,
            "actor_id": actor.id,
        },
    )


@router.post("/{proposal_id}", response_model=schemas.AwardOut)
async def decide(
    proposal_id: UUID,
    payload: schemas.DecisionCreate,
    machine: AwardStateMachine = Depends(get_award_state_machine),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    award = machine.decide(
        proposal_id,
        payload.status,
        payload.funding_amount,
        payload.feedback,
        actor_id=user.id,
    )
    out = schemas.AwardOut.model_validate(award)
    await _publish(out, user)
    return out


@router.post("/{proposal_id}/approve", response_model=schemas.AwardOut)
async def approve_and_notify(
    proposal_id: UUID,
    payload: schemas.ApprovalCreate,
    machine: AwardStateMachine = Depends(get_award_state_machine),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    award = machine.approve_and_notify(proposal_id, payload.funding_amount, payload.feedback, actor_id=user.id)
    out = schemas.AwardOut.model_validate(award)
    await _publish(out, user)
    return out


@router.post("/{proposal_id}/notify")
def notify_applicant(
    proposal_id: UUID,
    machine: AwardStateMachine = Depends(get_award_state_machine),
    user: models.User = Depends(get_current_user),
) -> Dict[str, Any]:
    require_admin(user)
    return machine.notify_applicant(proposal_id)

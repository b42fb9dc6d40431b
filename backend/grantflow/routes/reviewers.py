"""Reviewer panel invitations."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .. import models, schemas
from ..auth import create_invitation_token, get_current_user, read_invitation_token
from ..dependencies import get_reviewer_service
from ..errors import ValidationError
from ..rbac import require_admin
from ..services.reviewers import ReviewerService

router = APIRouter(prefix="/api/reviewers", tags=["reviewers"])


@router.post("/invite", response_model=schemas.UserOut)
def invite_reviewer(
    payload: schemas.ReviewerInvite,
    service: ReviewerService = Depends(get_reviewer_service),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    email = payload.email.strip().lower()
    reviewer = service.invite_reviewer(
        email,
        payload.name,
        payload.faculty_id,
        payload.department_id,
        invitation_token=create_invitation_token(email),
        actor_id=user.id,
    )
    return schemas.UserOut.model_validate(reviewer)


@router.post("/accept", response_model=schemas.UserOut)
def accept_invitation(
    payload: schemas.InvitationAccept,
    service: ReviewerService = Depends(get_reviewer_service),
):
    email = read_invitation_token(payload.token)
    if not email:
        raise ValidationError("invitation token is invalid or expired", reason="invalid_token")
    reviewer = service.accept_invitation(service.user_for_email(email).id)
    return schemas.UserOut.model_validate(reviewer)

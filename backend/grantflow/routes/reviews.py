"""Reviewer assignment and review completion."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from .. import models, schemas
from ..auth import get_current_user
from ..dependencies import get_assignment_manager
from ..rbac import ensure_role, require_admin
from ..services.review_assignment import ReviewAssignmentManager

router = APIRouter(prefix="/api/reviews", tags=["reviews"])


@router.post("/", response_model=schemas.ReviewOut)
def assign_review(
    payload: schemas.ReviewAssign,
    manager: ReviewAssignmentManager = Depends(get_assignment_manager),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    review = manager.assign(payload.proposal_id, payload.reviewer_id, payload.kind, actor_id=user.id)
    return schemas.ReviewOut.model_validate(review)


@router.get("/mine", response_model=schemas.AssignmentListOut)
def my_assignments(
    status: Optional[str] = None,
    manager: ReviewAssignmentManager = Depends(get_assignment_manager),
    user: models.User = Depends(get_current_user),
):
    ensure_role(user, "review.list_own")
    listing = manager.list_assignments(user.id, status)
    return schemas.AssignmentListOut.model_validate(listing, from_attributes=True)


@router.post("/{review_id}/complete", response_model=schemas.ReviewOut)
def complete_review(
    review_id: UUID,
    payload: schemas.ReviewComplete,
    manager: ReviewAssignmentManager = Depends(get_assignment_manager),
    user: models.User = Depends(get_current_user),
):
    ensure_role(user, "review.complete")
    review = manager.complete(review_id, payload.total_score, payload.comments, actor=user)
    return schemas.ReviewOut.model_validate(review)


@router.post("/{review_id}/reassign", response_model=schemas.ReviewOut)
def reassign_review(
    review_id: UUID,
    payload: schemas.ReviewReassign,
    manager: ReviewAssignmentManager = Depends(get_assignment_manager),
    user: models.User = Depends(get_current_user),
):
    require_admin(user)
    review = manager.reassign(review_id, payload.reviewer_id, actor_id=user.id)
    return schemas.ReviewOut.model_validate(review)


@router.post("/proposals/{proposal_id}/evaluate")
def evaluate_completion(
    proposal_id: UUID,
    manager: ReviewAssignmentManager = Depends(get_assignment_manager),
    user: models.User = Depends(get_current_user),
) -> Dict[str, Any]:
    require_admin(user)
    return manager.evaluate_completion(proposal_id, actor_id=user.id)

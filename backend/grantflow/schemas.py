from datetime import datetime
from typing import Optional, Any, Dict, Literal, List
from pydantic import BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    name: str
    phone_number: Optional[str] = None
    alternative_email: Optional[str] = None
    role: str
    user_type: Optional[str] = None
    faculty_id: Optional[UUID] = None
    department_id: Optional[UUID] = None
    is_active: bool = True
    model_config = ConfigDict(from_attributes=True)


class FacultyOut(BaseModel):
    id: UUID
    title: str
    code: str
    model_config = ConfigDict(from_attributes=True)


class DepartmentOut(BaseModel):
    id: UUID
    title: str
    code: str
    faculty_id: Optional[UUID] = None
    model_config = ConfigDict(from_attributes=True)


class ProposalCreate(BaseModel):
    proposal_type: Literal["staff", "master_student"]
    title: str = Field(min_length=1)
    requested_budget: float = Field(ge=0)


class ProposalOut(BaseModel):
    id: UUID
    submitter_id: UUID
    proposal_type: str
    title: str
    requested_budget: float
    status: str
    review_status: str
    is_archived: bool
    submitted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ReviewAssign(BaseModel):
    proposal_id: UUID
    reviewer_id: UUID
    kind: Literal["automated", "human", "reconciliation"]


class ReviewComplete(BaseModel):
    total_score: Any
    comments: Optional[str] = None


class ReviewReassign(BaseModel):
    reviewer_id: UUID


class ReviewOut(BaseModel):
    id: UUID
    proposal_id: UUID
    reviewer_id: Optional[UUID] = None
    kind: str
    status: str
    total_score: Optional[float] = None
    comments: Optional[str] = None
    assigned_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AssignmentOut(ReviewOut):
    proposal: Optional[ProposalOut] = None


class ReviewerStatisticsOut(BaseModel):
    total_assigned: int
    completed: int
    pending: int
    overdue: int


class AssignmentListOut(BaseModel):
    data: List[AssignmentOut]
    count: int
    statistics: ReviewerStatisticsOut


class ScoreBreakdownOut(BaseModel):
    proposal_id: UUID
    automated: Optional[float] = None
    human: Optional[float] = None
    reconciliation: Optional[float] = None
    divergence: Optional[float] = None
    reconciliation_required: bool = False
    final_score: Optional[float] = None


class AwardOut(BaseModel):
    id: UUID
    proposal_id: UUID
    status: str
    final_score: Optional[float] = None
    funding_amount: Optional[float] = None
    feedback: Optional[str] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class DecisionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: Literal["approved", "declined"]
    funding_amount: Optional[float] = Field(default=None, ge=0)
    feedback: Optional[str] = None


class FullProposalCreate(BaseModel):
    document_ref: str = Field(min_length=1)


class FullProposalReview(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: Literal["approved", "rejected"]
    comments: Optional[str] = None


class FullProposalNotify(BaseModel):
    model_config = ConfigDict(extra="forbid")
    full_proposal_ids: Optional[List[UUID]] = None


class FullProposalNotifyOut(BaseModel):
    notified: int
    recipients: List[str]


class FullProposalOut(BaseModel):
    id: UUID
    proposal_id: UUID
    submitter_id: UUID
    document_ref: str
    status: str
    submitted_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    review_comments: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class EligibilityOut(BaseModel):
    can_submit: bool
    reason: Optional[str] = None
    deadline: Optional[datetime] = None
    days_remaining: Optional[int] = None
    is_within_deadline: bool = True


class DecisionQuery(BaseModel):
    """Allowed parameters for the decision-ready proposal listing."""

    model_config = ConfigDict(extra="forbid")
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    sort: Literal[
        "final_score",
        "title",
        "requested_budget",
        "created_at",
        "updated_at",
        "submitted_at",
    ] = "final_score"
    order: Literal["asc", "desc"] = "desc"
    faculty: Optional[UUID] = None
    status: Optional[Literal["pending", "approved", "declined"]] = None
    threshold: Optional[float] = Field(default=None, allow_inf_nan=False)


class FullProposalDecisionQuery(BaseModel):
    """Allowed parameters for the full-proposal decision listing."""

    model_config = ConfigDict(extra="forbid")
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)
    sort: Literal["submitted_at", "deadline", "title", "created_at", "updated_at"] = "submitted_at"
    order: Literal["asc", "desc"] = "desc"
    faculty: Optional[UUID] = None
    status: Optional[Literal["submitted", "approved", "rejected"]] = None


class DecisionRowOut(BaseModel):
    proposal: ProposalOut
    submitter: Optional[UserOut] = None
    faculty: Optional[FacultyOut] = None
    department: Optional[DepartmentOut] = None
    award: Optional[AwardOut] = None


class FullProposalRowOut(BaseModel):
    full_proposal: FullProposalOut
    proposal: ProposalOut
    submitter: Optional[UserOut] = None
    faculty: Optional[FacultyOut] = None
    award: Optional[AwardOut] = None


class DecisionPageOut(BaseModel):
    data: List[DecisionRowOut]
    count: int
    total: int
    total_pages: int
    current_page: int
    statistics: Dict[str, Any]


class FullProposalPageOut(BaseModel):
    data: List[FullProposalRowOut]
    count: int
    total: int
    total_pages: int
    current_page: int
    statistics: Dict[str, Any]


class ReviewerInvite(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    faculty_id: Optional[UUID] = None
    department_id: Optional[UUID] = None


class ApprovalCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    funding_amount: Optional[float] = Field(default=None, ge=0)
    feedback: Optional[str] = None


class InvitationAccept(BaseModel):
    token: str = Field(min_length=1)

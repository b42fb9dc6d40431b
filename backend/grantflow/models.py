import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Float,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


USER_ROLES = ("admin", "researcher", "reviewer", "system")
PROPOSAL_TYPES = ("staff", "master_student")
PROPOSAL_STATUSES = ("draft", "submitted", "under_review", "reviewed", "decided")
REVIEW_STATUSES_FOR_PROPOSAL = ("pending", "assigned", "reviewed")
REVIEW_KINDS = ("automated", "human", "reconciliation")
REVIEW_STATUSES = ("pending", "completed")
AWARD_STATUSES = ("pending", "approved", "declined")
FULL_PROPOSAL_STATUSES = ("submitted", "approved", "rejected")


class Faculty(Base):
    __tablename__ = "faculties"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    code = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    departments = relationship("Department", back_populates="faculty")


class Department(Base):
    __tablename__ = "departments"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String, nullable=False)
    code = Column(String, unique=True, nullable=False)
    faculty_id = Column(UUID(as_uuid=True), ForeignKey("faculties.id"))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    faculty = relationship("Faculty", back_populates="departments")


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    phone_number = Column(String)
    alternative_email = Column(String)
    role = Column(String, nullable=False, default="researcher")
    # staff | master_student, only meaningful for researchers
    user_type = Column(String)
    faculty_id = Column(UUID(as_uuid=True), ForeignKey("faculties.id"))
    department_id = Column(UUID(as_uuid=True), ForeignKey("departments.id"))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    faculty = relationship("Faculty")
    department = relationship("Department")
    proposals = relationship("Proposal", back_populates="submitter")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class Proposal(Base):
    __tablename__ = "proposals"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submitter_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    proposal_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    requested_budget = Column(Float, nullable=False, default=0.0)
    status = Column(String, nullable=False, default="submitted")
    review_status = Column(String, nullable=False, default="pending")
    is_archived = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    submitter = relationship("User", back_populates="proposals")
    reviews = relationship(
        "Review",
        back_populates="proposal",
        order_by="Review.assigned_at",
    )
    award = relationship("Award", back_populates="proposal", uselist=False)
    full_proposal = relationship("FullProposal", back_populates="proposal", uselist=False)

    __table_args__ = (
        sa.Index("ix_proposals_decision_view", "review_status", "is_archived"),
    )


class Review(Base):
    __tablename__ = "reviews"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    proposal_id = Column(UUID(as_uuid=True), ForeignKey("proposals.id"), nullable=False)
    # null only for a reconciliation review created before a reviewer was available
    reviewer_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    kind = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    total_score = Column(Float)
    comments = Column(Text)
    assigned_at = Column(DateTime(timezone=True), default=_utcnow)
    due_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    reminded_at = Column(DateTime(timezone=True))

    proposal = relationship("Proposal", back_populates="reviews")
    reviewer = relationship("User")

    __table_args__ = (
        sa.UniqueConstraint("proposal_id", "reviewer_id", "kind", name="uq_reviews_assignment"),
        sa.Index(
            "uq_reviews_completed_kind",
            "proposal_id",
            "kind",
            unique=True,
            sqlite_where=sa.text("status = 'completed'"),
            postgresql_where=sa.text("status = 'completed'"),
        ),
        sa.Index(
            "uq_reviews_reconciliation",
            "proposal_id",
            unique=True,
            sqlite_where=sa.text("kind = 'reconciliation'"),
            postgresql_where=sa.text("kind = 'reconciliation'"),
        ),
        sa.Index("ix_reviews_reviewer_status", "reviewer_id", "status"),
    )


class Award(Base):
    __tablename__ = "awards"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    proposal_id = Column(UUID(as_uuid=True), ForeignKey("proposals.id"), unique=True, nullable=False)
    submitter_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    status = Column(String, nullable=False, default="pending")
    final_score = Column(Float)
    funding_amount = Column(Float)
    feedback = Column(Text)
    approved_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    approved_at = Column(DateTime(timezone=True))
    decided_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    proposal = relationship("Proposal", back_populates="award")
    approved_by = relationship("User", foreign_keys=[approved_by_id])


class FullProposal(Base):
    __tablename__ = "full_proposals"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    proposal_id = Column(UUID(as_uuid=True), ForeignKey("proposals.id"), unique=True, nullable=False)
    submitter_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    document_ref = Column(String, nullable=False)
    status = Column(String, nullable=False, default="submitted")
    submitted_at = Column(DateTime(timezone=True))
    deadline = Column(DateTime(timezone=True))
    reviewed_at = Column(DateTime(timezone=True))
    review_comments = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    proposal = relationship("Proposal", back_populates="full_proposal")
    submitter = relationship("User")

    __table_args__ = (
        sa.Index("ix_full_proposals_status_submitted", "status", "submitted_at"),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


ENTITY_MODELS = {
    "faculty": Faculty,
    "department": Department,
    "user": User,
    "proposal": Proposal,
    "review": Review,
    "award": Award,
    "full_proposal": FullProposal,
    "audit_log": AuditLog,
}

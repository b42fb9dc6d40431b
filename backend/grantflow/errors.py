"""Typed failures raised by the review and decision workflow."""

from __future__ import annotations

# purpose: transport-agnostic error taxonomy; the HTTP layer maps each type to a status code
# status: active


class WorkflowError(RuntimeError):
    """Base error for proposal workflow operations."""

    status_code = 400

    def __init__(self, detail: str, *, reason: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.reason = reason

    def to_payload(self) -> dict[str, str]:
        payload = {"detail": self.detail}
        if self.reason:
            payload["reason"] = self.reason
        return payload


class ValidationError(WorkflowError):
    """Malformed or out-of-range input."""

    status_code = 422


class ConflictError(WorkflowError):
    """Duplicate assignment, repeated completion or a concurrent write that lost."""

    status_code = 409


class NotFoundError(WorkflowError):
    """Unknown proposal, review, award, full proposal or user."""

    status_code = 404


class InvalidStateError(WorkflowError):
    """Operation attempted outside its legal lifecycle state."""

    status_code = 400


class UnauthorizedError(WorkflowError):
    """Caller lacks the role required for the operation."""

    status_code = 403

"""Plain-text subjects and bodies for workflow notifications."""

from __future__ import annotations

import os
from typing import Any, Callable

# purpose: render notification kinds into email subject/body pairs
# inputs: kind name and JSON-safe payload built by the services
# outputs: (subject, body) tuples consumed by workers.notifications
# status: active

PORTAL_URL = os.getenv("PORTAL_URL", "http://localhost:3000")


def _reviewer_assignment(payload: dict[str, Any]) -> tuple[str, str]:
    title = payload.get("proposal_title", "")
    due = payload.get("due_at")
    lines = [
        f"Dear {payload.get('reviewer_name') or 'Reviewer'},",
        "",
        f'You have been assigned to review the research proposal "{title}".',
    ]
    if due:
        lines.append(f"Please complete your review by {due}.")
    lines += ["", f"Review it at {PORTAL_URL}/reviews/{payload.get('review_id', '')}"]
    return f"New Research Proposal Assignment: {title}", "\n".join(lines)


def _reconciliation_assignment(payload: dict[str, Any]) -> tuple[str, str]:
    title = payload.get("proposal_title", "")
    body = "\n".join(
        [
            f"Dear {payload.get('reviewer_name') or 'Reviewer'},",
            "",
            f'The automated and human reviews of "{title}" diverge by '
            f"{payload.get('divergence', '?')} points.",
            "You have been assigned the reconciliation review that settles the final score.",
            f"Please complete it by {payload.get('due_at', 'the stated due date')}.",
        ]
    )
    return f"Reconciliation Review Required: {title}", body


def _submission_confirmation(payload: dict[str, Any]) -> tuple[str, str]:
    body = "\n".join(
        [
            f"Dear {payload.get('submitter_name') or 'Researcher'},",
            "",
            f'Your research proposal "{payload.get("proposal_title", "")}" has been received.',
            "You will be notified when the review process is complete.",
        ]
    )
    return "Research Proposal Submission Confirmation", body


def _decision_outcome(payload: dict[str, Any]) -> tuple[str, str]:
    title = payload.get("proposal_title", "")
    status = payload.get("status", "")
    lines = [
        f"Dear {payload.get('submitter_name') or 'Researcher'},",
        "",
        f'The status of your proposal "{title}" is now: {status}.',
    ]
    if payload.get("funding_amount") is not None:
        lines.append(f"Approved funding: {payload['funding_amount']:.2f}")
    if payload.get("feedback"):
        lines += ["", "Feedback:", str(payload["feedback"])]
    return f"Research Proposal Status Update: {title}", "\n".join(lines)


def _reviewer_invitation(payload: dict[str, Any]) -> tuple[str, str]:
    body = "\n".join(
        [
            f"Dear {payload.get('name') or 'colleague'},",
            "",
            "You have been invited to join the proposal review panel.",
            f"Accept the invitation at {PORTAL_URL}/reviewers/accept?token={payload.get('token') or ''}",
        ]
    )
    return "Invitation to Review Research Proposals", body


def _proposal_archived(payload: dict[str, Any]) -> tuple[str, str]:
    title = payload.get("proposal_title", "")
    body = "\n".join(
        [
            f"Dear {payload.get('submitter_name') or 'Researcher'},",
            "",
            f'Your proposal "{title}" has been archived and removed from active consideration.',
        ]
    )
    return f"Proposal Archived: {title}", body


def _review_reminder(payload: dict[str, Any]) -> tuple[str, str]:
    title = payload.get("proposal_title", "")
    body = "\n".join(
        [
            f"Dear {payload.get('reviewer_name') or 'Reviewer'},",
            "",
            f'Your review of "{title}" is due on {payload.get("due_at", "")}.',
        ]
    )
    return f"Review Reminder: {title}", body


_RENDERERS: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    "reviewer_assignment": _reviewer_assignment,
    "reconciliation_assignment": _reconciliation_assignment,
    "submission_confirmation": _submission_confirmation,
    "decision_outcome": _decision_outcome,
    "reviewer_invitation": _reviewer_invitation,
    "proposal_archived": _proposal_archived,
    "review_reminder": _review_reminder,
}


def render(kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    try:
        renderer = _RENDERERS[kind]
    except KeyError as exc:
        raise ValueError(f"unknown notification kind {kind!r}") from exc
    return renderer(payload)

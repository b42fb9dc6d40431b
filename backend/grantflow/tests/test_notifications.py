import pytest

from grantflow import notify
from grantflow.auth import create_invitation_token, read_invitation_token
from grantflow.notification_templates import render
from grantflow.notify import NOTIFICATION_KINDS, CeleryNotifier
from grantflow.services.proposals import ProposalService
from grantflow.services.reviewers import ReviewerService
from grantflow.workers.notifications import dispatch_notification
from .conftest import make_user


PAYLOAD = {
    "proposal_id": "p-1",
    "proposal_title": "Coral resilience",
    "submitter_name": "Ada",
    "reviewer_name": "Rex",
    "review_id": "r-1",
    "due_at": "2026-11-02T10:00:00+00:00",
    "divergence": 12.5,
    "status": "approved",
    "funding_amount": 2500.0,
    "feedback": "Strong methods",
    "name": "Rex",
    "token": "abc",
}


@pytest.mark.parametrize("kind", NOTIFICATION_KINDS)
def test_every_kind_renders(kind):
    subject, body = render(kind, PAYLOAD)
    assert subject
    assert body


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        render("carrier_pigeon", PAYLOAD)


def test_decision_body_includes_funding_and_feedback():
    subject, body = render("decision_outcome", PAYLOAD)
    assert subject == "Research Proposal Status Update: Coral resilience"
    assert "2500.00" in body
    assert "Strong methods" in body


def test_worker_sends_one_email_per_recipient():
    sent = dispatch_notification("review_reminder", ["a@example.com", "b@example.com"], PAYLOAD)
    assert sent == 2
    assert [to for to, _, _ in notify.EMAIL_OUTBOX] == ["a@example.com", "b@example.com"]
    assert notify.EMAIL_OUTBOX[0][1] == "Review Reminder: Coral resilience"


def test_celery_notifier_delivers_inline_when_eager():
    CeleryNotifier().notify("submission_confirmation", ["ada@example.com"], PAYLOAD)
    assert notify.EMAIL_OUTBOX == [
        ("ada@example.com", "Research Proposal Submission Confirmation", render("submission_confirmation", PAYLOAD)[1])
    ]


def test_celery_notifier_skips_empty_recipients():
    CeleryNotifier().notify("submission_confirmation", [None, ""], PAYLOAD)
    assert notify.EMAIL_OUTBOX == []


def test_delivery_failure_does_not_undo_submission(db, repository, clock, monkeypatch):
    def broken_smtp(*args, **kwargs):
        raise OSError("smtp unreachable")

    monkeypatch.setattr(notify, "send_email", broken_smtp)
    researcher = make_user(db)
    service = ProposalService(repository, CeleryNotifier(), clock)

    proposal = service.submit_proposal(researcher.id, "staff", "Kelp forests", 1200)

    assert repository.find_by_id("proposal", proposal.id) is not None
    assert notify.EMAIL_OUTBOX == []


def test_invitation_email_carries_token(db, repository, clock):
    token = create_invitation_token("new.reviewer@example.com")
    service = ReviewerService(repository, CeleryNotifier(), clock)

    user = service.invite_reviewer("New.Reviewer@example.com", "Nia", invitation_token=token)

    assert user.is_active is False
    assert user.email == "new.reviewer@example.com"
    to, subject, body = notify.EMAIL_OUTBOX[0]
    assert to == "new.reviewer@example.com"
    assert subject == "Invitation to Review Research Proposals"
    assert f"token={token}" in body
    assert read_invitation_token(token) == "new.reviewer@example.com"

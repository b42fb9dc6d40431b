import uuid
from datetime import timedelta

import pytest

from grantflow.config import ReviewSettings
from grantflow.errors import ConflictError, InvalidStateError, NotFoundError, UnauthorizedError
from grantflow.services.full_proposals import FullProposalService
from .conftest import NOW, make_full_proposal, make_proposal, make_reviewed_proposal, make_user


@pytest.fixture
def deadline_settings():
    return ReviewSettings(full_proposal_deadline=NOW + timedelta(days=10))


@pytest.fixture
def service(repository, notifier, deadline_settings, clock):
    return FullProposalService(repository, notifier, deadline_settings, clock)


def test_eligibility_reasons(db, service):
    researcher = make_user(db)
    fresh = make_proposal(db, researcher)
    pending = make_reviewed_proposal(db, researcher)
    approved = make_reviewed_proposal(db, researcher, award_status="approved", funding_amount=500)

    assert service.can_submit_full_proposal(fresh.id)["reason"] == "no_award"
    assert service.can_submit_full_proposal(pending.id)["reason"] == "award_not_approved"
    verdict = service.can_submit_full_proposal(approved.id)
    assert verdict["can_submit"] is True
    assert verdict["reason"] is None
    assert verdict["days_remaining"] == 10
    assert verdict["is_within_deadline"] is True


def test_submit_then_resubmit_after_rejection(db, notifier, service):
    researcher = make_user(db)
    admin = make_user(db, role="admin")
    proposal = make_reviewed_proposal(db, researcher, award_status="approved", funding_amount=500)

    first = service.submit_full_proposal(proposal.id, researcher.id, "docs/full-v1.pdf")
    assert first.status == "submitted"
    assert service.can_submit_full_proposal(proposal.id)["reason"] == "already_submitted"
    with pytest.raises(ConflictError):
        service.submit_full_proposal(proposal.id, researcher.id, "docs/full-v2.pdf")

    service.review_full_proposal(first.id, "rejected", "Needs a data plan", actor_id=admin.id)
    with pytest.raises(InvalidStateError):
        service.review_full_proposal(first.id, "approved", actor_id=admin.id)

    second = service.submit_full_proposal(proposal.id, researcher.id, "docs/full-v2.pdf")
    assert second.id == first.id
    assert second.status == "submitted"
    assert second.document_ref == "docs/full-v2.pdf"
    assert second.review_comments is None
    assert notifier.kinds() == ["submission_confirmation", "decision_outcome", "submission_confirmation"]


def test_deadline_passed(db, clock, service):
    researcher = make_user(db)
    proposal = make_reviewed_proposal(db, researcher, award_status="approved", funding_amount=500)
    clock.advance(days=11)

    verdict = service.can_submit_full_proposal(proposal.id)
    assert verdict["reason"] == "deadline_passed"
    assert verdict["days_remaining"] == 0
    assert verdict["is_within_deadline"] is False
    with pytest.raises(InvalidStateError):
        service.submit_full_proposal(proposal.id, researcher.id, "docs/late.pdf")


def test_only_the_submitter_may_submit(db, service):
    proposal = make_reviewed_proposal(db, make_user(db), award_status="approved", funding_amount=500)
    with pytest.raises(UnauthorizedError):
        service.submit_full_proposal(proposal.id, make_user(db).id, "docs/full.pdf")


def test_full_proposal_visible_only_under_approved_award(db, repository, notifier, clock):
    researcher = make_user(db)
    proposal = make_reviewed_proposal(db, researcher, award_status="approved", funding_amount=500)
    service = FullProposalService(repository, notifier, ReviewSettings(), clock)
    full_proposal = service.submit_full_proposal(proposal.id, researcher.id, "docs/full.pdf")

    assert service.get_full_proposal(full_proposal.id).id == full_proposal.id
    assert service.can_submit_full_proposal(proposal.id)["deadline"] is None


def test_outcome_announcements_cover_reviewed_full_proposals(db, notifier, service):
    approved_owner = make_user(db, name="Ada")
    rejected_owner = make_user(db, name="Ben")
    waiting_owner = make_user(db, name="Cy")
    approved = make_full_proposal(
        db, make_reviewed_proposal(db, approved_owner, award_status="approved", funding_amount=500), status="approved"
    )
    rejected = make_full_proposal(
        db, make_reviewed_proposal(db, rejected_owner, award_status="approved", funding_amount=500), status="rejected"
    )
    waiting = make_full_proposal(
        db, make_reviewed_proposal(db, waiting_owner, award_status="approved", funding_amount=500)
    )

    result = service.notify_full_proposal_applicants()
    assert result["notified"] == 2
    assert sorted(result["recipients"]) == sorted([approved_owner.email, rejected_owner.email])
    assert notifier.kinds() == ["decision_outcome", "decision_outcome"]
    assert {payload["status"] for _, _, payload in notifier.sent} == {"approved", "rejected"}

    single = service.notify_full_proposal_applicants([rejected.id])
    assert single["recipients"] == [rejected_owner.email]

    with pytest.raises(InvalidStateError) as exc:
        service.notify_full_proposal_applicants([approved.id, waiting.id])
    assert exc.value.reason == "undecided"
    with pytest.raises(NotFoundError):
        service.notify_full_proposal_applicants([uuid.uuid4()])
    assert len(notifier.sent) == 3

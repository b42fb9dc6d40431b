import pytest

from grantflow.errors import InvalidStateError, ValidationError
from grantflow.services.awards import AwardStateMachine
from .conftest import make_proposal, make_reviewed_proposal, make_user


@pytest.fixture
def machine(repository, notifier, settings, clock):
    return AwardStateMachine(repository, notifier, settings, clock)


def test_approval_defaults_to_requested_budget(db, repository, machine):
    admin = make_user(db, role="admin")
    proposal = make_reviewed_proposal(db, make_user(db), budget=4200)

    award = machine.decide(proposal.id, "approved", actor_id=admin.id)

    assert award.status == "approved"
    assert award.funding_amount == 4200
    assert award.approved_by_id == admin.id
    assert award.approved_at is not None
    assert repository.get("proposal", proposal.id).status == "decided"


def test_decision_is_terminal(db, machine):
    proposal = make_reviewed_proposal(db, make_user(db))
    machine.decide(proposal.id, "declined", feedback="Out of scope")

    with pytest.raises(InvalidStateError) as exc:
        machine.decide(proposal.id, "approved", 100)
    assert exc.value.reason == "already_decided"
    assert machine.award_for(proposal.id).status == "declined"


def test_decision_input_checks(db, machine):
    unreviewed = make_proposal(db, make_user(db))
    reviewed = make_reviewed_proposal(db, make_user(db))

    with pytest.raises(InvalidStateError) as exc:
        machine.decide(unreviewed.id, "approved")
    assert exc.value.reason == "no_award"
    with pytest.raises(ValidationError):
        machine.decide(reviewed.id, "maybe")
    with pytest.raises(ValidationError):
        machine.decide(reviewed.id, "approved", -5)


def test_decide_does_not_notify_but_announcing_does(db, notifier, machine):
    submitter = make_user(db, name="Ada")
    proposal = make_reviewed_proposal(db, submitter, title="Tidal energy")

    with pytest.raises(InvalidStateError):
        machine.notify_applicant(proposal.id)
    machine.decide(proposal.id, "declined", feedback="Budget exceeds call limits")
    assert notifier.sent == []

    result = machine.notify_applicant(proposal.id)
    assert result["notified"] == submitter.email
    kind, recipients, payload = notifier.sent[0]
    assert kind == "decision_outcome"
    assert recipients == [submitter.email]
    assert payload["status"] == "declined"
    assert payload["funding_amount"] is None


def test_approve_and_notify_requires_amount(db, notifier, machine):
    proposal = make_reviewed_proposal(db, make_user(db))

    with pytest.raises(ValidationError) as exc:
        machine.approve_and_notify(proposal.id, None)
    assert exc.value.reason == "funding_required"

    award = machine.approve_and_notify(proposal.id, 2500, "Well argued")
    assert award.funding_amount == 2500
    assert notifier.kinds() == ["decision_outcome"]
    assert notifier.sent[0][2]["funding_amount"] == 2500


def test_toggle_archive(db, repository, notifier, machine):
    proposal = make_reviewed_proposal(db, make_user(db))

    assert machine.toggle_archive(proposal.id).is_archived is True
    assert machine.toggle_archive(proposal.id).is_archived is False
    assert notifier.kinds() == ["proposal_archived"]


def test_toggle_archive_losing_race(db, repository, notifier, machine, monkeypatch):
    proposal = make_reviewed_proposal(db, make_user(db))
    original = repository.update_by_id

    def someone_else_won(entity, entity_id, values, expected=None):
        if entity == "proposal":
            return 0
        return original(entity, entity_id, values, expected)

    monkeypatch.setattr(repository, "update_by_id", someone_else_won)
    with pytest.raises(InvalidStateError) as exc:
        machine.toggle_archive(proposal.id)
    assert exc.value.reason == "archive_race"
    assert notifier.sent == []

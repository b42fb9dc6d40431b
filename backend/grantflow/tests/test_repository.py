import uuid

import pytest
import sqlalchemy as sa

from grantflow import models
from grantflow.errors import ConflictError, NotFoundError, ValidationError
from grantflow.query_plan import Aggregate, GroupSpec, Predicate, QueryPlan, SortSpec
from .conftest import TestingSessionLocal, make_faculty, make_proposal, make_reviewed_proposal, make_user


def test_dotted_filter_follows_to_one_relationships(db, repository):
    science = make_faculty(db, "Science")
    arts = make_faculty(db, "Arts")
    scientist = make_user(db, faculty=science)
    artist = make_user(db, faculty=arts)
    make_proposal(db, scientist, title="Corals")
    make_proposal(db, artist, title="Sonnets")

    rows = repository.find(
        QueryPlan(entity="proposal", where=(Predicate("submitter.faculty_id", "eq", science.id),))
    )
    assert [p.title for p in rows] == ["Corals"]


def test_to_many_and_unknown_paths_are_rejected(repository):
    with pytest.raises(ValidationError):
        repository.find(QueryPlan(entity="proposal", where=(Predicate("reviews.kind", "eq", "human"),)))
    with pytest.raises(ValidationError):
        repository.find(QueryPlan(entity="proposal", where=(Predicate("colour", "eq", "red"),)))
    with pytest.raises(ValidationError):
        repository.find(QueryPlan(entity="grant"))


def test_get_raises_not_found(repository):
    with pytest.raises(NotFoundError) as exc:
        repository.get("proposal", uuid.uuid4())
    assert exc.value.reason == "not_found"
    assert repository.find_by_id("proposal", uuid.uuid4()) is None


def test_duplicate_insert_is_a_conflict_and_session_survives(db, repository):
    make_user(db, email="dup@example.com")
    with pytest.raises(ConflictError):
        repository.insert("user", {"email": "dup@example.com", "name": "Dup", "role": "researcher"})
    other = repository.insert("user", {"email": "other@example.com", "name": "Other", "role": "researcher"})
    repository.commit()
    assert repository.get("user", other.id).email == "other@example.com"


def test_update_by_id_compare_and_set(db, repository):
    proposal = make_proposal(db, make_user(db))
    assert repository.update_by_id("proposal", proposal.id, {"status": "under_review"}, expected={"status": "draft"}) == 0
    assert repository.update_by_id("proposal", proposal.id, {"status": "under_review"}, expected={"status": "submitted"}) == 1
    repository.commit()
    assert repository.get("proposal", proposal.id).status == "under_review"


def test_not_equal_counts_missing_related_rows(db, repository):
    researcher = make_user(db)
    make_proposal(db, researcher, title="No award")
    make_reviewed_proposal(db, researcher, title="Approved", award_status="approved", funding_amount=10)
    make_reviewed_proposal(db, researcher, title="Pending")

    rows = repository.find(
        QueryPlan(
            entity="proposal",
            where=(Predicate("award.status", "ne", "approved"),),
            sort=(SortSpec("title"),),
        )
    )
    assert [p.title for p in rows] == ["No award", "Pending"]


def test_sort_on_related_column_puts_missing_values_last(db, repository):
    researcher = make_user(db)
    make_proposal(db, researcher, title="Unscored")
    make_reviewed_proposal(db, researcher, title="Low", final_score=40)
    make_reviewed_proposal(db, researcher, title="High", final_score=95)

    rows = repository.find(
        QueryPlan(entity="proposal", sort=(SortSpec("award.final_score", descending=True),))
    )
    assert [p.title for p in rows] == ["High", "Low", "Unscored"]


def test_grouped_aggregate_with_filtered_counts(db, repository):
    researcher = make_user(db)
    make_reviewed_proposal(db, researcher, final_score=90, budget=100)
    make_reviewed_proposal(db, researcher, final_score=50, budget=200)
    make_proposal(db, researcher, review_status="assigned", status="under_review")

    rows = repository.aggregate(
        QueryPlan(
            entity="proposal",
            group=GroupSpec(
                keys=("review_status",),
                aggregates={
                    "total": Aggregate("count"),
                    "strong": Aggregate("count", where=(Predicate("award.final_score", "gte", 70),)),
                    "budget": Aggregate("sum", "requested_budget"),
                },
            ),
        )
    )
    by_status = {row["review_status"]: row for row in rows}
    assert by_status["reviewed"]["total"] == 2
    assert by_status["reviewed"]["strong"] == 1
    assert by_status["reviewed"]["budget"] == 300
    assert by_status["assigned"]["strong"] == 0


def test_find_with_load_and_paging(db, repository):
    faculty = make_faculty(db)
    researcher = make_user(db, faculty=faculty)
    for index in range(5):
        make_reviewed_proposal(db, researcher, title=f"P{index}")

    rows = repository.find(
        QueryPlan(
            entity="proposal",
            load=("submitter.faculty", "award"),
            sort=(SortSpec("title"),),
            skip=2,
            limit=2,
        )
    )
    assert [p.title for p in rows] == ["P2", "P3"]
    assert rows[0].submitter.faculty.id == faculty.id
    assert isinstance(rows[0].award, models.Award)


def test_locked_lookup_reloads_committed_changes(db, repository):
    proposal = make_proposal(db, make_user(db))
    other = TestingSessionLocal()
    try:
        other.execute(
            sa.update(models.Proposal)
            .where(models.Proposal.id == proposal.id)
            .values(review_status="assigned")
        )
        other.commit()
    finally:
        other.close()

    assert repository.get("proposal", proposal.id).review_status == "pending"
    assert repository.get("proposal", proposal.id, lock=True).review_status == "assigned"


def test_count_follows_the_plan_filter(db, repository):
    researcher = make_user(db)
    make_proposal(db, researcher, status="submitted")
    make_proposal(db, researcher, status="submitted")
    make_proposal(db, researcher, status="draft")

    assert repository.count(QueryPlan(entity="proposal")) == 3
    assert repository.count(QueryPlan(entity="proposal", where=(Predicate("status", "eq", "draft"),))) == 1

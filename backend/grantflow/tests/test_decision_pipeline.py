from datetime import datetime, timezone

import pytest

from grantflow.errors import ValidationError
from grantflow.services.decision_pipeline import DecisionPipeline, total_pages
from .conftest import (
    make_faculty,
    make_full_proposal,
    make_proposal,
    make_reviewed_proposal,
    make_user,
)


@pytest.fixture
def pipeline(repository, settings, clock):
    return DecisionPipeline(repository, settings, clock)


def test_pages_cover_every_reviewed_proposal(db, pipeline):
    researcher = make_user(db)
    for index in range(23):
        make_reviewed_proposal(db, researcher, title=f"Proposal {index:02d}", final_score=50 + index)

    sizes = []
    seen = set()
    for page in (1, 2, 3):
        result = pipeline.list_for_decision({"page": str(page), "limit": "10"})
        assert result["total"] == 23
        assert result["total_pages"] == 3
        assert result["current_page"] == page
        sizes.append(result["count"])
        seen.update(row["proposal"].id for row in result["data"])
    assert sizes == [10, 10, 3]
    assert len(seen) == 23


def test_default_sort_is_final_score_descending(db, pipeline):
    researcher = make_user(db)
    make_reviewed_proposal(db, researcher, title="Middle", final_score=70)
    make_reviewed_proposal(db, researcher, title="Top", final_score=95)
    make_reviewed_proposal(db, researcher, title="Bottom", final_score=40)

    titles = [row["proposal"].title for row in pipeline.list_for_decision()["data"]]
    assert titles == ["Top", "Middle", "Bottom"]
    ascending = pipeline.list_for_decision({"sort": "title", "order": "asc"})
    assert [row["proposal"].title for row in ascending["data"]] == ["Bottom", "Middle", "Top"]


def test_archived_and_unreviewed_are_excluded(db, repository, pipeline):
    researcher = make_user(db)
    archived = make_reviewed_proposal(db, researcher, archived=True)
    make_reviewed_proposal(db, researcher)
    make_proposal(db, researcher, review_status="assigned", status="under_review")

    result = pipeline.list_for_decision()
    assert result["total"] == 1
    assert archived.id not in {row["proposal"].id for row in result["data"]}
    assert repository.get("proposal", archived.id).is_archived is True


def test_statistics_follow_the_filter(db, pipeline):
    researcher = make_user(db)
    make_reviewed_proposal(db, researcher, final_score=90, budget=1000, award_status="approved", funding_amount=800)
    make_reviewed_proposal(db, researcher, final_score=80, budget=2000, award_status="declined")
    make_reviewed_proposal(db, researcher, final_score=60, budget=4000)

    stats = pipeline.list_for_decision()["statistics"]
    assert stats["total_proposals"] == 3
    assert stats["by_status"] == {"pending": 1, "approved": 1, "declined": 1}
    assert stats["average_score"] == 76.67
    assert stats["threshold"] == 70
    assert stats["above_threshold"] == 2
    assert stats["above_threshold_budget"] == 3000
    assert stats["approved_funding"] == 800

    custom = pipeline.decision_statistics({"threshold": "85"})
    assert custom["above_threshold"] == 1
    approved_only = pipeline.list_for_decision({"status": "approved"})
    assert approved_only["total"] == 1
    assert approved_only["statistics"]["by_status"]["approved"] == 1


def test_faculty_filter(db, pipeline):
    science = make_faculty(db, "Science")
    arts = make_faculty(db, "Arts")
    make_reviewed_proposal(db, make_user(db, faculty=science), title="Corals")
    make_reviewed_proposal(db, make_user(db, faculty=arts), title="Sonnets")

    result = pipeline.list_for_decision({"faculty": str(arts.id)})
    assert [row["proposal"].title for row in result["data"]] == ["Sonnets"]
    assert result["data"][0]["faculty"].id == arts.id


def test_empty_listing(pipeline):
    result = pipeline.list_for_decision()
    assert result["data"] == []
    assert result["total"] == 0
    assert result["total_pages"] == 0
    assert result["statistics"]["average_score"] is None


@pytest.mark.parametrize(
    "params",
    [
        {"sort": "bogus"},
        {"order": "sideways"},
        {"page": "0"},
        {"limit": "500"},
        {"colour": "red"},
        {"faculty": "not-a-uuid"},
        {"threshold": "nan"},
        {"threshold": "inf"},
    ],
)
def test_invalid_queries_are_rejected(pipeline, params):
    with pytest.raises(ValidationError) as exc:
        pipeline.list_for_decision(params)
    assert exc.value.reason == "invalid_query"


def test_total_pages():
    assert total_pages(0, 10) == 0
    assert total_pages(10, 10) == 1
    assert total_pages(23, 10) == 3


def test_faculties_with_activity(db, pipeline):
    biology = make_faculty(db, "Biology")
    arts = make_faculty(db, "Arts")
    make_faculty(db, "Law")
    make_proposal(db, make_user(db, faculty=biology))
    make_proposal(db, make_user(db, faculty=arts))
    make_proposal(db, make_user(db, faculty=arts))
    make_proposal(db, make_user(db))

    assert [f.title for f in pipeline.get_faculties_with_activity()] == ["Arts", "Biology"]


def test_full_proposal_listing_and_statistics(db, pipeline):
    researcher = make_user(db)
    approved = [
        make_reviewed_proposal(db, researcher, title=f"Approved {i}", award_status="approved", funding_amount=100)
        for i in range(3)
    ]
    declined = make_reviewed_proposal(db, researcher, title="Declined", award_status="declined")

    make_full_proposal(
        db,
        approved[0],
        submitted_at=datetime(2026, 10, 10, tzinfo=timezone.utc),
        deadline=datetime(2026, 10, 22, tzinfo=timezone.utc),
    )
    make_full_proposal(
        db,
        approved[1],
        status="approved",
        submitted_at=datetime(2026, 9, 20, tzinfo=timezone.utc),
        deadline=datetime(2026, 10, 22, tzinfo=timezone.utc),
    )
    make_full_proposal(
        db,
        approved[2],
        submitted_at=datetime(2026, 10, 18, tzinfo=timezone.utc),
        deadline=datetime(2026, 12, 1, tzinfo=timezone.utc),
    )
    make_full_proposal(db, declined)

    result = pipeline.list_full_proposals_for_decision()
    assert result["total"] == 3
    assert result["statistics"] == {
        "total_full_proposals": 3,
        "pending_decisions": 2,
        "approved": 1,
        "rejected": 0,
        "submitted_this_month": 2,
        "nearing_deadline": 1,
    }
    assert [row["proposal"].title for row in result["data"]] == ["Approved 2", "Approved 0", "Approved 1"]

    submitted = pipeline.list_full_proposals_for_decision({"status": "submitted", "sort": "title", "order": "asc"})
    assert [row["proposal"].title for row in submitted["data"]] == ["Approved 0", "Approved 2"]

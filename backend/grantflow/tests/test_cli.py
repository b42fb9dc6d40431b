import csv
import io
import json
from datetime import datetime, timedelta, timezone

from jose import jwt
from typer.testing import CliRunner

from grantflow import models, tasks
from grantflow.auth import ALGORITHM, SECRET_KEY
from grantflow.cli.reports import app, export_decisions
from grantflow.services.reports import REPORT_COLUMNS
from .conftest import make_department, make_faculty, make_proposal, make_reviewed_proposal, make_user

runner = CliRunner()


def test_export_decisions_lists_decided_awards(db, tmp_path):
    faculty = make_faculty(db, "Science")
    department = make_department(db, faculty, "Oceanography")
    researcher = make_user(db, name="Ada", faculty=faculty, department=department)
    make_reviewed_proposal(db, researcher, title="Zooplankton", award_status="declined", final_score=55)
    make_reviewed_proposal(db, researcher, title="Algae", award_status="approved", final_score=91, funding_amount=1500)
    make_reviewed_proposal(db, researcher, title="Undecided")

    target = tmp_path / "decisions.csv"
    export_decisions(target)
    rows = list(csv.reader(io.StringIO(target.read_text(encoding="utf-8"))))

    assert rows[0] == REPORT_COLUMNS
    assert [row[0] for row in rows[1:]] == ["Algae", "Zooplankton"]
    assert rows[1][3:8] == ["Science", "Oceanography", "approved", "91.00", "1500.00"]


def test_export_command_writes_to_stdout(db):
    make_reviewed_proposal(db, make_user(db), title="Algae", award_status="approved", funding_amount=10)
    result = runner.invoke(app, ["export-decisions"])
    assert result.exit_code == 0
    assert "Algae" in result.output


def test_issue_token_command():
    result = runner.invoke(app, ["issue-token", "ops@example.com", "--minutes", "5"])
    assert result.exit_code == 0
    claims = jwt.decode(result.output.strip(), SECRET_KEY, algorithms=[ALGORITHM])
    assert claims["sub"] == "ops@example.com"


def test_audit_summary_counts_actions(db):
    now = datetime.now(timezone.utc)
    db.add_all(
        [
            models.AuditLog(action="award.approved", created_at=now - timedelta(days=1)),
            models.AuditLog(action="award.approved", created_at=now - timedelta(days=2)),
            models.AuditLog(action="review.completed", created_at=now - timedelta(days=3)),
            models.AuditLog(action="review.completed", created_at=now - timedelta(days=60)),
        ]
    )
    db.commit()

    result = runner.invoke(app, ["audit-summary", "--days", "30"])
    assert result.exit_code == 0
    assert json.loads(result.output) == [
        {"action": "award.approved", "count": 2},
        {"action": "review.completed", "count": 1},
    ]


def test_reminder_task_sweeps_due_reviews(db):
    submitter = make_user(db)
    reviewer = make_user(db, role="reviewer")
    proposal = make_proposal(db, submitter, review_status="assigned", status="under_review")
    now = datetime.now(timezone.utc)
    db.add(
        models.Review(
            proposal_id=proposal.id,
            reviewer_id=reviewer.id,
            kind="human",
            status="pending",
            assigned_at=now - timedelta(days=13),
            due_at=now + timedelta(hours=2),
        )
    )
    db.commit()

    assert tasks.send_review_reminders() == 1
    assert tasks.send_review_reminders() == 0

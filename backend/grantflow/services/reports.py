"""CSV export of decided proposals."""

from __future__ import annotations

import csv
import io

from ..query_plan import Predicate, QueryPlan, SortSpec
from ..repository import EntityRepository

REPORT_COLUMNS = [
    "Proposal Title",
    "Submitter",
    "Email",
    "Faculty",
    "Department",
    "Decision",
    "Final Score",
    "Funding Amount",
    "Feedback",
    "Decided At",
]


def build_decisions_report(repository: EntityRepository) -> str:
    proposals = repository.find(
        QueryPlan(
            entity="proposal",
            where=(Predicate("award.status", "in", ("approved", "declined")),),
            load=("submitter.faculty", "submitter.department", "award"),
            sort=(SortSpec("title"), SortSpec("id")),
        )
    )
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(REPORT_COLUMNS)
    for proposal in proposals:
        submitter = proposal.submitter
        award = proposal.award
        writer.writerow(
            [
                proposal.title,
                submitter.name if submitter else "",
                submitter.email if submitter else "",
                submitter.faculty.title if submitter and submitter.faculty else "",
                submitter.department.title if submitter and submitter.department else "",
                award.status,
                "" if award.final_score is None else f"{award.final_score:.2f}",
                "" if award.funding_amount is None else f"{award.funding_amount:.2f}",
                award.feedback or "",
                award.decided_at.isoformat() if award.decided_at else "",
            ]
        )
    output.seek(0)
    return output.read()

"""CLI utilities for decision reporting and review maintenance."""

# purpose: give administrators offline access to the decisions export, audit summaries and reminders
# status: active
# depends_on: grantflow.database, grantflow.services.reports, grantflow.audit

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer

from .. import audit
from ..auth import create_access_token
from ..clock import Clock
from ..config import get_settings
from ..database import SessionLocal
from ..notify import CeleryNotifier
from ..repository import SqlAlchemyRepository
from ..services.reports import build_decisions_report
from ..services.review_assignment import ReviewAssignmentManager

app = typer.Typer(help="Proposal decision reporting commands")


def export_decisions(output: Path | None = None) -> str:
    """Render the decisions CSV and optionally write it to ``output``."""

    session = SessionLocal()
    try:
        content = build_decisions_report(SqlAlchemyRepository(session))
    finally:
        session.close()
    if output is not None:
        output.write_text(content, encoding="utf-8")
    return content


@app.command("export-decisions")
def export_decisions_command(
    output: Optional[Path] = typer.Option(None, help="Write the CSV here instead of stdout"),
) -> None:
    content = export_decisions(output)
    if output is None:
        typer.echo(content, nl=False)
    else:
        typer.echo(f"wrote {output}")


@app.command("audit-summary")
def audit_summary_command(
    days: int = typer.Option(30, min=1, help="Look-back window in days"),
) -> None:
    """Print workflow action counts for the last ``days`` days as JSON."""

    end = datetime.now(timezone.utc)
    session = SessionLocal()
    try:
        counts = audit.action_counts(SqlAlchemyRepository(session), end - timedelta(days=days), end)
    finally:
        session.close()
    typer.echo(json.dumps(counts))


@app.command("send-reminders")
def send_reminders_command() -> None:
    """Run the review reminder sweep once, outside the beat schedule."""

    session = SessionLocal()
    try:
        manager = ReviewAssignmentManager(
            SqlAlchemyRepository(session), CeleryNotifier(), get_settings(), Clock()
        )
        sent = manager.send_reminders()
    finally:
        session.close()
    typer.echo(json.dumps({"reminders_sent": sent}))


@app.command("issue-token")
def issue_token_command(
    email: str = typer.Argument(..., help="Account email to embed as the token subject"),
    minutes: int = typer.Option(60, min=1, help="Token lifetime"),
) -> None:
    typer.echo(create_access_token({"sub": email}, expires_delta=timedelta(minutes=minutes)))


if __name__ == "__main__":
    app()

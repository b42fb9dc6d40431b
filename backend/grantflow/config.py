"""Runtime settings for the review and decision workflow."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache

# purpose: single place where workflow tunables are read from the environment
# outputs: immutable ReviewSettings handed to services at construction
# status: active

REVIEW_KINDS: tuple[str, ...] = ("automated", "human", "reconciliation")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _deadline_env(name: str) -> datetime | None:
    raw = os.getenv(name)
    if not raw:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class ReviewSettings:
    """Workflow configuration shared by assignment, scoring and decision components."""

    score_min: float = 0.0
    score_max: float = 100.0
    divergence_threshold: float = 10.0
    required_review_kinds: tuple[str, ...] = ("automated", "human")
    review_due_days: int = 14
    reconciliation_due_business_days: int = 5
    decision_score_threshold: float = 70.0
    default_page_size: int = 10
    max_page_size: int = 100
    nearing_deadline_days: int = 7
    full_proposal_deadline: datetime | None = None
    submission_rate_limit: str = "10/hour"
    notification_timeout_seconds: float = 10.0
    reminder_window_hours: int = 24

    def __post_init__(self) -> None:
        if self.score_min >= self.score_max:
            raise ValueError("score_min must be lower than score_max")
        if self.divergence_threshold < 0:
            raise ValueError("divergence_threshold must not be negative")
        unknown = [kind for kind in self.required_review_kinds if kind not in REVIEW_KINDS[:2]]
        if unknown or not self.required_review_kinds:
            raise ValueError(f"required_review_kinds must be drawn from automated/human, got {unknown}")
        if self.default_page_size < 1 or self.max_page_size < self.default_page_size:
            raise ValueError("page size bounds are inconsistent")

    @classmethod
    def from_env(cls) -> "ReviewSettings":
        kinds_raw = os.getenv("REVIEW_REQUIRED_KINDS", "automated,human")
        kinds = tuple(part.strip() for part in kinds_raw.split(",") if part.strip())
        return cls(
            score_min=_float_env("REVIEW_SCORE_MIN", 0.0),
            score_max=_float_env("REVIEW_SCORE_MAX", 100.0),
            divergence_threshold=_float_env("REVIEW_DIVERGENCE_THRESHOLD", 10.0),
            required_review_kinds=kinds,
            review_due_days=_int_env("REVIEW_DUE_DAYS", 14),
            reconciliation_due_business_days=_int_env("RECONCILIATION_DUE_BUSINESS_DAYS", 5),
            decision_score_threshold=_float_env("DECISION_SCORE_THRESHOLD", 70.0),
            default_page_size=_int_env("DECISION_PAGE_SIZE", 10),
            max_page_size=_int_env("DECISION_MAX_PAGE_SIZE", 100),
            nearing_deadline_days=_int_env("FULL_PROPOSAL_NEARING_DAYS", 7),
            full_proposal_deadline=_deadline_env("FULL_PROPOSAL_DEADLINE"),
            submission_rate_limit=os.getenv("SUBMISSION_RATE_LIMIT", "10/hour"),
            notification_timeout_seconds=_float_env("NOTIFICATION_TIMEOUT_SECONDS", 10.0),
            reminder_window_hours=_int_env("REVIEW_REMINDER_WINDOW_HOURS", 24),
        )


@lru_cache(maxsize=1)
def get_settings() -> ReviewSettings:
    return ReviewSettings.from_env()

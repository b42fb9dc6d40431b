"""Final score derivation from completed reviews."""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from ..config import ReviewSettings
from ..query_plan import Predicate, QueryPlan
from ..repository import EntityRepository

# purpose: apply the reconciliation-override scoring policy to a proposal's completed reviews
# inputs: completed Review rows keyed by kind, divergence threshold from ReviewSettings
# outputs: final score (or None) and a per-kind breakdown
# status: active


def divergence(scores: Mapping[str, float | None]) -> float | None:
    automated, human = scores.get("automated"), scores.get("human")
    if automated is None or human is None:
        return None
    return abs(automated - human)


def resolve_final_score(scores: Mapping[str, float | None], threshold: float) -> float | None:
    """Return the final score for completed per-kind scores.

    Reconciliation overrides everything. Agreeing automated and human scores
    average. A lone automated or human score stands. Divergent scores without
    a reconciliation yet have no final score.
    """

    reconciliation = scores.get("reconciliation")
    if reconciliation is not None:
        return float(reconciliation)
    automated, human = scores.get("automated"), scores.get("human")
    if automated is not None and human is not None:
        if abs(automated - human) <= threshold:
            return (automated + human) / 2
        return None
    if automated is not None:
        return float(automated)
    if human is not None:
        return float(human)
    return None


class ScoringAggregator:
    def __init__(self, repository: EntityRepository, settings: ReviewSettings) -> None:
        self.repository = repository
        self.settings = settings

    def completed_scores(self, proposal_id: UUID) -> dict[str, float]:
        reviews = self.repository.find(
            QueryPlan(
                entity="review",
                where=(
                    Predicate("proposal_id", "eq", proposal_id),
                    Predicate("status", "eq", "completed"),
                ),
            )
        )
        return {review.kind: review.total_score for review in reviews if review.total_score is not None}

    def compute_final_score(self, proposal_id: UUID) -> float | None:
        self.repository.get("proposal", proposal_id)
        return resolve_final_score(self.completed_scores(proposal_id), self.settings.divergence_threshold)

    def score_breakdown(self, proposal_id: UUID) -> dict[str, Any]:
        self.repository.get("proposal", proposal_id)
        scores = self.completed_scores(proposal_id)
        gap = divergence(scores)
        return {
            "proposal_id": proposal_id,
            "automated": scores.get("automated"),
            "human": scores.get("human"),
            "reconciliation": scores.get("reconciliation"),
            "divergence": gap,
            "reconciliation_required": gap is not None and gap > self.settings.divergence_threshold,
            "final_score": resolve_final_score(scores, self.settings.divergence_threshold),
        }

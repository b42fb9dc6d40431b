"""FastAPI providers wiring request sessions into workflow services."""

from fastapi import Depends
from sqlalchemy.orm import Session

from .clock import Clock
from .config import ReviewSettings, get_settings
from .database import get_db
from .notify import CeleryNotifier, Notifier
from .repository import SqlAlchemyRepository
from .services.awards import AwardStateMachine
from .services.decision_pipeline import DecisionPipeline
from .services.full_proposals import FullProposalService
from .services.proposals import ProposalService
from .services.review_assignment import ReviewAssignmentManager
from .services.reviewers import ReviewerService
from .services.scoring import ScoringAggregator

# purpose: single override point for clock, notifier and settings in tests
# status: active


def get_clock() -> Clock:
    return Clock()


def get_notifier() -> Notifier:
    return CeleryNotifier()


def get_review_settings() -> ReviewSettings:
    return get_settings()


def get_repository(db: Session = Depends(get_db)) -> SqlAlchemyRepository:
    return SqlAlchemyRepository(db)


def get_proposal_service(
    repository: SqlAlchemyRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> ProposalService:
    return ProposalService(repository, notifier, clock)


def get_assignment_manager(
    repository: SqlAlchemyRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
    settings: ReviewSettings = Depends(get_review_settings),
    clock: Clock = Depends(get_clock),
) -> ReviewAssignmentManager:
    return ReviewAssignmentManager(repository, notifier, settings, clock)


def get_scoring(
    repository: SqlAlchemyRepository = Depends(get_repository),
    settings: ReviewSettings = Depends(get_review_settings),
) -> ScoringAggregator:
    return ScoringAggregator(repository, settings)


def get_decision_pipeline(
    repository: SqlAlchemyRepository = Depends(get_repository),
    settings: ReviewSettings = Depends(get_review_settings),
    clock: Clock = Depends(get_clock),
) -> DecisionPipeline:
    return DecisionPipeline(repository, settings, clock)


def get_award_state_machine(
    repository: SqlAlchemyRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
    settings: ReviewSettings = Depends(get_review_settings),
    clock: Clock = Depends(get_clock),
) -> AwardStateMachine:
    return AwardStateMachine(repository, notifier, settings, clock)


def get_full_proposal_service(
    repository: SqlAlchemyRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
    settings: ReviewSettings = Depends(get_review_settings),
    clock: Clock = Depends(get_clock),
) -> FullProposalService:
    return FullProposalService(repository, notifier, settings, clock)


def get_reviewer_service(
    repository: SqlAlchemyRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> ReviewerService:
    return ReviewerService(repository, notifier, clock)

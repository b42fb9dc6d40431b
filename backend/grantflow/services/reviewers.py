"""Reviewer panel invitations."""

from __future__ import annotations

import logging
from uuid import UUID

from .. import models
from ..audit import record_action
from ..clock import Clock
from ..errors import InvalidStateError, NotFoundError
from ..notify import Notifier
from ..query_plan import Predicate, QueryPlan
from ..repository import EntityRepository

logger = logging.getLogger(__name__)


class ReviewerService:
    def __init__(self, repository: EntityRepository, notifier: Notifier, clock: Clock) -> None:
        self.repository = repository
        self.notifier = notifier
        self.clock = clock

    def invite_reviewer(
        self,
        email: str,
        name: str,
        faculty_id: UUID | None = None,
        department_id: UUID | None = None,
        *,
        invitation_token: str | None = None,
        actor_id: UUID | None = None,
    ) -> models.User:
        """Provision an inactive reviewer account and send the invitation."""

        if faculty_id is not None:
            self.repository.get("faculty", faculty_id)
        if department_id is not None:
            self.repository.get("department", department_id)
        now = self.clock.now()
        user = self.repository.insert(
            "user",
            {
                "email": email.strip().lower(),
                "name": name.strip(),
                "role": "reviewer",
                "faculty_id": faculty_id,
                "department_id": department_id,
                "is_active": False,
                "created_at": now,
            },
        )
        record_action(self.repository, actor_id, "reviewer.invited", now, target_type="user", target_id=user.id)
        payload = {"user_id": str(user.id), "name": user.name, "token": invitation_token}
        recipients = [user.email]
        self.repository.commit()
        self.notifier.notify("reviewer_invitation", recipients, payload)
        return user

    def accept_invitation(self, user_id: UUID) -> models.User:
        user = self.repository.get("user", user_id)
        if user.role != "reviewer":
            raise InvalidStateError("only reviewer invitations can be accepted", reason="not_invited")
        now = self.clock.now()
        changed = self.repository.update_by_id(
            "user", user.id, {"is_active": True}, expected={"is_active": False, "role": "reviewer"}
        )
        if not changed:
            raise InvalidStateError("invitation was already accepted", reason="already_active")
        record_action(self.repository, user.id, "reviewer.accepted", now, target_type="user", target_id=user.id)
        self.repository.commit()
        logger.info("reviewer %s accepted the invitation", user.id)
        return user

    def user_for_email(self, email: str) -> models.User:
        users = self.repository.find(
            QueryPlan(entity="user", where=(Predicate("email", "eq", email.strip().lower()),), limit=1)
        )
        if not users:
            raise NotFoundError("no account for this invitation", reason="not_found")
        return users[0]

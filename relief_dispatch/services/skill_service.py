# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Volunteer skills.

Users declare their own skills unverified; a coordinator verifies them.
Only verified skills take part in matching.
"""

from typing import Optional

from relief_dispatch.core.authorization import AuthorizationContext, Capability
from relief_dispatch.core.errors import InvalidInputError, NotFoundError
from relief_dispatch.core.logging import get_logger
from relief_dispatch.models.domain import SKILL_LEVELS, VolunteerSkill
from relief_dispatch.repositories.user_repository import UserRepository
from relief_dispatch.services.notification_dispatcher import (
    SKILL_VERIFIED,
    NotificationDispatcher,
    best_effort,
    event_payload,
)

logger = get_logger(__name__)


class SkillService:
    """Business logic for declaring and verifying skills."""

    def __init__(self, user_repo: UserRepository, dispatcher: NotificationDispatcher) -> None:
        self._users = user_repo
        self._notify = best_effort(dispatcher)

    def add_skill(
        self,
        auth: AuthorizationContext,
        skill: str,
        level: str = "intermediate",
        certification: Optional[str] = None,
    ) -> VolunteerSkill:
        if self._users.get_user(auth.user_id) is None:
            raise NotFoundError("User", auth.user_id)
        auth.require(Capability.MANAGE_OWN_SKILLS, owner_id=auth.user_id)
        if not skill or not skill.strip():
            raise InvalidInputError("Skill name cannot be empty")
        if level not in SKILL_LEVELS:
            raise InvalidInputError(f"Invalid level '{level}'", allowed=list(SKILL_LEVELS))

        created = self._users.add_skill(auth.user_id, skill, level, certification)
        logger.info("Skill added user=%s skill=%s level=%s", auth.user_id, created.skill, level)
        return created

    def update_skill(
        self,
        skill_id: str,
        auth: AuthorizationContext,
        skill: Optional[str] = None,
        level: Optional[str] = None,
        certification: Optional[str] = None,
    ) -> VolunteerSkill:
        """
        Edit one of the acting user's skills. Renaming it or changing its
        level drops the verification; a certification change keeps it.
        """
        current = self._own_skill(skill_id, auth)
        if skill is not None and not skill.strip():
            raise InvalidInputError("Skill name cannot be empty")
        if level is not None and level not in SKILL_LEVELS:
            raise InvalidInputError(f"Invalid level '{level}'", allowed=list(SKILL_LEVELS))

        renamed = skill is not None and skill.strip().lower() != current.skill.strip().lower()
        relevelled = level is not None and level != current.level
        updated = self._users.update_skill(
            auth.user_id, skill_id, skill=skill, level=level, certification=certification,
            clear_verification=current.verified and (renamed or relevelled),
        )
        if updated is None:
            raise NotFoundError("Skill", skill_id)
        logger.info("Skill updated user=%s skill=%s level=%s verified=%s",
                    auth.user_id, updated.skill, updated.level, updated.verified,
                    extra={"user_id": auth.user_id})
        return updated

    def delete_skill(self, skill_id: str, auth: AuthorizationContext) -> None:
        self._own_skill(skill_id, auth)
        if not self._users.delete_skill(auth.user_id, skill_id):
            raise NotFoundError("Skill", skill_id)
        logger.info("Skill deleted user=%s skill_id=%s", auth.user_id, skill_id)

    def get_skills(self, user_id: str, auth: AuthorizationContext) -> list[VolunteerSkill]:
        user = self._users.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        auth.require(Capability.VIEW_SKILLS, owner_id=user_id)
        return user.skills

    def verify_skill(self, user_id: str, skill_id: str, auth: AuthorizationContext) -> VolunteerSkill:
        if self._users.get_user(user_id) is None:
            raise NotFoundError("User", user_id)
        if self._users.get_skill(user_id, skill_id) is None:
            raise NotFoundError("Skill", skill_id)
        auth.require(Capability.VERIFY_SKILL)

        verified = self._users.mark_skill_verified(user_id, skill_id, auth.user_id)
        if verified is None:
            raise NotFoundError("Skill", skill_id)
        logger.info("Skill verified user=%s skill=%s by=%s", user_id, verified.skill, auth.user_id,
                    extra={"volunteer_id": user_id, "user_id": auth.user_id})

        self._notify.notify_user(user_id, SKILL_VERIFIED, event_payload(
            f"Your skill '{verified.skill}' has been verified",
            skill=verified.model_dump(mode="json"),
        ))
        return verified

    def _own_skill(self, skill_id: str, auth: AuthorizationContext) -> VolunteerSkill:
        if self._users.get_user(auth.user_id) is None:
            raise NotFoundError("User", auth.user_id)
        current = self._users.get_skill(auth.user_id, skill_id)
        if current is None:
            raise NotFoundError("Skill", skill_id)
        auth.require(Capability.MANAGE_OWN_SKILLS, owner_id=auth.user_id)
        return current

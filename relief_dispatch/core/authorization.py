# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Authorization — one capability check used uniformly by every operation.

The acting user's identity and role are supplied by the caller (the API
gateway authenticates; this service only authorizes).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from relief_dispatch.core.errors import UnauthorizedError
from relief_dispatch.models.domain import Role


class Capability(str, Enum):
    REPORT_INCIDENT = "report_incident"
    VERIFY_INCIDENT = "verify_incident"
    ESCALATE_INCIDENT = "escalate_incident"
    UPDATE_INCIDENT_STATUS = "update_incident_status"
    ANNOTATE_INCIDENT = "annotate_incident"
    MATCH_VOLUNTEERS = "match_volunteers"
    CREATE_ASSIGNMENT = "create_assignment"
    RESPOND_TO_ASSIGNMENT = "respond_to_assignment"
    CANCEL_ASSIGNMENT = "cancel_assignment"
    VIEW_ASSIGNMENT = "view_assignment"
    ANNOTATE_ASSIGNMENT = "annotate_assignment"
    MANAGE_OWN_SKILLS = "manage_own_skills"
    VIEW_SKILLS = "view_skills"
    VERIFY_SKILL = "verify_skill"


_ANY_ROLE = frozenset(Role)

# capability -> (roles allowed outright, roles allowed only on their own resource)
_RULES: dict[Capability, tuple[frozenset, frozenset]] = {
    Capability.REPORT_INCIDENT: (_ANY_ROLE, frozenset()),
    Capability.VERIFY_INCIDENT: (frozenset({Role.COORDINATOR}), frozenset()),
    Capability.ESCALATE_INCIDENT: (frozenset({Role.COORDINATOR}), frozenset()),
    Capability.UPDATE_INCIDENT_STATUS: (
        frozenset({Role.COORDINATOR}), frozenset({Role.VOLUNTEER}),
    ),
    Capability.ANNOTATE_INCIDENT: (_ANY_ROLE, frozenset()),
    Capability.MATCH_VOLUNTEERS: (frozenset({Role.COORDINATOR}), frozenset()),
    Capability.CREATE_ASSIGNMENT: (frozenset({Role.COORDINATOR}), frozenset()),
    Capability.RESPOND_TO_ASSIGNMENT: (frozenset(), frozenset({Role.VOLUNTEER})),
    Capability.CANCEL_ASSIGNMENT: (frozenset({Role.COORDINATOR}), frozenset()),
    Capability.VIEW_ASSIGNMENT: (frozenset({Role.COORDINATOR}), frozenset({Role.VOLUNTEER})),
    Capability.ANNOTATE_ASSIGNMENT: (frozenset({Role.COORDINATOR}), frozenset({Role.VOLUNTEER})),
    Capability.MANAGE_OWN_SKILLS: (frozenset(), _ANY_ROLE),
    Capability.VIEW_SKILLS: (frozenset({Role.COORDINATOR}), _ANY_ROLE),
    Capability.VERIFY_SKILL: (frozenset({Role.COORDINATOR}), frozenset()),
}


@dataclass(frozen=True)
class AuthorizationContext:
    """Identity and role of the user performing an operation."""

    user_id: str
    role: Role

    @classmethod
    def of(cls, user_id: Optional[str], role: Optional[str]) -> "AuthorizationContext":
        if not user_id or not user_id.strip():
            raise UnauthorizedError("Missing acting user identity")
        try:
            parsed = Role((role or "").strip().lower())
        except ValueError:
            raise UnauthorizedError(
                f"Unknown role '{role}'",
                allowed_roles=[r.value for r in Role],
            )
        return cls(user_id=user_id.strip(), role=parsed)

    def can(self, capability: Capability, owner_id: Optional[str] = None) -> bool:
        anyone, owner_only = _RULES[capability]
        if self.role in anyone:
            return True
        return self.role in owner_only and owner_id is not None and owner_id == self.user_id

    def require(self, capability: Capability, owner_id: Optional[str] = None) -> None:
        """Raise UnauthorizedError unless the actor holds ``capability``."""
        if not self.can(capability, owner_id):
            raise UnauthorizedError(
                f"User '{self.user_id}' with role '{self.role.value}' "
                f"may not {capability.value.replace('_', ' ')}",
                user_id=self.user_id,
                role=self.role.value,
                capability=capability.value,
            )

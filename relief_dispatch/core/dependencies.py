# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection — wire repositories and services.
"""

from typing import Optional

from fastapi import Header
from sqlalchemy.engine import Engine

from relief_dispatch.core.authorization import AuthorizationContext
from relief_dispatch.core.database import build_engine
from relief_dispatch.repositories import AssignmentRepository, IncidentRepository, UserRepository
from relief_dispatch.services.assignment_lifecycle import AssignmentLifecycle
from relief_dispatch.services.incident_service import IncidentService
from relief_dispatch.services.locks import IncidentLockRegistry
from relief_dispatch.services.matching_service import MatchingService
from relief_dispatch.services.notification_dispatcher import (
    BestEffortDispatcher,
    HttpNotificationDispatcher,
)
from relief_dispatch.services.skill_service import SkillService
from relief_dispatch.services.spatial_index import SqlSpatialIndex

# ── Singleton infrastructure ──
_engine = build_engine()
_locks = IncidentLockRegistry()
_dispatcher = BestEffortDispatcher(HttpNotificationDispatcher())

# ── Repositories ──
_user_repo = UserRepository(_engine)
_incident_repo = IncidentRepository(_engine)
_assignment_repo = AssignmentRepository(_engine)
_spatial_index = SqlSpatialIndex(_user_repo)

# ── Service instances (with injected dependencies) ──
_incident_service = IncidentService(
    repo=_incident_repo,
    spatial_index=_spatial_index,
    dispatcher=_dispatcher,
    locks=_locks,
)
_matching_service = MatchingService(
    spatial_index=_spatial_index,
    incident_repo=_incident_repo,
)
_assignment_lifecycle = AssignmentLifecycle(
    assignment_repo=_assignment_repo,
    incident_repo=_incident_repo,
    user_repo=_user_repo,
    dispatcher=_dispatcher,
    locks=_locks,
)
_skill_service = SkillService(user_repo=_user_repo, dispatcher=_dispatcher)


# ── FastAPI dependency functions ──
def get_engine() -> Engine:
    return _engine


def get_user_repo() -> UserRepository:
    return _user_repo


def get_incident_service() -> IncidentService:
    return _incident_service


def get_matching_service() -> MatchingService:
    return _matching_service


def get_assignment_lifecycle() -> AssignmentLifecycle:
    return _assignment_lifecycle


def get_skill_service() -> SkillService:
    return _skill_service


def get_auth_context(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> AuthorizationContext:
    """Acting user as forwarded by the API gateway."""
    return AuthorizationContext.of(x_user_id, x_user_role)

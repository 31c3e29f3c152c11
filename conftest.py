# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Shared fixtures: a file-backed SQLite database per test, real repositories
and services, and a MagicMock notification dispatcher.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from relief_dispatch.core.authorization import AuthorizationContext
from relief_dispatch.core.database import build_engine, init_schema
from relief_dispatch.models.domain import Coordinate, Role, SkillRequirement
from relief_dispatch.repositories import AssignmentRepository, IncidentRepository, UserRepository
from relief_dispatch.services.assignment_lifecycle import AssignmentLifecycle
from relief_dispatch.services.incident_service import IncidentService
from relief_dispatch.services.locks import IncidentLockRegistry
from relief_dispatch.services.matching_service import MatchingService
from relief_dispatch.services.notification_dispatcher import NotificationDispatcher
from relief_dispatch.services.skill_service import SkillService
from relief_dispatch.services.spatial_index import SqlSpatialIndex


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'dispatch.db'}")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repos(engine):
    return SimpleNamespace(
        users=UserRepository(engine),
        incidents=IncidentRepository(engine),
        assignments=AssignmentRepository(engine),
    )


@pytest.fixture
def dispatcher():
    return MagicMock(spec=NotificationDispatcher)


@pytest.fixture
def services(repos, dispatcher):
    locks = IncidentLockRegistry()
    index = SqlSpatialIndex(repos.users)
    return SimpleNamespace(
        index=index,
        incidents=IncidentService(repos.incidents, index, dispatcher, locks),
        matching=MatchingService(index, repos.incidents, default_radius_meters=10_000),
        lifecycle=AssignmentLifecycle(
            repos.assignments, repos.incidents, repos.users, dispatcher, locks,
        ),
        skills=SkillService(repos.users, dispatcher),
    )


# ── Helpers ──

def auth_for(user) -> AuthorizationContext:
    return AuthorizationContext(user_id=user.id, role=user.role)


def make_user(repos, name, role=Role.CITIZEN, lng=None, lat=None, is_active=True):
    location = Coordinate(longitude=lng, latitude=lat) if lng is not None else None
    return repos.users.create_user(
        name=name,
        email=f"{name.lower().replace(' ', '.')}@relief.test",
        role=role,
        location=location,
        is_active=is_active,
    )


def make_volunteer(repos, name, lng, lat, skills=(), is_active=True, verifier="coord-seed"):
    """skills: iterable of (name, level, verified)."""
    user = make_user(repos, name, Role.VOLUNTEER, lng, lat, is_active)
    for skill, level, verified in skills:
        created = repos.users.add_skill(user.id, skill, level)
        if verified:
            repos.users.mark_skill_verified(user.id, created.id, verifier)
    return repos.users.get_user(user.id)


def report(services, reporter, lng=10.0, lat=20.0, skills=(("rescue", "intermediate", "high"),), **kw):
    return services.incidents.report_incident(
        auth_for(reporter),
        title=kw.pop("title", "Flooded street"),
        location=Coordinate(longitude=lng, latitude=lat),
        required_skills=[SkillRequirement(skill=s, min_level=lvl, priority=p) for s, lvl, p in skills],
        **kw,
    )


@pytest.fixture
def coordinator(repos):
    return make_user(repos, "Cora Coordinator", Role.COORDINATOR, 10.0, 20.0)


@pytest.fixture
def citizen(repos):
    return make_user(repos, "Cid Citizen", Role.CITIZEN, 10.0, 20.0)


@pytest.fixture
def volunteer(repos):
    return make_volunteer(repos, "Vera Volunteer", 10.001, 20.001, [("rescue", "advanced", True)])


@pytest.fixture
def incident(services, citizen):
    return report(services, citizen)

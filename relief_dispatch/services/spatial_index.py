# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Spatial lookup of users near a point.

The contract returns every matching user within the radius, unordered.
Ranking is the caller's concern.
"""

from abc import ABC, abstractmethod

from relief_dispatch.core.logging import get_logger
from relief_dispatch.models.domain import Coordinate, Role, VolunteerSummary
from relief_dispatch.repositories.user_repository import UserRepository
from relief_dispatch.services import geo

logger = get_logger(__name__)


class SpatialIndex(ABC):

    @abstractmethod
    def query(
        self,
        center: Coordinate,
        max_distance_meters: float,
        role: Role | str = Role.VOLUNTEER,
        active: bool = True,
    ) -> list[VolunteerSummary]:
        """Users of ``role`` whose location lies within the radius."""


class SqlSpatialIndex(SpatialIndex):
    """Bounding-box prefilter in SQL, exact haversine check in Python."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    def query(
        self,
        center: Coordinate,
        max_distance_meters: float,
        role: Role | str = Role.VOLUNTEER,
        active: bool = True,
    ) -> list[VolunteerSummary]:
        min_lat, max_lat, min_lng, max_lng = geo.bounding_box(center, max_distance_meters)
        rows = self._users.find_in_box(min_lat, max_lat, min_lng, max_lng, role=role, active=active)
        found = [
            VolunteerSummary(
                id=u.id, name=u.name, email=u.email, phone=u.phone,
                location=u.location, skills=u.skills,
            )
            for u in rows
            if geo.distance(center, u.location) <= max_distance_meters
        ]
        logger.debug("Spatial query radius=%.0f prefiltered=%d within=%d",
                     max_distance_meters, len(rows), len(found))
        return found

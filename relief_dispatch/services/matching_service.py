# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Volunteer matching.

Finds active volunteers near an incident, scores their verified skills
against the incident's requirements, and ranks them. Volunteers with no
matching skill are left out.
"""

from typing import Optional

from relief_dispatch.core.authorization import AuthorizationContext, Capability
from relief_dispatch.core.config import settings
from relief_dispatch.core.errors import InvalidInputError, NotFoundError
from relief_dispatch.core.logging import get_logger
from relief_dispatch.metrics.prometheus import MATCH_CANDIDATES, MATCH_REQUESTS
from relief_dispatch.models.domain import Candidate, Incident, Role
from relief_dispatch.repositories.incident_repository import IncidentRepository
from relief_dispatch.services import geo, skill_matcher
from relief_dispatch.services.spatial_index import SpatialIndex

logger = get_logger(__name__)


def _rank_key(candidate: Candidate) -> tuple:
    return (-candidate.score, candidate.distance_meters, candidate.volunteer.id)


class MatchingService:
    """Ranks nearby volunteers for an incident."""

    def __init__(
        self,
        spatial_index: SpatialIndex,
        incident_repo: IncidentRepository,
        default_radius_meters: Optional[float] = None,
    ) -> None:
        self._index = spatial_index
        self._incidents = incident_repo
        self._default_radius = default_radius_meters or settings.DEFAULT_MATCH_RADIUS_METERS

    @property
    def default_radius(self) -> float:
        return self._default_radius

    def find_candidates(
        self,
        incident: Incident,
        max_distance_meters: Optional[float] = None,
    ) -> list[Candidate]:
        """
        Return candidates sorted by score (desc), then distance (asc), then
        volunteer id, so equal inputs always rank identically.
        """
        radius = self._default_radius if max_distance_meters is None else max_distance_meters
        if radius <= 0:
            raise InvalidInputError("max_distance must be positive", max_distance=radius)
        if incident.location is None:
            raise InvalidInputError("Incident has no location", incident_id=incident.id)

        MATCH_REQUESTS.inc()
        candidates: list[Candidate] = []
        for volunteer in self._index.query(incident.location, radius, role=Role.VOLUNTEER, active=True):
            matched, score = skill_matcher.match(incident.required_skills, volunteer.skills)
            if not matched:
                continue
            candidates.append(Candidate(
                volunteer=volunteer,
                matched_skills=matched,
                score=score,
                distance_meters=float(round(geo.distance(incident.location, volunteer.location))),
            ))

        candidates.sort(key=_rank_key)
        MATCH_CANDIDATES.observe(len(candidates))
        logger.info("Matched incident=%s radius=%.0f candidates=%d",
                    incident.id, radius, len(candidates))
        return candidates

    def find_candidates_for(
        self,
        incident_id: str,
        auth: AuthorizationContext,
        max_distance_meters: Optional[float] = None,
    ) -> list[Candidate]:
        incident = self._incidents.get_incident(incident_id)
        if incident is None:
            raise NotFoundError("Incident", incident_id)
        auth.require(Capability.MATCH_VOLUNTEERS)
        return self.find_candidates(incident, max_distance_meters)

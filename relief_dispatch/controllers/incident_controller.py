# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Controller: Incident reporting, verification, escalation, status, matching, notes, timeline."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from relief_dispatch.core.authorization import AuthorizationContext
from relief_dispatch.core.dependencies import (
    get_auth_context,
    get_incident_service,
    get_matching_service,
)
from relief_dispatch.models.domain import Coordinate, Incident, SkillRequirement
from relief_dispatch.schemas.dispatch import (
    CandidateListResponse,
    IncidentCreateRequest,
    IncidentStatusRequest,
    NoteRequest,
    NotesResponse,
    TimelineResponse,
)
from relief_dispatch.services.incident_service import IncidentService
from relief_dispatch.services.matching_service import MatchingService

router = APIRouter(prefix="/api/v1", tags=["Incidents"])


@router.post("/incidents", status_code=201, response_model=Incident)
def report_incident(body: IncidentCreateRequest,
                    auth: AuthorizationContext = Depends(get_auth_context),
                    service: IncidentService = Depends(get_incident_service)):
    return service.report_incident(
        auth,
        title=body.title,
        description=body.description,
        type=body.type,
        severity=body.severity,
        location=Coordinate.of(*body.coordinates),
        address=body.address,
        area=body.area,
        required_skills=[SkillRequirement(**s.model_dump()) for s in body.required_skills],
        people_affected=body.people_affected,
        urgency_level=body.urgency_level,
    )


@router.get("/incidents/{incident_id}", response_model=Incident)
def get_incident(incident_id: str,
                 auth: AuthorizationContext = Depends(get_auth_context),
                 service: IncidentService = Depends(get_incident_service)):
    return service.get_incident(incident_id)


@router.post("/incidents/{incident_id}/verify", response_model=Incident)
def verify_incident(incident_id: str,
                    auth: AuthorizationContext = Depends(get_auth_context),
                    service: IncidentService = Depends(get_incident_service)):
    return service.verify_incident(incident_id, auth)


@router.post("/incidents/{incident_id}/escalate", response_model=Incident)
def escalate_incident(incident_id: str,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      service: IncidentService = Depends(get_incident_service)):
    return service.escalate_incident(incident_id, auth)


@router.patch("/incidents/{incident_id}/status", response_model=Incident)
def update_incident_status(incident_id: str, body: IncidentStatusRequest,
                           auth: AuthorizationContext = Depends(get_auth_context),
                           service: IncidentService = Depends(get_incident_service)):
    return service.update_status(incident_id, body.status, auth)


@router.get("/incidents/{incident_id}/candidates", response_model=CandidateListResponse)
def find_candidates(
    incident_id: str,
    max_distance: Optional[float] = Query(default=None, description="Search radius in meters"),
    auth: AuthorizationContext = Depends(get_auth_context),
    matcher: MatchingService = Depends(get_matching_service),
):
    candidates = matcher.find_candidates_for(incident_id, auth, max_distance)
    return CandidateListResponse(
        incident_id=incident_id,
        max_distance=max_distance if max_distance is not None else matcher.default_radius,
        total=len(candidates),
        candidates=candidates,
    )


@router.post("/incidents/{incident_id}/notes", status_code=201, response_model=NotesResponse)
def add_incident_note(incident_id: str, body: NoteRequest,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      service: IncidentService = Depends(get_incident_service)):
    notes = service.add_note(incident_id, body.note, auth)
    return NotesResponse(total=len(notes), notes=notes)


@router.get("/incidents/{incident_id}/timeline", response_model=TimelineResponse)
def get_incident_timeline(incident_id: str,
                          auth: AuthorizationContext = Depends(get_auth_context),
                          service: IncidentService = Depends(get_incident_service)):
    timeline = service.get_timeline(incident_id)
    return TimelineResponse(incident_id=incident_id, total=len(timeline), timeline=timeline)

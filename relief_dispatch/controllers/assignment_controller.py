# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Controller: Assignment creation, volunteer responses, cancellation, notes."""
from typing import Optional

from fastapi import APIRouter, Body, Depends

from relief_dispatch.core.authorization import AuthorizationContext
from relief_dispatch.core.dependencies import get_assignment_lifecycle, get_auth_context
from relief_dispatch.models.domain import Assignment
from relief_dispatch.schemas.dispatch import (
    AssignmentCompleteRequest,
    AssignmentCreateRequest,
    NoteRequest,
    NotesResponse,
)
from relief_dispatch.services.assignment_lifecycle import AssignmentLifecycle

router = APIRouter(prefix="/api/v1", tags=["Assignments"])


@router.post("/assignments", status_code=201, response_model=Assignment)
def create_assignment(body: AssignmentCreateRequest,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.create(
        body.incident_id, body.volunteer_id, auth,
        priority=body.priority, estimated_duration=body.estimated_duration,
    )


@router.get("/assignments/{assignment_id}", response_model=Assignment)
def get_assignment(assignment_id: str,
                   auth: AuthorizationContext = Depends(get_auth_context),
                   lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.get_assignment(assignment_id, auth)


@router.post("/assignments/{assignment_id}/accept", response_model=Assignment)
def accept_assignment(assignment_id: str,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.accept(assignment_id, auth)


@router.post("/assignments/{assignment_id}/reject", response_model=Assignment)
def reject_assignment(assignment_id: str,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.reject(assignment_id, auth)


@router.post("/assignments/{assignment_id}/start", response_model=Assignment)
def start_assignment(assignment_id: str,
                     auth: AuthorizationContext = Depends(get_auth_context),
                     lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.start(assignment_id, auth)


@router.post("/assignments/{assignment_id}/complete", response_model=Assignment)
def complete_assignment(assignment_id: str,
                        body: Optional[AssignmentCompleteRequest] = Body(default=None),
                        auth: AuthorizationContext = Depends(get_auth_context),
                        lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    body = body or AssignmentCompleteRequest()
    return lifecycle.complete(
        assignment_id, auth,
        rating=body.rating, feedback=body.feedback, actual_duration=body.actual_duration,
    )


@router.post("/assignments/{assignment_id}/cancel", response_model=Assignment)
def cancel_assignment(assignment_id: str,
                      auth: AuthorizationContext = Depends(get_auth_context),
                      lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    return lifecycle.cancel(assignment_id, auth)


@router.post("/assignments/{assignment_id}/notes", status_code=201, response_model=NotesResponse)
def add_assignment_note(assignment_id: str, body: NoteRequest,
                        auth: AuthorizationContext = Depends(get_auth_context),
                        lifecycle: AssignmentLifecycle = Depends(get_assignment_lifecycle)):
    notes = lifecycle.add_note(assignment_id, body.note, auth)
    return NotesResponse(total=len(notes), notes=notes)

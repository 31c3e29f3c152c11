# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas — API contract definitions.
These are Pydantic models used ONLY at the controller (HTTP) boundary.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from relief_dispatch.models.domain import Candidate, Note, TimelineEvent

_INCIDENT_TYPES = "^(flood|rescue|medical|evacuation|supply|infrastructure|other)$"
_SEVERITIES = "^(low|medium|high|critical)$"
_INCIDENT_STATUSES = "^(reported|verified|assigned|in-progress|resolved|closed)$"
_SKILL_LEVELS = "^(beginner|intermediate|advanced|expert)$"
_SKILL_PRIORITIES = "^(low|medium|high)$"
_ASSIGNMENT_PRIORITIES = "^(low|medium|high|urgent)$"


# ── Incident Schemas ──

class SkillRequirementRequest(BaseModel):
    skill: str = Field(..., min_length=1, max_length=100)
    min_level: str = Field(default="intermediate", pattern=_SKILL_LEVELS)
    priority: str = Field(default="medium", pattern=_SKILL_PRIORITIES)


class IncidentCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    type: str = Field(default="other", pattern=_INCIDENT_TYPES)
    severity: str = Field(default="medium", pattern=_SEVERITIES)
    coordinates: list[float] = Field(
        ..., min_length=2, max_length=2, description="[longitude, latitude]"
    )
    address: Optional[str] = None
    area: Optional[str] = None
    required_skills: list[SkillRequirementRequest] = Field(default_factory=list)
    people_affected: int = Field(default=0, ge=0)
    urgency_level: int = Field(default=5, ge=1, le=10)


class IncidentStatusRequest(BaseModel):
    status: str = Field(..., pattern=_INCIDENT_STATUSES)


class NoteRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=2000)


class CandidateListResponse(BaseModel):
    incident_id: str
    max_distance: float
    total: int
    candidates: list[Candidate]


class TimelineResponse(BaseModel):
    incident_id: str
    total: int
    timeline: list[TimelineEvent]


class NotesResponse(BaseModel):
    total: int
    notes: list[Note]


# ── Assignment Schemas ──

class AssignmentCreateRequest(BaseModel):
    incident_id: str = Field(..., min_length=1)
    volunteer_id: str = Field(..., min_length=1)
    priority: str = Field(default="medium", pattern=_ASSIGNMENT_PRIORITIES)
    estimated_duration: Optional[int] = Field(
        default=None, ge=0, description="Estimated duration in minutes"
    )


class AssignmentCompleteRequest(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=2000)
    actual_duration: Optional[int] = Field(
        default=None, ge=0, description="Actual duration in minutes"
    )


# ── Skill Schemas ──

class SkillCreateRequest(BaseModel):
    skill: str = Field(..., min_length=1, max_length=100)
    level: str = Field(default="intermediate", pattern=_SKILL_LEVELS)
    certification: Optional[str] = None


class SkillUpdateRequest(BaseModel):
    skill: Optional[str] = Field(default=None, min_length=1, max_length=100)
    level: Optional[str] = Field(default=None, pattern=_SKILL_LEVELS)
    certification: Optional[str] = None


# ── Errors ──

class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    request_id: Optional[str] = None
    context: dict[str, Any] = Field(default_factory=dict)

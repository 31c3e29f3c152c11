# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models — pure data structures, NO FastAPI dependency.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from relief_dispatch.core.errors import InvalidInputError


class Role(str, Enum):
    CITIZEN = "citizen"
    VOLUNTEER = "volunteer"
    COORDINATOR = "coordinator"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentType(str, Enum):
    FLOOD = "flood"
    RESCUE = "rescue"
    MEDICAL = "medical"
    EVACUATION = "evacuation"
    SUPPLY = "supply"
    INFRASTRUCTURE = "infrastructure"
    OTHER = "other"


class IncidentStatus(str, Enum):
    REPORTED = "reported"
    VERIFIED = "verified"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class VolunteerStatus(str, Enum):
    """Per-incident sub-status mirrored from the volunteer's assignment."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


SKILL_LEVELS = ("beginner", "intermediate", "advanced", "expert")
SKILL_PRIORITIES = ("low", "medium", "high")

ACTIVE_ASSIGNMENT_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.ACCEPTED,
    AssignmentStatus.IN_PROGRESS,
})
TERMINAL_ASSIGNMENT_STATUSES = frozenset({
    AssignmentStatus.COMPLETED,
    AssignmentStatus.REJECTED,
    AssignmentStatus.CANCELLED,
})

# Manual incident status changes; closed is terminal
ALLOWED_TRANSITIONS: dict[IncidentStatus, frozenset] = {
    IncidentStatus.REPORTED: frozenset({
        IncidentStatus.VERIFIED, IncidentStatus.ASSIGNED, IncidentStatus.IN_PROGRESS,
        IncidentStatus.RESOLVED, IncidentStatus.CLOSED,
    }),
    IncidentStatus.VERIFIED: frozenset({
        IncidentStatus.ASSIGNED, IncidentStatus.IN_PROGRESS,
        IncidentStatus.RESOLVED, IncidentStatus.CLOSED,
    }),
    IncidentStatus.ASSIGNED: frozenset({
        IncidentStatus.IN_PROGRESS, IncidentStatus.RESOLVED, IncidentStatus.CLOSED,
    }),
    IncidentStatus.IN_PROGRESS: frozenset({IncidentStatus.RESOLVED, IncidentStatus.CLOSED}),
    IncidentStatus.RESOLVED: frozenset({IncidentStatus.CLOSED}),
    IncidentStatus.CLOSED: frozenset(),
}


class Coordinate(BaseModel):
    """A (longitude, latitude) point in degrees. Immutable."""
    model_config = ConfigDict(frozen=True)

    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)

    @classmethod
    def of(cls, longitude: Any, latitude: Any) -> "Coordinate":
        """Build a coordinate, raising InvalidInputError when out of range."""
        try:
            return cls(longitude=longitude, latitude=latitude)
        except ValidationError as exc:
            raise InvalidInputError(
                "Coordinates must be [longitude, latitude] with longitude in "
                "[-180, 180] and latitude in [-90, 90]",
                longitude=longitude,
                latitude=latitude,
                errors=[e["msg"] for e in exc.errors()],
            )

    def as_pair(self) -> list[float]:
        return [self.longitude, self.latitude]


class SkillRequirement(BaseModel):
    # Plain strings: unknown levels/priorities are scored with defaults
    skill: str = Field(..., min_length=1)
    min_level: str = "intermediate"
    priority: str = "medium"


class VolunteerSkill(BaseModel):
    id: str
    skill: str
    level: str = "intermediate"
    verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    certification: Optional[str] = None


class User(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: Role = Role.CITIZEN
    is_active: bool = True
    location: Optional[Coordinate] = None
    address: Optional[str] = None
    skills: list[VolunteerSkill] = Field(default_factory=list)


class VolunteerSummary(BaseModel):
    """What the matcher needs to know about a nearby volunteer."""
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    location: Coordinate
    skills: list[VolunteerSkill] = Field(default_factory=list)


class Note(BaseModel):
    id: str
    note: str
    added_by: str
    added_at: datetime


class AssignedVolunteer(BaseModel):
    volunteer_id: str
    status: VolunteerStatus = VolunteerStatus.PENDING
    assigned_at: datetime


class Incident(BaseModel):
    id: str
    title: str
    description: str = ""
    type: IncidentType = IncidentType.FLOOD
    severity: Severity = Severity.MEDIUM
    status: IncidentStatus = IncidentStatus.REPORTED
    location: Optional[Coordinate] = None
    address: Optional[str] = None
    area: Optional[str] = None
    reported_by: str
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    required_skills: list[SkillRequirement] = Field(default_factory=list)
    people_affected: int = Field(default=0, ge=0)
    urgency_level: int = Field(default=5, ge=1, le=10)
    escalation_level: int = Field(default=0, ge=0, le=5)
    assigned_volunteers: list[AssignedVolunteer] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class MatchedSkill(BaseModel):
    """Skill snapshot recorded on an assignment at creation time."""
    skill: str
    level: str


class CandidateSkill(MatchedSkill):
    required_level: str
    priority: str


class Assignment(BaseModel):
    id: str
    incident_id: str
    volunteer_id: str
    coordinator_id: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.PENDING
    priority: AssignmentPriority = AssignmentPriority.MEDIUM
    distance: float
    matched_skills: list[MatchedSkill] = Field(default_factory=list)
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None
    requested_at: datetime
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    notes: list[Note] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Candidate(BaseModel):
    volunteer: VolunteerSummary
    matched_skills: list[CandidateSkill]
    score: int
    distance_meters: float


class TimelineEvent(BaseModel):
    id: str
    incident_id: str
    event_type: str
    actor: str
    detail: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

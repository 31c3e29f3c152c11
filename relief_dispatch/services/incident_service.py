# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Business logic for reporting, verifying, escalating and annotating incidents."""
import uuid
from typing import Any, Dict, List, Optional, Sequence

from relief_dispatch.core.authorization import AuthorizationContext, Capability
from relief_dispatch.core.config import settings
from relief_dispatch.core.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from relief_dispatch.core.logging import get_logger
from relief_dispatch.metrics.prometheus import (
    ESCALATIONS_TOTAL,
    INCIDENTS_REPORTED,
    INCIDENTS_RESOLVED,
)
from relief_dispatch.models.domain import (
    ALLOWED_TRANSITIONS,
    Coordinate,
    Incident,
    IncidentStatus,
    IncidentType,
    Note,
    Role,
    Severity,
    SkillRequirement,
    TimelineEvent,
    VolunteerStatus,
)
from relief_dispatch.repositories.base import utcnow
from relief_dispatch.repositories.incident_repository import IncidentRepository
from relief_dispatch.services import escalation_policy, geo
from relief_dispatch.services.locks import IncidentLockRegistry
from relief_dispatch.services.notification_dispatcher import (
    INCIDENT_ESCALATED,
    INCIDENT_STATUS_CHANGED,
    NEW_INCIDENT_NEARBY,
    NotificationDispatcher,
    best_effort,
    event_payload,
)
from relief_dispatch.services.spatial_index import SpatialIndex

logger = get_logger(__name__)


def _summary(incident: Incident) -> Dict[str, Any]:
    return {
        "id": incident.id,
        "title": incident.title,
        "type": incident.type.value,
        "severity": incident.severity.value,
        "status": incident.status.value,
        "location": incident.location.as_pair() if incident.location else None,
    }


def _parse(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(
            f"Invalid {field} '{value}'",
            allowed=[e.value for e in enum_cls],
        )


class IncidentService:
    def __init__(
        self,
        repo: IncidentRepository,
        spatial_index: SpatialIndex,
        dispatcher: NotificationDispatcher,
        locks: IncidentLockRegistry,
        nearby_radius_meters: Optional[float] = None,
    ):
        self._repo = repo
        self._index = spatial_index
        self._notify = best_effort(dispatcher)
        self._locks = locks
        self._nearby_radius = nearby_radius_meters or settings.NEARBY_INCIDENT_RADIUS_METERS

    # ── Report ─────────────────────────────────────────────────────────

    def report_incident(
        self,
        auth: AuthorizationContext,
        title: str,
        location: Coordinate,
        description: str = "",
        type: IncidentType | str = IncidentType.OTHER,
        severity: Severity | str = Severity.MEDIUM,
        address: Optional[str] = None,
        area: Optional[str] = None,
        required_skills: Optional[Sequence[SkillRequirement]] = None,
        people_affected: int = 0,
        urgency_level: int = 5,
    ) -> Incident:
        auth.require(Capability.REPORT_INCIDENT)
        if not title or not title.strip():
            raise InvalidInputError("Title cannot be empty")
        if not 1 <= urgency_level <= 10:
            raise InvalidInputError("urgency_level must be between 1 and 10",
                                    urgency_level=urgency_level)
        if people_affected < 0:
            raise InvalidInputError("people_affected must not be negative",
                                    people_affected=people_affected)

        now = utcnow()
        incident = Incident(
            id=str(uuid.uuid4()),
            title=title.strip(),
            description=description or "",
            type=_parse(IncidentType, type, "type"),
            severity=_parse(Severity, severity, "severity"),
            status=IncidentStatus.REPORTED,
            location=location,
            address=address,
            area=area,
            reported_by=auth.user_id,
            required_skills=list(required_skills or []),
            people_affected=people_affected,
            urgency_level=urgency_level,
            created_at=now,
            updated_at=now,
        )
        with self._repo.begin_transaction() as conn:
            self._repo.create_incident(conn, incident)

        INCIDENTS_REPORTED.labels(type=incident.type.value, severity=incident.severity.value).inc()
        logger.info("Incident reported id=%s type=%s severity=%s by=%s",
                    incident.id, incident.type.value, incident.severity.value, auth.user_id,
                    extra={"incident_id": incident.id, "user_id": auth.user_id})

        nearby = self._index.query(location, self._nearby_radius, role=Role.VOLUNTEER, active=True)
        for volunteer in nearby:
            self._notify.notify_user(volunteer.id, NEW_INCIDENT_NEARBY, event_payload(
                "New incident reported near your location",
                incident={**_summary(incident),
                          "distance": round(geo.distance(location, volunteer.location))},
            ))
        logger.info("Nearby volunteers notified incident=%s count=%d", incident.id, len(nearby))
        return incident

    # ── Status ─────────────────────────────────────────────────────────

    def verify_incident(self, incident_id: str, auth: AuthorizationContext) -> Incident:
        incident = self._get_or_raise(incident_id)
        auth.require(Capability.VERIFY_INCIDENT)
        required = (IncidentStatus.REPORTED,)
        if incident.status not in required:
            raise InvalidTransitionError("incident", incident.status, required, "verify")

        with self._locks.hold(incident_id):
            with self._repo.begin_transaction() as conn:
                if not self._repo.change_status_if(
                    conn, incident_id, required, IncidentStatus.VERIFIED,
                    {"verified_by": auth.user_id, "verified_at": utcnow()},
                ):
                    latest = self._repo.get_incident(incident_id, conn)
                    raise InvalidTransitionError("incident", latest.status, required, "verify")
                self._repo.add_timeline_event(conn, incident_id, "verified", actor=auth.user_id,
                                              detail={"from": incident.status.value})

        logger.info("Incident verified id=%s by=%s", incident_id, auth.user_id)
        updated = self._repo.get_incident(incident_id)
        self._broadcast_status(updated, incident.status)
        return updated

    def update_status(self, incident_id: str, status: IncidentStatus | str,
                      auth: AuthorizationContext) -> Incident:
        """
        Move the incident along ALLOWED_TRANSITIONS. Coordinators may always
        do this; volunteers only once they accepted an assignment on it.
        """
        incident = self._get_or_raise(incident_id)
        owner_id = None
        if auth.role == Role.VOLUNTEER and any(
            v.volunteer_id == auth.user_id and v.status == VolunteerStatus.ACCEPTED
            for v in incident.assigned_volunteers
        ):
            owner_id = auth.user_id
        auth.require(Capability.UPDATE_INCIDENT_STATUS, owner_id=owner_id)

        target = _parse(IncidentStatus, status, "status")
        if target == incident.status:
            return incident
        if target not in ALLOWED_TRANSITIONS[incident.status]:
            sources = [s for s, allowed in ALLOWED_TRANSITIONS.items() if target in allowed]
            raise InvalidTransitionError("incident", incident.status, sources,
                                         f"set status '{target.value}' on")

        extra: Dict[str, Any] = {}
        if target == IncidentStatus.RESOLVED:
            extra["resolved_at"] = utcnow()
        elif target == IncidentStatus.CLOSED:
            extra["closed_at"] = utcnow()

        with self._locks.hold(incident_id):
            with self._repo.begin_transaction() as conn:
                if not self._repo.change_status_if(conn, incident_id, (incident.status,), target, extra):
                    latest = self._repo.get_incident(incident_id, conn)
                    raise InvalidTransitionError("incident", latest.status, [incident.status],
                                                 f"set status '{target.value}' on")
                self._repo.add_timeline_event(conn, incident_id, "status_change", actor=auth.user_id,
                                              detail={"from": incident.status.value, "to": target.value})

        if target == IncidentStatus.RESOLVED:
            INCIDENTS_RESOLVED.labels(source="manual").inc()
        logger.info("Incident status changed id=%s from=%s to=%s by=%s",
                    incident_id, incident.status.value, target.value, auth.user_id,
                    extra={"incident_id": incident_id, "user_id": auth.user_id})
        updated = self._repo.get_incident(incident_id)
        self._broadcast_status(updated, incident.status)
        return updated

    def escalate_incident(self, incident_id: str, auth: AuthorizationContext) -> Incident:
        self._get_or_raise(incident_id)
        auth.require(Capability.ESCALATE_INCIDENT)

        with self._locks.hold(incident_id):
            with self._repo.begin_transaction() as conn:
                current = self._repo.get_incident(incident_id, conn)
                escalated = escalation_policy.escalate(current)
                changed = escalated.escalation_level > current.escalation_level
                if changed:
                    self._repo.update_fields(conn, incident_id, {
                        "escalation_level": escalated.escalation_level,
                        "urgency_level": escalated.urgency_level,
                        "severity": escalated.severity,
                    })
                    self._repo.add_timeline_event(conn, incident_id, "escalated", actor=auth.user_id, detail={
                        "level": escalated.escalation_level,
                        "severity": escalated.severity.value,
                        "urgency": escalated.urgency_level,
                    })

        if not changed:
            logger.info("Escalation skipped id=%s: already at level %d",
                        incident_id, current.escalation_level)
            return current

        ESCALATIONS_TOTAL.labels(severity=escalated.severity.value).inc()
        logger.info("Incident escalated id=%s level=%d severity=%s urgency=%d",
                    incident_id, escalated.escalation_level, escalated.severity.value,
                    escalated.urgency_level)
        updated = self._repo.get_incident(incident_id)
        self._notify.notify_role(Role.COORDINATOR.value, INCIDENT_ESCALATED, event_payload(
            f"Incident escalated to level {updated.escalation_level}",
            incident={**_summary(updated), "escalation_level": updated.escalation_level,
                      "urgency_level": updated.urgency_level},
        ))
        return updated

    # ── Notes & reads ──────────────────────────────────────────────────

    def add_note(self, incident_id: str, note: str, auth: AuthorizationContext) -> List[Note]:
        self._get_or_raise(incident_id)
        auth.require(Capability.ANNOTATE_INCIDENT)
        if not note or not note.strip():
            raise InvalidInputError("Note cannot be empty")
        with self._locks.hold(incident_id):
            with self._repo.begin_transaction() as conn:
                self._repo.add_note(conn, incident_id, note.strip(), auth.user_id)
        return self._repo.get_incident(incident_id).notes

    def get_incident(self, incident_id: str) -> Incident:
        return self._get_or_raise(incident_id)

    def get_timeline(self, incident_id: str) -> List[TimelineEvent]:
        if not self._repo.exists(incident_id):
            raise NotFoundError("Incident", incident_id)
        return self._repo.get_timeline(incident_id)

    # ── Private ────────────────────────────────────────────────────────

    def _get_or_raise(self, incident_id: str) -> Incident:
        incident = self._repo.get_incident(incident_id)
        if incident is None:
            raise NotFoundError("Incident", incident_id)
        return incident

    def _broadcast_status(self, incident: Incident, old_status: IncidentStatus) -> None:
        self._notify.notify_all(INCIDENT_STATUS_CHANGED, event_payload(
            f"Incident status changed from {old_status.value} to {incident.status.value}",
            incident=_summary(incident),
            old_status=old_status.value,
        ))

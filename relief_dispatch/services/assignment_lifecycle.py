# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Assignment lifecycle — the only writer of assignments and of the
per-incident volunteer sub-statuses.

    pending ──accept──▶ accepted ──start──▶ in-progress ──complete──▶ completed
       │                    │                    │
       ├──reject──▶ rejected│                    │
       └──────────cancel────┴────────────────────┴──▶ cancelled

Every transition checks existence, then authorization, then state. The
assignment change and the incident change commit in one transaction while
the incident's lock is held; the notification goes out after commit.
"""

import uuid
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.engine import Connection

from relief_dispatch.core.authorization import AuthorizationContext, Capability
from relief_dispatch.core.errors import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from relief_dispatch.core.logging import get_logger
from relief_dispatch.metrics.prometheus import (
    ASSIGNMENT_TRANSITIONS,
    ASSIGNMENTS_CREATED,
    INCIDENTS_RESOLVED,
)
from relief_dispatch.models.domain import (
    Assignment,
    AssignmentPriority,
    AssignmentStatus,
    Incident,
    IncidentStatus,
    MatchedSkill,
    Note,
    Role,
    VolunteerStatus,
)
from relief_dispatch.repositories.assignment_repository import AssignmentRepository
from relief_dispatch.repositories.base import utcnow
from relief_dispatch.repositories.incident_repository import IncidentRepository
from relief_dispatch.repositories.user_repository import UserRepository
from relief_dispatch.services import geo, skill_matcher
from relief_dispatch.services.locks import IncidentLockRegistry
from relief_dispatch.services.notification_dispatcher import (
    ASSIGNMENT_ACCEPTED,
    ASSIGNMENT_CANCELLED,
    ASSIGNMENT_COMPLETED,
    ASSIGNMENT_REJECTED,
    ASSIGNMENT_REQUEST,
    ASSIGNMENT_STARTED,
    NotificationDispatcher,
    best_effort,
    event_payload,
)

logger = get_logger(__name__)

# Incident statuses that still accept new volunteers
ASSIGNABLE_INCIDENT_STATUSES = (
    IncidentStatus.REPORTED,
    IncidentStatus.VERIFIED,
    IncidentStatus.ASSIGNED,
    IncidentStatus.IN_PROGRESS,
    IncidentStatus.RESOLVED,
)
# Incident statuses from which completing the last assignment resolves it
RESOLVABLE_INCIDENT_STATUSES = (
    IncidentStatus.REPORTED,
    IncidentStatus.VERIFIED,
    IncidentStatus.ASSIGNED,
    IncidentStatus.IN_PROGRESS,
)
CANCELLABLE_STATUSES = (
    AssignmentStatus.PENDING,
    AssignmentStatus.ACCEPTED,
    AssignmentStatus.IN_PROGRESS,
)
_DONE_STATUSES = frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED})


class AssignmentLifecycle:
    """State machine for volunteer assignments."""

    def __init__(
        self,
        assignment_repo: AssignmentRepository,
        incident_repo: IncidentRepository,
        user_repo: UserRepository,
        dispatcher: NotificationDispatcher,
        locks: IncidentLockRegistry,
    ) -> None:
        self._assignments = assignment_repo
        self._incidents = incident_repo
        self._users = user_repo
        self._notify = best_effort(dispatcher)
        self._locks = locks

    # ── Create ─────────────────────────────────────────────────────────

    def create(
        self,
        incident_id: str,
        volunteer_id: str,
        auth: AuthorizationContext,
        priority: AssignmentPriority | str = AssignmentPriority.MEDIUM,
        estimated_duration: Optional[int] = None,
    ) -> Assignment:
        """Request a volunteer for an incident. One assignment per pair, ever."""
        incident = self._incidents.get_incident(incident_id)
        if incident is None:
            raise NotFoundError("Incident", incident_id)
        volunteer = self._users.get_user(volunteer_id)
        if volunteer is None or volunteer.role != Role.VOLUNTEER:
            raise NotFoundError("Volunteer", volunteer_id)

        auth.require(Capability.CREATE_ASSIGNMENT)

        _ensure_assignable(incident)
        try:
            priority = AssignmentPriority(priority)
        except ValueError:
            raise InvalidInputError(
                f"Unknown priority '{priority}'",
                allowed=[p.value for p in AssignmentPriority],
            )
        if estimated_duration is not None and estimated_duration < 0:
            raise InvalidInputError("estimated_duration must not be negative",
                                    estimated_duration=estimated_duration)
        if incident.location is None or volunteer.location is None:
            raise InvalidInputError(
                "Both incident and volunteer need a location to compute distance",
                incident_id=incident_id,
                volunteer_id=volunteer_id,
            )

        matched, _ = skill_matcher.match(incident.required_skills, volunteer.skills)
        now = utcnow()
        assignment = Assignment(
            id=str(uuid.uuid4()),
            incident_id=incident_id,
            volunteer_id=volunteer_id,
            coordinator_id=auth.user_id,
            status=AssignmentStatus.PENDING,
            priority=priority,
            distance=float(round(geo.distance(incident.location, volunteer.location))),
            matched_skills=[MatchedSkill(skill=m.skill, level=m.level) for m in matched],
            estimated_duration=estimated_duration,
            requested_at=now,
            created_at=now,
            updated_at=now,
        )

        with self._locks.hold(incident_id):
            with self._assignments.begin_transaction() as conn:
                # Status may have moved while waiting for the lock
                _ensure_assignable(self._incidents.get_incident(incident_id, conn))
                self._assignments.insert(conn, assignment)
                self._incidents.add_volunteer(conn, incident_id, volunteer_id, now)
                self._incidents.add_timeline_event(
                    conn, incident_id, "assignment_created", actor=auth.user_id,
                    detail={"assignment_id": assignment.id, "volunteer_id": volunteer_id,
                            "priority": priority.value, "distance": assignment.distance},
                )

        ASSIGNMENTS_CREATED.labels(priority=priority.value).inc()
        logger.info("Assignment created id=%s incident=%s volunteer=%s distance=%.0f",
                    assignment.id, incident_id, volunteer_id, assignment.distance,
                    extra={"assignment_id": assignment.id, "incident_id": incident_id,
                           "volunteer_id": volunteer_id, "user_id": auth.user_id})

        created = self._assignments.get_assignment(assignment.id)
        self._notify.notify_user(volunteer_id, ASSIGNMENT_REQUEST, event_payload(
            f"New assignment request: {incident.title}",
            assignment=created.model_dump(mode="json"),
            incident={"id": incident.id, "title": incident.title,
                      "type": incident.type.value, "severity": incident.severity.value},
        ))
        return created

    # ── Volunteer transitions ──────────────────────────────────────────

    def accept(self, assignment_id: str, auth: AuthorizationContext) -> Assignment:
        def promote_incident(conn: Connection, assignment: Assignment) -> None:
            self._incidents.set_volunteer_status(
                conn, assignment.incident_id, assignment.volunteer_id, VolunteerStatus.ACCEPTED)
            if self._incidents.change_status_if(
                conn, assignment.incident_id,
                (IncidentStatus.REPORTED, IncidentStatus.VERIFIED), IncidentStatus.ASSIGNED,
            ):
                self._incidents.add_timeline_event(
                    conn, assignment.incident_id, "status_change", actor=auth.user_id,
                    detail={"to": IncidentStatus.ASSIGNED.value, "via": "assignment_accepted"})

        updated = self._transition(
            assignment_id, auth, Capability.RESPOND_TO_ASSIGNMENT, "accept",
            (AssignmentStatus.PENDING,), AssignmentStatus.ACCEPTED,
            {"accepted_at": utcnow()}, promote_incident,
        )
        self._notify_coordinator(updated, ASSIGNMENT_ACCEPTED, "Volunteer accepted the assignment")
        return updated

    def reject(self, assignment_id: str, auth: AuthorizationContext) -> Assignment:
        def mark_rejected(conn: Connection, assignment: Assignment) -> None:
            self._incidents.set_volunteer_status(
                conn, assignment.incident_id, assignment.volunteer_id, VolunteerStatus.REJECTED)

        updated = self._transition(
            assignment_id, auth, Capability.RESPOND_TO_ASSIGNMENT, "reject",
            (AssignmentStatus.PENDING,), AssignmentStatus.REJECTED,
            {"rejected_at": utcnow()}, mark_rejected,
        )
        self._notify_coordinator(updated, ASSIGNMENT_REJECTED, "Volunteer rejected the assignment")
        return updated

    def start(self, assignment_id: str, auth: AuthorizationContext) -> Assignment:
        def mark_in_progress(conn: Connection, assignment: Assignment) -> None:
            if self._incidents.change_status_if(
                conn, assignment.incident_id,
                (IncidentStatus.ASSIGNED,), IncidentStatus.IN_PROGRESS,
            ):
                self._incidents.add_timeline_event(
                    conn, assignment.incident_id, "status_change", actor=auth.user_id,
                    detail={"to": IncidentStatus.IN_PROGRESS.value, "via": "assignment_started"})

        updated = self._transition(
            assignment_id, auth, Capability.RESPOND_TO_ASSIGNMENT, "start",
            (AssignmentStatus.ACCEPTED,), AssignmentStatus.IN_PROGRESS,
            {"started_at": utcnow()}, mark_in_progress,
        )
        self._notify_coordinator(updated, ASSIGNMENT_STARTED, "Volunteer started the assignment")
        return updated

    def complete(
        self,
        assignment_id: str,
        auth: AuthorizationContext,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
        actual_duration: Optional[int] = None,
    ) -> Assignment:
        """
        Finish an in-progress assignment. When every assignment of the
        incident is completed or cancelled, the incident is resolved once.
        """
        if rating is not None and not 1 <= rating <= 5:
            raise InvalidInputError("rating must be between 1 and 5", rating=rating)
        if actual_duration is not None and actual_duration < 0:
            raise InvalidInputError("actual_duration must not be negative",
                                    actual_duration=actual_duration)

        resolved: list[bool] = []

        def finish(conn: Connection, assignment: Assignment) -> None:
            self._incidents.set_volunteer_status(
                conn, assignment.incident_id, assignment.volunteer_id, VolunteerStatus.COMPLETED)
            self._incidents.lock_row(conn, assignment.incident_id)
            statuses = self._assignments.statuses_for_incident(conn, assignment.incident_id)
            if not all(s in _DONE_STATUSES for s in statuses):
                return
            now = utcnow()
            if self._incidents.change_status_if(
                conn, assignment.incident_id, RESOLVABLE_INCIDENT_STATUSES,
                IncidentStatus.RESOLVED, {"resolved_at": now},
            ):
                self._incidents.add_timeline_event(
                    conn, assignment.incident_id, "resolved", actor=auth.user_id,
                    detail={"via": "assignments_completed"})
                resolved.append(True)

        fields: dict[str, Any] = {"completed_at": utcnow()}
        if rating is not None:
            fields["rating"] = rating
        if feedback:
            fields["feedback"] = feedback
        if actual_duration is not None:
            fields["actual_duration"] = actual_duration

        updated = self._transition(
            assignment_id, auth, Capability.RESPOND_TO_ASSIGNMENT, "complete",
            (AssignmentStatus.IN_PROGRESS,), AssignmentStatus.COMPLETED, fields, finish,
        )
        if resolved:
            INCIDENTS_RESOLVED.labels(source="assignments").inc()
            logger.info("Incident resolved id=%s via completed assignments", updated.incident_id,
                        extra={"incident_id": updated.incident_id, "assignment_id": updated.id})
        self._notify_coordinator(updated, ASSIGNMENT_COMPLETED, "Volunteer completed the assignment")
        return updated

    # ── Coordinator transitions ────────────────────────────────────────

    def cancel(self, assignment_id: str, auth: AuthorizationContext) -> Assignment:
        def mark_cancelled(conn: Connection, assignment: Assignment) -> None:
            self._incidents.set_volunteer_status(
                conn, assignment.incident_id, assignment.volunteer_id, VolunteerStatus.CANCELLED)

        updated = self._transition(
            assignment_id, auth, Capability.CANCEL_ASSIGNMENT, "cancel",
            CANCELLABLE_STATUSES, AssignmentStatus.CANCELLED,
            {"cancelled_at": utcnow()}, mark_cancelled,
        )
        self._notify.notify_user(updated.volunteer_id, ASSIGNMENT_CANCELLED, event_payload(
            "Your assignment was cancelled by a coordinator",
            assignment=updated.model_dump(mode="json"),
        ))
        return updated

    # ── Notes & reads ──────────────────────────────────────────────────

    def add_note(self, assignment_id: str, note: str, auth: AuthorizationContext) -> list[Note]:
        assignment = self._load(assignment_id)
        auth.require(Capability.ANNOTATE_ASSIGNMENT, owner_id=assignment.volunteer_id)
        if not note or not note.strip():
            raise InvalidInputError("Note cannot be empty")
        with self._assignments.begin_transaction() as conn:
            self._assignments.add_note(conn, assignment_id, note.strip(), auth.user_id)
        logger.info("Note added assignment=%s by=%s", assignment_id, auth.user_id)
        return self._assignments.get_assignment(assignment_id).notes

    def get_assignment(self, assignment_id: str, auth: AuthorizationContext) -> Assignment:
        assignment = self._load(assignment_id)
        auth.require(Capability.VIEW_ASSIGNMENT, owner_id=assignment.volunteer_id)
        return assignment

    # ── Private ────────────────────────────────────────────────────────

    def _load(self, assignment_id: str) -> Assignment:
        assignment = self._assignments.get_assignment(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    def _transition(
        self,
        assignment_id: str,
        auth: AuthorizationContext,
        capability: Capability,
        action: str,
        required: Iterable[AssignmentStatus],
        target: AssignmentStatus,
        fields: dict[str, Any],
        on_incident: Callable[[Connection, Assignment], None],
    ) -> Assignment:
        required = tuple(required)
        assignment = self._load(assignment_id)
        auth.require(capability, owner_id=assignment.volunteer_id)
        if assignment.status not in required:
            raise InvalidTransitionError("assignment", assignment.status, required, action)

        with self._locks.hold(assignment.incident_id):
            with self._assignments.begin_transaction() as conn:
                if not self._assignments.transition(conn, assignment_id, required, target, fields):
                    latest = self._assignments.get_assignment(assignment_id, conn)
                    raise InvalidTransitionError("assignment", latest.status, required, action)
                on_incident(conn, assignment)
                self._incidents.add_timeline_event(
                    conn, assignment.incident_id, f"assignment_{action}",
                    actor=auth.user_id,
                    detail={"assignment_id": assignment_id, "volunteer_id": assignment.volunteer_id,
                            "from": assignment.status.value, "to": target.value},
                )

        ASSIGNMENT_TRANSITIONS.labels(transition=action).inc()
        logger.info("Assignment %s id=%s incident=%s by=%s",
                    action, assignment_id, assignment.incident_id, auth.user_id,
                    extra={"assignment_id": assignment_id, "incident_id": assignment.incident_id,
                           "volunteer_id": assignment.volunteer_id, "user_id": auth.user_id})
        return self._assignments.get_assignment(assignment_id)

    def _notify_coordinator(self, assignment: Assignment, event: str, message: str) -> None:
        if not assignment.coordinator_id:
            return
        self._notify.notify_user(assignment.coordinator_id, event, event_payload(
            message, assignment=assignment.model_dump(mode="json"),
        ))


def _ensure_assignable(incident: Incident) -> None:
    if incident.status not in ASSIGNABLE_INCIDENT_STATUSES:
        raise InvalidTransitionError(
            "incident", incident.status, ASSIGNABLE_INCIDENT_STATUSES, "assign volunteers to")

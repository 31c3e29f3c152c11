# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Assignment state machine, uniqueness, incident side effects and notifications."""
import threading
from unittest.mock import MagicMock, patch

import pytest

from conftest import auth_for, make_user, make_volunteer, report
from relief_dispatch.core.errors import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)
from relief_dispatch.models.domain import (
    AssignmentStatus,
    IncidentStatus,
    Role,
    VolunteerStatus,
)
from relief_dispatch.services.notification_dispatcher import (
    ASSIGNMENT_ACCEPTED,
    ASSIGNMENT_CANCELLED,
    ASSIGNMENT_COMPLETED,
    ASSIGNMENT_REJECTED,
    ASSIGNMENT_REQUEST,
    ASSIGNMENT_STARTED,
)


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


@pytest.fixture
def pending(lifecycle, incident, volunteer, coordinator, dispatcher):
    assignment = lifecycle.create(incident.id, volunteer.id, auth_for(coordinator))
    dispatcher.reset_mock()
    return assignment


def sub_status(repos, incident_id, volunteer_id):
    return repos.incidents.get_volunteer_status(incident_id, volunteer_id)


def drive(lifecycle, assignment_id, volunteer, coordinator, status):
    """Move a fresh pending assignment into ``status``."""
    auth = auth_for(volunteer)
    if status == AssignmentStatus.PENDING:
        return
    if status == AssignmentStatus.REJECTED:
        lifecycle.reject(assignment_id, auth)
        return
    if status == AssignmentStatus.CANCELLED:
        lifecycle.cancel(assignment_id, auth_for(coordinator))
        return
    lifecycle.accept(assignment_id, auth)
    if status == AssignmentStatus.ACCEPTED:
        return
    lifecycle.start(assignment_id, auth)
    if status == AssignmentStatus.IN_PROGRESS:
        return
    lifecycle.complete(assignment_id, auth)


# ═══════════════════════════════════════════════════════════════════════════
# CREATE
# ═══════════════════════════════════════════════════════════════════════════
class TestCreate:
    def test_creates_pending_with_snapshot(self, lifecycle, repos, incident, volunteer, coordinator, dispatcher):
        dispatcher.reset_mock()
        a = lifecycle.create(incident.id, volunteer.id, auth_for(coordinator),
                             priority="high", estimated_duration=45)
        assert a.status == AssignmentStatus.PENDING
        assert a.coordinator_id == coordinator.id
        assert a.priority.value == "high"
        assert a.estimated_duration == 45
        assert 140 <= a.distance <= 160
        assert a.distance == round(a.distance)
        assert [(m.skill, m.level) for m in a.matched_skills] == [("rescue", "advanced")]
        assert sub_status(repos, incident.id, volunteer.id) == VolunteerStatus.PENDING
        dispatcher.notify_user.assert_called_once()
        user_id, event, payload = dispatcher.notify_user.call_args.args
        assert (user_id, event) == (volunteer.id, ASSIGNMENT_REQUEST)
        assert payload["assignment"]["id"] == a.id

    def test_duplicate_pair_is_conflict(self, lifecycle, pending, incident, volunteer, coordinator):
        with pytest.raises(ConflictError):
            lifecycle.create(incident.id, volunteer.id, auth_for(coordinator))

    def test_duplicate_after_rejection_is_still_conflict(self, lifecycle, pending, incident, volunteer, coordinator):
        lifecycle.reject(pending.id, auth_for(volunteer))
        with pytest.raises(ConflictError):
            lifecycle.create(incident.id, volunteer.id, auth_for(coordinator))

    def test_concurrent_duplicates_one_wins(self, lifecycle, repos, incident, volunteer, coordinator):
        barrier = threading.Barrier(2)
        results, errors = [], []

        def attempt():
            barrier.wait()
            try:
                results.append(lifecycle.create(incident.id, volunteer.id, auth_for(coordinator)))
            except ConflictError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=attempt) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert len(results) == 1
        assert len(errors) == 1
        inc = repos.incidents.get_incident(incident.id)
        assert [v.volunteer_id for v in inc.assigned_volunteers] == [volunteer.id]

    def test_unknown_incident(self, lifecycle, volunteer, coordinator):
        with pytest.raises(NotFoundError):
            lifecycle.create("missing", volunteer.id, auth_for(coordinator))

    def test_non_volunteer_is_not_found(self, lifecycle, incident, citizen, coordinator):
        with pytest.raises(NotFoundError):
            lifecycle.create(incident.id, citizen.id, auth_for(coordinator))

    def test_only_coordinator_may_create(self, lifecycle, incident, volunteer):
        with pytest.raises(UnauthorizedError):
            lifecycle.create(incident.id, volunteer.id, auth_for(volunteer))

    def test_existence_checked_before_authorization(self, lifecycle, volunteer):
        with pytest.raises(NotFoundError):
            lifecycle.create("missing", volunteer.id, auth_for(volunteer))

    def test_closed_incident_rejects_new_assignments(self, lifecycle, services, incident, volunteer, coordinator):
        services.incidents.update_status(incident.id, "closed", auth_for(coordinator))
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.create(incident.id, volunteer.id, auth_for(coordinator))
        assert exc_info.value.current == "closed"

    def test_unknown_priority(self, lifecycle, incident, volunteer, coordinator):
        with pytest.raises(InvalidInputError):
            lifecycle.create(incident.id, volunteer.id, auth_for(coordinator), priority="asap")


# ═══════════════════════════════════════════════════════════════════════════
# VOLUNTEER TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════
class TestAccept:
    def test_accept_promotes_incident(self, lifecycle, repos, pending, incident, volunteer, coordinator, dispatcher):
        a = lifecycle.accept(pending.id, auth_for(volunteer))
        assert a.status == AssignmentStatus.ACCEPTED
        assert a.accepted_at is not None
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.ASSIGNED
        assert sub_status(repos, incident.id, volunteer.id) == VolunteerStatus.ACCEPTED
        dispatcher.notify_user.assert_called_once()
        assert dispatcher.notify_user.call_args.args[:2] == (coordinator.id, ASSIGNMENT_ACCEPTED)

    def test_accept_keeps_later_incident_status(self, lifecycle, services, repos, pending, incident, volunteer, coordinator):
        services.incidents.update_status(incident.id, "in-progress", auth_for(coordinator))
        lifecycle.accept(pending.id, auth_for(volunteer))
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.IN_PROGRESS

    @pytest.mark.parametrize("status", [
        AssignmentStatus.ACCEPTED,
        AssignmentStatus.REJECTED,
        AssignmentStatus.IN_PROGRESS,
        AssignmentStatus.COMPLETED,
        AssignmentStatus.CANCELLED,
    ])
    def test_accept_from_non_pending_fails(self, lifecycle, pending, volunteer, coordinator, status):
        drive(lifecycle, pending.id, volunteer, coordinator, status)
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.accept(pending.id, auth_for(volunteer))
        assert exc_info.value.current == status.value
        assert exc_info.value.required == ["pending"]

    def test_other_volunteer_cannot_accept(self, lifecycle, repos, pending):
        other = make_volunteer(repos, "Otto", 10.0, 20.0)
        with pytest.raises(UnauthorizedError):
            lifecycle.accept(pending.id, auth_for(other))

    def test_coordinator_cannot_accept(self, lifecycle, pending, coordinator):
        with pytest.raises(UnauthorizedError):
            lifecycle.accept(pending.id, auth_for(coordinator))

    def test_unknown_assignment(self, lifecycle, volunteer):
        with pytest.raises(NotFoundError):
            lifecycle.accept("missing", auth_for(volunteer))


class TestReject:
    def test_reject(self, lifecycle, repos, pending, incident, volunteer, coordinator, dispatcher):
        a = lifecycle.reject(pending.id, auth_for(volunteer))
        assert a.status == AssignmentStatus.REJECTED
        assert a.rejected_at is not None
        assert sub_status(repos, incident.id, volunteer.id) == VolunteerStatus.REJECTED
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.REPORTED
        assert dispatcher.notify_user.call_args.args[:2] == (coordinator.id, ASSIGNMENT_REJECTED)

    def test_reject_twice_fails(self, lifecycle, pending, volunteer):
        lifecycle.reject(pending.id, auth_for(volunteer))
        with pytest.raises(InvalidTransitionError):
            lifecycle.reject(pending.id, auth_for(volunteer))


class TestStart:
    def test_start_moves_incident_in_progress(self, lifecycle, repos, pending, incident, volunteer, coordinator, dispatcher):
        lifecycle.accept(pending.id, auth_for(volunteer))
        dispatcher.reset_mock()
        a = lifecycle.start(pending.id, auth_for(volunteer))
        assert a.status == AssignmentStatus.IN_PROGRESS
        assert a.started_at is not None
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.IN_PROGRESS
        dispatcher.notify_user.assert_called_once()
        assert dispatcher.notify_user.call_args.args[:2] == (coordinator.id, ASSIGNMENT_STARTED)

    def test_start_requires_accepted(self, lifecycle, pending, volunteer):
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.start(pending.id, auth_for(volunteer))
        assert exc_info.value.required == ["accepted"]


class TestComplete:
    def test_complete_records_feedback_and_resolves(self, lifecycle, repos, pending, incident, volunteer, coordinator, dispatcher):
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.IN_PROGRESS)
        dispatcher.reset_mock()
        a = lifecycle.complete(pending.id, auth_for(volunteer), rating=5, feedback="Smooth", actual_duration=30)
        assert a.status == AssignmentStatus.COMPLETED
        assert (a.rating, a.feedback, a.actual_duration) == (5, "Smooth", 30)
        inc = repos.incidents.get_incident(incident.id)
        assert inc.status == IncidentStatus.RESOLVED
        assert inc.resolved_at is not None
        assert sub_status(repos, incident.id, volunteer.id) == VolunteerStatus.COMPLETED
        dispatcher.notify_user.assert_called_once()
        assert dispatcher.notify_user.call_args.args[:2] == (coordinator.id, ASSIGNMENT_COMPLETED)

    def test_open_assignment_blocks_resolution(self, lifecycle, repos, pending, incident, volunteer, coordinator):
        other = make_volunteer(repos, "Second", 10.0, 20.0)
        lifecycle.create(incident.id, other.id, auth_for(coordinator))
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.COMPLETED)
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.IN_PROGRESS

    def test_cancelled_siblings_do_not_block_resolution(self, lifecycle, repos, pending, incident, volunteer, coordinator):
        other = make_volunteer(repos, "Second", 10.0, 20.0)
        sibling = lifecycle.create(incident.id, other.id, auth_for(coordinator))
        lifecycle.cancel(sibling.id, auth_for(coordinator))
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.COMPLETED)
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.RESOLVED

    def test_resolution_happens_exactly_once(self, lifecycle, services, repos, incident, coordinator):
        vols = [make_volunteer(repos, f"Crew {i}", 10.0, 20.0) for i in range(2)]
        ids = []
        for v in vols:
            a = lifecycle.create(incident.id, v.id, auth_for(coordinator))
            drive(lifecycle, a.id, v, coordinator, AssignmentStatus.IN_PROGRESS)
            ids.append(a.id)

        barrier = threading.Barrier(2)

        def finish(assignment_id, vol):
            barrier.wait()
            lifecycle.complete(assignment_id, auth_for(vol))

        threads = [threading.Thread(target=finish, args=(aid, v)) for aid, v in zip(ids, vols)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.RESOLVED
        resolved = [e for e in services.incidents.get_timeline(incident.id) if e.event_type == "resolved"]
        assert len(resolved) == 1

    def test_incident_row_locked_before_siblings_are_read(self, lifecycle, repos, pending, incident, volunteer, coordinator):
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.IN_PROGRESS)
        calls = []
        lock_row = repos.incidents.lock_row
        statuses = repos.assignments.statuses_for_incident

        def locking(conn, incident_id):
            calls.append(("lock", incident_id))
            return lock_row(conn, incident_id)

        def reading(conn, incident_id):
            calls.append(("read", incident_id))
            return statuses(conn, incident_id)

        with patch.object(repos.incidents, "lock_row", side_effect=locking), \
                patch.object(repos.assignments, "statuses_for_incident", side_effect=reading):
            lifecycle.complete(pending.id, auth_for(volunteer))

        assert calls == [("lock", incident.id), ("read", incident.id)]
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.RESOLVED

    def test_already_resolved_incident_is_not_resolved_again(self, lifecycle, services, repos, pending, incident, volunteer, coordinator):
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.IN_PROGRESS)
        services.incidents.update_status(incident.id, "resolved", auth_for(coordinator))
        first_resolved_at = repos.incidents.get_incident(incident.id).resolved_at
        lifecycle.complete(pending.id, auth_for(volunteer))
        inc = repos.incidents.get_incident(incident.id)
        assert inc.status == IncidentStatus.RESOLVED
        assert inc.resolved_at == first_resolved_at
        assert not [e for e in services.incidents.get_timeline(incident.id) if e.event_type == "resolved"]

    def test_closed_incident_stays_closed(self, lifecycle, services, repos, pending, incident, volunteer, coordinator):
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.IN_PROGRESS)
        services.incidents.update_status(incident.id, "closed", auth_for(coordinator))
        lifecycle.complete(pending.id, auth_for(volunteer))
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.CLOSED

    def test_rating_out_of_range(self, lifecycle, pending, volunteer, coordinator):
        drive(lifecycle, pending.id, volunteer, coordinator, AssignmentStatus.IN_PROGRESS)
        with pytest.raises(InvalidInputError):
            lifecycle.complete(pending.id, auth_for(volunteer), rating=6)

    def test_complete_requires_in_progress(self, lifecycle, pending, volunteer):
        with pytest.raises(InvalidTransitionError):
            lifecycle.complete(pending.id, auth_for(volunteer))


# ═══════════════════════════════════════════════════════════════════════════
# CANCEL
# ═══════════════════════════════════════════════════════════════════════════
class TestCancel:
    @pytest.mark.parametrize("status", [
        AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED, AssignmentStatus.IN_PROGRESS,
    ])
    def test_cancel_from_active(self, lifecycle, repos, pending, incident, volunteer, coordinator, dispatcher, status):
        drive(lifecycle, pending.id, volunteer, coordinator, status)
        dispatcher.reset_mock()
        a = lifecycle.cancel(pending.id, auth_for(coordinator))
        assert a.status == AssignmentStatus.CANCELLED
        assert a.cancelled_at is not None
        assert sub_status(repos, incident.id, volunteer.id) == VolunteerStatus.CANCELLED
        dispatcher.notify_user.assert_called_once()
        assert dispatcher.notify_user.call_args.args[:2] == (volunteer.id, ASSIGNMENT_CANCELLED)

    @pytest.mark.parametrize("status", [
        AssignmentStatus.REJECTED, AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED,
    ])
    def test_cancel_from_terminal_fails(self, lifecycle, pending, volunteer, coordinator, status):
        drive(lifecycle, pending.id, volunteer, coordinator, status)
        with pytest.raises(InvalidTransitionError):
            lifecycle.cancel(pending.id, auth_for(coordinator))

    def test_cancel_does_not_resolve_incident(self, lifecycle, repos, pending, incident, coordinator):
        lifecycle.cancel(pending.id, auth_for(coordinator))
        assert repos.incidents.get_incident(incident.id).status == IncidentStatus.REPORTED

    def test_volunteer_cannot_cancel(self, lifecycle, pending, volunteer):
        with pytest.raises(UnauthorizedError):
            lifecycle.cancel(pending.id, auth_for(volunteer))


# ═══════════════════════════════════════════════════════════════════════════
# NOTIFICATIONS, NOTES, READS
# ═══════════════════════════════════════════════════════════════════════════
class TestNotifications:
    def test_failing_dispatcher_does_not_roll_back(self, lifecycle, repos, pending, volunteer, dispatcher):
        dispatcher.notify_user.side_effect = RuntimeError("socket closed")
        a = lifecycle.accept(pending.id, auth_for(volunteer))
        assert a.status == AssignmentStatus.ACCEPTED
        assert repos.assignments.get_assignment(pending.id).status == AssignmentStatus.ACCEPTED

    def test_no_coordinator_no_notification(self, lifecycle, repos, pending, volunteer, dispatcher, engine):
        from sqlalchemy import text
        with engine.begin() as conn:
            conn.execute(text("UPDATE assignments SET coordinator_id = NULL WHERE id = :id"), {"id": pending.id})
        lifecycle.accept(pending.id, auth_for(volunteer))
        dispatcher.notify_user.assert_not_called()


class TestNotesAndReads:
    def test_volunteer_and_coordinator_can_annotate(self, lifecycle, pending, volunteer, coordinator):
        lifecycle.add_note(pending.id, "On my way", auth_for(volunteer))
        notes = lifecycle.add_note(pending.id, "Thanks", auth_for(coordinator))
        assert [(n.note, n.added_by) for n in notes] == [
            ("On my way", volunteer.id), ("Thanks", coordinator.id),
        ]

    def test_stranger_cannot_annotate_or_view(self, lifecycle, repos, pending):
        stranger = make_user(repos, "Stranger", Role.VOLUNTEER)
        with pytest.raises(UnauthorizedError):
            lifecycle.add_note(pending.id, "hi", auth_for(stranger))
        with pytest.raises(UnauthorizedError):
            lifecycle.get_assignment(pending.id, auth_for(stranger))

    def test_empty_note_rejected(self, lifecycle, pending, coordinator):
        with pytest.raises(InvalidInputError):
            lifecycle.add_note(pending.id, "   ", auth_for(coordinator))

    def test_get_assignment(self, lifecycle, pending, volunteer):
        assert lifecycle.get_assignment(pending.id, auth_for(volunteer)).id == pending.id


class TestIncidentRowLock:
    def test_server_databases_use_select_for_update(self, repos, incident):
        conn = MagicMock()
        conn.dialect.name = "postgresql"
        repos.incidents.lock_row(conn, incident.id)
        statement, params = conn.execute.call_args.args
        assert "FOR UPDATE" in str(statement)
        assert params == {"id": incident.id}

    def test_sqlite_takes_the_write_lock_without_changing_the_row(self, repos, engine, incident):
        before = repos.incidents.get_incident(incident.id)
        with engine.begin() as conn:
            repos.incidents.lock_row(conn, incident.id)
        after = repos.incidents.get_incident(incident.id)
        assert (after.status, after.updated_at) == (before.status, before.updated_at)

# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Escalation policy and its persistence through IncidentService."""
from datetime import datetime, timezone

import pytest

from conftest import auth_for, make_user, report
from relief_dispatch.core.errors import NotFoundError, UnauthorizedError
from relief_dispatch.models.domain import Incident, Role, Severity
from relief_dispatch.services import escalation_policy
from relief_dispatch.services.notification_dispatcher import INCIDENT_ESCALATED


def incident(level=0, severity=Severity.MEDIUM, urgency=5):
    now = datetime.now(timezone.utc)
    return Incident(
        id="inc-1", title="t", reported_by="u", severity=severity,
        escalation_level=level, urgency_level=urgency, created_at=now, updated_at=now,
    )


# ═══════════════════════════════════════════════════════════════════════════
# PURE POLICY
# ═══════════════════════════════════════════════════════════════════════════
class TestPolicy:
    def test_five_escalations_from_medium(self):
        inc = incident()
        history = []
        for _ in range(5):
            inc = escalation_policy.escalate(inc)
            history.append((inc.escalation_level, inc.severity, inc.urgency_level))
        assert history == [
            (1, Severity.MEDIUM, 7),
            (2, Severity.HIGH, 9),
            (3, Severity.CRITICAL, 10),
            (4, Severity.CRITICAL, 10),
            (5, Severity.CRITICAL, 10),
        ]

    def test_sixth_escalation_is_noop(self):
        inc = incident(level=5, severity=Severity.CRITICAL, urgency=10)
        assert escalation_policy.escalate(inc) == inc

    def test_low_severity_is_never_promoted(self):
        inc = incident(severity=Severity.LOW)
        for _ in range(5):
            inc = escalation_policy.escalate(inc)
        assert inc.severity == Severity.LOW
        assert inc.escalation_level == 5

    def test_one_severity_step_per_call(self):
        # medium at level 2 becomes high, not critical, even though level >= 3 next
        inc = escalation_policy.escalate(incident(level=2))
        assert inc.escalation_level == 3
        assert inc.severity == Severity.HIGH

    def test_input_is_not_mutated(self):
        original = incident()
        escalation_policy.escalate(original)
        assert original.escalation_level == 0
        assert original.urgency_level == 5


# ═══════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════
class TestEscalateIncident:
    def test_persists_and_broadcasts_to_coordinators(self, services, citizen, coordinator, dispatcher):
        inc = report(services, citizen)
        dispatcher.reset_mock()
        updated = services.incidents.escalate_incident(inc.id, auth_for(coordinator))
        assert updated.escalation_level == 1
        assert updated.urgency_level == 7
        assert services.incidents.get_incident(inc.id).escalation_level == 1
        dispatcher.notify_role.assert_called_once()
        role, event, payload = dispatcher.notify_role.call_args.args
        assert (role, event) == ("coordinator", INCIDENT_ESCALATED)
        assert payload["incident"]["escalation_level"] == 1

    def test_at_max_level_no_broadcast(self, services, citizen, coordinator, dispatcher):
        inc = report(services, citizen)
        for _ in range(5):
            services.incidents.escalate_incident(inc.id, auth_for(coordinator))
        dispatcher.reset_mock()
        final = services.incidents.escalate_incident(inc.id, auth_for(coordinator))
        assert (final.escalation_level, final.severity, final.urgency_level) == (5, Severity.CRITICAL, 10)
        dispatcher.notify_role.assert_not_called()

    def test_records_timeline_event(self, services, citizen, coordinator):
        inc = report(services, citizen)
        services.incidents.escalate_incident(inc.id, auth_for(coordinator))
        events = [e.event_type for e in services.incidents.get_timeline(inc.id)]
        assert "escalated" in events

    def test_volunteer_cannot_escalate(self, services, repos, citizen):
        inc = report(services, citizen)
        vol = make_user(repos, "Val", Role.VOLUNTEER, 10.0, 20.0)
        with pytest.raises(UnauthorizedError):
            services.incidents.escalate_incident(inc.id, auth_for(vol))

    def test_unknown_incident(self, services, coordinator):
        with pytest.raises(NotFoundError):
            services.incidents.escalate_incident("missing", auth_for(coordinator))

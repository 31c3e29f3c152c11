# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Escalation policy — pure computation, no side effects.

Each escalation raises the level by one and urgency by two (capped at 10).
Severity climbs at most one step per call: medium becomes high once the
level reaches 2, high becomes critical once it reaches 3. Low severity is
never promoted and nothing is ever demoted.
"""

from relief_dispatch.models.domain import Incident, Severity

MAX_ESCALATION_LEVEL = 5
MAX_URGENCY = 10
URGENCY_STEP = 2

# severity -> (minimum escalation level, promoted severity)
_PROMOTIONS: dict[Severity, tuple[int, Severity]] = {
    Severity.MEDIUM: (2, Severity.HIGH),
    Severity.HIGH: (3, Severity.CRITICAL),
}


def can_escalate(incident: Incident) -> bool:
    return incident.escalation_level < MAX_ESCALATION_LEVEL


def escalate(incident: Incident) -> Incident:
    """Return the escalated copy of ``incident``; unchanged at the maximum level."""
    if not can_escalate(incident):
        return incident

    level = incident.escalation_level + 1
    severity = incident.severity
    promotion = _PROMOTIONS.get(severity)
    if promotion is not None and level >= promotion[0]:
        severity = promotion[1]

    return incident.model_copy(update={
        "escalation_level": level,
        "urgency_level": min(incident.urgency_level + URGENCY_STEP, MAX_URGENCY),
        "severity": severity,
    })

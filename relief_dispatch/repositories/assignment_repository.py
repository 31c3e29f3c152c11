# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for assignments and their notes."""
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from relief_dispatch.core.errors import ConflictError
from relief_dispatch.core.logging import get_logger
from relief_dispatch.metrics.prometheus import ASSIGNMENT_CONFLICTS
from relief_dispatch.models.domain import (
    Assignment,
    AssignmentStatus,
    MatchedSkill,
    Note,
)
from relief_dispatch.repositories.base import (
    BaseRepository,
    from_iso,
    from_json,
    to_iso,
    to_json,
    utcnow,
)

logger = get_logger(__name__)

ASSIGNMENT_COLS = (
    "id, incident_id, volunteer_id, coordinator_id, status, priority, distance, "
    "matched_skills, estimated_duration, actual_duration, rating, feedback, "
    "requested_at, accepted_at, rejected_at, started_at, completed_at, "
    "cancelled_at, created_at, updated_at"
)

# Columns a transition may stamp alongside the status change
TRANSITION_COLS = frozenset({
    "accepted_at", "rejected_at", "started_at", "completed_at", "cancelled_at",
    "actual_duration", "rating", "feedback",
})


def _row_to_assignment(row, notes: List[Note]) -> Assignment:
    return Assignment(
        id=row["id"],
        incident_id=row["incident_id"],
        volunteer_id=row["volunteer_id"],
        coordinator_id=row["coordinator_id"],
        status=row["status"],
        priority=row["priority"],
        distance=row["distance"],
        matched_skills=[MatchedSkill(**s) for s in from_json(row["matched_skills"], [])],
        estimated_duration=row["estimated_duration"],
        actual_duration=row["actual_duration"],
        rating=row["rating"],
        feedback=row["feedback"],
        requested_at=from_iso(row["requested_at"]),
        accepted_at=from_iso(row["accepted_at"]),
        rejected_at=from_iso(row["rejected_at"]),
        started_at=from_iso(row["started_at"]),
        completed_at=from_iso(row["completed_at"]),
        cancelled_at=from_iso(row["cancelled_at"]),
        notes=notes,
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


class AssignmentRepository(BaseRepository):

    # ── Write ──────────────────────────────────────────────────────────

    def insert(self, conn: Connection, assignment: Assignment) -> None:
        """
        Insert a new assignment. The (incident_id, volunteer_id) UNIQUE
        constraint decides duplicates; a violation becomes ConflictError.
        """
        try:
            conn.execute(
                text(f"""
                    INSERT INTO assignments ({ASSIGNMENT_COLS})
                    VALUES (:id, :incident_id, :volunteer_id, :coordinator_id,
                            :status, :priority, :distance, :matched_skills,
                            :estimated_duration, NULL, NULL, NULL,
                            :requested_at, NULL, NULL, NULL, NULL, NULL,
                            :created_at, :updated_at)
                """),
                {
                    "id": assignment.id,
                    "incident_id": assignment.incident_id,
                    "volunteer_id": assignment.volunteer_id,
                    "coordinator_id": assignment.coordinator_id,
                    "status": assignment.status.value,
                    "priority": assignment.priority.value,
                    "distance": assignment.distance,
                    "matched_skills": to_json([s.model_dump() for s in assignment.matched_skills]),
                    "estimated_duration": assignment.estimated_duration,
                    "requested_at": to_iso(assignment.requested_at),
                    "created_at": to_iso(assignment.created_at),
                    "updated_at": to_iso(assignment.updated_at),
                },
            )
        except IntegrityError:
            ASSIGNMENT_CONFLICTS.inc()
            logger.info("Duplicate assignment rejected incident=%s volunteer=%s",
                        assignment.incident_id, assignment.volunteer_id)
            raise ConflictError(
                "Volunteer is already assigned to this incident",
                incident_id=assignment.incident_id,
                volunteer_id=assignment.volunteer_id,
            )

    def transition(
        self,
        conn: Connection,
        assignment_id: str,
        from_statuses: Iterable[AssignmentStatus],
        to_status: AssignmentStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Compare-and-set on status. Returns True when this call changed the row."""
        fields = fields or {}
        unknown = set(fields) - TRANSITION_COLS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")

        params: Dict[str, Any] = {
            k: to_iso(v) if isinstance(v, datetime) else v for k, v in fields.items()
        }
        placeholders = []
        for i, status in enumerate(from_statuses):
            params[f"from_{i}"] = status.value
            placeholders.append(f":from_{i}")
        params.update({
            "id": assignment_id,
            "to_status": to_status.value,
            "updated_at": to_iso(utcnow()),
        })
        sets = ["status = :to_status", "updated_at = :updated_at"] + [f"{col} = :{col}" for col in fields]
        result = conn.execute(
            text(f"""
                UPDATE assignments SET {', '.join(sets)}
                WHERE id = :id AND status IN ({', '.join(placeholders)})
            """),
            params,
        )
        return result.rowcount == 1

    def add_note(self, conn: Connection, assignment_id: str, note: str, added_by: str) -> Note:
        entry = Note(id=str(uuid.uuid4()), note=note, added_by=added_by, added_at=utcnow())
        conn.execute(
            text("""
                INSERT INTO assignment_notes (id, assignment_id, note, added_by, added_at)
                VALUES (:id, :aid, :note, :by, :at)
            """),
            {"id": entry.id, "aid": assignment_id, "note": note,
             "by": added_by, "at": to_iso(entry.added_at)},
        )
        conn.execute(
            text("UPDATE assignments SET updated_at = :at WHERE id = :id"),
            {"at": to_iso(entry.added_at), "id": assignment_id},
        )
        return entry

    # ── Read ───────────────────────────────────────────────────────────

    def get_assignment(self, assignment_id: str, conn: Optional[Connection] = None) -> Optional[Assignment]:
        with self._connection(conn) as c:
            row = c.execute(
                text(f"SELECT {ASSIGNMENT_COLS} FROM assignments WHERE id = :id"),
                {"id": assignment_id},
            ).mappings().first()
            if not row:
                return None
            notes = [
                Note(id=n["id"], note=n["note"], added_by=n["added_by"],
                     added_at=from_iso(n["added_at"]))
                for n in c.execute(
                    text("""
                        SELECT id, note, added_by, added_at FROM assignment_notes
                        WHERE assignment_id = :aid ORDER BY added_at, id
                    """),
                    {"aid": assignment_id},
                ).mappings()
            ]
        return _row_to_assignment(row, notes)

    def statuses_for_incident(self, conn: Connection, incident_id: str) -> List[AssignmentStatus]:
        rows = conn.execute(
            text("SELECT status FROM assignments WHERE incident_id = :iid"),
            {"iid": incident_id},
        ).all()
        return [AssignmentStatus(r[0]) for r in rows]

# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Data-access layer for incidents, volunteer sub-statuses, notes, and timeline."""
import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

from relief_dispatch.core.logging import get_logger
from relief_dispatch.models.domain import (
    AssignedVolunteer,
    Coordinate,
    Incident,
    IncidentStatus,
    Note,
    SkillRequirement,
    TimelineEvent,
    VolunteerStatus,
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

INCIDENT_COLS = (
    "id, title, description, type, severity, status, longitude, latitude, "
    "address, area, reported_by, verified_by, verified_at, required_skills, "
    "people_affected, urgency_level, escalation_level, resolved_at, closed_at, "
    "created_at, updated_at"
)

# Columns callers may change through update_fields
UPDATABLE_COLS = frozenset({
    "status", "severity", "urgency_level", "escalation_level",
    "verified_by", "verified_at", "resolved_at", "closed_at",
})


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    return getattr(value, "value", value)


def _row_to_incident(row, volunteers: List[AssignedVolunteer], notes: List[Note]) -> Incident:
    location = None
    if row["longitude"] is not None and row["latitude"] is not None:
        location = Coordinate(longitude=row["longitude"], latitude=row["latitude"])
    return Incident(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        type=row["type"],
        severity=row["severity"],
        status=row["status"],
        location=location,
        address=row["address"],
        area=row["area"],
        reported_by=row["reported_by"],
        verified_by=row["verified_by"],
        verified_at=from_iso(row["verified_at"]),
        required_skills=[SkillRequirement(**s) for s in from_json(row["required_skills"], [])],
        people_affected=row["people_affected"] or 0,
        urgency_level=row["urgency_level"],
        escalation_level=row["escalation_level"],
        assigned_volunteers=volunteers,
        notes=notes,
        resolved_at=from_iso(row["resolved_at"]),
        closed_at=from_iso(row["closed_at"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
    )


class IncidentRepository(BaseRepository):

    # ── Write ──────────────────────────────────────────────────────────

    def create_incident(self, conn: Connection, incident: Incident) -> None:
        conn.execute(
            text(f"""
                INSERT INTO incidents ({INCIDENT_COLS})
                VALUES (:id, :title, :description, :type, :severity, :status,
                        :lng, :lat, :address, :area, :reported_by, NULL, NULL,
                        :required_skills, :people_affected, :urgency_level,
                        :escalation_level, NULL, NULL, :created_at, :updated_at)
            """),
            {
                "id": incident.id,
                "title": incident.title,
                "description": incident.description,
                "type": incident.type.value,
                "severity": incident.severity.value,
                "status": incident.status.value,
                "lng": incident.location.longitude if incident.location else None,
                "lat": incident.location.latitude if incident.location else None,
                "address": incident.address,
                "area": incident.area,
                "reported_by": incident.reported_by,
                "required_skills": to_json([s.model_dump() for s in incident.required_skills]),
                "people_affected": incident.people_affected,
                "urgency_level": incident.urgency_level,
                "escalation_level": incident.escalation_level,
                "created_at": to_iso(incident.created_at),
                "updated_at": to_iso(incident.updated_at),
            },
        )
        self.add_timeline_event(conn, incident.id, "created", actor=incident.reported_by, detail={
            "title": incident.title,
            "type": incident.type.value,
            "severity": incident.severity.value,
        })

    def update_fields(self, conn: Connection, incident_id: str, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_COLS
        if unknown:
            raise ValueError(f"Columns not updatable: {sorted(unknown)}")
        params: Dict[str, Any] = {k: _db_value(v) for k, v in fields.items()}
        params["id"] = incident_id
        params["updated_at"] = to_iso(utcnow())
        assignments = [f"{col} = :{col}" for col in fields] + ["updated_at = :updated_at"]
        conn.execute(
            text(f"UPDATE incidents SET {', '.join(assignments)} WHERE id = :id"),
            params,
        )

    def lock_row(self, conn: Connection, incident_id: str) -> None:
        """
        Hold the incident row until ``conn`` commits so sibling writers in
        other processes wait and then read committed state.
        """
        if conn.dialect.name == "sqlite":
            # SQLite has no row locks; any write takes the database write lock
            conn.execute(text("UPDATE incidents SET id = id WHERE id = :id"), {"id": incident_id})
            return
        conn.execute(text("SELECT id FROM incidents WHERE id = :id FOR UPDATE"), {"id": incident_id})

    def change_status_if(
        self,
        conn: Connection,
        incident_id: str,
        from_statuses,
        to_status: IncidentStatus,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Compare-and-set on status. Returns True when this call changed the row."""
        extra = extra or {}
        params: Dict[str, Any] = {k: _db_value(v) for k, v in extra.items()}
        sets = [f"{col} = :{col}" for col in extra]
        placeholders = []
        for i, status in enumerate(from_statuses):
            params[f"from_{i}"] = _db_value(status)
            placeholders.append(f":from_{i}")
        params.update({
            "id": incident_id,
            "to_status": to_status.value,
            "updated_at": to_iso(utcnow()),
        })
        result = conn.execute(
            text(f"""
                UPDATE incidents
                SET {', '.join(['status = :to_status', 'updated_at = :updated_at'] + sets)}
                WHERE id = :id AND status IN ({', '.join(placeholders)})
            """),
            params,
        )
        return result.rowcount == 1

    def add_volunteer(self, conn: Connection, incident_id: str, volunteer_id: str,
                      assigned_at: datetime) -> None:
        conn.execute(
            text("""
                INSERT INTO incident_volunteers (incident_id, volunteer_id, status, assigned_at, updated_at)
                VALUES (:iid, :vid, :status, :at, :at)
            """),
            {"iid": incident_id, "vid": volunteer_id,
             "status": VolunteerStatus.PENDING.value, "at": to_iso(assigned_at)},
        )

    def set_volunteer_status(self, conn: Connection, incident_id: str, volunteer_id: str,
                             status: VolunteerStatus) -> None:
        conn.execute(
            text("""
                UPDATE incident_volunteers SET status = :status, updated_at = :at
                WHERE incident_id = :iid AND volunteer_id = :vid
            """),
            {"status": status.value, "at": to_iso(utcnow()),
             "iid": incident_id, "vid": volunteer_id},
        )

    def add_note(self, conn: Connection, incident_id: str, note: str, added_by: str) -> Note:
        entry = Note(id=str(uuid.uuid4()), note=note, added_by=added_by, added_at=utcnow())
        conn.execute(
            text("""
                INSERT INTO incident_notes (id, incident_id, note, added_by, added_at)
                VALUES (:id, :iid, :note, :by, :at)
            """),
            {"id": entry.id, "iid": incident_id, "note": note,
             "by": added_by, "at": to_iso(entry.added_at)},
        )
        self.add_timeline_event(conn, incident_id, "note_added", actor=added_by,
                                detail={"note_id": entry.id, "preview": note[:100]})
        return entry

    def add_timeline_event(self, conn: Connection, incident_id: str, event_type: str,
                           actor: str = "system", detail: Optional[Dict] = None) -> None:
        conn.execute(
            text("""
                INSERT INTO incident_timeline (id, incident_id, seq, event_type, actor, detail, created_at)
                SELECT :id, :iid, COALESCE(MAX(seq), 0) + 1, :etype, :actor, :detail, :at
                FROM incident_timeline WHERE incident_id = :iid
            """),
            {"id": str(uuid.uuid4()), "iid": incident_id, "etype": event_type,
             "actor": actor, "detail": json.dumps(detail or {}), "at": to_iso(utcnow())},
        )

    # ── Read ───────────────────────────────────────────────────────────

    def get_incident(self, incident_id: str, conn: Optional[Connection] = None) -> Optional[Incident]:
        with self._connection(conn) as c:
            row = c.execute(
                text(f"SELECT {INCIDENT_COLS} FROM incidents WHERE id = :id"),
                {"id": incident_id},
            ).mappings().first()
            if not row:
                return None
            volunteers = [
                AssignedVolunteer(
                    volunteer_id=v["volunteer_id"],
                    status=v["status"],
                    assigned_at=from_iso(v["assigned_at"]),
                )
                for v in c.execute(
                    text("""
                        SELECT volunteer_id, status, assigned_at FROM incident_volunteers
                        WHERE incident_id = :iid ORDER BY assigned_at, volunteer_id
                    """),
                    {"iid": incident_id},
                ).mappings()
            ]
            notes = [
                Note(id=n["id"], note=n["note"], added_by=n["added_by"],
                     added_at=from_iso(n["added_at"]))
                for n in c.execute(
                    text("""
                        SELECT id, note, added_by, added_at FROM incident_notes
                        WHERE incident_id = :iid ORDER BY added_at, id
                    """),
                    {"iid": incident_id},
                ).mappings()
            ]
        return _row_to_incident(row, volunteers, notes)

    def get_volunteer_status(self, incident_id: str, volunteer_id: str) -> Optional[VolunteerStatus]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("""
                    SELECT status FROM incident_volunteers
                    WHERE incident_id = :iid AND volunteer_id = :vid
                """),
                {"iid": incident_id, "vid": volunteer_id},
            ).first()
        return VolunteerStatus(row[0]) if row else None

    def get_timeline(self, incident_id: str) -> List[TimelineEvent]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text("""
                    SELECT id, incident_id, event_type, actor, detail, created_at
                    FROM incident_timeline WHERE incident_id = :iid ORDER BY seq
                """),
                {"iid": incident_id},
            ).mappings().all()
        return [
            TimelineEvent(
                id=r["id"], incident_id=r["incident_id"], event_type=r["event_type"],
                actor=r["actor"], detail=from_json(r["detail"], {}),
                created_at=from_iso(r["created_at"]),
            )
            for r in rows
        ]

    def exists(self, incident_id: str) -> bool:
        with self._engine.connect() as conn:
            return conn.execute(
                text("SELECT 1 FROM incidents WHERE id = :id"), {"id": incident_id}
            ).first() is not None

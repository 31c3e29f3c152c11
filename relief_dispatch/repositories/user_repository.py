# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: Users and their skills — pure CRUD, no business rules.
"""

import uuid
from typing import Any, Iterable, Optional

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from relief_dispatch.core.errors import ConflictError
from relief_dispatch.core.logging import get_logger
from relief_dispatch.models.domain import Coordinate, Role, User, VolunteerSkill
from relief_dispatch.repositories.base import BaseRepository, from_iso, to_iso, utcnow

logger = get_logger(__name__)

USER_COLS = "id, name, email, phone, role, is_active, longitude, latitude, address"
SKILL_COLS = (
    "id, user_id, skill, level, verified, verified_by, verified_at, certification"
)


def _row_to_skill(row) -> VolunteerSkill:
    return VolunteerSkill(
        id=row["id"],
        skill=row["skill"],
        level=row["level"],
        verified=bool(row["verified"]),
        verified_by=row["verified_by"],
        verified_at=from_iso(row["verified_at"]),
        certification=row["certification"],
    )


def _row_to_user(row, skills: list[VolunteerSkill]) -> User:
    location = None
    if row["longitude"] is not None and row["latitude"] is not None:
        location = Coordinate(longitude=row["longitude"], latitude=row["latitude"])
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        phone=row["phone"],
        role=Role(row["role"]),
        is_active=bool(row["is_active"]),
        location=location,
        address=row["address"],
        skills=skills,
    )


class UserRepository(BaseRepository):
    """Handles all direct database operations for users and skills."""

    # ── Write ──────────────────────────────────────────────────────────

    def create_user(
        self,
        name: str,
        email: str,
        role: Role | str = Role.CITIZEN,
        phone: Optional[str] = None,
        location: Optional[Coordinate] = None,
        address: Optional[str] = None,
        is_active: bool = True,
        user_id: Optional[str] = None,
    ) -> User:
        user_id = user_id or str(uuid.uuid4())
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text(f"""
                        INSERT INTO users ({USER_COLS}, created_at)
                        VALUES (:id, :name, :email, :phone, :role, :is_active,
                                :lng, :lat, :address, :created_at)
                    """),
                    {
                        "id": user_id, "name": name, "email": email.lower(),
                        "phone": phone, "role": Role(role).value, "is_active": is_active,
                        "lng": location.longitude if location else None,
                        "lat": location.latitude if location else None,
                        "address": address, "created_at": to_iso(utcnow()),
                    },
                )
        except IntegrityError:
            raise ConflictError(f"User with email '{email}' already exists", email=email)
        return self.get_user(user_id)

    def add_skill(
        self,
        user_id: str,
        skill: str,
        level: str,
        certification: Optional[str] = None,
    ) -> VolunteerSkill:
        """Insert an unverified skill; duplicate names per user are a conflict."""
        skill_id = str(uuid.uuid4())
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    text("""
                        INSERT INTO volunteer_skills
                            (id, user_id, skill, skill_key, level, verified,
                             verified_by, verified_at, certification, created_at)
                        VALUES
                            (:id, :uid, :skill, :key, :level, :verified,
                             NULL, NULL, :cert, :created_at)
                    """),
                    {
                        "id": skill_id, "uid": user_id, "skill": skill.strip(),
                        "key": skill.strip().lower(), "level": level,
                        "verified": False, "cert": certification,
                        "created_at": to_iso(utcnow()),
                    },
                )
        except IntegrityError:
            raise ConflictError(
                f"Skill '{skill}' already exists for this user",
                user_id=user_id,
                skill=skill,
            )
        return self.get_skill(user_id, skill_id)

    def mark_skill_verified(self, user_id: str, skill_id: str, verified_by: str) -> Optional[VolunteerSkill]:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("""
                    UPDATE volunteer_skills
                    SET verified = :verified, verified_by = :by, verified_at = :at
                    WHERE id = :id AND user_id = :uid
                """),
                {"verified": True, "by": verified_by, "at": to_iso(utcnow()),
                 "id": skill_id, "uid": user_id},
            )
            if result.rowcount == 0:
                return None
        return self.get_skill(user_id, skill_id)

    def update_skill(
        self,
        user_id: str,
        skill_id: str,
        skill: Optional[str] = None,
        level: Optional[str] = None,
        certification: Optional[str] = None,
        clear_verification: bool = False,
    ) -> Optional[VolunteerSkill]:
        """Apply the given changes; None for a skill the user does not own."""
        sets: list[str] = []
        params: dict[str, Any] = {"id": skill_id, "uid": user_id}
        if skill is not None:
            sets += ["skill = :skill", "skill_key = :key"]
            params["skill"] = skill.strip()
            params["key"] = skill.strip().lower()
        if level is not None:
            sets.append("level = :level")
            params["level"] = level
        if certification is not None:
            sets.append("certification = :cert")
            params["cert"] = certification
        if clear_verification:
            sets.append("verified = :verified, verified_by = NULL, verified_at = NULL")
            params["verified"] = False
        if not sets:
            return self.get_skill(user_id, skill_id)

        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    text(f"UPDATE volunteer_skills SET {', '.join(sets)} "
                         "WHERE id = :id AND user_id = :uid"),
                    params,
                )
                if result.rowcount == 0:
                    return None
        except IntegrityError:
            raise ConflictError(
                f"Skill '{skill}' already exists for this user",
                user_id=user_id,
                skill=skill,
            )
        return self.get_skill(user_id, skill_id)

    def delete_skill(self, user_id: str, skill_id: str) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM volunteer_skills WHERE id = :id AND user_id = :uid"),
                {"id": skill_id, "uid": user_id},
            )
        return result.rowcount == 1

    # ── Read ───────────────────────────────────────────────────────────

    def get_user(self, user_id: str, conn: Optional[Connection] = None) -> Optional[User]:
        with self._connection(conn) as c:
            row = c.execute(
                text(f"SELECT {USER_COLS} FROM users WHERE id = :id"),
                {"id": user_id},
            ).mappings().first()
            if not row:
                return None
            skills = self._skills_for(c, [user_id]).get(user_id, [])
        return _row_to_user(row, skills)

    def get_skill(self, user_id: str, skill_id: str) -> Optional[VolunteerSkill]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text(f"SELECT {SKILL_COLS} FROM volunteer_skills WHERE id = :id AND user_id = :uid"),
                {"id": skill_id, "uid": user_id},
            ).mappings().first()
        return _row_to_skill(row) if row else None

    def find_in_box(
        self,
        min_lat: float,
        max_lat: float,
        min_lng: Optional[float],
        max_lng: Optional[float],
        role: Role | str,
        active: bool = True,
    ) -> list[User]:
        """Users of ``role`` with a location inside the given bounds."""
        conditions = [
            "role = :role",
            "is_active = :active",
            "latitude IS NOT NULL",
            "longitude IS NOT NULL",
            "latitude BETWEEN :min_lat AND :max_lat",
        ]
        params: dict[str, Any] = {
            "role": Role(role).value, "active": active,
            "min_lat": min_lat, "max_lat": max_lat,
        }
        if min_lng is not None and max_lng is not None:
            conditions.append("longitude BETWEEN :min_lng AND :max_lng")
            params["min_lng"] = min_lng
            params["max_lng"] = max_lng

        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"SELECT {USER_COLS} FROM users WHERE {' AND '.join(conditions)}"),
                params,
            ).mappings().all()
            skills = self._skills_for(conn, [r["id"] for r in rows])
        return [_row_to_user(r, skills.get(r["id"], [])) for r in rows]

    # ── Private ────────────────────────────────────────────────────────

    def _skills_for(self, conn: Connection, user_ids: Iterable[str]) -> dict[str, list[VolunteerSkill]]:
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        stmt = text(
            f"SELECT {SKILL_COLS} FROM volunteer_skills "
            "WHERE user_id IN :ids ORDER BY created_at, id"
        ).bindparams(bindparam("ids", expanding=True))
        grouped: dict[str, list[VolunteerSkill]] = {uid: [] for uid in user_ids}
        for row in conn.execute(stmt, {"ids": user_ids}).mappings():
            grouped[row["user_id"]].append(_row_to_skill(row))
        return grouped

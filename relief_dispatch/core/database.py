# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""SQLAlchemy engine factory and schema bootstrap."""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from relief_dispatch.core.config import settings
from relief_dispatch.core.logging import get_logger

logger = get_logger(__name__)

# Portable DDL: runs unchanged on PostgreSQL and SQLite.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id          VARCHAR(36) PRIMARY KEY,
        name        TEXT NOT NULL,
        email       VARCHAR(255) NOT NULL UNIQUE,
        phone       TEXT,
        role        VARCHAR(20) NOT NULL,
        is_active   BOOLEAN NOT NULL,
        longitude   DOUBLE PRECISION,
        latitude    DOUBLE PRECISION,
        address     TEXT,
        created_at  VARCHAR(40) NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_users_role_active ON users (role, is_active)",
    "CREATE INDEX IF NOT EXISTS ix_users_lat_lng ON users (latitude, longitude)",
    """
    CREATE TABLE IF NOT EXISTS volunteer_skills (
        id             VARCHAR(36) PRIMARY KEY,
        user_id        VARCHAR(36) NOT NULL REFERENCES users (id),
        skill          TEXT NOT NULL,
        skill_key      VARCHAR(255) NOT NULL,
        level          VARCHAR(20) NOT NULL,
        verified       BOOLEAN NOT NULL,
        verified_by    VARCHAR(36),
        verified_at    VARCHAR(40),
        certification  TEXT,
        created_at     VARCHAR(40) NOT NULL,
        CONSTRAINT uq_volunteer_skill UNIQUE (user_id, skill_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS incidents (
        id                VARCHAR(36) PRIMARY KEY,
        title             TEXT NOT NULL,
        description       TEXT NOT NULL,
        type              VARCHAR(30) NOT NULL,
        severity          VARCHAR(20) NOT NULL,
        status            VARCHAR(20) NOT NULL,
        longitude         DOUBLE PRECISION,
        latitude          DOUBLE PRECISION,
        address           TEXT,
        area              TEXT,
        reported_by       VARCHAR(36) NOT NULL,
        verified_by       VARCHAR(36),
        verified_at       VARCHAR(40),
        required_skills   TEXT NOT NULL,
        people_affected   INTEGER NOT NULL,
        urgency_level     INTEGER NOT NULL,
        escalation_level  INTEGER NOT NULL,
        resolved_at       VARCHAR(40),
        closed_at         VARCHAR(40),
        created_at        VARCHAR(40) NOT NULL,
        updated_at        VARCHAR(40) NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_incidents_status_severity ON incidents (status, severity)",
    """
    CREATE TABLE IF NOT EXISTS incident_volunteers (
        incident_id   VARCHAR(36) NOT NULL REFERENCES incidents (id),
        volunteer_id  VARCHAR(36) NOT NULL REFERENCES users (id),
        status        VARCHAR(20) NOT NULL,
        assigned_at   VARCHAR(40) NOT NULL,
        updated_at    VARCHAR(40) NOT NULL,
        PRIMARY KEY (incident_id, volunteer_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS assignments (
        id                  VARCHAR(36) PRIMARY KEY,
        incident_id         VARCHAR(36) NOT NULL REFERENCES incidents (id),
        volunteer_id        VARCHAR(36) NOT NULL REFERENCES users (id),
        coordinator_id      VARCHAR(36),
        status              VARCHAR(20) NOT NULL,
        priority            VARCHAR(20) NOT NULL,
        distance            DOUBLE PRECISION NOT NULL,
        matched_skills      TEXT NOT NULL,
        estimated_duration  INTEGER,
        actual_duration     INTEGER,
        rating              INTEGER,
        feedback            TEXT,
        requested_at        VARCHAR(40) NOT NULL,
        accepted_at         VARCHAR(40),
        rejected_at         VARCHAR(40),
        started_at          VARCHAR(40),
        completed_at        VARCHAR(40),
        cancelled_at        VARCHAR(40),
        created_at          VARCHAR(40) NOT NULL,
        updated_at          VARCHAR(40) NOT NULL,
        CONSTRAINT uq_assignment_incident_volunteer UNIQUE (incident_id, volunteer_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_assignments_volunteer_status ON assignments (volunteer_id, status)",
    """
    CREATE TABLE IF NOT EXISTS assignment_notes (
        id             VARCHAR(36) PRIMARY KEY,
        assignment_id  VARCHAR(36) NOT NULL REFERENCES assignments (id),
        note           TEXT NOT NULL,
        added_by       VARCHAR(36) NOT NULL,
        added_at       VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS incident_notes (
        id           VARCHAR(36) PRIMARY KEY,
        incident_id  VARCHAR(36) NOT NULL REFERENCES incidents (id),
        note         TEXT NOT NULL,
        added_by     VARCHAR(36) NOT NULL,
        added_at     VARCHAR(40) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS incident_timeline (
        id           VARCHAR(36) PRIMARY KEY,
        incident_id  VARCHAR(36) NOT NULL REFERENCES incidents (id),
        seq          INTEGER NOT NULL,
        event_type   VARCHAR(50) NOT NULL,
        actor        VARCHAR(36) NOT NULL,
        detail       TEXT NOT NULL,
        created_at   VARCHAR(40) NOT NULL,
        CONSTRAINT uq_timeline_seq UNIQUE (incident_id, seq)
    )
    """,
)


def build_engine(url: str | None = None) -> Engine:
    """Create an engine; pool tuning only applies to server databases."""
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 15})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.POOL_SIZE,
        max_overflow=settings.MAX_OVERFLOW,
        pool_recycle=settings.POOL_RECYCLE,
    )


def init_schema(engine: Engine) -> None:
    """Create tables and indexes if they do not exist yet."""
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
    logger.info("Database schema ready")

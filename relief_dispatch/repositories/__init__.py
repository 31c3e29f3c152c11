# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Repository package — re-exports the data-access classes."""
from relief_dispatch.repositories.assignment_repository import AssignmentRepository
from relief_dispatch.repositories.incident_repository import IncidentRepository
from relief_dispatch.repositories.user_repository import UserRepository

__all__ = ["AssignmentRepository", "IncidentRepository", "UserRepository"]

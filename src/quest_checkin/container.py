from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .checkin.service import CheckInService
from .core.constants import READ_RETRY_ATTEMPTS
from .core.enums import StorageBackend
from .database.connection import DBConfig, DatabaseConnection
from .database.memory_store import MemoryStore
from .penalties.service import PenaltyService
from .profiles.memory_profile_repository import MemoryProfileRepository
from .profiles.mysql_profile_repository import MySQLProfileRepository
from .profiles.repository import ProfileRepository
from .sessions.memory_session_repository import MemorySessionRepository
from .sessions.mysql_session_repository import MySQLSessionRepository
from .sessions.repository import SessionRepository
from .sessions.selection import SelectionResolver
from .sessions.service import SessionService


@dataclass(frozen=True)
class Container:
    backend: StorageBackend

    profiles_repo: ProfileRepository
    sessions_repo: SessionRepository

    session_service: SessionService
    checkin_service: CheckInService
    penalty_service: PenaltyService


def _build_services(backend: StorageBackend, profiles_repo: ProfileRepository, sessions_repo: SessionRepository) -> Container:
    return Container(
        backend=backend,
        profiles_repo=profiles_repo,
        sessions_repo=sessions_repo,
        session_service=SessionService(sessions_repo, profiles_repo, resolver=SelectionResolver(profiles_repo)),
        checkin_service=CheckInService(sessions_repo),
        penalty_service=PenaltyService(sessions_repo),
    )


def build_memory_container(store: Optional[MemoryStore] = None) -> Container:
    store = store or MemoryStore()
    return _build_services(StorageBackend.MEMORY, MemoryProfileRepository(store), MemorySessionRepository(store))


def build_container(
    *,
    db_config: Optional[dict] = None,
    backend: StorageBackend | str = StorageBackend.MYSQL,
    read_attempts: int = READ_RETRY_ATTEMPTS,
) -> Container:
    backend = StorageBackend(backend)
    if backend == StorageBackend.MEMORY:
        return build_memory_container()

    if not db_config:
        raise ValueError("db_config is required for the MySQL backend")
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
    return _build_services(
        backend,
        MySQLProfileRepository(conn, read_attempts=read_attempts),
        MySQLSessionRepository(conn, read_attempts=read_attempts),
    )

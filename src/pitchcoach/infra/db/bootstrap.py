from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine

from src.pitchcoach.config import settings
from src.pitchcoach.infra.db.models import Base
from src.pitchcoach.infra.db.session import create_sqlalchemy_session_factory
from src.pitchcoach.infra.db.sql_sessions import SqlSessionRepository
from src.pitchcoach.services.sessions.service import session_service

logger = logging.getLogger(__name__)


def init_sql_repositories(database_url: Optional[str] = None, *, force: bool = False) -> bool:
    """Optionally switch the session service to a SQL-backed repository.

    If USE_SQL_REPOS is not enabled (and ``force`` is not set) or no database
    URL is configured, this is a no-op and the in-memory repository remains
    active. Returns True when the SQL repository was installed.
    """

    if not (settings.use_sql_repos or force):
        return False

    db_url = database_url or settings.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; keeping in-memory sessions")
        return False

    engine = create_engine(db_url, future=True)

    # Create tables if they do not exist. A real deployment should use
    # migrations instead.
    Base.metadata.create_all(engine)
    engine.dispose()

    session_service.use_repository(SqlSessionRepository(create_sqlalchemy_session_factory(db_url)))
    logger.info("SQL session repository enabled")
    return True

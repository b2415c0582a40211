from __future__ import annotations

from typing import Iterable, List, Optional
from uuid import UUID

from src.pitchcoach.domain.models.coaching_session import CoachingSession, SessionStatus
from src.pitchcoach.infra.db.models import CoachingSessionORM
from src.pitchcoach.infra.db.repositories import SessionRepository
from src.pitchcoach.infra.db.session import SessionFactory
from src.pitchcoach.tenancy import get_current_tenant


class SqlSessionRepository(SessionRepository):
    """SessionRepository backed by SQLAlchemy ORM sessions."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, session_id: UUID) -> Optional[CoachingSession]:
        """Load a CoachingSession by primary key, scoped to the current tenant."""

        db = self._session_factory()
        try:
            orm = db.get(CoachingSessionORM, session_id)
            if orm is None:
                return None
            if orm.tenant_id != get_current_tenant():
                return None
            return orm.to_domain()
        finally:
            db.close()

    def list_by_filters(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> Iterable[CoachingSession]:
        db = self._session_factory()
        try:
            query = db.query(CoachingSessionORM).filter(CoachingSessionORM.tenant_id == get_current_tenant())
            if user_id is not None:
                query = query.filter(CoachingSessionORM.user_id == user_id)
            if status is not None:
                query = query.filter(CoachingSessionORM.status == status.value)
            rows: List[CoachingSessionORM] = query.order_by(CoachingSessionORM.created_at.desc()).all()
            return [row.to_domain() for row in rows]
        finally:
            db.close()

    def save(self, session: CoachingSession) -> None:
        """Insert or update a CoachingSession."""

        db = self._session_factory()
        try:
            existing = db.get(CoachingSessionORM, session.id)
            if existing is None:
                db.add(CoachingSessionORM.from_domain(session))
            else:
                if existing.tenant_id != session.tenant_id:
                    raise KeyError("Session does not belong to current tenant")
                existing.update_from_domain(session)
            db.commit()
        finally:
            db.close()

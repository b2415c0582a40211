from __future__ import annotations

from typing import Dict, Iterable, Optional
from uuid import UUID

from src.pitchcoach.domain.models.coaching_session import CoachingSession, SessionStatus
from src.pitchcoach.infra.db.repositories import SessionRepository
from src.pitchcoach.tenancy import get_current_tenant


class InMemorySessionRepository(SessionRepository):
    def __init__(self) -> None:
        self._sessions: Dict[UUID, CoachingSession] = {}

    def get(self, session_id: UUID) -> Optional[CoachingSession]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.tenant_id != get_current_tenant():
            return None
        return session.model_copy(deep=True)

    def list_by_filters(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> Iterable[CoachingSession]:
        current_tenant = get_current_tenant()
        for session in sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True):
            if session.tenant_id != current_tenant:
                continue
            if user_id is not None and session.user_id != user_id:
                continue
            if status is not None and session.status != status:
                continue
            yield session.model_copy(deep=True)

    def save(self, session: CoachingSession) -> None:
        existing = self._sessions.get(session.id)
        if existing is not None and existing.tenant_id != session.tenant_id:
            raise KeyError("Session does not belong to current tenant")
        self._sessions[session.id] = session.model_copy(deep=True)

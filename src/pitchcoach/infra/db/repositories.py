from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional
from uuid import UUID

from src.pitchcoach.domain.models.coaching_session import CoachingSession, SessionStatus


class SessionRepository(ABC):
    """Tenant-scoped storage for coaching sessions.

    Implementations must never return a session that belongs to a tenant other
    than the current one.
    """

    @abstractmethod
    def get(self, session_id: UUID) -> Optional[CoachingSession]:
        raise NotImplementedError

    @abstractmethod
    def list_by_filters(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[SessionStatus] = None,
    ) -> Iterable[CoachingSession]:
        raise NotImplementedError

    @abstractmethod
    def save(self, session: CoachingSession) -> None:
        raise NotImplementedError

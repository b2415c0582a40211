from __future__ import annotations

from collections import defaultdict
from typing import Dict, List, Optional

from src.pitchcoach.domain.models.analytics import SessionStats
from src.pitchcoach.domain.models.coaching_session import SessionStatus
from src.pitchcoach.services.sessions.service import SessionService, session_service


class AnalyticsService:
    def __init__(self, sessions: SessionService) -> None:
        self._sessions = sessions

    def compute_session_stats(self, user_id: Optional[str] = None) -> SessionStats:
        sessions = self._sessions.list_sessions(user_id=user_id)
        by_status: Dict[SessionStatus, int] = defaultdict(int)
        for session in sessions:
            by_status[session.status] += 1

        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]

        category_totals: Dict[str, List[float]] = defaultdict(list)
        for session in completed:
            for metric in session.feedback_metrics:
                category_totals[metric.category].append(metric.score)

        average_score: Optional[float] = None
        completion_rate: Optional[float] = None
        if completed:
            average_score = round(sum(s.overall_score for s in completed) / len(completed))
        if sessions:
            completion_rate = len(completed) / len(sessions)

        return SessionStats(
            total_sessions=len(sessions),
            ready_sessions=by_status[SessionStatus.READY],
            in_progress_sessions=by_status[SessionStatus.IN_PROGRESS],
            completed_sessions=by_status[SessionStatus.COMPLETED],
            failed_sessions=by_status[SessionStatus.FAILED],
            average_score=average_score,
            category_scores={
                category: round(sum(scores) / len(scores), 1) for category, scores in category_totals.items()
            },
            total_practice_seconds=sum(s.duration for s in completed),
            completion_rate=completion_rate,
        )


analytics_service = AnalyticsService(session_service)

from __future__ import annotations

from typing import Dict, Optional
from uuid import uuid4

from src.pitchcoach.domain.models.user import User, UserRole
from src.pitchcoach.tenancy import get_current_tenant


class InMemoryUserService:
    """Very small in-memory user store keyed by auth subject.

    Maps the hashed auth subject (from the security layer) to a concrete User
    so sessions can be owned by a user without exposing raw API secrets.
    """

    def __init__(self) -> None:
        self._by_subject: Dict[str, User] = {}

    def upsert_user_for_subject(
        self,
        *,
        subject: str,
        email: str,
        role: UserRole,
    ) -> User:
        key = f"{get_current_tenant()}:{subject}"
        existing = self._by_subject.get(key)
        if existing is not None:
            return existing

        user = User(id=uuid4(), email=email, role=role, tenant_id=get_current_tenant())
        self._by_subject[key] = user
        return user

    def get_user_by_subject(self, subject: str) -> Optional[User]:
        return self._by_subject.get(f"{get_current_tenant()}:{subject}")


user_service = InMemoryUserService()

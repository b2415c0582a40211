from __future__ import annotations

import hashlib
from contextvars import ContextVar
from typing import List, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.pitchcoach.config import settings
from src.pitchcoach.domain.models.user import User, UserRole
from src.pitchcoach.services.users.service import user_service

# API key is expected in this header when ENABLE_API_AUTH is true.
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Context variable storing a stable, non-raw identifier for the current caller
# (e.g., a hashed API key). This allows downstream consumers such as the
# audit logger to associate events with a subject without exposing the raw
# secret.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any.

    This is typically set by ``get_api_key`` when API authentication is
    enabled. The value is a stable hash-derived identifier, not the raw
    secret.
    """

    return _current_subject.get()


def _parse_api_keys() -> List[str]:
    """Return the configured API keys as a normalized list.

    API_KEYS is treated as a comma-separated list. Whitespace is stripped and
    empty entries are ignored.
    """

    if not settings.api_keys:
        return []
    return [key.strip() for key in settings.api_keys.split(",") if key.strip()]


def subject_for_api_key(api_key: str) -> str:
    # Non-reversible, stable identifier so audit logs never carry the secret.
    return "api-key:" + hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:16]


def is_valid_api_key(api_key: Optional[str]) -> bool:
    """Check a key against API_KEYS. Shared by HTTP routes and socket connects."""

    if not settings.enable_api_auth:
        return True
    return bool(api_key) and api_key in _parse_api_keys()


async def get_api_key(api_key: Optional[str] = Security(_api_key_header)) -> str:
    """FastAPI dependency for simple API-key based authentication.

    - If ENABLE_API_AUTH is false (default for development/tests), this is a
      no-op and always succeeds.
    - If ENABLE_API_AUTH is true, a valid API key must be supplied in the
      X-API-Key header and match the configured API_KEYS list.
    """

    if not settings.enable_api_auth:
        _current_subject.set(None)
        return ""

    if not _parse_api_keys():
        # Misconfiguration: auth is enabled but no keys are configured.
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API authentication is enabled but no API keys are configured.",
        )

    if not is_valid_api_key(api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key.",
        )

    _current_subject.set(subject_for_api_key(api_key))
    return api_key


async def get_current_user(api_key: str = Depends(get_api_key)) -> User:
    """Resolve the current User based on the derived auth subject.

    Users are kept in a small in-memory mapping of auth subjects; the real
    user directory lives outside this service.
    """

    subject = get_current_subject()
    if subject is None:
        # Auth disabled: act as an organization admin for development convenience.
        return user_service.upsert_user_for_subject(
            subject="anonymous",
            email="anonymous@example.com",
            role=UserRole.ADMIN,
        )

    user = user_service.get_user_by_subject(subject)
    if user is None:
        user = user_service.upsert_user_for_subject(
            subject=subject,
            email=f"user+{subject[-8:]}@example.com",
            role=UserRole.TRAINEE,
        )

    return user

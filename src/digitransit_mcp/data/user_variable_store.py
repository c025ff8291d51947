"""In-memory, per-session store for user variables.

Nothing is persisted: all variables are lost on restart. Expired variables
are purged lazily when read or listed.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from digitransit_mcp.models.user_variables import UserVariable, VariableType

logger = logging.getLogger(__name__)

# Applied when the caller gives no ttl_seconds
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UserVariableStore:
    """Session-scoped key/value store with optional expiry."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._sessions: dict[str, dict[str, UserVariable]] = {}

    def save(
        self,
        session_id: str,
        key: str,
        value: Any,
        type: VariableType | None = None,
        ttl_seconds: int | None = None,
    ) -> tuple[UserVariable | None, UserVariable]:
        """Save (or overwrite) a variable.

        Keys are stored exactly as given (case preserved).

        Args:
            session_id: Session the variable belongs to.
            key: Variable name.
            value: Any JSON-serializable value.
            type: Optional category; "location" requires a coordinate.
            ttl_seconds: Lifetime in seconds. None uses the 24h default,
                values <= 0 mean the variable never expires.

        Returns:
            (previous, saved) where previous is the overwritten variable, if any.

        Raises:
            pydantic.ValidationError: If key or value are invalid.
        """
        now = self._clock()
        effective_ttl = DEFAULT_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        expires_at = now + timedelta(seconds=effective_ttl) if effective_ttl > 0 else None

        session = self._sessions.setdefault(session_id, {})
        previous = self._live(session, key, now)

        variable = UserVariable.model_validate(
            {
                "key": key,
                "type": type,
                "value": value,
                "session_id": session_id,
                "created_at": previous.created_at if previous else now,
                "updated_at": now,
                "expires_at": expires_at,
                "ttl_seconds": ttl_seconds,
            }
        )
        session[key] = variable

        if previous:
            logger.debug(f"Overwrote variable {key!r} in session {session_id!r}")
        return previous, variable.model_copy(deep=True)

    def _live(self, session: dict[str, UserVariable], key: str, now: datetime) -> UserVariable | None:
        variable = session.get(key)
        if variable is not None and variable.is_expired(now):
            del session[key]
            return None
        return variable

    def get(self, session_id: str, key: str) -> UserVariable | None:
        """Get a non-expired variable, or None."""
        if not key:
            raise ValueError("key must be a non-empty string")
        session = self._sessions.get(session_id)
        if session is None:
            return None
        variable = self._live(session, key, self._clock())
        return variable.model_copy(deep=True) if variable else None

    def list(self, session_id: str) -> list[UserVariable]:
        """List non-expired variables, most recently updated first."""
        session = self._sessions.get(session_id)
        if not session:
            return []

        now = self._clock()
        for key in [k for k, v in session.items() if v.is_expired(now)]:
            del session[key]

        variables = sorted(session.values(), key=lambda v: (v.updated_at, v.key), reverse=True)
        return [v.model_copy(deep=True) for v in variables]

    def clear_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def clear(self) -> None:
        self._sessions.clear()


_store: UserVariableStore | None = None


def get_user_variable_store() -> UserVariableStore:
    """Get or create the process-wide store singleton."""
    global _store
    if _store is None:
        _store = UserVariableStore()
    return _store


def reset_store() -> None:
    """Drop the store singleton. Useful for testing."""
    global _store
    _store = None

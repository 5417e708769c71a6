"""Persist conversation sessions as JSON documents so they can be audited and resumed."""

import logging
import uuid
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from pydantic import ValidationError

from console_agent.config import Settings
from console_agent.core.schema import (
    SessionRecord,
    utcnow,
)
from console_agent.memory.storage import Storage

logger = logging.getLogger(__name__)

SESSIONS_DIR = "sessions"

_UPDATABLE = (
    "conversation",
    "input_tokens",
    "output_tokens",
    "code_executed",
    "code_output",
    "code_result",
    "console_output",
    "executed",
    "duration_ms",
)


class SessionRecorder:
    """
    Best-effort session log.

    ``log`` creates a record and ``update`` patches it.  Both swallow every failure after logging
    a warning: recording must never break the conversation it records.
    """

    def __init__(self, storage: Storage, settings: Settings):
        self.storage = storage
        self.settings = settings

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSIONS_DIR}/{session_id}.json"

    def _write(self, record: SessionRecord) -> None:
        self.storage.write(self._key(record.id), record.model_dump_json(indent=2))

    def log(self, attrs: Mapping[str, Any]) -> Optional[str]:
        """
        Create a new session record from *attrs*.

        Returns
        -------
        str | None
            The new session id, or ``None`` if logging is disabled or failed.
        """
        if not self.settings.SESSION_LOGGING:
            return None
        try:
            record = SessionRecord(
                id=uuid.uuid4().hex[:12],
                query=attrs.get("query") or "",
                conversation=list(attrs.get("conversation") or []),
                input_tokens=attrs.get("input_tokens") or 0,
                output_tokens=attrs.get("output_tokens") or 0,
                user_name=self.settings.resolved_user_name(),
                mode=attrs.get("mode") or "one_shot",
                code_executed=attrs.get("code_executed"),
                code_output=attrs.get("code_output"),
                code_result=attrs.get("code_result"),
                console_output=attrs.get("console_output"),
                executed=bool(attrs.get("executed", False)),
                provider=self.settings.PROVIDER,
                model=self.settings.resolved_model(),
                duration_ms=attrs.get("duration_ms"),
            )
            self._write(record)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Session logging failed: %s: %s", type(exc).__name__, exc)
            return None
        logger.debug("Logged session %s", record.id)
        return record.id

    def update(self, session_id: Optional[str], attrs: Mapping[str, Any]) -> None:
        """Apply the recognised keys of *attrs* to the stored session."""
        if not session_id or not self.settings.SESSION_LOGGING:
            return
        updates: Dict[str, Any] = {k: attrs[k] for k in _UPDATABLE if k in attrs}
        if not updates:
            return
        try:
            record = self._read(session_id)
            if record is None:
                logger.warning("Session update failed: no session %s", session_id)
                return
            if "conversation" in updates:
                updates["conversation"] = list(updates["conversation"] or [])
            merged = record.model_dump()
            merged.update(updates, updated_at=utcnow())
            self._write(SessionRecord.model_validate(merged))
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Session update failed: %s: %s", type(exc).__name__, exc)

    def _read(self, session_id: str) -> Optional[SessionRecord]:
        content = self.storage.read(self._key(session_id))
        if content is None:
            return None
        return SessionRecord.model_validate_json(content)

    def load(self, session_id: str) -> Optional[SessionRecord]:
        """Read one session back, or ``None`` if it is missing or unreadable."""
        try:
            return self._read(session_id)
        except (OSError, ValidationError, ValueError) as exc:
            logger.warning("Could not load session %s: %s", session_id, exc)
            return None

    def list_sessions(self, limit: int = 20) -> List[SessionRecord]:
        """Most recent sessions first."""
        records = []
        for key in self.storage.list(f"{SESSIONS_DIR}/*.json"):
            try:
                records.append(SessionRecord.model_validate_json(self.storage.read(key) or ""))
            except (ValidationError, ValueError) as exc:
                logger.debug("Skipping unreadable session %s: %s", key, exc)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]


"""
Saved-state persistence for the single-letter workflow.

``SessionManager`` owns the restore/expiry rules and talks to a
``SessionStore`` port, so the storage medium can be swapped (MongoDB in
production, in-memory in tests).
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from coverfit.models.models import AppState
from coverfit.services.db import to_dict
from coverfit.utils.exceptions import PersistenceError
from coverfit.utils.logging_config import get_logger

logger = get_logger(__name__)


class SessionStore:
    """Key-value port: one JSON-compatible document per session id."""

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def clear(self, session_id: str) -> None:
        raise NotImplementedError


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        doc = self._data.get(session_id)
        return dict(doc) if doc is not None else None

    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        self._data[session_id] = dict(data)

    async def clear(self, session_id: str) -> None:
        self._data.pop(session_id, None)


class MongoSessionStore(SessionStore):
    def __init__(self, collection):
        self.collection = collection

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        doc = to_dict(await self.collection.find_one({"session_id": session_id}))
        if doc is not None:
            doc.pop("session_id", None)
        return doc

    async def save(self, session_id: str, data: Dict[str, Any]) -> None:
        await self.collection.replace_one(
            {"session_id": session_id},
            {"session_id": session_id, **data},
            upsert=True,
        )

    async def clear(self, session_id: str) -> None:
        await self.collection.delete_one({"session_id": session_id})


class SessionManager:
    """Save, restore-or-discard and clear the saved state of one browser session."""

    def __init__(self, store: SessionStore, max_age_days: int = 30, clock=datetime.utcnow):
        self.store = store
        self.max_age = timedelta(days=max_age_days)
        self.clock = clock

    async def save(self, session_id: str, state: AppState) -> AppState:
        stamped = state.copy(update={"last_saved": self.clock()})
        try:
            await self.store.save(session_id, stamped.dict())
        except Exception as e:
            logger.error(f"Failed to save state for session {session_id}: {e}")
            raise PersistenceError("Failed to save session state", operation="save", session_id=session_id, cause=e) from e
        logger.info(
            f"Saved session {session_id}: job description {len(state.job_description)} chars, "
            f"cover letter {len(state.cover_letter)} chars, {len(state.coverage_results)} coverage results"
        )
        return stamped

    async def restore(self, session_id: str) -> Optional[AppState]:
        """The saved state if it is fresh and readable; otherwise None, and the entry is gone."""
        try:
            raw = await self.store.load(session_id)
        except Exception as e:
            logger.error(f"Failed to load state for session {session_id}: {e}")
            return None
        if raw is None:
            return None

        try:
            state = AppState(**raw)
        except (PydanticValidationError, TypeError) as e:
            logger.error(f"Discarding corrupt saved state for session {session_id}: {e}")
            await self._discard(session_id)
            return None

        if state.last_saved is None or state.last_saved.replace(tzinfo=None) <= self.clock() - self.max_age:
            logger.info(f"Clearing expired saved state for session {session_id}")
            await self._discard(session_id)
            return None

        logger.info(f"Restoring saved state for session {session_id} from {state.last_saved.isoformat()}")
        return state

    async def clear(self, session_id: str) -> None:
        try:
            await self.store.clear(session_id)
        except Exception as e:
            logger.error(f"Failed to clear state for session {session_id}: {e}")
            raise PersistenceError("Failed to clear session state", operation="clear", session_id=session_id, cause=e) from e
        logger.info(f"Cleared saved state for session {session_id}")

    async def _discard(self, session_id: str) -> None:
        try:
            await self.store.clear(session_id)
        except Exception as e:
            logger.warning(f"Could not discard saved state for session {session_id}: {e}")

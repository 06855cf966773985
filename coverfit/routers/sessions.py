from fastapi import APIRouter, Request

from coverfit.models.models import AppState
from coverfit.models.schemas import RestoreResponse
from coverfit.services.db import SAVED_STATE_MAX_AGE_DAYS, saved_states_coll
from coverfit.services.session_manager import MongoSessionStore, SessionManager
from coverfit.utils.exceptions import ValidationError
from coverfit.utils.logging_config import PerformanceMonitor, get_logger

router = APIRouter()
logger = get_logger(__name__)

session_manager = SessionManager(MongoSessionStore(saved_states_coll), max_age_days=SAVED_STATE_MAX_AGE_DAYS)


def _check_session_id(session_id: str, request_id: str) -> None:
    if not session_id or not session_id.strip():
        logger.warning(
            "Invalid session ID provided",
            extra={"request_id": request_id, "session_id": session_id}
        )
        raise ValidationError("Session ID cannot be empty", field="session_id", value=session_id)


@router.get("/{session_id}", response_model=RestoreResponse)
async def get_saved_state(session_id: str, request: Request):
    """Offer previously saved work back to the user (restore or start fresh)"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    _check_session_id(session_id, request_id)

    with PerformanceMonitor("restore_session", logger):
        state = await session_manager.restore(session_id)

    if state is None:
        logger.info(f"No saved state for session {session_id}", extra={"request_id": request_id})
        return RestoreResponse(session_id=session_id, has_saved_state=False)

    return RestoreResponse(session_id=session_id, has_saved_state=True, last_saved=state.last_saved, state=state)


@router.put("/{session_id}", response_model=AppState)
async def save_state(session_id: str, state: AppState, request: Request):
    """Auto-save: store the whole working state as one document"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    _check_session_id(session_id, request_id)

    with PerformanceMonitor("save_session", logger):
        return await session_manager.save(session_id, state)


@router.delete("/{session_id}")
async def clear_state(session_id: str, request: Request):
    """Start fresh: drop the saved state"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    _check_session_id(session_id, request_id)

    await session_manager.clear(session_id)
    return {"session_id": session_id, "cleared": True}

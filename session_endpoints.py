"""Session endpoints.

- GET /sessions: session statistics for monitoring
- DELETE /sessions/{session_id}: explicit client-initiated teardown
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from oauth.middleware import authenticate_request

logger = logging.getLogger(__name__)

# Router for session endpoints
router = APIRouter(tags=["sessions"])


@router.get("/sessions")
async def session_stats(request: Request):
    """Active and pending session counts with per-session summaries."""
    return request.app.state.sessions.stats()


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request):
    """Tear down a session owned by the calling client."""
    state = request.app.state
    context, rejection = await authenticate_request(request, state.auth_server, state.settings.issuer)
    if rejection is not None:
        return rejection

    logger.info(f"[SESSION] Explicit cleanup requested for session: {session_id}")
    session = state.sessions.get(session_id)
    if session is None:
        return JSONResponse(
            {"success": False, "message": f"Session {session_id} not found"},
            status_code=404,
        )

    if session.auth_context is not None and session.auth_context.client_id != context.client_id:
        return JSONResponse(
            {"error": "forbidden", "error_description": "Session belongs to a different client"},
            status_code=403,
        )

    await state.sessions.destroy(session_id)
    return {"success": True, "message": f"Session {session_id} cleaned up"}

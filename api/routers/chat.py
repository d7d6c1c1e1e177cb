from __future__ import annotations

import json
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from pydantic import TypeAdapter, ValidationError

from api.deps import get_turn_orchestrator
from api.errors import InvalidHistory
from api.models import ChatMessage, ErrorResponse, SessionResetResponse, TurnResponse
from api.orchestrators.turn_orchestrator import TurnOrchestrator
from api.schemas.turn_state import create_initial_state
from api.session import SessionManager, get_session_manager
from api.uploads import UploadedFile

logger = structlog.get_logger(__name__)
router = APIRouter()

_history_adapter = TypeAdapter(List[ChatMessage])


def parse_history(raw: Optional[str]) -> List[ChatMessage]:
    """Parse the ``history`` form field: a JSON array of ``{role, message}``.

    Raises:
        InvalidHistory: If the field is not a JSON array of chat messages
    """
    if raw is None or not raw.strip():
        return []
    try:
        return _history_adapter.validate_python(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise InvalidHistory(detail=str(e)[:200]) from e


async def read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    # Browsers send an empty, unnamed part when no file was picked.
    if file is None or not file.filename:
        return None
    data = await file.read()
    return UploadedFile(filename=file.filename, declared_type=file.content_type, data=data)


@router.post(
    "/detectIntent",
    response_model=TurnResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Chat"],
)
async def detect_intent(
    request: Request,
    response: Response,
    query: str = Form(""),
    history: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator),
    sessions: SessionManager = Depends(get_session_manager),
) -> TurnResponse:
    """Run one chat turn.

    The query (and the attached file's content, if any) is enhanced with the
    conversation history, sent to the intent agent, and the agent's reply is
    rewritten for the user. Both the raw and the rewritten reply are returned.

    Args:
        request: FastAPI request object
        response: Response used to refresh the session cookies
        query: User query text; may be empty when a file is attached
        history: JSON array of prior ``{role, message}`` entries, oldest first
        file: Optional JPEG, PNG or PDF

    Returns:
        TurnResponse: ``agentReply``, ``rewrittenReply`` and audit fields

    Raises:
        AssistantError: Rendered as ``{"error": ...}`` by the app's handler

    Example:
        ```bash
        curl -X POST http://localhost:8000/api/detectIntent \\
          -F 'query=How do I send money to India?' \\
          -F 'history=[]'
        ```
    """
    request_id = getattr(request.state, "request_id", None)
    session = sessions.resolve(request.cookies)
    # Lets the error handler refresh cookies on failed turns too.
    request.state.session = session
    request.state.session_manager = sessions

    orchestrator.check_configuration()

    state = create_initial_state(
        session_id=session.session_id,
        raw_query=query,
        history=parse_history(history),
        upload=await read_upload(file),
        request_id=request_id,
    )

    logger.info(
        "Processing turn",
        request_id=request_id,
        session_id=session.session_id,
        new_session=session.is_new,
        query_text=query[:100],
    )

    result = await orchestrator.run_turn(state)
    sessions.apply(response, session)
    return result.response


@router.post("/session/reset", response_model=SessionResetResponse, tags=["Chat"])
async def reset_session(
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResetResponse:
    """Expire both session cookies so the next turn starts a new conversation."""
    sessions.clear(response)
    return SessionResetResponse()

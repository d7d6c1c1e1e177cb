"""Response assembly: one canonical response carrying both replies.

``agentReply`` and ``rewrittenReply`` are always present. For audit display
the backend's ``queryResult`` is echoed with the rewritten text spliced into
its first text message, alongside session diagnostics. Failing to build those
audit fields is logged and leaves them ``None``; it never fails the turn.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import structlog

from api.errors import AssemblyFailure
from api.models import TurnDiagnostics, TurnResponse

logger = structlog.get_logger(__name__)


def splice_rewritten_reply(envelope: Dict[str, Any], rewritten_reply: str) -> Dict[str, Any]:
    """
    Return a copy of ``envelope["queryResult"]`` with the rewritten reply in the first text slot.

    If no response message carries text, a text message is inserted first.

    Raises:
        AssemblyFailure: If the envelope has no usable ``queryResult``
    """
    query_result = envelope.get("queryResult")
    if not isinstance(query_result, dict):
        raise AssemblyFailure("envelope has no queryResult")

    query_result = copy.deepcopy(query_result)
    messages = query_result.get("responseMessages")
    if messages is None:
        messages = query_result["responseMessages"] = []
    if not isinstance(messages, list):
        raise AssemblyFailure("responseMessages is not a list")

    for message in messages:
        texts = ((message or {}).get("text") or {}).get("text") or []
        if any(isinstance(t, str) and t.strip() for t in texts):
            message["text"]["text"] = [rewritten_reply]
            return query_result

    messages.insert(0, {"text": {"text": [rewritten_reply]}})
    return query_result


def build_diagnostics(envelope: Dict[str, Any], session_id: str) -> TurnDiagnostics:
    """
    Raises:
        AssemblyFailure: If the envelope fields have unexpected types
    """
    query_result = envelope.get("queryResult")
    if not isinstance(query_result, dict):
        raise AssemblyFailure("envelope has no queryResult")

    try:
        match = query_result.get("match") or {}
        confidence = match.get("confidence", query_result.get("intentDetectionConfidence"))
        intent = (match.get("intent") or query_result.get("intent") or {}).get("displayName")
        page = (query_result.get("currentPage") or {}).get("displayName")
        return TurnDiagnostics(
            session_id=session_id,
            match_confidence=confidence,
            language_code=query_result.get("languageCode"),
            intent=intent,
            page=page,
        )
    except Exception as e:
        raise AssemblyFailure(f"unexpected diagnostics: {e}") from e


def assemble_response(
    agent_reply: str,
    rewritten_reply: str,
    session_id: str,
    envelope: Optional[Dict[str, Any]],
) -> Tuple[TurnResponse, List[str]]:
    """
    Build the turn response.

    Returns:
        The response and the list of recovered assembly errors
    """
    errors: List[str] = []
    query_result = None
    diagnostics = None

    if envelope is not None:
        try:
            query_result = splice_rewritten_reply(envelope, rewritten_reply)
        except Exception as e:
            logger.warning("Failed to splice rewritten reply into envelope", error=str(e))
            errors.append(f"assembly: {e}")
        try:
            diagnostics = build_diagnostics(envelope, session_id)
        except Exception as e:
            logger.warning("Failed to read backend diagnostics", error=str(e))
            errors.append(f"diagnostics: {e}")

    response = TurnResponse(
        agent_reply=agent_reply,
        rewritten_reply=rewritten_reply,
        session_id=session_id,
        diagnostics=diagnostics,
        query_result=query_result,
    )
    return response, errors

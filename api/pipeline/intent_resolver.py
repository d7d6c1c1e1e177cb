"""Intent resolution against the Dialogflow CX agent."""

from __future__ import annotations

from typing import Optional

import structlog

from api.errors import IntentDetectionFailure
from api.models import ConversationContext
from libs.dialogflow.client import IntentReply

logger = structlog.get_logger(__name__)


def select_intent_query(
    normalized_query: str,
    context: Optional[ConversationContext],
    use_enhanced_query: bool,
) -> str:
    """The enhanced query when enabled and present, otherwise the normalized query."""
    if use_enhanced_query and context is not None and context.enhanced_query:
        return context.enhanced_query
    return normalized_query


async def resolve_intent(
    intent_client,
    session_id: str,
    text: str,
    language_code: str,
) -> IntentReply:
    """
    Submit one query to the agent and await its reply.

    An agent reply without any text is valid and yields ``agent_reply == ""``.

    Raises:
        IntentDetectionFailure: On any backend error; not retried
    """
    try:
        reply = await intent_client.detect_intent(session_id, text, language_code)
    except Exception as e:
        logger.error("Intent detection failed", session_id=session_id, error=str(e))
        raise IntentDetectionFailure(detail=str(e)) from e

    logger.info(
        "Intent detected",
        session_id=session_id,
        has_agent_reply=bool(reply.agent_reply),
        agent_reply_length=len(reply.agent_reply),
    )
    return reply

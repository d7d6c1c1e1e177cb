"""
Response rewriting.

The agent's raw reply is rewritten under the tone, language, localization and
content policy of the active prompt version. The rewrite is single-shot; on
failure or empty output the agent reply is delivered unmodified.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog
from langsmith import traceable

from api.composer.prompts import NO_AGENT_REPLY, get_prompt_policy
from api.errors import RewriteFailure
from api.llm.client import response_text
from api.models import ConversationContext
from libs.common.settings import Settings

logger = structlog.get_logger(__name__)


@dataclass
class RewriteResult:
    text: str
    rewritten: bool
    error: Optional[str] = None


def build_context_block(context: Optional[ConversationContext]) -> str:
    """Render the conversation context for the rewrite prompt, or ``""`` when there is none."""
    if context is None or not context.has_content():
        return ""

    lines = ["**CONVERSATION CONTEXT**:"]
    if context.summary:
        lines.append(f"Summary: {context.summary}")
    if context.key_topics:
        lines.append(f"Key topics: {', '.join(context.key_topics)}")
    if context.user_preferences:
        preferences = "; ".join(f"{key}: {value}" for key, value in context.user_preferences.items())
        lines.append(f"User preferences: {preferences}")
    if context.recent_messages:
        lines.append("Recent messages:")
        lines.extend(f"[{m.role}] {m.message}" for m in context.recent_messages)
    return "\n".join(lines) + "\n\n"


@traceable(run_type="chain", name="response_rewriter", tags=["rewrite", "generative"])
async def rewrite_response(
    llm,
    query: str,
    context: Optional[ConversationContext],
    agent_reply: str,
    settings: Settings,
) -> RewriteResult:
    """
    Rewrite the agent reply for the user.

    Args:
        llm: Chat model handle with an async ``ainvoke``
        query: The user's query before enhancement
        context: Conversation context, possibly the fallback one
        agent_reply: Raw agent reply; ``""`` when the agent had none
        settings: Application settings

    Returns:
        The rewritten reply, or the agent reply verbatim if rewriting failed
    """
    try:
        template = get_prompt_policy(settings.prompt_policy_version).response_rewrite
        messages = template.format_messages(
            institution_name=settings.institution_name,
            locale=settings.locale,
            no_reply_sentinel=NO_AGENT_REPLY,
            context_block=build_context_block(context),
            query=query,
            agent_reply=agent_reply or NO_AGENT_REPLY,
        )
        response = await llm.ainvoke(messages)
        text = response_text(response)
        if not text:
            raise RewriteFailure("empty rewrite")
    except Exception as e:
        logger.warning("Rewrite failed, returning agent reply", error=str(e))
        return RewriteResult(text=agent_reply, rewritten=False, error=str(e))

    logger.info("Reply rewritten", agent_reply_length=len(agent_reply), rewritten_length=len(text))
    return RewriteResult(text=text, rewritten=True)

"""
Context enhancement for multi-turn conversations.

One generative call per turn turns the client-held history into a
``ConversationContext``: a summary, key topics, user preferences and an
enhanced version of the current query. With no history the call only
translates the query into the working language.

Any failure (call error, no JSON object, unparseable or mistyped JSON)
degrades to the fallback context; the turn continues with the normalized
query. Nothing is retried.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import structlog
from langsmith import traceable
from pydantic import ValidationError

from api.composer.prompts import get_prompt_policy
from api.composer.structured import ParseFailure, extract_json_object
from api.errors import ContextEnhancementFailure
from api.llm.client import response_text
from api.models import ChatMessage, ConversationContext
from libs.common.settings import Settings

logger = structlog.get_logger(__name__)


def fallback_context(history: Sequence[ChatMessage], window: int = 3) -> ConversationContext:
    """Empty summary and topics, the last ``window`` messages, no enhanced query."""
    return ConversationContext(recent_messages=list(history)[-window:], degraded=True)


def format_transcript(history: Sequence[ChatMessage]) -> str:
    return "\n".join(f"[{m.role}] {m.message}" for m in history)


def previous_assistant_message(history: Sequence[ChatMessage]) -> Optional[str]:
    for message in reversed(history):
        if message.role == "assistant":
            return message.message
    return None


def _normalized(text: str) -> str:
    return " ".join(text.split()).casefold()


def _same_text(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return _normalized(a) == _normalized(b)


def filter_user_preferences(preferences: dict[str, str], history: Sequence[ChatMessage]) -> dict[str, str]:
    """Drop preferences whose value only ever appears in assistant messages."""
    user_text = [_normalized(m.message) for m in history if m.role == "user"]
    assistant_text = [_normalized(m.message) for m in history if m.role == "assistant"]

    kept = {}
    for key, value in preferences.items():
        needle = _normalized(value)
        said_by_user = any(needle in text for text in user_text)
        said_by_assistant = any(needle in text for text in assistant_text)
        if said_by_assistant and not said_by_user:
            logger.info("Dropped assistant-sourced preference", key=key)
            continue
        kept[key] = value
    return kept


def apply_guards(context: ConversationContext, history: Sequence[ChatMessage]) -> ConversationContext:
    """Enforce preference provenance and the no-echo rule on a parsed context."""
    updates = {}
    preferences = filter_user_preferences(context.user_preferences, history)
    if preferences != context.user_preferences:
        updates["user_preferences"] = preferences

    if _same_text(context.enhanced_query, previous_assistant_message(history)):
        logger.warning("Enhanced query echoes the previous assistant message, discarded")
        updates["enhanced_query"] = None

    return context.model_copy(update=updates) if updates else context


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        return text[1:-1].strip()
    return text


async def _translate_query(llm, query: str, settings: Settings) -> ConversationContext:
    template = get_prompt_policy(settings.prompt_policy_version).query_translation
    messages = template.format_messages(canonical_language=settings.canonical_language, query=query)
    response = await llm.ainvoke(messages)
    translation = _strip_quotes(response_text(response))
    return ConversationContext(enhanced_query=translation or None)


async def _analyze_history(
    llm,
    query: str,
    history: List[ChatMessage],
    settings: Settings,
) -> ConversationContext:
    template = get_prompt_policy(settings.prompt_policy_version).context_enhancement
    messages = template.format_messages(
        canonical_language=settings.canonical_language,
        transcript=format_transcript(history),
        previous_assistant_message=previous_assistant_message(history) or "(none)",
        query=query,
    )
    response = await llm.ainvoke(messages)
    parsed = extract_json_object(response_text(response))
    if isinstance(parsed, ParseFailure):
        raise ContextEnhancementFailure(parsed.reason)

    try:
        context = ConversationContext.model_validate(
            {
                "summary": parsed.get("summary"),
                "keyTopics": parsed.get("keyTopics"),
                "userPreferences": parsed.get("userPreferences"),
                "enhancedQuery": parsed.get("enhancedQuery"),
            }
        )
    except (ValidationError, TypeError, ValueError) as e:
        raise ContextEnhancementFailure(f"context JSON has wrong shape: {e}") from e

    context = context.model_copy(update={"recent_messages": history[-settings.recent_message_window:]})
    return apply_guards(context, history)


@traceable(run_type="chain", name="context_enhancer", tags=["context", "generative"])
async def enhance_context(
    llm,
    query: str,
    history: Sequence[ChatMessage],
    settings: Settings,
) -> ConversationContext:
    """
    Build the conversation context for the current turn.

    Args:
        llm: Chat model handle with an async ``ainvoke``
        query: Normalized query
        history: Prior messages, oldest first; may be empty
        settings: Application settings

    Returns:
        The parsed context, or the fallback context with ``degraded=True``
    """
    history = list(history)
    try:
        if not history:
            context = await _translate_query(llm, query, settings)
        else:
            context = await _analyze_history(llm, query, history, settings)
    except Exception as e:
        logger.warning(
            "Context enhancement failed, using fallback context",
            error=str(e),
            history_length=len(history),
        )
        return fallback_context(history, settings.recent_message_window)

    logger.info(
        "Context enhanced",
        history_length=len(history),
        key_topics=context.key_topics,
        preference_keys=list(context.user_preferences),
        has_enhanced_query=context.enhanced_query is not None,
    )
    return context

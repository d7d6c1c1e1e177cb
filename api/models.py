"""Pydantic models for the WorkerBank assistant API.

This module defines the request and response models used by the API endpoints
and the conversation context shared by the pipeline stages.
"""

from __future__ import annotations

import time
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    """One entry of the client-held conversation history."""

    role: Literal["user", "assistant"] = Field(description="Author of the message", examples=["user"])
    message: str = Field(
        validation_alias=AliasChoices("message", "content", "text"),
        description="Message text",
        examples=["How do I open a savings account?"],
    )


class ConversationContext(BaseModel):
    """Context derived from the conversation history for a single turn.

    Recomputed on every request and never persisted. The empty context is a
    valid state for the first turn of a conversation.

    Attributes:
        summary: Free-text digest of prior turns
        key_topics: Topics discussed so far
        user_preferences: Facts asserted by the user (never by the assistant)
        enhanced_query: Context-aware rewrite of the current query, if any
        recent_messages: The last few history entries
        degraded: Whether the fallback context was used
    """

    model_config = ConfigDict(populate_by_name=True)

    summary: str = ""
    key_topics: list[str] = Field(default_factory=list, alias="keyTopics")
    user_preferences: dict[str, str] = Field(default_factory=dict, alias="userPreferences")
    enhanced_query: Optional[str] = Field(default=None, alias="enhancedQuery")
    recent_messages: list[ChatMessage] = Field(default_factory=list, alias="recentMessages")
    degraded: bool = False

    @field_validator("summary", mode="before")
    @classmethod
    def coerce_summary(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("key_topics", mode="before")
    @classmethod
    def coerce_topics(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [v] if v.strip() else []
        return [str(topic) for topic in v if str(topic).strip()]

    @field_validator("user_preferences", mode="before")
    @classmethod
    def coerce_preferences(cls, v: Any) -> dict[str, str]:
        if not v:
            return {}
        return {str(key): str(value) for key, value in dict(v).items() if value not in (None, "")}

    @field_validator("enhanced_query", mode="before")
    @classmethod
    def blank_enhanced_query(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    def has_content(self) -> bool:
        """Whether there is anything worth showing the rewriter."""
        return bool(self.summary or self.key_topics or self.user_preferences or self.recent_messages)


class TurnDiagnostics(BaseModel):
    """Session diagnostics reported by the intent-detection backend."""

    session_id: str = Field(alias="sessionId")
    match_confidence: Optional[float] = Field(default=None, alias="matchConfidence")
    language_code: Optional[str] = Field(default=None, alias="languageCode")
    intent: Optional[str] = Field(default=None, description="Matched intent display name")
    page: Optional[str] = Field(default=None, description="Current flow page display name")

    model_config = ConfigDict(populate_by_name=True)


class TurnResponse(BaseModel):
    """Response model for the turn submission endpoint.

    Attributes:
        agent_reply: Raw reply from the intent-detection backend
        rewritten_reply: Final reply shown to the user
        session_id: Session the turn ran in
        diagnostics: Backend diagnostics for audit display
        query_result: Backend envelope with the rewritten reply spliced in
    """

    model_config = ConfigDict(populate_by_name=True)

    agent_reply: str = Field(alias="agentReply", examples=["You can open an account at any branch."])
    rewritten_reply: str = Field(alias="rewrittenReply", examples=["You can open a savings account at any POSB branch."])
    session_id: str = Field(alias="sessionId")
    diagnostics: Optional[TurnDiagnostics] = None
    query_result: Optional[dict[str, Any]] = Field(default=None, alias="queryResult")


class TextToSpeechRequest(BaseModel):
    text: Optional[str] = Field(default=None, description="Text to synthesize")


class SessionResetResponse(BaseModel):
    status: Literal["reset"] = "reset"


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Health status (healthy/unhealthy/ready/not_ready)
        service: Service name
        version: Service version
        timestamp: Unix timestamp
        details: Optional additional details
    """

    status: Literal["healthy", "unhealthy", "ready", "not_ready"] = Field(
        description="Health status",
        examples=["healthy"],
    )
    service: str = Field(
        description="Service name",
        examples=["api"],
    )
    version: str = Field(
        description="Service version",
        examples=["0.1.0"],
    )
    timestamp: float = Field(
        default_factory=time.time,
        description="Unix timestamp",
    )
    details: dict[str, str] | None = Field(
        default=None,
        description="Optional additional details",
        examples=[{"dialogflow": "configured"}],
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(
        description="Human-readable error message",
        examples=["Failed to detect intent"],
    )

"""Turn State schema for the chat turn pipeline.

This module defines the state object that flows through the LangGraph turn
orchestrator. The state tracks one turn from the raw query to the assembled
response. It is built per request and discarded afterwards.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.models import ChatMessage, ConversationContext, TurnResponse
from api.uploads import UploadedFile


class TurnState(BaseModel):
    """State of one chat turn."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    # Versioning and tracing
    state_version: Literal["v1"] = Field(default="v1", description="State schema version")
    trace_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Unique trace identifier")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = Field(default=None, description="Per-request identifier")

    # Input
    session_id: str = Field(description="Session identifier shared with the intent backend")
    raw_query: str = Field(default="", description="Query as typed by the user")
    upload: Optional[UploadedFile] = Field(default=None, description="Attached file, if any")
    history: List[ChatMessage] = Field(default_factory=list, description="Prior messages, oldest first")

    # Stage outputs
    file_fragment: Optional[str] = Field(default=None, description="Text describing the attached file")
    normalized_query: Optional[str] = Field(default=None, description="Query with file content folded in")
    context: Optional[ConversationContext] = Field(default=None, description="Derived conversation context")
    intent_query: Optional[str] = Field(default=None, description="Text submitted to the intent backend")
    agent_reply: Optional[str] = Field(default=None, description="Raw intent backend reply")
    agent_envelope: Optional[Dict[str, Any]] = Field(default=None, description="Raw intent backend envelope")
    rewritten_reply: Optional[str] = Field(default=None, description="Reply after rewriting")
    rewrite_applied: Optional[bool] = Field(default=None, description="Whether the rewrite succeeded")
    response: Optional[TurnResponse] = Field(default=None, description="Assembled response")

    # Performance and recovered errors
    node_timings: Dict[str, float] = Field(default_factory=dict, description="Per-node execution times (ms)")
    errors: List[str] = Field(default_factory=list, description="Non-fatal errors encountered during processing")


def create_initial_state(
    session_id: str,
    raw_query: str = "",
    history: Optional[List[ChatMessage]] = None,
    upload: Optional[UploadedFile] = None,
    request_id: Optional[str] = None,
) -> TurnState:
    """Create initial state for a new turn."""
    return TurnState(
        session_id=session_id,
        raw_query=raw_query,
        history=history or [],
        upload=upload,
        request_id=request_id,
    )

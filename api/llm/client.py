"""
Generative model handle for the rewriting stages.

The chat model is created on first use, so a missing API key or a bad model
name surfaces as a failure of the stage that called it (and is recovered by
that stage) instead of failing request setup.
"""

from typing import Any, List, Optional

import structlog
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from libs.common.settings import Settings

logger = structlog.get_logger(__name__)


class GenerativeClient:
    """
    Lazily constructed ``ChatOpenAI`` wrapper.

    Usage:
        llm = GenerativeClient(settings)
        response = await llm.ainvoke(messages)
        text = response.content
    """

    def __init__(self, settings: Settings, chat_model: Optional[Any] = None):
        self.settings = settings
        self._llm = chat_model

    @property
    def chat_model(self) -> Any:
        if self._llm is None:
            kwargs = {
                "model": self.settings.openai_model,
                "temperature": self.settings.llm_temperature,
            }
            if self.settings.llm_max_tokens:
                kwargs["max_tokens"] = self.settings.llm_max_tokens
            self._llm = ChatOpenAI(**kwargs)
            logger.debug("Chat model initialized", model=self.settings.openai_model)
        return self._llm

    async def ainvoke(self, messages: List[BaseMessage] | str) -> Any:
        return await self.chat_model.ainvoke(messages)


def response_text(response: Any) -> str:
    """Plain text of a chat model reply, whether content is a string or a list of blocks."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "".join(parts).strip()
    if content is None:
        return ""
    return str(content).strip()

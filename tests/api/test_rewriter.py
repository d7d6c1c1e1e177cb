"""Tests for response rewriting."""

import pytest

from api.composer.prompts import NO_AGENT_REPLY
from api.models import ChatMessage, ConversationContext
from api.pipeline.rewriter import build_context_block, rewrite_response


class TestBuildContextBlock:

    def test_empty_context_renders_nothing(self):
        assert build_context_block(None) == ""
        assert build_context_block(ConversationContext()) == ""

    def test_renders_all_sections(self):
        context = ConversationContext(
            summary="User asked about remittance.",
            key_topics=["remittance", "fees"],
            user_preferences={"language": "Tamil"},
            recent_messages=[ChatMessage(role="user", message="fees?")],
        )
        block = build_context_block(context)
        assert block.startswith("**CONVERSATION CONTEXT**:\n")
        assert "Summary: User asked about remittance." in block
        assert "Key topics: remittance, fees" in block
        assert "User preferences: language: Tamil" in block
        assert "[user] fees?" in block
        assert block.endswith("\n\n")


class TestRewriteResponse:

    @pytest.mark.asyncio
    async def test_rewrites_reply(self, make_llm, settings):
        llm = make_llm("  Sending money to Bangladesh costs $3.  ")

        result = await rewrite_response(llm, "fees?", ConversationContext(), "Remittance fees start at $3.", settings)

        assert result.rewritten is True
        assert result.text == "Sending money to Bangladesh costs $3."
        user_prompt = llm.ainvoke.await_args.args[0][-1].content
        assert "**DRAFT REPLY**: Remittance fees start at $3." in user_prompt

    @pytest.mark.asyncio
    async def test_missing_agent_reply_uses_sentinel(self, make_llm, settings):
        llm = make_llm("You can block your card in the POSB app.")

        result = await rewrite_response(llm, "block card", None, "", settings)

        assert result.rewritten is True
        user_prompt = llm.ainvoke.await_args.args[0][-1].content
        assert f"**DRAFT REPLY**: {NO_AGENT_REPLY}" in user_prompt

    @pytest.mark.asyncio
    async def test_context_is_included(self, make_llm, settings):
        llm = make_llm("ok")
        context = ConversationContext(summary="User works in construction.")

        await rewrite_response(llm, "q", context, "a", settings)

        user_prompt = llm.ainvoke.await_args.args[0][-1].content
        assert user_prompt.startswith("**CONVERSATION CONTEXT**:\nSummary: User works in construction.")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ["", "   ", ConnectionError("upstream closed")])
    async def test_failure_returns_agent_reply(self, make_llm, settings, reply):
        result = await rewrite_response(make_llm(reply), "fees?", None, "Remittance fees start at $3.", settings)

        assert result.rewritten is False
        assert result.text == "Remittance fees start at $3."
        assert result.error

    @pytest.mark.asyncio
    async def test_failure_with_no_agent_reply_returns_empty(self, make_llm, settings):
        result = await rewrite_response(make_llm(RuntimeError("boom")), "q", None, "", settings)
        assert result.rewritten is False
        assert result.text == ""

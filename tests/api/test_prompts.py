"""Tests for the versioned prompt policy registry."""

import pytest

from api.composer.prompts import (
    NO_AGENT_REPLY,
    PROMPT_POLICIES,
    get_prompt_policy,
    get_prompt_template,
)


class TestPromptRegistry:

    def test_known_versions(self):
        assert set(PROMPT_POLICIES) >= {"v1", "v2"}
        assert get_prompt_policy("v2").version == "v2"

    def test_unknown_version_raises(self):
        with pytest.raises(ValueError, match="Unknown prompt policy"):
            get_prompt_policy("v99")

    def test_get_template_by_name(self):
        assert get_prompt_template("response_rewrite", "v1") is PROMPT_POLICIES["v1"].response_rewrite

    @pytest.mark.parametrize("version", ["v1", "v2"])
    def test_context_enhancement_formats(self, version):
        messages = get_prompt_template("context_enhancement", version).format_messages(
            canonical_language="English",
            transcript="[user] hello",
            previous_assistant_message="How can I help?",
            query="idk",
        )
        assert len(messages) == 2
        assert "English" in messages[0].content
        assert "CURRENT QUERY**: idk" in messages[1].content

    def test_v2_context_enhancement_keeps_json_example_and_rules(self):
        system = get_prompt_template("context_enhancement", "v2").format_messages(
            canonical_language="English",
            transcript="",
            previous_assistant_message="(none)",
            query="q",
        )[0].content
        assert '{"summary": "...", "keyTopics": ["..."]' in system
        assert "Never from messages tagged [assistant]" in system
        assert "NEVER be identical to the previous assistant message" in system

    @pytest.mark.parametrize("version", ["v1", "v2"])
    def test_response_rewrite_formats(self, version):
        messages = get_prompt_template("response_rewrite", version).format_messages(
            institution_name="POSB",
            locale="Singapore",
            no_reply_sentinel=NO_AGENT_REPLY,
            context_block="",
            query="How do I block my card?",
            agent_reply=NO_AGENT_REPLY,
        )
        assert "POSB" in messages[0].content
        assert messages[1].content.startswith("**USER QUERY**: How do I block my card?")
        assert NO_AGENT_REPLY in messages[1].content

    def test_v2_rewrite_policy_sections(self):
        system = get_prompt_template("response_rewrite", "v2").format_messages(
            institution_name="POSB",
            locale="Singapore",
            no_reply_sentinel=NO_AGENT_REPLY,
            context_block="",
            query="q",
            agent_reply="a",
        )[0].content
        for section in ("**LANGUAGE**", "**READABILITY**", "**FIDELITY**", "**SCOPE**", "**QUESTIONS**", "**NEVER REFUSE**"):
            assert section in system
        assert "[POSB website](https://example.com)" in system

    def test_query_translation_formats(self):
        messages = get_prompt_template("query_translation", "v2").format_messages(
            canonical_language="English", query="எனது அட்டை தொலைந்தது"
        )
        assert messages[1].content == "Current query: எனது அட்டை தொலைந்தது"

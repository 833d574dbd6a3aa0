"""
Tests for instruction template synthesis.
"""

from unittest.mock import AsyncMock

import pytest

from batch.templates import (
    LEGACY_SYSTEM_PROMPT,
    RULE_LEAD_IN,
    RULE_SYSTEM_PROMPT,
    TemplateMode,
    TemplateSynthesizer,
    build_discovery_instruction,
    build_legacy_prompt,
    build_rule_prompt,
    placeholder_for,
)


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.complete = AsyncMock(return_value="  Translate {filePath}  \n")
    return mock


def make_synthesizer(transport, **kwargs):
    return TemplateSynthesizer(
        transport,
        api_config={"model": "test/model"},
        options={"language": "German"},
        initial_delay=0,
        **kwargs,
    )


class TestPrompts:
    """Prompt builders."""

    def test_legacy_prompt_lists_files(self):
        prompt = build_legacy_prompt("translate comments", ["a.py", "b.py"])

        assert "Request: translate comments" in prompt
        assert "Files (2 in total):\na.py\nb.py" in prompt
        assert "{filePath}" in prompt

    def test_preview_truncated(self):
        files = [f"f{i}.py" for i in range(15)]

        prompt = build_rule_prompt("lint", files)

        assert "f9.py" in prompt
        assert "f10.py" not in prompt
        assert "... and 5 more files" in prompt
        assert "Processing rule: lint" in prompt

    def test_discovery_instruction(self):
        text = build_discovery_instruction("all ts files", "/work/app")

        assert "Discovery rule: all ts files" in text
        assert "Project root: /work/app" in text
        assert "JSON array" in text

    def test_placeholder_for(self):
        assert placeholder_for(TemplateMode.RULE) == "{{file}}"
        assert placeholder_for(TemplateMode.LEGACY) == "{filePath}"


class TestSynthesize:
    """Tests for TemplateSynthesizer.synthesize()."""

    @pytest.mark.asyncio
    async def test_legacy_result_stripped(self, transport):
        template = await make_synthesizer(transport).synthesize(
            "translate", ["a.py"], TemplateMode.LEGACY
        )

        assert template == "Translate {filePath}"
        config, prompt, system_prompt, options = transport.complete.await_args.args
        assert config == {"model": "test/model"}
        assert "Request: translate" in prompt
        assert system_prompt == LEGACY_SYSTEM_PROMPT
        assert options == {"language": "German"}

    @pytest.mark.asyncio
    async def test_rule_template_kept(self, transport):
        transport.complete.return_value = "Add docstrings to {{file}}"

        template = await make_synthesizer(transport).synthesize(
            "docstrings", ["a.py"], TemplateMode.RULE
        )

        assert template == "Add docstrings to {{file}}"
        assert transport.complete.await_args.args[2] == RULE_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_rule_template_without_placeholder_gets_lead_in(self, transport):
        transport.complete.return_value = "Add docstrings"

        template = await make_synthesizer(transport).synthesize(
            "docstrings", ["a.py"], TemplateMode.RULE
        )

        assert template == RULE_LEAD_IN + "Add docstrings"

    @pytest.mark.asyncio
    async def test_legacy_without_placeholder_left_alone(self, transport):
        transport.complete.return_value = "Translate the file"

        template = await make_synthesizer(transport).synthesize(
            "translate", ["a.py"], TemplateMode.LEGACY
        )

        assert template == "Translate the file"

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, transport):
        transport.complete.side_effect = [ConnectionError("a"), "Fix {filePath}"]

        template = await make_synthesizer(transport).synthesize(
            "fix", ["a.py"], TemplateMode.LEGACY
        )

        assert template == "Fix {filePath}"
        assert transport.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_legacy_fallback_after_exhausted_retries(self, transport):
        transport.complete.side_effect = RuntimeError("model down")

        template = await make_synthesizer(transport).synthesize(
            "translate comments", ["a.py"], TemplateMode.LEGACY
        )

        assert template == "translate comments"
        assert transport.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_rule_fallback(self, transport):
        transport.complete.side_effect = RuntimeError("model down")

        template = await make_synthesizer(transport, max_retries=1).synthesize(
            "add tests", ["a.py"], TemplateMode.RULE
        )

        assert template == "Apply the following processing to {{file}}: add tests"
        assert transport.complete.await_count == 1

"""
文稿增强集成测试 - 分析 → 改写 → TTS排版
"""
import json
import pytest

from content.script_enhancer import ScriptEnhancer, EnhancementState
from utils.errors import ParseError, ProviderError, ValidationError

ANALYSIS = json.dumps({
    "scores": {"accuracy": 88, "hook_strength": 62, "retention_tactics": 70},
    "feedback": {"accuracy": "Dates check out", "hook_strength": "Open on the river",
                 "retention_tactics": "Add an open loop"},
    "philosopher_insights": [{"philosopher": "Marcus Aurelius", "insight": "Acceptance of fate",
                              "application": "Frame the crossing as fate"}],
    "improvement_suggestions": ["Start in media res", "End act one on a question"]
})

REWRITTEN = "Rome fell. Caesar died."


def _enhancer(config_manager, fake_llm_factory, formatted_chunks=None, **overrides):
    responses = {'script_analysis': ANALYSIS, 'script_rewrite': REWRITTEN}
    responses.update(overrides)
    streams = {'tts_formatting': formatted_chunks or ["Rome fell.\n", "\nCaesar died."]}
    llm = fake_llm_factory(responses=responses, streams=streams)
    return ScriptEnhancer(config_manager, llm), llm


class TestScriptEnhancer:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_full_pipeline(self, config_manager, fake_llm_factory, sample_script):
        enhancer, llm = _enhancer(config_manager, fake_llm_factory)

        result = await enhancer.run(sample_script)

        assert llm.tasks() == ['script_analysis', 'script_rewrite', 'tts_formatting']
        assert result.analysis.scores.overall == 73
        assert result.rewritten == REWRITTEN
        assert result.formatted == "Rome fell.\n\nCaesar died."
        assert result.words_preserved
        assert result.rewritten_word_count == result.formatted_word_count == 4
        assert enhancer.state == EnhancementState.COMPLETE

        rewrite_prompt = llm.calls[1]['prompt']
        assert "Start in media res" in rewrite_prompt
        assert sample_script in rewrite_prompt

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_events_sequence(self, config_manager, fake_llm_factory, sample_script):
        enhancer, _ = _enhancer(config_manager, fake_llm_factory)

        events = [event async for event in enhancer.events(sample_script)]

        stages = [e.state for e in events if e.type == "stage"]
        assert stages == [EnhancementState.ANALYZING, EnhancementState.REWRITING, EnhancementState.FORMATTING]
        assert [e.text for e in events if e.type == "progress"] == ["Rome fell.\n", "Rome fell.\n\nCaesar died."]
        assert events[-1].type == "complete"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_changed_words_are_flagged(self, config_manager, fake_llm_factory, sample_script):
        enhancer, _ = _enhancer(config_manager, fake_llm_factory, formatted_chunks=["Rome fell.\n\nBrutus died."])

        result = await enhancer.run(sample_script)

        assert not result.words_preserved
        assert "Caesar" in result.preservation_detail

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rewrite_length_delta(self, config_manager, fake_llm_factory, sample_script):
        enhancer, _ = _enhancer(config_manager, fake_llm_factory)
        result = await enhancer.run(sample_script)
        assert result.rewrite_length_delta == pytest.approx((4 - result.original_word_count) / result.original_word_count)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_short_script_rejected_before_any_call(self, config_manager, fake_llm_factory):
        enhancer, llm = _enhancer(config_manager, fake_llm_factory)

        with pytest.raises(ValidationError):
            await enhancer.run("Too short.")
        assert llm.calls == []
        assert enhancer.state == EnhancementState.IDLE

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unparseable_analysis_resets_to_idle(self, config_manager, fake_llm_factory, sample_script):
        enhancer, llm = _enhancer(config_manager, fake_llm_factory, script_analysis="Great script!")

        with pytest.raises(ParseError):
            await enhancer.run(sample_script)
        assert enhancer.state == EnhancementState.IDLE
        assert llm.tasks() == ['script_analysis']

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rewrite_failure_surfaces_as_error_event(self, config_manager, fake_llm_factory, sample_script):
        enhancer, _ = _enhancer(config_manager, fake_llm_factory,
                                script_rewrite=ProviderError("text-generation", "overloaded", 529))

        events = [event async for event in enhancer.events(sample_script)]

        assert events[-1].type == "error"
        assert events[-1].error_kind == "provider"
        assert events[-1].state == EnhancementState.IDLE
        assert isinstance(events[-1].exception, ProviderError)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_formatting_stream_failure(self, config_manager, fake_llm_factory, sample_script):
        llm = fake_llm_factory(
            responses={'script_analysis': ANALYSIS, 'script_rewrite': REWRITTEN},
            streams={'tts_formatting': ["Rome ", "fell.", " Caesar"]},
            fail_stream_after=1,
        )
        enhancer = ScriptEnhancer(config_manager, llm)

        with pytest.raises(ProviderError):
            await enhancer.run(sample_script)
        assert enhancer.state == EnhancementState.IDLE

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rewrite_requires_analysis(self, config_manager, fake_llm_factory, sample_script):
        enhancer, _ = _enhancer(config_manager, fake_llm_factory)
        with pytest.raises(ValidationError):
            await enhancer.rewrite(sample_script, None)

"""
文稿增强编排器 - 质量分析 → 改写 → TTS排版 三阶段

状态: idle → analyzing → rewriting → formatting → complete
任一阶段失败都会回到 idle，已产生的中间结果全部丢弃。
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Optional

from core.config_manager import ConfigManager
from content.prompt_templates import (
    script_quality_prompt, rewrite_script_prompt, tts_format_prompt,
    SCRIPT_EDITOR_SYSTEM_PROMPT, TTS_SYSTEM_PROMPT
)
from utils.errors import ValidationError
from utils.llm_client_manager import LLMClientManager
from utils.robust_output_parser import RobustJsonOutputParser
from utils.stream_aggregator import StreamEvent, StreamingTextAggregator, EVENT_PROGRESS, EVENT_ERROR
from utils.structured_output_models import ScriptAnalysis, EnhancedScript
from utils.word_count import count_words, compare_word_sequences, WordPreservationReport


class EnhancementState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    REWRITING = "rewriting"
    FORMATTING = "formatting"
    COMPLETE = "complete"


@dataclass
class EnhancementEvent:
    """面向界面的增强事件：stage / progress / complete / error"""
    type: str
    state: EnhancementState
    text: str = ""
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    exception: Optional[Exception] = field(default=None, repr=False)


class ScriptEnhancer:
    """
    文稿增强编排器

    - analyzing: script_analysis 任务，JSON → ScriptAnalysis
    - rewriting: script_rewrite 任务，字数目标由提示词约束（±15%），这里只记录偏差
    - formatting: tts_formatting 任务，流式纯文本；结束后逐词核对
    """

    def __init__(self, config_manager: ConfigManager,
                 llm_manager: Optional[LLMClientManager] = None):
        self.config = config_manager
        self.pipeline = config_manager.get_pipeline_config()
        self.llm_manager = llm_manager or LLMClientManager(config_manager)
        self.parser = RobustJsonOutputParser()
        self.logger = logging.getLogger('storyboard.content')
        self._state = EnhancementState.IDLE

    @property
    def state(self) -> EnhancementState:
        return self._state

    def _validate(self, script: str, min_chars: int, label: str):
        if not isinstance(script, str) or not script.strip():
            raise ValidationError("Script text is required")
        if len(script) < min_chars:
            raise ValidationError(f"Script is too short to {label} (minimum {min_chars} characters)")

    async def analyze(self, script: str) -> ScriptAnalysis:
        """质量分析：三项评分 + 反馈 + 哲学视角 + 改进建议"""
        self._validate(script, self.pipeline.min_script_chars, "analyze")
        text = await self.llm_manager.generate_text(
            'script_analysis', script_quality_prompt(script), system_prompt=SCRIPT_EDITOR_SYSTEM_PROMPT
        )
        analysis = self.parser.parse_into(text, ScriptAnalysis)
        self.logger.info(f"📊 Script scored {analysis.scores.overall}/100")
        return analysis

    async def rewrite(self, script: str, analysis: ScriptAnalysis) -> str:
        if analysis is None:
            raise ValidationError("Analysis results are required")
        self._validate(script, 1, "rewrite")

        prompt = rewrite_script_prompt(
            script,
            json.loads(analysis.model_dump_json(exclude={'generated_at'})),
            count_words(script),
            self.pipeline.rewrite_length_tolerance,
        )
        rewritten = (await self.llm_manager.generate_text(
            'script_rewrite', prompt, system_prompt=SCRIPT_EDITOR_SYSTEM_PROMPT
        )).strip()
        return rewritten

    async def stream_formatting(self, script: str) -> AsyncIterator[StreamEvent]:
        """
        TTS排版（流式）

        Yields:
            progress 事件（累积文本），最后一个 complete（data 为完整文本）或 error 事件
        """
        try:
            self._validate(script, self.pipeline.min_tts_chars, "format")
        except ValidationError as e:
            yield StreamEvent.failure(e)
            return

        fragments = self.llm_manager.stream_text(
            'tts_formatting', tts_format_prompt(script), system_prompt=TTS_SYSTEM_PROMPT
        )
        async for event in StreamingTextAggregator().collect_text(fragments):
            yield event

    def verify_preservation(self, original: str, formatted: str) -> WordPreservationReport:
        report = compare_word_sequences(original, formatted)
        if report.identical:
            self.logger.info(f"✅ TTS formatting preserved all {report.original_count} words")
        else:
            self.logger.warning(f"⚠️ TTS formatting changed the wording: {report.describe()}")
        return report

    def rewrite_length_delta(self, original: str, rewritten: str) -> float:
        original_count = count_words(original)
        if original_count == 0:
            return 0.0
        delta = (count_words(rewritten) - original_count) / original_count
        tolerance = self.pipeline.rewrite_length_tolerance
        if abs(delta) > tolerance:
            self.logger.warning(f"⚠️ Rewrite length off target by {delta:+.1%} (tolerance ±{tolerance:.0%})")
        return delta

    async def events(self, script: str) -> AsyncIterator[EnhancementEvent]:
        """完整三阶段，产出阶段切换与排版进度事件；失败时产出 error 事件并回到 idle"""
        try:
            self._state = EnhancementState.ANALYZING
            yield EnhancementEvent(type="stage", state=self._state)
            analysis = await self.analyze(script)

            self._state = EnhancementState.REWRITING
            yield EnhancementEvent(type="stage", state=self._state, data=analysis)
            rewritten = await self.rewrite(script, analysis)
            delta = self.rewrite_length_delta(script, rewritten)

            self._state = EnhancementState.FORMATTING
            yield EnhancementEvent(type="stage", state=self._state, data=rewritten)

            formatted = None
            async for event in self.stream_formatting(rewritten):
                if event.type == EVENT_PROGRESS:
                    yield EnhancementEvent(type="progress", state=self._state, text=event.text)
                elif event.type == EVENT_ERROR:
                    raise event.to_exception()
                else:
                    formatted = event.data

            report = self.verify_preservation(rewritten, formatted)
            result = EnhancedScript(
                original=script,
                analysis=analysis,
                rewritten=rewritten,
                formatted=formatted,
                original_word_count=count_words(script),
                rewritten_word_count=count_words(rewritten),
                formatted_word_count=count_words(formatted),
                rewrite_length_delta=delta,
                words_preserved=report.identical,
                preservation_detail=report.describe(),
            )
        except Exception as e:
            self._state = EnhancementState.IDLE
            self.logger.error(f"❌ Script enhancement failed: {e}")
            yield EnhancementEvent(
                type="error", state=self._state, error=str(e) or type(e).__name__,
                error_kind=getattr(e, 'kind', 'provider'), exception=e,
            )
            return

        self._state = EnhancementState.COMPLETE
        self.logger.info(f"✅ Script enhancement complete: {result.summary()}")
        yield EnhancementEvent(type="complete", state=self._state, data=result)

    async def run(self, script: str) -> EnhancedScript:
        """
        执行全部三个阶段

        Raises:
            PipelineError: 任一阶段失败（此时状态已回到 idle）
        """
        async for event in self.events(script):
            if event.type == "error":
                raise event.exception
            if event.type == "complete":
                return event.data
        raise RuntimeError("Enhancement stream ended without a result")

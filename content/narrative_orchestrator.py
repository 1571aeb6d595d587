"""
历史叙事编排器 - 研究 → 三幕大纲 → 终稿

状态: idle → researching → outlining → scripting → done
阶段严格串行，失败后回到 idle，不支持从中间阶段恢复。
"""
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from core.config_manager import ConfigManager
from content.prompt_templates import (
    SYSTEM_PROMPT, RESEARCH_DISCOVERY_SYSTEM_PROMPT,
    research_query, research_structuring_prompt, narrative_outline_prompt, final_script_prompt
)
from utils.errors import ProviderError, ValidationError
from utils.llm_client_manager import LLMClientManager
from utils.research_client import ResearchClient
from utils.robust_output_parser import RobustJsonOutputParser
from utils.structured_output_models import (
    HistoricalTopic, HistoricalResearch, NarrativeOutline, Script
)
from utils.word_count import count_words, estimate_duration_minutes, script_token_budget


class NarrativeState(str, Enum):
    IDLE = "idle"
    RESEARCHING = "researching"
    OUTLINING = "outlining"
    SCRIPTING = "scripting"
    DONE = "done"


@dataclass
class NarrativeResult:
    """叙事编排产物"""
    topic: HistoricalTopic
    research: HistoricalResearch
    outline: NarrativeOutline
    script: Script
    metadata: Dict[str, Any] = field(default_factory=dict)


StateCallback = Callable[[NarrativeState], None]


def _describe_validation_error(error: SchemaValidationError) -> str:
    first = error.errors()[0]
    location = '.'.join(str(part) for part in first.get('loc', ())) or 'input'
    return f"{location}: {first.get('msg', 'invalid value')}"


class NarrativeOrchestrator:
    """
    历史叙事编排器

    1. researching: 两次研究接口调用（开放检索 → 结构化JSON）
    2. outlining: narrative_outline 任务生成三幕大纲
    3. scripting: final_script 任务按目标时长生成旁白终稿
    """

    def __init__(self, config_manager: ConfigManager,
                 llm_manager: Optional[LLMClientManager] = None,
                 research_client: Optional[ResearchClient] = None):
        self.config = config_manager
        self.pipeline = config_manager.get_pipeline_config()
        self.llm_manager = llm_manager or LLMClientManager(config_manager)
        self.research_client = research_client or ResearchClient(config_manager)
        self.parser = RobustJsonOutputParser()
        self.logger = logging.getLogger('storyboard.content')
        self._state = NarrativeState.IDLE
        self._on_state: Optional[StateCallback] = None

    @property
    def state(self) -> NarrativeState:
        return self._state

    def _enter(self, state: NarrativeState):
        self._state = state
        self.logger.info(f"📍 Narrative stage: {state.value}")
        if self._on_state:
            self._on_state(state)

    @staticmethod
    def validate_params(params: Union[HistoricalTopic, Dict[str, Any]]) -> HistoricalTopic:
        """校验选题参数（标题非空、枚举合法、时长为正），不发起网络请求"""
        if isinstance(params, HistoricalTopic):
            return params
        if not isinstance(params, dict):
            raise ValidationError("Topic parameters are required")

        data = dict(params)
        # 兼容驼峰字段名
        for camel, snake in (('contentType', 'content_type'), ('targetDuration', 'target_duration')):
            if camel in data and snake not in data:
                data[snake] = data.pop(camel)

        try:
            return HistoricalTopic.model_validate(data)
        except SchemaValidationError as e:
            raise ValidationError(_describe_validation_error(e)) from e

    async def research(self, topic: HistoricalTopic) -> HistoricalResearch:
        """两次研究调用：先取得自由文本研究发现，再要求结构化JSON"""
        discovery = self.config.get('research.discovery', {})
        structuring = self.config.get('research.structuring', {})

        findings = await self.research_client.complete(
            [
                {"role": "system", "content": RESEARCH_DISCOVERY_SYSTEM_PROMPT},
                {"role": "user", "content": research_query(topic.title, topic.era.value, topic.content_type.value)},
            ],
            temperature=discovery.get('temperature', 0.2),
            max_tokens=discovery.get('max_tokens', 3000),
            return_citations=True,
        )
        self.logger.info(f"🔎 Research findings received: {len(findings)} chars")

        structured = await self.research_client.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": research_structuring_prompt(
                    topic.title, topic.era.value, topic.content_type.value, findings)},
            ],
            temperature=structuring.get('temperature', 0.3),
            max_tokens=structuring.get('max_tokens', 8000),
        )

        research = self.parser.parse_into(structured, HistoricalResearch)
        self.logger.info(f"📚 Research structured: {len(research.timeline)} timeline events, "
                         f"{len(research.key_figures)} key figures")
        return research

    async def outline(self, topic: HistoricalTopic, research: HistoricalResearch) -> NarrativeOutline:
        prompt = narrative_outline_prompt(topic.title, research.model_dump_json(indent=2), topic.tone.value)
        text = await self.llm_manager.generate_text('narrative_outline', prompt, system_prompt=SYSTEM_PROMPT)
        outline = self.parser.parse_into(text, NarrativeOutline)
        self.logger.info(f"🧭 Outline ready: {outline.dramatic_question or outline.narrative_theme}")
        return outline

    def script_token_budget(self, target_minutes: float) -> int:
        return script_token_budget(
            target_minutes,
            words_per_minute=self.pipeline.words_per_minute,
            tokens_per_word=self.pipeline.script_tokens_per_word,
            min_tokens=self.pipeline.script_min_tokens,
            max_tokens=self.pipeline.script_max_tokens,
        )

    async def write_script(self, topic: HistoricalTopic, research: HistoricalResearch,
                           outline: NarrativeOutline) -> Script:
        max_tokens = self.script_token_budget(topic.target_duration)
        prompt = final_script_prompt(
            topic.title,
            research.model_dump_json(indent=2),
            outline.model_dump_json(indent=2),
            topic.tone.value,
            topic.era.value,
            topic.target_duration,
            self.pipeline.words_per_minute,
        )
        content = (await self.llm_manager.generate_text(
            'final_script', prompt, system_prompt=SYSTEM_PROMPT, max_tokens=max_tokens
        )).strip()
        if not content:
            raise ProviderError("text-generation", "Model returned empty script content")

        return Script(
            content=content,
            word_count=count_words(content),
            topic=topic.title,
            tone=topic.tone,
            era=topic.era,
            target_duration=topic.target_duration,
        )

    def script_metadata(self, script: Script) -> Dict[str, Any]:
        target_words = round(script.target_duration * self.pipeline.words_per_minute)
        tolerance = self.pipeline.final_script_tolerance
        within = abs(script.word_count - target_words) <= target_words * tolerance
        if not within:
            self.logger.warning(f"⚠️ Script length {script.word_count} words is outside "
                                f"±{tolerance:.0%} of target {target_words}")
        return {
            'word_count': script.word_count,
            'target_word_count': target_words,
            'estimated_duration_minutes': estimate_duration_minutes(
                script.word_count, self.pipeline.words_per_minute),
            'within_tolerance': within,
            'tone': script.tone.value,
            'era': script.era.value,
        }

    async def run(self, params: Union[HistoricalTopic, Dict[str, Any]],
                  on_state: Optional[StateCallback] = None) -> NarrativeResult:
        """
        执行完整的叙事流水线

        Raises:
            ValidationError: 参数不合法（未发起任何请求）
            ProviderError / ParseError: 任一阶段失败，状态回到 idle
        """
        topic = self.validate_params(params)
        self._on_state = on_state

        try:
            self._enter(NarrativeState.RESEARCHING)
            research = await self.research(topic)

            self._enter(NarrativeState.OUTLINING)
            outline = await self.outline(topic, research)

            self._enter(NarrativeState.SCRIPTING)
            script = await self.write_script(topic, research, outline)
            metadata = self.script_metadata(script)
            self._enter(NarrativeState.DONE)
        except Exception:
            self._enter(NarrativeState.IDLE)
            raise
        finally:
            self._on_state = None

        self.logger.info(f"✅ Narrative complete: {script.word_count} words for '{topic.title}'")
        return NarrativeResult(topic=topic, research=research, outline=outline,
                               script=script, metadata=metadata)

    @staticmethod
    def serialize(result: NarrativeResult) -> Dict[str, Any]:
        return {
            'topic': json.loads(result.topic.model_dump_json()),
            'research': json.loads(result.research.model_dump_json()),
            'outline': json.loads(result.outline.model_dump_json()),
            'script': json.loads(result.script.model_dump_json()),
            'metadata': result.metadata,
        }

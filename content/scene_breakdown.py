"""
分镜拆解流水线 - 将旁白文稿流式拆解为带视觉提示词的场景列表
"""
import logging
from typing import AsyncIterator, List, Optional

from pydantic import ValidationError as SchemaValidationError

from core.config_manager import ConfigManager
from content.prompt_templates import scene_breakdown_prompt, SCENE_BREAKDOWN_SYSTEM_PROMPT
from utils.errors import ParseError, ValidationError
from utils.llm_client_manager import LLMClientManager
from utils.stream_aggregator import StreamEvent, StreamingTextAggregator, EVENT_COMPLETE
from utils.structured_output_models import Scene, SceneBreakdownOutput
from utils.word_count import count_words, estimate_scenes, breakdown_token_budget

TASK_TYPE = "scene_breakdown"


class SceneBreakdownPipeline:
    """
    分镜拆解

    流程：
    1. 校验文稿长度（不足时不发起网络请求）
    2. 按 7秒/场景、150词/分钟 估算目标场景数
    3. 按场景数计算 max_tokens 预算
    4. 单次流式请求，经聚合器产出 progress / complete / error 事件
    """

    def __init__(self, config_manager: ConfigManager,
                 llm_manager: Optional[LLMClientManager] = None):
        self.config = config_manager
        self.pipeline = config_manager.get_pipeline_config()
        self.llm_manager = llm_manager or LLMClientManager(config_manager)
        self.logger = logging.getLogger('storyboard.content')

    def validate_script(self, script: str) -> str:
        if not isinstance(script, str) or not script.strip():
            raise ValidationError("Script text is required")
        if len(script) < self.pipeline.min_script_chars:
            raise ValidationError(
                f"Script is too short. Please provide at least {self.pipeline.min_script_chars} characters."
            )
        return script

    def target_scene_count(self, script: str) -> int:
        return estimate_scenes(script, self.pipeline.seconds_per_scene, self.pipeline.words_per_minute)

    def token_budget(self, scene_count: int) -> int:
        return breakdown_token_budget(
            scene_count,
            tokens_per_scene=self.pipeline.breakdown_tokens_per_scene,
            buffer=self.pipeline.breakdown_token_buffer,
            min_tokens=self.pipeline.breakdown_min_tokens,
            max_tokens=self.pipeline.breakdown_max_tokens,
        )

    async def breakdown(self, script: str) -> AsyncIterator[StreamEvent]:
        """
        拆解文稿

        Yields:
            StreamEvent: 若干 progress 事件，最后一个 complete（data 为 List[Scene]）或 error 事件
        """
        try:
            self.validate_script(script)
        except ValidationError as e:
            self.logger.warning(f"⚠️ Breakdown rejected: {e}")
            yield StreamEvent.failure(e)
            return

        target = self.target_scene_count(script)
        max_tokens = self.token_budget(target)
        self.logger.info(f"🎬 Scene breakdown: {count_words(script)} words → "
                         f"{target} target scenes (max_tokens={max_tokens})")

        fragments = self.llm_manager.stream_text(
            TASK_TYPE,
            scene_breakdown_prompt(script, target, self.pipeline.seconds_per_scene),
            system_prompt=SCENE_BREAKDOWN_SYSTEM_PROMPT,
            max_tokens=max_tokens,
        )

        aggregator = StreamingTextAggregator(target_scene_count=target)
        async for event in aggregator.aggregate(fragments):
            if event.type != EVENT_COMPLETE:
                yield event
                continue

            try:
                scenes = self.to_scenes(event.data, aggregator.accumulated)
            except ParseError as e:
                self.logger.error(f"❌ Scene validation failed: {e}")
                yield StreamEvent.failure(e)
                return

            self.logger.info(f"✅ Generated {len(scenes)} scenes (target {target})")
            yield StreamEvent.complete(scenes, event.metadata)

    @staticmethod
    def to_scenes(raw_scenes: list, raw_text: str = "") -> List[Scene]:
        """校验为 Scene 记录，序号按位置重排为 1..N"""
        try:
            return SceneBreakdownOutput(scenes=raw_scenes).scenes
        except SchemaValidationError as e:
            raise ParseError(f"Scene data failed validation: {e.error_count()} errors", raw_text) from e

"""
分镜服务 - 面向界面/CLI的统一入口

把各编排器串到同一个会话状态上；流水线内部抛出的异常在这里
统一转换为 Result，metadata['error_kind'] 区分 validation / provider / parse。
"""
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

from core.config_manager import ConfigManager
from core.session_store import SessionStore, WorkflowStep
from content.narrative_orchestrator import NarrativeOrchestrator, NarrativeResult
from content.scene_breakdown import SceneBreakdownPipeline
from content.script_enhancer import ScriptEnhancer, EnhancementEvent
from media.image_generator import ImageGenerator
from media.image_pool import ImagePoolGenerator, PoolRunResult
from media.scene_regenerator import SceneRegenerator
from utils.enhanced_logger import EnhancedLoggerManager, setup_enhanced_logging
from utils.errors import ValidationError
from utils.llm_client_manager import LLMClientManager
from utils.research_client import ResearchClient
from utils.result_types import Result
from utils.stream_aggregator import StreamEvent, EVENT_COMPLETE, EVENT_ERROR
from utils.structured_output_models import (
    HistoricalTopic, Scene, StoryboardScene, EnhancedScript, GenerationStatus
)


class StoryboardService:
    """分镜流水线服务"""

    def __init__(self, config: Optional[ConfigManager] = None,
                 session: Optional[SessionStore] = None,
                 llm_manager: Optional[LLMClientManager] = None,
                 image_generator: Optional[ImageGenerator] = None,
                 research_client: Optional[ResearchClient] = None,
                 log_manager: Optional[EnhancedLoggerManager] = None):
        self.config = config or ConfigManager()
        self.log_manager = log_manager or setup_enhanced_logging(self.config.config)
        self.logger = self.log_manager.get_logger('service')

        config_errors = self.config.validate_config()
        if config_errors:
            self.logger.error(f"Configuration errors: {config_errors}")
            raise RuntimeError(f"Invalid configuration: {config_errors}")

        self.session = session or SessionStore()
        llm_manager = llm_manager or LLMClientManager(self.config)
        image_generator = image_generator or ImageGenerator(self.config)

        self.breakdown_pipeline = SceneBreakdownPipeline(self.config, llm_manager)
        self.image_pool = ImagePoolGenerator(self.config, image_generator)
        self.regenerator = SceneRegenerator(image_generator)
        self.enhancer = ScriptEnhancer(self.config, llm_manager)
        self.narrative = NarrativeOrchestrator(self.config, llm_manager, research_client)

        self.logger.info("StoryboardService initialized successfully")

    def _fail(self, error: Exception, operation: str, **context: Any) -> Result:
        result = Result.from_exception(error, {'operation': operation, **context})
        self.log_manager.log_error_with_context(self.logger, error, {'operation': operation, **context})
        self.session.add_error(result.error)
        return result

    # ------------------------------------------------------------------
    # 分镜拆解
    # ------------------------------------------------------------------

    async def start_breakdown(self, script: str) -> AsyncIterator[StreamEvent]:
        """流式拆解文稿；complete 事件的场景写入会话"""
        self.session.set_generating(True)
        try:
            async for event in self.breakdown_pipeline.breakdown(script):
                if event.type == EVENT_COMPLETE:
                    self.session.set_scenes(event.data)
                    self.session.set_storyboard_scenes([])
                    self.session.set_step(WorkflowStep.SCENES)
                elif event.type == EVENT_ERROR:
                    self.session.add_error(event.error)
                yield event
        finally:
            self.session.set_generating(False)

    # ------------------------------------------------------------------
    # 图像池
    # ------------------------------------------------------------------

    def estimate_image_cost(self, scene_count: Optional[int] = None, cap: Optional[int] = None) -> float:
        if scene_count is None:
            scene_count = len(self.session.state.scenes)
        return self.image_pool.estimate_cost(scene_count, cap)

    async def start_image_pool(self, scenes: Optional[Sequence[Scene]] = None,
                               cap: Optional[int] = None,
                               on_update: Optional[Callable[[List[StoryboardScene]], None]] = None,
                               seed: Optional[int] = None) -> Result[PoolRunResult]:
        """
        生成图像池并分配到全部场景

        部分失败返回 WARNING（数据可用）；只有参数错误等整体失败才返回 ERROR。
        """
        scenes = list(scenes) if scenes is not None else list(self.session.state.scenes)

        def publish(snapshot: List[StoryboardScene]):
            self.session.set_storyboard_scenes(snapshot)
            self.session.set_scene_generation_progress(self.session.storyboard_progress())
            if on_update:
                on_update(snapshot)

        self.session.set_generating(True)
        try:
            if not scenes:
                raise ValidationError("No scenes to illustrate. Run the scene breakdown first.")
            with self.log_manager.performance_tracker(self.logger, 'image_pool'):
                run = await self.image_pool.generate_pool(scenes, cap=cap, on_update=publish, seed=seed)
        except Exception as e:
            return self._fail(e, 'image_pool')
        finally:
            self.session.set_generating(False)

        metadata = run.summary()
        if run.failed_indices:
            message = f"{len(run.failed_indices)} of {len(run.pool_urls)} pooled images failed"
            self.logger.warning(f"⚠️ {message}")
            return Result.warning(run, message, metadata)
        return Result.success(run, metadata)

    # ------------------------------------------------------------------
    # 重新生成
    # ------------------------------------------------------------------

    async def regenerate_scene(self, scene_number: int, prompt: Optional[str] = None) -> Result[StoryboardScene]:
        """按序号重新生成一个场景；失败时场景保留原图并标记 error"""
        scene = self.session.get_storyboard_scene(scene_number)
        if scene is None:
            return self._fail(ValidationError(f"Scene {scene_number} does not exist"),
                              'regenerate_scene', scene_number=scene_number)

        updated = await self.regenerator.regenerate(
            scene, new_prompt=prompt, on_update=self.session.replace_storyboard_scene
        )
        self.session.set_scene_generation_progress(self.session.storyboard_progress())

        if updated.generation_status == GenerationStatus.ERROR:
            self.session.add_error(updated.error_message)
            return Result.error(updated.error_message, {
                'error_kind': 'provider', 'scene_number': scene_number, 'scene': updated,
            })
        return Result.success(updated, {'scene_number': scene_number})

    async def retry_failed_scenes(self) -> Result[List[StoryboardScene]]:
        """顺序重试全部 error 场景"""
        scenes = self.session.state.storyboard_scenes
        failed_before = sum(1 for s in scenes if s.generation_status == GenerationStatus.ERROR)
        if failed_before == 0:
            return Result.success(list(scenes), {'retried': 0, 'still_failed': 0})

        with self.log_manager.performance_tracker(self.logger, 'retry_failed_scenes'):
            updated = await self.regenerator.retry_failed(
                scenes, on_update=self.session.replace_storyboard_scene
            )
        self.session.set_storyboard_scenes(updated)

        still_failed = sum(1 for s in updated if s.generation_status == GenerationStatus.ERROR)
        metadata = {'retried': failed_before, 'still_failed': still_failed}
        if still_failed:
            return Result.warning(updated, f"{still_failed} scenes still failed after retry", metadata)
        return Result.success(updated, metadata)

    # ------------------------------------------------------------------
    # 文稿增强
    # ------------------------------------------------------------------

    async def run_enhancement_pipeline(self, script: str,
                                       on_event: Optional[Callable[[EnhancementEvent], None]] = None
                                       ) -> Result[EnhancedScript]:
        """分析 → 改写 → TTS排版；排版改动词序时返回 WARNING"""
        self.session.set_generating(True)
        try:
            result = None
            async for event in self.enhancer.events(script):
                if on_event:
                    on_event(event)
                if event.type == "error":
                    return self._fail(event.exception, 'script_enhancement')
                if event.type == "complete":
                    result = event.data
        finally:
            self.session.set_generating(False)

        current = self.session.state.script
        if current is not None and current.content == script:
            self.session.set_script(current.with_polish(result.formatted, result.analysis.improvement_suggestions))

        metadata = result.summary()
        if not result.words_preserved:
            metadata['preservation_detail'] = result.preservation_detail
            return Result.warning(result, "TTS formatting did not preserve the script wording", metadata)
        return Result.success(result, metadata)

    # ------------------------------------------------------------------
    # 历史叙事
    # ------------------------------------------------------------------

    async def run_narrative_orchestrator(self, params: Union[HistoricalTopic, Dict[str, Any]],
                                         on_state: Optional[Callable] = None) -> Result[NarrativeResult]:
        """研究 → 大纲 → 终稿，产物依次写入会话"""
        self.session.set_generating(True)
        try:
            topic = self.narrative.validate_params(params)
            self.session.set_historical_topic(topic)
            self.session.set_step(WorkflowStep.RESEARCH)
            with self.log_manager.performance_tracker(self.logger, 'narrative'):
                narrative = await self.narrative.run(topic, on_state=on_state)
        except Exception as e:
            return self._fail(e, 'narrative')
        finally:
            self.session.set_generating(False)

        self.session.set_research(narrative.research)
        self.session.set_outline(narrative.outline)
        self.session.set_script(narrative.script)
        self.session.set_step(WorkflowStep.SCRIPT)
        return Result.success(narrative, narrative.metadata)

    def reset(self):
        self.session.reset()

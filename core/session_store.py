"""
会话状态存储 - 单次工作流的内存状态（不持久化）

所有写操作都替换整个字段；更新单个分镜场景时构造新列表，
已交给调用方的列表快照不会被修改。
"""
import logging
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, List, Optional

from utils.structured_output_models import (
    HistoricalTopic, HistoricalResearch, NarrativeOutline, Script,
    Scene, StoryboardScene, GenerationStatus
)


class WorkflowStep(IntEnum):
    INPUT = 1
    RESEARCH = 2
    SCRIPT = 3
    SCENES = 4


@dataclass(frozen=True)
class SessionState:
    current_step: WorkflowStep = WorkflowStep.INPUT
    historical_topic: Optional[HistoricalTopic] = None
    research: Optional[HistoricalResearch] = None
    outline: Optional[NarrativeOutline] = None
    script: Optional[Script] = None
    scenes: List[Scene] = field(default_factory=list)
    storyboard_scenes: List[StoryboardScene] = field(default_factory=list)
    is_generating: bool = False
    errors: List[str] = field(default_factory=list)
    scene_generation_progress: float = 0.0


class SessionStore:
    """会话存储"""

    def __init__(self):
        self.logger = logging.getLogger('storyboard.service')
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    def _set(self, **changes: Any):
        self._state = replace(self._state, **changes)

    def set_historical_topic(self, topic: Optional[HistoricalTopic]):
        self._set(historical_topic=topic)

    def set_research(self, research: Optional[HistoricalResearch]):
        self._set(research=research)

    def set_outline(self, outline: Optional[NarrativeOutline]):
        self._set(outline=outline)

    def set_script(self, script: Optional[Script]):
        self._set(script=script)

    def set_scenes(self, scenes: List[Scene]):
        self._set(scenes=list(scenes))

    def set_storyboard_scenes(self, scenes: List[StoryboardScene]):
        self._set(storyboard_scenes=list(scenes))

    def update_storyboard_scene(self, scene_number: int, **updates: Any) -> Optional[StoryboardScene]:
        """按序号合并更新一个分镜场景，返回更新后的场景（找不到时返回None）"""
        updated = None
        new_scenes = []
        for scene in self._state.storyboard_scenes:
            if scene.scene_number == scene_number:
                scene = scene.model_copy(update=updates)
                updated = scene
            new_scenes.append(scene)

        if updated is None:
            self.logger.warning(f"Storyboard scene {scene_number} not found")
            return None

        self._set(storyboard_scenes=new_scenes)
        return updated

    def replace_storyboard_scene(self, scene: StoryboardScene) -> Optional[StoryboardScene]:
        """用新记录整体替换同序号的分镜场景"""
        scenes = self._state.storyboard_scenes
        positions = [i for i, s in enumerate(scenes) if s.scene_number == scene.scene_number]
        if not positions:
            self.logger.warning(f"Storyboard scene {scene.scene_number} not found")
            return None

        new_scenes = list(scenes)
        new_scenes[positions[0]] = scene
        self._set(storyboard_scenes=new_scenes)
        return scene

    def get_storyboard_scene(self, scene_number: int) -> Optional[StoryboardScene]:
        for scene in self._state.storyboard_scenes:
            if scene.scene_number == scene_number:
                return scene
        return None

    def set_step(self, step: WorkflowStep):
        self._set(current_step=WorkflowStep(step))

    def set_generating(self, is_generating: bool):
        self._set(is_generating=is_generating)

    def set_scene_generation_progress(self, progress: float):
        self._set(scene_generation_progress=max(0.0, min(1.0, progress)))

    def add_error(self, error: str):
        self._set(errors=[*self._state.errors, error])

    def clear_errors(self):
        self._set(errors=[])

    def reset(self):
        self._state = SessionState()

    def storyboard_progress(self) -> float:
        """已进入终止状态（completed/error）的场景比例"""
        scenes = self._state.storyboard_scenes
        if not scenes:
            return 0.0
        done = sum(
            1 for s in scenes
            if s.generation_status in (GenerationStatus.COMPLETED, GenerationStatus.ERROR)
        )
        return done / len(scenes)

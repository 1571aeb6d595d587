"""
结构化输出模型 - 使用Pydantic约束LLM输出与流水线记录
"""
import re
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, validator, model_validator

from utils.word_count import count_words

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')


def _clean_text(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return _CONTROL_CHARS.sub('', value).strip()


def _now() -> datetime:
    return datetime.now()


# ---------------------------------------------------------------------------
# 枚举
# ---------------------------------------------------------------------------

class HistoricalEra(str, Enum):
    ROMAN_REPUBLIC = "Roman Republic"
    ROMAN_EMPIRE = "Roman Empire"
    MEDIEVAL = "Medieval"
    NAPOLEONIC = "Napoleonic"
    PRUSSIAN = "Prussian"
    OTHER = "Other"


class ContentType(str, Enum):
    BIOGRAPHY = "Biography"
    BATTLE = "Battle"
    CULTURE = "Culture"
    MYTHOLOGY = "Mythology"


class NarrativeTone(str, Enum):
    EPIC = "Epic"
    DOCUMENTARY = "Documentary"
    TRAGIC = "Tragic"
    EDUCATIONAL = "Educational"


class GenerationStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    ERROR = "error"


# ---------------------------------------------------------------------------
# 分镜
# ---------------------------------------------------------------------------

class Scene(BaseModel):
    """场景：一段旁白对应一个画面描述"""
    scene_number: int = Field(..., ge=1, description="场景序号，从1开始连续")
    script_snippet: str = Field(..., description="原稿中的对应片段")
    visual_prompt: str = Field(..., min_length=1, description="图像提示词")
    historical_context: Optional[str] = Field(default=None, description="历史背景说明")

    @validator('script_snippet', 'visual_prompt', 'historical_context')
    def clean_fields(cls, v):
        return _clean_text(v)

    @validator('visual_prompt')
    def prompt_not_blank(cls, v):
        if not v:
            raise ValueError("visual_prompt must not be empty")
        return v


class StoryboardScene(Scene):
    """带图像生成状态的场景"""
    image_url: Optional[str] = None
    generation_status: GenerationStatus = GenerationStatus.PENDING
    error_message: Optional[str] = None
    is_regenerating: Optional[bool] = None
    image_pool_index: Optional[int] = Field(default=None, ge=0)

    @classmethod
    def from_scene(cls, scene: Scene) -> 'StoryboardScene':
        """以pending状态物化场景"""
        return cls(**scene.model_dump())

    def as_generating(self) -> 'StoryboardScene':
        return self.model_copy(update={
            'generation_status': GenerationStatus.GENERATING,
            'error_message': None,
        })

    def as_completed(self, image_url: str, pool_index: Optional[int] = None,
                     **updates: Any) -> 'StoryboardScene':
        if not image_url:
            raise ValueError("A completed scene requires a non-empty image_url")
        return self.model_copy(update={
            'image_url': image_url,
            'image_pool_index': pool_index,
            'generation_status': GenerationStatus.COMPLETED,
            'error_message': None,
            'is_regenerating': False,
            **updates,
        })

    def as_error(self, message: str) -> 'StoryboardScene':
        return self.model_copy(update={
            'generation_status': GenerationStatus.ERROR,
            'error_message': message or "Image generation failed",
            'is_regenerating': False,
        })


class SceneBreakdownOutput(BaseModel):
    """分镜输出：保证序号与位置一致"""
    scenes: List[Scene] = Field(..., min_length=1)

    @model_validator(mode='before')
    @classmethod
    def renumber(cls, data):
        # 序号按位置重排为1..N
        if isinstance(data, dict) and isinstance(data.get('scenes'), list):
            scenes = []
            for i, item in enumerate(data['scenes']):
                if isinstance(item, dict):
                    item = {**item, 'scene_number': i + 1}
                scenes.append(item)
            data = {**data, 'scenes': scenes}
        return data


# ---------------------------------------------------------------------------
# 文稿质量分析
# ---------------------------------------------------------------------------

class ScriptScores(BaseModel):
    accuracy: float = Field(..., ge=0, le=100)
    hook_strength: float = Field(..., ge=0, le=100)
    retention_tactics: float = Field(..., ge=0, le=100)
    overall: Optional[float] = Field(default=None, ge=0, le=100)

    @model_validator(mode='after')
    def compute_overall(self):
        # overall 始终是另外三项的算术平均（四舍五入到整数）
        self.overall = round((self.accuracy + self.hook_strength + self.retention_tactics) / 3)
        return self


class ScriptFeedback(BaseModel):
    accuracy: str = ""
    hook_strength: str = ""
    retention_tactics: str = ""


class PhilosopherInsight(BaseModel):
    philosopher: str
    insight: str
    application: Optional[str] = None


class ScriptAnalysis(BaseModel):
    """质量分析结果"""
    scores: ScriptScores
    feedback: ScriptFeedback = Field(default_factory=ScriptFeedback)
    philosopher_insights: List[PhilosopherInsight] = Field(default_factory=list)
    improvement_suggestions: List[str] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_now)


# ---------------------------------------------------------------------------
# 历史研究与叙事大纲
# ---------------------------------------------------------------------------

class HistoricalTopic(BaseModel):
    """用户输入的选题"""
    title: str = Field(..., min_length=1)
    era: HistoricalEra
    content_type: ContentType
    tone: NarrativeTone
    target_duration: float = Field(..., gt=0, description="目标时长（分钟）")
    created_at: datetime = Field(default_factory=_now)

    @validator('title')
    def title_not_blank(cls, v):
        v = _clean_text(v)
        if not v:
            raise ValueError("title must not be empty")
        return v


class TimelineEvent(BaseModel):
    date: str
    event: str
    significance: str = ""


class HistoricalFigure(BaseModel):
    name: str
    role: str = ""
    description: str = ""
    notable_actions: Optional[List[str]] = None


class SensoryDetails(BaseModel):
    setting: str = ""
    weather: str = ""
    sounds: str = ""
    visuals: str = ""
    textures: str = ""


class HistoricalResearch(BaseModel):
    """研究阶段输出"""
    topic: str
    era: str
    timeline: List[TimelineEvent] = Field(default_factory=list)
    key_figures: List[HistoricalFigure] = Field(default_factory=list)
    sensory_details: SensoryDetails = Field(default_factory=SensoryDetails)
    primary_sources: List[str] = Field(default_factory=list)
    dramatic_arcs: List[str] = Field(default_factory=list)
    cultural_context: str = ""
    raw_research_data: str = ""
    generated_at: datetime = Field(default_factory=_now)

    @validator('raw_research_data', 'cultural_context', pre=True)
    def stringify(cls, v):
        # 模型偶尔返回对象或列表
        if v is None:
            return ""
        if not isinstance(v, str):
            return str(v)
        return v


class NarrativeAct(BaseModel):
    act_name: str
    scenes: List[str] = Field(default_factory=list)
    goal: str = ""
    emotional_arc: Optional[str] = None
    key_moments: Optional[List[str]] = None


class NarrativeOutline(BaseModel):
    """三幕结构大纲"""
    act1_setup: NarrativeAct
    act2_conflict: NarrativeAct
    act3_resolution: NarrativeAct
    narrative_theme: str = ""
    dramatic_question: str = ""
    generated_at: datetime = Field(default_factory=_now)

    @model_validator(mode='before')
    @classmethod
    def drop_model_timestamp(cls, data):
        # 时间戳由本地生成，忽略模型回填的占位值
        if isinstance(data, dict) and 'generated_at' in data:
            data = {k: v for k, v in data.items() if k != 'generated_at'}
        return data

    def acts(self) -> List[NarrativeAct]:
        return [self.act1_setup, self.act2_conflict, self.act3_resolution]


# ---------------------------------------------------------------------------
# 文稿
# ---------------------------------------------------------------------------

class ScriptRevision(BaseModel):
    version: int
    content: str
    improvements_applied: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)


class Script(BaseModel):
    """终稿；润色会产生新记录，旧内容进入版本历史"""
    content: str
    word_count: int
    topic: str
    tone: NarrativeTone
    era: HistoricalEra
    target_duration: float = Field(..., gt=0, description="目标时长（分钟）")
    generated_at: datetime = Field(default_factory=_now)
    version: int = 1
    polished_content: Optional[str] = None
    polished_word_count: Optional[int] = None
    improvement_history: List[ScriptRevision] = Field(default_factory=list)

    def with_polish(self, polished: str, improvements: List[str]) -> 'Script':
        """返回带新版本的副本"""
        superseded = ScriptRevision(
            version=self.version,
            content=self.polished_content or self.content,
            improvements_applied=list(improvements),
        )
        return self.model_copy(update={
            'version': self.version + 1,
            'polished_content': polished,
            'polished_word_count': count_words(polished),
            'improvement_history': [*self.improvement_history, superseded],
        })


class EnhancedScript(BaseModel):
    """三阶段增强结果"""
    original: str
    analysis: ScriptAnalysis
    rewritten: str
    formatted: str
    original_word_count: int
    rewritten_word_count: int
    formatted_word_count: int
    rewrite_length_delta: float = Field(..., description="改写后字数相对原稿的变化比例")
    words_preserved: bool
    preservation_detail: str = ""
    generated_at: datetime = Field(default_factory=_now)

    def summary(self) -> Dict[str, Any]:
        return {
            'overall_score': self.analysis.scores.overall,
            'original_words': self.original_word_count,
            'rewritten_words': self.rewritten_word_count,
            'rewrite_length_delta': round(self.rewrite_length_delta, 3),
            'words_preserved': self.words_preserved,
        }

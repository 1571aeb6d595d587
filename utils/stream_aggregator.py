"""
流式文本聚合器 - 将LLM的增量输出累积为进度事件，并在流结束时解析为结构化结果

单一消费者：片段按到达顺序追加，不会并发修改累加器。
任何失败都以终止的 error 事件返回，不会越过流边界抛出异常。
"""
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, Optional

from utils.errors import PipelineError, ParseError, ProviderError, ValidationError, RAW_EXCERPT_LENGTH
from utils.robust_output_parser import parse_tolerant_json, SHAPE_ARRAY, SHAPE_OBJECT

EVENT_PROGRESS = "progress"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"


@dataclass
class StreamEvent:
    """流事件"""
    type: str
    text: str = ""                          # progress: 截至目前的完整累积文本
    data: Any = None                        # complete: 解析结果
    error: Optional[str] = None             # error: 错误描述
    error_kind: Optional[str] = None        # validation / provider / parse
    raw_excerpt: Optional[str] = None       # error: 原始文本前500字符
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.type in (EVENT_COMPLETE, EVENT_ERROR)

    @classmethod
    def progress(cls, text: str) -> 'StreamEvent':
        return cls(type=EVENT_PROGRESS, text=text)

    @classmethod
    def complete(cls, data: Any, metadata: Optional[Dict[str, Any]] = None) -> 'StreamEvent':
        return cls(type=EVENT_COMPLETE, data=data, metadata=metadata or {})

    @classmethod
    def failure(cls, error: Exception, raw_text: str = "") -> 'StreamEvent':
        excerpt = getattr(error, 'raw_excerpt', None)
        if excerpt is None:
            excerpt = raw_text[:RAW_EXCERPT_LENGTH]
        return cls(
            type=EVENT_ERROR,
            error=str(error) or type(error).__name__,
            error_kind=getattr(error, 'kind', 'provider'),
            raw_excerpt=excerpt,
        )

    def to_exception(self) -> PipelineError:
        """error 事件还原为异常，供非流式调用方统一处理"""
        message = self.error or "Stream failed"
        if self.error_kind == ValidationError.kind:
            return ValidationError(message)
        if self.error_kind == ParseError.kind:
            return ParseError(message, self.raw_excerpt or "")
        return ProviderError("text-generation", message)

    def to_dict(self) -> Dict[str, Any]:
        """NDJSON风格的事件字典"""
        if self.type == EVENT_PROGRESS:
            return {'type': self.type, 'text': self.text}
        if self.type == EVENT_COMPLETE:
            return {'type': self.type, 'data': self.data, 'metadata': self.metadata}
        return {'type': self.type, 'error': self.error, 'error_kind': self.error_kind,
                'raw_excerpt': self.raw_excerpt}


class StreamingTextAggregator:
    """
    流式文本聚合器

    - expected_shape: "array"（场景列表）或 "object"
    - target_scene_count: 仅用于场景数组的汇总元数据
    """

    def __init__(self, expected_shape: str = SHAPE_ARRAY,
                 target_scene_count: Optional[int] = None):
        if expected_shape not in (SHAPE_ARRAY, SHAPE_OBJECT):
            raise ValueError(f"Unknown JSON shape: {expected_shape}")
        self.expected_shape = expected_shape
        self.target_scene_count = target_scene_count
        self.accumulated = ""
        self.logger = logging.getLogger('storyboard.stream')

    async def aggregate(self, fragments: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
        """消费片段流，产出 progress* 事件，最后产出一个 complete 或 error 事件"""
        self.accumulated = ""

        try:
            async for fragment in fragments:
                if not fragment:
                    continue
                self.accumulated += fragment
                yield StreamEvent.progress(self.accumulated)
        except Exception as e:
            self.logger.error(f"❌ Stream failed after {len(self.accumulated)} chars: {e}")
            yield StreamEvent.failure(e, self.accumulated)
            return

        yield self._finalize()

    def _finalize(self) -> StreamEvent:
        """流结束后解析累积文本"""
        try:
            parsed = parse_tolerant_json(self.accumulated, self.expected_shape)
        except ParseError as e:
            self.logger.error(f"❌ Failed to parse streamed output: {e}")
            self.logger.debug(f"Raw output (first {RAW_EXCERPT_LENGTH} chars): {e.raw_excerpt!r}")
            return StreamEvent.failure(e)

        if self.expected_shape == SHAPE_OBJECT:
            return StreamEvent.complete(parsed)

        if not isinstance(parsed, list) or len(parsed) == 0:
            error = ParseError("Model output did not contain a non-empty scene array", self.accumulated)
            self.logger.error(f"❌ {error}")
            return StreamEvent.failure(error)

        return StreamEvent.complete(parsed, self._scene_metadata(parsed))

    def _scene_metadata(self, scenes: list) -> Dict[str, Any]:
        snippet_lengths = [
            len(scene.get('script_snippet') or '') if isinstance(scene, dict) else 0
            for scene in scenes
        ]
        return {
            'total_scenes': len(scenes),
            'target_scene_count': self.target_scene_count,
            'average_snippet_length': sum(snippet_lengths) / len(snippet_lengths),
        }

    async def collect_text(self, fragments: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
        """纯文本流：没有JSON框架，流结束即完成"""
        self.accumulated = ""

        try:
            async for fragment in fragments:
                if not fragment:
                    continue
                self.accumulated += fragment
                yield StreamEvent.progress(self.accumulated)
        except Exception as e:
            self.logger.error(f"❌ Text stream failed after {len(self.accumulated)} chars: {e}")
            yield StreamEvent.failure(e, self.accumulated)
            return

        yield StreamEvent.complete(self.accumulated)

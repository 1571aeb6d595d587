"""
标准化Result类型 - 服务层统一返回值

流水线内部抛出 utils.errors 中的异常；服务门面把异常转换为 Result，
并在 metadata['error_kind'] 中标明 validation / provider / parse。
"""
from typing import Generic, TypeVar, Optional, Any, Dict
from dataclasses import dataclass
from enum import Enum

from utils.errors import PipelineError, RAW_EXCERPT_LENGTH

T = TypeVar('T')

class ResultStatus(Enum):
    """结果状态枚举"""
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"

@dataclass
class Result(Generic[T]):
    """
    标准化结果对象

    success 为 False 时 error 是面向用户的错误信息；
    WARNING 状态表示数据可用但存在质量问题（例如TTS排版改动了词序）。
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status: ResultStatus = ResultStatus.SUCCESS
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """创建成功结果"""
        return cls(
            success=True,
            data=data,
            status=ResultStatus.SUCCESS,
            metadata=metadata
        )

    @classmethod
    def error(cls, error: str, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """创建错误结果"""
        return cls(
            success=False,
            error=error,
            status=ResultStatus.ERROR,
            metadata=metadata
        )

    @classmethod
    def warning(cls, data: T, warning: str, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """创建警告结果"""
        return cls(
            success=True,
            data=data,
            error=warning,
            status=ResultStatus.WARNING,
            metadata=metadata
        )

    @classmethod
    def from_exception(cls, exc: Exception, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        """把流水线异常转换为错误结果，未知异常归为 provider 类"""
        meta = dict(metadata or {})
        if isinstance(exc, PipelineError):
            meta['error_kind'] = exc.kind
            raw_excerpt = getattr(exc, 'raw_excerpt', None)
            if raw_excerpt:
                meta['raw_excerpt'] = raw_excerpt[:RAW_EXCERPT_LENGTH]
            return cls.error(exc.user_message(), meta)

        meta['error_kind'] = 'provider'
        return cls.error(str(exc) or type(exc).__name__, meta)

    def is_success(self) -> bool:
        """检查是否成功"""
        return self.success

    def is_error(self) -> bool:
        """检查是否错误"""
        return not self.success

    def has_warning(self) -> bool:
        """检查是否有警告"""
        return self.status == ResultStatus.WARNING

    @property
    def error_kind(self) -> Optional[str]:
        return (self.metadata or {}).get('error_kind')

    def unwrap(self) -> T:
        """
        解包数据，如果是错误则抛出异常

        Raises:
            RuntimeError: 当结果为错误时
        """
        if self.is_error():
            raise RuntimeError(f"Result error: {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        """解包数据，如果是错误则返回默认值"""
        if self.is_error():
            return default
        return self.data

# 常用类型别名
PoolResult = Result['PoolRunResult']
SceneResult = Result['StoryboardScene']
EnhancementResult = Result['EnhancedScript']
NarrativeServiceResult = Result['NarrativeResult']

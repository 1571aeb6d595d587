"""
流水线异常体系 - 区分输入校验、上游服务和解析三类失败
"""
from typing import Optional

RAW_EXCERPT_LENGTH = 500


class PipelineError(Exception):
    """流水线异常基类"""

    kind = "pipeline"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def user_message(self) -> str:
        """面向用户的可读错误信息"""
        return self.message


class ValidationError(PipelineError):
    """输入不满足前置条件，未发起任何网络请求"""

    kind = "validation"

    def user_message(self) -> str:
        return f"Invalid input: {self.message}"


class ProviderError(PipelineError):
    """上游API返回非成功状态或格式错误的响应"""

    kind = "provider"

    def __init__(self, provider: str, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.provider} error [{self.status}]: {self.message}"
        return f"{self.provider} error: {self.message}"

    def user_message(self) -> str:
        return f"The {self.provider} service failed ({self}). Please retry."


class ParseError(PipelineError):
    """模型输出修复后仍不是合法JSON"""

    kind = "parse"

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_excerpt = (raw_text or "")[:RAW_EXCERPT_LENGTH]

    def user_message(self) -> str:
        return f"Could not read the model response ({self.message}). Please report this output."

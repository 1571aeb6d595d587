"""
鲁棒的LLM输出解析器 - 容错JSON提取与截断修复

修复规则只有一条：统计未闭合的 { / [ 并按嵌套顺序补齐闭合符，然后重试解析一次。
其余所有语法错误（未加引号的键、单引号等）都视为不可恢复。
"""
import json
import logging
import re
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError
from langchain_core.output_parsers import BaseOutputParser

from utils.errors import ParseError

T = TypeVar('T', bound=BaseModel)

SHAPE_OBJECT = "object"
SHAPE_ARRAY = "array"

_BRACKETS = {
    SHAPE_OBJECT: ('{', '}'),
    SHAPE_ARRAY: ('[', ']'),
}
_CLOSERS = {'{': '}', '[': ']'}

_FENCE_PATTERN = re.compile(r'```(?:json)?\s*\n?', re.IGNORECASE)

logger = logging.getLogger('storyboard.parser')


def strip_code_fences(text: str) -> str:
    """移除markdown代码块标记"""
    return _FENCE_PATTERN.sub('', text or '').strip()


def extract_json_candidate(text: str, expected_shape: str = SHAPE_OBJECT) -> Optional[str]:
    """按期望形状截取第一个开括号到最后一个闭括号之间的子串"""
    if expected_shape not in _BRACKETS:
        raise ValueError(f"Unknown JSON shape: {expected_shape}")

    opener, closer = _BRACKETS[expected_shape]
    start = text.find(opener)
    if start == -1:
        return None

    end = text.rfind(closer)
    if end < start:
        return text[start:]
    return text[start:end + 1]


def _unclosed_openers(text: str) -> List[str]:
    """扫描文本（忽略字符串内部），返回尚未闭合的开括号栈"""
    stack = []
    in_string = False
    escape_next = False

    for char in text:
        if escape_next:
            escape_next = False
            continue
        if char == '\\' and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _CLOSERS:
            stack.append(char)
        elif char in ('}', ']') and stack and _CLOSERS[stack[-1]] == char:
            stack.pop()

    return stack


def repair_truncated_json(text: str) -> str:
    """补齐缺失的闭合符"""
    missing = _unclosed_openers(text)
    if not missing:
        return text
    return text + ''.join(_CLOSERS[opener] for opener in reversed(missing))


def parse_tolerant_json(text: str, expected_shape: str = SHAPE_OBJECT) -> Any:
    """
    容错解析LLM输出中的JSON

    顺序：提取候选子串 -> 严格解析 -> 补齐闭合符后重试一次。

    Raises:
        ParseError: 修复后仍无法解析，携带原始文本前500字符
    """
    cleaned = strip_code_fences(text)
    candidate = extract_json_candidate(cleaned, expected_shape)
    if candidate is None:
        raise ParseError(f"No JSON {expected_shape} found in model output", text)

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as first_error:
        logger.debug(f"Strict JSON parse failed ({first_error}), attempting bracket repair")

    # 截断的输出：从第一个开括号一直取到文本末尾再补齐
    opener = _BRACKETS[expected_shape][0]
    tail = cleaned[cleaned.find(opener):]
    repaired = repair_truncated_json(tail)

    try:
        result = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON after repair: {e.msg} (line {e.lineno}, column {e.colno})", text) from e

    logger.info("⚠️ Recovered truncated JSON by closing unbalanced brackets")
    return result


class RobustJsonOutputParser(BaseOutputParser[Any]):
    """
    LangChain输出解析器封装

    - expected_shape: "object" 或 "array"
    - 解析失败时抛出 ParseError（而不是静默降级）
    """

    expected_shape: str = SHAPE_OBJECT

    def parse(self, text: str) -> Any:
        return parse_tolerant_json(text, self.expected_shape)

    def parse_into(self, text: str, model: Type[T]) -> T:
        """解析并用Pydantic模型校验"""
        data = self.parse(text)
        try:
            return model.model_validate(data)
        except SchemaValidationError as e:
            raise ParseError(f"Model output does not match {model.__name__}: {e.error_count()} validation errors", text) from e

    def get_format_instructions(self) -> str:
        if self.expected_shape == SHAPE_ARRAY:
            return "Respond with a JSON array only (no markdown code blocks, no commentary)."
        return "Respond with a JSON object only (no markdown code blocks, no commentary)."

    @property
    def _type(self) -> str:
        return "robust_json_output_parser"

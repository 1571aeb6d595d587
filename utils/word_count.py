"""
字数与时长估算 - 纯函数，无I/O

所有对外报告的字数都必须来自 count_words，保证各阶段口径一致。
"""
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

_WHITESPACE = re.compile(r'\s+')

DEFAULT_WORDS_PER_MINUTE = 150


def tokenize_words(text: str) -> List[str]:
    """按连续空白切分，丢弃空串"""
    if not text:
        return []
    return [token for token in _WHITESPACE.split(text.strip()) if token]


def count_words(text: str) -> int:
    """规范的字数统计"""
    return len(tokenize_words(text))


def estimate_duration_seconds(text: str, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> int:
    """估算旁白时长（秒）"""
    return round(count_words(text) / words_per_minute * 60)


def estimate_scenes(text: str, seconds_per_scene: float,
                    words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> int:
    """
    估算目标场景数

    非空输入至少返回1；结果随字数单调不减。
    """
    if seconds_per_scene <= 0:
        raise ValueError("seconds_per_scene must be positive")
    duration = estimate_duration_seconds(text, words_per_minute)
    scenes = round(duration / seconds_per_scene)
    if count_words(text) > 0:
        return max(1, scenes)
    return scenes


def estimate_duration_minutes(word_count: int, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> float:
    """按字数估算分钟数，保留一位小数"""
    return round(word_count / words_per_minute * 10) / 10


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(value, upper))


def breakdown_token_budget(scene_count: int, tokens_per_scene: int = 180, buffer: int = 1000,
                           min_tokens: int = 2048, max_tokens: int = 16000) -> int:
    """分镜阶段token预算：随场景数单调增长，饱和于max_tokens"""
    return int(clamp(scene_count * tokens_per_scene + buffer, min_tokens, max_tokens))


def script_token_budget(target_minutes: float, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE,
                        tokens_per_word: float = 1.5, min_tokens: int = 2048,
                        max_tokens: int = 16000) -> int:
    """终稿阶段token预算：clamp(分钟 × 150 × 1.5, 2048, 16000)"""
    target_words = target_minutes * words_per_minute
    return int(clamp(math.ceil(target_words * tokens_per_word), min_tokens, max_tokens))


@dataclass
class WordPreservationReport:
    """格式化前后逐词比对结果"""
    identical: bool
    original_count: int
    formatted_count: int
    first_mismatch_index: Optional[int] = None
    expected_excerpt: List[str] = field(default_factory=list)
    actual_excerpt: List[str] = field(default_factory=list)

    def describe(self) -> str:
        if self.identical:
            return f"All {self.original_count} words preserved"
        return (f"Word mismatch at token {self.first_mismatch_index}: "
                f"expected {self.expected_excerpt} but got {self.actual_excerpt} "
                f"({self.original_count} -> {self.formatted_count} words)")


def compare_word_sequences(original: str, formatted: str, context: int = 5) -> WordPreservationReport:
    """归一化空白后逐词比对两段文本"""
    expected = tokenize_words(original)
    actual = tokenize_words(formatted)

    if expected == actual:
        return WordPreservationReport(True, len(expected), len(actual))

    mismatch = next(
        (i for i, (a, b) in enumerate(zip(expected, actual)) if a != b),
        min(len(expected), len(actual))
    )
    return WordPreservationReport(
        identical=False,
        original_count=len(expected),
        formatted_count=len(actual),
        first_mismatch_index=mismatch,
        expected_excerpt=expected[mismatch:mismatch + context],
        actual_excerpt=actual[mismatch:mismatch + context]
    )

"""
字数与时长估算单元测试
"""
import pytest

from utils.word_count import (
    count_words, tokenize_words, estimate_duration_seconds, estimate_scenes,
    estimate_duration_minutes, breakdown_token_budget, script_token_budget,
    compare_word_sequences
)


def _words(n: int) -> str:
    return ' '.join(f"word{i}" for i in range(n))


class TestWordCount:

    @pytest.mark.unit
    def test_count_words_splits_on_whitespace_runs(self):
        assert count_words("") == 0
        assert count_words("   \n\t ") == 0
        assert count_words("Rome   fell.\n\nCaesar\tdied.") == 4
        assert tokenize_words("  a  b ") == ["a", "b"]

    @pytest.mark.unit
    def test_fifteen_hundred_words_is_ten_minutes_and_86_scenes(self):
        """1500词 → 600秒 → 86个场景（7秒/场景）"""
        text = _words(1500)
        assert count_words(text) == 1500
        assert estimate_duration_seconds(text) == 600
        assert estimate_scenes(text, 7) == 86

    @pytest.mark.unit
    def test_short_text_gets_at_least_one_scene(self):
        assert estimate_scenes("Caesar.", 7) == 1
        assert estimate_scenes("", 7) == 0

    @pytest.mark.unit
    def test_scene_estimate_is_monotonic(self):
        previous = 0
        for n in range(0, 2000, 37):
            scenes = estimate_scenes(_words(n), 7)
            assert scenes >= previous
            previous = scenes

    @pytest.mark.unit
    def test_scene_estimate_rejects_non_positive_seconds(self):
        with pytest.raises(ValueError):
            estimate_scenes("some words", 0)

    @pytest.mark.unit
    def test_duration_minutes_rounds_to_one_decimal(self):
        assert estimate_duration_minutes(1500) == 10.0
        assert estimate_duration_minutes(1234) == 8.2


class TestTokenBudgets:

    @pytest.mark.unit
    def test_breakdown_budget_clamped(self):
        assert breakdown_token_budget(1) == 2048
        assert breakdown_token_budget(50) == 50 * 180 + 1000
        assert breakdown_token_budget(500) == 16000

    @pytest.mark.unit
    def test_breakdown_budget_monotonic(self):
        budgets = [breakdown_token_budget(n) for n in range(0, 200)]
        assert budgets == sorted(budgets)

    @pytest.mark.unit
    def test_script_budget(self):
        assert script_token_budget(1) == 2048
        assert script_token_budget(10) == 2250
        assert script_token_budget(60) == 13500
        assert script_token_budget(120) == 16000


class TestWordPreservation:

    @pytest.mark.unit
    def test_line_breaks_do_not_change_words(self):
        report = compare_word_sequences("Rome fell. Caesar died.", "Rome fell.\n\nCaesar died.")
        assert report.identical
        assert report.original_count == 4

    @pytest.mark.unit
    def test_reports_first_mismatch(self):
        report = compare_word_sequences("Rome fell. Caesar died.", "Rome fell. Brutus died.")
        assert not report.identical
        assert report.first_mismatch_index == 2
        assert report.expected_excerpt[0] == "Caesar"
        assert report.actual_excerpt[0] == "Brutus"
        assert "Caesar" in report.describe()

    @pytest.mark.unit
    def test_reports_dropped_tail(self):
        report = compare_word_sequences("Rome fell. Caesar died.", "Rome fell.")
        assert not report.identical
        assert report.first_mismatch_index == 2
        assert report.actual_excerpt == []

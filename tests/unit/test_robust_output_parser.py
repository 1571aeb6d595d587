"""
容错JSON解析单元测试 - 不依赖API
"""
import json
import pytest

from utils.errors import ParseError
from utils.robust_output_parser import (
    parse_tolerant_json, extract_json_candidate, repair_truncated_json,
    RobustJsonOutputParser, SHAPE_ARRAY, SHAPE_OBJECT
)
from utils.structured_output_models import ScriptAnalysis


SCENES = [
    {"scene_number": 1, "script_snippet": "The Rubicon.", "visual_prompt": "River at dawn {misty}"},
    {"scene_number": 2, "script_snippet": "The die is cast.", "visual_prompt": "Caesar {on horseback"},
]


class TestExtraction:

    @pytest.mark.unit
    def test_code_fences_and_chatter_are_ignored(self):
        text = f"Here are the scenes:\n```json\n{json.dumps(SCENES)}\n```\nEnjoy!"
        assert parse_tolerant_json(text, SHAPE_ARRAY) == SCENES

    @pytest.mark.unit
    def test_array_extracted_from_object_wrapper(self):
        text = json.dumps({"scenes": SCENES})
        assert parse_tolerant_json(text, SHAPE_ARRAY) == SCENES

    @pytest.mark.unit
    def test_object_candidate_spans_first_to_last_brace(self):
        text = 'noise {"a": {"b": 1}} trailing'
        assert extract_json_candidate(text, SHAPE_OBJECT) == '{"a": {"b": 1}}'

    @pytest.mark.unit
    def test_no_candidate_raises(self):
        with pytest.raises(ParseError):
            parse_tolerant_json("no json here", SHAPE_OBJECT)


class TestRepair:

    @pytest.mark.unit
    @pytest.mark.parametrize("depth", [1, 2, 3])
    def test_truncated_closers_are_restored(self, depth):
        """删掉末尾N个闭合符后，修复结果与原值一致"""
        value = {"a": {"b": {"c": [1, 2, 3]}}}
        text = json.dumps(value)
        truncated = text[:-depth]
        assert parse_tolerant_json(truncated, SHAPE_OBJECT) == value

    @pytest.mark.unit
    def test_brackets_inside_strings_are_not_counted(self):
        text = json.dumps(SCENES)[:-2]
        assert parse_tolerant_json(text, SHAPE_ARRAY) == SCENES

    @pytest.mark.unit
    def test_repair_closes_in_nesting_order(self):
        assert repair_truncated_json('[{"a": [1') == '[{"a": [1]}]'
        assert repair_truncated_json('{"a": 1}') == '{"a": 1}'

    @pytest.mark.unit
    def test_unquoted_keys_are_unrecoverable(self):
        text = "{scenes: ["
        with pytest.raises(ParseError) as exc_info:
            parse_tolerant_json(text, SHAPE_OBJECT)
        assert exc_info.value.raw_excerpt == text

    @pytest.mark.unit
    def test_raw_excerpt_is_capped(self):
        text = "{" + "x" * 2000
        with pytest.raises(ParseError) as exc_info:
            parse_tolerant_json(text, SHAPE_OBJECT)
        assert len(exc_info.value.raw_excerpt) == 500


class TestRobustJsonOutputParser:

    @pytest.mark.unit
    def test_parse_into_model(self):
        payload = {
            "scores": {"accuracy": 90, "hook_strength": 70, "retention_tactics": 81, "overall": 12},
            "feedback": {"accuracy": "Solid", "hook_strength": "Slow", "retention_tactics": "Ok"},
            "philosopher_insights": [{"philosopher": "Seneca", "insight": "Time is short"}],
            "improvement_suggestions": ["Open with the crossing"]
        }
        parser = RobustJsonOutputParser()
        analysis = parser.parse_into("```json\n" + json.dumps(payload) + "\n```", ScriptAnalysis)

        assert analysis.scores.overall == 80
        assert analysis.philosopher_insights[0].philosopher == "Seneca"

    @pytest.mark.unit
    def test_schema_mismatch_is_parse_error(self):
        parser = RobustJsonOutputParser()
        with pytest.raises(ParseError):
            parser.parse_into('{"scores": {"accuracy": 150}}', ScriptAnalysis)

    @pytest.mark.unit
    def test_format_instructions_follow_shape(self):
        assert "array" in RobustJsonOutputParser(expected_shape=SHAPE_ARRAY).get_format_instructions()
        assert "object" in RobustJsonOutputParser().get_format_instructions()

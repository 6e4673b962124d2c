"""
Tests for model-output parsing helpers.
"""
import pytest

from core.pipeline.parsing import (
    as_score,
    as_str_list,
    extract_json_object,
    extract_numbered_steps,
    snake_keys,
)


class TestExtractJsonObject:

    def test_fenced_block_is_preferred(self):
        text = 'Preamble {"ignored": true}\n```json\n{"score": 80}\n```'

        assert extract_json_object(text) == {"score": 80}

    def test_bare_object_in_prose(self):
        assert extract_json_object('The answer is {"a": {"b": 1}} as shown.') == {"a": {"b": 1}}

    def test_prefer_last(self):
        text = 'First {"n": 1} then {"n": 2}'

        assert extract_json_object(text, prefer_last=True) == {"n": 2}
        assert extract_json_object(text) == {"n": 1}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "{broken"])
    def test_no_object_raises(self, text):
        with pytest.raises(ValueError):
            extract_json_object(text)


class TestHelpers:

    def test_snake_keys_is_recursive(self):
        data = {"overallScore": 1, "categories": [{"pastPerformance": 2}]}

        assert snake_keys(data) == {"overall_score": 1, "categories": [{"past_performance": 2}]}

    @pytest.mark.parametrize("value,expected", [
        (80, 80.0),
        ("72.5", 72.5),
        (101, None),
        (-1, None),
        ("high", None),
        (None, None),
    ])
    def test_as_score(self, value, expected):
        assert as_score(value) == expected

    def test_as_str_list(self):
        assert as_str_list(["a", None, 3]) == ["a", "3"]
        assert as_str_list("single") == ["single"]
        assert as_str_list(None) == []

    def test_extract_numbered_steps(self):
        text = "Intro\n1. Read the solicitation\nStep 2: Compare capabilities\n- bullet"

        steps = extract_numbered_steps(text)

        assert [s['step'] for s in steps] == ["Read the solicitation", "Compare capabilities"]
        assert steps[1]['analysis'] == "Compare capabilities - bullet"

    def test_numbered_steps_stop_at_json(self):
        assert extract_numbered_steps('1. Only step\n{"2. not a step": 1}') == [
            {'step': 'Only step', 'analysis': 'Only step'}
        ]

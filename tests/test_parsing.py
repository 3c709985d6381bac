"""Tests for the best-effort JSON extractor."""

import json

import pytest

from sme_history.outcome import Fidelity
from sme_history.parsing import extract_json, parse_loose


class TestExtractJson:
    """Tests for the extractor fallback chain."""

    def test_valid_json_is_ok(self):
        """Test that well-formed JSON parses directly."""
        outcome = extract_json('  {"years": []}  ')

        assert outcome.status == Fidelity.OK
        assert outcome.value == {"years": []}

    def test_object_in_prose(self):
        """Test that an object wrapped in prose and fences is salvaged."""
        text = 'Here you go:\n```json\n{"newsletters": [{"year": 2020}]}\n```\nThanks!'

        outcome = extract_json(text)

        assert outcome.status == Fidelity.DEGRADED
        assert outcome.reason == "object_span"
        assert outcome.value == {"newsletters": [{"year": 2020}]}

    def test_array_in_prose(self):
        """Test that an array is salvaged when no object span parses."""
        outcome = extract_json("result: [2020, 2021] done")

        assert outcome.reason == "array_span"
        assert outcome.value == [2020, 2021]

    def test_blank_line_blocks(self):
        """Test that pretty-printed values separated by blank lines parse per block."""
        text = '{\n  "year": 2020,\n  "content": "A"\n}\n\n{\n  "year": 2021,\n  "content": "B"\n}'

        outcome = extract_json(text)

        assert outcome.reason == "block_split"
        assert outcome.value == [
            {"year": 2020, "content": "A"},
            {"year": 2021, "content": "B"},
        ]

    def test_unparseable_block_kept_as_string(self):
        """Test that a block that does not parse is kept verbatim, lines intact."""
        text = 'not json\nstill prose\n\n{"year": 2020}\n\n{"year": 2021}'

        outcome = extract_json(text)

        assert outcome.value == ["not json\nstill prose", {"year": 2020}, {"year": 2021}]

    def test_plain_prose_becomes_one_block(self):
        """Test that prose yields a single string block rather than failing."""
        assert extract_json("not json").value == ["not json"]

    @pytest.mark.parametrize("text", ["", "   ", "\n\n", None])
    def test_empty_input_fails(self, text):
        """Test that empty input yields a failed outcome and no value."""
        outcome = extract_json(text)

        assert outcome.status == Fidelity.FAILED
        assert outcome.value is None

    @pytest.mark.parametrize(
        "text",
        [
            '{"years": [{"year": 2020, "months": [',
            "[[[[[[",
            "}{",
            '{"a": 1}{"b": 2}',
            "[" * 5000,
            "\x00\x01\x02",
            "Year: 2020\n\n",
        ],
    )
    def test_never_raises(self, text):
        """Test that malformed and truncated input never raises."""
        outcome = extract_json(text)

        assert outcome.status in (Fidelity.OK, Fidelity.DEGRADED, Fidelity.FAILED)

    @pytest.mark.parametrize(
        "value",
        [
            {"years": [{"year": 2020, "months": []}]},
            [1, 2.5, "三", None, True],
            "just a string",
            0,
            None,
            {"nested": {"deep": [{"x": "月次"}]}},
        ],
    )
    def test_round_trip(self, value):
        """Test that any JSON-encoded value parses back to itself."""
        assert parse_loose(json.dumps(value, ensure_ascii=False)) == value


class TestParseLoose:
    """Tests for the value-only wrapper."""

    def test_returns_none_for_empty(self):
        """Test that empty text yields None."""
        assert parse_loose("") is None

    def test_non_string_input(self):
        """Test that non-string input is stringified first."""
        assert parse_loose(2020) == 2020

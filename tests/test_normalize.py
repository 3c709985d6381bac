"""Tests for the bulk-response classifier and normalizers."""

import copy
import json

import pytest

from sme_history.documents import FISCAL_MONTH_LABELS
from sme_history.normalize import (
    JOURNAL_LAYOUT,
    NEWSLETTER_LAYOUT,
    RawShape,
    classify_payload,
    ensure_year_months,
    month_number,
    normalize_journal_entries,
    normalize_newsletters,
    scan_raw_text,
    year_of,
)
from sme_history.outcome import Fidelity


class TestYearOf:
    """Tests for year recognition."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (2020, 2020),
            (2020.0, 2020),
            ("2021", 2021),
            (" FY2022 ", 2022),
            ("2023年度", 2023),
            (12, None),
            (True, None),
            ("20200", None),
            ("text", None),
            (None, None),
        ],
    )
    def test_year_of(self, value, expected):
        """Test plausible four-digit years are recognized."""
        assert year_of(value) == expected


class TestClassifyPayload:
    """Tests for RawShape classification."""

    @pytest.mark.parametrize(
        "value, shape",
        [
            ({"newsletters": [{"year": 2020, "content": "a"}]}, RawShape.EXPECTED_KEY),
            ([{"year": 2020, "content": "a"}], RawShape.OBJECTS),
            ({"data": [{"year": 2020}]}, RawShape.WRONG_KEY),
            ({"2020": "a", "2021": "b"}, RawShape.YEAR_KEYED),
            ({"newsletters": {"2020": "a"}}, RawShape.YEAR_KEYED),
            ({"year": 2020, "content": "a"}, RawShape.SINGLE_ENTRY),
            ({"newsletters": ['{"newsletters": []}']}, RawShape.NESTED_JSON_STRING),
            ({"newsletters": [2020, "2021"]}, RawShape.YEAR_PRIMITIVES),
            ({"newsletters": [2020, "a", 2021, "b"]}, RawShape.ALTERNATING),
            (["Year: 2020 本文", "Year: 2021 本文"], RawShape.YEAR_TAGGED_STRINGS),
            ({"newsletters": [0, 3.5, "12"]}, RawShape.NUMERIC_GARBAGE),
            ({"newsletters": []}, RawShape.EMPTY),
            (None, RawShape.EMPTY),
            (["not json"], RawShape.UNRECOGNIZED),
            (42, RawShape.UNRECOGNIZED),
        ],
    )
    def test_shapes(self, value, shape):
        """Test each observed shape is labeled."""
        assert classify_payload(value, "newsletters", NEWSLETTER_LAYOUT).shape == shape

    def test_year_number_pairs_are_not_alternating(self):
        """Test that year/number pairs count as numeric garbage, not content."""
        classified = classify_payload({"years": [2020, 5, 2021, 7]}, "years", JOURNAL_LAYOUT)

        assert classified.shape == RawShape.NUMERIC_GARBAGE


class TestNormalizeNewsletters:
    """Tests for newsletter normalization."""

    def test_alternating_pairs(self):
        """Test that year markers alternating with text are paired positionally."""
        parsed = {"newsletters": [2020, "text A", 2021, "text B"]}

        outcome = normalize_newsletters(parsed)

        assert outcome.value == {
            "newsletters": [
                {"year": 2020, "content": "text A"},
                {"year": 2021, "content": "text B"},
            ]
        }
        assert outcome.status == Fidelity.DEGRADED

    def test_canonical_shape_is_ok(self):
        """Test that the requested shape passes through untouched."""
        parsed = {"newsletters": [{"year": 2020, "content": "本文"}]}

        outcome = normalize_newsletters(parsed, [2020])

        assert outcome.status == Fidelity.OK
        assert outcome.value == parsed

    def test_backfills_missing_years(self):
        """Test that entries without a year take the expected year at their index."""
        parsed = {"newsletters": [{"content": "a"}, {"content": "b"}]}

        outcome = normalize_newsletters(parsed, [2020, 2021])

        assert [e["year"] for e in outcome.value["newsletters"]] == [2020, 2021]
        assert "backfilled_year" in outcome.reason

    def test_drops_yearless_entries_beyond_expected(self):
        """Test that yearless entries with no expected year are dropped."""
        parsed = {"newsletters": [{"content": "a"}, {"content": "b"}]}

        outcome = normalize_newsletters(parsed, [2020])

        assert outcome.value["newsletters"] == [{"year": 2020, "content": "a"}]

    def test_wrong_key_with_objects(self):
        """Test that objects under an unexpected key are recovered."""
        parsed = {"data": [{"year": 2020, "text": "a"}]}

        outcome = normalize_newsletters(parsed)

        assert outcome.value == {"newsletters": [{"year": 2020, "content": "a"}]}
        assert "wrong_key:data" in outcome.reason

    def test_wrong_key_with_year_tagged_strings(self):
        """Test that year-tagged strings under another key are reconstructed."""
        parsed = {"items": ["Year: 2020 本文A", "Year: 2021 - 本文B"]}

        outcome = normalize_newsletters(parsed)

        assert outcome.value["newsletters"] == [
            {"year": 2020, "content": "本文A"},
            {"year": 2021, "content": "本文B"},
        ]

    def test_year_keyed_object(self):
        """Test that {"2020": ...} maps become entries."""
        parsed = {"2020": {"content": "a"}, "2021": "b"}

        outcome = normalize_newsletters(parsed)

        assert outcome.value["newsletters"] == [
            {"year": 2020, "content": "a"},
            {"year": 2021, "content": "b"},
        ]

    def test_single_entry_object(self):
        """Test that one entry object is wrapped into a list."""
        outcome = normalize_newsletters({"year": 2020, "body": "本文"})

        assert outcome.value["newsletters"] == [{"year": 2020, "content": "本文"}]

    def test_nested_json_string(self):
        """Test that a JSON-encoded string of the right shape is substituted."""
        inner = json.dumps({"newsletters": [{"year": 2020, "content": "本文"}]})

        outcome = normalize_newsletters({"newsletters": [inner]})

        assert outcome.value["newsletters"] == [{"year": 2020, "content": "本文"}]
        assert "nested_json_string" in outcome.reason

    def test_numeric_garbage_scans_raw_text(self):
        """Test that structureless numbers fall back to the raw response text."""
        raw_text = "Year: 2020\n売上は横ばい。\nYear: 2021\n増収増益。"

        outcome = normalize_newsletters({"newsletters": [1, 2, 3]}, [2020, 2021], raw_text)

        assert outcome.value["newsletters"] == [
            {"year": 2020, "content": "売上は横ばい。"},
            {"year": 2021, "content": "増収増益。"},
        ]
        assert "raw_text_scan" in outcome.reason

    def test_duplicate_years_keep_first(self):
        """Test that a repeated year keeps its first entry."""
        parsed = {
            "newsletters": [
                {"year": 2020, "content": "first"},
                {"year": 2020, "content": "second"},
            ]
        }

        outcome = normalize_newsletters(parsed)

        assert outcome.value["newsletters"] == [{"year": 2020, "content": "first"}]

    def test_unrecoverable_fails_with_empty_shape(self):
        """Test that prose with no year markers fails without raising."""
        outcome = normalize_newsletters(["not json"], [2020], "not json")

        assert outcome.status == Fidelity.FAILED
        assert outcome.value == {"newsletters": []}

    def test_deep_nesting_stops(self):
        """Test that JSON strings nested beyond the limit fail cleanly."""
        value: object = {"newsletters": [{"year": 2020, "content": "x"}]}
        for _ in range(6):
            value = {"newsletters": [json.dumps(value)]}

        outcome = normalize_newsletters(value)

        assert outcome.status == Fidelity.FAILED


class TestNormalizeJournalEntries:
    """Tests for journal-entry normalization."""

    def test_years_only_get_empty_months(self):
        """Test that a list of bare years synthesizes empty children."""
        outcome = normalize_journal_entries({"years": [2020, "2021"]})

        assert outcome.value == {
            "years": [{"year": 2020, "months": []}, {"year": 2021, "months": []}]
        }
        assert outcome.reason == "years_only"

    def test_sections_alias(self):
        """Test that months returned under "sections" are recognized."""
        parsed = {"years": [{"year": 2020, "sections": [{"title": "4月", "items": []}]}]}

        outcome = normalize_journal_entries(parsed)

        assert outcome.value["years"][0]["months"] == [{"title": "4月", "items": []}]

    def test_flat_journal_lines_become_one_month(self):
        """Test that a flat list of journal lines is wrapped as one month."""
        line = {"account": "売掛金", "debit": 100}
        parsed = {"years": [{"year": 2020, "months": [line]}]}

        outcome = normalize_journal_entries(parsed)

        assert outcome.value["years"][0]["months"] == [{"items": [line]}]

    def test_single_year_months_object(self):
        """Test that a single-year {"months": [...]} response maps to the expected year."""
        parsed = {"months": [{"title": "4月", "items": []}]}

        outcome = normalize_journal_entries(parsed, [2022])

        assert outcome.value["years"] == [
            {"year": 2022, "months": [{"title": "4月", "items": []}]}
        ]


class TestScanRawText:
    """Tests for raw-text year scanning."""

    def test_bare_year_lines(self):
        """Test that "2020年度:" style headings are found without Year: tags."""
        raw = "2020年度: 苦しい一年\n2021年度: 回復の兆し"

        assert scan_raw_text(raw) == [(2020, "苦しい一年"), (2021, "回復の兆し")]

    def test_filters_to_expected_years(self):
        """Test that markers for unexpected years are ignored."""
        raw = "Year: 2019 a\nYear: 2020 b"

        assert scan_raw_text(raw, [2020]) == [(2020, "b")]

    def test_empty(self):
        """Test that empty text yields nothing."""
        assert scan_raw_text("", [2020]) == []


class TestEnsureYearMonths:
    """Tests for the twelve-month guarantee."""

    def test_empty_months_get_twelve_buckets(self):
        """Test that a year with no months gets twelve empty buckets in order."""
        result = ensure_year_months({"years": [{"year": 2020, "months": []}]})

        months = result["years"][0]["months"]
        assert [m["title"] for m in months] == list(FISCAL_MONTH_LABELS)
        assert all(m["items"] == [] for m in months)

    def test_months_matched_by_title(self):
        """Test that months are placed by the month they name."""
        payload = {
            "years": [
                {
                    "year": 2020,
                    "months": [
                        {"title": "3月", "items": ["march"]},
                        {"title": "April 2019", "items": ["april"]},
                        {"title": "2019-05", "items": ["may"]},
                    ],
                }
            ]
        }

        months = ensure_year_months(payload)["years"][0]["months"]

        assert months[0]["items"] == ["april"]
        assert months[1]["items"] == ["may"]
        assert months[11]["items"] == ["march"]
        assert len(months) == 12

    def test_untitled_months_fill_free_buckets(self):
        """Test that months without a recognizable title fill the next empty bucket."""
        payload = {
            "years": [
                {
                    "year": 2020,
                    "months": [{"title": "4月", "items": [1]}, {"items": [2]}, {"items": [3]}],
                }
            ]
        }

        months = ensure_year_months(payload)["years"][0]["months"]

        assert [m["items"] for m in months[:3]] == [[1], [2], [3]]

    def test_overflow_wraps_around(self):
        """Test that more than twelve untitled months still yield twelve buckets."""
        payload = {"years": [{"year": 2020, "months": [{"items": [i]} for i in range(13)]}]}

        months = ensure_year_months(payload)["years"][0]["months"]

        assert len(months) == 12
        assert months[0]["items"] == [0, 12]

    def test_input_not_modified(self):
        """Test that the input payload is left untouched."""
        payload = {"years": [{"year": 2020, "months": [{"title": "5月", "items": [1]}]}]}
        before = copy.deepcopy(payload)

        ensure_year_months(payload)

        assert payload == before

    @pytest.mark.parametrize("payload", [None, [], {"years": "x"}, {"other": []}])
    def test_non_canonical_payload(self, payload):
        """Test that unusable payloads yield an empty years list."""
        assert ensure_year_months(payload) == {"years": []}

    def test_month_number_variants(self):
        """Test month recognition from titles and month keys."""
        assert month_number({"title": "12月"}) == 12
        assert month_number({"month": 1}) == 1
        assert month_number({"title": "Sept"}) == 9
        assert month_number({"title": "合計"}) is None

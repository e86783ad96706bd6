"""
tests/test_normalizer.py
========================
Unit tests for the field table, CSV rendering and name helpers.

Run:
  python -m pytest tests/ -v
"""

import csv
import io
import sys
from pathlib import Path

# Allow importing from the repo root without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from tri_results.normalizer import (
    FIELDS,
    HEADERS,
    MISSING,
    Lookup,
    lookup,
    normalize_result,
    normalize_results,
    sanitize_base_name,
    to_csv,
    year_from_name,
)


FULL_RECORD = {
    "bib": 1234,
    "athlete": "Jane Doe",
    "countryiso2": "US",
    "wtc_ContactId": {
        "gendercode_formatted": "Female",
        "address1_city": "Louisville",
        "address1_stateorprovince": "KY",
    },
    "wtc_AgeGroupId": {"wtc_agegroupname": "F35-39"},
    "wtc_DivisionId": {"wtc_name": "Age Group"},
    "wtc_dnf": False,
    "wtc_dq": False,
    "wtc_finishtimeformatted": "10:41:12",
    "wtc_swimtimeformatted": "1:05:03",
    "wtc_transition1timeformatted": "0:06:10",
    "wtc_biketimeformatted": "5:30:44",
    "wtc_transitiontime2formatted": "0:04:02",
    "wtc_runtimeformatted": "3:55:13",
    "wtc_finishrankoverall": 150,
    "wtc_finishrankgender": 30,
    "wtc_finishrankgroup": 5,
    "wtc_points": 4321.5,
    "wtc_swimrankoverall": 200,
    "wtc_swimrankgender": 40,
    "wtc_swimrankgroup": 7,
    "wtc_bikerankoverall": 160,
    "wtc_bikerankgender": 31,
    "wtc_bikerankgroup": 6,
    "wtc_runrankoverall": 140,
    "wtc_runrankgender": 28,
    "wtc_runrankgroup": 4,
    "wtc_finishtime": 38472,
    "wtc_swimtime": 3903,
    "wtc_transition1time": 370,
    "wtc_biketime": 19844,
    "wtc_transition2time": 242,
    "wtc_runtime": 14113,
}


def _parse(text):
    return list(csv.reader(io.StringIO(text)))


# ─────────────────────────────────────────────────────────────────────────────
# lookup tests
# ─────────────────────────────────────────────────────────────────────────────

class TestLookup:

    def test_nested_path(self):
        data = {"props": {"pageProps": {"subevents": [1]}}}
        assert lookup(data, ("props", "pageProps", "subevents")) == Lookup(True, [1])

    def test_dotted_string_path(self):
        data = {"a": {"b": "c"}}
        assert lookup(data, "a.b") == Lookup(True, "c")

    def test_missing_key(self):
        assert lookup({"a": {}}, ("a", "b")) is MISSING

    def test_step_through_none(self):
        assert lookup({"a": None}, ("a", "b")) is MISSING

    def test_step_through_list_or_scalar(self):
        assert lookup({"a": [1, 2]}, ("a", "b")) is MISSING
        assert lookup({"a": "text"}, ("a", "b")) is MISSING

    def test_present_but_null(self):
        found = lookup({"a": None}, ("a",))
        assert found.present
        assert found.value is None

    def test_non_dict_root(self):
        assert lookup(None, ("a",)) is MISSING
        assert lookup([], ("a",)) is MISSING


# ─────────────────────────────────────────────────────────────────────────────
# field table / normalize_result tests
# ─────────────────────────────────────────────────────────────────────────────

class TestFieldTable:

    def test_has_33_columns(self):
        assert len(FIELDS) == 33
        assert len(HEADERS) == 33
        assert len(set(HEADERS)) == 33

    def test_header_order(self):
        assert HEADERS[:8] == [
            "Bib", "Name", "Gender", "City", "State", "Country", "AgeGroup", "Status",
        ]
        assert HEADERS[-6:] == [
            "FinishTimeSec", "SwimTimeSec", "T1TimeSec",
            "BikeTimeSec", "T2TimeSec", "RunTimeSec",
        ]

    def test_only_agegroup_has_a_fallback(self):
        with_fallback = [f.column for f in FIELDS if f.fallback]
        assert with_fallback == ["AgeGroup"]


class TestNormalizeResult:

    def test_full_record(self):
        row = normalize_result(FULL_RECORD)
        assert list(row) == HEADERS
        assert row["Bib"] == "1234"
        assert row["Name"] == "Jane Doe"
        assert row["Gender"] == "Female"
        assert row["City"] == "Louisville"
        assert row["State"] == "KY"
        assert row["Country"] == "US"
        assert row["AgeGroup"] == "F35-39"
        assert row["Status"] == "FIN"
        assert row["T2"] == "0:04:02"
        assert row["Points"] == "4321.5"
        assert row["RunDivRank"] == "4"
        assert row["FinishTimeSec"] == "38472"

    def test_empty_record_all_blank_except_status(self):
        row = normalize_result({})
        assert row["Status"] == "FIN"
        assert all(v == "" for k, v in row.items() if k != "Status")

    def test_missing_contact_object(self):
        row = normalize_result({"athlete": "No Contact", "wtc_ContactId": None})
        assert row["Gender"] == ""
        assert row["City"] == ""
        assert row["State"] == ""

    def test_agegroup_falls_back_to_division(self):
        row = normalize_result({"wtc_AgeGroupId": None, "wtc_DivisionId": {"wtc_name": "PRO"}})
        assert row["AgeGroup"] == "PRO"

    def test_agegroup_empty_name_falls_back(self):
        row = normalize_result({
            "wtc_AgeGroupId": {"wtc_agegroupname": ""},
            "wtc_DivisionId": {"wtc_name": "PRO"},
        })
        assert row["AgeGroup"] == "PRO"

    def test_gender_only_from_contact(self):
        row = normalize_result({"wtc_ContactId": {}, "gender": "Male"})
        assert row["Gender"] == ""

    def test_status_dnf_wins_over_dq(self):
        assert normalize_result({"wtc_dnf": True, "wtc_dq": True})["Status"] == "DNF"
        assert normalize_result({"wtc_dq": True})["Status"] == "DQ"

    def test_zero_and_null_render_empty(self):
        row = normalize_result({"wtc_finishrankoverall": 0, "wtc_points": None})
        assert row["OverallRank"] == ""
        assert row["Points"] == ""

    def test_integral_float_has_no_decimal(self):
        assert normalize_result({"wtc_points": 2500.0})["Points"] == "2500"

    def test_non_dict_record(self):
        row = normalize_result("garbage")
        assert list(row) == HEADERS

    def test_normalize_results_keeps_count_and_order(self):
        raw = [{"athlete": "A"}, {"athlete": "B"}, {}]
        rows = normalize_results(raw)
        assert len(rows) == 3
        assert [r["Name"] for r in rows] == ["A", "B", ""]


# ─────────────────────────────────────────────────────────────────────────────
# to_csv tests
# ─────────────────────────────────────────────────────────────────────────────

class TestToCsv:

    def test_header_unquoted(self):
        text = to_csv([])
        assert text == ",".join(HEADERS)

    def test_every_field_quoted(self):
        text = to_csv(normalize_results([FULL_RECORD, {}]))
        lines = text.split("\n")
        assert len(lines) == 3
        for line in lines[1:]:
            assert line.startswith('"') and line.endswith('"')
            assert len(_parse(line)[0]) == 33

    def test_no_trailing_newline(self):
        text = to_csv(normalize_results([FULL_RECORD]))
        assert not text.endswith("\n")

    def test_empty_value_is_empty_quotes(self):
        text = to_csv(normalize_results([{}]))
        assert text.split("\n")[1].startswith('"","","",')

    def test_quotes_doubled_and_round_trip(self):
        name = 'Jane "JJ" Doe'
        text = to_csv(normalize_results([{"athlete": name}]))
        assert '"Jane ""JJ"" Doe"' in text
        parsed = _parse(text)
        assert parsed[0] == HEADERS
        assert parsed[1][1] == name

    def test_comma_in_value_round_trip(self):
        text = to_csv(normalize_results([{"athlete": "Doe, Jane"}]))
        assert _parse(text)[1][1] == "Doe, Jane"

    def test_unicode_preserved(self):
        text = to_csv(normalize_results([{"athlete": "Zoë Müller"}]))
        assert _parse(text)[1][1] == "Zoë Müller"


# ─────────────────────────────────────────────────────────────────────────────
# name helpers
# ─────────────────────────────────────────────────────────────────────────────

class TestYearFromName:

    def test_finds_year(self):
        assert year_from_name("IRONMAN Louisville 2019") == "2019"

    def test_first_year_wins(self):
        assert year_from_name("2021 (postponed to 2022)") == "2021"

    def test_no_year(self):
        assert year_from_name("IRONMAN Louisville") is None
        assert year_from_name("") is None
        assert year_from_name(None) is None

    def test_ignores_19xx_and_longer_numbers(self):
        assert year_from_name("Since 1999") is None
        assert year_from_name("Bib 20245") is None

    def test_needs_word_boundary(self):
        assert year_from_name("Louisville2019") is None


class TestSanitizeBaseName:

    def test_lowercase_and_underscores(self):
        assert sanitize_base_name("Ironman Louisville") == "ironman_louisville"

    def test_collapses_whitespace(self):
        assert sanitize_base_name("a  \t b") == "a_b"

    def test_strips_other_characters(self):
        assert sanitize_base_name("Lake Placid! (70.3)") == "lake_placid_703"

    def test_empty(self):
        assert sanitize_base_name("") == ""
        assert sanitize_base_name(None) == ""

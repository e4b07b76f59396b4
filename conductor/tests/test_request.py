# ODFetch - Request Model Tests
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the keyword/value request model.

Run with: pytest conductor/tests/
"""

from datetime import date, datetime

import pytest

from odfetch.errors import InvalidRequest
from odfetch.request import Request, expand_numeric_syntax, normalize_value


class TestRequestConstruction:
    """Test building requests from keywords and pairs"""

    def test_keywords_are_normalized(self):
        """Test keys are lower-cased and integers kept as decimal strings"""
        req = Request(Type="fc", STEP=240, param=" msl ")

        assert req.keys() == ["type", "step", "param"]
        assert req.get("step") == "240"
        assert req.get("param") == "msl"

    def test_lists_keep_order_and_duplicates(self):
        req = Request(step=[24, 12, 24])
        assert req.get("step") == ["24", "12", "24"]

    def test_from_str_pairs_matches_typed_list(self):
        """Test comma-separated strings equal a list of integers"""
        from_strings = Request.from_str_pairs([("step", "12,24,36")])
        typed = Request.from_pairs([("step", [12, 24, 36])])

        assert from_strings == typed
        assert from_strings.values_of("step") == ["12", "24", "36"]

    def test_from_str_pairs_single_value_stays_scalar(self):
        req = Request.from_str_pairs([("param", "msl")])
        assert req.get("param") == "msl"

    def test_from_str_pairs_rejects_empty_value(self):
        with pytest.raises(InvalidRequest):
            Request.from_str_pairs([("param", " , ")])

    def test_dates_are_formatted(self):
        """Test date and datetime values become YYYYMMDD / full timestamps"""
        req = Request(date=date(2024, 1, 5))
        assert req.get("date") == "20240105"

        req.set("date", datetime(2024, 1, 5, 12))
        assert req.get("date") == "2024-01-05 12:00:00"

        req.set("date", datetime(2024, 1, 5))
        assert req.get("date") == "20240105"

    @pytest.mark.parametrize("bad", [None, True, [], 1.5])
    def test_invalid_values_rejected(self, bad):
        with pytest.raises(InvalidRequest):
            normalize_value(bad)

    @pytest.mark.parametrize("bad", ["", "   ", ["msl", " "]])
    def test_blank_values_rejected(self, bad):
        """Test blank strings fail like they do in from_str_pairs"""
        with pytest.raises(InvalidRequest):
            Request(param=bad)

    def test_empty_key_rejected(self):
        with pytest.raises(InvalidRequest):
            Request().set("  ", "x")


class TestRequestMutation:
    """Test ordering and copy semantics"""

    def test_overwrite_keeps_first_position(self):
        req = Request(type="fc", step=0, param="msl")
        req.set("type", "pf")

        assert req.keys() == ["type", "step", "param"]
        assert req.get("type") == "pf"

    def test_set_returns_self(self):
        req = Request().set("type", "fc").set("step", 6)
        assert len(req) == 2

    def test_copy_is_independent(self):
        req = Request(step=[0, 6])
        clone = req.copy()
        clone.set("param", "2t")
        clone.values_of("step").append("12")

        assert "param" not in req
        assert req.get("step") == ["0", "6"]

    def test_remove_missing_key_is_noop(self):
        req = Request(type="fc")
        req.remove("param")
        assert req.to_dict() == {"type": "fc"}

    def test_canonical_order(self):
        """Test canonical() sorts known keys first, unknown keys last"""
        req = Request(param="msl", target="out.grib2", extra="x", step=6, date=-1, type="fc")
        assert req.canonical().keys() == ["date", "type", "step", "param", "target", "extra"]

    def test_first_and_values_of(self):
        req = Request(step=[6, 12], type="fc")

        assert req.first("step") == "6"
        assert req.values_of("type") == ["fc"]
        assert req.values_of("param") == []
        assert req.first("param", "msl") == "msl"

    def test_contains_is_case_insensitive(self):
        req = Request(param="msl")
        assert "PARAM" in req
        assert 3 not in req


class TestNumericSyntax:
    """Test MARS-style a/to/b[/by/n] expansion"""

    def test_range_is_inclusive(self):
        assert expand_numeric_syntax("0/to/3") == ["0", "1", "2", "3"]

    def test_stepped_range(self):
        assert expand_numeric_syntax("0/to/12/by/6") == ["0", "6", "12"]

    def test_plain_value_unchanged(self):
        assert expand_numeric_syntax("240") == ["240"]
        assert expand_numeric_syntax("0-24") == ["0-24"]

    @pytest.mark.parametrize("text", ["a/to/12", "0/to/12/by/0", "12/to/0", "0/to/12/by/x"])
    def test_invalid_ranges(self, text):
        with pytest.raises(InvalidRequest):
            expand_numeric_syntax(text)

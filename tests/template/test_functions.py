"""
Tests for the substitution function DSL.

Tests cover:
1. Token parsing (names, arguments, whitespace, malformed input)
2. guid / uuid shapes
3. rnd digit counts, clamping and range
4. now formats (named, case-insensitive, custom strftime)
5. Evaluation of whole substitution mappings
6. Randomness source failures
"""

import re
import secrets
import time
import uuid
from datetime import timedelta, timezone

import pytest

from kafka_pusher.template import (
    EvaluationError,
    FunctionCall,
    evaluate_substitutions,
    evaluate_value,
    format_time,
    generate_guid,
    generate_random_number,
    generate_uuid,
    parse_function,
)

HEX_8_4_4_4_12 = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$')

# 2006-01-02T15:04:05.123456789Z
REFERENCE_NS = 1136214245 * 1_000_000_000 + 123_456_789


class TestParseFunction:
    """Lexing of {{@name|argument}} tokens."""

    def test_plain_function(self):
        assert parse_function("{{@guid}}") == FunctionCall("guid", None, 0, 9)

    def test_function_with_argument(self):
        call = parse_function("{{@rnd|12}}")
        assert call.name == "rnd"
        assert call.argument == "12"

    def test_whitespace_inside_braces(self):
        call = parse_function("{{  @now|UnixMilli  }}")
        assert call.name == "now"
        assert call.argument == "UnixMilli"

    def test_token_position_within_text(self):
        value = "order-{{@rnd|4}}-x"
        call = parse_function(value)
        assert value[call.start:call.end] == "{{@rnd|4}}"

    def test_empty_argument_means_default(self):
        assert parse_function("{{@rnd|}}").argument is None

    def test_no_token(self):
        assert parse_function("static-value") is None

    def test_placeholder_is_not_a_function(self):
        assert parse_function("{{.name}}") is None

    @pytest.mark.parametrize("value", [
        "{{@unknown}}",
        "{{@GUID}}",
        "{{@guid|x}}",
        "{{@rnd|abc}}",
        "{{@rnd 5}}",
        "{{@now|two words}}",
        "{{@guid",
        "{{@}}",
    ])
    def test_malformed_tokens_are_literal(self, value):
        assert parse_function(value) is None
        assert evaluate_value(value) == value

    def test_strftime_argument_accepted(self):
        assert parse_function("{{@now|%Y-%m-%d}}").argument == "%Y-%m-%d"

    def test_precedence_picks_guid_over_earlier_rnd(self):
        value = "{{@rnd|4}} and {{@guid}}"
        call = parse_function(value)
        assert call.name == "guid"
        assert value[call.start:call.end] == "{{@guid}}"

    def test_same_function_leftmost_wins(self):
        call = parse_function("{{@rnd|2}}{{@rnd|9}}")
        assert call.argument == "2"


class TestGuidAndUuid:
    """Identifier generators."""

    def test_guid_shape(self):
        assert HEX_8_4_4_4_12.match(generate_guid())

    def test_uuid_is_version_4(self):
        value = generate_uuid()
        assert HEX_8_4_4_4_12.match(value)
        parsed = uuid.UUID(value)
        assert parsed.version == 4
        assert parsed.variant == uuid.RFC_4122

    def test_guid_values_differ(self):
        assert len({generate_guid() for _ in range(100)}) == 100


class TestRandomNumber:
    """rnd|N generation."""

    @pytest.mark.parametrize("digits", range(1, 19))
    def test_length_and_range(self, digits):
        value = generate_random_number(digits)
        assert len(value) == digits
        assert value.isdigit()
        assert 0 <= int(value) <= 10 ** digits - 1

    @pytest.mark.parametrize("digits", [0, -1, -100])
    def test_non_positive_yields_zero(self, digits):
        assert generate_random_number(digits) == "0"

    def test_clamped_to_18_digits(self):
        assert len(generate_random_number(40)) == 18

    def test_zero_padding(self, monkeypatch):
        monkeypatch.setattr(secrets, "randbelow", lambda n: 42)
        assert generate_random_number(6) == "000042"

    def test_upper_bound_uses_exact_power_of_ten(self, monkeypatch):
        bounds = []

        def fake_randbelow(n):
            bounds.append(n)
            return n - 1

        monkeypatch.setattr(secrets, "randbelow", fake_randbelow)
        assert generate_random_number(18) == "9" * 18
        assert bounds == [10 ** 18]

    def test_default_digits(self):
        assert len(evaluate_value("{{@rnd}}")) == 6

    def test_negative_argument_yields_zero(self):
        assert evaluate_value("{{@rnd|-3}}") == "0"


class TestFormatTime:
    """now|FORMAT rendering."""

    utc = timezone.utc
    plus3 = timezone(timedelta(hours=3), "MSK")

    @pytest.mark.parametrize("fmt,expected", [
        ("RFC3339", "2006-01-02T15:04:05Z"),
        ("RFC3339Nano", "2006-01-02T15:04:05.123456789Z"),
        ("RFC822", "02 Jan 06 15:04 UTC"),
        ("RFC822Z", "02 Jan 06 15:04 +0000"),
        ("RFC850", "Monday, 02-Jan-06 15:04:05 UTC"),
        ("RFC1123", "Mon, 02 Jan 2006 15:04:05 UTC"),
        ("RFC1123Z", "Mon, 02 Jan 2006 15:04:05 +0000"),
        ("ANSIC", "Mon Jan  2 15:04:05 2006"),
        ("UnixDate", "Mon Jan  2 15:04:05 UTC 2006"),
        ("RubyDate", "Mon Jan 02 15:04:05 +0000 2006"),
        ("Unix", "1136214245"),
        ("UnixMilli", "1136214245123"),
        ("UnixNano", "1136214245123456789"),
    ])
    def test_named_formats_utc(self, fmt, expected):
        assert format_time(fmt, REFERENCE_NS, tz=self.utc) == expected

    def test_offset_zone(self):
        assert format_time("RFC3339", REFERENCE_NS, tz=self.plus3) == "2006-01-02T18:04:05+03:00"
        assert format_time("RubyDate", REFERENCE_NS, tz=self.plus3) == "Mon Jan 02 18:04:05 +0300 2006"
        assert format_time("RFC1123", REFERENCE_NS, tz=self.plus3) == "Mon, 02 Jan 2006 18:04:05 MSK"

    def test_nano_trims_trailing_zeros(self):
        ns = 1136214245 * 1_000_000_000 + 500_000_000
        assert format_time("RFC3339Nano", ns, tz=self.utc) == "2006-01-02T15:04:05.5Z"

    def test_nano_without_fraction(self):
        ns = 1136214245 * 1_000_000_000
        assert format_time("RFC3339Nano", ns, tz=self.utc) == "2006-01-02T15:04:05Z"

    def test_names_are_case_insensitive(self):
        assert format_time("unixmilli", REFERENCE_NS) == "1136214245123"

    def test_custom_strftime_pattern(self):
        assert format_time("%Y/%m/%d", REFERENCE_NS, tz=self.utc) == "2006/01/02"

    def test_default_is_rfc3339(self):
        value = evaluate_value("{{@now}}")
        assert re.match(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(Z|[+-]\d{2}:\d{2})$', value)

    def test_unix_milli_is_close_to_wall_clock(self):
        before = int(time.time() * 1000)
        value = int(evaluate_value("{{@now|UnixMilli}}"))
        after = int(time.time() * 1000)
        assert before - 2000 <= value <= after + 2000


class TestEvaluateSubstitutions:
    """Evaluation of full mappings."""

    def test_literals_pass_through(self):
        source = {"a": "static", "b": 7, "c": None, "d": [1, 2], "e": {"k": True}}
        assert evaluate_substitutions(source) == source

    def test_returns_new_mapping(self):
        source = {"id": "{{@guid}}"}
        result = evaluate_substitutions(source)
        assert result is not source
        assert source == {"id": "{{@guid}}"}
        assert HEX_8_4_4_4_12.match(result["id"])

    def test_whole_value_replaced(self):
        value = evaluate_value("order-{{@rnd|4}}!")
        assert re.match(r'^\d{4}$', value)

    def test_function_precedence_over_position(self):
        value = evaluate_value("{{@rnd|2}} {{@guid}}")
        assert HEX_8_4_4_4_12.match(value)

    def test_now_wins_over_earlier_rnd(self):
        value = evaluate_value("{{@rnd|2}}-{{@now|Unix}}")
        assert value.isdigit()
        assert abs(int(value) - int(time.time())) < 5

    def test_malformed_token_skipped_for_later_valid_one(self):
        assert re.match(r'^\d{3}$', evaluate_value("{{@rnd|x}} {{@rnd|3}}"))

    def test_fresh_values_per_call(self):
        source = {"id": "{{@uuid}}"}
        assert evaluate_substitutions(source)["id"] != evaluate_substitutions(source)["id"]

    def test_randomness_failure_names_key(self, monkeypatch):
        def broken(n):
            raise OSError("entropy source unavailable")

        monkeypatch.setattr(secrets, "token_bytes", broken)
        with pytest.raises(EvaluationError) as exc_info:
            evaluate_substitutions({"ok": "x", "trace": "{{@guid}}"})

        assert "trace" in str(exc_info.value)
        assert "entropy source unavailable" in str(exc_info.value)

    def test_rnd_failure_raises(self, monkeypatch):
        def broken(n):
            raise OSError("no entropy")

        monkeypatch.setattr(secrets, "randbelow", broken)
        with pytest.raises(EvaluationError):
            evaluate_value("{{@rnd|5}}")

"""
Tests for MRZ decoding and date normalization.
"""
from datetime import date

import pytest

from layer2_mrz import (
    INVALID_DATE,
    DateOrder,
    DecodeFailure,
    ParsedDocument,
    decode,
    decode_fixed_width,
    expand_date,
    format_date,
    is_invalid,
    normalize_date,
    normalize_sex,
    parse_name_block,
)


class TestDecode:
    """Test the fixed-column MRZ decoder."""

    def test_decodes_passport_lines(self, sample_mrz_text):
        """Test a full two-line read decodes every field."""
        result = decode(sample_mrz_text)

        assert result == ParsedDocument(
            document_type="P<",
            issuing_country="USA",
            surname="DOE",
            first_name="JOHN",
            middle_name="MICHAEL",
            document_number="AB1234567",
            nationality="USA",
            date_of_birth="900101",
            sex="M",
            expiry_date="300101",
        )

    def test_short_lines_decode(self):
        """Test the minimal two-line scenario decodes without fillers."""
        result = decode("P<USADOE<<JOHN<MICHAEL\nAB12345676USA9001011M300101")

        assert result.surname == "DOE"
        assert result.first_name == "JOHN"
        assert result.middle_name == "MICHAEL"
        assert result.document_number == "AB1234567"
        assert result.nationality == "USA"
        assert result.date_of_birth == "900101"
        assert result.sex == "M"
        assert result.expiry_date == "300101"
        assert result.personal_number == ""

    @pytest.mark.parametrize("raw_text", [
        "",
        "   ",
        "P<USADOE<<JOHN",
        "P<USADOE<<JOHN\n\n   \n",
        "\r\n\r\n",
    ])
    def test_fewer_than_two_lines_fails(self, raw_text):
        """Test inputs without two non-empty lines fail with InsufficientLines."""
        result = decode(raw_text)

        assert isinstance(result, DecodeFailure)
        assert result.reason == DecodeFailure.INSUFFICIENT_LINES

    def test_failure_converts_to_error(self):
        """Test a decode failure maps to the service error."""
        failure = decode("ONLY ONE LINE")
        error = failure.to_error()

        assert error.error_code == "INSUFFICIENT_LINES"
        assert error.details["line_count"] == 1

    def test_tolerates_crlf_and_padding(self, sample_mrz_td3):
        """Test Windows line endings and surrounding whitespace are ignored."""
        raw_text = "  " + sample_mrz_td3[0] + "  \r\n\r\n\t" + sample_mrz_td3[1] + " \r\n"

        assert decode(raw_text) == decode("\n".join(sample_mrz_td3))

    def test_short_second_line_degrades_to_empty_fields(self):
        """Test a truncated line 2 still decodes with empty tail fields."""
        result = decode("P<USADOE<<JOHN\nAB1234567")

        assert isinstance(result, ParsedDocument)
        assert result.document_number == "AB1234567"
        assert result.nationality == ""
        assert result.date_of_birth == ""
        assert result.sex == ""
        assert result.expiry_date == ""
        assert result.missing_required() == ["date_of_birth", "expiry_date"]

    def test_extra_lines_are_ignored(self, sample_mrz_td3):
        """Test only the first two lines are decoded."""
        raw_text = "\n".join(sample_mrz_td3 + ["SOME<<TRAILING<<NOISE"])

        assert decode(raw_text) == decode("\n".join(sample_mrz_td3))

    def test_personal_number(self):
        """Test the optional data field of line 2 is decoded."""
        result = decode(
            "P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<\n"
            "L898902C36UTO7408122F1204159ZE184226B<<<<<10"
        )

        assert result.personal_number == "ZE184226B"
        assert result.sex == "F"

    def test_decode_is_deterministic(self, sample_mrz_text):
        """Test decoding the same text twice gives equal records."""
        assert decode(sample_mrz_text) == decode(sample_mrz_text)

    def test_non_string_input_raises(self):
        """Test None is a contract violation, not a decode failure."""
        with pytest.raises(TypeError):
            decode(None)


class TestNames:
    """Test name block parsing."""

    @pytest.mark.parametrize("block, expected", [
        ("DOE<<JOHN<MICHAEL", ("DOE", "JOHN", "MICHAEL")),
        ("DOE<<", ("DOE", "", "")),
        ("DOE", ("DOE", "", "")),
        ("DOE<<JOHN<<<<<<<<<<", ("DOE", "JOHN", "")),
        ("VAN<DER<BERG<<ANNA<MARIA<LUISA", ("VAN DER BERG", "ANNA", "MARIA LUISA")),
        ("<<JOHN", ("", "JOHN", "")),
        ("", ("", "", "")),
    ])
    def test_parse_name_block(self, block, expected):
        """Test surname and given names split on the double filler."""
        assert parse_name_block(block) == expected


class TestSex:
    """Test sex code normalization."""

    @pytest.mark.parametrize("code, expected", [
        ("1", "F"),
        ("2", "M"),
        ("M", "M"),
        ("F", "F"),
        ("m", "M"),
        ("<", "<"),
        ("X", "X"),
        ("", ""),
    ])
    def test_normalize_sex(self, code, expected):
        """Test numeric codes map to letters and letters pass through."""
        assert normalize_sex(code) == expected

    @pytest.mark.parametrize("code, expected", [("1", "F"), ("2", "M"), ("M", "M"), ("F", "F")])
    def test_decode_maps_sex(self, code, expected):
        """Test the decoder applies the sex mapping at column 20."""
        line2 = f"AB12345676USA9001011{code}3001012"
        assert decode(f"P<USADOE<<JOHN\n{line2}").sex == expected


class TestFixedWidth:
    """Test the legacy fixed-width input adapter."""

    def test_rejoined_buffer_matches_split_input(self, sample_mrz_td3):
        """Test a single 88 character buffer decodes like two lines."""
        buffer = "".join(sample_mrz_td3)

        assert decode_fixed_width(buffer) == decode("\n".join(sample_mrz_td3))

    def test_stray_line_breaks_are_dropped(self, sample_mrz_td3):
        """Test line breaks in the wrong places are re-sliced."""
        buffer = "".join(sample_mrz_td3)
        broken = buffer[:30] + "\n" + buffer[30:60] + "\r\n" + buffer[60:]

        assert decode_fixed_width(broken) == decode("\n".join(sample_mrz_td3))

    def test_short_buffer_fails(self):
        """Test a buffer shorter than one line cannot decode."""
        result = decode_fixed_width("P<USADOE<<JOHN")

        assert isinstance(result, DecodeFailure)

    def test_custom_width(self):
        """Test TD1-style 30 character lines."""
        buffer = "I<UTOD231458907<<<<<<<<<<<<<<<" + "7408122F1204159UTO<<<<<<<<<<<6"
        result = decode_fixed_width(buffer, width=30)

        assert result.document_type == "I<"
        assert result.issuing_country == "UTO"


class TestNormalizeDate:
    """Test compact date normalization."""

    def test_birth_date_in_last_century(self):
        """Test a birth year above the pivot resolves to 19xx."""
        assert normalize_date("900101", is_expiry=False, current_year=2026) == "01/01/1990"

    def test_expiry_always_this_century(self):
        """Test expiry dates resolve to 20xx."""
        assert normalize_date("300101", is_expiry=True, current_year=2026) == "01/01/2030"
        assert normalize_date("990101", is_expiry=True, current_year=2026) == "01/01/2099"

    @pytest.mark.parametrize("compact, current_year, expected", [
        ("360101", 2026, "01/01/2036"),
        ("370101", 2026, "01/01/1937"),
        ("050615", 2026, "06/15/2005"),
        ("400101", 2030, "01/01/2040"),
        ("410101", 2030, "01/01/1941"),
    ])
    def test_birth_pivot_follows_current_year(self, compact, current_year, expected):
        """Test the century pivot is the current year plus 10."""
        assert normalize_date(compact, current_year=current_year) == expected

    def test_wall_clock_default(self):
        """Test the default pivot uses the current year."""
        assert normalize_date("900101") == "01/01/1990"

    def test_day_first_order(self):
        """Test the configurable DD/MM/YYYY output."""
        assert normalize_date("901231", order=DateOrder.DAY_FIRST, current_year=2026) == "31/12/1990"
        assert normalize_date("901231", order="DMY", current_year=2026) == "31/12/1990"

    @pytest.mark.parametrize("compact", [
        "AB0101",
        "9001AB",
        "021301",
        "020001",
        "020100",
        "020230",
        "010229",
        "900431",
        "90010",
        "9001011",
        "",
        "90 101",
        "９００１０１",
    ])
    def test_invalid_values(self, compact):
        """Test malformed dates collapse to the sentinel."""
        assert normalize_date(compact, current_year=2026) == INVALID_DATE

    def test_leap_day(self):
        """Test 29 February is accepted in leap years only."""
        assert normalize_date("000229", current_year=2026) == "02/29/2000"
        assert normalize_date("010229", current_year=2026) == INVALID_DATE

    def test_expand_date(self):
        """Test the calendar date behind the display string."""
        assert expand_date("900101", current_year=2026) == date(1990, 1, 1)
        assert expand_date("021301") is None

    def test_format_date(self):
        """Test calendar dates format in either field order."""
        assert format_date(date(2026, 10, 9)) == "10/09/2026"
        assert format_date(date(2026, 10, 9), "DMY") == "09/10/2026"

    def test_is_invalid(self):
        """Test the sentinel check."""
        assert is_invalid(INVALID_DATE)
        assert not is_invalid("01/01/1990")

    def test_non_string_raises(self):
        """Test None is a contract violation."""
        with pytest.raises(TypeError):
            normalize_date(None)


class TestDateOrder:
    """Test date order configuration parsing."""

    @pytest.mark.parametrize("name, expected", [
        ("MDY", DateOrder.MONTH_FIRST),
        ("dmy", DateOrder.DAY_FIRST),
        ("DAY_FIRST", DateOrder.DAY_FIRST),
        (DateOrder.MONTH_FIRST, DateOrder.MONTH_FIRST),
    ])
    def test_from_name(self, name, expected):
        """Test accepted spellings."""
        assert DateOrder.from_name(name) is expected

    def test_unknown_order(self):
        """Test unknown names are rejected."""
        with pytest.raises(ValueError):
            DateOrder.from_name("YMD")


class TestParsedDocument:
    """Test the decoded document record."""

    def test_display_dates(self, sample_mrz_text):
        """Test birth and expiry dates formatted with their century hints."""
        document = decode(sample_mrz_text)

        assert document.display_dates(current_year=2026) == {
            "date_of_birth": "01/01/1990",
            "expiry_date": "01/01/2030",
        }

    def test_defaults_are_empty_strings(self):
        """Test absent fields are empty, never None."""
        document = ParsedDocument()

        assert all(value == "" for value in document.to_dict().values())
        assert document.missing_required() == [
            "surname", "document_number", "date_of_birth", "expiry_date"
        ]

    def test_is_immutable(self):
        """Test decoded records cannot be changed in place."""
        document = ParsedDocument(surname="DOE")
        with pytest.raises(Exception):
            document.surname = "ROE"

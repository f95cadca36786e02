"""
Tests for the chat export CSV parser.
"""

import csv
import io
from datetime import date, datetime, time, timezone

import pytest

from services.chat_csv_parser import (
    ChatCsvParser,
    csv_template,
    detect_delimiter,
    detect_format,
    normalize_header,
    parse_date,
    parse_datetime,
    parse_time,
    supported_formats,
)
from services.import_errors import UnsupportedFormat


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestDateAndTime:
    """Date/time field rules."""

    def test_two_digit_year_means_2000s(self):
        assert parse_date("07/04/25") == date(2025, 7, 4)

    def test_four_digit_and_iso_dates(self):
        assert parse_date("12/31/1999") == date(1999, 12, 31)
        assert parse_date("2024-02-29") == date(2024, 2, 29)
        assert parse_date("31.01.24") == date(2024, 1, 31)

    def test_impossible_date_is_rejected(self):
        assert parse_date("02/30/25") is None
        assert parse_date("yesterday") is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("7:52 am", time(7, 52)),
            ("12:00 am", time(0, 0)),
            ("12:30 AM", time(0, 30)),
            ("12:00 pm", time(12, 0)),
            ("12:15 PM", time(12, 15)),
            ("8:05 pm", time(20, 5)),
            ("11:59:58 p.m.", time(23, 59, 58)),
            ("7:52\u202fAM", time(7, 52)),
            ("23:10", time(23, 10)),
            ("0:05:09", time(0, 5, 9)),
        ],
    )
    def test_time_formats(self, raw, expected):
        assert parse_time(raw) == expected

    @pytest.mark.parametrize("raw", ["13:00 pm", "0:10 am", "24:00", "7:60", "noon"])
    def test_invalid_times(self, raw):
        assert parse_time(raw) is None

    def test_full_datetime_formats(self):
        assert parse_datetime("2025-07-04T07:52:00Z") == utc(2025, 7, 4, 7, 52)
        assert parse_datetime("2025-07-04T09:52:00+02:00") == utc(2025, 7, 4, 7, 52)
        assert parse_datetime("2025-07-04 07:52:00") == utc(2025, 7, 4, 7, 52)
        assert parse_datetime("04.07.2025 07:52:00") == utc(2025, 7, 4, 7, 52)
        assert parse_datetime("07/04/2025 07:52:00") == utc(2025, 7, 4, 7, 52)
        assert parse_datetime("07/04/25, 7:52 pm") == utc(2025, 7, 4, 19, 52)
        assert parse_datetime("not a date") is None


class TestHeaderDetection:
    def test_normalize_header(self):
        assert normalize_header("\ufeff Translated Message ") == "translated_message"

    @pytest.mark.parametrize("delimiter", [",", ";", "\t", "|"])
    def test_detect_delimiter(self, delimiter):
        assert detect_delimiter(delimiter.join(["date", "time", "sender", "message"])) == delimiter

    def test_detects_generic_with_translation(self):
        fmt, confidence = detect_format(["date", "timestamp", "sender", "message", "translated_message"])
        assert fmt == "generic"
        assert confidence == 100.0

    def test_detects_telegram_and_imessage(self):
        assert detect_format(["date", "from", "text"])[0] == "telegram"
        assert detect_format(["timestamp", "sender", "message"])[0] == "imessage"

    def test_unknown_header(self):
        assert detect_format(["foo", "bar"]) == ("", 0.0)


class TestParse:
    """Streaming parse of whole files."""

    def test_concrete_generic_scenario(self, sample_csv):
        parser = ChatCsvParser()
        records = list(parser.parse(sample_csv))

        assert parser.format == "generic"
        assert [r.text for r in records] == ["Hi", "Good evening"]
        assert records[0].timestamp == utc(2025, 7, 4, 7, 52)
        assert records[1].timestamp == utc(2025, 7, 4, 20, 5)
        assert records[0].original_text == "Hello"
        assert records[0].was_translated is True
        assert [r.row_number for r in records] == [2, 3]
        assert parser.stats.accepted == 2
        assert parser.stats.skipped == 0
        assert parser.stats.date_range == (utc(2025, 7, 4, 7, 52), utc(2025, 7, 4, 20, 5))
        assert parser.stats.sender_counts == {"Alice": 1, "Bob": 1}

    def test_identical_translation_is_not_marked_translated(self):
        data = b"date,time,sender,message,translated_message\n07/04/25,7:52 am,Alice,Hi,Hi\n"
        (record,) = ChatCsvParser().parse(data)
        assert record.text == "Hi"
        assert record.was_translated is False

    def test_original_is_canonical_without_translation(self):
        data = b"date,time,sender,message\n07/04/25,7:52 am,Alice,Hello there\n"
        (record,) = ChatCsvParser().parse(data)
        assert record.text == "Hello there"
        assert record.original_text == "Hello there"
        assert record.was_translated is False

    def test_bad_rows_are_counted_not_fatal(self):
        data = (
            "date,time,sender,message\n"
            "07/04/25,7:52 am,Alice,ok\n"
            "99/99/25,7:52 am,Alice,bad date\n"
            "07/04/25,,Alice,no time\n"
            "07/04/25,9:00 am,,no sender\n"
            "07/04/25,9:00 am,Bob,\n"
            "\n"
            "07/05/25,10:00 am,Bob,ok again\n"
        ).encode()
        parser = ChatCsvParser()
        records = list(parser.parse(data))

        assert [r.text for r in records] == ["ok", "ok again"]
        assert parser.stats.accepted == 2
        assert parser.stats.skipped == 4
        assert parser.stats.skip_reasons == {"invalid_datetime": 1, "missing_fields": 3}
        reasons = {w["reason"]: w["count"] for w in parser.stats.warnings()}
        assert reasons == {"invalid_datetime": 1, "missing_fields": 3}

    def test_parse_is_lazy(self):
        data = b"date,time,sender,message\n07/04/25,7:52 am,Alice,a\n07/04/25,7:53 am,Bob,b\n"
        parser = ChatCsvParser()
        stream = parser.parse(data)
        assert parser.stats.accepted == 0
        next(stream)
        assert parser.stats.accepted == 1

    def test_cells_are_cleaned(self):
        data = (
            b'\xef\xbb\xbfdate;time;sender;message\r\n'
            b'07/04/25;7:52 am; Alice ;"line one\r\nline two"\r\n'
            b"07/04/25;7:53 am;Bob;'=)\r\n"
        )
        records = list(ChatCsvParser().parse(data))
        assert records[0].sender_label == "Alice"
        assert records[0].text == "line one\nline two"
        assert records[1].text == "=)"

    def test_long_text_is_capped(self):
        data = f"date,time,sender,message\n07/04/25,7:52 am,Alice,{'x' * 6000}\n".encode()
        parser = ChatCsvParser()
        (record,) = parser.parse(data)
        assert len(record.text) == 5000
        assert parser.stats.truncated == 1

    def test_cell_beyond_csv_default_field_limit_is_capped(self):
        """Cells over the csv module's 128 KiB default are truncated, not dropped."""
        data = (
            "date,time,sender,message\n"
            f"07/04/25,7:52 am,Alice,{'x' * 200_000}\n"
            "07/04/25,7:53 am,Bob,short reply\n"
        ).encode()
        parser = ChatCsvParser()
        records = list(parser.parse(data))

        assert [r.sender_label for r in records] == ["Alice", "Bob"]
        assert len(records[0].text) == 5000
        assert parser.stats.truncated == 1
        assert parser.stats.skipped == 0

    def test_header_only_file_yields_nothing(self):
        parser = ChatCsvParser()
        assert list(parser.parse(b"date,time,sender,message\n")) == []
        assert parser.stats.accepted == 0

    def test_telegram_export(self):
        data = 'date,from,text\n2025-07-04 07:52:00,Alice,"Привіт"\n'.encode("utf-8")
        parser = ChatCsvParser()
        (record,) = parser.parse(data)
        assert parser.format == "telegram"
        assert record.text == "Привіт"
        assert record.timestamp == utc(2025, 7, 4, 7, 52)
        assert record.source == "telegram"

    def test_explicit_format_is_honoured(self):
        data = b"date,time,sender,message\n07/04/25,19:52,Alice,hey\n"
        parser = ChatCsvParser("whatsapp")
        (record,) = parser.parse(data)
        assert parser.format == "whatsapp"
        assert record.timestamp == utc(2025, 7, 4, 19, 52)


class TestParseErrors:
    def test_unknown_format_name(self):
        with pytest.raises(UnsupportedFormat):
            ChatCsvParser("skype")

    def test_missing_columns(self):
        with pytest.raises(UnsupportedFormat, match="header"):
            ChatCsvParser().parse(b"when,who\n1,2\n")

    def test_missing_columns_for_named_format(self):
        with pytest.raises(UnsupportedFormat, match="telegram"):
            ChatCsvParser("telegram").parse(b"date,time,sender,message\n")

    def test_empty_file(self):
        with pytest.raises(UnsupportedFormat):
            ChatCsvParser().parse(b"")

    def test_not_utf8(self):
        with pytest.raises(UnsupportedFormat, match="encoding"):
            ChatCsvParser().parse(b"date,time,sender,message\n\xff\xfe\xfa")


class TestDiscoveryAids:
    def test_supported_formats(self):
        formats = supported_formats()
        assert set(formats) == {"generic", "whatsapp", "telegram", "imessage"}
        assert formats["generic"]["requiredColumns"] == ["date", "timestamp", "sender", "message"]
        assert "translated_message" in formats["generic"]["optionalColumns"]

    def test_template_parses_back(self):
        now = datetime(2025, 7, 4, 12, 30, tzinfo=timezone.utc)
        template = csv_template("generic", rows=3, now=now)

        rows = list(csv.reader(io.StringIO(template)))
        assert rows[0] == ["date", "timestamp", "sender", "message", "translated_message"]
        assert rows[1][:2] == ["07/04/25", "12:30 pm"]

        parser = ChatCsvParser()
        records = list(parser.parse(template.encode()))
        assert len(records) == 3
        assert records[0].timestamp == now

    def test_template_unknown_format(self):
        with pytest.raises(UnsupportedFormat):
            csv_template("skype")

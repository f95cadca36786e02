"""
Chat export CSV parser.

Turns decrypted export bytes into a lazy stream of ParsedRecord objects.
Supports the generic export layout (separate date and 12-hour time columns,
optional translation column) plus WhatsApp, Telegram and iMessage style
exports. Rows that cannot be parsed are dropped and counted in ParseStats;
they never abort the file.

Usage::

    parser = ChatCsvParser()
    for record in parser.parse(raw_bytes):
        ...
    parser.stats.accepted, parser.stats.date_range
"""

import csv
import io
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from models.message import MAX_MESSAGE_TEXT_LENGTH
from services.csv_security import clean_cell, sanitize_csv_field
from services.import_errors import UnsupportedFormat

AUTO_FORMAT = "auto"
CANDIDATE_DELIMITERS = (",", ";", "\t", "|")
DEFAULT_MAX_FIELD_SIZE = 50 * 1024 * 1024  # matches the default upload limit

# Logical column -> accepted header spellings (normalized).
DATE = "date"
TIME = "time"
DATETIME = "datetime"
SENDER = "sender"
MESSAGE = "message"
TRANSLATED = "translated_message"

SKIP_MISSING_FIELDS = "missing_fields"
SKIP_INVALID_DATETIME = "invalid_datetime"
SKIP_MALFORMED_ROW = "malformed_row"


@dataclass(frozen=True)
class FormatSpec:
    key: str
    name: str
    description: str
    columns: Dict[str, Tuple[str, ...]]
    required: Tuple[str, ...]
    date_formats: Tuple[str, ...]
    optional: Tuple[str, ...] = (TRANSLATED,)

    @property
    def splits_date_and_time(self) -> bool:
        return DATE in self.required and TIME in self.required

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "requiredColumns": [self.columns[c][0] for c in self.required],
            "optionalColumns": [self.columns[c][0] for c in self.optional if c in self.columns],
            "dateFormats": list(self.date_formats),
        }


SUPPORTED_FORMATS: Dict[str, FormatSpec] = {
    "generic": FormatSpec(
        key="generic",
        name="Generic Chat Export",
        description="Generic chat export with separate date and time columns",
        columns={
            DATE: ("date",),
            TIME: ("timestamp", "time"),
            SENDER: ("sender",),
            MESSAGE: ("message",),
            TRANSLATED: ("translated_message", "translation"),
        },
        required=(DATE, TIME, SENDER, MESSAGE),
        date_formats=("MM/DD/YY h:mm am", "MM/DD/YYYY HH:mm", "YYYY-MM-DD HH:mm"),
    ),
    "whatsapp": FormatSpec(
        key="whatsapp",
        name="WhatsApp Export",
        description="WhatsApp chat export format",
        columns={
            DATE: ("date",),
            TIME: ("time",),
            SENDER: ("sender", "author"),
            MESSAGE: ("message",),
            TRANSLATED: ("translated_message",),
        },
        required=(DATE, TIME, SENDER, MESSAGE),
        date_formats=("MM/DD/YY, HH:mm", "DD.MM.YY, HH:mm", "YYYY-MM-DD HH:mm:ss"),
    ),
    "telegram": FormatSpec(
        key="telegram",
        name="Telegram Export",
        description="Telegram chat export format",
        columns={
            DATETIME: ("date",),
            SENDER: ("from",),
            MESSAGE: ("text",),
            TRANSLATED: ("translated_message",),
        },
        required=(DATETIME, SENDER, MESSAGE),
        date_formats=("YYYY-MM-DD HH:mm:ss", "DD.MM.YYYY HH:mm:ss", "ISO-8601"),
    ),
    "imessage": FormatSpec(
        key="imessage",
        name="iMessage Export",
        description="iMessage export format",
        columns={
            DATETIME: ("timestamp",),
            SENDER: ("sender",),
            MESSAGE: ("message",),
            TRANSLATED: ("translated_message",),
        },
        required=(DATETIME, SENDER, MESSAGE),
        date_formats=("YYYY-MM-DD HH:mm:ss", "MM/DD/YYYY HH:mm:ss", "ISO-8601"),
    ),
}


@dataclass(frozen=True)
class ParsedRecord:
    timestamp: datetime  # always UTC-aware
    sender_label: str
    text: str
    original_text: str
    was_translated: bool
    row_number: int
    source: str = "generic"


@dataclass
class ParseStats:
    """Running aggregates collected while the record stream is consumed."""

    total_rows: int = 0
    accepted: int = 0
    truncated: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    sender_counts: Counter = field(default_factory=Counter)
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())

    @property
    def date_range(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        return self.earliest, self.latest

    def record(self, rec: ParsedRecord) -> None:
        self.accepted += 1
        self.sender_counts[rec.sender_label] += 1
        if self.earliest is None or rec.timestamp < self.earliest:
            self.earliest = rec.timestamp
        if self.latest is None or rec.timestamp > self.latest:
            self.latest = rec.timestamp

    def skip(self, reason: str) -> None:
        self.skip_reasons[reason] += 1

    def warnings(self) -> List[dict]:
        """ParseWarning entries for the API response."""
        out = [
            {"type": "ParseWarning", "reason": reason, "count": count}
            for reason, count in sorted(self.skip_reasons.items())
        ]
        if self.truncated:
            out.append(
                {"type": "ParseWarning", "reason": "text_truncated", "count": self.truncated}
            )
        return out


# --- date / time parsing ----------------------------------------------------

_SLASH_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_DOT_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{2}|\d{4})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TIME_RE = re.compile(
    r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([ap])\.?\s?m\.?$|^(\d{1,2}):(\d{2})(?::(\d{2}))?$",
    re.IGNORECASE,
)
_DATETIME_SPLIT_RE = re.compile(r"^(\S+?),?\s+(.+)$")
_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)


def _normalize_spaces(value: str) -> str:
    # WhatsApp puts a narrow no-break space before AM/PM.
    return re.sub(r"[\s\u202f\xa0]+", " ", value).strip()


def _full_year(value: str) -> int:
    year = int(value)
    return 2000 + year if len(value) == 2 else year


def parse_date(value: str) -> Optional[date]:
    """Parse MM/DD/YY, MM/DD/YYYY, DD.MM.YY(YY) or YYYY-MM-DD. Two-digit years are 20YY."""
    value = _normalize_spaces(value).rstrip(",")
    try:
        m = _SLASH_DATE_RE.match(value)
        if m:
            return date(_full_year(m.group(3)), int(m.group(1)), int(m.group(2)))
        m = _DOT_DATE_RE.match(value)
        if m:
            return date(_full_year(m.group(3)), int(m.group(2)), int(m.group(1)))
        m = _ISO_DATE_RE.match(value)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None
    return None


def parse_time(value: str) -> Optional[time]:
    """
    Parse ``H:MM[:SS] am|pm`` or 24-hour ``H:MM[:SS]``.

    12-hour edge cases: 12 am -> 00:xx, 12 pm -> 12:xx.
    """
    m = _TIME_RE.match(_normalize_spaces(value))
    if not m:
        return None

    if m.group(4):
        hours, minutes, seconds = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
        if not 1 <= hours <= 12:
            return None
        meridiem = m.group(4).lower()
        if meridiem == "p" and hours < 12:
            hours += 12
        elif meridiem == "a" and hours == 12:
            hours = 0
    else:
        hours, minutes, seconds = int(m.group(5)), int(m.group(6)), int(m.group(7) or 0)

    try:
        return time(hours, minutes, seconds)
    except ValueError:
        return None


def to_utc(value: datetime) -> datetime:
    """Naive values are taken as UTC; aware values are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def combine_date_time(date_value: str, time_value: str) -> Optional[datetime]:
    d = parse_date(date_value)
    t = parse_time(time_value)
    if d is None or t is None:
        return None
    return datetime.combine(d, t, tzinfo=timezone.utc)


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse a single date-time field (ISO-8601 and common export layouts)."""
    value = _normalize_spaces(value)
    if not value:
        return None

    iso_candidate = value[:-1] + "+00:00" if value.endswith(("Z", "z")) else value
    try:
        return to_utc(datetime.fromisoformat(iso_candidate))
    except ValueError:
        pass

    for fmt in _DATETIME_FORMATS:
        try:
            return to_utc(datetime.strptime(value, fmt))
        except ValueError:
            continue

    m = _DATETIME_SPLIT_RE.match(value)
    if m:
        return combine_date_time(m.group(1), m.group(2))
    return None


# --- header handling --------------------------------------------------------


def normalize_header(name: str) -> str:
    name = (name or "").replace("\ufeff", "").strip().lower()
    return re.sub(r"[\s\-]+", "_", name)


def detect_delimiter(header_line: str) -> str:
    best, best_count = ",", 0
    for delimiter in CANDIDATE_DELIMITERS:
        count = header_line.count(delimiter)
        if count > best_count:
            best, best_count = delimiter, count
    return best


def _resolve_columns(spec: FormatSpec, headers: List[str]) -> Dict[str, int]:
    indexes: Dict[str, int] = {}
    for logical, aliases in spec.columns.items():
        for alias in aliases:
            if alias in headers:
                indexes[logical] = headers.index(alias)
                break
    return indexes


def detect_format(headers: List[str]) -> Tuple[str, float]:
    """
    Score every supported format against the header row.

    Returns ``(format_key, confidence)`` where confidence is 0-100. Formats
    missing a required column are never selected; ties go to the first
    format in SUPPORTED_FORMATS.
    """
    best_key, best_score = None, None
    for key, spec in SUPPORTED_FORMATS.items():
        found = _resolve_columns(spec, headers)
        if any(col not in found for col in spec.required):
            continue
        score = 10 * len(spec.required) + sum(2 for col in spec.optional if col in found)
        if best_score is None or score > best_score:
            best_key, best_score = key, score

    if best_key is None:
        return "", 0.0
    confidence = min(100.0, best_score / (10 * len(SUPPORTED_FORMATS[best_key].required)) * 100)
    return best_key, confidence


# --- parser -----------------------------------------------------------------


class ChatCsvParser:
    """
    Pull-based parser. ``parse`` validates the header eagerly and returns a
    single-pass generator; ``stats`` fills in as the generator is consumed.
    """

    def __init__(
        self,
        fmt: str = AUTO_FORMAT,
        max_text_length: int = MAX_MESSAGE_TEXT_LENGTH,
        max_field_size: int = DEFAULT_MAX_FIELD_SIZE,
    ):
        fmt = (fmt or AUTO_FORMAT).strip().lower()
        if fmt != AUTO_FORMAT and fmt not in SUPPORTED_FORMATS:
            raise UnsupportedFormat(
                f"Unsupported format: {fmt}. Supported: {', '.join(SUPPORTED_FORMATS)}"
            )
        self.requested_format = fmt
        self.max_text_length = max_text_length
        self.max_field_size = max_field_size
        self.format: Optional[str] = None
        self.confidence: float = 0.0
        self.stats = ParseStats()

    def parse(self, raw: bytes) -> Iterator[ParsedRecord]:
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise UnsupportedFormat("Invalid file encoding. Expected UTF-8 text.")
        text = text.replace("\x00", "")
        # A single cell may be as large as the whole upload; it is capped to
        # max_text_length later instead of failing the row.
        csv.field_size_limit(self.max_field_size)

        header_line = text.split("\n", 1)[0]
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=detect_delimiter(header_line))
        try:
            headers = [normalize_header(h) for h in next(reader)]
        except StopIteration:
            raise UnsupportedFormat("CSV file must contain a header row")
        except csv.Error:
            raise UnsupportedFormat("CSV header row could not be read")

        spec = self._select_format(headers)
        columns = _resolve_columns(spec, headers)
        missing = [spec.columns[c][0] for c in spec.required if c not in columns]
        if missing:
            raise UnsupportedFormat(
                f"CSV header is missing required columns for {spec.key} format: "
                f"{', '.join(missing)}"
            )

        self.format = spec.key
        return self._records(reader, spec, columns)

    def _select_format(self, headers: List[str]) -> FormatSpec:
        if self.requested_format != AUTO_FORMAT:
            self.confidence = 100.0
            return SUPPORTED_FORMATS[self.requested_format]
        key, confidence = detect_format(headers)
        if not key:
            raise UnsupportedFormat(
                "CSV header does not match any supported format. Expected columns like: "
                "date, timestamp, sender, message, translated_message"
            )
        self.confidence = confidence
        return SUPPORTED_FORMATS[key]

    def _records(
        self, reader, spec: FormatSpec, columns: Dict[str, int]
    ) -> Iterator[ParsedRecord]:
        row_number = 1  # header
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except csv.Error:
                row_number += 1
                self.stats.total_rows += 1
                self.stats.skip(SKIP_MALFORMED_ROW)
                continue

            row_number += 1
            if not row or not any(cell.strip() for cell in row):
                continue

            self.stats.total_rows += 1
            record = self._build_record(row, row_number, spec, columns)
            if record is not None:
                self.stats.record(record)
                yield record

    def _build_record(
        self, row: List[str], row_number: int, spec: FormatSpec, columns: Dict[str, int]
    ) -> Optional[ParsedRecord]:
        def cell(logical: str) -> str:
            idx = columns.get(logical)
            if idx is None or idx >= len(row):
                return ""
            return clean_cell(row[idx])

        sender = cell(SENDER)
        message = cell(MESSAGE)
        translated = cell(TRANSLATED)

        if spec.splits_date_and_time:
            date_value, time_value = cell(DATE), cell(TIME)
            if not date_value or not time_value:
                self.stats.skip(SKIP_MISSING_FIELDS)
                return None
            timestamp = combine_date_time(date_value, time_value)
        else:
            datetime_value = cell(DATETIME)
            if not datetime_value:
                self.stats.skip(SKIP_MISSING_FIELDS)
                return None
            timestamp = parse_datetime(datetime_value)

        if not sender or not (message or translated):
            self.stats.skip(SKIP_MISSING_FIELDS)
            return None
        if timestamp is None:
            self.stats.skip(SKIP_INVALID_DATETIME)
            return None

        if translated:
            text, was_translated = translated, translated != message
        else:
            text, was_translated = message, False

        if len(text) > self.max_text_length:
            text = text[: self.max_text_length]
            self.stats.truncated += 1

        return ParsedRecord(
            timestamp=timestamp,
            sender_label=sender,
            text=text,
            original_text=message,
            was_translated=was_translated,
            row_number=row_number,
            source=spec.key,
        )


def supported_formats() -> Dict[str, dict]:
    return {key: spec.describe() for key, spec in SUPPORTED_FORMATS.items()}


def csv_template(fmt: str, rows: int = 3, now: Optional[datetime] = None) -> str:
    """Build a small sample CSV for ``fmt``; values pass through sanitize_csv_field."""
    spec = SUPPORTED_FORMATS.get((fmt or "").lower())
    if spec is None:
        raise UnsupportedFormat(
            f"Unsupported format: {fmt}. Supported: {', '.join(SUPPORTED_FORMATS)}"
        )

    now = now or datetime.now(timezone.utc)
    logical = list(spec.required) + [c for c in spec.optional if c in spec.columns]
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([spec.columns[c][0] for c in logical])

    for i in range(rows):
        moment = now - timedelta(days=i)
        hour12 = moment.hour % 12 or 12
        meridiem = "am" if moment.hour < 12 else "pm"
        sample = {
            DATE: moment.strftime("%m/%d/%y"),
            TIME: f"{hour12}:{moment.minute:02d} {meridiem}",
            DATETIME: moment.strftime("%Y-%m-%d %H:%M:%S"),
            SENDER: "Alice" if i % 2 == 0 else "Bob",
            MESSAGE: f"Sample message {i + 1}",
            TRANSLATED: "",
        }
        writer.writerow([sanitize_csv_field(sample[c]) for c in logical])

    return buffer.getvalue()

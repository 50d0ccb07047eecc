"""Rota parsing: spreadsheet grids (.xlsx, .csv) and OCR-extracted text to normalized rows.

Grid layout: an optional title row ("<NAME> HOTEL TIMESHEET <DEPARTMENT>"), then
one or more week blocks. A block starts with a header row holding up to seven
dates in columns 1.., optionally followed by day-name / unit label rows, then
one row per employee: the name in column 0 and a duty cell under each date.

Parsing is best-effort per cell. Only file-level problems (wrong type, empty,
unreadable archive, no dates at all) raise, and they raise before any row is
processed.
"""
from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from staffdesk.errors import RotaFileError

log = logging.getLogger("uvicorn.error")

DAYS_PER_BLOCK = 7
UNKNOWN_HOTEL = "Unknown Hotel"
UNKNOWN_DEPARTMENT = "Unknown Department"
OFF_DUTY = "OFF"

DUTY_TIME_RANGE = "time_range"
DUTY_REST = "rest"
DUTY_LABEL = "label"
DUTY_BLANK = "blank"
DUTY_UNKNOWN = "unknown"

_MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]
_DAY_NAMES = {
    "mon", "tue", "tues", "wed", "thu", "thur", "thurs", "fri", "sat", "sun",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
}
_REST_MARKERS = {
    "off", "day off", "dayoff", "off day", "rest", "rest day", "rd", "r/d",
    "holiday", "hol", "leave", "al", "a/l", "annual leave", "-", "–", "—",
}
_WORK_LABELS = {
    "set-ups", "set-up", "set ups", "set up", "setups", "setup",
    "training", "on call", "on-call", "induction",
}
_LABEL_ROW_NAMES = {"unit", "units", "name", "names", "employee", "employee name", "staff", "day", "days", "date", "dates"}

_RANGE_RE = re.compile(r"(\d{1,2})[:.](\d{2})\s*(?:-|–|—|to)\s*(\d{1,2})[:.](\d{2})", re.IGNORECASE)
# "08:18:00" is written by some rota templates for 08:00-18:00
_COMPRESSED_RE = re.compile(r"^(\d{2}):(\d{2}):(\d{2})$")
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
# A bare space only introduces a four-digit year: "10-Jun 11-Jun" is two dates
_DAY_MONTH_RE = re.compile(r"\b(\d{1,2}) *[-/ ] *([a-z]{3,9})\.?(?: *[-/ ] *(\d{4})\b|[-/](\d{2})\b)?", re.IGNORECASE)
_MONTH_DAY_RE = re.compile(r"\b([a-z]{3,9})\.? +(\d{1,2})\b(?:,? +(\d{4}))?", re.IGNORECASE)
_SLOT_RE = re.compile(
    r"(\d{1,2}[:.]\d{2}\s*[-–]\s*\d{1,2}[:.]\d{2})"
    r"|(\b\d{2}:\d{2}:\d{2}\b)"
    r"|\b(set-?ups?|day off|off|holiday|leave|rest)\b",
    re.IGNORECASE,
)
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class DutyParse:
    duty: str
    start_time: time | None
    end_time: time | None
    is_off_day: bool
    kind: str

    @property
    def is_overnight(self) -> bool:
        return self.start_time is not None and self.end_time is not None and self.end_time < self.start_time


@dataclass(frozen=True)
class ParsedRow:
    raw_name: str
    schedule_date: date
    duty: str
    start_time: time | None
    end_time: time | None
    is_off_day: bool
    kind: str
    source_row: int


@dataclass
class ParsedRota:
    hotel_name: str
    department: str
    start_date: date
    end_date: date
    rows: list[ParsedRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    extracted_text: str = ""

    @property
    def raw_names(self) -> list[str]:
        """Distinct employee names in file order."""
        seen: dict[str, None] = {}
        for row in self.rows:
            seen.setdefault(row.raw_name, None)
        return list(seen)


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------

def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat() if value.time() == time(0, 0) else value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return _WS_RE.sub(" ", str(value)).strip()


def _normalize_label(text: str) -> str:
    return _WS_RE.sub(" ", text.strip().lower())


def _make_time(hour: int, minute: int) -> time | None:
    if hour == 24 and minute == 0:
        return time(0, 0)
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return time(hour, minute)
    return None


def _month_number(token: str) -> int | None:
    token = token.lower().rstrip(".")
    if len(token) < 3:
        return None
    for idx, name in enumerate(_MONTH_NAMES, start=1):
        if name.startswith(token):
            return idx
    return None


def infer_year(month: int, day: int, today: date) -> date | None:
    """Year-less dates take the current year unless that is over six months ago."""
    try:
        candidate = date(today.year, month, day)
    except ValueError:
        return None
    if candidate < today - timedelta(days=183):
        try:
            return date(today.year + 1, month, day)
        except ValueError:
            return None
    return candidate


def _full_date(year: int, month: int, day: int) -> date | None:
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_header_date(value, today: date) -> date | None:
    """Read one header cell as a date; anything that is not a date gives None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _cell_text(value)
    if not text:
        return None
    m = _ISO_DATE_RE.search(text)
    if m:
        return _full_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _NUMERIC_DATE_RE.search(text)
    if m:
        return _full_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    m = _DAY_MONTH_RE.search(text)
    if m and _month_number(m.group(2)):
        return _day_month_date(m, today)
    m = _MONTH_DAY_RE.search(text)
    if m and _month_number(m.group(1)):
        return _month_day_date(m, today)
    return None


def _day_month_date(m: re.Match, today: date) -> date | None:
    """Date from a _DAY_MONTH_RE match: '10-Jun', '10 Jun 2025', '10-Jun-25'."""
    month = _month_number(m.group(2))
    if not month:
        return None
    day = int(m.group(1))
    year = m.group(3) or m.group(4)
    return _full_date(int(year), month, day) if year else infer_year(month, day, today)


def _month_day_date(m: re.Match, today: date) -> date | None:
    """Date from a _MONTH_DAY_RE match: 'Jun 10', 'June 10, 2025'."""
    month = _month_number(m.group(1))
    if not month:
        return None
    day = int(m.group(2))
    return _full_date(int(m.group(3)), month, day) if m.group(3) else infer_year(month, day, today)


# ---------------------------------------------------------------------------
# Duty classification
# ---------------------------------------------------------------------------

def classify_duty(value) -> DutyParse:
    """Classify one duty cell. Never raises: unrecognised text is kept as an opaque work duty."""
    text = _cell_text(value)
    if not text:
        return DutyParse(OFF_DUTY, None, None, True, DUTY_BLANK)

    label = _normalize_label(text)
    if label in _REST_MARKERS:
        return DutyParse(text, None, None, True, DUTY_REST)
    if label in _WORK_LABELS:
        return DutyParse(text, None, None, False, DUTY_LABEL)

    m = _COMPRESSED_RE.match(text)
    if m and isinstance(value, str):
        start = _make_time(int(m.group(1)), 0)
        end = _make_time(int(m.group(2)), 0)
        if start is not None and end is not None:
            return DutyParse(f"{m.group(1)}:00-{m.group(2)}:00", start, end, False, DUTY_TIME_RANGE)

    m = _RANGE_RE.search(text)
    if m:
        start = _make_time(int(m.group(1)), int(m.group(2)))
        end = _make_time(int(m.group(3)), int(m.group(4)))
        if start is not None and end is not None:
            return DutyParse(format_time_range(start, end), start, end, False, DUTY_TIME_RANGE)

    return DutyParse(text, None, None, False, DUTY_UNKNOWN)


def format_time_range(start: time, end: time) -> str:
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"


# ---------------------------------------------------------------------------
# Upload validation and grid loading
# ---------------------------------------------------------------------------

def validate_upload(filename: str | None, content: bytes, *, max_bytes: int, allowed_extensions: list[str]) -> str:
    """Reject wrong type, empty and oversized files. Returns the lowercase extension."""
    if not filename:
        raise RotaFileError("Please select a file to upload")
    ext = Path(filename).suffix.lower()
    allowed = [e.lower() for e in allowed_extensions]
    if ext not in allowed:
        raise RotaFileError(f"Please upload a rota file ({', '.join(allowed)})")
    if not content:
        raise RotaFileError("File is empty.")
    if len(content) > max_bytes:
        raise RotaFileError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")
    return ext


def load_grid(content: bytes, filename: str) -> list[tuple]:
    ext = Path(filename).suffix.lower()
    if ext == ".xlsx":
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise RotaFileError(f"Could not read Excel file: {e!s}")
        try:
            if not workbook.worksheets:
                raise RotaFileError("Excel file has no worksheets.")
            sheet = workbook.worksheets[0]
            return [tuple(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
    if ext == ".csv":
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise RotaFileError("File must be UTF-8 encoded.")
        return [tuple(row) for row in csv.reader(io.StringIO(text))]
    raise RotaFileError("Please upload an Excel (.xlsx) or CSV file")


def _dump_grid(rows: list[tuple]) -> str:
    return "\n".join("\t".join(_cell_text(c) for c in row).rstrip() for row in rows).strip()


def parse_title(text: str) -> tuple[str, str] | None:
    """'LANDMARK HOTEL TIMESHEET CONFERENCE & BANQUETING' -> ('LANDMARK', 'CONFERENCE & BANQUETING')."""
    parts = re.split(r"\btimesheet\b", text, maxsplit=1, flags=re.IGNORECASE)
    if len(parts) < 2:
        return None
    hotel = re.sub(r"\bhotel\b", "", parts[0], flags=re.IGNORECASE)
    hotel = _WS_RE.sub(" ", hotel).strip(" -:|")
    department = _WS_RE.sub(" ", parts[1]).strip(" -:|")
    return hotel or UNKNOWN_HOTEL, department or UNKNOWN_DEPARTMENT


def _is_label_row(name: str, duty_texts: list[str]) -> bool:
    if _normalize_label(name) in _LABEL_ROW_NAMES:
        return True
    filled = [_normalize_label(t).rstrip(".") for t in duty_texts if t]
    return bool(filled) and all(t in _DAY_NAMES for t in filled)


# ---------------------------------------------------------------------------
# Grid parsing
# ---------------------------------------------------------------------------

def parse_rota_grid(rows: list[tuple], today: date | None = None) -> ParsedRota:
    today = today or date.today()
    hotel_name = UNKNOWN_HOTEL
    department = UNKNOWN_DEPARTMENT
    all_dates: list[date] = []
    block: list[tuple[int, date]] | None = None
    parsed: list[ParsedRow] = []
    warnings: list[str] = []

    for index, row in enumerate(rows):
        row_no = index + 1
        if not row or all(_cell_text(c) == "" for c in row):
            continue
        name = _cell_text(row[0])
        duty_cells = list(row[1:])
        duty_texts = [_cell_text(c) for c in duty_cells]

        header = []
        for col, cell in enumerate(duty_cells, start=1):
            d = parse_header_date(cell, today)
            if d is not None:
                header.append((col, d))
        if header:
            if len(header) > DAYS_PER_BLOCK:
                warnings.append(f"Row {row_no}: {len(header)} date columns, only the first {DAYS_PER_BLOCK} are used.")
                header = header[:DAYS_PER_BLOCK]
            block = header
            all_dates.extend(d for _, d in header)
            continue

        first_text = name or next((t for t in duty_texts if t), "")
        title = parse_title(first_text) if block is None else None
        if title:
            hotel_name, department = title
            continue

        if _is_label_row(name, duty_texts):
            continue

        if not name:
            warnings.append(f"Row {row_no}: duty cells without an employee name, row skipped.")
            continue
        if len(name) < 2:
            warnings.append(f"Row {row_no}: employee name '{name}' is too short, row skipped.")
            continue
        if block is None:
            warnings.append(f"Row {row_no}: employee row '{name}' appears before any date header, row skipped.")
            continue

        for col, schedule_date in block:
            value = row[col] if col < len(row) else None
            duty = classify_duty(value)
            parsed.append(
                ParsedRow(
                    raw_name=name,
                    schedule_date=schedule_date,
                    duty=duty.duty,
                    start_time=duty.start_time,
                    end_time=duty.end_time,
                    is_off_day=duty.is_off_day,
                    kind=duty.kind,
                    source_row=row_no,
                )
            )

    if not all_dates:
        raise RotaFileError("No date header row found. Expected dates such as '10-Jun' above the duty columns.")

    for message in warnings:
        log.warning("Rota parse: %s", message)

    return ParsedRota(
        hotel_name=hotel_name,
        department=department,
        start_date=min(all_dates),
        end_date=max(all_dates),
        rows=parsed,
        warnings=warnings,
        extracted_text=_dump_grid(rows),
    )


def parse_rota_workbook(content: bytes, filename: str, today: date | None = None) -> ParsedRota:
    rows = load_grid(content, filename)
    if not rows:
        raise RotaFileError("The rota sheet is empty.")
    return parse_rota_grid(rows, today=today)


# ---------------------------------------------------------------------------
# OCR-extracted text
# ---------------------------------------------------------------------------

def _find_text_dates(text: str, today: date) -> list[date]:
    found: list[date] = []
    for m in _DAY_MONTH_RE.finditer(text):
        d = _day_month_date(m, today)
        if d:
            found.append(d)
    if not found:
        for m in _MONTH_DAY_RE.finditer(text):
            d = _month_day_date(m, today)
            if d:
                found.append(d)
    if not found:
        for m in _ISO_DATE_RE.finditer(text):
            d = _full_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
            if d:
                found.append(d)
    return sorted(set(found))


def _is_text_header_line(line: str) -> bool:
    lower = line.lower()
    words = re.findall(r"[a-z]+", lower)
    if any(w in _DAY_NAMES for w in words):
        return True
    if _DAY_MONTH_RE.search(line) and any(_month_number(m.group(2)) for m in _DAY_MONTH_RE.finditer(line)):
        return True
    if "timesheet" in lower or re.search(r"\bunit\b", lower):
        return True
    if len(re.sub(r"[^a-z0-9]", "", lower)) < 5:
        return True
    specials = len(re.sub(r"[a-zA-Z0-9\s]", "", line))
    if specials / len(line) > 0.5:
        return True
    tokens = lower.split()
    single = sum(1 for t in tokens if len(t) == 1 and not t.isdigit())
    return len(tokens) > 5 and single > len(tokens) // 2


def parse_extracted_text(text: str, today: date | None = None) -> ParsedRota:
    """Parse text produced by an OCR pass over a rota image.

    Each employee line reads '<name> <slot> <slot> ...'; slots are assigned to
    consecutive dates of the detected range.
    """
    today = today or date.today()
    if not text or not text.strip():
        raise RotaFileError("Extracted text is empty.")
    warnings: list[str] = []

    hotel_name, department = UNKNOWN_HOTEL, UNKNOWN_DEPARTMENT
    for line in text.splitlines():
        title = parse_title(line.strip())
        if title:
            hotel_name, department = title
            break

    dates = _find_text_dates(text, today)
    if dates:
        start, end = dates[0], dates[-1]
    else:
        start, end = today, today + timedelta(days=DAYS_PER_BLOCK - 1)
        warnings.append(f"No dates found in extracted text, defaulting to {start.isoformat()}..{end.isoformat()}.")
    range_dates = [start + timedelta(days=i) for i in range((end - start).days + 1)]

    parsed: list[ParsedRow] = []
    for line_no, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if len(line) < 5 or _is_text_header_line(line):
            continue
        slots = list(_SLOT_RE.finditer(line))
        if not slots:
            if re.search(r"\d{1,2}[:.]\d{2}", line):
                warnings.append(f"Line {line_no}: time data without a recognisable shift, line skipped.")
            continue
        name = re.sub(r"[^A-Za-z'.\- ]", " ", line[: slots[0].start()])
        name = _WS_RE.sub(" ", name).strip(" .-'")
        if len(name) < 2:
            warnings.append(f"Line {line_no}: shifts without an employee name, line skipped.")
            continue
        if len(slots) > len(range_dates):
            warnings.append(f"Line {line_no}: {len(slots)} shifts for {len(range_dates)} dates, extra shifts ignored.")
        for slot, schedule_date in zip(slots, range_dates):
            duty = classify_duty(slot.group(0))
            parsed.append(
                ParsedRow(
                    raw_name=name,
                    schedule_date=schedule_date,
                    duty=duty.duty,
                    start_time=duty.start_time,
                    end_time=duty.end_time,
                    is_off_day=duty.is_off_day,
                    kind=duty.kind,
                    source_row=line_no,
                )
            )

    for message in warnings:
        log.warning("Rota text parse: %s", message)

    return ParsedRota(
        hotel_name=hotel_name,
        department=department,
        start_date=start,
        end_date=end,
        rows=parsed,
        warnings=warnings,
        extracted_text=text,
    )

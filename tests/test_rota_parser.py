from __future__ import annotations

from datetime import date, datetime, time, timedelta

import pytest

from conftest import workbook_bytes
from staffdesk.errors import RotaFileError
from staffdesk.services.rota_parser import (
    DUTY_BLANK,
    DUTY_LABEL,
    DUTY_REST,
    DUTY_TIME_RANGE,
    DUTY_UNKNOWN,
    classify_duty,
    load_grid,
    parse_extracted_text,
    parse_header_date,
    parse_rota_grid,
    parse_rota_workbook,
    validate_upload,
)

WEEK_START = date(2026, 6, 8)  # Monday
WEEK = [WEEK_START + timedelta(days=i) for i in range(7)]
DAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def _header(dates=WEEK):
    return ["Name"] + [datetime(d.year, d.month, d.day) for d in dates]


def _rows_for(parsed, name):
    return sorted((r for r in parsed.rows if r.raw_name == name), key=lambda r: r.schedule_date)


def test_workbook_time_range_and_blank_cell():
    content = workbook_bytes(
        [
            ["LANDMARK HOTEL TIMESHEET CONFERENCE & BANQUETING"],
            _header(),
            [""] + DAY_LABELS,
            ["John Smith", "09:00-17:00", None, "22:00-06:00", "OFF", "Set-Ups", "08:18:00", "Wedding"],
        ]
    )
    parsed = parse_rota_workbook(content, "rota.xlsx")

    assert parsed.hotel_name == "LANDMARK"
    assert parsed.department == "CONFERENCE & BANQUETING"
    assert parsed.start_date == WEEK[0]
    assert parsed.end_date == WEEK[-1]

    rows = _rows_for(parsed, "John Smith")
    assert len(rows) == 7

    monday, tuesday, wednesday, thursday, friday, saturday, sunday = rows
    assert (monday.duty, monday.start_time, monday.end_time, monday.is_off_day) == (
        "09:00-17:00",
        time(9, 0),
        time(17, 0),
        False,
    )
    assert tuesday.is_off_day is True
    assert tuesday.start_time is None and tuesday.end_time is None
    assert tuesday.kind == DUTY_BLANK

    # Overnight: end earlier than start is kept as is
    assert wednesday.start_time == time(22, 0)
    assert wednesday.end_time == time(6, 0)
    assert wednesday.is_off_day is False

    assert thursday.is_off_day is True and thursday.kind == DUTY_REST
    assert friday.duty == "Set-Ups" and friday.is_off_day is False and friday.start_time is None
    assert saturday.duty == "08:00-18:00" and saturday.start_time == time(8, 0) and saturday.end_time == time(18, 0)
    assert sunday.duty == "Wedding" and sunday.kind == DUTY_UNKNOWN and sunday.is_off_day is False


def test_workbook_without_title_uses_defaults():
    content = workbook_bytes([_header(), ["Jane Doe", "07:00-15:00"]])
    parsed = parse_rota_workbook(content, "week.xlsx")
    assert parsed.hotel_name == "Unknown Hotel"
    assert parsed.department == "Unknown Department"
    # Missing trailing cells are blank days
    assert len(parsed.rows) == 7
    assert sum(1 for r in parsed.rows if r.is_off_day) == 6


def test_tuple_count_bounded_and_dates_in_range():
    second_week = [d + timedelta(days=7) for d in WEEK]
    rows = [
        _header(),
        ["John Smith"] + ["09:00-17:00"] * 7,
        ["Jane Doe"] + ["OFF"] * 7,
        _header(second_week),
        ["John Smith"] + ["10:00-18:00"] * 7,
        ["Jane Doe"] + [None] * 7,
    ]
    parsed = parse_rota_grid(rows, today=date(2026, 6, 1))

    employee_rows = 4
    assert len(parsed.rows) <= employee_rows * 7
    assert len(parsed.rows) == 28
    assert parsed.start_date == WEEK[0]
    assert parsed.end_date == second_week[-1]
    assert all(parsed.start_date <= r.schedule_date <= parsed.end_date for r in parsed.rows)
    assert parsed.raw_names == ["John Smith", "Jane Doe"]


def test_empty_header_cells_are_skipped():
    rows = [
        ["Name", "10-Jun", None, "12-Jun"],
        ["John Smith", "09:00-17:00", "ignored", "10:00-14:00"],
    ]
    parsed = parse_rota_grid(rows, today=date(2026, 5, 1))
    assert [r.schedule_date for r in parsed.rows] == [date(2026, 6, 10), date(2026, 6, 12)]
    assert [r.duty for r in parsed.rows] == ["09:00-17:00", "10:00-14:00"]


def test_more_than_seven_date_columns_are_truncated():
    dates = [WEEK_START + timedelta(days=i) for i in range(9)]
    parsed = parse_rota_grid([_header(dates), ["John Smith"] + ["OFF"] * 9], today=date(2026, 6, 1))
    assert len(parsed.rows) == 7
    assert parsed.end_date == WEEK[-1]
    assert any("only the first 7" in w for w in parsed.warnings)


def test_row_without_name_is_skipped_with_warning():
    parsed = parse_rota_grid(
        [_header(), ["", "09:00-17:00", "09:00-17:00"], ["Jane Doe", "OFF"]],
        today=date(2026, 6, 1),
    )
    assert parsed.raw_names == ["Jane Doe"]
    assert any("without an employee name" in w for w in parsed.warnings)


def test_employee_row_before_header_is_skipped():
    parsed = parse_rota_grid(
        [["John Smith", "09:00-17:00"], _header(), ["Jane Doe", "OFF"]],
        today=date(2026, 6, 1),
    )
    assert parsed.raw_names == ["Jane Doe"]
    assert any("before any date header" in w for w in parsed.warnings)


def test_label_rows_are_not_employees():
    parsed = parse_rota_grid(
        [_header(), ["Unit"] + ["Set-Ups"] * 7, [""] + DAY_LABELS, ["Jane Doe", "OFF"]],
        today=date(2026, 6, 1),
    )
    assert parsed.raw_names == ["Jane Doe"]


def test_csv_rota():
    content = "Name,10-Jun,11-Jun\nJane Doe,07:00-15:00,Holiday\n".encode("utf-8")
    rows = load_grid(content, "rota.csv")
    parsed = parse_rota_grid(rows, today=date(2026, 5, 1))
    assert [(r.schedule_date, r.duty, r.is_off_day) for r in parsed.rows] == [
        (date(2026, 6, 10), "07:00-15:00", False),
        (date(2026, 6, 11), "Holiday", True),
    ]


@pytest.mark.parametrize(
    "value,duty,start,end,off,kind",
    [
        ("09:00-17:00", "09:00-17:00", time(9, 0), time(17, 0), False, DUTY_TIME_RANGE),
        ("9:00 - 17:30", "09:00-17:30", time(9, 0), time(17, 30), False, DUTY_TIME_RANGE),
        ("08.00-16.00", "08:00-16:00", time(8, 0), time(16, 0), False, DUTY_TIME_RANGE),
        ("23:00-07:00", "23:00-07:00", time(23, 0), time(7, 0), False, DUTY_TIME_RANGE),
        ("14:00:23:00", "14:00:23:00", None, None, False, DUTY_UNKNOWN),
        ("Day Off", "Day Off", None, None, True, DUTY_REST),
        ("AL", "AL", None, None, True, DUTY_REST),
        ("-", "-", None, None, True, DUTY_REST),
        ("Training", "Training", None, None, False, DUTY_LABEL),
        ("On Call", "On Call", None, None, False, DUTY_LABEL),
        ("", "OFF", None, None, True, DUTY_BLANK),
        (None, "OFF", None, None, True, DUTY_BLANK),
        ("25:00-26:00", "25:00-26:00", None, None, False, DUTY_UNKNOWN),
        ("Banquet", "Banquet", None, None, False, DUTY_UNKNOWN),
    ],
)
def test_classify_duty(value, duty, start, end, off, kind):
    parsed = classify_duty(value)
    assert (parsed.duty, parsed.start_time, parsed.end_time, parsed.is_off_day, parsed.kind) == (
        duty,
        start,
        end,
        off,
        kind,
    )


def test_off_day_never_has_times():
    for value in ["OFF", "Rest", "Holiday", "Leave", "", None]:
        parsed = classify_duty(value)
        assert parsed.is_off_day is True
        assert parsed.start_time is None and parsed.end_time is None


def test_overnight_flag():
    assert classify_duty("22:00-06:00").is_overnight is True
    assert classify_duty("06:00-14:00").is_overnight is False


@pytest.mark.parametrize(
    "value,expected",
    [
        ("10-Jun", date(2026, 6, 10)),
        ("10/Jun", date(2026, 6, 10)),
        ("10 June", date(2026, 6, 10)),
        ("Jun 10", date(2026, 6, 10)),
        ("Wed 10-Jun", date(2026, 6, 10)),
        ("10-Jun-2027", date(2027, 6, 10)),
        ("2026-06-10", date(2026, 6, 10)),
        ("10/06/2026", date(2026, 6, 10)),
        (datetime(2026, 6, 10, 0, 0), date(2026, 6, 10)),
        ("Mon", None),
        ("09:00-17:00", None),
        ("31-Feb", None),
        (None, None),
    ],
)
def test_parse_header_date(value, expected):
    assert parse_header_date(value, date(2026, 5, 1)) == expected


def test_year_rolls_forward_when_date_is_long_past():
    assert parse_header_date("10-Jan", date(2026, 12, 20)) == date(2027, 1, 10)
    assert parse_header_date("10-Jun", date(2026, 12, 20)) == date(2027, 6, 10)
    assert parse_header_date("15-Nov", date(2026, 12, 20)) == date(2026, 11, 15)


def test_validate_upload_rejects_bad_files():
    limits = {"max_bytes": 1024, "allowed_extensions": [".xlsx", ".csv"]}
    with pytest.raises(RotaFileError):
        validate_upload("rota.pdf", b"data", **limits)
    with pytest.raises(RotaFileError):
        validate_upload("rota.xlsx", b"", **limits)
    with pytest.raises(RotaFileError):
        validate_upload("rota.xlsx", b"x" * 2048, **limits)
    with pytest.raises(RotaFileError):
        validate_upload(None, b"data", **limits)
    assert validate_upload("Rota.XLSX", b"data", **limits) == ".xlsx"


def test_unreadable_workbook_fails_fast():
    with pytest.raises(RotaFileError):
        parse_rota_workbook(b"this is not a zip archive", "rota.xlsx")


def test_sheet_without_dates_fails():
    content = workbook_bytes([["John Smith", "09:00-17:00"]])
    with pytest.raises(RotaFileError):
        parse_rota_workbook(content, "rota.xlsx")


def test_extracted_text_dump_is_kept():
    content = workbook_bytes([_header(), ["Jane Doe", "07:00-15:00"]])
    parsed = parse_rota_workbook(content, "rota.xlsx")
    assert "Jane Doe\t07:00-15:00" in parsed.extracted_text


OCR_TEXT = """LANDMARK HOTEL TIMESHEET CONFERENCE & BANQUETING
Mon Tue Wed Thu Fri Sat Sun
10-Jun 11-Jun 12-Jun 13-Jun 14-Jun 15-Jun 16-Jun
Unit Set-Ups Set-Ups Set-Ups Set-Ups Set-Ups Set-Ups Set-Ups
John Smith 08:00-16:00 OFF 08:18:00 Set-Ups Holiday 14:00-22:00 22:00-06:00
Simon Price 07:00-15:00 07:00-15:00 OFF OFF 07:00-15:00 07:00-15:00 07:00-15:00
"""


def test_parse_extracted_text():
    parsed = parse_extracted_text(OCR_TEXT, today=date(2026, 5, 1))

    assert parsed.hotel_name == "LANDMARK"
    assert parsed.department == "CONFERENCE & BANQUETING"
    assert parsed.start_date == date(2026, 6, 10)
    assert parsed.end_date == date(2026, 6, 16)
    assert parsed.raw_names == ["John Smith", "Simon Price"]

    john = _rows_for(parsed, "John Smith")
    assert [r.duty for r in john] == [
        "08:00-16:00",
        "OFF",
        "08:00-18:00",
        "Set-Ups",
        "Holiday",
        "14:00-22:00",
        "22:00-06:00",
    ]
    assert [r.is_off_day for r in john] == [False, True, False, False, True, False, False]
    assert len(_rows_for(parsed, "Simon Price")) == 7


def test_extracted_text_without_dates_defaults_to_a_week():
    parsed = parse_extracted_text("Jane Doe 07:00-15:00 OFF", today=date(2026, 6, 8))
    assert parsed.start_date == date(2026, 6, 8)
    assert parsed.end_date == date(2026, 6, 14)
    assert len(parsed.rows) == 2
    assert parsed.warnings


def test_empty_extracted_text_fails():
    with pytest.raises(RotaFileError):
        parse_extracted_text("   \n ")

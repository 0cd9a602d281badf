"""
CSV parsing and field normalizers for spreadsheet imports.

Parsing is best effort: nothing in this module raises on bad input.
Unparseable prices become 0, times become 00:00:00 and dates fall back to
today, so that a messy export still imports as much as it can.
"""
from dataclasses import dataclass, field
from datetime import date
import re
from typing import Dict, List, Optional

from dateutil import parser as date_parser


@dataclass
class ParsedCSV:
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)


def parse_csv_line(line: str) -> List[str]:
    """
    Split one CSV line into trimmed cells.

    Handles quoted cells with embedded commas and ``""`` escapes. An
    unterminated quote runs to the end of the line.
    """
    result = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == ',' and not in_quotes:
            result.append(''.join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    result.append(''.join(current).strip())
    return result


def parse_csv(text: str) -> ParsedCSV:
    """Parse CSV text into headers and header -> cell row mappings."""
    lines = [line for line in re.split(r'\r?\n', text or '') if line.strip()]
    if not lines:
        return ParsedCSV()

    headers = parse_csv_line(lines[0])
    rows = []
    for line in lines[1:]:
        values = parse_csv_line(line)
        rows.append({
            header: values[index] if index < len(values) else ''
            for index, header in enumerate(headers)
        })
    return ParsedCSV(headers=headers, rows=rows)


def parse_price(text: Optional[str]) -> float:
    """``"$1,200.50"`` -> ``1200.5``; anything non-numeric -> ``0``."""
    if not text:
        return 0
    cleaned = re.sub(r'[$,]', '', text).strip()
    match = re.match(r'[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?', cleaned)
    if not match:
        return 0
    return float(match.group(0))


def _leading_int(text: str) -> int:
    match = re.match(r'\s*([+-]?\d+)', text)
    return int(match.group(1)) if match else 0


def parse_time(text: Optional[str]) -> str:
    """
    Normalize a time to 24-hour ``HH:MM:SS``.

    Accepts ``6:00 PM``, ``18:00``, ``6:00:00 PM`` and similar.
    """
    if not text:
        return '00:00:00'

    cleaned = text.strip().upper()
    is_pm = 'PM' in cleaned
    is_am = 'AM' in cleaned
    parts = re.sub(r'[AP]M', '', cleaned, count=1).strip().split(':')

    hours = _leading_int(parts[0])
    minutes = _leading_int(parts[1]) if len(parts) > 1 else 0
    seconds = _leading_int(parts[2]) if len(parts) > 2 else 0

    if is_pm and hours < 12:
        hours += 12
    if is_am and hours == 12:
        hours = 0

    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        return '00:00:00'
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_date(text: Optional[str], today: Optional[date] = None) -> str:
    """
    Parse any reasonable date string into ``YYYY-MM-DD``.

    Falls back to today when the input is empty or unparseable.
    """
    today = today or date.today()
    if not text or not text.strip():
        return today.isoformat()
    try:
        return date_parser.parse(text.strip()).date().isoformat()
    except (ValueError, OverflowError):
        return today.isoformat()


def parse_multiple_values(text: Optional[str]) -> List[str]:
    """Split a cell on newlines or commas, trimming and dropping empties."""
    if not text:
        return []
    return [value.strip() for value in re.split(r'[\n,]', text) if value.strip()]


def normalize_for_matching(text: Optional[str]) -> str:
    """
    Loose form of a name for matching free-text registrations.

    Case, spacing, dash and quote variants and decorative punctuation are
    ignored, so "3.5 Advanced" and "3.5  Advanced " compare equal.
    """
    if not text:
        return ''
    value = text.lower()
    value = re.sub(r'[‐-―−]', '-', value)
    value = re.sub(r'[\'"‘’“”]', '', value)
    value = re.sub(r'[^a-z0-9.:/$\-\s]', ' ', value)
    value = re.sub(r'(\d)\s+(am|pm)\b', r'\1\2', value)
    value = re.sub(r'\s*-\s*', '-', value)
    value = re.sub(r'\s+', ' ', value)
    return value.strip()


ITEM_DATE_PATTERN = re.compile(r'\b(\d{1,2})/(\d{1,2})\b')
ITEM_TIME_PATTERN = re.compile(
    r'(\d{1,2}:\d{2}\s*[ap]m)\s*-\s*(\d{1,2}:\d{2}\s*[ap]m)',
    re.IGNORECASE,
)


def infer_year(month: int, day: int, today: Optional[date] = None) -> date:
    """
    Attach a year to a month/day pair.

    Uses the current year unless that date has already passed, in which
    case the date is taken to be next year.
    """
    today = today or date.today()
    for year in (today.year, today.year + 1):
        try:
            candidate = date(year, month, day)
        except ValueError:
            # Feb 29 outside a leap year, or a day the month does not have
            continue
        if candidate >= today or year > today.year:
            return candidate
    return today


def parse_datetime_from_item(text: Optional[str], today: Optional[date] = None) -> Dict[str, str]:
    """
    Pull the date and time range out of an item label.

    ``"Wednesday 1/28 | 9:00am - 10:30am"`` gives ``date`` 1/28 of the
    inferred year and ``start_time``/``end_time`` of 09:00:00/10:30:00.
    Missing parts fall back to today and 00:00:00.
    """
    today = today or date.today()
    result = {'date': today.isoformat(), 'start_time': '00:00:00', 'end_time': '00:00:00'}
    if not text:
        return result

    date_match = ITEM_DATE_PATTERN.search(text)
    if date_match:
        month, day = int(date_match.group(1)), int(date_match.group(2))
        if 1 <= month <= 12 and 1 <= day <= 31:
            result['date'] = infer_year(month, day, today).isoformat()

    time_match = ITEM_TIME_PATTERN.search(text)
    if time_match:
        result['start_time'] = parse_time(time_match.group(1))
        result['end_time'] = parse_time(time_match.group(2))

    return result

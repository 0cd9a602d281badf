"""
Registration counter: a week-by-series occupancy matrix.

Programs that share a weekday, start time, end time, level and category form
one recurring series. Each series becomes a row; each week from the Monday of
the earliest program's week onward becomes a column; a cell holds the
registration count of that series' program in that week, or nothing when the
series has no program that week.
"""
from dataclasses import dataclass, field
from datetime import date, time, timedelta
import logging
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Count

from programs.models import Program
from programs.utils.calendar_utils import (
    format_time_display,
    get_day_name,
    pluralize_day,
    start_of_week,
    whole_weeks_between,
)

logger = logging.getLogger(__name__)

DEFAULT_FILL_THRESHOLDS = [(1.0, 'full'), (0.75, 'high'), (0.5, 'medium')]


def get_placeholder():
    return getattr(settings, 'CLUB_COUNTER_PLACEHOLDER', '—')


def get_fill_thresholds():
    thresholds = getattr(settings, 'CLUB_FILL_THRESHOLDS', DEFAULT_FILL_THRESHOLDS)
    return sorted(thresholds, key=lambda item: item[0], reverse=True)


def fill_level(count, max_registrations, thresholds=None) -> Optional[str]:
    """
    Color band for a cell: ``full``, ``high``, ``medium`` or ``None``.

    A series without a capacity is never colored.
    """
    if not max_registrations:
        return None
    ratio = count / max_registrations
    for threshold, level in (thresholds or get_fill_thresholds()):
        if ratio >= threshold:
            return level
    return None


@dataclass
class WeekEntry:
    week_number: int
    date: date
    count: int
    program_id: int

    def to_dict(self, max_registrations=0):
        return {
            'week_number': self.week_number,
            'date': self.date.isoformat(),
            'count': self.count,
            'program_id': self.program_id,
            'fill': fill_level(self.count, max_registrations),
        }


@dataclass
class SeriesRow:
    key: tuple
    day_name: str
    day_order: int
    label: str
    category: str
    level: str
    max_registrations: int
    weeks: List[WeekEntry] = field(default_factory=list)

    def cells(self, week_count) -> List[Optional[WeekEntry]]:
        """One slot per week; ``None`` where the series has no program."""
        by_week: Dict[int, WeekEntry] = {}
        for entry in self.weeks:
            existing = by_week.get(entry.week_number)
            if existing is None:
                by_week[entry.week_number] = entry
            else:
                # Two programs of one series in the same week share the cell
                by_week[entry.week_number] = WeekEntry(
                    week_number=existing.week_number,
                    date=existing.date,
                    count=existing.count + entry.count,
                    program_id=existing.program_id,
                )
        return [by_week.get(number) for number in range(1, week_count + 1)]

    def to_dict(self, week_count):
        return {
            'day': self.day_name,
            'label': self.label,
            'category': self.category,
            'level': self.level,
            'max_registrations': self.max_registrations,
            'weeks': [entry.to_dict(self.max_registrations) for entry in self.weeks],
            'cells': [
                cell.to_dict(self.max_registrations) if cell else None
                for cell in self.cells(week_count)
            ],
        }


@dataclass
class CounterMatrix:
    rows: List[SeriesRow]
    week_count: int
    week_dates: List[date]

    def to_dict(self):
        return {
            'week_count': self.week_count,
            'week_dates': [d.isoformat() for d in self.week_dates],
            'rows': [row.to_dict(self.week_count) for row in self.rows],
        }


def series_key(program):
    return (
        program.date.weekday(),
        program.start_time,
        program.end_time,
        program.level_id,
        program.category_id,
    )


def series_label(day_name, start_time: time, end_time: time):
    """``Mondays 6:30pm - 8:00pm``"""
    return f"{pluralize_day(day_name)} {format_time_display(start_time)} - {format_time_display(end_time)}"


def _registration_count(program):
    count = getattr(program, 'num_registrations', None)
    return program.registration_count if count is None else count


def build_counter_matrix(programs, placeholder=None) -> CounterMatrix:
    """
    Group ``programs`` into series rows with week-indexed entries.

    ``programs`` may be annotated with ``num_registrations`` to avoid a count
    query per program. Week 1 starts on the Monday of the earliest program.
    """
    programs = list(programs)
    if not programs:
        return CounterMatrix(rows=[], week_count=0, week_dates=[])

    placeholder = get_placeholder() if placeholder is None else placeholder
    first_monday = start_of_week(min(program.date for program in programs))

    rows: Dict[tuple, SeriesRow] = {}
    for program in sorted(programs, key=lambda p: (p.date, p.start_time)):
        key = series_key(program)
        row = rows.get(key)
        if row is None:
            day_name = get_day_name(program.date)
            row = SeriesRow(
                key=key,
                day_name=day_name,
                day_order=program.date.isoweekday(),
                label=series_label(day_name, program.start_time, program.end_time),
                category=program.category.name if program.category_id else placeholder,
                level=program.level.name if program.level_id else placeholder,
                max_registrations=program.max_registrations,
            )
            rows[key] = row
        row.weeks.append(WeekEntry(
            week_number=whole_weeks_between(program.date, first_monday) + 1,
            date=program.date,
            count=_registration_count(program),
            program_id=program.pk,
        ))

    ordered = sorted(rows.values(), key=lambda r: (r.day_order, r.label))
    week_count = max(entry.week_number for row in ordered for entry in row.weeks)
    week_dates = [first_monday + timedelta(weeks=i) for i in range(week_count)]

    logger.debug(f"Counter matrix: {len(ordered)} series over {week_count} weeks")
    return CounterMatrix(rows=ordered, week_count=week_count, week_dates=week_dates)


def counter_programs(date_from=None, date_to=None):
    """Programs for the counter, annotated with their registration counts."""
    programs = Program.objects.select_related('level', 'category').annotate(
        num_registrations=Count('registrations')
    )
    if date_from:
        programs = programs.filter(date__gte=date_from)
    if date_to:
        programs = programs.filter(date__lte=date_to)
    return programs

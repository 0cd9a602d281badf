"""
Name and price generation for program series and packages.

A series is a run of weekly programs starting on a given date. The weeks
can be split into several packages; each package bundles a contiguous
block of weeks and is priced either by an explicit override or by a
per-day price times the number of weeks it covers.

Everything here is pure: building a plan touches no database state.
Persistence happens in ``programs.services.create_program_series``.
"""

import re
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import Decimal
from typing import List, Optional

from .calendar_utils import (
    format_month_day,
    format_time_display,
    get_day_name,
    pluralize_day,
    to_date,
    to_time,
)


RANGE_PATTERN = re.compile(r'(\d+\.?\d*\s*-\s*\d+\.?\d*)')
NUMBER_PATTERN = re.compile(r'(\d+\.?\d*)')


def abbreviate_level(level_name: Optional[str]) -> str:
    """
    Short form of a level name used inside generated names.

    "Advanced (3.5-4.0)" -> "3.5-4.0", "Level 3.0" -> "3.0",
    "Beginner" -> "Beginner".
    """
    if not level_name:
        return ''

    range_match = RANGE_PATTERN.search(level_name)
    if range_match:
        return re.sub(r'\s', '', range_match.group(1))

    number_match = NUMBER_PATTERN.search(level_name)
    if number_match:
        return number_match.group(1)

    main_word = re.split(r'[\s(]', level_name)[0]
    return main_word or level_name


def format_program_name(program_date, start_time, end_time, level_name=None) -> str:
    """Example: ``Monday 1/26 | 6:30pm - 8:00pm (2.0-3.0)``."""
    level_abbr = abbreviate_level(level_name)
    level_part = f" ({level_abbr})" if level_abbr else ''
    return (
        f"{get_day_name(program_date)} {format_month_day(program_date)} | "
        f"{format_time_display(start_time)} - {format_time_display(end_time)}{level_part}"
    )


def format_package_name(start_date, end_date, number_of_weeks, start_time, end_time,
                        level_name=None, category_name=None) -> str:
    """Example: ``Mondays 5 Week 2.0-3.0 Adult Clinics Package (1/26 - 2/23; 6:30pm - 8:00pm)``."""
    level_abbr = abbreviate_level(level_name)
    level_part = f"{level_abbr} " if level_abbr else ''
    category_part = f"{category_name} " if category_name else ''
    return (
        f"{pluralize_day(get_day_name(start_date))} {number_of_weeks} Week "
        f"{level_part}{category_part}Package "
        f"({format_month_day(start_date)} - {format_month_day(end_date)}; "
        f"{format_time_display(start_time)} - {format_time_display(end_time)})"
    )


def generate_program_dates(start_date, number_of_weeks: int) -> List[date]:
    """One date per week starting at ``start_date``."""
    start = to_date(start_date)
    return [start + timedelta(weeks=i) for i in range(number_of_weeks)]


@dataclass
class WeekGroup:
    """A contiguous block of week indexes, both ends inclusive."""
    start_week_index: int
    end_week_index: int
    weeks_count: int


def split_weeks_into_packages(total_weeks: int, number_of_packages: int) -> List[WeekGroup]:
    """
    Partition ``total_weeks`` into ``number_of_packages`` contiguous groups.

    Earlier groups absorb the remainder one week each, so 5 weeks in 2
    packages gives sizes [3, 2].
    """
    if number_of_packages <= 0:
        raise ValueError("number_of_packages must be positive")
    if total_weeks < 0:
        raise ValueError("total_weeks cannot be negative")

    base, remainder = divmod(total_weeks, number_of_packages)
    groups = []
    current = 0
    for i in range(number_of_packages):
        weeks = base + (1 if i < remainder else 0)
        groups.append(WeekGroup(
            start_week_index=current,
            end_week_index=current + weeks - 1,
            weeks_count=weeks,
        ))
        current += weeks
    return groups


def package_price(weeks_count: int, per_day_price, override=None) -> Decimal:
    if override is not None and override != '':
        return Decimal(str(override))
    return Decimal(str(per_day_price)) * weeks_count


@dataclass
class PlannedProgram:
    name: str
    date: date
    start_time: time
    end_time: time
    price: Decimal
    max_registrations: int

    def to_dict(self):
        return {
            'name': self.name,
            'date': self.date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M:%S'),
            'end_time': self.end_time.strftime('%H:%M:%S'),
            'price': float(self.price),
            'max_registrations': self.max_registrations,
        }


@dataclass
class PlannedPackage:
    name: str
    price: Decimal
    program_indexes: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            'name': self.name,
            'price': float(self.price),
            'program_indexes': list(self.program_indexes),
        }


@dataclass
class SeriesPlan:
    programs: List[PlannedProgram]
    packages: List[PlannedPackage]

    def to_dict(self):
        return {
            'programs': [p.to_dict() for p in self.programs],
            'packages': [p.to_dict() for p in self.packages],
        }


def build_series_plan(
    start_date,
    number_of_weeks: int,
    number_of_packages: int,
    start_time,
    end_time,
    individual_day_price=0,
    package_per_day_price=0,
    package_price_override=None,
    max_registrations: int = 0,
    level_name: Optional[str] = None,
    category_name: Optional[str] = None,
    program_name_overrides: Optional[List[Optional[str]]] = None,
    package_name_overrides: Optional[List[Optional[str]]] = None,
) -> SeriesPlan:
    """
    Plan a weekly series of programs and the packages that bundle them.

    Name overrides are applied per index; a blank or missing entry keeps the
    generated name.
    """
    if number_of_weeks <= 0:
        raise ValueError("number_of_weeks must be positive")

    start_t = to_time(start_time)
    end_t = to_time(end_time)
    program_name_overrides = program_name_overrides or []
    package_name_overrides = package_name_overrides or []

    dates = generate_program_dates(start_date, number_of_weeks)
    programs = []
    for index, program_date in enumerate(dates):
        name = format_program_name(program_date, start_t, end_t, level_name)
        if index < len(program_name_overrides) and program_name_overrides[index]:
            name = program_name_overrides[index].strip()
        programs.append(PlannedProgram(
            name=name,
            date=program_date,
            start_time=start_t,
            end_time=end_t,
            price=Decimal(str(individual_day_price)),
            max_registrations=max_registrations,
        ))

    packages = []
    for index, group in enumerate(split_weeks_into_packages(number_of_weeks, number_of_packages)):
        if group.weeks_count == 0:
            continue
        first = dates[group.start_week_index]
        last = dates[group.end_week_index]
        name = format_package_name(
            first, last, group.weeks_count, start_t, end_t, level_name, category_name
        )
        if index < len(package_name_overrides) and package_name_overrides[index]:
            name = package_name_overrides[index].strip()
        packages.append(PlannedPackage(
            name=name,
            price=package_price(group.weeks_count, package_per_day_price, package_price_override),
            program_indexes=list(range(group.start_week_index, group.end_week_index + 1)),
        ))

    return SeriesPlan(programs=programs, packages=packages)

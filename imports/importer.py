"""
Three-stage spreadsheet import.

1. Raw data: each row is a program, or a package when its program-id cell
   lists more than one id. Programs are inserted first, then packages, then
   the package -> program links resolved through the original ids.
2. Capacity: original id -> max registrations, applied to existing programs.
3. Form responses: players and their free-text registrations, matched
   against package and program names or original ids.

The stages are run by the operator in order; nothing here enforces that.
"""
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
import logging
from typing import Dict, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction

from people.models import Player
from programs.models import Category, Level, Package, Program, ProgramPackage, Registration
from programs.signals import publish_change

from .csv_parser import (
    normalize_for_matching,
    parse_csv,
    parse_date,
    parse_datetime_from_item,
    parse_multiple_values,
    parse_price,
    parse_time,
)

logger = logging.getLogger(__name__)

# Largest value a PositiveIntegerField stores on every supported backend
MAX_REGISTRATIONS = 2147483647

# Failures that sink a single row without stopping its batch
ROW_ERRORS = (DatabaseError, OverflowError, ValueError)


class ImportMappingError(ValueError):
    """A column mapping refers to headers the uploaded CSV does not have."""


def get_batch_size():
    return max(1, int(getattr(settings, 'CLUB_IMPORT_BATCH_SIZE', 10)))


def chunked(items, size):
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ---------------------------------------------------------------------------
# Column mappings
# ---------------------------------------------------------------------------

@dataclass
class ColumnMapping:
    """Base for mappings of logical field -> CSV header."""

    required = ()

    def validate(self, headers):
        missing_fields = [name for name in self.required if not getattr(self, name)]
        if missing_fields:
            raise ImportMappingError(f"Missing column mapping for: {', '.join(missing_fields)}")
        unknown = [
            f"{f.name}={getattr(self, f.name)}"
            for f in fields(self)
            if getattr(self, f.name) and getattr(self, f.name) not in headers
        ]
        if unknown:
            raise ImportMappingError(f"Mapped columns not found in CSV: {', '.join(unknown)}")

    @classmethod
    def from_dict(cls, data):
        names = {f.name for f in fields(cls)}
        return cls(**{key: (value or '').strip() for key, value in data.items() if key in names})


@dataclass
class RawDataMapping(ColumnMapping):
    program_id: str = ''
    name: str = ''
    price: str = ''
    category: str = ''
    level: str = ''
    id: str = ''
    date: str = ''
    start_time: str = ''
    end_time: str = ''

    required = ('program_id', 'name')


@dataclass
class CapacityMapping(ColumnMapping):
    id: str = ''
    max_registrations: str = ''

    required = ('id', 'max_registrations')


@dataclass
class FormResponseMapping(ColumnMapping):
    first_name: str = ''
    last_name: str = ''
    email: str = ''
    phone: str = ''
    registrations: str = ''

    required = ('first_name', 'last_name', 'registrations')


# ---------------------------------------------------------------------------
# Typed rows
# ---------------------------------------------------------------------------

@dataclass
class RawDataRow:
    id: str
    name: str
    price: float
    program_ids: List[str]
    level: str
    category: str
    date: str
    start_time: str
    end_time: str
    is_package: bool

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'program_ids': self.program_ids,
            'level': self.level,
            'category': self.category,
            'date': self.date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'is_package': self.is_package,
        }


@dataclass
class CapacityRow:
    original_id: str
    max_registrations: int

    def to_dict(self):
        return {'original_id': self.original_id, 'max_registrations': self.max_registrations}


@dataclass
class FormResponseRow:
    first_name: str
    last_name: str
    email: str
    phone: str
    registrations: List[str]

    def to_dict(self):
        return {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'phone': self.phone,
            'registrations': self.registrations,
        }


@dataclass
class ImportResult:
    players_created: int = 0
    registrations_created: int = 0
    programs_created: int = 0
    packages_created: int = 0
    links_created: int = 0
    programs_updated: int = 0
    rows_unmatched: int = 0
    rows_failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _cell(row, column):
    return row.get(column, '') if column else ''


def classify_row(row: Dict[str, str], mapping: RawDataMapping,
                 today: Optional[date] = None) -> Optional[RawDataRow]:
    """
    Turn one raw CSV row into a program or package row.

    Returns None for rows without an id or name.
    """
    ids = parse_multiple_values(_cell(row, mapping.program_id))
    is_package = len(ids) > 1
    name = _cell(row, mapping.name)
    original_id = _cell(row, mapping.id) or (ids[0] if ids else '')
    if not original_id or not name:
        return None

    program_date = ''
    start_time = '00:00:00'
    end_time = '00:00:00'
    if not is_package:
        from_item = parse_datetime_from_item(name, today=today)
        date_cell = _cell(row, mapping.date)
        start_cell = _cell(row, mapping.start_time)
        end_cell = _cell(row, mapping.end_time)
        program_date = parse_date(date_cell, today=today) if date_cell else from_item['date']
        start_time = parse_time(start_cell) if start_cell else from_item['start_time']
        end_time = parse_time(end_cell) if end_cell else from_item['end_time']

    return RawDataRow(
        id=original_id,
        name=name,
        price=parse_price(_cell(row, mapping.price)),
        program_ids=ids if is_package else [],
        level=_cell(row, mapping.level),
        category=_cell(row, mapping.category),
        date=program_date,
        start_time=start_time,
        end_time=end_time,
        is_package=is_package,
    )


def parse_raw_data(text: str, mapping: RawDataMapping, today: Optional[date] = None) -> List[RawDataRow]:
    parsed = parse_csv(text)
    mapping.validate(parsed.headers)
    rows = [classify_row(row, mapping, today=today) for row in parsed.rows]
    return [row for row in rows if row is not None]


def parse_programs_capacity(text: str, mapping: CapacityMapping) -> List[CapacityRow]:
    parsed = parse_csv(text)
    mapping.validate(parsed.headers)
    rows = []
    for row in parsed.rows:
        original_id = _cell(row, mapping.id)
        if not original_id:
            continue
        rows.append(CapacityRow(
            original_id=original_id,
            max_registrations=max(0, int(parse_price(_cell(row, mapping.max_registrations)))),
        ))
    return rows


def parse_form_responses(text: str, mapping: FormResponseMapping) -> List[FormResponseRow]:
    parsed = parse_csv(text)
    mapping.validate(parsed.headers)
    rows = []
    for row in parsed.rows:
        first_name = _cell(row, mapping.first_name)
        last_name = _cell(row, mapping.last_name)
        if not first_name or not last_name:
            continue
        rows.append(FormResponseRow(
            first_name=first_name,
            last_name=last_name,
            email=_cell(row, mapping.email),
            phone=_cell(row, mapping.phone),
            registrations=parse_multiple_values(_cell(row, mapping.registrations)),
        ))
    return rows


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def resolve_reference_map(model, names):
    """
    Map each distinct non-empty name to a reference row id, creating
    missing rows as needed.
    """
    result = {}
    for name in sorted({n.strip() for n in names if n and n.strip()}):
        item = model.objects.filter(name__iexact=name).first()
        if item is None:
            item = model.objects.create(name=name)
            logger.info(f"Created {model.__name__} '{name}' during import")
        result[name] = item.pk
    return result


def import_raw_data(rows: List[RawDataRow], location=None, season=None) -> ImportResult:
    """
    Insert programs, then packages, then the links between them.

    Package member ids that match no program in this batch are skipped.
    """
    result = ImportResult()
    programs = [row for row in rows if not row.is_package]
    packages = [row for row in rows if row.is_package]

    level_map = resolve_reference_map(Level, [row.level for row in programs])
    category_map = resolve_reference_map(Category, [row.category for row in programs])

    program_id_map = {}
    for row in programs:
        program = Program.objects.create(
            original_id=row.id,
            name=row.name,
            price=Decimal(str(row.price)),
            date=row.date,
            start_time=row.start_time,
            end_time=row.end_time,
            location=location,
            season=season,
            level_id=level_map.get(row.level.strip()),
            category_id=category_map.get(row.category.strip()),
            max_registrations=0,
        )
        program_id_map[row.id] = program.pk
    result.programs_created = len(programs)

    package_id_map = {}
    for row in packages:
        package = Package.objects.create(
            original_id=row.id,
            name=row.name,
            price=Decimal(str(row.price)),
            location=location,
        )
        package_id_map[row.id] = package.pk
    result.packages_created = len(packages)

    for row in packages:
        package_id = package_id_map[row.id]
        for member_id in row.program_ids:
            program_id = program_id_map.get(member_id)
            if program_id is None:
                logger.debug(f"Package {row.id}: no program with original id {member_id}")
                continue
            _, created = ProgramPackage.objects.get_or_create(package_id=package_id, program_id=program_id)
            if created:
                result.links_created += 1

    logger.info(
        f"Raw data import: {result.programs_created} programs, "
        f"{result.packages_created} packages, {result.links_created} links"
    )
    publish_change(import_raw_data, 'programs', 'packages', 'programs_packages', 'levels', 'categories')
    return result


def import_programs_capacity(rows: List[CapacityRow]) -> ImportResult:
    """Overwrite max registrations on programs matched by original id."""
    result = ImportResult()
    for batch in chunked(rows, get_batch_size()):
        for row in batch:
            if row.max_registrations > MAX_REGISTRATIONS:
                result.rows_failed += 1
                result.errors.append(
                    f"Max registrations out of range for {row.original_id}: {row.max_registrations}"
                )
                logger.warning(f"Capacity {row.max_registrations} out of range for {row.original_id}")
                continue
            try:
                with transaction.atomic():
                    matched = Program.objects.filter(original_id=row.original_id).update(
                        max_registrations=row.max_registrations
                    )
            except ROW_ERRORS as exc:
                result.rows_failed += 1
                result.errors.append(f"Failed to update capacity for {row.original_id}: {exc}")
                logger.warning(f"Capacity update failed for {row.original_id}: {exc}")
                continue
            if matched:
                result.programs_updated += matched
            else:
                result.rows_unmatched += 1

    logger.info(
        f"Capacity import: {result.programs_updated} programs updated, "
        f"{result.rows_unmatched} unmatched rows, {result.rows_failed} failed"
    )
    publish_change(import_programs_capacity, 'programs')
    return result


class RegistrationMatcher:
    """Lookup tables for matching free-text registration strings."""

    def __init__(self):
        self.package_by_name = {}
        self.package_by_original_id = {}
        self.program_by_name = {}
        self.program_by_original_id = {}

        links = {}
        for package_id, program_id in ProgramPackage.objects.values_list('package_id', 'program_id'):
            links.setdefault(package_id, []).append(program_id)

        for package in Package.objects.all():
            entry = (package.pk, links.get(package.pk, []))
            self.package_by_name.setdefault(normalize_for_matching(package.name), entry)
            if package.original_id:
                self.package_by_original_id.setdefault(package.original_id.lower(), entry)

        for program in Program.objects.all():
            self.program_by_name.setdefault(normalize_for_matching(program.name), program.pk)
            if program.original_id:
                self.program_by_original_id.setdefault(program.original_id.lower(), program.pk)

    def match(self, text):
        """
        Resolve a registration string.

        Returns a list of (program_id, package_id) pairs to register, empty
        for a package with no linked programs, or None when nothing matches.
        Packages win over programs, names over original ids.
        """
        normalized = normalize_for_matching(text)
        lowered = text.strip().lower()

        package = self.package_by_name.get(normalized) or self.package_by_original_id.get(lowered)
        if package:
            package_id, program_ids = package
            # A package with no linked programs registers nobody
            return [(program_id, package_id) for program_id in program_ids]

        program_id = self.program_by_name.get(normalized) or self.program_by_original_id.get(lowered)
        if program_id:
            return [(program_id, None)]
        return None


def _create_player(row: FormResponseRow):
    return Player.objects.create(
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email or None,
        phone=row.phone or None,
    )


def import_form_responses(rows: List[FormResponseRow]) -> ImportResult:
    """
    Create players and registrations from form responses.

    Players are matched by email, case-insensitively. Rows without an email
    always create a new player. Unmatched registration strings are reported
    in ``errors`` and do not stop the import.
    """
    result = ImportResult()
    batch_size = get_batch_size()
    matcher = RegistrationMatcher()

    player_by_email = {}
    for player_id, email in Player.objects.exclude(email__isnull=True).exclude(email='').values_list('id', 'email'):
        player_by_email.setdefault(email.lower(), player_id)

    # Players first, so every registration below has someone to point at
    row_players = [None] * len(rows)
    for batch_start in range(0, len(rows), batch_size):
        for index in range(batch_start, min(batch_start + batch_size, len(rows))):
            row = rows[index]
            email_key = row.email.lower() if row.email else None
            if email_key and email_key in player_by_email:
                row_players[index] = player_by_email[email_key]
                continue
            try:
                with transaction.atomic():
                    player = _create_player(row)
            except ROW_ERRORS as exc:
                result.rows_failed += 1
                result.errors.append(f"Failed to create player {row.first_name} {row.last_name}: {exc}")
                logger.warning(f"Player creation failed for {row.first_name} {row.last_name}: {exc}")
                continue
            result.players_created += 1
            row_players[index] = player.pk
            if email_key:
                player_by_email[email_key] = player.pk

    pending = []
    for row, player_id in zip(rows, row_players):
        if player_id is None:
            continue
        for text in row.registrations:
            matches = matcher.match(text)
            if matches is None:
                message = f'Unmatched registration: "{text}" for {row.first_name} {row.last_name}'
                result.errors.append(message)
                logger.warning(message)
                continue
            for program_id, package_id in matches:
                pending.append(Registration(player_id=player_id, program_id=program_id, package_id=package_id))

    for batch in chunked(pending, batch_size):
        for registration in batch:
            try:
                with transaction.atomic():
                    registration.save()
            except ROW_ERRORS as exc:
                result.rows_failed += 1
                result.errors.append(f"Failed to create registration for player {registration.player_id}: {exc}")
                logger.warning(f"Registration insert failed for player {registration.player_id}: {exc}")
                continue
            result.registrations_created += 1

    logger.info(
        f"Form response import: {result.players_created} players, "
        f"{result.registrations_created} registrations, {len(result.errors)} errors"
    )
    publish_change(import_form_responses, 'players', 'registrations')
    return result

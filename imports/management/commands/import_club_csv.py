"""
Management command to run one stage of the spreadsheet import from the shell.

Usage:
    python manage.py import_club_csv raw programs.csv --map program_id="Program IDs" --map name=Item --location "Main Courts"
    python manage.py import_club_csv capacity capacity.csv --map id=ID --map max_registrations=Max
    python manage.py import_club_csv responses responses.csv --map first_name=First ... --dry-run
"""
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from audit.services import record_operation
from programs.models import Location, Season
from imports.importer import (
    CapacityMapping,
    FormResponseMapping,
    ImportMappingError,
    RawDataMapping,
    import_form_responses,
    import_programs_capacity,
    import_raw_data,
    parse_form_responses,
    parse_programs_capacity,
    parse_raw_data,
)

STAGES = {
    'raw': (RawDataMapping, parse_raw_data, import_raw_data),
    'capacity': (CapacityMapping, parse_programs_capacity, import_programs_capacity),
    'responses': (FormResponseMapping, parse_form_responses, import_form_responses),
}


class Command(BaseCommand):
    help = 'Import programs, capacities or form responses from a CSV export'

    def add_arguments(self, parser):
        parser.add_argument('stage', choices=sorted(STAGES), help='Which import step to run')
        parser.add_argument('csv_path', type=str, help='Path to the CSV file')
        parser.add_argument(
            '--map',
            action='append',
            default=[],
            metavar='FIELD=COLUMN',
            help='Map a field to a CSV column; repeat for each field',
        )
        parser.add_argument('--location', type=str, help='Location name for imported programs (raw stage)')
        parser.add_argument('--season', type=str, help='Season name for imported programs (raw stage)')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Parse and report rows without saving anything',
        )

    def handle(self, *args, **options):
        stage = options['stage']
        mapping_class, parse, run = STAGES[stage]

        path = Path(options['csv_path'])
        if not path.exists():
            raise CommandError(f'File "{path}" does not exist')
        text = path.read_text(encoding='utf-8-sig')

        values = {}
        for item in options['map']:
            field, sep, column = item.partition('=')
            if not sep:
                raise CommandError(f'Invalid --map value "{item}", expected FIELD=COLUMN')
            values[field.strip()] = column
        mapping = mapping_class.from_dict(values)

        try:
            rows = parse(text, mapping)
        except ImportMappingError as e:
            raise CommandError(str(e))

        self.stdout.write(f'Parsed {len(rows)} {stage} rows from {path.name}')
        if options['dry_run']:
            for row in rows:
                self.stdout.write(f'  {row.to_dict()}')
            self.stdout.write(self.style.WARNING('Dry run: nothing saved'))
            return

        kwargs = {}
        if stage == 'raw':
            kwargs['location'] = self._lookup(Location, options.get('location'))
            kwargs['season'] = self._lookup(Season, options.get('season'))

        with record_operation(f'import_{stage}', rows=len(rows), source=path.name) as log:
            result = run(rows, **kwargs)
            log.record_step('imported', **result.to_dict())

        summary = ', '.join(
            f'{key}={value}' for key, value in result.to_dict().items()
            if key != 'errors' and value
        )
        self.stdout.write(self.style.SUCCESS(f'Import complete: {summary or "nothing to do"}'))
        for error in result.errors:
            self.stdout.write(self.style.WARNING(f'  {error}'))

    def _lookup(self, model, name):
        if not name:
            return None
        try:
            return model.objects.get(name__iexact=name)
        except model.DoesNotExist:
            raise CommandError(f'{model.__name__} "{name}" does not exist')

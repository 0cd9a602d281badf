import os
import tempfile
from datetime import date, time
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.db.models.query import QuerySet
from django.test import TestCase, override_settings
from django.urls import reverse

from audit.models import OperationLog
from people.models import Player
from programs.models import Category, Level, Location, Package, Program, ProgramPackage, Registration
from . import importer
from .csv_parser import (
    infer_year,
    normalize_for_matching,
    parse_csv,
    parse_csv_line,
    parse_date,
    parse_datetime_from_item,
    parse_multiple_values,
    parse_price,
    parse_time,
)
from .importer import (
    CapacityMapping,
    CapacityRow,
    FormResponseMapping,
    ImportMappingError,
    RawDataMapping,
    classify_row,
    import_form_responses,
    import_programs_capacity,
    import_raw_data,
    parse_form_responses,
    parse_programs_capacity,
    parse_raw_data,
)

RAW_CSV = (
    'ID,Item,Price,Program IDs,Level,Category\n'
    'P1,Monday 1/26 | 6:30pm - 8:00pm,25,P1,Beginner,Adult Clinics\n'
    'P2,Monday 2/2 | 6:30pm - 8:00pm,25,P2,Beginner,Adult Clinics\n'
    'PKG1,Mondays 2 Week Beginner Adult Clinics Package,"$45.00","P1,P2",,\n'
    '\n'
)

RAW_MAPPING = {
    'id': 'ID',
    'program_id': 'Program IDs',
    'name': 'Item',
    'price': 'Price',
    'level': 'Level',
    'category': 'Category',
}

RESPONSES_MAPPING = {
    'first_name': 'First Name',
    'last_name': 'Last Name',
    'email': 'Email',
    'phone': 'Phone',
    'registrations': 'Registrations',
}


class CSVParserTest(TestCase):
    def test_quoted_cells(self):
        self.assertEqual(
            parse_csv_line('a,"b, c","say ""hi"""'),
            ['a', 'b, c', 'say "hi"'],
        )

    def test_unterminated_quote_runs_to_end_of_line(self):
        self.assertEqual(parse_csv_line('a,"b,c'), ['a', 'b,c'])

    def test_blank_lines_skipped_and_short_rows_padded(self):
        parsed = parse_csv('x,y,z\r\n\r\n1,2\n\n')
        self.assertEqual(parsed.headers, ['x', 'y', 'z'])
        self.assertEqual(parsed.rows, [{'x': '1', 'y': '2', 'z': ''}])

    def test_empty_input(self):
        parsed = parse_csv('')
        self.assertEqual(parsed.headers, [])
        self.assertEqual(parsed.rows, [])


class FieldNormalizerTest(TestCase):
    def test_price(self):
        self.assertEqual(parse_price('$1,200.50'), 1200.50)
        self.assertEqual(parse_price('45'), 45)
        self.assertEqual(parse_price('free'), 0)
        self.assertEqual(parse_price(''), 0)
        self.assertEqual(parse_price(None), 0)

    def test_time(self):
        for value in ('6:00 PM', '18:00:00', '6:00:00 PM', '18:00'):
            self.assertEqual(parse_time(value), '18:00:00', value)
        self.assertEqual(parse_time('12:15 AM'), '00:15:00')
        self.assertEqual(parse_time('12:30 PM'), '12:30:00')
        self.assertEqual(parse_time(''), '00:00:00')
        self.assertEqual(parse_time('99:99'), '00:00:00')

    def test_date(self):
        today = date(2026, 10, 19)
        self.assertEqual(parse_date('01/26/2026', today=today), '2026-01-26')
        self.assertEqual(parse_date('2026-02-02', today=today), '2026-02-02')
        self.assertEqual(parse_date('not a date', today=today), '2026-10-19')
        self.assertEqual(parse_date('', today=today), '2026-10-19')

    def test_multiple_values(self):
        self.assertEqual(parse_multiple_values('A1, A2\nA3,,'), ['A1', 'A2', 'A3'])
        self.assertEqual(parse_multiple_values(''), [])

    def test_normalize_for_matching(self):
        self.assertEqual(normalize_for_matching('3.5 Advanced'), normalize_for_matching('3.5  Advanced '))
        self.assertEqual(
            normalize_for_matching('Monday 1/26 | 6:30 PM – 8:00 PM'),
            normalize_for_matching('monday 1/26 | 6:30pm - 8:00pm'),
        )
        self.assertEqual(normalize_for_matching("Kids' Clinic"), 'kids clinic')

    def test_infer_year(self):
        today = date(2026, 10, 19)
        self.assertEqual(infer_year(1, 26, today), date(2027, 1, 26))
        self.assertEqual(infer_year(12, 1, today), date(2026, 12, 1))
        self.assertEqual(infer_year(10, 19, today), date(2026, 10, 19))
        self.assertEqual(infer_year(2, 29, date(2027, 3, 1)), date(2028, 2, 29))

    def test_datetime_from_item(self):
        parsed = parse_datetime_from_item('Wednesday 1/28 | 9:00am - 10:30am', today=date(2026, 1, 1))
        self.assertEqual(parsed, {'date': '2026-01-28', 'start_time': '09:00:00', 'end_time': '10:30:00'})

    def test_datetime_from_item_defaults(self):
        parsed = parse_datetime_from_item('Open Play', today=date(2026, 1, 1))
        self.assertEqual(parsed, {'date': '2026-01-01', 'start_time': '00:00:00', 'end_time': '00:00:00'})


class ClassificationTest(TestCase):
    def setUp(self):
        self.mapping = RawDataMapping(program_id='Program IDs', name='Item')

    def test_multiple_ids_make_a_package(self):
        row = classify_row({'Program IDs': 'A1, A2, A3', 'Item': 'Bundle'}, self.mapping)
        self.assertTrue(row.is_package)
        self.assertEqual(row.program_ids, ['A1', 'A2', 'A3'])
        self.assertEqual(row.id, 'A1')

    def test_single_id_makes_a_program(self):
        row = classify_row(
            {'Program IDs': 'A1', 'Item': 'Monday 1/26 | 6:30pm - 8:00pm'},
            self.mapping,
            today=date(2026, 1, 1),
        )
        self.assertFalse(row.is_package)
        self.assertEqual(row.program_ids, [])
        self.assertEqual(row.date, '2026-01-26')
        self.assertEqual(row.start_time, '18:30:00')

    def test_explicit_columns_win_over_item_text(self):
        mapping = RawDataMapping(
            program_id='Program IDs', name='Item', date='Date', start_time='Start', end_time='End'
        )
        row = classify_row({
            'Program IDs': 'A1', 'Item': 'Monday 1/26 | 6:30pm - 8:00pm',
            'Date': '2026-03-02', 'Start': '9:00 AM', 'End': '',
        }, mapping, today=date(2026, 1, 1))
        self.assertEqual(row.date, '2026-03-02')
        self.assertEqual(row.start_time, '09:00:00')
        self.assertEqual(row.end_time, '20:00:00')

    def test_rows_without_id_or_name_are_dropped(self):
        self.assertIsNone(classify_row({'Program IDs': '', 'Item': 'Nameless'}, self.mapping))
        self.assertIsNone(classify_row({'Program IDs': 'A1', 'Item': ''}, self.mapping))

    def test_missing_required_mapping(self):
        with self.assertRaises(ImportMappingError):
            parse_raw_data(RAW_CSV, RawDataMapping(name='Item'))

    def test_mapping_to_unknown_header(self):
        with self.assertRaises(ImportMappingError):
            parse_raw_data(RAW_CSV, RawDataMapping(program_id='Program IDs', name='Title'))


class ImportPipelineTest(TestCase):
    def setUp(self):
        self.location = Location.objects.create(name="Main Courts")
        rows = parse_raw_data(RAW_CSV, RawDataMapping.from_dict(RAW_MAPPING), today=date(2026, 1, 1))
        self.raw_result = import_raw_data(rows, location=self.location)

    def import_responses(self, csv_text):
        rows = parse_form_responses(csv_text, FormResponseMapping.from_dict(RESPONSES_MAPPING))
        return import_form_responses(rows)

    def test_raw_import_creates_programs_packages_and_links(self):
        self.assertEqual(self.raw_result.programs_created, 2)
        self.assertEqual(self.raw_result.packages_created, 1)
        self.assertEqual(self.raw_result.links_created, 2)

        program = Program.objects.get(original_id='P1')
        self.assertEqual(program.date, date(2026, 1, 26))
        self.assertEqual(program.start_time, time(18, 30))
        self.assertEqual(program.price, Decimal('25.00'))
        self.assertEqual(program.location, self.location)
        self.assertEqual(program.level.name, 'Beginner')
        self.assertEqual(program.max_registrations, 0)

        package = Package.objects.get(original_id='PKG1')
        self.assertEqual(package.price, Decimal('45.00'))
        self.assertEqual(set(package.programs.values_list('original_id', flat=True)), {'P1', 'P2'})
        self.assertEqual(Level.objects.count(), 1)
        self.assertEqual(Category.objects.count(), 1)

    def test_unresolvable_package_members_are_skipped(self):
        rows = parse_raw_data(
            'ID,Item,Program IDs\nPKG2,Loose Bundle,"P1,P9"\n',
            RawDataMapping(id='ID', name='Item', program_id='Program IDs'),
        )
        result = import_raw_data(rows)
        self.assertEqual(result.packages_created, 1)
        self.assertEqual(result.links_created, 0)

    def test_package_name_registers_each_linked_program(self):
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,ana@example.com,555-0100,Mondays 2 Week Beginner Adult Clinics Package\n'
        )
        self.assertEqual(result.players_created, 1)
        self.assertEqual(result.registrations_created, 2)
        self.assertEqual(result.errors, [])

        package = Package.objects.get(original_id='PKG1')
        registrations = Registration.objects.all()
        self.assertEqual(registrations.count(), 2)
        self.assertTrue(all(r.package_id == package.pk for r in registrations))
        self.assertEqual(
            set(registrations.values_list('program__original_id', flat=True)), {'P1', 'P2'}
        )

    def test_matching_by_program_name_and_original_id(self):
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,ana@example.com,,"monday 1/26 | 6:30 PM - 8:00 PM, p2"\n'
        )
        self.assertEqual(result.registrations_created, 2)
        self.assertFalse(Registration.objects.filter(package__isnull=False).exists())

    def test_package_original_id_match(self):
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,,,pkg1\n'
        )
        self.assertEqual(result.registrations_created, 2)

    def test_unmatched_registration_is_reported(self):
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,ana@example.com,,"Tuesday Ladder, P1"\n'
        )
        self.assertEqual(result.errors, ['Unmatched registration: "Tuesday Ladder" for Ana Diaz'])
        self.assertEqual(result.registrations_created, 1)

    def test_existing_player_matched_by_email(self):
        existing = Player.objects.create(first_name="Ana", last_name="Diaz", email="Ana@Example.com")
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,ana@example.com,,P1\n'
        )
        self.assertEqual(result.players_created, 0)
        self.assertEqual(Registration.objects.get().player, existing)

    def test_rows_without_email_always_create_players(self):
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Sam,Lee,,,P1\n'
            'Sam,Lee,,,P2\n'
        )
        self.assertEqual(result.players_created, 2)
        self.assertEqual(Player.objects.filter(first_name='Sam').count(), 2)
        self.assertEqual(result.registrations_created, 2)

    def test_capacity_update(self):
        rows = parse_programs_capacity(
            'ID,Max\nP1,12\nZZ,5\nP2,not a number\n',
            CapacityMapping(id='ID', max_registrations='Max'),
        )
        result = import_programs_capacity(rows)
        self.assertEqual(result.programs_updated, 2)
        self.assertEqual(result.rows_unmatched, 1)
        self.assertEqual(Program.objects.get(original_id='P1').max_registrations, 12)
        self.assertEqual(Program.objects.get(original_id='P2').max_registrations, 0)

    def test_out_of_range_capacity_fails_only_its_row(self):
        rows = parse_programs_capacity(
            'ID,Max\nP1,99999999999999999999\nP2,7\n',
            CapacityMapping(id='ID', max_registrations='Max'),
        )
        result = import_programs_capacity(rows)
        self.assertEqual(result.rows_failed, 1)
        self.assertEqual(result.programs_updated, 1)
        self.assertIn('P1', result.errors[0])
        self.assertEqual(Program.objects.get(original_id='P1').max_registrations, 0)
        self.assertEqual(Program.objects.get(original_id='P2').max_registrations, 7)

    def test_capacity_database_error_fails_only_its_row(self):
        rows = [
            CapacityRow(original_id='P1', max_registrations=4),
            CapacityRow(original_id='P2', max_registrations=6),
        ]
        original_update = QuerySet.update

        def update(queryset, **kwargs):
            if queryset.filter(original_id='P1').exists():
                raise DatabaseError("disk full")
            return original_update(queryset, **kwargs)

        with patch.object(QuerySet, 'update', autospec=True, side_effect=update):
            result = import_programs_capacity(rows)
        self.assertEqual(result.rows_failed, 1)
        self.assertEqual(result.programs_updated, 1)
        self.assertEqual(result.errors, ['Failed to update capacity for P1: disk full'])
        self.assertEqual(Program.objects.get(original_id='P2').max_registrations, 6)

    def test_failed_player_row_does_not_stop_import(self):
        original_create = importer._create_player

        def create_player(row):
            if row.first_name == 'Ben':
                raise DatabaseError("constraint failed")
            return original_create(row)

        with patch('imports.importer._create_player', side_effect=create_player):
            result = self.import_responses(
                'First Name,Last Name,Email,Phone,Registrations\n'
                'Ben,Cole,ben@example.com,,P1\n'
                'Ana,Diaz,ana@example.com,,P2\n'
            )
        self.assertEqual(result.rows_failed, 1)
        self.assertEqual(result.players_created, 1)
        self.assertEqual(result.registrations_created, 1)
        self.assertEqual(result.errors, ['Failed to create player Ben Cole: constraint failed'])
        self.assertEqual(Registration.objects.get().player.first_name, 'Ana')

    def test_failed_registration_does_not_stop_import(self):
        original_save = Registration.save

        def save(registration, *args, **kwargs):
            if registration.program.original_id == 'P1':
                raise DatabaseError("locked")
            return original_save(registration, *args, **kwargs)

        with patch.object(Registration, 'save', autospec=True, side_effect=save):
            result = self.import_responses(
                'First Name,Last Name,Email,Phone,Registrations\n'
                'Ana,Diaz,ana@example.com,,"P1, P2"\n'
            )
        self.assertEqual(result.players_created, 1)
        self.assertEqual(result.rows_failed, 1)
        self.assertEqual(result.registrations_created, 1)
        self.assertEqual(Registration.objects.get().program.original_id, 'P2')

    def test_package_without_programs_registers_nobody(self):
        Package.objects.create(name="Empty Bundle")
        result = self.import_responses(
            'First Name,Last Name,Email,Phone,Registrations\n'
            'Ana,Diaz,,,Empty Bundle\n'
        )
        self.assertEqual(result.players_created, 1)
        self.assertEqual(result.registrations_created, 0)
        self.assertEqual(result.errors, [])
        self.assertFalse(Registration.objects.exists())

    @override_settings(CLUB_IMPORT_BATCH_SIZE=1)
    def test_small_batches_process_every_row(self):
        rows = parse_programs_capacity(
            'ID,Max\nP1,8\nP2,9\n', CapacityMapping(id='ID', max_registrations='Max')
        )
        result = import_programs_capacity(rows)
        self.assertEqual(result.programs_updated, 2)
        self.assertEqual(Program.objects.get(original_id='P2').max_registrations, 9)


class ImportViewTests(TestCase):
    def post_raw(self, **extra):
        data = {'csv_text': RAW_CSV}
        data.update({f'map_{key}': value for key, value in RAW_MAPPING.items()})
        data.update(extra)
        return self.client.post(reverse('imports:import_raw'), data)

    def test_raw_import_endpoint(self):
        location = Location.objects.create(name="Main Courts")
        response = self.post_raw(location=location.pk)
        self.assertEqual(response.status_code, 200)
        result = response.json()['result']
        self.assertEqual(result['programs_created'], 2)
        self.assertEqual(result['links_created'], 2)
        self.assertEqual(ProgramPackage.objects.count(), 2)

        log = OperationLog.objects.get(operation='import_raw_data')
        self.assertEqual(log.status, OperationLog.STATUS_COMPLETED)

    def test_raw_import_rejects_bad_mapping(self):
        response = self.post_raw(map_program_id='Missing Column')
        self.assertEqual(response.status_code, 400)
        self.assertIn('Missing Column', response.json()['error'])
        self.assertFalse(Program.objects.exists())

    def test_upload_requires_csv(self):
        response = self.client.post(reverse('imports:import_capacity'), {'map_id': 'ID'})
        self.assertEqual(response.status_code, 400)

    def test_preview_typed_rows(self):
        data = {'csv_text': RAW_CSV, 'stage': 'raw'}
        data.update({f'map_{key}': value for key, value in RAW_MAPPING.items()})
        response = self.client.post(reverse('imports:parse_preview'), data)
        self.assertEqual(response.status_code, 200)
        rows = response.json()['rows']
        self.assertEqual([row['is_package'] for row in rows], [False, False, True])
        self.assertEqual(rows[2]['program_ids'], ['P1', 'P2'])
        self.assertFalse(Program.objects.exists())

    def test_preview_without_stage_returns_raw_rows(self):
        response = self.client.post(reverse('imports:parse_preview'), {'csv_text': 'a,b\n1,2\n'})
        self.assertEqual(response.json(), {'headers': ['a', 'b'], 'rows': [{'a': '1', 'b': '2'}]})

    def test_responses_endpoint_reports_unmatched(self):
        data = {
            'csv_text': 'First Name,Last Name,Email,Phone,Registrations\nAna,Diaz,,,Nothing Here\n',
        }
        data.update({f'map_{key}': value for key, value in RESPONSES_MAPPING.items()})
        response = self.client.post(reverse('imports:import_responses'), data)
        result = response.json()['result']
        self.assertEqual(result['players_created'], 1)
        self.assertEqual(result['errors'], ['Unmatched registration: "Nothing Here" for Ana Diaz'])


class ImportCommandTest(TestCase):
    def setUp(self):
        Program.objects.create(
            name="Monday Clinic", date=date(2026, 1, 26), start_time=time(18, 30),
            end_time=time(20, 0), original_id='P1',
        )
        handle = tempfile.NamedTemporaryFile('w', suffix='.csv', delete=False, encoding='utf-8')
        handle.write('ID,Max\nP1,16\n')
        handle.close()
        self.path = handle.name

    def tearDown(self):
        os.remove(self.path)

    def test_capacity_stage(self):
        out = StringIO()
        call_command(
            'import_club_csv', 'capacity', self.path,
            '--map', 'id=ID', '--map', 'max_registrations=Max', stdout=out,
        )
        self.assertIn('Import complete', out.getvalue())
        self.assertEqual(Program.objects.get().max_registrations, 16)

    def test_dry_run_saves_nothing(self):
        out = StringIO()
        call_command(
            'import_club_csv', 'capacity', self.path,
            '--map', 'id=ID', '--map', 'max_registrations=Max', '--dry-run', stdout=out,
        )
        self.assertIn('Dry run', out.getvalue())
        self.assertEqual(Program.objects.get().max_registrations, 0)

    def test_invalid_mapping(self):
        with self.assertRaises(CommandError):
            call_command('import_club_csv', 'capacity', self.path, '--map', 'id=Nope', stdout=StringIO())

    def test_missing_file(self):
        with self.assertRaises(CommandError):
            call_command('import_club_csv', 'capacity', '/nonexistent/file.csv', stdout=StringIO())

import json
from datetime import date, time
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse

from audit.models import OperationLog
from imports.csv_parser import parse_datetime_from_item
from people.models import Player
from .models import Category, Level, Location, Package, Program, ProgramPackage, Registration
from .services import (
    CREDIT_CUSTOM, CREDIT_PACKAGE, CREDIT_PROGRAM,
    add_program_to_package, create_program_series, delete_package, delete_program,
    package_players, register_for_package, remove_registration, resolve_credit_amount,
)
from .signals import data_changed, publish_change
from .utils.program_naming import (
    abbreviate_level, build_series_plan, format_package_name, format_program_name,
    generate_program_dates, package_price, split_weeks_into_packages,
)


def make_program(**kwargs):
    defaults = {
        'name': 'Monday 1/26 | 6:30pm - 8:00pm',
        'date': date(2026, 1, 26),
        'start_time': time(18, 30),
        'end_time': time(20, 0),
        'price': Decimal('25.00'),
    }
    defaults.update(kwargs)
    return Program.objects.create(**defaults)


class AbbreviateLevelTest(TestCase):
    def test_numeric_range(self):
        self.assertEqual(abbreviate_level("Advanced (3.5-4.0)"), "3.5-4.0")
        self.assertEqual(abbreviate_level("Intermediate 3.0 - 3.5"), "3.0-3.5")

    def test_single_number(self):
        self.assertEqual(abbreviate_level("Level 3.0"), "3.0")

    def test_first_word(self):
        self.assertEqual(abbreviate_level("Beginner"), "Beginner")
        self.assertEqual(abbreviate_level("Open Play (all)"), "Open")

    def test_empty(self):
        self.assertEqual(abbreviate_level(None), "")
        self.assertEqual(abbreviate_level(""), "")


class ProgramNamingTest(TestCase):
    def test_program_name(self):
        name = format_program_name(date(2026, 1, 26), "18:30", "20:00", "2.0-3.0")
        self.assertEqual(name, "Monday 1/26 | 6:30pm - 8:00pm (2.0-3.0)")

    def test_program_name_without_level(self):
        name = format_program_name(date(2026, 1, 28), time(9, 0), time(10, 30))
        self.assertEqual(name, "Wednesday 1/28 | 9:00am - 10:30am")

    def test_package_name(self):
        name = format_package_name(
            date(2026, 1, 26), date(2026, 2, 23), 5, "18:30", "20:00", "2.0-3.0", "Adult Clinics"
        )
        self.assertEqual(
            name, "Mondays 5 Week 2.0-3.0 Adult Clinics Package (1/26 - 2/23; 6:30pm - 8:00pm)"
        )

    def test_program_dates_are_weekly(self):
        dates = generate_program_dates("2026-01-26", 3)
        self.assertEqual(dates, [date(2026, 1, 26), date(2026, 2, 2), date(2026, 2, 9)])

    def test_generated_name_date_round_trips(self):
        for program_date in generate_program_dates(date(2026, 1, 26), 5):
            name = format_program_name(program_date, "18:30", "20:00", "Level 3.0")
            parsed = parse_datetime_from_item(name, today=date(2026, 1, 1))
            self.assertEqual(parsed['date'], program_date.isoformat())
            self.assertEqual(parsed['start_time'], "18:30:00")
            self.assertEqual(parsed['end_time'], "20:00:00")


class SplitWeeksTest(TestCase):
    def test_remainder_goes_to_earlier_groups(self):
        groups = split_weeks_into_packages(5, 2)
        self.assertEqual([g.weeks_count for g in groups], [3, 2])
        self.assertEqual([(g.start_week_index, g.end_week_index) for g in groups], [(0, 2), (3, 4)])

    def test_groups_are_contiguous(self):
        groups = split_weeks_into_packages(10, 3)
        self.assertEqual([g.weeks_count for g in groups], [4, 3, 3])
        for previous, current in zip(groups, groups[1:]):
            self.assertEqual(current.start_week_index, previous.end_week_index + 1)
        self.assertEqual(groups[-1].end_week_index, 9)

    def test_invalid_package_count(self):
        with self.assertRaises(ValueError):
            split_weeks_into_packages(5, 0)

    def test_package_price(self):
        self.assertEqual(package_price(3, 20), Decimal('60'))
        self.assertEqual(package_price(3, 20, override='50.00'), Decimal('50.00'))


class SeriesPlanTest(TestCase):
    def test_plan_programs_and_packages(self):
        plan = build_series_plan(
            date(2026, 1, 26), 5, 2, "18:30", "20:00",
            individual_day_price=25, package_per_day_price=20,
            max_registrations=12, level_name="2.0-3.0", category_name="Adult Clinics",
        )
        self.assertEqual(len(plan.programs), 5)
        self.assertEqual(plan.programs[0].name, "Monday 1/26 | 6:30pm - 8:00pm (2.0-3.0)")
        self.assertEqual(plan.programs[4].date, date(2026, 2, 23))
        self.assertEqual(plan.programs[0].price, Decimal('25'))
        self.assertEqual(plan.programs[0].max_registrations, 12)

        self.assertEqual(len(plan.packages), 2)
        self.assertEqual(plan.packages[0].program_indexes, [0, 1, 2])
        self.assertEqual(plan.packages[1].program_indexes, [3, 4])
        self.assertEqual(plan.packages[0].price, Decimal('60'))
        self.assertEqual(plan.packages[1].price, Decimal('40'))
        self.assertEqual(
            plan.packages[1].name,
            "Mondays 2 Week 2.0-3.0 Adult Clinics Package (2/16 - 2/23; 6:30pm - 8:00pm)",
        )

    def test_name_overrides_apply_per_index(self):
        plan = build_series_plan(
            date(2026, 1, 26), 2, 1, "18:30", "20:00",
            program_name_overrides=["", "Finals Night"],
            package_name_overrides=["Winter Bundle"],
        )
        self.assertEqual(plan.programs[0].name, "Monday 1/26 | 6:30pm - 8:00pm")
        self.assertEqual(plan.programs[1].name, "Finals Night")
        self.assertEqual(plan.packages[0].name, "Winter Bundle")


class ProgramModelTest(TestCase):
    def test_program_str_and_dict(self):
        level = Level.objects.create(name="Beginner")
        program = make_program(level=level)
        self.assertEqual(str(program), "Monday 1/26 | 6:30pm - 8:00pm - 2026-01-26")
        data = program.to_dict()
        self.assertEqual(data['level'], "Beginner")
        self.assertEqual(data['start_time'], "18:30:00")
        self.assertIsNone(data['original_id'])

    def test_registration_requires_program_or_package(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        registration = Registration(player=player)
        with self.assertRaises(ValidationError):
            registration.clean()

    def test_link_is_unique(self):
        program = make_program()
        package = Package.objects.create(name="Bundle", price=Decimal('60.00'))
        _, created = add_program_to_package(program, package)
        self.assertTrue(created)
        _, created = add_program_to_package(program, package)
        self.assertFalse(created)
        self.assertEqual(ProgramPackage.objects.count(), 1)


class ProgramServicesTest(TestCase):
    def setUp(self):
        self.player = Player.objects.create(first_name="Ana", last_name="Diaz", email="ana@example.com")
        self.package = Package.objects.create(name="Bundle", price=Decimal('60.00'))
        self.programs = [make_program(name=f"Week {i}", date=date(2026, 1, 5 + 7 * i)) for i in range(3)]
        for program in self.programs:
            ProgramPackage.objects.create(program=program, package=self.package)

    def test_create_program_series(self):
        plan = build_series_plan(date(2026, 3, 2), 4, 2, "09:00", "10:30", package_per_day_price=15)
        location = Location.objects.create(name="Main Courts")
        programs, packages, links = create_program_series(plan, location=location)

        self.assertEqual(len(programs), 4)
        self.assertEqual(len(packages), 2)
        self.assertEqual(len(links), 4)
        self.assertEqual(packages[0].programs.count(), 2)
        self.assertTrue(all(p.location == location for p in programs))

        log = OperationLog.objects.get(operation='create_program_series')
        self.assertEqual(log.status, OperationLog.STATUS_COMPLETED)
        self.assertEqual(
            [step['action'] for step in log.steps],
            ['start', 'programs_created', 'packages_created', 'links_created'],
        )

    def test_register_for_package_expands_to_programs(self):
        registrations = register_for_package(self.player, self.package)
        self.assertEqual(len(registrations), 3)
        self.assertTrue(all(r.package_id == self.package.pk for r in registrations))
        self.assertEqual({r.program_id for r in registrations}, {p.pk for p in self.programs})

    def test_package_players_are_unique(self):
        register_for_package(self.player, self.package)
        other = Player.objects.create(first_name="Ben", last_name="Cole")
        register_for_package(other, self.package)
        self.assertEqual(package_players(self.package).count(), 2)

    def test_remove_registration_credits_program_price(self):
        registration = Registration.objects.create(
            player=self.player, program=self.programs[0], package=self.package
        )
        amount = remove_registration(registration, credit_type=CREDIT_PROGRAM)
        self.assertEqual(amount, Decimal('25.00'))
        self.player.refresh_from_db()
        self.assertEqual(self.player.credit, Decimal('25.00'))
        self.assertFalse(Registration.objects.exists())

        log = OperationLog.objects.get(operation='remove_registration')
        self.assertEqual([s['action'] for s in log.steps], ['start', 'credit_issued', 'registration_deleted'])

    def test_credit_amount_by_type(self):
        registration = Registration.objects.create(
            player=self.player, program=self.programs[0], package=self.package
        )
        self.assertEqual(resolve_credit_amount(registration, CREDIT_PACKAGE), Decimal('60.00'))
        self.assertEqual(resolve_credit_amount(registration, CREDIT_CUSTOM, '12.50'), Decimal('12.50'))
        with self.assertRaises(ValueError):
            resolve_credit_amount(registration, 'refund')

    def test_remove_registration_without_credit(self):
        registration = Registration.objects.create(player=self.player, program=self.programs[0])
        self.assertEqual(remove_registration(registration), Decimal('0.00'))
        self.player.refresh_from_db()
        self.assertEqual(self.player.credit, Decimal('0.00'))

    def test_delete_package_only_keeps_programs(self):
        register_for_package(self.player, self.package)
        deleted = delete_package(self.package)
        self.assertEqual(deleted, 0)
        self.assertEqual(Program.objects.count(), 3)
        self.assertEqual(ProgramPackage.objects.count(), 0)
        registrations = Registration.objects.all()
        self.assertEqual(registrations.count(), 3)
        self.assertTrue(all(r.package_id is None for r in registrations))

    def test_delete_package_with_programs(self):
        register_for_package(self.player, self.package)
        deleted = delete_package(self.package, with_programs=True, credit_amount=Decimal('10.00'))
        self.assertEqual(deleted, 3)
        self.assertFalse(Program.objects.exists())
        self.assertFalse(Registration.objects.exists())
        self.player.refresh_from_db()
        self.assertEqual(self.player.credit, Decimal('10.00'))

        log = OperationLog.objects.get(operation='delete_package')
        actions = [s['action'] for s in log.steps]
        self.assertLess(actions.index('package_deleted'), actions.index('programs_deleted'))

    def test_delete_program_credits_each_player(self):
        other = Player.objects.create(first_name="Ben", last_name="Cole")
        Registration.objects.create(player=self.player, program=self.programs[0])
        Registration.objects.create(player=other, program=self.programs[0])
        credited = delete_program(self.programs[0], credit_amount=Decimal('5.00'))
        self.assertEqual(sorted(credited), sorted([self.player.pk, other.pk]))
        other.refresh_from_db()
        self.assertEqual(other.credit, Decimal('5.00'))
        self.assertEqual(Program.objects.count(), 2)


class DataChangedSignalTest(TestCase):
    def test_publish_change_sends_collections(self):
        received = []

        def listener(sender, collections=(), **kwargs):
            received.append(collections)

        data_changed.connect(listener)
        try:
            publish_change(self, 'programs', 'registrations')
        finally:
            data_changed.disconnect(listener)
        self.assertEqual(received, [('programs', 'registrations')])

    def test_unknown_collection_rejected(self):
        with self.assertRaises(ValueError):
            publish_change(self, 'invoices')


class ProgramViewTests(TestCase):
    def setUp(self):
        self.level = Level.objects.create(name="Advanced (3.5-4.0)")
        self.category = Category.objects.create(name="Adult Clinics")

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_program_create_and_detail(self):
        response = self.post_json(reverse('programs:program_create'), {
            'name': 'Thursday Drills',
            'date': '2026-02-05',
            'start_time': '18:00',
            'end_time': '19:30',
            'price': '30.00',
            'max_registrations': 8,
            'level': self.level.pk,
        })
        self.assertEqual(response.status_code, 201)
        program_id = response.json()['program']['id']

        response = self.client.get(reverse('programs:program_detail', kwargs={'pk': program_id}))
        self.assertEqual(response.status_code, 200)
        data = response.json()['program']
        self.assertEqual(data['level'], "Advanced (3.5-4.0)")
        self.assertEqual(data['registration_count'], 0)

    def test_program_create_rejects_invalid_times(self):
        response = self.post_json(reverse('programs:program_create'), {
            'name': 'Backwards',
            'date': '2026-02-05',
            'start_time': '19:30',
            'end_time': '18:00',
            'price': '30.00',
            'max_registrations': 0,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('errors', response.json())

    def test_program_create_rejects_non_object_body(self):
        response = self.post_json(reverse('programs:program_create'), ['not', 'an', 'object'])
        self.assertEqual(response.status_code, 400)

    def test_program_list_filters(self):
        make_program(name="Clinic A", level=self.level)
        make_program(name="Clinic B", date=date(2026, 3, 2))
        response = self.client.get(reverse('programs:program_list'), {'level': self.level.pk})
        self.assertEqual([p['name'] for p in response.json()['programs']], ["Clinic A"])

        response = self.client.get(reverse('programs:program_list'), {'date_from': '2026-02-01'})
        self.assertEqual([p['name'] for p in response.json()['programs']], ["Clinic B"])

        response = self.client.get(reverse('programs:program_list'), {'search': 'clinic'})
        self.assertEqual(len(response.json()['programs']), 2)

    def test_series_preview_does_not_save(self):
        response = self.post_json(reverse('programs:program_series_create'), {
            'start_date': '2026-01-26',
            'number_of_weeks': 5,
            'number_of_packages': 2,
            'start_time': '18:30',
            'end_time': '20:00',
            'package_per_day_price': '20',
            'level': self.level.pk,
            'category': self.category.pk,
            'preview': True,
        })
        self.assertEqual(response.status_code, 200)
        plan = response.json()['plan']
        self.assertEqual(len(plan['programs']), 5)
        self.assertEqual(plan['programs'][0]['name'], "Monday 1/26 | 6:30pm - 8:00pm (3.5-4.0)")
        self.assertEqual([p['price'] for p in plan['packages']], [60.0, 40.0])
        self.assertFalse(Program.objects.exists())

    def test_series_create_saves_programs_packages_and_links(self):
        response = self.post_json(reverse('programs:program_series_create'), {
            'start_date': '2026-01-26',
            'number_of_weeks': 4,
            'number_of_packages': 1,
            'start_time': '18:30',
            'end_time': '20:00',
            'individual_day_price': '25',
            'package_price_override': '80',
            'package_names': ['Winter Clinic Pack'],
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(Program.objects.count(), 4)
        package = Package.objects.get()
        self.assertEqual(package.name, "Winter Clinic Pack")
        self.assertEqual(package.price, Decimal('80.00'))
        self.assertEqual(response.json()['links_created'], 4)

    def test_series_rejects_more_packages_than_weeks(self):
        response = self.post_json(reverse('programs:program_series_create'), {
            'start_date': '2026-01-26',
            'number_of_weeks': 2,
            'number_of_packages': 3,
            'start_time': '18:30',
            'end_time': '20:00',
        })
        self.assertEqual(response.status_code, 400)

    def test_series_name_overrides_must_be_a_list_of_strings(self):
        payload = {
            'start_date': '2026-01-26',
            'number_of_weeks': 2,
            'number_of_packages': 1,
            'start_time': '18:30',
            'end_time': '20:00',
        }
        for names in ('Winter Clinic Pack', [1, 2]):
            response = self.post_json(reverse('programs:program_series_create'), dict(payload, package_names=names))
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()['error'], "package_names must be a list of names")
        self.assertFalse(Program.objects.exists())

    def test_list_filters_reject_non_numeric_ids(self):
        make_program()
        response = self.client.get(reverse('programs:program_list'), {'level': 'abc'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], "Invalid level id: abc")

        response = self.client.get(reverse('programs:registration_list'), {'player': 'ana'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], "Invalid player id: ana")

    def test_package_link_endpoints(self):
        program = make_program()
        package = Package.objects.create(name="Bundle", price=Decimal('50.00'))

        response = self.post_json(
            reverse('programs:package_add_program', kwargs={'pk': package.pk}), {'program_id': program.pk}
        )
        self.assertEqual(response.status_code, 201)
        response = self.client.get(reverse('programs:package_programs', kwargs={'pk': package.pk}))
        self.assertEqual([p['id'] for p in response.json()['programs']], [program.pk])

        response = self.post_json(
            reverse('programs:package_add_program', kwargs={'pk': package.pk}), {'program_id': 999999}
        )
        self.assertEqual(response.status_code, 404)

        response = self.client.post(reverse(
            'programs:package_remove_program', kwargs={'pk': package.pk, 'program_pk': program.pk}
        ))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(ProgramPackage.objects.exists())

    def test_package_delete_with_programs_flag(self):
        program = make_program()
        package = Package.objects.create(name="Bundle", price=Decimal('50.00'))
        ProgramPackage.objects.create(program=program, package=package)

        response = self.client.post(
            reverse('programs:package_delete', kwargs={'pk': package.pk}), {'with_programs': 'true'}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['programs_deleted'], 1)
        self.assertFalse(Program.objects.exists())

    def test_batch_registration_and_delete_with_credit(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        first = make_program(price=Decimal('20.00'))
        second = make_program(date=date(2026, 2, 2), price=Decimal('20.00'))

        response = self.post_json(reverse('programs:registration_batch_create'), {
            'player': player.pk,
            'programs': [first.pk, second.pk],
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()['registrations']), 2)

        registration = Registration.objects.filter(program=first).get()
        response = self.client.post(
            reverse('programs:registration_delete', kwargs={'pk': registration.pk}),
            {'credit_type': 'program'},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['credit_issued'], 20.0)
        player.refresh_from_db()
        self.assertEqual(player.credit, Decimal('20.00'))

        response = self.client.get(reverse('programs:registration_list'), {'player': player.pk})
        self.assertEqual(len(response.json()['registrations']), 1)

    def test_custom_credit_requires_amount(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        registration = Registration.objects.create(player=player, program=make_program())
        response = self.client.post(
            reverse('programs:registration_delete', kwargs={'pk': registration.pk}),
            {'credit_type': 'custom'},
        )
        self.assertEqual(response.status_code, 400)
        self.assertTrue(Registration.objects.exists())

    def test_registration_create_requires_target(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        response = self.post_json(reverse('programs:registration_create'), {'player': player.pk})
        self.assertEqual(response.status_code, 400)

    def test_reference_crud(self):
        url = reverse('programs:reference_list', kwargs={'kind': 'seasons'})
        response = self.post_json(url, {'name': 'Winter 2026'})
        self.assertEqual(response.status_code, 201)
        item_id = response.json()['item']['id']

        response = self.post_json(url, {'name': 'Winter 2026'})
        self.assertEqual(response.status_code, 400)

        detail_url = reverse('programs:reference_detail', kwargs={'kind': 'seasons', 'pk': item_id})
        response = self.post_json(detail_url, {'name': 'Spring 2026'})
        self.assertEqual(response.json()['item']['name'], 'Spring 2026')

        response = self.client.delete(detail_url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(url).json()['seasons'], [])

    def test_unknown_reference_kind(self):
        response = self.client.get(reverse('programs:reference_list', kwargs={'kind': 'colors'}))
        self.assertEqual(response.status_code, 404)

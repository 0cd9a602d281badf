from datetime import date, time, timedelta

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from people.models import Player
from programs.models import Category, Level, Program, Registration
from programs.signals import publish_change
from .counter import build_counter_matrix, counter_programs, fill_level
from .stats import get_stats


def make_program(program_date, start=time(18, 30), end=time(20, 0), **kwargs):
    return Program.objects.create(
        name=kwargs.pop('name', f"Program {program_date}"),
        date=program_date,
        start_time=start,
        end_time=end,
        **kwargs
    )


class FillLevelTests(TestCase):
    def test_thresholds(self):
        self.assertEqual(fill_level(10, 10), 'full')
        self.assertEqual(fill_level(12, 10), 'full')
        self.assertEqual(fill_level(8, 10), 'high')
        self.assertEqual(fill_level(5, 10), 'medium')
        self.assertEqual(fill_level(7, 10), 'medium')
        self.assertIsNone(fill_level(4, 10))
        self.assertIsNone(fill_level(0, 10))

    def test_no_capacity_is_never_colored(self):
        self.assertIsNone(fill_level(3, 0))


class CounterMatrixTests(TestCase):
    def setUp(self):
        self.level = Level.objects.create(name="2.0-3.0")
        self.category = Category.objects.create(name="Adult Clinics")
        self.players = [Player.objects.create(first_name=f"P{i}", last_name="Test") for i in range(10)]

    def register(self, program, count):
        for player in self.players[:count]:
            Registration.objects.create(player=player, program=program)

    def test_three_week_series(self):
        for week, count in enumerate([5, 10, 0]):
            program = make_program(
                date(2026, 1, 5) + timedelta(weeks=week),
                max_registrations=10, level=self.level, category=self.category,
            )
            self.register(program, count)

        matrix = build_counter_matrix(counter_programs())
        self.assertEqual(len(matrix.rows), 1)
        self.assertEqual(matrix.week_count, 3)
        self.assertEqual(matrix.week_dates, [date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19)])

        row = matrix.rows[0]
        self.assertEqual(row.label, "Mondays 6:30pm - 8:00pm")
        self.assertEqual(row.level, "2.0-3.0")
        self.assertEqual(row.category, "Adult Clinics")
        self.assertEqual(row.max_registrations, 10)
        self.assertEqual([(w.week_number, w.count) for w in row.weeks], [(1, 5), (2, 10), (3, 0)])

        cells = row.to_dict(matrix.week_count)['cells']
        self.assertEqual([c['fill'] for c in cells], ['medium', 'full', None])

    def test_missing_week_is_empty_not_zero(self):
        make_program(date(2026, 1, 5), max_registrations=10)
        make_program(date(2026, 1, 19), max_registrations=10)

        matrix = build_counter_matrix(counter_programs())
        cells = matrix.rows[0].cells(matrix.week_count)
        self.assertEqual(len(cells), 3)
        self.assertIsNotNone(cells[0])
        self.assertIsNone(cells[1])
        self.assertEqual(cells[2].count, 0)

    def test_weeks_start_on_monday_of_earliest_program(self):
        make_program(date(2026, 1, 7), name="Wednesday")
        make_program(date(2026, 1, 12), name="Monday")

        matrix = build_counter_matrix(counter_programs())
        self.assertEqual(matrix.week_dates[0], date(2026, 1, 5))
        weeks = {row.day_name: row.weeks[0].week_number for row in matrix.rows}
        self.assertEqual(weeks, {'Wednesday': 1, 'Monday': 2})

    def test_rows_sorted_by_weekday_then_label(self):
        make_program(date(2026, 1, 11), name="Sunday")
        make_program(date(2026, 1, 5), start=time(19, 0), end=time(20, 0))
        make_program(date(2026, 1, 5), start=time(10, 0), end=time(11, 0))
        make_program(date(2026, 1, 6))

        matrix = build_counter_matrix(counter_programs())
        self.assertEqual(
            [row.label for row in matrix.rows],
            [
                "Mondays 10:00am - 11:00am",
                "Mondays 7:00pm - 8:00pm",
                "Tuesdays 6:30pm - 8:00pm",
                "Sundays 6:30pm - 8:00pm",
            ],
        )

    def test_series_split_by_level_and_category(self):
        make_program(date(2026, 1, 5), level=self.level)
        make_program(date(2026, 1, 12), level=self.level)
        make_program(date(2026, 1, 12), category=self.category)

        matrix = build_counter_matrix(counter_programs())
        self.assertEqual(len(matrix.rows), 2)
        placeholders = [(row.level, row.category) for row in matrix.rows]
        self.assertIn(("2.0-3.0", "—"), placeholders)
        self.assertIn(("—", "Adult Clinics"), placeholders)

    def test_date_bounds(self):
        make_program(date(2026, 1, 5))
        make_program(date(2026, 3, 2))
        matrix = build_counter_matrix(counter_programs(date_from=date(2026, 2, 1)))
        self.assertEqual(matrix.week_dates, [date(2026, 3, 2)])

    def test_empty(self):
        matrix = build_counter_matrix([])
        self.assertEqual(matrix.to_dict(), {'week_count': 0, 'week_dates': [], 'rows': []})


class DashboardTests(TestCase):
    def setUp(self):
        cache.clear()

    def test_dashboard_page(self):
        response = self.client.get(reverse('dashboard:dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, 'dashboard/dashboard.html')
        self.assertIn('stats', response.context)

    def test_dashboard_stats(self):
        response = self.client.get(reverse('dashboard:stats'))
        self.assertEqual(response.status_code, 200)
        self.assertTemplateUsed(response, 'dashboard/partials/stats.html')
        stats = response.context['stats']
        self.assertEqual(stats['total_players'], 0)
        self.assertEqual(stats['total_registrations'], 0)

    def test_stats_cache_cleared_on_change(self):
        self.assertEqual(get_stats()['total_players'], 0)
        Player.objects.create(first_name="Ana", last_name="Diaz")
        # Cached until a write is published
        self.assertEqual(get_stats()['total_players'], 0)
        publish_change(self, 'players')
        self.assertEqual(get_stats()['total_players'], 1)

    def test_reference_changes_keep_cache(self):
        get_stats()
        Player.objects.create(first_name="Ana", last_name="Diaz")
        publish_change(self, 'levels')
        self.assertEqual(get_stats()['total_players'], 0)

    def test_upcoming_and_recent(self):
        today = timezone.localdate()
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        make_program(today - timedelta(days=7), name="Past")
        programs = [make_program(today + timedelta(days=i), name=f"Future {i}") for i in range(1, 8)]
        for program in programs:
            Registration.objects.create(player=player, program=program)

        response = self.client.get(reverse('dashboard:upcoming'))
        names = [p['name'] for p in response.json()['programs']]
        self.assertEqual(names, [f"Future {i}" for i in range(1, 6)])

        response = self.client.get(reverse('dashboard:recent'))
        registrations = response.json()['registrations']
        self.assertEqual(len(registrations), 5)
        self.assertEqual(registrations[0]['program']['name'], "Future 7")

    def test_counter_data_endpoint(self):
        make_program(date(2026, 1, 5), max_registrations=4)
        response = self.client.get(reverse('dashboard:registrations_counter_data'))
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['week_count'], 1)
        self.assertEqual(data['rows'][0]['label'], "Mondays 6:30pm - 8:00pm")
        self.assertEqual(data['rows'][0]['cells'][0]['count'], 0)

    def test_counter_page_date_filter(self):
        make_program(date(2026, 1, 5))
        response = self.client.get(
            reverse('dashboard:registrations_counter'), {'date_from': '2026-02-01'}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['table'], [])

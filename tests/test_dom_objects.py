from datetime import date, time, timedelta

from django.core.cache import cache
from django.test import TestCase, Client
from django.urls import reverse
from django.utils import timezone
from bs4 import BeautifulSoup

from people.models import Player
from programs.models import Category, Level, Program, Registration


class PageDomObjectTests(TestCase):
    def setUp(self):
        self.client = Client()
        cache.clear()

    def _soup(self, url_name, params=None):
        resp = self.client.get(reverse(url_name), params or {})
        self.assertEqual(resp.status_code, 200)
        html = b"".join(resp)
        return BeautifulSoup(html, "html.parser")

    def test_base_navbar_exists(self):
        soup = self._soup("dashboard:dashboard")
        self.assertIsNotNone(soup.select_one(".navbar"))
        links = [a["href"] for a in soup.select(".navbar a.nav-link")]
        self.assertIn(reverse("dashboard:registrations_counter"), links)

    def test_dashboard_stats_widgets_present(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        program = Program.objects.create(
            name="Monday Clinic",
            date=timezone.localdate() + timedelta(days=3),
            start_time=time(18, 30),
            end_time=time(20, 0),
        )
        Registration.objects.create(player=player, program=program)

        soup = self._soup("dashboard:dashboard")
        self.assertIsNotNone(soup.select_one("#dashboard-stats"))
        self.assertEqual(soup.select_one('[data-stat="total_players"]').get_text(strip=True), "1")
        self.assertEqual(soup.select_one('[data-stat="total_registrations"]').get_text(strip=True), "1")
        self.assertIn("Monday Clinic", soup.select_one("#upcoming-programs").get_text())
        self.assertIn("Ana Diaz", soup.select_one("#recent-registrations").get_text())

    def test_counter_table_cells(self):
        level = Level.objects.create(name="2.0-3.0")
        category = Category.objects.create(name="Adult Clinics")
        counts = [5, 10, 0]
        players = [Player.objects.create(first_name=f"P{i}", last_name="Test") for i in range(10)]
        for week, count in enumerate(counts):
            program = Program.objects.create(
                name=f"Week {week + 1}",
                date=date(2026, 1, 5) + timedelta(weeks=week),
                start_time=time(18, 30),
                end_time=time(20, 0),
                max_registrations=10,
                level=level,
                category=category,
            )
            for player in players[:count]:
                Registration.objects.create(player=player, program=program)

        soup = self._soup("dashboard:registrations_counter")
        table = soup.select_one("#registrations-counter")
        self.assertIsNotNone(table)
        rows = table.select("tbody tr")
        self.assertEqual(len(rows), 1)
        cells = rows[0].find_all("td")
        self.assertEqual(cells[0].get_text(strip=True), "Mondays 6:30pm - 8:00pm")
        week_cells = cells[4:]
        self.assertEqual([c.get_text(strip=True) for c in week_cells], ["5", "10", "0"])
        self.assertIn("fill-medium", week_cells[0]["class"])
        self.assertIn("fill-full", week_cells[1]["class"])
        self.assertFalse(any(c.startswith("fill-") for c in week_cells[2]["class"]))

    def test_counter_empty_state(self):
        soup = self._soup("dashboard:registrations_counter")
        self.assertIsNone(soup.select_one("#registrations-counter"))

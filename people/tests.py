import json
from datetime import date, time
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase
from django.urls import reverse

from programs.models import Program, Registration
from .models import Player


class PlayerModelTest(TestCase):
    def setUp(self):
        self.player = Player.objects.create(first_name="Ana", last_name="Diaz", email="ana@example.com")

    def test_player_creation(self):
        self.assertEqual(str(self.player), "Ana Diaz")
        self.assertEqual(self.player.credit, Decimal('0.00'))

    def test_issue_credit_accumulates(self):
        self.player.issue_credit(Decimal('12.50'))
        balance = self.player.issue_credit('7.50')
        self.assertEqual(balance, Decimal('20.00'))
        self.player.refresh_from_db()
        self.assertEqual(self.player.credit, Decimal('20.00'))

    def test_negative_credit_rejected(self):
        with self.assertRaises(ValidationError):
            self.player.issue_credit(-5)


class PlayerViewTests(TestCase):
    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type='application/json')

    def test_create_and_search(self):
        response = self.post_json(reverse('people:player_create'), {
            'first_name': 'Ana', 'last_name': 'Diaz', 'email': '', 'phone': '555-0100',
        })
        self.assertEqual(response.status_code, 201)
        self.assertIsNone(response.json()['player']['email'])
        Player.objects.create(first_name="Ben", last_name="Cole", email="ben@example.com")

        response = self.client.get(reverse('people:player_list'), {'search': 'ben@'})
        self.assertEqual([p['full_name'] for p in response.json()['players']], ["Ben Cole"])

    def test_create_requires_names(self):
        response = self.post_json(reverse('people:player_create'), {'first_name': 'Ana'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('last_name', response.json()['errors'])

    def test_profile_includes_registrations(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        program = Program.objects.create(
            name="Monday Clinic", date=date(2026, 1, 26), start_time=time(18, 30), end_time=time(20, 0),
        )
        Registration.objects.create(player=player, program=program)

        response = self.client.get(reverse('people:player_detail', kwargs={'pk': player.pk}))
        self.assertEqual(response.status_code, 200)
        registrations = response.json()['player']['registrations']
        self.assertEqual(len(registrations), 1)
        self.assertEqual(registrations[0]['program']['name'], "Monday Clinic")

    def test_update_and_delete(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        response = self.post_json(
            reverse('people:player_update', kwargs={'pk': player.pk}),
            {'first_name': 'Anna', 'last_name': 'Diaz'},
        )
        self.assertEqual(response.json()['player']['first_name'], 'Anna')

        response = self.client.post(reverse('people:player_delete', kwargs={'pk': player.pk}))
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Player.objects.exists())

    def test_issue_credit_endpoint(self):
        player = Player.objects.create(first_name="Ana", last_name="Diaz")
        url = reverse('people:player_issue_credit', kwargs={'pk': player.pk})
        response = self.client.post(url, {'amount': '15.00'})
        self.assertEqual(response.json()['credit'], 15.0)

        response = self.client.post(url, {'amount': '0'})
        self.assertEqual(response.status_code, 400)

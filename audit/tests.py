from django.test import TestCase

from .models import OperationLog
from .services import record_operation


class RecordOperationTests(TestCase):
    def test_completed_operation_keeps_steps(self):
        with record_operation('create_series', programs=3) as log:
            log.record_step('programs_created', program_ids=[1, 2, 3])

        log.refresh_from_db()
        self.assertEqual(log.status, OperationLog.STATUS_COMPLETED)
        self.assertIsNotNone(log.finished_at)
        self.assertEqual([s['action'] for s in log.steps], ['start', 'programs_created'])
        self.assertEqual(log.steps[0]['programs'], 3)

    def test_failure_is_recorded_and_reraised(self):
        with self.assertRaises(RuntimeError):
            with record_operation('delete_package') as log:
                log.record_step('credit_issued', player_id=7, amount='10.00')
                raise RuntimeError("connection lost")

        log = OperationLog.objects.get(operation='delete_package')
        self.assertEqual(log.status, OperationLog.STATUS_FAILED)
        self.assertEqual(log.error, "connection lost")
        # The credit step survives so it can be reconciled by hand
        self.assertEqual([s['action'] for s in log.steps], ['credit_issued'])

    def test_str(self):
        log = OperationLog.objects.create(operation='import_raw_data')
        self.assertEqual(str(log), "import_raw_data (Running)")

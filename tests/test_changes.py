"""Tests for the past-month change request workflow in ChaplaincyTracker.core.changes."""
import datetime

from ChaplaincyTracker.core import changes
from ChaplaincyTracker.core import store
from ChaplaincyTracker.core.models import (
    BibleStudy, RequestModule, RequestStatus, RequestType, Role, StaffVisit, User,
)
from ChaplaincyTracker.core.signals import signals
from ChaplaincyTracker.status import status
from tests.base import BaseTestCase, capture_signal

SAME_MONTH = datetime.date(2024, 5, 20)
LATER_MONTH = datetime.date(2024, 7, 1)


class ChangeRequestTests(BaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.chaplain = User(id='chap-1', name='Paulo', email='p@x.com', role=Role.CHAPLAIN)
        self.other = User(id='chap-2', name='Rute', email='r@x.com', role=Role.CHAPLAIN)
        self.admin = User(id='adm', name='Admin', email='a@x.com', role=Role.ADMIN)
        self.study = store.store.save_study(
            BibleStudy(date='2024-05-03', sector='UTI', patient_name='Maria', chaplain_id='chap-1')
        )

    def edited(self, **kwargs) -> BibleStudy:
        record = store.store.get_record('study', self.study.id)
        for k, v in kwargs.items():
            setattr(record, k, v)
        return record

    def test_current_month_edit_is_direct(self):
        result = changes.edit_record('study', self.edited(observations='ok'), self.chaplain, today=SAME_MONTH)
        self.assertIsInstance(result, BibleStudy)
        self.assertEqual(store.store.get_studies()[0].observations, 'ok')
        self.assertEqual(changes.pending_requests(), [])

    def test_past_month_edit_files_a_request(self):
        with capture_signal(signals.requestsChanged) as received:
            request = changes.edit_record(
                'study', self.edited(observations='late'), self.chaplain, reason='Typo', today=LATER_MONTH
            )

        self.assertIs(request.type, RequestType.EDIT)
        self.assertIs(request.module, RequestModule.STUDY)
        self.assertEqual(request.requested_by, 'chap-1')
        self.assertEqual(request.new_data['observations'], 'late')
        self.assertEqual(store.store.get_studies()[0].observations, '')
        self.assertEqual(changes.pending_requests(), [request])
        self.assertEqual(len(received), 1)

    def test_moving_date_does_not_bypass_request(self):
        request = changes.edit_record(
            'study', self.edited(date='2024-07-01'), self.chaplain, reason='Wrong date', today=LATER_MONTH
        )
        self.assertIs(request.type, RequestType.EDIT)

    def test_past_month_needs_reason(self):
        with self.assertRaises(status.ValidationException) as cm:
            changes.edit_record('study', self.edited(observations='x'), self.chaplain, reason='  ', today=LATER_MONTH)
        self.assertEqual(cm.exception.field, 'reason')
        self.assertEqual(changes.pending_requests(), [])

    def test_new_record_is_saved_directly(self):
        visit = StaffVisit(date='2024-01-10', staff_name='Carlos', chaplain_id='chap-1')
        result = changes.edit_record('visit', visit, self.chaplain, today=LATER_MONTH)
        self.assertTrue(result.id)
        self.assertEqual(len(store.store.get_visits()), 1)

    def test_other_users_record_is_denied(self):
        with self.assertRaises(status.PermissionDeniedException):
            changes.edit_record('study', self.edited(observations='x'), self.other, today=SAME_MONTH)
        with self.assertRaises(status.PermissionDeniedException):
            changes.delete_record('study', self.study.id, self.other, reason='x', today=LATER_MONTH)

    def test_users_are_not_gated(self):
        with self.assertRaises(ValueError):
            changes.edit_record('user', self.chaplain, self.admin)

    def test_current_month_delete_is_direct(self):
        self.assertTrue(changes.delete_record('study', self.study.id, self.chaplain, today=SAME_MONTH))
        self.assertEqual(store.store.get_studies(), [])

    def test_delete_missing_record(self):
        with self.assertRaises(status.RecordNotFoundException):
            changes.delete_record('study', 'missing', self.chaplain)

    def test_approve_delete(self):
        request = changes.delete_record('study', self.study.id, self.chaplain, reason='Duplicate', today=LATER_MONTH)
        self.assertEqual(len(store.store.get_studies()), 1)

        approved = changes.approve(request.id, self.admin)

        self.assertIs(approved.status, RequestStatus.APPROVED)
        self.assertEqual(store.store.get_studies(), [])
        self.assertEqual(changes.pending_requests(), [])
        self.wait_for_pushes()
        self.assertIn('DELETE_STUDY', self.transport.posted_types())

    def test_approve_edit_keeps_ownership(self):
        request = changes.edit_record(
            'study', self.edited(observations='approved'), self.chaplain, reason='Fix', today=LATER_MONTH
        )
        changes.approve(request.id, self.admin)

        stored = store.store.get_studies()[0]
        self.assertEqual(stored.observations, 'approved')
        self.assertEqual(stored.chaplain_id, 'chap-1')
        self.assertEqual(stored.created_at, self.study.created_at)

    def test_reject_leaves_record(self):
        request = changes.delete_record('study', self.study.id, self.chaplain, reason='Duplicate', today=LATER_MONTH)
        rejected = changes.reject(request.id, self.admin)

        self.assertIs(rejected.status, RequestStatus.REJECTED)
        self.assertEqual(len(store.store.get_studies()), 1)
        self.assertEqual(changes.get_request(request.id).status, RequestStatus.REJECTED)

    def test_only_admins_resolve(self):
        request = changes.delete_record('study', self.study.id, self.chaplain, reason='Duplicate', today=LATER_MONTH)
        with self.assertRaises(status.PermissionDeniedException):
            changes.approve(request.id, self.chaplain)

    def test_resolved_request_cannot_be_resolved_again(self):
        request = changes.delete_record('study', self.study.id, self.chaplain, reason='Duplicate', today=LATER_MONTH)
        changes.reject(request.id, self.admin)
        with self.assertRaises(status.RequestInvalidException):
            changes.approve(request.id, self.admin)
        with self.assertRaises(status.RequestInvalidException):
            changes.reject('missing', self.admin)

    def test_is_current_month(self):
        self.assertTrue(changes.is_current_month(self.study, SAME_MONTH))
        self.assertFalse(changes.is_current_month(self.study, LATER_MONTH))

"""Tests for the typed record store contract in ChaplaincyTracker.core.store."""
from ChaplaincyTracker.core import database
from ChaplaincyTracker.core import store
from ChaplaincyTracker.core import sync
from ChaplaincyTracker.core.database import Key
from ChaplaincyTracker.core.models import (
    BibleClass, BibleStudy, Role, SmallGroup, StaffVisit, User,
)
from ChaplaincyTracker.core.signals import signals
from ChaplaincyTracker.status import status
from tests.base import BaseTestCase, capture_signal


def make_study(**kwargs) -> BibleStudy:
    values = dict(
        id='', date='2024-05-03', sector='UTI', patient_name='Maria', whatsapp='(61) 99999-0000',
        observations='First visit', chaplain_id='chap-1',
    )
    values.update(kwargs)
    return BibleStudy(**values)


class StoreSaveTests(BaseTestCase):
    def test_empty_id_gets_generated_id_and_period(self):
        saved = store.store.save_study(make_study())

        self.assertTrue(saved.id)
        self.assertEqual((saved.year, saved.month), (2024, 5))
        self.assertTrue(saved.created_at)

        studies = store.store.get_studies()
        self.assertEqual(len(studies), 1)
        self.assertEqual(studies[0], saved)

    def test_edit_keeps_created_at_and_updates_fields(self):
        saved = store.store.save_study(make_study())
        self.clock.advance(60)

        edit = make_study(id=saved.id, observations='Second visit', created_at='2030-01-01T00:00:00+00:00')
        edited = store.store.save_study(edit)

        studies = store.store.get_studies()
        self.assertEqual(len(studies), 1)
        self.assertEqual(studies[0].created_at, saved.created_at)
        self.assertEqual(studies[0].observations, 'Second visit')
        self.assertEqual(edited, studies[0])

    def test_chaplain_id_never_changes(self):
        saved = store.store.save_study(make_study(chaplain_id='chap-1'))
        store.store.save_study(make_study(id=saved.id, chaplain_id='someone-else'))
        self.assertEqual(store.store.get_studies()[0].chaplain_id, 'chap-1')

    def test_new_record_is_owned_by_current_user(self):
        database.DatabaseAPI.write(Key.CurrentUser, {'id': 'chap-9', 'name': 'Paulo', 'email': 'p@x.com'})
        saved = store.store.save_study(make_study(chaplain_id=''))
        self.assertEqual(saved.chaplain_id, 'chap-9')

    def test_year_month_follow_date_on_edit(self):
        saved = store.store.save_study(make_study())
        edited = store.store.save_study(make_study(id=saved.id, date='2024-07-15', year=1999, month=1))
        self.assertEqual((edited.year, edited.month), (2024, 7))

    def test_saving_twice_yields_one_entry(self):
        record = make_study(id='fixed')
        store.store.save_study(record)
        store.store.save_study(record)
        self.assertEqual([s.id for s in store.store.get_studies()], ['fixed'])

    def test_novel_ids_append_in_insertion_order(self):
        for name in ('A', 'B', 'C'):
            store.store.save_study(make_study(id=name, patient_name=name))
        store.store.save_study(make_study(id='B', patient_name='B2'))
        self.assertEqual([s.patient_name for s in store.store.get_studies()], ['A', 'B2', 'C'])

    def test_caller_record_is_not_mutated(self):
        record = make_study()
        store.store.save_study(record)
        self.assertEqual(record.id, '')
        self.assertEqual(record.year, 0)

    def test_class_without_students_is_rejected_before_store(self):
        store.store.save_class(BibleClass(date='2024-05-03', sector='UTI', students=['Ana']))
        before = store.store.get_classes()

        with self.assertRaises(status.ValidationException):
            store.store.save_class(BibleClass(date='2024-05-03', sector='UTI', students=[]))

        self.assertEqual(store.store.get_classes(), before)
        self.wait_for_pushes()
        self.assertEqual(self.transport.posted_types(), [sync.TypeTag.Classes.value])

    def test_save_accepts_wire_dicts(self):
        saved = store.store.save_group({
            'date': '2024-05-03', 'sector': 'UTI', 'name': 'PG Esperança', 'leader': 'Rute',
            'shift': 'Noite', 'participantsCount': 5, 'hospitalUnit': 'HABA',
        })
        self.assertEqual(store.store.get_groups()[0].name, 'PG Esperança')
        self.assertEqual(saved.hospital_unit.value, 'HABA')

    def test_wrong_record_type(self):
        with self.assertRaises(status.ValidationException):
            store.store.save_study(StaffVisit(date='2024-05-03', staff_name='Carlos'))

    def test_save_emits_record_saved(self):
        with capture_signal(signals.recordSaved) as received:
            saved = store.store.save_visit(StaffVisit(date='2024-05-03', staff_name='Carlos'))
        self.assertEqual(received, [(Key.Visits.value, saved)])

    def test_save_pushes_the_stored_record(self):
        saved = store.store.save_study(make_study())
        self.wait_for_pushes()

        self.assertEqual(len(self.transport.posts), 1)
        _, payload = self.transport.posts[0]
        self.assertEqual(payload['type'], 'ESTUDOS_BIBLICOS')
        self.assertEqual(payload['data'], saved.to_dict())

    def test_save_user(self):
        user = store.store.save_user(User(name='Ana', email='ana@x.com', password='pw'))
        self.assertTrue(user.id)
        self.assertEqual(store.store.get_users(), [user])
        self.wait_for_pushes()
        self.assertEqual(self.transport.posted_types(), ['USUARIOS'])


class StoreDeleteTests(BaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = User(id='chap-1', name='Owner', email='o@x.com', role=Role.CHAPLAIN)
        self.other = User(id='chap-2', name='Other', email='t@x.com', role=Role.CHAPLAIN)
        self.admin = User(id='adm', name='Admin', email='a@x.com', role=Role.ADMIN)
        self.study = store.store.save_study(make_study(chaplain_id='chap-1'))
        self.wait_for_pushes()
        self.transport.posts.clear()

    def test_delete_removes_and_pushes(self):
        with capture_signal(signals.recordDeleted) as received:
            self.assertTrue(store.store.delete_study(self.study.id))
        self.assertEqual(store.store.get_studies(), [])
        self.assertEqual(received, [(Key.Studies.value, self.study.id)])

        self.wait_for_pushes()
        _, payload = self.transport.posts[0]
        self.assertEqual(payload['type'], 'DELETE_STUDY')
        self.assertEqual(payload['data'], {'id': self.study.id})

    def test_delete_absent_id_is_noop(self):
        before = store.store.get_studies()
        self.assertFalse(store.store.delete_study('missing'))
        self.assertEqual(store.store.get_studies(), before)

    def test_delete_permission(self):
        with self.assertRaises(status.PermissionDeniedException):
            store.store.delete_study(self.study.id, user=self.other)
        self.assertEqual(len(store.store.get_studies()), 1)

        self.assertTrue(store.store.delete_study(self.study.id, user=self.owner))

    def test_admin_can_delete_anything(self):
        group = store.store.save_group(SmallGroup(date='2024-05-03', sector='UTI', name='PG', chaplain_id='chap-2'))
        self.assertTrue(store.store.delete_group(group.id, user=self.admin))
        self.assertTrue(store.store.delete_study(self.study.id, user=self.admin))

    def test_delete_tags(self):
        cls = store.store.save_class(BibleClass(date='2024-05-03', sector='UTI', students=['Ana']))
        visit = store.store.save_visit(StaffVisit(date='2024-05-03', staff_name='Carlos'))
        user = store.store.save_user(User(name='Ana', email='ana@x.com'))
        self.wait_for_pushes()
        self.transport.posts.clear()

        store.store.delete_class(cls.id)
        store.store.delete_visit(visit.id)
        store.store.delete_user(user.id)
        self.wait_for_pushes()
        self.assertEqual(sorted(self.transport.posted_types()), ['DELETE_CLASS', 'DELETE_USER', 'DELETE_VISIT'])


class StoreVisibilityTests(BaseTestCase):
    def test_visible_records(self):
        store.store.save_study(make_study(id='mine', chaplain_id='chap-1'))
        store.store.save_study(make_study(id='theirs', chaplain_id='chap-2'))

        chaplain = User(id='chap-1', name='C', email='c@x.com')
        admin = User(id='adm', name='A', email='a@x.com', role=Role.ADMIN)

        self.assertEqual([r.id for r in store.store.visible_records('study', chaplain)], ['mine'])
        self.assertEqual(len(store.store.visible_records('study', admin)), 2)
        self.assertEqual(store.store.visible_records('study', None), [])

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            store.get_kind('sermon')

    def test_unreadable_items_are_skipped(self):
        database.DatabaseAPI.replace_collection(Key.Groups, [
            {'id': 'ok', 'date': '2024-05-03', 'sector': 'UTI', 'name': 'PG'},
            {'id': 'bad', 'shift': 'Madrugada'},
        ])
        self.assertEqual([g.id for g in store.store.get_groups()], ['ok'])


class StoreInitTests(BaseTestCase):
    def test_first_run_seeds_admin(self):
        self.assertTrue(store.store.init())
        users = store.store.get_users()
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].id, 'master-admin')
        self.assertIs(users[0].role, Role.ADMIN)

    def test_existing_users_are_left_alone(self):
        database.DatabaseAPI.write(Key.Users, [])
        self.assertFalse(store.store.init())
        self.assertEqual(store.store.get_users(), [])

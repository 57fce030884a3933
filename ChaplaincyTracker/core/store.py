"""Typed read/write operations over the local collections.

Reads are synchronous and return the current stored snapshot in insertion
order. Saves and deletes persist synchronously, then hand a mutation event to
:data:`ChaplaincyTracker.core.sync.sync` which delivers it in the background.

Example:

    .. code-block:: python

        from ChaplaincyTracker.core.store import store
        from ChaplaincyTracker.core.models import BibleStudy

        study = store.save_study(BibleStudy(date='2024-05-03', sector='UTI', patient_name='Maria'))
        store.delete_study(study.id)

"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, Union

from PySide6 import QtCore

from . import database
from . import sync
from .database import Key
from .models import (
    Activity, BibleClass, BibleStudy, ChangeRequest, Record, RequestModule, SmallGroup, StaffVisit, User,
    new_id, now_str
)
from .signals import signals
from ..status import status


@dataclass(frozen=True)
class Kind:
    """Describes one stored collection and its remote event tags."""
    name: str
    key: Key
    record_cls: Type[Record]
    save_tag: sync.TypeTag
    delete_tag: sync.TypeTag


KINDS: Dict[str, Kind] = {
    'study': Kind('study', Key.Studies, BibleStudy, sync.TypeTag.Studies, sync.TypeTag.DeleteStudy),
    'class': Kind('class', Key.Classes, BibleClass, sync.TypeTag.Classes, sync.TypeTag.DeleteClass),
    'group': Kind('group', Key.Groups, SmallGroup, sync.TypeTag.Groups, sync.TypeTag.DeleteGroup),
    'visit': Kind('visit', Key.Visits, StaffVisit, sync.TypeTag.Visits, sync.TypeTag.DeleteVisit),
    'user': Kind('user', Key.Users, User, sync.TypeTag.Users, sync.TypeTag.DeleteUser),
}

ACTIVITY_KINDS = ('study', 'class', 'group', 'visit')

MODULE_KINDS: Dict[RequestModule, str] = {
    RequestModule.STUDY: 'study',
    RequestModule.CLASS: 'class',
    RequestModule.PG: 'group',
    RequestModule.VISIT: 'visit',
}


def get_kind(kind: Union[str, RequestModule, Kind]) -> Kind:
    """Resolve a kind name, a change-request module or a :class:`Kind`.

    Raises:
        ValueError: If the kind is unknown.
    """
    if isinstance(kind, Kind):
        return kind
    if isinstance(kind, RequestModule):
        kind = MODULE_KINDS[kind]
    if kind not in KINDS:
        msg = f'Unknown record kind "{kind}". Expected one of {list(KINDS)}.'
        logging.error(msg)
        raise ValueError(msg)
    return KINDS[kind]


def can_modify(user: Optional[User], record: Record) -> bool:
    """Admins may change anything; other users only their own activities and their own account."""
    if user is None:
        return False
    if user.is_admin:
        return True
    if isinstance(record, Activity):
        return record.chaplain_id == user.id
    if isinstance(record, User):
        return record.id == user.id
    return False


class RecordStore(QtCore.QObject):
    """get/save/delete contract over the persisted collections."""

    def init(self) -> bool:
        """Seed the default administrator on first run.

        Returns:
            bool: True if the user collection was seeded.
        """
        if database.DatabaseAPI.has(Key.Users):
            return False
        admin = sync.master_admin()
        database.DatabaseAPI.write(Key.Users, [admin.to_dict()])
        logging.info(f'Seeded the default administrator "{admin.email}".')
        return True

    def records(self, kind: Union[str, Kind]) -> List[Any]:
        """Return every stored record of ``kind`` in storage order.

        Stored items that can no longer be decoded are skipped with a warning.
        """
        k = get_kind(kind)
        result = []
        for item in database.DatabaseAPI.get_collection(k.key):
            try:
                result.append(k.record_cls.from_dict(item))
            except status.ValidationException as ex:
                logging.warning(f'Skipping unreadable {k.name} record in "{k.key}": {ex}')
        return result

    def get_record(self, kind: Union[str, Kind], record_id: str) -> Optional[Any]:
        return next((r for r in self.records(kind) if r.id == record_id), None)

    def get_studies(self) -> List[BibleStudy]:
        return self.records('study')

    def get_classes(self) -> List[BibleClass]:
        return self.records('class')

    def get_groups(self) -> List[SmallGroup]:
        return self.records('group')

    def get_visits(self) -> List[StaffVisit]:
        return self.records('visit')

    def get_users(self) -> List[User]:
        return self.records('user')

    def get_requests(self) -> List[ChangeRequest]:
        result = []
        for item in database.DatabaseAPI.get_collection(Key.Requests):
            try:
                result.append(ChangeRequest.from_dict(item))
            except status.ValidationException as ex:
                logging.warning(f'Skipping unreadable change request: {ex}')
        return result

    def visible_records(self, kind: Union[str, Kind], user: Optional[User]) -> List[Any]:
        """Return the records of ``kind`` that ``user`` may see.

        Admins see everything, everyone else sees only records they own.
        Anonymous callers see nothing.
        """
        if user is None:
            return []
        records = self.records(kind)
        if user.is_admin:
            return records
        return [r for r in records if can_modify(user, r)]

    def save(self, kind: Union[str, Kind], record: Union[Record, Dict[str, Any]]) -> Any:
        """Validate and upsert ``record``, then push it.

        A record without an id gets a generated one. Activity records get ``year`` and
        ``month`` from their date and keep the stored ``createdAt`` and ``chaplainId``
        of an existing record with the same id.

        Args:
            kind: Record kind name.
            record: The record, or its JSON representation.

        Returns:
            The record as stored.

        Raises:
            status.ValidationException: If the record is invalid. Nothing is stored.
        """
        k = get_kind(kind)
        if isinstance(record, dict):
            record = k.record_cls.from_dict(record)
        if not isinstance(record, k.record_cls):
            raise status.ValidationException(
                f'Expected a {k.record_cls.__name__}, got {type(record).__name__}.'
            )

        record = copy.deepcopy(record)
        record.validate()

        if not record.id:
            record.id = new_id()

        if isinstance(record, Activity):
            record.derive_period()
            existing = self.get_record(k, record.id)
            if existing is not None:
                record.created_at = existing.created_at or record.created_at or now_str()
                record.chaplain_id = existing.chaplain_id or record.chaplain_id
            else:
                record.created_at = record.created_at or now_str()
                record.chaplain_id = record.chaplain_id or self._current_user_id()

        data = record.to_dict()
        replaced = database.DatabaseAPI.upsert(k.key, data)
        logging.debug(f'{"Updated" if replaced else "Added"} {k.name} "{record.id}".')
        signals.recordSaved.emit(str(k.key), record)

        sync.sync.push(k.save_tag, data)
        return record

    def delete(self, kind: Union[str, Kind], record_id: str, user: Optional[User] = None) -> bool:
        """Remove a record by id and push the deletion.

        Deleting an id that is not stored leaves the collection unchanged; the deletion
        event is still sent so a remote copy is removed as well.

        Args:
            kind: Record kind name.
            record_id: Id of the record to remove.
            user: When given, the acting user must be allowed to modify the record.

        Returns:
            bool: True if a local record was removed.

        Raises:
            status.PermissionDeniedException: If ``user`` may not delete the record.
        """
        k = get_kind(kind)
        existing = self.get_record(k, record_id)
        if user is not None and existing is not None and not can_modify(user, existing):
            raise status.PermissionDeniedException(
                f'{user.name} cannot delete {k.name} "{record_id}".'
            )

        removed = database.DatabaseAPI.remove_item(k.key, record_id)
        if removed:
            logging.debug(f'Deleted {k.name} "{record_id}".')
            signals.recordDeleted.emit(str(k.key), record_id)

        sync.sync.push(k.delete_tag, {'id': record_id})
        return removed

    def save_study(self, record: Union[BibleStudy, Dict[str, Any]]) -> BibleStudy:
        return self.save('study', record)

    def save_class(self, record: Union[BibleClass, Dict[str, Any]]) -> BibleClass:
        return self.save('class', record)

    def save_group(self, record: Union[SmallGroup, Dict[str, Any]]) -> SmallGroup:
        return self.save('group', record)

    def save_visit(self, record: Union[StaffVisit, Dict[str, Any]]) -> StaffVisit:
        return self.save('visit', record)

    def save_user(self, record: Union[User, Dict[str, Any]]) -> User:
        return self.save('user', record)

    def delete_study(self, record_id: str, user: Optional[User] = None) -> bool:
        return self.delete('study', record_id, user=user)

    def delete_class(self, record_id: str, user: Optional[User] = None) -> bool:
        return self.delete('class', record_id, user=user)

    def delete_group(self, record_id: str, user: Optional[User] = None) -> bool:
        return self.delete('group', record_id, user=user)

    def delete_visit(self, record_id: str, user: Optional[User] = None) -> bool:
        return self.delete('visit', record_id, user=user)

    def delete_user(self, record_id: str, user: Optional[User] = None) -> bool:
        return self.delete('user', record_id, user=user)

    @staticmethod
    def _current_user_id() -> str:
        current = database.DatabaseAPI.read(Key.CurrentUser)
        if isinstance(current, dict):
            return str(current.get('id') or '')
        return ''


store = RecordStore()

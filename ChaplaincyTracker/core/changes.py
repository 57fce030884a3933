"""Approval workflow for changes to past-month records.

Activity records dated in the current month are edited or deleted directly.
Records from earlier months need a change request carrying a justification;
an administrator later approves the request, which applies the stored edit or
delete through the store, or rejects it. Requests are kept in the local store
only.
"""
import datetime
import logging
from typing import Optional, Union

from . import database
from . import store
from .database import Key
from .models import (
    Activity, ChangeRequest, RequestModule, RequestStatus, RequestType, User, new_id, now_str
)
from .signals import signals
from ..status import status

KIND_MODULES = {v: k for k, v in store.MODULE_KINDS.items()}


def is_current_month(record: Activity, today: Optional[datetime.date] = None) -> bool:
    """Whether ``record`` falls in the month of ``today``."""
    today = today or datetime.date.today()
    return record.year == today.year and record.month == today.month


def _check_permission(user: User, record: Activity) -> None:
    if not store.can_modify(user, record):
        raise status.PermissionDeniedException(f'{user.name} cannot change record "{record.id}".')


def _submit(request: ChangeRequest) -> ChangeRequest:
    request.validate()
    database.DatabaseAPI.upsert(Key.Requests, request.to_dict())
    logging.info(f'{request.requested_by_name} requested {request.type} of {request.module} "{request.record_id}".')
    signals.requestsChanged.emit()
    return request


def _new_request(kind: str, record_id: str, type_: RequestType, user: User, reason: Optional[str],
                 new_data=None) -> ChangeRequest:
    if not reason or not reason.strip():
        raise status.ValidationException('A justification is required for past-month changes.', field='reason')
    return ChangeRequest(
        id=new_id(),
        record_id=record_id,
        type=type_,
        module=KIND_MODULES[kind],
        status=RequestStatus.PENDING,
        requested_by=user.id,
        requested_by_name=user.name,
        requested_at=now_str(),
        reason=reason.strip(),
        new_data=new_data,
    )


def edit_record(kind: str, record: Activity, user: User, reason: Optional[str] = None,
                today: Optional[datetime.date] = None) -> Union[Activity, ChangeRequest]:
    """Save an edit directly, or file an edit request for a past-month record.

    A record that is not stored yet is saved directly. For stored records the month
    comes from the stored version, so moving a date into the current month does not
    bypass the request.

    Returns:
        The stored record, or the pending :class:`ChangeRequest`.

    Raises:
        status.PermissionDeniedException: If ``user`` may not change the record.
        status.ValidationException: If the record is invalid or a required justification is missing.
    """
    k = store.get_kind(kind)
    if k.name not in store.ACTIVITY_KINDS:
        raise ValueError(f'Change requests only apply to activity records, not "{k.name}".')

    existing = store.store.get_record(k, record.id) if record.id else None
    if existing is None:
        return store.store.save(k, record)
    _check_permission(user, existing)

    if is_current_month(existing, today):
        return store.store.save(k, record)

    record.validate()
    return _submit(_new_request(k.name, record.id, RequestType.EDIT, user, reason, new_data=record.to_dict()))


def delete_record(kind: str, record_id: str, user: User, reason: Optional[str] = None,
                  today: Optional[datetime.date] = None) -> Union[bool, ChangeRequest]:
    """Delete a current-month record directly, or file a delete request for an older one.

    Returns:
        The store's delete result, or the pending :class:`ChangeRequest`.

    Raises:
        status.RecordNotFoundException: If the record does not exist.
        status.PermissionDeniedException: If ``user`` may not change the record.
        status.ValidationException: If a required justification is missing.
    """
    k = store.get_kind(kind)
    existing = store.store.get_record(k, record_id)
    if existing is None:
        raise status.RecordNotFoundException(f'No {k.name} "{record_id}".')
    _check_permission(user, existing)

    if is_current_month(existing, today):
        return store.store.delete(k, record_id, user=user)
    return _submit(_new_request(k.name, record_id, RequestType.DELETE, user, reason))


def pending_requests():
    return [r for r in store.store.get_requests() if r.status == RequestStatus.PENDING]


def get_request(request_id: str) -> ChangeRequest:
    request = next((r for r in store.store.get_requests() if r.id == request_id), None)
    if request is None:
        raise status.RequestInvalidException(f'No change request "{request_id}".')
    return request


def _resolve(request_id: str, admin: User, new_status: RequestStatus) -> ChangeRequest:
    if admin is None or not admin.is_admin:
        raise status.PermissionDeniedException('Only administrators can review change requests.')
    request = get_request(request_id)
    if request.status != RequestStatus.PENDING:
        raise status.RequestInvalidException(f'Request "{request_id}" is already {request.status}.')

    if new_status == RequestStatus.APPROVED:
        kind = store.MODULE_KINDS[RequestModule(request.module)]
        if request.type == RequestType.DELETE:
            store.store.delete(kind, request.record_id)
        elif request.new_data:
            store.store.save(kind, request.new_data)

    request.status = new_status
    database.DatabaseAPI.upsert(Key.Requests, request.to_dict())
    logging.info(f'{admin.name} {new_status.lower()} request "{request.id}".')
    signals.requestsChanged.emit()
    return request


def approve(request_id: str, admin: User) -> ChangeRequest:
    """Apply a pending request and mark it approved.

    Raises:
        status.PermissionDeniedException: If ``admin`` is not an administrator.
        status.RequestInvalidException: If the request is missing or no longer pending.
    """
    return _resolve(request_id, admin, RequestStatus.APPROVED)


def reject(request_id: str, admin: User) -> ChangeRequest:
    """Mark a pending request rejected without touching the record."""
    return _resolve(request_id, admin, RequestStatus.REJECTED)

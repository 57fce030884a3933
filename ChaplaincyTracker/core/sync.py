"""Reconciliation between the local store and the remote endpoint.

Pull replaces whole local collections with the remote snapshot (last write
wins, no per-record merge). Only fields present and non-null in the snapshot
are replaced, so a partial snapshot never erases local data. All replaced
fields are written in one transaction.

Push sends one mutation event per local write on a worker thread and never
blocks the caller. Failures are logged and counted but not retried; the remote
side stays behind until the record is pushed again.

Every push marks the time of the last local write. A pull requested within the
lock window of that write is skipped and reported as a success, since the
remote side may not yet reflect the write and would otherwise overwrite it.
Two clients writing within the same window can still race.
"""
import collections
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Type

from PySide6 import QtCore

from . import database
from .database import Key
from .models import (
    BibleClass, BibleStudy, CloudConfig, Record, Role, SmallGroup, StaffVisit, User, load_list, now_str
)
from .service import AsyncWorker, HttpTransport
from .signals import signals
from ..settings import lib
from ..status import status

ANONYMOUS_EXECUTOR: str = 'Sistema'

# Push outcomes kept for drift monitoring; older ones are dropped first
RESULTS_CAPACITY: int = 5000


class TypeTag(enum.StrEnum):
    """Event type tags understood by the remote endpoint."""
    Users = 'USUARIOS'
    Studies = 'ESTUDOS_BIBLICOS'
    Classes = 'CLASSES_BIBLICAS'
    Groups = 'PEQUENOS_GRUPOS'
    Visits = 'VISITAS_COLABORADORES'
    Config = 'CONFIGURACAO_SISTEMA'
    DeleteUser = 'DELETE_USER'
    DeleteStudy = 'DELETE_STUDY'
    DeleteClass = 'DELETE_CLASS'
    DeleteGroup = 'DELETE_GROUP'
    DeleteVisit = 'DELETE_VISIT'


# Snapshot field -> (storage key, record type)
SNAPSHOT_COLLECTIONS: Dict[str, Tuple[Key, Type[Record]]] = {
    'users': (Key.Users, User),
    'studies': (Key.Studies, BibleStudy),
    'classes': (Key.Classes, BibleClass),
    'groups': (Key.Groups, SmallGroup),
    'visits': (Key.Visits, StaffVisit),
}


@dataclass
class PushResult:
    """Outcome of one push. Published on ``signals.pushFinished`` and never awaited."""
    type: str
    ok: bool
    error: Optional[str] = None


class ReconciliationState:
    """Write-suppression lock state with an injectable clock.

    Args:
        clock: Callable returning the current time in seconds.
        lock_window: Seconds after a write during which pulls are skipped.
    """

    def __init__(self, clock: Callable[[], float] = time.time,
                 lock_window: float = lib.DEFAULT_LOCK_WINDOW) -> None:
        self.clock = clock
        self.lock_window = float(lock_window)
        self.last_write_at: Optional[float] = None

    def mark_write(self) -> float:
        self.last_write_at = self.clock()
        return self.last_write_at

    def remaining(self) -> float:
        """Seconds left in the current lock window, 0 when unlocked."""
        if self.last_write_at is None:
            return 0.0
        return max(0.0, self.last_write_at + self.lock_window - self.clock())

    def is_locked(self) -> bool:
        return self.remaining() > 0.0


def master_admin() -> User:
    """Return the seeded administrator account defined in the settings."""
    config = lib.settings.get_section('admin')
    return User(
        id=config['id'],
        name=config['name'],
        email=config['email'],
        password=config['password'] or None,
        role=Role.ADMIN,
    )


def ensure_master_admin(users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Return ``users`` with the master administrator prepended when missing."""
    admin = master_admin()
    for user in users:
        if user.get('id') == admin.id or str(user.get('email', '')).casefold() == admin.email.casefold():
            return users
    logging.debug('Master administrator missing from the user list; re-adding it.')
    return [admin.to_dict()] + users


class SyncAPI(QtCore.QObject):
    """Pull remote snapshots into the local store and push local writes.

    Args:
        state: Lock state. Defaults to the wall clock and the configured window.
        transport: Object with ``fetch(endpoint)`` and ``post(endpoint, payload)``.
        results_capacity: Number of recent push outcomes kept in ``results``.
    """

    def __init__(self, state: Optional[ReconciliationState] = None, transport: Any = None,
                 results_capacity: int = RESULTS_CAPACITY, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        if state is None:
            state = ReconciliationState(
                lock_window=lib.settings.value('sync', 'lock_window', lib.DEFAULT_LOCK_WINDOW)
            )
        self.state: ReconciliationState = state
        self.transport = transport if transport is not None else HttpTransport()

        self.failed_pushes: int = 0
        self.results: Deque[PushResult] = collections.deque(maxlen=results_capacity)

        self._lock = threading.Lock()
        self._workers: Set[AsyncWorker] = set()
        self._connect_signals()

    def _connect_signals(self) -> None:
        signals.settingsSectionChanged.connect(self._on_settings_changed)

    @QtCore.Slot(str)
    def _on_settings_changed(self, section: str) -> None:
        if section != 'sync':
            return
        self.state.lock_window = float(lib.settings.value('sync', 'lock_window', lib.DEFAULT_LOCK_WINDOW))
        logging.debug(f'Write lock window set to {self.state.lock_window}s')

    @property
    def endpoint(self) -> str:
        """Remote URL from the stored tenant config, falling back to the settings default."""
        config = database.DatabaseAPI.read(Key.Config, {})
        url = config.get('databaseURL') if isinstance(config, dict) else None
        return url or lib.settings.value('sync', 'endpoint', '')

    def pull(self) -> bool:
        """Replace local collections with the remote snapshot.

        Returns:
            bool: True on success or when skipped inside the lock window; False when the
            snapshot could not be fetched, decoded or stored, in which case nothing was changed.
        """
        if self.state.is_locked():
            remaining = self.state.remaining()
            logging.info(f'Pull skipped: last local write was less than {self.state.lock_window}s ago.')
            signals.pullSkipped.emit(remaining)
            signals.pullFinished.emit(True)
            return True

        signals.pullStarted.emit()
        try:
            snapshot = self.transport.fetch(self.endpoint)
            updates = self._decode_snapshot(snapshot)
        except (status.BaseStatusException, OSError, ValueError, TypeError) as ex:
            logging.warning(f'Pull failed, keeping local data: {ex}')
            signals.pullFinished.emit(False)
            return False

        try:
            self._apply_snapshot(updates)
        except status.StoreInvalidException as ex:
            logging.warning(f'Pull could not be stored, keeping local data: {ex}')
            signals.pullFinished.emit(False)
            return False

        signals.pullFinished.emit(True)
        return True

    def pull_async(self) -> AsyncWorker:
        """Run :meth:`pull` on a worker thread. The result arrives via ``signals.pullFinished``."""
        worker = AsyncWorker(self.pull)
        self._start(worker)
        return worker

    def _decode_snapshot(self, snapshot: Any) -> Dict[str, Any]:
        """Validate the whole snapshot and return the entries to write.

        Raises:
            status.SnapshotInvalidException: If the snapshot is not an object or a field has the wrong shape.
        """
        if not isinstance(snapshot, dict):
            raise status.SnapshotInvalidException(f'Expected an object, got {type(snapshot).__name__}.')

        updates: Dict[str, Any] = {}
        for field_name, (key, record_cls) in SNAPSHOT_COLLECTIONS.items():
            if snapshot.get(field_name) is None:
                continue
            try:
                records = load_list(record_cls, snapshot[field_name])
            except status.ValidationException as ex:
                raise status.SnapshotInvalidException(f'Field "{field_name}": {ex}') from ex
            items = [r.to_dict() for r in records]
            if key == Key.Users:
                items = ensure_master_admin(items)
            updates[key] = items

        if snapshot.get('config') is not None:
            remote_config = snapshot['config']
            if not isinstance(remote_config, dict):
                raise status.SnapshotInvalidException(
                    f'Field "config" must be an object, got {type(remote_config).__name__}.'
                )
            local_config = database.DatabaseAPI.read(Key.Config, {})
            merged = {**(local_config if isinstance(local_config, dict) else {}), **remote_config}
            try:
                updates[Key.Config] = CloudConfig.from_dict(merged).to_dict()
            except status.ValidationException as ex:
                raise status.SnapshotInvalidException(f'Field "config": {ex}') from ex

        return updates

    def _apply_snapshot(self, updates: Dict[str, Any]) -> None:
        """Write every update in one transaction.

        Raises:
            status.StoreInvalidException: If the store rejects the write. Nothing is changed.
        """
        database.DatabaseAPI.write_many(updates)
        logging.info(f'Pulled remote snapshot: replaced {", ".join(updates) or "nothing"}.')
        signals.collectionsReplaced.emit([str(k) for k in updates])

    def _executed_by(self) -> str:
        current = database.DatabaseAPI.read(Key.CurrentUser)
        if isinstance(current, dict) and current.get('name'):
            return current['name']
        return ANONYMOUS_EXECUTOR

    def push(self, type_tag: str, data: Dict[str, Any]) -> Optional[AsyncWorker]:
        """Send a mutation event without waiting for it.

        Args:
            type_tag: One of :class:`TypeTag`.
            data: The saved record, or ``{'id': ...}`` for deletions.

        Returns:
            The worker delivering the event, or None when no endpoint is configured.
        """
        self.state.mark_write()
        tag = str(type_tag)
        payload = {
            'type': tag,
            'timestamp': now_str(),
            'executedBy': self._executed_by(),
            'data': data,
        }

        endpoint = self.endpoint
        if not endpoint:
            logging.warning(f'No remote endpoint configured; "{tag}" was kept locally only.')
            self._record(PushResult(tag, False, 'No remote endpoint configured.'))
            return None

        signals.pushStarted.emit(tag)
        worker = AsyncWorker(self._deliver, endpoint, payload)
        self._start(worker)
        return worker

    def _deliver(self, endpoint: str, payload: Dict[str, Any]) -> PushResult:
        try:
            self.transport.post(endpoint, payload)
        except Exception as ex:
            logging.warning(f'Push of "{payload["type"]}" failed and was discarded: {ex}')
            return self._record(PushResult(payload['type'], False, str(ex)))
        return self._record(PushResult(payload['type'], True))

    def _record(self, result: PushResult) -> PushResult:
        with self._lock:
            self.results.append(result)
            if not result.ok:
                self.failed_pushes += 1
        signals.pushFinished.emit(result)
        return result

    def _start(self, worker: AsyncWorker) -> None:
        with self._lock:
            self._workers = {w for w in self._workers if not w.isFinished()}
            self._workers.add(worker)
        worker.start()

    def pending(self) -> int:
        """Number of workers still running."""
        with self._lock:
            return sum(1 for w in self._workers if not w.isFinished())

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until in-flight workers finish.

        Args:
            timeout: Maximum seconds to wait in total, or None to wait indefinitely.

        Returns:
            bool: True if every worker finished.
        """
        with self._lock:
            workers = list(self._workers)

        deadline = None if timeout is None else time.monotonic() + timeout
        for worker in workers:
            if deadline is None:
                worker.wait()
                continue
            ms = max(0, int((deadline - time.monotonic()) * 1000))
            worker.wait(ms)

        with self._lock:
            self._workers = {w for w in self._workers if not w.isFinished()}
            return not self._workers


sync = SyncAPI()

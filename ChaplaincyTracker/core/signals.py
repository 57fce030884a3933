"""Application-wide Qt signals for ChaplaincyTracker.

The record store, the cloud reconciler and the session gate publish their
events here so views (and operators monitoring sync drift) can observe them
without the core depending on any UI.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for store, sync, session and config events."""
    recordSaved = QtCore.Signal(str, object)  # collection key, stored record
    recordDeleted = QtCore.Signal(str, str)  # collection key, record id
    collectionsReplaced = QtCore.Signal(list)  # collection keys replaced by a pull

    pullStarted = QtCore.Signal()
    pullSkipped = QtCore.Signal(float)  # seconds left in the lock window
    pullFinished = QtCore.Signal(bool)

    pushStarted = QtCore.Signal(str)  # type tag
    pushFinished = QtCore.Signal(object)  # PushResult

    sessionChanged = QtCore.Signal(object)  # User or None
    loginFailed = QtCore.Signal()

    configChanged = QtCore.Signal(object)  # CloudConfig
    settingsSectionChanged = QtCore.Signal(str)

    requestsChanged = QtCore.Signal()
    insightChanged = QtCore.Signal(str)

    showLogs = QtCore.Signal()
    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.pushFinished.connect(
            lambda r: logging.debug(f'Push finished: {r}')
        )
        self.pullSkipped.connect(
            lambda s: logging.debug(f'Pull skipped, write lock active for another {s:.1f}s')
        )


signals = Signals()

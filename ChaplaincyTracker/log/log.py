"""Logging for ChaplaincyTracker.

Every record goes to the root logger. :class:`TankHandler` keeps the recent
ones in memory because push failures are never raised to the caller, and the
tank is the only place they can be reviewed later. Qt's own diagnostics are
routed into the same tree under the ``Qt`` logger.
"""
import collections
import logging
import sys

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

from ..core.signals import signals

LOG_LEVEL = logging.DEBUG
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
TANK_CAPACITY = 5000

VALID_LEVELS = (
    logging.DEBUG,
    logging.INFO,
    logging.WARNING,
    logging.ERROR,
    logging.CRITICAL,
)

QT_LEVELS = {
    QtMsgType.QtDebugMsg: logging.DEBUG,
    QtMsgType.QtInfoMsg: logging.INFO,
    QtMsgType.QtWarningMsg: logging.WARNING,
    QtMsgType.QtCriticalMsg: logging.ERROR,
    QtMsgType.QtFatalMsg: logging.CRITICAL,
}


def set_logging_level(level):
    """Change verbosity at runtime, e.g. to surface sync debug messages.

    The stdout handler and the tank follow the root logger so a raised level
    also stops the tank from filling with push chatter.

    Args:
        level (int): One of :data:`VALID_LEVELS`.

    Raises:
        ValueError: ``level`` is not an int or not a standard level.
    """
    if not isinstance(level, int):
        raise ValueError("Logging level must be an integer.")
    if level not in VALID_LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        handler.setLevel(level)


def qt_message_handler(mode, context, message):
    """Log a Qt diagnostic, such as a worker thread warning, under the ``Qt`` logger.

    A fatal Qt message exits the process after it is logged.
    """
    level = QT_LEVELS.get(mode, logging.WARNING)
    logging.getLogger('Qt').log(level, message.strip())
    if mode == QtMsgType.QtFatalMsg:
        sys.exit(1)


def setup_logging(enable_stream_handler=True, enable_qt_handler=True, log_level=LOG_LEVEL):
    """Install the package's handlers on the root logger.

    Runs when :mod:`ChaplaincyTracker` is imported. Calling it again replaces
    the handlers, so tests can start from an empty tank.

    Args:
        enable_stream_handler (bool): Also print records to stdout.
        enable_qt_handler (bool): Route Qt's own messages through Python logging.
        log_level (int): Level applied to the root logger and every handler.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(log_level)
        root_logger.addHandler(stream_handler)

    tank_handler = TankHandler()
    tank_handler.setFormatter(formatter)
    tank_handler.setLevel(log_level)
    root_logger.addHandler(tank_handler)

    if enable_qt_handler:
        qInstallMessageHandler(qt_message_handler)


def get_tank():
    """Return the installed TankHandler, or None when logging was set up without one."""
    return next(
        (h for h in logging.getLogger().handlers if isinstance(h, TankHandler)), None
    )


class TankHandler(logging.Handler):
    """Keeps the most recent formatted records in memory.

    Push failures are only ever logged, so the tank is where an operator looks
    to see how far the remote side has drifted from local state. Records at
    ERROR or above also emit ``signals.showLogs``.

    Args:
        capacity (int): Number of records kept; older records are dropped first.
    """

    def __init__(self, capacity=TANK_CAPACITY):
        super().__init__()
        self.tank = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
            if record.levelno >= logging.ERROR:
                signals.showLogs.emit()
        except Exception:
            self.handleError(record)

    def get_logs(self, level=logging.NOTSET):
        """Return the stored messages at ``level`` or above, oldest first."""
        return [msg for lvl, msg in self.tank if lvl >= level]

    def clear_logs(self):
        self.tank.clear()

"""
ChaplaincyTracker: local-first activity log for hospital chaplaincy teams.

This package provides:

- :mod:`ChaplaincyTracker.core` – The local record store, the cloud reconciler and the session/config gate.
- :mod:`ChaplaincyTracker.data` – pandas helpers for activity listings, monthly counts and the cached insight text.
- :mod:`ChaplaincyTracker.settings` – Application paths and the ``settings.json`` configuration layer.
- :mod:`ChaplaincyTracker.status` – Status codes and the exceptions raised across the package.
- :mod:`ChaplaincyTracker.log` – Logging setup with an in-memory log tank.

Use :func:`ChaplaincyTracker.init` to seed the store and pull the remote snapshot.
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('ChaplaincyTracker requires Python 3.11 or higher.')

__version__ = '0.0.0'
__license__ = 'GPL-3.0'
__description__ = 'ChaplaincyTracker: local-first ministry activity log with best-effort spreadsheet sync.'

from .log import log

log.setup_logging()


def init(pull: bool = True) -> bool:
    """Prepare the local store and optionally pull the remote snapshot.

    Args:
        pull: Whether to pull the remote snapshot after seeding.

    Returns:
        bool: The pull result, or True when no pull was requested.
    """
    from .core import auth
    from .core import sync

    auth.auth_manager.init()
    if not pull:
        return True
    return sync.sync.pull()

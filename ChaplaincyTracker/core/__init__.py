"""
Core package for ChaplaincyTracker.

This package includes:

- :mod:`ChaplaincyTracker.core.models` – Entity dataclasses, enums, wire conversion and validation.
- :mod:`ChaplaincyTracker.core.database` – SQLite-backed key-value store holding the JSON collections.
- :mod:`ChaplaincyTracker.core.store` – Typed get/save/delete operations over the local collections.
- :mod:`ChaplaincyTracker.core.service` – HTTP transport to the remote endpoint and the worker thread.
- :mod:`ChaplaincyTracker.core.sync` – Snapshot pulls, fire-and-forget pushes and the write-suppression lock.
- :mod:`ChaplaincyTracker.core.auth` – Login session and tenant configuration.
- :mod:`ChaplaincyTracker.core.changes` – Approval workflow for edits and deletes of past-month records.
"""

"""
Status codes and exceptions shared by the store, sync and session layers.

Modules:

- :mod:`ChaplaincyTracker.status.status` – Status enum, messages and the status exception hierarchy.
"""

"""
Logging subsystem for ChaplaincyTracker.

Modules:

- :mod:`ChaplaincyTracker.log.log` – Root logger setup, the in-memory log tank, and the Qt message bridge.
"""

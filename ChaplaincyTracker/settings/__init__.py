"""
Settings package: configuration API.

- :mod:`ChaplaincyTracker.settings.lib` – Application paths, ``settings.json`` loading and schema validation.
"""

"""
ChaplaincyTracker data package.

- :mod:`ChaplaincyTracker.data.data` – pandas frames over the activity collections, history listing, monthly counts and the insight cache.
"""

"""Test package. Runs Qt headless and redirects the application data directory before anything is imported."""
import os

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

from PySide6 import QtCore

QtCore.QStandardPaths.setTestModeEnabled(True)

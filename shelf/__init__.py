"""
Shelf - an audiobook catalog that follows your folders.

Shelf scans registered directories and keeps a SQLite catalog of albums and
audio files in step with what is on disk, while preserving playback progress
and a natural track order.
"""

__version__ = "0.1.0"
__author__ = "Shelf Contributors"
__license__ = "GPL-2.0"

from shelf.core.synchronizer import Synchronizer

__all__ = ["Synchronizer", "__version__"]

"""
Layer 3 — Storage
Keeps scan records and events for later review and form export
"""
from .records import Event, ScanRecord
from .store import ScanStore, open_store

__all__ = ['Event', 'ScanRecord', 'ScanStore', 'open_store']

"""
PosturePomo Shared Module

Common utilities used across services.
"""

from .storage import LocalRecordStore, get_storage

__all__ = [
    'LocalRecordStore',
    'get_storage',
]

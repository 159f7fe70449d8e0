"""
Storage-facing side of private messaging: backends, message store and client.
"""

from .backend import StorageBackend, StorageError, StorageReadFailure, StorageWriteFailure, NotFound
from .config import Settings, get_settings, configure_logging
from .storage import LocalStorage
from .homeserver import HomeserverStorage
from .store import MessageStore, DeleteResult
from .client import MessengerClient

__all__ = [
    'StorageBackend',
    'StorageError',
    'StorageReadFailure',
    'StorageWriteFailure',
    'NotFound',
    'Settings',
    'get_settings',
    'configure_logging',
    'LocalStorage',
    'HomeserverStorage',
    'MessageStore',
    'DeleteResult',
    'MessengerClient',
]

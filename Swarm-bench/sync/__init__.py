"""
Rendezvous (barrier and topic) clients and server.
"""

from .base import SyncClient
from .memory import InMemorySyncService, InMemorySyncClient
from .client import HTTPSyncClient
from .server import RendezvousServer

__all__ = [
    'SyncClient',
    'InMemorySyncService',
    'InMemorySyncClient',
    'HTTPSyncClient',
    'RendezvousServer',
]

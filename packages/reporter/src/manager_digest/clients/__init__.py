"""External service clients: the document store and the messaging API."""

from manager_digest.clients.firestore import (
    DocumentStore,
    FirestoreStore,
    StoreConfigurationError,
    StoreError,
)
from manager_digest.clients.telegram import TelegramNotifier

__all__ = [
    "DocumentStore",
    "FirestoreStore",
    "StoreError",
    "StoreConfigurationError",
    "TelegramNotifier",
]

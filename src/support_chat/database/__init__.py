"""
Database module for durable conversation and message storage.
"""

from .encryption import EncryptionError, EncryptionManager
from .models import Base, Conversation, Message
from .store import ConflictError, MessageLog, NotFoundError, StorageError

__all__ = [
    "Base",
    "ConflictError",
    "Conversation",
    "EncryptionError",
    "EncryptionManager",
    "Message",
    "MessageLog",
    "NotFoundError",
    "StorageError",
]

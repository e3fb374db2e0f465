"""Core module for the Sanity search sync connector."""

from core.change_set import ChangeSet, WebhookPayloadError
from core.indexer import Indexer, SyncError, SyncOptions, SyncOutcome
from core.routing import TypeRoute

__all__ = [
    "ChangeSet",
    "Indexer",
    "SyncError",
    "SyncOptions",
    "SyncOutcome",
    "TypeRoute",
    "WebhookPayloadError",
]

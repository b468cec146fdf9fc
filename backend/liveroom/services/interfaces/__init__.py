"""
Service interfaces for dependency inversion.
Allows swapping the backing store without changing business logic.
"""

from .document_store import ABORT, DocumentStore, Subscription, TransactionResult

__all__ = ['ABORT', 'DocumentStore', 'Subscription', 'TransactionResult']

"""
Storage Services Package

Provides abstract interfaces and an in-memory implementation.
Hosts plug their own backend in by implementing the interfaces.
"""

from obligation_core.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ContainerStorageInterface,
    DuplicateError,
    LiabilityStorageInterface,
    NotFoundError,
    Repository,
    StorageConnectionError,
    StorageError,
    TrackingStorageInterface,
)
from obligation_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ContainerStorageInterface",
    "LiabilityStorageInterface",
    "Repository",
    "TrackingStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRepository",
]

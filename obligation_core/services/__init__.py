"""Services package."""

from obligation_core.services.clock import Clock, FixedClock, SystemClock
from obligation_core.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ContainerStorageInterface,
    DuplicateError,
    InMemoryAuditStorage,
    InMemoryRepository,
    LiabilityStorageInterface,
    NotFoundError,
    Repository,
    StorageConnectionError,
    StorageError,
    TrackingStorageInterface,
)

__all__ = [
    # Clock
    "Clock",
    "FixedClock",
    "SystemClock",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ContainerStorageInterface",
    "DuplicateError",
    "InMemoryAuditStorage",
    "InMemoryRepository",
    "LiabilityStorageInterface",
    "NotFoundError",
    "Repository",
    "StorageConnectionError",
    "StorageError",
    "TrackingStorageInterface",
]

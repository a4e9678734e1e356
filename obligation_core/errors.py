"""
Domain Errors

DESIGN DECISION: Errors are typed by what the caller should DO about them.
- ValidationError: bad input, fix the input and call again
- ConfigurationError: the container itself is misconfigured, fix the container
- BatchPartialFailure: some containers in an unattended run failed

None of these are retried. The daily batch is safe to re-run, which is the
recovery path for anything that went wrong.

Storage-layer errors (NotFoundError and friends) live with the storage
interface.
"""

from typing import Optional


class CoreError(Exception):
    """Base exception for the obligation core."""
    pass


class ValidationError(CoreError, ValueError):
    """
    Input failed a business rule.

    Also a ValueError, so callers catching pydantic model errors
    (which are ValueErrors too) see both.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ConfigurationError(CoreError):
    """A container's configuration cannot support the requested operation."""

    def __init__(self, message: str, container_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.container_id = container_id


class BatchPartialFailure(CoreError):
    """
    Raised on demand by BatchResult.raise_for_errors().

    The batch itself never raises this - it collects errors and keeps going.
    """

    def __init__(self, errors: list[str]):
        super().__init__(f"{len(errors)} container(s) failed: " + "; ".join(errors))
        self.errors = errors

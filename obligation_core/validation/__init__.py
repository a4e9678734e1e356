"""Validation package."""

from obligation_core.validation.validator import CATEGORY_ID_PATTERN, TrackingValidator

__all__ = ["CATEGORY_ID_PATTERN", "TrackingValidator"]

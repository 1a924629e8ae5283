"""
Error types for the image database.

Lookups that find nothing are reported through return values, not
exceptions. These classes cover the failures a caller has to handle.
"""

from typing import Any, Dict, Optional


class ImageDbError(Exception):
    """
    Base exception for all image database errors.

    Carries a message plus a dictionary of structured context.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize error.

        Args:
            message: Error message
            details: Optional detailed error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class HashComputationError(ImageDbError):
    """Raised when an image cannot be read or hashed."""

    def __init__(self, message: str,
                 path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.path = path
        self.details.update({'path': path})


class TreeNotReadyError(ImageDbError):
    """
    Raised when a loaded tree is used before its functions are attached.

    Serialized trees do not carry their hash or distance functions, so the
    caller must set them again right after loading.
    """

    def __init__(self, message: str,
                 missing: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.missing = missing
        self.details.update({'missing': missing})


class ConfigError(ImageDbError):
    """Raised when configuration is invalid or cannot be read."""

    def __init__(self, message: str,
                 key: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.key = key
        self.details.update({'key': key})


class ActionError(ImageDbError):
    """Raised when an action is given input it cannot work with."""

    def __init__(self, message: str,
                 action: str = 'general',
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.action = action
        self.details.update({'action': action})

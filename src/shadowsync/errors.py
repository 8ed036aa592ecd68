"""
Error taxonomy for shadowsync.

- ConfigurationError: unknown kind or malformed configuration (fatal, raised
  before any work is attempted)
- ValidationError: malformed create/update payload (per record)
- NotFoundError: a stale ID was referenced (callers treat it as "nothing to do")
- RepositoryError: transport/storage failure (fatal to a reconciliation pass)
"""

from typing import Optional


class ShadowSyncError(Exception):
    """Base exception for shadowsync errors"""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class ConfigurationError(ShadowSyncError):
    """Raised for an unknown kind or an invalid configuration"""
    pass


class ValidationError(ShadowSyncError):
    """Raised when a record payload is malformed"""
    pass


class NotFoundError(ShadowSyncError):
    """Raised when a record ID does not exist"""
    pass


class RepositoryError(ShadowSyncError):
    """Raised when the underlying storage fails"""
    pass


__all__ = [
    "ShadowSyncError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "RepositoryError",
]

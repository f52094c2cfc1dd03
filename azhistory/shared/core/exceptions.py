from typing import Optional, Dict, Any


class AzureHistoryError(Exception):
    """Base exception for all azhistory errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class ConfigurationError(AzureHistoryError):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class AuthenticationError(AzureHistoryError):
    """Raised when the subscription session cannot be authenticated. Fatal to a run."""
    def __init__(self, message: str, code: str = "auth_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class InventoryListError(AzureHistoryError):
    """Raised when the resource inventory cannot be listed. Fatal to a run."""
    def __init__(self, message: str, code: str = "inventory_list_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class AuditQueryError(AzureHistoryError):
    """Raised when the activity log query for a single resource fails."""
    def __init__(self, message: str, code: str = "audit_query_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class MetadataWriteError(AzureHistoryError):
    """Raised when writing tags back onto a single resource fails."""
    def __init__(self, message: str, code: str = "metadata_write_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class MetadataWriteConflictError(MetadataWriteError):
    """Raised when a resource's tags changed between listing and write-back."""
    def __init__(self, message: str, code: str = "metadata_write_conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


FATAL_ERRORS = (AuthenticationError, InventoryListError, ConfigurationError)

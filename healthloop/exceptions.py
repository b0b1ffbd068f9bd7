"""
Standardized exception hierarchy for healthloop
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import redis

logger = logging.getLogger(__name__)


class HealthLoopError(Exception):
    """
    Base exception for all healthloop errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise HealthLoopError(
            message="Failed to persist progression",
            user_id="123456",
            operation="complete_quiz",
            context={"keys": ["xp", "level"]}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause,
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors
# ==========================================

class ValidationError(HealthLoopError):
    """
    Raised when caller input fails validation

    Example:
        raise ValidationError(
            message="Namespace must not be empty",
            field="namespace",
            value=""
        )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(HealthLoopError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Progression Errors
# ==========================================

class NotInitializedError(HealthLoopError):
    """Progression mutator called before the store was loaded"""

    def __init__(self, message: str = "Progression store used before load()", **kwargs):
        super().__init__(
            message=message,
            user_message="Your progress is still loading. Please try again in a moment.",
            **kwargs
        )


class PersistenceError(HealthLoopError):
    """Key-value persistence read or write failed"""

    def __init__(
        self,
        message: str,
        keys: Optional[list] = None,
        **kwargs
    ):
        self.keys = keys or []
        super().__init__(
            message=message,
            user_message="We couldn't save your progress. Please try again.",
            context={"keys": self.keys},
            **kwargs
        )


# ==========================================
# Synchronization Errors
# ==========================================

class SyncError(HealthLoopError):
    """
    Base class for remote document-store errors
    """
    pass


class DecodeError(SyncError):
    """A single remote document could not be decoded; it is skipped"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        document_id: Optional[str] = None,
        **kwargs
    ):
        self.path = path
        self.document_id = document_id
        super().__init__(
            message=message,
            user_message="Some items could not be displayed.",
            context={"path": path, "document_id": document_id},
            **kwargs
        )


class RemoteWriteError(SyncError):
    """add/update/remove did not reach the remote store"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        document_id: Optional[str] = None,
        **kwargs
    ):
        self.path = path
        self.document_id = document_id
        super().__init__(
            message=message,
            user_message="We couldn't sync your change. Please try again.",
            context={"path": path, "document_id": document_id},
            **kwargs
        )


class SubscriptionError(SyncError):
    """Opening a live subscription failed"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        self.path = path
        super().__init__(
            message=message,
            user_message="Live updates are unavailable right now.",
            context={"path": path},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> HealthLoopError:
    """
    Wrap external exceptions (redis, store backends) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate HealthLoopError subclass

    Example:
        try:
            client.mset(values)
        except redis.RedisError as e:
            raise wrap_external_exception(e, operation="persist_progression")
    """
    if isinstance(error, HealthLoopError):
        return error

    if isinstance(error, redis.RedisError):
        return PersistenceError(
            message=f"Persistence backend failed: {str(error)}",
            keys=(context or {}).get("keys"),
            user_id=user_id,
            operation=operation,
            cause=error
        )

    return HealthLoopError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )

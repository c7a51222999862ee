"""
Standardized exception hierarchy for gradequest
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

import psycopg
import redis

logger = logging.getLogger(__name__)


class GradeQuestError(Exception):
    """
    Base exception for all gradequest errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise GradeQuestError(
            message="Failed to store weekly selection",
            user_id="user-123",
            operation="write_selection_if_absent",
            context={"week_start": "2024-01-15"}
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
# Validation Errors (Caller Input)
# ==========================================

class ValidationError(GradeQuestError):
    """
    Raised when caller input fails validation

    Examples:
    - Negative wager winnings
    - Malformed week marker

    Example:
        raise ValidationError(
            message="Winnings must not be negative",
            field="amount",
            value=-5,
            user_id="user-123"
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
# Catalog & Selection Errors
# ==========================================

class CatalogEmptyError(GradeQuestError):
    """
    A difficulty tier has no achievement definitions.

    Selection degrades that tier and keeps the others.
    """

    log_level = logging.WARNING

    def __init__(self, tier: str, **kwargs):
        self.tier = tier
        super().__init__(
            message=f"No achievements defined for tier '{tier}'",
            user_message="Some weekly achievements are unavailable right now.",
            context={"tier": tier},
            **kwargs
        )


class ConcurrentDrawConflict(GradeQuestError):
    """
    Two callers drew a selection for the same user and week.

    Resolved by the conditional write (first writer wins); never raised to callers.
    """

    log_level = logging.INFO

    def __init__(self, week_start: str, **kwargs):
        self.week_start = week_start
        super().__init__(
            message=f"Selection for week {week_start} was written by a concurrent caller",
            context={"week_start": week_start},
            **kwargs
        )


class MetricsUnavailableError(GradeQuestError):
    """
    A metrics source timed out or failed.

    Achievements depending on the source degrade to progress 0.
    """

    log_level = logging.WARNING

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        self.source = source
        super().__init__(
            message=message,
            user_message="Some progress data is temporarily unavailable.",
            context={"source": source},
            **kwargs
        )


# ==========================================
# Persistence Errors
# ==========================================

class DatabaseError(GradeQuestError):
    """
    Base class for persistence-related errors
    """
    retryable = False


class PersistenceUnavailableError(DatabaseError):
    """Storage read or write failed; callers decide on retry/backoff"""

    retryable = True

    def __init__(self, message: str = "Persistence layer unavailable", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble reaching storage. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context={"query": query},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(GradeQuestError):
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
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> GradeQuestError:
    """
    Wrap external exceptions (psycopg, redis, timeouts) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate GradeQuestError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="read_selection",
                user_id="user-123",
            )
    """
    if isinstance(error, GradeQuestError):
        return error

    # Connection-level failures are retryable
    if isinstance(error, (psycopg.OperationalError, redis.ConnectionError, redis.TimeoutError)):
        return PersistenceUnavailableError(
            message=f"{operation} failed: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {error}",
            user_id=user_id,
            operation=operation,
            cause=error
        )
    elif isinstance(error, TimeoutError):
        return MetricsUnavailableError(
            message=f"{operation} timed out",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # Generic fallback
    else:
        return GradeQuestError(
            message=f"{operation} failed: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

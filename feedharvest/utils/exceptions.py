"""
FeedHarvest Custom Exceptions
=============================

Exception hierarchy for the crawler with error codes, context information
and short operator-facing messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Feed ingestion errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_HTTP_STATUS = "F007"

    # Content extraction errors (P001-P099)
    CONTENT_INVALID = "P001"
    CONTENT_EXTRACTION_FAILED = "P003"

    # Classifier errors (A001-A099)
    AI_API_ERROR = "A001"
    AI_INVALID_RESPONSE = "A003"
    AI_TIMEOUT = "A004"
    AI_PROVIDER_UNAVAILABLE = "A008"

    # CMS errors (M001-M099)
    CMS_REQUEST_FAILED = "M001"
    CMS_UNEXPECTED_STATUS = "M002"
    CMS_INVALID_RESPONSE = "M003"
    CMS_NETWORK_ERROR = "M004"
    QUEUE_POLL_FAILED = "M010"
    QUEUE_ACK_FAILED = "M011"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"

    # System errors (S001-S099)
    SYSTEM_PERMISSION_DENIED = "S002"
    SYSTEM_MEMORY_ERROR = "S004"


class FeedHarvestError(Exception):
    """Base exception for all FeedHarvest errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedHarvest error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Operator-friendly error message
            recoverable: Whether a later cycle may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(FeedHarvestError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class FeedError(FeedHarvestError):
    """Feed ingestion and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_FETCH_TIMEOUT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class FeedFetchError(FeedError):
    """Feed download errors (transport failure or non-200 status)."""

    pass


class FeedParseError(FeedError):
    """Feed document could not be parsed as RSS or Atom."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_PARSE_ERROR)
        kwargs.setdefault("recoverable", False)
        super().__init__(message, feed_url=feed_url, **kwargs)


class FeedNotFoundError(FeedError):
    """Requested feed definition does not exist in the CMS."""

    def __init__(self, feed_id: str, **kwargs):
        context = kwargs.pop("context", {})
        context["feed_id"] = feed_id
        super().__init__(
            f"Feed {feed_id} not found",
            error_code=ErrorCode.FEED_NOT_FOUND,
            context=context,
            recoverable=False,
            **kwargs,
        )
        self.feed_id = feed_id


class ExtractionError(FeedHarvestError):
    """Article page fetch or content extraction errors."""

    def __init__(self, message: str, page_url: Optional[str] = None, **kwargs):
        """Initialize extraction error.

        Args:
            message: Error message
            page_url: Article URL being extracted
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if page_url:
            context["page_url"] = page_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_EXTRACTION_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Content extraction failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class CMSError(FeedHarvestError):
    """CMS API errors."""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status: Optional[int] = None,
        **kwargs,
    ):
        """Initialize CMS error.

        Args:
            message: Error message
            endpoint: CMS endpoint that failed
            status: HTTP status returned, if any
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if endpoint:
            context["endpoint"] = endpoint
        if status is not None:
            context["status"] = status

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CMS_REQUEST_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "CMS request failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )
        self.status = status


class QueueError(CMSError):
    """Priority request queue poll/ack errors."""

    pass


class ClassifierError(FeedHarvestError):
    """Primary-reporting classifier errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        **kwargs,
    ):
        """Initialize classifier error.

        Args:
            message: Error message
            provider: Classifier provider name (e.g., 'openai')
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if provider:
            context["ai_provider"] = provider

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.AI_API_ERROR),
            context=context,
            user_message=kwargs.get(
                "user_message", "Content classification temporarily unavailable"
            ),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ValidationError(FeedHarvestError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for FeedHarvestError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> FeedHarvestError:
    """Convert generic exceptions to FeedHarvest exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        FeedHarvest exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, FeedHarvestError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = FeedHarvestError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )

    elif isinstance(exception, PermissionError):
        error = FeedHarvestError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, MemoryError):
        error = FeedHarvestError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=True,
        )

    else:
        error = FeedHarvestError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: FeedHarvestError) -> bool:
    """Check if an error is worth retrying on a later cycle.

    Args:
        exception: FeedHarvest exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FEED_NETWORK_ERROR,
        ErrorCode.FEED_FETCH_TIMEOUT,
        ErrorCode.AI_TIMEOUT,
        ErrorCode.CMS_NETWORK_ERROR,
        ErrorCode.QUEUE_POLL_FAILED,
    }

    return exception.error_code in retryable_codes

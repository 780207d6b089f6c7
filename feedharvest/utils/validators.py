"""
FeedHarvest Input Validators
============================

URL validation helpers shared by configuration, feed fetching and
content extraction.
"""

from urllib.parse import urlparse, urlunparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and normalization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    @classmethod
    def validate_http_url(cls, url: str, field_name: str = "url") -> str:
        """Validate an absolute http(s) URL.

        Args:
            url: URL to validate
            field_name: Name reported in the validation error

        Returns:
            URL with surrounding whitespace removed and scheme/host lowercased

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name=field_name,
            )

        url = url.strip()
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name=field_name,
            )

        return urlunparse(
            parsed._replace(scheme=parsed.scheme.lower(), netloc=parsed.netloc.lower())
        )

    @classmethod
    def normalize_base_url(cls, url: str, field_name: str = "base_url") -> str:
        """Validate a service base URL and strip any trailing slash."""
        return cls.validate_http_url(url, field_name=field_name).rstrip("/")

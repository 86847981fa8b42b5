"""
Custom exceptions for the Burnmail application.

This module defines all custom exceptions used throughout the application
for better error handling and debugging.
"""

from typing import Any, Optional


class BurnmailError(Exception):
    """Base exception for all Burnmail errors."""

    def __init__(self, message: str,
                 details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


# Configuration Exceptions
class ConfigurationError(BurnmailError):
    """Base exception for configuration-related errors."""


class MissingConfigError(ConfigurationError):
    """Raised when a required configuration value is missing."""

    def __init__(
        self, config_key: str, details: Optional[dict[str, Any]] = None
    ) -> None:
        """
        Initialize missing config error.

        Args:
            config_key: The missing configuration key.
            details: Optional dictionary with additional error details.
        """
        super().__init__(
            f"Missing required configuration: '{config_key}'", details)
        self.config_key = config_key


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(
        self,
        config_key: str,
        value: Any,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize invalid config error.

        Args:
            config_key: The configuration key with invalid value.
            value: The invalid value.
            reason: Optional reason why the value is invalid.
            details: Optional dictionary with additional error details.
        """
        message = f"Invalid configuration value for '{config_key}': {value}"
        if reason:
            message += f" - {reason}"
        super().__init__(message, details)
        self.config_key = config_key
        self.value = value
        self.reason = reason


# Mailbox API Exceptions
class APIError(BurnmailError):
    """Raised when the mailbox API answers with an unexpected status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize API error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code returned by the API, if any.
            details: Optional dictionary with additional error details.
        """
        if status_code is not None:
            message = f"{message}: status {status_code}"
        super().__init__(message, details)
        self.status_code = status_code


class RateLimitError(APIError):
    """Raised when the API rejects a request with HTTP 429."""

    def __init__(
        self,
        operation: str,
        retry_after: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"Rate limit exceeded while trying to {operation}",
                         429, details)
        self.operation = operation
        self.retry_after = retry_after


class AuthenticationError(APIError):
    """Raised when the API rejects the bearer token or credentials."""


class NotFoundError(APIError):
    """Raised when the requested resource does not exist."""


class NetworkError(BurnmailError):
    """Raised when the API cannot be reached."""


class RequestTimeoutError(NetworkError):
    """Raised when a request to the API times out."""

    def __init__(
        self, operation: str, timeout: float,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            f"Timed out after {timeout:g}s while trying to {operation}", details)
        self.operation = operation
        self.timeout = timeout


# Retry Exceptions
class RetryExhaustedError(BurnmailError):
    """Raised when every attempt allowed by the retry policy failed."""

    def __init__(
        self,
        attempts: int,
        last_error: Exception,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize retry exhausted error.

        Args:
            attempts: Number of attempts that were made.
            last_error: The error raised by the final attempt.
            details: Optional dictionary with additional error details.
        """
        super().__init__(f"Gave up after {attempts} attempts: {last_error}",
                         details)
        self.attempts = attempts
        self.last_error = last_error


class OperationCancelledError(BurnmailError):
    """Raised when a pending operation is cancelled before it completes."""

    def __init__(self, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__("Operation cancelled", details)


# Storage Exceptions
class StorageError(BurnmailError):
    """Base exception for local storage errors."""


class CredentialsError(StorageError):
    """Raised when stored account credentials cannot be read or written."""


class DecryptionError(CredentialsError):
    """Raised when the credentials file cannot be decrypted."""


class CacheError(StorageError):
    """Raised when the message cache snapshot is unusable."""


class AccountNotFoundError(StorageError):
    """Raised when no account has been generated yet."""

    def __init__(self, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            "No account found. Generate one first with 'burnmail g'", details)


# Desktop Integration Exceptions
class DesktopIntegrationError(BurnmailError):
    """Raised when the clipboard or browser cannot be used."""

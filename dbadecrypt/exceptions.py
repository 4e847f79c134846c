"""
Custom Exception Hierarchy for dbadecrypt

This module provides the exception hierarchy used across the decryptor,
carrying error codes, context and recovery hints so that per-object failures
can be reported without aborting a whole batch.
"""

from typing import Any, Dict, Optional


class DbaDecryptError(Exception):
    """
    Base exception class for all dbadecrypt errors.

    Provides structured error information including context, error codes,
    and optional recovery suggestions.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recovery_suggestion: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            error_code: Optional error code for programmatic handling
            context: Optional dictionary with error context
            cause: Optional underlying exception that caused this error
            recovery_suggestion: Optional suggestion for error recovery
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.recovery_suggestion = recovery_suggestion

    def __str__(self) -> str:
        """Return a formatted error message with context."""
        result = self.message
        if self.error_code:
            result = f"[{self.error_code}] {result}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            result += f" (context: {context_str})"
        if self.cause:
            result += f" (caused by: {self.cause})"
        if self.recovery_suggestion:
            result += f" (suggestion: {self.recovery_suggestion})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "recovery_suggestion": self.recovery_suggestion,
        }


# Decryption-related exceptions
class DecryptionError(DbaDecryptError):
    """Base class for errors raised while decrypting a single object."""

    pass


class InvalidDescriptorError(DecryptionError):
    """Raised when an object descriptor is missing required fields."""

    def __init__(
        self, message: str, object_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if object_name:
            context["object_name"] = object_name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_DESCRIPTOR")
        super().__init__(message, **kwargs)


class UnsupportedObjectKindError(DecryptionError):
    """Raised when no known-plaintext template exists for an object kind."""

    def __init__(
        self, message: str, object_kind: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if object_kind:
            context["object_kind"] = object_kind
        kwargs["context"] = context
        kwargs.setdefault("error_code", "UNSUPPORTED_OBJECT_KIND")
        super().__init__(message, **kwargs)


class KnownSecretAcquisitionError(DecryptionError):
    """Raised when the engine cannot produce the known-plaintext ciphertext."""

    def __init__(
        self, message: str, object_name: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if object_name:
            context["object_name"] = object_name
        kwargs["context"] = context
        kwargs.setdefault("error_code", "KNOWN_SECRET_ACQUISITION_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check ALTER permission on the object and that the DAC is reachable",
        )
        super().__init__(message, **kwargs)


# SQL Server-related exceptions
class SqlServerError(DbaDecryptError):
    """Base class for SQL Server-related errors."""

    pass


class SqlServerConnectionError(SqlServerError):
    """Raised when a SQL Server connection cannot be established."""

    def __init__(
        self, message: str, server: Optional[str] = None, **kwargs: Any
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if server:
            # Never carry credentials, only the instance name
            context["server"] = server.split(";")[0]
        kwargs["context"] = context
        kwargs.setdefault("error_code", "SQLSERVER_CONNECTION_FAILED")
        kwargs.setdefault(
            "recovery_suggestion",
            "Check the instance name, credentials and that remote admin connections are enabled",
        )
        super().__init__(message, **kwargs)


class SqlServerQueryError(SqlServerError):
    """Raised when a T-SQL statement fails."""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        parameters: Optional[tuple[Any, ...]] = None,
        **kwargs: Any,
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if query:
            # Truncate long queries for readability
            context["query"] = query[:200] + "..." if len(query) > 200 else query
        if parameters:
            context["parameter_count"] = len(parameters)
        kwargs["context"] = context
        kwargs.setdefault("error_code", "SQLSERVER_QUERY_FAILED")
        super().__init__(message, **kwargs)


# Configuration-related exceptions
class ConfigurationError(DbaDecryptError):
    """Base class for configuration-related errors."""

    pass


class InvalidConfigurationError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs: Any,
    ) -> None:
        context = dict(kwargs.get("context") or {})
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = str(config_value)
        kwargs["context"] = context
        kwargs.setdefault("error_code", "INVALID_CONFIGURATION")
        super().__init__(message, **kwargs)


class ExportError(DbaDecryptError):
    """Raised when a decrypted definition cannot be written to disk."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        context = dict(kwargs.get("context") or {})
        if path:
            context["path"] = path
        kwargs["context"] = context
        kwargs.setdefault("error_code", "EXPORT_FAILED")
        super().__init__(message, **kwargs)


def wrap_sql_exception(
    exc: Exception, context: Optional[Dict[str, Any]] = None
) -> SqlServerError:
    """
    Wrap a raw driver exception in our custom exception hierarchy.

    Args:
        exc: The original exception
        context: Optional context information

    Returns:
        SqlServerError: Wrapped exception with enhanced context
    """
    if isinstance(exc, SqlServerError):
        return exc

    error_message = str(exc)
    lowered = error_message.lower()

    # SQLSTATE 08xxx is the connection exception class
    if (
        "08001" in error_message
        or "08s01" in lowered
        or "login failed" in lowered
        or "connection" in lowered
        or "timeout" in lowered
    ):
        return SqlServerConnectionError(
            f"SQL Server connection failed: {error_message}", context=context, cause=exc
        )
    elif "syntax" in lowered or "42000" in error_message:
        return SqlServerQueryError(
            f"SQL Server statement failed: {error_message}", context=context, cause=exc
        )
    else:
        return SqlServerError(
            f"SQL Server operation failed: {error_message}", context=context, cause=exc
        )

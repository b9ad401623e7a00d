"""
Error handling for dep-bumper.

Defines the exception taxonomy raised by the resolution and patch core, and a
centralized handler that logs non-fatal problems (isolated per-dependency
failures, skipped files) with sanitized, structured context.
"""

import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlparse


class DepBumperError(Exception):
    """Base class for all dep-bumper errors."""


class RegistryError(DepBumperError):
    """A registry could not be queried for one dependency."""

    def __init__(self, message: str, package_name: Optional[str] = None):
        super().__init__(message)
        self.package_name = package_name


class RegistryNotFoundError(RegistryError):
    """The registry has no metadata for the requested package."""


class MalformedRegistryResponseError(RegistryError):
    """The registry answered with JSON that does not match the expected shape."""


class ConflictingVersionsError(DepBumperError):
    """Occurrences of one package disagree on the target version."""

    def __init__(self, name: str, targets: Sequence[str]):
        self.name = name
        self.targets = list(targets)
        super().__init__(
            f"Multiple target versions are specified for {name}: "
            + ", ".join(self.targets)
        )


class MalformedSpanError(DepBumperError):
    """A recorded span no longer matches the text it is applied to."""


class ImportMapError(DepBumperError):
    """An import map could not be read or parsed."""


class VcsError(DepBumperError):
    """A version-control command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed ({returncode}): {' '.join(self.command)}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class HookError(DepBumperError):
    """A pre- or post-commit hook failed."""


class ErrorLevel(Enum):
    """Error severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    """Error categories for better classification."""

    PARSING = "PARSING"
    NETWORK = "NETWORK"
    REGISTRY = "REGISTRY"
    VALIDATION = "VALIDATION"
    CONFIGURATION = "CONFIGURATION"
    FILESYSTEM = "FILESYSTEM"
    VCS = "VCS"


@dataclass
class ErrorContext:
    """Structured error context information."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None
    traceback_info: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging."""
        return {
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "module": self.module,
            "function": self.function,
            "details": self.details,
            "exception_type": type(self.exception).__name__ if self.exception else None,
            "exception_message": str(self.exception) if self.exception else None,
            "traceback": self.traceback_info,
            "suggestions": self.suggestions,
        }


# Registry tokens may end up in URLs or messages
_SENSITIVE_PATTERNS = [
    (r'token["\s]*[:=]["\s]*([a-zA-Z0-9_\-+=/.]{8,})', 'token="[REDACTED]"'),
    (r"(https?://[^@\s/]+:)[^@\s]+@", r"\1[REDACTED]@"),
    (r"Authorization:\s*\w+\s+([^\s]+)", "Authorization: [REDACTED]"),
    (r"_authToken=([^\s]+)", "_authToken=[REDACTED]"),
]


class SecureLogger:
    """Logger that sanitizes sensitive information."""

    def __init__(self, name: str, level: int = logging.WARNING):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _sanitize_message(self, message: str) -> str:
        sanitized = message
        for pattern, replacement in _SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def _sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Sanitize dictionary values to remove sensitive info."""
        if not isinstance(data, dict):
            return data

        sanitized = {}
        sensitive_keys = {"token", "password", "secret", "credential", "auth"}

        for key, value in data.items():
            if any(sensitive_key in key.lower() for sensitive_key in sensitive_keys):
                sanitized[key] = "[REDACTED]"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_dict(value)
            elif isinstance(value, str):
                sanitized[key] = self._sanitize_message(value)
            else:
                sanitized[key] = value

        return sanitized

    def log_error_context(self, context: ErrorContext) -> None:
        """
        Log error context with appropriate level.

        Args:
            context: Error context to log
        """
        log_data = {
            "category": context.category.value,
            "module": context.module,
            "function": context.function,
            "details": self._sanitize_dict(context.details),
        }

        if context.exception:
            log_data["exception"] = type(context.exception).__name__

        if context.suggestions:
            log_data["suggestions"] = context.suggestions

        log_message = f"{self._sanitize_message(context.message)} | {log_data}"
        level = getattr(logging, context.level.value)
        self.logger.log(level, log_message)


ErrorCallback = Callable[[ErrorContext], None]


class ErrorHandler:
    """
    Centralized handler for non-fatal errors.

    Fatal errors are raised as exceptions; everything that is isolated (one
    dependency failing to resolve, an unreadable module) goes through here so
    callers can observe it via callbacks and statistics.
    """

    def __init__(
        self,
        logger_name: str = "dep_bumper",
        log_level: int = logging.WARNING,
        enable_callbacks: bool = True,
    ):
        self.logger = SecureLogger(logger_name, log_level)
        self.enable_callbacks = enable_callbacks
        self.error_callbacks: Dict[ErrorCategory, List[ErrorCallback]] = {}
        self.global_callbacks: List[ErrorCallback] = []
        self.error_stats: Dict[str, int] = {}

    def register_callback(
        self, callback: ErrorCallback, category: Optional[ErrorCategory] = None
    ) -> None:
        """
        Register error callback.

        Args:
            callback: Function to call on errors
            category: Error category to filter, None for all errors
        """
        if not self.enable_callbacks:
            return

        if category is None:
            self.global_callbacks.append(callback)
        else:
            self.error_callbacks.setdefault(category, []).append(callback)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorContext:
        """
        Handle an error with structured logging and callbacks.

        Returns:
            ErrorContext: The created error context
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=(
                "".join(traceback.format_exception(exception)) if exception else None
            ),
            suggestions=suggestions or [],
        )

        stat_key = f"{category.value}_{level.value}"
        self.error_stats[stat_key] = self.error_stats.get(stat_key, 0) + 1

        self.logger.log_error_context(context)

        if self.enable_callbacks:
            for callback in self.error_callbacks.get(category, []):
                try:
                    callback(context)
                except Exception as cb_error:
                    # Callback errors must not break the main flow
                    self.logger.logger.error(f"Error in callback: {cb_error}")

            for callback in self.global_callbacks:
                try:
                    callback(context)
                except Exception as cb_error:
                    self.logger.logger.error(f"Error in global callback: {cb_error}")

        return context

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle warning level error."""
        return self.handle_error(
            ErrorLevel.WARNING, category, message, module, function, **kwargs
        )

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle error level error."""
        return self.handle_error(
            ErrorLevel.ERROR, category, message, module, function, **kwargs
        )

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        return self.error_stats.copy()

    def reset_stats(self) -> None:
        """Reset error statistics."""
        self.error_stats.clear()


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING,
    enable_callbacks: bool = True,
    logger_name: str = "dep_bumper",
) -> ErrorHandler:
    """
    Setup global error handling configuration.

    Returns:
        ErrorHandler: Configured error handler
    """
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level, enable_callbacks)
    return _global_error_handler


def sanitize_url(url: str) -> str:
    """Strip credentials, query and fragment from a URL before logging it."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.hostname:
        return url
    sanitized = f"{parsed.scheme}://{parsed.hostname}"
    if parsed.port:
        sanitized += f":{parsed.port}"
    return sanitized + parsed.path


def log_registry_error(
    message: str,
    module: str,
    function: str,
    package_name: Optional[str] = None,
    url: Optional[str] = None,
    exception: Optional[Exception] = None,
) -> None:
    """
    Convenience function for logging an isolated registry failure.

    Args:
        message: Error message
        module: Module name
        function: Function name
        package_name: Package whose resolution failed
        url: URL that failed (will be sanitized)
        exception: Optional exception
    """
    details: Dict[str, Any] = {}
    if package_name is not None:
        details["package_name"] = package_name
    if url is not None:
        details["url"] = sanitize_url(url)

    get_error_handler().warning(
        ErrorCategory.REGISTRY,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Check network connectivity",
            "Verify the registry URL is correct",
        ],
    )


def log_parsing_error(
    message: str,
    module: str,
    function: str,
    file_path: Optional[str] = None,
    exception: Optional[Exception] = None,
) -> None:
    """Convenience function for logging a module that could not be scanned."""
    details: Dict[str, Any] = {}
    if file_path is not None:
        details["file_path"] = file_path

    get_error_handler().warning(
        ErrorCategory.PARSING,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=["Check file format and encoding"],
    )

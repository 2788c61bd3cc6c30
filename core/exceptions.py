"""
Custom exceptions for REZoning Explorer.

This module defines application-specific exceptions that provide
clear error messages and context for different types of failures.
None of them is fatal to a session: callers recover by falling back to
defaults, omitting a query fragment, or surfacing a failed state.
"""

from typing import Any, Optional


class RezoningError(Exception):
    """Base exception for all REZoning Explorer errors."""

    def __init__(self, message: str, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Context: {context_str})"
        return self.message


class ConfigurationError(RezoningError):
    """Raised when there are issues with configuration loading or validation."""

    def __init__(self, message: str, config_file: Optional[str] = None, field: Optional[str] = None):
        context = {}
        if config_file:
            context['config_file'] = config_file
        if field:
            context['field'] = field
        super().__init__(message, context)


class ValidationError(RezoningError):
    """Raised when a hydrated or encoded value falls outside its allowed domain."""

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        context = {}
        if field:
            context['field'] = field
        if value is not None:
            context['value'] = str(value)
        super().__init__(message, context)
        self.field = field
        self.value = value


class UnsupportedFilterKind(RezoningError):
    """Raised when a filter kind has no backend encoding."""

    def __init__(self, message: str, filter_id: Optional[str] = None, kind: Optional[str] = None):
        context = {}
        if filter_id:
            context['filter_id'] = filter_id
        if kind:
            context['kind'] = kind
        super().__init__(message, context)
        self.filter_id = filter_id
        self.kind = kind


class NetworkError(RezoningError):
    """Raised on transport failures and non-2xx API responses."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        context = {}
        if status_code is not None:
            context['status_code'] = status_code
        if url:
            context['url'] = url
        super().__init__(message, context)
        self.status_code = status_code
        self.url = url


class PreconditionError(RezoningError):
    """Raised when an operation is requested in a state that does not allow it."""

    def __init__(self, message: str, operation: Optional[str] = None):
        context = {}
        if operation:
            context['operation'] = operation
        super().__init__(message, context)
        self.operation = operation

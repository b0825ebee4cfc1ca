"""Custom exception types for refman operations."""

from __future__ import annotations

import enum
from typing import Any


class RefmanError(Exception):
    """Base exception for all refman operations."""


class FileOperationError(RefmanError):
    """Raised when file I/O operations fail."""


class ConfigurationError(RefmanError):
    """Raised when configuration is missing or invalid."""


class AIErrorKind(enum.Enum):
    """Machine-readable classification of AI provider failures."""

    INVALID_API_KEY = "INVALID_API_KEY"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    API_ERROR = "API_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    RATE_LIMIT = "RATE_LIMIT"
    UNKNOWN = "UNKNOWN"


class AIError(RefmanError):
    """Raised when a request to the AI provider fails.

    Attributes:
        kind: Classification of the failure
        message: Human-readable description
        suggestion: Remediation hint shown to the user
        raw_response: Provider response body, when one was received
    """

    def __init__(
        self,
        kind: AIErrorKind,
        message: str,
        suggestion: str,
        raw_response: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.suggestion = suggestion
        self.raw_response = raw_response

    def user_message(self) -> str:
        return f"{self.message}\nSuggestion: {self.suggestion}"

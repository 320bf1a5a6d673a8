"""
Base exception for errors raised by storefront services.

Each subclass declares a stable machine readable ``code`` and the HTTP
status it maps to. The API layer renders them into the error envelope.
"""

from typing import Any


class StorefrontError(Exception):
    """Base exception for service layer errors."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

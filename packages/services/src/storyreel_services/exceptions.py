"""Errors raised by the scene services.

Each class carries the machine-readable ``code`` that the API puts in its error
body. The CLI prints ``message`` and exits non-zero.
"""

from typing import Any, Optional


class ServiceError(Exception):
    """Base class for every failure a scene operation reports to its caller."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(ServiceError):
    """A workspace, project, document or scene id did not resolve."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: str):
        self.resource_type = kind
        self.resource_id = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class ValidationError(ServiceError):
    """Rejected input: blank names, missing source text, unconfirmed clears."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class BusyError(ServiceError):
    """An operation of the same kind is already running on the container."""

    code = "BUSY"

    def __init__(self, operation: str, container_id: str):
        self.operation = operation
        self.container_id = container_id
        super().__init__(f"A {operation} operation is already in progress for '{container_id}'")


class GenerationError(ServiceError):
    """The text backend failed or refused to answer."""

    code = "GENERATION_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ResponseFormatError(GenerationError):
    """Generated text could not be parsed into any record.

    Distinct from a response that legitimately contains no records.
    """

    code = "RESPONSE_FORMAT_ERROR"

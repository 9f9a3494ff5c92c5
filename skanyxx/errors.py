"""Exceptions raised by the KAgent/khook client and the investigation workflow."""

from typing import Optional


class SkanyxxError(Exception):
    """Base exception for client and workflow errors."""

    pass


class TransportError(SkanyxxError):
    """Raised when a backend cannot be reached (DNS, refused connection, bridge fault)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ProtocolError(SkanyxxError):
    """Raised on a non-2xx response or a malformed top-level response."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DecodeError(SkanyxxError):
    """Raised for a single malformed stream frame. Never fatal to the stream."""

    def __init__(self, message: str, payload: str = ""):
        super().__init__(message)
        self.payload = payload


class NotFoundError(SkanyxxError):
    """Raised when a session or agent is absent, or a stream produced no agent message."""

    pass


class StateError(SkanyxxError):
    """Raised when an illegal investigation transition is attempted."""

    pass

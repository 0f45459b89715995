"""Errors delivered to a stream's completion callback."""

from __future__ import annotations


class StreamError(RuntimeError):
    """Base for errors that terminate a stream session."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code}, message={self.message!r})"


class TransportError(StreamError):
    """Connection failure, timeout or cancellation of the HTTP exchange."""

    def __init__(self, message: str) -> None:
        super().__init__(0, message)


class ServerError(StreamError):
    """In-stream `error` event or a non-2xx HTTP status."""

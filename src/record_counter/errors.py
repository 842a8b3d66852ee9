from __future__ import annotations


class RecordCounterError(Exception):
    """Base class for errors raised by the counting engine."""


class TransportError(RecordCounterError):
    """The remote service could not be reached or answered with an error."""

    def __init__(
        self, message: str, *, path: str = "", status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.path = path
        self.status_code = status_code


class MalformedQueryError(RecordCounterError):
    """A stored query document has no rewritable <fetch> root element."""


class RepeatedCursorError(RecordCounterError):
    """The server kept returning the same continuation link."""

    def __init__(self, cursor: str, repeats: int) -> None:
        super().__init__(f"Continuation link repeated {repeats} times: {cursor}")
        self.cursor = cursor
        self.repeats = repeats


class BatchCountError(RecordCounterError):
    """The batched aggregate count failed for every member of the batch."""

    def __init__(self, logical_names: list[str], cause: Exception) -> None:
        super().__init__(f"Batch count failed for {len(logical_names)} collections: {cause}")
        self.logical_names = logical_names
        self.cause = cause

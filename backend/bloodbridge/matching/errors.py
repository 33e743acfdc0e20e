from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching failures surfaced to callers."""


class RequestNotFoundError(MatchingError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"Blood request {request_id} not found")
        self.request_id = request_id


class HistoryUnavailableError(MatchingError):
    """The response-history store could not be read."""

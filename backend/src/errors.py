from __future__ import annotations

from typing import Optional


class ShuffoodError(RuntimeError):
    """Base class for every failure the core reports to its callers."""


class ConfigurationError(ShuffoodError):
    pass


class UpstreamError(ShuffoodError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NetworkError(ShuffoodError):
    pass


class EmptyCandidateSet(ShuffoodError):
    def __init__(self, message: str = "No restaurants to shuffle") -> None:
        super().__init__(message)

"""
Failure taxonomy for the upstream side of the sync engine.
Everything deriving from TransientUpstreamError is retried by the synchronizer;
storage failures stay as SQLAlchemy errors and propagate.
"""

SNIPPET_LENGTH = 500


class UpstreamError(Exception):
    """Base class for failures talking to the history provider."""


class TransientUpstreamError(UpstreamError):
    """A failure that is expected to clear up if the same request is retried."""


class UpstreamRequestError(TransientUpstreamError):
    pass


class UpstreamStatusError(TransientUpstreamError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.snippet = body[:SNIPPET_LENGTH]
        super().__init__(f"Upstream returned HTTP {status_code}")


class RateLimitedError(TransientUpstreamError):
    pass


class DecodeError(TransientUpstreamError):
    def __init__(self, message: str, payload: str = ""):
        self.snippet = payload[:SNIPPET_LENGTH]
        super().__init__(message)

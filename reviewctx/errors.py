"""
Exception types raised by reviewctx.
"""


class ReviewCtxError(Exception):
    """Base class for all reviewctx errors."""


class ConfigurationError(ReviewCtxError):
    """Missing credentials or an invalid setting, raised at construction time."""


class TransientProviderError(ReviewCtxError):
    """A single embedding or content-fetch call failed.

    Callers recover by skipping the affected chunk or file.
    """


class NotInitializedError(ReviewCtxError):
    """A search was attempted before the index reached the initialized state."""

    def __init__(self, scope: str, state: str):
        self.scope = scope
        self.state = state
        super().__init__(f"Index for {scope} is not initialized (state: {state})")


class StorageError(ReviewCtxError):
    """A vector store operation failed; fatal only for the operation in flight."""


class IndexingCancelled(ReviewCtxError):
    """An indexing run observed a cancellation request."""

"""Exception hierarchy for the indexer."""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigError(IndexerError):
    """Invalid or incomplete configuration. Fatal at startup."""


class TransientError(IndexerError):
    """Retryable I/O failure. The block is retried, the cursor holds."""


class ChainReaderError(TransientError):
    """Chain RPC unreachable, timed out, or returned a malformed payload."""


class StorageError(TransientError):
    """The persistence sink could not store a record."""


class IndexerHaltedError(IndexerError):
    """A block kept failing after the retry budget was spent."""

    def __init__(self, height: int, attempts: int, cause: BaseException | None = None) -> None:
        self.height = height
        self.attempts = attempts
        self.cause = cause
        msg = f"block {height} failed after {attempts} attempts"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)

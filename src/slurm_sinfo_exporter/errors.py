"""Exceptions raised while collecting node inventory.

Every failure in a collection cycle is a CollectionError subclass so the
collector can count and log it without knowing which stage failed.
"""


class CollectionError(Exception):
    """Base class for errors that abort a single collection cycle."""


class FetchFailure(CollectionError):
    """Raised when the data source is unreachable or fails to respond."""


class SourceError(CollectionError):
    """Raised when the data source responds but reports its own errors."""


class MalformedPayload(CollectionError):
    """Raised when a payload cannot be decoded against the expected schema."""

"""Exception hierarchy shared by the indexing and ranking layers."""

from __future__ import annotations


class KVSearchError(Exception):
    """Base class for every error raised by kvsearch itself."""


class ConfigurationError(KVSearchError, ValueError):
    """Invalid index configuration or search request. Never retried."""


class AttributeNotFoundError(ConfigurationError):
    """A search referenced an attribute that is not configured for indexing."""

    def __init__(self, attribute: str) -> None:
        super().__init__(f"Attribute not found: {attribute}")
        self.attribute = attribute


class MissingKeyError(ConfigurationError):
    """A required key definition or key value is missing."""


class AnalysisError(KVSearchError):
    """A tokenizer or filter failed while analyzing a document attribute.

    Indexing treats this as fatal for the enclosing batch: a document is
    either indexed with its complete token set or not at all.
    """

    def __init__(self, attribute: str, message: str) -> None:
        super().__init__(f"Failed to analyze attribute '{attribute}': {message}")
        self.attribute = attribute


class UnknownEventError(KVSearchError, ValueError):
    """A change event carried an event name other than INSERT/MODIFY/REMOVE."""


class StoreError(KVSearchError):
    """Structural error raised by an index store."""


class ResourceInUseError(StoreError):
    """The index table already exists."""


class ResourceNotFoundError(StoreError):
    """The index table does not exist."""

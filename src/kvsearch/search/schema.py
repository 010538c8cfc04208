"""
Index configuration: which attributes are searchable and how keys look.

An :class:`IndexSchema` lists the searchable attributes of the source
collection, each with its analyzer, an optional short storage name and a
default query-time boost, plus the source collection's primary key
(a partition key and an optional sort key).

Example:
    schema = IndexSchema(
        attributes=[
            IndexAttribute("title", analyzer="standard", short_name="t"),
            IndexAttribute("description", analyzer=StandardAnalyzer(), short_name="d"),
        ],
        keys=[IndexKey("id", KeyType.HASH)],
    )
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from kvsearch.errors import AttributeNotFoundError, ConfigurationError, MissingKeyError
from kvsearch.search.analyzers import Analyzer, get_analyzer
from kvsearch.search.keys import KeyPart, normalize_key_part
from kvsearch.search.records import PARTITION_SEPARATOR


BOOST_SEPARATOR = "^"


class KeyType(str, Enum):
    """Role of a key attribute in the source collection's primary key."""

    HASH = "HASH"
    RANGE = "RANGE"


@dataclass(frozen=True)
class IndexKey:
    """One primary key attribute of the source collection."""

    name: str
    type: KeyType = KeyType.HASH


@dataclass(frozen=True)
class IndexAttribute:
    """
    Searchable attribute of the source collection.

    Args:
        name: Attribute name in the source items (e.g. "title")
        analyzer: Analyzer instance or registered analyzer name (default: standard)
        short_name: Storage name used in postings and metadata to save space
        boost: Weight applied at query time when searching all attributes
    """

    name: str
    analyzer: Analyzer | str | None = None
    short_name: str | None = None
    boost: float = 1.0

    def __post_init__(self) -> None:
        if not isinstance(self.analyzer, Analyzer):
            object.__setattr__(self, "analyzer", get_analyzer(self.analyzer))

    @property
    def key(self) -> str:
        """Name stored in postings (the short name when one is configured)."""
        return self.short_name or self.name

    def analyze(self, text: str) -> list[str]:
        return [token.text for token in self.analyzer.analyze(text)]  # type: ignore[union-attr]


@dataclass(frozen=True)
class BoostedAttribute:
    """An attribute selected for a search, with its query-time boost."""

    attribute: IndexAttribute
    boost: float = 1.0


@dataclass
class IndexSchema:
    """Searchable attributes plus the primary key layout of the source collection."""

    attributes: list[IndexAttribute]
    keys: list[IndexKey] = field(default_factory=lambda: [IndexKey("id", KeyType.HASH)])

    def __post_init__(self) -> None:
        if not self.attributes:
            raise ConfigurationError("At least one searchable attribute is required")

        self._by_name: dict[str, IndexAttribute] = {}
        self._by_key: dict[str, IndexAttribute] = {}
        for attribute in self.attributes:
            if attribute.name in self._by_name:
                raise ConfigurationError(f"Duplicate attribute '{attribute.name}'")
            if attribute.key in self._by_key:
                raise ConfigurationError(f"Duplicate attribute storage name '{attribute.key}'")
            if PARTITION_SEPARATOR in attribute.key:
                msg = f"Attribute storage name '{attribute.key}' must not contain '{PARTITION_SEPARATOR}'"
                raise ConfigurationError(msg)
            self._by_name[attribute.name] = attribute
            self._by_key[attribute.key] = attribute

        hash_keys = [key for key in self.keys if key.type == KeyType.HASH]
        range_keys = [key for key in self.keys if key.type == KeyType.RANGE]
        if len(hash_keys) != 1:
            raise MissingKeyError("Exactly one HASH key is required")
        if len(range_keys) > 1:
            raise ConfigurationError("At most one RANGE key is allowed")
        self.partition_key_name = hash_keys[0].name
        self.sort_key_name = range_keys[0].name if range_keys else None

    def __iter__(self):
        return iter(self.attributes)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def attribute(self, name: str) -> IndexAttribute:
        try:
            return self._by_name[name]
        except KeyError:
            raise AttributeNotFoundError(name) from None

    def attribute_name_for_key(self, attribute_key: str) -> str:
        """Map a stored attribute key (short or full name) back to the attribute name."""

        attribute = self._by_key.get(attribute_key)
        return attribute.name if attribute else attribute_key

    def storage_key_for_name(self, name: str) -> str:
        attribute = self._by_name.get(name)
        return attribute.key if attribute else name

    @property
    def key_names(self) -> list[str]:
        names = [self.partition_key_name]
        if self.sort_key_name:
            names.append(self.sort_key_name)
        return names

    def key_parts(self, keys: Mapping[str, Mapping[str, Any]]) -> list[KeyPart]:
        """Return the typed key values in encoding order (partition, then sort)."""

        parts: list[KeyPart] = []
        for name in self.key_names:
            value = keys.get(name)
            if value is None:
                raise MissingKeyError(f"Key attribute '{name}' missing from {sorted(keys)}")
            parts.append(normalize_key_part(value))
        return parts

    def resolve_search_attributes(self, selectors: Sequence[str] | None) -> list[BoostedAttribute]:
        """Resolve ``["title^2", "body"]`` style selectors.

        Without selectors every attribute is searched with its configured boost.
        Unknown attributes raise :class:`AttributeNotFoundError`.
        """

        if selectors is None:
            return [BoostedAttribute(attribute, attribute.boost) for attribute in self.attributes]

        resolved: list[BoostedAttribute] = []
        for selector in selectors:
            name, _, raw_boost = selector.partition(BOOST_SEPARATOR)
            attribute = self.attribute(name)
            try:
                boost = float(raw_boost) if raw_boost else 1.0
            except ValueError:
                raise ConfigurationError(f"Invalid boost in attribute selector '{selector}'") from None
            resolved.append(BoostedAttribute(attribute, boost))
        return resolved

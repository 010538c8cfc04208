"""Index record layout shared by the live indexer, the exporter and search.

Posting item::

    p  "<attributeKey>;<token>"           partition (string)
    s  14 bytes: >H occurrence | >I document token count | md5(k)[:8]
    k  encoded document key               keys-index partition (string)
    h  md5(k)[:1]                         hash-index sort key (binary)

Metadata item::

    p  "_"
    s  b"\\x00"
    dc document count
    tc:<attributeKey> total analyzed tokens for that attribute

Sorting postings of one ``p`` descending by ``s`` returns the documents with
the highest occurrence first.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
import hashlib
import struct
from typing import Any


ATTR_PK = "p"
ATTR_SK = "s"
ATTR_KEYS = "k"
ATTR_HASH = "h"

ATTR_META_DOCUMENT_COUNT = "dc"
ATTR_META_TOKEN_COUNT = "tc"

INDEX_KEYS = "keys-index"
INDEX_HASH = "hash-index"

META_PARTITION = "_"
META_SORT_KEY = b"\x00"

PARTITION_SEPARATOR = ";"

MAX_OCCURRENCE = 2**16 - 1
MAX_DOCUMENT_TOKEN_COUNT = 2**32 - 1

_SORT_KEY = struct.Struct(">HI8s")
SORT_KEY_SIZE = _SORT_KEY.size

Item = dict[str, Any]


def metadata_key() -> Item:
    return {ATTR_PK: META_PARTITION, ATTR_SK: META_SORT_KEY}


def token_count_attribute(attribute_key: str) -> str:
    return f"{ATTR_META_TOKEN_COUNT}:{attribute_key}"


def partition_key(attribute_key: str, token: str) -> str:
    return f"{attribute_key}{PARTITION_SEPARATOR}{token}"


def split_partition_key(partition: str) -> tuple[str, str]:
    """Split ``"<attributeKey>;<token>"``; tokens may themselves contain ``;``."""

    attribute_key, _, token = partition.partition(PARTITION_SEPARATOR)
    return attribute_key, token


def key_hash(encoded_key: str) -> bytes:
    """MD5 digest of the encoded key, used to spread and tie-break postings."""

    return hashlib.md5(encoded_key.encode("utf-8"), usedforsecurity=False).digest()


def pack_sort_key(occurrence: int, document_token_count: int, digest: bytes) -> bytes:
    """Pack a posting sort key, saturating both counters at their field width."""

    return _SORT_KEY.pack(
        max(0, min(MAX_OCCURRENCE, occurrence)),
        max(0, min(MAX_DOCUMENT_TOKEN_COUNT, document_token_count)),
        digest[:8],
    )


def unpack_sort_key(sort_key: bytes) -> tuple[int, int, bytes]:
    """Return ``(occurrence, document_token_count, hash_prefix)``."""

    if len(sort_key) != SORT_KEY_SIZE:
        msg = f"Posting sort key must be {SORT_KEY_SIZE} bytes, got {len(sort_key)}"
        raise ValueError(msg)
    return _SORT_KEY.unpack(bytes(sort_key))


@dataclass(frozen=True)
class Posting:
    """One (attribute, token, document) entry of the inverted index."""

    attribute_key: str
    token: str
    occurrence: int
    document_token_count: int
    encoded_key: str

    @property
    def partition(self) -> str:
        return partition_key(self.attribute_key, self.token)

    @property
    def digest(self) -> bytes:
        return key_hash(self.encoded_key)

    def to_item(self) -> Item:
        digest = self.digest
        return {
            ATTR_PK: self.partition,
            ATTR_SK: pack_sort_key(self.occurrence, self.document_token_count, digest),
            ATTR_KEYS: self.encoded_key,
            ATTR_HASH: digest[:1],
        }

    @classmethod
    def from_item(cls, item: Item) -> Posting:
        attribute_key, token = split_partition_key(item[ATTR_PK])
        occurrence, document_token_count, _ = unpack_sort_key(item[ATTR_SK])
        return cls(
            attribute_key=attribute_key,
            token=token,
            occurrence=occurrence,
            document_token_count=document_token_count,
            encoded_key=item.get(ATTR_KEYS, ""),
        )


def is_metadata_item(item: Item) -> bool:
    return item.get(ATTR_PK) == META_PARTITION and bytes(item.get(ATTR_SK, b"")) == META_SORT_KEY


def to_attribute_values(item: Item) -> dict[str, dict[str, str]]:
    """Render an item in DynamoDB JSON, the format used by bulk import files.

    Binary attributes are base64 encoded and numbers are decimal strings.
    """

    rendered: dict[str, dict[str, str]] = {}
    for name, value in item.items():
        if isinstance(value, bytes | bytearray | memoryview):
            rendered[name] = {"B": base64.b64encode(bytes(value)).decode("ascii")}
        elif isinstance(value, bool):
            rendered[name] = {"BOOL": value}  # type: ignore[dict-item]
        elif isinstance(value, int | float):
            rendered[name] = {"N": str(value)}
        else:
            rendered[name] = {"S": str(value)}
    return rendered


def from_attribute_values(values: dict[str, dict[str, Any]]) -> Item:
    """Inverse of :func:`to_attribute_values` for the types it emits."""

    item: Item = {}
    for name, typed in values.items():
        ((descriptor, raw),) = typed.items()
        if descriptor == "B":
            item[name] = base64.b64decode(raw) if isinstance(raw, str) else bytes(raw)
        elif descriptor == "N":
            item[name] = int(raw) if str(raw).lstrip("-").isdigit() else float(raw)
        elif descriptor == "BOOL":
            item[name] = bool(raw)
        else:
            item[name] = raw
    return item

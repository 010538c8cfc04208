"""Encoding of a document's primary key into one self-delimiting string.

A key part is a typed attribute value in DynamoDB wire form, for example
``{"N": "101"}`` or ``{"S": "order;42"}``. Each part is written as the
first character of its type descriptor followed by the value; parts are
joined with ``;``. Inside values the escape character is doubled and the
delimiter is prefixed with the escape character, so any string survives
the round trip::

    >>> encode_keys([{"S": "a;b"}, {"N": "7"}])
    'Sa\\\\;b;N7'
    >>> decode_keys('Sa\\\\;b;N7')
    [{'S': 'a;b'}, {'N': '7'}]
"""

from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from typing import Any

from kvsearch.errors import MissingKeyError


DELIMITER = ";"
ESCAPE = "\\"

KeyPart = dict[str, str]


def _scalar_text(descriptor: str, value: Any) -> str:
    if descriptor == "B" and isinstance(value, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(value)).decode("ascii")
    return str(value)


def normalize_key_part(value: Mapping[str, Any]) -> KeyPart:
    """Return ``value`` as a single-entry ``{descriptor: text}`` mapping.

    Binary values are carried as base64 text, the same way stream records
    deliver them.
    """

    if len(value) != 1:
        raise MissingKeyError(f"Key attribute must hold exactly one typed value, got {dict(value)!r}")
    ((descriptor, raw),) = value.items()
    if not descriptor:
        raise MissingKeyError("Key attribute type descriptor must not be empty")
    return {descriptor: _scalar_text(descriptor, raw)}


def encode_keys(parts: Sequence[Mapping[str, Any]], *, delimiter: str = DELIMITER, escape: str = ESCAPE) -> str:
    """Encode ordered key parts (partition first) into one string."""

    encoded: list[str] = []
    for part in parts:
        ((descriptor, value),) = normalize_key_part(part).items()
        escaped = value.replace(escape, escape + escape).replace(delimiter, escape + delimiter)
        encoded.append(descriptor[0] + escaped)
    return delimiter.join(encoded)


def decode_keys(text: str, *, delimiter: str = DELIMITER, escape: str = ESCAPE) -> list[KeyPart]:
    """Reverse :func:`encode_keys`."""

    fields: list[str] = []
    current: list[str] = []
    idx = 0
    length = len(text)
    while idx < length:
        char = text[idx]
        if char == escape and idx < length - 1:
            current.append(text[idx + 1])
            idx += 2
        elif char == delimiter:
            fields.append("".join(current))
            current = []
            idx += 1
        else:
            current.append(char)
            idx += 1
    fields.append("".join(current))
    return [{field[:1]: field[1:]} for field in fields]

"""Token value type and the callable protocols of the analysis pipeline.

Every stage is a plain callable: character filters map ``str -> str``,
tokenizers map ``str -> Iterable[Token]`` and token filters map
``Iterable[Token] -> Iterator[Token]``. Classes in this package implement
``__call__`` so that instances and bare functions are interchangeable.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class Token:
    """Represents a token emitted by tokenizers and rewritten by filters."""

    text: str
    position: int = 0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def copy_with(self, **updates: Any) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "metadata": dict(self.metadata),
        }
        data.update(updates)
        return Token(**data)


class CharFilter(Protocol):
    """Protocol implemented by character filters."""

    def __call__(self, text: str) -> str:  # pragma: no cover - interface definition
        ...


class Tokenizer(Protocol):
    """Protocol implemented by tokenizers."""

    def __call__(self, text: str) -> Iterable[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...

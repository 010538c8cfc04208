"""Search request and response value objects."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kvsearch.search.stats import DEFAULT_B, DEFAULT_K1, BM25Params


class BM25Options(BaseModel):
    """Caller overrides for the BM25 parameters."""

    model_config = ConfigDict(frozen=True)

    k1: float = Field(default=DEFAULT_K1, ge=0)
    b: float = Field(default=DEFAULT_B, ge=0, le=1)

    def to_params(self) -> BM25Params:
        return BM25Params(k1=self.k1, b=self.b)


class SearchOptions(BaseModel):
    """Options accepted by :meth:`BM25SearchEngine.search`.

    ``attributes`` holds ``"name"`` or ``"name^boost"`` selectors; ``None``
    searches every configured attribute.
    """

    model_config = ConfigDict(frozen=True)

    attributes: list[str] | None = None
    max_items: int = Field(default=100, ge=0)
    min_score: float = 0.0
    bm25: BM25Options = Field(default_factory=BM25Options)


class SearchHit(BaseModel):
    """One ranked document: its typed primary key and accumulated score."""

    model_config = ConfigDict(frozen=True)

    keys: dict[str, dict[str, str]]
    score: float

    def plain_keys(self) -> dict[str, Any]:
        """Key values without their type descriptors (``{"Id": "101"}``)."""
        return {name: next(iter(value.values())) for name, value in self.keys.items()}


class ConsumedCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    table_name: str
    capacity_units: float = 0.0


class SearchResponse(BaseModel):
    """Ranked hits plus the read capacity the search consumed."""

    model_config = ConfigDict(frozen=True)

    items: list[SearchHit] = Field(default_factory=list)
    consumed_capacity: ConsumedCapacity

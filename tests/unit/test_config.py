"""Unit tests for environment-driven settings."""

from pydantic import ValidationError
import pytest

from kvsearch.adapters.dynamodb_store import DynamoDBIndexStore
from kvsearch.adapters.sqlite_store import SqliteIndexStore
from kvsearch.config import Settings, create_store
from kvsearch.search.schema import IndexAttribute, IndexKey, IndexSchema
from kvsearch.search_index import SearchIndex


@pytest.mark.unit
class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.index_table_name == "kvsearch-index"
        assert settings.store_backend == "sqlite"
        assert settings.log_level == "INFO"
        assert settings.otlp_endpoint is None

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("KVSEARCH_INDEX_TABLE_NAME", "products-index")
        monkeypatch.setenv("KVSEARCH_DEFAULT_MAX_ITEMS", "7")
        monkeypatch.setenv("KVSEARCH_BM25_B", "0.5")
        monkeypatch.setenv("KVSEARCH_LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.index_table_name == "products-index"
        assert settings.log_level == "DEBUG"
        options = settings.search_options()
        assert options.max_items == 7
        assert options.bm25.b == 0.5
        assert options.bm25.k1 == 1.2

    def test_rejects_invalid_values(self, monkeypatch):
        monkeypatch.setenv("KVSEARCH_LOG_LEVEL", "LOUD")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

        monkeypatch.delenv("KVSEARCH_LOG_LEVEL")
        monkeypatch.setenv("KVSEARCH_BM25_B", "2")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, store_backend="redis")


@pytest.mark.unit
class TestCreateStore:
    def test_sqlite_backend(self, tmp_path):
        settings = Settings(_env_file=None, sqlite_path=str(tmp_path / "x.db"), index_table_name="docs-index")

        store = create_store(settings)

        assert isinstance(store, SqliteIndexStore)
        assert store.table_name == "docs-index"

    def test_dynamodb_backend(self):
        settings = Settings(
            _env_file=None,
            store_backend="dynamodb",
            dynamodb_endpoint_url="http://localhost:8000",
            aws_region="us-east-1",
        )

        store = create_store(settings)

        assert isinstance(store, DynamoDBIndexStore)
        assert store.table_name == "kvsearch-index"
        assert store.client.meta.endpoint_url == "http://localhost:8000"

    @pytest.mark.asyncio
    async def test_search_index_from_settings(self, tmp_path):
        settings = Settings(_env_file=None, sqlite_path=str(tmp_path / "x.db"), default_max_items=3)
        schema = IndexSchema([IndexAttribute("Message")], keys=[IndexKey("Id")])

        index = SearchIndex.from_settings(settings, schema)
        try:
            assert index.table_name == "kvsearch-index"
            assert index.engine.default_options.max_items == 3
        finally:
            await index.close()

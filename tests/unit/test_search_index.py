"""Unit tests for the SearchIndex facade."""

import pytest

from kvsearch.errors import ResourceInUseError, ResourceNotFoundError


@pytest.mark.unit
class TestTableLifecycle:
    @pytest.mark.asyncio
    async def test_create_and_delete(self, search_index):
        await search_index.create_table()
        with pytest.raises(ResourceInUseError):
            await search_index.create_table()
        await search_index.create_table(if_not_exists=True)

        await search_index.delete_table()
        with pytest.raises(ResourceNotFoundError):
            await search_index.delete_table()
        await search_index.delete_table(if_exists=True)

    @pytest.mark.asyncio
    async def test_processing_without_table_fails(self, search_index, make_record):
        with pytest.raises(ResourceNotFoundError):
            await search_index.process_records([make_record("INSERT", "1", "text")])


@pytest.mark.unit
class TestMetadata:
    @pytest.mark.asyncio
    async def test_fresh_table_has_zero_counts(self, search_index):
        await search_index.create_table()

        metadata = await search_index.get_metadata()

        assert metadata.document_count == 0
        assert metadata.token_count_by_attribute == {}

    @pytest.mark.asyncio
    async def test_counts_follow_batches(self, search_index, make_record):
        await search_index.create_table()

        await search_index.process_records(
            [make_record("INSERT", "1", "one two"), make_record("INSERT", "2", "three")]
        )

        metadata = await search_index.get_metadata()
        assert metadata.document_count == 2
        assert metadata.token_count_by_attribute == {"Message": 3}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_end_to_end(search_index, make_record):
    await search_index.create_table()
    await search_index.process_records(
        [
            make_record("INSERT", "1", "Quick brown fox"),
            make_record("INSERT", "2", "Lazy brown dog"),
            make_record("INSERT", "3", "Quick red fox jumps"),
        ]
    )

    response = await search_index.search("quick fox", max_items=10)

    assert {hit.plain_keys()["Id"] for hit in response.items} == {"1", "3"}
    assert response.items[0].plain_keys() == {"Id": "1"}

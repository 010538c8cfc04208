"""Unit tests for change-event driven index maintenance."""

import pytest

from kvsearch.domain.events import ChangeEvent, EventName
from kvsearch.errors import AnalysisError, UnknownEventError
from kvsearch.search.analyzers import Analyzer
from kvsearch.search.records import Posting, is_metadata_item
from kvsearch.search.schema import IndexAttribute, IndexKey, IndexSchema, KeyType
from kvsearch.search.tokenizers import WhitespaceTokenizer
from kvsearch.search_index import SearchIndex


FIXTURE_SORT_KEY = bytes([0, 1, 0, 0, 0, 2, 232, 244, 177, 186, 163, 88, 89, 159])


async def _postings(store):
    return sorted(
        (Posting.from_item(item) for item in await store.scan() if not is_metadata_item(item)),
        key=lambda posting: (posting.encoded_key, posting.token),
    )


async def _metadata_item(store):
    return next(item for item in await store.scan() if is_metadata_item(item))


@pytest.mark.unit
class TestFixtureScenario:
    @pytest.mark.asyncio
    async def test_insert(self, search_index, sqlite_store, make_record):
        await search_index.create_table()

        result = await search_index.process_records([make_record("INSERT", "101", "New item!")])

        assert result.processed == 1
        assert result.document_count_delta == 1
        items = await sqlite_store.scan()
        assert len(items) == 3
        metadata = await _metadata_item(sqlite_store)
        assert metadata["dc"] == 1
        assert metadata["tc:Message"] == 2

        postings = {item["p"]: item for item in items if not is_metadata_item(item)}
        assert set(postings) == {"Message;new", "Message;item!"}
        assert postings["Message;new"]["s"] == FIXTURE_SORT_KEY
        assert postings["Message;new"]["k"] == "N101"
        assert postings["Message;new"]["h"] == bytes([232])

    @pytest.mark.asyncio
    async def test_modify_replaces_postings(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        await search_index.process_records([make_record("INSERT", "101", "New item!")])

        result = await search_index.process_records([make_record("MODIFY", "101", "This item has changed")])

        assert result.document_count_delta == 0
        postings = await _postings(sqlite_store)
        assert sorted(posting.token for posting in postings) == ["changed", "has", "item", "this"]
        assert all(posting.document_token_count == 4 for posting in postings)
        metadata = await search_index.get_metadata()
        assert metadata.document_count == 1
        assert metadata.token_count_by_attribute == {"Message": 4}

    @pytest.mark.asyncio
    async def test_remove_clears_document(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        await search_index.process_records([make_record("INSERT", "101", "New item!")])
        await search_index.process_records([make_record("MODIFY", "101", "This item has changed")])

        result = await search_index.process_records([make_record("REMOVE", "101")])

        assert result.document_count_delta == -1
        items = await sqlite_store.scan()
        assert len(items) == 1
        assert items[0]["dc"] == 0
        assert items[0]["tc:Message"] == 0


@pytest.mark.unit
class TestConvergence:
    @pytest.mark.asyncio
    async def test_unchanged_modify_has_zero_delta(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        await search_index.process_records([make_record("INSERT", "101", "New item!")])
        before = await _postings(sqlite_store)

        result = await search_index.process_records([make_record("MODIFY", "101", "New item!")])

        assert result.document_count_delta == 0
        assert result.token_deltas == {"Message": 0}
        assert await _postings(sqlite_store) == before

    @pytest.mark.asyncio
    async def test_redelivered_insert_keeps_one_posting_set(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        await search_index.process_records([make_record("INSERT", "101", "New item!")])
        await search_index.process_records([make_record("INSERT", "101", "New item!")])

        assert len(await _postings(sqlite_store)) == 2

    @pytest.mark.asyncio
    async def test_counts_return_to_zero_after_removing_everything(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        await search_index.process_records(
            [
                make_record("INSERT", "1", "alpha beta gamma"),
                make_record("INSERT", "2", "beta beta"),
                make_record("INSERT", "3", ""),
            ]
        )
        await search_index.process_records(
            [
                make_record("MODIFY", "1", "alpha"),
                make_record("MODIFY", "3", "now has words"),
                make_record("MODIFY", "2", "gamma delta epsilon zeta"),
            ]
        )
        mid = await search_index.get_metadata()
        assert mid.document_count == 3
        assert mid.token_count_by_attribute == {"Message": 1 + 3 + 4}

        await search_index.process_records([make_record("REMOVE", key) for key in ("3", "1", "2")])

        metadata = await search_index.get_metadata()
        assert metadata.document_count == 0
        assert metadata.token_count_by_attribute == {"Message": 0}
        assert await _postings(sqlite_store) == []

    @pytest.mark.asyncio
    async def test_remove_of_unindexed_document_is_harmless(self, search_index, make_record):
        await search_index.create_table()

        result = await search_index.process_records([make_record("REMOVE", "404")])

        assert result.document_count_delta == 0
        assert (await search_index.get_metadata()).document_count == 0


@pytest.mark.unit
class TestEventHandling:
    @pytest.mark.asyncio
    async def test_events_in_one_batch_apply_in_order(self, search_index, sqlite_store, make_record):
        await search_index.create_table()

        await search_index.process_records(
            [
                make_record("INSERT", "9", "first"),
                make_record("MODIFY", "9", "second"),
                make_record("REMOVE", "9"),
                make_record("INSERT", "9", "third"),
            ]
        )

        assert [posting.token for posting in await _postings(sqlite_store)] == ["third"]
        assert (await search_index.get_metadata()).document_count == 1

    @pytest.mark.asyncio
    async def test_accepts_change_event_objects(self, search_index):
        await search_index.create_table()
        event = ChangeEvent(
            event_name=EventName.INSERT,
            keys={"Id": {"N": "5"}},
            new_image={"Id": {"N": "5"}, "Message": {"S": "hello"}},
        )

        result = await search_index.process_records([event])

        assert result.document_count_delta == 1

    @pytest.mark.asyncio
    async def test_unknown_event_aborts_before_any_write(self, search_index, sqlite_store, make_record):
        await search_index.create_table()

        with pytest.raises(UnknownEventError):
            await search_index.process_records([make_record("INSERT", "1", "x"), {"eventName": "TRUNCATE"}])

        assert await sqlite_store.scan() == []

    @pytest.mark.asyncio
    async def test_non_string_values_analyze_as_empty(self, search_index, sqlite_store):
        await search_index.create_table()
        record = {
            "eventName": "INSERT",
            "dynamodb": {"Keys": {"Id": {"N": "1"}}, "NewImage": {"Id": {"N": "1"}, "Message": {"N": "42"}}},
        }

        result = await search_index.process_records([record])

        assert result.document_count_delta == 0
        assert await _postings(sqlite_store) == []

    @pytest.mark.asyncio
    async def test_empty_batch_skips_metadata(self, search_index, sqlite_store):
        await search_index.create_table()
        result = await search_index.process_records([])
        assert result.processed == 0
        assert await sqlite_store.scan() == []

    @pytest.mark.asyncio
    async def test_analysis_failure_is_fatal(self, sqlite_store, make_record):
        def broken(tokens):
            raise RuntimeError("dictionary missing")

        schema = IndexSchema([IndexAttribute("Message", analyzer=Analyzer(WhitespaceTokenizer(), [broken]))], [IndexKey("Id")])
        index = SearchIndex(sqlite_store, schema)
        await index.create_table()

        with pytest.raises(AnalysisError, match="Message") as excinfo:
            await index.process_records([make_record("INSERT", "1", "text")])

        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert await sqlite_store.scan() == []


@pytest.mark.unit
class TestLargeDocuments:
    @pytest.mark.asyncio
    async def test_more_postings_than_one_batch(self, search_index, sqlite_store, make_record):
        await search_index.create_table()
        words = " ".join(f"w{idx}" for idx in range(60))

        result = await search_index.process_records([make_record("INSERT", "1", words)])
        assert result.document_count_delta == 1
        assert len(await _postings(sqlite_store)) == 60

        await search_index.process_records([make_record("REMOVE", "1")])
        assert await _postings(sqlite_store) == []


@pytest.mark.unit
class TestCompositeKeysAndShortNames:
    @pytest.mark.asyncio
    async def test_short_names_and_sort_keys(self, sqlite_store):
        schema = IndexSchema(
            [IndexAttribute("title", short_name="t"), IndexAttribute("body", short_name="b")],
            keys=[IndexKey("tenant", KeyType.HASH), IndexKey("doc", KeyType.RANGE)],
        )
        index = SearchIndex(sqlite_store, schema)
        await index.create_table()
        record = {
            "eventName": "INSERT",
            "dynamodb": {
                "Keys": {"tenant": {"S": "acme;corp"}, "doc": {"N": "7"}},
                "NewImage": {"title": {"S": "Red shoes"}, "body": {"S": "Running shoes in red"}},
            },
        }

        await index.process_records([record])

        postings = await _postings(sqlite_store)
        assert {posting.attribute_key for posting in postings} == {"t", "b"}
        assert {posting.encoded_key for posting in postings} == {r"Sacme\;corp;N7"}
        metadata_item = await _metadata_item(sqlite_store)
        assert metadata_item["tc:t"] == 2
        assert metadata_item["tc:b"] == 4
        metadata = await index.get_metadata()
        assert metadata.token_count_by_attribute == {"title": 2, "body": 4}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_reindex_existing_items(search_index, sqlite_store):
    await search_index.create_table()
    items = [
        {"Id": {"N": "1"}, "Message": {"S": "first message"}},
        {"Id": {"N": "2"}, "Message": {"S": "second"}},
    ]

    await search_index.reindex(items)
    await search_index.reindex(items)

    metadata = await search_index.get_metadata()
    assert metadata.document_count == 2
    assert metadata.token_count_by_attribute == {"Message": 3}
    assert len(await _postings(sqlite_store)) == 3

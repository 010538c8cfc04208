"""Unit tests for change events and search value objects."""

from pydantic import ValidationError
import pytest

from kvsearch.domain.events import ChangeEvent, EventName
from kvsearch.domain.search import BM25Options, SearchHit, SearchOptions
from kvsearch.errors import UnknownEventError


@pytest.mark.unit
class TestChangeEvent:
    def test_from_stream_record(self):
        record = {
            "eventName": "MODIFY",
            "dynamodb": {
                "Keys": {"Id": {"N": "101"}},
                "NewImage": {"Id": {"N": "101"}, "Message": {"S": "changed"}},
                "OldImage": {"Id": {"N": "101"}, "Message": {"S": "New item!"}},
            },
        }

        event = ChangeEvent.from_stream_record(record)

        assert event.event_name is EventName.MODIFY
        assert event.keys == {"Id": {"N": "101"}}
        assert event.new_image["Message"] == {"S": "changed"}
        assert event.old_image["Message"] == {"S": "New item!"}

    def test_remove_has_no_new_image(self):
        event = ChangeEvent.from_stream_record({"eventName": "REMOVE", "dynamodb": {"Keys": {"Id": {"N": "1"}}}})
        assert event.new_image is None

    def test_unknown_event_name(self):
        with pytest.raises(UnknownEventError, match="Unknown eventName: UPSERT"):
            ChangeEvent.from_stream_record({"eventName": "UPSERT", "dynamodb": {}})

    def test_coerce_passes_events_through(self):
        event = ChangeEvent(event_name=EventName.INSERT, keys={"Id": {"N": "1"}})
        assert ChangeEvent.coerce(event) is event

    def test_events_are_immutable(self):
        event = ChangeEvent(event_name=EventName.INSERT, keys={"Id": {"N": "1"}})
        with pytest.raises(ValidationError):
            event.event_name = EventName.REMOVE


@pytest.mark.unit
class TestSearchModels:
    def test_option_defaults(self):
        options = SearchOptions()
        assert options.attributes is None
        assert options.max_items == 100
        assert options.min_score == 0.0
        assert options.bm25.to_params().k1 == 1.2
        assert options.bm25.to_params().b == 0.75

    def test_b_must_be_a_fraction(self):
        with pytest.raises(ValidationError):
            BM25Options(b=1.5)

    def test_plain_keys(self):
        hit = SearchHit(keys={"Id": {"N": "101"}, "Sort": {"S": "a"}}, score=1.0)
        assert hit.plain_keys() == {"Id": "101", "Sort": "a"}

"""Property-based tests for record and link models."""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from docsync.models.records import (
    DateProperty,
    LocalLink,
    MultiSelectProperty,
    SourceRecord,
    TextProperty,
    parse_timestamp,
)


@given(
    moment=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2099, 1, 1)),
    offset_hours=st.integers(min_value=-12, max_value=14),
)
def test_last_modified_is_normalized_to_utc(moment: datetime, offset_hours: int):
    local = moment.replace(tzinfo=timezone(timedelta(hours=offset_hours)))

    record = SourceRecord(id="1", last_modified=local)

    assert record.last_modified.utcoffset() == timedelta(0)
    assert record.last_modified == local


def test_naive_times_are_taken_as_utc():
    record = SourceRecord(id="1", last_modified=datetime(2024, 1, 1, 12, 0))

    assert record.last_modified == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_parse_timestamp_accepts_z_suffix():
    assert parse_timestamp("2024-01-15T14:30:00Z") == datetime(
        2024, 1, 15, 14, 30, tzinfo=timezone.utc
    )


def test_properties_are_parsed_by_type_tag():
    record = SourceRecord.model_validate(SourceRecord.model_config["json_schema_extra"]["example"])

    assert isinstance(record.properties["title"], TextProperty)
    assert isinstance(record.properties["labels"], MultiSelectProperty)
    assert record.title == "Getting Started"


def test_unknown_property_type_is_rejected():
    with pytest.raises(ValidationError):
        SourceRecord(
            id="1",
            last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
            properties={"x": {"type": "formula", "value": "1+1"}},
        )


def test_record_without_title_property():
    record = SourceRecord(
        id="1",
        last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc),
        properties={"created": DateProperty(value=datetime(2024, 1, 1))},
    )

    assert record.title == ""
    assert record.properties["created"].value.tzinfo == timezone.utc


@pytest.mark.parametrize("local_id", [0, -3])
def test_local_ids_are_positive(local_id: int):
    with pytest.raises(ValidationError):
        LocalLink(external_id="1", local_id=local_id)


def test_empty_record_id_is_rejected():
    with pytest.raises(ValidationError):
        SourceRecord(id="", last_modified=datetime(2024, 1, 1, tzinfo=timezone.utc))

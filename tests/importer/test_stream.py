import json

import pytest

from forum_bridge.importer.errors import ProtocolError
from forum_bridge.importer.pipeline.stream import (
    EntityKind,
    PostRecord,
    PostType,
    ProjectRecord,
    StreamDemultiplexer,
    UserRecord,
)


def _marker(kind, count):
    return json.dumps({"type": "count", "object_type": kind, "count": count})


def _user(index):
    return json.dumps({"username": f"u{index:04d}", "email": f"u{index}@example.org", "is_disabled": False})


def test_large_section_is_split_at_batch_size():
    lines = [_marker("user", 2500)] + [_user(i) for i in range(2500)]

    batches = list(StreamDemultiplexer(lines, batch_size=1000))

    assert [len(batch) for batch in batches] == [1000, 1000, 500]
    assert [batch.offset for batch in batches] == [0, 1000, 2000]
    assert all(batch.kind is EntityKind.USER for batch in batches)
    assert all(batch.total_count == 2500 for batch in batches)
    assert batches[0].records[0].username == "u0000"
    assert batches[-1].records[-1].username == "u2499"


def test_count_marker_flushes_previous_kind(export_stream):
    export_stream.add_user("alice").add_user("bob").add_project("proj1", contributors=["alice"])
    export_stream.add_topic("top01", project="proj1")

    batches = list(StreamDemultiplexer(export_stream.lines(), batch_size=1000))

    assert [(batch.kind, len(batch), batch.offset) for batch in batches] == [
        (EntityKind.USER, 2, 0),
        (EntityKind.PROJECT, 1, 0),
        (EntityKind.POST, 1, 0),
    ]
    assert isinstance(batches[0].records[0], UserRecord)
    assert isinstance(batches[1].records[0], ProjectRecord)
    assert isinstance(batches[2].records[0], PostRecord)


def test_empty_sections_produce_no_batches():
    lines = [_marker("user", 0), _marker("project", 0), _marker("post", 0)]
    assert list(StreamDemultiplexer(lines)) == []


def test_blank_lines_are_ignored():
    lines = ["", _marker("user", 1), "   ", _user(1), ""]
    batches = list(StreamDemultiplexer(lines))
    assert len(batches) == 1
    assert batches[0].records[0].username == "u0001"


def test_record_before_marker_is_a_protocol_error():
    with pytest.raises(ProtocolError, match="line 1: record appears before any count marker"):
        list(StreamDemultiplexer([_user(1)]))


def test_unknown_object_type_is_a_protocol_error():
    with pytest.raises(ProtocolError, match="unknown object_type 'wiki'"):
        list(StreamDemultiplexer([_marker("wiki", 1)]))


@pytest.mark.parametrize("line", ["{not json", "[1, 2]", '"text"'])
def test_unparseable_lines_are_protocol_errors(line):
    with pytest.raises(ProtocolError, match="line 2"):
        list(StreamDemultiplexer([_marker("user", 1), line]))


@pytest.mark.parametrize("count", [None, -1, "3", True])
def test_invalid_count_is_a_protocol_error(count):
    line = json.dumps({"type": "count", "object_type": "user", "count": count})
    with pytest.raises(ProtocolError, match="non-negative integer count"):
        list(StreamDemultiplexer([line]))


def test_records_already_read_are_yielded_before_an_error():
    lines = [_marker("user", 3), _user(1), _user(2), "{broken"]
    demux = StreamDemultiplexer(lines, batch_size=2)
    iterator = iter(demux)

    first = next(iterator)
    assert [record.username for record in first.records] == ["u0001", "u0002"]
    with pytest.raises(ProtocolError):
        next(iterator)


def test_missing_required_field_reports_line_number():
    lines = [_marker("project", 1), json.dumps({"is_public": True})]
    with pytest.raises(ProtocolError, match="line 2: missing or empty field 'guid'"):
        list(StreamDemultiplexer(lines))


def test_post_records_are_typed(export_stream):
    export_stream.add_topic("top01", project="proj1", parents=["comp1"], category="wiki", is_deleted=True)
    export_stream.add_comment("com01", reply_to="top01", user="alice", content="hi")

    (batch,) = [batch for batch in StreamDemultiplexer(export_stream.lines()) if batch.kind is EntityKind.POST]
    topic, comment = batch.records

    assert topic.post_type is PostType.TOPIC
    assert topic.is_topic
    assert topic.guid == "top01"
    assert topic.parent_guids == ("proj1", "comp1")
    assert topic.project_guid == "proj1"
    assert topic.category_tag == "wiki"
    assert topic.is_deleted is True

    assert comment.post_type is PostType.COMMENT
    assert comment.guid == "com01"
    assert comment.reply_to == "top01"
    assert comment.user == "alice"


def test_topic_without_parent_guids_is_rejected():
    line = json.dumps(
        {
            "post_type": "topic",
            "topic_guid": "top01",
            "parent_guids": [],
            "title": "t",
            "date_created": "2015-01-01T00:00:00",
            "type": "nodes",
        }
    )
    with pytest.raises(ProtocolError, match="non-empty parent_guids"):
        list(StreamDemultiplexer([_marker("post", 1), line]))


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        StreamDemultiplexer([], batch_size=0)

import pytest

from forum_bridge.importer.errors import ConsistencyError, DanglingReferenceError
from forum_bridge.importer.pipeline.correlation import (
    ENTITY_TYPE_GROUP,
    ENTITY_TYPE_POST,
    ENTITY_TYPE_USER,
    CorrelationStore,
)
from forum_bridge.importer.pipeline.identifiers import encode_external_id
from forum_bridge.models import ExternalIdMap, db


def test_record_created_then_lookup_both_ways(import_run):
    store = CorrelationStore(run_id=import_run.id)

    entry = store.record_created(ENTITY_TYPE_USER, "alice", 42)
    db.session.commit()

    assert entry.internal_key == encode_external_id("alice")
    assert store.lookup_by_external_id(ENTITY_TYPE_USER, "ALICE").destination_id == 42
    assert store.lookup_destination_id_by_internal_key(ENTITY_TYPE_USER, entry.internal_key) == 42

    row = ExternalIdMap.query.one()
    assert row.run_id == import_run.id
    assert row.entity_type == ENTITY_TYPE_USER


def test_lookups_are_scoped_by_entity_kind():
    store = CorrelationStore()
    store.record_created(ENTITY_TYPE_GROUP, "proj1", 7)

    assert store.lookup_by_external_id(ENTITY_TYPE_USER, "proj1") is None
    assert store.lookup_by_external_id(ENTITY_TYPE_GROUP, "proj1").destination_id == 7


def test_recording_same_pair_again_merges_metadata():
    store = CorrelationStore()
    store.record_created(ENTITY_TYPE_POST, "top01", 3, metadata={"topic_id": 1})
    entry = store.record_created(ENTITY_TYPE_POST, "top01", 3, metadata={"post_number": 1})

    assert entry.metadata == {"topic_id": 1, "post_number": 1}
    assert ExternalIdMap.query.count() == 1


def test_remapping_a_correlated_key_is_refused():
    store = CorrelationStore()
    store.record_created(ENTITY_TYPE_USER, "alice", 1)

    with pytest.raises(ConsistencyError, match="refusing to remap"):
        store.record_created(ENTITY_TYPE_USER, "alice", 2)


def test_require_raises_for_unknown_reference():
    store = CorrelationStore()

    with pytest.raises(DanglingReferenceError) as excinfo:
        store.require(ENTITY_TYPE_USER, "ghost", referenced_by="project proj1")

    assert excinfo.value.external_id == "ghost"
    assert "referenced by project proj1" in str(excinfo.value)


def test_unknown_entity_kind_is_rejected():
    store = CorrelationStore()
    with pytest.raises(ValueError, match="Unknown correlation entity type"):
        store.lookup_by_external_id("wiki", "abc")

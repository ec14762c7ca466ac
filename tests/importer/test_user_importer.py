import io
import json
from unittest.mock import Mock

import requests

from forum_bridge.importer.pipeline.correlation import ENTITY_TYPE_USER, CorrelationStore
from forum_bridge.importer.pipeline.emitter import CorrelationEmitter
from forum_bridge.importer.pipeline.identifiers import encode_external_id
from forum_bridge.importer.pipeline.stream import UserRecord
from forum_bridge.importer.pipeline.users import UserImporter
from forum_bridge.models import MergeLog, User, db
from forum_bridge.services.forum import ForumService


def _user(username, *, email=None, is_disabled=False, avatar_url=None):
    return UserRecord(
        username=username,
        email=email or f"{username}@example.org",
        name=username.title(),
        avatar_url=avatar_url,
        is_disabled=is_disabled,
    )


def _importer(import_run, *, http=None, fetch_avatars=False):
    output = io.StringIO()
    forum = ForumService(http=http or Mock())
    importer = UserImporter(
        CorrelationStore(run_id=import_run.id),
        forum,
        CorrelationEmitter(output),
        run_id=import_run.id,
        fetch_avatars=fetch_avatars,
    )
    return importer, output


def _records(importer, output):
    importer.emitter.flush()
    return [json.loads(line) for line in output.getvalue().splitlines()]


def test_new_users_are_created_and_emitted(import_run):
    importer, output = _importer(import_run)

    counters = importer.import_batch([_user("alice"), _user("bob", is_disabled=True)], 2, 0)
    db.session.commit()

    assert counters.created == 2
    alice = User.query.filter_by(username="alice").one()
    bob = User.query.filter_by(username="bob").one()
    assert alice.active is True
    assert bob.active is False
    assert alice.custom_fields == {
        "import_id": str(encode_external_id("alice")),
        "is_disabled": "f",
        "import_avatar_url": None,
    }
    assert bob.get_custom_field("is_disabled") == "t"
    assert _records(importer, output) == [
        {"type": "user", "guid": "alice", "user_id": alice.id},
        {"type": "user", "guid": "bob", "user_id": bob.id},
    ]


def test_existing_email_is_merged_instead_of_duplicated(import_run, existing_user, caplog):
    importer, output = _importer(import_run)

    counters = importer.import_batch([_user("alice", email="shared@example.org")], 1, 0)
    db.session.commit()

    assert counters.merged == 1
    assert counters.created == 0
    assert User.query.count() == 1
    assert existing_user.get_custom_field("import_id") == str(encode_external_id("alice"))
    assert _records(importer, output) == [{"type": "user", "guid": "alice", "user_id": existing_user.id}]

    merge = MergeLog.query.one()
    assert merge.entity_id == existing_user.id
    assert merge.match_field == "email"
    assert merge.run_id == import_run.id
    assert "they already exist" in caplog.text


def test_already_correlated_users_are_skipped_but_still_emitted(import_run):
    importer, output = _importer(import_run)
    importer.import_batch([_user("alice")], 1, 0)
    db.session.commit()

    counters = importer.import_batch([_user("alice")], 1, 0)

    assert counters.skipped == 1
    assert User.query.count() == 1
    assert [record["guid"] for record in _records(importer, output)] == ["alice", "alice"]


def test_username_collision_gets_a_suffix(import_run):
    db.session.add(User(username="alice", email="other@example.org"))
    db.session.commit()
    importer, _ = _importer(import_run)

    importer.import_batch([_user("alice")], 1, 0)

    entry = CorrelationStore().lookup_by_external_id(ENTITY_TYPE_USER, "alice")
    assert db.session.get(User, entry.destination_id).username == "alice1"


def test_avatar_is_attached_when_fetching_is_enabled(import_run):
    response = Mock(ok=True, status_code=200, content=b"\x89PNG", headers={"Content-Type": "image/png"})
    http = Mock()
    http.get.return_value = response
    importer, _ = _importer(import_run, http=http, fetch_avatars=True)

    importer.import_batch([_user("alice", avatar_url="https://cdn.example.org/a.png")], 1, 0)

    alice = User.query.filter_by(username="alice").one()
    assert alice.has_uploaded_avatar
    assert alice.avatar.content_type == "image/png"
    http.get.assert_called_once_with("https://cdn.example.org/a.png", timeout=10.0)


def test_avatar_failure_is_logged_and_not_fatal(import_run, caplog):
    http = Mock()
    http.get.side_effect = requests.ConnectionError("unreachable")
    importer, output = _importer(import_run, http=http, fetch_avatars=True)

    importer.import_batch([_user("alice", avatar_url="https://cdn.example.org/a.png")], 1, 0)

    assert not User.query.filter_by(username="alice").one().has_uploaded_avatar
    assert len(_records(importer, output)) == 1
    assert "Avatar for alice not attached" in caplog.text


def test_users_without_avatar_url_are_not_fetched(import_run):
    http = Mock()
    importer, _ = _importer(import_run, http=http, fetch_avatars=True)

    importer.import_batch([_user("alice")], 1, 0)

    http.get.assert_not_called()

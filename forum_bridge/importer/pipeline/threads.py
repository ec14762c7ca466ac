"""
Import of exported topics and comments into forum topics and posts.

Comments only carry a ``reply_to`` reference, so the owning topic (and via
its ``parent_guids`` the owning project) is found by walking the reply chain
through every post record seen so far in the run. Deletion of a project
propagates to every topic and comment underneath it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, Sequence

from forum_bridge.models import Group, ImportSkip, ImportSkipType, Topic, User

from ..errors import ConsistencyError, ProtocolError, SkippedOrphan
from .categories import FIXED_CATEGORY_NAMES
from .common import BatchCounters, log_batch_progress
from .correlation import (
    ENTITY_TYPE_CATEGORY,
    ENTITY_TYPE_GROUP,
    ENTITY_TYPE_POST,
    ENTITY_TYPE_USER,
    CorrelationStore,
)
from .emitter import CorrelationEmitter
from .identifiers import encode_external_id
from .stream import PostRecord, PostType

from forum_bridge.services.forum import ForumService

# [@Name](https://host/abcde/) or [+Name](...) linking to a five character user guid.
MENTION_PATTERN = re.compile(r"\[[@|+].*?(?<!\\)\]\(https?://[a-z\d:.]+?/([a-z\d]{5})/\)")
PARENT_GUIDS_DELIMITER = "-"


def convert_mentions(content: str) -> str:
    """Rewrite exported mention links into ``@guid`` mentions."""

    return MENTION_PATTERN.sub(r"@\1", content)


def encode_parent_guids(parent_guids: Sequence[str]) -> str:
    return f"{PARENT_GUIDS_DELIMITER}{PARENT_GUIDS_DELIMITER.join(parent_guids)}{PARENT_GUIDS_DELIMITER}"


def decode_parent_guids(value: str | None) -> list[str]:
    if not value:
        return []
    return [guid for guid in value.split(PARENT_GUIDS_DELIMITER) if guid]


def parse_source_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 export timestamp; naive values are taken as UTC."""

    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ProtocolError(f"unparseable date_created {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ThreadImporter:
    """Create topics and reply posts from exported post records."""

    def __init__(
        self,
        store: CorrelationStore,
        forum: ForumService,
        emitter: CorrelationEmitter,
        *,
        run_id: int | None = None,
        system_username: str = "system",
        clock: Callable[[], datetime] = _utcnow,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.forum = forum
        self.emitter = emitter
        self.run_id = run_id
        self.system_username = system_username
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        # Every post record seen during the run, by topic or comment guid.
        self.posts_by_guid: dict[str, PostRecord] = {}
        self._system_user: User | None = None

    @property
    def system_user(self) -> User:
        if self._system_user is None:
            self._system_user = self.forum.ensure_system_user(self.system_username)
        return self._system_user

    def resolve_topic_root(self, post: PostRecord) -> PostRecord:
        """
        Follow ``reply_to`` links from ``post`` until a topic record is reached.

        Raises:
            SkippedOrphan: when a link points at a post that was never exported
                or the chain loops back on itself.
        """

        current = post
        visited = {post.guid}
        while current.post_type is PostType.COMMENT:
            parent_guid = current.reply_to
            parent = self.posts_by_guid.get(parent_guid)
            if parent is None or parent.guid in visited:
                raise SkippedOrphan(post.guid, parent_guid)
            visited.add(parent.guid)
            current = parent
        return current

    def import_batch(self, posts: Sequence[PostRecord], total_count: int, offset: int) -> BatchCounters:
        self.posts_by_guid.update((post.guid, post) for post in posts)

        counters = BatchCounters()
        now = self.clock()
        for post in posts:
            try:
                topic_root = self.resolve_topic_root(post)
            except SkippedOrphan as exc:
                self._record_orphan(post, exc)
                counters.orphaned += 1
                continue

            internal_key = encode_external_id(post.guid)
            if self.store.lookup_by_internal_key(ENTITY_TYPE_POST, internal_key) is not None:
                counters.skipped += 1
                continue

            project_deleted = self._project_is_deleted(topic_root.project_guid, post)
            deleted_at = now if post.is_deleted or project_deleted else None
            content = convert_mentions(post.content)

            if post.post_type is PostType.TOPIC:
                self._create_topic(post, internal_key, content, deleted_at)
            elif post.post_type is PostType.COMMENT:
                self._create_comment(post, internal_key, content, deleted_at)
            else:  # pragma: no cover - PostType is closed
                raise ProtocolError(f"unhandled post type {post.post_type!r}")
            counters.created += 1

        log_batch_progress(self.logger, kind="post", counters=counters, total_count=total_count, offset=offset)

        for post in posts:
            if post.is_topic:
                self._finalize_topic(post)
        return counters

    def _project_is_deleted(self, project_guid: str, post: PostRecord) -> bool:
        entry = self.store.require(ENTITY_TYPE_GROUP, project_guid, referenced_by=f"post {post.guid}")
        group = self.forum.session.get(Group, entry.destination_id)
        if group is None:
            raise ConsistencyError(f"Group {entry.destination_id} for project {project_guid} no longer exists")
        return group.custom_flag("is_deleted")

    def _create_topic(self, post: PostRecord, internal_key: int, content: str, deleted_at: datetime | None) -> None:
        category = self.store.require(ENTITY_TYPE_CATEGORY, post.category_tag, referenced_by=f"topic {post.guid}")
        topic, first_post = self.forum.create_topic(
            title=post.title,
            raw=content,
            user_id=self.system_user.id,
            category_id=category.destination_id,
            created_at=parse_source_timestamp(post.date_created),
            deleted_at=deleted_at,
        )
        first_post.set_custom_field("import_id", internal_key)
        first_post.set_custom_field("is_deleted", post.is_deleted)
        self.store.record_created(
            ENTITY_TYPE_POST,
            post.guid,
            first_post.id,
            metadata={"topic_id": topic.id, "post_number": first_post.post_number},
        )

    def _create_comment(self, post: PostRecord, internal_key: int, content: str, deleted_at: datetime | None) -> None:
        author = self.store.require(ENTITY_TYPE_USER, post.user, referenced_by=f"comment {post.guid}")
        parent = self.store.require(ENTITY_TYPE_POST, post.reply_to, referenced_by=f"comment {post.guid}")
        reply = self.forum.create_post(
            topic_id=parent.metadata["topic_id"],
            user_id=author.destination_id,
            raw=content,
            created_at=parse_source_timestamp(post.date_created),
            reply_to_post_number=parent.metadata["post_number"],
            deleted_at=deleted_at,
        )
        reply.set_custom_field("import_id", internal_key)
        reply.set_custom_field("is_deleted", post.is_deleted)
        self.store.record_created(
            ENTITY_TYPE_POST,
            post.guid,
            reply.id,
            metadata={"topic_id": reply.topic_id, "post_number": reply.post_number},
        )

    def _finalize_topic(self, post: PostRecord) -> None:
        entry = self.store.require(ENTITY_TYPE_POST, post.guid)
        topic = self.forum.get_topic(entry.metadata["topic_id"])
        if topic is None:
            raise ConsistencyError(f"Topic {entry.metadata['topic_id']} for {post.guid} no longer exists")

        topic.set_custom_field("parent_guids", encode_parent_guids(post.parent_guids))
        topic.set_custom_field("project_guid", post.project_guid)
        topic.set_custom_field("topic_guid", post.guid)
        self.forum.session.flush()

        parent_guids = decode_parent_guids(topic.get_custom_field("parent_guids"))
        project_guid = topic.get_custom_field("project_guid")
        topic_guid = topic.get_custom_field("topic_guid")
        if parent_guids != list(post.parent_guids):
            raise ConsistencyError(f"Parent guids did not persist, {parent_guids} != {list(post.parent_guids)}")
        if project_guid != post.project_guid:
            raise ConsistencyError(f"Project guid did not persist for topic {post.guid}")
        if topic_guid != post.guid:
            raise ConsistencyError(f"Topic guid did not persist for topic {post.guid}")
        self._check_category(topic)

        self.emitter.emit(
            {
                "type": "topic",
                "guid": topic_guid,
                "topic_id": topic.id,
                "topic_title": topic.title,
                "topic_parent_guids": parent_guids,
                "topic_deleted": topic.deleted_at is not None,
                "post_id": entry.destination_id,
            }
        )

    def _check_category(self, topic: Topic) -> None:
        category_name = topic.category.name if topic.category is not None else None
        if category_name not in FIXED_CATEGORY_NAMES:
            raise ConsistencyError(f"Topic category did not persist for topic {topic.id}: {category_name!r}")

    def _record_orphan(self, post: PostRecord, exc: SkippedOrphan) -> None:
        self.logger.warning(
            str(exc),
            extra={"importer_external_id": post.guid, "importer_missing_parent": exc.missing_guid},
        )
        if self.run_id is None:
            return
        self.forum.session.add(
            ImportSkip(
                run_id=self.run_id,
                entity_type=ENTITY_TYPE_POST,
                skip_type=ImportSkipType.ORPHAN_COMMENT,
                skip_reason=str(exc),
                record_key=post.guid,
                details_json={"reply_to": post.reply_to, "missing_guid": exc.missing_guid},
            )
        )

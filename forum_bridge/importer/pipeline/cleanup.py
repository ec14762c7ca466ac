"""
Removal of everything a previous import created.

Entities are found by their ``import_id`` custom field, so accounts merged
into during an import are removed as well. Kinds are processed in dependency
order: posts and topics, groups, categories, then users.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from forum_bridge.importer.metrics import record_cleanup_removed
from forum_bridge.models import (
    Category,
    CustomField,
    ExternalIdMap,
    Group,
    GroupUser,
    Post,
    Topic,
    User,
    UserAvatar,
    db,
)
from forum_bridge.services.forum import ForumService

from .correlation import ENTITY_TYPE_CATEGORY, ENTITY_TYPE_GROUP, ENTITY_TYPE_POST, ENTITY_TYPE_USER

IMPORT_MARKER_FIELD = "import_id"


@dataclass
class CleanupSummary:
    posts: int = 0
    topics: int = 0
    groups: int = 0
    categories: int = 0
    users: int = 0
    sso_records: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "posts": self.posts,
            "topics": self.topics,
            "groups": self.groups,
            "categories": self.categories,
            "users": self.users,
            "sso_records": self.sso_records,
        }


def _tagged_ids(session: Session, entity_type: str) -> list[int]:
    rows = (
        session.query(CustomField.entity_id)
        .filter(CustomField.entity_type == entity_type, CustomField.name == IMPORT_MARKER_FIELD)
        .distinct()
    )
    return sorted(entity_id for (entity_id,) in rows)


def _delete_custom_fields(session: Session, entity_type: str, ids: list[int]) -> None:
    if ids:
        session.query(CustomField).filter(
            CustomField.entity_type == entity_type, CustomField.entity_id.in_(ids)
        ).delete(synchronize_session=False)


def _delete_correlations(session: Session, entity_type: str, ids: list[int]) -> None:
    if ids:
        session.query(ExternalIdMap).filter(
            ExternalIdMap.entity_type == entity_type, ExternalIdMap.entity_id.in_(ids)
        ).delete(synchronize_session=False)


def remove_all_imported(
    session: Session | None = None,
    *,
    forum: ForumService | None = None,
    logger: logging.Logger | None = None,
) -> CleanupSummary:
    """Delete every imported entity, its custom fields and its correlation rows."""

    session = session or db.session
    forum = forum or ForumService(session)
    logger = logger or logging.getLogger(__name__)
    summary = CleanupSummary()

    logger.info("Removing imported posts...")
    post_ids = _tagged_ids(session, "post")
    topic_ids = (
        sorted({topic_id for (topic_id,) in session.query(Post.topic_id).filter(Post.id.in_(post_ids))})
        if post_ids
        else []
    )
    if topic_ids:
        # Replies added to an imported topic after the import go with the topic.
        extra_post_ids = [
            post_id
            for (post_id,) in session.query(Post.id).filter(Post.topic_id.in_(topic_ids), Post.id.notin_(post_ids))
        ]
        _delete_custom_fields(session, "post", extra_post_ids)
        post_ids_to_delete = post_ids + extra_post_ids
    else:
        post_ids_to_delete = post_ids
    if post_ids_to_delete:
        session.query(Post).filter(Post.id.in_(post_ids_to_delete)).delete(synchronize_session=False)
    _delete_custom_fields(session, "post", post_ids)
    _delete_correlations(session, ENTITY_TYPE_POST, post_ids)
    summary.posts = len(post_ids)
    logger.info("Removed %d posts", summary.posts)

    logger.info("Removing imported topics...")
    if topic_ids:
        session.query(Topic).filter(Topic.id.in_(topic_ids)).delete(synchronize_session=False)
    _delete_custom_fields(session, "topic", topic_ids)
    summary.topics = len(topic_ids)
    logger.info("Removed %d topics", summary.topics)

    logger.info("Removing imported groups...")
    group_ids = _tagged_ids(session, "group")
    if group_ids:
        session.query(GroupUser).filter(GroupUser.group_id.in_(group_ids)).delete(synchronize_session=False)
        session.query(Group).filter(Group.id.in_(group_ids)).delete(synchronize_session=False)
    _delete_custom_fields(session, "group", group_ids)
    _delete_correlations(session, ENTITY_TYPE_GROUP, group_ids)
    summary.groups = len(group_ids)
    logger.info("Removed %d groups", summary.groups)

    logger.info("Removing imported categories...")
    category_ids = _tagged_ids(session, "category")
    if category_ids:
        session.query(Topic).filter(Topic.category_id.in_(category_ids)).update(
            {Topic.category_id: None}, synchronize_session=False
        )
        session.query(Category).filter(Category.id.in_(category_ids)).delete(synchronize_session=False)
    _delete_custom_fields(session, "category", category_ids)
    _delete_correlations(session, ENTITY_TYPE_CATEGORY, category_ids)
    summary.categories = len(category_ids)
    logger.info("Removed %d categories", summary.categories)

    logger.info("Removing imported users...")
    user_ids = _tagged_ids(session, "user")
    # Single-sign-on links reference the accounts, so they are deleted first.
    summary.sso_records = forum.purge_sso_records(user_ids)
    if user_ids:
        session.query(GroupUser).filter(GroupUser.user_id.in_(user_ids)).delete(synchronize_session=False)
        session.query(UserAvatar).filter(UserAvatar.user_id.in_(user_ids)).delete(synchronize_session=False)
        session.query(User).filter(User.id.in_(user_ids)).delete(synchronize_session=False)
    _delete_custom_fields(session, "user", user_ids)
    _delete_correlations(session, ENTITY_TYPE_USER, user_ids)
    summary.users = len(user_ids)
    logger.info("Removed %d users", summary.users)
    logger.info("Removed %d single-sign-on records", summary.sso_records)

    session.commit()
    session.expire_all()
    for kind, count in summary.to_dict().items():
        record_cleanup_removed(kind, count)
    return summary

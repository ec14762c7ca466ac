"""
Create-or-find primitives for the discussion platform.

The import pipeline never touches the forum tables directly; it goes through
:class:`ForumService`, which keeps the platform rules (unique usernames, post
numbering, membership replacement) in one place.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Mapping

import requests
from sqlalchemy.orm import Session

from forum_bridge.models import (
    SYSTEM_USER_ID,
    Category,
    Group,
    GroupUser,
    Post,
    SingleSignOnRecord,
    Topic,
    User,
    UserAvatar,
    db,
)

DEFAULT_AVATAR_TIMEOUT = 10.0
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


class AvatarFetchError(RuntimeError):
    """Raised when an avatar cannot be downloaded."""


class ForumService:
    """Facade over the forum tables used by the importers and the cleanup command."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        http: requests.Session | None = None,
        avatar_timeout: float = DEFAULT_AVATAR_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.session: Session = session or db.session
        self.http = http or requests.Session()
        self.avatar_timeout = avatar_timeout
        self.logger = logger or logging.getLogger(__name__)

    # Users ----------------------------------------------------------------------

    def ensure_system_user(self, username: str = "system") -> User:
        """
        Return the sentinel account that authors imported topics.

        The sentinel always has id ``SYSTEM_USER_ID``. A local account that
        already owns ``username`` keeps it and the sentinel gets a numbered
        variant instead.
        """

        user = self.session.get(User, SYSTEM_USER_ID)
        if user is None:
            available = self._unique_username(username)
            if available != username:
                self.logger.warning(
                    "Username %s is taken, creating the system account as %s",
                    username,
                    available,
                    extra={"importer_system_username": available},
                )
            user = User(id=SYSTEM_USER_ID, username=available, name="System", email=None, active=True)
            self.session.add(user)
            self.session.flush()
        return user

    def get_user(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def find_user_by_email(self, email: str | None) -> User | None:
        return User.find_by_email(email)

    def create_user(
        self,
        *,
        username: str,
        name: str | None,
        email: str | None,
        active: bool = True,
        custom_fields: Mapping[str, object] | None = None,
    ) -> User:
        user = User(
            username=self._unique_username(username),
            name=name,
            email=email.strip() if email else None,
            active=active,
        )
        self.session.add(user)
        self.session.flush()
        for field_name, value in (custom_fields or {}).items():
            user.set_custom_field(field_name, value)
        return user

    def _unique_username(self, username: str) -> str:
        candidate = username
        suffix = 1
        while self.session.query(User.id).filter(User.username == candidate).first() is not None:
            candidate = f"{username}{suffix}"
            suffix += 1
        return candidate

    def attach_avatar_from_url(self, user: User, url: str) -> UserAvatar:
        """Download ``url`` and store it as the user's uploaded avatar."""

        try:
            response = self.http.get(url, timeout=self.avatar_timeout)
        except requests.RequestException as exc:
            raise AvatarFetchError(f"Avatar download failed for {url}: {exc}") from exc
        if not response.ok:
            raise AvatarFetchError(f"Avatar download for {url} returned HTTP {response.status_code}")

        avatar = user.avatar
        if avatar is None:
            avatar = UserAvatar(user=user)
            self.session.add(avatar)
        avatar.source_url = url
        avatar.content_type = response.headers.get("Content-Type")
        avatar.data = response.content
        self.session.flush()
        return avatar

    def purge_sso_records(self, user_ids: Iterable[int] | None = None) -> int:
        """Delete single-sign-on links, for all accounts or only ``user_ids``."""

        query = self.session.query(SingleSignOnRecord)
        if user_ids is not None:
            ids = list(user_ids)
            if not ids:
                return 0
            query = query.filter(SingleSignOnRecord.user_id.in_(ids))
        return query.delete(synchronize_session=False)

    # Groups ---------------------------------------------------------------------

    def find_group_by_name(self, name: str) -> Group | None:
        return self.session.query(Group).filter(Group.name == name).first()

    def find_or_create_group(self, *, name: str, visible: bool) -> tuple[Group, bool]:
        group = self.find_group_by_name(name)
        if group is not None:
            return group, False
        group = Group(name=name, visible=visible)
        self.session.add(group)
        self.session.flush()
        return group, True

    def set_group_members(self, group: Group, user_ids: Iterable[int]) -> None:
        """Replace the group's membership with exactly ``user_ids``."""

        wanted = list(dict.fromkeys(user_ids))
        current = {member.user_id: member for member in group.members}
        for user_id, member in current.items():
            if user_id not in wanted:
                group.members.remove(member)
        for user_id in wanted:
            if user_id not in current:
                group.members.append(GroupUser(user_id=user_id))
        self.session.flush()

    # Categories -----------------------------------------------------------------

    def find_category_by_name(self, name: str) -> Category | None:
        return self.session.query(Category).filter(Category.name == name).first()

    def create_category(self, *, name: str, color: str) -> Category:
        category = Category(name=name, color=color, slug=_slugify(name))
        self.session.add(category)
        self.session.flush()
        return category

    # Topics and posts -------------------------------------------------------------

    def get_topic(self, topic_id: int) -> Topic | None:
        return self.session.get(Topic, topic_id)

    def create_topic(
        self,
        *,
        title: str,
        raw: str,
        user_id: int,
        category_id: int | None,
        created_at: datetime,
        deleted_at: datetime | None = None,
    ) -> tuple[Topic, Post]:
        """Create a topic together with its opening post (post number 1)."""

        topic = Topic(
            title=title,
            user_id=user_id,
            category_id=category_id,
            created_at=created_at,
            deleted_at=deleted_at,
        )
        self.session.add(topic)
        self.session.flush()
        first_post = Post(
            topic_id=topic.id,
            user_id=user_id,
            post_number=1,
            raw=raw,
            created_at=created_at,
            deleted_at=deleted_at,
        )
        self.session.add(first_post)
        self.session.flush()
        return topic, first_post

    def create_post(
        self,
        *,
        topic_id: int,
        user_id: int,
        raw: str,
        created_at: datetime,
        reply_to_post_number: int | None = None,
        deleted_at: datetime | None = None,
    ) -> Post:
        topic = self.get_topic(topic_id)
        post = Post(
            topic_id=topic_id,
            user_id=user_id,
            post_number=topic.highest_post_number + 1,
            reply_to_post_number=reply_to_post_number,
            raw=raw,
            created_at=created_at,
            deleted_at=deleted_at,
        )
        self.session.add(post)
        self.session.flush()
        return post


def _slugify(name: str) -> str:
    return _SLUG_INVALID.sub("-", name.lower()).strip("-") or "category"

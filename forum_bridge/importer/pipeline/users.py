"""
Import of exported user records into forum accounts.
"""

from __future__ import annotations

import logging
from typing import Sequence

from forum_bridge.models import MergeLog, User
from forum_bridge.services.forum import AvatarFetchError, ForumService

from ..errors import ConsistencyError
from .common import BatchCounters, log_batch_progress
from .correlation import ENTITY_TYPE_USER, CorrelationStore
from .emitter import CorrelationEmitter
from .identifiers import encode_external_id
from .stream import UserRecord


class UserImporter:
    """Create accounts for exported users, merging into accounts that already own the email."""

    def __init__(
        self,
        store: CorrelationStore,
        forum: ForumService,
        emitter: CorrelationEmitter,
        *,
        run_id: int | None = None,
        fetch_avatars: bool = True,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.forum = forum
        self.emitter = emitter
        self.run_id = run_id
        self.fetch_avatars = fetch_avatars
        self.logger = logger or logging.getLogger(__name__)

    def import_batch(self, users: Sequence[UserRecord], total_count: int, offset: int) -> BatchCounters:
        counters = BatchCounters()
        for user in users:
            internal_key = encode_external_id(user.username)
            if self.store.lookup_by_internal_key(ENTITY_TYPE_USER, internal_key) is not None:
                counters.skipped += 1
                continue

            # An account with the same email would otherwise collide later on.
            existing = self.forum.find_user_by_email(user.email)
            if existing is not None:
                self._merge_into(existing, user, internal_key)
                counters.merged += 1
                continue

            account = self.forum.create_user(
                username=user.username,
                name=user.name,
                email=user.email,
                active=not user.is_disabled,
                custom_fields={
                    "import_id": internal_key,
                    "is_disabled": user.is_disabled,
                    "import_avatar_url": user.avatar_url,
                },
            )
            self.store.record_created(ENTITY_TYPE_USER, user.username, account.id)
            counters.created += 1

        log_batch_progress(self.logger, kind="user", counters=counters, total_count=total_count, offset=offset)

        for user in users:
            account = self._verify(user)
            self._attach_avatar(account, user)
            self.emitter.emit(
                {
                    "type": "user",
                    "guid": user.username,
                    "user_id": account.id,
                }
            )
        return counters

    def _merge_into(self, existing: User, user: UserRecord, internal_key: int) -> None:
        existing.set_custom_field("import_id", internal_key)
        existing.set_custom_field("is_disabled", user.is_disabled)
        self.store.record_created(ENTITY_TYPE_USER, user.username, existing.id, metadata={"merged": True})
        self.forum.session.add(
            MergeLog(
                run_id=self.run_id,
                entity_type=ENTITY_TYPE_USER,
                entity_id=existing.id,
                external_id=user.username,
                match_field="email",
                match_value=user.email,
            )
        )
        self.logger.warning(
            "Skipped creating user w/ email %s, they already exist. Merging with imported user.",
            user.email,
            extra={"importer_external_id": user.username, "importer_user_id": existing.id},
        )

    def _verify(self, user: UserRecord) -> User:
        entry = self.store.lookup_by_external_id(ENTITY_TYPE_USER, user.username)
        account = self.forum.get_user(entry.destination_id) if entry is not None else None
        if account is None:
            raise ConsistencyError(
                f"User {user.username} did not import. The destination may hold more than one account "
                f"with email {user.email}; correct this before continuing."
            )
        persisted = account.get_custom_field("is_disabled")
        if (persisted == "t") != user.is_disabled:
            raise ConsistencyError(f"is_disabled failed to import for {user.username}, is: {persisted!r}")
        return account

    def _attach_avatar(self, account: User, user: UserRecord) -> None:
        """
        Download the exported avatar onto ``account``.

        A failed download is logged as a warning and the user is still
        imported without an avatar; it is not raised as a ConsistencyError.
        The URL stays in the ``import_avatar_url`` field so a later run
        retries it.
        """
        if not self.fetch_avatars or account.has_uploaded_avatar:
            return
        url = account.get_custom_field("import_avatar_url") or user.avatar_url
        if not url:
            return
        try:
            self.forum.attach_avatar_from_url(account, url)
        except AvatarFetchError as exc:
            self.logger.warning(
                "Avatar for %s not attached: %s",
                user.username,
                exc,
                extra={"importer_external_id": user.username},
            )

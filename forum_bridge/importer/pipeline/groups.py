"""
Import of exported projects into forum groups.
"""

from __future__ import annotations

import logging
from typing import Sequence

from forum_bridge.models import Group
from forum_bridge.services.forum import ForumService

from ..errors import ConsistencyError
from .common import BatchCounters, log_batch_progress
from .correlation import ENTITY_TYPE_GROUP, ENTITY_TYPE_USER, CorrelationStore
from .emitter import CorrelationEmitter
from .identifiers import encode_external_id
from .stream import ProjectRecord


class GroupImporter:
    """Create one group per project and keep its membership equal to the contributors."""

    def __init__(
        self,
        store: CorrelationStore,
        forum: ForumService,
        emitter: CorrelationEmitter,
        *,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.forum = forum
        self.emitter = emitter
        self.logger = logger or logging.getLogger(__name__)

    def import_batch(self, projects: Sequence[ProjectRecord], total_count: int, offset: int) -> BatchCounters:
        counters = BatchCounters()
        for project in projects:
            internal_key = encode_external_id(project.guid)
            if self.store.lookup_by_internal_key(ENTITY_TYPE_GROUP, internal_key) is not None:
                counters.skipped += 1
                continue

            group, created = self.forum.find_or_create_group(name=project.guid, visible=project.is_public)
            group.set_custom_field("import_id", internal_key)
            group.set_custom_field("is_deleted", project.is_deleted)
            self.store.record_created(ENTITY_TYPE_GROUP, project.guid, group.id)
            if created:
                counters.created += 1
            else:
                counters.merged += 1

        log_batch_progress(self.logger, kind="project", counters=counters, total_count=total_count, offset=offset)

        for project in projects:
            group = self._load_group(project)
            member_ids = [
                self.store.require(ENTITY_TYPE_USER, contributor, referenced_by=f"project {project.guid}").destination_id
                for contributor in project.contributors
            ]
            self.forum.set_group_members(group, member_ids)

            if group.visible != project.is_public:
                raise ConsistencyError(
                    f"Visibility failed to import to group {group.name}: is {group.visible}, "
                    f"expected {project.is_public}"
                )
            persisted_deleted = group.get_custom_field("is_deleted")
            if (persisted_deleted == "t") != project.is_deleted:
                raise ConsistencyError(f"is_deleted failed to import for group {group.name}, is: {persisted_deleted!r}")

            self.emitter.emit(
                {
                    "type": "project",
                    "guid": project.guid,
                    "group_id": group.id,
                    "group_public": project.is_public,
                    "group_users": list(project.contributors),
                }
            )
        return counters

    def _load_group(self, project: ProjectRecord) -> Group:
        entry = self.store.require(ENTITY_TYPE_GROUP, project.guid)
        group = self.forum.session.get(Group, entry.destination_id)
        if group is None:
            raise ConsistencyError(f"Group {entry.destination_id} for project {project.guid} no longer exists")
        return group

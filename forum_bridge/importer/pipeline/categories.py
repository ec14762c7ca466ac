"""
Bootstrap of the fixed top-level categories imported topics are filed under.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from forum_bridge.models import Category
from forum_bridge.services.forum import ForumService

from .common import BatchCounters
from .correlation import ENTITY_TYPE_CATEGORY, CorrelationStore
from .identifiers import encode_external_id


@dataclass(frozen=True)
class CategoryDefinition:
    tag: str
    name: str
    color: str


# Tags match the ``type`` field of exported topic records.
FIXED_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(tag="files", name="Files", color="BF1E2E"),
    CategoryDefinition(tag="wiki", name="Wikis", color="3AB54A"),
    CategoryDefinition(tag="nodes", name="Projects", color="652D90"),
)
FIXED_CATEGORY_NAMES = frozenset(definition.name for definition in FIXED_CATEGORIES)


def bootstrap_categories(
    store: CorrelationStore,
    forum: ForumService,
    *,
    logger: logging.Logger | None = None,
) -> BatchCounters:
    """Look up or create each fixed category. Safe to call on every run."""

    logger = logger or logging.getLogger(__name__)
    counters = BatchCounters()
    for definition in FIXED_CATEGORIES:
        entry = store.lookup_by_external_id(ENTITY_TYPE_CATEGORY, definition.tag)
        if entry is not None and forum.session.get(Category, entry.destination_id) is not None:
            counters.skipped += 1
            continue

        category = forum.find_category_by_name(definition.name)
        if category is None:
            category = forum.create_category(name=definition.name, color=definition.color)
            counters.created += 1
        else:
            counters.merged += 1
        category.set_custom_field("import_id", encode_external_id(definition.tag))
        store.record_created(ENTITY_TYPE_CATEGORY, definition.tag, category.id, metadata={"name": definition.name})

    logger.info(
        "Categories ready: %d created, %d already present, %d adopted by name",
        counters.created,
        counters.skipped,
        counters.merged,
    )
    return counters

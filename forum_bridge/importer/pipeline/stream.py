"""
Reader for the newline-delimited JSON export stream.

The export is a sequence of sections. Each section starts with a count
marker (``{"type": "count", "object_type": ..., "count": ...}``) followed by
the records of that kind. The demultiplexer turns the stream into bounded
batches per kind while preserving record order.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Mapping, Union

from ..errors import ProtocolError

DEFAULT_BATCH_SIZE = 1000
COUNT_RECORD_TYPE = "count"


class EntityKind(str, enum.Enum):
    """Entity kinds announced by count markers."""

    USER = "user"
    PROJECT = "project"
    POST = "post"


class PostType(str, enum.Enum):
    TOPIC = "topic"
    COMMENT = "comment"


@dataclass(frozen=True)
class CountMarker:
    kind: EntityKind
    count: int


@dataclass(frozen=True)
class UserRecord:
    username: str
    email: str | None
    name: str | None
    avatar_url: str | None
    is_disabled: bool

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, line_number: int | None = None) -> "UserRecord":
        return cls(
            username=_require_str(payload, "username", line_number),
            email=_optional_str(payload, "email", line_number),
            name=_optional_str(payload, "name", line_number),
            avatar_url=_optional_str(payload, "avatar_url", line_number),
            is_disabled=_bool(payload, "is_disabled", line_number),
        )


@dataclass(frozen=True)
class ProjectRecord:
    guid: str
    is_public: bool
    is_deleted: bool
    contributors: tuple[str, ...]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, line_number: int | None = None) -> "ProjectRecord":
        return cls(
            guid=_require_str(payload, "guid", line_number),
            is_public=_bool(payload, "is_public", line_number),
            is_deleted=_bool(payload, "is_deleted", line_number),
            contributors=_str_tuple(payload, "contributors", line_number),
        )


@dataclass(frozen=True)
class PostRecord:
    """A topic-root or a comment. ``guid`` is the topic or comment guid."""

    post_type: PostType
    guid: str
    reply_to: str | None
    parent_guids: tuple[str, ...]
    title: str | None
    content: str
    user: str | None
    date_created: str
    is_deleted: bool
    category_tag: str | None

    @property
    def is_topic(self) -> bool:
        return self.post_type is PostType.TOPIC

    @property
    def project_guid(self) -> str:
        return self.parent_guids[0]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, line_number: int | None = None) -> "PostRecord":
        raw_type = payload.get("post_type")
        try:
            post_type = PostType(raw_type)
        except ValueError as exc:
            raise ProtocolError(f"unknown post_type {raw_type!r}", line_number=line_number) from exc

        if post_type is PostType.TOPIC:
            parent_guids = _str_tuple(payload, "parent_guids", line_number)
            if not parent_guids:
                raise ProtocolError("topic records need a non-empty parent_guids list", line_number=line_number)
            return cls(
                post_type=post_type,
                guid=_require_str(payload, "topic_guid", line_number),
                reply_to=None,
                parent_guids=parent_guids,
                title=_require_str(payload, "title", line_number),
                content=_optional_str(payload, "content", line_number) or "",
                user=_optional_str(payload, "user", line_number),
                date_created=_require_str(payload, "date_created", line_number),
                is_deleted=_bool(payload, "is_deleted", line_number),
                category_tag=_require_str(payload, "type", line_number),
            )

        return cls(
            post_type=post_type,
            guid=_require_str(payload, "comment_guid", line_number),
            reply_to=_require_str(payload, "reply_to", line_number),
            parent_guids=_str_tuple(payload, "parent_guids", line_number),
            title=_optional_str(payload, "title", line_number),
            content=_optional_str(payload, "content", line_number) or "",
            user=_require_str(payload, "user", line_number),
            date_created=_require_str(payload, "date_created", line_number),
            is_deleted=_bool(payload, "is_deleted", line_number),
            category_tag=_optional_str(payload, "type", line_number),
        )


ImportRecord = Union[UserRecord, ProjectRecord, PostRecord]

RECORD_PARSERS: Mapping[EntityKind, Callable[..., ImportRecord]] = {
    EntityKind.USER: UserRecord.from_payload,
    EntityKind.PROJECT: ProjectRecord.from_payload,
    EntityKind.POST: PostRecord.from_payload,
}


@dataclass(frozen=True)
class Batch:
    """A contiguous run of records of one kind."""

    kind: EntityKind
    records: tuple[ImportRecord, ...]
    total_count: int
    offset: int

    def __len__(self) -> int:
        return len(self.records)


def parse_count_marker(payload: Mapping[str, Any], *, line_number: int | None = None) -> CountMarker:
    raw_kind = payload.get("object_type")
    try:
        kind = EntityKind(raw_kind)
    except ValueError as exc:
        raise ProtocolError(f"unknown object_type {raw_kind!r} in count marker", line_number=line_number) from exc
    count = payload.get("count")
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ProtocolError(f"count marker needs a non-negative integer count, got {count!r}", line_number=line_number)
    return CountMarker(kind=kind, count=count)


class StreamDemultiplexer:
    """
    Group an ordered export stream into per-kind batches of bounded size.

    A count marker flushes the pending buffer under the previous kind and
    starts a new section with offset 0. A buffer reaching ``batch_size`` is
    flushed immediately so oversized sections never sit in memory at once.
    """

    def __init__(self, lines: Iterable[str], *, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.lines = lines
        self.batch_size = batch_size
        self.kind: EntityKind | None = None
        self.total_count = 0
        self.offset = 0
        self.lines_read = 0
        self._buffer: list[ImportRecord] = []

    def __iter__(self) -> Iterator[Batch]:
        return self.batches()

    def batches(self) -> Iterator[Batch]:
        for line_number, line in enumerate(self.lines, start=1):
            self.lines_read = line_number
            if not line.strip():
                continue
            payload = _decode_line(line, line_number)

            if payload.get("type") == COUNT_RECORD_TYPE:
                marker = parse_count_marker(payload, line_number=line_number)
                if self._buffer:
                    yield self._flush()
                self.kind = marker.kind
                self.total_count = marker.count
                self.offset = 0
                continue

            if self.kind is None:
                raise ProtocolError("record appears before any count marker", line_number=line_number)

            self._buffer.append(RECORD_PARSERS[self.kind](payload, line_number=line_number))
            if len(self._buffer) >= self.batch_size:
                yield self._flush()

        if self._buffer:
            yield self._flush()

    def _flush(self) -> Batch:
        batch = Batch(
            kind=self.kind,
            records=tuple(self._buffer),
            total_count=self.total_count,
            offset=self.offset,
        )
        self.offset += len(self._buffer)
        self._buffer = []
        return batch


def _decode_line(line: str, line_number: int) -> dict[str, Any]:
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON ({exc.msg})", line_number=line_number) from exc
    if not isinstance(payload, dict):
        raise ProtocolError("each line must hold a JSON object", line_number=line_number)
    return payload


def _require_str(payload: Mapping[str, Any], key: str, line_number: int | None) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ProtocolError(f"missing or empty field {key!r}", line_number=line_number)
    return value


def _optional_str(payload: Mapping[str, Any], key: str, line_number: int | None) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(f"field {key!r} must be a string", line_number=line_number)
    return value


def _bool(payload: Mapping[str, Any], key: str, line_number: int | None) -> bool:
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ProtocolError(f"field {key!r} must be a boolean", line_number=line_number)
    return value


def _str_tuple(payload: Mapping[str, Any], key: str, line_number: int | None) -> tuple[str, ...]:
    value = payload.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ProtocolError(f"field {key!r} must be a list of strings", line_number=line_number)
    return tuple(value)

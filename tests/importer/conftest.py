from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pytest

from forum_bridge.importer.pipeline import ImportPipeline
from forum_bridge.models import ImportRun, ImportRunStatus, db

DEFAULT_DATE = "2015-03-04T05:06:07.000000"


@dataclass
class ExportStreamBuilder:
    """Assemble an export stream in the order the source system writes it."""

    users: list[dict] = field(default_factory=list)
    projects: list[dict] = field(default_factory=list)
    posts: list[dict] = field(default_factory=list)

    def add_user(self, username, *, email=None, name=None, avatar_url=None, is_disabled=False):
        self.users.append(
            {
                "username": username,
                "email": email if email is not None else f"{username}@example.org",
                "name": name or username.title(),
                "avatar_url": avatar_url,
                "is_disabled": is_disabled,
            }
        )
        return self

    def add_project(self, guid, *, contributors=(), is_public=True, is_deleted=False):
        self.projects.append(
            {
                "guid": guid,
                "is_public": is_public,
                "is_deleted": is_deleted,
                "contributors": list(contributors),
            }
        )
        return self

    def add_topic(
        self,
        guid,
        *,
        project,
        parents=(),
        title=None,
        content="",
        category="nodes",
        is_deleted=False,
        date_created=DEFAULT_DATE,
    ):
        self.posts.append(
            {
                "post_type": "topic",
                "topic_guid": guid,
                "parent_guids": [project, *parents],
                "title": title or f"Discussion {guid}",
                "content": content,
                "date_created": date_created,
                "is_deleted": is_deleted,
                "type": category,
            }
        )
        return self

    def add_comment(self, guid, *, reply_to, user, content="", is_deleted=False, date_created=DEFAULT_DATE):
        self.posts.append(
            {
                "post_type": "comment",
                "comment_guid": guid,
                "reply_to": reply_to,
                "user": user,
                "content": content,
                "date_created": date_created,
                "is_deleted": is_deleted,
            }
        )
        return self

    def lines(self) -> list[str]:
        output: list[str] = []
        for kind, records in (("user", self.users), ("project", self.projects), ("post", self.posts)):
            output.append(json.dumps({"type": "count", "object_type": kind, "count": len(records)}))
            output.extend(json.dumps(record) for record in records)
        return output

    def write(self, path: Path) -> Path:
        path.write_text("\n".join(self.lines()) + "\n", encoding="utf-8")
        return path


@dataclass
class PipelineResult:
    summary: object
    records: list[dict]

    def of_type(self, record_type):
        return [record for record in self.records if record["type"] == record_type]

    def by_guid(self, record_type):
        return {record["guid"]: record for record in self.of_type(record_type)}


@pytest.fixture
def export_stream():
    return ExportStreamBuilder()


@pytest.fixture
def import_run():
    run = ImportRun(
        source="forum-export",
        status=ImportRunStatus.RUNNING,
        started_at=datetime.now(timezone.utc),
        counts_json={},
    )
    db.session.add(run)
    db.session.commit()
    return run


@pytest.fixture
def run_pipeline(app, import_run):
    """Run the pipeline over ``lines`` and return the summary plus the parsed output stream."""

    def _run(lines, *, batch_size=1000, **kwargs) -> PipelineResult:
        output = io.StringIO()
        kwargs.setdefault("fetch_avatars", False)
        pipeline = ImportPipeline(output, run_id=import_run.id, batch_size=batch_size, **kwargs)
        summary = pipeline.run(lines)
        records = [json.loads(line) for line in output.getvalue().splitlines() if line.strip()]
        return PipelineResult(summary=summary, records=records)

    return _run

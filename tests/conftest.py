"""Shared fixtures: an in-memory store and local storage layouts."""

import copy
import json
import re
from pathlib import Path

import pytest

from site_backup.adapters.models import StoreState, TextColumn
from site_backup.backup.archive import SnapshotArchive
from site_backup.errors import ColumnLengthViolationError, NoPriorStateError
from site_backup.state import PlatformState
from site_backup.storage.local import LocalBackend


class FakeStore:
    """In-memory ``StoreClient``.

    Tables are lists of row dicts.  Dumps are JSON, remaps use Python
    ``str.replace`` / ``re.sub``, and every table rewrite is applied to a
    copy that only replaces the table once all rows are done.

    ``fail_on`` maps an operation name to the exception it raises;
    ``fail_tables`` maps a table name to the exception ``remap_table``
    raises for it.
    """

    def __init__(
        self,
        tables: dict[str, list[dict]] | None = None,
        columns: dict[str, list[TextColumn]] | None = None,
        database: str = "forum",
        schema_version: str | None = "20240101000000",
    ) -> None:
        self.tables = tables if tables is not None else {}
        self.columns = columns if columns is not None else {}
        self.database = database
        self.schema_version = schema_version
        self.previous_tables: dict[str, list[dict]] | None = None
        self.fail_on: dict[str, Exception] = {}
        self.fail_tables: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.migrated = False
        self.closed = False

    def _enter(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail_on:
            raise self.fail_on[op]

    async def dump(self, destination: Path) -> None:
        self._enter("dump")
        Path(destination).write_text(json.dumps(self.tables))

    async def apply(self, dump_path: Path) -> None:
        self._enter("apply")
        restored = json.loads(Path(dump_path).read_text())
        self.previous_tables = copy.deepcopy(self.tables)
        self.tables = restored

    async def migrate(self) -> None:
        self._enter("migrate")
        self.migrated = True

    async def current_state(self) -> StoreState:
        self._enter("current_state")
        return StoreState(database=self.database, schema_version=self.schema_version)

    async def rollback_to(self, point) -> None:
        self._enter("rollback_to")
        if not point.swapped:
            return
        if self.previous_tables is None:
            raise NoPriorStateError()
        self.tables = self.previous_tables
        self.previous_tables = None

    async def text_columns(self) -> dict[str, list[TextColumn]]:
        self._enter("text_columns")
        return {table: list(cols) for table, cols in self.columns.items()}

    async def remap_table(
        self,
        table: str,
        columns: list[TextColumn],
        search: str,
        replace: str,
        regex: bool = False,
        skip_max_length_violations: bool = False,
    ) -> int:
        self._enter("remap_table")
        if table in self.fail_tables:
            raise self.fail_tables[table]

        staged = copy.deepcopy(self.tables.get(table, []))
        changed = 0
        for row in staged:
            row_changed = False
            for column in columns:
                value = row.get(column.name)
                if value is None:
                    continue
                if regex:
                    if not re.search(search, value):
                        continue
                    new_value = re.sub(search, replace, value)
                else:
                    if search not in value:
                        continue
                    new_value = value.replace(search, replace)
                if column.max_length is not None and len(new_value) > column.max_length:
                    if skip_max_length_violations:
                        continue
                    raise ColumnLengthViolationError(
                        f"Value too long for {table}.{column.name}", table=table
                    )
                row[column.name] = new_value
                row_changed = True
            changed += row_changed

        self.tables[table] = staged
        return changed

    async def close(self) -> None:
        self.closed = True


def forum_store() -> FakeStore:
    """A small forum: posts with bounded titles and unbounded bodies."""
    return FakeStore(
        tables={
            "posts": [
                {"id": 1, "title": "Welcome", "body": "See http://old.example.com/faq"},
                {"id": 2, "title": "Links", "body": "Mirror at http://old.example.com"},
            ],
            "users": [
                {"id": 1, "website": "http://old.example.com/~alice"},
                {"id": 2, "website": None},
            ],
        },
        columns={
            "posts": [
                TextColumn(table="posts", name="title", max_length=40),
                TextColumn(table="posts", name="body"),
            ],
            "users": [TextColumn(table="users", name="website", max_length=255)],
        },
    )


@pytest.fixture
def store() -> FakeStore:
    return forum_store()


@pytest.fixture
def platform() -> PlatformState:
    return PlatformState()


@pytest.fixture
def uploads_dir(tmp_path: Path) -> Path:
    uploads = tmp_path / "site" / "uploads"
    (uploads / "original" / "1X").mkdir(parents=True)
    (uploads / "original" / "1X" / "logo.png").write_bytes(b"\x89PNG fake image")
    (uploads / "robots.txt").write_text("User-agent: *\n")
    return uploads


@pytest.fixture
def backend(tmp_path: Path) -> LocalBackend:
    return LocalBackend(tmp_path / "backups")


@pytest.fixture
def archive(store: FakeStore, uploads_dir: Path) -> SnapshotArchive:
    return SnapshotArchive(store, uploads_dir=uploads_dir, site_name="My Forum", source_version="3.2.0")

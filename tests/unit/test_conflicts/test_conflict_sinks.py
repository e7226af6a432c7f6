"""Unit tests for conflict log sinks."""

import json
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from src.conflicts.models import ArticleState, ConflictLogEntry, ConflictType
from src.conflicts.sinks import (
    ConflictLogSink,
    JsonlConflictLogSink,
    StoreConflictLogSink,
)
from src.store.store import SyncStore
from tests.helpers.store import open_store
from tests.helpers.time import FIXED_NOW, FakeClock


def make_entry(inoreader_id: str = "item/1", session: str = "sync_1") -> ConflictLogEntry:
    return ConflictLogEntry(
        timestamp=FIXED_NOW,
        sync_session_id=session,
        article_id="1",
        inoreader_id=inoreader_id,
        conflict_type=ConflictType.READ_STATUS,
        local_value=ArticleState(read=True, starred=False),
        remote_value=ArticleState(read=False, starred=False),
    )


@pytest.fixture
def tmp_dir() -> Generator[Path]:
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestJsonlConflictLogSink:
    """Tests for the JSON lines sink."""

    def test_appends_lines(self, tmp_dir: Path) -> None:
        """Test each entry becomes one line, in order."""
        path = tmp_dir / "logs" / "conflicts.jsonl"
        sink = JsonlConflictLogSink(path)

        sink.append(make_entry("a"))
        sink.append(make_entry("b"))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert [json.loads(line)["inoreader_id"] for line in lines] == ["a", "b"]
        assert json.loads(lines[0])["resolution"] == "remote"

    def test_existing_content_kept(self, tmp_dir: Path) -> None:
        """Test a new sink appends rather than truncates."""
        path = tmp_dir / "conflicts.jsonl"
        JsonlConflictLogSink(path).append(make_entry("a"))
        JsonlConflictLogSink(path).append(make_entry("b"))

        assert len(path.read_text(encoding="utf-8").splitlines()) == 2

    def test_satisfies_protocol(self, tmp_dir: Path) -> None:
        """Test the sink matches the ConflictLogSink protocol."""
        assert isinstance(JsonlConflictLogSink(tmp_dir / "x.jsonl"), ConflictLogSink)


class TestStoreConflictLogSink:
    """Tests for the sync_conflicts table sink."""

    @pytest.fixture
    def store(self, tmp_dir: Path) -> Generator[SyncStore]:
        """Connected store."""
        store = open_store(tmp_dir / "sync.db", FakeClock())
        yield store
        store.close()

    def test_appends_rows(self, store: SyncStore) -> None:
        """Test entries are stored with their full payload."""
        sink = StoreConflictLogSink(store)
        sink.append(make_entry("a", session="s1"))
        sink.append(make_entry("b", session="s2"))

        all_payloads = store.get_conflict_payloads()
        s2_payloads = store.get_conflict_payloads("s2")

        assert [json.loads(p)["inoreader_id"] for p in all_payloads] == ["a", "b"]
        assert len(s2_payloads) == 1
        assert ConflictLogEntry.model_validate_json(s2_payloads[0]) == make_entry(
            "b", session="s2"
        )

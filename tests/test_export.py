"""Tests for the export orchestrator pipelines."""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from favorites.errors import ShareError
from favorites.export.delivery import DownloadsPromoter
from favorites.export.formats import ExportFormat
from favorites.export.orchestrator import ExportOrchestrator
from favorites.storage.cursor import ResultSet
from favorites.storage.db import SavedStoriesDB
from favorites.storage.models import SavedStory


# --- Fixtures ---

class RecordingNotifier:
    """Collects progress calls as (event, payload) tuples."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Any]] = []
        self.messages: List[str] = []

    def started(self) -> None:
        self.events.append(("started", None))

    def succeeded(self, reference: Optional[Path]) -> None:
        self.events.append(("succeeded", reference))

    def failed(self) -> None:
        self.events.append(("failed", None))

    def message(self, text: str) -> None:
        self.messages.append(text)


class BrokenStore:
    async def query_all(self) -> ResultSet:
        raise RuntimeError("database is locked")

    async def query_by_title(self, title: str) -> ResultSet:
        raise RuntimeError("database is locked")


class CorruptStore:
    async def query_all(self) -> ResultSet:
        return ResultSet(["url", "title"], [("http://a", "A")])


@pytest.fixture
async def db(tmp_path):
    store = SavedStoriesDB(str(tmp_path / "export.db"))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def seeded_db(db):
    await db.insert(SavedStory(item_id="1", url="http://a", title="Alpha", time=200))
    await db.insert(SavedStory(item_id="2", url="http://b", title="Beta", time=100))
    return db


@pytest.fixture
def config(tmp_path):
    return {
        "export": {
            "directory": str(tmp_path / "exports"),
            "basename": "saved",
            "share_delay_seconds": 0,
        },
        "promotion": {
            "mode": "legacy",
            "downloads_dir": str(tmp_path / "Downloads"),
        },
    }


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def share():
    return MagicMock()


def make_orchestrator(store, notifier, config, share, **kwargs) -> ExportOrchestrator:
    return ExportOrchestrator(store, notifier, config, share_action=share, **kwargs)


# --- Share pipeline ---

class TestExportToShare:
    async def test_writes_file_and_notifies(self, seeded_db, notifier, config, share, tmp_path):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        path = await orchestrator.export_to_share(None, ExportFormat.CSV)
        await orchestrator.drain()

        assert path == tmp_path / "exports" / "saved.csv"
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 3
        assert lines[1].startswith('"Alpha",')
        assert notifier.events == [("started", None), ("succeeded", path)]

    async def test_promotes_and_shares_after_success(self, seeded_db, notifier, config, share, tmp_path):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        path = await orchestrator.export_to_share(None, ExportFormat.MARKDOWN)
        await orchestrator.drain()

        share.assert_called_once_with(path)
        promoted = list((tmp_path / "Downloads").iterdir())
        assert len(promoted) == 1
        assert promoted[0].name.startswith("saved-")
        assert promoted[0].suffix == ".md"
        assert promoted[0].read_bytes() == path.read_bytes()
        assert notifier.messages[0].startswith("✓ Saved to Downloads folder:")

    async def test_filter_limits_items(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        path = await orchestrator.export_to_share("bet", ExportFormat.JSON)
        await orchestrator.drain()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [s["id"] for s in data["stories"]] == ["2"]

    async def test_replaces_previous_export(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        await orchestrator.export_to_share(None, ExportFormat.TXT)
        path = await orchestrator.export_to_share("alpha", ExportFormat.TXT)
        await orchestrator.drain()
        content = path.read_text(encoding="utf-8")
        assert "Alpha" in content
        assert "Beta" not in content

    async def test_empty_result_fails_without_file(self, db, notifier, config, share, tmp_path):
        orchestrator = make_orchestrator(db, notifier, config, share)
        assert await orchestrator.export_to_share(None, ExportFormat.CSV) is None
        await orchestrator.drain()

        assert notifier.events == [("started", None), ("failed", None)]
        assert not (tmp_path / "exports").exists()
        assert not (tmp_path / "Downloads").exists()
        share.assert_not_called()

    async def test_no_match_for_filter_fails(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        assert await orchestrator.export_to_share("zzz", ExportFormat.CSV) is None
        assert notifier.events[-1] == ("failed", None)

    async def test_query_error_fails(self, notifier, config, share):
        orchestrator = make_orchestrator(BrokenStore(), notifier, config, share)
        assert await orchestrator.export_to_share(None, ExportFormat.HTML) is None
        assert notifier.events[-1] == ("failed", None)

    async def test_corrupt_rows_fail(self, notifier, config, share):
        orchestrator = make_orchestrator(CorruptStore(), notifier, config, share)
        assert await orchestrator.export_to_share(None, ExportFormat.CSV) is None
        assert notifier.events[-1] == ("failed", None)

    async def test_unwritable_export_dir_fails(self, seeded_db, notifier, config, share, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config["export"]["directory"] = str(blocker / "exports")
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        assert await orchestrator.export_to_share(None, ExportFormat.CSV) is None
        assert notifier.events[-1] == ("failed", None)

    async def test_promotion_failure_keeps_success(self, seeded_db, notifier, config, share):
        promoter = MagicMock(spec=DownloadsPromoter)
        promoter.enabled = True
        promoter.promote.return_value = None
        orchestrator = make_orchestrator(seeded_db, notifier, config, share, promoter=promoter)

        path = await orchestrator.export_to_share(None, ExportFormat.CSV)
        await orchestrator.drain()
        assert path is not None
        assert notifier.events[-1] == ("succeeded", path)
        assert notifier.messages == ["Could not save to Downloads. Use share option."]
        share.assert_called_once_with(path)

    async def test_promotion_exception_is_contained(self, seeded_db, notifier, config, share):
        promoter = MagicMock(spec=DownloadsPromoter)
        promoter.enabled = True
        promoter.promote.side_effect = OSError("read-only")
        orchestrator = make_orchestrator(seeded_db, notifier, config, share, promoter=promoter)

        path = await orchestrator.export_to_share(None, ExportFormat.CSV)
        await orchestrator.drain()
        assert notifier.events[-1] == ("succeeded", path)
        assert notifier.messages == ["Could not save to Downloads. Use share option."]

    async def test_share_failure_is_logged_only(self, seeded_db, notifier, config, caplog):
        share = MagicMock(side_effect=ShareError("no handler"))
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        with caplog.at_level(logging.ERROR, logger="favorites.export.orchestrator"):
            path = await orchestrator.export_to_share(None, ExportFormat.CSV)
            await orchestrator.drain()
        assert notifier.events[-1] == ("succeeded", path)
        assert "Failed to open share dialog" in caplog.text

    async def test_promotion_off_and_no_share(self, seeded_db, notifier, config, tmp_path):
        config["promotion"]["mode"] = "off"
        orchestrator = make_orchestrator(seeded_db, notifier, config, None)
        path = await orchestrator.export_to_share(None, ExportFormat.CSV)
        await orchestrator.drain()
        assert path.exists()
        assert notifier.messages == []
        assert not (tmp_path / "Downloads").exists()

    async def test_concurrent_exports_keep_their_own_format(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        csv_task = orchestrator.export_to_share(None, ExportFormat.CSV)
        json_task = orchestrator.export_to_share(None, ExportFormat.JSON)
        csv_path, json_path = await csv_task, await json_task
        await orchestrator.drain()

        assert csv_path.suffix == ".csv"
        assert json_path.suffix == ".json"
        assert csv_path.read_text(encoding="utf-8").startswith("Title,URL")
        assert len(json.loads(json_path.read_text(encoding="utf-8"))["stories"]) == 2


# --- Destination pipeline ---

class TestExportToDestination:
    async def test_writes_to_path(self, seeded_db, notifier, config, share, tmp_path):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        target = tmp_path / "picked.html"
        assert await orchestrator.export_to_destination(None, ExportFormat.HTML, target) is True
        await orchestrator.drain()

        assert target.read_text(encoding="utf-8").count('<div class="story">') == 2
        assert notifier.events == [("started", None), ("succeeded", None)]
        share.assert_not_called()
        assert not (tmp_path / "Downloads").exists()

    async def test_writes_to_open_sink_without_closing(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        sink = io.BytesIO()
        assert await orchestrator.export_to_destination("alpha", ExportFormat.MARKDOWN, sink) is True
        assert not sink.closed
        assert b"## Alpha" in sink.getvalue()

    async def test_empty_result_fails(self, db, notifier, config, share, tmp_path):
        orchestrator = make_orchestrator(db, notifier, config, share)
        target = tmp_path / "picked.csv"
        assert await orchestrator.export_to_destination(None, ExportFormat.CSV, target) is False
        assert not target.exists()
        assert notifier.events == [("started", None), ("failed", None)]

    async def test_missing_destination_fails(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        assert await orchestrator.export_to_destination(None, ExportFormat.CSV, None) is False
        assert notifier.events[-1] == ("failed", None)

    async def test_closed_sink_fails(self, seeded_db, notifier, config, share):
        orchestrator = make_orchestrator(seeded_db, notifier, config, share)
        sink = io.BytesIO()
        sink.close()
        assert await orchestrator.export_to_destination(None, ExportFormat.TXT, sink) is False
        assert notifier.events[-1] == ("failed", None)

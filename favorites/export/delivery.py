"""Export delivery: ephemeral file, caller destinations, Downloads promotion, share."""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Protocol, Union

import click

from favorites.errors import DeliveryError, PromotionError, ShareError
from favorites.export.formats import ExportFormat

logger = logging.getLogger(__name__)

DEFAULT_BASENAME = "saved-stories-export"
DIRECTORY_DOWNLOADS = "Downloads"
PROMOTION_MODES = ("auto", "modern", "legacy", "off")

Destination = Union[str, "os.PathLike[str]", BinaryIO]


# --- Primary delivery ---

def write_export_file(directory: Union[str, Path], basename: str, fmt: ExportFormat, content: str) -> Path:
    """Write ``content`` to ``<directory>/<basename>.<ext>``, replacing any previous export."""
    path = Path(directory) / f"{basename}.{fmt.extension}"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            path.unlink()
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise DeliveryError(f"Could not write export file {path}: {e}") from e
    return path


def write_to_destination(destination: Optional[Destination], content: str) -> None:
    """Write ``content`` as UTF-8 to a path, or to an open binary sink (left open)."""
    if destination is None:
        raise DeliveryError("No destination to write to")
    data = content.encode("utf-8")
    try:
        if isinstance(destination, (str, os.PathLike)):
            with open(destination, "wb") as f:
                f.write(data)
                f.flush()
        else:
            destination.write(data)
            destination.flush()
    except (OSError, ValueError) as e:
        raise DeliveryError(f"Could not write to destination: {e}") from e


# --- Shared index (modern era) ---

class SharedIndex(Protocol):
    """Registry of user-visible shared files."""

    def insert(self, display_name: str, mime_type: str, relative_path: str) -> Optional[str]:
        """Register an entry; returns its reference or None if refused."""
        ...

    def open_output(self, entry: str) -> BinaryIO:
        ...


class DownloadsIndex:
    """A directory tree plus a JSON manifest of the files registered in it.

    Entries are addressed by their path relative to ``root``.
    """

    MANIFEST_NAME = ".shared-index.json"

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()
        self._lock = threading.Lock()

    @property
    def manifest_path(self) -> Path:
        return self.root / self.MANIFEST_NAME

    def entries(self) -> List[Dict[str, Any]]:
        if not self.manifest_path.exists():
            return []
        with open(self.manifest_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def insert(self, display_name: str, mime_type: str, relative_path: str) -> Optional[str]:
        with self._lock:
            entries = self.entries()
            taken = {e["entry"] for e in entries}
            entry = _unique_name(Path(relative_path), display_name, taken)
            (self.root / entry).parent.mkdir(parents=True, exist_ok=True)
            entries.append({
                "entry": entry,
                "display_name": Path(entry).name,
                "mime_type": mime_type,
                "relative_path": relative_path,
                "registered_at": datetime.now().isoformat(timespec="seconds"),
            })
            with open(self.manifest_path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
        logger.debug("Registered shared entry %s", entry)
        return entry

    def open_output(self, entry: str) -> BinaryIO:
        with self._lock:
            known = any(e["entry"] == entry for e in self.entries())
        if not known:
            raise PromotionError(f"Unknown shared entry: {entry}")
        return open(self.root / entry, "wb")


def _unique_name(directory: Path, name: str, taken: set) -> str:
    stem, suffix = os.path.splitext(name)
    candidate = (directory / name).as_posix()
    n = 1
    while candidate in taken:
        candidate = (directory / f"{stem} ({n}){suffix}").as_posix()
        n += 1
    return candidate


# --- Promotion ---

def resolve_downloads_dir() -> Path:
    """Public Downloads directory: $XDG_DOWNLOAD_DIR, else ~/Downloads."""
    env = os.environ.get("XDG_DOWNLOAD_DIR")
    if env:
        return Path(env).expanduser()
    return Path.home() / DIRECTORY_DOWNLOADS


class DownloadsPromoter:
    """Best-effort copy of an export file into the shared Downloads location.

    With a shared index (modern era) the file is registered and streamed into
    the index entry; without one (legacy era) it is copied straight into the
    Downloads directory. ``promote`` never raises.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        index: Optional[SharedIndex] = None,
        downloads_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        promotion = config.get("promotion", {})
        self.mode: str = promotion.get("mode", "auto")
        if self.mode not in PROMOTION_MODES:
            raise ValueError(f"promotion.mode must be one of {PROMOTION_MODES}, got {self.mode!r}")
        self.basename: str = config.get("export", {}).get("basename", DEFAULT_BASENAME)

        if index is None and promotion.get("index_dir") and self.mode in ("auto", "modern"):
            index = DownloadsIndex(promotion["index_dir"])
        self.index = index

        downloads_dir = downloads_dir or promotion.get("downloads_dir")
        self.downloads_dir = Path(downloads_dir).expanduser() if downloads_dir else None

    @property
    def enabled(self) -> bool:
        return self.mode != "off"

    @property
    def uses_index(self) -> bool:
        return self.mode == "modern" or (self.mode == "auto" and self.index is not None)

    def filename_for(self, fmt: ExportFormat, now: Optional[datetime] = None) -> str:
        timestamp = (now or datetime.now()).strftime("%Y-%m-%d_%H%M")
        return f"{self.basename}-{timestamp}.{fmt.extension}"

    def promote(self, source: Path, fmt: ExportFormat, now: Optional[datetime] = None) -> Optional[str]:
        """Copy ``source`` into Downloads; returns where it landed, or None."""
        if self.mode == "off":
            return None
        filename = self.filename_for(fmt, now)
        try:
            if self.uses_index:
                saved = self._promote_to_index(source, filename, fmt)
            else:
                saved = self._promote_to_directory(source, filename)
        except Exception as e:
            logger.error("Failed to save %s to Downloads: %s", source.name, e)
            return None
        logger.info("Saved export to Downloads: %s", saved)
        return saved

    def _promote_to_index(self, source: Path, filename: str, fmt: ExportFormat) -> str:
        if self.index is None:
            raise PromotionError("No shared index configured")
        entry = self.index.insert(filename, fmt.mime_type, DIRECTORY_DOWNLOADS)
        if entry is None:
            raise PromotionError(f"Shared index refused {filename}")
        with open(source, "rb") as src, self.index.open_output(entry) as dst:
            shutil.copyfileobj(src, dst)
        return entry

    def _promote_to_directory(self, source: Path, filename: str) -> str:
        downloads = self.downloads_dir or resolve_downloads_dir()
        downloads.mkdir(parents=True, exist_ok=True)
        taken = {p.as_posix() for p in downloads.iterdir()}
        dest = Path(_unique_name(downloads, filename, taken))
        with open(source, "rb") as src, open(dest, "xb") as dst:
            shutil.copyfileobj(src, dst)
        return str(dest.resolve())


# --- Share ---

def open_with_default_app(path: Path) -> None:
    """Hand the export to the desktop's default handler for its type."""
    code = click.launch(str(path))
    if code != 0:
        raise ShareError(f"Launcher exited with status {code} for {path}")

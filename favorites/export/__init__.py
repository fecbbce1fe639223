"""Export of saved stories: serializers, delivery, progress, orchestration."""

from favorites.export.delivery import DownloadsIndex, DownloadsPromoter
from favorites.export.formats import ExportFormat, serialize
from favorites.export.notifier import ConsoleNotifier, NotifierState, ProgressNotifier
from favorites.export.orchestrator import ExportOrchestrator

__all__ = [
    "DownloadsIndex",
    "DownloadsPromoter",
    "ExportFormat",
    "serialize",
    "ConsoleNotifier",
    "NotifierState",
    "ProgressNotifier",
    "ExportOrchestrator",
]

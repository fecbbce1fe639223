"""Export progress side channel: started -> succeeded | failed."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from rich.console import Console
from rich.status import Status

logger = logging.getLogger(__name__)


class NotifierState(Enum):
    IDLE = "idle"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProgressNotifier(Protocol):
    """Presentation calls made by the export orchestrator."""

    def started(self) -> None:
        ...

    def succeeded(self, reference: Optional[Path]) -> None:
        ...

    def failed(self) -> None:
        ...

    def message(self, text: str) -> None:
        """Low-severity secondary signal (e.g. promotion result)."""
        ...


class ConsoleNotifier:
    """Renders export progress on a rich console.

    Each ``started`` opens one export in flight; each ``succeeded`` / ``failed``
    closes one and prints its own line. The spinner runs while any export is
    in flight. Finishing with nothing in flight is logged and ignored.
    """

    def __init__(self, console: Optional[Console] = None, title: str = "Export saved stories"):
        self.console = console or Console()
        self.title = title
        self.state = NotifierState.IDLE
        self._status: Optional[Status] = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def started(self) -> None:
        self._in_flight += 1
        self.state = NotifierState.STARTED
        if self._status is None:
            self._status = self.console.status(f"[bold green]{self.title}...")
            self._status.start()

    def succeeded(self, reference: Optional[Path]) -> None:
        if not self._finish(NotifierState.SUCCEEDED):
            return
        if reference is not None:
            self.console.print(f"[green]✓[/green] {self.title}: [bold]{reference}[/bold]")
        else:
            self.console.print(f"[green]✓[/green] {self.title}: export saved successfully")

    def failed(self) -> None:
        if not self._finish(NotifierState.FAILED):
            return
        self.console.print(
            f"[red]✗[/red] {self.title}: export failed - no saved stories or error occurred"
        )

    def message(self, text: str) -> None:
        self.console.print(f"[dim]{text}[/dim]")

    def _finish(self, state: NotifierState) -> bool:
        if self._in_flight == 0:
            logger.warning("Ignoring %s notification with no export in flight", state.value)
            return False
        self._in_flight -= 1
        if self._in_flight == 0:
            self._teardown()
            self.state = state
        return True

    def _teardown(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

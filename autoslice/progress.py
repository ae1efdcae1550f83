"""Progress reporting for regeneration passes."""

from __future__ import annotations

from typing import Protocol


class ProgressReporter(Protocol):
    """Protocol for pass progress reporting."""

    def update_status(self, message: str) -> None: ...
    def step(self, step_name: str, current: int, total: int) -> None: ...


class RichProgressReporter:
    """Rich-based reporter printing status lines to the console."""

    def __init__(self) -> None:
        from rich.console import Console
        from rich.markup import escape

        self.console = Console(stderr=True)
        self._escape = escape

    def update_status(self, message: str) -> None:
        self.console.print(f"[bold blue]>>>[/] {self._escape(message)}")

    def step(self, step_name: str, current: int, total: int) -> None:
        self.console.print(f"  [dim]\\[{current}/{total}][/] {self._escape(step_name)}")


class NullProgressReporter:
    """No-op reporter for --json mode or testing."""

    def update_status(self, message: str) -> None:
        pass

    def step(self, step_name: str, current: int, total: int) -> None:
        pass

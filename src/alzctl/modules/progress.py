"""
Progress Display Module

Show phase-by-phase progress during a landing-zone deployment.

Security Requirements:
- No credential exposure in output
- Thread-safe: resources of one wave are reported from worker threads
"""

import logging
import sys
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ProgressStage(Enum):
    """Progress stage indicators."""

    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    WARNING = "warning"


@dataclass
class ProgressUpdate:
    """Progress update information."""

    stage: ProgressStage
    message: str
    timestamp: float
    operation: str


class ProgressDisplay:
    """
    Real-time progress display for long operations.

    Features:
    - Stage-based updates
    - Time tracking per phase
    - Console output (stdout by default)
    """

    SYMBOLS = {
        ProgressStage.STARTED: "►",
        ProgressStage.IN_PROGRESS: "...",
        ProgressStage.COMPLETED: "✓",
        ProgressStage.FAILED: "✗",
        ProgressStage.WARNING: "⚠",
    }

    ASCII_SYMBOLS = {
        ProgressStage.STARTED: ">",
        ProgressStage.IN_PROGRESS: "...",
        ProgressStage.COMPLETED: "OK",
        ProgressStage.FAILED: "FAIL",
        ProgressStage.WARNING: "WARN",
    }

    def __init__(self, use_unicode: bool = True, output_file=None, quiet: bool = False):
        """
        Initialize progress display.

        Args:
            use_unicode: Use Unicode symbols (True) or ASCII (False)
            output_file: Output file object (default: sys.stdout)
            quiet: Record updates without printing them
        """
        self.use_unicode = use_unicode
        self.output_file = output_file or sys.stdout
        self.quiet = quiet
        self.current_operation: Optional[str] = None
        self.start_time: Optional[float] = None
        self.updates: list[ProgressUpdate] = []
        self._lock = threading.Lock()

    def start_operation(self, name: str, estimated_seconds: Optional[int] = None) -> None:
        """
        Begin showing progress for an operation.

        Example:
            >>> progress = ProgressDisplay()
            >>> progress.start_operation("Phase 3: Hub Services", estimated_seconds=600)
        """
        self.current_operation = name
        self.start_time = time.time()

        message = f"Starting: {name}"
        if estimated_seconds:
            minutes = estimated_seconds / 60
            message += f" (estimated: {minutes:.1f} minutes)"

        self.update(message, ProgressStage.STARTED)

    def update(self, message: str, stage: ProgressStage = ProgressStage.IN_PROGRESS) -> None:
        """Record and print a progress line."""
        update = ProgressUpdate(
            stage=stage,
            message=message,
            timestamp=time.time(),
            operation=self.current_operation or "unknown",
        )
        with self._lock:
            self.updates.append(update)
            if not self.quiet:
                self._print(self._format_update(update))

    def warning(self, message: str) -> None:
        self.update(message, ProgressStage.WARNING)

    def complete(self, success: bool = True, message: Optional[str] = None) -> None:
        """
        Mark operation complete, appending the elapsed time.
        """
        if success:
            stage = ProgressStage.COMPLETED
            default_message = f"{self.current_operation} completed"
        else:
            stage = ProgressStage.FAILED
            default_message = f"{self.current_operation} failed"

        final_message = message or default_message

        if self.start_time:
            elapsed = time.time() - self.start_time
            final_message += f" ({format_duration(elapsed)})"

        self.update(final_message, stage)

        self.current_operation = None
        self.start_time = None

    def _format_update(self, update: ProgressUpdate) -> str:
        symbols = self.SYMBOLS if self.use_unicode else self.ASCII_SYMBOLS
        symbol = symbols.get(update.stage, "")
        return f"{symbol} {update.message}"

    def _print(self, message: str) -> None:
        print(message, file=self.output_file, flush=True)

    def get_updates(self) -> list[ProgressUpdate]:
        """Get a copy of all progress updates recorded."""
        with self._lock:
            return self.updates.copy()


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Example:
        >>> format_duration(150)
        '2m 30s'
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


__all__ = ["ProgressDisplay", "ProgressStage", "ProgressUpdate", "format_duration"]

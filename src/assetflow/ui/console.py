"""Console output formatting utilities for assetflow."""

from __future__ import annotations

import sys
from typing import Iterable, List, Optional

from ..model import FAILED, SKIPPED, SUCCESS, ExecutionRecord


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, pipeline: str, tasks: List[str]) -> None:
        """Print build start information."""
        print("\nBUILD STARTED")
        print(f"Pipeline: {pipeline}")
        print(f"Tasks: {', '.join(tasks) if tasks else '(none)'}")
        print()

    def print_record(self, rec: ExecutionRecord) -> None:
        """Print one task outcome as it completes."""
        if rec.status == SUCCESS:
            if rec.invoked:
                print(f"✓ {rec.task} ({rec.invoked} built, {rec.duration:.2f}s)")
            else:
                print(f"✓ {rec.task} (up to date)")
        elif rec.status == SKIPPED:
            print(f"⏭ {rec.task} (skipped: {rec.reason})")
        else:
            print(f"✗ {rec.task}")
            reason = rec.reason or "Unknown error"
            if self.debug:
                print(f"  Error details: {reason}")
            else:
                print(f"  Error: {reason.splitlines()[0]}")

    def print_results(self, records: Iterable[ExecutionRecord]) -> None:
        """Print final results summary."""
        records = list(records)
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for rec in records:
            status_display = "SUCCESS" if rec.status == SUCCESS else rec.status.upper()
            if rec.reason and rec.status != SUCCESS:
                status_display += f" ({rec.reason.splitlines()[0]})"
            print(f"  {rec.task}: {status_display}")
        failed = sum(1 for r in records if r.status == FAILED)
        skipped = sum(1 for r in records if r.status == SKIPPED)
        outputs = sum(len(r.outputs) for r in records)
        print(f"\n{len(records)} task(s), {outputs} file(s) written, {failed} failed, {skipped} skipped")

    def print_watch_started(self, paths: Iterable[str], url: Optional[str] = None) -> None:
        """Print watch mode banner."""
        print("\nWATCHING")
        for p in paths:
            print(f"  {p}")
        if url:
            print(f"Serving: {url}")
        print("Press Ctrl+C to stop.")

    def print_rebuild(self, paths: List[str], records: List[ExecutionRecord]) -> None:
        """Print the outcome of one watch-triggered rebuild."""
        print(f"\nCHANGED: {len(paths)} file(s)")
        for rec in records:
            self.print_record(rec)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console

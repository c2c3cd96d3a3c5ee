"""
User Output Abstraction

Console messages for the operator (role banners, prompts, the final result)
are kept apart from debug logging. Everything goes through UserOutput so
tests can capture it and --quiet can silence it.
"""

import logging
import sys
from typing import Any, Dict, List, Optional, TextIO


class UserOutput:
    """
    Unified handler for user-facing output.

    Usage:
        output = UserOutput()
        output.info("Waiting for workers...")
        output.section("Factorization Results")
        output.item("Time", "1.25s")
    """

    def __init__(
        self,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        quiet: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.quiet = quiet
        self.logger = logger or logging.getLogger(__name__)

    def info(self, message: str, log: bool = False) -> None:
        """
        Print informational message to user.

        Args:
            message: Message to display
            log: If True, also log at info level
        """
        if not self.quiet:
            print(message, file=self.stdout)
        if log:
            self.logger.info(message)

    def success(self, message: str, log: bool = True) -> None:
        if not self.quiet:
            print(message, file=self.stdout)
        if log:
            self.logger.info(message)

    def warning(self, message: str, log: bool = True) -> None:
        if not self.quiet:
            print(f"Warning: {message}", file=self.stdout)
        if log:
            self.logger.warning(message)

    def error(self, message: str, log: bool = True) -> None:
        """Print error message to user (always shown, even in quiet mode)."""
        print(f"Error: {message}", file=self.stderr)
        if log:
            self.logger.error(message)

    def section(self, title: str) -> None:
        if not self.quiet:
            print(f"\n{title}", file=self.stdout)

    def separator(self, char: str = "=", width: int = 60) -> None:
        if not self.quiet:
            print(char * width, file=self.stdout)

    def item(self, label: str, value: Any, indent: int = 2) -> None:
        """
        Print a labeled item (key-value pair).

        Args:
            label: Item label
            value: Item value
            indent: Number of spaces to indent
        """
        if not self.quiet:
            prefix = " " * indent
            print(f"{prefix}{label}: {value}", file=self.stdout)

    def mode_header(self, mode: str, details: Dict[str, Any]) -> None:
        """Print a role banner, e.g. "Coordinator" with its listening port."""
        if self.quiet:
            return
        self.separator()
        print(f"{mode}", file=self.stdout)
        self.separator()
        for key, value in details.items():
            self.item(key, value)

    def result_summary(
        self,
        number: int,
        factors: List[int],
        elapsed: float,
        algorithm: Optional[str] = None
    ) -> None:
        """Print the outcome of a factorization run."""
        if self.quiet:
            return
        self.section("Factorization complete:")
        self.item("Factors", f"{number} = {' * '.join(str(f) for f in factors)}")
        self.item("Time", f"{elapsed:.3f}s")
        if algorithm:
            self.item("Last factor found by", algorithm)

# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Logging interface for winhance-unattend.

Library modules write progress and anomalies through a small logger
protocol instead of printing directly, so the CLI decides what is shown
and tests can capture what was reported.

The logger supports five output levels:
- Step: Always printed (for progress indicators)
- Verbose: Only printed when verbose mode is enabled
- Debug: Only printed when debug mode is enabled (implies verbose)
- Warning: Always printed; used for lookup errors that skip a setting
- Error: Always printed

Example:
    Configure global logger:
        ```python
        from winhance_unattend.logging import get_logger, set_global_logger

        logger = get_logger(verbose=True, debug=False)
        set_global_logger(logger)
        ```

    Collect warnings for one compilation:
        ```python
        from winhance_unattend.logging import CollectingLogger, get_global_logger

        logger = CollectingLogger(get_global_logger())
        logger.warning("RESOLVE", "Unknown index 7 for theme-mode")
        print(logger.warnings)
        ```

Note:
    The default logger is silent, so library functions won't print
    anything unless explicitly configured. The CLI configures the global
    logger when commands are executed.
"""

from __future__ import annotations

from typing import Protocol


class Logger(Protocol):
    """Protocol for logger implementations."""

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator for non-verbose mode.

        Args:
            step: Current step number (1-based).
            total: Total number of steps.
            message: Step description.
        """
        ...

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message.

        Args:
            prefix: Message prefix (e.g., "EMIT", "POWER").
            message: Log message.
        """
        ...

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message.

        Args:
            prefix: Message prefix (e.g., "RESOLVE").
            message: Log message.
        """
        ...

    def warning(self, prefix: str, message: str) -> None:
        """Report a non-fatal anomaly.

        Args:
            prefix: Message prefix (e.g., "FEATURE").
            message: Warning text.
        """
        ...

    def error(self, prefix: str, message: str) -> None:
        """Report an error.

        Args:
            prefix: Message prefix (e.g., "VALIDATE").
            message: Error text.
        """
        ...


class DefaultLogger:
    """Default logger implementation that prints to stdout.

    Verbose and debug output respect their flags. Warnings and errors are
    always shown.
    """

    def __init__(self, verbose: bool = False, debug: bool = False) -> None:
        """Initialize logger with verbosity settings.

        Args:
            verbose: If True, print verbose messages.
            debug: If True, print debug messages (implies verbose).
        """
        self._verbose = verbose or debug
        self._debug = debug

    def step(self, step: int, total: int, message: str) -> None:
        """Print a step indicator."""
        print(f"[{step}/{total}] {message}")

    def verbose(self, prefix: str, message: str) -> None:
        """Print a verbose log message (only when verbose mode is active)."""
        if self._verbose:
            print(f"[{prefix}] {message}")

    def debug(self, prefix: str, message: str) -> None:
        """Print a debug log message (only when debug mode is active)."""
        if self._debug:
            print(f"[{prefix}] {message}")

    def warning(self, prefix: str, message: str) -> None:
        """Print a warning."""
        print(f"[{prefix}] WARNING: {message}")

    def error(self, prefix: str, message: str) -> None:
        """Print an error."""
        print(f"[{prefix}] ERROR: {message}")


class SilentLogger:
    """Logger that suppresses all output.

    Useful for programmatic usage when output is not desired.
    """

    def step(self, step: int, total: int, message: str) -> None:
        pass

    def verbose(self, prefix: str, message: str) -> None:
        pass

    def debug(self, prefix: str, message: str) -> None:
        pass

    def warning(self, prefix: str, message: str) -> None:
        pass

    def error(self, prefix: str, message: str) -> None:
        pass


class CollectingLogger:
    """Logger that records warnings and errors and forwards everything.

    One instance is created per compilation. Its ``warnings`` list becomes
    part of the compile result, so a batch run reports every skipped
    setting in one pass.

    Attributes:
        warnings: Recorded warnings as "[PREFIX] message" strings.
        errors: Recorded errors in the same format.
    """

    def __init__(self, inner: Logger | None = None) -> None:
        self._inner: Logger = inner if inner is not None else SilentLogger()
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def step(self, step: int, total: int, message: str) -> None:
        self._inner.step(step, total, message)

    def verbose(self, prefix: str, message: str) -> None:
        self._inner.verbose(prefix, message)

    def debug(self, prefix: str, message: str) -> None:
        self._inner.debug(prefix, message)

    def warning(self, prefix: str, message: str) -> None:
        # Both phase passes see the same lookups; report each anomaly once
        entry = f"[{prefix}] {message}"
        if entry in self.warnings:
            return
        self.warnings.append(entry)
        self._inner.warning(prefix, message)

    def error(self, prefix: str, message: str) -> None:
        self.errors.append(f"[{prefix}] {message}")
        self._inner.error(prefix, message)


# Global logger instance (defaults to silent)
_global_logger: Logger = SilentLogger()


def get_logger(verbose: bool = False, debug: bool = False) -> Logger:
    """Get a logger instance with specified verbosity.

    Args:
        verbose: If True, logger will print verbose messages.
        debug: If True, logger will print debug messages (implies verbose).

    Returns:
        A logger instance configured with the specified verbosity.
    """
    return DefaultLogger(verbose=verbose, debug=debug)


def get_global_logger() -> Logger:
    """Get the global logger instance.

    Returns:
        The current global logger instance.

    Note:
        The default global logger is silent. Use set_global_logger() to
        configure it, or pass a logger instance directly to functions.
    """
    return _global_logger


def set_global_logger(logger: Logger) -> None:
    """Set the global logger instance.

    Args:
        logger: Logger instance to use as the global logger.

    Note:
        This affects all library functions that fall back to the global
        logger. Pass logger instances directly for better isolation.
    """
    global _global_logger
    _global_logger = logger

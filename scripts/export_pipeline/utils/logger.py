"""
Structured logging for the export pipeline.
Adds process context, elapsed time, progress and memory reporting on top of the logging module.
"""

import os
import time
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psutil


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(name: str = "export_pipeline", level: int = logging.INFO) -> logging.Logger:
    """Set up a stream-handled logger once per name."""
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


class StructuredLogger:
    """
    Contextual logger used by every pipeline component.

    Each message carries the seconds elapsed since the current process started and the
    name of the active context, e.g. ``[12.3s] [GenerateIcons] Writing icon: ...``.
    Debug and memory output is suppressed when EXPORT_PIPELINE_ENV is ``production``.
    """

    def __init__(self, name: str = "export_pipeline", context: str = "ExportPipeline",
                 production: Optional[bool] = None):
        self.production = (os.getenv('EXPORT_PIPELINE_ENV', 'development') == 'production'
                           if production is None else production)
        self.logger = setup_logging(name, logging.INFO if self.production else logging.DEBUG)
        self.context = context
        self.start_time = time.monotonic()

    def set_context(self, context: str) -> None:
        self.context = context

    def elapsed(self) -> float:
        return time.monotonic() - self.start_time

    def _format(self, message: str) -> str:
        return f"[{self.elapsed():.1f}s] [{self.context}] {message}"

    def info(self, message: str) -> None:
        self.logger.info(self._format(message))

    def warning(self, message: str) -> None:
        self.logger.warning(self._format(message))

    def error(self, message: str, error: Optional[BaseException] = None) -> None:
        self.logger.error(self._format(message), exc_info=error)

    def debug(self, message: str) -> None:
        if not self.production:
            self.logger.debug(self._format(message))

    def start_process(self, process_name: str) -> None:
        """Reset the clock and switch context to a new process."""
        self.start_time = time.monotonic()
        self.set_context(process_name)
        self.info(f"Starting {process_name}")

    def complete_process(self, process_name: str) -> None:
        self.info(f"Completed {process_name} in {self.elapsed():.1f}s")

    def file_operation(self, operation: str, path) -> None:
        self.info(f"{operation}: {path}")

    def progress(self, current: int, total: int, operation: str) -> None:
        percentage = (current / total * 100) if total else 100.0
        self.info(f"Progress: {current}/{total} ({percentage:.1f}%) - {operation}")

    def memory(self) -> None:
        """Log resident and virtual memory of the current process."""
        if self.production:
            return
        info = psutil.Process(os.getpid()).memory_info()
        self.debug(f"Memory: RSS={info.rss / 1024 / 1024:.1f}MB, VMS={info.vms / 1024 / 1024:.1f}MB")

    @contextmanager
    def timer(self, label: str) -> Iterator[None]:
        """Log how long the enclosed block took, also when it raises."""
        started = time.monotonic()
        try:
            yield
        finally:
            self.info(f"{label}: {(time.monotonic() - started) * 1000:.0f}ms")

    @contextmanager
    def process(self, process_name: str) -> Iterator["StructuredLogger"]:
        """Run a block under a named context and restore the previous context afterwards."""
        previous_context, previous_start = self.context, self.start_time
        self.start_process(process_name)
        try:
            yield self
            self.complete_process(process_name)
        finally:
            self.context, self.start_time = previous_context, previous_start

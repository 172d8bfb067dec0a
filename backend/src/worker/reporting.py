from __future__ import annotations

import os
import traceback
import uuid
from datetime import datetime
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ErrorReporter:
    """Error-tracking sink for failed jobs.

    Every captured error is logged. When ``report_dir`` is set a timestamped
    report file with the context and traceback is written as well. Capturing
    never raises.
    """

    def __init__(self, report_dir: str | None = None) -> None:
        self._report_dir = report_dir

    def capture(self, error: BaseException, context: dict[str, Any]) -> None:
        logger.error(
            "error_captured",
            error_type=type(error).__name__,
            error=str(error),
            **context,
        )
        if self._report_dir is None:
            return

        try:
            path = self._write_report(error, context)
        except OSError:
            logger.warning("error_report_write_failed", report_dir=self._report_dir, exc_info=True)
            return
        logger.info("error_report_written", path=path)

    def _write_report(self, error: BaseException, context: dict[str, Any]) -> str:
        os.makedirs(self._report_dir, exist_ok=True)

        now = datetime.now()
        filename = os.path.join(
            self._report_dir,
            f"notifier_error_{now.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}.txt",
        )

        with open(filename, "w", encoding="utf-8") as f:
            f.write(f"Notifier Error Report - {now.isoformat()}\n")
            f.write("=" * 60 + "\n\n")
            f.write(f"Error Type: {type(error).__name__}\n")
            f.write(f"Error Message: {error}\n\n")

            if context:
                f.write("Context:\n")
                f.write("-" * 60 + "\n")
                for key, value in context.items():
                    f.write(f"{key}: {value}\n")
                f.write("\n")

            f.write("Traceback:\n")
            f.write("-" * 60 + "\n")
            f.write("".join(traceback.format_exception(type(error), error, error.__traceback__)))

        return filename

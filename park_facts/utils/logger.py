"""
Logging infrastructure for park extraction runs.

Provides:
- Aligned console output with millisecond timestamps
- Optional log file
- Error/warning tracking for end-of-run summaries
- Per-park timing and LLM cost lines
"""

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(filename)s:%(lineno)d | %(message)s"
PHASE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | {phase} | %(filename)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S,%f"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ["LiteLLM", "httpx", "httpcore", "google_genai", "urllib3"]


class MillisecondsFormatter(logging.Formatter):
    """Formatter that includes milliseconds in asctime."""

    def formatTime(self, record, datefmt=None):  # noqa: N802 - must match parent class method name
        ct = datetime.fromtimestamp(record.created)
        if datefmt and "%f" in datefmt:
            s = ct.strftime(datefmt.replace(",%f", ""))
            return s + f",{int(record.msecs):03d}"
        elif datefmt:
            return ct.strftime(datefmt)
        else:
            return ct.strftime("%Y-%m-%d %H:%M:%S") + f",{int(record.msecs):03d}"


def _format_string(phase: Optional[str]) -> str:
    return PHASE_LOG_FORMAT.format(phase=phase) if phase else LOG_FORMAT


def _with_data(message: str, data: dict) -> str:
    if not data:
        return message
    formatted_data = " ".join(f"{k}={v}" for k, v in data.items())
    return f"{message} [{formatted_data}]"


class PipelineLogger:
    """
    Run-level logger with structured key=value suffixes.

    Usage:
        log = PipelineLogger(log_level="DEBUG", phase="extract")
        with log.time_park("Yellowstone National Park"):
            outcome = orchestrator.run(...)
        log.log_llm_call("page_text", "Yellowstone National Park", tokens_used=5120, cost_usd=0.0009)
    """

    def __init__(
        self,
        name: str = "park_facts",
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        log_dir: Optional[Path] = None,
        phase: Optional[str] = None,
    ):
        """
        Args:
            name: Logger name
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_file: Optional log file name
            log_dir: Directory for log files (defaults to ./logs)
            phase: Optional phase label shown on every line
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.phase = phase

        # Prevent propagation to root logger to avoid duplicate logs
        self.logger.propagate = False

        if self.logger.handlers:
            self.logger.handlers.clear()

        formatter = MillisecondsFormatter(_format_string(phase), datefmt=DATE_FORMAT)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            log_dir = log_dir or Path.cwd() / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_dir / log_file

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(logging.DEBUG)  # Log everything to file
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

            self.info(f"Logging to file: {log_path}")

        self.errors: list[dict] = []
        self.warnings: list[dict] = []
        self.total_cost_usd = 0.0

    def debug(self, message: str, **kwargs):
        self.logger.debug(_with_data(message, kwargs), stacklevel=2)

    def info(self, message: str, **kwargs):
        self.logger.info(_with_data(message, kwargs), stacklevel=2)

    def warning(self, message: str, **kwargs):
        """Log warning message and track for reporting."""
        message = _with_data(message, kwargs)
        self.logger.warning(message, stacklevel=2)
        self.warnings.append(
            {
                "message": message,
                "timestamp": datetime.now().isoformat(),
                "data": kwargs,
            }
        )

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log error message and track for reporting."""
        if exception:
            message = f"{message} | Exception: {type(exception).__name__}: {exception}"
        message = _with_data(message, kwargs)

        self.logger.error(message, stacklevel=2)
        self.errors.append(
            {
                "message": message,
                "exception": str(exception) if exception else None,
                "timestamp": datetime.now().isoformat(),
                "data": kwargs,
            }
        )

    def log_llm_call(self, stage: str, park_name: str, tokens_used: int, cost_usd: float):
        """Log one stage's model usage and add it to the run total."""
        self.total_cost_usd += cost_usd
        message = f"LLM call for {stage} [park={park_name} tokens={tokens_used} cost_usd={round(cost_usd, 6)}]"
        self.logger.debug(message, stacklevel=2)

    @contextmanager
    def time_park(self, park_name: str, operation: str = "extraction"):
        """
        Time and log one park operation. Failures are logged, tracked and re-raised.

        Usage:
            with logger.time_park("Yellowstone National Park"):
                ...
        """
        start_time = datetime.now()
        self.debug(f"Starting {operation}", park=park_name)

        try:
            yield
        except Exception as e:
            duration = (datetime.now() - start_time).total_seconds()
            self.error(
                f"Failed {operation}",
                exception=e,
                park=park_name,
                duration_seconds=round(duration, 2),
            )
            raise

        duration = (datetime.now() - start_time).total_seconds()
        self.info(f"Completed {operation}", park=park_name, duration_seconds=round(duration, 2))

    def log_run_complete(self, succeeded: int, failed: int, duration_seconds: float):
        self.info("=" * 60)
        self.info(
            "Extraction run completed",
            succeeded=succeeded,
            failed=failed,
            total=succeeded + failed,
            duration_seconds=round(duration_seconds, 2),
            total_cost_usd=round(self.total_cost_usd, 6),
        )
        self.info("=" * 60)

    def get_error_summary(self) -> dict:
        """Get summary of errors and warnings for reporting."""
        return {
            "total_errors": len(self.errors),
            "total_warnings": len(self.warnings),
            "errors": self.errors,
            "warnings": self.warnings,
        }


def configure_global_logging(log_level: str = "INFO", phase: Optional[str] = None):
    """
    Configure the root logger with the unified format.

    Module loggers (logging.getLogger(__name__)) propagate here. Provider SDK
    loggers are held at WARNING regardless of log_level.

    Args:
        log_level: Logging level to apply globally (DEBUG, INFO, WARNING, ERROR)
        phase: Optional phase label
    """
    formatter = MillisecondsFormatter(_format_string(phase), datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    root_handler = logging.StreamHandler(sys.stdout)
    root_handler.setLevel(getattr(logging, log_level.upper()))
    root_handler.setFormatter(formatter)
    root_logger.addHandler(root_handler)

    for lib_name in QUIET_LOGGERS:
        lib_logger = logging.getLogger(lib_name)
        lib_logger.handlers.clear()
        lib_logger.propagate = True
        lib_logger.setLevel(logging.WARNING)

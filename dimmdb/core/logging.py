"""JSONL diagnostic logging for the error database."""

import json
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, TextIO


def get_log_path(name: str, base_path: Path | None = None) -> Path:
    """
    Get the log file path for a diagnostic source.

    Args:
        name: Source name (e.g. "memdb")
        base_path: Base directory for logs (default: ~/var/log/dimmdb)

    Returns:
        Path to the log file: {base}/{date}/{name}.jsonl
    """
    if base_path is None:
        home = Path(os.environ.get("HOME", "/tmp"))
        base_path = home / "var" / "log" / "dimmdb"

    today = date.today().isoformat()
    return base_path / today / f"{name}.jsonl"


class DiagnosticLogger:
    """
    JSONL logger for daemon diagnostics.

    Each entry is one JSON object per line. When a stream is given, a
    plain "[level] message" line is echoed to it as well.
    """

    def __init__(
        self,
        name: str,
        log_path: Path | None = None,
        stream: TextIO | None = None,
    ):
        self.name = name
        self.log_path = log_path or get_log_path(name)
        self.stream = stream
        self._file = None

    def _ensure_file(self) -> None:
        if self._file is None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.log_path, "a")

    def _log(self, level: str, message: str, **extra: Any) -> None:
        self._ensure_file()
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "source": self.name,
            "message": message,
            **extra,
        }
        self._file.write(json.dumps(entry, default=str) + "\n")
        self._file.flush()
        if self.stream is not None:
            print(f"[{level}] {message}", file=self.stream)

    def debug(self, message: str, **extra: Any) -> None:
        self._log("debug", message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self._log("info", message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self._log("warning", message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self._log("error", message, **extra)

    def close(self) -> None:
        """Close the log file."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "DiagnosticLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

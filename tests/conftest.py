"""Shared test fixtures."""

import json
import subprocess
import sys
from pathlib import Path
from typing import Any

import pytest

# Add project root to path so tests run without installing
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dimmdb.core.config import DimmConfig  # noqa: E402
from dimmdb.core.logging import DiagnosticLogger  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"

# 2024-01-01T00:00:00Z
DEFAULT_NOW = 1704067200


class MockContext:
    """Mock Context for testing without real system access."""

    def __init__(
        self,
        tools_available: list[str] | None = None,
        command_outputs: dict[tuple, str | Exception] | None = None,
        file_contents: dict[str, str] | None = None,
        env: dict[str, str] | None = None,
        now: int = DEFAULT_NOW,
        spawn_error: Exception | None = None,
    ):
        self.tools_available = set(tools_available or [])
        self.command_outputs = command_outputs or {}
        self.file_contents = file_contents or {}
        self.env = env or {}
        self.now = now
        self.spawn_error = spawn_error
        self.commands_run: list[list[str]] = []
        self.spawned: list[tuple[str, list[str]]] = []

    def check_tool(self, name: str) -> bool:
        """Check if tool is in mocked available list."""
        return name in self.tools_available

    def run(
        self,
        cmd: list[str],
        check: bool = False,
        **kwargs,
    ) -> subprocess.CompletedProcess:
        """Return mocked command output."""
        self.commands_run.append(cmd)
        key = tuple(cmd)
        if key not in self.command_outputs:
            raise KeyError(f"No mock output for command: {cmd}")

        output = self.command_outputs[key]
        if isinstance(output, Exception):
            raise output

        return subprocess.CompletedProcess(
            cmd,
            returncode=0,
            stdout=output,
            stderr="",
        )

    def spawn(self, path: str, env: list[str]) -> None:
        """Record a trigger launch instead of running it."""
        if self.spawn_error is not None:
            raise self.spawn_error
        self.spawned.append((path, list(env)))

    def read_file(self, path: str) -> str:
        """Return mocked file content."""
        if path not in self.file_contents:
            raise FileNotFoundError(f"No mock content for: {path}")
        return self.file_contents[path]

    def file_exists(self, path: str) -> bool:
        """Check if path is in mocked files."""
        return path in self.file_contents

    def get_env(self, key: str, default: str | None = None) -> str | None:
        """Return mocked environment variable."""
        return self.env.get(key, default)

    def time(self) -> int:
        """Return the mocked clock."""
        return self.now


@pytest.fixture
def mock_context():
    """Factory fixture for creating MockContext instances."""
    def _create(**kwargs) -> MockContext:
        return MockContext(**kwargs)
    return _create


@pytest.fixture
def fixtures_dir() -> Path:
    """Path to test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def log_path(tmp_path) -> Path:
    """Path of the diagnostic log written by diag_logger."""
    return tmp_path / "memdb.jsonl"


@pytest.fixture
def diag_logger(log_path):
    """DiagnosticLogger writing to a temporary file."""
    logger = DiagnosticLogger("memdb", log_path=log_path)
    yield logger
    logger.close()


@pytest.fixture
def enabled_config() -> DimmConfig:
    """Tracking on, no firmware prefill, default thresholds."""
    return DimmConfig(tracking_enabled=True, prepopulate=False)


def read_log(path: Path) -> list[dict[str, Any]]:
    """Read all entries of a JSONL diagnostic log."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def load_fixture(category: str, name: str) -> str:
    """Load a fixture file by category and name."""
    fixture_path = FIXTURES_DIR / category / name
    if not fixture_path.exists():
        raise FileNotFoundError(f"Fixture not found: {fixture_path}")
    return fixture_path.read_text()

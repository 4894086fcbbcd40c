"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for tests
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from toolmend.execution.engine import RetryEngine  # noqa: E402
from toolmend.execution.pattern_store import (  # noqa: E402
    PatternStore,
    ToolInvocationRecord,
)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Setup test environment variables."""
    test_env = {
        "LOG_LEVEL": "DEBUG",
        "JSON_LOGS": "false",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    for key in (
        "TOOL_MAX_RETRIES",
        "TOOL_MAX_SUGGESTIONS",
        "TOOL_TIMEOUT_THRESHOLD_MS",
        "PATTERN_HISTORY_CAPACITY",
        "PATTERN_RETENTION_SECONDS",
        "RETRY_BACKOFF",
        "RETRY_INITIAL_DELAY",
        "RETRY_MAX_DELAY",
        "RETRY_BACKOFF_FACTOR",
        "RETRY_JITTER",
        "TOOL_POLICIES_CONFIG",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def store():
    """Empty pattern store without a retention window."""
    return PatternStore(retention_seconds=None)


@pytest.fixture
def engine(store):
    """Retry engine with immediate retries over the shared store fixture."""
    return RetryEngine(store=store, max_retries=3, max_suggestions=3)


@pytest.fixture
def record_success(store):
    """Append a successful invocation to the store."""

    def _record(tool_id, parameters, duration=5):
        return store.record(
            ToolInvocationRecord.create(
                tool_id, parameters, success=True, duration=duration
            )
        )

    return _record

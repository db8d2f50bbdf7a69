from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from membership_pipeline.alerts.gateway import Alert, AlertDeliveryError


def _find_repo_root(start: Path) -> Path:
    marker = "pyproject.toml"
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / marker).exists():
            return p
    raise RuntimeError(f"Could not find repo root from: {start}")


@pytest.fixture(scope="session")
def repo_root() -> Path:
    """The absolute path to the repo root (finds by walking up to `pyproject.toml`)."""
    return _find_repo_root(Path(__file__))


class RecordingGateway:
    """Identity gateway: remembers every alert instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[Alert] = []

    def send(self, alert: Alert) -> None:
        self.sent.append(alert)


class FailingGateway:
    """Gateway whose transport is always down; still counts the attempts."""

    def __init__(self) -> None:
        self.calls = 0

    def send(self, alert: Alert) -> None:
        self.calls += 1
        raise AlertDeliveryError("smtp down")


@pytest.fixture()
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture()
def failing_gateway() -> FailingGateway:
    return FailingGateway()


@pytest.fixture()
def now() -> datetime:
    """A fixed, tz-aware 'now' for anything time dependent."""
    return datetime(2025, 11, 25, 12, 0, 0, tzinfo=timezone.utc)

"""Shared test fixtures."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from issuesync import retry as retry_module
from tests.fakes import FakeClock

TESTS_DIR = Path(__file__).parent
LOCAL_TMP = TESTS_DIR / ".tmp"


@pytest.fixture(autouse=True)
def _reset_logging() -> None:
    """Let caplog see issuesync records even after a CLI test configured logging."""
    logger = logging.getLogger("issuesync")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Replace sleeping and the clock used by the retrier."""
    clock = FakeClock()
    monkeypatch.setattr(retry_module, "time", SimpleNamespace(sleep=clock.sleep, monotonic=clock.monotonic))
    return clock


@pytest.fixture()
def work_dir(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Provide a local working directory under tests/.tmp/<test_name>/.

    The directory is cleaned and recreated at the start of each test.
    """
    test_name = request.node.name
    test_dir = LOCAL_TMP / test_name

    # Clean previous run
    if test_dir.exists():
        shutil.rmtree(test_dir)
    test_dir.mkdir(parents=True)

    monkeypatch.chdir(test_dir)
    return test_dir


@pytest.fixture(params=["direct", "blob"])
def strategy(request: pytest.FixtureRequest) -> str:
    return request.param


@pytest.fixture()
def since() -> datetime:
    return datetime(2024, 1, 1, tzinfo=timezone.utc)

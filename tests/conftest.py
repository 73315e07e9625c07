"""Shared fixtures for stepwright tests."""

from pathlib import Path

import pytest

from stepwright.actions import ActionInterpreter
from stepwright.session import SessionStore
from tests.fakes import FakeBrowser, FakeContext


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStore:
    """A session store rooted in a temporary directory."""
    return SessionStore(tmp_path / "sessions")


@pytest.fixture
def interpreter(session_store: SessionStore) -> ActionInterpreter:
    return ActionInterpreter(session_store)


@pytest.fixture
def context() -> FakeContext:
    """A standalone context whose pages serve an empty site."""
    return FakeContext()


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "results"


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()

"""Shared fixtures: keep errors.log out of the project tree."""
import pytest

from karaoke import errors


@pytest.fixture(autouse=True)
def errors_log(tmp_path, monkeypatch):
    out = tmp_path / "output"
    monkeypatch.setattr(errors, "OUTPUT_DIR", out)
    monkeypatch.setattr(errors, "ERRORS_LOG", out / "errors.log")
    return out / "errors.log"


class RecordingState:
    """Stand-in for KaraokeState that remembers every broadcast."""

    def __init__(self):
        self.events = []

    def broadcast(self, event, data):
        self.events.append((event, data))


@pytest.fixture
def recorder():
    return RecordingState()

"""
Pytest configuration and shared fixtures for the backend test suite.
"""

import logging
import sys
from pathlib import Path

import pytest

# Add backend to Python path for test imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

from reelhouse.jobs.store import JobStore  # noqa: E402
from reelhouse.settings import AppSettings  # noqa: E402
from reelhouse.storage.files import FileStore  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%H:%M:%S',
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "subprocess: spawns a real child process (fake encoder script)"
    )
    config.addinivalue_line(
        "markers", "e2e: marks tests as end-to-end (requires FFmpeg)"
    )


class FakeRunner:
    """
    Stand-in for FFmpegRunner.

    Reports the scripted progress values through the invocation hooks,
    then either returns or raises `error`. When `gate` is set, run()
    blocks on it before finishing so tests can observe a RUNNING job.
    """

    def __init__(self, progress=(20, 50, 98), error=None, gate=None):
        self.ffmpeg_path = "fake-ffmpeg"
        self.progress = list(progress)
        self.error = error
        self.gate = gate
        self.invocations = []

    async def run(self, invocation):
        self.invocations.append(invocation)
        for value in self.progress:
            if invocation.hooks.on_progress:
                invocation.hooks.on_progress(value)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if invocation.hooks.on_progress:
            invocation.hooks.on_progress(100)


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def file_store(data_dir):
    files = FileStore(data_dir)
    files.ensure_layout()
    return files


@pytest.fixture
def job_store(data_dir):
    return JobStore(data_dir / "jobs.db")


@pytest.fixture
def settings(data_dir):
    return AppSettings(data_dir=data_dir, stream_poll_interval=0.01)


@pytest.fixture
def inputs(file_store):
    """An uploaded image and music track, as storage keys."""
    (file_store.data_dir / "uploads" / "cover.png").write_bytes(b"\x89PNG fake")
    (file_store.data_dir / "uploads" / "song.mp3").write_bytes(b"ID3 fake")
    return "uploads/cover.png", "uploads/song.mp3"

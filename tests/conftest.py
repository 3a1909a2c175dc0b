import logging
import os
import sys
from pathlib import Path
from typing import List, Tuple

import pytest

# Ensure a writable workspace early so log files never land in the home directory
_ws = Path(os.environ.get("AGENTSTREAM_WORKSPACE", str(Path(__file__).resolve().parent.parent / "tmp_workspace")))
os.environ.setdefault("AGENTSTREAM_WORKSPACE", str(_ws))
_ws.mkdir(parents=True, exist_ok=True)

# Add the project's root directory to the Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from agentstream.config import PacingConfig  # noqa: E402
from agentstream.sinks.store import MessageStore  # noqa: E402
from agentstream.streaming.clock import ManualClock  # noqa: E402
from agentstream.streaming.coordinator import SessionStreamCoordinator  # noqa: E402
from agentstream.utils.errors import ErrorHandler  # noqa: E402


class Releases:
    """Collects ``emit(text, streaming)`` calls from a scheduler."""

    def __init__(self):
        self.calls: List[Tuple[str, bool]] = []

    def __call__(self, text: str, streaming: bool) -> None:
        self.calls.append((text, streaming))

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.calls]

    @property
    def joined(self) -> str:
        return "".join(self.texts)

    def __len__(self) -> int:
        return len(self.calls)


class RecordingSink:
    """StreamSink that records every call in order."""

    def __init__(self):
        self.calls: List[tuple] = []

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        def record(session_id, *args):
            self.calls.append((name, session_id) + args)

        return record

    def named(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == method]

    def text(self, method: str, session_id: str = "s1") -> str:
        return "".join(call[2] for call in self.named(method) if call[1] == session_id)


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo setup_logger() so one test's handlers never leak into the next."""
    yield
    logger = logging.getLogger("agentstream")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def isolated_config(monkeypatch, tmp_path):
    """Point every config layer at an empty temporary project."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("APPDATA", str(tmp_path / "appdata"))
    monkeypatch.setenv("AGENTSTREAM_CWD", str(project))
    monkeypatch.delenv("AGENTSTREAM_CONFIG_PATH", raising=False)
    for name in PacingConfig.__dataclass_fields__:
        monkeypatch.delenv(f"AGENTSTREAM_{name.upper()}", raising=False)
    return project


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return PacingConfig()


@pytest.fixture
def releases():
    return Releases()


@pytest.fixture
def errors():
    return ErrorHandler()


@pytest.fixture
def store():
    return MessageStore()


@pytest.fixture
def coordinator(store, clock, errors):
    coordinator = SessionStreamCoordinator(store, clock=clock, errors=errors)
    yield coordinator
    coordinator.close()


@pytest.fixture
def recording_sink():
    return RecordingSink()

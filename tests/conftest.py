"""
Pytest configuration and shared fixtures.

Adds the repository root to the Python path so tests can import 'distfactor'
without installing it.
"""
import sys
import time
from pathlib import Path
from typing import Callable, List, Tuple

import pytest

repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

from distfactor.config import (  # noqa: E402
    NetworkSettings, ResultsSettings, SearchSettings, Settings,
)
from distfactor.exceptions import PeerUnavailable  # noqa: E402
from distfactor.schemas.messages import Endpoint  # noqa: E402
from distfactor.transport.base import Transport  # noqa: E402

# 6563 * 9311, both prime
P, Q = 6563, 9311
N = P * Q


class RecordingTransport(Transport):
    """Synchronous transport that records every send instead of delivering it."""

    def __init__(self, endpoint: Endpoint = Endpoint(host="test", port=1)):
        super().__init__()
        self._endpoint = endpoint
        self.sent: List[Tuple[Endpoint, object]] = []
        self.unavailable = set()
        self.opened = False
        self.stopped = False

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def _open(self) -> None:
        self.opened = True

    def send(self, peer, message) -> None:
        if peer in self.unavailable:
            raise PeerUnavailable(peer, "unreachable in test")
        self.sent.append((peer, message))

    def stop(self) -> None:
        self.stopped = True

    def sent_to(self, peer: Endpoint) -> list:
        return [message for endpoint, message in self.sent if endpoint == peer]

    def sent_of(self, message_type) -> List[Tuple[Endpoint, object]]:
        return [(peer, message) for peer, message in self.sent if isinstance(message, message_type)]


def wait_for(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    """Settings with short retry delays and results written under tmp_path."""
    return Settings(
        network=NetworkSettings(retry_initial_delay=0.01, retry_max_delay=0.05),
        search=SearchSettings(dispatcher_ready_poll_seconds=0.05, dispatcher_ready_attempts=20),
        results=ResultsSettings(
            text_file=str(tmp_path / "results.txt"),
            json_file=str(tmp_path / "data" / "results.json"),
        ),
    )


@pytest.fixture
def coordinator_endpoint() -> Endpoint:
    return Endpoint(host="coordinator", port=10188)


@pytest.fixture
def recording_transport() -> RecordingTransport:
    return RecordingTransport()

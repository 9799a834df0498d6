"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import socket
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator, Callable, List

from configsync.protocol.records import Record
from configsync.store.config_store import ConfigStore
from configsync.network.sync_server import SyncServer


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until it holds or timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


async def _send_raw(port: int, payload: bytes) -> None:
    """Write raw bytes to a local port and close the connection."""
    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    writer.write(payload)
    await writer.drain()
    writer.close()
    await writer.wait_closed()


_SAMPLE_RECORDS = [
    Record("CONFIG_SYNC", "WPF_HOST", "127.0.0.1"),
    Record("CONFIG_SYNC", "WPF_RECV_PORT", "12347"),
    Record("PWM", "PWM_MIN", "1100"),
    Record("PWM", "PWM_NEUTRAL", "1500"),
]


# ============================================================================
# ConfigStore Fixtures
# ============================================================================

@pytest.fixture
def sample_records() -> List[Record]:
    """Records spread over two sections."""
    return list(_SAMPLE_RECORDS)


@pytest.fixture
def store() -> ConfigStore:
    """Create an empty ConfigStore."""
    return ConfigStore()


@pytest.fixture
def sample_store() -> ConfigStore:
    """Create a ConfigStore holding the sample records."""
    return ConfigStore(_SAMPLE_RECORDS)


# ============================================================================
# Config File Fixtures
# ============================================================================

@pytest.fixture
def write_config(tmp_path):
    """
    Factory fixture that writes an INI file and returns its path.

    Usage:
        path = write_config("[A]\\nx=1\\n")
    """
    def factory(text: str, name: str = "config.ini") -> str:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)
    return factory


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest.fixture
def free_port():
    """Factory fixture returning another free port on each call."""
    return find_free_port


@pytest.fixture
def persisted() -> List[List[Record]]:
    """Snapshots handed to the server's persist callback."""
    return []


@pytest_asyncio.fixture
async def server(
    store: ConfigStore,
    server_port: int,
    persisted: List[List[Record]],
) -> AsyncGenerator[SyncServer, None]:
    """
    Create and start a SyncServer for testing.

    This fixture:
    1. Creates a SyncServer on a free port, recording persist calls
    2. Runs its accept loop in a background task
    3. Yields the server once it is listening
    4. Signals shutdown and waits for the loop to finish
    """
    srv = SyncServer(
        store,
        host='127.0.0.1',
        port=server_port,
        on_change=lambda s: persisted.append(s.records()),
        poll_interval=0.05,
        recv_timeout=2.0,
    )
    shutdown = asyncio.Event()

    server_task = asyncio.create_task(srv.serve(shutdown))
    await asyncio.wait_for(srv.ready.wait(), timeout=2.0)

    yield srv

    shutdown.set()
    await asyncio.wait_for(server_task, timeout=2.0)


# ============================================================================
# Peer Fixtures
# ============================================================================

class FramePeer:
    """
    Stand-in remote peer that collects every payload sent to it.

    Usage:
        async with FramePeer() as peer:
            await send_snapshot(store, '127.0.0.1', peer.port)
            payload = await peer.next_payload()
    """

    def __init__(self, host: str = '127.0.0.1', port: int = 0):
        self.host = host
        self.port = port
        self.payloads: asyncio.Queue = asyncio.Queue()
        self._server = None

    async def _handle(self, reader, writer) -> None:
        data = await reader.read()
        await self.payloads.put(data)
        writer.close()

    async def next_payload(self, timeout: float = 2.0) -> bytes:
        return await asyncio.wait_for(self.payloads.get(), timeout=timeout)

    async def __aenter__(self):
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._server.close()
        await self._server.wait_closed()


@pytest_asyncio.fixture
async def peer() -> AsyncGenerator[FramePeer, None]:
    """A running FramePeer on a free port."""
    async with FramePeer() as p:
        yield p


# ============================================================================
# Helper Fixtures
# ============================================================================

@pytest.fixture
def eventually():
    """
    Poll a condition from async tests.

    Usage:
        assert await eventually(lambda: store.get("A", "x") == "1")
    """
    return _eventually


@pytest.fixture
def send_raw():
    """
    Send raw bytes to a local port over a fresh connection.

    Usage:
        await send_raw(server_port, b"7\\n[A]x=1\\n")
    """
    return _send_raw


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

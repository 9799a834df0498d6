"""
Inbound Sync Server Module

This module implements the listener that receives configuration frames
from the remote peer and merges them into the local store.

Each accepted connection carries one frame:
    1. Read and decode the frame (length-prefixed or legacy)
    2. Merge the records into the ConfigStore
    3. If anything changed, hand the store to the persist callback, which
       runs in a worker thread so file I/O does not block the loop
    4. Close the connection

Lifecycle:
    STOPPED -> LISTENING -> STOPPING -> STOPPED

The accept loop runs until a shutdown event is set. It re-checks the
event at least every poll interval, and connections already being
handled are allowed to finish before serve() returns.
"""

import asyncio
import logging
from asyncio import StreamReader, StreamWriter
from enum import Enum
from typing import Callable, Optional, Set

from ..config.settings import settings
from ..errors import BindError, ConfigSyncError, FrameError
from ..protocol.framing import read_frame
from ..store.config_store import ConfigStore

logger = logging.getLogger(__name__)


class ServerState(Enum):
    """States of the inbound server."""
    STOPPED = "stopped"
    LISTENING = "listening"
    STOPPING = "stopping"


class SyncServer:
    """
    Asynchronous TCP listener for configuration updates.

    Usage:
        shutdown = asyncio.Event()
        server = SyncServer(store, port=12348, on_change=persist)
        task = asyncio.create_task(server.serve(shutdown))
        await server.ready.wait()
        ...
        shutdown.set()
        await task

    Attributes:
        host: Bind address (e.g., '0.0.0.0')
        port: Port number; updated to the bound port after start() when 0
        store: The ConfigStore incoming records are merged into
        on_change: Called with the store after a merge changed something
        ready: Event set once the socket is listening
    """

    def __init__(
            self,
            store: ConfigStore,
            host: str = None,
            port: int = 0,
            on_change: Optional[Callable[[ConfigStore], None]] = None,
            poll_interval: float = None,
            recv_timeout: float = None,
    ):
        """
        Initialize the server.

        Args:
            store: ConfigStore to merge into
            host: Bind address (default from settings.LISTEN_HOST)
            port: Port number (0 picks a free port)
            on_change: Persist callback, invoked after a changing merge
            poll_interval: Seconds between shutdown checks
            recv_timeout: Seconds allowed to receive one frame
        """
        self.host = host if host is not None else settings.LISTEN_HOST
        self.port = port
        self.store = store
        self.on_change = on_change
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL
        self.recv_timeout = recv_timeout if recv_timeout is not None else settings.RECV_TIMEOUT
        self.ready = asyncio.Event()

        # Server state
        self._server: Optional[asyncio.Server] = None
        self._state = ServerState.STOPPED
        self._handlers: Set[asyncio.Task] = set()
        self._persist_lock = asyncio.Lock()
        self._connection_count = 0
        self._merge_count = 0
        self._error_count = 0

    @property
    def state(self) -> ServerState:
        return self._state

    async def start(self) -> None:
        """
        Bind the listening socket.

        Raises:
            BindError: The address could not be bound or listened on
        """
        if self._server is not None:
            return

        try:
            self._server = await asyncio.start_server(
                self.handle_connection,
                self.host,
                self.port,
                reuse_address=True,
            )
        except OSError as exc:
            raise BindError(f"cannot listen on {self.host}:{self.port}: {exc}") from exc

        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        self._state = ServerState.LISTENING
        self.ready.set()
        logger.info(f"Waiting for config updates on port {self.port}")

    async def serve(self, shutdown: asyncio.Event) -> None:
        """
        Run the accept loop until shutdown is set.

        Binds first if start() has not been called. On return the
        listening socket is closed and no handler is still running.

        Args:
            shutdown: Event that ends the loop once set

        Raises:
            BindError: The address could not be bound or listened on
        """
        await self.start()

        try:
            while not shutdown.is_set():
                try:
                    await asyncio.wait_for(shutdown.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            await self._close()

    async def handle_connection(
            self,
            reader: StreamReader,
            writer: StreamWriter
    ) -> None:
        """
        Receive one frame from a peer and merge it.

        Frame and I/O errors are logged and end this connection only.

        Args:
            reader: StreamReader for the peer connection
            writer: StreamWriter for the peer connection
        """
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        addr = writer.get_extra_info('peername')
        self._connection_count += 1
        logger.debug(f"Peer connected: {addr}")

        try:
            records = await read_frame(reader, timeout=self.recv_timeout)
            if records is None:
                logger.debug(f"Peer closed without sending: {addr}")
                return

            logger.info(f"Received {len(records)} settings from {addr}")
            if self._state is not ServerState.LISTENING:
                logger.warning(f"Shutting down, dropping update from {addr}")
                return

            self._merge_count += 1
            if self.store.merge(records) and self.on_change is not None:
                await self._persist()

        except FrameError as exc:
            self._error_count += 1
            logger.warning(f"Dropped message from {addr}: {exc}")
        except ConfigSyncError as exc:
            self._error_count += 1
            logger.error(f"Failed to apply update from {addr}: {exc}")
        except ConnectionResetError:
            logger.debug(f"Connection reset by peer: {addr}")
        except Exception as exc:  # Log unexpected errors but keep server alive
            self._error_count += 1
            logger.exception(f"Error handling peer {addr}: {exc}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            if task is not None:
                self._handlers.discard(task)

    def begin_shutdown(self) -> None:
        """
        Stop accepting merges right away.

        Frames that complete after this call are read but dropped. The
        socket itself is closed by serve() once its shutdown event is seen.
        """
        if self._state is ServerState.LISTENING:
            self._state = ServerState.STOPPING
            logger.info("Config update listener shutting down")

    async def _persist(self) -> None:
        # One write at a time, off the loop thread
        async with self._persist_lock:
            await asyncio.to_thread(self.on_change, self.store)

    async def _close(self) -> None:
        if self._server is None:
            return

        self.begin_shutdown()
        self._server.close()

        # In-flight handlers run to completion
        pending = [t for t in self._handlers if t is not asyncio.current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        try:
            await self._server.wait_closed()
        finally:
            self._server = None
            self._state = ServerState.STOPPED
            self.ready.clear()
            logger.info("Config update listener stopped")

    def is_running(self) -> bool:
        """Check if the server is currently listening."""
        return self._state is ServerState.LISTENING

    def get_stats(self) -> dict:
        """
        Get server statistics.

        Returns:
            Dictionary with connection, merge and error counts plus store
            statistics.
        """
        return {
            "state": self._state.value,
            "host": self.host,
            "port": self.port,
            "total_connections": self._connection_count,
            "total_merges": self._merge_count,
            "total_errors": self._error_count,
            "store_stats": self.store.get_stats(),
        }

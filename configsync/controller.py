"""
Lifecycle Controller Module

Owns the store, the inbound server task and the outbound sends, and
enforces the startup and shutdown ordering:

    start: load config -> start listener -> wait until listening -> first send
    stop:  refuse merges -> set shutdown -> wait for the listener task -> sockets released

After stop() has begun no further sends or merges are accepted.
"""

import asyncio
import logging
from typing import Optional, Tuple

from .config.inifile import load_config_file, save_config_file
from .config.settings import parse_port, settings
from .errors import BindError, ConfigSyncError, ConnectError, LoadError
from .network.sync_client import send_snapshot
from .network.sync_server import SyncServer
from .store.config_store import ConfigStore

logger = logging.getLogger(__name__)


class SyncController:
    """
    Coordinates one synchronizer process.

    Usage:
        controller = SyncController("config.ini")
        await controller.start()
        ...
        await controller.send()
        ...
        await controller.stop()

    Attributes:
        config_path: INI file the store is loaded from and persisted to
        store: The ConfigStore shared by all components
        server: The inbound SyncServer, once started
    """

    def __init__(
            self,
            config_path: str = None,
            store: ConfigStore = None,
            listen_host: str = None,
            persist: bool = None,
            send_timeout: float = None,
    ):
        """
        Initialize the controller.

        Args:
            config_path: Config file path (default from settings)
            store: ConfigStore instance (creates new one if not provided)
            listen_host: Bind address for the inbound server
            persist: Rewrite the config file after a changing merge
            send_timeout: Outbound connect/send timeout in seconds
        """
        self.config_path = config_path if config_path is not None else settings.CONFIG_PATH
        self.store = store if store is not None else ConfigStore()
        self.listen_host = listen_host if listen_host is not None else settings.LISTEN_HOST
        self.persist = persist if persist is not None else settings.PERSIST_ON_MERGE
        self.send_timeout = send_timeout if send_timeout is not None else settings.SEND_TIMEOUT

        self.server: Optional[SyncServer] = None
        self._server_task: Optional[asyncio.Task] = None
        self._shutdown = asyncio.Event()
        self._stopping = False

    async def start(self, initial_send: bool = True) -> None:
        """
        Load the config, start the listener and send the first snapshot.

        A failed first send is logged and does not abort startup.

        Args:
            initial_send: Send a snapshot once the listener is ready

        Raises:
            LoadError: The config file could not be loaded
            BindError: The listener could not start
        """
        self.store.load(load_config_file(self.config_path))

        port_text = self.store.get(
            settings.SYNC_SECTION, settings.LOCAL_PORT_KEY, settings.DEFAULT_LOCAL_PORT
        )
        port = parse_port(port_text)
        if port is None:
            raise BindError(f"invalid listen port: {port_text!r}")

        self.server = SyncServer(
            self.store,
            host=self.listen_host,
            port=port,
            on_change=self._persist if self.persist else None,
        )
        await self.server.start()
        self._server_task = asyncio.create_task(self.server.serve(self._shutdown))

        if initial_send:
            await self.send()

    async def send(self) -> Optional[int]:
        """
        Send the current snapshot to the configured peer.

        Failures are logged, not retried.

        Returns:
            Bytes sent, or None if nothing was sent
        """
        if self._stopping:
            logger.warning("Shutting down, not sending config")
            return None

        try:
            host, port = self.resolve_remote()
            return await send_snapshot(self.store, host, port, timeout=self.send_timeout)
        except ConfigSyncError as exc:
            logger.error(f"Failed to send config: {exc}")
            return None

    def resolve_remote(self) -> Tuple[str, int]:
        """
        Look up the peer endpoint in the store.

        Returns:
            (host, port)

        Raises:
            ConnectError: The configured port is not a valid port number
        """
        host = self.store.get(
            settings.SYNC_SECTION, settings.REMOTE_HOST_KEY, settings.DEFAULT_REMOTE_HOST
        )
        port_text = self.store.get(
            settings.SYNC_SECTION, settings.REMOTE_PORT_KEY, settings.DEFAULT_REMOTE_PORT
        )
        port = parse_port(port_text)
        if port is None:
            raise ConnectError(f"invalid peer port: {port_text!r}")
        return host, port

    def reload(self) -> bool:
        """
        Reload the config file into the store.

        Returns:
            True on success; on failure the store is left as it was
        """
        try:
            self.store.load(load_config_file(self.config_path))
        except LoadError as exc:
            logger.error(f"Reload failed, keeping current config: {exc}")
            return False
        return True

    def save(self, path: str = None) -> bool:
        """
        Write the store to disk.

        Args:
            path: Target file (default: config path + settings.BACKUP_SUFFIX)

        Returns:
            True if the file was written
        """
        path = path if path is not None else self.config_path + settings.BACKUP_SUFFIX
        try:
            save_config_file(path, self.store.records())
        except ConfigSyncError as exc:
            logger.error(f"Failed to save config: {exc}")
            return False
        if path == self.config_path:
            self.store.mark_clean()
        return True

    def describe(self) -> str:
        """Render the current config for display."""
        lines = ["", "=== Current config ==="]
        current = None
        for section, key, value in self.store.records():
            if section != current:
                if current is not None:
                    lines.append("")
                lines.append(f"[{section}]")
                current = section
            lines.append(f"  {key} = {value}")
        lines.append("======================")
        return "\n".join(lines)

    async def stop(self) -> None:
        """
        Stop the listener and wait until it has fully shut down.
        """
        self._stopping = True
        if self.server is not None:
            self.server.begin_shutdown()
        self._shutdown.set()

        if self._server_task is not None:
            try:
                await self._server_task
            finally:
                self._server_task = None
        logger.info("Synchronizer stopped")

    def is_running(self) -> bool:
        """Check if the listener task is alive."""
        return self._server_task is not None and not self._server_task.done()

    def _persist(self, store: ConfigStore) -> None:
        save_config_file(self.config_path, store.records())
        store.mark_clean()

"""
Outbound Sync Client Module

Sends a full snapshot of the store to the remote peer over a fresh TCP
connection. One connection carries exactly one frame and is closed
afterwards, whatever the outcome.
"""

import asyncio
import logging

from ..config.settings import settings
from ..errors import ConnectError, SendError
from ..store.config_store import ConfigStore

logger = logging.getLogger(__name__)


async def send_snapshot(
        store: ConfigStore,
        host: str,
        port: int,
        timeout: float = None,
) -> int:
    """
    Serialize the store and send it to a peer.

    Args:
        store: Store to snapshot
        host: Peer host
        port: Peer port
        timeout: Seconds allowed for connecting and for sending
            (default from settings.SEND_TIMEOUT)

    Returns:
        Number of bytes sent

    Raises:
        ConnectError: Peer unreachable, refused or connect timed out
        SendError: Connection broke or stalled while sending
    """
    timeout = timeout if timeout is not None else settings.SEND_TIMEOUT

    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        raise ConnectError(f"timeout connecting to {host}:{port}") from exc
    except OSError as exc:
        raise ConnectError(f"cannot connect to {host}:{port}: {exc}") from exc

    logger.debug(f"Connected to {host}:{port}, sending config")

    frame = store.serialize()
    try:
        writer.write(frame)
        await asyncio.wait_for(writer.drain(), timeout=timeout)
        # close() flushes what drain() left buffered
        writer.close()
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        writer.transport.abort()
        raise SendError(f"timeout sending to {host}:{port}") from exc
    except OSError as exc:
        writer.transport.abort()
        raise SendError(f"send to {host}:{port} failed: {exc}") from exc
    finally:
        if not writer.transport.is_closing():
            writer.transport.abort()

    logger.info(f"Sent config to {host}:{port} ({len(frame)} bytes)")
    return len(frame)

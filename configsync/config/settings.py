"""
Config-Sync Configuration Settings

Process-wide defaults for the synchronizer. Values that operators tune
are read from environment variables; the peer endpoints themselves live
in the synchronized config under the CONFIG_SYNC section.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Settings:
    """Synchronizer configuration settings."""

    # Config file
    CONFIG_PATH: str = os.environ.get("CONFIG_SYNC_PATH", "config.ini")
    PERSIST_ON_MERGE: bool = os.environ.get("CONFIG_SYNC_PERSIST", "true").lower() == "true"
    BACKUP_SUFFIX: str = ".backup"

    # Keys looked up in the synchronized config
    SYNC_SECTION: str = "CONFIG_SYNC"
    REMOTE_HOST_KEY: str = "WPF_HOST"
    REMOTE_PORT_KEY: str = "WPF_RECV_PORT"
    LOCAL_PORT_KEY: str = "CPP_RECV_PORT"
    DEFAULT_REMOTE_HOST: str = "192.168.4.10"
    DEFAULT_REMOTE_PORT: str = "12347"
    DEFAULT_LOCAL_PORT: str = "12348"

    # Network settings
    LISTEN_HOST: str = os.environ.get("CONFIG_SYNC_LISTEN_HOST", "0.0.0.0")
    SEND_TIMEOUT: float = float(os.environ.get("CONFIG_SYNC_SEND_TIMEOUT", "5.0"))
    RECV_TIMEOUT: float = float(os.environ.get("CONFIG_SYNC_RECV_TIMEOUT", "30.0"))
    POLL_INTERVAL: float = float(os.environ.get("CONFIG_SYNC_POLL_INTERVAL", "1.0"))
    READ_BUFFER_SIZE: int = 4096

    # Logging settings
    DEBUG: bool = os.environ.get("CONFIG_SYNC_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("CONFIG_SYNC_LOG_LEVEL", "INFO")


def parse_port(text: Optional[str]) -> Optional[int]:
    """
    Parse a TCP port number from a config value.

    Args:
        text: Raw value as stored in the config (may be None)

    Returns:
        The port as an int, or None if the value is not a port in 1..65535
    """
    if text is None:
        return None
    text = text.strip()
    if not text.isascii() or not text.isdigit():
        return None
    port = int(text)
    if not 0 < port < 65536:
        return None
    return port


# Global settings instance
settings = Settings()

"""
Config-Sync: Two-Peer Configuration Synchronizer

Keeps an INI-style key/value configuration in step between this process
and a remote peer over TCP, using a length-prefixed text protocol built
on Python asyncio.
"""

__version__ = "1.0.0"

"""
Configuration Store Module

This module implements the synchronized configuration store: a mapping
of section -> key -> value shared by the inbound server, the outbound
client and the config file I/O.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional, Any

from ..protocol.framing import encode_records
from ..protocol.records import Record

logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Thread-safe (section, key) -> value store.

    Every read and write takes the same lock, so the store can be shared
    between asyncio handlers and worker threads. The lock is never held
    while doing I/O.

    Internal Storage:
        Dict of dicts. Format: section -> {key -> value}
        Snapshots are produced in sorted section, then key order.

    Attributes:
        is_dirty: True when the in-memory contents differ from what was
            last loaded or saved
    """

    def __init__(self, records: Iterable[Record] = ()):
        """
        Initialize the store.

        Args:
            records: Optional initial contents
        """
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, str]] = {}
        self._dirty = False
        if records:
            self.load(records)

    def load(self, records: Iterable[Record]) -> int:
        """
        Replace the whole store with the given records.

        The records are collected and checked before the lock is taken,
        so a failure while producing them leaves the store untouched.

        Args:
            records: New contents; later duplicates win

        Returns:
            Number of entries now held

        Raises:
            ValueError: A record has an empty section or key name
        """
        data: Dict[str, Dict[str, str]] = {}
        for record in records:
            self._check_names(record.section, record.key)
            data.setdefault(record.section, {})[record.key] = record.value

        with self._lock:
            self._data = data
            self._dirty = False
            return sum(len(keys) for keys in data.values())

    def get(self, section: str, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Retrieve a value.

        Args:
            section: Section name (case-sensitive)
            key: Key name (case-sensitive)
            default: Returned when the section or key is absent

        Returns:
            The stored value (possibly ""), or default
        """
        with self._lock:
            return self._data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: str) -> bool:
        """
        Insert or update a value.

        Args:
            section: Section name
            key: Key name
            value: New value

        Returns:
            True if the stored value changed, False if it was already equal

        Raises:
            ValueError: Section or key is empty after trimming
        """
        self._check_names(section, key)
        with self._lock:
            return self._set_locked(section, key, value)

    def merge(self, records: Iterable[Record]) -> bool:
        """
        Apply incoming records, updating only entries that differ.

        Records are applied one at a time; a record with an invalid name
        is skipped and logged without undoing earlier ones.

        Args:
            records: Records decoded from a peer

        Returns:
            True if any entry changed
        """
        changed = False
        for record in records:
            if not record.has_valid_names:
                logger.warning(f"Skipping record with empty name: {record!r}")
                continue
            with self._lock:
                updated = self._set_locked(record.section, record.key, record.value)
            if updated:
                logger.info(f"Config updated: [{record.section}] {record.key} = {record.value}")
                changed = True
        return changed

    def records(self) -> List[Record]:
        """Return a sorted snapshot of every entry."""
        with self._lock:
            return [
                Record(section, key, value)
                for section, keys in sorted(self._data.items())
                for key, value in sorted(keys.items())
            ]

    def serialize(self) -> bytes:
        """
        Serialize the current contents as one length-prefixed frame.

        Returns:
            Frame bytes ready to write to a peer
        """
        return encode_records(self.records())

    def sections(self) -> List[str]:
        """Return the sorted section names."""
        with self._lock:
            return sorted(self._data)

    def size(self) -> int:
        """Get the number of (section, key) entries."""
        with self._lock:
            return sum(len(keys) for keys in self._data.values())

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            if self._data:
                self._dirty = True
            self._data = {}

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def mark_clean(self) -> None:
        """Record that the current contents have been persisted."""
        with self._lock:
            self._dirty = False

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary containing:
            - sections: Number of sections
            - total_keys: Number of (section, key) entries
            - dirty: Whether there are unsaved changes
        """
        with self._lock:
            return {
                "sections": len(self._data),
                "total_keys": sum(len(keys) for keys in self._data.values()),
                "dirty": self._dirty,
            }

    def _set_locked(self, section: str, key: str, value: str) -> bool:
        keys = self._data.setdefault(section, {})
        changed = keys.get(key) != value
        keys[key] = value
        if changed:
            self._dirty = True
        return changed

    @staticmethod
    def _check_names(section: str, key: str) -> None:
        if not section or not section.strip():
            raise ValueError("section name must not be empty")
        if not key or not key.strip():
            raise ValueError("key name must not be empty")

"""
Sync Record Definitions

This module defines the unit of synchronization carried on the wire.
"""

from dataclasses import dataclass, astuple
from typing import Iterator

# Characters that would make a record line ambiguous to split
RESERVED_NAME_CHARS = frozenset("[]=")
LINE_BREAK_CHARS = frozenset("\r\n")

# Trailing characters stripped from values on both encode and decode
VALUE_STRIP_CHARS = " \n\r\t"


@dataclass(frozen=True, order=True)
class Record:
    """
    One (section, key, value) triple.

    Records order by section, then key, then value, which is the order
    snapshots are serialized in. They also unpack like a tuple:

        section, key, value = record

    Attributes:
        section: Section name, e.g. "CONFIG_SYNC"
        key: Key name within the section
        value: Value as text (never None)
    """
    section: str
    key: str
    value: str = ""

    def __iter__(self) -> Iterator[str]:
        return iter(astuple(self))

    @property
    def has_valid_names(self) -> bool:
        """Section and key must be non-empty after trimming."""
        return bool(self.section.strip()) and bool(self.key.strip())

    @property
    def is_representable(self) -> bool:
        """Check whether the record survives a trip through a record line."""
        if not self.has_valid_names:
            return False
        names = self.section + self.key
        if any(c in RESERVED_NAME_CHARS or c in LINE_BREAK_CHARS for c in names):
            return False
        return not any(c in LINE_BREAK_CHARS for c in self.value)

    def to_line(self) -> str:
        """Format as a body line: [section]key=value\\n"""
        return f"[{self.section}]{self.key}={self.value.rstrip(VALUE_STRIP_CHARS)}\n"

"""Protocol module for Config-Sync."""

from .framing import (
    decode_frame,
    encode_frame,
    encode_records,
    format_body,
    parse_body,
    read_frame,
)
from .records import Record

__all__ = [
    "Record",
    "decode_frame",
    "encode_frame",
    "encode_records",
    "format_body",
    "parse_body",
    "read_frame",
]

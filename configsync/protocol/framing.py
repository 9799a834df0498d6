"""
Framing Codec Module

Encodes snapshots into length-prefixed frames and decodes frames read
from a peer connection back into records.

Frame Format:
    <decimal byte length of body>\\n<body>

    body   ::= (record)*
    record ::= "[" section "]" key "=" value "\\n"

Legacy peers send the body with no length line. When the text before the
first newline is not a non-negative integer, the whole initial buffer is
taken as the body and no further reads are made. That only works when
the legacy message arrives in the first read. Unless the peer has
already closed the connection, a final line with no newline may still be
in flight and is dropped rather than merged with a cut-off value.
"""

import asyncio
import logging
from asyncio import StreamReader
from typing import Iterable, List, Optional

from .records import Record, VALUE_STRIP_CHARS
from ..config.settings import settings
from ..errors import ParseError, ReceiveTimeoutError, TruncatedMessageError

logger = logging.getLogger(__name__)

ENCODING = "utf-8"


def format_body(records: Iterable[Record]) -> str:
    """
    Format records as a frame body.

    Records that cannot be split back apart unambiguously (names holding
    '[', ']' or '=', or line breaks anywhere) are left out and logged.

    Args:
        records: Records in the order they should appear

    Returns:
        Body text, one line per record
    """
    lines = []
    for record in records:
        if not record.is_representable:
            logger.warning(
                f"Skipping unrepresentable record [{record.section!r}]{record.key!r}"
            )
            continue
        lines.append(record.to_line())
    return "".join(lines)


def encode_frame(body: str) -> bytes:
    """
    Wrap a body in the length-prefixed framing.

    Examples:
        >>> encode_frame("[A]x=1\\n")
        b'7\\n[A]x=1\\n'
    """
    payload = body.encode(ENCODING)
    return str(len(payload)).encode("ascii") + b"\n" + payload


def encode_records(records: Iterable[Record]) -> bytes:
    """Format records and frame them in one step."""
    return encode_frame(format_body(records))


def parse_header(header: bytes) -> Optional[int]:
    """
    Parse a length header.

    Args:
        header: Bytes before the first newline

    Returns:
        The declared body length, or None if the header is not an
        unsigned decimal integer (the peer is taken to be a legacy sender)
    """
    text = header.strip()
    if not text or not text.isdigit():
        return None
    return int(text)


def parse_body(body: str) -> List[Record]:
    """
    Parse a frame body into records.

    Each line starting with '[' is split at the first ']' into the
    section and at the first '=' after that into key and value. Lines
    that do not match are ignored. Trailing whitespace is trimmed from
    values only.

    Examples:
        >>> parse_body("[A]x=1\\n# note\\n[A]y= two \\r\\n")
        [Record(section='A', key='x', value='1'), Record(section='A', key='y', value=' two')]
    """
    records = []
    for line in body.split("\n"):
        if not line.startswith("["):
            continue

        section_end = line.find("]")
        if section_end == -1:
            continue
        equals_pos = line.find("=", section_end)
        if equals_pos == -1:
            continue

        record = Record(
            section=line[1:section_end],
            key=line[section_end + 1:equals_pos],
            value=line[equals_pos + 1:].rstrip(VALUE_STRIP_CHARS),
        )
        if not record.has_valid_names:
            logger.debug(f"Ignoring record line with empty name: {line!r}")
            continue
        records.append(record)
    return records


def decode_frame(data: bytes) -> List[Record]:
    """
    Decode a complete frame held in memory.

    Framed data is cut to its declared length. Unframed data is parsed
    whole, as the legacy fallback does.

    Raises:
        TruncatedMessageError: Fewer body bytes than the header declares
        ParseError: Body is not valid UTF-8
    """
    header, sep, rest = data.partition(b"\n")
    expected = parse_header(header) if sep else None
    if expected is None:
        return _decode_body(data)
    if len(rest) < expected:
        raise TruncatedMessageError(expected, len(rest))
    return _decode_body(rest[:expected])


async def read_frame(
        reader: StreamReader,
        buffer_size: int = None,
        timeout: float = None,
) -> Optional[List[Record]]:
    """
    Read and decode one frame from a peer connection.

    Args:
        reader: StreamReader for the accepted connection
        buffer_size: Initial read limit while looking for the header
            (default from settings.READ_BUFFER_SIZE)
        timeout: Seconds to wait for the whole frame; 0 or None disables
            it (default from settings.RECV_TIMEOUT)

    Returns:
        The decoded records, or None if the peer closed without sending
        anything

    Raises:
        TruncatedMessageError: Peer closed before the declared length
        ParseError: Body is not valid UTF-8
        ReceiveTimeoutError: Peer stalled past the timeout
    """
    buffer_size = buffer_size if buffer_size is not None else settings.READ_BUFFER_SIZE
    timeout = timeout if timeout is not None else settings.RECV_TIMEOUT

    if not timeout:
        return await _read_frame(reader, buffer_size)
    try:
        return await asyncio.wait_for(_read_frame(reader, buffer_size), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ReceiveTimeoutError(f"no complete frame within {timeout}s") from exc


async def _read_frame(reader: StreamReader, buffer_size: int) -> Optional[List[Record]]:
    # Header phase: bounded reads until a newline, a full buffer, or EOF
    buffer = b""
    at_eof = False
    while b"\n" not in buffer and len(buffer) < buffer_size:
        chunk = await reader.read(buffer_size - len(buffer))
        if not chunk:
            at_eof = True
            break
        buffer += chunk

    if not buffer:
        return None

    header, sep, rest = buffer.partition(b"\n")
    expected = parse_header(header) if sep else None
    if expected is None:
        return _decode_body(_legacy_body(buffer, at_eof or reader.at_eof()))

    # Body phase: everything after the newline counts towards the length
    body = rest[:expected]
    while len(body) < expected:
        chunk = await reader.read(min(buffer_size, expected - len(body)))
        if not chunk:
            raise TruncatedMessageError(expected, len(body))
        body += chunk

    return _decode_body(body)


def _legacy_body(buffer: bytes, at_eof: bool) -> bytes:
    # Without EOF the last line may still be in flight; keep complete lines only
    if at_eof:
        logger.debug(f"No length header, treating {len(buffer)} bytes as legacy body")
        return buffer
    complete, sep, partial = buffer.rpartition(b"\n")
    if partial:
        logger.warning(f"Legacy message not terminated, dropped {len(partial)} bytes of a partial line")
    logger.debug(f"No length header, treating {len(complete) + len(sep)} bytes as legacy body")
    return complete + sep


def _decode_body(body: bytes) -> List[Record]:
    try:
        text = body.decode(ENCODING)
    except UnicodeDecodeError as exc:
        raise ParseError(f"body is not valid {ENCODING}: {exc}") from exc
    return parse_body(text)

"""
Tests for the Framing Codec

These tests verify:
- encode_frame() / format_body(): Building frames
- parse_body(): Splitting record lines
- decode_frame(): Decoding complete frames in memory
- read_frame(): Decoding frames from a connection, including the legacy
  fallback, truncation and receive timeouts

Run with: python -m pytest tests/test_framing.py -v
"""

import asyncio

import pytest

from configsync.errors import ParseError, ReceiveTimeoutError, TruncatedMessageError
from configsync.protocol.framing import (
    decode_frame,
    encode_frame,
    encode_records,
    format_body,
    parse_body,
    parse_header,
    read_frame,
)
from configsync.protocol.records import Record


def make_reader(*chunks: bytes, eof: bool = True) -> asyncio.StreamReader:
    """Build a StreamReader pre-loaded with data."""
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    if eof:
        reader.feed_eof()
    return reader


class TestEncode:
    """Test building frames."""

    def test_encode_frame(self):
        """Test the header is the body length and a newline."""
        assert encode_frame("[A]x=1\n") == b"7\n[A]x=1\n"

    def test_encode_empty_body(self):
        """Test an empty body still gets a header."""
        assert encode_frame("") == b"0\n"

    def test_format_body_lines(self):
        """Test one line per record in the given order."""
        body = format_body([Record("B", "y", "2"), Record("A", "x", "1")])
        assert body == "[B]y=2\n[A]x=1\n"

    def test_format_body_strips_trailing_value_whitespace(self):
        """Test trailing whitespace in values is not sent."""
        assert format_body([Record("A", "x", " padded \t")]) == "[A]x= padded\n"

    @pytest.mark.parametrize("record", [
        Record("A[", "x", "1"),
        Record("A]", "x", "1"),
        Record("A", "x=", "1"),
        Record("A", "[x", "1"),
        Record("A", "x", "line\nbreak"),
        Record("", "x", "1"),
    ])
    def test_format_body_skips_unrepresentable(self, record: Record):
        """Test records that would not split back apart are left out."""
        assert format_body([record, Record("A", "ok", "1")]) == "[A]ok=1\n"

    def test_encode_records(self):
        """Test formatting and framing in one step."""
        assert encode_records([Record("A", "x", "1")]) == b"7\n[A]x=1\n"


class TestParseHeader:
    """Test length header parsing."""

    @pytest.mark.parametrize("header,expected", [
        (b"0", 0),
        (b"42", 42),
        (b"42\r", 42),
        (b" 7 ", 7),
    ])
    def test_valid_headers(self, header, expected):
        assert parse_header(header) == expected

    @pytest.mark.parametrize("header", [b"", b"-1", b"+5", b"12abc", b"[A]x=1", b"1_000", b"\xd9\xa3"])
    def test_invalid_headers(self, header):
        """Test anything but plain ASCII digits is not a length."""
        assert parse_header(header) is None


class TestParseBody:
    """Test splitting body lines into records."""

    def test_parse_basic(self):
        records = parse_body("[A]x=1\n[B]y=2\n")
        assert records == [Record("A", "x", "1"), Record("B", "y", "2")]

    def test_parse_splits_at_first_equals(self):
        """Test '=' inside the value is kept."""
        assert parse_body("[A]url=http://h/?a=b\n") == [Record("A", "url", "http://h/?a=b")]

    def test_parse_splits_at_first_bracket(self):
        """Test ']' after the section belongs to the key."""
        assert parse_body("[A]x]y=1\n") == [Record("A", "x]y", "1")]

    def test_parse_trims_trailing_whitespace(self):
        """Test only trailing space, tab and CR are removed from values."""
        assert parse_body("[A]x= a b \t\r\n") == [Record("A", "x", " a b")]

    def test_parse_empty_value(self):
        assert parse_body("[A]x=\n") == [Record("A", "x", "")]

    def test_parse_ignores_non_record_lines(self):
        """Test lines that do not match are skipped silently."""
        body = "# comment\n\nplain=1\n[A]noequals\n[Aunclosed=1\n[A]x=1\n"
        assert parse_body(body) == [Record("A", "x", "1")]

    def test_parse_ignores_empty_names(self):
        """Test records with blank section or key are skipped."""
        assert parse_body("[]x=1\n[A]=2\n[ ]y=3\n[A]z=4\n") == [Record("A", "z", "4")]

    def test_parse_without_trailing_newline(self):
        assert parse_body("[A]x=1") == [Record("A", "x", "1")]

    def test_parse_empty(self):
        assert parse_body("") == []


class TestDecodeFrame:
    """Test decoding complete frames."""

    def test_decode_framed(self):
        assert decode_frame(b"7\n[A]x=1\n") == [Record("A", "x", "1")]

    def test_decode_ignores_bytes_past_length(self):
        """Test only the declared body length is used."""
        assert decode_frame(b"7\n[A]x=1\n[B]y=2\n") == [Record("A", "x", "1")]

    def test_decode_truncated(self):
        with pytest.raises(TruncatedMessageError) as exc_info:
            decode_frame(b"100\n[A]x=1\n")
        assert exc_info.value.expected == 100
        assert exc_info.value.received == 7

    def test_decode_legacy(self):
        """Test a body without a header is parsed whole."""
        assert decode_frame(b"[A]x=1\n[B]y=2\n") == [Record("A", "x", "1"), Record("B", "y", "2")]

    def test_decode_invalid_utf8(self):
        with pytest.raises(ParseError):
            decode_frame(b"4\n\xff\xfe\xfd\n")

    def test_roundtrip(self, sample_records):
        """Test decode(encode(records)) reproduces the records."""
        assert decode_frame(encode_records(sample_records)) == sample_records


@pytest.mark.asyncio
class TestReadFrame:
    """Test decoding frames from a connection."""

    async def test_read_framed(self):
        reader = make_reader(b"14\n[A]x=1\n[B]y=2\n")
        assert await read_frame(reader) == [Record("A", "x", "1"), Record("B", "y", "2")]

    async def test_read_framed_in_pieces(self):
        """Test a header and body split across many chunks."""
        reader = make_reader(b"1", b"4", b"\n[A]", b"x=1\n[B", b"]y=2\n")
        assert await read_frame(reader) == [Record("A", "x", "1"), Record("B", "y", "2")]

    async def test_read_body_larger_than_buffer(self):
        """Test bodies beyond the initial buffer are read to full length."""
        records = [Record("S", f"key{i}", "v" * 20) for i in range(50)]
        frame = encode_records(records)

        reader = make_reader(frame)
        assert await read_frame(reader, buffer_size=64) == records

    async def test_read_ignores_bytes_past_length(self):
        reader = make_reader(b"7\n[A]x=1\n[B]y=2\n")
        assert await read_frame(reader) == [Record("A", "x", "1")]

    async def test_read_empty_body(self):
        assert await read_frame(make_reader(b"0\n")) == []

    async def test_read_truncated(self):
        """Test a peer closing before the declared length is an error."""
        reader = make_reader(b"100\n" + b"[A]x=1\n" * 7 + b"[A]y")

        with pytest.raises(TruncatedMessageError) as exc_info:
            await read_frame(reader)
        assert exc_info.value.expected == 100
        assert exc_info.value.received == 53

    async def test_read_nothing(self):
        """Test a connection closed without data yields no message."""
        assert await read_frame(make_reader()) is None

    async def test_read_legacy_body(self):
        """Test an unframed body is merged as the literal body."""
        reader = make_reader(b"[A]x=1\n")
        assert await read_frame(reader) == [Record("A", "x", "1")]

    async def test_read_legacy_multiline(self):
        """Test the whole first buffer is the legacy body, header line included."""
        reader = make_reader(b"[A]x=1\n[A]y=2\n[B]z=3\n")
        assert await read_frame(reader) == [
            Record("A", "x", "1"),
            Record("A", "y", "2"),
            Record("B", "z", "3"),
        ]

    async def test_read_legacy_without_newline(self):
        """Test a single unterminated legacy line is still parsed."""
        assert await read_frame(make_reader(b"[A]x=1")) == [Record("A", "x", "1")]

    async def test_read_legacy_limited_to_first_buffer(self):
        """Test a legacy line longer than the initial buffer is dropped, not cut."""
        reader = make_reader(b"[A]x=12345678\n")
        assert await read_frame(reader, buffer_size=8) == []

    async def test_read_legacy_drops_line_still_in_flight(self):
        """Test an unterminated last line is dropped while the peer is still connected."""
        reader = make_reader(b"[PWM]PWM_MIN=1100\n[PWM]PWM_MAX=19", eof=False)
        assert await read_frame(reader) == [Record("PWM", "PWM_MIN", "1100")]

    async def test_read_legacy_keeps_last_line_after_close(self):
        """Test an unterminated last line is parsed once the peer has closed."""
        reader = make_reader(b"[A]x=1\n[A]y=2")
        assert await read_frame(reader) == [Record("A", "x", "1"), Record("A", "y", "2")]

    async def test_read_invalid_utf8(self):
        with pytest.raises(ParseError):
            await read_frame(make_reader(b"3\n\xff\xfe\xfd"))

    async def test_read_timeout(self):
        """Test a stalled peer raises ReceiveTimeoutError."""
        reader = make_reader(b"100\n[A]x=1\n", eof=False)

        with pytest.raises(ReceiveTimeoutError):
            await read_frame(reader, timeout=0.1)

    async def test_read_without_timeout(self):
        """Test a zero timeout disables the limit."""
        reader = make_reader(b"7\n[A]x=1\n")
        assert await read_frame(reader, timeout=0) == [Record("A", "x", "1")]

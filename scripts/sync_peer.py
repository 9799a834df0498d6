#!/usr/bin/env python3
"""
Stand-in Peer for Config-Sync

A small command-line peer for manually testing a running synchronizer.
It can push settings to the synchronizer, or listen for the snapshots
the synchronizer sends.

Usage:
    python scripts/sync_peer.py send --port 12348 -s CONFIG_SYNC.WPF_HOST=127.0.0.1
    python scripts/sync_peer.py send --port 12348 --file peer.ini
    python scripts/sync_peer.py send --port 12348 --legacy -s PWM.PWM_MIN=1000
    python scripts/sync_peer.py listen --port 12347
"""

import argparse
import socket
import sys
from typing import List

from configsync.config.inifile import load_config_file
from configsync.errors import ConfigSyncError
from configsync.protocol.framing import decode_frame, encode_records, format_body
from configsync.protocol.records import Record


def parse_assignment(text: str) -> Record:
    """Parse SECTION.KEY=VALUE into a Record."""
    name, sep, value = text.partition("=")
    section, dot, key = name.partition(".")
    if not sep or not dot or not section or not key:
        raise argparse.ArgumentTypeError(f"expected SECTION.KEY=VALUE, got {text!r}")
    return Record(section, key, value)


def send(args: argparse.Namespace) -> int:
    """Send one frame to the synchronizer."""
    records: List[Record] = []
    if args.file:
        try:
            records.extend(load_config_file(args.file))
        except ConfigSyncError as e:
            print(f"Error: {e}")
            return 1
    records.extend(args.set or [])

    if args.legacy:
        payload = format_body(records).encode("utf-8")
    else:
        payload = encode_records(records)

    try:
        with socket.create_connection((args.host, args.port), timeout=args.timeout) as sock:
            sock.sendall(payload)
    except OSError as e:
        print(f"Connection error: {e}")
        return 1

    mode = "legacy" if args.legacy else "framed"
    print(f"Sent {len(records)} settings ({len(payload)} bytes, {mode}) to {args.host}:{args.port}")
    return 0


def listen(args: argparse.Namespace) -> int:
    """Print every snapshot received until interrupted."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        server.bind((args.host, args.port))
        server.listen(5)
        print(f"Listening on {args.host}:{args.port} (Ctrl-C to stop)")

        try:
            while True:
                conn, addr = server.accept()
                with conn:
                    conn.settimeout(args.timeout)
                    data = b""
                    try:
                        while True:
                            chunk = conn.recv(4096)
                            if not chunk:
                                break
                            data += chunk
                    except socket.timeout:
                        print(f"Timed out reading from {addr}")

                try:
                    records = decode_frame(data)
                except ConfigSyncError as e:
                    print(f"Bad frame from {addr}: {e}")
                    continue

                print(f"\n--- {len(records)} settings from {addr[0]}:{addr[1]} ---")
                for record in records:
                    print(f"[{record.section}] {record.key} = {record.value}")
        except KeyboardInterrupt:
            print("\nStopped.")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Stand-in peer for testing Config-Sync"
    )
    subparsers = parser.add_subparsers(dest="mode", required=True)

    send_parser = subparsers.add_parser("send", help="Send settings to the synchronizer")
    send_parser.add_argument("--host", default="127.0.0.1", help="Synchronizer host (default: 127.0.0.1)")
    send_parser.add_argument("--port", type=int, default=12348, help="Synchronizer port (default: 12348)")
    send_parser.add_argument("--file", help="INI file whose settings are sent")
    send_parser.add_argument(
        "-s", "--set",
        action="append",
        type=parse_assignment,
        metavar="SECTION.KEY=VALUE",
        help="Setting to send (repeatable)",
    )
    send_parser.add_argument("--legacy", action="store_true", help="Send without the length header")
    send_parser.add_argument("--timeout", type=float, default=5.0, help="Socket timeout in seconds (default: 5.0)")
    send_parser.set_defaults(handler=send)

    listen_parser = subparsers.add_parser("listen", help="Print snapshots sent by the synchronizer")
    listen_parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    listen_parser.add_argument("--port", type=int, default=12347, help="Port to listen on (default: 12347)")
    listen_parser.add_argument("--timeout", type=float, default=5.0, help="Per-connection read timeout (default: 5.0)")
    listen_parser.set_defaults(handler=listen)

    args = parser.parse_args()
    sys.exit(args.handler(args))


if __name__ == "__main__":
    main()

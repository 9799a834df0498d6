#!/usr/bin/env python3
"""
Config-Sync Entry Point

Loads the config file, starts listening for updates from the peer, sends
the current config to the peer, then waits for commands.

Usage:
    python -m configsync.app                        # Uses ./config.ini
    python -m configsync.app /etc/app/config.ini    # Custom config file
    python -m configsync.app --no-interactive       # Run until SIGTERM/SIGINT
    python -m configsync.app --debug                # Enable debug logging

Commands (interactive mode):
    <Enter>   Resend the current config to the peer
    s         Show the current config
    w         Save the current config to <config>.backup
    r         Reload the config file
    q         Quit

Environment Variables:
    CONFIG_SYNC_PATH            - Default config file path
    CONFIG_SYNC_LISTEN_HOST     - Listener bind address
    CONFIG_SYNC_PERSIST         - Rewrite config file on peer updates (true/false)
    CONFIG_SYNC_DEBUG           - Enable debug mode (true/false)

Exit codes:
    0  Normal shutdown
    1  Config file could not be loaded, or the listener failed to start
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from .config.settings import settings
from .controller import SyncController
from .errors import BindError, LoadError

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  <Enter>   Resend the current config to the peer
  s         Show the current config
  w         Save the current config to a backup file
  r         Reload the config file
  q         Quit
"""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Config-Sync: keep a config file in step with a remote peer",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "config",
        nargs="?",
        default=settings.CONFIG_PATH,
        help="Path to the INI config file",
    )

    parser.add_argument(
        "--listen-host",
        type=str,
        default=settings.LISTEN_HOST,
        help="Address to listen for peer updates on",
    )

    parser.add_argument(
        "--no-interactive",
        dest="interactive",
        action="store_false",
        help="Do not read commands from stdin; run until signalled",
    )

    parser.add_argument(
        "--no-persist",
        dest="persist",
        action="store_false",
        default=settings.PERSIST_ON_MERGE,
        help="Do not rewrite the config file when the peer changes it",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


async def handle_command(controller: SyncController, line: str) -> bool:
    """
    Run one interactive command.

    Args:
        controller: The running controller
        line: Raw input line

    Returns:
        False when the user asked to quit
    """
    command = line.strip().lower()

    if command == "q":
        return False
    if command == "s":
        print(controller.describe())
    elif command == "w":
        controller.save()
    elif command == "r":
        if controller.reload():
            print("Config reloaded.")
    elif command in ("h", "help", "?"):
        print(HELP_TEXT)
    else:
        print("Resending current config to the peer.")
        await controller.send()
    return True


async def interactive_loop(controller: SyncController, shutdown: asyncio.Event) -> None:
    """
    Read commands from stdin until 'q', end of input, or shutdown.
    """
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()
    fd = sys.stdin.fileno()
    pending = b""

    def on_readable() -> None:
        nonlocal pending
        data = os.read(fd, 4096)
        if not data:
            loop.remove_reader(fd)
            if pending:
                lines.put_nowait(pending.decode(errors="replace"))
            lines.put_nowait(None)
            return
        pending += data
        while b"\n" in pending:
            line, pending = pending.split(b"\n", 1)
            lines.put_nowait(line.decode(errors="replace"))

    try:
        loop.add_reader(fd, on_readable)
    except (OSError, ValueError) as exc:
        # Regular files cannot be polled
        logger.warning(f"Cannot read commands from stdin ({exc}), running until signalled")
        await shutdown.wait()
        return

    stop_waiter = asyncio.create_task(shutdown.wait())
    print(HELP_TEXT)

    try:
        while True:
            next_line = asyncio.create_task(lines.get())
            await asyncio.wait({next_line, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not next_line.done():
                next_line.cancel()
                break

            line = next_line.result()
            if line is None or not await handle_command(controller, line):
                break
    finally:
        loop.remove_reader(fd)
        stop_waiter.cancel()


async def run(args: argparse.Namespace) -> int:
    """
    Run the synchronizer until quit or signal.

    Returns:
        Process exit code
    """
    controller = SyncController(
        config_path=args.config,
        listen_host=args.listen_host,
        persist=args.persist,
    )

    try:
        await controller.start()
    except LoadError as exc:
        logger.error(f"Cannot load config: {exc}")
        return 1
    except BindError as exc:
        logger.error(f"Cannot start listener: {exc}")
        return 1

    shutdown = asyncio.Event()

    # Register signal handlers (Unix only)
    if sys.platform != 'win32':
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown.set)

    try:
        if args.interactive and sys.platform != 'win32':
            await interactive_loop(controller, shutdown)
        else:
            await shutdown.wait()
    finally:
        logger.info("Shutting down...")
        await controller.stop()

    return 0


def main() -> None:
    """Main entry point for the synchronizer."""
    args = parse_args()
    setup_logging(debug=args.debug)

    logger.info("Starting Config-Sync")
    logger.info(f"  Config: {args.config}")
    logger.info(f"  Listen host: {args.listen_host}")
    logger.info(f"  Persist peer updates: {args.persist}")

    try:
        exit_code = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

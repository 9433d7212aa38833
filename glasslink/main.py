"""
Headless companion client.

Connects to the perception server, optionally finds and connects the
audio peripheral, and plays incoming audio until interrupted.

Usage:
    glasslink [--server URL] [--device NAME] [--scan-seconds N]
              [--unbounded] [--env-file PATH] [--no-playback]

Environment Variables:
    GLASSLINK_SERVER_URL=url             - Perception server (default: http://192.168.1.131:5000)
    GLASSLINK_RECONNECT_MAX_ATTEMPTS=n   - Reconnect attempts, 0 for unbounded (default: 5)
    GLASSLINK_DEVICE_NAME=name           - Peripheral advertised name (default: SmartGlass_BT)
    LOG_LEVEL=level                      - Logging level (default: INFO)

Examples:
    # Server only, local playback
    glasslink --server http://localhost:5000

    # Also forward audio to the glasses, retry the server forever
    glasslink --device SmartGlass --unbounded
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from glasslink.companion import CompanionClient
from glasslink.config import get_config, load_env_file, print_configuration_summary
from glasslink.config.logging_config import configure_logging
from glasslink.exceptions import GlassLinkError
from glasslink.models.state import StateSnapshot


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Smart-glasses companion client (perception server + audio peripheral)"
    )
    parser.add_argument("--server", help="Perception server URL (overrides config)")
    parser.add_argument(
        "--device",
        help="Connect to the first peripheral whose name contains this text",
    )
    parser.add_argument(
        "--scan-seconds",
        type=float,
        help="Peripheral scan window in seconds (overrides config)",
    )
    parser.add_argument(
        "--unbounded",
        action="store_true",
        help="Retry the server connection until interrupted",
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    parser.add_argument(
        "--no-playback",
        action="store_true",
        help="Do not play audio on this host",
    )
    return parser.parse_args(argv)


def format_snapshot(snapshot: StateSnapshot) -> str:
    device = snapshot.active_device.display_name if snapshot.active_device else "-"
    line = (
        f"server={snapshot.event_channel_state.value} "
        f"peripheral={snapshot.peripheral_state.value} device={device}"
    )
    if snapshot.last_description:
        line += f" | {snapshot.last_description}"
    return line


async def run(args: argparse.Namespace) -> int:
    config = get_config()
    if args.server:
        config.event_channel.server_url = args.server
    if args.scan_seconds is not None:
        config.peripheral.scan_duration = args.scan_seconds
    if args.unbounded:
        config.event_channel.reconnect_max_attempts = None
    if args.no_playback:
        config.audio.enable_playback = False

    logger = configure_logging(
        log_filename=config.logging.log_filename,
        file_path=str(config.logging.log_dir),
        level=config.logging.level.value,
    )
    print_configuration_summary()

    client = CompanionClient(config)
    client.subscribe(lambda snapshot: print(format_snapshot(snapshot)), emit_current=True)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass

    try:
        await client.start()

        if args.device:
            devices = await client.trigger_scan(name_filter=args.device)
            if devices:
                await client.trigger_connect(devices[0].id)
            else:
                logger.warning(f"No peripheral matching '{args.device}' found")

        await stop_event.wait()
    except GlassLinkError as e:
        logger.error(f"Companion client error: {e}")
        return 1
    finally:
        await client.stop()
        for line in reversed(client.journal.lines()):
            logger.debug(f"journal: {line}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    load_env_file(args.env_file)
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()

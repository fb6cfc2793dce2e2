"""
Main cuefollow application.
Runs the WebSocket server and its frame driver until interrupted.
"""

import argparse
import asyncio
import logging
import signal

from . import debug_log
from .config import Config, get_config_path, load_config, save_config
from .server import WebServer

logger = logging.getLogger(__name__)


class CuefollowApp:
    """
    Main cuefollow application that owns the server's lifetime.
    """

    def __init__(self, config: Config, host: str = "127.0.0.1", port: int = 8000) -> None:
        self.config: Config = config
        self.host: str = host
        self.port: int = port
        self.server: WebServer | None = None
        self.shutdown_event: asyncio.Event | None = None

    async def start(self) -> None:
        """Start serving and wait until shutdown is requested."""
        print("Starting cuefollow...")
        self.shutdown_event = asyncio.Event()

        self.server = WebServer(host=self.host, port=self.port, config=self.config)
        await self.server.start()

        print("\n✓ cuefollow ready!")
        print(f"  Connect a client to ws://{self.host}:{self.port}/ws")
        print("  Press Ctrl+C to stop\n")

        await self.shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Ask start() to return."""
        if self.shutdown_event is not None:
            self.shutdown_event.set()

    async def stop(self) -> None:
        """Stop the cuefollow application."""
        print("\nStopping cuefollow...")
        if self.server:
            await self.server.stop()
            self.server = None
        print("cuefollow stopped.")


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Command line options, with defaults taken from the config file."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="cuefollow - follow a reader through a script by voice"
    )

    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )

    parser.add_argument(
        "--fps",
        type=int,
        default=config.get("fps", 60),
        help="Scroll animation frames per second (default: from config or 60)"
    )

    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )

    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Enable the session event log in ./logs/"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log at DEBUG level"
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    # Configure logging - minimal console output
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    # Load config first to use as defaults
    config: Config = load_config()

    args: argparse.Namespace = build_parser(config).parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config["host"] = args.host
    config["port"] = args.port
    config["fps"] = args.fps

    if args.save_config:
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    # Enable debug logging if requested
    if args.debug_log:
        debug_log.enable()
        debug_log.clear_logs()
        print(f"Debug logging enabled (logs will be saved to {debug_log.LOG_DIR})")

    app: CuefollowApp = CuefollowApp(config, host=args.host, port=args.port)

    # Handle shutdown gracefully
    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_shutdown)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    except OSError as e:
        logger.error("Could not start server on %s:%d: %s", args.host, args.port, e)
    finally:
        # Ensure clean shutdown
        try:
            loop.run_until_complete(app.stop())
        except Exception:
            logger.exception("Error during shutdown")
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        # Allow cancelled tasks to complete
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()

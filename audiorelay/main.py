"""Relay server entry point."""

import sys
import argparse
import logging
from pathlib import Path

from aiohttp import web

from .config import RelayConfig
from .server.relay import AudioRelay
from .storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config: RelayConfig, port: int = None):
        self.config = config
        self.port = port
        self.relay: AudioRelay = None

    def init(self) -> web.Application:
        logger.info("Initializing relay...")
        file_manager = FileManager(
            self.config.get_data_directory(),
            self.config.get('storage.file_extension', '.pcm'),
        )
        self.relay = AudioRelay(file_manager)
        return self.relay.create_app()

    def run(self) -> None:
        app = self.init()
        host = self.config.get('server.host', '0.0.0.0')
        port = self.port or self.config.get_port()

        logger.info(f"Server running on port {port}")
        logger.info(f"WebSocket endpoint: ws://localhost:{port}")
        logger.info(f"Audio files will be saved to: {self.config.get_data_directory()}")
        web.run_app(app, host=host, port=port, print=None)


def setup_logging(config: RelayConfig, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'logs/audiorelay.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("=" * 50)
    logger.info("audiorelay starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def load_config(path: str) -> RelayConfig:
    return RelayConfig(path) if path else RelayConfig.defaults()


def main() -> None:
    """Main entry point for the relay server."""
    parser = argparse.ArgumentParser(
        description="audiorelay - receive microphone streams and save them per session"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Listening port (overrides config and PORT)"
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        help="Directory receiving the session recordings (overrides config)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="audiorelay v0.1.0"
    )

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.data_dir:
        config.set('storage.data_directory', str(Path(args.data_dir).absolute()))
    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))

    try:
        Server(config, port=args.port).run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

import asyncio
import logging
import signal
import sys
from pathlib import Path

from watch_n_serve.server import DevServer, ServerConfig
from watch_n_serve.server.constants import ServerConstants


# Configure logging
logger = logging.getLogger(__name__)


def setup_logging(log_file: Path = None, level: str = "INFO"):
    """
    Configure logging to both file and console.

    Args:
        log_file: Path to log file (optional)
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    # Create formatters
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    simple_formatter = logging.Formatter(
        '%(levelname)s: %(message)s'
    )

    # Root logger configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    root_logger.handlers = []

    # Console handler (simple format)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)

    # aiohttp logs connection-level noise at INFO; keep it quiet unless debugging
    if level.upper() != "DEBUG":
        logging.getLogger("aiohttp").setLevel(logging.WARNING)

    # File handler (detailed format)
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")

    return root_logger


async def run_server(root: Path, use_signals: bool = True):
    """Serve root with live reload until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    config = ServerConfig(
        root=root,
        host=ServerConstants.DEFAULT_HOST,
        port=ServerConstants.DEFAULT_PORT,
        watch=True,
    )
    server = DevServer(config, abort_event=stop_event)

    if use_signals:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

    serve_task = asyncio.create_task(server.serve())
    stop_task = asyncio.create_task(stop_event.wait())
    await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

    print("\nShutting down...")
    serve_task.cancel()
    stop_task.cancel()
    try:
        await serve_task
    except asyncio.CancelledError:
        pass

    print("Server stopped.")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m watch_n_serve.main <root-directory> [OPTIONS]")
        print("\nLogging Options:")
        print("  --log-file=PATH   - Log to file (default: stdout only)")
        print("  --log-level=LEVEL - Logging level: DEBUG, INFO, WARNING, ERROR (default: INFO)")
        print("  --no-signals      - Disable signal handlers")
        sys.exit(1)

    root = Path(sys.argv[1])
    use_signals = True
    log_file = None
    log_level = "INFO"

    # Parse optional arguments
    for arg in sys.argv[2:]:
        if arg.startswith("--log-file="):
            log_file = Path(arg.split("=", 1)[1])
        elif arg.startswith("--log-level="):
            log_level = arg.split("=", 1)[1]
        elif arg == "--no-signals":
            use_signals = False

    if not root.is_dir():
        print(f"Error: not a directory: {root}")
        sys.exit(1)

    # Setup logging
    setup_logging(log_file=log_file, level=log_level)

    try:
        asyncio.run(run_server(root, use_signals))
    except KeyboardInterrupt:
        print("\nShutdown complete.")


if __name__ == "__main__":
    main()

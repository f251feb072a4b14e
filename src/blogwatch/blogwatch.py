"""
blogwatch Core Module.

Entry point of the blogwatch daemon, which keeps a published site in sync
with its Markdown source directory:

1. Watches the source directory and debounces bursts of changes
2. Rebuilds the whole site once per batch of changes
3. Sends webmentions to every page a new or edited document links to
4. Optionally runs a webmention receiver in a separate process, queueing
   accepted mentions for verification

Functions:
    main(debug=False) -> int:
        Entry point for the console script. Returns the process exit status.

Example:
    $ blogwatch --debug
    Watching content for ['.markdown', '.md', '.mdown', '.txt'] (debounce 0.5s)
"""

import logging
import os
import sqlite3
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

from blogwatch.errors import StartupError

logger = logging.getLogger(__name__)

LOG_FILENAME = "blogwatch.log"
DEBUG_ENV_VAR = "BLOGWATCH_DEBUG"


def configure_logging(debug: bool = False) -> None:
    """Log to a rotating file (10MB, 3 backups) and to stdout."""
    log_level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers to avoid duplicates
    root_logger.handlers.clear()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    log_handler = RotatingFileHandler(
        LOG_FILENAME,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3
    )
    log_handler.setLevel(log_level)
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)


def check_directories(config: Dict[str, Any]) -> None:
    """Verify the source directory is readable and output/data are writable.

    Missing output and data directories are created.

    Raises:
        StartupError: If any directory is unusable
    """
    paths = config["paths"]

    source_dir = paths["source_dir"]
    if not os.path.isdir(source_dir):
        raise StartupError(f"Source directory does not exist: {source_dir}")
    if not os.access(source_dir, os.R_OK | os.X_OK):
        raise StartupError(f"Source directory is not readable: {source_dir}")

    for key in ("output_dir", "data_dir"):
        directory = paths[key]
        try:
            os.makedirs(directory, mode=0o755, exist_ok=True)
        except OSError as e:
            raise StartupError(f"Cannot create {key} {directory}: {e}") from e
        if not os.access(directory, os.W_OK | os.X_OK):
            raise StartupError(f"Directory is not writable ({key}): {directory}")


def main(debug: bool = False) -> int:
    """Main entry point for the blogwatch console command.

    Args:
        debug: Verbose logging and no receiver worker timeout. Can also be
               set via the --debug flag or the BLOGWATCH_DEBUG environment
               variable.

    Returns:
        0 after a signalled shutdown, 1 if a fatal startup condition was met
    """
    from blogwatch.coordinator import PublishCoordinator
    from blogwatch.supervisor import ProcessSupervisor, ReceiverProcess
    from config import load_config
    from publish import InvalidationSignal, PublishedDocumentIndex
    from receiver import NotificationQueue
    from watcher import ChangeSource

    if not debug:
        debug = os.environ.get(DEBUG_ENV_VAR, "").lower() in ("true", "1", "yes")
        if len(sys.argv) > 1 and "--debug" in sys.argv:
            debug = True

    configure_logging(debug)
    if debug:
        logger.info("Debug mode enabled")

    config = load_config()

    try:
        check_directories(config)
    except StartupError as e:
        logger.error(f"Fatal: {e}")
        return 1

    invalidation_signal = InvalidationSignal()
    index = PublishedDocumentIndex.from_config(config, invalidation_signal)
    coordinator = PublishCoordinator.from_config(config, index)

    logger.info(f"Publishing {config['paths']['source_dir']} to {config['paths']['output_dir']}")
    coordinator.rebuild()

    receiver = None
    receiver_config = config.get("webmention_receiver", {})
    if receiver_config.get("enabled", False):
        # Create the queue database up front so schema errors surface here
        try:
            NotificationQueue.from_config(config)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Fatal: cannot open notification queue: {e}")
            return 1
        receiver = ReceiverProcess.for_config(config, invalidation_signal, debug)
        logger.info(
            f"Webmention receiver enabled on {receiver_config.get('host')}:{receiver_config.get('port')}"
        )
    else:
        logger.info("Webmention receiver disabled")

    if config["webmention"].get("send_enabled"):
        logger.info("Outbound webmentions enabled")
    else:
        logger.info("Outbound webmentions disabled")

    supervisor = ProcessSupervisor(
        ChangeSource.from_config(config, invalidation_signal),
        coordinator,
        receiver=receiver,
        poll_interval=float(config["watch"].get("poll_interval", 1.0)),
    )
    supervisor.install_signal_handlers()
    return supervisor.run()


# Allow running as a script for development/testing
if __name__ == "__main__":
    sys.exit(main())

import sys
import logging
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler

from ecolaunch.local.config import effective_settings as config
from ecolaunch.log.handler import LokiHandler

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


def setup_logging(console_level: int = logging.INFO, log_file: Optional[Path] = None) -> None:
    """
    Configures the root logger for ecolaunch.
    This sets up handlers for the console, a rotating log file and optionally
    Loki, clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param log_file: The supervisor log file; defaults to SUPERVISOR_LOG_PATH.
    """
    log_file = Path(log_file or config.SUPERVISOR_LOG_PATH)

    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    # --- Rotating File Handler (always enabled for all levels) ---
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.LOG_FILE_MAX_BYTES,
            backupCount=config.LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.error(f"Failed to open log file '{log_file}': {e}. File logging will be disabled.")

    # --- Loki Handler (conditional) ---
    if config.LOKI_ENABLED:
        loki_handler = LokiHandler(
            url=config.LOKI_URL,
            org_id=config.LOKI_ORG_ID or None,
            flush_interval=config.LOKI_FLUSH_INTERVAL,
            batch_size=config.LOKI_BATCH_SIZE,
        )
        loki_handler.setLevel(logging.INFO) # Avoid spamming Loki with DEBUG logs
        root_logger.addHandler(loki_handler)
        root_logger.info(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")

import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Any

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_FILE = 'offering_gateway.log'


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Setup application-wide logging configuration.

    Args:
        config: Dictionary containing logging configuration
            {
                'level': str,  # DEBUG, INFO, WARNING, ERROR, CRITICAL (any case)
                'file': str,   # Log file path, null for console only
                'max_size': int,  # Max size in MB before rotation
                'backup_count': int,  # Number of backup files to keep
                'format': str  # Log message format
            }
    """
    log_level = getattr(logging, str(config.get('level', 'INFO')).upper(), logging.INFO)
    log_file = config.get('file', DEFAULT_FILE)
    max_size = config.get('max_size', 10) * 1024 * 1024
    backup_count = config.get('backup_count', 5)
    formatter = logging.Formatter(config.get('format', DEFAULT_FORMAT))

    handlers = []
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size,
            backupCount=backup_count
        )
        handlers.append(file_handler)
    handlers.append(logging.StreamHandler())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # aiocoap is chatty at INFO
    logging.getLogger('coap').setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module (usually __name__)"""
    return logging.getLogger(name)

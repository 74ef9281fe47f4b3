import logging
import sys
import json
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

# --- Constants ---
LOGGER_NAME = 'telos_matrix'
LOG_DIR = Path(__file__).resolve().parent.parent / 'logs'
LOG_FILE_NAME = 'analysis.log'
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

class JsonFormatter(logging.Formatter):
    """
    Formats log records as a JSON string.
    """
    def format(self, record):
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_object['exc_info'] = self.formatException(record.exc_info)

        return json.dumps(log_object)

def setup_logging(log_level: Union[int, str] = logging.INFO, log_dir: Optional[Path] = None):
    """
    Configures the analysis logger.
    - Console: Human-readable plain text.
    - File: Machine-readable JSON, with rotation.

    Library modules only emit records; nothing is attached until an entry
    point calls this, so importing the package has no side effects.
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    log_dir = Path(log_dir) if log_dir else LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    analysis_logger = logging.getLogger(LOGGER_NAME)
    analysis_logger.setLevel(log_level)

    # --- Formatters ---
    plain_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    json_formatter = JsonFormatter()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(plain_formatter)

    # --- Rotating File Handler (JSON) ---
    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(json_formatter)

    # Clear existing handlers to avoid duplicates
    for handler in list(analysis_logger.handlers):
        analysis_logger.removeHandler(handler)
        handler.close()

    analysis_logger.addHandler(console_handler)
    analysis_logger.addHandler(file_handler)

    return analysis_logger

# Shared logger for the analysis layer; configured by setup_logging().
logger = logging.getLogger(LOGGER_NAME)

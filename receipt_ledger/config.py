"""
Receipt Ledger - Configuration and Constants

PURPOSE: Central configuration management for the application
SCOPE: Application settings, constants, and environment variables
DEPENDENCIES: None (foundational module)
"""

import logging
import os
from dataclasses import dataclass


def _env(name: str, default: str) -> str:
    return os.getenv(f"LEDGER_{name}", default)


@dataclass
class AppConfig:
    """Application configuration constants."""
    QUEUE_DIR: str = 'queues'
    MASTER_QUEUE_FILE: str = 'master_queue.json'
    EXPENSE_QUEUE_FILE: str = 'expense_queue.json'
    MASTER_DB_FILE: str = 'master.db'
    TEMP_IMAGE_DIR: str = 'img'
    ANALYSIS_TIMEOUT: float = 30.0
    DEFAULT_USER_ID: int = 0
    DEFAULT_CATEGORY_ID: int = 1
    ITEMS_PER_PAGE: int = 15
    OCR_LANGUAGES: str = 'jpn+eng'
    LOG_LEVEL: str = 'INFO'

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build a configuration, letting LEDGER_* environment variables override defaults."""
        return cls(
            QUEUE_DIR=_env('QUEUE_DIR', cls.QUEUE_DIR),
            MASTER_QUEUE_FILE=_env('MASTER_QUEUE_FILE', cls.MASTER_QUEUE_FILE),
            EXPENSE_QUEUE_FILE=_env('EXPENSE_QUEUE_FILE', cls.EXPENSE_QUEUE_FILE),
            MASTER_DB_FILE=_env('MASTER_DB_FILE', cls.MASTER_DB_FILE),
            TEMP_IMAGE_DIR=_env('TEMP_IMAGE_DIR', cls.TEMP_IMAGE_DIR),
            ANALYSIS_TIMEOUT=float(_env('ANALYSIS_TIMEOUT', str(cls.ANALYSIS_TIMEOUT))),
            DEFAULT_USER_ID=int(_env('DEFAULT_USER_ID', str(cls.DEFAULT_USER_ID))),
            DEFAULT_CATEGORY_ID=int(_env('DEFAULT_CATEGORY_ID', str(cls.DEFAULT_CATEGORY_ID))),
            ITEMS_PER_PAGE=int(_env('ITEMS_PER_PAGE', str(cls.ITEMS_PER_PAGE))),
            OCR_LANGUAGES=_env('OCR_LANGUAGES', cls.OCR_LANGUAGES),
            LOG_LEVEL=_env('LOG_LEVEL', cls.LOG_LEVEL),
        )

    @property
    def master_queue_path(self) -> str:
        return os.path.join(self.QUEUE_DIR, self.MASTER_QUEUE_FILE)

    @property
    def expense_queue_path(self) -> str:
        return os.path.join(self.QUEUE_DIR, self.EXPENSE_QUEUE_FILE)


# Global configuration instance
config = AppConfig.from_env()

# Set up logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

"""
Receipt Ledger - Error Taxonomy

PURPOSE: Domain exceptions raised by the coordination engine
SCOPE: Transaction, draft, queue and validation failures
DEPENDENCIES: None
"""

import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for the ledger domain, carrying optional context."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context: Dict[str, Any] = {}

    def with_context(self, key: str, value: Any) -> "LedgerError":
        self.context[key] = value
        return self

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class DuplicateEvent(LedgerError):
    """A transaction is already registered for this event"""


class NotFound(LedgerError):
    """Draft, transaction or queue item does not exist"""


class AlreadyOpen(LedgerError):
    """A draft is already open for this event"""


class Aborted(LedgerError):
    """The background analysis failed without producing a result"""


class TimedOut(LedgerError):
    """The background analysis did not complete in time"""


class PersistenceError(LedgerError):
    """Queue file could not be read, decoded, encoded or written"""


class ValidationError(LedgerError):
    """User input was rejected"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


def log_error(error: LedgerError) -> None:
    """Log a ledger error with its context in a single line."""
    context = ''
    if error.context:
        context = f" context={json.dumps(error.context, ensure_ascii=False, default=str)}"
    logger.error(f"{type(error).__name__}: {error.message}{context}")
    if error.cause is not None:
        logger.error(f"  -> cause: {error.cause!r}")

"""
Receipt Ledger Package

PURPOSE: Package initialization for the receipt ledger
SCOPE: Module imports and package configuration
"""

__version__ = "1.0.0"
__description__ = "Receipt-to-expense coordination with queued master data"

# Package imports for easier access
from .config import config, AppConfig
from .errors import (LedgerError, DuplicateEvent, NotFound, AlreadyOpen, Aborted, TimedOut,
                     PersistenceError, ValidationError)
from .models import (DatasetKind, ItemStatus, AnalysisResult, DraftRecord, PendingMasterItem,
                     CommittedExpense, MasterEntry, MasterData)
from .registry import TransactionRegistry
from .drafts import DraftStore
from .overlay import OverlayResolver
from .queue_store import MasterQueueStore, ExpenseQueueStore
from .database import MasterDataRepository
from .managers import MasterDataManager, ExpenseManager
from .coordinator import Coordinator, CoordinatorState

__all__ = [
    "config",
    "AppConfig",
    "LedgerError",
    "DuplicateEvent",
    "NotFound",
    "AlreadyOpen",
    "Aborted",
    "TimedOut",
    "PersistenceError",
    "ValidationError",
    "DatasetKind",
    "ItemStatus",
    "AnalysisResult",
    "DraftRecord",
    "PendingMasterItem",
    "CommittedExpense",
    "MasterEntry",
    "MasterData",
    "TransactionRegistry",
    "DraftStore",
    "OverlayResolver",
    "MasterQueueStore",
    "ExpenseQueueStore",
    "MasterDataRepository",
    "MasterDataManager",
    "ExpenseManager",
    "Coordinator",
    "CoordinatorState",
]

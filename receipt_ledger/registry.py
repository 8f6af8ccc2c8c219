"""
Receipt Ledger - Transaction Registry

PURPOSE: One in-flight coordination record per originating event
SCOPE: Registration, single-delivery result slot, join with timeout, cleanup
DEPENDENCIES: asyncio, threading

The background analysis task is the only producer for a transaction; the
foreground join is the only consumer. The slot makes both sides explicit:
it is written or closed at most once, and read at most once.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from .errors import Aborted, DuplicateEvent, NotFound, TimedOut
from .models import AnalysisResult

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    PENDING = 'pending'
    FULFILLED = 'fulfilled'
    ABORTED = 'aborted'


class OneShot:
    """Single-slot delivery channel with explicit state."""

    def __init__(self):
        self.state = SlotState.PENDING
        self.consumed = False
        self._value: Optional[AnalysisResult] = None
        self._event = asyncio.Event()

    def fulfill(self, value: AnalysisResult) -> bool:
        """Store the value. Returns False if the slot was already written or closed."""
        if self.state != SlotState.PENDING:
            return False
        self._value = value
        self.state = SlotState.FULFILLED
        self._event.set()
        return True

    def close(self) -> bool:
        """Close the slot without a value. Returns False if already written or closed."""
        if self.state != SlotState.PENDING:
            return False
        self.state = SlotState.ABORTED
        self._event.set()
        return True

    async def wait(self, timeout: float) -> AnalysisResult:
        if self.consumed:
            raise NotFound("Result already consumed")
        self.consumed = True
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            # A value written in the same tick as the timeout still wins
            if self.state == SlotState.PENDING:
                self.close()
                raise TimedOut("Analysis did not complete in time")
        if self.state == SlotState.FULFILLED:
            return self._value
        raise Aborted("Analysis failed")


@dataclass
class TransactionRecord:
    event_id: str
    asset_ref: str
    slot: OneShot = field(default_factory=OneShot)
    user_input: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)


class TransactionRegistry:
    """Process-local map of event ID -> in-flight transaction."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, TransactionRecord] = {}

    def begin(self, event_id: str, asset_ref: str) -> TransactionRecord:
        record = TransactionRecord(event_id=event_id, asset_ref=asset_ref)
        with self._lock:
            if event_id in self._records:
                raise DuplicateEvent("Transaction already registered").with_context('event_id', event_id)
            self._records[event_id] = record
        logger.info(f"Transaction started: {event_id}")
        return record

    def get(self, event_id: str) -> TransactionRecord:
        with self._lock:
            record = self._records.get(event_id)
        if record is None:
            raise NotFound("Transaction not found").with_context('event_id', event_id)
        return record

    def deliver(self, event_id: str, result: AnalysisResult) -> None:
        """Write the analysis result. A no-op once the transaction has ended."""
        with self._lock:
            record = self._records.get(event_id)
            delivered = record is not None and record.slot.fulfill(result)
        if not delivered:
            logger.warning(f"Late analysis result dropped: {event_id}")

    def abort(self, event_id: str) -> None:
        """Close the slot without a value. A no-op once the transaction has ended."""
        with self._lock:
            record = self._records.get(event_id)
            if record is not None:
                record.slot.close()

    async def await_result(self, event_id: str, timeout: float) -> AnalysisResult:
        """Wait for the background result. Raises Aborted or TimedOut."""
        record = self.get(event_id)
        return await record.slot.wait(timeout)

    def end(self, event_id: str) -> bool:
        """Remove the transaction. Safe to call repeatedly."""
        with self._lock:
            record = self._records.pop(event_id, None)
        if record is not None:
            logger.info(f"Transaction ended: {event_id}")
        return record is not None

    def __contains__(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

"""
Receipt Ledger - Draft Store

PURPOSE: Holds the mutable confirmation draft for each event
SCOPE: Open, single-field edits, snapshot reads, commit hand-off, close
DEPENDENCIES: threading, models.py
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .errors import AlreadyOpen, NotFound, ValidationError
from .models import EDITABLE_FIELDS, AnalysisResult, DraftRecord

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    draft: DraftRecord
    lock: threading.Lock = field(default_factory=threading.Lock)
    committing: bool = False
    closed: bool = False


class DraftStore:
    """At most one open draft per event ID; all mutations of a draft go through its lock.

    A draft being committed is frozen: edits, cancels and a second commit are
    rejected with AlreadyOpen until the commit finishes or is released.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._drafts: Dict[str, _Entry] = {}

    def open(self, event_id: str, category_id: int, amount: int, user_id: int, detail: str,
             date: str, payment_method: str, analysis_result: AnalysisResult,
             group_id: Optional[int] = None) -> DraftRecord:
        draft = DraftRecord(
            event_id=event_id,
            date=date,
            amount=amount,
            category_id=category_id,
            group_id=group_id,
            user_id=user_id,
            detail=detail,
            payment_method=payment_method,
            analysis=analysis_result,
        )
        return self.put(draft)

    def put(self, draft: DraftRecord) -> DraftRecord:
        """Open a fully built draft (used for split remainders)."""
        with self._lock:
            if draft.event_id in self._drafts:
                raise AlreadyOpen("Draft already open").with_context('event_id', draft.event_id)
            self._drafts[draft.event_id] = _Entry(draft=replace(draft))
        logger.info(f"Draft opened: {draft.event_id} (¥{draft.amount})")
        return replace(draft)

    def edit(self, event_id: str, field: str, value: Any) -> DraftRecord:
        """Replace exactly one field and return the updated snapshot."""
        if field not in EDITABLE_FIELDS:
            raise ValidationError(f"Field '{field}' cannot be edited")
        entry = self._entry(event_id)
        with entry.lock:
            self._check_writable(entry, event_id)
            setattr(entry.draft, field, value)
            snapshot = replace(entry.draft)
        logger.info(f"Draft {event_id}: {field} updated")
        return snapshot

    def read(self, event_id: str) -> DraftRecord:
        entry = self._entry(event_id)
        with entry.lock:
            if entry.closed:
                raise NotFound("Draft not found").with_context('event_id', event_id)
            return replace(entry.draft)

    def begin_commit(self, event_id: str) -> DraftRecord:
        """Freeze the draft for committing and return the snapshot to persist."""
        entry = self._entry(event_id)
        with entry.lock:
            self._check_writable(entry, event_id)
            entry.committing = True
            return replace(entry.draft)

    def release_commit(self, event_id: str) -> None:
        """Unfreeze after a failed commit so the draft can be edited or retried."""
        entry = self._entry(event_id)
        with entry.lock:
            entry.committing = False

    def finish_commit(self, event_id: str) -> DraftRecord:
        """Remove a draft whose commit went through."""
        return self._remove(event_id, committing=True)

    def close(self, event_id: str) -> DraftRecord:
        """Discard an open draft that is not being committed."""
        return self._remove(event_id, committing=False)

    def _remove(self, event_id: str, committing: bool) -> DraftRecord:
        entry = self._entry(event_id)
        with entry.lock:
            if entry.closed:
                raise NotFound("Draft not found").with_context('event_id', event_id)
            if entry.committing != committing:
                raise AlreadyOpen("Draft is being committed").with_context('event_id', event_id)
            entry.closed = True
            with self._lock:
                self._drafts.pop(event_id, None)
        logger.info(f"Draft closed: {event_id}")
        return replace(entry.draft)

    @staticmethod
    def _check_writable(entry: _Entry, event_id: str) -> None:
        if entry.closed:
            raise NotFound("Draft not found").with_context('event_id', event_id)
        if entry.committing:
            raise AlreadyOpen("Draft is being committed").with_context('event_id', event_id)

    def _entry(self, event_id: str) -> _Entry:
        with self._lock:
            entry = self._drafts.get(event_id)
        if entry is None:
            raise NotFound("Draft not found").with_context('event_id', event_id)
        return entry

    def __contains__(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._drafts

    def __len__(self) -> int:
        with self._lock:
            return len(self._drafts)

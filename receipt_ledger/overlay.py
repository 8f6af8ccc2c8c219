"""
Receipt Ledger - Master Data Overlay

PURPOSE: Merge the immutable base master lists with queued, not yet synced additions
SCOPE: Provisional ID assignment, duplicate detection, script-aware ordering
DEPENDENCIES: models.py, queue_store.py
"""

import logging
from typing import List, Optional, Tuple

from .models import DatasetKind, ItemStatus, MasterData, MasterEntry
from .queue_store import MasterQueueStore

logger = logging.getLogger(__name__)

# Hiragana, Katakana (incl. phonetic extensions and half-width forms) and Han ideographs
_JAPANESE_RANGES = (
    (0x3040, 0x309F),
    (0x30A0, 0x30FF),
    (0x31F0, 0x31FF),
    (0xFF66, 0xFF9F),
    (0x3400, 0x4DBF),
    (0x4E00, 0x9FFF),
    (0xF900, 0xFAFF),
    (0x20000, 0x2FA1F),
    (0x3005, 0x3007),
)


def is_japanese(text: str) -> bool:
    """True if the text contains at least one Japanese-script character."""
    for char in text:
        code = ord(char)
        if any(low <= code <= high for low, high in _JAPANESE_RANGES):
            return True
    return False


def collation_key(name: str) -> Tuple[int, str]:
    """Japanese-script names first, then ordinal string order."""
    return (0 if is_japanese(name) else 1, name)


def sort_entries(entries: List[MasterEntry]) -> List[MasterEntry]:
    return sorted(entries, key=lambda entry: collation_key(entry.name))


class OverlayResolver:
    """Read-only projection of base master data plus pending queue items."""

    def __init__(self, base: MasterData, queue: MasterQueueStore):
        self.base = base
        self.queue = queue

    def next_id(self, kind: DatasetKind) -> int:
        """First ID above every base ID of this kind."""
        return max([entry.id for entry in self.base.entries(kind)] + [0]) + 1

    def list(self, kind: DatasetKind) -> List[MasterEntry]:
        """Base entries plus pending additions with provisional IDs, fully sorted."""
        result = self.base.entries(kind)

        next_id = self.next_id(kind)
        for item in self.queue.items(kind):
            if item.status != ItemStatus.PENDING:
                continue
            result.append(MasterEntry(id=next_id, name=item.name, type_id=item.type_id, pending=True))
            next_id += 1

        return sort_entries(result)

    def is_duplicate(self, kind: DatasetKind, name: str) -> bool:
        """Exact name match against the base list or a non-error queued item."""
        if any(entry.name == name for entry in self.base.entries(kind)):
            return True
        return any(
            item.name == name and item.status != ItemStatus.ERROR
            for item in self.queue.items(kind)
        )

    def page(self, kind: DatasetKind, page: int, per_page: int) -> Tuple[List[MasterEntry], int]:
        """One page of the overlay and the total number of pages."""
        entries = self.list(kind)
        total_pages = max(1, (len(entries) + per_page - 1) // per_page)
        page = min(max(page, 0), total_pages - 1)
        start = page * per_page
        return entries[start:start + per_page], total_pages

    def find_id(self, kind: DatasetKind, name: str) -> Optional[int]:
        for entry in self.list(kind):
            if entry.name == name:
                return entry.id
        return None

    def name_for(self, kind: DatasetKind, entry_id: Optional[int]) -> Optional[str]:
        if entry_id is None:
            return None
        for entry in self.list(kind):
            if entry.id == entry_id:
                return entry.name
        return None

    def find_type_id(self, type_name: str) -> Optional[str]:
        """Resolve a payment type name to its type ID."""
        for type_id, name in self.base.type_list:
            if name == type_name:
                return type_id
        return None

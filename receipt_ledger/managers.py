"""
Receipt Ledger - Data Managers

PURPOSE: Data access layer for queued master data and committed expenses
SCOPE: Validated add-requests, status transitions, expense log access
DEPENDENCIES: queue_store.py, overlay.py, validators.py
"""

import logging
from typing import Dict, List, Optional

from .errors import ValidationError
from .models import CommittedExpense, DatasetKind, ItemStatus, PendingMasterItem
from .overlay import OverlayResolver
from .queue_store import ExpenseQueueStore, MasterQueueStore
from .validators import validate_master_item

logger = logging.getLogger(__name__)


class MasterDataManager:
    """Handles add-requests for categories, groups, users and payment methods."""

    def __init__(self, queue: MasterQueueStore, overlay: OverlayResolver):
        self.queue = queue
        self.overlay = overlay

    async def add_item(self, kind: DatasetKind, name: str, type_name: Optional[str] = None) -> PendingMasterItem:
        """Queue a new master entry after validation and the duplicate check."""
        name = (name or '').strip()
        type_name = (type_name or '').strip() or None

        is_valid, errors = validate_master_item(kind, name, type_name)
        if not is_valid:
            raise ValidationError("Invalid master data", errors)

        if self.overlay.is_duplicate(kind, name):
            raise ValidationError(f"「{name}」は既に存在しています。").with_context('kind', kind.value)

        type_id = None
        if kind == DatasetKind.PAYMENT_TYPE:
            type_id = self.overlay.find_type_id(type_name)
            if type_id is None:
                raise ValidationError(f"支払い種別「{type_name}」が見つかりません。")
        else:
            type_name = None

        item = PendingMasterItem(type=kind, name=name, type_name=type_name, type_id=type_id)
        # Re-checked under the queue lock; the check above only fails fast
        base_names = [entry.name for entry in self.overlay.base.entries(kind)]
        await self.queue.append_unique(kind, item, reserved_names=base_names)
        logger.info(f"{kind.label}「{name}」をキューに追加しました")
        return item

    async def mark_synced(self, item_id: str) -> PendingMasterItem:
        return await self.queue.update_status(item_id, ItemStatus.SYNCED)

    async def mark_error(self, item_id: str) -> PendingMasterItem:
        return await self.queue.update_status(item_id, ItemStatus.ERROR)

    async def remove_item(self, item_id: str) -> PendingMasterItem:
        return await self.queue.remove(item_id)

    def pending_items(self) -> Dict[DatasetKind, List[PendingMasterItem]]:
        return self.queue.all_items()


class ExpenseManager:
    """Handles the append-only log of committed expenses."""

    def __init__(self, queue: ExpenseQueueStore):
        self.queue = queue

    async def record(self, expense: CommittedExpense) -> int:
        return await self.queue.append(expense)

    def list_expenses(self) -> List[CommittedExpense]:
        return self.queue.entries()

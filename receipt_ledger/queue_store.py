"""
Receipt Ledger - Queue Store

PURPOSE: Durable, lock-guarded JSON queues for pending master data and committed expenses
SCOPE: File-backed read-modify-write cycles, startup loading, in-memory mirrors
DEPENDENCIES: aiofiles, asyncio, json

Every mutating operation holds the store's lock for the whole cycle
(read file -> decode -> mutate -> encode -> write file). The in-memory mirror
is swapped only after the write succeeded, so readers of the mirror never see
a half-applied change.
"""

import asyncio
import json
import logging
import os
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

import aiofiles

from .errors import NotFound, PersistenceError, ValidationError
from .models import CommittedExpense, DatasetKind, ItemStatus, PendingMasterItem

logger = logging.getLogger(__name__)

T = TypeVar('T')


class JsonFileStore:
    """Base class for a single JSON file guarded by one writer lock."""

    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()
        self._mirror = self._empty()

    def _empty(self) -> Any:
        raise NotImplementedError

    def _decode(self, raw: Any) -> Any:
        raise NotImplementedError

    def _encode(self, data: Any) -> Any:
        raise NotImplementedError

    async def load(self) -> None:
        """Load the file into memory. A missing file yields an empty store.

        A corrupt file leaves the store empty and raises PersistenceError so the
        caller can report it and carry on.
        """
        async with self._lock:
            try:
                self._mirror = await self._read()
            except PersistenceError:
                self._mirror = self._empty()
                raise
        logger.info(f"Loaded queue file {self.path}")

    async def _read(self) -> Any:
        """Read and decode the current file contents."""
        try:
            async with aiofiles.open(self.path, mode='r', encoding='utf-8') as f:
                content = await f.read()
        except FileNotFoundError:
            return self._empty()
        except OSError as e:
            raise PersistenceError("Failed to read queue file", e).with_context('file_path', self.path)

        if not content.strip():
            return self._empty()

        try:
            return self._decode(json.loads(content))
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError("Failed to decode queue file", e).with_context('file_path', self.path)

    async def _write(self, data: Any) -> None:
        """Encode and atomically replace the file."""
        try:
            payload = json.dumps(self._encode(data), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise PersistenceError("Failed to encode queue data", e).with_context('file_path', self.path)

        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            async with aiofiles.open(tmp_path, mode='w', encoding='utf-8') as f:
                await f.write(payload)
                await f.flush()
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError("Failed to write queue file", e).with_context('file_path', self.path)

    async def _transact(self, mutate: Callable[[Any], T]) -> T:
        """Run one read-modify-write cycle under the writer lock."""
        async with self._lock:
            data = await self._read()
            result = mutate(data)
            await self._write(data)
            self._mirror = data
            return result


class MasterQueueStore(JsonFileStore):
    """Pending master-data additions keyed by dataset kind."""

    def _empty(self) -> Dict[DatasetKind, List[PendingMasterItem]]:
        return {}

    def _decode(self, raw: Any) -> Dict[DatasetKind, List[PendingMasterItem]]:
        if not isinstance(raw, dict):
            raise ValueError("master queue must be a JSON object")
        queues = {}
        for kind, items in raw.items():
            queues[DatasetKind(kind)] = [PendingMasterItem.from_dict(item) for item in items or []]
        return queues

    def _encode(self, data: Dict[DatasetKind, List[PendingMasterItem]]) -> Dict[str, List[Dict[str, Any]]]:
        return {kind.value: [item.to_dict() for item in items] for kind, items in data.items()}

    async def append(self, kind: DatasetKind, item: PendingMasterItem) -> PendingMasterItem:
        """Append a new item to the queue for `kind`."""
        if item.type != kind:
            item = replace(item, type=kind)

        def mutate(queues):
            queues.setdefault(kind, []).append(replace(item))
            return item

        result = await self._transact(mutate)
        logger.info(f"Queued {kind.value} '{item.name}' (id={item.id})")
        return result

    async def append_unique(self, kind: DatasetKind, item: PendingMasterItem,
                            reserved_names: Iterable[str] = ()) -> PendingMasterItem:
        """Append unless the name is reserved or already queued without an error.

        The check runs against the file contents inside the write cycle, so two
        concurrent requests for the same name cannot both be queued.
        """
        reserved = set(reserved_names)
        if item.type != kind:
            item = replace(item, type=kind)

        def mutate(queues):
            if item.name in reserved or any(
                queued.name == item.name and queued.status != ItemStatus.ERROR
                for queued in queues.get(kind, [])
            ):
                raise ValidationError(f"「{item.name}」は既に存在しています。").with_context('kind', kind.value)
            queues.setdefault(kind, []).append(replace(item))
            return item

        result = await self._transact(mutate)
        logger.info(f"Queued {kind.value} '{item.name}' (id={item.id})")
        return result

    async def update_status(self, item_id: str, status: ItemStatus) -> PendingMasterItem:
        """Set the status of an item, searching all kinds."""

        def mutate(queues):
            item = self._locate(queues, item_id)
            item.status = ItemStatus(status)
            item.updated_at = datetime.now()
            return replace(item)

        result = await self._transact(mutate)
        logger.info(f"Queue item {item_id} marked {result.status.value}")
        return result

    async def remove(self, item_id: str) -> PendingMasterItem:
        """Delete an item from whichever queue holds it."""

        def mutate(queues):
            item = self._locate(queues, item_id)
            queues[item.type].remove(item)
            return item

        result = await self._transact(mutate)
        logger.info(f"Removed queue item {item_id}")
        return result

    def items(self, kind: DatasetKind) -> List[PendingMasterItem]:
        """Snapshot of the queue for one kind, in insertion order."""
        return [replace(item) for item in self._mirror.get(kind, [])]

    def all_items(self) -> Dict[DatasetKind, List[PendingMasterItem]]:
        return {kind: [replace(item) for item in items] for kind, items in self._mirror.items()}

    def find(self, item_id: str) -> Optional[PendingMasterItem]:
        for items in self._mirror.values():
            for item in items:
                if item.id == item_id:
                    return replace(item)
        return None

    @staticmethod
    def _locate(queues: Dict[DatasetKind, List[PendingMasterItem]], item_id: str) -> PendingMasterItem:
        for items in queues.values():
            for item in items:
                if item.id == item_id:
                    return item
        raise NotFound("Queue item not found").with_context('item_id', item_id)


class ExpenseQueueStore(JsonFileStore):
    """Flat, append-only log of committed expenses."""

    def _empty(self) -> List[CommittedExpense]:
        return []

    def _decode(self, raw: Any) -> List[CommittedExpense]:
        if not isinstance(raw, list):
            raise ValueError("expense queue must be a JSON array")
        return [CommittedExpense.from_dict(entry) for entry in raw]

    def _encode(self, data: List[CommittedExpense]) -> List[Dict[str, Any]]:
        return [expense.to_dict() for expense in data]

    async def append(self, expense: CommittedExpense) -> int:
        """Append an expense and return the new length of the log."""

        def mutate(entries):
            entries.append(expense)
            return len(entries)

        total = await self._transact(mutate)
        logger.info(f"Expense queued: {expense.detail} ¥{expense.price} (total: {total})")
        return total

    def entries(self) -> List[CommittedExpense]:
        return list(self._mirror)

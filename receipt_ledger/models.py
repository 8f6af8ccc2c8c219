"""
Receipt Ledger - Domain Models

PURPOSE: Data structures shared by the coordination engine
SCOPE: Analysis results, drafts, queued master items, committed expenses
DEPENDENCIES: dataclasses, datetime
"""

import random
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class DatasetKind(str, Enum):
    """Master dataset kinds that accept queued additions."""
    CATEGORY = 'category'
    GROUP = 'group'
    USER = 'user'
    PAYMENT_TYPE = 'payment_type'

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    DatasetKind.CATEGORY: 'カテゴリ',
    DatasetKind.GROUP: 'グループ',
    DatasetKind.USER: 'ユーザー',
    DatasetKind.PAYMENT_TYPE: '支払い方法',
}


class ItemStatus(str, Enum):
    PENDING = 'pending'
    SYNCED = 'synced'
    ERROR = 'error'


@dataclass(frozen=True)
class AnalysisResult:
    """Typed output of the image analysis service. Immutable once produced."""
    is_receipt: bool = False
    date: Optional[str] = None
    total_amount: Optional[int] = None
    payment_method: Optional[str] = None
    items: Optional[str] = None
    store_name: Optional[str] = None

    @classmethod
    def from_fields(cls, date: Optional[str] = None, total_amount: Optional[int] = None,
                    payment_method: Optional[str] = None, items: Optional[str] = None,
                    store_name: Optional[str] = None) -> "AnalysisResult":
        """Build a result, deriving the usable flag from date and amount."""
        return cls(
            is_receipt=date is not None and total_amount is not None,
            date=date,
            total_amount=total_amount,
            payment_method=payment_method,
            items=items,
            store_name=store_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DraftRecord:
    """Mutable confirmation draft awaiting user confirmation."""
    event_id: str
    date: str
    amount: int
    category_id: int
    user_id: int
    detail: str
    payment_method: str
    analysis: AnalysisResult = field(default_factory=AnalysisResult)
    group_id: Optional[int] = None
    original_amount: Optional[int] = None
    remaining_amount: Optional[int] = None
    is_partial_entry: bool = False
    parent_message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Fields an interactive edit may replace, with the type each one holds
EDITABLE_FIELDS: Dict[str, type] = {
    'date': str,
    'amount': int,
    'category_id': int,
    'group_id': int,
    'user_id': int,
    'detail': str,
    'payment_method': str,
}


def generate_item_id() -> str:
    """Unique queue item identifier: '<unix nanos>_<random 63-bit int>'."""
    return f"{time.time_ns()}_{random.getrandbits(63)}"


@dataclass
class PendingMasterItem:
    """A master-data addition waiting for the external sync process."""
    type: DatasetKind
    name: str
    id: str = field(default_factory=generate_item_id)
    type_name: Optional[str] = None
    type_id: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'type': self.type.value,
            'name': self.name,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }
        if self.type_name:
            data['type_name'] = self.type_name
        if self.type_id:
            data['type_id'] = self.type_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingMasterItem":
        return cls(
            id=str(data['id']),
            type=DatasetKind(data['type']),
            name=str(data['name']),
            type_name=data.get('type_name') or None,
            type_id=data.get('type_id') or None,
            status=ItemStatus(data.get('status', ItemStatus.PENDING.value)),
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
        )


@dataclass(frozen=True)
class CommittedExpense:
    """Final expense record appended to the expense log."""
    date: str
    price: int
    category_id: int
    user_id: int
    detail: str
    group_id: Optional[int] = None
    payment_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'date': self.date,
            'price': self.price,
            'category_id': self.category_id,
            'user_id': self.user_id,
            'detail': self.detail,
        }
        if self.group_id is not None:
            data['group_id'] = self.group_id
        if self.payment_id is not None:
            data['payment_id'] = self.payment_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommittedExpense":
        return cls(
            date=str(data['date']),
            price=int(data['price']),
            category_id=int(data['category_id']),
            user_id=int(data['user_id']),
            detail=str(data.get('detail', '')),
            group_id=data.get('group_id'),
            payment_id=data.get('payment_id'),
        )


@dataclass(frozen=True)
class MasterEntry:
    """One row of a master list as presented to the user."""
    id: int
    name: str
    type_id: Optional[str] = None
    pending: bool = False


@dataclass(frozen=True)
class MasterData:
    """Immutable base lists loaded from the seed database at startup."""
    categories: Tuple[MasterEntry, ...] = ()
    groups: Tuple[MasterEntry, ...] = ()
    users: Tuple[MasterEntry, ...] = ()
    payment_types: Tuple[MasterEntry, ...] = ()
    type_list: Tuple[Tuple[str, str], ...] = ()

    def entries(self, kind: DatasetKind) -> List[MasterEntry]:
        return list({
            DatasetKind.CATEGORY: self.categories,
            DatasetKind.GROUP: self.groups,
            DatasetKind.USER: self.users,
            DatasetKind.PAYMENT_TYPE: self.payment_types,
        }[kind])

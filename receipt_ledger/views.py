"""
Receipt Ledger - Draft Presentation

PURPOSE: Presentation-agnostic view models for drafts and split notices
SCOPE: Name resolution for IDs and field labels; no transport-specific widgets
DEPENDENCIES: models.py, overlay.py
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from .models import DatasetKind, DraftRecord, MasterEntry
from .overlay import OverlayResolver

UNKNOWN = '不明'
NO_GROUP = 'なし'


@dataclass
class ViewField:
    key: str
    label: str
    value: str
    inline: bool = True


@dataclass
class DraftView:
    event_id: str
    title: str
    fields: List[ViewField] = field(default_factory=list)
    footer: str = ''
    is_partial_entry: bool = False
    remaining_amount: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def format_yen(amount: Optional[int]) -> str:
    return f"¥{amount:,}" if amount is not None else UNKNOWN


def render_draft(draft: DraftRecord, overlay: OverlayResolver, updated: bool = False) -> DraftView:
    """Build the confirmation view for a draft."""
    category = overlay.name_for(DatasetKind.CATEGORY, draft.category_id) or UNKNOWN
    group = overlay.name_for(DatasetKind.GROUP, draft.group_id) or NO_GROUP
    user = overlay.name_for(DatasetKind.USER, draft.user_id) or UNKNOWN

    title = "📋 キューに追加前の確認"
    if draft.is_partial_entry:
        title = "📊 金額分割処理"
    elif updated:
        title += " (更新済み)"

    view = DraftView(
        event_id=draft.event_id,
        title=title,
        fields=[
            ViewField('date', '📅 日付', draft.date),
            ViewField('amount', '💵 金額', format_yen(draft.amount)),
            ViewField('payment_method', '💳 支払い方法', draft.payment_method or UNKNOWN),
            ViewField('category_id', '📂 カテゴリー', category),
            ViewField('group_id', '🏷️ グループ', group),
            ViewField('user_id', '👤 支払者', user),
            ViewField('detail', '📝 詳細', draft.detail, inline=False),
        ],
        footer="各項目を編集できます。問題なければ「キューに追加」をクリックしてください。",
        is_partial_entry=draft.is_partial_entry,
        remaining_amount=draft.remaining_amount,
    )
    if draft.is_partial_entry:
        view.fields.insert(0, ViewField('original_amount', '📋 総額', format_yen(draft.original_amount)))
        view.footer = "総額より少ない金額が入力されました。残りの金額分のエントリを設定してください。"
    return view


def render_master_page(kind: DatasetKind, entries: List[MasterEntry], page: int, total_pages: int) -> Dict[str, Any]:
    """Numbered listing of one overlay page."""
    return {
        'title': f"{kind.label} リスト",
        'items': [
            {'id': entry.id, 'name': entry.name, 'pending': entry.pending}
            for entry in entries
        ],
        'footer': f"ページ {page + 1}/{total_pages}",
    }

"""
Receipt Ledger - Keyword Classifier

PURPOSE: Resolve free-text user input and analysis labels to master entries
SCOPE: Category/group/user keyword matching, payment method refinement, detail text
DEPENDENCIES: models.py

The coordinator treats everything here as a black box: text in, ID or label out.
"""

import logging
from typing import List, Optional

from .models import AnalysisResult, MasterEntry

logger = logging.getLogger(__name__)

FOOD_KEYWORDS = ('食', '飯', '料理')
CARD_KEYWORDS = ('クレジット', 'credit', 'カード', 'card')
ELECTRONIC_MONEY = ('suica', 'pasmo', 'icoca', 'nanaco', 'waon', 'edy')
CARD_TYPE_NAMES = ('card', 'カード')
DEFAULT_DETAIL = 'レシート解析結果'
SELF_USER_NAME = '自分'


def _match(entries: List[MasterEntry], keyword: str) -> Optional[MasterEntry]:
    """Exact match first, then substring match in either direction."""
    keyword = keyword.strip().lower()
    if not keyword:
        return None
    for entry in entries:
        if entry.name.lower() == keyword:
            return entry
    for entry in entries:
        name = entry.name.lower()
        if name in keyword or keyword in name:
            return entry
    return None


def find_category_by_keyword(categories: List[MasterEntry], keyword: str, default: int) -> int:
    entry = _match(categories, keyword)
    if entry is not None:
        logger.info(f"Category matched: '{keyword}' -> {entry.name} (ID: {entry.id})")
        return entry.id

    lowered = keyword.lower()
    if any(k in lowered for k in FOOD_KEYWORDS):
        for category in categories:
            if any(k in category.name for k in FOOD_KEYWORDS):
                logger.info(f"Category matched by food keyword: {category.name} (ID: {category.id})")
                return category.id

    logger.info(f"No category for '{keyword}', using default ID={default}")
    return default


def find_group_by_keyword(groups: List[MasterEntry], keyword: str) -> Optional[int]:
    entry = _match(groups, keyword)
    return entry.id if entry is not None else None


def find_user_by_name(users: List[MasterEntry], name: str, default: int) -> int:
    name = (name or '').strip()
    if not name or name == SELF_USER_NAME:
        return default
    for user in users:
        if user.name in name or name in user.name:
            return user.id
    return default


def card_payment_options(payment_types: List[MasterEntry], type_list) -> List[MasterEntry]:
    """Payment methods whose type is a card."""
    card_type_ids = {type_id for type_id, type_name in type_list
                     if type_name.lower() in CARD_TYPE_NAMES}
    return [entry for entry in payment_types if entry.type_id in card_type_ids]


def enhance_payment_method(label: str, payment_types: List[MasterEntry], type_list) -> str:
    """Map a generic card label from the analysis onto a concrete card, if one matches."""
    lowered = label.lower()
    if any(k in lowered for k in CARD_KEYWORDS):
        options = card_payment_options(payment_types, type_list)
        for option in options:
            if option.name.lower() == lowered:
                return option.name
        for option in options:
            name = option.name.lower()
            if name in lowered or lowered in name:
                logger.info(f"Payment method refined: {label} -> {option.name}")
                return option.name
        return label

    if any(k in lowered for k in ELECTRONIC_MONEY):
        logger.info(f"Payment method recognised as electronic money: {label}")
    return label


def fallback_detail(analysis: AnalysisResult) -> str:
    """'<items> - <store>' from whatever the analysis found."""
    items = analysis.items or ''
    store = analysis.store_name or ''
    if items and store:
        return f"{items} - {store}"
    return items or store or DEFAULT_DETAIL

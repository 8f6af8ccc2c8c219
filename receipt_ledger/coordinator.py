"""
Receipt Ledger - Transaction Coordinator

PURPOSE: Drives one receipt from upload to committed expense
SCOPE: Background analysis, join with user input, draft edits, commit/split, cancel
DEPENDENCIES: registry.py, drafts.py, overlay.py, managers.py, classifier.py, views.py

Lifecycle per event:
    CREATED -> AWAITING_JOIN -> DRAFTED -> EDITING* -> COMMITTED | CANCELLED
    AWAITING_JOIN -> TIMED_OUT | ABORTED
The transaction entry is removed on every outcome of the join.
"""

import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, Optional, Set

from . import classifier
from .errors import (Aborted, AlreadyOpen, NotFound, PersistenceError, TimedOut, ValidationError,
                     log_error)
from .managers import ExpenseManager
from .models import AnalysisResult, CommittedExpense, DatasetKind, DraftRecord
from .overlay import OverlayResolver
from .registry import TransactionRegistry
from .drafts import DraftStore
from .validators import parse_edit_value, validate_amount
from .views import DraftView, render_draft

logger = logging.getLogger(__name__)

SPLIT_SUFFIX = ':split'
SPLIT_DETAIL = '分割エントリ（残額分）'
UNKNOWN_PAYMENT = '不明'

TIMEOUT_MESSAGE = "⏰ レシートの解析がタイムアウトしました。もう一度お試しください。"
ABORTED_MESSAGE = "❌ レシートの解析に失敗しました。画像を確認してもう一度お試しください。"


class CoordinatorState(str, Enum):
    CREATED = 'created'
    AWAITING_JOIN = 'awaiting_join'
    DRAFTED = 'drafted'
    EDITING = 'editing'
    COMMITTED = 'committed'
    CANCELLED = 'cancelled'
    TIMED_OUT = 'timed_out'
    ABORTED = 'aborted'

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset({
    CoordinatorState.COMMITTED,
    CoordinatorState.CANCELLED,
    CoordinatorState.TIMED_OUT,
    CoordinatorState.ABORTED,
})


@dataclass
class JoinOutcome:
    state: CoordinatorState
    draft: Optional[DraftRecord] = None
    view: Optional[DraftView] = None
    message: str = ''


@dataclass
class CommitOutcome:
    expense: CommittedExpense
    queue_length: int
    remainder: Optional[DraftRecord] = None
    remainder_view: Optional[DraftView] = None


class Coordinator:
    """Wires the registry, draft store and queues into the receipt workflow.

    Live events keep their state until they finish; finished events are kept
    only for the most recent `history_size` IDs.
    """

    def __init__(self, registry: TransactionRegistry, drafts: DraftStore, overlay: OverlayResolver,
                 expenses: ExpenseManager, analyzer, timeout: float = 30.0,
                 default_user_id: int = 0, default_category_id: int = 1, history_size: int = 1000):
        self.registry = registry
        self.drafts = drafts
        self.overlay = overlay
        self.expenses = expenses
        self.analyzer = analyzer
        self.timeout = timeout
        self.default_user_id = default_user_id
        self.default_category_id = default_category_id
        self.history_size = history_size

        self._states: Dict[str, CoordinatorState] = {}
        self._finished: "OrderedDict[str, CoordinatorState]" = OrderedDict()
        self._states_lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State bookkeeping
    # ------------------------------------------------------------------

    def state(self, event_id: str) -> CoordinatorState:
        with self._states_lock:
            current = self._states.get(event_id) or self._finished.get(event_id)
        if current is None:
            raise NotFound("Unknown event").with_context('event_id', event_id)
        return current

    def _set_state(self, event_id: str, state: CoordinatorState) -> None:
        with self._states_lock:
            if state.is_terminal:
                self._states.pop(event_id, None)
                self._finished.pop(event_id, None)
                self._finished[event_id] = state
                while len(self._finished) > self.history_size:
                    self._finished.popitem(last=False)
            else:
                self._finished.pop(event_id, None)
                self._states[event_id] = state
        logger.debug(f"{event_id} -> {state.value}")

    # ------------------------------------------------------------------
    # Background analysis
    # ------------------------------------------------------------------

    async def start(self, event_id: str, asset_ref: str) -> asyncio.Task:
        """Register the event and launch analysis of its image."""
        self.registry.begin(event_id, asset_ref)
        self._set_state(event_id, CoordinatorState.CREATED)

        task = asyncio.create_task(self._run_analysis(event_id, asset_ref))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._set_state(event_id, CoordinatorState.AWAITING_JOIN)
        return task

    async def _run_analysis(self, event_id: str, asset_ref: str) -> None:
        try:
            result = await self.analyzer.analyze(asset_ref)
        except Exception as e:
            logger.error(f"Analysis failed for {event_id}: {e}")
            self.registry.abort(event_id)
            return
        self.registry.deliver(event_id, result)

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    async def submit_input(self, event_id: str, user_input: Dict[str, str]) -> JoinOutcome:
        """Wait for the analysis and merge it with the user's answers into a draft."""
        record = self.registry.get(event_id)
        # Only the caller that claims the slot may end the transaction
        if record.slot.consumed:
            raise AlreadyOpen("Input already submitted").with_context('event_id', event_id)

        user_input = {k: str(v) for k, v in user_input.items() if v is not None}
        self._check_input(user_input)
        record.user_input.update(user_input)

        try:
            result = await self.registry.await_result(event_id, self.timeout)
        except TimedOut:
            logger.warning(f"Analysis timed out: {event_id}")
            self._set_state(event_id, CoordinatorState.TIMED_OUT)
            return JoinOutcome(state=CoordinatorState.TIMED_OUT, message=TIMEOUT_MESSAGE)
        except Aborted:
            if self.state(event_id) == CoordinatorState.CANCELLED:
                return JoinOutcome(state=CoordinatorState.CANCELLED)
            logger.warning(f"Analysis aborted: {event_id}")
            self._set_state(event_id, CoordinatorState.ABORTED)
            return JoinOutcome(state=CoordinatorState.ABORTED, message=ABORTED_MESSAGE)
        finally:
            self.registry.end(event_id)

        fields = self.merge(result, record.user_input)
        draft = self.drafts.open(event_id, analysis_result=result, **fields)
        self._set_state(event_id, CoordinatorState.DRAFTED)
        logger.info(f"Draft ready for {event_id}: ¥{draft.amount}, category={draft.category_id}, "
                    f"group={draft.group_id}, user={draft.user_id}")
        return JoinOutcome(
            state=CoordinatorState.DRAFTED,
            draft=draft,
            view=render_draft(draft, self.overlay),
        )

    def _check_input(self, user_input: Dict[str, str]) -> None:
        """Reject an unknown category ID or a malformed price before the join."""
        raw_category = user_input.get('category_id', '').strip()
        if raw_category:
            if not raw_category.isdigit():
                raise ValidationError("Invalid category", ["category_id must be an integer"])
            if self.overlay.name_for(DatasetKind.CATEGORY, int(raw_category)) is None:
                raise ValidationError("Invalid category", [f"Category {raw_category} does not exist"])

        price = user_input.get('price', '').strip()
        if price:
            is_valid, errors = validate_amount(price)
            if not is_valid:
                raise ValidationError("Invalid amount", errors)

    def merge(self, result: AnalysisResult, user_input: Dict[str, str]) -> Dict[str, Any]:
        """Combine analysis output and user answers into draft fields.

        Input is expected to have passed `_check_input` already.
        """
        category_id = self.default_category_id
        raw_category = user_input.get('category_id', '').strip()
        if raw_category.isdigit():
            category_id = int(raw_category)
        elif user_input.get('category_keyword', '').strip():
            category_id = classifier.find_category_by_keyword(
                self.overlay.list(DatasetKind.CATEGORY),
                user_input['category_keyword'],
                self.default_category_id,
            )

        group_id = None
        if user_input.get('group_keyword', '').strip():
            group_id = classifier.find_group_by_keyword(
                self.overlay.list(DatasetKind.GROUP), user_input['group_keyword'])

        user_id = classifier.find_user_by_name(
            self.overlay.list(DatasetKind.USER), user_input.get('user_name', ''), self.default_user_id)

        amount = result.total_amount or 0
        price = user_input.get('price', '').strip().replace(',', '')
        if price.isdigit():
            amount = int(price)

        payment_method = UNKNOWN_PAYMENT
        if result.payment_method:
            payment_method = classifier.enhance_payment_method(
                result.payment_method,
                self.overlay.list(DatasetKind.PAYMENT_TYPE),
                self.overlay.base.type_list,
            )

        return {
            'date': result.date or date.today().strftime('%Y-%m-%d'),
            'amount': amount,
            'category_id': category_id,
            'group_id': group_id,
            'user_id': user_id,
            'detail': classifier.fallback_detail(result),
            'payment_method': payment_method,
        }

    # ------------------------------------------------------------------
    # Draft editing and completion
    # ------------------------------------------------------------------

    def edit(self, event_id: str, field: str, raw_value: Any) -> DraftView:
        """Validate and apply a single-field edit, returning the updated view."""
        value = parse_edit_value(field, raw_value)
        draft = self.drafts.edit(event_id, field, value)
        self._set_state(event_id, CoordinatorState.EDITING)
        return render_draft(draft, self.overlay, updated=True)

    def view(self, event_id: str) -> DraftView:
        return render_draft(self.drafts.read(event_id), self.overlay)

    async def commit(self, event_id: str) -> CommitOutcome:
        """Append the draft to the expense log; open a remainder draft if it was partial.

        The draft is frozen while the expense is written, so a concurrent commit,
        edit or cancel of the same draft fails with AlreadyOpen.
        """
        draft = self.drafts.begin_commit(event_id)
        recorded = False
        try:
            expense = CommittedExpense(
                date=draft.date,
                price=draft.amount,
                category_id=draft.category_id,
                user_id=draft.user_id,
                detail=draft.detail,
                group_id=draft.group_id,
                payment_id=self.overlay.find_id(DatasetKind.PAYMENT_TYPE, draft.payment_method),
            )
            queue_length = await self.expenses.record(expense)
            recorded = True
        except PersistenceError as e:
            log_error(e.with_context('event_id', event_id))
            raise
        finally:
            if not recorded:
                # Draft stays open so the user can retry
                self.drafts.release_commit(event_id)

        self.drafts.finish_commit(event_id)
        self._set_state(event_id, CoordinatorState.COMMITTED)

        outcome = CommitOutcome(expense=expense, queue_length=queue_length)
        remainder = self._split(draft)
        if remainder is not None:
            outcome.remainder = self.drafts.put(remainder)
            outcome.remainder_view = render_draft(outcome.remainder, self.overlay)
            self._set_state(remainder.event_id, CoordinatorState.DRAFTED)
            logger.info(f"Remainder draft opened: {remainder.event_id} (¥{remainder.amount})")
        return outcome

    def _split(self, draft: DraftRecord) -> Optional[DraftRecord]:
        """Remainder draft when less than the reference total was committed."""
        if draft.is_partial_entry and draft.remaining_amount is not None:
            total = draft.remaining_amount
        elif draft.analysis.total_amount and draft.analysis.total_amount > 0:
            total = draft.analysis.total_amount
        else:
            total = draft.amount

        if draft.amount >= total:
            return None

        remaining = total - draft.amount
        return replace(
            draft,
            event_id=f"{draft.event_id}{SPLIT_SUFFIX}",
            amount=remaining,
            detail=SPLIT_DETAIL,
            original_amount=total,
            remaining_amount=remaining,
            is_partial_entry=True,
            parent_message_id=draft.event_id,
        )

    def cancel(self, event_id: str) -> None:
        """Discard the draft (if any) and drop the transaction."""
        had_draft = event_id in self.drafts
        if had_draft:
            self.drafts.close(event_id)
        # Wakes a pending join, which then reports ABORTED
        self.registry.abort(event_id)
        had_transaction = self.registry.end(event_id)
        if not had_draft and not had_transaction:
            raise NotFound("Nothing to cancel").with_context('event_id', event_id)
        self._set_state(event_id, CoordinatorState.CANCELLED)
        logger.info(f"Cancelled: {event_id}")

import asyncio
from datetime import date

import pytest

from receipt_ledger.coordinator import ABORTED_MESSAGE, TIMEOUT_MESSAGE, CoordinatorState
from receipt_ledger.errors import AlreadyOpen, NotFound, PersistenceError, ValidationError
from receipt_ledger.managers import ExpenseManager
from receipt_ledger.models import AnalysisResult
from receipt_ledger.queue_store import ExpenseQueueStore

from conftest import FakeAnalyzer

RECEIPT = AnalysisResult.from_fields(
    date='2025-08-01',
    total_amount=1200,
    payment_method='カード',
    items='パン',
    store_name='ベーカリー',
)


async def drafted(coordinator, event_id='m1', **user_input):
    await coordinator.start(event_id, f'img/{event_id}.jpg')
    return await coordinator.submit_input(event_id, user_input)


@pytest.mark.asyncio
async def test_join_builds_draft_from_analysis_and_input(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))

    outcome = await drafted(coordinator, category_keyword='交通', group_keyword='旅行', user_name='花子')

    draft = outcome.draft
    assert outcome.state == CoordinatorState.DRAFTED
    assert (draft.date, draft.amount, draft.detail) == ('2025-08-01', 1200, 'パン - ベーカリー')
    assert (draft.category_id, draft.group_id, draft.user_id) == (2, 1, 1)
    assert draft.payment_method == '楽天カード'
    assert 'm1' not in coordinator.registry
    assert coordinator.state('m1') == CoordinatorState.DRAFTED


@pytest.mark.asyncio
async def test_join_defaults(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(AnalysisResult.from_fields(total_amount=300)))

    draft = (await drafted(coordinator, category_id='')).draft

    assert draft.date == date.today().strftime('%Y-%m-%d')
    assert (draft.category_id, draft.group_id, draft.user_id) == (1, None, 0)
    assert draft.payment_method == '不明'
    assert draft.detail == 'レシート解析結果'


@pytest.mark.asyncio
async def test_partial_commit_opens_remainder_draft(make_coordinator, expense_queue):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator, price='800')

    outcome = await coordinator.commit('m1')

    assert outcome.expense.price == 800
    assert outcome.expense.payment_id == 2
    assert [e.price for e in expense_queue.entries()] == [800]
    assert coordinator.state('m1') == CoordinatorState.COMMITTED
    assert 'm1' not in coordinator.drafts

    remainder = outcome.remainder
    assert remainder.event_id == 'm1:split'
    assert (remainder.amount, remainder.remaining_amount, remainder.original_amount) == (400, 400, 1200)
    assert remainder.is_partial_entry
    assert remainder.parent_message_id == 'm1'
    assert remainder.detail == '分割エントリ（残額分）'
    assert outcome.remainder_view.is_partial_entry
    assert coordinator.state('m1:split') == CoordinatorState.DRAFTED

    final = await coordinator.commit('m1:split')
    assert final.remainder is None
    assert [e.price for e in expense_queue.entries()] == [800, 400]


@pytest.mark.asyncio
async def test_remainder_can_be_split_again(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator, price='800')
    await coordinator.commit('m1')

    coordinator.edit('m1:split', 'amount', '100')
    outcome = await coordinator.commit('m1:split')

    assert outcome.remainder.amount == 300
    assert outcome.remainder.original_amount == 400
    assert outcome.remainder.parent_message_id == 'm1:split'


@pytest.mark.asyncio
async def test_full_commit_has_no_remainder(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator)

    assert (await coordinator.commit('m1')).remainder is None


@pytest.mark.asyncio
async def test_timeout_ends_transaction_and_allows_reuse(make_coordinator):
    slow = FakeAnalyzer(RECEIPT, delay=0.2)
    coordinator = make_coordinator(slow, timeout=0.05)
    task = await coordinator.start('m2', 'img/m2.jpg')

    outcome = await coordinator.submit_input('m2', {'price': '500'})

    assert outcome.state == CoordinatorState.TIMED_OUT
    assert outcome.message == TIMEOUT_MESSAGE
    assert 'm2' not in coordinator.registry
    assert 'm2' not in coordinator.drafts

    await task
    assert 'm2' not in coordinator.drafts

    slow.delay = 0
    retry = await drafted(coordinator, 'm2')
    assert retry.state == CoordinatorState.DRAFTED


@pytest.mark.asyncio
async def test_analysis_failure_aborts(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(error=ValueError('unreadable image')))

    outcome = await drafted(coordinator)

    assert outcome.state == CoordinatorState.ABORTED
    assert outcome.message == ABORTED_MESSAGE
    assert outcome.draft is None
    assert 'm1' not in coordinator.registry


@pytest.mark.asyncio
async def test_submit_input_for_unknown_event(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    with pytest.raises(NotFound):
        await coordinator.submit_input('ghost', {})


@pytest.mark.asyncio
async def test_invalid_edit_leaves_draft_untouched(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator)

    with pytest.raises(ValidationError):
        coordinator.edit('m1', 'amount', '-3')
    assert coordinator.drafts.read('m1').amount == 1200
    assert coordinator.state('m1') == CoordinatorState.DRAFTED

    view = coordinator.edit('m1', 'group_id', '1')
    assert coordinator.state('m1') == CoordinatorState.EDITING
    assert {f.key: f.value for f in view.fields}['group_id'] == '旅行'


@pytest.mark.asyncio
async def test_persistence_failure_keeps_draft(make_coordinator, tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('', encoding='utf-8')
    broken = ExpenseManager(ExpenseQueueStore(str(blocker / 'expense_queue.json')))
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT), expenses=broken)
    await drafted(coordinator)

    with pytest.raises(PersistenceError):
        await coordinator.commit('m1')
    assert coordinator.drafts.read('m1').amount == 1200
    assert coordinator.state('m1') == CoordinatorState.DRAFTED


@pytest.mark.asyncio
async def test_cancel(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator)

    coordinator.cancel('m1')

    assert 'm1' not in coordinator.drafts
    assert coordinator.state('m1') == CoordinatorState.CANCELLED
    with pytest.raises(NotFound):
        coordinator.cancel('m1')


@pytest.mark.asyncio
async def test_cancel_while_waiting_for_analysis(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT, delay=0.2))
    task = await coordinator.start('m3', 'img/m3.jpg')
    join = asyncio.create_task(coordinator.submit_input('m3', {}))
    await asyncio.sleep(0.01)

    coordinator.cancel('m3')

    assert (await join).state == CoordinatorState.CANCELLED
    await task
    assert 'm3' not in coordinator.drafts


@pytest.mark.asyncio
async def test_concurrent_commits_write_one_expense(make_coordinator, expense_queue):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator)

    results = await asyncio.gather(coordinator.commit('m1'), coordinator.commit('m1'), return_exceptions=True)

    assert sorted(type(r).__name__ for r in results) == ['AlreadyOpen', 'CommitOutcome']
    assert [e.price for e in expense_queue.entries()] == [1200]
    assert 'm1' not in coordinator.drafts


@pytest.mark.asyncio
async def test_draft_is_frozen_while_committing(make_coordinator, expense_queue):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await drafted(coordinator)

    commit = asyncio.create_task(coordinator.commit('m1'))
    await asyncio.sleep(0)

    with pytest.raises(AlreadyOpen):
        coordinator.edit('m1', 'detail', '昼食')
    with pytest.raises(AlreadyOpen):
        coordinator.cancel('m1')

    await commit
    assert expense_queue.entries()[0].detail == 'パン - ベーカリー'
    assert coordinator.state('m1') == CoordinatorState.COMMITTED


@pytest.mark.asyncio
async def test_failed_commit_unfreezes_draft(make_coordinator, tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('', encoding='utf-8')
    broken = ExpenseManager(ExpenseQueueStore(str(blocker / 'expense_queue.json')))
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT), expenses=broken)
    await drafted(coordinator)

    with pytest.raises(PersistenceError):
        await coordinator.commit('m1')

    coordinator.edit('m1', 'amount', '900')
    with pytest.raises(PersistenceError):
        await coordinator.commit('m1')
    assert coordinator.drafts.read('m1').amount == 900


@pytest.mark.asyncio
async def test_second_input_does_not_break_pending_join(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT, delay=0.1))
    await coordinator.start('m3', 'img/m3.jpg')
    join = asyncio.create_task(coordinator.submit_input('m3', {'price': '800'}))
    await asyncio.sleep(0.01)

    with pytest.raises(AlreadyOpen):
        await coordinator.submit_input('m3', {'price': '1'})
    assert 'm3' in coordinator.registry

    outcome = await join
    assert outcome.state == CoordinatorState.DRAFTED
    assert outcome.draft.amount == 800


@pytest.mark.asyncio
@pytest.mark.parametrize('user_input', [
    {'category_id': 'abc'},
    {'category_id': '99'},
    {'price': '12.5'},
])
async def test_bad_input_rejected_before_join(make_coordinator, user_input):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    await coordinator.start('m1', 'img/m1.jpg')

    with pytest.raises(ValidationError):
        await coordinator.submit_input('m1', user_input)
    assert 'm1' in coordinator.registry

    outcome = await coordinator.submit_input('m1', {'category_id': '2'})
    assert outcome.draft.category_id == 2


@pytest.mark.asyncio
async def test_finished_states_are_bounded(make_coordinator):
    coordinator = make_coordinator(FakeAnalyzer(RECEIPT))
    coordinator.history_size = 2
    for event_id in ('a', 'b', 'c'):
        await drafted(coordinator, event_id)
    await drafted(coordinator, 'live')

    for event_id in ('a', 'b', 'c'):
        coordinator.cancel(event_id)

    with pytest.raises(NotFound):
        coordinator.state('a')
    assert coordinator.state('c') == CoordinatorState.CANCELLED
    assert coordinator.state('live') == CoordinatorState.DRAFTED

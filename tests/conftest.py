"""
Shared fixtures for the receipt ledger tests.
"""

import asyncio

import pytest

from receipt_ledger.config import AppConfig
from receipt_ledger.coordinator import Coordinator
from receipt_ledger.drafts import DraftStore
from receipt_ledger.managers import ExpenseManager, MasterDataManager
from receipt_ledger.models import AnalysisResult, MasterData, MasterEntry
from receipt_ledger.overlay import OverlayResolver
from receipt_ledger.queue_store import ExpenseQueueStore, MasterQueueStore
from receipt_ledger.registry import TransactionRegistry


class FakeAnalyzer:
    """Analyzer double: returns a fixed result, raises, or stalls."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result or AnalysisResult()
        self.error = error
        self.delay = delay
        self.calls = []

    async def analyze(self, asset_ref):
        self.calls.append(asset_ref)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def master_data():
    return MasterData(
        categories=(MasterEntry(1, '食費'), MasterEntry(2, '交通費')),
        groups=(MasterEntry(1, '旅行'),),
        users=(MasterEntry(0, '自分'), MasterEntry(1, '花子')),
        payment_types=(
            MasterEntry(1, '現金', type_id='t1'),
            MasterEntry(2, '楽天カード', type_id='t2'),
        ),
        type_list=(('t1', '現金'), ('t2', 'カード')),
    )


@pytest.fixture
def master_queue(tmp_path):
    return MasterQueueStore(str(tmp_path / 'master_queue.json'))


@pytest.fixture
def expense_queue(tmp_path):
    return ExpenseQueueStore(str(tmp_path / 'expense_queue.json'))


@pytest.fixture
def overlay(master_data, master_queue):
    return OverlayResolver(master_data, master_queue)


@pytest.fixture
def masters(master_queue, overlay):
    return MasterDataManager(master_queue, overlay)


@pytest.fixture
def make_coordinator(overlay, expense_queue):
    def factory(analyzer, timeout=1.0, expenses=None):
        return Coordinator(
            registry=TransactionRegistry(),
            drafts=DraftStore(),
            overlay=overlay,
            expenses=expenses or ExpenseManager(expense_queue),
            analyzer=analyzer,
            timeout=timeout,
        )
    return factory


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        QUEUE_DIR=str(tmp_path / 'queues'),
        MASTER_DB_FILE=str(tmp_path / 'master.db'),
        TEMP_IMAGE_DIR=str(tmp_path / 'img'),
        ANALYSIS_TIMEOUT=2.0,
    )

"""
Shared fixtures for the CNAB import tests.
"""
import pytest

from core.aggregation import RecordAggregator
from core.config import reset_settings
from tests.helpers import SAO_PAULO, FakeStoreRepository, FakeTransactionRepository


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Give every test fresh settings and its own database file."""
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "cnab.db"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def aggregator():
    return RecordAggregator(SAO_PAULO)


@pytest.fixture
def store_repository():
    return FakeStoreRepository()


@pytest.fixture
def transaction_repository():
    return FakeTransactionRepository()

from datetime import datetime, timedelta

import pytest

from data_processing.store import InMemoryAlertStore, InMemoryRiskScoreStore, PandasRecordStore

NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_record():
    """Builds a case record dict reported `days_ago` days before the fixed clock."""
    def _make(disease, area, case_count, days_ago):
        return {
            'disease': disease,
            'area': area,
            'case_count': case_count,
            'report_date': NOW - timedelta(days=days_ago),
        }
    return _make


@pytest.fixture
def make_store(make_record):
    """Builds a store from (disease, area, case_count, days_ago) tuples."""
    def _make(rows):
        return PandasRecordStore.from_records(make_record(*row) for row in rows)
    return _make


@pytest.fixture
def daily_series_store(make_store):
    """One record per day, oldest first, ending yesterday."""
    def _make(values, disease='dengue', area='Ward 5'):
        n = len(values)
        return make_store([(disease, area, v, n - i) for i, v in enumerate(values)])
    return _make


@pytest.fixture
def risk_store():
    return InMemoryRiskScoreStore()


@pytest.fixture
def alert_store():
    return InMemoryAlertStore()

from datetime import timedelta

import pandas as pd
import pytest

from analytics.aggregation import (
    calculate_daily_totals,
    calculate_period_statistics,
    calculate_seven_day_average,
    detect_high_risk_areas,
    get_area_disease_distribution,
    get_reports_by_days,
    get_trending_diseases,
)
from data_processing.loaders import prepare_case_records


@pytest.fixture
def frame(make_record):
    def _make(rows):
        return prepare_case_records(pd.DataFrame([make_record(*row) for row in rows]))
    return _make


def test_reports_by_days_window(frame, now):
    df = frame([('dengue', 'A', 1, 1), ('dengue', 'A', 2, 6), ('dengue', 'A', 4, 9)])
    assert get_reports_by_days(df, 7, now)['case_count'].tolist() == [2, 1]


def test_seven_day_average(frame):
    assert calculate_seven_day_average(frame([('dengue', 'A', 70, 1)])) == 10
    assert calculate_seven_day_average(frame([])) == 0


def test_daily_totals_sum_per_day(frame, now):
    totals = calculate_daily_totals(frame([('dengue', 'A', 3, 2), ('malaria', 'B', 4, 2), ('dengue', 'A', 1, 1)]))
    assert totals.tolist() == [7, 1]
    assert totals.index[0] == pd.Timestamp((now - timedelta(days=2)).date())


def test_detect_high_risk_areas(frame):
    today = frame([('dengue', 'A', 30, 0), ('dengue', 'B', 12, 0)])
    week = frame([('dengue', 'A', 70, 3), ('dengue', 'B', 70, 3), ('dengue', 'C', 14, 2)])

    result = detect_high_risk_areas(today, week).set_index('area')

    assert result.loc['A', 'risk_level'] == 'high'
    assert result.loc['A', 'percentage_change'] == 200
    assert result.loc['B', 'risk_level'] == 'low'
    assert result.loc['C', 'today_cases'] == 0
    assert result.loc['C', 'risk_level'] == 'low'


def test_detect_high_risk_areas_medium_band(frame):
    result = detect_high_risk_areas(frame([('dengue', 'A', 18, 0)]), frame([('dengue', 'A', 70, 3)]))
    assert result.iloc[0]['risk_level'] == 'medium'
    assert detect_high_risk_areas(frame([]), frame([])).empty


def test_area_disease_distribution(frame):
    dist = get_area_disease_distribution(frame([
        ('dengue', 'A', 3, 1), ('dengue', 'A', 2, 2), ('malaria', 'B', 4, 1),
    ]))
    assert dist.loc['A', 'dengue'] == 5
    assert dist.loc['A', 'malaria'] == 0
    assert dist.loc['B', 'malaria'] == 4


def test_trending_diseases(frame):
    trending = get_trending_diseases(frame([
        ('dengue', 'A', 3, 1), ('malaria', 'A', 9, 1), ('flu', 'B', 5, 1),
    ]), limit=2)
    assert trending['disease'].tolist() == ['malaria', 'flu']
    assert trending['count'].tolist() == [9, 5]


def test_period_statistics():
    empty = calculate_period_statistics(pd.Series(dtype=float))
    assert empty['current_mean'] is None

    flat = calculate_period_statistics(pd.Series([5, 5, 5]))
    assert flat['current_ci'] == (5.0, 5.0)

    comparison = calculate_period_statistics(pd.Series([20, 22, 24, 26]), pd.Series([10, 11, 9, 10]))
    assert comparison['current_mean'] == 23.0
    assert comparison['delta_abs'] == 13.0
    assert comparison['delta_pct'] == pytest.approx(130.0)
    assert comparison['is_increase'] is True
    assert comparison['is_significant'] is True
    low, high = comparison['current_ci']
    assert low < 23.0 < high

# outbreakwatch/analytics/aggregation.py
#
# Area & Disease Aggregation Statistics
# Descriptive roll-ups behind the dashboard overview: daily totals, same-day
# versus trailing-week comparisons per area, disease distributions, and a
# week-over-week significance test.

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

try:
    from config.settings import OverviewConfig, settings
    from data_processing.helpers import round_half_up
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in aggregation.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .models import RiskLevel

logger = logging.getLogger(__name__)


def get_reports_by_days(df_records: pd.DataFrame, days: int, now: datetime) -> pd.DataFrame:
    """Records dated within the last `days` days, up to and including `now`."""
    if df_records.empty:
        return df_records
    start = pd.Timestamp(now - timedelta(days=days))
    mask = (df_records['report_date'] >= start) & (df_records['report_date'] <= pd.Timestamp(now))
    return df_records[mask]


def calculate_seven_day_average(df_records: pd.DataFrame) -> int:
    """Average cases per day over a week of records (total divided by 7)."""
    if df_records.empty:
        return 0
    return round_half_up(df_records['case_count'].sum() / 7)


def calculate_daily_totals(df_records: pd.DataFrame) -> pd.Series:
    """Total cases per calendar day, ascending."""
    if df_records.empty:
        return pd.Series(dtype='int64', name='cases')
    totals = df_records.groupby(df_records['report_date'].dt.normalize())['case_count'].sum()
    totals.index.name = 'date'
    return totals.sort_index().rename('cases')


def detect_high_risk_areas(
    df_today: pd.DataFrame,
    df_last_7_days: pd.DataFrame,
    overview_config: Optional[OverviewConfig] = None
) -> pd.DataFrame:
    """
    Compares each area's cases today with its trailing 7-day average.

    An area is medium risk when today exceeds 1.5x the average and high risk
    when it exceeds 2x.
    """
    cfg = overview_config or settings.overview
    columns = ['area', 'today_cases', 'seven_day_average', 'risk_level', 'percentage_change']

    today = df_today.groupby('area')['case_count'].sum() if not df_today.empty else pd.Series(dtype='int64')
    week = df_last_7_days.groupby('area')['case_count'].sum() if not df_last_7_days.empty else pd.Series(dtype='int64')
    areas = list(dict.fromkeys([*today.index, *week.index]))
    if not areas:
        return pd.DataFrame(columns=columns)

    rows = []
    for area in areas:
        today_cases = int(today.get(area, 0))
        average = round_half_up(week.get(area, 0) / 7)

        risk_level = RiskLevel.LOW
        if today_cases > average * cfg.high_risk_ratio:
            risk_level = RiskLevel.HIGH if today_cases > average * cfg.very_high_risk_ratio else RiskLevel.MEDIUM

        rows.append({
            'area': area,
            'today_cases': today_cases,
            'seven_day_average': average,
            'risk_level': risk_level.value,
            'percentage_change': round_half_up((today_cases - average) / average * 100) if average > 0 else 0,
        })
    return pd.DataFrame(rows, columns=columns)


def get_area_disease_distribution(df_records: pd.DataFrame) -> pd.DataFrame:
    """Case totals with one row per area and one column per disease."""
    if df_records.empty:
        return pd.DataFrame()
    return df_records.pivot_table(
        index='area', columns='disease', values='case_count', aggfunc='sum', fill_value=0
    )


def get_trending_diseases(df_records: pd.DataFrame, limit: int = 10) -> pd.DataFrame:
    """Diseases ranked by total cases, largest first."""
    if df_records.empty:
        return pd.DataFrame(columns=['disease', 'count'])
    totals = df_records.groupby('disease')['case_count'].sum().sort_values(ascending=False, kind='stable')
    return totals.head(limit).rename('count').reset_index()


def calculate_period_statistics(
    current_period_series: pd.Series,
    previous_period_series: Optional[pd.Series] = None,
    significance_level: float = 0.05
) -> Dict[str, Any]:
    """
    Mean with a 95% confidence interval for the current period and, when a
    previous period is given, the change between them with a Welch t-test.
    Statistics that cannot be computed are None.
    """
    result: Dict[str, Any] = {
        'current_mean': None, 'current_ci': (None, None), 'delta_abs': None,
        'delta_pct': None, 'p_value': None, 'is_significant': False, 'is_increase': None,
    }
    current = current_period_series.dropna().astype(float)
    if current.empty:
        return result

    current_mean = float(current.mean())
    result['current_mean'] = current_mean
    if len(current) > 1 and current.std() > 0:
        margin = stats.sem(current) * stats.t.ppf((1 + 0.95) / 2., len(current) - 1)
        result['current_ci'] = (current_mean - margin, current_mean + margin)
    elif len(current) > 1:
        result['current_ci'] = (current_mean, current_mean)

    if previous_period_series is None:
        return result
    previous = previous_period_series.dropna().astype(float)
    if previous.empty:
        return result

    prev_mean = float(previous.mean())
    result['delta_abs'] = current_mean - prev_mean
    result['is_increase'] = result['delta_abs'] > 0
    if prev_mean != 0:
        result['delta_pct'] = result['delta_abs'] / prev_mean * 100

    if len(current) > 1 and len(previous) > 1 and (current.std() > 0 or previous.std() > 0):
        _, p_value = stats.ttest_ind(current, previous, equal_var=False)
        if np.isfinite(p_value):
            result['p_value'] = float(p_value)
            result['is_significant'] = bool(p_value < significance_level)
    return result

# outbreakwatch/analytics/anomaly.py
#
# Statistical Anomaly Detector
# Decides whether a newly reported case count is a significant spike against
# the trailing 30-day daily history of the same (area, disease) pair, using a
# z-score test (or a ratio test when the history has no variance).

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

import numpy as np
from pydantic import BaseModel

try:
    from config.settings import AnomalyConfig, Settings, settings
    from data_processing.helpers import round_half_up, round_to, utcnow
    from data_processing.store import CaseRecordStore, RecordFilter
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in anomaly.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .exceptions import PreconditionError, require_text
from .models import AlertRecord, AlertSource, AlertType, AnomalyResult, RiskLevel

logger = logging.getLogger(__name__)


class BaselineStatistics(BaseModel):
    """Population statistics of the trailing daily case counts."""
    mean: float
    std_dev: float
    moving_avg: float
    historical_cases: List[float]
    last_value: float
    reports_count: int


def compute_baseline_statistics(daily_cases, moving_average_window: int = 7) -> Optional[BaselineStatistics]:
    """Mean, population standard deviation and trailing moving average of a daily series."""
    values = np.asarray(list(daily_cases), dtype=float)
    if values.size == 0:
        return None
    return BaselineStatistics(
        mean=float(values.mean()),
        std_dev=float(values.std()),
        moving_avg=float(values[-moving_average_window:].mean()),
        historical_cases=values.tolist(),
        last_value=float(values[-1]),
        reports_count=int(values.size),
    )


def detect_anomaly_zscore(
    new_cases: float,
    statistics: BaselineStatistics,
    z_threshold: float = 2.0,
    flat_series_ratio: float = 1.5
) -> Tuple[bool, float, float]:
    """
    Returns (is_anomaly, z_score, threshold).

    The z-score comparison is strict: a value exactly `z_threshold` standard
    deviations above the mean is not an anomaly. With zero variance the
    z-score is undefined, so the value is compared against `flat_series_ratio`
    times the mean and the reported z-score is 0.
    """
    if statistics.std_dev == 0:
        threshold = statistics.mean * flat_series_ratio
        return new_cases > threshold, 0.0, threshold

    z_score = (new_cases - statistics.mean) / statistics.std_dev
    threshold = statistics.mean + z_threshold * statistics.std_dev
    return z_score > z_threshold, z_score, threshold


def calculate_spike_percentage(new_cases: float, previous_average: float) -> float:
    if previous_average == 0:
        return 100.0 if new_cases > 0 else 0.0
    return ((new_cases - previous_average) / previous_average) * 100


def classify_spike_severity(spike_percentage: float, high_spike_pct: float = 100.0, low_spike_pct: float = 30.0) -> RiskLevel:
    """Alert risk level implied by how far a spike sits above the moving average."""
    if spike_percentage > high_spike_pct:
        return RiskLevel.HIGH
    if spike_percentage < low_spike_pct:
        return RiskLevel.LOW
    return RiskLevel.MEDIUM


def generate_anomaly_alert(
    anomaly: AnomalyResult,
    anomaly_config: Optional[AnomalyConfig] = None,
    created_at: Optional[datetime] = None
) -> Optional[AlertRecord]:
    """Turns a positive anomaly result into an automated alert record."""
    if not anomaly.has_anomaly:
        return None

    cfg = anomaly_config or settings.anomaly
    spike = anomaly.spike_percentage or 0.0
    moving_avg = anomaly.previous_moving_avg or 0.0
    new_cases = anomaly.new_case_count

    return AlertRecord(
        title=f"Anomaly Detected: {anomaly.disease}",
        message=(
            f"Unusual spike in {anomaly.disease} cases in {anomaly.area}. "
            f"Cases increased to {new_cases:g} ({spike:.1f}% above average). Please monitor closely."
        ),
        disease=anomaly.disease,
        area=anomaly.area,
        risk_level=classify_spike_severity(spike, cfg.high_spike_pct, cfg.low_spike_pct),
        source=AlertSource.AI,
        type=AlertType.ANOMALY,
        case_count=round_half_up(new_cases),
        spike_percentage=spike,
        explanations=[
            f"Raw case count: {new_cases:g} (previous average: {moving_avg:.0f})",
            f"Spike severity: {spike:.1f}% above moving average",
            "This is an automated alert based on statistical anomaly detection",
        ],
        created_at=created_at or utcnow(),
    )


class AnomalyDetector:
    """Checks new case reports against the trailing daily history held by the record store."""

    def __init__(
        self,
        record_store: CaseRecordStore,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.record_store = record_store
        self.config = (config or settings).anomaly
        self.clock = clock

    def calculate_statistics(self, area: str, disease: str) -> Optional[BaselineStatistics]:
        """Statistics over up to `lookback_days` of daily sums, or None without history."""
        start = self.clock() - timedelta(days=self.config.lookback_days)
        daily = self.record_store.aggregate_sum_by_group(
            RecordFilter(area=area, disease=disease, start=start), 'day'
        )
        return compute_baseline_statistics(daily.tolist(), self.config.moving_average_window)

    def check_anomaly(self, disease: str, area: str, new_case_count: float) -> AnomalyResult:
        """
        Decides whether `new_case_count` is a statistically significant spike.

        Missing history is a normal outcome (no anomaly), not an error.
        """
        disease = require_text(disease, 'disease')
        area = require_text(area, 'area')
        if new_case_count is None or isinstance(new_case_count, bool):
            raise PreconditionError("'new_case_count' is required")
        try:
            new_case_count = float(new_case_count)
        except (TypeError, ValueError) as e:
            raise PreconditionError(f"'new_case_count' must be numeric, got {new_case_count!r}") from e
        if not math.isfinite(new_case_count) or new_case_count < 0:
            raise PreconditionError(f"'new_case_count' must be a non-negative number, got {new_case_count}")

        log_ctx = f"Anomaly({area}/{disease})"
        try:
            stats = self.calculate_statistics(area, disease)
        except Exception as e:
            logger.error(f"[{log_ctx}] Record store query failed: {e}", exc_info=True)
            raise

        if stats is None:
            logger.warning(f"[{log_ctx}] No history in the last {self.config.lookback_days} days.")
            return AnomalyResult(
                has_anomaly=False, disease=disease, area=area,
                new_case_count=new_case_count, reason="Insufficient historical data",
            )

        logger.debug(
            f"[{log_ctx}] mean={stats.mean:.2f} std={stats.std_dev:.2f} "
            f"moving_avg={stats.moving_avg:.2f} over {stats.reports_count} day(s)"
        )
        is_anomaly, z_score, threshold = detect_anomaly_zscore(
            new_case_count, stats, self.config.z_score_threshold, self.config.flat_series_ratio
        )

        if not is_anomaly:
            return AnomalyResult(
                has_anomaly=False, disease=disease, area=area,
                new_case_count=new_case_count,
                previous_moving_avg=round_to(stats.moving_avg, 2),
                z_score=round_to(z_score, 2),
                threshold=round_to(threshold, 2),
                reason="Normal case count variation",
            )

        spike_percentage = calculate_spike_percentage(new_case_count, stats.moving_avg)
        if stats.std_dev == 0:
            reason = (
                f"Cases spiked {round_half_up(spike_percentage)}% above moving average "
                f"(more than {self.config.flat_series_ratio:g}x a flat history)"
            )
        else:
            reason = (
                f"Cases spiked {round_half_up(spike_percentage)}% above moving average "
                f"(Z-score: {z_score:.2f})"
            )

        logger.info(f"[{log_ctx}] Anomaly detected: {new_case_count:g} cases. {reason}")
        return AnomalyResult(
            has_anomaly=True, disease=disease, area=area,
            new_case_count=new_case_count,
            previous_moving_avg=round_to(stats.moving_avg, 2),
            spike_percentage=round_to(spike_percentage, 2),
            z_score=round_to(z_score, 2),
            threshold=round_to(threshold, 2),
            reason=reason,
        )

    def generate_anomaly_alert(self, anomaly: AnomalyResult) -> Optional[AlertRecord]:
        return generate_anomaly_alert(anomaly, self.config, self.clock())

# outbreakwatch/analytics/risk.py
#
# Area Risk Scoring Engine
# Computes a weighted 0-100 composite risk score per (area, disease) pair from
# week-over-week growth, case density, disease severity and a 90-day outbreak
# signal, and rolls the per-disease scores up into an area summary.
#
#   score = 0.4 * growth + 0.3 * density + 0.2 * severity + 0.1 * outbreak

import logging
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

try:
    from config.settings import RiskConfig, Settings, settings
    from data_processing.helpers import clamp, normalize_key, round_half_up, round_to, utcnow
    from data_processing.store import CaseRecordStore, RecordFilter, RiskScoreStore
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in risk.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .exceptions import require_text
from .models import AreaRiskSummary, RiskLevel, RiskScoreResult, ThreatSummary

logger = logging.getLogger(__name__)

# Typical severity of common diseases on a 0-100 scale.
DISEASE_SEVERITY: Mapping[str, int] = MappingProxyType({
    'dengue': 60,
    'malaria': 70,
    'covid-19': 65,
    'influenza': 40,
    'flu': 40,
    'chickenpox': 30,
    'measles': 75,
    'tuberculosis': 85,
    'typhoid': 55,
    'cholera': 90,
    'hepatitis': 65,
})
DEFAULT_DISEASE_SEVERITY = 50


def get_disease_severity(disease: str) -> int:
    """Static severity lookup, case-insensitive, defaulting to 50 for unknown diseases."""
    return DISEASE_SEVERITY.get(normalize_key(disease), DEFAULT_DISEASE_SEVERITY)


def calculate_growth_rate(current_cases: float, previous_cases: float) -> float:
    """Percent change of the current period over the previous one (100 for brand-new activity)."""
    if previous_cases == 0:
        return 100.0 if current_cases > 0 else 0.0
    return ((current_cases - previous_cases) / previous_cases) * 100


def normalize(value: float, max_value: float = 100.0) -> float:
    """Scales a value onto 0-100 against `max_value`, clamping the result."""
    return clamp((value / max_value) * 100, 0.0, 100.0)


def calculate_case_density(current_cases: float, case_density_max: float = 100.0) -> float:
    return normalize(current_cases, case_density_max)


def detect_historical_outbreak(
    daily_case_sums: Iterable[float],
    spike_multiplier: float = 2.0,
    present_score: int = 80,
    absent_score: int = 20
) -> int:
    """
    Flags a past outbreak when any day in the window exceeds `spike_multiplier`
    times the average daily sum. Returns 0 when there is no history at all.
    """
    values = [float(v) for v in daily_case_sums]
    if not values:
        return 0
    avg_cases = sum(values) / len(values)
    return present_score if max(values) > avg_cases * spike_multiplier else absent_score


def calculate_risk_score(
    growth_rate: float,
    case_density: float,
    disease_severity: float,
    historical_outbreak: float,
    risk_config: Optional[RiskConfig] = None
) -> int:
    """Weighted composite of the four risk components, rounded and clamped to 0-100."""
    cfg = risk_config or settings.risk
    raw_score = (
        normalize(growth_rate, cfg.growth_normalization_max) * cfg.growth_weight
        + case_density * cfg.density_weight
        + disease_severity * cfg.severity_weight
        + historical_outbreak * cfg.outbreak_weight
    )
    return int(clamp(round_half_up(raw_score), 0, 100))


def classify_risk_level(risk_score: float, low_threshold: int = 40, high_threshold: int = 70) -> RiskLevel:
    """low below 40, medium from 40 up to 70, high from 70."""
    if risk_score < low_threshold:
        return RiskLevel.LOW
    if risk_score < high_threshold:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def generate_contributing_factors(
    growth_rate: float,
    case_density: float,
    disease_severity: float,
    historical_outbreak: float
) -> List[str]:
    factors = []

    if growth_rate > 50:
        factors.append(f"Cases increased by {growth_rate:.1f}% in last 7 days")
    elif growth_rate > 20:
        factors.append(f"Moderate growth: {growth_rate:.1f}% increase in cases")

    if case_density > 70:
        factors.append("High case density detected in the area")
    elif case_density > 40:
        factors.append("Moderate case count in the area")

    if disease_severity > 70:
        factors.append("High disease severity detected")

    if historical_outbreak > 60:
        factors.append("Previous outbreak occurred in last 90 days")

    if not factors:
        factors.append("Low activity in area")

    return factors


def aggregate_risk_scores(
    area: str,
    scores: Sequence[RiskScoreResult],
    risk_config: Optional[RiskConfig] = None
) -> AreaRiskSummary:
    """
    Rolls per-disease scores up into one area summary: the rounded mean score,
    its level, and the top non-low threats by score. No scores is a valid,
    zero-risk outcome.
    """
    cfg = risk_config or settings.risk
    if not scores:
        return AreaRiskSummary(area=area)

    aggregate_score = int(clamp(round_half_up(sum(s.risk_score for s in scores) / len(scores)), 0, 100))
    threats = sorted(
        (s for s in scores if s.risk_level != RiskLevel.LOW),
        key=lambda s: s.risk_score,
        reverse=True,
    )[:cfg.top_threats_limit]
    calculated = [s.calculation_date for s in scores if s.calculation_date is not None]

    return AreaRiskSummary(
        area=area,
        aggregate_risk_score=aggregate_score,
        aggregate_risk_level=classify_risk_level(aggregate_score, cfg.low_threshold, cfg.high_threshold),
        top_threats=[
            ThreatSummary(disease=s.disease, risk_score=s.risk_score, risk_level=s.risk_level)
            for s in threats
        ],
        last_calculated=max(calculated) if calculated else None,
    )


class RiskScoringEngine:
    """
    Scores every disease reported in an area over the current 7-day window.

    The record store is injected; the optional risk score store enables the
    "calculate and persist" mode and the stored-score area summary.
    """
    def __init__(
        self,
        record_store: CaseRecordStore,
        risk_store: Optional[RiskScoreStore] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.record_store = record_store
        self.risk_store = risk_store
        self.config = (config or settings).risk
        self.clock = clock

    def _daily_history(self, area: str, disease: Optional[str], now: datetime) -> pd.Series:
        """Per-disease, per-day case sums over the historical window."""
        history = self.record_store.find(RecordFilter(
            area=area, disease=disease,
            start=now - timedelta(days=self.config.historical_window_days),
        ))
        if history.empty:
            return pd.Series(dtype='int64')
        return history.groupby(['disease', history['report_date'].dt.normalize()])['case_count'].sum()

    def _score_disease(
        self,
        area: str,
        disease: str,
        current_cases: int,
        previous_cases: int,
        daily_history: pd.Series,
        now: datetime
    ) -> RiskScoreResult:
        cfg = self.config
        growth_rate = calculate_growth_rate(current_cases, previous_cases)
        case_density = calculate_case_density(current_cases, cfg.case_density_max)
        disease_severity = get_disease_severity(disease)

        disease_days = daily_history.loc[disease] if disease in daily_history.index.get_level_values(0) else []
        historical_outbreak = detect_historical_outbreak(
            disease_days, cfg.outbreak_spike_multiplier,
            cfg.outbreak_present_score, cfg.outbreak_absent_score,
        )

        risk_score = calculate_risk_score(growth_rate, case_density, disease_severity, historical_outbreak, cfg)
        return RiskScoreResult(
            area=area,
            disease=disease,
            risk_score=risk_score,
            risk_level=classify_risk_level(risk_score, cfg.low_threshold, cfg.high_threshold),
            growth_rate=round_to(growth_rate, 2),
            case_density=round_to(case_density, 2),
            disease_severity=disease_severity,
            historical_outbreak=historical_outbreak,
            total_cases=int(current_cases),
            previous_period_cases=int(previous_cases),
            contributing_factors=generate_contributing_factors(
                growth_rate, case_density, disease_severity, historical_outbreak
            ),
            calculation_date=now,
        )

    def compute_area_risk_scores(
        self,
        area: str,
        disease: Optional[str] = None,
        persist: bool = False
    ) -> Optional[List[RiskScoreResult]]:
        """
        Computes one RiskScoreResult per disease with cases in the current window.

        Args:
            area: Area or pincode to score. Required.
            disease: Optional disease filter.
            persist: Store each result unless the latest stored score for the
                     same (area, disease) is within `persist_min_delta` points.

        Returns:
            The per-disease results, or None when the area has no current-window data.
        """
        area = require_text(area, 'area')
        cfg = self.config
        now = self.clock()
        log_ctx = f"Risk({area}{'/' + disease if disease else ''})"

        current_start = now - timedelta(days=cfg.current_window_days)
        previous_start = now - timedelta(days=cfg.previous_window_days)
        try:
            current = self.record_store.aggregate_sum_by_group(
                RecordFilter(area=area, disease=disease, start=current_start), 'disease')
            if current.empty:
                logger.info(f"[{log_ctx}] No cases in the current {cfg.current_window_days}-day window.")
                return None
            previous = self.record_store.aggregate_sum_by_group(
                RecordFilter(area=area, disease=disease, start=previous_start, end=current_start), 'disease')
            daily_history = self._daily_history(area, disease, now)
        except Exception as e:
            logger.error(f"[{log_ctx}] Record store query failed: {e}", exc_info=True)
            raise

        results = [
            self._score_disease(
                area, disease_key, int(current_cases), int(previous.get(disease_key, 0)), daily_history, now
            )
            for disease_key, current_cases in current.items()
        ]

        if persist:
            results = [self._persist(result) for result in results]

        logger.info(
            f"[{log_ctx}] Scored {len(results)} disease(s): "
            + ", ".join(f"{r.disease}={r.risk_score} ({r.risk_level.value})" for r in results)
        )
        return results

    def _persist(self, result: RiskScoreResult) -> RiskScoreResult:
        """Read-then-write debounce; concurrent callers may occasionally both write."""
        if self.risk_store is None:
            logger.warning("Persist requested but no risk score store is attached. Skipping.")
            return result
        latest = self.risk_store.find_latest(result.area, result.disease)
        if latest is None or abs(latest.risk_score - result.risk_score) > self.config.persist_min_delta:
            return self.risk_store.insert(result)
        logger.debug(
            f"[{result.area}/{result.disease}] Score {result.risk_score} within "
            f"{self.config.persist_min_delta} of stored {latest.risk_score}. Not persisted."
        )
        return result

    def get_area_risk_scores(self, area: str) -> List[RiskScoreResult]:
        """Latest stored score per disease for an area (empty without a risk score store)."""
        area = require_text(area, 'area')
        if self.risk_store is None:
            return []
        return list(self.risk_store.latest_per_disease(area))

    def get_aggregate_area_risk(self, area: str, recalculate: bool = False) -> AreaRiskSummary:
        """
        Area-level summary across diseases. Uses the latest stored scores when
        available unless `recalculate` is set, otherwise scores the current window.
        """
        area = require_text(area, 'area')
        scores = [] if recalculate else self.get_area_risk_scores(area)
        if not scores:
            scores = self.compute_area_risk_scores(area) or []
        summary = aggregate_risk_scores(area, scores, self.config)
        logger.info(
            f"[Risk({area})] Aggregate score {summary.aggregate_risk_score} "
            f"({summary.aggregate_risk_level.value}), {len(summary.top_threats)} threat(s)."
        )
        return summary

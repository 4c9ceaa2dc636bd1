# outbreakwatch/analytics/forecasting.py
#
# Case Forecasting & Intervention Simulation Engine
# Fits Holt's double exponential smoothing to the daily case history of an
# (area, disease) pair, projects it forward, and simulates how public-health
# interventions would scale the projected trajectory.

import logging
import numbers
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ValidationError

try:
    from config.settings import ForecastConfig, Settings, settings
    from data_processing.helpers import clamp, round_half_up, round_to, utcnow
    from data_processing.store import CaseRecordStore, RecordFilter
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in forecasting.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .exceptions import PreconditionError, require_text
from .models import (
    ComparisonResult,
    ForecastConfidence,
    ForecastResult,
    ForecastTotals,
    InterventionImpact,
    InterventionScenario,
    NamedScenario,
    ScenarioProjection,
    ScenarioResult,
    TrendDirection,
)

logger = logging.getLogger(__name__)

INTERVENTION_STRENGTH_LABELS = {0: "Minimal", 1: "Moderate", 2: "Strong", 3: "Very Strong"}


class SmoothingResult(BaseModel):
    """Final level and trend of a Holt fit plus the one-step-ahead fitted values."""
    level: float
    trend: float
    fitted: List[float]


def exponential_smoothing(cases: Sequence[float], alpha: float = 0.3, beta: float = 0.2) -> Optional[SmoothingResult]:
    """
    Holt's linear (double exponential) smoothing.

    level[0] is the first observation and trend[0] the first difference (0 for
    a single point). Each later observation updates level then trend.
    """
    values = [float(c) for c in cases]
    if not values:
        return None

    level = values[0]
    trend = values[1] - values[0] if len(values) > 1 else 0.0
    fitted = [level + trend]

    for value in values[1:]:
        prev_level = level
        level = alpha * value + (1 - alpha) * (level + trend)
        trend = beta * (level - prev_level) + (1 - beta) * trend
        fitted.append(level + trend)

    return SmoothingResult(level=level, trend=trend, fitted=fitted)


def forecast_next_days(level: float, trend: float, days: int = 7) -> List[int]:
    """Projects the fitted line forward, rounding each day and flooring at zero."""
    return [max(0, round_half_up(level + trend * k)) for k in range(1, days + 1)]


def calculate_forecast_confidence(data_points: int, forecast_config: Optional[ForecastConfig] = None) -> ForecastConfidence:
    cfg = forecast_config or settings.forecast
    if data_points >= cfg.high_confidence_points:
        return ForecastConfidence.HIGH
    if data_points >= cfg.medium_confidence_points:
        return ForecastConfidence.MEDIUM
    return ForecastConfidence.LOW


def calculate_intervention_factor(
    interventions: InterventionScenario,
    forecast_config: Optional[ForecastConfig] = None
) -> float:
    """
    Multiplicative scaling applied to the baseline forecast.

    Awareness (0-100) removes up to 25% of cases, medical intervention 30% and
    environmental control 25%. The combined factor stays within [0.3, 1.5].
    """
    cfg = forecast_config or settings.forecast
    factor = 1.0

    if interventions.awareness_level:
        awareness = clamp(interventions.awareness_level, 0.0, 100.0)
        factor *= 1 - (awareness / 100) * cfg.awareness_max_reduction

    if interventions.medical_intervention:
        factor *= cfg.medical_intervention_factor

    if interventions.environmental_control:
        factor *= cfg.environmental_control_factor

    return clamp(factor, cfg.min_intervention_factor, cfg.max_intervention_factor)


def calculate_intervention_strength(
    interventions: InterventionScenario,
    forecast_config: Optional[ForecastConfig] = None
) -> str:
    cfg = forecast_config or settings.forecast
    active_levers = sum([
        (interventions.awareness_level or 0) > cfg.awareness_lever_threshold,
        bool(interventions.medical_intervention),
        bool(interventions.environmental_control),
    ])
    return INTERVENTION_STRENGTH_LABELS[active_levers]


def apply_intervention(baseline_forecast: Iterable[int], factor: float) -> List[int]:
    return [round_half_up(cases * factor) for cases in baseline_forecast]


def generate_forecast_recommendations(trend: TrendDirection, trend_value: float, rapid_trend_threshold: float = 2.0) -> List[str]:
    recommendations = []
    if trend == TrendDirection.INCREASING:
        recommendations.append("Cases are increasing - immediate action recommended")
        if trend_value > rapid_trend_threshold:
            recommendations.append("Rapid growth detected - escalate interventions")
    else:
        recommendations.append("Cases are decreasing - continue current measures")

    recommendations.append("Monitor forecasts daily for changes in trajectory")
    recommendations.append("Be prepared to adjust interventions based on actual data")
    return recommendations


def _as_scenario(interventions: Any) -> InterventionScenario:
    if isinstance(interventions, InterventionScenario):
        return interventions
    if isinstance(interventions, dict):
        try:
            return InterventionScenario.model_validate(interventions)
        except ValidationError as e:
            raise PreconditionError(f"Invalid interventions: {e.errors()[0]['msg']}") from e
    raise PreconditionError(f"Invalid interventions format: {interventions!r}")


def _as_named_scenario(scenario: Any) -> NamedScenario:
    if isinstance(scenario, NamedScenario):
        return scenario
    try:
        return NamedScenario.model_validate(scenario)
    except ValidationError as e:
        raise PreconditionError(f"Invalid scenario {scenario!r}: {e.errors()[0]['msg']}") from e


class ForecastEngine:
    """Baseline forecasts and intervention scenarios for one (area, disease) pair at a time."""

    def __init__(
        self,
        record_store: CaseRecordStore,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.record_store = record_store
        self.config = (config or settings).forecast
        self.clock = clock

    def _validate_forecast_days(self, forecast_days: Any) -> int:
        cfg = self.config
        if forecast_days is None:
            return cfg.default_forecast_days
        if isinstance(forecast_days, bool) or not isinstance(forecast_days, numbers.Integral):
            raise PreconditionError(f"'forecast_days' must be an integer, got {forecast_days!r}")
        if not cfg.min_forecast_days <= forecast_days < cfg.max_forecast_days:
            raise PreconditionError(
                f"'forecast_days' must be at least {cfg.min_forecast_days} "
                f"and below {cfg.max_forecast_days}, got {forecast_days}"
            )
        return int(forecast_days)

    def get_historical_series(self, area: str, disease: str) -> pd.Series:
        """Daily case sums over the lookback window, ascending by date."""
        start = self.clock() - timedelta(days=self.config.lookback_days)
        return self.record_store.aggregate_sum_by_group(
            RecordFilter(area=area, disease=disease, start=start), 'day'
        )

    def get_baseline_forecast(self, area: str, disease: str, forecast_days: Optional[int] = None) -> ForecastResult:
        """
        Projects daily cases `forecast_days` ahead (the configured default when
        omitted) from up to 60 days of history.

        Fewer than two daily data points yields an `insufficient_data` result
        rather than an exception.
        """
        area = require_text(area, 'area')
        disease = require_text(disease, 'disease')
        forecast_days = self._validate_forecast_days(forecast_days)
        cfg = self.config
        log_ctx = f"Forecast({area}/{disease})"

        try:
            history = self.get_historical_series(area, disease)
        except Exception as e:
            logger.error(f"[{log_ctx}] Record store query failed: {e}", exc_info=True)
            raise

        if len(history) < cfg.min_data_points:
            logger.warning(f"[{log_ctx}] Insufficient data for forecast ({len(history)} daily point(s)).")
            return ForecastResult(
                area=area, disease=disease, status="insufficient_data",
                message="Insufficient historical data for forecasting",
                forecast_days=forecast_days, data_points=len(history),
            )

        cases = history.astype(float).tolist()
        smoothing = exponential_smoothing(cases, cfg.alpha, cfg.beta)
        forecast = forecast_next_days(smoothing.level, smoothing.trend, forecast_days)
        trend = TrendDirection.INCREASING if smoothing.trend > 0 else TrendDirection.DECREASING

        logger.info(
            f"[{log_ctx}] {forecast_days}-day forecast from {len(cases)} point(s): "
            f"level={smoothing.level:.2f} trend={smoothing.trend:.2f} -> {forecast}"
        )
        return ForecastResult(
            area=area,
            disease=disease,
            status="success",
            historical_average=round_to(sum(cases) / len(cases), 2),
            current_trend=trend,
            trend_strength=round_to(abs(smoothing.trend), 2),
            baseline_forecast=forecast,
            fitted_values=[round_to(v, 2) for v in smoothing.fitted],
            forecast_days=forecast_days,
            confidence=calculate_forecast_confidence(len(cases), cfg),
            data_points=len(cases),
            recommendations=generate_forecast_recommendations(trend, smoothing.trend, cfg.rapid_trend_threshold),
        )

    def _project_scenario(self, baseline: ForecastResult, interventions: InterventionScenario) -> ScenarioResult:
        factor = calculate_intervention_factor(interventions, self.config)
        simulated = apply_intervention(baseline.baseline_forecast, factor)

        baseline_total = sum(baseline.baseline_forecast)
        simulated_total = sum(simulated)
        cases_prevented = baseline_total - simulated_total
        percent_reduction = round_to(cases_prevented / baseline_total * 100, 1) if baseline_total else 0.0

        return ScenarioResult(
            area=baseline.area,
            disease=baseline.disease,
            status="success",
            baseline=ForecastTotals(forecast=baseline.baseline_forecast, total=baseline_total),
            scenario=ScenarioProjection(
                interventions=interventions, factor=round_to(factor, 2),
                forecast=simulated, total=simulated_total,
            ),
            impact=InterventionImpact(
                cases_prevented=cases_prevented,
                percent_reduction=percent_reduction,
                intervention_strength=calculate_intervention_strength(interventions, self.config),
            ),
            forecast_days=baseline.forecast_days,
            generated_at=self.clock(),
        )

    @staticmethod
    def _unavailable(baseline: ForecastResult, name: Optional[str] = None) -> ScenarioResult:
        return ScenarioResult(
            area=baseline.area, disease=baseline.disease, status=baseline.status,
            message=baseline.message, forecast_days=baseline.forecast_days, name=name,
        )

    def simulate_scenario(
        self,
        area: str,
        disease: str,
        interventions: InterventionScenario,
        forecast_days: Optional[int] = None
    ) -> ScenarioResult:
        """Applies an intervention scenario to the baseline forecast and reports its impact."""
        interventions = _as_scenario(interventions)
        baseline = self.get_baseline_forecast(area, disease, forecast_days)
        if baseline.status != "success":
            return self._unavailable(baseline)
        return self._project_scenario(baseline, interventions)

    def compare_scenarios(
        self,
        area: str,
        disease: str,
        scenarios: Sequence[NamedScenario],
        forecast_days: Optional[int] = None
    ) -> ComparisonResult:
        """
        Simulates each named scenario against the same baseline and picks the
        one preventing the most cases. Ties keep the earliest scenario.
        """
        if not scenarios:
            raise PreconditionError("'scenarios' must contain at least one scenario")
        named = [_as_named_scenario(s) for s in scenarios]
        baseline = self.get_baseline_forecast(area, disease, forecast_days)

        results: List[ScenarioResult] = []
        for idx, scenario in enumerate(named):
            name = scenario.name or f"Scenario {idx + 1}"
            if baseline.status != "success":
                results.append(self._unavailable(baseline, name))
            else:
                results.append(self._project_scenario(baseline, scenario.interventions).model_copy(update={'name': name}))

        best: Optional[ScenarioResult] = None
        for result in results:
            if result.status != "success":
                continue
            if best is None or result.impact.cases_prevented > best.impact.cases_prevented:
                best = result

        logger.info(
            f"[Forecast({baseline.area}/{baseline.disease})] Compared {len(results)} scenario(s); "
            f"best={best.name if best else None}"
        )
        return ComparisonResult(
            area=baseline.area,
            disease=baseline.disease,
            scenarios=results,
            best_scenario=best.name if best else None,
            forecast_days=baseline.forecast_days,
        )

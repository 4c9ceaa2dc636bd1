# outbreakwatch/analytics/service.py
#
# Analytics Service
# The single entry point the API layer and alert synthesis call into. It wires
# the injected stores into each engine and exposes their public operations.

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

try:
    from config.settings import Settings, settings
    from data_processing.helpers import utcnow
    from data_processing.store import AlertStore, CaseRecordStore, RecordFilter, RiskScoreStore
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in service.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .aggregation import (
    calculate_daily_totals,
    calculate_period_statistics,
    calculate_seven_day_average,
    detect_high_risk_areas,
    get_area_disease_distribution,
    get_trending_diseases,
)
from .alerts import generate_alert_with_context
from .anomaly import AnomalyDetector
from .explainability import ExplainabilityService
from .forecasting import ForecastEngine
from .models import (
    AlertExplanation,
    AlertRecord,
    AnomalyResult,
    AreaRiskSummary,
    ComparisonResult,
    ForecastResult,
    InterventionScenario,
    NamedScenario,
    RiskLevel,
    RiskScoreExplanation,
    RiskScoreResult,
    ScenarioResult,
)
from .risk import RiskScoringEngine

logger = logging.getLogger(__name__)


class AnalyticsService:
    """
    Facade over the risk, anomaly, forecast and explainability engines.

    All engines share the same record store, settings and clock. Every
    operation reads a fresh slice of records, so calls for different
    (area, disease) pairs are independent of each other.
    """
    def __init__(
        self,
        record_store: CaseRecordStore,
        risk_store: Optional[RiskScoreStore] = None,
        alert_store: Optional[AlertStore] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.config = config or settings
        self.clock = clock
        self.record_store = record_store
        self.alert_store = alert_store
        self.risk_engine = RiskScoringEngine(record_store, risk_store, self.config, clock)
        self.anomaly_detector = AnomalyDetector(record_store, self.config, clock)
        self.forecast_engine = ForecastEngine(record_store, self.config, clock)
        self.explainer = ExplainabilityService(risk_store, alert_store, self.config, clock)

    # --- Risk ---

    def compute_area_risk_scores(
        self, area: str, disease: Optional[str] = None, persist: bool = False
    ) -> Optional[List[RiskScoreResult]]:
        return self.risk_engine.compute_area_risk_scores(area, disease, persist)

    def get_aggregate_area_risk(self, area: str, recalculate: bool = False) -> AreaRiskSummary:
        return self.risk_engine.get_aggregate_area_risk(area, recalculate)

    # --- Anomaly ---

    def check_anomaly(self, disease: str, area: str, new_case_count: float) -> AnomalyResult:
        return self.anomaly_detector.check_anomaly(disease, area, new_case_count)

    def generate_anomaly_alert(self, anomaly: AnomalyResult, save: bool = False) -> Optional[AlertRecord]:
        """Alert record for a positive anomaly; optionally stored in the alert store."""
        alert = self.anomaly_detector.generate_anomaly_alert(anomaly)
        if alert is not None and save and self.alert_store is not None:
            alert = self.alert_store.insert(alert)
        return alert

    def generate_alert(
        self,
        disease: str,
        area: str,
        risk_level: Union[RiskLevel, str] = RiskLevel.MEDIUM,
        risk_score: Optional[int] = None,
        case_count: Optional[int] = None,
        anomaly: Optional[AnomalyResult] = None,
        save: bool = False
    ) -> AlertRecord:
        alert = generate_alert_with_context(
            self.risk_engine, disease, area, risk_level, risk_score, case_count, anomaly, self.clock()
        )
        if save and self.alert_store is not None:
            alert = self.alert_store.insert(alert)
        return alert

    # --- Forecast ---

    def get_baseline_forecast(self, area: str, disease: str, forecast_days: Optional[int] = None) -> ForecastResult:
        return self.forecast_engine.get_baseline_forecast(area, disease, forecast_days)

    def simulate_scenario(
        self, area: str, disease: str, interventions: InterventionScenario, forecast_days: Optional[int] = None
    ) -> ScenarioResult:
        return self.forecast_engine.simulate_scenario(area, disease, interventions, forecast_days)

    def compare_scenarios(
        self, area: str, disease: str, scenarios: Sequence[NamedScenario], forecast_days: Optional[int] = None
    ) -> ComparisonResult:
        return self.forecast_engine.compare_scenarios(area, disease, scenarios, forecast_days)

    # --- Explainability ---

    def explain(self, kind: str, report_id: str) -> Optional[Union[RiskScoreExplanation, AlertExplanation]]:
        return self.explainer.generate_report(kind, report_id)

    # --- Overview ---

    def get_overview(self, area: Optional[str] = None) -> Dict[str, Any]:
        """Dashboard roll-up: today's totals, per-area comparison, trending diseases, week-over-week test."""
        now = self.clock()
        week_start = now - timedelta(days=7)
        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        df_week = self.record_store.find(RecordFilter(area=area, start=week_start))
        df_previous = self.record_store.find(RecordFilter(area=area, start=now - timedelta(days=14), end=week_start))
        df_today = df_week[df_week['report_date'] >= today_start]

        overview_cfg = self.config.overview
        logger.info(
            f"[Overview({area or 'all areas'})] {len(df_today)} report(s) today, "
            f"{len(df_week)} in the last 7 days, {len(df_previous)} in the week before."
        )
        return {
            'area': area,
            'today_total': int(df_today['case_count'].sum()) if not df_today.empty else 0,
            'seven_day_average': calculate_seven_day_average(df_week),
            'high_risk_areas': detect_high_risk_areas(df_today, df_week, overview_cfg),
            'trending_diseases': get_trending_diseases(df_week, overview_cfg.trending_diseases_limit),
            'distribution': get_area_disease_distribution(df_week),
            'week_over_week': calculate_period_statistics(
                calculate_daily_totals(df_week), calculate_daily_totals(df_previous),
                overview_cfg.significance_level,
            ),
        }

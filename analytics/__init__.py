# outbreakwatch/analytics/__init__.py
#
# Analytics Package API
# Risk scoring, anomaly detection, forecasting, explainability and alert
# synthesis over reported case records.

"""
Initializes the analytics package, making the engines, the service facade and
the result models available at the top level.
"""

from .exceptions import AnalyticsError, PreconditionError

from .models import (
    AlertRecord,
    AlertSource,
    AlertType,
    AnomalyResult,
    AreaRiskSummary,
    CaseRecord,
    ComparisonResult,
    ForecastConfidence,
    ForecastResult,
    InterventionScenario,
    NamedScenario,
    RiskLevel,
    RiskScoreResult,
    ScenarioResult,
    TrendDirection,
)

# --- Engines ---
from .risk import RiskScoringEngine, calculate_risk_score, classify_risk_level
from .anomaly import AnomalyDetector
from .forecasting import ForecastEngine, calculate_intervention_factor, exponential_smoothing
from .explainability import ExplainabilityService, explain_alert, explain_risk_score

# --- Facade ---
from .service import AnalyticsService


__all__ = [
    # Errors
    "AnalyticsError",
    "PreconditionError",

    # Models
    "AlertRecord",
    "AlertSource",
    "AlertType",
    "AnomalyResult",
    "AreaRiskSummary",
    "CaseRecord",
    "ComparisonResult",
    "ForecastConfidence",
    "ForecastResult",
    "InterventionScenario",
    "NamedScenario",
    "RiskLevel",
    "RiskScoreResult",
    "ScenarioResult",
    "TrendDirection",

    # Engines
    "RiskScoringEngine",
    "calculate_risk_score",
    "classify_risk_level",
    "AnomalyDetector",
    "ForecastEngine",
    "calculate_intervention_factor",
    "exponential_smoothing",
    "ExplainabilityService",
    "explain_alert",
    "explain_risk_score",

    # Facade
    "AnalyticsService",
]

# outbreakwatch/analytics/models.py
#
# Result and input models for the analytics pipeline. Every engine returns one
# of these pydantic models so that callers (API layer, alert synthesis) get
# validated, serializable values with documented bounds.

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrendDirection(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"


class ForecastConfidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertSource(str, Enum):
    AI = "AI"
    MANUAL = "manual"


class AlertType(str, Enum):
    ANOMALY = "anomaly"
    TREND = "trend"
    RISK = "risk"
    GENERAL = "general"


ResultStatus = Literal["success", "insufficient_data"]

DISCLAIMER = (
    "This explanation is generated by our AI system to help understand health data. "
    "Always consult healthcare professionals for medical concerns."
)


# --- Input records ---

class CaseRecord(BaseModel):
    """One reported observation of disease incidence."""
    disease: str = Field(..., min_length=1)
    area: str = Field(..., min_length=1)
    case_count: int = Field(..., ge=0)
    report_date: datetime

    @field_validator('disease', 'area')
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


# --- Risk scoring ---

class RiskScoreResult(BaseModel):
    area: str
    disease: str
    risk_score: int = Field(..., ge=0, le=100)
    risk_level: RiskLevel
    growth_rate: float
    case_density: float = Field(..., ge=0, le=100)
    disease_severity: int = Field(..., ge=0, le=100)
    historical_outbreak: int = Field(..., ge=0, le=100)
    total_cases: int = 0
    previous_period_cases: int = 0
    contributing_factors: List[str] = Field(default_factory=list)
    calculation_date: Optional[datetime] = None
    id: Optional[str] = None


class ThreatSummary(BaseModel):
    disease: str
    risk_score: int
    risk_level: RiskLevel


class AreaRiskSummary(BaseModel):
    area: str
    aggregate_risk_score: int = Field(0, ge=0, le=100)
    aggregate_risk_level: RiskLevel = RiskLevel.LOW
    top_threats: List[ThreatSummary] = Field(default_factory=list)
    last_calculated: Optional[datetime] = None


# --- Anomaly detection ---

class AnomalyResult(BaseModel):
    has_anomaly: bool
    disease: str
    area: str
    new_case_count: float
    previous_moving_avg: Optional[float] = None
    spike_percentage: Optional[float] = None
    z_score: Optional[float] = None
    threshold: Optional[float] = None
    reason: str


# --- Forecasting ---

class InterventionScenario(BaseModel):
    """Public-health levers applied on top of a baseline forecast."""
    awareness_level: Optional[float] = None
    medical_intervention: bool = False
    environmental_control: bool = False


class NamedScenario(BaseModel):
    name: Optional[str] = None
    interventions: InterventionScenario = Field(default_factory=InterventionScenario)


class ForecastResult(BaseModel):
    area: str
    disease: str
    status: ResultStatus
    message: Optional[str] = None
    historical_average: Optional[float] = None
    current_trend: Optional[TrendDirection] = None
    trend_strength: Optional[float] = None
    baseline_forecast: List[int] = Field(default_factory=list)
    # One-step-ahead values of the fit over the history, oldest first.
    fitted_values: List[float] = Field(default_factory=list)
    forecast_days: int
    confidence: Optional[ForecastConfidence] = None
    data_points: int = 0
    recommendations: List[str] = Field(default_factory=list)


class ForecastTotals(BaseModel):
    forecast: List[int]
    total: int


class ScenarioProjection(BaseModel):
    interventions: InterventionScenario
    factor: float
    forecast: List[int]
    total: int


class InterventionImpact(BaseModel):
    cases_prevented: int
    percent_reduction: float
    intervention_strength: str


class ScenarioResult(BaseModel):
    area: str
    disease: str
    status: ResultStatus
    message: Optional[str] = None
    baseline: Optional[ForecastTotals] = None
    scenario: Optional[ScenarioProjection] = None
    impact: Optional[InterventionImpact] = None
    forecast_days: int
    generated_at: Optional[datetime] = None
    name: Optional[str] = None


class ComparisonResult(BaseModel):
    area: str
    disease: str
    scenarios: List[ScenarioResult]
    best_scenario: Optional[str] = None
    forecast_days: int


# --- Alerts ---

class AlertRecord(BaseModel):
    id: Optional[str] = None
    title: str
    message: str
    disease: str
    area: str
    risk_level: RiskLevel
    source: AlertSource = AlertSource.MANUAL
    type: AlertType = AlertType.GENERAL
    risk_score: Optional[int] = Field(None, ge=0, le=100)
    case_count: Optional[int] = None
    spike_percentage: Optional[float] = None
    explanations: List[str] = Field(default_factory=list)
    preventive_guidance: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None


# --- Explainability ---

class FactorExplanation(BaseModel):
    factor: str
    value: float
    weight: str
    explanation: str
    contribution: float


class RiskDataPoints(BaseModel):
    cases_last_week: int
    cases_previous_week: int
    growth_percentage: float


class RiskScoreExplanation(BaseModel):
    report_type: Literal["risk-score"] = "risk-score"
    risk_score: int
    risk_level: RiskLevel
    area: str
    disease: str
    calculated_at: Optional[datetime] = None
    contributing_factors: List[FactorExplanation]
    narrative: List[str]
    confidence: str
    data_points: RiskDataPoints
    recommendations: List[str]
    generated_at: Optional[datetime] = None
    disclaimer: str = DISCLAIMER


class AnomalyDetails(BaseModel):
    spike_percentage: float
    interpretation: str


class AlertExplanation(BaseModel):
    report_type: Literal["alert"] = "alert"
    alert_id: Optional[str] = None
    title: str
    disease: str
    area: str
    risk_level: RiskLevel
    source: AlertSource
    type: AlertType
    created_at: Optional[datetime] = None
    ai_explanations: List[str] = Field(default_factory=list)
    anomaly_details: Optional[AnomalyDetails] = None
    narrative: str
    trust_score: int = Field(..., ge=0, le=100)
    generated_at: Optional[datetime] = None
    disclaimer: str = DISCLAIMER

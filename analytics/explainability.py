# outbreakwatch/analytics/explainability.py
#
# Explainability Layer
# Decomposes risk scores and alerts into human-readable contributing factors,
# a short narrative, a confidence label and recommendations. It adds no new
# facts, only structure around the numbers the engines already produced.

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Tuple, Union

try:
    from config.settings import RiskConfig, Settings, settings
    from data_processing.helpers import normalize_key, round_to, utcnow
    from data_processing.store import AlertStore, RiskScoreStore
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in explainability.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .exceptions import PreconditionError, require_choice, require_text
from .models import (
    AlertExplanation,
    AlertRecord,
    AlertSource,
    AlertType,
    AnomalyDetails,
    FactorExplanation,
    RiskDataPoints,
    RiskLevel,
    RiskScoreExplanation,
    RiskScoreResult,
)
from .risk import normalize

logger = logging.getLogger(__name__)

REPORT_KINDS = ('risk-score', 'alert')
RISK_CONFIDENCE_LABEL = "High (based on statistical analysis)"

# Qualitative text per factor, keyed by the 0-100 value it describes best.
FACTOR_BUCKETS: Mapping[str, Tuple[Tuple[float, str], ...]] = MappingProxyType({
    'growthRate': (
        (0, "No growth in cases"),
        (30, "Slow growth in case count"),
        (50, "Moderate growth detected"),
        (75, "Rapid case growth detected"),
        (100, "Extremely rapid growth - urgent attention needed"),
    ),
    'caseDensity': (
        (0, "No reported cases"),
        (25, "Low case count"),
        (50, "Moderate case density"),
        (75, "High case density"),
        (100, "Very high case density - cluster detected"),
    ),
    'diseaseSeverity': (
        (0, "Low severity disease"),
        (30, "Moderate severity disease"),
        (60, "High severity disease"),
        (80, "Very high severity disease"),
        (100, "Critical severity disease"),
    ),
    'historicalOutbreak': (
        (0, "No previous outbreaks"),
        (30, "Minor outbreak history"),
        (60, "Significant outbreak in past 90 days"),
        (80, "Recent major outbreak"),
        (100, "Ongoing outbreak situation"),
    ),
})

BASE_RECOMMENDATIONS: Mapping[RiskLevel, Tuple[str, ...]] = MappingProxyType({
    RiskLevel.LOW: (
        "Continue routine health monitoring",
        "Maintain standard preventive practices",
        "Stay informed about disease updates",
    ),
    RiskLevel.MEDIUM: (
        "Increase health awareness in community",
        "Ensure vaccination status is current",
        "Monitor symptoms closely",
        "Consult healthcare provider if symptoms develop",
    ),
    RiskLevel.HIGH: (
        "Activate emergency health protocols",
        "Increase surveillance and testing",
        "Implement community health measures",
        "Provide immediate access to healthcare",
        "Distribute preventive measures",
    ),
})

DISEASE_RECOMMENDATIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    'dengue': (
        "Eliminate mosquito breeding sites",
        "Distribute insect repellents",
        "Advise on protective clothing",
    ),
    'malaria': (
        "Distribute bed nets",
        "Arrange prophylaxis programs",
        "Increase testing availability",
    ),
    'covid-19': (
        "Boost vaccination campaigns",
        "Increase testing capacity",
        "Advise on isolation procedures",
    ),
    'measles': (
        "Organize vaccination drives",
        "Isolate confirmed cases",
        "Monitor contacts",
    ),
    'tuberculosis': (
        "Screen at-risk populations",
        "Ensure treatment access",
        "Implement infection control",
    ),
})


def nearest_bucket(table: Tuple[Tuple[float, str], ...], value: float) -> Optional[str]:
    """Text of the key numerically closest to `value`; equidistant values go to the lower key."""
    closest = None
    for key, text in sorted(table):
        if closest is None or abs(key - value) < abs(closest[0] - value):
            closest = (key, text)
    return closest[1] if closest else None


def build_factor_explanation(factor: str, value: float, weight: float) -> FactorExplanation:
    explanation = nearest_bucket(FACTOR_BUCKETS.get(factor, ()), value) or "Unable to determine"
    return FactorExplanation(
        factor=factor,
        value=round_to(value, 2),
        weight=f"{weight * 100:.0f}%",
        explanation=explanation,
        contribution=round_to(value * weight, 2),
    )


def generate_recommendations(risk_level: Union[RiskLevel, str], disease: str) -> List[str]:
    """Risk-level base guidance followed by disease-specific measures."""
    level = require_choice(RiskLevel, risk_level, 'risk_level')
    return [*BASE_RECOMMENDATIONS.get(level, ()), *DISEASE_RECOMMENDATIONS.get(normalize_key(disease), ())]


def explain_risk_score(
    risk_score: RiskScoreResult,
    risk_config: Optional[RiskConfig] = None,
    generated_at: Optional[datetime] = None
) -> RiskScoreExplanation:
    """
    Factor-by-factor breakdown of a risk score.

    Each factor carries the same normalized value the score was computed from,
    so the contributions add up to the unrounded score. Factors are ordered by
    contribution, largest first, and the top three form the narrative.
    """
    cfg = risk_config or settings.risk
    weighted_factors = [
        ('growthRate', normalize(risk_score.growth_rate, cfg.growth_normalization_max), cfg.growth_weight),
        ('caseDensity', risk_score.case_density, cfg.density_weight),
        ('diseaseSeverity', risk_score.disease_severity, cfg.severity_weight),
        ('historicalOutbreak', risk_score.historical_outbreak, cfg.outbreak_weight),
    ]
    factors = [build_factor_explanation(name, value or 0, weight) for name, value, weight in weighted_factors]
    factors = sorted(factors, key=lambda f: f.contribution, reverse=True)

    narrative = [
        f"{f.explanation} (contributes {f.contribution:.1f} to score)"
        for f in factors[:3]
    ]

    return RiskScoreExplanation(
        risk_score=risk_score.risk_score,
        risk_level=risk_score.risk_level,
        area=risk_score.area,
        disease=risk_score.disease,
        calculated_at=risk_score.calculation_date,
        contributing_factors=factors,
        narrative=narrative,
        confidence=RISK_CONFIDENCE_LABEL,
        data_points=RiskDataPoints(
            cases_last_week=risk_score.total_cases,
            cases_previous_week=risk_score.previous_period_cases,
            growth_percentage=risk_score.growth_rate,
        ),
        recommendations=generate_recommendations(risk_score.risk_level, risk_score.disease),
        generated_at=generated_at,
    )


def build_alert_narrative(alert: AlertRecord) -> str:
    narrative = f"An alert for {alert.disease} has been issued in {alert.area}. "

    if alert.source == AlertSource.AI:
        if alert.type == AlertType.ANOMALY:
            spike = f"{alert.spike_percentage:.1f}" if alert.spike_percentage is not None else "significant"
            narrative += f"The AI system detected an unusual increase in cases ({spike}% above average). "
        elif alert.type == AlertType.TREND:
            narrative += "The AI system identified concerning disease trends. "
        else:
            narrative += "The AI system identified health risks based on available data. "
    else:
        narrative += "This alert was created by health administrators. "

    narrative += f"Risk level is classified as {alert.risk_level.value.upper()}. "

    if alert.risk_score:
        narrative += f"The composite risk score is {alert.risk_score}/100. "

    narrative += "This information is provided for community awareness and should not be used for self-diagnosis."
    return narrative


def calculate_trust_score(alert: AlertRecord) -> int:
    """75 base, +15 for three or more explanations, +10 for automated anomaly alerts, -5 if manual."""
    score = 75
    if len(alert.explanations) >= 3:
        score += 15
    if alert.source == AlertSource.AI and alert.type == AlertType.ANOMALY:
        score += 10
    if alert.source != AlertSource.AI:
        score -= 5
    return min(100, score)


def explain_alert(alert: AlertRecord, generated_at: Optional[datetime] = None) -> AlertExplanation:
    anomaly_details = None
    if alert.spike_percentage:
        anomaly_details = AnomalyDetails(
            spike_percentage=alert.spike_percentage,
            interpretation=f"Cases increased by {alert.spike_percentage:.1f}% above the normal threshold",
        )

    return AlertExplanation(
        alert_id=alert.id,
        title=alert.title,
        disease=alert.disease,
        area=alert.area,
        risk_level=alert.risk_level,
        source=alert.source,
        type=alert.type,
        created_at=alert.created_at,
        ai_explanations=list(alert.explanations),
        anomaly_details=anomaly_details,
        narrative=build_alert_narrative(alert),
        trust_score=calculate_trust_score(alert),
        generated_at=generated_at,
    )


class ExplainabilityService:
    """Looks stored risk scores and alerts up by id and explains them."""

    def __init__(
        self,
        risk_store: Optional[RiskScoreStore] = None,
        alert_store: Optional[AlertStore] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.risk_store = risk_store
        self.alert_store = alert_store
        self.config = (config or settings).risk
        self.clock = clock

    def generate_report(
        self, kind: str, report_id: str
    ) -> Optional[Union[RiskScoreExplanation, AlertExplanation]]:
        """
        Explains the stored risk score or alert with the given id.

        Returns None when nothing is stored under the id; an unknown `kind`
        raises PreconditionError.
        """
        if kind not in REPORT_KINDS:
            raise PreconditionError(f"Invalid explainability report type: {kind!r}")
        report_id = require_text(report_id, 'id')

        if kind == 'risk-score':
            risk_score = self.risk_store.get(report_id) if self.risk_store else None
            if risk_score is None:
                logger.warning(f"[Explain(risk-score/{report_id})] Risk score not found.")
                return None
            return explain_risk_score(risk_score, self.config, self.clock())

        alert = self.alert_store.get(report_id) if self.alert_store else None
        if alert is None:
            logger.warning(f"[Explain(alert/{report_id})] Alert not found.")
            return None
        return explain_alert(alert, self.clock())

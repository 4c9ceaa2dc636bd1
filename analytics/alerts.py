# outbreakwatch/analytics/alerts.py
#
# Alert Synthesis
# Template-driven alert messages and preventive guidance built on top of the
# risk and anomaly outputs.

import logging
import re
from datetime import datetime
from types import MappingProxyType
from typing import List, Mapping, Optional, Union

try:
    from data_processing.helpers import normalize_key, utcnow
    from data_processing.store import StoreError
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in alerts.py: A core dependency is missing. {e}", exc_info=True)
    raise

from .exceptions import require_choice, require_text
from .models import AlertRecord, AlertSource, AlertType, AnomalyResult, RiskLevel
from .risk import RiskScoringEngine

logger = logging.getLogger(__name__)

ALERT_TEMPLATES: Mapping[RiskLevel, Mapping[str, str]] = MappingProxyType({
    RiskLevel.HIGH: MappingProxyType({
        'dengue': "HIGH ALERT: {area} is experiencing a significant {disease} outbreak. Cases: {cases}. IMMEDIATE PRECAUTIONS REQUIRED - Seek shelter, avoid mosquito breeding spots, use repellents.",
        'malaria': "HIGH ALERT: {area} - {disease} cases surging to {cases}. CRITICAL - Use bed nets, take prophylaxis if recommended, report symptoms immediately.",
        'covid-19': "HIGH ALERT: {area} - {disease} transmission at critical levels ({cases} cases). ESSENTIAL - Practice hygiene, maintain distance, get vaccinated if eligible.",
        'measles': "HIGH ALERT: {area} - {disease} spreading rapidly ({cases} cases reported). URGENT - Ensure vaccination status, avoid contact with sick individuals.",
        'tuberculosis': "HIGH ALERT: {area} - {disease} active transmission ({cases} cases). IMPORTANT - Medical screening advised, proper respiratory protection in public spaces.",
        'default': "HIGH ALERT: {area} is experiencing elevated {disease} activity with {cases} reported cases. Community precautions and medical consultation recommended.",
    }),
    RiskLevel.MEDIUM: MappingProxyType({
        'dengue': "MODERATE ALERT: {disease} activity detected in {area} with {cases} cases. Recommended: Use mosquito repellents, clean water containers, monitor symptoms.",
        'malaria': "MODERATE ALERT: {disease} cases identified in {area} ({cases} reported). Recommendation: Use bed nets, consult health facility if symptoms appear.",
        'covid-19': "MODERATE ALERT: {area} showing {disease} increase ({cases} cases). Advised: Maintain hygiene, home isolation if symptomatic, health monitoring.",
        'measles': "MODERATE ALERT: {disease} presence in {area} ({cases} cases). Caution: Verify vaccination status, avoid crowded places, monitor for symptoms.",
        'tuberculosis': "MODERATE ALERT: {disease} cases reported in {area} ({cases} cases). Guidance: Health screening available, respiratory precautions recommended.",
        'default': "MODERATE ALERT: {area} has {disease} activity. Please stay informed and follow basic health precautions.",
    }),
    RiskLevel.LOW: MappingProxyType({
        'default': "INFORMATION: {area} has {disease} under observation ({cases} cases). Continue normal preventive practices.",
    }),
})

PREVENTIVE_GUIDANCE: Mapping[str, tuple] = MappingProxyType({
    'dengue': (
        "Apply mosquito repellents containing DEET",
        "Clear stagnant water from containers",
        "Use bed nets and air-conditioned spaces",
        "Wear full-sleeve clothing during peak mosquito hours",
    ),
    'malaria': (
        "Sleep under insecticide-treated bed nets",
        "Take malaria prophylaxis if traveling to endemic areas",
        "Avoid being outdoors during dusk and dawn",
        "Seek medical attention if experiencing fever",
    ),
    'covid-19': (
        "Get vaccinated and booster doses",
        "Practice regular hand hygiene",
        "Wear masks in crowded settings",
        "Maintain physical distance when possible",
    ),
    'measles': (
        "Ensure MMR vaccination status",
        "Avoid close contact with confirmed cases",
        "Practice respiratory hygiene",
        "Seek immediate care if symptoms appear",
    ),
    'tuberculosis': (
        "Get TB screening if at risk",
        "Use respiratory protection around infected individuals",
        "Complete full TB treatment if prescribed",
        "Report persistent cough lasting 3+ weeks",
    ),
    'default': (
        "Consult healthcare provider if symptoms develop",
        "Practice good hand hygiene",
        "Follow basic respiratory etiquette",
        "Monitor health status regularly",
    ),
})

DISCLAIMER_FOOTER = (
    "\n\nDISCLAIMER: This is community health information, NOT medical advice. "
    "Consult healthcare professionals for diagnosis or treatment."
)

# Passive constructions rewritten into more direct, actionable phrasing.
ACTIVE_VOICE_REPLACEMENTS = (
    ('is being', 'is currently'),
    ('has been detected', 'detected'),
    ('should be taken', 'take'),
    ('is recommended', 'recommended'),
)


def get_template(risk_level: Union[RiskLevel, str], disease: str) -> str:
    templates = ALERT_TEMPLATES.get(require_choice(RiskLevel, risk_level, 'risk_level'), ALERT_TEMPLATES[RiskLevel.LOW])
    return templates.get(normalize_key(disease), templates['default'])


def get_preventive_guidance(disease: str) -> List[str]:
    return list(PREVENTIVE_GUIDANCE.get(normalize_key(disease), PREVENTIVE_GUIDANCE['default']))


def generate_alert_message(
    disease: str,
    area: str,
    risk_level: Union[RiskLevel, str] = RiskLevel.MEDIUM,
    case_count: Optional[int] = None,
    trend_direction: str = 'stable',
    spike_percentage: Optional[float] = None
) -> str:
    message = get_template(risk_level, disease).format(
        disease=disease, area=area, cases=case_count if case_count else 'multiple'
    )
    if trend_direction == 'increasing':
        message += " Cases are trending upward - increased vigilance recommended."
    if spike_percentage:
        message += f" Recent spike of {spike_percentage:.1f}% detected."
    return message + DISCLAIMER_FOOTER


def improve_alert_message(base_message: str) -> str:
    improved = base_message
    for source, target in ACTIVE_VOICE_REPLACEMENTS:
        improved = re.sub(re.escape(source), target, improved, flags=re.IGNORECASE)
    return improved


def generate_alert_with_context(
    risk_engine: RiskScoringEngine,
    disease: str,
    area: str,
    risk_level: Union[RiskLevel, str] = RiskLevel.MEDIUM,
    risk_score: Optional[int] = None,
    case_count: Optional[int] = None,
    anomaly: Optional[AnomalyResult] = None,
    created_at: Optional[datetime] = None
) -> AlertRecord:
    """
    Builds a complete automated alert, including the area's top threats when
    they can be fetched. A store failure degrades to an alert without that
    context instead of losing the alert.
    """
    disease = require_text(disease, 'disease')
    area = require_text(area, 'area')
    risk_level = require_choice(RiskLevel, risk_level, 'risk_level')
    spike = anomaly.spike_percentage if anomaly and anomaly.has_anomaly else None
    trend_direction = 'increasing' if risk_score is not None and risk_score > 60 else 'stable'

    explanations = [
        f"Disease: {disease}",
        f"Affected Area: {area}",
        f"Risk Level: {risk_level.value.upper()}",
    ]
    if risk_score is not None:
        explanations.append(f"Risk Score: {risk_score}/100")
    if case_count is not None:
        explanations.append(f"Reported Cases: {case_count}")
    if anomaly is not None:
        explanations.append(f"Spike Detected: {f'{spike:.1f}' if spike is not None else 'N/A'}% increase")

    try:
        area_risk = risk_engine.get_aggregate_area_risk(area)
    except StoreError as e:
        logger.error(f"[Alert({area}/{disease})] Could not load area risk context: {e}", exc_info=True)
        area_risk = None
    if area_risk and area_risk.top_threats:
        explanations.append(f"Top Disease Threats: {', '.join(t.disease for t in area_risk.top_threats)}")

    return AlertRecord(
        title=f"Alert: {disease} in {area}",
        message=generate_alert_message(disease, area, risk_level, case_count, trend_direction, spike),
        disease=disease,
        area=area,
        risk_level=risk_level,
        source=AlertSource.AI,
        type=AlertType.ANOMALY if spike is not None else AlertType.RISK,
        risk_score=risk_score,
        case_count=case_count,
        spike_percentage=spike,
        explanations=explanations,
        preventive_guidance=get_preventive_guidance(disease),
        created_at=created_at or utcnow(),
    )

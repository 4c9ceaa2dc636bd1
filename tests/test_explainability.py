import pytest

from analytics.exceptions import PreconditionError
from analytics.explainability import (
    FACTOR_BUCKETS,
    ExplainabilityService,
    calculate_trust_score,
    explain_alert,
    explain_risk_score,
    generate_recommendations,
    nearest_bucket,
)
from analytics.models import AlertRecord, AlertSource, AlertType, RiskLevel
from analytics.risk import RiskScoringEngine


@pytest.fixture
def dengue_score(make_store, clock):
    store = make_store([('dengue', 'Ward 5', 80, 1), ('dengue', 'Ward 5', 40, 10)])
    return RiskScoringEngine(store, clock=clock).compute_area_risk_scores('Ward 5')[0]


def _alert(**overrides):
    fields = dict(
        title="Alert: dengue in Ward 5", message="...", disease='dengue', area='Ward 5',
        risk_level=RiskLevel.HIGH,
    )
    fields.update(overrides)
    return AlertRecord(**fields)


def test_nearest_bucket_ties_go_to_lower_key():
    growth = FACTOR_BUCKETS['growthRate']
    assert nearest_bucket(growth, 40) == "Slow growth in case count"
    assert nearest_bucket(growth, 90) == "Extremely rapid growth - urgent attention needed"
    assert nearest_bucket(growth, -20) == "No growth in cases"
    assert nearest_bucket((), 10) is None


def test_risk_explanation_orders_factors_by_contribution(dengue_score, now):
    report = explain_risk_score(dengue_score, generated_at=now)

    assert report.report_type == "risk-score"
    assert report.risk_score == 65
    assert [f.factor for f in report.contributing_factors] == [
        'growthRate', 'caseDensity', 'diseaseSeverity', 'historicalOutbreak',
    ]
    assert report.contributing_factors[0].weight == "40%"
    assert report.narrative[0] == "Rapid case growth detected (contributes 26.7 to score)"
    assert len(report.narrative) == 3
    assert sum(f.contribution for f in report.contributing_factors) == pytest.approx(64.67, abs=0.02)
    assert report.data_points.cases_last_week == 80
    assert report.data_points.cases_previous_week == 40
    assert report.generated_at == now


def test_recommendations_combine_level_and_disease():
    recommendations = generate_recommendations(RiskLevel.MEDIUM, 'Dengue')
    assert recommendations[0] == "Increase health awareness in community"
    assert recommendations[-1] == "Advise on protective clothing"
    assert len(recommendations) == 7
    assert len(generate_recommendations('low', 'unknown')) == 3


def test_recommendations_reject_unknown_risk_level():
    with pytest.raises(PreconditionError, match="low, medium, high"):
        generate_recommendations("critical", "dengue")


def test_trust_score_rules():
    explanations = ["a", "b", "c"]
    assert calculate_trust_score(_alert(source=AlertSource.AI, type=AlertType.ANOMALY, explanations=explanations)) == 100
    assert calculate_trust_score(_alert(source=AlertSource.AI, type=AlertType.RISK, explanations=explanations)) == 90
    assert calculate_trust_score(_alert(source=AlertSource.AI, type=AlertType.RISK)) == 75
    assert calculate_trust_score(_alert(source=AlertSource.MANUAL)) == 70


def test_alert_explanation_narrative():
    report = explain_alert(_alert(
        source=AlertSource.AI, type=AlertType.ANOMALY, spike_percentage=60.0, risk_score=72,
    ))
    assert report.report_type == "alert"
    assert "unusual increase in cases (60.0% above average)" in report.narrative
    assert "Risk level is classified as HIGH." in report.narrative
    assert "composite risk score is 72/100" in report.narrative
    assert report.anomaly_details.spike_percentage == 60.0

    manual = explain_alert(_alert())
    assert "created by health administrators" in manual.narrative
    assert manual.anomaly_details is None


def test_generate_report_for_stored_records(dengue_score, risk_store, alert_store, clock):
    stored_score = risk_store.insert(dengue_score)
    stored_alert = alert_store.insert(_alert(source=AlertSource.AI, type=AlertType.TREND))
    service = ExplainabilityService(risk_store, alert_store, clock=clock)

    risk_report = service.generate_report('risk-score', stored_score.id)
    assert risk_report.risk_score == 65

    alert_report = service.generate_report('alert', stored_alert.id)
    assert alert_report.alert_id == stored_alert.id
    assert "concerning disease trends" in alert_report.narrative


def test_generate_report_unknown_id_returns_none(risk_store, alert_store, clock):
    service = ExplainabilityService(risk_store, alert_store, clock=clock)
    assert service.generate_report('risk-score', 'missing') is None
    assert service.generate_report('alert', 'missing') is None


def test_generate_report_rejects_unknown_kind(risk_store, alert_store, clock):
    service = ExplainabilityService(risk_store, alert_store, clock=clock)
    with pytest.raises(PreconditionError):
        service.generate_report('forecast', 'abc')
    with pytest.raises(PreconditionError):
        service.generate_report('alert', ' ')

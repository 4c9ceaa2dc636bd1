import pytest

from analytics import AnalyticsService, NamedScenario, RiskLevel
from analytics.exceptions import PreconditionError
from analytics.models import AlertType, InterventionScenario


@pytest.fixture
def service(make_store, clock, risk_store, alert_store):
    store = make_store([
        ('dengue', 'Ward 5', 80, 1),
        ('dengue', 'Ward 5', 40, 10),
        *[('malaria', 'Ward 7', v, 8 - i) for i, v in enumerate([10, 12, 11, 13, 12, 14, 13])],
        ('malaria', 'Ward 7', 30, 0),
    ])
    return AnalyticsService(store, risk_store, alert_store, clock=clock)


def test_risk_score_round_trip_through_explainability(service, risk_store):
    results = service.compute_area_risk_scores('Ward 5', persist=True)
    assert len(risk_store) == 1

    report = service.explain('risk-score', results[0].id)
    assert report.risk_score == 65
    assert report.risk_level == RiskLevel.MEDIUM

    summary = service.get_aggregate_area_risk('Ward 5')
    assert summary.aggregate_risk_score == 65
    assert [t.disease for t in summary.top_threats] == ['dengue']


def test_anomaly_alert_is_stored_and_explained(service, alert_store):
    anomaly = service.check_anomaly('malaria', 'Ward 7', 60)
    assert anomaly.has_anomaly is True

    alert = service.generate_anomaly_alert(anomaly, save=True)
    assert len(alert_store) == 1
    assert alert_store.find_active('ward 7') == [alert]

    report = service.explain('alert', alert.id)
    assert report.trust_score == 100
    assert report.anomaly_details is not None


def test_normal_reading_produces_no_alert(service, alert_store):
    anomaly = service.check_anomaly('malaria', 'Ward 7', 13)
    assert service.generate_anomaly_alert(anomaly, save=True) is None
    assert len(alert_store) == 0


def test_generate_alert_with_area_context(service):
    alert = service.generate_alert('dengue', 'Ward 5', 'medium', risk_score=65, case_count=80, save=True)
    assert alert.id is not None
    assert alert.type == AlertType.RISK
    assert "Top Disease Threats: dengue" in alert.explanations


def test_forecast_operations(service):
    forecast = service.get_baseline_forecast('Ward 7', 'malaria', 5)
    assert forecast.status == "success"
    assert len(forecast.baseline_forecast) == 5

    scenario = service.simulate_scenario('Ward 7', 'malaria', InterventionScenario(environmental_control=True), 5)
    assert scenario.impact.cases_prevented > 0

    comparison = service.compare_scenarios('Ward 7', 'malaria', [
        NamedScenario(name="none"),
        NamedScenario(name="all", interventions=InterventionScenario(
            awareness_level=80, medical_intervention=True, environmental_control=True,
        )),
    ], 5)
    assert comparison.best_scenario == "all"


def test_overview(service):
    overview = service.get_overview()

    assert overview['today_total'] == 30
    high_risk = overview['high_risk_areas'].set_index('area')
    assert high_risk.loc['Ward 7', 'risk_level'] == 'medium'
    assert high_risk.loc['Ward 5', 'risk_level'] == 'low'
    assert overview['trending_diseases']['disease'].tolist()[0] == 'malaria'
    assert overview['week_over_week']['current_mean'] is not None


def test_facade_rejects_malformed_inputs(service):
    with pytest.raises(PreconditionError):
        service.generate_alert('dengue', 'Ward 5', 'bogus')
    with pytest.raises(PreconditionError):
        service.simulate_scenario('Ward 7', 'malaria', {'awareness_level': 'lots'})

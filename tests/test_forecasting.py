import numpy as np
import pytest

from analytics.exceptions import PreconditionError
from analytics.forecasting import (
    ForecastEngine,
    apply_intervention,
    calculate_forecast_confidence,
    calculate_intervention_factor,
    calculate_intervention_strength,
    exponential_smoothing,
    forecast_next_days,
)
from analytics.models import ForecastConfidence, InterventionScenario, NamedScenario, TrendDirection
from config.settings import ForecastConfig, Settings

SERIES = [10, 12, 11, 13, 12, 14, 13]


@pytest.fixture
def engine(daily_series_store, clock):
    return ForecastEngine(daily_series_store(SERIES), clock=clock)


def test_exponential_smoothing_final_state():
    result = exponential_smoothing(SERIES)
    assert result.level == pytest.approx(15.7519, abs=1e-4)
    assert result.trend == pytest.approx(1.0882, abs=1e-4)
    assert len(result.fitted) == len(SERIES)
    assert exponential_smoothing([]) is None


def test_single_point_has_zero_trend():
    result = exponential_smoothing([5])
    assert result.level == 5
    assert result.trend == 0


def test_forecast_is_floored_at_zero():
    assert forecast_next_days(3, -2, 3) == [1, 0, 0]


def test_forecast_confidence_thresholds():
    assert calculate_forecast_confidence(30) == ForecastConfidence.HIGH
    assert calculate_forecast_confidence(14) == ForecastConfidence.MEDIUM
    assert calculate_forecast_confidence(13) == ForecastConfidence.LOW


def test_baseline_forecast_end_to_end(engine):
    result = engine.get_baseline_forecast('Ward 5', 'dengue', 3)

    assert result.status == "success"
    assert result.baseline_forecast == [17, 18, 19]
    assert result.current_trend == TrendDirection.INCREASING
    assert result.trend_strength == 1.09
    assert result.historical_average == 12.14
    assert result.confidence == ForecastConfidence.LOW
    assert result.data_points == 7
    assert result.recommendations[0] == "Cases are increasing - immediate action recommended"
    assert len(result.recommendations) == 3


def test_baseline_forecast_is_deterministic(engine):
    first = engine.get_baseline_forecast('Ward 5', 'dengue', 7)
    second = engine.get_baseline_forecast('Ward 5', 'dengue', 7)
    assert first.model_dump() == second.model_dump()
    assert len(first.baseline_forecast) == 7


def test_single_day_is_insufficient(daily_series_store, clock):
    result = ForecastEngine(daily_series_store([25]), clock=clock).get_baseline_forecast('Ward 5', 'dengue')
    assert result.status == "insufficient_data"
    assert result.baseline_forecast == []
    assert result.data_points == 1


@pytest.mark.parametrize("days", [0, 30, -3, True, 7.5, "7"])
def test_forecast_days_out_of_range(engine, days):
    with pytest.raises(PreconditionError):
        engine.get_baseline_forecast('Ward 5', 'dengue', days)


def test_forecast_days_upper_bound_is_exclusive(engine):
    assert len(engine.get_baseline_forecast('Ward 5', 'dengue', 29).baseline_forecast) == 29


def test_intervention_factor_values():
    assert calculate_intervention_factor(InterventionScenario()) == 1.0
    assert calculate_intervention_factor(InterventionScenario(awareness_level=0)) == 1.0
    assert calculate_intervention_factor(InterventionScenario(medical_intervention=True)) == pytest.approx(0.7)
    everything = InterventionScenario(awareness_level=100, medical_intervention=True, environmental_control=True)
    assert calculate_intervention_factor(everything) == pytest.approx(0.75 * 0.7 * 0.75)


def test_intervention_factor_decreases_with_awareness():
    factors = [calculate_intervention_factor(InterventionScenario(awareness_level=a)) for a in (10, 40, 80, 100)]
    assert factors == sorted(factors, reverse=True)
    assert calculate_intervention_factor(InterventionScenario(awareness_level=250)) == pytest.approx(0.75)


def test_intervention_factor_respects_lower_bound():
    config = ForecastConfig(min_intervention_factor=0.5)
    everything = InterventionScenario(awareness_level=100, medical_intervention=True, environmental_control=True)
    assert calculate_intervention_factor(everything, config) == 0.5


def test_intervention_strength_labels():
    assert calculate_intervention_strength(InterventionScenario()) == "Minimal"
    assert calculate_intervention_strength(InterventionScenario(awareness_level=50)) == "Minimal"
    assert calculate_intervention_strength(InterventionScenario(awareness_level=51)) == "Moderate"
    assert calculate_intervention_strength(
        InterventionScenario(awareness_level=90, medical_intervention=True, environmental_control=True)
    ) == "Very Strong"


def test_apply_intervention_rounds_each_day():
    assert apply_intervention([17, 18, 19], 0.7) == [12, 13, 13]


def test_simulate_scenario_with_no_levers_matches_baseline(engine):
    result = engine.simulate_scenario('Ward 5', 'dengue', InterventionScenario(), 3)
    assert result.scenario.forecast == result.baseline.forecast == [17, 18, 19]
    assert result.impact.cases_prevented == 0
    assert result.impact.percent_reduction == 0.0
    assert result.impact.intervention_strength == "Minimal"


def test_simulate_scenario_medical_intervention(engine, now):
    result = engine.simulate_scenario('Ward 5', 'dengue', {'medical_intervention': True}, 3)
    assert result.status == "success"
    assert result.scenario.forecast == [12, 13, 13]
    assert result.scenario.factor == 0.7
    assert result.baseline.total == 54
    assert result.scenario.total == 38
    assert result.impact.cases_prevented == 16
    assert result.impact.percent_reduction == 29.6
    assert result.impact.intervention_strength == "Moderate"
    assert result.generated_at == now


def test_simulate_scenario_rejects_bad_interventions(engine):
    with pytest.raises(PreconditionError):
        engine.simulate_scenario('Ward 5', 'dengue', ["medical"], 3)


def test_simulate_without_history_reports_insufficient_data(daily_series_store, clock):
    engine = ForecastEngine(daily_series_store([4]), clock=clock)
    result = engine.simulate_scenario('Ward 5', 'dengue', InterventionScenario(medical_intervention=True))
    assert result.status == "insufficient_data"
    assert result.scenario is None
    assert result.impact is None


def test_compare_scenarios_picks_most_cases_prevented(engine):
    comparison = engine.compare_scenarios('Ward 5', 'dengue', [
        NamedScenario(name="Awareness drive", interventions=InterventionScenario(awareness_level=40)),
        {'interventions': {'medical_intervention': True}},
    ], 3)

    assert [s.name for s in comparison.scenarios] == ["Awareness drive", "Scenario 2"]
    assert comparison.scenarios[0].impact.cases_prevented == 6
    assert comparison.scenarios[1].impact.cases_prevented == 16
    assert comparison.best_scenario == "Scenario 2"


def test_compare_scenarios_tie_keeps_first(engine):
    medical = InterventionScenario(medical_intervention=True)
    comparison = engine.compare_scenarios('Ward 5', 'dengue', [
        NamedScenario(name="A", interventions=medical),
        NamedScenario(name="B", interventions=medical),
    ], 3)
    assert comparison.best_scenario == "A"


def test_compare_requires_scenarios(engine):
    with pytest.raises(PreconditionError):
        engine.compare_scenarios('Ward 5', 'dengue', [])


def test_compare_without_history_has_no_best(daily_series_store, clock):
    engine = ForecastEngine(daily_series_store([4]), clock=clock)
    comparison = engine.compare_scenarios('Ward 5', 'dengue', [NamedScenario(), NamedScenario()])
    assert comparison.best_scenario is None
    assert all(s.status == "insufficient_data" for s in comparison.scenarios)


def test_settings_override_smoothing(daily_series_store, clock):
    config = Settings(forecast=ForecastConfig(alpha=0.9, beta=0.1))
    engine = ForecastEngine(daily_series_store(SERIES), config, clock)
    result = engine.get_baseline_forecast('Ward 5', 'dengue', 3)
    assert result.baseline_forecast != [17, 18, 19]


def test_baseline_forecast_exposes_fitted_values(engine):
    result = engine.get_baseline_forecast('Ward 5', 'dengue', 3)
    assert len(result.fitted_values) == len(SERIES)
    assert result.fitted_values[0] == 12.0
    assert result.fitted_values[-1] == 16.84


def test_forecast_days_accepts_numpy_integers(engine):
    result = engine.get_baseline_forecast('Ward 5', 'dengue', np.int64(3))
    assert result.baseline_forecast == [17, 18, 19]
    assert type(result.forecast_days) is int


def test_forecast_days_defaults_to_configured_horizon(daily_series_store, clock):
    assert len(ForecastEngine(daily_series_store(SERIES), clock=clock)
               .get_baseline_forecast('Ward 5', 'dengue').baseline_forecast) == 7

    config = Settings(forecast=ForecastConfig(default_forecast_days=5))
    engine = ForecastEngine(daily_series_store(SERIES), config, clock)
    assert len(engine.get_baseline_forecast('Ward 5', 'dengue').baseline_forecast) == 5
    assert len(engine.simulate_scenario('Ward 5', 'dengue', InterventionScenario()).scenario.forecast) == 5


def test_invalid_intervention_values_raise_precondition_error(engine):
    with pytest.raises(PreconditionError, match="Invalid interventions"):
        engine.simulate_scenario('Ward 5', 'dengue', {'awareness_level': 'lots'}, 3)
    with pytest.raises(PreconditionError, match="Invalid scenario"):
        engine.compare_scenarios('Ward 5', 'dengue', [{'interventions': {'awareness_level': 'lots'}}], 3)

import math

import pytest

from bioreactor_opt.errors import CatalogError, ValidationError
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.engine import PredictionEngine
from bioreactor_opt.prediction.results import (
    AdvancedPrediction,
    Fidelity,
    IntermediatePrediction,
    OperationalStatus,
)

DEVICE = "stirred-tank-001"

NOMINAL = {
    "temperature": 30.0,
    "ph": 7.0,
    "flow_rate": 500.0,
    "mixing_speed": 200.0,
    "electrode_voltage": 100.0,
    "substrate_concentration": 3.0,
}


def _params(**changes) -> BioreactorParameters:
    return BioreactorParameters.from_mapping({**NOMINAL, **changes})


@pytest.fixture()
def engine(catalog, fake_clock):
    return PredictionEngine(catalog, clock=fake_clock, cache_ttl=60.0)


@pytest.mark.parametrize("fidelity", list(Fidelity))
def test_outputs_are_finite(engine, fidelity) -> None:
    for params in (
        _params(),
        _params(temperature=5.0, ph=3.0),
        _params(flow_rate=0.0, mixing_speed=0.0, electrode_voltage=0.0),
        _params(substrate_concentration=50.0, electrode_voltage=400.0),
    ):
        prediction = engine.predict_parameters(DEVICE, params, fidelity)
        assert math.isfinite(prediction.power_density)
        assert prediction.power_density >= 0.0
        assert math.isfinite(prediction.current_density)
        assert 0.0 <= prediction.efficiency <= 100.0
        assert 0.0 <= prediction.confidence <= 1.0


def test_nominal_conditions_are_optimal(engine) -> None:
    prediction = engine.predict_parameters(DEVICE, _params())
    assert prediction.operational_status is OperationalStatus.OPTIMAL
    assert prediction.warnings == ()


def test_out_of_range_temperature_warns(engine) -> None:
    prediction = engine.predict_parameters(DEVICE, _params(temperature=45.0))
    assert any(message.startswith("Temperature 45") for message in prediction.warnings)
    assert prediction.operational_status is OperationalStatus.WARNING


def test_confidence_never_rises_with_more_violations(engine) -> None:
    steps = [
        {},
        {"temperature": 50.0},
        {"temperature": 50.0, "ph": 10.0},
        {"temperature": 50.0, "ph": 10.0, "flow_rate": 50.0},
        {"temperature": 50.0, "ph": 10.0, "flow_rate": 50.0, "mixing_speed": 10.0},
    ]
    for fidelity in Fidelity:
        values = [
            engine.predict_parameters(DEVICE, _params(**changes), fidelity).confidence
            for changes in steps
        ]
        assert all(later <= earlier for earlier, later in zip(values, values[1:]))
        assert values[-1] < values[0]


def test_higher_fidelity_extends_lower_levels(engine) -> None:
    params = _params(temperature=33.0, substrate_concentration=2.0)
    basic = engine.predict_parameters(DEVICE, params, Fidelity.BASIC)
    intermediate = engine.predict_parameters(DEVICE, params, Fidelity.INTERMEDIATE)
    advanced = engine.predict_parameters(DEVICE, params, Fidelity.ADVANCED)

    assert isinstance(intermediate, IntermediatePrediction)
    assert isinstance(advanced, AdvancedPrediction)
    assert basic.fidelity is Fidelity.BASIC
    assert advanced.fidelity is Fidelity.ADVANCED

    basic_values = basic.shared_values()
    intermediate_values = intermediate.shared_values()
    advanced_values = advanced.shared_values()
    for name, value in basic_values.items():
        assert intermediate_values[name] == value
    for name, value in intermediate_values.items():
        assert advanced_values[name] == value


def test_cache_reuses_results_until_expiry(engine, fake_clock) -> None:
    params = _params()
    first = engine.predict_parameters(DEVICE, params, Fidelity.INTERMEDIATE)
    second = engine.predict_parameters(DEVICE, params, Fidelity.INTERMEDIATE)
    assert second is first
    assert len(engine.cache) == 1

    fake_clock.advance(61.0)
    third = engine.predict_parameters(DEVICE, params, Fidelity.INTERMEDIATE)
    assert third is not first
    assert third == first


def test_cache_keys_distinguish_fidelity_and_parameters(engine) -> None:
    engine.predict_parameters(DEVICE, _params(), Fidelity.BASIC)
    engine.predict_parameters(DEVICE, _params(), Fidelity.INTERMEDIATE)
    engine.predict_parameters(DEVICE, _params(ph=7.1), Fidelity.BASIC)
    assert len(engine.cache) == 3
    engine.clear_cache()
    assert len(engine.cache) == 0


def test_advanced_prediction_is_deterministic(catalog) -> None:
    params = _params(pressure=1.5, oxygen_level=3.0)
    first = PredictionEngine(catalog).predict_parameters(DEVICE, params, Fidelity.ADVANCED)
    second = PredictionEngine(catalog).predict_parameters(DEVICE, params, Fidelity.ADVANCED)
    assert first == second
    assert first.to_dict()["fidelity"] == "advanced"


def test_unknown_device_raises(engine) -> None:
    with pytest.raises(CatalogError):
        engine.predict_parameters("missing-device", _params())
    assert len(engine.cache) == 0


def test_unknown_fidelity_raises(engine) -> None:
    with pytest.raises(ValidationError):
        engine.predict_parameters(DEVICE, _params(), "extreme")

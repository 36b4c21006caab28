import numpy as np
import pytest

from bioreactor_opt.errors import ValidationError
from bioreactor_opt.parameters import (
    BioreactorParameters,
    Interval,
    ParameterSpace,
)

BASE = {
    "temperature": 30.0,
    "ph": 7.0,
    "flow_rate": 100.0,
    "mixing_speed": 150.0,
    "electrode_voltage": 100.0,
    "substrate_concentration": 2.5,
}


def test_from_mapping_accepts_flat_and_nested_extensions() -> None:
    flat = BioreactorParameters.from_mapping({**BASE, "pressure": 1.2})
    nested = BioreactorParameters.from_mapping({**BASE, "extensions": {"pressure": 1.2}})
    assert flat == nested
    assert flat.extensions.pressure == 1.2
    assert flat.to_dict() == {**BASE, "pressure": 1.2}


def test_from_mapping_reports_missing_and_non_numeric() -> None:
    partial = dict(BASE)
    partial.pop("ph")
    with pytest.raises(ValidationError) as exc:
        BioreactorParameters.from_mapping(partial)
    assert "ph" in str(exc.value)

    with pytest.raises(ValidationError):
        BioreactorParameters.from_mapping({**BASE, "temperature": "warm"})


def test_replace_updates_base_and_extension_fields() -> None:
    params = BioreactorParameters.from_mapping(BASE)
    updated = params.replace(temperature=35.0, salinity=4.0)
    assert updated.temperature == 35.0
    assert updated.get("salinity") == 4.0
    assert params.temperature == 30.0
    with pytest.raises(KeyError):
        params.replace(voltage=1.0)


def test_interval_parse_and_validation() -> None:
    assert Interval.parse([1, 3]) == Interval(1.0, 3.0)
    assert Interval.parse({"min": 2, "max": 4}).midpoint == 3.0
    assert Interval(2.0, 2.0).width == 0.0
    with pytest.raises(ValidationError):
        Interval(5.0, 1.0)
    with pytest.raises(ValidationError):
        Interval.parse("1..3")


def test_parameter_space_round_trip_and_clamp() -> None:
    space = ParameterSpace.from_intervals(
        {
            "temperature": Interval(20.0, 40.0),
            "ph": Interval(6.0, 8.0),
            "flow_rate": Interval(10.0, 200.0),
            "mixing_speed": Interval(0.0, 300.0),
            "electrode_voltage": Interval(0.0, 200.0),
            "substrate_concentration": Interval(0.1, 5.0),
            "pressure": Interval(1.0, 3.0),
        }
    )
    assert space.names[-1] == "pressure"

    params = BioreactorParameters.from_mapping({**BASE, "temperature": 55.0})
    vector = space.to_vector(params)
    # Missing extensions map to the interval midpoint.
    assert vector[-1] == pytest.approx(2.0)

    clamped = space.clamp(params)
    assert clamped.temperature == 40.0
    assert clamped.extensions.pressure == pytest.approx(2.0)

    rng = np.random.default_rng(0)
    for _ in range(20):
        sample = space.sample(rng)
        assert np.all(sample >= space.lows)
        assert np.all(sample <= space.highs)

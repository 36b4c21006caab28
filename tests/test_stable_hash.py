from bioreactor_opt.core import canonicalize, seed_from_hash, stable_hash
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.results import Fidelity, PredictionInput


def _params(**changes: float) -> BioreactorParameters:
    base = BioreactorParameters(
        temperature=30.0,
        ph=7.0,
        flow_rate=100.0,
        mixing_speed=150.0,
        electrode_voltage=100.0,
        substrate_concentration=2.5,
    )
    return base.replace(**changes) if changes else base


def test_hash_ignores_key_order() -> None:
    assert stable_hash({"a": 1, "b": [1, 2]}) == stable_hash({"b": [1, 2], "a": 1})
    assert list(canonicalize({"b": 1, "a": 2})) == ["a", "b"]


def test_prediction_keys_distinguish_inputs() -> None:
    basic = PredictionInput("embr-001", _params())
    same = PredictionInput("embr-001", _params())
    warmer = PredictionInput("embr-001", _params(temperature=31.0))
    advanced = PredictionInput("embr-001", _params(), Fidelity.ADVANCED)

    assert stable_hash(basic.cache_key()) == stable_hash(same.cache_key())
    assert stable_hash(basic.cache_key()) != stable_hash(warmer.cache_key())
    assert stable_hash(basic.cache_key()) != stable_hash(advanced.cache_key())
    assert set(basic.cache_key()) == {"device_id", "parameters", "fidelity"}


def test_seed_from_hash_is_deterministic_64_bit() -> None:
    seed = seed_from_hash({"device": "embr-001"})
    assert seed == seed_from_hash({"device": "embr-001"})
    assert 0 <= seed < 2**64

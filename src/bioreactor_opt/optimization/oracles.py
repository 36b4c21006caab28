"""Evaluation oracles: prediction-engine backed and analytic surrogate."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any, Optional, Union

from bioreactor_opt.catalog import BioreactorModel, load_catalog
from bioreactor_opt.errors import ConfigError, ValidationError
from bioreactor_opt.optimization.evaluation import Oracle, estimate_cost
from bioreactor_opt.optimization.problem import Evaluation
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.engine import PredictionEngine
from bioreactor_opt.prediction.results import Fidelity, IntermediatePrediction
from bioreactor_opt.registry import Registry, register_oracle, resolve_oracle_factory

logger = logging.getLogger(__name__)


class PredictionOracle:
    """Evaluate parameters for one catalog device through a :class:`PredictionEngine`."""

    def __init__(
        self,
        engine: PredictionEngine,
        device_id: str,
        fidelity: Union[Fidelity, str] = Fidelity.BASIC,
    ) -> None:
        self.engine = engine
        self.device_id = device_id
        self.fidelity = Fidelity.parse(fidelity)
        # Unknown ids raise CatalogError here.
        self.device: BioreactorModel = engine.catalog.get(device_id)

    def __call__(self, params: BioreactorParameters) -> Evaluation:
        prediction = self.engine.predict_parameters(self.device_id, params, self.fidelity)
        operating_cost = None
        if isinstance(prediction, IntermediatePrediction):
            operating_cost = prediction.economics.operating_cost
        return Evaluation(
            power=prediction.power_density,
            efficiency=prediction.efficiency,
            operating_cost=operating_cost,
        )

    def __repr__(self) -> str:
        return f"PredictionOracle(device_id={self.device_id!r}, fidelity={self.fidelity.value!r})"


SYSTEM_BASELINES: dict[str, tuple[float, float]] = {
    # system type: (base power, base efficiency %)
    "MFC": (25.0, 65.0),
    "MEC": (15.0, 85.0),
    "MDC": (20.0, 70.0),
    "MES": (18.0, 60.0),
}
MIN_SURROGATE_POWER = 0.1
EFFICIENCY_BOUNDS = (5.0, 95.0)


class SurrogateOracle:
    """Closed-form response surface for generic microbial electrochemical systems."""

    device: Optional[BioreactorModel] = None

    def __init__(self, system_type: str = "MFC") -> None:
        key = str(system_type).strip().upper()
        if key not in SYSTEM_BASELINES:
            options = ", ".join(SYSTEM_BASELINES)
            raise ValidationError(
                f"Unknown system type: {system_type!r}. Expected one of: {options}.",
                context={"system_type": system_type},
            )
        self.system_type = key

    def __call__(self, params: BioreactorParameters) -> Evaluation:
        base_power, base_efficiency = SYSTEM_BASELINES[self.system_type]
        temperature = 1.0 - abs(params.temperature - 30.0) / 50.0
        ph = 1.0 - abs(params.ph - 7.0) / 5.0
        flow = min(1.0, params.flow_rate / 50.0) * max(0.5, 1.0 - (params.flow_rate - 50.0) / 100.0)
        mixing = min(1.0, params.mixing_speed / 150.0) * max(
            0.6, 1.0 - (params.mixing_speed - 150.0) / 200.0
        )
        voltage = min(1.0, params.electrode_voltage / 100.0)
        substrate = min(1.0, params.substrate_concentration / 5.0) * max(
            0.5, 1.0 - (params.substrate_concentration - 5.0) / 10.0
        )

        power = base_power * temperature * ph * flow * voltage * substrate
        efficiency = base_efficiency * temperature * ph * flow * mixing * substrate
        low, high = EFFICIENCY_BOUNDS
        return Evaluation(
            power=max(MIN_SURROGATE_POWER, power),
            efficiency=min(high, max(low, efficiency)),
            cost=estimate_cost(params),
        )

    def __repr__(self) -> str:
        return f"SurrogateOracle(system_type={self.system_type!r})"


@register_oracle("prediction")
def _prediction_factory(
    cfg: Mapping[str, Any],
    *,
    engine: Optional[PredictionEngine] = None,
) -> PredictionOracle:
    prediction_cfg = cfg.get("prediction") or {}
    if engine is None:
        catalog_path = (cfg.get("catalog") or {}).get("path") or None
        engine = PredictionEngine(
            load_catalog(catalog_path),
            cache_ttl=float(prediction_cfg.get("cache_ttl", 300.0)),
        )
    device_id = prediction_cfg.get("device_id")
    if not device_id:
        raise ConfigError("prediction.device_id must be set.")
    try:
        fidelity = Fidelity.parse(prediction_cfg.get("fidelity", Fidelity.BASIC))
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    return PredictionOracle(engine, str(device_id), fidelity)


@register_oracle("surrogate")
def _surrogate_factory(
    cfg: Mapping[str, Any],
    *,
    engine: Optional[PredictionEngine] = None,
) -> SurrogateOracle:
    surrogate_cfg = cfg.get("surrogate") or {}
    return SurrogateOracle(surrogate_cfg.get("system_type", "MFC"))


def build_oracle(
    cfg: Mapping[str, Any],
    *,
    engine: Optional[PredictionEngine] = None,
    registry: Optional[Registry] = None,
) -> Oracle:
    """Build the oracle selected by ``use_surrogate`` (or an explicit ``oracle`` name)."""
    name = cfg.get("oracle") or ("surrogate" if cfg.get("use_surrogate") else "prediction")
    factory = resolve_oracle_factory(str(name), registry=registry)
    oracle = factory(cfg, engine=engine)
    logger.info("Using oracle %r.", oracle)
    return oracle


__all__ = [
    "PredictionOracle",
    "SYSTEM_BASELINES",
    "SurrogateOracle",
    "build_oracle",
]

"""Multi-fidelity prediction engine with a time-bounded result cache."""

from __future__ import annotations

from dataclasses import replace
import logging
import time
from typing import Optional, Union

import numpy as np

from bioreactor_opt.cache import DEFAULT_TTL_SECONDS, Clock, TTLCache
from bioreactor_opt.catalog import BioreactorCatalog, BioreactorModel, default_catalog
from bioreactor_opt.core import seed_from_hash, stable_hash
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction import advanced, physics
from bioreactor_opt.prediction.results import (
    AdvancedPrediction,
    BasicPrediction,
    BiofilmDynamics,
    EconomicsSummary,
    Fidelity,
    IntermediatePrediction,
    MassTransferSummary,
    PredictionInput,
    ThermalProfile,
)

logger = logging.getLogger(__name__)

AnyPrediction = Union[BasicPrediction, IntermediatePrediction, AdvancedPrediction]

OXYGEN_SATURATION = 8.0  # mg/L at 1 bar
DEFAULT_OXYGEN_LEVEL = 4.0
DEFAULT_OPERATING_COST = 0.02


def _thermal_profile(params: BioreactorParameters) -> ThermalProfile:
    average = params.temperature
    return ThermalProfile(
        average_temperature=average,
        hot_spots=(average + 2.0, average + 1.5, average + 3.0),
        cooling_rate=0.1 * (average - 25.0),
    )


def _mass_transfer(
    model: BioreactorModel,
    params: BioreactorParameters,
    current: float,
) -> MassTransferSummary:
    kla = model.mass_transfer.oxygen_transfer_coefficient or 10.0
    pressure = params.extensions.pressure
    saturation = OXYGEN_SATURATION * (pressure if pressure is not None else 1.0)
    oxygen = params.extensions.oxygen_level
    oxygen = DEFAULT_OXYGEN_LEVEL if oxygen is None else oxygen
    return MassTransferSummary(
        oxygen_transfer_rate=kla * (saturation - oxygen),
        substrate_utilization=params.substrate_concentration * 0.8 * (params.mixing_speed / 200.0),
        proton_flux=0.025 * current / physics.FARADAY,
    )


def _biofilm(model: BioreactorModel, params: BioreactorParameters) -> BiofilmDynamics:
    growth = physics.growth_factor(model, params)
    return BiofilmDynamics(
        thickness=model.microbial_system.biofilm.thickness * growth,
        viability=0.9 * growth,
        adhesion_strength=0.8 + 0.2 * min(max(params.mixing_speed, 0.0) / 100.0, 1.0),
    )


def _economics(
    model: BioreactorModel,
    params: BioreactorParameters,
    power: float,
) -> EconomicsSummary:
    base_cost = model.economics.operating_cost or DEFAULT_OPERATING_COST
    power_w = power / 1000.0
    return EconomicsSummary(
        operating_cost=base_cost / max(power_w, 0.1),
        maintenance_cost=5.0 + (params.mixing_speed / 100.0) * 2.0,
        efficiency=power_w / (base_cost * 1000.0),
    )


class PredictionEngine:
    """Estimate device performance at one of three escalating fidelity levels.

    Every level recomputes the levels below it, so shared fields agree
    exactly for the same input. Results are memoised by the stable hash of
    the full :class:`PredictionInput` for ``cache_ttl`` seconds.
    """

    def __init__(
        self,
        catalog: Optional[BioreactorCatalog] = None,
        *,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Clock = time.monotonic,
        cache: Optional[TTLCache[AnyPrediction]] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else default_catalog()
        self._cache: TTLCache[AnyPrediction] = cache or TTLCache(cache_ttl, clock=clock)

    @property
    def cache(self) -> TTLCache[AnyPrediction]:
        return self._cache

    def clear_cache(self) -> None:
        self._cache.clear()

    def predict(self, request: PredictionInput) -> AnyPrediction:
        # Resolve the device first so unknown ids fail before touching the cache.
        model = self.catalog.get(request.device_id)
        key = stable_hash(request.cache_key())
        result = self._cache.get_or_compute(key, lambda: self._compute(model, request))
        if result.reused:
            logger.debug("Prediction cache hit for %s (%s)", request.device_id, key)
        return result.value

    def predict_parameters(
        self,
        device_id: str,
        parameters: BioreactorParameters,
        fidelity: Union[Fidelity, str] = Fidelity.BASIC,
    ) -> AnyPrediction:
        return self.predict(
            PredictionInput(
                device_id=device_id,
                parameters=parameters,
                fidelity=Fidelity.parse(fidelity),
            )
        )

    def _compute(self, model: BioreactorModel, request: PredictionInput) -> AnyPrediction:
        started = time.perf_counter()
        if request.fidelity is Fidelity.BASIC:
            result: AnyPrediction = self._basic(model, request.parameters)
        elif request.fidelity is Fidelity.INTERMEDIATE:
            result = self._intermediate(model, request.parameters)
        elif request.fidelity is Fidelity.ADVANCED:
            rng = np.random.default_rng(seed_from_hash(request.cache_key()))
            result = self._advanced(model, request.parameters, rng)
        else:
            raise ValueError(f"Unhandled fidelity level: {request.fidelity!r}")
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.debug(
            "Computed %s prediction for %s in %.2f ms",
            request.fidelity.value,
            model.id,
            elapsed_ms,
        )
        return replace(result, execution_time_ms=elapsed_ms)

    def _basic(self, model: BioreactorModel, params: BioreactorParameters) -> BasicPrediction:
        power = physics.power_density(model, params)
        return BasicPrediction(
            power_density=power,
            current_density=physics.current_density(power, params),
            efficiency=physics.efficiency(model, params),
            operational_status=physics.operational_status(model, params),
            confidence=physics.confidence(model, params, Fidelity.BASIC),
            warnings=tuple(physics.warnings_for(model, params)),
            fidelity=Fidelity.BASIC,
            execution_time_ms=0.0,
        )

    def _intermediate(
        self,
        model: BioreactorModel,
        params: BioreactorParameters,
    ) -> IntermediatePrediction:
        basic = self._basic(model, params)
        shared = dict(vars(basic))
        shared.update(
            confidence=physics.confidence(model, params, Fidelity.INTERMEDIATE),
            fidelity=Fidelity.INTERMEDIATE,
        )
        return IntermediatePrediction(
            **shared,
            thermal_profile=_thermal_profile(params),
            mass_transfer=_mass_transfer(model, params, basic.current_density),
            biofilm=_biofilm(model, params),
            economics=_economics(model, params, basic.power_density),
        )

    def _advanced(
        self,
        model: BioreactorModel,
        params: BioreactorParameters,
        rng: np.random.Generator,
    ) -> AdvancedPrediction:
        intermediate = self._intermediate(model, params)
        shared = dict(vars(intermediate))
        shared.update(
            confidence=physics.confidence(model, params, Fidelity.ADVANCED),
            fidelity=Fidelity.ADVANCED,
        )
        return AdvancedPrediction(
            **shared,
            electrochemistry=advanced.electrochemistry(
                model, params, intermediate.current_density, rng
            ),
            fluid_dynamics=advanced.fluid_dynamics(model, params, rng),
            microbiology=advanced.microbiology(model, params, rng),
            advisory=advanced.advisory(model, params),
        )


__all__ = ["AnyPrediction", "PredictionEngine"]

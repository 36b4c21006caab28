"""Advanced-fidelity blocks: electrochemistry, fluid dynamics, microbiology, advisory."""

from __future__ import annotations

import itertools
import math
from typing import Callable

import numpy as np

from bioreactor_opt.catalog import BioreactorModel
from bioreactor_opt.parameters import BASE_FIELDS, BioreactorParameters
from bioreactor_opt.prediction import physics
from bioreactor_opt.prediction.physics import EPSILON, FARADAY, GAS_CONSTANT, KELVIN_OFFSET
from bioreactor_opt.prediction.results import (
    Advisory,
    Electrochemistry,
    ElectrodeKinetics,
    FluidDynamics,
    LimitingFactors,
    Microbiology,
    OperatingEnvelope,
    Overpotentials,
    Recommendation,
    SensitivityRanking,
)

DISTRIBUTION_POINTS = 10
VELOCITY_GRID = 8
RTD_POINTS = 20
VIABILITY_POINTS = 10
ELECTRONS_PER_SUBSTRATE = 4
ACTIVATION_LIMIT = 0.2  # V
MASS_TRANSFER_LIMIT = 0.8  # fraction of limiting current
SENSITIVITY_STEP = 0.01

INTERACTION_PAIRS = (
    ("temperature", "ph"),
    ("temperature", "substrate_concentration"),
    ("ph", "electrode_voltage"),
)
CRITICAL_LIMITS: dict[str, tuple[float, float]] = {
    "temperature": (10.0, 50.0),
    "ph": (4.0, 10.0),
    "substrate_concentration": (0.1, 10.0),
}
SUBSTRATE_VIABLE = (0.5, 5.0)
SUBSTRATE_OPTIMAL = (1.0, 3.0)


def _thermal_voltage(temperature: float) -> float:
    return GAS_CONSTANT * max(temperature + KELVIN_OFFSET, EPSILON) / FARADAY


# -- electrochemistry --------------------------------------------------------------


def limiting_current_density(model: BioreactorModel, params: BioreactorParameters) -> float:
    kla = model.mass_transfer.oxygen_transfer_coefficient or 10.0
    substrate = max(params.substrate_concentration, 0.0)
    max_flux = 0.1 * kla * substrate / (physics.MONOD_KS + substrate)
    return max_flux * ELECTRONS_PER_SUBSTRATE * FARADAY / 1000.0


def _current_distribution(
    model: BioreactorModel,
    average: float,
    rng: np.random.Generator,
) -> tuple[float, ...]:
    if model.electrodes.configuration == "single":
        # Edge effects for a single electrode pair.
        values = []
        for index in range(DISTRIBUTION_POINTS):
            position = index / (DISTRIBUTION_POINTS - 1)
            edge = min(1.2 * (1.0 - position), 1.2 * position, 0.9)
            values.append(average * (0.8 + 0.4 * edge))
        return tuple(values)
    noise = rng.random(DISTRIBUTION_POINTS)
    return tuple(float(average * (0.9 + 0.2 * u)) for u in noise)


def electrochemistry(
    model: BioreactorModel,
    params: BioreactorParameters,
    current: float,
    rng: np.random.Generator,
) -> Electrochemistry:
    props = physics.material_properties(model)
    exchange = props.exchange_current_density * physics.biofilm_factor(model, params)
    slope = physics.tafel_slope(model.anode_material)
    if current > EPSILON and exchange > EPSILON:
        activation = slope * math.log(current / exchange)
    else:
        activation = 0.0

    thermal_voltage = _thermal_voltage(params.temperature)
    limiting = limiting_current_density(model, params)
    if limiting > EPSILON:
        ratio = min(current / limiting, 1.0 - 1e-9)
    else:
        ratio = 1.0 - 1e-9
    concentration = thermal_voltage * math.log(1.0 - ratio)

    ohmic = current * physics.electrolyte_resistance(model, params)
    membrane = 0.0
    if model.is_type("Membrane"):
        membrane = thermal_voltage * (params.ph - 7.0) * math.log(10.0)

    overpotentials = Overpotentials(
        activation=abs(activation),
        concentration=abs(concentration),
        ohmic=abs(ohmic),
        membrane=abs(membrane),
    )
    return Electrochemistry(
        overpotentials=overpotentials,
        current_distribution=_current_distribution(model, current, rng),
        electrode_kinetics=ElectrodeKinetics(
            exchange_current_density=exchange,
            tafel_slope=slope,
            transfer_coefficient=props.transfer_coefficient,
            surface_roughness_factor=props.roughness,
        ),
        limiting_factors=LimitingFactors(
            mass_transfer_limited=current > MASS_TRANSFER_LIMIT * limiting,
            activation_limited=overpotentials.activation > ACTIVATION_LIMIT,
            ohmic_limited=overpotentials.ohmic > overpotentials.activation,
        ),
        limiting_current_density=limiting,
    )


# -- fluid dynamics ----------------------------------------------------------------


def _velocity_field(
    model: BioreactorModel,
    params: BioreactorParameters,
    rng: np.random.Generator,
) -> tuple[tuple[float, ...], ...]:
    size = VELOCITY_GRID
    center = size / 2.0
    if model.is_type("Stirred Tank"):
        ii, jj = np.meshgrid(np.arange(size), np.arange(size), indexing="ij")
        radius = np.sqrt((ii - center) ** 2 + (jj - center) ** 2)
        grid = params.mixing_speed * 0.01 * np.maximum(0.0, 1.0 - radius / center)
    elif model.is_type("Airlift"):
        # Upflow in the riser half, downflow in the downcomer half.
        direction = np.where(np.arange(size) < center, 1.0, -1.0)
        grid = params.flow_rate * 0.001 * direction[np.newaxis, :] * (
            0.8 + 0.4 * rng.random((size, size))
        )
    else:
        grid = params.flow_rate * 0.001 * (0.5 + 0.5 * rng.random((size, size)))
    return tuple(tuple(float(v) for v in row) for row in grid)


def turbulence_intensity(
    model: BioreactorModel,
    params: BioreactorParameters,
    reynolds: float,
) -> float:
    if model.is_type("Stirred Tank"):
        power_number = 6.0 if reynolds > 10000 else 12.0
        return min(power_number * (max(params.mixing_speed, 0.0) / 200.0) ** 0.75 / 100.0, 1.0)
    if model.is_type("Airlift"):
        return min(0.1 * (max(reynolds, 0.0) / 10000.0) ** 0.5, 0.8)
    return min((max(reynolds, 0.0) / 2300.0) ** 0.25 * 0.16, 1.0)


def mixing_efficiency(
    model: BioreactorModel,
    params: BioreactorParameters,
    reynolds: float,
) -> float:
    base = 0.5
    if model.is_type("Stirred Tank"):
        rotation_hz = params.mixing_speed / 60.0
        if rotation_hz <= EPSILON:
            return base
        mixing_time = 5.3 * model.geometry.volume**0.33 / rotation_hz**0.67
        return min(base + 0.4 * math.exp(-mixing_time / 30.0), 0.95)
    if model.is_type("Airlift"):
        height = model.geometry.dimensions.get("height") or 2.0
        circulation_time = height / max(params.flow_rate * 0.01, EPSILON)
        return min(base + 0.3 * math.exp(-circulation_time / 60.0), 0.9)
    value = base + 0.25 * math.log(max(reynolds, EPSILON) / 1000.0)
    return min(max(value, 0.0), 0.85)


def dead_zone_fraction(turbulence: float) -> float:
    return max(0.15 * (1.0 - min(turbulence * 2.0, 1.0)), 0.02)


def residence_time_distribution(
    model: BioreactorModel,
    params: BioreactorParameters,
    mixing: float,
) -> tuple[float, ...]:
    """Tanks-in-series E(t) sampled at 20 points over two mean residence times."""
    mean_residence_h = model.geometry.volume / max(params.flow_rate, EPSILON)
    tanks = max(int(round(mixing * 10)), 1)
    values = []
    for index in range(RTD_POINTS):
        time_h = index * mean_residence_h / 10.0
        theta = time_h / mean_residence_h * tanks
        values.append(theta ** (tanks - 1) * math.exp(-theta) / math.factorial(tanks - 1))
    return tuple(values)


def fluid_dynamics(
    model: BioreactorModel,
    params: BioreactorParameters,
    rng: np.random.Generator,
) -> FluidDynamics:
    reynolds = physics.reynolds_number(model, params)
    sherwood = physics.sherwood_number(reynolds, physics.schmidt_number())
    turbulence = turbulence_intensity(model, params, reynolds)
    mixing = mixing_efficiency(model, params, reynolds)
    length = max(model.geometry.volume, EPSILON) ** (1.0 / 3.0)
    return FluidDynamics(
        velocity_field=_velocity_field(model, params, rng),
        turbulence_intensity=turbulence,
        mixing_efficiency=mixing,
        dead_zones=dead_zone_fraction(turbulence),
        reynolds_number=reynolds,
        sherwood_number=sherwood,
        mass_transfer_coefficient=sherwood * physics.SUBSTRATE_DIFFUSIVITY / length,
        residence_time_distribution=residence_time_distribution(model, params, mixing),
    )


# -- microbiology ------------------------------------------------------------------


def microbiology(
    model: BioreactorModel,
    params: BioreactorParameters,
    rng: np.random.Generator,
) -> Microbiology:
    optimal = model.operating.temperature.optimal
    temp_factor = math.exp(-((params.temperature - optimal) ** 2) / 200.0)
    species = model.microbial_system.primary_species
    distribution: dict[str, float] = {}
    if species:
        raw = 1.0 / len(species) + (rng.random(len(species)) - 0.5) * 0.2
        raw = np.clip(raw, EPSILON, None)
        normalized = raw / raw.sum()
        distribution = {name: float(share) for name, share in zip(species, normalized)}
    viability = 0.7 + 0.3 * temp_factor * rng.random(VIABILITY_POINTS)
    return Microbiology(
        growth_rate=0.1 * temp_factor * physics.ph_factor(model, params.ph),
        metabolic_activity=0.8 * temp_factor,
        species_distribution=distribution,
        viability_profile=tuple(float(v) for v in viability),
    )


# -- advisory ----------------------------------------------------------------------


def _improvement(
    power: Callable[[BioreactorParameters], float],
    params: BioreactorParameters,
    name: str,
    value: float,
) -> float:
    current = power(params)
    candidate = power(params.replace(**{name: value}))
    return max((candidate - current) / max(current, EPSILON) * 100.0, 0.0)


def recommendations(model: BioreactorModel, params: BioreactorParameters) -> tuple[Recommendation, ...]:
    def _power(candidate: BioreactorParameters) -> float:
        return physics.power_density(model, candidate)

    operating = model.operating
    results: list[Recommendation] = []

    def _add(name: str, target: float, confidence: float, reason: str) -> None:
        results.append(
            Recommendation(
                parameter=name,
                current_value=params.get(name),
                recommended_value=target,
                expected_improvement=_improvement(_power, params, name, target),
                confidence=confidence,
                reason=reason,
            )
        )

    temp = operating.temperature
    temp_tol = temp.tolerance if temp.tolerance is not None else physics.DEFAULT_TEMPERATURE_TOLERANCE
    if abs(params.temperature - temp.optimal) > temp_tol:
        _add(
            "temperature",
            temp.optimal,
            0.9,
            "Moving closer to optimal temperature will improve microbial activity",
        )
    ph = operating.ph
    ph_tol = ph.tolerance if ph.tolerance is not None else physics.DEFAULT_PH_TOLERANCE
    if abs(params.ph - ph.optimal) > ph_tol:
        _add("ph", ph.optimal, 0.85, "Optimal pH range improves electron transfer efficiency")

    ranges = physics.declared_ranges(model)
    if "flow_rate" in ranges and operating.flow_rate is not None:
        low, high = ranges["flow_rate"]
        if not low <= params.flow_rate <= high:
            _add(
                "flow_rate",
                operating.flow_rate.value,
                0.75,
                "Nominal flow rate balances substrate supply against biofilm washout",
            )
    if "mixing_speed" in ranges and operating.mixing_speed is not None:
        low, high = ranges["mixing_speed"]
        if not low <= params.mixing_speed <= high:
            _add(
                "mixing_speed",
                operating.mixing_speed.optimal,
                0.7,
                "Mixing within the design window limits shear on the biofilm",
            )
    if "substrate_concentration" in ranges and operating.substrate_concentration is not None:
        low, high = ranges["substrate_concentration"]
        if not low <= params.substrate_concentration <= high:
            _add(
                "substrate_concentration",
                operating.substrate_concentration.optimal,
                0.7,
                "Substrate near the design optimum avoids limitation and inhibition",
            )
    return tuple(results)


def _step(value: float) -> float:
    return abs(value) * SENSITIVITY_STEP if abs(value) > EPSILON else 1e-3


def sensitivity_ranking(model: BioreactorModel, params: BioreactorParameters) -> SensitivityRanking:
    """Power elasticities (dlnP/dlnx) by central differences, plus pairwise cross terms."""

    def _power(candidate: BioreactorParameters) -> float:
        return physics.power_density(model, candidate)

    base = _power(params)
    scale = max(base, EPSILON)
    sensitivities: dict[str, float] = {}
    for name in BASE_FIELDS:
        value = params.get(name)
        h = _step(value)
        upper = _power(params.replace(**{name: value + h}))
        lower = _power(params.replace(**{name: value - h}))
        derivative = (upper - lower) / (2.0 * h)
        sensitivities[name] = abs(derivative * value / scale) if abs(value) > EPSILON else abs(derivative / scale)

    interactions: dict[str, float] = {}
    for first, second in INTERACTION_PAIRS:
        x, y = params.get(first), params.get(second)
        hx, hy = _step(x), _step(y)
        corners = [
            _power(params.replace(**{first: x + sx * hx, second: y + sy * hy}))
            for sx, sy in itertools.product((1.0, -1.0), repeat=2)
        ]
        mixed = (corners[0] - corners[1] - corners[2] + corners[3]) / (4.0 * hx * hy)
        interactions[f"{first}-{second}"] = abs(mixed * max(abs(x), EPSILON) * max(abs(y), EPSILON) / scale)

    most_influential = max(sensitivities, key=sensitivities.__getitem__)
    return SensitivityRanking(
        most_influential=most_influential,
        parameter_sensitivities=sensitivities,
        interaction_effects=interactions,
    )


def operating_envelope(model: BioreactorModel) -> OperatingEnvelope:
    operating = model.operating
    temp, ph = operating.temperature, operating.ph
    temp_tol = temp.tolerance if temp.tolerance is not None else physics.DEFAULT_TEMPERATURE_TOLERANCE
    ph_tol = ph.tolerance if ph.tolerance is not None else physics.DEFAULT_PH_TOLERANCE
    viable = {
        "temperature": tuple(temp.range),
        "ph": tuple(ph.range),
        "substrate_concentration": SUBSTRATE_VIABLE,
    }
    if operating.flow_rate is not None:
        viable["flow_rate"] = tuple(operating.flow_rate.range)
    return OperatingEnvelope(
        viable_ranges=viable,
        optimal_zone={
            "temperature": (temp.optimal - temp_tol, temp.optimal + temp_tol),
            "ph": (ph.optimal - ph_tol, ph.optimal + ph_tol),
            "substrate_concentration": SUBSTRATE_OPTIMAL,
        },
        critical_limits=dict(CRITICAL_LIMITS),
    )


def advisory(model: BioreactorModel, params: BioreactorParameters) -> Advisory:
    return Advisory(
        recommendations=recommendations(model, params),
        sensitivity=sensitivity_ranking(model, params),
        operating_envelope=operating_envelope(model),
    )


__all__ = [
    "advisory",
    "dead_zone_fraction",
    "electrochemistry",
    "fluid_dynamics",
    "limiting_current_density",
    "microbiology",
    "mixing_efficiency",
    "operating_envelope",
    "recommendations",
    "residence_time_distribution",
    "sensitivity_ranking",
    "turbulence_intensity",
]

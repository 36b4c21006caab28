"""Physical and biological correlations shared by every fidelity level.

All functions are pure: they read catalog constants from a
:class:`~bioreactor_opt.catalog.BioreactorModel` and operating values from
:class:`~bioreactor_opt.parameters.BioreactorParameters`. Denominators that can
approach zero for in-box inputs are guarded with ``EPSILON`` so every result
stays finite.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from bioreactor_opt.catalog import BioreactorModel, OperatingWindow
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.results import Fidelity, OperationalStatus

EPSILON = 1e-12

GAS_CONSTANT = 8.314  # J/(mol K)
FARADAY = 96485.0  # C/mol
KELVIN_OFFSET = 273.15
ACTIVATION_ENERGY = 50000.0  # J/mol
BUFFER_CAPACITY = 0.1  # mol/(L pH)
MONOD_KS = 0.5  # g/L
MONOD_KI = 10.0  # g/L
WATER_VISCOSITY = 0.001  # Pa s
WATER_DENSITY = 1000.0  # kg/m^3
SUBSTRATE_DIFFUSIVITY = 1e-9  # m^2/s
BASE_CELL_VOLTAGE = 0.3  # V
BASE_RESISTANCE = 0.1  # Ohm m^2

DEFAULT_TEMPERATURE_TOLERANCE = 2.0
DEFAULT_PH_TOLERANCE = 0.5
DEFAULT_EFFICIENCY = 60.0


@dataclass(frozen=True)
class MaterialProperties:
    exchange_current_density: float  # A/m^2
    transfer_coefficient: float
    roughness: float


MATERIAL_PROPERTIES: dict[str, MaterialProperties] = {
    "carbon cloth": MaterialProperties(0.01, 0.5, 15.0),
    "carbon felt": MaterialProperties(0.008, 0.5, 12.0),
    "graphite": MaterialProperties(0.005, 0.5, 2.0),
    "graphene": MaterialProperties(0.1, 0.6, 25.0),
    "graphene oxide": MaterialProperties(0.05, 0.55, 20.0),
    "carbon nanotubes": MaterialProperties(0.08, 0.6, 30.0),
    "carbon brush": MaterialProperties(0.02, 0.5, 40.0),
    "platinum": MaterialProperties(0.2, 0.7, 1.0),
    "stainless steel": MaterialProperties(0.001, 0.4, 1.5),
}

# mV/decade; first key contained in the material name wins.
TAFEL_SLOPES: dict[str, float] = {
    "carbon": 120.0,
    "graphene": 90.0,
    "graphite": 110.0,
    "platinum": 70.0,
    "stainless steel": 140.0,
}

SCALE_FACTORS: dict[str, float] = {"laboratory": 1.1, "pilot": 1.0, "industrial": 0.9}
CONFIGURATION_FACTORS: dict[str, float] = {"multiple": 1.1, "interdigitate": 1.2}
CONFIDENCE_TIERS: dict[str, float] = {"high": 0.9, "medium": 0.7, "low": 0.5}
FIDELITY_BONUS: dict[Fidelity, float] = {
    Fidelity.BASIC: 1.0,
    Fidelity.INTERMEDIATE: 1.05,
    Fidelity.ADVANCED: 1.1,
}
OUT_OF_RANGE_PENALTY = 0.8


def _gaussian(deviation: float, width: float) -> float:
    width = max(abs(width), EPSILON)
    return math.exp(-(deviation**2) / (2.0 * width**2))


def _in_range(value: float, window: tuple[float, float]) -> bool:
    return window[0] <= value <= window[1]


def _tolerance(window: OperatingWindow, default: float) -> float:
    return window.tolerance if window.tolerance is not None else default


# -- condition factors -------------------------------------------------------


def arrhenius_factor(model: BioreactorModel, temperature: float) -> float:
    """Rate ratio relative to the catalog optimum (Ea = 50 kJ/mol)."""
    temp_k = max(temperature + KELVIN_OFFSET, EPSILON)
    optimal_k = model.operating.temperature.optimal + KELVIN_OFFSET
    exponent = -(ACTIVATION_ENERGY / GAS_CONSTANT) * (1.0 / temp_k - 1.0 / optimal_k)
    return math.exp(min(exponent, 50.0))


def buffered_ph_factor(model: BioreactorModel, ph: float) -> float:
    deviation = ph - model.operating.ph.optimal
    return math.exp(-(deviation**2) / (2.0 * BUFFER_CAPACITY))


def substrate_factor(concentration: float) -> float:
    """Monod uptake with substrate inhibition."""
    s = max(concentration, 0.0)
    return (s / (MONOD_KS + s)) * (MONOD_KI / (MONOD_KI + s))


def temperature_factor(model: BioreactorModel, temperature: float) -> float:
    window = model.operating.temperature
    return _gaussian(temperature - window.optimal, _tolerance(window, DEFAULT_TEMPERATURE_TOLERANCE))


def ph_factor(model: BioreactorModel, ph: float) -> float:
    window = model.operating.ph
    return _gaussian(ph - window.optimal, _tolerance(window, DEFAULT_PH_TOLERANCE))


def growth_factor(model: BioreactorModel, params: BioreactorParameters) -> float:
    return temperature_factor(model, params.temperature) * ph_factor(model, params.ph)


# -- electrode -----------------------------------------------------------------


def material_properties(model: BioreactorModel) -> MaterialProperties:
    return MATERIAL_PROPERTIES.get(
        model.anode_material.lower(), MATERIAL_PROPERTIES["carbon cloth"]
    )


def tafel_slope(material: str) -> float:
    """Tafel slope in V/decade."""
    name = material.lower()
    for key, slope in TAFEL_SLOPES.items():
        if key in name:
            return slope / 1000.0
    return TAFEL_SLOPES["carbon"] / 1000.0


def biofilm_factor(model: BioreactorModel, params: BioreactorParameters) -> float:
    biofilm = model.microbial_system.biofilm
    thickness = min(biofilm.thickness / 50.0, 2.0)
    return thickness * growth_factor(model, params) * (biofilm.density / 1e9) * 0.1


def electrode_kinetics_factor(model: BioreactorModel, params: BioreactorParameters) -> float:
    props = material_properties(model)
    return props.exchange_current_density * biofilm_factor(model, params) * props.roughness / 10.0


# -- transport -------------------------------------------------------------------


def reynolds_number(model: BioreactorModel, params: BioreactorParameters) -> float:
    dimensions = model.geometry.dimensions
    flow = max(params.flow_rate, 0.0)
    if model.is_type("Stirred Tank"):
        diameter = dimensions.get("diameter")
        impeller = diameter * 0.33 if diameter else 0.5
        rotation_hz = max(params.mixing_speed, 0.0) / 60.0
        return WATER_DENSITY * rotation_hz * impeller**2 / WATER_VISCOSITY
    if model.is_type("Airlift"):
        length = dimensions.get("diameter") or 1.0
    else:
        sa_to_v = model.geometry.surface_area_to_volume or 10.0
        length = 4.0 * model.geometry.volume / sa_to_v
    length = max(length, EPSILON)
    velocity = flow / (3600.0 * math.pi * (length / 2.0) ** 2)
    return WATER_DENSITY * velocity * length / WATER_VISCOSITY


def schmidt_number() -> float:
    return WATER_VISCOSITY / (WATER_DENSITY * SUBSTRATE_DIFFUSIVITY)


def sherwood_number(reynolds: float, schmidt: float) -> float:
    return 0.023 * max(reynolds, 0.0) ** 0.8 * max(schmidt, 0.0) ** 0.33


def mass_transfer_factor(model: BioreactorModel, params: BioreactorParameters) -> float:
    sherwood = sherwood_number(reynolds_number(model, params), schmidt_number())
    return min(sherwood / 100.0, 2.0)


def electrolyte_resistance(model: BioreactorModel, params: BioreactorParameters) -> float:
    """Ohm m^2; conductivity rises away from neutral pH and with temperature."""
    conductivity = 1.0 + 0.1 * abs(params.ph - 7.0)
    thermal = max(1.0 + 0.02 * (params.temperature - 25.0), EPSILON)
    geometry = model.electrodes.spacing / 10.0 if model.electrodes.spacing else 1.0
    return BASE_RESISTANCE / (conductivity * thermal) * geometry


def ohmic_factor(model: BioreactorModel, params: BioreactorParameters) -> float:
    return 1.0 / (1.0 + electrolyte_resistance(model, params) * 100.0)


# -- device specific ---------------------------------------------------------------


def system_multiplier(model: BioreactorModel, params: BioreactorParameters) -> float:
    multiplier = 1.0
    operating = model.operating

    if model.is_type("Membrane"):
        multiplier *= 1.15
        multiplier *= 1.0 + 0.05 * abs(params.ph - 7.0)

    if model.is_type("Stirred Tank"):
        optimal = operating.mixing_speed.optimal if operating.mixing_speed else 0.0
        optimal = optimal or 200.0
        closeness = 1.0 - abs(params.mixing_speed - optimal) / optimal
        multiplier *= 0.8 + 0.4 * max(closeness, 0.0)

    if model.is_type("Photobioreactor"):
        multiplier *= math.exp(-abs(params.temperature - 25.0) / 15.0)
        light = min(max(params.mixing_speed, 0.0) / 100.0, 1.0)
        multiplier *= 0.6 + 0.4 * light

    if model.is_type("Airlift"):
        optimal_flow = operating.flow_rate.value if operating.flow_rate else 0.0
        optimal_flow = optimal_flow or 150.0
        flow_factor = _gaussian(params.flow_rate - optimal_flow, optimal_flow * 0.4)
        multiplier *= 0.7 + 0.5 * flow_factor

    if model.is_type("Fractal"):
        sa_to_v = model.geometry.surface_area_to_volume or 10.0
        multiplier *= min(1.0 + sa_to_v / 50.0, 2.0)
        multiplier *= 0.95

    multiplier *= SCALE_FACTORS.get(model.geometry.scale, 1.0)
    multiplier *= CONFIGURATION_FACTORS.get(model.electrodes.configuration, 1.0)
    return max(multiplier, 0.1)


# -- basic outputs -----------------------------------------------------------------


def power_density(model: BioreactorModel, params: BioreactorParameters) -> float:
    """Power density in mW/m^2."""
    value = (
        model.performance.power_density.value
        * arrhenius_factor(model, params.temperature)
        * buffered_ph_factor(model, params.ph)
        * substrate_factor(params.substrate_concentration)
        * electrode_kinetics_factor(model, params)
        * mass_transfer_factor(model, params)
        * ohmic_factor(model, params)
        * system_multiplier(model, params)
    )
    return max(value, 0.0)


def cell_voltage(params: BioreactorParameters) -> float:
    return max(BASE_CELL_VOLTAGE + params.electrode_voltage / 1000.0, EPSILON)


def current_density(power: float, params: BioreactorParameters) -> float:
    """Current density in mA/m^2 for a given power density."""
    return power / cell_voltage(params)


def efficiency(model: BioreactorModel, params: BioreactorParameters) -> float:
    base = model.performance.efficiency.overall or DEFAULT_EFFICIENCY
    mixing = min(max(params.mixing_speed, 0.0) / 200.0, 1.0)
    value = base * temperature_factor(model, params.temperature) * ph_factor(model, params.ph) * mixing
    return min(max(value, 0.0), 100.0)


def operational_status(model: BioreactorModel, params: BioreactorParameters) -> OperationalStatus:
    temp = model.operating.temperature
    ph = model.operating.ph
    temp_in_range = _in_range(params.temperature, temp.range)
    ph_in_range = _in_range(params.ph, ph.range)
    temp_optimal = abs(params.temperature - temp.optimal) <= _tolerance(temp, DEFAULT_TEMPERATURE_TOLERANCE)
    ph_optimal = abs(params.ph - ph.optimal) <= _tolerance(ph, DEFAULT_PH_TOLERANCE)
    if temp_optimal and ph_optimal:
        return OperationalStatus.OPTIMAL
    if temp_in_range and ph_in_range:
        return OperationalStatus.GOOD
    if temp_in_range or ph_in_range:
        return OperationalStatus.WARNING
    return OperationalStatus.CRITICAL


def declared_ranges(model: BioreactorModel) -> dict[str, tuple[float, float]]:
    """Catalog ranges that confidence is judged against; degenerate ranges are skipped."""
    operating = model.operating
    ranges = {
        "temperature": operating.temperature.range,
        "ph": operating.ph.range,
    }
    optional = {
        "flow_rate": operating.flow_rate,
        "mixing_speed": operating.mixing_speed,
        "substrate_concentration": operating.substrate_concentration,
    }
    for name, window in optional.items():
        if window is not None and window.range[0] < window.range[1]:
            ranges[name] = window.range
    return ranges


def out_of_range_parameters(model: BioreactorModel, params: BioreactorParameters) -> list[str]:
    return [
        name
        for name, window in declared_ranges(model).items()
        if not _in_range(params.get(name), window)
    ]


def confidence(
    model: BioreactorModel,
    params: BioreactorParameters,
    fidelity: Fidelity,
) -> float:
    value = CONFIDENCE_TIERS[model.performance.power_density.confidence]
    value *= OUT_OF_RANGE_PENALTY ** len(out_of_range_parameters(model, params))
    return min(value * FIDELITY_BONUS[fidelity], 1.0)


def _fmt(value: float) -> str:
    return f"{value:g}"


def warnings_for(model: BioreactorModel, params: BioreactorParameters) -> list[str]:
    messages: list[str] = []
    operating = model.operating

    low, high = operating.temperature.range
    if not _in_range(params.temperature, (low, high)):
        effect = (
            "reduced microbial activity"
            if params.temperature < low
            else "enzyme denaturation and cell death"
        )
        messages.append(
            f"Temperature {_fmt(params.temperature)}°C outside range "
            f"{_fmt(low)}-{_fmt(high)}°C: {effect}"
        )

    low, high = operating.ph.range
    if not _in_range(params.ph, (low, high)):
        effect = (
            "acid stress on microorganisms"
            if params.ph < low
            else "alkaline stress affecting enzyme function"
        )
        messages.append(f"pH {_fmt(params.ph)} outside range {_fmt(low)}-{_fmt(high)}: {effect}")

    if params.electrode_voltage > 200:
        messages.append(
            "Very high electrode voltage (>200mV) may cause water electrolysis and electrode corrosion"
        )
    elif params.electrode_voltage > 150:
        messages.append("High electrode voltage may accelerate electrode degradation")
    if params.electrode_voltage < 10:
        messages.append("Low electrode voltage may be insufficient for efficient electron transfer")

    if params.substrate_concentration > 5.0:
        messages.append(
            "High substrate concentration may cause substrate inhibition and reduced efficiency"
        )
    elif params.substrate_concentration < 0.1:
        messages.append("Low substrate concentration may limit microbial growth and power output")

    flow_low, flow_high = operating.flow_rate.range if operating.flow_rate else (0.0, 1000.0)
    if params.flow_rate > flow_high:
        messages.append("High flow rate may cause biofilm washout and reduced performance")
    elif params.flow_rate < flow_low:
        messages.append("Low flow rate may cause substrate depletion and mass transfer limitations")

    if model.is_type("Stirred Tank") and params.mixing_speed > 300:
        messages.append("High mixing speed may damage biofilm structure and reduce power output")
    if model.is_type("Membrane") and params.ph < 6.0:
        messages.append("Low pH may damage membrane integrity in membrane bioreactor systems")
    if model.is_type("Photobioreactor") and params.temperature > 30:
        messages.append("High temperature may reduce photosynthetic efficiency in algae systems")

    if reynolds_number(model, params) < 100:
        messages.append(
            "Low Reynolds number indicates poor mixing and potential mass transfer limitations"
        )
    return messages


__all__ = [
    "EPSILON",
    "FARADAY",
    "GAS_CONSTANT",
    "KELVIN_OFFSET",
    "MATERIAL_PROPERTIES",
    "MaterialProperties",
    "arrhenius_factor",
    "biofilm_factor",
    "buffered_ph_factor",
    "cell_voltage",
    "confidence",
    "current_density",
    "declared_ranges",
    "efficiency",
    "electrode_kinetics_factor",
    "electrolyte_resistance",
    "growth_factor",
    "mass_transfer_factor",
    "material_properties",
    "ohmic_factor",
    "operational_status",
    "out_of_range_parameters",
    "ph_factor",
    "power_density",
    "reynolds_number",
    "schmidt_number",
    "sherwood_number",
    "substrate_factor",
    "system_multiplier",
    "tafel_slope",
    "temperature_factor",
    "warnings_for",
]

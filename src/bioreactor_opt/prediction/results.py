"""Prediction inputs and the additive Basic/Intermediate/Advanced result types."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
import enum
from typing import Any

from bioreactor_opt.errors import ValidationError
from bioreactor_opt.parameters import BioreactorParameters


class Fidelity(str, enum.Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: "Fidelity | str") -> "Fidelity":
        if isinstance(value, Fidelity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            options = ", ".join(member.value for member in cls)
            raise ValidationError(
                f"Unknown fidelity level: {value!r}. Expected one of: {options}."
            ) from None

    @property
    def rank(self) -> int:
        return _FIDELITY_ORDER.index(self)


_FIDELITY_ORDER = (Fidelity.BASIC, Fidelity.INTERMEDIATE, Fidelity.ADVANCED)


class OperationalStatus(str, enum.Enum):
    OPTIMAL = "optimal"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


# Fields that legitimately differ between fidelity levels for the same input.
METADATA_FIELDS = ("confidence", "fidelity", "execution_time_ms")


@dataclass(frozen=True)
class PredictionInput:
    device_id: str
    parameters: BioreactorParameters
    fidelity: Fidelity = Fidelity.BASIC

    def cache_key(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "parameters": self.parameters.to_dict(),
            "fidelity": self.fidelity.value,
        }


@dataclass(frozen=True)
class ThermalProfile:
    average_temperature: float
    hot_spots: tuple[float, ...]
    cooling_rate: float


@dataclass(frozen=True)
class MassTransferSummary:
    oxygen_transfer_rate: float
    substrate_utilization: float
    proton_flux: float


@dataclass(frozen=True)
class BiofilmDynamics:
    thickness: float
    viability: float
    adhesion_strength: float


@dataclass(frozen=True)
class EconomicsSummary:
    operating_cost: float
    maintenance_cost: float
    efficiency: float


@dataclass(frozen=True)
class Overpotentials:
    activation: float
    concentration: float
    ohmic: float
    membrane: float


@dataclass(frozen=True)
class ElectrodeKinetics:
    exchange_current_density: float
    tafel_slope: float
    transfer_coefficient: float
    surface_roughness_factor: float


@dataclass(frozen=True)
class LimitingFactors:
    mass_transfer_limited: bool
    activation_limited: bool
    ohmic_limited: bool


@dataclass(frozen=True)
class Electrochemistry:
    overpotentials: Overpotentials
    current_distribution: tuple[float, ...]
    electrode_kinetics: ElectrodeKinetics
    limiting_factors: LimitingFactors
    limiting_current_density: float


@dataclass(frozen=True)
class FluidDynamics:
    velocity_field: tuple[tuple[float, ...], ...]
    turbulence_intensity: float
    mixing_efficiency: float
    dead_zones: float
    reynolds_number: float
    sherwood_number: float
    mass_transfer_coefficient: float
    residence_time_distribution: tuple[float, ...]


@dataclass(frozen=True)
class Microbiology:
    growth_rate: float
    metabolic_activity: float
    species_distribution: dict[str, float]
    viability_profile: tuple[float, ...]


@dataclass(frozen=True)
class Recommendation:
    parameter: str
    current_value: float
    recommended_value: float
    expected_improvement: float
    confidence: float
    reason: str


@dataclass(frozen=True)
class SensitivityRanking:
    most_influential: str
    parameter_sensitivities: dict[str, float]
    interaction_effects: dict[str, float]


@dataclass(frozen=True)
class OperatingEnvelope:
    viable_ranges: dict[str, tuple[float, float]]
    optimal_zone: dict[str, tuple[float, float]]
    critical_limits: dict[str, tuple[float, float]]


@dataclass(frozen=True)
class Advisory:
    recommendations: tuple[Recommendation, ...]
    sensitivity: SensitivityRanking
    operating_envelope: OperatingEnvelope


@dataclass(frozen=True)
class BasicPrediction:
    power_density: float
    current_density: float
    efficiency: float
    operational_status: OperationalStatus
    confidence: float
    warnings: tuple[str, ...]
    fidelity: Fidelity
    execution_time_ms: float = field(compare=False)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["operational_status"] = self.operational_status.value
        payload["fidelity"] = self.fidelity.value
        return payload

    def shared_values(self) -> dict[str, Any]:
        """Field values that every fidelity level must reproduce identically."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in METADATA_FIELDS
        }


@dataclass(frozen=True)
class IntermediatePrediction(BasicPrediction):
    thermal_profile: ThermalProfile
    mass_transfer: MassTransferSummary
    biofilm: BiofilmDynamics
    economics: EconomicsSummary


@dataclass(frozen=True)
class AdvancedPrediction(IntermediatePrediction):
    electrochemistry: Electrochemistry
    fluid_dynamics: FluidDynamics
    microbiology: Microbiology
    advisory: Advisory


__all__ = [
    "METADATA_FIELDS",
    "AdvancedPrediction",
    "Advisory",
    "BasicPrediction",
    "BiofilmDynamics",
    "EconomicsSummary",
    "Electrochemistry",
    "ElectrodeKinetics",
    "Fidelity",
    "FluidDynamics",
    "IntermediatePrediction",
    "LimitingFactors",
    "MassTransferSummary",
    "Microbiology",
    "OperatingEnvelope",
    "OperationalStatus",
    "Overpotentials",
    "PredictionInput",
    "Recommendation",
    "SensitivityRanking",
    "ThermalProfile",
]

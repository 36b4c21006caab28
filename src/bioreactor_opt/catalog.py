"""Read-only reference catalog of bioreactor devices."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
import threading
from typing import Any, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from bioreactor_opt.errors import CatalogError
from bioreactor_opt.io_utils import read_yaml_payload

logger = logging.getLogger(__name__)

Confidence = Literal["high", "medium", "low"]
Scale = Literal["laboratory", "pilot", "industrial"]
Category = Literal["high-performance", "industrial", "research", "hybrid", "experimental"]

CONFIDENCE_SCORES: dict[str, float] = {"high": 1.0, "medium": 0.8, "low": 0.6}
POWER_NORMALIZATION = 3000.0


class _CatalogModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


def _check_interval(value: tuple[float, float]) -> tuple[float, float]:
    low, high = value
    if low > high:
        raise ValueError(f"range lower bound {low} exceeds upper bound {high}")
    return value


class MeasuredValue(_CatalogModel):
    value: float
    unit: str
    range: tuple[float, float]
    confidence: Confidence

    @field_validator("range")
    @classmethod
    def validate_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _check_interval(value)


class EfficiencyFigures(_CatalogModel):
    cod_removal: Optional[float] = None
    power_conversion: Optional[float] = None
    overall: Optional[float] = None


class Performance(_CatalogModel):
    power_density: MeasuredValue
    current_density: MeasuredValue
    efficiency: EfficiencyFigures


class Geometry(_CatalogModel):
    scale: Scale
    volume: float
    aspect_ratio: Optional[float] = None
    surface_area_to_volume: Optional[float] = None
    dimensions: dict[str, float] = {}


class ElectrodeSpec(_CatalogModel):
    material: list[str]
    geometry: str
    surface_area: float
    conductivity: str
    biocompatibility: str
    cost: float


class Electrodes(_CatalogModel):
    configuration: str
    spacing: float
    count: int
    total_surface_area: float
    anode: ElectrodeSpec
    cathode: ElectrodeSpec
    membrane: list[str] = []


class OperatingWindow(_CatalogModel):
    optimal: float
    range: tuple[float, float]
    tolerance: Optional[float] = None

    @field_validator("range")
    @classmethod
    def validate_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _check_interval(value)


class FlowWindow(_CatalogModel):
    value: float
    range: tuple[float, float]

    @field_validator("range")
    @classmethod
    def validate_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _check_interval(value)


class OperatingConditions(_CatalogModel):
    temperature: OperatingWindow
    ph: OperatingWindow
    flow_rate: Optional[FlowWindow] = None
    mixing_speed: Optional[OperatingWindow] = None
    substrate_concentration: Optional[OperatingWindow] = None


class Biofilm(_CatalogModel):
    thickness: float
    density: float
    metabolism: str


class MicrobialSystem(_CatalogModel):
    primary_species: list[str]
    consortium_type: str
    biofilm: Biofilm


class MassTransfer(_CatalogModel):
    oxygen_transfer_coefficient: float
    substrate_transfer_rate: float
    proton_transfer_rate: float
    limitations: list[str] = []


class Economics(_CatalogModel):
    capital_cost: Optional[float] = None
    operating_cost: Optional[float] = None
    payback_period: Optional[float] = None
    cost_factors: list[str] = []


class DesignParameters(_CatalogModel):
    critical_factors: list[str] = []
    optimization_targets: list[str] = []
    scaling_factors: dict[str, float] = {}


class BioreactorModel(_CatalogModel):
    id: str
    name: str
    category: Category
    reactor_type: str
    description: str = ""
    performance: Performance
    geometry: Geometry
    electrodes: Electrodes
    operating: OperatingConditions
    microbial_system: MicrobialSystem
    mass_transfer: MassTransfer
    economics: Economics
    applications: list[str] = []
    advantages: list[str] = []
    limitations: list[str] = []
    design_parameters: DesignParameters = DesignParameters()

    @property
    def anode_material(self) -> str:
        materials = self.electrodes.anode.material
        return materials[0] if materials else "carbon cloth"

    def is_type(self, keyword: str) -> bool:
        return keyword.lower() in self.reactor_type.lower()


@dataclass(frozen=True)
class CompatibilityReport:
    compatible: bool
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def performance_score(model: BioreactorModel) -> float:
    power_score = model.performance.power_density.value / POWER_NORMALIZATION
    efficiency_score = (model.performance.efficiency.overall or 50.0) / 100.0
    confidence_score = CONFIDENCE_SCORES[model.performance.power_density.confidence]
    return (power_score * 0.4 + efficiency_score * 0.4 + confidence_score * 0.2) * 100.0


def check_material_compatibility(
    anode_material: str,
    cathode_material: str,
    species: Sequence[str],
) -> CompatibilityReport:
    warnings: list[str] = []
    recommendations: list[str] = []
    if "platinum" in anode_material.lower() and any("Geobacter" in s for s in species):
        warnings.append("Platinum anodes may inhibit some Geobacter species adhesion")
        recommendations.append("Consider carbon-based anodes for better biocompatibility")
    if "stainless steel" in cathode_material.lower() and any("Chlorella" in s for s in species):
        warnings.append("Stainless steel may not be optimal for photosynthetic systems")
        recommendations.append("Consider platinum or carbon cathodes for algae systems")
    return CompatibilityReport(
        compatible=not warnings,
        warnings=warnings,
        recommendations=recommendations,
    )


class BioreactorCatalog:
    """Immutable id -> :class:`BioreactorModel` lookup with simple queries."""

    def __init__(self, models: Sequence[BioreactorModel]) -> None:
        entries: dict[str, BioreactorModel] = {}
        for model in models:
            if model.id in entries:
                raise CatalogError(f"Duplicate bioreactor id in catalog: {model.id!r}.")
            entries[model.id] = model
        self._entries = entries

    @classmethod
    def from_records(cls, records: Sequence[Mapping[str, Any]]) -> "BioreactorCatalog":
        models = []
        for index, record in enumerate(records):
            try:
                models.append(BioreactorModel.model_validate(record))
            except PydanticValidationError as exc:
                ident = record.get("id", f"#{index}") if isinstance(record, Mapping) else f"#{index}"
                raise CatalogError(
                    f"Invalid catalog entry {ident}: {exc}",
                    user_message=f"Catalog entry {ident} is malformed.",
                ) from exc
        return cls(models)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "BioreactorCatalog":
        path = Path(path)
        if not path.exists():
            raise CatalogError(f"Catalog file not found: {path}")
        payload = read_yaml_payload(
            path,
            error_message=f"Failed to parse catalog {path}",
            error_cls=CatalogError,
        )
        if not isinstance(payload, list):
            raise CatalogError(f"Catalog {path} must contain a list of devices.")
        catalog = cls.from_records(payload)
        logger.debug("Loaded %d bioreactor models from %s", len(catalog), path)
        return catalog

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[BioreactorModel]:
        return iter(self._entries.values())

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._entries

    def ids(self) -> list[str]:
        return list(self._entries)

    def get(self, device_id: str) -> BioreactorModel:
        try:
            return self._entries[device_id]
        except KeyError:
            available = ", ".join(sorted(self._entries)) or "<none>"
            raise CatalogError(
                f"Bioreactor model {device_id!r} not found. Available: {available}.",
                user_message=f"Unknown bioreactor id: {device_id}",
                context={"device_id": device_id},
            ) from None

    def by_category(self, category: str) -> list[BioreactorModel]:
        return [model for model in self if model.category == category]

    def by_scale(self, scale: str) -> list[BioreactorModel]:
        return [model for model in self if model.geometry.scale == scale]

    def by_power_range(self, min_power: float, max_power: float) -> list[BioreactorModel]:
        return [
            model
            for model in self
            if min_power <= model.performance.power_density.value <= max_power
        ]

    def optimal_operating_conditions(self, device_id: str) -> dict[str, float]:
        operating = self.get(device_id).operating
        return {
            "temperature": operating.temperature.optimal,
            "ph": operating.ph.optimal,
            "flow_rate": operating.flow_rate.value if operating.flow_rate else 0.0,
            "mixing_speed": operating.mixing_speed.optimal if operating.mixing_speed else 0.0,
            "substrate_concentration": (
                operating.substrate_concentration.optimal
                if operating.substrate_concentration
                else 1.0
            ),
        }

    def recommend(
        self,
        *,
        scale: Optional[str] = None,
        min_power: Optional[float] = None,
        application: Optional[str] = None,
        max_cost: Optional[float] = None,
    ) -> Optional[BioreactorModel]:
        candidates = list(self)
        if scale:
            candidates = [m for m in candidates if m.geometry.scale == scale]
        if min_power is not None:
            candidates = [m for m in candidates if m.performance.power_density.value >= min_power]
        if application:
            needle = application.lower()
            candidates = [
                m for m in candidates if any(needle in app.lower() for app in m.applications)
            ]
        if max_cost is not None:
            candidates = [
                m
                for m in candidates
                if m.economics.capital_cost is not None and m.economics.capital_cost <= max_cost
            ]
        if not candidates:
            return None
        return max(candidates, key=performance_score)

    def compare(self, first_id: str, second_id: str) -> dict[str, dict[str, Any]]:
        first = self.get(first_id)
        second = self.get(second_id)

        def _entry(a: float, b: float, *, lower_wins: bool = False) -> dict[str, Any]:
            if lower_wins:
                winner = first.name if a < b else second.name
            else:
                winner = first.name if a > b else second.name
            return {"reactor1": a, "reactor2": b, "winner": winner}

        inf = float("inf")
        return {
            "power_density": _entry(
                first.performance.power_density.value,
                second.performance.power_density.value,
            ),
            "efficiency": _entry(
                first.performance.efficiency.overall or 0.0,
                second.performance.efficiency.overall or 0.0,
            ),
            "cost": _entry(
                first.economics.capital_cost if first.economics.capital_cost is not None else inf,
                second.economics.capital_cost if second.economics.capital_cost is not None else inf,
                lower_wins=True,
            ),
            "scale": {"reactor1": first.geometry.scale, "reactor2": second.geometry.scale},
            "overall_score": _entry(performance_score(first), performance_score(second)),
        }


DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent / "data" / "bioreactors.yaml"

_DEFAULT_CATALOG: Optional[BioreactorCatalog] = None
_DEFAULT_LOCK = threading.Lock()


def load_catalog(path: Optional[Union[str, Path]] = None) -> BioreactorCatalog:
    """Load a catalog from ``path`` or from the packaged reference data."""
    return BioreactorCatalog.from_yaml(path or DEFAULT_CATALOG_PATH)


def default_catalog() -> BioreactorCatalog:
    global _DEFAULT_CATALOG
    with _DEFAULT_LOCK:
        if _DEFAULT_CATALOG is None:
            _DEFAULT_CATALOG = load_catalog()
        return _DEFAULT_CATALOG


__all__ = [
    "BioreactorCatalog",
    "BioreactorModel",
    "CompatibilityReport",
    "OperatingWindow",
    "check_material_compatibility",
    "default_catalog",
    "load_catalog",
    "performance_score",
]

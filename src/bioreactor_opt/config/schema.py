"""Structured config schema for Hydra."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Optional


@dataclass
class CommonConfig:
    seed: int = 0


@dataclass
class CatalogConfig:
    # Empty path selects the packaged reference catalog.
    path: str = ""


@dataclass
class PredictionConfig:
    device_id: str = "embr-001"
    fidelity: str = "basic"
    cache_ttl: float = 300.0


@dataclass
class SurrogateConfig:
    system_type: str = "MFC"


@dataclass
class OptimizationConfig:
    algorithm: str = "genetic_algorithm"
    max_iterations: int = 100
    convergence_tolerance: float = 1e-6
    population_size: int = 50
    acquisition_function: str = "EI"
    temperature_schedule: str = "exponential"
    learning_rate: float = 0.01
    seed: Optional[int] = None
    strict_algorithm: bool = False


@dataclass
class ObjectiveConfig:
    kind: str = "maximize_power"
    weights: dict[str, Any] = field(
        default_factory=lambda: {
            "power": 0.4,
            "efficiency": 0.3,
            "cost": 0.2,
            "durability": 0.1,
        }
    )
    targets: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConstraintsConfig:
    temperature: list[float] = field(default_factory=lambda: [20.0, 40.0])
    ph: list[float] = field(default_factory=lambda: [6.0, 8.0])
    flow_rate: list[float] = field(default_factory=lambda: [10.0, 200.0])
    mixing_speed: list[float] = field(default_factory=lambda: [0.0, 300.0])
    electrode_voltage: list[float] = field(default_factory=lambda: [0.0, 200.0])
    substrate_concentration: list[float] = field(default_factory=lambda: [0.1, 5.0])
    # Optional intervals for pressure / oxygen_level / salinity.
    extensions: dict[str, Any] = field(default_factory=dict)
    available_materials: dict[str, Any] = field(default_factory=dict)
    max_system_cost: Optional[float] = None
    max_operating_cost: Optional[float] = None


@dataclass
class ParetoConfig:
    size: int = 20
    max_workers: int = 1


@dataclass
class AppConfig:
    common: CommonConfig = field(default_factory=CommonConfig)
    use_surrogate: bool = False
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    surrogate: SurrogateConfig = field(default_factory=SurrogateConfig)
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)
    objective: ObjectiveConfig = field(default_factory=ObjectiveConfig)
    constraints: ConstraintsConfig = field(default_factory=ConstraintsConfig)
    pareto: ParetoConfig = field(default_factory=ParetoConfig)
    initial_guess: dict[str, Any] = field(default_factory=dict)


def register_configs() -> None:
    try:
        from hydra.core.config_store import ConfigStore
    except ModuleNotFoundError:
        return
    cs = ConfigStore.instance()
    try:
        cs.store(group="schema", name="base", node=AppConfig, package="_global_")
    except Exception as exc:
        logging.getLogger(__name__).warning(
            "Hydra config store registration failed: %s", exc
        )


__all__ = [
    "AppConfig",
    "CatalogConfig",
    "CommonConfig",
    "ConstraintsConfig",
    "ObjectiveConfig",
    "OptimizationConfig",
    "ParetoConfig",
    "PredictionConfig",
    "SurrogateConfig",
    "register_configs",
]

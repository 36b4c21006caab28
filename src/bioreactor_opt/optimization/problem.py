"""Value types describing an optimization problem and its outcome."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
import enum
import logging
import math
from typing import Any, Optional, Union

from bioreactor_opt.errors import ConfigError, ValidationError
from bioreactor_opt.parameters import (
    BASE_FIELDS,
    EXTENSION_FIELDS,
    BioreactorParameters,
    Interval,
    ParameterSpace,
)

logger = logging.getLogger(__name__)


def _normalize_name(value: Any) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


class ObjectiveKind(str, enum.Enum):
    MAXIMIZE_POWER = "maximize_power"
    MAXIMIZE_EFFICIENCY = "maximize_efficiency"
    MINIMIZE_COST = "minimize_cost"
    MAXIMIZE_DURABILITY = "maximize_durability"
    MULTI_OBJECTIVE = "multi_objective"

    @classmethod
    def parse(cls, value: Union["ObjectiveKind", str]) -> "ObjectiveKind":
        if isinstance(value, ObjectiveKind):
            return value
        try:
            return cls(_normalize_name(value))
        except ValueError:
            options = ", ".join(member.value for member in cls)
            raise ConfigError(
                f"Unknown objective kind: {value!r}. Expected one of: {options}."
            ) from None


class Algorithm(str, enum.Enum):
    GRADIENT_DESCENT = "gradient_descent"
    GENETIC_ALGORITHM = "genetic_algorithm"
    PARTICLE_SWARM = "particle_swarm"
    BAYESIAN = "bayesian"
    SIMULATED_ANNEALING = "simulated_annealing"

    @classmethod
    def parse(
        cls,
        value: Union["Algorithm", str],
        *,
        strict: bool = False,
    ) -> "Algorithm":
        """Resolve an algorithm name.

        Unrecognised names fall back to the genetic algorithm with a warning
        unless ``strict`` is set, in which case :class:`ConfigError` is raised.
        """
        if isinstance(value, Algorithm):
            return value
        try:
            return cls(_normalize_name(value))
        except ValueError:
            if strict:
                options = ", ".join(member.value for member in cls)
                raise ConfigError(
                    f"Unknown optimization algorithm: {value!r}. Expected one of: {options}."
                ) from None
        logger.warning(
            "Unknown optimization algorithm %r; falling back to %s.",
            value,
            cls.GENETIC_ALGORITHM.value,
        )
        return cls.GENETIC_ALGORITHM


class AcquisitionFunction(str, enum.Enum):
    EI = "EI"
    PI = "PI"
    UCB = "UCB"

    @classmethod
    def parse(cls, value: Union["AcquisitionFunction", str]) -> "AcquisitionFunction":
        if isinstance(value, AcquisitionFunction):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ConfigError(
                f"Unknown acquisition function: {value!r}. Expected one of: EI, PI, UCB."
            ) from None


class TemperatureSchedule(str, enum.Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    ADAPTIVE = "adaptive"

    @classmethod
    def parse(cls, value: Union["TemperatureSchedule", str]) -> "TemperatureSchedule":
        if isinstance(value, TemperatureSchedule):
            return value
        try:
            return cls(_normalize_name(value))
        except ValueError:
            raise ConfigError(
                f"Unknown temperature schedule: {value!r}. "
                "Expected one of: linear, exponential, adaptive."
            ) from None


def _coerce_float(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be a number.")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a number.") from exc
    if not math.isfinite(number):
        raise ConfigError(f"{label} must be finite.")
    return number


def _coerce_optional_float(value: Any, label: str) -> Optional[float]:
    if value is None:
        return None
    return _coerce_float(value, label)


def _coerce_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be an integer.") from exc


def _coerce_optional_int(value: Any, label: str) -> Optional[int]:
    if value is None:
        return None
    return _coerce_int(value, label)


def _require_mapping(value: Any, label: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{label} must be a mapping.")
    return value


@dataclass(frozen=True)
class ObjectiveWeights:
    power: float = 0.0
    efficiency: float = 0.0
    cost: float = 0.0
    durability: float = 0.0

    @classmethod
    def from_mapping(cls, data: Any) -> "ObjectiveWeights":
        data = _require_mapping(data, "objective.weights")
        unknown = set(data) - {"power", "efficiency", "cost", "durability"}
        if unknown:
            raise ConfigError(f"Unknown objective weights: {sorted(unknown)}.")
        return cls(
            **{
                name: _coerce_float(value, f"objective.weights.{name}")
                for name, value in data.items()
                if value is not None
            }
        )


@dataclass(frozen=True)
class ObjectiveTargets:
    min_power: Optional[float] = None
    min_efficiency: Optional[float] = None
    max_cost: Optional[float] = None
    min_durability: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Any) -> "ObjectiveTargets":
        data = _require_mapping(data, "objective.targets")
        unknown = set(data) - {"min_power", "min_efficiency", "max_cost", "min_durability"}
        if unknown:
            raise ConfigError(f"Unknown objective targets: {sorted(unknown)}.")
        return cls(
            **{
                name: _coerce_optional_float(value, f"objective.targets.{name}")
                for name, value in data.items()
            }
        )

    def is_empty(self) -> bool:
        return all(value is None for value in asdict(self).values())


@dataclass(frozen=True)
class OptimizationObjective:
    kind: ObjectiveKind = ObjectiveKind.MAXIMIZE_POWER
    weights: ObjectiveWeights = field(default_factory=ObjectiveWeights)
    targets: ObjectiveTargets = field(default_factory=ObjectiveTargets)

    @classmethod
    def from_mapping(cls, data: Any) -> "OptimizationObjective":
        data = _require_mapping(data, "objective")
        return cls(
            kind=ObjectiveKind.parse(data.get("kind", ObjectiveKind.MAXIMIZE_POWER)),
            weights=ObjectiveWeights.from_mapping(data.get("weights")),
            targets=ObjectiveTargets.from_mapping(data.get("targets")),
        )


@dataclass(frozen=True)
class MaterialWhitelist:
    """Allowed electrode/membrane materials; an empty tuple allows anything."""

    anode: tuple[str, ...] = ()
    cathode: tuple[str, ...] = ()
    membrane: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Any) -> "MaterialWhitelist":
        data = _require_mapping(data, "constraints.available_materials")
        values: dict[str, tuple[str, ...]] = {}
        for name in ("anode", "cathode", "membrane"):
            entries = data.get(name)
            if entries is None:
                continue
            if isinstance(entries, str) or not isinstance(entries, Sequence):
                raise ConfigError(
                    f"constraints.available_materials.{name} must be a list of strings."
                )
            values[name] = tuple(str(entry) for entry in entries)
        return cls(**values)


@dataclass(frozen=True)
class OptimizationConstraints:
    """Constraint box plus optional material and cost bounds."""

    temperature: Interval
    ph: Interval
    flow_rate: Interval
    mixing_speed: Interval
    electrode_voltage: Interval
    substrate_concentration: Interval
    extensions: dict[str, Interval] = field(default_factory=dict)
    materials: MaterialWhitelist = field(default_factory=MaterialWhitelist)
    max_system_cost: Optional[float] = None
    max_operating_cost: Optional[float] = None

    def __post_init__(self) -> None:
        unknown = set(self.extensions) - set(EXTENSION_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown extension constraints: {sorted(unknown)}.")

    @classmethod
    def from_mapping(cls, data: Any) -> "OptimizationConstraints":
        data = _require_mapping(data, "constraints")
        missing = [name for name in BASE_FIELDS if data.get(name) is None]
        if missing:
            raise ConfigError(f"Missing constraint intervals: {', '.join(missing)}.")
        try:
            base = {
                name: Interval.parse(data[name], name=f"constraints.{name}")
                for name in BASE_FIELDS
            }
            nested = _require_mapping(data.get("extensions"), "constraints.extensions")
            extensions = {}
            for name in EXTENSION_FIELDS:
                value = nested.get(name, data.get(name))
                if value is not None:
                    extensions[name] = Interval.parse(value, name=f"constraints.{name}")
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
        return cls(
            **base,
            extensions=extensions,
            materials=MaterialWhitelist.from_mapping(data.get("available_materials")),
            max_system_cost=_coerce_optional_float(
                data.get("max_system_cost"), "constraints.max_system_cost"
            ),
            max_operating_cost=_coerce_optional_float(
                data.get("max_operating_cost"), "constraints.max_operating_cost"
            ),
        )

    def interval(self, name: str) -> Optional[Interval]:
        if name in BASE_FIELDS:
            return getattr(self, name)
        return self.extensions.get(name)

    def intervals(self) -> dict[str, Interval]:
        box = {name: getattr(self, name) for name in BASE_FIELDS}
        box.update(
            (name, self.extensions[name]) for name in EXTENSION_FIELDS if name in self.extensions
        )
        return box

    def space(self) -> ParameterSpace:
        return ParameterSpace.from_intervals(self.intervals())

    def midpoint(self) -> dict[str, float]:
        return {name: interval.midpoint for name, interval in self.intervals().items()}


@dataclass(frozen=True)
class OptimizationSettings:
    algorithm: Algorithm = Algorithm.GENETIC_ALGORITHM
    max_iterations: int = 100
    convergence_tolerance: float = 1e-6
    population_size: Optional[int] = None
    acquisition_function: AcquisitionFunction = AcquisitionFunction.EI
    temperature_schedule: TemperatureSchedule = TemperatureSchedule.EXPONENTIAL
    learning_rate: float = 0.01
    seed: Optional[int] = None
    pareto_size: int = 20
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.max_iterations < 0:
            raise ConfigError("max_iterations must be >= 0.")
        if self.convergence_tolerance < 0:
            raise ConfigError("convergence_tolerance must be >= 0.")
        if self.population_size is not None and self.population_size < 2:
            raise ConfigError("population_size must be >= 2.")
        if self.learning_rate <= 0:
            raise ConfigError("learning_rate must be positive.")
        if self.pareto_size < 1:
            raise ConfigError("pareto_size must be positive.")
        if self.max_workers < 1:
            raise ConfigError("max_workers must be positive.")

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        *,
        pareto: Optional[Mapping[str, Any]] = None,
    ) -> "OptimizationSettings":
        data = _require_mapping(data, "optimization")
        pareto = _require_mapping(pareto, "pareto")
        defaults = cls()
        return cls(
            algorithm=Algorithm.parse(
                data.get("algorithm", defaults.algorithm),
                strict=bool(data.get("strict_algorithm", False)),
            ),
            max_iterations=_coerce_int(
                data.get("max_iterations", defaults.max_iterations), "max_iterations"
            ),
            convergence_tolerance=_coerce_float(
                data.get("convergence_tolerance", defaults.convergence_tolerance),
                "convergence_tolerance",
            ),
            population_size=_coerce_optional_int(
                data.get("population_size"), "population_size"
            ),
            acquisition_function=AcquisitionFunction.parse(
                data.get("acquisition_function", defaults.acquisition_function)
            ),
            temperature_schedule=TemperatureSchedule.parse(
                data.get("temperature_schedule", defaults.temperature_schedule)
            ),
            learning_rate=_coerce_float(
                data.get("learning_rate", defaults.learning_rate), "learning_rate"
            ),
            seed=_coerce_optional_int(data.get("seed"), "seed"),
            pareto_size=_coerce_int(pareto.get("size", defaults.pareto_size), "pareto.size"),
            max_workers=_coerce_int(
                pareto.get("max_workers", defaults.max_workers), "pareto.max_workers"
            ),
        )


@dataclass(frozen=True)
class Evaluation:
    """Oracle output for one parameter vector."""

    power: float
    efficiency: float
    cost: Optional[float] = None
    operating_cost: Optional[float] = None

    @classmethod
    def coerce(cls, value: Union["Evaluation", Mapping[str, Any]]) -> "Evaluation":
        if isinstance(value, Evaluation):
            return value
        if not isinstance(value, Mapping):
            raise ValidationError(
                f"Oracle must return an Evaluation or a mapping, got {type(value).__name__}."
            )
        try:
            return cls(
                power=float(value["power"]),
                efficiency=float(value["efficiency"]),
                cost=None if value.get("cost") is None else float(value["cost"]),
                operating_cost=(
                    None
                    if value.get("operating_cost") is None
                    else float(value["operating_cost"])
                ),
            )
        except KeyError as exc:
            raise ValidationError(f"Oracle result is missing {exc.args[0]!r}.") from None
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Oracle result is not numeric: {exc}") from exc


@dataclass(frozen=True)
class HistoryEntry:
    iteration: int
    objective_value: float
    parameters: BioreactorParameters

    def to_dict(self) -> dict[str, Any]:
        return {
            "iteration": self.iteration,
            "objective_value": self.objective_value,
            "parameters": self.parameters.to_dict(),
        }


@dataclass(frozen=True)
class ParetoSolution:
    power: float
    efficiency: float
    cost: float
    parameters: BioreactorParameters

    def metrics(self) -> tuple[float, float, float]:
        return (self.power, self.efficiency, self.cost)

    def to_dict(self) -> dict[str, Any]:
        return {
            "power": self.power,
            "efficiency": self.efficiency,
            "cost": self.cost,
            "parameters": self.parameters.to_dict(),
        }


@dataclass(frozen=True)
class SensitivityEntry:
    parameter: str
    sensitivity: float
    optimal_range: Interval

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameter": self.parameter,
            "sensitivity": self.sensitivity,
            "optimal_range": {"min": self.optimal_range.low, "max": self.optimal_range.high},
        }


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of one optimization run.

    ``objective_value`` is oriented so that larger is better for every
    objective kind (the negated internal minimisation score).
    """

    success: bool
    optimized_parameters: BioreactorParameters
    objective_value: float
    constraint_violations: tuple[str, ...]
    iterations: int
    convergence_history: tuple[HistoryEntry, ...] = ()
    algorithm: Optional[Algorithm] = None
    pareto_front: Optional[tuple[ParetoSolution, ...]] = None
    sensitivity: Optional[tuple[SensitivityEntry, ...]] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "algorithm": None if self.algorithm is None else self.algorithm.value,
            "optimized_parameters": self.optimized_parameters.to_dict(),
            "objective_value": self.objective_value,
            "constraint_violations": list(self.constraint_violations),
            "iterations": self.iterations,
            "convergence_history": [entry.to_dict() for entry in self.convergence_history],
        }
        if self.pareto_front is not None:
            payload["pareto_front"] = [item.to_dict() for item in self.pareto_front]
        if self.sensitivity is not None:
            payload["sensitivity"] = [item.to_dict() for item in self.sensitivity]
        return payload


def problem_from_config(
    cfg: Mapping[str, Any],
) -> tuple[OptimizationObjective, OptimizationConstraints, OptimizationSettings]:
    """Build objective, constraints and settings from a resolved app config."""
    if not isinstance(cfg, Mapping):
        raise ConfigError("config must be a mapping.")
    return (
        OptimizationObjective.from_mapping(cfg.get("objective")),
        OptimizationConstraints.from_mapping(cfg.get("constraints")),
        OptimizationSettings.from_mapping(cfg.get("optimization"), pareto=cfg.get("pareto")),
    )


__all__ = [
    "AcquisitionFunction",
    "Algorithm",
    "Evaluation",
    "HistoryEntry",
    "MaterialWhitelist",
    "ObjectiveKind",
    "ObjectiveTargets",
    "ObjectiveWeights",
    "OptimizationConstraints",
    "OptimizationObjective",
    "OptimizationResult",
    "OptimizationSettings",
    "ParetoSolution",
    "SensitivityEntry",
    "TemperatureSchedule",
    "problem_from_config",
]

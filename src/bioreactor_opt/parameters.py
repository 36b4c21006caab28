"""Operating-parameter records and the constraint-box vector space."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace as dc_replace
import math
from typing import Any, Optional, Sequence

import numpy as np

from bioreactor_opt.errors import ValidationError

BASE_FIELDS: tuple[str, ...] = (
    "temperature",
    "ph",
    "flow_rate",
    "mixing_speed",
    "electrode_voltage",
    "substrate_concentration",
)
EXTENSION_FIELDS: tuple[str, ...] = ("pressure", "oxygen_level", "salinity")

PARAMETER_LABELS: dict[str, str] = {
    "temperature": "Temperature",
    "ph": "pH",
    "flow_rate": "Flow rate",
    "mixing_speed": "Mixing speed",
    "electrode_voltage": "Electrode voltage",
    "substrate_concentration": "Substrate concentration",
    "pressure": "Pressure",
    "oxygen_level": "Oxygen level",
    "salinity": "Salinity",
}

PARAMETER_UNITS: dict[str, str] = {
    "temperature": "degC",
    "ph": "",
    "flow_rate": "L/h",
    "mixing_speed": "RPM",
    "electrode_voltage": "mV",
    "substrate_concentration": "g/L",
    "pressure": "bar",
    "oxygen_level": "%",
    "salinity": "g/L",
}

# Physically meaningful step sizes (mutation spread, swarm velocity, distance scale).
MUTATION_SPANS: dict[str, float] = {
    "temperature": 10.0,
    "ph": 1.0,
    "flow_rate": 20.0,
    "mixing_speed": 50.0,
    "electrode_voltage": 20.0,
    "substrate_concentration": 1.0,
    "pressure": 0.5,
    "oxygen_level": 10.0,
    "salinity": 5.0,
}
VELOCITY_SPANS: dict[str, float] = {
    "temperature": 2.0,
    "ph": 0.2,
    "flow_rate": 5.0,
    "mixing_speed": 10.0,
    "electrode_voltage": 5.0,
    "substrate_concentration": 0.5,
    "pressure": 0.1,
    "oxygen_level": 2.0,
    "salinity": 1.0,
}
DISTANCE_SCALES: dict[str, float] = {
    "temperature": 10.0,
    "ph": 1.0,
    "flow_rate": 10.0,
    "mixing_speed": 50.0,
    "electrode_voltage": 20.0,
    "substrate_concentration": 1.0,
    "pressure": 0.5,
    "oxygen_level": 10.0,
    "salinity": 5.0,
}


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"Parameter {name!r} must be numeric, got {value!r}.")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"Parameter {name!r} must be numeric, got {value!r}.",
            context={"parameter": name},
        ) from exc
    if not math.isfinite(number):
        raise ValidationError(f"Parameter {name!r} must be finite, got {value!r}.")
    return number


@dataclass(frozen=True)
class Interval:
    """Closed interval ``[low, high]``."""

    low: float
    high: float

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ValidationError(
                f"Interval lower bound {self.low} exceeds upper bound {self.high}."
            )

    @classmethod
    def parse(cls, value: Any, *, name: str = "interval") -> "Interval":
        if isinstance(value, Interval):
            return value
        if isinstance(value, Mapping):
            low = value.get("min", value.get("low"))
            high = value.get("max", value.get("high"))
        elif isinstance(value, Sequence) and not isinstance(value, str) and len(value) == 2:
            low, high = value
        else:
            raise ValidationError(
                f"{name} must be a [low, high] pair or a min/max mapping, got {value!r}."
            )
        return cls(_as_float(name, low), _as_float(name, high))

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2.0

    @property
    def width(self) -> float:
        return self.high - self.low

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high

    def clamp(self, value: float) -> float:
        return min(max(value, self.low), self.high)


@dataclass(frozen=True)
class ParameterExtensions:
    pressure: Optional[float] = None
    oxygen_level: Optional[float] = None
    salinity: Optional[float] = None

    def to_dict(self) -> dict[str, float]:
        return {
            name: getattr(self, name)
            for name in EXTENSION_FIELDS
            if getattr(self, name) is not None
        }


@dataclass(frozen=True)
class BioreactorParameters:
    """Six required operating parameters plus optional extensions."""

    temperature: float
    ph: float
    flow_rate: float
    mixing_speed: float
    electrode_voltage: float
    substrate_concentration: float
    extensions: ParameterExtensions = field(default_factory=ParameterExtensions)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BioreactorParameters":
        if not isinstance(data, Mapping):
            raise ValidationError("Parameters must be a mapping.")
        missing = [name for name in BASE_FIELDS if data.get(name) is None]
        if missing:
            raise ValidationError(
                f"Missing required parameters: {', '.join(missing)}.",
                context={"missing": missing},
            )
        base = {name: _as_float(name, data[name]) for name in BASE_FIELDS}
        nested = data.get("extensions") or {}
        if not isinstance(nested, Mapping):
            raise ValidationError("extensions must be a mapping.")
        ext: dict[str, float] = {}
        for name in EXTENSION_FIELDS:
            value = nested.get(name, data.get(name))
            if value is not None:
                ext[name] = _as_float(name, value)
        return cls(**base, extensions=ParameterExtensions(**ext))

    def get(self, name: str) -> Optional[float]:
        if name in BASE_FIELDS:
            return getattr(self, name)
        if name in EXTENSION_FIELDS:
            return getattr(self.extensions, name)
        raise KeyError(f"Unknown parameter: {name!r}")

    def replace(self, **changes: float) -> "BioreactorParameters":
        base = {k: v for k, v in changes.items() if k in BASE_FIELDS}
        ext = {k: v for k, v in changes.items() if k in EXTENSION_FIELDS}
        unknown = set(changes) - set(base) - set(ext)
        if unknown:
            raise KeyError(f"Unknown parameters: {sorted(unknown)}")
        updated = dc_replace(self, **base) if base else self
        if ext:
            updated = dc_replace(updated, extensions=dc_replace(updated.extensions, **ext))
        return updated

    def to_dict(self) -> dict[str, float]:
        payload = {name: getattr(self, name) for name in BASE_FIELDS}
        payload.update(self.extensions.to_dict())
        return payload


@dataclass(frozen=True, eq=False)
class ParameterSpace:
    """Ordered box of named intervals; maps parameters to numpy vectors."""

    names: tuple[str, ...]
    lows: np.ndarray
    highs: np.ndarray

    @classmethod
    def from_intervals(cls, intervals: Mapping[str, Interval]) -> "ParameterSpace":
        names = tuple(
            name for name in (*BASE_FIELDS, *EXTENSION_FIELDS) if name in intervals
        )
        lows = np.array([intervals[name].low for name in names], dtype=float)
        highs = np.array([intervals[name].high for name in names], dtype=float)
        return cls(names=names, lows=lows, highs=highs)

    def __len__(self) -> int:
        return len(self.names)

    def spans(self, table: Mapping[str, float]) -> np.ndarray:
        return np.array([table[name] for name in self.names], dtype=float)

    def midpoint(self) -> np.ndarray:
        return (self.lows + self.highs) / 2.0

    def clip(self, vector: np.ndarray) -> np.ndarray:
        return np.clip(vector, self.lows, self.highs)

    def sample(self, rng: np.random.Generator) -> np.ndarray:
        return self.lows + rng.random(len(self.names)) * (self.highs - self.lows)

    def to_vector(self, params: BioreactorParameters) -> np.ndarray:
        values = []
        for name in self.names:
            value = params.get(name)
            if value is None:
                index = self.names.index(name)
                value = (self.lows[index] + self.highs[index]) / 2.0
            values.append(value)
        return np.array(values, dtype=float)

    def to_parameters(
        self,
        vector: np.ndarray,
        template: BioreactorParameters,
    ) -> BioreactorParameters:
        changes = {name: float(value) for name, value in zip(self.names, vector)}
        return template.replace(**changes)

    def clamp(self, params: BioreactorParameters) -> BioreactorParameters:
        return self.to_parameters(self.clip(self.to_vector(params)), params)


__all__ = [
    "BASE_FIELDS",
    "EXTENSION_FIELDS",
    "DISTANCE_SCALES",
    "MUTATION_SPANS",
    "PARAMETER_LABELS",
    "PARAMETER_UNITS",
    "VELOCITY_SPANS",
    "BioreactorParameters",
    "Interval",
    "ParameterExtensions",
    "ParameterSpace",
]

"""Optimization engine: default guesses, algorithm dispatch, sensitivity analysis."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
import logging
import math
from typing import Any, Optional, Union

import numpy as np

from bioreactor_opt.catalog import BioreactorModel
from bioreactor_opt.errors import ValidationError
from bioreactor_opt.optimization.algorithms.annealing import SimulatedAnnealingOptimizer
from bioreactor_opt.optimization.algorithms.base import Optimizer
from bioreactor_opt.optimization.algorithms.bayesian import BayesianOptimizer
from bioreactor_opt.optimization.algorithms.genetic import GeneticAlgorithmOptimizer
from bioreactor_opt.optimization.algorithms.gradient import GradientDescentOptimizer
from bioreactor_opt.optimization.algorithms.swarm import ParticleSwarmOptimizer
from bioreactor_opt.optimization.evaluation import EvaluationContext, Oracle, fitness
from bioreactor_opt.optimization.problem import (
    Algorithm,
    OptimizationConstraints,
    OptimizationObjective,
    OptimizationResult,
    OptimizationSettings,
    SensitivityEntry,
)
from bioreactor_opt.parameters import BASE_FIELDS, BioreactorParameters, Interval

logger = logging.getLogger(__name__)

OPTIMIZERS: dict[Algorithm, type[Optimizer]] = {
    Algorithm.GRADIENT_DESCENT: GradientDescentOptimizer,
    Algorithm.GENETIC_ALGORITHM: GeneticAlgorithmOptimizer,
    Algorithm.PARTICLE_SWARM: ParticleSwarmOptimizer,
    Algorithm.BAYESIAN: BayesianOptimizer,
    Algorithm.SIMULATED_ANNEALING: SimulatedAnnealingOptimizer,
}

_missing = set(Algorithm) - set(OPTIMIZERS)
if _missing:  # pragma: no cover - import-time guard
    raise RuntimeError(f"No optimizer registered for: {sorted(a.value for a in _missing)}")

SENSITIVITY_EPSILON = 1e-4
SENSITIVITY_SAMPLES = 20
OPTIMAL_RANGE_FRACTION = 0.05
FALLBACK_RANGE_FRACTION = 0.1
# Results from these algorithms are returned without a sensitivity block.
SKIP_SENSITIVITY = frozenset({Algorithm.GENETIC_ALGORITHM})

GuessLike = Union[BioreactorParameters, Mapping[str, Any], None]


def build_optimizer(context: EvaluationContext) -> Optimizer:
    return OPTIMIZERS[context.settings.algorithm](context)


def default_initial_guess(
    constraints: OptimizationConstraints,
    initial_guess: GuessLike = None,
) -> BioreactorParameters:
    """Mid-range guess over every constrained field, overridden by the caller's values."""
    values: dict[str, Any] = constraints.midpoint()
    if isinstance(initial_guess, BioreactorParameters):
        values.update(initial_guess.to_dict())
    elif isinstance(initial_guess, Mapping):
        flat = dict(initial_guess)
        nested = flat.pop("extensions", None) or {}
        values.update({key: value for key, value in flat.items() if value is not None})
        values.update({key: value for key, value in nested.items() if value is not None})
    elif initial_guess is not None:
        raise ValidationError("initial_guess must be BioreactorParameters or a mapping.")
    return BioreactorParameters.from_mapping(values)


def _perturbation(value: float) -> float:
    step = abs(value) * SENSITIVITY_EPSILON
    return step if step > 0 else SENSITIVITY_EPSILON


def sensitivity_analysis(
    context: EvaluationContext,
    optimum: BioreactorParameters,
) -> tuple[SensitivityEntry, ...]:
    """Local derivative magnitude and near-optimal range for each base parameter.

    The range is the span of a uniform sweep over the constraint interval whose
    objective stays within 5% of the value at ``optimum``.
    """
    base_value = fitness(context, optimum)
    threshold = base_value - OPTIMAL_RANGE_FRACTION * abs(base_value)
    entries = []
    for name in BASE_FIELDS:
        value = getattr(optimum, name)
        step = _perturbation(value)
        upper = fitness(context, optimum.replace(**{name: value + step}))
        lower = fitness(context, optimum.replace(**{name: value - step}))
        derivative = (upper - lower) / (2.0 * step)

        interval: Interval = getattr(context.constraints, name)
        samples = np.linspace(interval.low, interval.high, SENSITIVITY_SAMPLES)
        kept = [
            float(sample)
            for sample in samples
            if fitness(context, optimum.replace(**{name: float(sample)})) >= threshold
        ]
        if kept:
            optimal_range = Interval(min(kept), max(kept))
        else:
            spread = abs(value) * FALLBACK_RANGE_FRACTION
            optimal_range = Interval(value - spread, value + spread)
        entries.append(
            SensitivityEntry(
                parameter=name,
                sensitivity=abs(derivative) if math.isfinite(derivative) else 0.0,
                optimal_range=optimal_range,
            )
        )
    return tuple(entries)


class OptimizationEngine:
    """Run one optimization and attach sensitivity data to successful results."""

    def optimize(
        self,
        objective: OptimizationObjective,
        constraints: OptimizationConstraints,
        settings: OptimizationSettings,
        oracle: Oracle,
        initial_guess: GuessLike = None,
        *,
        device: Optional[BioreactorModel] = None,
        rng: Optional[np.random.Generator] = None,
        with_sensitivity: bool = True,
    ) -> OptimizationResult:
        context = EvaluationContext.create(
            objective,
            constraints,
            settings,
            oracle,
            rng=rng,
            device=device,
        )
        guess = default_initial_guess(constraints, initial_guess)
        optimizer = build_optimizer(context)
        logger.info(
            "Optimizing %s with %s.",
            objective.kind.value,
            settings.algorithm.value,
        )
        result = optimizer.optimize(guess)
        logger.info(
            "%s finished: success=%s objective=%g iterations=%d",
            settings.algorithm.value,
            result.success,
            result.objective_value,
            result.iterations,
        )
        if (
            with_sensitivity
            and result.success
            and settings.algorithm not in SKIP_SENSITIVITY
        ):
            result = replace(
                result,
                sensitivity=sensitivity_analysis(context, result.optimized_parameters),
            )
        return result


__all__ = [
    "OPTIMIZERS",
    "OptimizationEngine",
    "build_optimizer",
    "default_initial_guess",
    "sensitivity_analysis",
]

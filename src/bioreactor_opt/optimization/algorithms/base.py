"""Optimizer contract shared by every search strategy."""

from __future__ import annotations

from typing import Protocol

import numpy as np

from bioreactor_opt.optimization.evaluation import EvaluationContext
from bioreactor_opt.optimization.problem import Algorithm, OptimizationResult
from bioreactor_opt.parameters import BioreactorParameters


class Optimizer(Protocol):
    algorithm: Algorithm

    def __init__(self, context: EvaluationContext) -> None: ...

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult: ...


def initial_population(
    context: EvaluationContext,
    initial_guess: BioreactorParameters,
    size: int,
) -> list[np.ndarray]:
    """Clamped initial guess followed by uniform samples from the box."""
    space = context.space
    population = [space.clip(space.to_vector(initial_guess))]
    while len(population) < size:
        population.append(space.sample(context.rng))
    return population


__all__ = ["Optimizer", "initial_population"]

"""Sample-efficient search with a nearest-neighbour acquisition proxy.

This is not a Gaussian-process optimizer. The predicted value of a candidate
is the value of its nearest observation, and its uncertainty grows with the
scaled distance to that observation. The three acquisition functions combine
those two numbers differently:

* ``EI``: improvement over the incumbent plus the uncertainty bonus.
* ``PI``: a normal-CDF probability of beating the incumbent.
* ``UCB``: predicted value plus a multiple of the uncertainty.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from bioreactor_opt.optimization.evaluation import (
    EvaluationContext,
    finalize,
    fitness,
    record,
)
from bioreactor_opt.optimization.problem import (
    AcquisitionFunction,
    Algorithm,
    HistoryEntry,
    OptimizationResult,
)
from bioreactor_opt.parameters import DISTANCE_SCALES, BioreactorParameters

logger = logging.getLogger(__name__)

INITIAL_SAMPLES = 10
CANDIDATES_PER_STEP = 100
UNCERTAINTY_WEIGHT = 10.0
UCB_KAPPA = 2.0
PLATEAU_MIN_EVALUATIONS = 20
PLATEAU_WINDOW = 10

# Abramowitz & Stegun 7.1.26, max error ~1.5e-7.
_ERF_COEFFICIENTS = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)
_ERF_P = 0.3275911


def erf(x: np.ndarray) -> np.ndarray:
    """Elementwise error function."""
    x = np.asarray(x, dtype=float)
    magnitude = np.abs(x)
    t = 1.0 / (1.0 + _ERF_P * magnitude)
    poly = np.zeros_like(t)
    for coefficient in reversed(_ERF_COEFFICIENTS):
        poly = (poly + coefficient) * t
    return np.sign(x) * (1.0 - poly * np.exp(-(magnitude**2)))


class BayesianOptimizer:
    algorithm = Algorithm.BAYESIAN

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self.acquisition = context.settings.acquisition_function
        self.scales = context.space.spans(DISTANCE_SCALES)

    def stratified_samples(self, count: int) -> np.ndarray:
        space = self.context.space
        dims = len(space)
        offsets = np.arange(count)[:, None] + self.context.rng.random((count, dims))
        return space.lows + offsets / count * (space.highs - space.lows)

    def acquisition_values(
        self,
        candidates: np.ndarray,
        observed: np.ndarray,
        values: np.ndarray,
    ) -> np.ndarray:
        deltas = (candidates[:, None, :] - observed[None, :, :]) / self.scales
        distances = np.sqrt(np.sum(deltas**2, axis=2))
        nearest = np.argmin(distances, axis=1)
        predicted = values[nearest]
        uncertainty = UNCERTAINTY_WEIGHT * distances[np.arange(len(candidates)), nearest]
        incumbent = float(np.max(values))
        if self.acquisition is AcquisitionFunction.EI:
            return np.maximum(0.0, predicted - incumbent) + uncertainty
        if self.acquisition is AcquisitionFunction.PI:
            z = (predicted - incumbent) / np.maximum(uncertainty, 1e-12)
            return 0.5 * (1.0 + erf(z / math.sqrt(2.0)))
        if self.acquisition is AcquisitionFunction.UCB:
            return predicted + UCB_KAPPA * uncertainty
        raise ValueError(f"Unhandled acquisition function: {self.acquisition!r}")

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult:
        ctx = self.context
        space = ctx.space
        settings = ctx.settings
        history: list[HistoryEntry] = []
        observed: list[np.ndarray] = []
        values: list[float] = []
        iteration = 0

        def observe(vector: np.ndarray) -> None:
            nonlocal iteration
            params = space.to_parameters(vector, initial_guess)
            value = fitness(ctx, params)
            observed.append(vector)
            values.append(value)
            record(history, iteration, value, params)
            iteration += 1

        initial_count = max(1, min(INITIAL_SAMPLES, settings.max_iterations))
        logger.info(
            "Bayesian search: %d stratified samples, acquisition=%s, budget=%d.",
            initial_count,
            self.acquisition.value,
            settings.max_iterations,
        )
        for vector in self.stratified_samples(initial_count):
            observe(vector)

        while iteration < settings.max_iterations:
            candidates = space.lows + ctx.rng.random((CANDIDATES_PER_STEP, len(space))) * (
                space.highs - space.lows
            )
            scores = self.acquisition_values(candidates, np.array(observed), np.array(values))
            observe(candidates[int(np.argmax(scores))])
            logger.debug("Bayesian step %d: value=%g", iteration - 1, values[-1])
            if iteration > PLATEAU_MIN_EVALUATIONS:
                recent = values[-PLATEAU_WINDOW:]
                if max(recent) - min(recent) < settings.convergence_tolerance:
                    logger.info("Bayesian search plateaued after %d evaluations.", iteration)
                    break

        best = int(np.argmax(values))
        return finalize(
            ctx,
            space.to_parameters(observed[best], initial_guess),
            iterations=iteration,
            history=history,
            algorithm=self.algorithm,
            value=values[best],
        )


__all__ = ["BayesianOptimizer", "erf"]

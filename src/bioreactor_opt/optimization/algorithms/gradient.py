"""Projected gradient descent with central-difference derivatives."""

from __future__ import annotations

import logging

import numpy as np

from bioreactor_opt.optimization.evaluation import (
    EvaluationContext,
    finalize,
    objective_score,
    record,
)
from bioreactor_opt.optimization.problem import Algorithm, HistoryEntry, OptimizationResult
from bioreactor_opt.parameters import BioreactorParameters

logger = logging.getLogger(__name__)

FINITE_DIFFERENCE_STEP = 1e-6
SCORE_FLOOR = 1e-9


class GradientDescentOptimizer:
    """Deterministic descent on the scalarized objective, clamped to the box.

    The fixed learning rate applies in box-normalised coordinates to the
    relative change of the score. Stops when every projected partial
    derivative is within the convergence tolerance (checked before a step is
    taken) or the iteration budget runs out.
    """

    algorithm = Algorithm.GRADIENT_DESCENT

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self.learning_rate = context.settings.learning_rate
        self.step = FINITE_DIFFERENCE_STEP
        space = context.space
        self.widths = np.maximum(space.highs - space.lows, FINITE_DIFFERENCE_STEP)

    def _score(self, vector: np.ndarray, template: BioreactorParameters) -> float:
        return objective_score(self.context, self.context.space.to_parameters(vector, template))

    def gradient(self, vector: np.ndarray, template: BioreactorParameters) -> np.ndarray:
        grad = np.zeros_like(vector)
        for index in range(len(vector)):
            forward = vector.copy()
            backward = vector.copy()
            forward[index] += self.step
            backward[index] -= self.step
            grad[index] = (
                self._score(forward, template) - self._score(backward, template)
            ) / (2.0 * self.step)
        return grad

    def scaled_gradient(self, vector: np.ndarray, grad: np.ndarray, score: float) -> np.ndarray:
        """Gradient per box width relative to ``|score|``, zeroed where a bound blocks descent."""
        space = self.context.space
        scaled = grad * self.widths / max(abs(score), SCORE_FLOOR)
        blocked = ((vector <= space.lows) & (scaled > 0.0)) | (
            (vector >= space.highs) & (scaled < 0.0)
        )
        scaled[blocked] = 0.0
        return scaled

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult:
        ctx = self.context
        space = ctx.space
        settings = ctx.settings
        current = space.clip(space.to_vector(initial_guess))
        history: list[HistoryEntry] = []
        iteration = 0
        logger.info(
            "Gradient descent: lr=%g, tolerance=%g, budget=%d.",
            self.learning_rate,
            settings.convergence_tolerance,
            settings.max_iterations,
        )
        while iteration < settings.max_iterations:
            params = space.to_parameters(current, initial_guess)
            score = self._score(current, initial_guess)
            record(history, iteration, -score, params)
            scaled = self.scaled_gradient(current, self.gradient(current, initial_guess), score)
            if np.all(np.abs(scaled) <= settings.convergence_tolerance):
                logger.info("Gradient descent converged after %d step(s).", iteration)
                break
            current = space.clip(current - self.learning_rate * self.widths * scaled)
            logger.debug(
                "Gradient descent step %d: score=%g |grad|=%g",
                iteration,
                score,
                float(np.linalg.norm(scaled)),
            )
            iteration += 1
        final = space.to_parameters(current, initial_guess)
        return finalize(
            ctx,
            final,
            iterations=iteration,
            history=history,
            algorithm=self.algorithm,
        )


__all__ = ["FINITE_DIFFERENCE_STEP", "SCORE_FLOOR", "GradientDescentOptimizer"]

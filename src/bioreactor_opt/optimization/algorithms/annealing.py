"""Simulated annealing with linear, exponential or adaptive cooling."""

from __future__ import annotations

import logging
import math

import numpy as np

from bioreactor_opt.optimization.evaluation import (
    EvaluationContext,
    finalize,
    has_plateaued,
    objective_score,
    record,
)
from bioreactor_opt.optimization.problem import (
    Algorithm,
    HistoryEntry,
    OptimizationResult,
    TemperatureSchedule,
)
from bioreactor_opt.parameters import MUTATION_SPANS, BioreactorParameters

logger = logging.getLogger(__name__)

INITIAL_TEMPERATURE_FRACTION = 0.1
COOLING_RATE = 0.95
MIN_TEMPERATURE = 1e-9
MIN_STEP_FRACTION = 0.05
ADAPTIVE_WINDOW = 10
TARGET_ACCEPTANCE = 0.3


class SimulatedAnnealingOptimizer:
    """Metropolis random walk whose temperature follows ``temperature_schedule``.

    The starting temperature is a fraction of the initial score's magnitude,
    so the acceptance test is insensitive to the units of the objective.
    Neighbour steps shrink with the temperature.
    """

    algorithm = Algorithm.SIMULATED_ANNEALING

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self.schedule = context.settings.temperature_schedule
        self.step_spans = context.space.spans(MUTATION_SPANS)

    def temperature(
        self,
        initial: float,
        current: float,
        iteration: int,
        acceptance: float,
    ) -> float:
        budget = max(self.context.settings.max_iterations, 1)
        if self.schedule is TemperatureSchedule.LINEAR:
            value = initial * (1.0 - iteration / budget)
        elif self.schedule is TemperatureSchedule.EXPONENTIAL:
            value = initial * COOLING_RATE**iteration
        elif self.schedule is TemperatureSchedule.ADAPTIVE:
            # Cool faster while most moves are accepted, slower when stuck.
            factor = COOLING_RATE if acceptance >= TARGET_ACCEPTANCE else math.sqrt(COOLING_RATE)
            value = current * factor
        else:
            raise ValueError(f"Unhandled temperature schedule: {self.schedule!r}")
        return max(value, MIN_TEMPERATURE)

    def neighbour(self, vector: np.ndarray, scale: float) -> np.ndarray:
        rng = self.context.rng
        step = (rng.random(len(vector)) - 0.5) * self.step_spans * max(scale, MIN_STEP_FRACTION)
        return self.context.space.clip(vector + step)

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult:
        ctx = self.context
        space = ctx.space
        settings = ctx.settings

        current = space.clip(space.to_vector(initial_guess))
        current_score = objective_score(ctx, space.to_parameters(current, initial_guess))
        best, best_score = current.copy(), current_score
        initial_temperature = max(abs(current_score), 1.0) * INITIAL_TEMPERATURE_FRACTION
        temperature = initial_temperature
        accepted: list[bool] = []
        walk: list[float] = []
        history: list[HistoryEntry] = []
        iteration = 0
        logger.info(
            "Simulated annealing: schedule=%s, T0=%g, budget=%d.",
            self.schedule.value,
            initial_temperature,
            settings.max_iterations,
        )
        while iteration < settings.max_iterations:
            candidate = self.neighbour(current, temperature / initial_temperature)
            candidate_score = objective_score(ctx, space.to_parameters(candidate, initial_guess))
            delta = candidate_score - current_score
            accept = delta <= 0 or ctx.rng.random() < math.exp(-delta / temperature)
            accepted.append(accept)
            if accept:
                current, current_score = candidate, candidate_score
                if current_score < best_score:
                    best, best_score = current.copy(), current_score

            walk.append(-current_score)
            record(history, iteration, -best_score, space.to_parameters(best, initial_guess))
            logger.debug(
                "Annealing step %d: T=%g current=%g best=%g",
                iteration,
                temperature,
                current_score,
                best_score,
            )
            iteration += 1
            if has_plateaued(walk, settings.convergence_tolerance):
                logger.info("Simulated annealing converged after %d step(s).", iteration)
                break
            recent = accepted[-ADAPTIVE_WINDOW:]
            temperature = self.temperature(
                initial_temperature,
                temperature,
                iteration,
                sum(recent) / len(recent),
            )

        return finalize(
            ctx,
            space.to_parameters(best, initial_guess),
            iterations=iteration,
            history=history,
            algorithm=self.algorithm,
            value=-best_score,
        )


__all__ = ["SimulatedAnnealingOptimizer"]

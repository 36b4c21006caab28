"""Constriction-form particle swarm optimization."""

from __future__ import annotations

import logging
import math

import numpy as np

from bioreactor_opt.optimization.algorithms.base import initial_population
from bioreactor_opt.optimization.evaluation import (
    EvaluationContext,
    finalize,
    fitness,
    has_plateaued,
    record,
)
from bioreactor_opt.optimization.problem import Algorithm, HistoryEntry, OptimizationResult
from bioreactor_opt.parameters import VELOCITY_SPANS, BioreactorParameters

logger = logging.getLogger(__name__)

DEFAULT_SWARM_SIZE = 30
INERTIA = 0.729
COGNITIVE = 1.49445
SOCIAL = 1.49445


class ParticleSwarmOptimizer:
    algorithm = Algorithm.PARTICLE_SWARM

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self.swarm_size = context.settings.population_size or DEFAULT_SWARM_SIZE
        self.velocity_spans = context.space.spans(VELOCITY_SPANS)

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult:
        ctx = self.context
        space = ctx.space
        rng = ctx.rng
        settings = ctx.settings
        dims = len(space)

        positions = initial_population(ctx, initial_guess, self.swarm_size)
        velocities = [(rng.random(dims) - 0.5) * self.velocity_spans for _ in positions]
        personal_best = [position.copy() for position in positions]
        personal_scores = np.full(self.swarm_size, -math.inf)
        global_best = positions[0].copy()
        global_score = -math.inf

        history: list[HistoryEntry] = []
        bests: list[float] = []
        iteration = 0
        logger.info(
            "Particle swarm: swarm=%d, budget=%d.", self.swarm_size, settings.max_iterations
        )
        while iteration < settings.max_iterations:
            for index, position in enumerate(positions):
                score = fitness(ctx, space.to_parameters(position, initial_guess))
                if score > personal_scores[index]:
                    personal_scores[index] = score
                    personal_best[index] = position.copy()
                if score > global_score:
                    global_score = score
                    global_best = position.copy()

            bests.append(global_score)
            record(history, iteration, global_score, space.to_parameters(global_best, initial_guess))
            logger.debug("Swarm iteration %d: best=%g", iteration, global_score)
            if has_plateaued(bests, settings.convergence_tolerance):
                logger.info("Particle swarm converged at iteration %d.", iteration)
                break

            for index in range(self.swarm_size):
                r1 = rng.random(dims)
                r2 = rng.random(dims)
                velocities[index] = (
                    INERTIA * velocities[index]
                    + COGNITIVE * r1 * (personal_best[index] - positions[index])
                    + SOCIAL * r2 * (global_best - positions[index])
                )
                positions[index] = space.clip(positions[index] + velocities[index])
            iteration += 1

        return finalize(
            ctx,
            space.to_parameters(global_best, initial_guess),
            iterations=iteration,
            history=history,
            algorithm=self.algorithm,
            value=global_score if math.isfinite(global_score) else None,
        )


__all__ = ["DEFAULT_SWARM_SIZE", "ParticleSwarmOptimizer"]

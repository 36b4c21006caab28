"""Elitist genetic algorithm over the constraint box."""

from __future__ import annotations

import logging

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
from bioreactor_opt.parameters import MUTATION_SPANS, BioreactorParameters

logger = logging.getLogger(__name__)

DEFAULT_POPULATION_SIZE = 50
ELITE_FRACTION = 0.1
TOURNAMENT_SIZE = 3
CROSSOVER_RATE = 0.8
GENE_SWAP_RATE = 0.5
MUTATION_RATE = 0.1


class GeneticAlgorithmOptimizer:
    algorithm = Algorithm.GENETIC_ALGORITHM

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self.population_size = context.settings.population_size or DEFAULT_POPULATION_SIZE
        self.elite_size = int(self.population_size * ELITE_FRACTION)
        self.mutation_spans = context.space.spans(MUTATION_SPANS)

    def _evaluate(self, population: list[np.ndarray], template: BioreactorParameters) -> np.ndarray:
        space = self.context.space
        return np.array(
            [fitness(self.context, space.to_parameters(vector, template)) for vector in population]
        )

    def _tournament(self, population: list[np.ndarray], scores: np.ndarray) -> np.ndarray:
        picks = self.context.rng.integers(0, len(population), size=TOURNAMENT_SIZE)
        winner = picks[int(np.argmax(scores[picks]))]
        return population[winner]

    def _crossover(
        self,
        first: np.ndarray,
        second: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        swap = self.context.rng.random(len(first)) < GENE_SWAP_RATE
        return np.where(swap, second, first), np.where(swap, first, second)

    def _mutate(self, vector: np.ndarray) -> np.ndarray:
        rng = self.context.rng
        hit = rng.random(len(vector)) < MUTATION_RATE
        delta = (rng.random(len(vector)) - 0.5) * self.mutation_spans
        return self.context.space.clip(vector + np.where(hit, delta, 0.0))

    def _breed(self, population: list[np.ndarray], scores: np.ndarray) -> list[np.ndarray]:
        offspring = [vector.copy() for vector in population[: self.elite_size]]
        while len(offspring) < self.population_size:
            first = self._tournament(population, scores)
            second = self._tournament(population, scores)
            if self.context.rng.random() < CROSSOVER_RATE:
                child_a, child_b = self._crossover(first, second)
                offspring.append(self._mutate(child_a))
                if len(offspring) < self.population_size:
                    offspring.append(self._mutate(child_b))
            else:
                offspring.append(self._mutate(first.copy()))
        return offspring

    def optimize(self, initial_guess: BioreactorParameters) -> OptimizationResult:
        ctx = self.context
        space = ctx.space
        settings = ctx.settings
        population = initial_population(ctx, initial_guess, self.population_size)
        history: list[HistoryEntry] = []
        bests: list[float] = []
        iteration = 0
        logger.info(
            "Genetic algorithm: population=%d, elite=%d, budget=%d.",
            self.population_size,
            self.elite_size,
            settings.max_iterations,
        )
        while iteration < settings.max_iterations:
            scores = self._evaluate(population, initial_guess)
            order = np.argsort(-scores, kind="stable")
            population = [population[index] for index in order]
            scores = scores[order]
            bests.append(float(scores[0]))
            record(history, iteration, float(scores[0]), space.to_parameters(population[0], initial_guess))
            logger.debug("Generation %d: best=%g", iteration, scores[0])
            if has_plateaued(bests, settings.convergence_tolerance):
                logger.info("Genetic algorithm converged at generation %d.", iteration)
                break
            population = self._breed(population, scores)
            iteration += 1

        scores = self._evaluate(population, initial_guess)
        best = int(np.argmax(scores))
        return finalize(
            ctx,
            space.to_parameters(population[best], initial_guess),
            iterations=iteration,
            history=history,
            algorithm=self.algorithm,
            value=float(scores[best]),
        )


__all__ = ["DEFAULT_POPULATION_SIZE", "GeneticAlgorithmOptimizer"]

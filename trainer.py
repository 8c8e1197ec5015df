"""
Evolutionary Trainer for TankEvo.

Orchestrates the genetic search, one cycle per generation:

  IDLE → EVALUATING → SELECTING → REPRODUCING → (loop) → DONE | CANCELLED

    1. Score every population member with the FitnessEvaluator
    2. Rank by fitness, keep the top fraction, update BestGenome
    3. Refill the population with mutated clones of the survivors
    4. Log stats, checkpoint BestGenome every few generations
"""

import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import numpy as np

from config import (POPULATION, MAX_GENERATIONS, EPISODES, TICKS_PER_EPISODE,
                    MUTATION_RATE, MUTATION_STRENGTH, SURVIVOR_FRACTION,
                    CHECKPOINT_INTERVAL, WORST_FITNESS)
from errors import ConfigurationError, PersistenceError
from fitness import FitnessEvaluator, clamp_fitness
from genome import Genome, population_diversity

log = logging.getLogger(__name__)


class TrainerState(Enum):
    IDLE        = "idle"
    EVALUATING  = "evaluating"
    SELECTING   = "selecting"
    REPRODUCING = "reproducing"
    DONE        = "done"
    CANCELLED   = "cancelled"


class BestGenomeSlot:
    """
    The one piece of state shared between training workers and live play.
    Writers hand in a genome, readers get a private clone; nobody ever sees
    a genome that is still being mutated.
    """

    def __init__(self, genome: Genome = None, fitness: float = -math.inf):
        self._lock    = threading.Lock()
        self._genome  = genome.clone() if genome is not None else None
        self._fitness = fitness if genome is not None else -math.inf
        self.version  = 0

    def offer(self, genome: Genome, fitness: float) -> bool:
        """Replace the held genome only if `fitness` is strictly greater."""
        with self._lock:
            if not fitness > self._fitness:
                return False
            self._genome  = genome.clone()
            self._fitness = float(fitness)
            self.version += 1
            return True

    def read(self):
        """(clone of best genome or None, its fitness)"""
        with self._lock:
            genome = self._genome.clone() if self._genome is not None else None
            return genome, self._fitness

    @property
    def fitness(self) -> float:
        with self._lock:
            return self._fitness

    @property
    def empty(self) -> bool:
        with self._lock:
            return self._genome is None


class Trainer:
    """
    Genetic search over fixed-topology controller genomes.
    """

    def __init__(
        self,
        population:          int   = POPULATION,
        max_generations:     int   = MAX_GENERATIONS,
        episodes:            int   = EPISODES,
        ticks_per_episode:   int   = TICKS_PER_EPISODE,
        mutation_rate:       float = MUTATION_RATE,
        mutation_strength:   float = MUTATION_STRENGTH,
        survivor_fraction:   float = SURVIVOR_FRACTION,
        seed:                int   = None,
        evaluator                  = None,
        best:  BestGenomeSlot      = None,
        store                      = None,   # GenomeStore for checkpoints
        checkpoint_interval: int   = CHECKPOINT_INTERVAL,
        workers:             int   = 1,
        seed_genome: Genome        = None,   # e.g. the genome loaded from disk
        on_gen_callback            = None,   # called at end of each generation
        stop_event: threading.Event = None,
    ):
        if population < 1:
            raise ConfigurationError(f"population must be >= 1, got {population}")
        if max_generations < 0:
            raise ConfigurationError("max_generations must be >= 0")
        if episodes < 1 or ticks_per_episode < 1:
            raise ConfigurationError("episodes and ticks_per_episode must be >= 1")
        if not 0.0 < survivor_fraction <= 1.0:
            raise ConfigurationError("survivor_fraction must be in (0, 1]")
        if workers < 1:
            raise ConfigurationError("workers must be >= 1")

        self.population        = population
        self.max_generations   = max_generations
        self.episodes          = episodes
        self.ticks_per_episode = ticks_per_episode
        self.mutation_rate     = mutation_rate
        self.mutation_strength = mutation_strength
        self.n_survivors       = max(1, int(round(population * survivor_fraction)))
        self.rng               = np.random.default_rng(seed)
        self.evaluator         = evaluator if evaluator is not None else FitnessEvaluator()
        self.best              = best if best is not None else BestGenomeSlot()
        self.store             = store
        self.checkpoint_interval = checkpoint_interval
        self.workers           = workers
        self.on_gen_callback   = on_gen_callback
        self.stop_event        = stop_event if stop_event is not None else threading.Event()

        self.state      = TrainerState.IDLE
        self.generation = 0            # completed generations
        self.stats      = []           # list of dicts, one per generation
        self.checkpoint_failures = 0
        self.genomes    = self._initial_population(seed_genome)
        self.fitnesses  = []

    # ──────────────────────────────────────────────────────────────────────────
    # Public API
    # ──────────────────────────────────────────────────────────────────────────

    def run(self) -> BestGenomeSlot:
        """Run until max_generations or cancellation; returns the BestGenome slot."""
        while self.generation < self.max_generations:
            if self.stop_event.is_set():
                self.state = TrainerState.CANCELLED
                log.info("training cancelled after %d generations", self.generation)
                return self.best
            self.run_generation()
        self.state = TrainerState.DONE
        return self.best

    def cancel(self):
        """Stop after the generation currently in flight."""
        self.stop_event.set()

    def run_generation(self) -> dict:
        """One full evaluate → select → reproduce cycle."""
        gen_idx = self.generation
        t0 = time.time()

        self.state = TrainerState.EVALUATING
        fitnesses = self._evaluate(self.genomes)

        self.state = TrainerState.SELECTING
        survivors = self._select(self.genomes, fitnesses)

        stats = self._compute_stats(gen_idx, fitnesses)

        self.state = TrainerState.REPRODUCING
        self.fitnesses = fitnesses
        self.genomes   = self._reproduce(survivors)
        self.generation += 1
        self.state = TrainerState.IDLE

        stats["elapsed_s"] = round(time.time() - t0, 3)
        self.stats.append(stats)
        self._print_stats(gen_idx, stats)

        if self.store is not None and self.checkpoint_interval > 0 \
                and self.generation % self.checkpoint_interval == 0:
            self.checkpoint()

        if self.on_gen_callback:
            self.on_gen_callback(gen_idx, stats, self)
        return stats

    def checkpoint(self) -> bool:
        """Best-effort save of BestGenome; failures are logged, never raised."""
        if self.store is None:
            return False
        genome, fitness = self.best.read()
        if genome is None:
            return False
        try:
            self.store.save(genome)
        except PersistenceError as exc:
            self.checkpoint_failures += 1
            log.warning("checkpoint failed (will retry next time): %s", exc)
            return False
        log.info("checkpoint saved (fitness %.2f)", fitness)
        return True

    # ──────────────────────────────────────────────────────────────────────────
    # Generation phases
    # ──────────────────────────────────────────────────────────────────────────

    def _initial_population(self, seed_genome) -> list:
        if seed_genome is None:
            return [Genome.random(self.rng) for _ in range(self.population)]
        genomes = [seed_genome.clone()]
        while len(genomes) < self.population:
            genomes.append(seed_genome.clone().mutate(
                self.mutation_rate, self.mutation_strength, self.rng))
        return genomes

    def _evaluate(self, genomes: list) -> list:
        """
        Fitness per genome, in population order.  Every member gets its own
        child seed up front, so the result does not depend on which worker
        finishes first.
        """
        seeds = self.rng.integers(0, 2**63 - 1, size=len(genomes))
        pool  = tuple(genomes)

        def score(i):
            raw = self.evaluator.evaluate(
                genomes[i], pool, self.episodes, self.ticks_per_episode,
                rng=np.random.default_rng(int(seeds[i])))
            return clamp_fitness(raw, WORST_FITNESS)

        if self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as ex:
                return list(ex.map(score, range(len(genomes))))
        return [score(i) for i in range(len(genomes))]

    def _select(self, genomes: list, fitnesses: list) -> list:
        """
        Stable descending rank (ties by population index); offers the
        generation best to BestGenome and returns the top survivors.
        """
        order = sorted(range(len(genomes)), key=lambda i: (-fitnesses[i], i))
        top = order[0]
        if self.best.offer(genomes[top], fitnesses[top]):
            log.debug("new best genome: %.3f", fitnesses[top])
        return [genomes[i] for i in order[:self.n_survivors]]

    def _reproduce(self, survivors: list) -> list:
        """
        Slot 0 is always reseeded from BestGenome; every other slot is a
        mutated clone of a survivor drawn uniformly with replacement.
        """
        best_genome, _ = self.best.read()
        new_genomes = [best_genome]
        n = len(survivors)
        while len(new_genomes) < self.population:
            parent = survivors[int(self.rng.integers(0, n))]
            child = parent.clone().mutate(self.mutation_rate,
                                          self.mutation_strength, self.rng)
            new_genomes.append(child)
        return new_genomes[:self.population]

    # ──────────────────────────────────────────────────────────────────────────
    # Stats
    # ──────────────────────────────────────────────────────────────────────────

    def _compute_stats(self, gen_idx: int, fitnesses: list) -> dict:
        scores = np.asarray(fitnesses, dtype=np.float64)
        return {
            "generation": gen_idx,
            "best":       float(scores.max()),
            "average":    float(scores.mean()),
            "worst":      float(scores.min()),
            "std_dev":    float(scores.std()),
            "best_ever":  self.best.fitness,
            "diversity":  population_diversity(self.genomes, rng=self.rng),
            "diverged":   int((scores <= WORST_FITNESS).sum()),
        }

    def _print_stats(self, gen_idx: int, stats: dict):
        if gen_idx % 10 == 0 or gen_idx < 5:
            print(
                f"Gen {gen_idx:>5}  |  "
                f"best {stats['best']:>8.2f}  |  "
                f"avg {stats['average']:>8.2f}  |  "
                f"best ever {stats['best_ever']:>8.2f}  |  "
                f"diversity {stats['diversity']:.3f}  |  "
                f"{stats['elapsed_s']:.2f}s"
            )

import itertools
import logging
import math
import threading

import numpy as np
import pytest

from config import WORST_FITNESS
from errors import ConfigurationError, PersistenceError
from fitness import FitnessEvaluator
from genome import Genome
from trainer import BestGenomeSlot, Trainer, TrainerState


class BiasEvaluator:
    """Fitness is the first output bias, so it is a pure function of the genome."""

    def evaluate(self, genome, opponent_source=None, episodes=1,
                 ticks_per_episode=1, rng=None):
        return float(genome.output_bias[0])


class NoisyEvaluator:
    """Depends on the per-member generator, to check seeding across workers."""

    def evaluate(self, genome, opponent_source=None, episodes=1,
                 ticks_per_episode=1, rng=None):
        return float(genome.output_bias[0]) + float(rng.random())


class NaNEvaluator:
    """Every other call blows up."""

    def __init__(self):
        self.calls = itertools.count()

    def evaluate(self, genome, opponent_source=None, episodes=1,
                 ticks_per_episode=1, rng=None):
        return math.nan if next(self.calls) % 2 else 1.0


class FlakyStore:
    def __init__(self, failures=1):
        self.failures = failures
        self.saved = []

    def save(self, genome):
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("disk full")
        self.saved.append(genome)


# ──────────────────────────────────────────────────────────────────────────────
# BestGenomeSlot
# ──────────────────────────────────────────────────────────────────────────────

def test_slot_only_accepts_strictly_better_genomes(rng):
    slot = BestGenomeSlot()
    assert slot.empty
    assert slot.read() == (None, -math.inf)

    g = Genome.random(rng)
    assert slot.offer(g, 5.0)
    assert not slot.offer(Genome.random(rng), 5.0)
    assert not slot.offer(Genome.random(rng), 4.0)
    assert slot.version == 1

    held, fitness = slot.read()
    assert fitness == 5.0
    assert held.equals(g)


def test_slot_hands_out_private_clones(rng):
    g = Genome.random(rng)
    slot = BestGenomeSlot()
    slot.offer(g, 1.0)
    g.output_bias[:] = 99.0                     # the offerer keeps mutating
    first, _ = slot.read()
    first.hidden_bias[:] = -99.0                # a reader scribbles on its copy
    second, _ = slot.read()
    assert not second.equals(g)
    assert not second.equals(first)


# ──────────────────────────────────────────────────────────────────────────────
# Trainer
# ──────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("kwargs", [
    {"population": 0},
    {"max_generations": -1},
    {"episodes": 0},
    {"ticks_per_episode": 0},
    {"survivor_fraction": 0.0},
    {"survivor_fraction": 1.5},
    {"workers": 0},
])
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ConfigurationError):
        Trainer(evaluator=BiasEvaluator(), **kwargs)


def test_best_ever_never_decreases():
    trainer = Trainer(population=8, max_generations=8, mutation_rate=1.0,
                      mutation_strength=2.0, seed=3, evaluator=BiasEvaluator())
    best = trainer.run()
    assert trainer.state is TrainerState.DONE
    assert trainer.generation == 8

    history = [s["best_ever"] for s in trainer.stats]
    assert history == sorted(history)
    assert best.fitness == max(s["best"] for s in trainer.stats)
    assert best.fitness == history[-1]


def test_best_ever_never_decreases_with_real_episodes():
    trainer = Trainer(population=4, max_generations=3, episodes=1,
                      ticks_per_episode=200, seed=11,
                      evaluator=FitnessEvaluator())
    trainer.run()
    history = [s["best_ever"] for s in trainer.stats]
    assert history == sorted(history)
    assert not trainer.best.empty


def test_population_size_is_constant_and_slot_zero_is_the_best():
    trainer = Trainer(population=6, max_generations=0, seed=1,
                      evaluator=BiasEvaluator())
    trainer.run_generation()
    assert len(trainer.genomes) == 6
    best, _ = trainer.best.read()
    assert trainer.genomes[0].equals(best)


def test_selection_ranks_by_fitness_and_breaks_ties_by_index():
    trainer = Trainer(population=4, max_generations=0, survivor_fraction=1.0,
                      seed=1, evaluator=BiasEvaluator())
    genomes = list(trainer.genomes)

    survivors = trainer._select(genomes, [1.0, 3.0, 3.0, 2.0])
    assert [genomes.index(g) for g in survivors] == [1, 2, 3, 0]

    survivors = trainer._select(genomes, [0.0] * 4)
    assert all(s is g for s, g in zip(survivors, genomes))


def test_survivor_count_rounds_and_keeps_at_least_one():
    assert Trainer(population=10, survivor_fraction=0.25,
                   evaluator=BiasEvaluator()).n_survivors == 2
    assert Trainer(population=3, survivor_fraction=0.01,
                   evaluator=BiasEvaluator()).n_survivors == 1


def test_zero_mutation_rate_copies_survivors_exactly():
    trainer = Trainer(population=4, max_generations=0, mutation_rate=0.0,
                      survivor_fraction=0.5, seed=2, evaluator=BiasEvaluator())
    before = [g.clone() for g in trainer.genomes]
    trainer.run_generation()
    for child in trainer.genomes:
        assert any(child.equals(parent) for parent in before)


def test_keeping_every_survivor_still_mutates_the_population():
    trainer = Trainer(population=6, max_generations=5, mutation_rate=1.0,
                      survivor_fraction=1.0, seed=8, evaluator=BiasEvaluator())
    initial = [g.clone() for g in trainer.genomes]
    trainer.run()
    unchanged = [g for g in trainer.genomes
                 if any(g.equals(old) for old in initial)]
    assert len(unchanged) < len(trainer.genomes)


def test_only_slot_zero_is_an_unmutated_copy():
    trainer = Trainer(population=6, max_generations=0, mutation_rate=1.0,
                      survivor_fraction=0.5, seed=10, evaluator=BiasEvaluator())
    before = [g.clone() for g in trainer.genomes]
    trainer.run_generation()
    best, _ = trainer.best.read()
    assert trainer.genomes[0].equals(best)
    for child in trainer.genomes[1:]:
        assert not any(child.equals(parent) for parent in before)


def test_seed_genome_starts_the_population(rng):
    seed = Genome.random(rng)
    trainer = Trainer(population=5, max_generations=0, seed=1,
                      seed_genome=seed, evaluator=BiasEvaluator())
    assert trainer.genomes[0].equals(seed)
    assert trainer.genomes[0] is not seed
    assert len(trainer.genomes) == 5


def test_non_finite_fitness_is_clamped_and_training_continues():
    trainer = Trainer(population=10, max_generations=2, seed=4,
                      evaluator=NaNEvaluator())
    trainer.run()
    assert trainer.state is TrainerState.DONE
    first = trainer.stats[0]
    assert first["worst"] == WORST_FITNESS
    assert first["diverged"] >= 1
    assert all(math.isfinite(f) for f in trainer.fitnesses)


def test_parallel_evaluation_matches_sequential():
    def fitnesses(workers):
        trainer = Trainer(population=8, max_generations=0, seed=9,
                          workers=workers, evaluator=NoisyEvaluator())
        trainer.run_generation()
        return trainer.fitnesses

    assert fitnesses(1) == fitnesses(4)


def test_stop_event_cancels_at_the_next_generation_boundary():
    stop = threading.Event()

    def on_gen(gen_idx, stats, trainer):
        if gen_idx == 1:
            stop.set()

    trainer = Trainer(population=4, max_generations=10, seed=5,
                      evaluator=BiasEvaluator(), on_gen_callback=on_gen,
                      stop_event=stop)
    best = trainer.run()
    assert trainer.state is TrainerState.CANCELLED
    assert trainer.generation == 2
    assert len(trainer.stats) == 2
    assert not best.empty


def test_cancel_before_start_runs_nothing(caplog, capsys):
    trainer = Trainer(population=4, max_generations=5, evaluator=BiasEvaluator())
    trainer.cancel()
    with caplog.at_level(logging.INFO, logger="trainer"):
        best = trainer.run()
    assert "training cancelled after 0 generations" in caplog.text
    assert capsys.readouterr().out == ""
    assert trainer.state is TrainerState.CANCELLED
    assert trainer.generation == 0
    assert best.empty


def test_failed_checkpoint_is_counted_and_retried():
    store = FlakyStore(failures=1)
    trainer = Trainer(population=4, max_generations=3, seed=6,
                      evaluator=BiasEvaluator(), store=store,
                      checkpoint_interval=1)
    trainer.run()
    assert trainer.state is TrainerState.DONE
    assert trainer.checkpoint_failures == 1
    assert len(store.saved) == 2
    best, _ = trainer.best.read()
    assert store.saved[-1].equals(best)


def test_checkpoint_without_a_best_genome_is_a_no_op():
    store = FlakyStore(failures=0)
    trainer = Trainer(population=2, max_generations=0, evaluator=BiasEvaluator(),
                      store=store)
    assert trainer.checkpoint() is False
    assert store.saved == []


def test_stats_have_the_documented_keys():
    trainer = Trainer(population=4, max_generations=1, seed=7,
                      evaluator=BiasEvaluator())
    trainer.run()
    stats = trainer.stats[0]
    assert set(stats) == {"generation", "best", "average", "worst", "std_dev",
                          "best_ever", "diversity", "diverged", "elapsed_s"}
    assert stats["worst"] <= stats["average"] <= stats["best"] <= stats["best_ever"]
    assert np.isfinite(stats["diversity"])

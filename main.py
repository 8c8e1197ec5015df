"""
TankEvo – Training CLI
======================

Usage examples:
  python main.py                          # default run, resumes trained_net.json
  python main.py --gens 200 --pop 40      # custom parameters
  python main.py --episodes 5 --ticks 900 # longer, less noisy evaluation
  python main.py --seed 7 --no_resume     # reproducible fresh start
  python main.py --workers 4              # evaluate genomes in parallel

Exit codes: 0 on success, 1 if the final save failed, 2 on invalid settings.
"""

import argparse
import logging
import os
import sys

from config import (SAVE_DIR, GENOME_PATH, POPULATION, MAX_GENERATIONS,
                    EPISODES, TICKS_PER_EPISODE, MUTATION_RATE,
                    MUTATION_STRENGTH, SURVIVOR_FRACTION, CHECKPOINT_INTERVAL)
from errors import ConfigurationError, PersistenceError
from genome_store import GenomeStore
from neural_network import NeuralNetwork
from trainer import Trainer
from visualizer import (ensure_dirs, save_fitness_chart, save_genome_diagram,
                        append_csv)

log = logging.getLogger("tankevo")


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="TankEvo – neuroevolution trainer for artillery tanks")
    p.add_argument("--gens",       type=int,   default=MAX_GENERATIONS,
                   help="Number of generations to run")
    p.add_argument("--pop",        type=int,   default=POPULATION,
                   help="Population size")
    p.add_argument("--episodes",   type=int,   default=EPISODES,
                   help="Episodes averaged per fitness evaluation")
    p.add_argument("--ticks",      type=int,   default=TICKS_PER_EPISODE,
                   help="Tick budget per episode")
    p.add_argument("--mutation",   type=float, default=MUTATION_RATE,
                   help="Probability each weight is perturbed")
    p.add_argument("--strength",   type=float, default=MUTATION_STRENGTH,
                   help="Max size of a weight perturbation")
    p.add_argument("--survivors",  type=float, default=SURVIVOR_FRACTION,
                   help="Fraction of each generation kept as parents")
    p.add_argument("--seed",       type=int,   default=None,
                   help="Random seed for reproducibility")
    p.add_argument("--workers",    type=int,   default=1,
                   help="Parallel fitness evaluations")
    p.add_argument("--store",      default=GENOME_PATH,
                   help="Genome file to resume from and save to")
    p.add_argument("--no_resume", "--no-resume", action="store_true",
                   help="Ignore any stored genome and start from random")
    p.add_argument("--outdir",     default=SAVE_DIR,
                   help="Output directory for charts and logs")
    p.add_argument("--checkpoint_interval", type=int, default=CHECKPOINT_INTERVAL,
                   help="Save the best genome every N generations")
    return p.parse_args(argv)


# ──────────────────────────────────────────────────────────────────────────────
# Callbacks
# ──────────────────────────────────────────────────────────────────────────────

class TrainCallbacks:
    """Bundles the per-generation callbacks used by the trainer."""

    def __init__(self, outdir: str, all_stats: list, chart_interval: int = 10):
        self.outdir         = outdir
        self.all_stats      = all_stats
        self.chart_interval = chart_interval

    def on_generation(self, gen_idx, stats, trainer):
        self.all_stats.append(stats)
        append_csv(stats, self.outdir)
        if gen_idx % self.chart_interval == 0 and gen_idx > 0:
            save_fitness_chart(self.all_stats, self.outdir)


# ──────────────────────────────────────────────────────────────────────────────
# Main
# ──────────────────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    all_stats = []
    cb = TrainCallbacks(args.outdir, all_stats)
    store = GenomeStore(args.store)
    seed_genome = None if args.no_resume else store.load()
    if seed_genome is not None:
        log.info("resuming from %s", args.store)

    try:
        trainer = Trainer(
            population          = args.pop,
            max_generations     = args.gens,
            episodes            = args.episodes,
            ticks_per_episode   = args.ticks,
            mutation_rate       = args.mutation,
            mutation_strength   = args.strength,
            survivor_fraction   = args.survivors,
            seed                = args.seed,
            store               = store,
            checkpoint_interval = args.checkpoint_interval,
            workers             = args.workers,
            seed_genome         = seed_genome,
            on_gen_callback     = cb.on_generation,
        )
    except ConfigurationError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        return 2

    ensure_dirs(args.outdir)

    print("=" * 60)
    print("  TankEvo – Neuroevolution Artillery Trainer")
    print("=" * 60)
    print(f"  Population : {args.pop}")
    print(f"  Generations: {args.gens}")
    print(f"  Episodes   : {args.episodes} x {args.ticks} ticks")
    print(f"  Mutation   : rate {args.mutation}  strength {args.strength}")
    print(f"  Resumed    : {'yes' if seed_genome is not None else 'no'}")
    print(f"  Genome file: {args.store}")
    print(f"  Output dir : {args.outdir}")
    if seed_genome is not None:
        print(NeuralNetwork(seed_genome).summary())
    print("=" * 60)

    try:
        trainer.run()
    except KeyboardInterrupt:
        trainer.cancel()
        print("\n  !! Interrupted – keeping the best genome found so far.")

    genome, fitness = trainer.best.read()
    if genome is None:
        print("No generation completed; nothing to save.")
        return 0

    try:
        store.save(genome)
    except PersistenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(f"\nSaved best genome (fitness {fitness:.2f}) to {args.store}")

    chart_path = save_fitness_chart(all_stats, args.outdir, "fitness_final.png")
    if chart_path:
        print(f"  → {chart_path}")
    diagram = save_genome_diagram(genome, trainer.generation, "best", args.outdir)
    print(f"  → {diagram}")
    print("\nDone! All outputs saved to:", os.path.abspath(args.outdir))
    return 0


if __name__ == "__main__":
    sys.exit(main())

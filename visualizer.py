"""
Visualizer for TankEvo.

Produces:
  1. Battle snapshots – terrain, tanks, shells and blasts of one tick
  2. Fitness chart    – best / average / best-ever fitness over generations
  3. Genome diagrams  – weight heatmaps of a controller
  4. CSV log          – per-generation stats
"""

import os
import csv
import numpy as np
import matplotlib
matplotlib.use("Agg")          # non-interactive backend (no display needed)
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches

from config import (SAVE_DIR, LOG_CSV, SENSOR_LABELS, ACTION_LABELS,
                    TANK_WIDTH, TANK_HEIGHT)


# ──────────────────────────────────────────────────────────────────────────────
# Directory setup
# ──────────────────────────────────────────────────────────────────────────────

def ensure_dirs(base: str = SAVE_DIR):
    for sub in ("snapshots", "charts", "genomes"):
        os.makedirs(os.path.join(base, sub), exist_ok=True)


def _save(fig, path: str) -> str:
    fig.savefig(path, dpi=100, bbox_inches="tight", facecolor=fig.get_facecolor())
    plt.close(fig)
    return path


# ──────────────────────────────────────────────────────────────────────────────
# Battle snapshot
# ──────────────────────────────────────────────────────────────────────────────

def save_battle_snapshot(snapshot: dict, label: str = "battle",
                         base: str = SAVE_DIR):
    """
    Render a World / Battle snapshot dict.  Screen coordinates, so the y axis
    is inverted to keep the sky on top.
    """
    W, H = snapshot["width"], snapshot["height"]
    fig, ax = plt.subplots(figsize=(10, 6), dpi=100)
    ax.set_xlim(0, W)
    ax.set_ylim(H, 0)
    ax.set_facecolor("#000000")
    fig.patch.set_facecolor("#111111")
    ax.tick_params(colors="white")
    for spine in ax.spines.values():
        spine.set_edgecolor("#444444")

    title = f"Tick {snapshot['tick']}  wind {snapshot['wind']:+.3f}"
    if snapshot.get("game_over"):
        title += f"  –  {snapshot['winner'] or 'draw'}"
    ax.set_title(title, color="white", fontsize=10)

    xs = [p[0] for p in snapshot["terrain"]]
    ys = [p[1] for p in snapshot["terrain"]]
    ax.fill_between(xs, ys, H, color="#00AA00", zorder=1)

    for t in snapshot["tanks"]:
        if not t["alive"]:
            continue
        rect = mpatches.Rectangle(
            (t["x"] - TANK_WIDTH / 2, t["y"] - TANK_HEIGHT), TANK_WIDTH, TANK_HEIGHT,
            facecolor="#44FF44" if t["ai"] else "#4499FF", zorder=3)
        ax.add_patch(rect)
        ax.text(t["x"], t["y"] - TANK_HEIGHT - 6,
                f"{t['name']} {t['health']:.0f}", color="white",
                fontsize=7, ha="center", zorder=4)

    if snapshot["projectiles"]:
        ax.scatter([p["x"] for p in snapshot["projectiles"]],
                   [p["y"] for p in snapshot["projectiles"]],
                   c="#FFFF44", s=6, zorder=5)

    for e in snapshot["explosions"]:
        ax.add_patch(mpatches.Circle((e["x"], e["y"]), e["radius"],
                                     color="#FF8800", alpha=0.5, zorder=4))

    path = os.path.join(base, "snapshots", f"{label}_{snapshot['tick']:06d}.png")
    return _save(fig, path)


# ──────────────────────────────────────────────────────────────────────────────
# Fitness chart
# ──────────────────────────────────────────────────────────────────────────────

def save_fitness_chart(stats: list, base: str = SAVE_DIR,
                       filename: str = "fitness.png"):
    """
    Plot generation best, average and best-ever fitness, plus diversity on a
    secondary axis.
    """
    if not stats:
        return
    gens      = [s["generation"] for s in stats]
    best      = [s["best"]       for s in stats]
    average   = [s["average"]    for s in stats]
    best_ever = [s["best_ever"]  for s in stats]
    diversity = [s["diversity"]  for s in stats]

    fig, ax1 = plt.subplots(figsize=(12, 5), dpi=100)
    fig.patch.set_facecolor("#111111")
    ax1.set_facecolor("#111111")

    ax1.plot(gens, best_ever, color="#44FF44", linewidth=1.6,
             label="Best ever", zorder=3)
    ax1.plot(gens, best, color="#AAFFAA", linewidth=1.0,
             label="Generation best", zorder=2)
    ax1.plot(gens, average, color="#FF8800", linewidth=1.0,
             alpha=0.8, label="Average", zorder=2)
    ax1.set_ylabel("Fitness", color="white")
    ax1.set_xlabel("Generation", color="white")
    ax1.tick_params(axis="both", colors="white")

    ax2 = ax1.twinx()
    ax2.plot(gens, diversity, color="#CC44FF", linewidth=1.0,
             linestyle="--", label="Diversity", zorder=1)
    ax2.set_ylabel("Mean weight distance", color="white")
    ax2.tick_params(colors="white")

    for spine in ax1.spines.values():
        spine.set_edgecolor("#444444")

    lines1, labels1 = ax1.get_legend_handles_labels()
    lines2, labels2 = ax2.get_legend_handles_labels()
    ax1.legend(lines1 + lines2, labels1 + labels2,
               facecolor="#222222", labelcolor="white",
               loc="lower right", fontsize=8)

    ax1.set_title("Training Progress", color="white", fontsize=12)
    plt.tight_layout()
    path = os.path.join(base, "charts", filename)
    return _save(fig, path)


# ──────────────────────────────────────────────────────────────────────────────
# Genome diagram
# ──────────────────────────────────────────────────────────────────────────────

def save_genome_diagram(genome, generation: int, label: str = "best",
                        base: str = SAVE_DIR):
    """
    Heatmaps of both weight matrices.  Green = positive, red = negative.
    """
    n_in, n_hidden, n_out = genome.sizes
    limit = max(np.abs(genome.hidden_weights).max(),
                np.abs(genome.output_weights).max(), 1e-9)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5), dpi=100,
                                   gridspec_kw={"width_ratios": [n_in, n_out]})
    fig.patch.set_facecolor("#111111")

    ax1.imshow(genome.hidden_weights, cmap="RdYlGn", vmin=-limit, vmax=limit,
               aspect="auto")
    ax1.set_xticks(range(n_in))
    ax1.set_xticklabels([SENSOR_LABELS.get(i, f"S{i}") for i in range(n_in)],
                        rotation=90, fontsize=6, color="white")
    ax1.set_yticks(range(n_hidden))
    ax1.set_yticklabels([f"H{i}" for i in range(n_hidden)], fontsize=6,
                        color="white")
    ax1.set_title("Sensors → Hidden", color="white", fontsize=9)

    im = ax2.imshow(genome.output_weights.T, cmap="RdYlGn", vmin=-limit,
                    vmax=limit, aspect="auto")
    ax2.set_xticks(range(n_out))
    ax2.set_xticklabels([ACTION_LABELS.get(i, f"A{i}") for i in range(n_out)],
                        rotation=90, fontsize=6, color="white")
    ax2.set_yticks(range(n_hidden))
    ax2.set_yticklabels([f"H{i}" for i in range(n_hidden)], fontsize=6,
                        color="white")
    ax2.set_title("Hidden → Outputs", color="white", fontsize=9)
    fig.colorbar(im, ax=ax2)

    fig.suptitle(f"Gen {generation} – {label} controller", color="white",
                 fontsize=10)
    path = os.path.join(base, "genomes", f"gen_{generation:06d}_{label}.png")
    return _save(fig, path)


# ──────────────────────────────────────────────────────────────────────────────
# CSV log
# ──────────────────────────────────────────────────────────────────────────────

def append_csv(stats: dict, base: str = SAVE_DIR):
    """Append one generation's stats to a CSV file."""
    if not LOG_CSV:
        return
    path = os.path.join(base, "training_log.csv")
    file_exists = os.path.isfile(path)
    with open(path, "a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(stats.keys()))
        if not file_exists:
            writer.writeheader()
        writer.writerow(stats)
    return path

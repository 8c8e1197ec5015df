"""
Tank class for TankEvo.

Each tank has:
  - (x, y) position; y is the ground contact point (bottom of the hull)
  - health 0..MAX_HEALTH, never increasing within an episode
  - an alive flag, cleared exactly once when health reaches 0
  - a NeuralNetwork brain borrowing a Genome (None for a human player)

At every decision round an AI tank:
  1. Gathers sensor readings from the world
  2. Runs its neural network
  3. Returns an (angle, power, weapon) decision for the world to fire
"""

import numpy as np

from config import (INPUT_SIZE, OPPONENT_SLOTS, SELF_SENSORS,
                    TANK_WIDTH, TANK_HEIGHT, MAX_HEALTH, WIND_MAX)
from neural_network import NeuralNetwork

SLOPE_PROBE = 20.0   # px to either side for the slope sensors
SLOPE_SCALE = 50.0


class Tank:
    """
    A single artillery agent.
    """
    __slots__ = (
        "id", "name", "x", "y", "health", "alive",
        "genome", "brain", "width", "height",
    )

    def __init__(self, tank_id: int, x: float, genome=None, name: str = None,
                 width: float = TANK_WIDTH, height: float = TANK_HEIGHT,
                 health: float = MAX_HEALTH):
        self.id     = tank_id
        self.name   = name or f"Tank-{tank_id}"
        self.x      = float(x)
        self.y      = 0.0              # set by World.place_tanks()
        self.health = float(health)
        self.alive  = self.health > 0
        self.width  = width
        self.height = height
        self.genome = None
        self.brain  = None
        if genome is not None:
            self.set_genome(genome)

    @property
    def is_ai(self) -> bool:
        return self.brain is not None

    def set_genome(self, genome):
        """Swap the controller; the tank borrows `genome`, it does not copy it."""
        self.genome = genome
        self.brain  = NeuralNetwork(genome)

    # ──────────────────────────────────────────────────────────────────────────

    def contains(self, px: float, py: float) -> bool:
        """Point inside the hull's bounding box."""
        half = self.width / 2
        return (self.x - half <= px <= self.x + half
                and self.y - self.height <= py <= self.y)

    def take_damage(self, amount: float) -> bool:
        """
        Apply damage, flooring health at 0.  Returns True if this hit killed
        the tank.
        """
        if not self.alive or amount <= 0:
            return False
        self.health = max(0.0, self.health - amount)
        if self.health == 0.0:
            self.alive = False
            return True
        return False

    # ──────────────────────────────────────────────────────────────────────────

    def sense(self, world) -> np.ndarray:
        """
        Fixed-length sensor vector.  Opponent slots hold living opponents
        ordered by distance to self (ties by id); empty slots stay zero.
        """
        W, H = world.width, world.height
        terrain = world.terrain
        inputs = np.zeros(INPUT_SIZE, dtype=np.float64)

        inputs[0] = self.x / W
        inputs[1] = self.y / H
        inputs[2] = self.health / MAX_HEALTH
        ground = terrain.height_at(self.x)
        # positive = ground rises (smaller y) on that side
        inputs[3] = (ground - terrain.height_at(self.x + SLOPE_PROBE)) / SLOPE_SCALE
        inputs[4] = (ground - terrain.height_at(self.x - SLOPE_PROBE)) / SLOPE_SCALE

        opponents = sorted(
            (t for t in world.tanks if t.alive and t.id != self.id),
            key=lambda t: (np.hypot(t.x - self.x, t.y - self.y), t.id),
        )
        for slot, opp in enumerate(opponents[:OPPONENT_SLOTS]):
            base = SELF_SENSORS + 3 * slot
            inputs[base]     = (opp.x - self.x) / W
            inputs[base + 1] = (opp.y - self.y) / H
            inputs[base + 2] = 1.0

        env = SELF_SENSORS + 3 * OPPONENT_SLOTS
        inputs[env]     = terrain.amplitude / 100.0
        inputs[env + 1] = terrain.frequency
        inputs[env + 2] = world.wind / WIND_MAX if WIND_MAX else 0.0
        return inputs

    def decide(self, world):
        """Sense the world and ask the brain for a Decision (AI tanks only)."""
        if self.brain is None:
            raise RuntimeError(f"{self.name} has no controller")
        return self.brain.decide(self.sense(world))

    def state(self) -> dict:
        return {
            "id": self.id, "name": self.name,
            "x": self.x, "y": self.y,
            "health": self.health, "alive": self.alive, "ai": self.is_ai,
        }

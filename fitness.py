"""
Fitness evaluation for TankEvo.

A genome is scored by dropping it into short artillery duels:

  for each episode:
    1. Fresh terrain and wind
    2. One focal tank carrying the genome, the rest carrying opponents
    3. Decision rounds every `decision_interval` ticks, physics every tick
    4. Stop when at most one tank is alive or the tick budget runs out

Per-episode score, counted only for shells fired by the focal tank:

  + damage_weight      * damage dealt to opponents
  + proximity_bonus    * exp(-landing distance to nearest opponent / scale)
  - self_damage_weight * damage dealt to itself
  + survival_bonus     if the focal tank is alive at the end

Fitness is the mean over episodes.
"""

import logging
import math
from collections import namedtuple

import numpy as np

from config import (NUM_TANKS, DECISION_INTERVAL, DT, EPISODES,
                    TICKS_PER_EPISODE, DAMAGE_WEIGHT, SELF_DAMAGE_WEIGHT,
                    PROXIMITY_BONUS, PROXIMITY_SCALE, SURVIVAL_BONUS,
                    WORST_FITNESS, WIND_MAX, TERRAIN_AMPLITUDE,
                    TERRAIN_FREQUENCY)
from errors import ConfigurationError, SimulationDivergence
from genome import Genome
from tank import Tank
from terrain import generate_terrain
from world import World

log = logging.getLogger(__name__)

EpisodeResult = namedtuple("EpisodeResult", [
    "score", "damage_dealt", "self_damage", "proximity",
    "survived", "ticks", "diverged", "explosions",
])


def clamp_fitness(value: float, worst: float = WORST_FITNESS) -> float:
    """Map NaN/inf and anything below `worst` to `worst`."""
    value = float(value)
    if not math.isfinite(value):
        return worst
    return max(value, worst)


def draw_opponent(source, rng):
    """
    Pick one opponent genome.  `source` may be None (random genome), a
    callable taking the generator, or a sequence sampled uniformly.
    """
    if source is None:
        return Genome.random(rng)
    if callable(source):
        return source(rng)
    if len(source) == 0:
        raise ConfigurationError("opponent pool is empty")
    return source[int(rng.integers(0, len(source)))]


class FitnessEvaluator:
    """
    Runs simulated episodes and turns their outcome into a scalar fitness.
    """

    def __init__(
        self,
        num_tanks:          int   = NUM_TANKS,
        decision_interval:  int   = DECISION_INTERVAL,
        dt:                 float = DT,
        damage_weight:      float = DAMAGE_WEIGHT,
        self_damage_weight: float = SELF_DAMAGE_WEIGHT,
        proximity_bonus:    float = PROXIMITY_BONUS,
        proximity_scale:    float = PROXIMITY_SCALE,
        survival_bonus:     float = SURVIVAL_BONUS,
        worst_fitness:      float = WORST_FITNESS,
        wind_max:           float = WIND_MAX,
        terrain_amplitude:  float = TERRAIN_AMPLITUDE,
        terrain_frequency:  float = TERRAIN_FREQUENCY,
    ):
        if num_tanks < 2:
            raise ConfigurationError(f"an episode needs at least 2 tanks, got {num_tanks}")
        if decision_interval < 1:
            raise ConfigurationError("decision_interval must be >= 1")
        if dt <= 0:
            raise ConfigurationError("dt must be positive")
        if self_damage_weight <= damage_weight:
            raise ConfigurationError(
                "self_damage_weight must exceed damage_weight "
                f"({self_damage_weight} <= {damage_weight})")
        if proximity_scale <= 0:
            raise ConfigurationError("proximity_scale must be positive")

        self.num_tanks          = num_tanks
        self.decision_interval  = decision_interval
        self.dt                 = dt
        self.damage_weight      = damage_weight
        self.self_damage_weight = self_damage_weight
        self.proximity_bonus    = proximity_bonus
        self.proximity_scale    = proximity_scale
        self.survival_bonus     = survival_bonus
        self.worst_fitness      = worst_fitness
        self.wind_max           = wind_max
        self.terrain_amplitude  = terrain_amplitude
        self.terrain_frequency  = terrain_frequency

    # ──────────────────────────────────────────────────────────────────────────
    # Scoring
    # ──────────────────────────────────────────────────────────────────────────

    def proximity(self, distance) -> float:
        if distance is None:
            return 0.0
        return self.proximity_bonus * math.exp(-distance / self.proximity_scale)

    def score_explosion(self, explosion, focal_id: int) -> float:
        """Contribution of one blast to the focal tank's episode score."""
        if explosion.owner != focal_id:
            return 0.0
        return (self.damage_weight * explosion.damage_dealt
                - self.self_damage_weight * explosion.self_damage
                + self.proximity(explosion.nearest_enemy_distance))

    # ──────────────────────────────────────────────────────────────────────────
    # Episodes
    # ──────────────────────────────────────────────────────────────────────────

    def evaluate(self, genome, opponent_source=None,
                 episodes: int = EPISODES,
                 ticks_per_episode: int = TICKS_PER_EPISODE,
                 rng=None, seed: int = None, terrain=None, wind=None,
                 opponents=None, positions=None) -> float:
        """
        Mean episode score of `genome`.  `terrain`, `wind`, `opponents` and
        `positions` override the random episode setup (see run_episode).
        """
        if episodes < 1:
            raise ConfigurationError("episodes must be >= 1")
        if rng is None:
            rng = np.random.default_rng(seed)
        scores = [
            self.run_episode(genome, opponent_source, ticks_per_episode, rng,
                             terrain=terrain, wind=wind,
                             opponents=opponents, positions=positions).score
            for _ in range(episodes)
        ]
        return clamp_fitness(np.mean(scores), self.worst_fitness)

    def build_world(self, genome, opponent_source, rng, terrain=None,
                    wind=None, opponents=None, positions=None):
        """
        Set up one episode.  Tank 0 is the focal tank.

        opponents : genomes for tanks 1..n-1; a None entry is a passive tank
                    that never fires
        positions : x coordinates, focal tank first
        """
        if terrain is None:
            terrain = generate_terrain(self.terrain_amplitude,
                                       self.terrain_frequency, rng=rng)
        else:
            terrain = terrain.copy()
        if wind is None:
            wind = float(rng.uniform(-self.wind_max, self.wind_max))
        world = World(terrain, wind, rng=rng)

        n = self.num_tanks if opponents is None else len(opponents) + 1
        if opponents is None:
            opponents = [draw_opponent(opponent_source, rng) for _ in range(n - 1)]
        if positions is None:
            positions = np.sort(rng.uniform(0.1, 0.9, size=n)) * world.width
            positions = positions[rng.permutation(n)]
        if len(positions) != n:
            raise ConfigurationError(f"need {n} positions, got {len(positions)}")

        world.add_tank(Tank(0, positions[0], genome, name="Focal"))
        for i, opp in enumerate(opponents, start=1):
            world.add_tank(Tank(i, positions[i], opp, name=f"Opponent-{i}"))
        return world

    def run_episode(self, genome, opponent_source=None,
                    ticks: int = TICKS_PER_EPISODE, rng=None, terrain=None,
                    wind=None, opponents=None, positions=None) -> EpisodeResult:
        if rng is None:
            rng = np.random.default_rng()
        world = self.build_world(genome, opponent_source, rng, terrain, wind,
                                 opponents, positions)
        focal = world.tanks[0]

        score = dealt = self_damage = proximity = 0.0
        fired = []
        ticks_run = 0
        try:
            for tick in range(ticks):
                if tick % self.decision_interval == 0:
                    self._decision_round(world)
                for e in world.step(self.dt):
                    if e.owner != focal.id:
                        continue
                    fired.append(e)
                    score       += self.score_explosion(e, focal.id)
                    dealt       += e.damage_dealt
                    self_damage += e.self_damage
                    proximity   += self.proximity(e.nearest_enemy_distance)
                ticks_run = tick + 1
                if world.alive_count() <= 1:
                    break
        except SimulationDivergence as exc:
            log.debug("episode diverged after %d ticks: %s", ticks_run, exc)
            return EpisodeResult(self.worst_fitness, dealt, self_damage,
                                 proximity, focal.alive, ticks_run, True, fired)

        if focal.alive:
            score += self.survival_bonus
        return EpisodeResult(clamp_fitness(score, self.worst_fitness), dealt,
                             self_damage, proximity, focal.alive, ticks_run,
                             False, fired)

    @staticmethod
    def _decision_round(world):
        """All AI tanks decide on the same world state, then all fire."""
        decisions = [(t, t.decide(world)) for t in world.living() if t.is_ai]
        for tank, d in decisions:
            world.fire(tank, d.weapon, d.angle, d.power)

"""
Live battle session for TankEvo.

A Battle bundles everything an interactive game needs (world, tanks, turn
pacing, game-over state) into one object; there is no module-level game
state.  Any driver may call `step()`: a render loop, the Flask server or
a test.

Turn pacing: a new turn starts once the previous turn's timer has run out
and no shell is in the air.  At the start of a turn every AI tank decides
against the same world state and all of them fire together; a human player
may fire once per turn via `player_fire()`.
"""

import logging

import numpy as np

from config import NUM_TANKS, DECISION_INTERVAL, DT, WIND_MAX
from errors import SimulationDivergence
from genome import Genome
from tank import Tank
from world import World

log = logging.getLogger(__name__)


class Battle:

    def __init__(self, best=None, player: bool = True,
                 num_tanks: int = NUM_TANKS, seed: int = None,
                 terrain=None, wind: float = None,
                 decision_interval: int = DECISION_INTERVAL, dt: float = DT):
        self.rng  = np.random.default_rng(seed)
        self.best = best                     # BestGenomeSlot shared with training
        self.dt   = dt
        self.decision_interval = decision_interval
        if wind is None:
            wind = float(self.rng.uniform(-WIND_MAX, WIND_MAX))
        self.world = World(terrain, wind, rng=self.rng)

        self._best_version = best.version if best is not None else None
        positions = np.sort(self.rng.uniform(0.1, 0.9, size=num_tanks)) * self.world.width
        for i, x in enumerate(positions):
            if player and i == 0:
                self.world.add_tank(Tank(i, x, None, name="Player"))
            else:
                self.world.add_tank(Tank(i, x, self._controller_genome(),
                                         name=f"AI-{i if player else i + 1}"))

        self.has_player   = player
        self.turn         = 0
        self.turn_timer   = 0
        self.player_fired = False
        self.game_over    = False
        self.winner       = None

    # ──────────────────────────────────────────────────────────────────────────

    @property
    def player(self):
        return self.world.tanks[0] if self.has_player else None

    def _controller_genome(self) -> Genome:
        genome = None
        if self.best is not None:
            genome, _ = self.best.read()
        return genome if genome is not None else Genome.random(self.rng)

    def refresh_controllers(self) -> bool:
        """
        Give every AI tank a private clone of the published best genome, if
        a newer one has been published since the last refresh.
        """
        if self.best is None or self.best.empty or self.best.version == self._best_version:
            return False
        self._best_version = self.best.version
        for t in self.world.tanks:
            if t.is_ai:
                t.set_genome(self._controller_genome())
        return True

    # ──────────────────────────────────────────────────────────────────────────

    def step(self) -> dict:
        """Advance the battle one tick and return the render snapshot."""
        if self.game_over:
            return self.snapshot()

        if self.turn_timer <= 0 and not self.world.in_flight():
            self._start_turn()

        try:
            self.world.step(self.dt)
        except SimulationDivergence as exc:
            log.warning("dropped diverged shell: %s", exc)
        self.turn_timer -= 1

        if self.world.alive_count() <= 1 and not self.world.in_flight():
            self._finish()
        return self.snapshot()

    def run(self, max_ticks: int) -> dict:
        """Headless loop: step until game over or `max_ticks`."""
        snap = self.snapshot()
        for _ in range(max_ticks):
            if self.game_over:
                break
            snap = self.step()
        return snap

    def player_fire(self, weapon: str, angle: float, power: float) -> bool:
        """Fire the human tank's shot for this turn; False if not allowed."""
        tank = self.player
        if tank is None or not tank.alive or self.player_fired or self.game_over:
            return False
        self.world.fire(tank, weapon, angle, power)
        self.player_fired = True
        return True

    def _start_turn(self):
        self.turn += 1
        self.turn_timer   = self.decision_interval
        self.player_fired = False
        decisions = [(t, t.decide(self.world))
                     for t in self.world.living() if t.is_ai]
        for tank, d in decisions:
            self.world.fire(tank, d.weapon, d.angle, d.power)

    def _finish(self):
        self.game_over = True
        alive = self.world.living()
        self.winner = alive[0].name if alive else None
        log.info("battle over after %d turns: %s", self.turn,
                 f"{self.winner} wins" if self.winner else "draw")

    def snapshot(self) -> dict:
        snap = self.world.snapshot()
        snap.update({
            "turn":      self.turn,
            "turn_timer": self.turn_timer,
            "game_over": self.game_over,
            "winner":    self.winner,
        })
        return snap

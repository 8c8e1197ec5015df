"""
Ballistic world for TankEvo.

The world owns the terrain, the tanks standing on it and every shell in
flight.  It exposes a single headless `step(dt)` that any driver (fitness
episodes, the live battle, tests) can call; nothing here depends on wall
clock time or on how the state is drawn.
"""

import math

import numpy as np

from config import (GRAVITY, DT, BOUNCE_RESTITUTION, BOUNCE_DAMPING,
                    BARREL_LENGTH, WEAPONS)
from errors import SimulationDivergence
from terrain import generate_terrain


class Projectile:
    """A shell in flight."""
    __slots__ = ("x", "y", "vx", "vy", "owner", "weapon",
                 "damage", "radius", "bounces_left", "active")

    def __init__(self, x, y, vx, vy, owner: int, weapon: str,
                 damage: float, radius: float, bounces: int = 0):
        self.x, self.y   = float(x), float(y)
        self.vx, self.vy = float(vx), float(vy)
        self.owner  = owner
        self.weapon = weapon
        self.damage = damage
        self.radius = radius
        self.bounces_left = int(bounces)
        self.active = True

    def state(self) -> dict:
        return {"x": self.x, "y": self.y, "owner": self.owner,
                "weapon": self.weapon}


class Explosion:
    """
    Outcome of one blast.

    hits                   : {tank_id: health actually lost}, overkill excluded
    self_damage            : damage the owner inflicted on itself
    nearest_enemy_distance : distance from the blast to the owner's nearest
                             living opponent, measured before damage (None if
                             the owner had no living opponent)
    """
    __slots__ = ("x", "y", "radius", "damage", "owner", "hits", "kills",
                 "nearest_enemy_distance", "tick")

    def __init__(self, x, y, radius, damage, owner, hits, kills,
                 nearest_enemy_distance, tick):
        self.x, self.y = x, y
        self.radius = radius
        self.damage = damage
        self.owner  = owner
        self.hits   = hits
        self.kills  = kills
        self.nearest_enemy_distance = nearest_enemy_distance
        self.tick   = tick

    @property
    def self_damage(self) -> float:
        return self.hits.get(self.owner, 0.0)

    @property
    def damage_dealt(self) -> float:
        return sum(d for tid, d in self.hits.items() if tid != self.owner)

    def state(self) -> dict:
        return {"x": self.x, "y": self.y, "radius": self.radius,
                "owner": self.owner, "hits": dict(self.hits),
                "kills": list(self.kills)}


class World:
    """
    Manages terrain, tanks, projectiles and explosions.
    """

    def __init__(self, terrain=None, wind: float = 0.0, gravity: float = GRAVITY,
                 weapons: dict = None, seed: int = None, rng=None,
                 restitution: float = BOUNCE_RESTITUTION,
                 damping: float = BOUNCE_DAMPING):
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.terrain = terrain if terrain is not None else generate_terrain(rng=self.rng)
        self.wind    = float(wind)
        self.gravity = float(gravity)
        self.weapons = weapons if weapons is not None else WEAPONS
        self.restitution = restitution
        self.damping     = damping
        self.tanks       = []
        self.projectiles = []
        self._pending    = []      # [(spawn_tick, Projectile)] for staggered volleys
        self.explosions  = []      # explosions produced by the last step()
        self.tick = 0

    @property
    def width(self) -> float:
        return self.terrain.width

    @property
    def height(self) -> float:
        return self.terrain.world_height

    # ──────────────────────────────────────────────────────────────────────────
    # Tanks
    # ──────────────────────────────────────────────────────────────────────────

    def add_tank(self, tank):
        self.tanks.append(tank)
        tank.y = self.terrain.height_at(tank.x)
        return tank

    def place_tanks(self):
        """Seat every tank on the (possibly deformed) ground."""
        for t in self.tanks:
            t.y = self.terrain.height_at(t.x)

    def get_tank(self, tank_id: int):
        for t in self.tanks:
            if t.id == tank_id:
                return t
        return None

    def living(self) -> list:
        return [t for t in self.tanks if t.alive]

    def alive_count(self) -> int:
        return sum(1 for t in self.tanks if t.alive)

    def in_flight(self) -> bool:
        """Any shell still airborne or waiting to leave the barrel."""
        return bool(self.projectiles or self._pending)

    # ──────────────────────────────────────────────────────────────────────────
    # Firing
    # ──────────────────────────────────────────────────────────────────────────

    def fire(self, tank, weapon: str, angle: float, power: float) -> list:
        """
        Fire `weapon` from `tank`'s barrel.  The weapon record decides how many
        shells leave, their angular spread, their stagger and bounce budget.
        """
        try:
            record = self.weapons[weapon]
        except KeyError:
            raise ValueError(f"unknown weapon {weapon!r}") from None

        rad   = math.radians(angle)
        speed = record["speed"] * power
        shots = int(record.get("shots", 1))
        spread = record.get("spread", 0.0)
        delay  = int(record.get("delay", 0))
        bx = tank.x + math.cos(rad) * BARREL_LENGTH
        by = tank.y - math.sin(rad) * BARREL_LENGTH

        fired = []
        for i in range(shots):
            a = rad + (i - (shots - 1) / 2) * spread
            p = Projectile(bx, by, math.cos(a) * speed, -math.sin(a) * speed,
                           owner=tank.id, weapon=weapon,
                           damage=record["damage"], radius=record["radius"],
                           bounces=record.get("bounces", 0))
            if i * delay > 0:
                self._pending.append((self.tick + i * delay, p))
            else:
                self.projectiles.append(p)
            fired.append(p)
        return fired

    # ──────────────────────────────────────────────────────────────────────────
    # Physics
    # ──────────────────────────────────────────────────────────────────────────

    def step(self, dt: float = DT) -> list:
        """
        Advance the world by one tick.  Returns the explosions of this tick
        (also kept in self.explosions for renderers).
        """
        self.explosions = []
        if self._pending:
            due = [p for t, p in self._pending if t <= self.tick]
            self._pending = [(t, p) for t, p in self._pending if t > self.tick]
            self.projectiles.extend(due)

        try:
            for p in list(self.projectiles):
                if p.active:
                    self.step_projectile(p, dt)
        finally:
            self.projectiles = [p for p in self.projectiles if p.active]
            self.tick += 1
        return list(self.explosions)

    def step_projectile(self, p, dt: float = DT):
        """
        Explicit Euler update of one shell.  The displacement is split into
        micro-steps no longer than one terrain cell, each tested against the
        terrain first and then every living tank.
        Returns the Explosion if the shell went off, else None.
        """
        p.vy += self.gravity * dt
        p.vx += self.wind * dt
        dx, dy = p.vx * dt, p.vy * dt
        if not all(math.isfinite(v) for v in (p.x, p.y, p.vx, p.vy)):
            p.active = False
            raise SimulationDivergence(
                f"projectile of tank {p.owner} diverged at "
                f"({p.x}, {p.y}) v=({p.vx}, {p.vy})")

        n = max(1, math.ceil(math.hypot(dx, dy) / self.terrain.cell_width))
        x0, y0 = p.x, p.y
        for k in range(1, n + 1):
            x = x0 + dx * k / n
            y = y0 + dy * k / n
            p.x, p.y = x, y

            if x < 0 or x > self.width or y > self.height:
                p.active = False       # left the play area
                return None

            ground = self.terrain.height_at(x)
            if y >= ground:
                if p.bounces_left > 0:
                    p.y  = ground
                    p.vy = -abs(p.vy) * self.restitution
                    p.vx *= self.damping
                    p.bounces_left -= 1
                    return None
                p.active = False
                return self.explode(x, y, p.radius, p.damage, p.owner)

            for t in self.tanks:
                if t.alive and t.contains(x, y):
                    p.active = False
                    return self.explode(t.x, t.y, p.radius, p.damage, p.owner)
        return None

    def explode(self, x: float, y: float, radius: float, damage: float,
                owner_id: int):
        """
        Linear-falloff blast: damage * max(0, 1 - d/radius) to every living
        tank within radius, then crater the terrain and re-seat the tanks.
        """
        opponents = [t for t in self.tanks if t.alive and t.id != owner_id]
        nearest = (min(math.hypot(t.x - x, t.y - y) for t in opponents)
                   if opponents else None)

        hits, kills = {}, []
        if radius > 0:
            for t in self.tanks:
                if not t.alive:
                    continue
                d = math.hypot(t.x - x, t.y - y)
                if d > radius:
                    continue
                dmg = damage * max(0.0, 1.0 - d / radius)
                if dmg <= 0:
                    continue
                before = t.health
                if t.take_damage(dmg):
                    kills.append(t.id)
                hits[t.id] = before - t.health
            self.terrain.crater(x, y, radius)
            self.place_tanks()

        event = Explosion(x, y, radius, damage, owner_id, hits, kills,
                          nearest, self.tick)
        self.explosions.append(event)
        return event

    # ──────────────────────────────────────────────────────────────────────────
    # Snapshot for visualisation
    # ──────────────────────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """
        Read-only view of the current tick for renderers: plain lists and
        dicts, never references into live state.
        """
        return {
            "tick":        self.tick,
            "wind":        self.wind,
            "width":       self.width,
            "height":      self.height,
            "terrain":     self.terrain.points(),
            "tanks":       [t.state() for t in self.tanks],
            "projectiles": [p.state() for p in self.projectiles],
            "explosions":  [e.state() for e in self.explosions],
        }

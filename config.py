"""
TankEvo Configuration
All tunable parameters for the artillery-duel neuroevolution trainer.

Coordinates are screen-space: x grows east, y grows DOWN.  A terrain
"height" is the y of the ground surface, so the lower boundary of the
play area is y == WORLD_HEIGHT.
"""

# ─── World ────────────────────────────────────────────────────────────────────
WORLD_WIDTH   = 1000   # play width in pixels
WORLD_HEIGHT  = 600    # play height in pixels (y of the bottom boundary)
GROUND_HEIGHT = 100    # mean ground thickness above the bottom boundary

TERRAIN_CELL      = 10     # horizontal spacing between terrain samples
TERRAIN_AMPLITUDE = 70     # sinusoid amplitude of the base curve
TERRAIN_FREQUENCY = 0.5    # radians advanced per terrain sample
TERRAIN_JITTER    = 20     # max random roughness added per sample

# ─── Physics ──────────────────────────────────────────────────────────────────
GRAVITY            = 0.2    # px / tick²  (positive = downward)
DT                 = 1.0    # simulation time step in ticks
WIND_MAX           = 0.02   # max |horizontal acceleration| from wind
BOUNCE_RESTITUTION = 0.7    # vertical speed kept after a bounce
BOUNCE_DAMPING     = 0.9    # horizontal speed kept after a bounce
BARREL_LENGTH      = 30     # projectiles spawn at the barrel tip

# ─── Tanks ────────────────────────────────────────────────────────────────────
NUM_TANKS    = 4
TANK_WIDTH   = 40
TANK_HEIGHT  = 20
MAX_HEALTH   = 100

# ─── Weapons ──────────────────────────────────────────────────────────────────
# Each record is read by World.fire():
#   shots   – projectiles per trigger pull
#   spread  – radians between neighbouring projectiles of one volley
#   delay   – ticks between neighbouring projectiles of one volley
#   bounces – terrain bounces before the shell explodes
WEAPONS = {
    "standard": {
        "name": "Standard Shell", "damage": 25, "radius": 30, "speed": 12.0,
        "shots": 1, "spread": 0.0, "delay": 0, "bounces": 0,
        "description": "Standard explosive shell",
    },
    "rapid": {
        "name": "Rapid Fire", "damage": 15, "radius": 20, "speed": 18.0,
        "shots": 3, "spread": 0.0, "delay": 12, "bounces": 0,
        "description": "Three small shells fired in succession",
    },
    "triple": {
        "name": "Triple Shot", "damage": 20, "radius": 25, "speed": 15.0,
        "shots": 3, "spread": 0.3, "delay": 0, "bounces": 0,
        "description": "Three shells at different angles",
    },
    "bouncy": {
        "name": "Bouncy Shell", "damage": 20, "radius": 25, "speed": 13.5,
        "shots": 1, "spread": 0.0, "delay": 0, "bounces": 3,
        "description": "Bounces off terrain before exploding",
    },
    "mega": {
        "name": "Mega Blast", "damage": 50, "radius": 60, "speed": 10.5,
        "shots": 1, "spread": 0.0, "delay": 0, "bounces": 0,
        "description": "Devastating wide-radius explosion",
    },
}
WEAPON_NAMES = list(WEAPONS)

# ─── Neural Network ───────────────────────────────────────────────────────────
OPPONENT_SLOTS = 3      # opponents visible to the controller, nearest first
SELF_SENSORS   = 5
ENV_SENSORS    = 3

SENSOR_LABELS = {
    0: "self_x",          # x / WORLD_WIDTH
    1: "self_y",          # y / WORLD_HEIGHT
    2: "health",          # health / MAX_HEALTH
    3: "slope_front",     # ground rise 20px ahead
    4: "slope_back",      # ground rise 20px behind
}
for _slot in range(OPPONENT_SLOTS):
    _base = SELF_SENSORS + 3 * _slot
    SENSOR_LABELS[_base]     = f"opp{_slot}_dx"
    SENSOR_LABELS[_base + 1] = f"opp{_slot}_dy"
    SENSOR_LABELS[_base + 2] = f"opp{_slot}_alive"
_env = SELF_SENSORS + 3 * OPPONENT_SLOTS
SENSOR_LABELS[_env]     = "terrain_amp"
SENSOR_LABELS[_env + 1] = "terrain_freq"
SENSOR_LABELS[_env + 2] = "wind"
del _slot, _base, _env

INPUT_SIZE  = SELF_SENSORS + 3 * OPPONENT_SLOTS + ENV_SENSORS
HIDDEN_SIZE = 16
OUTPUT_SIZE = 2 + len(WEAPONS)   # angle, power, one score per weapon

ACTION_LABELS = {0: "angle", 1: "power"}
for _i, _w in enumerate(WEAPON_NAMES):
    ACTION_LABELS[2 + _i] = _w
del _i, _w

MIN_POWER = 0.3   # power floor so controllers cannot stall at zero

# ─── Fitness ──────────────────────────────────────────────────────────────────
EPISODES           = 3
TICKS_PER_EPISODE  = 1200
DECISION_INTERVAL  = 150     # ticks between decision rounds ("turns")

DAMAGE_WEIGHT      = 1.0     # reward per point of damage dealt to opponents
SELF_DAMAGE_WEIGHT = 1.5     # penalty per point of damage to self (> above)
PROXIMITY_BONUS    = 10.0    # bonus for a shell landing on an opponent
PROXIMITY_SCALE    = 150.0   # px; bonus decays as exp(-distance / scale)
SURVIVAL_BONUS     = 20.0    # focal tank alive at episode end
WORST_FITNESS      = -1e6    # floor for broken / diverged genomes

# ─── Trainer ──────────────────────────────────────────────────────────────────
POPULATION          = 20
MAX_GENERATIONS     = 50
MUTATION_RATE       = 0.1    # probability each scalar is perturbed
MUTATION_STRENGTH   = 0.5    # perturbation drawn from U(-strength, strength)
SURVIVOR_FRACTION   = 0.5
CHECKPOINT_INTERVAL = 10     # save BestGenome every N generations

# ─── Output / Logging ─────────────────────────────────────────────────────────
GENOME_PATH = "trained_net.json"   # single well-known genome file
SAVE_DIR    = "output"             # directory for charts and snapshots
LOG_CSV     = True                 # write per-generation CSV log

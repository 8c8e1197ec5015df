"""
TankEvo Server  –  Flask + Server-Sent Events
=============================================

Endpoints:
  POST /train/start    Start (or restart) background training, JSON config body
  POST /train/stop     Stop training after the generation in flight
  GET  /train/status   Trainer state as JSON
  GET  /train/stream   SSE stream – one event per finished generation

  POST /battle/new     New live battle  {"player": bool, "seed": int}
  POST /battle/step    Advance the battle {"ticks": n}, returns the snapshot
  POST /battle/fire    Player shot {"weapon", "angle", "power"}
  GET  /battle/state   Current snapshot without advancing

The background trainer publishes into a shared BestGenomeSlot; the live
battle pulls a fresh clone from it whenever a better genome appears.

Run:
  python server.py
  # → http://localhost:5000
"""

import json
import logging
import math
import queue
import threading

from flask import Flask, Response, request, jsonify

from battle import Battle
from config import (GENOME_PATH, POPULATION, MAX_GENERATIONS, EPISODES,
                    TICKS_PER_EPISODE, MUTATION_RATE, MUTATION_STRENGTH,
                    CHECKPOINT_INTERVAL, WEAPON_NAMES)
from errors import ConfigurationError
from genome_store import GenomeStore
from trainer import BestGenomeSlot, Trainer

log = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────────────────────
# Shared state
# ──────────────────────────────────────────────────────────────────────────────

class AppContext:
    """Everything the routes share: trainer thread, event queue, best genome, battle."""

    def __init__(self, store_path: str = GENOME_PATH):
        self.store    = GenomeStore(store_path or GENOME_PATH)
        # a stored genome has unknown fitness, so any evaluated generation replaces it
        self.best     = BestGenomeSlot(self.store.load())
        self.lock     = threading.Lock()
        self.thread   = None
        self.trainer  = None
        self.stop_evt = threading.Event()
        self.events   = queue.Queue(maxsize=200)
        self.status   = {"running": False, "generation": 0, "max_gen": 0, "cfg": {}}
        self.battle   = None

    def publish(self, payload: dict):
        """Non-blocking put; drop the oldest event if the queue is full."""
        if self.events.full():
            try:
                self.events.get_nowait()
            except queue.Empty:
                pass
        self.events.put(payload)


def _build_cfg(data: dict) -> dict:
    """Merge request JSON with defaults."""
    return {
        "population":        int(data.get("population",       POPULATION)),
        "max_generations":   int(data.get("maxGenerations",   MAX_GENERATIONS)),
        "episodes":          int(data.get("episodes",         EPISODES)),
        "ticks_per_episode": int(data.get("ticksPerEpisode",  TICKS_PER_EPISODE)),
        "mutation_rate":     float(data.get("mutationRate",   MUTATION_RATE)),
        "mutation_strength": float(data.get("mutationStrength", MUTATION_STRENGTH)),
        "seed":              data.get("seed"),
    }


def _train_worker(ctx: AppContext, trainer: Trainer):
    """Run the trainer in a background thread; push each generation to the queue."""
    with ctx.lock:
        ctx.status["running"] = True
    try:
        trainer.run()
    finally:
        trainer.checkpoint()
        with ctx.lock:
            ctx.status["running"] = False
        ctx.publish({"type": "done", "gen": trainer.generation,
                     "state": trainer.state.value})


# ──────────────────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────────────────

def create_app(store_path: str = GENOME_PATH) -> Flask:
    app = Flask(__name__)
    ctx = AppContext(store_path)
    app.config["TANKEVO"] = ctx

    @app.after_request
    def add_cors(response):
        response.headers["Access-Control-Allow-Origin"]  = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        return response

    @app.errorhandler(ValueError)
    def bad_request(exc):
        return jsonify({"error": str(exc)}), 400

    # ── training ──────────────────────────────────────────────────────────────

    def on_gen(gen_idx, stats, trainer):
        with ctx.lock:
            ctx.status["generation"] = gen_idx
        payload = {"type": "generation", "maxGen": trainer.max_generations}
        payload.update(stats)
        ctx.publish(payload)

    @app.route("/train/start", methods=["POST"])
    def train_start():
        # Stop any running trainer
        ctx.stop_evt.set()
        if ctx.thread and ctx.thread.is_alive():
            ctx.thread.join(timeout=10)

        cfg = _build_cfg(request.get_json(silent=True) or {})
        ctx.stop_evt = threading.Event()
        ctx.events   = queue.Queue(maxsize=200)
        seed_genome, _ = ctx.best.read()
        try:
            trainer = Trainer(
                population          = cfg["population"],
                max_generations     = cfg["max_generations"],
                episodes            = cfg["episodes"],
                ticks_per_episode   = cfg["ticks_per_episode"],
                mutation_rate       = cfg["mutation_rate"],
                mutation_strength   = cfg["mutation_strength"],
                seed                = cfg["seed"],
                best                = ctx.best,
                store               = ctx.store,
                checkpoint_interval = CHECKPOINT_INTERVAL,
                seed_genome         = seed_genome,
                on_gen_callback     = on_gen,
                stop_event          = ctx.stop_evt,
            )
        except ConfigurationError as exc:
            return jsonify({"status": "error", "error": str(exc)}), 400

        with ctx.lock:
            ctx.trainer = trainer
            ctx.status.update({"generation": 0, "max_gen": cfg["max_generations"],
                               "cfg": cfg})
        ctx.thread = threading.Thread(target=_train_worker, args=(ctx, trainer),
                                      daemon=True)
        ctx.thread.start()
        log.info("training started: %s", cfg)
        return jsonify({"status": "started", "cfg": cfg})

    @app.route("/train/stop", methods=["POST"])
    def train_stop():
        ctx.stop_evt.set()
        log.info("training stop requested")
        return jsonify({"status": "stopping"})

    @app.route("/train/status", methods=["GET"])
    def train_status():
        with ctx.lock:
            status = dict(ctx.status)
            state = ctx.trainer.state.value if ctx.trainer else "idle"
        status["state"] = state
        fitness = ctx.best.fitness
        status["bestFitness"] = fitness if math.isfinite(fitness) else None
        return jsonify(status)

    @app.route("/train/stream", methods=["GET"])
    def train_stream():
        """SSE endpoint – subscribers receive each generation as an event."""
        events = ctx.events

        def event_gen():
            yield "data: {\"type\": \"connected\"}\n\n"
            while True:
                try:
                    payload = events.get(timeout=1)
                    yield f"data: {json.dumps(payload)}\n\n"
                    if payload.get("type") == "done":
                        break
                except queue.Empty:
                    # Keep-alive ping
                    yield "data: {\"type\": \"ping\"}\n\n"

        return Response(
            event_gen(),
            mimetype="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    # ── live battle ───────────────────────────────────────────────────────────

    def _battle():
        if ctx.battle is None:
            ctx.battle = Battle(best=ctx.best, player=False)
        return ctx.battle

    @app.route("/battle/new", methods=["POST"])
    def battle_new():
        data = request.get_json(silent=True) or {}
        with ctx.lock:
            ctx.battle = Battle(best=ctx.best, player=bool(data.get("player", True)),
                                seed=data.get("seed"))
            return jsonify(ctx.battle.snapshot())

    @app.route("/battle/step", methods=["POST"])
    def battle_step():
        data = request.get_json(silent=True) or {}
        ticks = max(1, min(int(data.get("ticks", 1)), 10000))
        with ctx.lock:
            battle = _battle()
            battle.refresh_controllers()
            return jsonify(battle.run(ticks))

    @app.route("/battle/fire", methods=["POST"])
    def battle_fire():
        data = request.get_json(silent=True) or {}
        weapon = data.get("weapon", WEAPON_NAMES[0])
        if weapon not in WEAPON_NAMES:
            raise ValueError(f"unknown weapon {weapon!r}")
        angle = min(180.0, max(0.0, float(data.get("angle", 45))))
        power = min(1.0, max(0.0, float(data.get("power", 0.5))))
        with ctx.lock:
            fired = _battle().player_fire(weapon, angle, power)
        return jsonify({"fired": fired})

    @app.route("/battle/state", methods=["GET"])
    def battle_state():
        with ctx.lock:
            return jsonify(_battle().snapshot())

    return app


# ──────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    print("=" * 50)
    print("  TankEvo Server  →  http://localhost:5000")
    print("  SSE stream      →  http://localhost:5000/train/stream")
    print("=" * 50)
    create_app().run(host="0.0.0.0", port=5000, threaded=True, debug=False)

"""
Neural Network controller for TankEvo.

Fixed topology, built from a Genome:

  sensors (INPUT_SIZE) → hidden (tanh) → outputs (linear)

The outputs are turned into a firing decision:
  out[0]  → barrel angle in [0°, 180°]   (0° = east, 90° = straight up)
  out[1]  → power in [MIN_POWER, 1]
  out[2:] → one score per weapon, arg-max picks the weapon
"""

from collections import namedtuple

import numpy as np

from config import MIN_POWER, WEAPON_NAMES
from errors import ConfigurationError

Decision = namedtuple("Decision", ["angle", "power", "weapon"])


class NeuralNetwork:
    """
    Borrowing view over a genome; the genome's owner controls its lifetime.
    """

    def __init__(self, genome, weapon_names=None):
        self.genome = genome
        self.weapon_names = list(weapon_names or WEAPON_NAMES)
        n_in, _, n_out = genome.sizes
        self.n_inputs  = n_in
        self.n_outputs = n_out
        if n_out != 2 + len(self.weapon_names):
            raise ConfigurationError(
                f"controller needs {2 + len(self.weapon_names)} outputs, "
                f"genome has {n_out}")

    # ──────────────────────────────────────────────────────────────────────────

    def forward(self, inputs) -> np.ndarray:
        """
        Run one forward pass.

        Args:
            inputs: array of shape (INPUT_SIZE,)

        Returns:
            raw, unbounded output activations of shape (OUTPUT_SIZE,)
        """
        x = np.asarray(inputs, dtype=np.float64)
        if x.shape != (self.n_inputs,):
            raise ValueError(f"expected {self.n_inputs} inputs, got shape {x.shape}")
        g = self.genome
        hidden = np.tanh(g.hidden_weights @ x + g.hidden_bias)
        return g.output_weights @ hidden + g.output_bias

    def decide(self, inputs) -> Decision:
        out = self.forward(inputs)
        angle = float(np.clip((out[0] + 1.0) * 90.0, 0.0, 180.0))
        power = float(np.clip((out[1] + 1.0) / 2.0, MIN_POWER, 1.0))
        weapon = self.weapon_names[int(np.argmax(out[2:]))]
        return Decision(angle, power, weapon)

    # ──────────────────────────────────────────────────────────────────────────

    def summary(self) -> str:
        n_in, n_hidden, n_out = self.genome.sizes
        lines = [f"NeuralNetwork ({n_in} → {n_hidden} → {n_out})"]
        for label, t in zip(("Wh", "bh", "Wo", "bo"), self.genome.tensors()):
            lines.append(f"  {label} {str(t.shape):<10} |w|max={np.abs(t).max():.3f}")
        return "\n".join(lines)

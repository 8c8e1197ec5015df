"""
Genome representation for TankEvo.

A genome is the full parameter set of one fixed-topology controller:

  hiddenWeights : (HIDDEN_SIZE, INPUT_SIZE)
  hiddenBias    : (HIDDEN_SIZE,)
  outputWeights : (OUTPUT_SIZE, HIDDEN_SIZE)
  outputBias    : (OUTPUT_SIZE,)

Genomes have value semantics: clone() copies every array and mutate()
only ever touches the genome it is called on.
"""

import numpy as np

from config import (INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE,
                    MUTATION_RATE, MUTATION_STRENGTH)
from errors import ConfigurationError

# File-format field names, in serialisation order
TENSOR_KEYS = ("hiddenWeights", "hiddenBias", "outputWeights", "outputBias")


def _expected_shapes(input_size: int, hidden_size: int, output_size: int) -> dict:
    return {
        "hiddenWeights": (hidden_size, input_size),
        "hiddenBias":    (hidden_size,),
        "outputWeights": (output_size, hidden_size),
        "outputBias":    (output_size,),
    }


class Genome:
    """
    Two dense weight matrices plus two bias vectors.
    """
    __slots__ = ("hidden_weights", "hidden_bias",
                 "output_weights", "output_bias")

    def __init__(self, hidden_weights, hidden_bias, output_weights, output_bias,
                 input_size: int = INPUT_SIZE, hidden_size: int = HIDDEN_SIZE,
                 output_size: int = OUTPUT_SIZE):
        if min(input_size, hidden_size, output_size) <= 0:
            raise ConfigurationError(
                f"network sizes must be positive, got "
                f"{input_size}/{hidden_size}/{output_size}")

        tensors = {}
        for key, value in zip(TENSOR_KEYS, (hidden_weights, hidden_bias,
                                            output_weights, output_bias)):
            try:
                tensors[key] = np.array(value, dtype=np.float64)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"{key}: not a numeric tensor ({exc})") from exc

        for key, shape in _expected_shapes(input_size, hidden_size, output_size).items():
            if tensors[key].shape != shape:
                raise ConfigurationError(
                    f"{key}: expected shape {shape}, got {tensors[key].shape}")

        self.hidden_weights = tensors["hiddenWeights"]
        self.hidden_bias    = tensors["hiddenBias"]
        self.output_weights = tensors["outputWeights"]
        self.output_bias    = tensors["outputBias"]

    # ──────────────────────────────────────────────────────────────────────────
    # Construction
    # ──────────────────────────────────────────────────────────────────────────

    @classmethod
    def random(cls, rng=None, input_size: int = INPUT_SIZE,
               hidden_size: int = HIDDEN_SIZE, output_size: int = OUTPUT_SIZE):
        """Weights uniform in [-1, 1], biases uniform in [-0.5, 0.5]."""
        if rng is None:
            rng = np.random.default_rng()
        return cls(
            rng.uniform(-1.0, 1.0, size=(hidden_size, input_size)),
            rng.uniform(-0.5, 0.5, size=hidden_size),
            rng.uniform(-1.0, 1.0, size=(output_size, hidden_size)),
            rng.uniform(-0.5, 0.5, size=output_size),
            input_size, hidden_size, output_size,
        )

    @classmethod
    def zeros(cls, input_size: int = INPUT_SIZE, hidden_size: int = HIDDEN_SIZE,
              output_size: int = OUTPUT_SIZE):
        return cls(
            np.zeros((hidden_size, input_size)), np.zeros(hidden_size),
            np.zeros((output_size, hidden_size)), np.zeros(output_size),
            input_size, hidden_size, output_size,
        )

    @property
    def sizes(self) -> tuple:
        """(input_size, hidden_size, output_size)"""
        return (self.hidden_weights.shape[1], self.hidden_weights.shape[0],
                self.output_weights.shape[0])

    def tensors(self) -> tuple:
        return (self.hidden_weights, self.hidden_bias,
                self.output_weights, self.output_bias)

    # ──────────────────────────────────────────────────────────────────────────
    # Value semantics
    # ──────────────────────────────────────────────────────────────────────────

    def clone(self) -> "Genome":
        """Independent structural copy of all four tensors."""
        copy = Genome.__new__(Genome)
        copy.hidden_weights = self.hidden_weights.copy()
        copy.hidden_bias    = self.hidden_bias.copy()
        copy.output_weights = self.output_weights.copy()
        copy.output_bias    = self.output_bias.copy()
        return copy

    def mutate(self, rate: float = MUTATION_RATE,
               strength: float = MUTATION_STRENGTH, rng=None) -> "Genome":
        """
        Perturb each scalar, with probability `rate`, by uniform noise in
        [-strength, strength].  Works in place and returns self.
        """
        if rate <= 0.0:
            return self
        if rng is None:
            rng = np.random.default_rng()
        for name in self.__slots__:
            arr   = getattr(self, name)
            mask  = rng.random(arr.shape) < rate
            noise = rng.uniform(-strength, strength, size=arr.shape)
            setattr(self, name, np.where(mask, arr + noise, arr))
        return self

    def is_finite(self) -> bool:
        return all(np.isfinite(t).all() for t in self.tensors())

    def equals(self, other: "Genome") -> bool:
        """Exact value equality of all four tensors."""
        return all(a.shape == b.shape and np.array_equal(a, b)
                   for a, b in zip(self.tensors(), other.tensors()))

    # ──────────────────────────────────────────────────────────────────────────
    # Serialisation
    # ──────────────────────────────────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {key: t.tolist() for key, t in zip(TENSOR_KEYS, self.tensors())}

    @classmethod
    def from_dict(cls, obj, input_size: int = INPUT_SIZE,
                  hidden_size: int = HIDDEN_SIZE, output_size: int = OUTPUT_SIZE):
        """Rebuild a genome from the file format; ConfigurationError on mismatch."""
        if not isinstance(obj, dict):
            raise ConfigurationError(f"genome must be an object, got {type(obj).__name__}")
        missing = [key for key in TENSOR_KEYS if key not in obj]
        if missing:
            raise ConfigurationError(f"genome is missing fields: {', '.join(missing)}")
        return cls(*(obj[key] for key in TENSOR_KEYS),
                   input_size=input_size, hidden_size=hidden_size,
                   output_size=output_size)

    def __repr__(self):
        i, h, o = self.sizes
        return f"Genome({i}→{h}→{o})"


# ──────────────────────────────────────────────────────────────────────────────
# Population-level helpers
# ──────────────────────────────────────────────────────────────────────────────

def genome_distance(genome_a: Genome, genome_b: Genome) -> float:
    """Mean absolute difference over every parameter."""
    diffs = [np.abs(a - b).ravel() for a, b in zip(genome_a.tensors(),
                                                  genome_b.tensors())]
    flat = np.concatenate(diffs)
    return float(flat.mean()) if flat.size else 0.0


def population_diversity(genomes: list, sample: int = 20, rng=None) -> float:
    """
    Average pairwise genome_distance over a random sample of the population.
    """
    if len(genomes) < 2:
        return 0.0
    if rng is None:
        rng = np.random.default_rng()
    sample_size = min(sample, len(genomes))
    idx = rng.choice(len(genomes), sample_size, replace=False)
    sampled = [genomes[i] for i in idx]
    total, count = 0.0, 0
    for i in range(len(sampled)):
        for j in range(i + 1, len(sampled)):
            total += genome_distance(sampled[i], sampled[j])
            count += 1
    return total / count if count else 0.0

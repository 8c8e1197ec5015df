import os
import sys

# Make the top-level modules importable from this folder
sys.path.insert(0, os.path.join(os.path.dirname(__file__), os.pardir))

import numpy as np
import pytest

from config import WEAPON_NAMES
from genome import Genome


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def fixed_genome():
    """
    Factory for genomes whose decision ignores the inputs: all weights are
    zero, so the outputs equal the output bias.
    """
    def make(angle_out=-0.5, power_out=1.0, weapon="standard"):
        g = Genome.zeros()
        g.output_bias[0] = angle_out          # (out + 1) * 90 → 45° by default
        g.output_bias[1] = power_out          # (out + 1) / 2  → 1.0 by default
        g.output_bias[2 + WEAPON_NAMES.index(weapon)] = 1.0
        return g
    return make

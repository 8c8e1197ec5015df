import numpy as np
import pytest

from config import INPUT_SIZE, HIDDEN_SIZE, OUTPUT_SIZE, MIN_POWER, WEAPON_NAMES
from errors import ConfigurationError
from genome import Genome
from neural_network import NeuralNetwork


def test_forward_shape_and_determinism(rng):
    net = NeuralNetwork(Genome.random(rng))
    x = rng.uniform(-1, 1, INPUT_SIZE)
    out = net.forward(x)
    assert out.shape == (OUTPUT_SIZE,)
    np.testing.assert_array_equal(out, net.forward(x))


def test_forward_rejects_wrong_input_length(rng):
    net = NeuralNetwork(Genome.random(rng))
    with pytest.raises(ValueError):
        net.forward(np.zeros(INPUT_SIZE + 1))


def test_forward_matches_manual_computation(rng):
    g = Genome.random(rng)
    x = rng.uniform(-1, 1, INPUT_SIZE)
    hidden = np.tanh(g.hidden_weights @ x + g.hidden_bias)
    expected = g.output_weights @ hidden + g.output_bias
    np.testing.assert_allclose(NeuralNetwork(g).forward(x), expected)


def test_decisions_stay_in_range(rng):
    for _ in range(50):
        g = Genome.random(rng)
        g.output_weights *= 5
        d = NeuralNetwork(g).decide(rng.uniform(-2, 2, INPUT_SIZE))
        assert 0.0 <= d.angle <= 180.0
        assert MIN_POWER <= d.power <= 1.0
        assert d.weapon in WEAPON_NAMES


def test_fixed_genome_decision(fixed_genome):
    d = NeuralNetwork(fixed_genome()).decide(np.zeros(INPUT_SIZE))
    assert d.angle == pytest.approx(45.0)
    assert d.power == pytest.approx(1.0)
    assert d.weapon == "standard"


def test_angle_and_power_are_clamped(fixed_genome):
    low = NeuralNetwork(fixed_genome(angle_out=-10.0, power_out=-10.0))
    d = low.decide(np.zeros(INPUT_SIZE))
    assert d.angle == 0.0
    assert d.power == MIN_POWER

    high = NeuralNetwork(fixed_genome(angle_out=10.0, power_out=10.0))
    d = high.decide(np.zeros(INPUT_SIZE))
    assert d.angle == 180.0
    assert d.power == 1.0


def test_weapon_is_arg_max_of_weapon_outputs(fixed_genome):
    d = NeuralNetwork(fixed_genome(weapon="mega")).decide(np.zeros(INPUT_SIZE))
    assert d.weapon == "mega"


def test_output_count_must_match_weapons(rng):
    with pytest.raises(ConfigurationError):
        NeuralNetwork(Genome.random(rng, output_size=3))


def test_summary_describes_each_tensor(rng):
    text = NeuralNetwork(Genome.random(rng)).summary()
    lines = text.splitlines()
    assert lines[0] == f"NeuralNetwork ({INPUT_SIZE} → {HIDDEN_SIZE} → {OUTPUT_SIZE})"
    assert [line.split()[0] for line in lines[1:]] == ["Wh", "bh", "Wo", "bo"]
    assert "|w|max=" in lines[1]

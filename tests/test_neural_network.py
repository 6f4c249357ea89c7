"""
Tests for the backprop MLP: construction, training behaviour, snapshots.
"""
import numpy as np
import pytest

from ring_insights.analytics.neural_network import NetworkConfig, NeuralNetwork
from ring_insights.errors import ConfigurationError

XOR_X = [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]
XOR_Y = [[0.0], [1.0], [1.0], [0.0]]


class TestConfig:

    def test_layer_sizes(self):
        cfg = NetworkConfig(input_size=3, hidden_layers=[5, 4], output_size=2)
        assert cfg.layer_sizes() == [3, 5, 4, 2]

    def test_weight_shapes(self):
        net = NeuralNetwork(input_size=3, hidden_layers=[5], output_size=2, seed=0)
        assert [w.shape for w in net.weights] == [(5, 3), (2, 5)]
        assert [b.shape for b in net.biases] == [(5,), (2,)]
        assert all(np.all(np.abs(w) <= 1.0) for w in net.weights)

    def test_unknown_activation(self):
        with pytest.raises(ConfigurationError):
            NetworkConfig(input_size=2, activation="softplus")

    def test_zero_width_layer(self):
        with pytest.raises(ConfigurationError):
            NetworkConfig(input_size=2, hidden_layers=[0])

    def test_config_and_kwargs_conflict(self):
        with pytest.raises(ConfigurationError):
            NeuralNetwork(NetworkConfig(input_size=2), input_size=3)


class TestTraining:

    def test_xor_loss_decreases(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[4], learning_rate=0.5, seed=0)
        losses = net.train(XOR_X, XOR_Y, epochs=2000)
        assert len(losses) == 2000
        assert losses[-1] < losses[0]

    def test_mini_batch(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[3], learning_rate=0.5, seed=1)
        losses = net.train(XOR_X, XOR_Y, epochs=300, batch_size=4)
        assert losses[-1] < losses[0]

    def test_learns_constant_target(self):
        net = NeuralNetwork(input_size=1, hidden_layers=[2], learning_rate=0.5, seed=2)
        net.train([[0.5]], [[0.9]], epochs=2000)
        assert net.predict([0.5])[0] == pytest.approx(0.9, abs=0.02)

    def test_output_in_sigmoid_range(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[3], seed=3)
        out = net.predict([100.0, -100.0])
        assert out.shape == (1,)
        assert 0.0 <= out[0] <= 1.0

    def test_predict_wrong_width(self):
        net = NeuralNetwork(input_size=2, seed=0)
        with pytest.raises(ConfigurationError):
            net.predict([1.0, 2.0, 3.0])

    def test_train_shape_mismatch(self):
        net = NeuralNetwork(input_size=2, seed=0)
        with pytest.raises(ConfigurationError):
            net.train([[1.0, 2.0]], [[1.0], [0.0]], epochs=1)

    def test_inputs_not_mutated(self):
        x = np.array(XOR_X)
        before = x.copy()
        NeuralNetwork(input_size=2, hidden_layers=[2], seed=0).train(x, XOR_Y, epochs=5)
        np.testing.assert_array_equal(x, before)


class TestSnapshots:

    def test_save_load_round_trip(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[3], seed=4)
        net.train(XOR_X, XOR_Y, epochs=10)
        clone = NeuralNetwork.from_snapshot(net.save())
        for x in XOR_X:
            np.testing.assert_allclose(clone.predict(x), net.predict(x))

    def test_json(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[3], activation="tanh", seed=5)
        clone = NeuralNetwork.from_json(net.to_json())
        assert clone.config.activation == "tanh"
        np.testing.assert_allclose(clone.predict([0.3, 0.7]), net.predict([0.3, 0.7]))

    def test_load_rejects_other_architecture(self):
        small = NeuralNetwork(input_size=2, hidden_layers=[3], seed=0)
        large = NeuralNetwork(input_size=2, hidden_layers=[4], seed=0)
        with pytest.raises(ConfigurationError):
            small.load(large.save())

    def test_load_rejects_missing_layers(self):
        net = NeuralNetwork(input_size=2, hidden_layers=[3], seed=0)
        snapshot = net.save()
        snapshot["weights"] = snapshot["weights"][:1]
        snapshot["biases"] = snapshot["biases"][:1]
        before = [w.copy() for w in net.weights]
        with pytest.raises(ConfigurationError):
            net.load(snapshot)
        assert len(net.weights) == 2
        for cur, old in zip(net.weights, before):
            np.testing.assert_array_equal(cur, old)

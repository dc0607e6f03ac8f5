"""
Tests for DenseNetwork
======================

Backpropagation is checked against finite differences, then the update loop:
termination, batching, waypoints, settings validation and evaluation.
"""

import logging
import numpy as np
import pytest

from numpy_flownet.network import Settings, Waypoint, SettingsNotSupportedError
from numpy_flownet.dense_network import DenseNetwork, AutoEncoder
from numpy_flownet.model_builder.layers import Layer_Input, Layer_Dense, Layer_Output, Layer_Focus, Layer_Convolution
from numpy_flownet.model_builder.activation_functions import Activation_Sigmoid, Activation_Tanh, Activation_Linear, Activation_LeakyReLU
from numpy_flownet.model_builder.loss_functions import Loss_SquaredError, Loss_SoftmaxCrossentropy
from numpy_flownet.model_builder.optimizers import Optimizer_SGD, Optimizer_Debuggable
from numpy_flownet.model_builder.weight_breeders import WeightBreeder
from numpy_flownet.utils import backend
from numpy_flownet.utils.gradient_check import FiniteDifferences, gradients_to_matrices


XOR_X = [np.array(x, dtype=float) for x in ((0, 0), (0, 1), (1, 0), (1, 1))]
XOR_Y = [np.array(y, dtype=float) for y in ((0,), (1,), (1,), (0,))]

requires_gpu = pytest.mark.skipif(not backend.gpu_available(), reason="CuPy or a CUDA device is unavailable")


def layout():
    return [Layer_Input(3), Layer_Dense(4, Activation_Tanh()), Layer_Dense(3, Activation_Sigmoid()),
            Layer_Output(2, Activation_Linear())]


def make_network(layers=None, seed=0, **settings):
    settings.setdefault("verbose", False)
    return DenseNetwork(layers or layout(), WeightBreeder("normal", sigma=0.5, seed=seed), Settings(**settings))


def random_batch(n=5, inputs=3, outputs=2, seed=0):
    rng = np.random.default_rng(seed)
    return list(rng.standard_normal((n, inputs))), list(rng.standard_normal((n, outputs)))


def assert_gradients_agree(network, xs, ys):
    analytical, _ = network.compute_gradients(xs, ys)
    numerical = gradients_to_matrices(network.approximate_gradients(xs, ys, FiniteDifferences(1e-5)), network.weights)
    for a, n in zip(analytical, numerical):
        np.testing.assert_allclose(backend.to_numpy(a), n, rtol=1e-5, atol=1e-8)


class TestGradients:
    """Analytic gradients must agree with finite differences."""

    def test_squared_error(self):
        xs, ys = random_batch()
        assert_gradients_agree(make_network(), xs, ys)

    def test_softmax_crossentropy(self):
        xs, _ = random_batch()
        ys = list(np.eye(2)[[0, 1, 1, 0, 1]])
        assert_gradients_agree(make_network(loss_function=Loss_SoftmaxCrossentropy()), xs, ys)

    def test_single_weight_layer(self):
        """Input straight into Output has one weight matrix at index zero."""
        network = make_network([Layer_Input(3), Layer_Output(2, Activation_Sigmoid())])
        xs, ys = random_batch()
        assert_gradients_agree(network, xs, ys)

    def test_shapes(self):
        network = make_network()
        dws, loss = network.compute_gradients(*random_batch(n=4))
        assert [dw.shape for dw in dws] == [w.shape for w in network.weights]
        assert loss.shape == (4, 2)

    def test_sub_batches_sum(self):
        network = make_network()
        xs, ys = random_batch(n=6)
        full, _ = network.compute_gradients(xs, ys)
        first, _ = network.compute_gradients(xs[:2], ys[:2])
        second, _ = network.compute_gradients(xs[2:], ys[2:])
        for dw, a, b in zip(full, first, second):
            np.testing.assert_allclose(dw, a + b, rtol=1e-12, atol=1e-14)

    def test_weights_untouched(self):
        network = make_network()
        before = network.get_weights()
        network.compute_gradients(*random_batch())
        network.approximate_gradients(*random_batch())
        for w, b in zip(network.get_weights(), before):
            np.testing.assert_array_equal(w, b)

    def test_mismatched_batch(self):
        xs, ys = random_batch()
        with pytest.raises(ValueError):
            make_network().compute_gradients(xs, ys[:-1])

    @requires_gpu
    def test_gpu_matches_cpu(self):
        xs, ys = random_batch()
        cpu_dws, cpu_loss = make_network().compute_gradients(xs, ys)
        gpu_dws, gpu_loss = make_network(device="gpu").compute_gradients(xs, ys)
        for a, b in zip(cpu_dws, gpu_dws):
            np.testing.assert_allclose(a, backend.to_numpy(b), rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(cpu_loss, backend.to_numpy(gpu_loss), rtol=1e-10)


class TestTraining:
    """Tests for the update loop."""

    def test_xor(self):
        layers = [Layer_Input(2), Layer_Dense(3, Activation_Tanh()), Layer_Output(1, Activation_Sigmoid())]
        settings = Settings(loss_function=Loss_SquaredError(), learning_rate=1.0, update_rule=Optimizer_SGD(),
                            precision=1e-3, iterations=20000, parallelism=1, verbose=False)
        network = DenseNetwork(layers, WeightBreeder("random", low=-1., high=1., seed=7), settings)
        network.train(XOR_X, XOR_Y)

        outputs = network.predict(XOR_X)
        np.testing.assert_array_equal(np.round(outputs), np.array(XOR_Y))

    def test_stops_at_iterations(self):
        network = make_network(precision=0., iterations=7)
        network.train(*random_batch())
        assert len(network.losses) == 7

    def test_stops_at_precision(self):
        network = make_network(precision=1e9, iterations=50)
        loss = network.train(*random_batch())
        assert len(network.losses) == 1
        assert loss == network.losses[-1]

    def test_loss_decreases(self):
        network = make_network(precision=0., iterations=50, learning_rate=0.01)
        network.train(*random_batch())
        assert network.losses[-1] < network.losses[0]

    def test_parallel_sub_batches_match_sequential(self):
        xs, ys = random_batch(n=7)
        sequential = make_network(precision=0., iterations=3, parallelism=1)
        parallel = make_network(precision=0., iterations=3, parallelism=3)
        sequential.train(xs, ys)
        parallel.train(xs, ys)
        for a, b in zip(sequential.get_weights(), parallel.get_weights()):
            np.testing.assert_allclose(a, b, rtol=1e-10, atol=1e-12)

    def test_batches_round_robin(self, caplog):
        network = make_network(precision=0., iterations=4, batch_size=2, verbose=True)
        with caplog.at_level(logging.INFO, logger="numpy_flownet.network"):
            network.train(*random_batch(n=4))
        lines = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Iteration")]
        assert [line.split(",")[0] for line in lines] == ["Iteration 1.1", "Iteration 2.2", "Iteration 3.1", "Iteration 4.2"]
        assert "Took 4 of 4 iterations." in caplog.text

    def test_waypoint_cadence(self):
        seen = []
        waypoint = Waypoint(3, lambda iteration, weights: seen.append((iteration, len(weights))))
        network = make_network(precision=0., iterations=10, waypoint=waypoint)
        network.train(*random_batch())
        assert seen == [(3, 3), (6, 3), (9, 3)]

    def test_zero_learning_rate_keeps_weights(self):
        network = make_network(precision=0., iterations=3, learning_rate=0.)
        before = network.get_weights()
        network.train(*random_batch())
        for w, b in zip(network.get_weights(), before):
            np.testing.assert_array_equal(w, b)

    def test_not_reentrant(self):
        network = make_network(precision=0., iterations=5)
        xs, ys = random_batch()
        network.settings.waypoint = Waypoint(1, lambda iteration, weights: network.train(xs, ys))
        with pytest.raises(RuntimeError):
            network.train(xs, ys)
        # lock is released again
        network.settings.waypoint = None
        network.train(xs, ys)

    def test_mismatched_samples(self):
        xs, ys = random_batch()
        with pytest.raises(ValueError):
            make_network().train(xs, ys[:-1])
        with pytest.raises(ValueError):
            make_network().train([np.zeros(4)] * 5, ys)

    def test_approximation(self):
        """Finite-difference training records the approximated gradients."""
        xs, ys = random_batch()
        rule = Optimizer_Debuggable()
        network = make_network(precision=0., iterations=1, update_rule=rule, approximation=FiniteDifferences(1e-5))
        expected, _ = network.compute_gradients(xs, ys)
        network.train(xs, ys)
        for index, dw in enumerate(expected):
            np.testing.assert_allclose(rule.last_gradients[index], dw, rtol=1e-5, atol=1e-8)

    def test_float32(self):
        network = make_network(dtype="float32", precision=0., iterations=2)
        assert all(w.dtype == np.float32 for w in network.weights)
        loss = network.train(*random_batch())
        assert np.isfinite(loss)

    def test_buffers_released(self):
        network = make_network()
        network.buffer_audit = []
        network.compute_gradients(*random_batch())
        assert len(network.buffer_audit) == 1
        assert network.buffer_audit[0].released == 9
        assert len(network.buffer_audit[0]) == 0

    def test_buffers_released_on_error(self):
        class ExplodingLoss(Loss_SquaredError):
            def __call__(self, y, x):
                raise FloatingPointError("loss exploded")

        network = make_network(loss_function=ExplodingLoss())
        network.buffer_audit = []
        with pytest.raises(FloatingPointError):
            network.compute_gradients(*random_batch())
        assert network.buffer_audit[0].released == 6
        assert len(network.buffer_audit[0]) == 0


class TestSettings:
    """Settings are validated at construction."""

    @pytest.mark.parametrize("settings", [
        dict(regularization="l2"),
        dict(device="tpu"),
        dict(dtype="float16"),
        dict(approximation=FiniteDifferences()),
        dict(iterations=0),
        dict(batch_size=0),
        dict(waypoint=Waypoint(0, print)),
    ])
    def test_not_supported(self, settings):
        with pytest.raises(SettingsNotSupportedError):
            make_network(**settings)

    @pytest.mark.skipif(backend.gpu_available(), reason="a GPU is available")
    def test_gpu_unavailable(self):
        with pytest.raises(SettingsNotSupportedError):
            make_network(device="gpu")

    @requires_gpu
    def test_gpu_activation_without_kernel(self):
        with pytest.raises(SettingsNotSupportedError):
            make_network([Layer_Input(3), Layer_Output(2, Activation_LeakyReLU())], device="gpu")

    def test_float_learning_rate_becomes_schedule(self):
        settings = Settings(learning_rate=0.5)
        assert settings.learning_rate(1) == settings.learning_rate(100) == 0.5


class TestLayout:
    """Layout and weight validation."""

    def test_needs_input(self):
        with pytest.raises(ValueError):
            make_network([Layer_Dense(3, Activation_Tanh()), Layer_Output(2, Activation_Linear())])

    def test_rejects_convolution(self):
        conv = Layer_Convolution((2, 2, 1), 0, 1, 1, 1, Activation_Tanh())
        with pytest.raises(ValueError):
            make_network([Layer_Input(4), conv, Layer_Output(2, Activation_Linear())])

    def test_output_must_be_last(self):
        with pytest.raises(ValueError):
            make_network([Layer_Input(3), Layer_Output(2, Activation_Linear()), Layer_Dense(2, Activation_Tanh())])

    def test_weight_shape_mismatch(self):
        with pytest.raises(ValueError):
            DenseNetwork(layout(), [np.zeros((3, 4)), np.zeros((4, 3)), np.zeros((2, 2))], Settings(verbose=False))

    def test_weights_are_owned(self):
        weights = [np.zeros((3, 4)), np.zeros((4, 3)), np.zeros((3, 2))]
        network = DenseNetwork(layout(), weights, Settings(verbose=False))
        network.weights[0][0, 0] = 1.
        assert weights[0][0, 0] == 0.


class TestEvaluation:
    """Tests for apply, focus and persistence."""

    def test_apply_matches_forward(self):
        network = make_network()
        x = np.array([0.1, -0.2, 0.3])
        W = network.get_weights()
        expected = np.tanh(x @ W[0])
        expected = 1 / (1 + np.exp(-(expected @ W[1])))
        expected = expected @ W[2]
        np.testing.assert_allclose(network.apply(x), expected)
        np.testing.assert_allclose(network.evaluate(x), expected)

    def test_softmax_output(self):
        network = make_network(loss_function=Loss_SoftmaxCrossentropy())
        output = network.apply(np.ones(3))
        assert output.shape == (2,)
        assert output.sum() == pytest.approx(1.)

    def test_focus(self):
        layers = layout()
        layers[1] = Layer_Focus(layers[1])
        network = make_network(layers)
        x = np.array([1., 2., 3.])
        np.testing.assert_allclose(network.apply(x), np.tanh(x @ network.get_weights()[0]))

    def test_predict_batches(self):
        network = make_network()
        xs, _ = random_batch(n=5)
        np.testing.assert_allclose(network.predict(xs, batch_size=2), network.predict(xs))

    def test_save_and_load(self, tmp_path):
        network = make_network(seed=1)
        other = make_network(seed=2)
        path = tmp_path / "dense.weights"
        network.save_weights(path)
        other.load_weights(path)
        for a, b in zip(network.get_weights(), other.get_weights()):
            np.testing.assert_array_equal(a, b)


class TestAutoEncoder:
    """Tests for the AutoEncoder."""

    def test_trains_on_inputs(self):
        layers = [Layer_Input(4), Layer_Focus(Layer_Dense(2, Activation_Tanh())), Layer_Output(4, Activation_Linear())]
        network = AutoEncoder(layers, WeightBreeder("normal", sigma=0.5, seed=0),
                              Settings(precision=0., iterations=100, learning_rate=0.01, verbose=False))
        xs = list(np.random.default_rng(0).standard_normal((6, 4)))
        network.train(xs)
        assert network.losses[-1] < network.losses[0]
        assert network.apply(xs[0]).shape == (2,)

    def test_needs_symmetric_layout(self):
        layers = [Layer_Input(4), Layer_Output(3, Activation_Linear())]
        network = AutoEncoder(layers, settings=Settings(verbose=False))
        with pytest.raises(ValueError):
            network.train([np.zeros(4)])

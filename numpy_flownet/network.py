"""
network.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Shared machinery of the networks: training settings and their validation, waypoints,
             batch breeding, the gradient-descent update loop, the CPU worker pool fan-out and the
             scoped GPU buffers of a training step, and the finite-difference training mode.
Published: 10-18-2026
"""

import os
import pickle
import logging
import threading
from contextlib import nullcontext
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import numpy as np

from numpy_flownet.model_builder.activation_functions import CudaActivation
from numpy_flownet.model_builder.layers import Layer_Input, focus_index, unwrap
from numpy_flownet.model_builder.loss_functions import Loss_SquaredError
from numpy_flownet.model_builder.lr_schedules import ConstantSchedule
from numpy_flownet.model_builder.optimizers import Optimizer_Debuggable, Optimizer_SGD
from numpy_flownet.model_builder.weight_breeders import WeightBreeder, expected_weight_shapes
from numpy_flownet.utils import backend
from numpy_flownet.utils.gradient_check import FiniteDifferences, approximate_gradients, gradients_to_matrices


class SettingsNotSupportedError(ValueError):
    """Raised at construction when settings are incompatible with a network or backend."""


@dataclass
class Waypoint:
    """
    Performs `action` every `nth` iteration.

    Attributes:
        nth (int): Cadence in iterations.
        action (callable): (iteration, weights) -> None, weights are host copies.
    """
    nth: int
    action: Callable[[int, list], Any]


@dataclass
class Settings:
    """
    Training configuration of a network.

    Attributes:
        loss_function (Loss): Loss producing (loss, gradient) from targets and predictions.
        learning_rate (float or callable): Step size, or schedule iteration -> step size.
        update_rule (Optimizer): In-place rule (weights, dweights, step_size, layer_index).
        precision (float): Training stops once the mean loss is at or below this value.
        iterations (int): Maximum number of iterations.
        batch_size (int): Samples per batch, None for one full batch.
        parallelism (int): Worker threads of the CPU backend.
        waypoint (Waypoint): Optional periodic callback.
        approximation (FiniteDifferences): Train on approximated gradients (debugging).
        regularization: Not supported, must stay None.
        device (str): 'cpu' (NumPy) or 'gpu' (CuPy).
        dtype (str): 'float32' or 'float64'.
        verbose (bool): Log every iteration.
    """
    loss_function: Any = field(default_factory=Loss_SquaredError)
    learning_rate: Any = 0.1
    update_rule: Any = field(default_factory=Optimizer_SGD)
    precision: float = 1e-5
    iterations: int = 100
    batch_size: Optional[int] = None
    parallelism: int = os.cpu_count() or 1
    waypoint: Optional[Waypoint] = None
    approximation: Optional[FiniteDifferences] = None
    regularization: Any = None
    device: str = "cpu"
    dtype: str = "float64"
    verbose: bool = True

    def __post_init__(self):
        # plain numbers become a constant schedule
        if not callable(self.learning_rate):
            self.learning_rate = ConstantSchedule(float(self.learning_rate))


class BaseNetwork:
    """
    Base class of the networks.

    Subclasses implement:
        check_layout(): reject unsupported layer sequences.
        check_sample(x, y): reject samples of the wrong shape.
        _backprop(x, y, buffers): forward and backward pass of one (sub-)batch.
        _flow(x, target): forward pass up to weight index `target`.

    Attributes:
        layers (list): Layout.
        settings (Settings): Training configuration.
        weights (list): Weight matrices owned by this network, on the configured device.
        losses (list): Mean loss of every training iteration.
        buffer_audit (list or None): When set, receives every released DeviceBuffers scope.
    """
    def __init__(self, layers, weights=None, settings=None, logger=None):
        """
        Args:
            layers (list): Layer sequence.
            weights (list or callable): Initial weight matrices, or a breeder called with the layers.
            settings (Settings): Training configuration, defaults to Settings().
            logger: Optional logger; defaults to the module logger.
        """
        self.layers = list(layers)
        self.settings = settings if settings is not None else Settings()
        self.logger = logger or logging.getLogger(__name__)

        self.check_settings()
        self.xp = backend.get_array_module(self.settings.device)
        self.dtype = backend.resolve_dtype(self.settings.dtype)

        self._layers = [unwrap(layer) for layer in self.layers if not isinstance(layer, Layer_Input)]
        self.check_layout()

        if weights is None:
            weights = WeightBreeder()
        if callable(weights):
            weights = weights(self.layers)
        self.weights = self._adopt_weights(weights)

        self._activators = self._build_activators()
        focus = focus_index(self.layers)
        offset = 1 if isinstance(self.layers[0], Layer_Input) else 0
        self._focus_idx = None if focus is None else focus - offset
        self._last_idx = len(self.weights) - 1
        self._output_dim = self._layers[-1].neurons

        self._pool = None
        self._lock = threading.Lock()
        self.losses = []
        self.buffer_audit = None

    def check_settings(self):
        """
        Checks if the settings are properly defined.

        Raises:
            SettingsNotSupportedError: On any incompatible setting.
        """
        settings = self.settings
        if settings.regularization is not None:
            raise SettingsNotSupportedError("Regularization is not supported.")
        if settings.device not in backend.DEVICES:
            raise SettingsNotSupportedError(f"Unknown device: {settings.device}")
        if settings.dtype not in backend.DTYPES:
            raise SettingsNotSupportedError(f"Unsupported dtype: {settings.dtype}")
        if settings.device == "gpu" and not backend.gpu_available():
            raise SettingsNotSupportedError("Device 'gpu' requested but CuPy or a CUDA device is unavailable.")
        if settings.approximation is not None and not isinstance(settings.update_rule, Optimizer_Debuggable):
            raise SettingsNotSupportedError("Approximation requires the Optimizer_Debuggable update rule.")
        if settings.iterations < 1:
            raise SettingsNotSupportedError("Iterations must be positive.")
        if settings.parallelism < 1:
            raise SettingsNotSupportedError("Parallelism must be positive.")
        if settings.batch_size is not None and settings.batch_size < 1:
            raise SettingsNotSupportedError("Batch size must be positive.")
        if settings.waypoint is not None and settings.waypoint.nth < 1:
            raise SettingsNotSupportedError("Waypoint cadence must be positive.")

    def check_layout(self):
        raise NotImplementedError

    def check_sample(self, x, y):
        raise NotImplementedError

    def _adopt_weights(self, weights):
        # shapes are validated once here, never during training
        shapes = expected_weight_shapes(self.layers)
        if len(weights) != len(shapes):
            raise ValueError(f"Expected {len(shapes)} weight matrices, got {len(weights)}!")
        adopted = []
        for index, (w, shape) in enumerate(zip(weights, shapes)):
            if tuple(w.shape) != shape:
                raise ValueError(f"Weight {index} has shape {tuple(w.shape)}, layout requires {shape}!")
            adopted.append(self.xp.array(w, dtype=self.dtype))
        return adopted

    def _build_activators(self):
        if self.settings.device == "cpu":
            return [layer.activation for layer in self._layers]
        activators = []
        for layer in self._layers:
            try:
                activators.append(CudaActivation(layer.activation))
            except ValueError as e:
                raise SettingsNotSupportedError(str(e)) from e
        return activators

    def get_weights(self):
        """
        Host copies of the weights.

        Returns:
            list: numpy.ndarray weight matrices.
        """
        return [backend.to_numpy(w) for w in self.weights]

    def set_weights(self, weights):
        """
        Overwrite the weights in place, shapes must match the layout.
        """
        adopted = self._adopt_weights(weights)
        for w, new in zip(self.weights, adopted):
            w[...] = new

    # Saves the weights into a file
    def save_weights(self, path):
        with open(path, 'wb') as f:
            pickle.dump(self.get_weights(), f)

    # Loads the weights and updates the network with them
    def load_weights(self, path):
        with open(path, 'rb') as f:
            self.set_weights(pickle.load(f))

    # ===== Evaluation =====

    def _prepare(self, xs):
        return self.xp.asarray(np.stack([backend.to_numpy(x) for x in xs]), dtype=self.dtype)

    def apply(self, x):
        """
        Computes the output for a single sample, to the focus layer if there is one.

        Args:
            x (ndarray): One sample.

        Returns:
            numpy.ndarray: Output vector.
        """
        return self.predict([x])[0]

    evaluate = apply

    def predict(self, xs, *, batch_size=None):
        """
        Computes outputs for many samples.

        Args:
            xs (sequence): Samples.
            batch_size (int): Optional number of samples per forward pass.

        Returns:
            numpy.ndarray: Outputs, one row per sample.
        """
        xs = list(xs)
        batch_size = batch_size or max(len(xs), 1)
        output = []
        for start in range(0, len(xs), batch_size):
            batch_x = self._prepare(xs[start:start + batch_size])
            if self._focus_idx is not None:
                batch_output = self._flow(batch_x, self._focus_idx)
            else:
                batch_output = self.settings.loss_function.output(self._flow(batch_x, self._last_idx))
            output.append(backend.to_numpy(batch_output))
        return np.vstack(output)

    # ===== Gradients =====

    def compute_gradients(self, xs, ys):
        """
        Analytic gradients of the loss w.r.t. every weight for one batch, weights untouched.

        Args:
            xs (sequence): Samples.
            ys (sequence): Targets.

        Returns:
            tuple: (list of gradient matrices shaped like the weights, loss matrix samples x outputs).
        """
        if len(xs) != len(ys):
            raise ValueError("Mismatch between sample sizes!")
        for x, y in zip(xs, ys):
            self.check_sample(x, y)
        return self._gradients(self._prepare(xs), self._prepare(ys))

    def _gradients(self, x, y):
        xp = self.xp
        n = x.shape[0]
        if self.settings.device == "gpu":
            # one pass over the full batch on device
            return self._scoped_backprop(x, y)

        chunks = min(self.settings.parallelism, n) if self._pool is not None else 1
        bounds = np.linspace(0, n, chunks + 1).astype(int)
        slices = [slice(bounds[k], bounds[k + 1]) for k in range(chunks)]

        def work(s):
            return self._scoped_backprop(x[s], y[s])

        if len(slices) == 1:
            results = [work(slices[0])]
        else:
            results = list(self._pool.map(work, slices))

        # accumulators start at zero every step
        dws = [xp.zeros_like(w) for w in self.weights]
        for partial, _ in results:
            for i in range(len(dws)):
                dws[i] += partial[i]
        loss = xp.concatenate([partial_loss for _, partial_loss in results], axis=0)
        return dws, loss

    def _scoped_backprop(self, x, y):
        with backend.device_buffers(self.xp, self.buffer_audit) as buffers:
            dws, loss = self._backprop(x, y, buffers)
            backend.sync_gpu(self.xp)
        return dws, loss

    # ===== Training =====

    def _breed_batches(self, xs, ys):
        batch_size = self.settings.batch_size or len(xs)
        batches = []
        for start in range(0, len(xs), batch_size):
            batches.append((self._prepare(xs[start:start + batch_size]), self._prepare(ys[start:start + batch_size])))
        return batches

    def train(self, xs, ys):
        """
        Trains this net with input `xs` against output `ys`, updating the weights in place.

        Args:
            xs (sequence): Samples.
            ys (sequence): Targets.

        Returns:
            float: Mean loss of the last iteration.

        Raises:
            ValueError: On sample/target mismatches, before any computation.
            RuntimeError: If this network is already training.
        """
        xs, ys = list(xs), list(ys)
        if len(xs) != len(ys):
            raise ValueError("Mismatch between sample sizes!")
        if not xs:
            raise ValueError("No samples to train with!")
        for x, y in zip(xs, ys):
            self.check_sample(x, y)

        if not self._lock.acquire(blocking=False):
            raise RuntimeError("This network is already training.")
        try:
            batch_size = self.settings.batch_size or len(xs)
            if self.settings.verbose:
                self.logger.info(f"Training with {len(xs)} samples, batch size = {batch_size}, "
                                 f"batches = {-(-len(xs) // batch_size)}.")
            batches = self._breed_batches(xs, ys)
            pool = ThreadPoolExecutor(max_workers=self.settings.parallelism) if self.settings.device == "cpu" else nullcontext()
            with pool:
                self._pool = pool if self.settings.device == "cpu" else None
                try:
                    return self._run(batches)
                finally:
                    self._pool = None
        finally:
            self._lock.release()

    def _run(self, batches):
        """
        The training loop.
        """
        settings = self.settings
        iteration, batch = 1, 0
        step_size = settings.learning_rate(iteration)

        while True:
            x, y = batches[batch]
            if settings.approximation is not None:
                loss = self._adapt_weights_approx(x, y, step_size)
            else:
                loss = self._adapt_weights(x, y, step_size)
            loss_mean = float(loss.mean())
            self.losses.append(loss_mean)
            if settings.verbose:
                self.logger.info(f"Iteration {iteration}.{batch + 1}, Avg. Loss = {loss_mean:.6g}, Vector: {backend.to_numpy(loss)}")
            self._waypoint(iteration)
            if loss_mean > settings.precision and iteration < settings.iterations:
                iteration += 1
                batch = (batch + 1) % len(batches)
                step_size = settings.learning_rate(iteration)
            else:
                break

        self.logger.info(f"Took {iteration} of {settings.iterations} iterations.")
        return loss_mean

    def _adapt_weights(self, x, y, step_size):
        """
        Computes the gradients for a batch, adapts the weights and returns the reduced loss (1 x outputs).
        """
        dws, loss = self._gradients(x, y)
        for i in range(len(self.weights)):
            self.settings.update_rule(self.weights[i], dws[i], step_size, i)
        return loss.sum(axis=0, keepdims=True)

    def _loss_func(self, x, y):
        def loss_func():
            loss, _ = self.settings.loss_function(y, self._flow(x, self._last_idx))
            return loss.sum(axis=0, keepdims=True)
        return loss_func

    def _adapt_weights_approx(self, x, y, step_size):
        """
        For debugging, approximates the gradients using settings.approximation and adapts the weights.
        """
        loss_func = self._loss_func(x, y)
        out = loss_func()
        gradients = approximate_gradients(self.weights, loss_func, self.settings.approximation)
        dws = [self.xp.asarray(m, dtype=self.dtype) for m in gradients_to_matrices(gradients, self.weights)]
        for i in range(len(self.weights)):
            self.settings.update_rule(self.weights[i], dws[i], step_size, i)
        return out

    def approximate_gradients(self, xs, ys, approximation=None):
        """
        Finite-difference gradients for one batch, weights restored afterwards.

        Returns:
            dict: (layer_index, (row, col)) -> approximated gradient.
        """
        if len(xs) != len(ys):
            raise ValueError("Mismatch between sample sizes!")
        loss_func = self._loss_func(self._prepare(xs), self._prepare(ys))
        return approximate_gradients(self.weights, loss_func, approximation or self.settings.approximation)

    def _waypoint(self, iteration):
        waypoint = self.settings.waypoint
        if waypoint is not None and iteration % waypoint.nth == 0:
            self.logger.info("Waypoint ...")
            waypoint.action(iteration, self.get_weights())

    def __repr__(self):
        layout = " :: ".join(repr(layer) for layer in self.layers)
        return f"{type(self).__name__}({layout}, device={self.settings.device}, dtype={self.settings.dtype})"

"""
optimizers.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Implements update rules (SGD with optional momentum, Adagrad, Adam and a debuggable SGD)
             that turn a gradient into an in-place weight change. Rules keep their per-layer state
             keyed by layer index.
Published: 10-18-2026
"""

from numpy_flownet.utils import backend


class Optimizer:
    """
    Base update rule.

    Calling a rule with (weights, dweights, step_size, layer_index) updates
    `weights` in place. Per-layer state (momentums, caches) lives in dicts
    keyed by layer index and is created with zeros on first use.
    """
    def __call__(self, weights, dweights, step_size, layer_index):
        self.update_params(weights, dweights, step_size, layer_index)

    def reset(self):
        """Forget all per-layer state."""
        for value in vars(self).values():
            if isinstance(value, dict):
                value.clear()


class Optimizer_SGD(Optimizer):
    """
    Stochastic Gradient Descent (SGD) update rule with optional momentum.

    Attributes:
        momentum (float): Momentum factor (0 for vanilla SGD).
    """
    def __init__(self, momentum=0.):
        """
        Args:
            momentum (float): Momentum coefficient (0 disables momentum).
        """
        self.momentum = momentum
        self.weight_momentums = {}

    def update_params(self, weights, dweights, step_size, layer_index):
        """
        Apply the update to a single weight matrix.
        """
        # if we use momentum
        if self.momentum:
            # if layer does not have a momentum array, create it filled with zeros
            if layer_index not in self.weight_momentums:
                self.weight_momentums[layer_index] = backend.array_module(weights).zeros_like(weights)
            # take previous updates multiplied by retain factor and update with current gradients
            weight_updates = self.momentum * self.weight_momentums[layer_index] - step_size * dweights
            self.weight_momentums[layer_index] = weight_updates
        else: # vanilla SGD updates without momentum
            weight_updates = -step_size * dweights

        weights += weight_updates


class Optimizer_Adagrad(Optimizer):
    """
    Adagrad update rule: adaptive step sizes per weight based on historical gradients.
    """
    def __init__(self, epsilon=1e-7):
        """
        Args:
            epsilon (float): Small constant for numerical stability.
        """
        self.epsilon = epsilon
        self.weight_cache = {}

    def update_params(self, weights, dweights, step_size, layer_index):
        xp = backend.array_module(weights)
        if layer_index not in self.weight_cache:
            self.weight_cache[layer_index] = xp.zeros_like(weights)

        # Update cache with squared current gradients
        self.weight_cache[layer_index] += dweights**2

        # vanilla SGD parameter update + normalization with square rooted cache
        weights += -step_size * dweights / (xp.sqrt(self.weight_cache[layer_index]) + self.epsilon)


class Optimizer_Adam(Optimizer):
    """
    Adam update rule: combines momentum and RMSprop with bias correction.
    """
    def __init__(self, epsilon=1e-7, beta_1=0.9, beta_2=0.999):
        """
        Args:
            epsilon (float): Stability term.
            beta_1 (float): Momentum decay.
            beta_2 (float): RMS decay.
        """
        self.epsilon = epsilon
        self.beta_1 = beta_1
        self.beta_2 = beta_2
        self.weight_momentums = {}
        self.weight_cache = {}
        self.iterations = {}

    def update_params(self, weights, dweights, step_size, layer_index):
        xp = backend.array_module(weights)
        if layer_index not in self.weight_cache:
            self.weight_momentums[layer_index] = xp.zeros_like(weights)
            self.weight_cache[layer_index] = xp.zeros_like(weights)
            self.iterations[layer_index] = 0
        self.iterations[layer_index] += 1
        t = self.iterations[layer_index]

        # Update momentum with current gradients
        self.weight_momentums[layer_index] = self.beta_1 * self.weight_momentums[layer_index] + (1 - self.beta_1) * dweights
        momentums_corrected = self.weight_momentums[layer_index] / (1 - self.beta_1 ** t)

        # update cache with squared current gradients
        self.weight_cache[layer_index] = self.beta_2 * self.weight_cache[layer_index] + (1 - self.beta_2) * dweights**2
        cache_corrected = self.weight_cache[layer_index] / (1 - self.beta_2 ** t)

        weights += -step_size * momentums_corrected / (xp.sqrt(cache_corrected) + self.epsilon)


class Optimizer_Debuggable(Optimizer_SGD):
    """
    Vanilla SGD that remembers the last gradient of every layer.

    Used to compare analytic gradients with finite-difference approximations.

    Attributes:
        last_gradients (dict): layer index -> host copy of the last gradient.
    """
    def __init__(self):
        super().__init__(momentum=0.)
        self.last_gradients = {}

    def update_params(self, weights, dweights, step_size, layer_index):
        self.last_gradients[layer_index] = backend.to_numpy(dweights)
        super().update_params(weights, dweights, step_size, layer_index)

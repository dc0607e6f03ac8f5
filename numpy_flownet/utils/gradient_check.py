"""
gradient_check.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Provides gradient checking utilities, approximating the partial derivatives of a loss
             w.r.t. every weight by central finite differences, for comparison against the analytical
             gradients computed by backpropagation.
Published: 10-18-2026
"""

import numpy as np
from numpy_flownet.utils import backend


class FiniteDifferences:
    """
    Central finite-difference approximation of a single partial derivative:

        dL/dw ≈ (L(w + Δ) - L(w - Δ)) / (2Δ)

    Costs two forward passes per weight, so it is meant for small networks and debugging only.

    Attributes:
        delta (float): Perturbation Δ.
    """
    def __init__(self, delta=1e-5):
        if delta <= 0:
            raise ValueError("Delta must be positive!")
        self.delta = delta

    def __call__(self, weights, loss_func, layer_index, coord, sync=None):
        """
        Approximate dL/dw for w = weights[layer_index][coord].

        Args:
            weights (list): Weight matrices, perturbed in place and restored before returning.
            loss_func (callable): Re-invokable loss over the current batch, returns an array or scalar.
            layer_index (int): Index of the weight matrix.
            coord (tuple): (row, col) of the weight.
            sync (callable): Optional hook called after every change of the weight.

        Returns:
            float: Approximated partial derivative, summed over the loss entries.
        """
        w = weights[layer_index]
        original = w[coord].item()
        try:
            # Perturb - delta
            w[coord] = original - self.delta
            if sync is not None:
                sync()
            loss_minus = float(loss_func().sum())

            # Perturb + delta
            w[coord] = original + self.delta
            if sync is not None:
                sync()
            loss_plus = float(loss_func().sum())
        finally:
            # Restore original weight
            w[coord] = original
            if sync is not None:
                sync()

        return (loss_plus - loss_minus) / (2 * self.delta)

    def __repr__(self):
        return f"FiniteDifferences({self.delta})"


def approximate_gradients(weights, loss_func, approximation=None, sync=None):
    """
    Approximate the gradient of every single weight.

    Args:
        weights (list): Weight matrices.
        loss_func (callable): Re-invokable loss over the current batch.
        approximation (FiniteDifferences): Defaults to FiniteDifferences(1e-5).
        sync (callable): Optional hook after weight changes.

    Returns:
        dict: (layer_index, (row, col)) -> approximated gradient.
    """
    approximation = approximation or FiniteDifferences()
    gradients = {}
    for layer_index, w in enumerate(weights):
        rows, cols = w.shape
        for row in range(rows):
            for col in range(cols):
                gradients[(layer_index, (row, col))] = approximation(weights, loss_func, layer_index, (row, col), sync)
    return gradients


def gradients_to_matrices(gradients, weights):
    """
    Arrange a coordinate -> gradient mapping into host matrices shaped like `weights`.
    """
    matrices = [np.zeros(w.shape) for w in weights]
    for (layer_index, coord), value in gradients.items():
        matrices[layer_index][coord] = value
    return matrices


def relative_error(analytical, numerical):
    """
    Element-wise relative error |a - n| / max(|a|, |n|), zero where both are zero.

    Args:
        analytical (ndarray): Gradient from backpropagation.
        numerical (ndarray): Approximated gradient.

    Returns:
        numpy.ndarray: Relative errors.
    """
    analytical = backend.to_numpy(analytical)
    numerical = backend.to_numpy(numerical)
    diff = np.abs(analytical - numerical)
    denom = np.maximum(np.abs(analytical), np.abs(numerical))
    return np.divide(diff, denom, out=np.zeros_like(diff), where=denom > 0)

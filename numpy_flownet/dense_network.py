"""
dense_network.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Feed-forward network of fully connected layers (Input, Dense..., Output) trained with
             backpropagation, and the AutoEncoder variant that learns to reproduce its inputs.
Published: 10-18-2026
"""

import numpy as np

from numpy_flownet.model_builder.layers import Layer_Convolution, Layer_Dense, Layer_Input, Layer_Output, unwrap
from numpy_flownet.network import BaseNetwork


class DenseNetwork(BaseNetwork):
    """
    Fully connected network.

    Batches are row-major: samples x neurons. For weight i between layers
    i and i+1 the forward pass is

        p_i = a_{i-1} @ W_i,   a_i = f(p_i),   a_{-1} = x

    and the backward pass

        d_last = dL/da * f'(p_last)
        d_i    = (d_{i+1} @ W_{i+1}.T) * f'(p_i)
        dW_i   = a_{i-1}.T @ d_i
    """
    def check_layout(self):
        layers = self.layers
        if len(layers) < 2 or not isinstance(layers[0], Layer_Input):
            raise ValueError("A dense layout needs an Input layer followed by at least one Dense layer!")
        for index, layer in enumerate(layers[1:], start=1):
            inner = unwrap(layer)
            if isinstance(inner, (Layer_Input, Layer_Convolution)) or not isinstance(inner, Layer_Dense):
                raise ValueError(f"Unsupported layer in a dense layout: {layer!r}")
            if isinstance(inner, Layer_Output) and index != len(layers) - 1:
                raise ValueError("Output must be the last layer!")

    def check_sample(self, x, y):
        if np.shape(x) != (self.layers[0].neurons,):
            raise ValueError(f"Sample of shape {np.shape(x)} doesn't match input width {self.layers[0].neurons}!")
        if np.shape(y) != (self._output_dim,):
            raise ValueError(f"Target of shape {np.shape(y)} doesn't match output width {self._output_dim}!")

    def _flow(self, x, target):
        a = x
        for i in range(target + 1):
            a = self._activators[i](a @ self.weights[i])
        return a

    def _backprop(self, x, y, buffers):
        """
        Forward and backward pass of one (sub-)batch.

        Args:
            x (ndarray): Samples, shape (N, inputs).
            y (ndarray): Targets, shape (N, outputs).
            buffers (DeviceBuffers): Scope of the intermediates of this pass.

        Returns:
            tuple: (gradients per weight, loss matrix N x outputs).
        """
        W = self.weights
        last = self._last_idx
        dws = [None] * len(W)

        # ===== Forward pass =====
        a = x
        for i in range(last + 1):
            a, b = self._activators[i].forward_derivative(a @ W[i])
            buffers[(i, "fa")] = a
            buffers[(i, "fb")] = b

        # ===== Backward pass =====
        loss = None
        for i in range(last, -1, -1):
            if i == last:
                loss, grad = self.settings.loss_function(y, buffers[(i, "fa")])
                d = grad * buffers[(i, "fb")]
            else:
                d = (buffers[(i + 1, "ds")] @ W[i + 1].T) * buffers[(i, "fb")]
            buffers[(i, "ds")] = d
            previous = x if i == 0 else buffers[(i - 1, "fa")]
            dws[i] = previous.T @ d

        return dws, loss


class AutoEncoder(DenseNetwork):
    """
    Dense network trained to reproduce its inputs; put a Layer_Focus on the code layer to
    evaluate to the encoding.
    """
    def check_sample(self, x, y):
        if self.layers[0].neurons != self._output_dim:
            raise ValueError("An AutoEncoder needs as many outputs as inputs!")
        super().check_sample(x, y)

    def train(self, xs, ys=None):
        """
        Trains this net to reproduce `xs`.
        """
        xs = list(xs)
        return super().train(xs, xs if ys is None else ys)

"""
conv_network.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Convolutional network: a prefix of convolution layers followed by fully connected layers.
             Convolutions run as im2col + matrix multiply; the backward pass routes deltas through the
             index maps recorded by im2col, so overlapping windows sum their contributions.
Published: 10-18-2026
"""

import numpy as np

from numpy_flownet.model_builder.layers import Layer_Convolution, Layer_Dense, Layer_Input, Layer_Output
from numpy_flownet.network import BaseNetwork
from numpy_flownet.utils.vectorize import col2im, conv_backward_deltas, flatten_maps, im2col, unflatten_maps


class ConvNetwork(BaseNetwork):
    """
    Convolutional network.

    Samples are volumes of shape (depth, height, width), stacked to (N, D, H, W).
    Convolution activations are kept as (filters, N*H_out*W_out) matrices; the
    last convolution is flattened per sample into the dense layout (N, neurons)
    feeding the fully connected part.

    Attributes:
        indices (dict): layer index -> im2col index map, built once per geometry.
    """
    def __init__(self, layers, weights=None, settings=None, logger=None):
        self.indices = {}
        super().__init__(layers, weights, settings, logger)

    def check_layout(self):
        layers = self._layers
        if any(isinstance(layer, Layer_Input) for layer in self.layers):
            raise ValueError("A convolutional layout starts with a Convolution, not an Input!")
        if not layers or not isinstance(layers[0], Layer_Convolution):
            raise ValueError("A convolutional layout must start with a Convolution!")

        self._last_conv = 0
        while self._last_conv + 1 < len(layers) and isinstance(layers[self._last_conv + 1], Layer_Convolution):
            self._last_conv += 1

        dense = layers[self._last_conv + 1:]
        if not dense:
            raise ValueError("A convolutional layout needs at least one Dense layer after the convolutions!")
        for index, layer in enumerate(dense, start=self._last_conv + 1):
            if isinstance(layer, Layer_Convolution):
                raise ValueError("Convolutions must all come before the Dense layers!")
            if not isinstance(layer, Layer_Dense):
                raise ValueError(f"Unsupported layer in a convolutional layout: {layer!r}")
            if isinstance(layer, Layer_Output) and index != len(layers) - 1:
                raise ValueError("Output must be the last layer!")

        for previous, layer in zip(layers[:self._last_conv], layers[1:self._last_conv + 1]):
            if previous.dim_out != layer.dim_in:
                raise ValueError(f"Convolution expects input {layer.dim_in}, previous one outputs {previous.dim_out}!")

    def check_sample(self, x, y):
        width, height, depth = self._layers[0].dim_in
        if np.shape(x) != (depth, height, width):
            raise ValueError(f"Sample of shape {np.shape(x)} doesn't match input volume {(depth, height, width)}!")
        if np.shape(y) != (self._output_dim,):
            raise ValueError(f"Target of shape {np.shape(y)} doesn't match output width {self._output_dim}!")

    def _convolute(self, maps, i, buffers=None):
        """
        im2col + matrix multiply of convolution i, records the index map on first use.
        """
        layer = self._layers[i]
        seen = i in self.indices
        c, idx = im2col(maps, layer.field, layer.stride, layer.padding, with_indices=not seen)
        if not seen:
            self.indices[i] = idx
        if buffers is not None:
            buffers[(i, "fc")] = c
        return self.weights[i] @ c

    def _flow(self, x, target):
        n = x.shape[0]
        last_conv = self._last_conv

        maps = x
        for i in range(min(target, last_conv) + 1):
            a = self._activators[i](self._convolute(maps, i))
            if i < last_conv:
                maps = col2im(a, self._layers[i].dim_out, n)
        if target <= last_conv:
            return flatten_maps(a, self._layers[target].dim_out, n)

        a = flatten_maps(a, self._layers[last_conv].dim_out, n)
        for i in range(last_conv + 1, target + 1):
            a = self._activators[i](a @ self.weights[i])
        return a

    def _backprop(self, x, y, buffers):
        """
        Forward and backward pass of one (sub-)batch.

        Args:
            x (ndarray): Samples, shape (N, D, H, W).
            y (ndarray): Targets, shape (N, outputs).
            buffers (DeviceBuffers): Scope of the intermediates of this pass.

        Returns:
            tuple: (gradients per weight, loss matrix N x outputs).
        """
        W = self.weights
        layers = self._layers
        n = x.shape[0]
        last = self._last_idx
        last_conv = self._last_conv
        dws = [None] * len(W)

        # ===== Forward pass, convolutions =====
        maps = x
        for i in range(last_conv + 1):
            a, b = self._activators[i].forward_derivative(self._convolute(maps, i, buffers))
            buffers[(i, "fa")] = a
            buffers[(i, "fb")] = b
            if i < last_conv:
                maps = col2im(a, layers[i].dim_out, n)

        # ===== Forward pass, fully connected =====
        a = flatten_maps(buffers[(last_conv, "fa")], layers[last_conv].dim_out, n)
        buffers[(last_conv, "flat")] = a
        for i in range(last_conv + 1, last + 1):
            a, b = self._activators[i].forward_derivative(a @ W[i])
            buffers[(i, "fa")] = a
            buffers[(i, "fb")] = b

        # ===== Backward pass =====
        loss = None
        for i in range(last, -1, -1):
            if i == last:
                loss, grad = self.settings.loss_function(y, buffers[(i, "fa")])
                d = grad * buffers[(i, "fb")]
            elif i > last_conv:
                d = (buffers[(i + 1, "ds")] @ W[i + 1].T) * buffers[(i, "fb")]
            elif i == last_conv:
                d = unflatten_maps(buffers[(i + 1, "ds")] @ W[i + 1].T, layers[i].dim_out, n) * buffers[(i, "fb")]
            else:
                d = conv_backward_deltas(buffers[(i + 1, "ds")], W[i + 1], layers[i + 1], self.indices[i + 1], n)
                d = d * buffers[(i, "fb")]
            buffers[(i, "ds")] = d

            if i > last_conv:
                previous = buffers[(i - 1, "fa")] if i - 1 > last_conv else buffers[(last_conv, "flat")]
                dws[i] = previous.T @ d
            else:
                dws[i] = d @ buffers[(i, "fc")].T

        return dws, loss

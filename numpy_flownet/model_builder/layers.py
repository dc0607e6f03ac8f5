"""
layers.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Layer descriptors of a network layout: Input, Dense, Output, Convolution and Focus.
             Layers are plain descriptions; the networks build weights and run computations from them.
             Convolution derives its output volume at construction and rejects invalid geometries.
Published: 10-18-2026
"""


def _pair(value):
    # 3 -> (3, 3)
    if isinstance(value, int):
        return (value, value)
    return tuple(value)


class Layer:
    """
    Base class for all layers.

    Attributes:
        neurons (int): Number of output neurons of the layer.
        symbol (str): Short name used when printing a layout.
    """
    neurons = 0
    symbol = "?"
    activation = None

    def __repr__(self):
        if self.activation is None:
            return f"{self.symbol}({self.neurons})"
        return f"{self.symbol}({self.neurons}, {self.activation!r})"


class Layer_Input(Layer):
    """
    Input placeholder layer, the first one of a dense layout.
    """
    symbol = "In"

    def __init__(self, neurons):
        """
        Args:
            neurons (int): Input width.
        """
        if neurons <= 0:
            raise ValueError("Neurons must be positive!")
        self.neurons = neurons


class Layer_Dense(Layer):
    """
    Fully connected layer; the activation is applied on the output element-wise.
    """
    symbol = "Dense"

    def __init__(self, neurons, activation):
        """
        Args:
            neurons (int): Number of neurons.
            activation (Activation): Element-wise activation function.
        """
        if neurons <= 0:
            raise ValueError("Neurons must be positive!")
        self.neurons = neurons
        self.activation = activation


class Layer_Output(Layer_Dense):
    """
    Fully connected layer pinned as the last layer of a layout.
    """
    symbol = "Out"


class Layer_Convolution(Layer):
    """
    Convolutes the input volume.

    Output volume is a pure function of the geometry:

        out = (in + 2*padding - field) / stride + 1

    Attributes:
        dim_in (tuple): Input volume (width, height, depth).
        padding (tuple): Zero-padding (width, height).
        field (tuple): Receptive field (width, height).
        stride (tuple): Stride (width, height).
        filters (int): Number of independent filters.
        dim_in_padded (tuple): Padded input volume.
        dim_out (tuple): Output volume (width, height, filters).
        neurons (int): Number of output values.
        field_size (int): fw * fh * depth, columns of the weight matrix.
    """
    symbol = "Convolution"

    def __init__(self, dim_in, padding, field, stride, filters, activation):
        self.dim_in = tuple(dim_in)
        self.padding = _pair(padding)
        self.field = _pair(field)
        self.stride = _pair(stride)
        self.filters = filters
        self.activation = activation

        width, height, depth = self.dim_in
        if filters <= 0:
            raise ValueError("Filters must be positive!")
        if self.stride[0] <= 0 or self.stride[1] <= 0:
            raise ValueError("Strides must be positive!")
        if self.field[0] <= 0 or self.field[1] <= 0:
            raise ValueError("Field must be positive!")
        if width <= 0 or height <= 0 or depth <= 0:
            raise ValueError("Input dimension must be positive!")
        if self.padding[0] < 0 or self.padding[1] < 0:
            raise ValueError("Padding must not be negative!")

        self.dim_in_padded = (width + 2 * self.padding[0], height + 2 * self.padding[1], depth)

        d1 = self.dim_in_padded[0] - self.field[0]
        d2 = self.dim_in_padded[1] - self.field[1]
        if d1 < 0:
            raise ValueError(f"Field {self.field} is too big for input width {width}!")
        if d2 < 0:
            raise ValueError(f"Field {self.field} is too big for input height {height}!")
        if d1 % self.stride[0] != 0:
            raise ValueError(f"Width {d1} doesn't match stride {self.stride[0]}!")
        if d2 % self.stride[1] != 0:
            raise ValueError(f"Height {d2} doesn't match stride {self.stride[1]}!")

        self.dim_out = (d1 // self.stride[0] + 1, d2 // self.stride[1] + 1, filters)
        self.neurons = self.dim_out[0] * self.dim_out[1] * self.dim_out[2]
        self.field_size = self.field[0] * self.field[1] * depth

    def __repr__(self):
        return (f"{self.symbol}({self.dim_in} -> {self.dim_out}, field={self.field}, "
                f"stride={self.stride}, padding={self.padding}, {self.activation!r})")


class Layer_Focus(Layer):
    """
    Marks the wrapped layer as the model output tap (AutoEncoders, feature extraction).
    Not a computed layer of its own.
    """
    symbol = "Focus"

    def __init__(self, inner):
        """
        Args:
            inner (Layer): Dense, Output or Convolution layer to evaluate to.
        """
        if isinstance(inner, (Layer_Input, Layer_Focus)) or inner.activation is None:
            raise ValueError(f"Focus needs a layer with an activation, got {inner!r}")
        self.inner = inner
        self.neurons = inner.neurons
        self.activation = inner.activation

    def __repr__(self):
        return f"{self.symbol}({self.inner!r})"


def unwrap(layer):
    """Return the inner layer of a Focus, the layer itself otherwise."""
    if isinstance(layer, Layer_Focus):
        return layer.inner
    return layer


def focus_index(layers):
    """
    Position of the first Focus layer in `layers`, None if there is none.
    """
    for index, layer in enumerate(layers):
        if isinstance(layer, Layer_Focus):
            return index
    return None

"""
weight_breeders.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Derives the weight matrix shapes of a layout and breeds initial weights for them
             (he_scaling, xavier, normal, random or static seeds, optionally configured per layer).
Published: 10-18-2026
"""

import numpy as np
from numpy_flownet.model_builder.layers import Layer_Input, Layer_Convolution, unwrap


def expected_weight_shapes(layers):
    """
    Shapes of the weight matrices connecting adjacent layers.

    Dense transitions are fan_in x fan_out, convolutions are filters x field_size
    and the first dense layer after a convolution takes its flattened output volume.

    Args:
        layers (list): Layer sequence, either Input + dense layers or convolutions + dense layers.

    Returns:
        list: One (rows, cols) tuple per weight matrix.
    """
    layers = [unwrap(layer) for layer in layers]
    if not layers:
        raise ValueError("Empty layout!")
    shapes = []
    for index, layer in enumerate(layers):
        if isinstance(layer, Layer_Input):
            if index != 0:
                raise ValueError("Input must be the first layer!")
            continue
        if isinstance(layer, Layer_Convolution):
            shapes.append((layer.filters, layer.field_size))
        elif index == 0:
            raise ValueError(f"Layout must start with Input or Convolution, got {layer!r}")
        else:
            shapes.append((layers[index - 1].neurons, layer.neurons))
    return shapes


class WeightBreeder:
    """
    Breeds the initial weights of a layout.

    Attributes:
        init_type (str): 'he_scaling', 'xavier', 'normal', 'random' or 'static'.
        mu, sigma (float): Parameters of 'normal'.
        low, high (float): Range of 'random'.
        value (float): Seed of 'static'.
        config (dict): Optional per-layer overrides, weight index -> dict of the above.
        seed (int): Seed of the random generator.
    """
    def __init__(self, init_type="he_scaling", mu=0., sigma=1., low=-1., high=1., value=1., config=None, seed=None):
        if init_type not in ("he_scaling", "xavier", "normal", "random", "static"):
            raise ValueError(f"Unknown init type: {init_type}")
        self.init_type = init_type
        self.mu = mu
        self.sigma = sigma
        self.low = low
        self.high = high
        self.value = value
        self.config = config or {}
        self.rng = np.random.default_rng(seed)
        self.convolutional = {}

    def breed(self, shape, index):
        """
        Breed one weight matrix.

        Args:
            shape (tuple): (rows, cols).
            index (int): Weight index, used to look up per-layer config.

        Returns:
            numpy.ndarray: Weight matrix of float64.
        """
        options = dict(init_type=self.init_type, mu=self.mu, sigma=self.sigma,
                       low=self.low, high=self.high, value=self.value)
        options.update(self.config.get(index, {}))
        init_type = options["init_type"]
        # the fan in of a convolution is its field size, the column count
        fan_in = shape[1] if self.convolutional.get(index) else shape[0]

        if init_type == "he_scaling":
            return self.rng.standard_normal(shape) * np.sqrt(2. / fan_in)
        elif init_type == "xavier":
            return self.rng.standard_normal(shape) * np.sqrt(1. / fan_in)
        elif init_type == "normal":
            return self.rng.normal(options["mu"], options["sigma"], shape)
        elif init_type == "random":
            return self.rng.uniform(options["low"], options["high"], shape)
        return np.full(shape, options["value"], dtype=np.float64)

    def __call__(self, layers):
        """
        Breed all weights of a layout.

        Returns:
            list: numpy weight matrices, one per transition.
        """
        inner = [unwrap(layer) for layer in layers]
        computed = [layer for layer in inner if not isinstance(layer, Layer_Input)]
        self.convolutional = {index: isinstance(layer, Layer_Convolution) for index, layer in enumerate(computed)}
        return [self.breed(shape, index) for index, shape in enumerate(expected_weight_shapes(layers))]

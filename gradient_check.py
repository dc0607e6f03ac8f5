"""
gradient_check.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Compares the analytical gradients of backpropagation with central finite-difference
             approximations, for a dense and a convolutional network, and reports the relative error
             of every weight matrix.
Published: 10-18-2026
"""

import tyro
import numpy as np
from dataclasses import dataclass
from numpy_flownet.network import Settings
from numpy_flownet.dense_network import DenseNetwork
from numpy_flownet.conv_network import ConvNetwork
from numpy_flownet.model_builder.layers import Layer_Input, Layer_Dense, Layer_Output, Layer_Convolution
from numpy_flownet.model_builder.activation_functions import Activation_Sigmoid, Activation_Tanh, Activation_Linear
from numpy_flownet.model_builder.loss_functions import Loss_SquaredError, Loss_SoftmaxCrossentropy
from numpy_flownet.model_builder.weight_breeders import WeightBreeder
from numpy_flownet.utils.gradient_check import FiniteDifferences, gradients_to_matrices, relative_error


def check_network(network, xs, ys, delta=1e-5):
    """
    Compute analytical and numerical gradients of one batch and their relative errors.

    Args:
        network (BaseNetwork): Network to check, its weights stay untouched.
        xs (list): Samples.
        ys (list): Targets.
        delta (float): Finite-difference perturbation.

    Returns:
        list: Max relative error per weight matrix.
    """
    analytical, _ = network.compute_gradients(xs, ys)
    numerical = gradients_to_matrices(network.approximate_gradients(xs, ys, FiniteDifferences(delta)), network.weights)

    errors = []
    for index, (a, n) in enumerate(zip(analytical, numerical)):
        rel_error = relative_error(a, n)
        errors.append(float(rel_error.max()))
        # Print results
        print(f"Layer {index} {tuple(a.shape)}")
        print(f"  Analytical grad[0, 0]: {float(a[0, 0]):.6f}")
        print(f"  Numerical grad[0, 0]:  {n[0, 0]:.6f}")
        print(f"  Max relative error:    {errors[-1]:.6e}")
    return errors


@dataclass
class GradientCheck:
    """
    Gradient check configuration.

    Attributes:
        topology (str): 'dense', 'conv' or 'both'.
        delta (float): Finite-difference perturbation.
        samples (int): Batch size of the check.
        device (str): 'cpu' or 'gpu'.
        seed (int): Seed of data and weights.
    """
    topology: str = "both"
    delta: float = 1e-5
    samples: int = 4
    device: str = "cpu"
    seed: int = 0

    def dense(self):
        rng = np.random.default_rng(self.seed)
        layers = [Layer_Input(3), Layer_Dense(4, Activation_Tanh()), Layer_Dense(3, Activation_Sigmoid()),
                  Layer_Output(2, Activation_Linear())]
        network = DenseNetwork(layers, WeightBreeder("normal", sigma=0.5, seed=self.seed),
                               Settings(loss_function=Loss_SquaredError(), device=self.device, verbose=False))
        xs = list(rng.standard_normal((self.samples, 3)))
        ys = list(rng.standard_normal((self.samples, 2)))
        return network, xs, ys

    def conv(self):
        rng = np.random.default_rng(self.seed)
        layers = [Layer_Convolution((5, 5, 2), padding=1, field=3, stride=2, filters=3, activation=Activation_Tanh()),
                  Layer_Convolution((3, 3, 3), padding=1, field=2, stride=1, filters=2, activation=Activation_Sigmoid()),
                  Layer_Output(3, Activation_Linear())]
        network = ConvNetwork(layers, WeightBreeder("normal", sigma=0.5, seed=self.seed),
                              Settings(loss_function=Loss_SoftmaxCrossentropy(), device=self.device, verbose=False))
        xs = list(rng.standard_normal((self.samples, 2, 5, 5)))
        ys = list(np.eye(3)[rng.integers(0, 3, self.samples)])
        return network, xs, ys

    def run(self):
        topologies = ("dense", "conv") if self.topology == "both" else (self.topology,)
        for topology in topologies:
            print(f"===== {topology} =====")
            network, xs, ys = getattr(self, topology)()
            print(repr(network))
            check_network(network, xs, ys, self.delta)


if __name__ == "__main__":
    tyro.cli(GradientCheck).run()

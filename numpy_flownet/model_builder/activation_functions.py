"""
activation_functions.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Implements element-wise activation functions (Linear, ReLU, Sigmoid, Tanh, LeakyReLU, Softplus)
             using a NumPy-compatible backend. Each class computes the activation and its derivative at the same
             pre-activation, and optionally ships a fused CuPy kernel for the GPU backend.
Published: 10-18-2026
"""

from numpy_flownet.utils import backend


class Activation:
    """
    Base class for activation functions.

    Subclasses implement:
        forward(inputs): activation of the pre-activation matrix.
        derivative(inputs): derivative evaluated at the same pre-activation.

    Attributes:
        symbol (str): Short name used in logs and error messages.
        cuda_source (str or None): Body of a CuPy ElementwiseKernel computing
            output `a` and derivative `b` from input `p`, None if unsupported on GPU.
    """
    symbol = "?"
    cuda_source = None

    def __call__(self, inputs):
        return self.forward(inputs)

    def forward_derivative(self, inputs):
        """
        Compute activation and derivative in one call.

        Returns:
            tuple: (output, derivative), both shaped like inputs.
        """
        return self.forward(inputs), self.derivative(inputs)

    def __repr__(self):
        return self.symbol


class Activation_Linear(Activation):
    """
    Linear (identity) activation function.
    Useful as a no-op activation or for regression and softmax outputs.
    """
    symbol = "x"
    cuda_source = "a = p; b = 1;"

    def forward(self, inputs):
        return inputs

    def derivative(self, inputs):
        # Derivative is 1 everywhere
        return backend.array_module(inputs).ones_like(inputs)


class Activation_ReLU(Activation):
    """
    Rectified Linear Unit (ReLU) activation.
    Sets negative inputs to zero; passes positives unchanged.
    """
    symbol = "R"
    cuda_source = "a = p > 0 ? p : 0; b = p > 0 ? 1 : 0;"

    def forward(self, inputs):
        return backend.array_module(inputs).maximum(0, inputs)

    def derivative(self, inputs):
        return (inputs > 0).astype(inputs.dtype) #derivative of relu


class Activation_LeakyReLU(Activation):
    """
    Leaky ReLU: small slope `alpha` for negative inputs. CPU only.
    """
    symbol = "LR"

    def __init__(self, alpha=0.01):
        self.alpha = alpha

    def forward(self, inputs):
        xp = backend.array_module(inputs)
        return xp.where(inputs > 0, inputs, self.alpha * inputs)

    def derivative(self, inputs):
        xp = backend.array_module(inputs)
        return xp.where(inputs > 0, 1., self.alpha).astype(inputs.dtype)


class Activation_Sigmoid(Activation):
    """
    Sigmoid activation function.
    Outputs values in (0,1).
    """
    symbol = "σ"
    cuda_source = "a = 1 / (1 + exp(-p)); b = a * (1 - a);"

    def forward(self, inputs):
        return 1 / (1 + backend.array_module(inputs).exp(-inputs))

    def derivative(self, inputs):
        # Derivative - calculates from output of the sigmoid function
        output = self.forward(inputs)
        return output * (1 - output)


class Activation_Tanh(Activation):
    """
    Hyperbolic tangent activation, outputs in (-1, 1).
    """
    symbol = "φ"
    cuda_source = "a = tanh(p); b = 1 - a * a;"

    def forward(self, inputs):
        return backend.array_module(inputs).tanh(inputs)

    def derivative(self, inputs):
        output = self.forward(inputs)
        return 1 - output * output


class Activation_Softplus(Activation):
    """
    Softplus log(1 + e^x), a smooth ReLU. CPU only.
    """
    symbol = "Σ"

    def forward(self, inputs):
        return backend.array_module(inputs).logaddexp(0, inputs)

    def derivative(self, inputs):
        return 1 / (1 + backend.array_module(inputs).exp(-inputs))


class CudaActivation:
    """
    GPU dispatch entry: runs one fused CuPy kernel producing activation and derivative.

    Raises:
        ValueError: If the activation has no CUDA kernel.
    """
    def __init__(self, activation):
        if activation.cuda_source is None:
            raise ValueError(f"This activation is not implemented for CUDA: {type(activation).__name__}.")
        self.activation = activation
        self.kernel = backend.cp.ElementwiseKernel("T p", "T a, T b", activation.cuda_source,
                                                   f"flownet_{type(activation).__name__.lower()}")

    def forward(self, inputs):
        output, _ = self.kernel(inputs)
        return output

    def forward_derivative(self, inputs):
        return self.kernel(inputs)

    def __call__(self, inputs):
        return self.forward(inputs)

    def __repr__(self):
        return f"cuda({self.activation.symbol})"

"""
loss_functions.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Defines loss classes for training neural networks. A loss gets target `y` and prediction `x`
             and returns the element-wise loss together with the gradient that gets backpropagated into
             the raw output layer of a network.
Published: 10-18-2026
"""

from numpy_flownet.utils import backend


def softmax(x):
    """
    Compute e^x / Σe^X for matrix `x` by row.

    Rows are shifted by their max to not numerically overflow.

    Args:
        x (ndarray): Scores of shape (N, classes).

    Returns:
        ndarray: Probabilities, each row sums to one.
    """
    xp = backend.array_module(x)
    exp_values = xp.exp(x - xp.max(x, axis=1, keepdims=True))
    return exp_values / xp.sum(exp_values, axis=1, keepdims=True)


class Loss:
    """
    Base loss class.

    Methods:
        __call__(y, x): compute (loss, gradient) matrices shaped like y.
        calculate(y, x): mean over samples of the summed per-sample loss.
        output(x): transform raw network output for evaluation.
    """
    symbol = "?"

    def __call__(self, y, x):
        return self.forward(y, x), self.backward(y, x)

    def calculate(self, y, x):
        """
        Mean per-sample loss of a batch.

        Args:
            y (ndarray): Targets (N, out).
            x (ndarray): Predictions (N, out).

        Returns:
            float: Mean over samples of the row sums.
        """
        sample_losses = self.forward(y, x).sum(axis=1)
        return float(sample_losses.mean())

    def output(self, x):
        # raw output by default
        return x

    def __repr__(self):
        return type(self).__name__


class Loss_SquaredError(Loss):
    """
    Squared error loss:

        L = Σ1/2(y - x)²

    The sum Σ is taken over the full batch and the square gives a convex functional form.
    """
    symbol = "SE"

    def forward(self, y, x):
        """Element-wise 1/2 (y - x)^2."""
        return 0.5 * (y - x) ** 2

    def backward(self, y, x):
        """Gradient w.r.t. predictions: -(y - x)."""
        return x - y


class Loss_SoftmaxCrossentropy(Loss):
    """
    Softmax followed by cross-entropy:

        L = -Σ(y * log(e^x / Σe^X))

    Works for 1-of-K classification with one-hot targets. The softmaxed class scores
    sum up to one, e.g. target (0, 1, 0, 0) and prediction (0.2, 0.4, 0.3, 0.1)
    give a loss of -log(0.4) ≈ 0.916.
    """
    symbol = "SCE"

    def forward(self, y, x):
        """Element-wise -(y * log(softmax(x)))."""
        xp = backend.array_module(x)
        probabilities = softmax(x)
        # Clip to prevent log(0)
        return -(y * xp.log(xp.clip(probabilities, xp.finfo(probabilities.dtype).tiny, None)))

    def backward(self, y, x):
        """Gradient simplifies to softmax(x) - y."""
        return softmax(x) - y

    def __call__(self, y, x):
        # share the softmax between loss and gradient
        xp = backend.array_module(x)
        probabilities = softmax(x)
        err = -(y * xp.log(xp.clip(probabilities, xp.finfo(probabilities.dtype).tiny, None)))
        return err, probabilities - y

    def output(self, x):
        return softmax(x)

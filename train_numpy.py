"""
train_numpy.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Training script for the NumPy/CuPy networks. Trains either a dense network on XOR or a small
             convolutional network telling horizontal from vertical bars, with learning rate schedules,
             logging, waypoint checkpoints and saving of the final weights.
Published: 10-18-2026
"""

import os
import pickle
import time
import tyro
import numpy as np
from dataclasses import dataclass
from typing import Optional
# Networks and layers
from numpy_flownet.network import Settings, Waypoint
from numpy_flownet.dense_network import DenseNetwork
from numpy_flownet.conv_network import ConvNetwork
from numpy_flownet.model_builder.layers import Layer_Input, Layer_Dense, Layer_Output, Layer_Convolution
# Activations, losses, update rules, schedules and weights
from numpy_flownet.model_builder.activation_functions import Activation_Sigmoid, Activation_Tanh, Activation_ReLU, Activation_Linear
from numpy_flownet.model_builder.loss_functions import Loss_SquaredError, Loss_SoftmaxCrossentropy
from numpy_flownet.model_builder.optimizers import Optimizer_SGD, Optimizer_Adam
from numpy_flownet.model_builder.lr_schedules import ConstantSchedule, ExponentialDecaySchedule, StepDecaySchedule
from numpy_flownet.model_builder.weight_breeders import WeightBreeder
from numpy_flownet.utils import backend
# Utility functions for logging and checkpoint directories
from common_utils.logger import setup_logger
from common_utils.utils import get_new_run_dir, checkpoint_path


def bars_dataset(size=6, samples=32, seed=0):
    """
    Images with one horizontal or one vertical bar, one-hot labelled (horizontal, vertical).

    Returns:
        tuple: (list of (1, size, size) arrays, list of one-hot targets).
    """
    rng = np.random.default_rng(seed)
    xs, ys = [], []
    for k in range(samples):
        image = rng.uniform(0., 0.1, (1, size, size))
        line = rng.integers(0, size)
        if k % 2 == 0:
            image[0, line, :] = 1.
            ys.append(np.array([1., 0.]))
        else:
            image[0, :, line] = 1.
            ys.append(np.array([0., 1.]))
        xs.append(image)
    return xs, ys


@dataclass
class FlowNetTrainer:
    """
    Trainer configuration.

    Attributes:
        topology (str): 'dense' (XOR) or 'conv' (bars).
        lr (float): Initial learning rate, None for 1.0 (dense) or 0.01 (conv).
        final_lr (float): Final learning rate after decay.
        iterations (int): Maximum number of iterations.
        precision (float): Target mean loss.
        batch_size (int): Samples per batch, 0 for the full set.
        schedule_type (str): 'constant', 'exponential' or 'step'.
        optimizer (str): 'sgd' or 'adam'.
        momentum (float): Momentum of SGD.
        init_type (str): Weight initialization type (e.g., 'he_scaling').
        checkpoint_every (int): Waypoint cadence in iterations, 0 disables checkpoints.
        device (str): Compute backend to use: 'gpu' or 'cpu'.
        dtype (str): 'float32' or 'float64'.
        seed (int): Seed of the weight breeder.
    """
    #hyperparameters
    topology: str = "dense"
    lr: Optional[float] = None
    final_lr: float = 0.1
    iterations: int = 20000
    precision: float = 1e-4
    batch_size: int = 0
    schedule_type: str = "constant"
    optimizer: str = "sgd"
    momentum: float = 0.
    init_type: str = "xavier"
    checkpoint_every: int = 0
    device: str = "cpu"
    dtype: str = "float64"
    seed: int = 42

    def __post_init__(self):
        """
        Set up the learning rate schedule, the data, the run directory and logging.
        """
        if self.lr is None:
            self.lr = 1.0 if self.topology == "dense" else 0.01
        if self.schedule_type == "constant":
            self.schedule = ConstantSchedule(self.lr)
        elif self.schedule_type == "exponential":
            self.schedule = ExponentialDecaySchedule(self.lr, self.final_lr, self.iterations)
        elif self.schedule_type == "step":
            self.schedule = StepDecaySchedule(self.lr, self.final_lr, self.iterations)
        else:
            raise ValueError(f"Unknown schedule type: {self.schedule_type}")

        if self.optimizer == "sgd":
            self.update_rule = Optimizer_SGD(self.momentum)
        elif self.optimizer == "adam":
            self.update_rule = Optimizer_Adam()
        else:
            raise ValueError(f"Unknown optimizer: {self.optimizer}")

        if self.topology == "dense":
            self.xs = [np.array(x, dtype=float) for x in ((0, 0), (0, 1), (1, 0), (1, 1))]
            self.ys = [np.array(y, dtype=float) for y in ((0,), (1,), (1,), (0,))]
        elif self.topology == "conv":
            self.xs, self.ys = bars_dataset()
        else:
            raise ValueError(f"Unknown topology: {self.topology}")

        # Create new checkpoint directory
        self.save_dir = get_new_run_dir(model_type=self.topology)
        #set up logging
        self.logger = setup_logger(self.save_dir)

    def checkpoint(self, iteration, weights):
        """
        Waypoint action: pickles the current weights into the run directory.
        """
        path = checkpoint_path(self.save_dir, iteration)
        with open(path, 'wb') as f:
            pickle.dump(weights, f)
        self.logger.info(f"Saved checkpoint {path}")

    def build_network(self):
        """
        Construct the layout and the network for the chosen topology.
        """
        waypoint = Waypoint(self.checkpoint_every, self.checkpoint) if self.checkpoint_every else None
        if self.topology == "dense":
            layers = [Layer_Input(2), Layer_Dense(3, Activation_Tanh()), Layer_Output(1, Activation_Sigmoid())]
            loss = Loss_SquaredError()
        else:
            layers = [Layer_Convolution((6, 6, 1), padding=1, field=3, stride=1, filters=4, activation=Activation_ReLU()),
                      Layer_Convolution((6, 6, 4), padding=0, field=2, stride=2, filters=4, activation=Activation_ReLU()),
                      Layer_Dense(8, Activation_Tanh()),
                      Layer_Output(2, Activation_Linear())]
            loss = Loss_SoftmaxCrossentropy()

        settings = Settings(loss_function=loss, learning_rate=self.schedule, update_rule=self.update_rule,
                            precision=self.precision, iterations=self.iterations,
                            batch_size=self.batch_size or None, waypoint=waypoint,
                            device=self.device, dtype=self.dtype, verbose=True)
        self.network = (DenseNetwork if self.topology == "dense" else ConvNetwork)(
            layers, WeightBreeder(self.init_type, seed=self.seed), settings, logger=self.logger)
        self.logger.info(f"Built {self.network!r}")

    def train(self):
        """
        Train the network, logging time and memory.
        """
        start_time = time.time()
        self.logger.info("Starting training...")
        with backend.profile_block(self.network.xp, "Training", self.logger):
            loss = self.network.train(self.xs, self.ys)
        total_time = time.time() - start_time
        self.logger.info(f"\n Final loss {loss:.6g}, total training time: {total_time:.2f} seconds on {self.device}")

        outputs = self.network.predict(self.xs)
        if self.topology == "dense":
            for x, y, out in zip(self.xs, self.ys, outputs):
                self.logger.info(f"{x} -> {out} (target {y})")
        else:
            predicted = outputs.argmax(axis=1)
            accuracy = float(np.mean(predicted == np.array(self.ys).argmax(axis=1)))
            self.logger.info(f"Training accuracy: {accuracy:.3f}")

    def save(self):
        """
        Save the trained weights to disk.
        """
        self.network.save_weights(os.path.join(self.save_dir, f"{self.topology}.weights"))
        self.logger.info(f"Saved weights of {len(self.network.weights)} layers.")

    def run(self):
        """
        Orchestrate full workflow: build the network, train, then save results.
        """
        self.build_network()
        self.train()
        self.save()

if __name__ == "__main__":
    # Parse CLI args and initiate training
    trainer: FlowNetTrainer = tyro.cli(FlowNetTrainer)
    trainer.run()

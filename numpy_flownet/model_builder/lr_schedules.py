"""
lr_schedules.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Learning rate schedules mapping a training iteration (1-based) to a step size. The update loop
             calls a schedule fresh every iteration, so schedules hold no state besides their parameters.
Published: 10-18-2026
"""

class ConstantSchedule:
    """
    Same step size at every iteration; plain float learning rates are wrapped into one.
    """
    def __init__(self, learning_rate):
        self.learning_rate = learning_rate

    def __call__(self, iteration):
        return self.learning_rate

    def __repr__(self):
        return f"ConstantSchedule({self.learning_rate})"

class ExponentialDecaySchedule:
    """
    Decays the step size by a constant factor every iteration, from initial_lr at
    iteration 1 down to final_lr after total_iterations:

        lr(i) = initial_lr * rate ** (i - 1),   rate = (final_lr / initial_lr) ** (1 / total_iterations)

    Attributes:
        initial_lr (float): Step size of the first iteration.
        final_lr (float): Step size reached after total_iterations.
        total_iterations (int): Length of the decay.
    """
    def __init__(self, initial_lr, final_lr, total_iterations):
        self.initial_lr = initial_lr
        self.final_lr = final_lr
        self.total_iterations = total_iterations

    def __call__(self, iteration):
        rate = (self.final_lr / self.initial_lr) ** (1 / self.total_iterations)
        return self.initial_lr * rate ** (iteration - 1)

    def __repr__(self):
        return f"ExponentialDecaySchedule({self.initial_lr} -> {self.final_lr}, {self.total_iterations})"

class StepDecaySchedule:
    """
    Holds the step size flat for step_size iterations, then drops it by a fixed factor,
    so that final_lr is reached after total_iterations // step_size drops.

    Attributes:
        initial_lr (float): Step size of the first block of iterations.
        final_lr (float): Step size after the last drop.
        total_iterations (int): Length of the decay.
        step_size (int): Iterations per block.
    """
    def __init__(self, initial_lr, final_lr, total_iterations, step_size=30):
        self.initial_lr = initial_lr
        self.final_lr = final_lr
        self.total_iterations = total_iterations
        self.step_size = step_size

    def __call__(self, iteration):
        drops = max(1, self.total_iterations // self.step_size)
        factor = (self.final_lr / self.initial_lr) ** (1 / drops)
        # drops completed before this iteration
        completed = (iteration - 1) // self.step_size
        return self.initial_lr * factor ** completed

    def __repr__(self):
        return f"StepDecaySchedule({self.initial_lr} -> {self.final_lr}, every {self.step_size})"

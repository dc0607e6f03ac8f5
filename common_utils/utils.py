"""
utils.py

Project: NumPy-FlowNet
Author: Gabriel Souza
Description: Run directory numbering for checkpoints and logs, and weight checkpoint naming.
Published: 10-18-2026
"""

import os

def get_new_run_dir(model_type="dense", base_dir="model_ckpt/"):
    """
    Create the next numbered run directory under base_dir/model_type.

    Args:
        model_type (str): Subdirectory categorizing runs (e.g., 'dense' or 'conv').
        base_dir (str): Base directory of all runs.

    Returns:
        str: Path of the new run directory (e.g., 'model_ckpt/dense/002').
    """
    run_base_dir = os.path.join(base_dir, model_type)
    os.makedirs(run_base_dir, exist_ok=True)

    # only purely numeric folders count as runs
    runs = [int(d) for d in os.listdir(run_base_dir) if d.isdigit()]
    new_dir = os.path.join(run_base_dir, f"{max(runs, default=0) + 1:03d}")
    os.makedirs(new_dir, exist_ok=False)
    return new_dir


def checkpoint_path(save_dir, iteration, prefix="weights"):
    """
    Path of the weight checkpoint written at `iteration`, e.g. 'model_ckpt/dense/001/weights_000500.pkl'.
    """
    return os.path.join(save_dir, f"{prefix}_{iteration:06d}.pkl")
